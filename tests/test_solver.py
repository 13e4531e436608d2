#!/usr/bin/env python3
"""
Unit tests for the Newton-Raphson solver.

Covers convergence on a known root, the singular-Jacobian and iteration
budget failure modes (both yield an all-NaN solution), NaN residuals,
solution constraints, random restarts and cancellation.
"""

import math
import sys
from pathlib import Path

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from reidrisk.config import SolverConfiguration
from reidrisk.errors import ComputationInterrupted, InvalidArgumentError
from reidrisk.progress import CancellationToken
from reidrisk.solver import NewtonRaphsonSolver, SolverSolution, residual_norm


def circle_objective(x):
    return [x[0] ** 2 + x[1] ** 2 - 4.0, x[0] - x[1]]


def circle_jacobian(x):
    return [[2.0 * x[0], 2.0 * x[1]], [1.0, -1.0]]


class TestConvergence:
    """Systems with a reachable root."""

    def test_finds_root(self):
        solution = NewtonRaphsonSolver(circle_objective, circle_jacobian).solve([1.0, 0.5])
        assert solution.is_valid
        assert solution[0] == pytest.approx(math.sqrt(2), rel=1e-9)
        assert solution[1] == pytest.approx(math.sqrt(2), rel=1e-9)
        assert solution.iterations < 300

    def test_residual_within_accuracy(self):
        config = SolverConfiguration(accuracy=1e-10)
        solution = NewtonRaphsonSolver(circle_objective, circle_jacobian, config).solve([3.0, 1.0])
        assert residual_norm(circle_objective, solution.values) <= 1e-10

    def test_starting_at_root(self):
        solution = NewtonRaphsonSolver(
            lambda x: [x[0] - 1.0], lambda x: [[1.0]]).solve([1.0])
        assert solution.is_valid
        assert solution.iterations == 0

    def test_deterministic(self):
        solver = NewtonRaphsonSolver(circle_objective, circle_jacobian)
        assert solver.solve([1.0, 0.5]) == solver.solve([1.0, 0.5])


class TestFailureModes:
    """Unsolvable systems return NaN vectors instead of raising."""

    def test_singular_jacobian(self):
        solution = NewtonRaphsonSolver(
            lambda x: [x[0] - 1.0, x[1] - 1.0],
            lambda x: [[0.0, 0.0], [0.0, 0.0]]).solve([0.0, 0.0])
        assert not solution.is_valid
        assert all(math.isnan(v) for v in solution.values)

    def test_iteration_budget_exhausted(self):
        config = SolverConfiguration(max_iterations=20)
        solution = NewtonRaphsonSolver(
            lambda x: [x[0] ** 2 + 1.0], lambda x: [[2.0 * x[0]]], config).solve([0.5])
        assert not solution.converged
        assert math.isnan(solution[0])
        assert solution.iterations == 20

    def test_nan_residual(self):
        solution = NewtonRaphsonSolver(
            lambda x: [float('nan')], lambda x: [[1.0]]).solve([0.25])
        assert not solution.is_valid
        assert solution[0] == 0.25

    def test_constraint_violated(self):
        solution = NewtonRaphsonSolver(
            lambda x: [x[0] ** 2 - 4.0], lambda x: [[2.0 * x[0]]],
            constraint=lambda x: x[0] >= 0).solve([-1.0])
        assert not solution.is_valid
        assert math.isnan(solution[0])

    def test_unsolvable_factory(self):
        solution = SolverSolution.unsolvable(3, 7)
        assert len(solution) == 3
        assert solution.iterations == 7
        assert not solution.is_valid


class TestRandomStarts:
    """Restarting from random points."""

    def test_recovers_from_random_start(self):
        config = SolverConfiguration(seed=42)
        solver = NewtonRaphsonSolver(
            lambda x: [x[0] ** 2 - 4.0], lambda x: [[2.0 * x[0]]], config,
            constraint=lambda x: x[0] >= 0)
        solution = solver.solve_from_random_starts(lambda rng: [rng.uniform(-5, 5)])
        assert solution.is_valid
        assert solution[0] == pytest.approx(2.0)

    def test_gives_up_after_max_tries(self):
        config = SolverConfiguration(max_tries=3, max_iterations=5, seed=1)
        calls = []

        def sample(rng):
            calls.append(1)
            return [rng.uniform(-1, 1)]

        solver = NewtonRaphsonSolver(
            lambda x: [x[0] ** 2 + 1.0], lambda x: [[2.0 * x[0]]], config)
        solution = solver.solve_from_random_starts(sample)
        assert not solution.is_valid
        assert len(calls) == 3

    def test_seeded_restarts_repeat(self):
        config = SolverConfiguration(seed=7)
        solver = NewtonRaphsonSolver(circle_objective, circle_jacobian, config)
        draw = lambda rng: rng.uniform(-3, 3, size=2)
        assert solver.solve_from_random_starts(draw) == solver.solve_from_random_starts(draw)


class TestSolverControls:
    """Cancellation and configuration validation."""

    def test_cancelled_token_raises(self):
        token = CancellationToken()
        token.cancel()
        solver = NewtonRaphsonSolver(circle_objective, circle_jacobian, token=token)
        with pytest.raises(ComputationInterrupted):
            solver.solve([1.0, 0.5])

    @pytest.mark.parametrize("kwargs", [
        {'accuracy': 0},
        {'max_iterations': 0},
        {'max_tries': 0},
    ])
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(InvalidArgumentError):
            SolverConfiguration(**kwargs)
