# =============================================================================
# solver.py
# =============================================================================
# Multivariate Newton-Raphson root finding.
#
# Iterates x <- x - J(x)^-1 f(x) until ||f(x)|| <= accuracy or the iteration
# budget runs out. Failure is not an exception: a singular Jacobian or an
# exhausted budget yields an all-NaN solution, and a NaN residual stops the
# iteration and hands back the current (invalid) vector. Callers decide what
# to fall back to.
#
# References:
#   - Press, W. H. et al. (2007). Numerical Recipes, 3rd ed., Section 9.6.
#
# Author: James Weatherhead
# Institution: University of Texas Medical Branch (UTMB)
# =============================================================================

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import numpy as np

from .config import SolverConfiguration
from .progress import CancellationToken

# Configure logging
logger = logging.getLogger(__name__)

Objective = Callable[[np.ndarray], Sequence[float]]
Jacobian = Callable[[np.ndarray], Sequence[Sequence[float]]]
Constraint = Callable[[np.ndarray], bool]


@dataclass(frozen=True)
class SolverSolution:
    """
    Result of one solver run.

    Attributes:
        values: Solution vector; all NaN when the system was unsolvable
        iterations: Number of Newton steps taken
        converged: Whether the residual norm reached the accuracy
    """
    values: Tuple[float, ...]
    iterations: int
    converged: bool

    @classmethod
    def unsolvable(cls, dimension: int, iterations: int) -> "SolverSolution":
        return cls(tuple([float('nan')] * dimension), iterations, False)

    @property
    def is_valid(self) -> bool:
        """True only for converged, NaN-free solutions."""
        return self.converged and not any(np.isnan(v) for v in self.values)

    def __getitem__(self, index: int) -> float:
        return self.values[index]

    def __len__(self) -> int:
        return len(self.values)


class NewtonRaphsonSolver:
    """
    Newton-Raphson solver for square nonlinear systems.

    Attributes:
        objective: Function mapping x to the residual vector f(x)
        jacobian: Function mapping x to the Jacobian matrix of f at x
        config: Accuracy, iteration budget and retry settings
        constraint: Optional predicate a converged solution must satisfy
        token: Cancellation token polled at the start of every iteration

    Example:
        >>> solver = NewtonRaphsonSolver(
        ...     lambda x: [x[0] ** 2 - 4, x[1] - 1],
        ...     lambda x: [[2 * x[0], 0], [0, 1]])
        >>> solution = solver.solve([1.0, 0.0])
        >>> solution.is_valid, round(solution[0], 6)
        (True, 2.0)
    """

    def __init__(
        self,
        objective: Objective,
        jacobian: Jacobian,
        config: Optional[SolverConfiguration] = None,
        constraint: Optional[Constraint] = None,
        token: Optional[CancellationToken] = None
    ):
        self.objective = objective
        self.jacobian = jacobian
        self.config = config or SolverConfiguration()
        self.constraint = constraint
        self.token = token or CancellationToken()

    def solve(self, initial: Sequence[float]) -> SolverSolution:
        """
        Run Newton-Raphson from an initial guess.

        Args:
            initial: Starting vector

        Returns:
            SolverSolution; check ``is_valid`` before using the values

        Raises:
            ComputationInterrupted: If the token is set
        """
        x = np.array(initial, dtype=float)
        dimension = len(x)

        with np.errstate(all='ignore'):
            for iteration in range(self.config.max_iterations):
                self.token.check()

                residual = np.asarray(self.objective(x), dtype=float)
                norm = np.linalg.norm(residual)
                if np.isnan(norm):
                    logger.debug(f"Residual became NaN after {iteration} iterations")
                    return SolverSolution(tuple(float(v) for v in x), iteration, False)

                if norm <= self.config.accuracy:
                    if self.constraint is not None and not self.constraint(x):
                        logger.debug(f"Solution {x} violates constraint")
                        return SolverSolution.unsolvable(dimension, iteration)
                    logger.debug(f"Converged after {iteration} iterations to {x}")
                    return SolverSolution(tuple(float(v) for v in x), iteration, True)

                matrix = np.asarray(self.jacobian(x), dtype=float)
                determinant = np.linalg.det(matrix)
                if np.isnan(determinant) or determinant == 0:
                    logger.debug(f"Singular Jacobian after {iteration} iterations")
                    return SolverSolution.unsolvable(dimension, iteration)

                x = x - np.linalg.solve(matrix, residual)

        logger.debug(f"No convergence within {self.config.max_iterations} iterations")
        return SolverSolution.unsolvable(dimension, self.config.max_iterations)

    def solve_from_random_starts(
        self,
        sample_initial: Callable[[np.random.Generator], Sequence[float]]
    ) -> SolverSolution:
        """
        Retry from random starting points until a valid solution is found.

        Args:
            sample_initial: Draws a starting vector from the generator

        Returns:
            The first valid solution, or the last failed attempt once
            ``config.max_tries`` attempts have been made
        """
        rng = np.random.default_rng(self.config.seed)
        solution = None
        for attempt in range(self.config.max_tries):
            self.token.check()
            solution = self.solve(sample_initial(rng))
            if solution.is_valid:
                logger.debug(f"Random start {attempt + 1} converged")
                return solution

        logger.warning(f"Solver did not converge from {self.config.max_tries} random starts")
        return solution


def residual_norm(objective: Objective, x: Sequence[float]) -> float:
    """Euclidean norm of f(x), NaN if it cannot be evaluated."""
    with np.errstate(all='ignore'):
        return float(np.linalg.norm(np.asarray(objective(np.asarray(x, dtype=float)), dtype=float)))
