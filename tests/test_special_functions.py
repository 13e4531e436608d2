#!/usr/bin/env python3
"""
Unit tests for the digamma and trigamma functions.

Values are checked against scipy.special, which serves as the reference
implementation; the engine's own versions only need to agree to well within
the solver accuracy.
"""

import math
import sys
from pathlib import Path

import pytest
from scipy import special

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from reidrisk.special_functions import digamma, trigamma

EULER_GAMMA = 0.5772156649015329

# Points covering the Taylor branch, the recurrence, the asymptotic series
# and the reflection formula for negative arguments
POINTS = [1e-8, 1e-3, 0.5, 1.0, 2.5, 7.9, 8.0, 11.99, 12.0, 50.0, 1000.0,
          -0.5, -2.5, -7.25]


class TestDigamma:
    """Digamma against scipy.special.digamma."""

    @pytest.mark.parametrize("x", POINTS)
    def test_matches_reference(self, x):
        assert digamma(x) == pytest.approx(special.digamma(x), rel=1e-9, abs=1e-12)

    def test_value_at_one(self):
        assert digamma(1.0) == pytest.approx(-EULER_GAMMA, rel=1e-12)

    @pytest.mark.parametrize("x", [0.3, 2.0, 13.5])
    def test_recurrence(self, x):
        assert digamma(x + 1) - digamma(x) == pytest.approx(1 / x, rel=1e-9)

    @pytest.mark.parametrize("x", [0.0, -1.0, -2.0, -10.0])
    def test_poles_are_nan(self, x):
        assert math.isnan(digamma(x))

    def test_nan_propagates(self):
        assert math.isnan(digamma(float('nan')))

    def test_deterministic(self):
        assert digamma(3.7) == digamma(3.7)


class TestTrigamma:
    """Trigamma against scipy.special.polygamma(1, x)."""

    @pytest.mark.parametrize("x", POINTS)
    def test_matches_reference(self, x):
        expected = float(special.polygamma(1, x))
        assert trigamma(x) == pytest.approx(expected, rel=1e-9, abs=1e-12)

    def test_value_at_one(self):
        assert trigamma(1.0) == pytest.approx(math.pi ** 2 / 6, rel=1e-12)

    @pytest.mark.parametrize("x", [0.3, 2.0, 13.5])
    def test_recurrence(self, x):
        assert trigamma(x) - trigamma(x + 1) == pytest.approx(1 / x ** 2, rel=1e-9)

    @pytest.mark.parametrize("x", [0.0, -1.0, -3.0])
    def test_poles_are_nan(self, x):
        assert math.isnan(trigamma(x))
