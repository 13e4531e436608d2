"""
Statistical models of population uniqueness.

Each model takes the class-size histogram of a sample and a population model
and estimates how many equivalence classes are unique in the population:

  - Pitman: two-parameter Poisson-Dirichlet (Pitman-Yor) partition model,
    fitted by maximum likelihood with Newton-Raphson
  - Zayatz: closed form based on hypergeometric sampling of classes
  - SNB: slide negative binomial model; the number of non-empty population
    classes comes from Shlosser's estimator, the shape parameters are fitted
    with Newton-Raphson

A model that cannot produce an estimate returns NaN. Models require at least
one sample-unique class and raise PreconditionViolatedError otherwise.

References:
  - Hoshino, N. (2001). Applying Pitman's sampling formula to microdata
    disclosure risk assessment. Journal of Official Statistics, 17(4).
  - Zayatz, L. (1991). Estimation of the percent of unique population
    elements on a microdata file using the sample. Census Bureau.
  - Chen, G. and Keller-McNulty, S. (1998). Estimation of identification
    disclosure risk in microdata. Journal of Official Statistics, 14(1).
  - Haas, P. J. and Stokes, L. (1998). Estimating the number of classes in a
    finite population. JASA, 93(444).

Author: James Weatherhead, UTMB (jacweath@utmb.edu)
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import numpy as np
from scipy import special, stats

from .config import SolverConfiguration, validate_sampling_fraction
from .errors import InvalidArgumentError, PreconditionViolatedError
from .histogram import Histogram
from .progress import CancellationToken
from .solver import NewtonRaphsonSolver, SolverSolution, residual_norm
from .special_functions import digamma, trigamma

# Configure logging
logger = logging.getLogger(__name__)


class StatisticalModel(Enum):
    """Population uniqueness models, including the two selection rules."""
    PITMAN = "pitman"
    ZAYATZ = "zayatz"
    SNB = "snb"
    DANKAR = "dankar"
    DANKAR_WITHOUT_SNB = "dankar_without_snb"

    @classmethod
    def parse(cls, name) -> "StatisticalModel":
        """
        Look up a model by enum member or case-insensitive name.

        Raises:
            InvalidArgumentError: If the name is unknown
        """
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).lower())
        except ValueError:
            valid = [m.value for m in cls]
            raise InvalidArgumentError(f"Unknown model: {name}. Choose from {valid}")


def is_valid_estimate(value: float) -> bool:
    """An estimate is usable if it is neither NaN nor zero."""
    return not math.isnan(value) and value != 0


@dataclass(frozen=True)
class PopulationModel:
    """
    Relation between the sample and the population it was drawn from.

    Attributes:
        sample_size: Number of records in the sample
        sampling_fraction: sample_size / population_size, in (0, 1]
    """
    sample_size: int
    sampling_fraction: float

    def __post_init__(self):
        if self.sample_size < 0:
            raise InvalidArgumentError(f"Sample size must not be negative, got {self.sample_size}")
        validate_sampling_fraction(self.sampling_fraction)

    @classmethod
    def from_sampling_fraction(cls, sample_size: int, sampling_fraction: float) -> "PopulationModel":
        return cls(int(sample_size), float(sampling_fraction))

    @classmethod
    def from_population_size(cls, sample_size: int, population_size: int) -> "PopulationModel":
        if population_size <= 0 or population_size < sample_size:
            raise InvalidArgumentError(
                f"Population size ({population_size}) must be positive and "
                f"at least the sample size ({sample_size})"
            )
        return cls(int(sample_size), sample_size / population_size if sample_size else 1.0)

    @property
    def population_size(self) -> int:
        """sample_size / sampling_fraction, rounded half up."""
        return int(math.floor(self.sample_size / self.sampling_fraction + 0.5))

    def to_dict(self) -> Dict:
        return {
            'sample_size': self.sample_size,
            'sampling_fraction': self.sampling_fraction,
            'population_size': self.population_size,
        }


@dataclass(frozen=True)
class UniquenessEstimate:
    """
    Estimated number of population-unique classes.

    Attributes:
        model: Model that produced the value
        value: Estimate; NaN when the model could not produce one
    """
    model: StatisticalModel
    value: float

    @property
    def is_valid(self) -> bool:
        return is_valid_estimate(self.value)

    def to_dict(self) -> Dict:
        return {'model': self.model.value, 'value': self.value}


def require_sample_uniques(histogram: Histogram) -> None:
    """
    Raises:
        PreconditionViolatedError: If the histogram has no size-1 classes
    """
    if histogram.c1 == 0:
        raise PreconditionViolatedError(
            "Population uniqueness is undefined for a sample without unique records"
        )


# -----------------------------------------------------------------------------
# Pitman
# -----------------------------------------------------------------------------

class _PitmanEquations:
    """
    Likelihood equations of the Pitman model in (theta, alpha).

    Two formulations of the same system are provided. The closed form uses
    digamma/trigamma for the sums over classes and records; the series form
    evaluates those sums term by term and serves as the reference when the
    closed form lands on a spurious root.
    """

    def __init__(self, histogram: Histogram):
        self.u = histogram.num_classes
        self.n = histogram.num_records
        self.classes = [(size, count) for size, count in histogram.entries if size != 1]

        self._i_classes = np.arange(1, self.u, dtype=float)
        self._i_records = np.arange(1, self.n, dtype=float)
        max_size = max([size for size, _ in self.classes], default=1)
        self._j = np.arange(1, max_size, dtype=float)

    # Closed form --------------------------------------------------------------

    def _closed_terms(self, x):
        t, a = x[0], x[1]
        val0 = self.u - 1.0
        val1 = digamma(val0 + t / a + 1.0)
        val2 = trigamma((a + t + a * val0) / a)
        val3 = trigamma(t / a + 1.0)
        val4 = digamma(t / a + 1.0)
        val5 = a * a

        d1 = (val3 - val2) / val5
        d5 = (a * val1 + t * val2 - a * val4 - t * val3) / (val5 * a)
        d3 = (val5 * val0 - t * t * val2 + t * t * val3 - 2.0 * a * t * val1
              + 2.0 * a * t * val4) / (val5 * val5)
        o1 = (val1 - val4) / a
        o3 = (-t * val1 + a * val0 + t * val4) / val5

        o2 = digamma(self.n + t) - digamma(t + 1.0)
        d2 = trigamma(t + 1.0) - trigamma(self.n + t)

        d4 = 0.0
        o4 = 0.0
        for size, count in self.classes:
            d4 += count * (trigamma(1.0 - a) - trigamma(size - a))
            o4 += count * (digamma(size - a) - digamma(1.0 - a))

        return d1, d2, d3, d4, d5, o1, o2, o3, o4

    def closed_objective(self, x):
        _, _, _, _, _, o1, o2, o3, o4 = self._closed_terms(x)
        return [o1 - o2, o3 - o4]

    def closed_jacobian(self, x):
        d1, d2, d3, d4, d5, _, _, _, _ = self._closed_terms(x)
        return [[d2 - d1, -d5], [-d5, -d3 - d4]]

    # Series form --------------------------------------------------------------

    def _series_terms(self, x):
        t, a = x[0], x[1]
        i = self._i_classes
        denominator = t + i * a
        d1 = np.sum(1.0 / denominator ** 2)
        d5 = np.sum(i / denominator ** 2)
        d3 = np.sum(i * i / denominator ** 2)
        o1 = np.sum(1.0 / denominator)
        o3 = np.sum(i / denominator)

        j = self._j - a
        inverse = np.cumsum(1.0 / j)
        inverse_squared = np.cumsum(1.0 / (j * j))
        d4 = 0.0
        o4 = 0.0
        for size, count in self.classes:
            d4 += count * inverse_squared[size - 2]
            o4 += count * inverse[size - 2]

        records = t + self._i_records
        d2 = np.sum(1.0 / records ** 2)
        o2 = np.sum(1.0 / records)

        return d1, d2, d3, d4, d5, o1, o2, o3, o4

    def series_objective(self, x):
        _, _, _, _, _, o1, o2, o3, o4 = self._series_terms(x)
        return [o1 - o2, o3 - o4]

    def series_jacobian(self, x):
        d1, d2, d3, d4, d5, _, _, _, _ = self._series_terms(x)
        return [[d2 - d1, -d5], [-d5, -d3 - d4]]


def pitman_initial_guess(histogram: Histogram):
    """
    Moment-based starting point (theta, alpha) for the Pitman fit.

    A missing count of size-2 classes is replaced by 1.
    """
    c1 = float(histogram.c1)
    c2 = float(histogram.c2) or 1.0
    u = float(histogram.num_classes)
    n = float(histogram.num_records)

    with np.errstate(all='ignore'):
        c = np.float64(c1 * (c1 - 1.0)) / c2
        t = (n * u * c - c1 * (n - 1.0) * (2.0 * u + c)) / (2.0 * c1 * u + c1 * c - n * c)
        a = (t * (c1 - n) + (n - 1.0) * c1) / (n * u)
    return [float(t), float(a)]


def pitman_uniques(theta: float, alpha: float, population_size: int) -> float:
    """
    Expected number of population uniques for fitted Pitman parameters.

    Computes Gamma(theta + 1) / Gamma(theta + alpha) * N^alpha both in log
    space and directly, keeps results inside [0, N] and returns the larger.
    """
    if alpha == 0 or math.isnan(alpha) or math.isnan(theta):
        return math.nan

    with np.errstate(all='ignore'):
        scale = np.power(float(population_size), alpha)
        in_log_space = np.exp(special.gammaln(theta + 1.0) - special.gammaln(theta + alpha)) * scale
        direct = special.gamma(theta + 1.0) / special.gamma(theta + alpha) * scale

    candidates = [float(v) for v in (in_log_space, direct)
                  if not np.isnan(v) and 0.0 <= v <= population_size]
    return max(candidates) if candidates else math.nan


def pitman_parameters_admissible(x) -> bool:
    """Pitman-Yor parameters require theta >= 0 and 0 <= alpha < 1."""
    return x[0] >= 0 and 0 <= x[1] < 1


def fit_pitman(
    histogram: Histogram,
    config: Optional[SolverConfiguration] = None,
    token: Optional[CancellationToken] = None
) -> SolverSolution:
    """
    Fit (theta, alpha) of the Pitman model to a histogram.

    The closed-form system is solved first. Its solution is kept only if it
    is admissible and also a root of the series form; otherwise the series
    form is solved from the same initial guess.

    Args:
        histogram: Class-size histogram of the sample
        config: Solver settings
        token: Cancellation token

    Returns:
        SolverSolution (theta, alpha); all NaN if neither form converged to
        admissible parameters
    """
    config = config or SolverConfiguration()
    token = token or CancellationToken()

    equations = _PitmanEquations(histogram)
    initial = pitman_initial_guess(histogram)

    solution = NewtonRaphsonSolver(
        equations.closed_objective, equations.closed_jacobian,
        config=config, constraint=pitman_parameters_admissible, token=token
    ).solve(initial)

    if (not solution.is_valid
            or residual_norm(equations.series_objective, solution.values) > config.accuracy):
        logger.debug("Closed-form Pitman fit rejected, solving the series form")
        solution = NewtonRaphsonSolver(
            equations.series_objective, equations.series_jacobian,
            config=config, constraint=pitman_parameters_admissible, token=token
        ).solve(initial)
    return solution


def estimate_pitman(
    histogram: Histogram,
    population: PopulationModel,
    config: Optional[SolverConfiguration] = None,
    token: Optional[CancellationToken] = None
) -> UniquenessEstimate:
    """
    Pitman estimate of the number of population uniques.

    Args:
        histogram: Class-size histogram of the sample
        population: Population model
        config: Solver settings
        token: Cancellation token

    Returns:
        UniquenessEstimate tagged PITMAN; NaN if the fit fails

    Raises:
        PreconditionViolatedError: If there are no sample uniques
        ComputationInterrupted: If the token is set
    """
    require_sample_uniques(histogram)
    solution = fit_pitman(histogram, config, token)

    if not solution.is_valid:
        logger.warning("Pitman model did not converge")
        return UniquenessEstimate(StatisticalModel.PITMAN, math.nan)

    theta, alpha = solution.values
    value = pitman_uniques(theta, alpha, population.population_size)
    logger.debug(f"Pitman fit theta={theta:.6g}, alpha={alpha:.6g}: {value}")
    return UniquenessEstimate(StatisticalModel.PITMAN, value)


# -----------------------------------------------------------------------------
# Zayatz
# -----------------------------------------------------------------------------

def estimate_zayatz(
    histogram: Histogram,
    population: PopulationModel,
    token: Optional[CancellationToken] = None
) -> UniquenessEstimate:
    """
    Zayatz estimate of the number of population uniques.

    For every class size j the probability that a population class of size j
    contributes exactly one record to the sample is hypergeometric. Weighting
    these by the share of classes of each size gives the probability that a
    sample unique is also population unique.

    Args:
        histogram: Class-size histogram of the sample
        population: Population model
        token: Cancellation token

    Returns:
        UniquenessEstimate tagged ZAYATZ

    Raises:
        PreconditionViolatedError: If there are no sample uniques
        ComputationInterrupted: If the token is set
    """
    require_sample_uniques(histogram)
    token = token or CancellationToken()

    population_size = population.population_size
    sample_size = histogram.num_records
    num_classes = float(histogram.num_classes)

    total = 0.0
    unique = 0.0
    for size, count in histogram.entries:
        token.check()
        probability = stats.hypergeom(M=population_size, n=size, N=sample_size).pmf(1)
        term = probability * count / num_classes
        total += term
        if size == 1:
            unique = term

    with np.errstate(all='ignore'):
        conditional = np.float64(unique) / total
    value = float(histogram.c1 * conditional / population.sampling_fraction)
    return UniquenessEstimate(StatisticalModel.ZAYATZ, value)


# -----------------------------------------------------------------------------
# SNB
# -----------------------------------------------------------------------------

def shlosser_estimate(
    histogram: Histogram,
    sampling_fraction: float,
    token: Optional[CancellationToken] = None
) -> float:
    """
    Shlosser's estimate of the number of non-empty population classes.

    Args:
        histogram: Class-size histogram of the sample
        sampling_fraction: Sampling fraction f
        token: Cancellation token

    Returns:
        Estimated number of classes in the population (NaN if undefined)
    """
    token = token or CancellationToken()
    f = np.float64(sampling_fraction)
    f2 = f * f

    var1 = var2 = var3 = var4 = np.float64(0.0)
    with np.errstate(all='ignore'):
        for size, count in histogram.entries:
            token.check()
            remaining = np.power(1.0 - f, size) * count
            var1 += size * f2 * np.power(1.0 - f2, size - 1) * count
            var2 += remaining * (np.power(1.0 + f, size) - 1.0)
            var3 += remaining
            var4 += size * f * np.power(1.0 - f, size - 1) * count
        ratio = var3 / var4
        return float(histogram.num_classes + histogram.c1 * (var1 / var2) * ratio * ratio)


class _SNBEquations:
    """Moment equations of the SNB model in (alpha, beta)."""

    def __init__(self, k: float, f: float, c1: float, c2: float):
        self.k = np.float64(k)
        self.f = np.float64(f)
        self.c1 = c1
        self.c2 = c2

    def objective(self, x):
        a, b = x[0], x[1]
        k, f = self.k, self.f
        dividend = (1.0 - f) * (1.0 - b)
        first = (k * f * np.power(b / (1.0 - dividend), a)
                 * ((a * dividend) / (1.0 - dividend) + 1.0) - self.c1)
        second = (k * a * np.power(b, a) * f * f * (1.0 - b)
                  / (2.0 * np.power(1.0 - dividend, a + 2.0))
                  * (2.0 - (1.0 - a) * dividend) - self.c2)
        return [first, second]

    def jacobian(self, x):
        a, b = x[0], x[1]
        k, f = self.k, self.f

        val0 = (b - 1.0) * (f - 1.0)
        val1 = val0 - 1.0
        val2 = 1.0 - val0
        val3 = a * val0 / val1 - 1.0
        val4 = np.power(-b / val1, a)
        val6 = f * f
        val7 = np.power(b, a)
        val8 = val7 * val6 * k
        val9 = a * val8
        val10 = 2.0 * np.power(val2, a + 2.0)
        val11 = val1 * val1
        val13 = f * k
        val14 = f - 1.0
        val15 = a - 1.0
        val16 = b - 1.0
        val17 = val15 * val0
        val18 = val6 * k
        val19 = val17 + 2.0
        val20 = val18 * val19

        d_first_alpha = (-val13 * np.log(-b / val1) * val3 * val4
                         - (val13 * val4 * val0) / val1)
        d_first_beta = (a * val13 * (1.0 / val1 - (b * val14) / val11) * val3
                        * np.power(-b / val1, val15)
                        - val13 * val4 * ((a * val14) / val1
                                          - (a * val16 * val14 * val14) / val11))
        d_second_alpha = ((val9 * np.log(val2) * val19 * val16) / val10
                          - (val9 * val16 * val16 * val14) / val10
                          - (val7 * val20 * val16) / val10
                          - (a * val7 * val18 * np.log(b) * val19 * val16) / val10)
        d_second_beta = (-(val9 * val19) / val10
                         - (a * a * np.power(b, val15) * val20 * val16) / val10
                         - (a * val7 * val18 * val17) / val10
                         - (a * val7 * val20 * (a + 2.0) * val0)
                         / (2.0 * np.power(val2, a + 3.0)))

        return [[d_first_alpha, d_first_beta], [d_second_alpha, d_second_beta]]


def estimate_snb(
    histogram: Histogram,
    population: PopulationModel,
    config: Optional[SolverConfiguration] = None,
    token: Optional[CancellationToken] = None
) -> UniquenessEstimate:
    """
    SNB estimate of the number of population uniques.

    The SNB system has no closed-form starting point, so the solver is run
    from random (alpha, beta) in [0, 1)^2 up to ``config.max_tries`` times.

    Args:
        histogram: Class-size histogram of the sample
        population: Population model
        config: Solver settings (the seed makes the random starts repeatable)
        token: Cancellation token

    Returns:
        UniquenessEstimate tagged SNB; NaN if no attempt converged

    Raises:
        PreconditionViolatedError: If there are no sample uniques
        ComputationInterrupted: If the token is set
    """
    require_sample_uniques(histogram)
    config = config or SolverConfiguration()
    token = token or CancellationToken()

    f = population.sampling_fraction
    k = shlosser_estimate(histogram, f, token)
    if math.isnan(k) or math.isinf(k):
        logger.debug(f"Shlosser estimate undefined for sampling fraction {f}")
        return UniquenessEstimate(StatisticalModel.SNB, math.nan)

    equations = _SNBEquations(k, f, float(histogram.c1), float(histogram.c2))
    solver = NewtonRaphsonSolver(equations.objective, equations.jacobian,
                                 config=config, token=token)
    solution = solver.solve_from_random_starts(lambda rng: rng.random(2))

    if not solution.is_valid:
        return UniquenessEstimate(StatisticalModel.SNB, math.nan)

    alpha, beta = solution.values
    with np.errstate(all='ignore'):
        value = float(k * np.power(beta, alpha))
    logger.debug(f"SNB fit K={k:.6g}, alpha={alpha:.6g}, beta={beta:.6g}: {value}")
    return UniquenessEstimate(StatisticalModel.SNB, value)
