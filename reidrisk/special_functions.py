"""
Digamma and trigamma functions.

These are the first and second logarithmic derivatives of the Gamma function.
The population models use them as closed-form derivatives of sums such as
sum_{i<n} 1/(t + i). The implementation is plain floating-point arithmetic
so that results are reproducible across platforms and library versions:

  - negative arguments are mapped to positive ones by reflection,
  - tiny positive arguments use a short Taylor expansion around 0,
  - the recurrence psi(x) = psi(x + 1) - 1/x shifts moderate arguments up to
    a threshold (12 for digamma, 8 for trigamma),
  - above the threshold an asymptotic series in Bernoulli numbers is used.

Poles (0 and the negative integers) return NaN.
"""

import math

# Euler-Mascheroni constant
EULER_GAMMA = 0.57721566490153286060651209008240243
# Apery's constant, zeta(3)
ZETA_3 = 1.20205690315959428539973816151144999
PI_SQUARED_OVER_6 = math.pi * math.pi / 6.0

# Below this the Taylor expansion around 0 is used
SMALL_ARGUMENT = 1e-6

DIGAMMA_LARGE_ARGUMENT = 12.0
TRIGAMMA_LARGE_ARGUMENT = 8.0

# B_2k / (2k) for k = 1..6
_DIGAMMA_SERIES = (
    1.0 / 12.0,
    -1.0 / 120.0,
    1.0 / 252.0,
    -1.0 / 240.0,
    1.0 / 132.0,
    -691.0 / 32760.0,
)

# B_2k for k = 1..6
_TRIGAMMA_SERIES = (
    1.0 / 6.0,
    -1.0 / 30.0,
    1.0 / 42.0,
    -1.0 / 30.0,
    5.0 / 66.0,
    -691.0 / 2730.0,
)


def _is_pole(x: float) -> bool:
    return x <= 0.0 and x == math.floor(x)


def digamma(x: float) -> float:
    """
    Digamma function psi(x) = d/dx ln Gamma(x).

    Args:
        x: Argument

    Returns:
        psi(x); NaN at poles and for NaN input

    Example:
        >>> round(digamma(1.0), 12)
        -0.577215664902
    """
    if math.isnan(x) or x == -math.inf:
        return math.nan
    if x == math.inf:
        return math.inf
    if _is_pole(x):
        return math.nan

    # Reflection: psi(x) = psi(1 - x) + pi * cot(-pi * x)
    if x < 0.0:
        return digamma(1.0 - x) + math.pi / math.tan(-math.pi * x)

    if x <= SMALL_ARGUMENT:
        return -EULER_GAMMA - 1.0 / x + PI_SQUARED_OVER_6 * x

    result = 0.0
    while x < DIGAMMA_LARGE_ARGUMENT:
        result -= 1.0 / x
        x += 1.0

    inv2 = 1.0 / (x * x)
    series = 0.0
    power = inv2
    for coefficient in _DIGAMMA_SERIES:
        series += coefficient * power
        power *= inv2
    return result + math.log(x) - 0.5 / x - series


def trigamma(x: float) -> float:
    """
    Trigamma function psi_1(x) = d^2/dx^2 ln Gamma(x).

    Args:
        x: Argument

    Returns:
        psi_1(x); NaN at poles and for NaN input
    """
    if math.isnan(x) or x == -math.inf:
        return math.nan
    if x == math.inf:
        return 0.0
    if _is_pole(x):
        return math.nan

    # Reflection: psi_1(x) = pi^2 / sin^2(pi * x) - psi_1(1 - x)
    if x < 0.0:
        s = math.sin(math.pi * x)
        return math.pi * math.pi / (s * s) - trigamma(1.0 - x)

    if x <= SMALL_ARGUMENT:
        return 1.0 / (x * x) + PI_SQUARED_OVER_6 - 2.0 * ZETA_3 * x

    result = 0.0
    while x < TRIGAMMA_LARGE_ARGUMENT:
        result += 1.0 / (x * x)
        x += 1.0

    inv = 1.0 / x
    inv2 = inv * inv
    series = 0.0
    power = inv2 * inv
    for coefficient in _TRIGAMMA_SERIES:
        series += coefficient * power
        power *= inv2
    return result + inv + 0.5 * inv2 + series
