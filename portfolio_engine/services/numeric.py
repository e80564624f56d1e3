# portfolio_engine/services/numeric.py
"""
Fixed-point numeric core shared by every calculator.

All financial arithmetic in the engine uses `decimal.Decimal`. Binary
floating point never enters a monetary or ratio computation: floats handed
in by callers are converted through their string representation, and square
roots use Newton's method in Decimal rather than `math.sqrt`.

Functions:
    to_decimal          - Normalize int/str/float/Decimal input
    quantize_*          - Round to the engine's fixed scales (ROUND_HALF_UP)
    safe_divide         - Division that returns None for a zero denominator
    decimal_sqrt        - Newton-Raphson square root in Decimal
    decimal_power       - x^y for Decimal, including fractional exponents
    decimal_mean        - Arithmetic mean
    sample_variance     - Variance with Bessel's correction (n - 1)
    sample_covariance   - Covariance with Bessel's correction (n - 1)
    sample_stdev        - sqrt(sample_variance)
    compound            - ∏(1 + r_i) - 1
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Sequence

from portfolio_engine.services.constants import (
    PRICE_PRECISION,
    SHARE_PRECISION,
    RATIO_PRECISION,
    SQRT_TOLERANCE,
    SQRT_MAX_ITERATIONS,
    ZERO,
    ONE,
)

_TWO = Decimal("2")


# =============================================================================
# CONVERSION & ROUNDING
# =============================================================================

def to_decimal(value: Decimal | int | str | float) -> Decimal:
    """
    Convert a number to Decimal without binary floating point artifacts.

    Floats go through str() so that 0.1 becomes Decimal("0.1"), not
    Decimal("0.1000000000000000055511151231257827...").
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Booleans are not numeric inputs")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize_price(value: Decimal) -> Decimal:
    """Round a price or unit cost to 8 decimal places."""
    return value.quantize(PRICE_PRECISION, rounding=ROUND_HALF_UP)


def quantize_quantity(value: Decimal) -> Decimal:
    """Round a share quantity to 8 decimal places."""
    return value.quantize(SHARE_PRECISION, rounding=ROUND_HALF_UP)


def quantize_ratio(value: Decimal) -> Decimal:
    """Round a return ratio or weight to 10 decimal places."""
    return value.quantize(RATIO_PRECISION, rounding=ROUND_HALF_UP)


# =============================================================================
# ARITHMETIC
# =============================================================================

def safe_divide(numerator: Decimal, denominator: Decimal) -> Decimal | None:
    """
    Divide, returning None when the denominator is zero.

    Callers decide what a zero denominator means (usually an explicit
    "undefined" marker); no infinity or NaN is ever produced.
    """
    if denominator == ZERO:
        return None
    return numerator / denominator


def decimal_sqrt(
        value: Decimal,
        tolerance: Decimal = SQRT_TOLERANCE,
        max_iterations: int = SQRT_MAX_ITERATIONS,
) -> Decimal:
    """
    Square root by Newton-Raphson iteration in Decimal arithmetic.

    x_{k+1} = (x_k + value / x_k) / 2

    The starting point is `value` itself below 1 and `value / 2` otherwise,
    which keeps the first step on the correct side of the root.

    Args:
        value: Non-negative Decimal
        tolerance: Stop when successive estimates differ by less than this
        max_iterations: Hard cap on iterations

    Returns:
        Square root of value

    Raises:
        ValueError: If value is negative
    """
    if value < ZERO:
        raise ValueError(f"Cannot take square root of negative value {value}")
    if value == ZERO:
        return ZERO

    current = value if value < ONE else value / _TWO

    for _ in range(max_iterations):
        nxt = (current + value / current) / _TWO
        if nxt == current or abs(nxt - current) < tolerance:
            return nxt
        current = nxt

    return current


def decimal_power(base: Decimal, exponent: Decimal | int) -> Decimal:
    """
    Raise a Decimal to a (possibly fractional) power.

    Decimal.__pow__ supports non-integer exponents for positive bases and
    keeps full context precision.

    Raises:
        ValueError: If base is not positive and exponent is fractional
    """
    exponent = to_decimal(exponent)
    if exponent == exponent.to_integral_value():
        return base ** int(exponent)
    if base <= ZERO:
        raise ValueError(f"Fractional power of non-positive base {base}")
    return base ** exponent


def compound(returns: Iterable[Decimal]) -> Decimal:
    """
    Chain-link period returns: ∏(1 + r_i) - 1.

    An empty iterable compounds to zero.
    """
    growth = ONE
    for r in returns:
        growth *= ONE + r
    return growth - ONE


# =============================================================================
# DESCRIPTIVE STATISTICS
# =============================================================================

def decimal_mean(values: Sequence[Decimal]) -> Decimal | None:
    """Arithmetic mean, or None for an empty sequence."""
    if not values:
        return None
    return sum(values, ZERO) / Decimal(len(values))


def sample_covariance(xs: Sequence[Decimal], ys: Sequence[Decimal]) -> Decimal | None:
    """
    Sample covariance with Bessel's correction.

    Formula: Σ(x_i - x̄)(y_i - ȳ) / (n - 1)

    Returns:
        Covariance, or None if fewer than 2 observations

    Raises:
        ValueError: If the sequences differ in length
    """
    if len(xs) != len(ys):
        raise ValueError(f"Length mismatch: {len(xs)} vs {len(ys)}")
    n = len(xs)
    if n < 2:
        return None

    mean_x = sum(xs, ZERO) / Decimal(n)
    mean_y = sum(ys, ZERO) / Decimal(n)
    total = sum(((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys)), ZERO)
    return total / Decimal(n - 1)


def sample_variance(values: Sequence[Decimal]) -> Decimal | None:
    """Sample variance (n - 1), or None if fewer than 2 observations."""
    return sample_covariance(values, values)


def sample_stdev(values: Sequence[Decimal]) -> Decimal | None:
    """Sample standard deviation (n - 1), or None if fewer than 2 observations."""
    variance = sample_variance(values)
    if variance is None:
        return None
    return decimal_sqrt(variance)
