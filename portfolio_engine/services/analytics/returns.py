# portfolio_engine/services/analytics/returns.py
"""
Return calculation functions for the Analytics calculators.

This module contains pure functions for calculating return metrics:
- Time-Weighted Return (TWR): Removes cash flow bias (sub-period chaining)
- Money-Weighted Return (MWR): Annualized IRR of the value/flow series
- Extended IRR (XIRR): IRR with exact dates (Newton-Raphson, bisection fallback)
- Rolling Returns: TWR over every window of consecutive value points
- Period Returns: Flow-adjusted return of each point (Daily Linking Method)

All functions are stateless. No external dependencies (scipy, numpy), and no
binary floating point: the IRR solver runs entirely in Decimal, using
Decimal.__pow__ for fractional year exponents.

Formulas:
    TWR sub-period (ending at a flow date or the last point):
        r_k = (V_end - CF_end) / V_start - 1
        TWR = ∏(1 + r_k) - 1

    XIRR solves: Σ CF_i / (1 + r)^((d_i - d_0) / 365) = 0

    Annualized = (1 + R)^(365 / days) - 1

Value convention:
    ValuePoint.total_value is the value AFTER that date's external flow,
    so the flow is removed from the end value before measuring growth.
"""

import decimal
import logging
from decimal import Decimal
from typing import Iterator, Sequence

from portfolio_engine.services.analytics.types import (
    CashFlow,
    PerformanceMetrics,
    ReturnSeries,
    RollingReturn,
    ValuePoint,
)
from portfolio_engine.services.constants import (
    CALENDAR_DAYS_PER_YEAR,
    IRR_INITIAL_GUESS,
    IRR_LOWER_BOUND,
    IRR_MAX_ITERATIONS,
    IRR_TOLERANCE,
    IRR_UPPER_BOUND_LIMIT,
    TRADING_DAYS_PER_YEAR,
    ONE,
    ZERO,
)
from portfolio_engine.services.exceptions import (
    InsufficientDataError,
    InvalidInputError,
    NoConvergenceError,
)
from portfolio_engine.services.numeric import compound, decimal_power, quantize_ratio
from portfolio_engine.services.results import as_result

logger = logging.getLogger(__name__)


# =============================================================================
# PERIOD RETURNS
# =============================================================================

def _linked_return(start_value: Decimal, end_value: Decimal, flow: Decimal) -> Decimal:
    """
    Growth from start_value to end_value, net of the flow landing at the end.

    A zero start value means nothing was held yet, so the return is 0.
    """
    if start_value == ZERO:
        return ZERO
    return (end_value - flow) / start_value - ONE


def calculate_period_returns(
        value_points: Sequence[ValuePoint],
        periods_per_year: int = TRADING_DAYS_PER_YEAR,
) -> ReturnSeries:
    """
    Flow-adjusted return of each point relative to the previous one.

    Formula (Daily Linking Method):
        r_i = (V_i - CF_i) / V_{i-1} - 1

    Args:
        value_points: Chronological value series
        periods_per_year: Annualization factor stored on the series

    Returns:
        ReturnSeries with one fewer entry than value_points, dated by the
        end point of each period
    """
    returns = []
    dates = []
    for prev, curr in zip(value_points, value_points[1:]):
        returns.append(_linked_return(prev.total_value, curr.total_value, curr.external_flow))
        dates.append(curr.date)
    return ReturnSeries.of(returns, dates, periods_per_year)


def annualize_return(
        total_return: Decimal,
        days: int,
        use_trading_days: bool = False,
) -> Decimal | None:
    """
    Annualize a return over a given number of days.

    Formula: (1 + r)^(365/days) - 1

    Args:
        total_return: Total return as decimal (e.g., 0.15 = 15%)
        days: Number of days in the period
        use_trading_days: If True, use 252 days/year instead of 365

    Returns:
        Annualized return as decimal, or None if days <= 0
    """
    if days <= 0:
        return None

    days_per_year = TRADING_DAYS_PER_YEAR if use_trading_days else CALENDAR_DAYS_PER_YEAR
    return annualize_periodic_return(total_return, days, days_per_year)


def annualize_periodic_return(
        total_return: Decimal,
        periods: int,
        periods_per_year: int,
) -> Decimal | None:
    """
    Annualize a compounded return earned over `periods` periods.

    Formula: (1 + r)^(periods_per_year / periods) - 1

    Returns:
        Annualized return, -1 for a total loss, None if periods <= 0
    """
    if periods <= 0:
        return None

    base = ONE + total_return
    if base <= ZERO:
        return Decimal("-1")  # Total loss

    exponent = Decimal(periods_per_year) / Decimal(periods)
    return decimal_power(base, exponent) - ONE


# =============================================================================
# TIME-WEIGHTED RETURN (TWR)
# =============================================================================

def calculate_sub_period_returns(value_points: Sequence[ValuePoint]) -> list[Decimal]:
    """
    Partition the series at every non-zero flow and measure each piece.

    A sub-period runs from the previous boundary to the next point that
    carries a flow (or the last point). The flow on the first point is part
    of the starting capital and does not open a boundary.

    Raises:
        InsufficientDataError: If value_points is empty
    """
    if not value_points:
        raise InsufficientDataError(1, 0, "time-weighted return")

    returns: list[Decimal] = []
    start_value = value_points[0].total_value
    last_index = len(value_points) - 1

    for i in range(1, len(value_points)):
        point = value_points[i]
        if point.external_flow != ZERO or i == last_index:
            returns.append(_linked_return(start_value, point.total_value, point.external_flow))
            start_value = point.total_value

    return returns


def _twr(value_points: Sequence[ValuePoint]) -> Decimal:
    return compound(calculate_sub_period_returns(value_points))


@as_result
def time_weighted_return(value_points: Sequence[ValuePoint]) -> Decimal:
    """
    Calculate Time-Weighted Return by chaining flow-bounded sub-periods.

    TWR removes the impact of cash flows, showing pure investment performance.

    Formula:
        r_k = (V_end - CF) / V_start - 1      for each sub-period
        TWR = ∏(1 + r_k) - 1

    Edge cases:
        - A single value point returns 0
        - A sub-period starting from zero value returns 0

    Args:
        value_points: Chronological value series

    Returns:
        Ok(TWR as decimal) or Err(InsufficientData) for an empty series
    """
    return _twr(value_points)


# =============================================================================
# MONEY-WEIGHTED RETURN (XIRR)
# =============================================================================

def _year_fractions(cash_flows: Sequence[CashFlow]) -> list[Decimal]:
    first = min(cf.date for cf in cash_flows)
    days_per_year = Decimal(CALENDAR_DAYS_PER_YEAR)
    return [Decimal((cf.date - first).days) / days_per_year for cf in cash_flows]


def _npv_and_derivative(
        rate: Decimal,
        amounts: Sequence[Decimal],
        years: Sequence[Decimal],
) -> tuple[Decimal, Decimal]:
    """
    NPV(r) = Σ a_i / (1 + r)^t_i
    NPV'(r) = Σ -t_i · a_i / (1 + r)^(t_i + 1)
    """
    base = ONE + rate
    npv = ZERO
    derivative = ZERO
    for amount, t in zip(amounts, years):
        discount = decimal_power(base, t)
        npv += amount / discount
        derivative -= t * amount / (discount * base)
    return npv, derivative


def _validate_cash_flows(cash_flows: Sequence[CashFlow]) -> None:
    if len(cash_flows) < 2:
        raise InsufficientDataError(2, len(cash_flows), "IRR")

    has_positive = any(cf.amount > ZERO for cf in cash_flows)
    has_negative = any(cf.amount < ZERO for cf in cash_flows)
    if not (has_positive and has_negative):
        raise NoConvergenceError("IRR", 0, "cash flows all have the same sign")

    if len({cf.date for cf in cash_flows}) < 2:
        raise NoConvergenceError("IRR", 0, "all cash flows fall on one date")


def _solve_xirr(
        cash_flows: Sequence[CashFlow],
        max_iterations: int,
        tolerance: Decimal,
        initial_guess: Decimal = IRR_INITIAL_GUESS,
) -> Decimal:
    """
    Solve NPV(r) = 0 with Newton-Raphson, falling back to bisection.

    Newton is abandoned when the derivative vanishes, when a step would take
    (1 + r) to zero or below, or after max_iterations. Bisection then runs
    on a bracket [IRR_LOWER_BOUND, high], doubling `high` until NPV changes
    sign.

    Raises:
        NoConvergenceError: Degenerate flows, no sign change, or both
                            phases exhausted their iterations
    """
    _validate_cash_flows(cash_flows)

    amounts = [cf.amount for cf in cash_flows]
    years = _year_fractions(cash_flows)

    # Phase 1: Newton-Raphson
    rate = initial_guess
    for iteration in range(max_iterations):
        try:
            npv, derivative = _npv_and_derivative(rate, amounts, years)
        except (decimal.InvalidOperation, decimal.Overflow, ZeroDivisionError, ValueError):
            break
        if derivative == ZERO:
            break

        new_rate = rate - npv / derivative
        if new_rate <= IRR_LOWER_BOUND:
            break

        if abs(new_rate - rate) < tolerance:
            logger.debug(f"XIRR converged by Newton in {iteration + 1} iterations")
            return quantize_ratio(new_rate)
        rate = new_rate

    logger.debug("XIRR Newton phase did not converge, falling back to bisection")

    # Phase 2: bisection on a bracketed interval
    def npv_at(r: Decimal) -> Decimal:
        return _npv_and_derivative(r, amounts, years)[0]

    low = IRR_LOWER_BOUND
    high = ONE
    npv_low = npv_at(low)
    npv_high = npv_at(high)
    while (npv_low > ZERO) == (npv_high > ZERO) and high < IRR_UPPER_BOUND_LIMIT:
        high *= 2
        npv_high = npv_at(high)

    if (npv_low > ZERO) == (npv_high > ZERO):
        logger.warning(f"XIRR failed: no sign change in NPV on [{low}, {high}]")
        raise NoConvergenceError("IRR", max_iterations, "NPV does not change sign")

    for iteration in range(max_iterations):
        mid = (low + high) / 2
        npv_mid = npv_at(mid)
        if npv_mid == ZERO or (high - low) / 2 < tolerance:
            logger.debug(f"XIRR converged by bisection in {iteration + 1} iterations")
            return quantize_ratio(mid)
        if (npv_mid > ZERO) == (npv_low > ZERO):
            low, npv_low = mid, npv_mid
        else:
            high = mid

    logger.warning(f"XIRR did not converge after {max_iterations} bisection iterations")
    raise NoConvergenceError("IRR", 2 * max_iterations)


@as_result
def calculate_xirr(
        cash_flows: Sequence[CashFlow],
        max_iterations: int = IRR_MAX_ITERATIONS,
        tolerance: Decimal = IRR_TOLERANCE,
) -> Decimal:
    """
    Calculate the annualized internal rate of return for dated cash flows.

    Sign convention: positive = money into the investment, negative = money
    out (the final value is a negative flow).

    Args:
        cash_flows: Dated flows, any order
        max_iterations: Cap for each solver phase
        tolerance: Convergence threshold on the rate

    Returns:
        Ok(annual rate) or Err(NoConvergence / InsufficientData)
    """
    return _solve_xirr(cash_flows, max_iterations, tolerance)


def value_points_to_cash_flows(value_points: Sequence[ValuePoint]) -> list[CashFlow]:
    """
    Express a value series as IRR cash flows.

    - First point: its whole value is a contribution (its own flow is
      already inside that value)
    - Later points: each non-zero external flow
    - Last point: its value is withdrawn (negative)

    Raises:
        InsufficientDataError: Fewer than 2 points
    """
    if len(value_points) < 2:
        raise InsufficientDataError(2, len(value_points), "money-weighted return")

    first = value_points[0]
    flows = [CashFlow(date=first.date, amount=first.total_value)]
    for point in value_points[1:]:
        if point.external_flow != ZERO:
            flows.append(CashFlow(date=point.date, amount=point.external_flow))

    last = value_points[-1]
    flows.append(CashFlow(date=last.date, amount=-last.total_value))
    return flows


@as_result
def money_weighted_return(
        value_points: Sequence[ValuePoint],
        max_iterations: int = IRR_MAX_ITERATIONS,
        tolerance: Decimal = IRR_TOLERANCE,
) -> Decimal:
    """
    Calculate Money-Weighted Return (annualized IRR) of a value series.

    Sensitive to the timing and size of contributions, unlike TWR.

    Returns:
        Ok(annual rate) or Err(NoConvergence) when the solver exceeds its
        bounds or the flows are degenerate (e.g., all the same sign)
    """
    flows = value_points_to_cash_flows(value_points)
    return _solve_xirr(flows, max_iterations, tolerance)


# =============================================================================
# ROLLING RETURNS
# =============================================================================

class RollingReturns:
    """
    Lazy, finite, restartable sequence of rolling-window TWRs.

    Nothing is computed until iteration; every call to iter() starts again
    from the first window and yields identical values.
    """

    def __init__(self, value_points: Sequence[ValuePoint], window: int):
        self._points = tuple(value_points)
        self._window = window

    @property
    def window(self) -> int:
        return self._window

    def __len__(self) -> int:
        return len(self._points) - self._window + 1

    def __iter__(self) -> Iterator[RollingReturn]:
        for start in range(len(self)):
            chunk = self._points[start:start + self._window]
            yield RollingReturn(
                start_date=chunk[0].date,
                end_date=chunk[-1].date,
                value=_twr(chunk),
            )


@as_result
def rolling_returns(value_points: Sequence[ValuePoint], window: int) -> RollingReturns:
    """
    Rolling TWR over every `window` consecutive value points.

    Args:
        value_points: Chronological value series
        window: Points per window (>= 2)

    Returns:
        Ok(RollingReturns) or Err(InvalidInput / InsufficientData)
    """
    if window < 2:
        raise InvalidInputError(f"Rolling window must be at least 2, got {window}", field="window")
    if window > len(value_points):
        raise InsufficientDataError(window, len(value_points), "rolling returns")
    return RollingReturns(value_points, window)


# =============================================================================
# RETURNS CALCULATOR
# =============================================================================

class ReturnsCalculator:
    """
    High-level calculator that computes all return metrics at once.

    Usage:
        metrics = ReturnsCalculator.calculate_all(value_points)
    """

    @staticmethod
    def calculate_all(
            value_points: Sequence[ValuePoint],
            max_iterations: int = IRR_MAX_ITERATIONS,
            tolerance: Decimal = IRR_TOLERANCE,
    ) -> PerformanceMetrics:
        """
        Calculate TWR, annualized TWR and MWR for a value series.

        MWR failures are reported as warnings with mwr=None; they never
        suppress the TWR.
        """
        if not value_points:
            return PerformanceMetrics(
                has_sufficient_data=False,
                warnings=("No value points supplied",),
            )

        warnings: list[str] = []
        first = value_points[0]
        last = value_points[-1]
        calendar_days = (last.date - first.date).days

        sub_returns = calculate_sub_period_returns(value_points)
        twr = compound(sub_returns)
        twr_annualized = annualize_return(twr, calendar_days) if calendar_days > 0 else None

        mwr = None
        if len(value_points) >= 2:
            mwr_result = money_weighted_return(value_points, max_iterations, tolerance)
            if mwr_result.is_ok:
                mwr = mwr_result.value
            else:
                warnings.append(f"MWR unavailable: {mwr_result.message}")
        else:
            warnings.append("MWR needs at least 2 value points")

        return PerformanceMetrics(
            twr=twr,
            twr_annualized=twr_annualized,
            mwr=mwr,
            sub_period_returns=tuple(sub_returns),
            start_value=first.total_value,
            end_value=last.total_value,
            net_flows=sum((p.external_flow for p in value_points[1:]), ZERO),
            calendar_days=calendar_days,
            has_sufficient_data=len(value_points) >= 2,
            warnings=tuple(warnings),
        )
