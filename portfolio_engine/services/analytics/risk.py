# portfolio_engine/services/analytics/risk.py
"""
Risk calculation functions for the Analytics calculators.

This module contains pure functions for calculating risk metrics:
- Volatility: Standard deviation of periodic returns (annualized)
- Sharpe Ratio: Risk-adjusted return
- Sortino Ratio: Downside risk-adjusted return
- Calmar / Sterling Ratios: Return per unit of drawdown
- Drawdowns: Peak-to-trough episodes and recovery
- Value at Risk (VaR): Parametric loss at a confidence level

All functions are stateless and operate on Decimal values. Square roots use
Newton's method (numeric.decimal_sqrt); nothing passes through float.

Formulas (rf_p = annual risk-free rate / periods_per_year):
    Volatility = std(r) · √ppy

    Sharpe  = mean(r - rf_p) / std(r) · √ppy

    Sortino = mean(r - rf_p) / σ_down · √ppy
        σ_down = sqrt(Σ min(0, r - rf_p)² / n)

    Calmar   = annualized return / max drawdown
    Sterling = annualized return / mean(N largest drawdowns)

    Drawdown_t = (peak_t - V_t) / peak_t      (positive magnitude)

    VaR = z · σ - μ                          (positive = loss)

A zero denominator yields UNDEFINED rather than None or an infinity.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Sequence

from portfolio_engine.services.analytics.benchmark import beta_coefficient
from portfolio_engine.services.analytics.returns import annualize_periodic_return
from portfolio_engine.services.analytics.types import (
    DrawdownAnalysis,
    DrawdownPeriod,
    Ratio,
    ReturnSeries,
    RiskMetricsResult,
    RiskOptions,
)
from portfolio_engine.services.constants import (
    DEFAULT_RISK_FREE_RATE,
    DEFAULT_VAR_CONFIDENCE,
    MIN_PERIODS_FOR_VOLATILITY,
    ONE,
    STERLING_DRAWDOWN_COUNT,
    TRADING_DAYS_PER_YEAR,
    VAR_Z_SCORES,
    ZERO,
)
from portfolio_engine.services.exceptions import InsufficientDataError, InvalidInputError
from portfolio_engine.services.numeric import (
    compound,
    decimal_mean,
    decimal_sqrt,
    sample_stdev,
)
from portfolio_engine.services.results import UNDEFINED, as_result

logger = logging.getLogger(__name__)


def _periodic_rate(annual_rate: Decimal, periods_per_year: int) -> Decimal:
    return annual_rate / Decimal(periods_per_year)


# =============================================================================
# VOLATILITY
# =============================================================================

def calculate_volatility(
        returns: Sequence[Decimal],
        periods_per_year: int = TRADING_DAYS_PER_YEAR,
        annualize: bool = True,
) -> Decimal | None:
    """
    Calculate volatility (sample standard deviation of returns).

    Args:
        returns: Periodic returns
        periods_per_year: Annualization factor
        annualize: If True, multiply by √periods_per_year

    Returns:
        Volatility as decimal (e.g., 0.20 = 20%), or None if insufficient data
    """
    if len(returns) < MIN_PERIODS_FOR_VOLATILITY:
        return None

    vol = sample_stdev(returns)

    if annualize:
        vol = vol * decimal_sqrt(Decimal(periods_per_year))

    return vol


def calculate_downside_deviation(
        returns: Sequence[Decimal],
        target_return: Decimal = ZERO,
        periods_per_year: int = TRADING_DAYS_PER_YEAR,
        annualize: bool = True,
) -> Decimal | None:
    """
    Calculate downside deviation (semi-deviation) against a target.

    Every observation counts in the denominator; only shortfalls below the
    target contribute to the sum.

    Formula: σ_down = sqrt(Σ min(0, r - target)² / n)

    Returns:
        Downside deviation as decimal, or None if insufficient data
    """
    n = len(returns)
    if n < MIN_PERIODS_FOR_VOLATILITY:
        return None

    shortfalls = (min(ZERO, r - target_return) for r in returns)
    mean_sq = sum((s * s for s in shortfalls), ZERO) / Decimal(n)
    downside = decimal_sqrt(mean_sq)

    if annualize:
        downside = downside * decimal_sqrt(Decimal(periods_per_year))

    return downside


# =============================================================================
# RISK-ADJUSTED RATIOS
# =============================================================================

def calculate_sharpe_ratio(
        returns: Sequence[Decimal],
        risk_free_rate: Decimal = DEFAULT_RISK_FREE_RATE,
        periods_per_year: int = TRADING_DAYS_PER_YEAR,
) -> Ratio | None:
    """
    Calculate the annualized Sharpe Ratio from periodic returns.

    Formula: Sharpe = mean(r - rf_p) / std(r) · √ppy

    Args:
        returns: Periodic returns
        risk_free_rate: Annual risk-free rate (default 2%)
        periods_per_year: Annualization factor

    Returns:
        Sharpe ratio, UNDEFINED for zero volatility, None if insufficient data
    """
    if len(returns) < MIN_PERIODS_FOR_VOLATILITY:
        return None

    std = sample_stdev(returns)
    if std == ZERO:
        return UNDEFINED

    rf_p = _periodic_rate(risk_free_rate, periods_per_year)
    excess = decimal_mean([r - rf_p for r in returns])
    return excess / std * decimal_sqrt(Decimal(periods_per_year))


def calculate_sortino_ratio(
        returns: Sequence[Decimal],
        risk_free_rate: Decimal = DEFAULT_RISK_FREE_RATE,
        periods_per_year: int = TRADING_DAYS_PER_YEAR,
) -> Ratio | None:
    """
    Calculate the annualized Sortino Ratio.

    Like Sharpe but only penalizes returns below the risk-free rate.

    Returns:
        Sortino ratio, UNDEFINED when no return falls below the risk-free
        rate, None if insufficient data
    """
    rf_p = _periodic_rate(risk_free_rate, periods_per_year)
    downside = calculate_downside_deviation(returns, rf_p, annualize=False)
    if downside is None:
        return None
    if downside == ZERO:
        return UNDEFINED

    excess = decimal_mean([r - rf_p for r in returns])
    return excess / downside * decimal_sqrt(Decimal(periods_per_year))


def calculate_calmar_ratio(
        annualized_return: Decimal,
        max_drawdown: Decimal,
) -> Ratio:
    """
    Calculate Calmar Ratio.

    Formula: Calmar = annualized return / max drawdown

    Args:
        annualized_return: Compound annual growth rate
        max_drawdown: Maximum drawdown as a positive magnitude

    Returns:
        Calmar ratio, or UNDEFINED if there was no drawdown
    """
    if max_drawdown == ZERO:
        return UNDEFINED
    return annualized_return / max_drawdown


def calculate_sterling_ratio(
        annualized_return: Decimal,
        drawdown_depths: Sequence[Decimal],
        count: int = STERLING_DRAWDOWN_COUNT,
) -> Ratio:
    """
    Calculate Sterling Ratio over the `count` deepest drawdown episodes.

    When fewer episodes exist, all available ones are averaged.

    Returns:
        Sterling ratio, or UNDEFINED if there was no drawdown
    """
    deepest = sorted(drawdown_depths, reverse=True)[:count]
    if not deepest:
        return UNDEFINED

    average = sum(deepest, ZERO) / Decimal(len(deepest))
    if average == ZERO:
        return UNDEFINED
    return annualized_return / average


# =============================================================================
# DRAWDOWN
# =============================================================================

def cumulative_index(returns: Sequence[Decimal]) -> list[Decimal]:
    """
    Growth-of-one index for a return series.

    The index starts at 1 before the first return, so it has len(returns) + 1
    points.
    """
    index = [ONE]
    for r in returns:
        index.append(index[-1] * (ONE + r))
    return index


def _drawdown_analysis(
        values: Sequence[Decimal],
        dates: Sequence[date | None] | None = None,
) -> DrawdownAnalysis:
    """
    Walk a value series tracking the running peak.

    An episode opens at the first point below the running peak and closes
    at the first later point at or above that peak.

    Raises:
        InsufficientDataError: Empty series
        InvalidInputError: Non-positive starting value or a negative value
    """
    if not values:
        raise InsufficientDataError(1, 0, "drawdown")
    if dates is not None and len(dates) != len(values):
        raise InvalidInputError(
            f"dates ({len(dates)}) and values ({len(values)}) differ in length",
            field="dates",
        )
    if values[0] <= ZERO:
        raise InvalidInputError(
            f"Drawdown requires a positive starting value, got {values[0]}", field="values",
        )
    for v in values:
        if v < ZERO:
            raise InvalidInputError(f"Drawdown requires non-negative values, got {v}", field="values")

    def date_at(i: int | None) -> date | None:
        if dates is None or i is None:
            return None
        return dates[i]

    def close(peak_i: int, trough_i: int, depth: Decimal, recovery_i: int | None) -> DrawdownPeriod:
        return DrawdownPeriod(
            peak_index=peak_i,
            trough_index=trough_i,
            recovery_index=recovery_i,
            depth=depth,
            recovery_periods=recovery_i - trough_i if recovery_i is not None else None,
            peak_date=date_at(peak_i),
            trough_date=date_at(trough_i),
            recovery_date=date_at(recovery_i),
        )

    periods: list[DrawdownPeriod] = []
    peak_value = values[0]
    peak_index = 0
    trough_index: int | None = None
    trough_depth = ZERO
    underwater = 0

    for i, v in enumerate(values):
        if v >= peak_value:
            # At or above the peak: any open episode has recovered
            if trough_index is not None:
                periods.append(close(peak_index, trough_index, trough_depth, i))
                trough_index = None
                trough_depth = ZERO
            peak_value = v
            peak_index = i
            continue

        underwater += 1
        depth = (peak_value - v) / peak_value
        if trough_index is None or depth > trough_depth:
            trough_index = i
            trough_depth = depth

    # Ongoing episode at the end of the series
    if trough_index is not None:
        periods.append(close(peak_index, trough_index, trough_depth, None))

    current_drawdown = (peak_value - values[-1]) / peak_value

    worst: DrawdownPeriod | None = None
    for period in periods:
        if worst is None or period.depth > worst.depth:
            worst = period

    if worst is None:
        return DrawdownAnalysis(
            max_drawdown=ZERO,
            max_drawdown_period=None,
            recovery_periods=None,
            is_recovered=True,
            current_drawdown=current_drawdown,
            underwater_periods=underwater,
            periods=(),
        )

    if not worst.is_recovered:
        logger.debug(f"Max drawdown {worst.depth} from index {worst.peak_index} not recovered")

    return DrawdownAnalysis(
        max_drawdown=worst.depth,
        max_drawdown_period=worst,
        recovery_periods=worst.recovery_periods,
        is_recovered=worst.is_recovered,
        current_drawdown=current_drawdown,
        underwater_periods=underwater,
        periods=tuple(periods),
    )


@as_result
def calculate_drawdowns(
        values: Sequence[Decimal],
        dates: Sequence[date] | None = None,
) -> DrawdownAnalysis:
    """
    Drawdown analysis of a value series (portfolio values or index levels).

    Example:
        [100, 120, 90, 110] → max drawdown 0.25 (120 → 90), not recovered

    Returns:
        Ok(DrawdownAnalysis) or Err(InsufficientData / InvalidInput)
    """
    return _drawdown_analysis(values, dates)


def _return_drawdowns(returns: ReturnSeries) -> DrawdownAnalysis:
    index = cumulative_index(returns.returns)
    dates = None
    if returns.dates is not None:
        # Index point 0 is the base level before the first period
        dates = (None, *returns.dates)
    return _drawdown_analysis(index, dates)


@as_result
def drawdowns_from_returns(returns: ReturnSeries) -> DrawdownAnalysis:
    """
    Drawdown analysis of the cumulative index built from a return series.

    Indices in the result refer to the index series, where index 0 is the
    starting level of 1.

    Returns:
        Ok(DrawdownAnalysis) or Err(InvalidInput for a return below -100%)
    """
    return _return_drawdowns(returns)


def drawdown_periods(
        analysis: DrawdownAnalysis,
        threshold: Decimal = ZERO,
) -> list[DrawdownPeriod]:
    """
    Episodes at least `threshold` deep, deepest first.

    Args:
        analysis: Result of calculate_drawdowns
        threshold: Minimum depth to keep (0.05 = 5%)
    """
    kept = [p for p in analysis.periods if p.depth >= threshold]
    return sorted(kept, key=lambda p: p.depth, reverse=True)


# =============================================================================
# VALUE AT RISK (VaR)
# =============================================================================

def calculate_var(
        returns: Sequence[Decimal],
        confidence_level: Decimal = DEFAULT_VAR_CONFIDENCE,
) -> Decimal | None:
    """
    Parametric (variance-covariance) Value at Risk for one period.

    Formula: VaR = z · σ - μ

    Args:
        returns: Periodic returns
        confidence_level: One of 0.90, 0.95, 0.975, 0.99

    Returns:
        VaR as positive decimal loss (0.02 = 2%), or None if insufficient data

    Raises:
        InvalidInputError: Unsupported confidence level
    """
    z = VAR_Z_SCORES.get(Decimal(str(confidence_level)))
    if z is None:
        supported = ", ".join(str(c) for c in VAR_Z_SCORES)
        raise InvalidInputError(
            f"Unsupported VaR confidence {confidence_level}; use one of {supported}",
            field="var_confidence",
        )

    if len(returns) < MIN_PERIODS_FOR_VOLATILITY:
        return None

    return z * sample_stdev(returns) - decimal_mean(returns)


# =============================================================================
# SAMPLING FREQUENCY
# =============================================================================

def infer_periods_per_year(dates: Sequence[date]) -> int:
    """
    Guess the annualization factor from the median spacing of dates.

    ≤ 4 days → 252 (daily), ≤ 10 → 52 (weekly), ≤ 45 → 12 (monthly),
    otherwise 4 (quarterly). Fewer than 2 dates default to daily.
    """
    if len(dates) < 2:
        return TRADING_DAYS_PER_YEAR

    gaps = sorted((b - a).days for a, b in zip(dates, dates[1:]))
    median_gap = gaps[len(gaps) // 2]

    if median_gap <= 4:
        return TRADING_DAYS_PER_YEAR
    if median_gap <= 10:
        return 52
    if median_gap <= 45:
        return 12
    return 4


# =============================================================================
# COMBINED RISK CALCULATOR
# =============================================================================

class RiskCalculator:
    """
    Calculator for all risk-related metrics.

    This class provides a convenient interface to calculate all
    risk metrics at once.
    """

    @staticmethod
    def compute(
            returns: ReturnSeries,
            options: RiskOptions = RiskOptions(),
            benchmark: ReturnSeries | None = None,
    ) -> RiskMetricsResult:
        """
        Calculate all risk metrics for a return series.

        History shorter than options.min_history_years is a soft condition:
        the result is flagged and drawdown-based metrics (max drawdown,
        recovery, Calmar, Sterling) are omitted.

        Raises:
            MisalignedSeriesError: Benchmark not aligned with returns
            InvalidInputError: Unsupported VaR confidence
        """
        ppy = options.periods_per_year or returns.periods_per_year
        rf = options.risk_free_rate
        values = returns.returns
        n = len(values)
        required = options.min_history_years * ppy
        warnings: list[str] = []

        volatility = calculate_volatility(values, ppy)
        sharpe = calculate_sharpe_ratio(values, rf, ppy)
        sortino = calculate_sortino_ratio(values, rf, ppy)
        downside = calculate_downside_deviation(values, _periodic_rate(rf, ppy), ppy)
        annualized = annualize_periodic_return(compound(values), n, ppy)
        var = calculate_var(values, options.var_confidence)

        beta = None
        if benchmark is not None:
            beta = beta_coefficient(returns, benchmark)

        if n < MIN_PERIODS_FOR_VOLATILITY:
            warnings.append(f"Need at least {MIN_PERIODS_FOR_VOLATILITY} periods for volatility, got {n}")

        if n < required:
            logger.warning(f"Insufficient history for risk metrics: {n} of {required} periods")
            warnings.append(
                f"History of {n} periods is shorter than {options.min_history_years} years "
                f"({required} periods); drawdown-based metrics omitted"
            )
            return RiskMetricsResult(
                volatility=volatility,
                sharpe=sharpe,
                sortino=sortino,
                beta=beta,
                downside_deviation=downside,
                annualized_return=annualized,
                value_at_risk=var,
                insufficient_data=True,
                required_periods=required,
                available_periods=n,
                warnings=tuple(warnings),
            )

        drawdown = _return_drawdowns(returns)
        depths = [p.depth for p in drawdown.periods]

        calmar = calculate_calmar_ratio(annualized, drawdown.max_drawdown)
        sterling = calculate_sterling_ratio(annualized, depths, options.sterling_count)

        return RiskMetricsResult(
            volatility=volatility,
            max_drawdown=drawdown.max_drawdown,
            drawdown_recovery_periods=drawdown.recovery_periods,
            drawdown_recovered=drawdown.is_recovered,
            sharpe=sharpe,
            sortino=sortino,
            calmar=calmar,
            sterling=sterling,
            beta=beta,
            downside_deviation=downside,
            annualized_return=annualized,
            value_at_risk=var,
            drawdown=drawdown,
            insufficient_data=False,
            required_periods=required,
            available_periods=n,
            warnings=tuple(warnings),
        )


@as_result
def compute_risk_metrics(
        returns: ReturnSeries,
        options: RiskOptions = RiskOptions(),
        benchmark: ReturnSeries | None = None,
) -> RiskMetricsResult:
    """
    Result-returning wrapper around RiskCalculator.compute.

    Returns:
        Ok(RiskMetricsResult), possibly flagged insufficient_data, or
        Err(MisalignedSeries / InvalidInput)
    """
    return RiskCalculator.compute(returns, options, benchmark)
