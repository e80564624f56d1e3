# portfolio_engine/services/analytics/benchmark.py
"""
Benchmark comparison functions.

This module contains pure functions comparing a portfolio return series to
a benchmark return series:
- Beta: Systematic risk relative to the benchmark
- Alpha: Jensen's alpha (excess return over CAPM expectation)
- Correlation / R²: How closely the portfolio follows the benchmark
- Tracking Error: Volatility of the return difference
- Information Ratio: Active return per unit of tracking error

Both series must be aligned: same length and, when both are dated, the same
dates. Misaligned inputs fail with MisalignedSeries rather than being
trimmed silently.

Formulas:
    β = Cov(R_p, R_m) / Var(R_m)
    α = R_p - [R_f + β(R_m - R_f)]        (annualized returns)
    TE = std(R_p - R_m) · √periods_per_year
    IR = mean(R_p - R_m) · periods_per_year / TE
"""

import logging
from decimal import Decimal

from portfolio_engine.services.analytics.correlation import aligned_values, pearson
from portfolio_engine.services.analytics.returns import annualize_periodic_return
from portfolio_engine.services.analytics.types import BenchmarkMetrics, Ratio, ReturnSeries
from portfolio_engine.services.constants import (
    DEFAULT_RISK_FREE_RATE,
    MIN_PERIODS_FOR_VOLATILITY,
    ZERO,
)
from portfolio_engine.services.exceptions import MisalignedSeriesError
from portfolio_engine.services.numeric import (
    compound,
    decimal_mean,
    decimal_sqrt,
    sample_covariance,
    sample_stdev,
    sample_variance,
)
from portfolio_engine.services.results import UNDEFINED, Undefined, as_result

logger = logging.getLogger(__name__)


# =============================================================================
# ALIGNMENT
# =============================================================================

def ensure_aligned(portfolio: ReturnSeries, benchmark: ReturnSeries) -> None:
    """
    Raises:
        MisalignedSeriesError: Different lengths or different dates
    """
    if len(portfolio) != len(benchmark):
        logger.warning(
            f"Benchmark misaligned: portfolio {len(portfolio)} periods, "
            f"benchmark {len(benchmark)} periods"
        )
        raise MisalignedSeriesError(len(portfolio), len(benchmark))
    aligned_values(portfolio, benchmark)


# =============================================================================
# BETA
# =============================================================================

def beta_coefficient(portfolio: ReturnSeries, benchmark: ReturnSeries) -> Ratio | None:
    ensure_aligned(portfolio, benchmark)
    xs = portfolio.returns
    ys = benchmark.returns
    if len(xs) < MIN_PERIODS_FOR_VOLATILITY:
        return None

    variance = sample_variance(ys)
    if variance == ZERO:
        return UNDEFINED
    return sample_covariance(xs, ys) / variance


@as_result
def calculate_beta(portfolio: ReturnSeries, benchmark: ReturnSeries) -> Ratio | None:
    """
    Calculate beta: covariance(portfolio, benchmark) / variance(benchmark).

    Returns:
        Ok(beta), Ok(UNDEFINED) for a constant benchmark, Ok(None) with fewer
        than 2 periods, or Err(MisalignedSeries)
    """
    return beta_coefficient(portfolio, benchmark)


# =============================================================================
# RELATIVE METRICS
# =============================================================================

def calculate_alpha(
        portfolio_return: Decimal,
        benchmark_return: Decimal,
        beta: Decimal,
        risk_free_rate: Decimal = DEFAULT_RISK_FREE_RATE,
) -> Decimal:
    """
    Jensen's alpha from annualized returns.

    Formula: α = R_p - [R_f + β(R_m - R_f)]
    """
    expected = risk_free_rate + beta * (benchmark_return - risk_free_rate)
    return portfolio_return - expected


def calculate_tracking_error(
        portfolio: ReturnSeries,
        benchmark: ReturnSeries,
        annualize: bool = True,
) -> Decimal | None:
    """
    Standard deviation of period return differences.

    Returns:
        Tracking error, or None with fewer than 2 periods

    Raises:
        MisalignedSeriesError: Series not aligned
    """
    ensure_aligned(portfolio, benchmark)
    diffs = [p - b for p, b in zip(portfolio.returns, benchmark.returns)]
    te = sample_stdev(diffs)
    if te is None:
        return None
    if annualize:
        te *= decimal_sqrt(Decimal(portfolio.periods_per_year))
    return te


def calculate_information_ratio(
        portfolio: ReturnSeries,
        benchmark: ReturnSeries,
) -> Ratio | None:
    """
    Annualized mean active return divided by annualized tracking error.

    Returns:
        Ratio, UNDEFINED for zero tracking error, None with fewer than 2 periods

    Raises:
        MisalignedSeriesError: Series not aligned
    """
    te = calculate_tracking_error(portfolio, benchmark)
    if te is None:
        return None
    if te == ZERO:
        return UNDEFINED
    diffs = [p - b for p, b in zip(portfolio.returns, benchmark.returns)]
    active = decimal_mean(diffs) * Decimal(portfolio.periods_per_year)
    return active / te


# =============================================================================
# BENCHMARK CALCULATOR
# =============================================================================

class BenchmarkCalculator:
    """
    High-level calculator that computes all benchmark metrics at once.

    Usage:
        metrics = BenchmarkCalculator.calculate_all(portfolio, benchmark)
    """

    @staticmethod
    def calculate_all(
            portfolio: ReturnSeries,
            benchmark: ReturnSeries,
            risk_free_rate: Decimal = DEFAULT_RISK_FREE_RATE,
    ) -> BenchmarkMetrics:
        """
        Calculate beta, alpha, correlation, R², tracking error and IR.

        Raises:
            MisalignedSeriesError: Series not aligned
        """
        ensure_aligned(portfolio, benchmark)
        n = len(portfolio)

        if n < MIN_PERIODS_FOR_VOLATILITY:
            return BenchmarkMetrics(
                has_sufficient_data=False,
                warnings=(f"Need at least {MIN_PERIODS_FOR_VOLATILITY} periods, got {n}",),
            )

        warnings: list[str] = []
        ppy = portfolio.periods_per_year

        portfolio_return = annualize_periodic_return(compound(portfolio.returns), n, ppy)
        benchmark_return = annualize_periodic_return(compound(benchmark.returns), n, ppy)

        beta = beta_coefficient(portfolio, benchmark)
        alpha = None
        if isinstance(beta, Undefined):
            warnings.append("Benchmark returns are constant; beta is undefined")
        elif beta is not None:
            alpha = calculate_alpha(portfolio_return, benchmark_return, beta, risk_free_rate)

        correlation = pearson(portfolio.returns, benchmark.returns)
        r_squared = None if isinstance(correlation, Undefined) else correlation * correlation

        return BenchmarkMetrics(
            beta=beta,
            alpha=alpha,
            correlation=correlation,
            r_squared=r_squared,
            tracking_error=calculate_tracking_error(portfolio, benchmark),
            information_ratio=calculate_information_ratio(portfolio, benchmark),
            portfolio_return=portfolio_return,
            benchmark_return=benchmark_return,
            warnings=tuple(warnings),
        )


@as_result
def compare_to_benchmark(
        portfolio: ReturnSeries,
        benchmark: ReturnSeries,
        risk_free_rate: Decimal = DEFAULT_RISK_FREE_RATE,
) -> BenchmarkMetrics:
    """
    Result-returning wrapper around BenchmarkCalculator.calculate_all.

    Returns:
        Ok(BenchmarkMetrics) or Err(MisalignedSeries)
    """
    return BenchmarkCalculator.calculate_all(portfolio, benchmark, risk_free_rate)
