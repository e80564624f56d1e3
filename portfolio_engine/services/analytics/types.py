# portfolio_engine/services/analytics/types.py
"""
Data types for the Analytics calculators.

This module defines the data structures used throughout the performance,
risk and correlation calculations. All types use Decimal for financial
precision and are immutable once produced.

Architecture:
    - ValuePoint: Portfolio value and external flow on one date
    - CashFlow: Dated money in/out for IRR
    - ReturnSeries: Replayable sequence of period returns
    - RollingReturn / RollingCorrelation items: Windowed results
    - PerformanceMetrics: TWR, MWR, annualized figures
    - DrawdownPeriod / DrawdownAnalysis: Peak-to-trough episodes
    - RiskOptions / RiskMetricsResult: Risk measurements
    - BenchmarkMetrics: Comparison with a benchmark series
    - SymbolMatrix: Symmetric correlation/covariance matrices
    - AnalyticsResult: Combined result from the service
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterator, Sequence

from portfolio_engine.services.constants import (
    DEFAULT_RISK_FREE_RATE,
    DEFAULT_VAR_CONFIDENCE,
    MIN_HISTORY_YEARS,
    STERLING_DRAWDOWN_COUNT,
    TRADING_DAYS_PER_YEAR,
    ZERO,
)
from portfolio_engine.services.results import Undefined

# A ratio that may be undefined because its denominator was zero
Ratio = Decimal | Undefined


# =============================================================================
# INPUT TYPES
# =============================================================================

@dataclass(frozen=True)
class ValuePoint:
    """
    Portfolio value on one date.

    Attributes:
        date: The valuation date
        total_value: Value at the end of the date, AFTER that date's flow
        external_flow: Net contribution (+) or withdrawal (-) on that date
    """
    date: date
    total_value: Decimal
    external_flow: Decimal = ZERO


@dataclass(frozen=True)
class CashFlow:
    """
    Dated cash flow for IRR calculations.

    Attributes:
        date: When the cash flow occurred
        amount: Positive = money into the portfolio, negative = money out

    Note:
        The final portfolio value is treated as a negative cash flow
        (money "leaving" the investment back to the investor).
    """
    date: date
    amount: Decimal


@dataclass(frozen=True)
class ReturnSeries:
    """
    Ordered sequence of period returns.

    Immutable and replayable: iterating twice yields the same values.

    Attributes:
        returns: Period returns as decimals (0.01 = 1%)
        dates: Period end dates aligned with returns (optional)
        periods_per_year: Annualization factor (252 daily, 52 weekly, 12 monthly)
    """
    returns: tuple[Decimal, ...]
    dates: tuple[date, ...] | None = None
    periods_per_year: int = TRADING_DAYS_PER_YEAR

    def __post_init__(self):
        if self.dates is not None and len(self.dates) != len(self.returns):
            raise ValueError(
                f"dates ({len(self.dates)}) and returns ({len(self.returns)}) differ in length"
            )

    @classmethod
    def of(
            cls,
            returns: Sequence[Decimal],
            dates: Sequence[date] | None = None,
            periods_per_year: int = TRADING_DAYS_PER_YEAR,
    ) -> "ReturnSeries":
        return cls(
            returns=tuple(returns),
            dates=tuple(dates) if dates is not None else None,
            periods_per_year=periods_per_year,
        )

    def __len__(self) -> int:
        return len(self.returns)

    def __iter__(self) -> Iterator[Decimal]:
        return iter(self.returns)


@dataclass(frozen=True)
class RollingReturn:
    """TWR over one rolling window of value points."""
    start_date: date
    end_date: date
    value: Decimal


@dataclass(frozen=True)
class RollingCorrelationPoint:
    """Correlation over one rolling window."""
    start_index: int
    end_index: int
    value: Ratio


# =============================================================================
# PERFORMANCE METRICS
# =============================================================================

@dataclass(frozen=True)
class PerformanceMetrics:
    """
    Return-based performance metrics.

    All percentages are expressed as decimals (0.15 = 15%).

    Attributes:
        twr: Time-Weighted Return (removes cash flow bias)
        twr_annualized: TWR scaled to 1 year
        mwr: Money-Weighted Return (annualized IRR), None if it did not converge
        sub_period_returns: Returns of each flow-bounded sub-period

        start_value: Portfolio value at period start
        end_value: Portfolio value at period end
        net_flows: Sum of external flows after the first point
        calendar_days: Days between first and last point
    """
    twr: Decimal | None = None
    twr_annualized: Decimal | None = None
    mwr: Decimal | None = None
    sub_period_returns: tuple[Decimal, ...] = ()

    start_value: Decimal | None = None
    end_value: Decimal | None = None
    net_flows: Decimal = ZERO
    calendar_days: int = 0

    has_sufficient_data: bool = True
    warnings: tuple[str, ...] = ()


# =============================================================================
# RISK METRICS
# =============================================================================

@dataclass(frozen=True)
class DrawdownPeriod:
    """
    A single peak-to-trough-to-recovery episode.

    Indices refer to positions in the value series analysed.

    Attributes:
        peak_index: Position of the peak the decline started from
        trough_index: Position of the lowest point
        recovery_index: First position back at or above the peak (None if not recovered)
        depth: (peak - trough) / peak, a positive magnitude (0.25 = 25%)
        recovery_periods: recovery_index - trough_index (None if not recovered)
        peak_date / trough_date / recovery_date: Dates when known
    """
    peak_index: int
    trough_index: int
    recovery_index: int | None
    depth: Decimal
    recovery_periods: int | None = None
    peak_date: date | None = None
    trough_date: date | None = None
    recovery_date: date | None = None

    @property
    def is_recovered(self) -> bool:
        return self.recovery_index is not None

    @property
    def duration_periods(self) -> int | None:
        """Periods from peak to recovery (None if ongoing)."""
        if self.recovery_index is None:
            return None
        return self.recovery_index - self.peak_index


@dataclass(frozen=True)
class DrawdownAnalysis:
    """
    Drawdown statistics for a value series.

    Attributes:
        max_drawdown: Largest (peak - v) / peak, positive magnitude
        max_drawdown_period: The episode containing the max drawdown (None if no decline)
        recovery_periods: Periods from the max-drawdown trough to recovery, None if not recovered
        is_recovered: False when the series ends below the max-drawdown peak
        current_drawdown: Drawdown at the last point
        underwater_periods: Points strictly below their running peak
        periods: Every episode, in chronological order
    """
    max_drawdown: Decimal
    max_drawdown_period: DrawdownPeriod | None
    recovery_periods: int | None
    is_recovered: bool
    current_drawdown: Decimal
    underwater_periods: int
    periods: tuple[DrawdownPeriod, ...] = ()

    def largest(self, n: int) -> list[DrawdownPeriod]:
        """The n deepest episodes, deepest first."""
        return sorted(self.periods, key=lambda p: p.depth, reverse=True)[:n]


@dataclass(frozen=True)
class RiskOptions:
    """
    Parameters for compute_risk_metrics.

    Attributes:
        risk_free_rate: Annual risk-free rate
        periods_per_year: Override for the series' annualization factor
        min_history_years: Years needed for drawdown-based metrics
        sterling_count: Largest drawdowns averaged by the Sterling ratio
        var_confidence: Confidence level for parametric VaR
    """
    risk_free_rate: Decimal = DEFAULT_RISK_FREE_RATE
    periods_per_year: int | None = None
    min_history_years: int = MIN_HISTORY_YEARS
    sterling_count: int = STERLING_DRAWDOWN_COUNT
    var_confidence: Decimal = DEFAULT_VAR_CONFIDENCE


@dataclass(frozen=True)
class RiskMetricsResult:
    """
    Risk and risk-adjusted return metrics.

    Each metric is independently optional:
        None       → not computed (insufficient history or no benchmark)
        UNDEFINED  → computed, but its denominator was zero

    Attributes:
        volatility: Annualized standard deviation of returns
        max_drawdown: Largest peak-to-trough decline (positive magnitude)
        drawdown_recovery_periods: Periods from trough to recovery (None if not recovered)
        drawdown_recovered: False when the max drawdown has not been recovered
        sharpe: Annualized (mean excess return / standard deviation)
        sortino: Annualized (mean excess return / downside deviation)
        calmar: Annualized return / max drawdown
        sterling: Annualized return / average of the N largest drawdowns
        beta: cov(portfolio, benchmark) / var(benchmark)

        downside_deviation: sqrt(Σ min(0, r - rf)² / n), annualized
        annualized_return: Compounded return scaled to 1 year
        value_at_risk: Parametric VaR for one period (positive = loss)
        drawdown: Full drawdown analysis (None when omitted)

        insufficient_data: History shorter than the required minimum
        required_periods: Minimum periods for full metrics
        available_periods: Periods supplied
    """
    volatility: Decimal | None = None
    max_drawdown: Decimal | None = None
    drawdown_recovery_periods: int | None = None
    drawdown_recovered: bool | None = None
    sharpe: Ratio | None = None
    sortino: Ratio | None = None
    calmar: Ratio | None = None
    sterling: Ratio | None = None
    beta: Ratio | None = None

    downside_deviation: Decimal | None = None
    annualized_return: Decimal | None = None
    value_at_risk: Decimal | None = None
    drawdown: DrawdownAnalysis | None = None

    insufficient_data: bool = False
    required_periods: int = 0
    available_periods: int = 0
    warnings: tuple[str, ...] = ()


# =============================================================================
# BENCHMARK METRICS
# =============================================================================

@dataclass(frozen=True)
class BenchmarkMetrics:
    """
    Comparison metrics against a benchmark return series.

    Attributes:
        beta: Systematic risk (Cov(Rp,Rm) / Var(Rm))
        alpha: Jensen's alpha, annualized: Rp - [Rf + β(Rm - Rf)]
        correlation: Pearson correlation coefficient (-1 to 1)
        r_squared: Coefficient of determination (0 to 1)
        tracking_error: Annualized std dev of return differences
        information_ratio: Annualized active return / tracking error
        portfolio_return / benchmark_return: Annualized compounded returns
    """
    beta: Ratio | None = None
    alpha: Decimal | None = None
    correlation: Ratio | None = None
    r_squared: Decimal | None = None
    tracking_error: Decimal | None = None
    information_ratio: Ratio | None = None
    portfolio_return: Decimal | None = None
    benchmark_return: Decimal | None = None

    has_sufficient_data: bool = True
    warnings: tuple[str, ...] = ()


# =============================================================================
# MATRICES
# =============================================================================

@dataclass(frozen=True)
class SymbolMatrix:
    """
    Square matrix keyed by symbol.

    Attributes:
        symbols: Row/column labels, in order
        values: Row-major entries
    """
    symbols: tuple[str, ...]
    values: tuple[tuple[Ratio, ...], ...]

    def __post_init__(self):
        n = len(self.symbols)
        if len(self.values) != n or any(len(row) != n for row in self.values):
            raise ValueError(f"Matrix must be {n}x{n}")

    @property
    def size(self) -> int:
        return len(self.symbols)

    def index(self, symbol: str) -> int:
        return self.symbols.index(symbol)

    def get(self, row: str, col: str) -> Ratio:
        return self.values[self.index(row)][self.index(col)]

    def row(self, symbol: str) -> dict[str, Ratio]:
        return dict(zip(self.symbols, self.values[self.index(symbol)]))

    def as_dict(self) -> dict[str, dict[str, Ratio]]:
        return {s: self.row(s) for s in self.symbols}

    def is_symmetric(self) -> bool:
        n = self.size
        return all(
            self.values[i][j] == self.values[j][i]
            for i in range(n) for j in range(i + 1, n)
        )


@dataclass(frozen=True)
class CorrelationMatrix(SymbolMatrix):
    """Symmetric correlation matrix; the diagonal is exactly 1."""


@dataclass(frozen=True)
class CovarianceMatrix(SymbolMatrix):
    """Symmetric sample covariance matrix."""

    @classmethod
    def from_rows(cls, symbols: Sequence[str], rows: Sequence[Sequence[Decimal]]) -> "CovarianceMatrix":
        return cls(symbols=tuple(symbols), values=tuple(tuple(r) for r in rows))

    def variance(self, symbol: str) -> Decimal:
        return self.get(symbol, symbol)


# =============================================================================
# COMBINED RESULT
# =============================================================================

@dataclass(frozen=True)
class AnalyticsResult:
    """
    Combined result from all analytics calculations.

    This is the main result type returned by AnalyticsService.analyze.
    Sections are None when their inputs were not supplied or failed; the
    failure is recorded in `errors` as "<section>: <kind>: <message>".
    """
    start_date: date
    end_date: date
    performance: PerformanceMetrics
    risk: RiskMetricsResult | None = None
    benchmark: BenchmarkMetrics | None = None
    correlation: CorrelationMatrix | None = None
    covariance: CovarianceMatrix | None = None

    has_complete_data: bool = True
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = field(default_factory=tuple)
