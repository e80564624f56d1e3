# portfolio_engine/services/analytics/__init__.py
"""
Analytics Service Package.

This package provides portfolio analytics capabilities:
- Performance metrics (TWR, MWR/IRR, rolling returns)
- Risk metrics (Volatility, Sharpe, Sortino, Calmar, Sterling, Drawdown, VaR)
- Benchmark comparison (Beta, Alpha, Correlation, Tracking Error)
- Correlation and covariance matrices, rolling correlation

Architecture:
    analytics/
    ├── __init__.py              # This file - package exports
    ├── types.py                 # Data classes for results
    ├── returns.py               # Return calculations (TWR, IRR, rolling)
    ├── risk.py                  # Risk calculations (Sharpe, Drawdown)
    ├── benchmark.py             # Benchmark comparison (Beta, Alpha)
    ├── correlation.py           # Correlation / covariance
    └── service.py               # AnalyticsService (orchestrator)

Usage:
    from portfolio_engine.services.analytics import AnalyticsService

    service = AnalyticsService()
    result = service.analyze(value_points, benchmark=benchmark_returns)

    if result.is_ok:
        print(f"TWR: {result.value.performance.twr}")
        print(f"Sharpe: {result.value.risk.sharpe}")
"""

from portfolio_engine.services.analytics.benchmark import (
    BenchmarkCalculator,
    calculate_beta,
    compare_to_benchmark,
)
from portfolio_engine.services.analytics.correlation import (
    CorrelationCalculator,
    RollingCorrelation,
    correlation_matrix,
    covariance_matrix,
    pairwise_correlation,
    pairwise_covariance,
    rolling_correlation,
)
from portfolio_engine.services.analytics.returns import (
    ReturnsCalculator,
    RollingReturns,
    calculate_period_returns,
    calculate_xirr,
    money_weighted_return,
    rolling_returns,
    time_weighted_return,
)
from portfolio_engine.services.analytics.risk import (
    RiskCalculator,
    calculate_drawdowns,
    compute_risk_metrics,
    drawdown_periods,
    drawdowns_from_returns,
)
from portfolio_engine.services.analytics.service import AnalyticsCache, AnalyticsService
from portfolio_engine.services.analytics.types import (
    AnalyticsResult,
    BenchmarkMetrics,
    CashFlow,
    CorrelationMatrix,
    CovarianceMatrix,
    DrawdownAnalysis,
    DrawdownPeriod,
    PerformanceMetrics,
    ReturnSeries,
    RiskMetricsResult,
    RiskOptions,
    ValuePoint,
)

__all__ = [
    # Service
    "AnalyticsService",
    "AnalyticsCache",
    # Calculators
    "ReturnsCalculator",
    "RiskCalculator",
    "BenchmarkCalculator",
    "CorrelationCalculator",
    # Returns
    "time_weighted_return",
    "money_weighted_return",
    "calculate_xirr",
    "calculate_period_returns",
    "rolling_returns",
    "RollingReturns",
    # Risk
    "compute_risk_metrics",
    "calculate_drawdowns",
    "drawdowns_from_returns",
    "drawdown_periods",
    # Benchmark
    "calculate_beta",
    "compare_to_benchmark",
    # Correlation
    "pairwise_correlation",
    "pairwise_covariance",
    "correlation_matrix",
    "covariance_matrix",
    "rolling_correlation",
    "RollingCorrelation",
    # Types
    "ValuePoint",
    "CashFlow",
    "ReturnSeries",
    "PerformanceMetrics",
    "RiskOptions",
    "RiskMetricsResult",
    "DrawdownAnalysis",
    "DrawdownPeriod",
    "BenchmarkMetrics",
    "CorrelationMatrix",
    "CovarianceMatrix",
    "AnalyticsResult",
]
