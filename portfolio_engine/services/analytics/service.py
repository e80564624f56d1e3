# portfolio_engine/services/analytics/service.py
"""
Analytics Service orchestrator.

This is the main entry point for combined analytics. It:
1. Values the ledger on the requested dates (via build_value_series)
2. Delegates to the specialized calculators
3. Caches results for 1 hour (CPU-intensive calculations)
4. Aggregates results into AnalyticsResult

Architecture:
    AnalyticsService
        ├── uses → build_value_series (ledger + prices → ValuePoints)
        ├── uses → ReturnsCalculator (TWR, MWR)
        ├── uses → RiskCalculator (Volatility, Sharpe, Drawdown, ...)
        ├── uses → BenchmarkCalculator (Beta, Alpha, Tracking Error)
        ├── uses → CorrelationCalculator (Correlation/Covariance matrices)
        ├── uses → efficient_frontier (Optimizer)
        └── uses → AnalyticsCache (1-hour TTL cache)

Defaults (risk-free rate, history requirement, frontier size, ...) come
from settings. Every run executes inside a correlation scope so its log
lines can be grouped.

Usage:
    from portfolio_engine.services.analytics import AnalyticsService

    service = AnalyticsService()

    result = service.analyze(value_points, benchmark=benchmark_returns)
    if result.is_ok:
        print(result.value.performance.twr)

    frontier = service.optimize(expected_returns, covariance)
"""

from __future__ import annotations

import hashlib
import logging
import threading
from collections import OrderedDict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, Mapping, Sequence, TYPE_CHECKING

from portfolio_engine.config import Settings, settings as default_settings
from portfolio_engine.services.analytics.benchmark import compare_to_benchmark
from portfolio_engine.services.analytics.correlation import (
    SeriesLike,
    correlation_matrix,
    covariance_matrix,
)
from portfolio_engine.services.analytics.returns import (
    ReturnsCalculator,
    calculate_period_returns,
)
from portfolio_engine.services.analytics.risk import (
    compute_risk_metrics,
    infer_periods_per_year,
)
from portfolio_engine.services.analytics.types import (
    AnalyticsResult,
    BenchmarkMetrics,
    CorrelationMatrix,
    CovarianceMatrix,
    ReturnSeries,
    RiskMetricsResult,
    RiskOptions,
    ValuePoint,
)
from portfolio_engine.services.constants import CACHE_MAX_SIZE, CACHE_TTL_SECONDS
from portfolio_engine.services.exceptions import InsufficientDataError
from portfolio_engine.services.protocols import (
    PriceSourceProtocol,
    ResultCacheProtocol,
    TransactionLedgerProtocol,
)
from portfolio_engine.services.results import Err, Ok, Result, as_result
from portfolio_engine.utils.context import correlation_scope

if TYPE_CHECKING:
    from portfolio_engine.services.optimization.types import OptimizationResult
    from portfolio_engine.services.valuation.types import Account

logger = logging.getLogger(__name__)

# Cache key namespaces
ANALYTICS_NAMESPACE = "analytics"
OPTIMIZATION_NAMESPACE = "optimization"


# =============================================================================
# CACHE
# =============================================================================

class AnalyticsCache:
    """
    Thread-safe bounded LRU cache with TTL for analytics results.

    Analytics calculations are CPU-intensive, so we cache results
    for 1 hour to avoid redundant recalculation.

    Memory Safety:
        Holds at most max_size entries. When the cache is full, the least
        recently used entry is evicted to make room for new entries.

    Cache key format: "{namespace}:{sha256 fingerprint of the inputs}"

    Thread Safety:
        Uses threading.Lock for safe concurrent access within one process.
    """

    def __init__(
            self,
            ttl_seconds: int = CACHE_TTL_SECONDS,
            max_size: int = CACHE_MAX_SIZE,
    ):
        """
        Initialize cache with TTL and max size.

        Args:
            ttl_seconds: Time-to-live in seconds (default 1 hour)
            max_size: Maximum number of entries (default 1000)
        """
        self._cache: OrderedDict[str, tuple[datetime, Any]] = OrderedDict()
        self._ttl = timedelta(seconds=ttl_seconds)
        self._max_size = max_size
        self._lock = threading.Lock()

    @staticmethod
    def make_key(namespace: str, *parts: Any) -> str:
        """
        Fingerprint the inputs of a calculation.

        Inputs are frozen dataclasses, Decimals, dates and tuples, whose
        reprs are deterministic, so equal inputs give equal keys.
        """
        digest = hashlib.sha256(repr(parts).encode("utf-8")).hexdigest()
        return f"{namespace}:{digest}"

    def get(self, key: str) -> Any | None:
        """
        Get cached result if exists and not expired.

        Implements LRU by moving accessed entries to the end.

        Returns:
            Cached value or None if not found/expired
        """
        with self._lock:
            if key in self._cache:
                timestamp, value = self._cache[key]
                if datetime.now() - timestamp < self._ttl:
                    self._cache.move_to_end(key)
                    logger.debug(f"Cache hit for {key}")
                    return value
                del self._cache[key]
                logger.debug(f"Cache expired for {key}")

        return None

    def set(self, key: str, value: Any) -> None:
        """
        Store result in cache with LRU eviction.

        If cache is at max capacity, evicts the least recently used entry.
        """
        with self._lock:
            if key in self._cache:
                del self._cache[key]
            while len(self._cache) >= self._max_size:
                oldest_key = next(iter(self._cache))
                del self._cache[oldest_key]
                logger.debug(f"Cache evicted {oldest_key} (LRU)")
            self._cache[key] = (datetime.now(), value)
        logger.debug(f"Cached result for {key}")

    def invalidate(self, prefix: str) -> int:
        """
        Invalidate all cache entries whose key starts with prefix.

        Returns:
            Number of entries invalidated
        """
        with self._lock:
            keys_to_delete = [k for k in self._cache if k.startswith(prefix)]
            for key in keys_to_delete:
                del self._cache[key]

        if keys_to_delete:
            logger.debug(f"Invalidated {len(keys_to_delete)} cache entries for '{prefix}'")

        return len(keys_to_delete)

    def clear(self) -> None:
        """Clear all cached entries."""
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
        logger.debug(f"Cleared {count} cache entries")

    def size(self) -> int:
        """Return current number of cached entries."""
        with self._lock:
            return len(self._cache)


def _section_error(section: str, result: Err) -> str:
    return f"{section}: {result.kind.value}: {result.message}"


def _series_fingerprint(series_map: Mapping[str, SeriesLike] | None) -> tuple | None:
    if series_map is None:
        return None
    return tuple(
        (symbol, series if isinstance(series, ReturnSeries) else tuple(series))
        for symbol, series in series_map.items()
    )


# =============================================================================
# ANALYTICS SERVICE
# =============================================================================

class AnalyticsService:
    """
    Main orchestrator for portfolio analytics.

    This service coordinates all analytics calculations by:
    1. Turning a value series into period returns
    2. Delegating to specialized calculators
    3. Caching results for 1 hour
    4. Combining results into one AnalyticsResult

    A failing section (e.g. a misaligned benchmark) does not fail the whole
    run: the section is left as None and the failure is recorded in
    AnalyticsResult.errors.

    Attributes:
        _settings: Settings providing calculation defaults
        _cache: Result cache (shared across instances unless injected)
    """

    # Shared cache instance (singleton pattern)
    _shared_cache: AnalyticsCache | None = None

    def __init__(
            self,
            cache: ResultCacheProtocol | None = None,
            config: Settings | None = None,
    ):
        """
        Initialize the Analytics Service.

        Args:
            cache: Cache implementation. If None, uses the shared cache.
            config: Settings override. If None, uses the module settings.
        """
        self._settings = config or default_settings

        if cache is not None:
            self._cache = cache
        else:
            if AnalyticsService._shared_cache is None:
                AnalyticsService._shared_cache = AnalyticsCache(
                    ttl_seconds=self._settings.cache_ttl_seconds,
                    max_size=self._settings.cache_max_size,
                )
            self._cache = AnalyticsService._shared_cache

        logger.info("AnalyticsService initialized")

    @property
    def cache(self) -> ResultCacheProtocol:
        return self._cache

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def analyze(
            self,
            value_points: Sequence[ValuePoint],
            benchmark: ReturnSeries | None = None,
            series_map: Mapping[str, SeriesLike] | None = None,
            risk_free_rate: Decimal | None = None,
            periods_per_year: int | None = None,
            use_cache: bool = True,
    ) -> Result[AnalyticsResult]:
        """
        Compute performance, risk, benchmark and correlation analytics.

        Args:
            value_points: Chronological portfolio values with external flows
            benchmark: Benchmark period returns aligned with the portfolio's
            series_map: symbol → returns for the correlation/covariance matrices
            risk_free_rate: Annual rate; defaults to settings.risk_free_rate
            periods_per_year: Annualization factor; defaults to
                              settings.periods_per_year, then to the
                              spacing of the dates
            use_cache: Read and write the result cache

        Returns:
            Ok(AnalyticsResult) or Err(InsufficientData) when no value points
            were supplied
        """
        rf = self._settings.risk_free_rate if risk_free_rate is None else risk_free_rate
        ppy = periods_per_year or self._settings.periods_per_year
        points = tuple(value_points)

        key = AnalyticsCache.make_key(
            ANALYTICS_NAMESPACE, points, benchmark, _series_fingerprint(series_map), rf, ppy,
        )

        if use_cache:
            cached = self._cache.get(key)
            if cached is not None:
                return Ok(cached)

        with correlation_scope() as run_id:
            result = self._analyze(points, benchmark, series_map, rf, ppy)
            if result.is_ok:
                logger.info(
                    f"Analytics run {run_id} complete: {len(points)} points, "
                    f"{len(result.value.errors)} section error(s)",
                    extra={
                        "start_date": result.value.start_date,
                        "end_date": result.value.end_date,
                        "twr": result.value.performance.twr,
                    },
                )
                if use_cache:
                    self._cache.set(key, result.value)
        return result

    def analyze_ledger(
            self,
            ledger: TransactionLedgerProtocol,
            dates: Sequence[date],
            price_source: PriceSourceProtocol,
            accounts: Iterable[Account] = (),
            benchmark: ReturnSeries | None = None,
            series_map: Mapping[str, SeriesLike] | None = None,
            risk_free_rate: Decimal | None = None,
    ) -> Result[AnalyticsResult]:
        """
        Value the ledger on each date, then run analyze() on the series.

        Returns:
            Ok(AnalyticsResult) or the valuation error (InvalidInput /
            InvalidTransaction / InvalidSequence / MissingPrice)
        """
        # Lazy import to avoid circular dependencies
        from portfolio_engine.services.valuation.service import build_value_series

        with correlation_scope():
            as_of_date = dates[-1] if dates else None
            transactions = ledger.get_transactions(as_of_date=as_of_date)
            series = build_value_series(transactions, dates, price_source, accounts)
            if series.is_err:
                logger.warning(f"Valuation failed: {series.message}")
                return series
            return self.analyze(
                series.value,
                benchmark=benchmark,
                series_map=series_map,
                risk_free_rate=risk_free_rate,
            )

    def optimize(
            self,
            expected_returns: Mapping[str, Decimal],
            covariance: CovarianceMatrix,
            risk_free_rate: Decimal | None = None,
            points: int | None = None,
            allow_short: bool | None = None,
            use_cache: bool = True,
    ) -> Result[OptimizationResult]:
        """
        Efficient frontier with minimum-variance, tangency and maximum-return
        portfolios. Unset arguments come from settings.

        Returns:
            Ok(OptimizationResult) or Err(InvalidInput / SingularCovariance /
            NoConvergence)
        """
        # Lazy import to avoid circular dependencies
        from portfolio_engine.services.optimization.optimizer import efficient_frontier

        rf = self._settings.risk_free_rate if risk_free_rate is None else risk_free_rate
        n_points = self._settings.frontier_points if points is None else points
        shorts = self._settings.allow_short_positions if allow_short is None else allow_short

        key = AnalyticsCache.make_key(
            OPTIMIZATION_NAMESPACE, tuple(expected_returns.items()), covariance, rf, n_points, shorts,
        )
        if use_cache:
            cached = self._cache.get(key)
            if cached is not None:
                return Ok(cached)

        with correlation_scope():
            result = efficient_frontier(expected_returns, covariance, rf, n_points, shorts)
            if result.is_ok:
                if use_cache:
                    self._cache.set(key, result.value)
            else:
                logger.warning(f"Optimization failed: {result.kind.value}: {result.message}")
        return result

    def invalidate_cache(self, namespace: str = ANALYTICS_NAMESPACE) -> int:
        """
        Invalidate cached results of one kind ("analytics" or "optimization").

        Call this when the underlying ledger or prices change. Caches without
        prefix invalidation are cleared entirely.

        Returns:
            Number of cache entries invalidated (0 when cleared entirely)
        """
        if isinstance(self._cache, AnalyticsCache):
            return self._cache.invalidate(f"{namespace}:")
        self._cache.clear()
        return 0

    @classmethod
    def clear_all_cache(cls) -> None:
        """Clear all results in the shared cache."""
        if cls._shared_cache is not None:
            cls._shared_cache.clear()

    # =========================================================================
    # PRIVATE HELPERS
    # =========================================================================

    def _risk_options(self, risk_free_rate: Decimal, periods_per_year: int) -> RiskOptions:
        return RiskOptions(
            risk_free_rate=risk_free_rate,
            periods_per_year=periods_per_year,
            min_history_years=self._settings.min_history_years,
            sterling_count=self._settings.sterling_drawdown_count,
        )

    @as_result
    def _analyze(
            self,
            points: tuple[ValuePoint, ...],
            benchmark: ReturnSeries | None,
            series_map: Mapping[str, SeriesLike] | None,
            risk_free_rate: Decimal,
            periods_per_year: int | None,
    ) -> AnalyticsResult:
        if not points:
            raise InsufficientDataError(1, 0, "analytics")

        errors: list[str] = []
        warnings: list[str] = []

        performance = ReturnsCalculator.calculate_all(
            points,
            max_iterations=self._settings.irr_max_iterations,
            tolerance=self._settings.irr_tolerance,
        )
        warnings.extend(performance.warnings)

        ppy = periods_per_year or infer_periods_per_year([p.date for p in points])
        returns = calculate_period_returns(points, ppy)

        benchmark_metrics: BenchmarkMetrics | None = None
        aligned_benchmark = None
        if benchmark is not None:
            comparison = compare_to_benchmark(returns, benchmark, risk_free_rate)
            if comparison.is_ok:
                benchmark_metrics = comparison.value
                aligned_benchmark = benchmark
                warnings.extend(benchmark_metrics.warnings)
            else:
                errors.append(_section_error("benchmark", comparison))

        risk: RiskMetricsResult | None = None
        risk_result = compute_risk_metrics(
            returns, self._risk_options(risk_free_rate, ppy), aligned_benchmark,
        )
        if risk_result.is_ok:
            risk = risk_result.value
            warnings.extend(risk.warnings)
        else:
            errors.append(_section_error("risk", risk_result))

        correlation: CorrelationMatrix | None = None
        covariance: CovarianceMatrix | None = None
        if series_map:
            corr_result = correlation_matrix(series_map)
            if corr_result.is_ok:
                correlation = corr_result.value
            else:
                errors.append(_section_error("correlation", corr_result))
            cov_result = covariance_matrix(series_map)
            if cov_result.is_ok:
                covariance = cov_result.value
            else:
                errors.append(_section_error("covariance", cov_result))

        for error in errors:
            logger.warning(f"Analytics section failed: {error}")

        has_complete_data = (
            not errors
            and performance.has_sufficient_data
            and risk is not None
            and not risk.insufficient_data
        )

        return AnalyticsResult(
            start_date=points[0].date,
            end_date=points[-1].date,
            performance=performance,
            risk=risk,
            benchmark=benchmark_metrics,
            correlation=correlation,
            covariance=covariance,
            has_complete_data=has_complete_data,
            errors=tuple(errors),
            warnings=tuple(warnings),
        )
