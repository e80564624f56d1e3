# portfolio_engine/services/analytics/correlation.py
"""
Correlation and covariance calculations.

This module contains pure functions over return series:
- Pairwise Pearson correlation
- Correlation and covariance matrices keyed by symbol
- Rolling correlation over a sliding window (lazy)

Square roots use Newton's method in Decimal (numeric.decimal_sqrt) so that
results are deterministic and carry the same precision as the rest of the
engine.

Formulas:
    ρ(x, y) = Σ(x_i - x̄)(y_i - ȳ) / sqrt(Σ(x_i - x̄)² · Σ(y_i - ȳ)²)

    cov(x, y) = Σ(x_i - x̄)(y_i - ȳ) / (n - 1)

Matrices are built from the upper triangle and mirrored, so they are
symmetric by construction; the correlation diagonal is exactly 1.
"""

import logging
from decimal import Decimal
from typing import Iterable, Iterator, Mapping, Sequence

from portfolio_engine.services.analytics.types import (
    CorrelationMatrix,
    CovarianceMatrix,
    Ratio,
    ReturnSeries,
    RollingCorrelationPoint,
)
from portfolio_engine.services.constants import ONE, ZERO
from portfolio_engine.services.exceptions import (
    InsufficientDataError,
    InvalidInputError,
    MisalignedSeriesError,
)
from portfolio_engine.services.numeric import decimal_sqrt, sample_covariance
from portfolio_engine.services.results import UNDEFINED, as_result

logger = logging.getLogger(__name__)

_MINUS_ONE = Decimal("-1")

SeriesLike = ReturnSeries | Sequence[Decimal]


# =============================================================================
# HELPERS
# =============================================================================

def _values(series: SeriesLike) -> tuple[Decimal, ...]:
    if isinstance(series, ReturnSeries):
        return series.returns
    return tuple(series)


def _check_dates(a: SeriesLike, b: SeriesLike) -> None:
    """Dated series must share dates; undated series are aligned by position."""
    if not (isinstance(a, ReturnSeries) and isinstance(b, ReturnSeries)):
        return
    if a.dates is None or b.dates is None:
        return
    if a.dates != b.dates:
        raise MisalignedSeriesError(
            len(a), len(b),
            message="Series cover the same number of periods but different dates",
        )


def aligned_values(a: SeriesLike, b: SeriesLike) -> tuple[tuple[Decimal, ...], tuple[Decimal, ...]]:
    xs = _values(a)
    ys = _values(b)
    if len(xs) != len(ys):
        raise MisalignedSeriesError(len(xs), len(ys))
    _check_dates(a, b)
    return xs, ys


def pearson(xs: Sequence[Decimal], ys: Sequence[Decimal]) -> Ratio:
    """
    Pearson correlation of two equal-length sequences.

    Returns:
        Correlation clamped to [-1, 1]; exactly 1 for identical
        non-constant inputs; UNDEFINED if either input is constant

    Raises:
        InsufficientDataError: Fewer than 2 observations
    """
    n = len(xs)
    if n < 2:
        raise InsufficientDataError(2, n, "correlation")

    mean_x = sum(xs, ZERO) / Decimal(n)
    mean_y = sum(ys, ZERO) / Decimal(n)

    sxy = ZERO
    sxx = ZERO
    syy = ZERO
    for x, y in zip(xs, ys):
        dx = x - mean_x
        dy = y - mean_y
        sxy += dx * dy
        sxx += dx * dx
        syy += dy * dy

    if sxx == ZERO or syy == ZERO:
        return UNDEFINED

    if tuple(xs) == tuple(ys):
        return ONE

    r = sxy / (decimal_sqrt(sxx) * decimal_sqrt(syy))
    return max(_MINUS_ONE, min(ONE, r))


def _symbols_and_values(
        series_map: Mapping[str, SeriesLike],
        what: str,
) -> tuple[tuple[str, ...], list[tuple[Decimal, ...]]]:
    symbols = tuple(series_map)
    if len(symbols) < 2:
        raise InsufficientDataError(2, len(symbols), what)

    first = series_map[symbols[0]]
    values = [_values(first)]
    for symbol in symbols[1:]:
        series = series_map[symbol]
        xs = _values(series)
        if len(xs) != len(values[0]):
            raise MisalignedSeriesError(
                len(values[0]), len(xs),
                message=f"Series for '{symbol}' has {len(xs)} observations, "
                        f"expected {len(values[0])}",
            )
        _check_dates(first, series)
        values.append(xs)

    if len(values[0]) < 2:
        raise InsufficientDataError(2, len(values[0]), what)

    return symbols, values


# =============================================================================
# PAIRWISE
# =============================================================================

@as_result
def pairwise_correlation(series_a: SeriesLike, series_b: SeriesLike) -> Ratio:
    """
    Pearson correlation of two return series.

    Args:
        series_a: Returns (ReturnSeries or sequence of Decimal)
        series_b: Returns aligned with series_a

    Returns:
        Ok(ratio in [-1, 1] or UNDEFINED for a constant series), or
        Err(MisalignedSeries / InsufficientData)
    """
    xs, ys = aligned_values(series_a, series_b)
    return pearson(xs, ys)


@as_result
def pairwise_covariance(series_a: SeriesLike, series_b: SeriesLike) -> Decimal:
    """
    Sample covariance (n - 1) of two return series.

    Returns:
        Ok(covariance) or Err(MisalignedSeries / InsufficientData)
    """
    xs, ys = aligned_values(series_a, series_b)
    if len(xs) < 2:
        raise InsufficientDataError(2, len(xs), "covariance")
    return sample_covariance(xs, ys)


# =============================================================================
# MATRICES
# =============================================================================

@as_result
def correlation_matrix(series_map: Mapping[str, SeriesLike]) -> CorrelationMatrix:
    """
    Full correlation matrix of several return series.

    Only the upper triangle is computed; the lower triangle mirrors it and
    the diagonal is set to exactly 1.

    Args:
        series_map: symbol → returns, all of equal length (matrix order
                    follows the mapping's order)

    Returns:
        Ok(CorrelationMatrix) or Err(MisalignedSeries / InsufficientData)
    """
    symbols, values = _symbols_and_values(series_map, "correlation matrix")
    n = len(symbols)

    rows: list[list[Ratio]] = [[ONE] * n for _ in range(n)]
    for i in range(n):
        for j in range(i + 1, n):
            rho = pearson(values[i], values[j])
            rows[i][j] = rho
            rows[j][i] = rho

    logger.debug(f"Computed {n}x{n} correlation matrix")
    return CorrelationMatrix(symbols=symbols, values=tuple(tuple(r) for r in rows))


@as_result
def covariance_matrix(series_map: Mapping[str, SeriesLike]) -> CovarianceMatrix:
    """
    Full sample covariance matrix (n - 1) of several return series.

    Args:
        series_map: symbol → returns, all of equal length

    Returns:
        Ok(CovarianceMatrix) or Err(MisalignedSeries / InsufficientData)
    """
    symbols, values = _symbols_and_values(series_map, "covariance matrix")
    n = len(symbols)

    rows: list[list[Decimal]] = [[ZERO] * n for _ in range(n)]
    for i in range(n):
        for j in range(i, n):
            cov = sample_covariance(values[i], values[j])
            rows[i][j] = cov
            rows[j][i] = cov

    logger.debug(f"Computed {n}x{n} covariance matrix")
    return CovarianceMatrix(symbols=symbols, values=tuple(tuple(r) for r in rows))


def correlation_to_covariance(
        correlation: CorrelationMatrix,
        volatilities: Mapping[str, Decimal],
) -> CovarianceMatrix:
    """
    Build a covariance matrix from correlations and volatilities.

    Formula: Σ_ij = ρ_ij · σ_i · σ_j

    Raises:
        InvalidInputError: Missing volatility or UNDEFINED correlation
    """
    symbols = correlation.symbols
    missing = [s for s in symbols if s not in volatilities]
    if missing:
        raise InvalidInputError(f"Missing volatility for {', '.join(missing)}", field="volatilities")

    rows = []
    for i, si in enumerate(symbols):
        row = []
        for j, sj in enumerate(symbols):
            rho = correlation.values[i][j]
            if rho is UNDEFINED:
                raise InvalidInputError(f"Correlation {si}/{sj} is undefined", field="correlation")
            row.append(rho * volatilities[si] * volatilities[sj])
        rows.append(row)
    return CovarianceMatrix.from_rows(symbols, rows)


# =============================================================================
# ROLLING CORRELATION
# =============================================================================

class RollingCorrelation:
    """
    Lazy, finite, restartable sequence of windowed correlations.

    Each item covers observations [start_index, end_index] inclusive.
    """

    def __init__(self, xs: Iterable[Decimal], ys: Iterable[Decimal], window: int):
        self._xs = tuple(xs)
        self._ys = tuple(ys)
        self._window = window

    @property
    def window(self) -> int:
        return self._window

    def __len__(self) -> int:
        return len(self._xs) - self._window + 1

    def __iter__(self) -> Iterator[RollingCorrelationPoint]:
        w = self._window
        for start in range(len(self)):
            yield RollingCorrelationPoint(
                start_index=start,
                end_index=start + w - 1,
                value=pearson(self._xs[start:start + w], self._ys[start:start + w]),
            )


@as_result
def rolling_correlation(
        series_a: SeriesLike,
        series_b: SeriesLike,
        window: int,
) -> RollingCorrelation:
    """
    Correlation over every window of `window` consecutive observations.

    Returns:
        Ok(RollingCorrelation) or Err(InvalidInput for window < 2,
        MisalignedSeries, InsufficientData for window > length)
    """
    if window < 2:
        raise InvalidInputError(f"Rolling window must be at least 2, got {window}", field="window")
    xs, ys = aligned_values(series_a, series_b)
    if window > len(xs):
        raise InsufficientDataError(window, len(xs), "rolling correlation")
    return RollingCorrelation(xs, ys, window)


# =============================================================================
# CORRELATION CALCULATOR
# =============================================================================

class CorrelationCalculator:
    """
    Computes correlation and covariance matrices together.

    Usage:
        corr, cov = CorrelationCalculator.calculate_all({"AAPL": r1, "MSFT": r2})
    """

    @staticmethod
    def calculate_all(
            series_map: Mapping[str, SeriesLike],
    ) -> tuple[CorrelationMatrix, CovarianceMatrix]:
        """
        Raises:
            MisalignedSeriesError / InsufficientDataError
        """
        corr = correlation_matrix(series_map).unwrap()
        cov = covariance_matrix(series_map).unwrap()
        return corr, cov
