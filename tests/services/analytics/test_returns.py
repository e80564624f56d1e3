# tests/services/analytics/test_returns.py
"""
Tests for return calculations.

Test Coverage:
- Sub-period returns and chained TWR with a mid-series contribution
- TWR edge cases (empty series, single point, zero starting value)
- XIRR: known rate, degenerate flows, iteration bounds
- Money-weighted return over a value series
- Rolling returns: laziness, restartability, window validation
- Period returns, annualization, ReturnsCalculator.calculate_all
"""

from datetime import date
from decimal import Decimal

import pytest

from portfolio_engine.services.analytics.returns import (
    ReturnsCalculator,
    annualize_periodic_return,
    annualize_return,
    calculate_period_returns,
    calculate_sub_period_returns,
    calculate_xirr,
    money_weighted_return,
    rolling_returns,
    time_weighted_return,
    value_points_to_cash_flows,
)
from portfolio_engine.services.analytics.types import CashFlow, ValuePoint
from portfolio_engine.services.exceptions import ErrorKind

TOLERANCE = Decimal("0.0000001")


def _points(values: list[str], start: date = date(2024, 1, 1)) -> list[ValuePoint]:
    """Monthly-ish points with no flows."""
    return [
        ValuePoint(date=date(start.year, start.month + i, 1), total_value=Decimal(v))
        for i, v in enumerate(values)
    ]


# =============================================================================
# TIME-WEIGHTED RETURN
# =============================================================================

class TestTimeWeightedReturn:
    """Tests for sub-period returns and TWR."""

    def test_contribution_sub_periods(self, contribution_series):
        sub = calculate_sub_period_returns(contribution_series)
        assert sub == [Decimal("0"), Decimal("0.1")]

    def test_twr_chains_sub_periods(self, contribution_series):
        twr = time_weighted_return(contribution_series).unwrap()
        assert twr == Decimal("0.1")

    def test_twr_ignores_contribution_size(self):
        small = [
            ValuePoint(date(2024, 1, 1), Decimal("100")),
            ValuePoint(date(2024, 2, 1), Decimal("210"), external_flow=Decimal("100")),
            ValuePoint(date(2024, 3, 1), Decimal("231")),
        ]
        large = [
            ValuePoint(date(2024, 1, 1), Decimal("100")),
            ValuePoint(date(2024, 2, 1), Decimal("10110"), external_flow=Decimal("10000")),
            ValuePoint(date(2024, 3, 1), Decimal("11121")),
        ]
        assert time_weighted_return(small).unwrap() == time_weighted_return(large).unwrap()

    def test_no_flows_equals_simple_return(self):
        points = _points(["100", "105", "126"])
        assert time_weighted_return(points).unwrap() == Decimal("0.26")

    def test_single_point_is_zero(self):
        points = _points(["100"])
        assert time_weighted_return(points).unwrap() == Decimal("0")

    def test_empty_series(self):
        result = time_weighted_return([])
        assert result.kind is ErrorKind.INSUFFICIENT_DATA

    def test_zero_starting_value(self):
        points = [
            ValuePoint(date(2024, 1, 1), Decimal("0")),
            ValuePoint(date(2024, 2, 1), Decimal("1000"), external_flow=Decimal("1000")),
            ValuePoint(date(2024, 3, 1), Decimal("1100")),
        ]
        assert time_weighted_return(points).unwrap() == Decimal("0.1")


# =============================================================================
# XIRR
# =============================================================================

class TestXirr:
    """Tests for calculate_xirr."""

    def test_one_year_ten_percent(self):
        flows = [
            CashFlow(date(2023, 1, 1), Decimal("1000")),
            CashFlow(date(2024, 1, 1), Decimal("-1100")),
        ]
        assert calculate_xirr(flows).unwrap() == Decimal("0.1")

    def test_negative_return(self):
        flows = [
            CashFlow(date(2023, 1, 1), Decimal("1000")),
            CashFlow(date(2024, 1, 1), Decimal("-900")),
        ]
        rate = calculate_xirr(flows).unwrap()
        assert abs(rate - Decimal("-0.1")) < TOLERANCE

    def test_flow_order_does_not_matter(self):
        flows = [
            CashFlow(date(2024, 1, 1), Decimal("-1100")),
            CashFlow(date(2023, 1, 1), Decimal("1000")),
        ]
        assert calculate_xirr(flows).unwrap() == Decimal("0.1")

    def test_same_sign_flows(self):
        flows = [
            CashFlow(date(2023, 1, 1), Decimal("1000")),
            CashFlow(date(2024, 1, 1), Decimal("500")),
        ]
        assert calculate_xirr(flows).kind is ErrorKind.NO_CONVERGENCE

    def test_single_date(self):
        flows = [
            CashFlow(date(2023, 1, 1), Decimal("1000")),
            CashFlow(date(2023, 1, 1), Decimal("-1100")),
        ]
        assert calculate_xirr(flows).kind is ErrorKind.NO_CONVERGENCE

    def test_too_few_flows(self):
        flows = [CashFlow(date(2023, 1, 1), Decimal("1000"))]
        assert calculate_xirr(flows).kind is ErrorKind.INSUFFICIENT_DATA

    def test_iteration_bound(self):
        flows = [
            CashFlow(date(2023, 1, 1), Decimal("1000")),
            CashFlow(date(2024, 1, 1), Decimal("-1500")),
        ]
        result = calculate_xirr(flows, max_iterations=1)

        assert result.kind is ErrorKind.NO_CONVERGENCE
        assert result.error.method == "IRR"

    def test_converges_with_default_bounds(self):
        flows = [
            CashFlow(date(2023, 1, 1), Decimal("1000")),
            CashFlow(date(2024, 1, 1), Decimal("-1500")),
        ]
        assert abs(calculate_xirr(flows).unwrap() - Decimal("0.5")) < TOLERANCE


# =============================================================================
# MONEY-WEIGHTED RETURN
# =============================================================================

class TestMoneyWeightedReturn:
    """Tests for money_weighted_return."""

    def test_cash_flows_from_value_points(self, contribution_series):
        flows = value_points_to_cash_flows(contribution_series)
        assert [f.amount for f in flows] == [Decimal("100000"), Decimal("10000"), Decimal("-121000")]

    def test_contribution_series(self, contribution_series):
        mwr = money_weighted_return(contribution_series).unwrap()
        assert Decimal("0.09") < mwr < Decimal("0.12")

    def test_no_flows_matches_annual_growth(self):
        points = [
            ValuePoint(date(2023, 1, 1), Decimal("1000")),
            ValuePoint(date(2024, 1, 1), Decimal("1100")),
        ]
        assert money_weighted_return(points).unwrap() == Decimal("0.1")

    def test_single_point(self):
        result = money_weighted_return(_points(["100"]))
        assert result.kind is ErrorKind.INSUFFICIENT_DATA


# =============================================================================
# ROLLING RETURNS
# =============================================================================

class TestRollingReturns:
    """Tests for rolling_returns."""

    def test_windows(self):
        rolling = rolling_returns(_points(["100", "110", "121", "133.1"]), 2).unwrap()

        items = list(rolling)
        assert len(rolling) == 3
        assert [r.value for r in items] == [Decimal("0.1")] * 3
        assert items[0].start_date == date(2024, 1, 1)
        assert items[0].end_date == date(2024, 2, 1)

    def test_restartable(self):
        rolling = rolling_returns(_points(["100", "110", "99", "120"]), 3).unwrap()
        assert list(rolling) == list(rolling)

    def test_window_too_small(self):
        result = rolling_returns(_points(["100", "110"]), 1)
        assert result.kind is ErrorKind.INVALID_INPUT

    def test_window_longer_than_series(self):
        result = rolling_returns(_points(["100", "110"]), 3)
        assert result.kind is ErrorKind.INSUFFICIENT_DATA


# =============================================================================
# PERIOD RETURNS AND ANNUALIZATION
# =============================================================================

class TestPeriodReturns:
    """Tests for calculate_period_returns and annualization helpers."""

    def test_period_returns(self, contribution_series):
        series = calculate_period_returns(contribution_series, periods_per_year=2)

        assert series.returns == (Decimal("0"), Decimal("0.1"))
        assert series.dates == (date(2024, 7, 1), date(2024, 12, 31))
        assert series.periods_per_year == 2

    def test_period_returns_of_single_point(self):
        assert len(calculate_period_returns(_points(["100"]))) == 0

    def test_annualize_two_years(self):
        annual = annualize_return(Decimal("0.21"), 730)
        assert abs(annual - Decimal("0.1")) < TOLERANCE

    def test_annualize_zero_days(self):
        assert annualize_return(Decimal("0.1"), 0) is None

    def test_annualize_total_loss(self):
        assert annualize_periodic_return(Decimal("-1"), 12, 12) == Decimal("-1")

    def test_annualize_monthly_periods(self):
        annual = annualize_periodic_return(Decimal("0.1"), 12, 12)
        assert annual == Decimal("0.1")


class TestReturnsCalculator:
    """Tests for ReturnsCalculator.calculate_all."""

    def test_calculate_all(self, contribution_series):
        metrics = ReturnsCalculator.calculate_all(contribution_series)

        assert metrics.twr == Decimal("0.1")
        assert metrics.twr_annualized == Decimal("0.1")
        assert metrics.sub_period_returns == (Decimal("0"), Decimal("0.1"))
        assert metrics.mwr is not None
        assert metrics.start_value == Decimal("100000")
        assert metrics.end_value == Decimal("121000")
        assert metrics.net_flows == Decimal("10000")
        assert metrics.calendar_days == 365
        assert metrics.has_sufficient_data

    def test_empty(self):
        metrics = ReturnsCalculator.calculate_all([])

        assert metrics.twr is None
        assert not metrics.has_sufficient_data

    def test_mwr_failure_is_a_warning(self):
        points = [
            ValuePoint(date(2024, 1, 1), Decimal("0")),
            ValuePoint(date(2024, 2, 1), Decimal("0")),
        ]
        metrics = ReturnsCalculator.calculate_all(points)

        assert metrics.twr == Decimal("0")
        assert metrics.mwr is None
        assert any("MWR unavailable" in w for w in metrics.warnings)
