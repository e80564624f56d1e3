# tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Transaction factories for building ledgers
- The worked examples (FIFO lots, flow-adjusted value series)
- A clean analytics cache per test
"""

from datetime import date
from decimal import Decimal

import pytest

from portfolio_engine.services.analytics.service import AnalyticsService
from portfolio_engine.services.analytics.types import ValuePoint
from portfolio_engine.services.valuation.types import Transaction, TransactionType


# =============================================================================
# CACHE ISOLATION
# =============================================================================

@pytest.fixture(autouse=True)
def clear_shared_cache():
    """Every test starts and ends with an empty shared analytics cache."""
    AnalyticsService.clear_all_cache()
    yield
    AnalyticsService.clear_all_cache()


# =============================================================================
# TRANSACTION FACTORIES
# =============================================================================

@pytest.fixture
def make_buy():
    """Factory for BUY transactions."""
    def _make(
            symbol: str,
            quantity: str,
            price: str,
            on: date,
            account: str = "brokerage",
            fee: str = "0",
    ) -> Transaction:
        return Transaction(
            transaction_type=TransactionType.BUY,
            date=on,
            account_ref=account,
            symbol_ref=symbol,
            quantity=Decimal(quantity),
            price=Decimal(price),
            fee=Decimal(fee),
        )
    return _make


@pytest.fixture
def make_sell():
    """Factory for SELL transactions."""
    def _make(
            symbol: str,
            quantity: str,
            price: str,
            on: date,
            account: str = "brokerage",
            fee: str = "0",
    ) -> Transaction:
        return Transaction(
            transaction_type=TransactionType.SELL,
            date=on,
            account_ref=account,
            symbol_ref=symbol,
            quantity=Decimal(quantity),
            price=Decimal(price),
            fee=Decimal(fee),
        )
    return _make


# =============================================================================
# WORKED EXAMPLES
# =============================================================================

@pytest.fixture
def fifo_ledger(make_buy, make_sell) -> list[Transaction]:
    """Buy 100 @ 150, buy 50 @ 300, sell 25 @ 160."""
    return [
        make_buy("AAPL", "100", "150", date(2024, 1, 2)),
        make_buy("AAPL", "50", "300", date(2024, 2, 1)),
        make_sell("AAPL", "25", "160", date(2024, 3, 1)),
    ]


@pytest.fixture
def contribution_series() -> list[ValuePoint]:
    """
    $100,000 at t0; a $10,000 contribution at t1 (value after the flow is
    $110,000); $121,000 at t2.
    """
    return [
        ValuePoint(date=date(2024, 1, 1), total_value=Decimal("100000")),
        ValuePoint(date=date(2024, 7, 1), total_value=Decimal("110000"), external_flow=Decimal("10000")),
        ValuePoint(date=date(2024, 12, 31), total_value=Decimal("121000")),
    ]
