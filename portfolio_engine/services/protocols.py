# portfolio_engine/services/protocols.py
"""
Protocol interfaces for service dependency injection.

Using typing.Protocol enables structural subtyping:
- Existing classes satisfy protocols without modification
- Test mocks work without explicit inheritance
- Clear documentation of required interfaces
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Protocol, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from portfolio_engine.services.valuation.types import Transaction


class TransactionLedgerProtocol(Protocol):
    """Interface required by ValuationService and AnalyticsService."""

    def get_transactions(self, as_of_date: date | None = None) -> Sequence[Transaction]:
        ...


class PriceSourceProtocol(Protocol):
    """
    Interface required for valuing holdings.

    Returns None when no price is known; callers report that as MissingPrice.
    """

    def get_price(self, symbol: str, on_date: date) -> Decimal | None:
        ...


class ResultCacheProtocol(Protocol):
    """Interface satisfied by AnalyticsCache."""

    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def clear(self) -> None:
        ...
