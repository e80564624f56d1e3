# portfolio_engine/services/valuation/sources.py
"""
In-memory implementations of the ledger and price-source protocols.

Used by callers that already hold their data in memory, and by tests.
"""

import bisect
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping

from portfolio_engine.services.valuation.types import Transaction


class StaticPriceSource:
    """
    Price lookup backed by a dict.

    Each symbol maps either to a single Decimal (same price on every date)
    or to a {date: price} history. With a history, the most recent price on
    or before the requested date is used.

    Usage:
        prices = StaticPriceSource({
            "AAPL": {date(2024, 1, 2): Decimal("185.64")},
            "CASHX": Decimal("1"),
        })
        prices.get_price("AAPL", date(2024, 1, 5))   # Decimal("185.64")
    """

    def __init__(self, prices: Mapping[str, Decimal | Mapping[date, Decimal]]):
        self._constant: dict[str, Decimal] = {}
        self._history: dict[str, tuple[list[date], list[Decimal]]] = {}
        for symbol, entry in prices.items():
            if isinstance(entry, Mapping):
                dates = sorted(entry)
                self._history[symbol] = (dates, [entry[d] for d in dates])
            else:
                self._constant[symbol] = entry

    def get_price(self, symbol: str, on_date: date) -> Decimal | None:
        if symbol in self._constant:
            return self._constant[symbol]
        history = self._history.get(symbol)
        if history is None:
            return None
        dates, values = history
        i = bisect.bisect_right(dates, on_date)
        if i == 0:
            return None
        return values[i - 1]


class InMemoryLedger:
    """Transaction ledger held in a list, in the order supplied."""

    def __init__(self, transactions: Iterable[Transaction] = ()):
        self._transactions: list[Transaction] = list(transactions)

    def add(self, transaction: Transaction) -> None:
        self._transactions.append(transaction)

    def get_transactions(self, as_of_date: date | None = None) -> tuple[Transaction, ...]:
        if as_of_date is None:
            return tuple(self._transactions)
        return tuple(t for t in self._transactions if t.date <= as_of_date)

    def __len__(self) -> int:
        return len(self._transactions)
