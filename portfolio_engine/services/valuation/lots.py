# portfolio_engine/services/valuation/lots.py
"""
FIFO lot queues.

One LotQueue exists per (account, symbol). Buys append to the tail; sells
consume from the head. A partially consumed head lot is replaced by a smaller
copy, so consumption is O(1) amortized and lots themselves stay immutable.

    queue = LotQueue(account_ref="brokerage", symbol="AAPL")
    queue.add(Decimal("100"), Decimal("150"), date(2024, 1, 2))
    allocations = queue.consume(Decimal("25"), date(2024, 3, 1))
"""

from collections import deque
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Iterator

from portfolio_engine.services.constants import ZERO
from portfolio_engine.services.exceptions import InvalidSequenceError
from portfolio_engine.services.valuation.types import Lot


@dataclass(frozen=True)
class LotAllocation:
    """Shares taken from one lot by a sale, at that lot's unit cost."""
    lot: Lot
    quantity: Decimal

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.lot.unit_cost


class LotQueue:
    """
    FIFO queue of open lots for one (account, symbol) pair.

    Attributes:
        account_ref: Owning account
        symbol: Security symbol
    """

    def __init__(self, account_ref: str, symbol: str):
        self.account_ref = account_ref
        self.symbol = symbol
        self._lots: deque[Lot] = deque()

    def __len__(self) -> int:
        return len(self._lots)

    def __iter__(self) -> Iterator[Lot]:
        return iter(self._lots)

    @property
    def total_quantity(self) -> Decimal:
        return sum((lot.quantity for lot in self._lots), ZERO)

    @property
    def total_cost(self) -> Decimal:
        return sum((lot.cost_basis for lot in self._lots), ZERO)

    def add(self, quantity: Decimal, unit_cost: Decimal, acquired_date: date) -> Lot:
        """Open a new lot at the tail of the queue."""
        lot = Lot(
            quantity=quantity,
            unit_cost=unit_cost,
            acquired_date=acquired_date,
            original_quantity=quantity,
        )
        self._lots.append(lot)
        return lot

    def consume(self, quantity: Decimal, sold_date: date) -> list[LotAllocation]:
        """
        Remove `quantity` shares from the head of the queue.

        The queue is left untouched if the sale cannot be filled.

        Args:
            quantity: Shares sold (positive)
            sold_date: Sale date, used in the error message

        Returns:
            One allocation per lot touched, oldest first

        Raises:
            InvalidSequenceError: If quantity exceeds the open shares
        """
        available = self.total_quantity
        if quantity > available:
            raise InvalidSequenceError.oversell(
                account_ref=self.account_ref,
                symbol=self.symbol,
                requested=quantity,
                available=available,
                sell_date=sold_date,
            )

        allocations: list[LotAllocation] = []
        remaining = quantity

        while remaining > ZERO:
            head = self._lots[0]
            if head.quantity <= remaining:
                allocations.append(LotAllocation(lot=head, quantity=head.quantity))
                remaining -= head.quantity
                self._lots.popleft()
            else:
                allocations.append(LotAllocation(lot=head, quantity=remaining))
                self._lots[0] = replace(head, quantity=head.quantity - remaining)
                remaining = ZERO

        return allocations

    def snapshot(self) -> tuple[Lot, ...]:
        """Immutable view of the open lots, oldest first."""
        return tuple(self._lots)


class LotBook:
    """
    All lot queues of a ledger replay, keyed by (account_ref, symbol).

    Queues are created on first use.
    """

    def __init__(self):
        self._queues: dict[tuple[str, str], LotQueue] = {}

    def queue(self, account_ref: str, symbol: str) -> LotQueue:
        key = (account_ref, symbol)
        if key not in self._queues:
            self._queues[key] = LotQueue(account_ref, symbol)
        return self._queues[key]

    def items(self) -> Iterator[tuple[tuple[str, str], LotQueue]]:
        return iter(self._queues.items())

    def open_quantity(self, account_ref: str, symbol: str) -> Decimal:
        key = (account_ref, symbol)
        if key not in self._queues:
            return ZERO
        return self._queues[key].total_quantity

    def snapshot(self) -> dict[tuple[str, str], tuple[Lot, ...]]:
        """Open lots for every non-empty queue."""
        return {key: q.snapshot() for key, q in self._queues.items() if len(q)}
