# tests/services/valuation/test_lots.py
"""
Unit tests for FIFO lot queues.

Test Coverage:
- LotQueue.add / consume: oldest lot first, partial head replacement
- Oversell: error raised, queue left untouched
- Quantity and cost conservation across a sale
- LotBook: lazy queue creation, open quantity, snapshot
"""

from datetime import date
from decimal import Decimal

import pytest

from portfolio_engine.services.exceptions import InvalidSequenceError
from portfolio_engine.services.valuation.lots import LotAllocation, LotBook, LotQueue


@pytest.fixture
def queue() -> LotQueue:
    q = LotQueue(account_ref="brokerage", symbol="AAPL")
    q.add(Decimal("100"), Decimal("150"), date(2024, 1, 2))
    q.add(Decimal("50"), Decimal("300"), date(2024, 2, 1))
    return q


# =============================================================================
# LOT QUEUE
# =============================================================================

class TestLotQueue:
    """Tests for LotQueue."""

    def test_add_appends_to_tail(self, queue):
        lots = queue.snapshot()
        assert [lot.unit_cost for lot in lots] == [Decimal("150"), Decimal("300")]
        assert lots[0].original_quantity == Decimal("100")

    def test_totals(self, queue):
        assert queue.total_quantity == Decimal("150")
        assert queue.total_cost == Decimal("30000")

    def test_partial_consumption_of_head(self, queue):
        allocations = queue.consume(Decimal("25"), date(2024, 3, 1))

        assert len(allocations) == 1
        assert allocations[0].quantity == Decimal("25")
        assert allocations[0].cost_basis == Decimal("3750")

        head = queue.snapshot()[0]
        assert head.quantity == Decimal("75")
        assert head.original_quantity == Decimal("100")
        assert head.unit_cost == Decimal("150")
        assert len(queue) == 2

    def test_consumption_spans_lots(self, queue):
        allocations = queue.consume(Decimal("120"), date(2024, 3, 1))

        assert [a.quantity for a in allocations] == [Decimal("100"), Decimal("20")]
        assert len(queue) == 1
        assert queue.snapshot()[0].quantity == Decimal("30")
        assert queue.snapshot()[0].unit_cost == Decimal("300")

    def test_exact_full_consumption_empties_queue(self, queue):
        queue.consume(Decimal("150"), date(2024, 3, 1))
        assert len(queue) == 0
        assert queue.total_quantity == Decimal("0")

    def test_oversell_raises_and_leaves_queue_untouched(self, queue):
        before = queue.snapshot()

        with pytest.raises(InvalidSequenceError) as exc_info:
            queue.consume(Decimal("151"), date(2024, 3, 1))

        assert exc_info.value.requested == Decimal("151")
        assert exc_info.value.available == Decimal("150")
        assert queue.snapshot() == before

    def test_quantity_and_cost_are_conserved(self, queue):
        cost_before = queue.total_cost
        allocations = queue.consume(Decimal("110"), date(2024, 3, 1))

        consumed_qty = sum((a.quantity for a in allocations), Decimal("0"))
        consumed_cost = sum((a.cost_basis for a in allocations), Decimal("0"))

        assert consumed_qty + queue.total_quantity == Decimal("150")
        assert consumed_cost + queue.total_cost == cost_before

    def test_allocation_keeps_original_lot(self, queue):
        allocation = queue.consume(Decimal("10"), date(2024, 3, 1))[0]
        assert isinstance(allocation, LotAllocation)
        assert allocation.lot.quantity == Decimal("100")
        assert allocation.lot.acquired_date == date(2024, 1, 2)


# =============================================================================
# LOT BOOK
# =============================================================================

class TestLotBook:
    """Tests for LotBook."""

    def test_queue_created_on_first_use(self):
        book = LotBook()
        q1 = book.queue("brokerage", "AAPL")
        q2 = book.queue("brokerage", "AAPL")
        assert q1 is q2

    def test_queues_are_per_account(self):
        book = LotBook()
        book.queue("brokerage", "AAPL").add(Decimal("10"), Decimal("100"), date(2024, 1, 2))
        book.queue("ira", "AAPL").add(Decimal("5"), Decimal("110"), date(2024, 1, 3))

        assert book.open_quantity("brokerage", "AAPL") == Decimal("10")
        assert book.open_quantity("ira", "AAPL") == Decimal("5")
        assert book.open_quantity("ira", "MSFT") == Decimal("0")

    def test_snapshot_skips_empty_queues(self):
        book = LotBook()
        book.queue("brokerage", "AAPL").add(Decimal("10"), Decimal("100"), date(2024, 1, 2))
        book.queue("brokerage", "MSFT")

        snapshot = book.snapshot()
        assert list(snapshot) == [("brokerage", "AAPL")]
