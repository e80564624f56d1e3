# portfolio_engine/services/valuation/calculators.py
"""
Ledger replay and point-in-time valuation calculators.

Each calculator follows the Single Responsibility Principle:
- TransactionValidator: Rejects malformed ledger entries
- HoldingsCalculator: Replays the ledger into FIFO lot queues
- RealizedPnLCalculator: Turns lot allocations into realized gains
- CostBasisCalculator: Cost basis of open lots
- UnrealizedPnLCalculator: Market value minus cost basis
- CashFlowCalculator: External flow implied by a transaction

Design Principles:
- Calculators hold no state between calls; replay state lives in LedgerState
- Errors are raised as typed ServiceError subclasses and converted to
  result values by the public service functions
- Uses Decimal for ALL financial calculations

Usage:
    calc = HoldingsCalculator()
    state = calc.replay(transactions, as_of_date=date(2024, 12, 31))
    holdings = calc.state_to_holdings(state, prices={"AAPL": Decimal("190")})
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence

from portfolio_engine.services.constants import LONG_TERM_HOLDING_DAYS, ZERO
from portfolio_engine.services.exceptions import (
    InvalidSequenceError,
    InvalidTransactionError,
)
from portfolio_engine.services.numeric import quantize_price, quantize_quantity
from portfolio_engine.services.valuation.lots import LotAllocation, LotBook
from portfolio_engine.services.valuation.types import (
    GainTerm,
    Holding,
    RealizedLot,
    Transaction,
    TransactionType,
)

logger = logging.getLogger(__name__)

# Transaction types that must reference a security
_SECURITY_TYPES = frozenset({
    TransactionType.BUY,
    TransactionType.SELL,
    TransactionType.DIVIDEND,
})


# =============================================================================
# TRANSACTION VALIDATOR
# =============================================================================

class TransactionValidator:
    """
    Validates individual ledger entries before they touch any lot.

    Rules:
    - Fees are never negative
    - BUY: positive quantity, positive price
    - SELL: non-zero quantity (sign ignored), positive price
    - BUY/SELL/reinvested DIVIDEND: quantity must survive rounding to 8 places
    - DIVIDEND: non-negative quantity and price; reinvestment needs both positive
    - FEE: zero quantity
    - INTEREST: non-negative amount
    - BUY/SELL/DIVIDEND need a symbol
    """

    @staticmethod
    def validate(txn: Transaction) -> None:
        """
        Raises:
            InvalidTransactionError: Describing the first rule violated
        """
        def fail(reason: str, field_name: str) -> InvalidTransactionError:
            return InvalidTransactionError(
                reason,
                transaction_date=txn.date,
                symbol=txn.symbol_ref,
                field=field_name,
            )

        if txn.fee < ZERO:
            raise fail(f"fee cannot be negative ({txn.fee})", "fee")

        if txn.transaction_type in _SECURITY_TYPES and not txn.symbol_ref:
            raise fail(f"{txn.transaction_type.value} requires a symbol", "symbol_ref")

        ttype = txn.transaction_type
        if ttype == TransactionType.BUY:
            if txn.quantity <= ZERO:
                raise fail(f"buy quantity must be positive ({txn.quantity})", "quantity")
            if txn.price <= ZERO:
                raise fail(f"buy price must be positive ({txn.price})", "price")
            if quantize_quantity(txn.quantity) == ZERO:
                raise fail(f"buy quantity rounds to zero ({txn.quantity})", "quantity")

        elif ttype == TransactionType.SELL:
            if txn.quantity == ZERO:
                raise fail("sell quantity cannot be zero", "quantity")
            if txn.price <= ZERO:
                raise fail(f"sell price must be positive ({txn.price})", "price")
            if quantize_quantity(abs(txn.quantity)) == ZERO:
                raise fail(f"sell quantity rounds to zero ({txn.quantity})", "quantity")

        elif ttype == TransactionType.DIVIDEND:
            if txn.quantity < ZERO:
                raise fail(f"dividend quantity cannot be negative ({txn.quantity})", "quantity")
            if txn.price < ZERO:
                raise fail(f"dividend amount cannot be negative ({txn.price})", "price")
            if txn.reinvest and (txn.quantity == ZERO or txn.price == ZERO):
                raise fail("reinvested dividend needs positive quantity and price", "quantity")
            if txn.reinvest and quantize_quantity(txn.quantity) == ZERO:
                raise fail(f"reinvested quantity rounds to zero ({txn.quantity})", "quantity")

        elif ttype == TransactionType.FEE:
            if txn.quantity != ZERO:
                raise fail(f"fee transaction must carry zero quantity ({txn.quantity})", "quantity")

        elif ttype == TransactionType.INTEREST:
            if txn.price < ZERO or txn.quantity < ZERO:
                raise fail("interest amount cannot be negative", "price")


def cash_amount(txn: Transaction) -> Decimal:
    """
    Cash amount of an income or liability entry.

    quantity × price when a quantity is given (per-share dividend),
    otherwise price alone (lump-sum amount).
    """
    if txn.quantity == ZERO:
        return txn.price
    return txn.gross_amount


# =============================================================================
# LEDGER STATE
# =============================================================================

@dataclass
class LedgerState:
    """
    Mutable state of a ledger replay.

    Attributes:
        book: FIFO lot queues per (account, symbol)
        realized_lots: Every lot portion consumed so far
        dividend_income: Per account
        interest_income: Per account
        fees: Per account
        liabilities: Per account
        last_date: Date of the last applied transaction
    """
    book: LotBook = field(default_factory=LotBook)
    realized_lots: list[RealizedLot] = field(default_factory=list)
    dividend_income: dict[str, Decimal] = field(default_factory=dict)
    interest_income: dict[str, Decimal] = field(default_factory=dict)
    fees: dict[str, Decimal] = field(default_factory=dict)
    liabilities: dict[str, Decimal] = field(default_factory=dict)
    last_date: date | None = None

    @staticmethod
    def accumulate(bucket: dict[str, Decimal], account_ref: str, amount: Decimal) -> None:
        bucket[account_ref] = bucket.get(account_ref, ZERO) + amount


# =============================================================================
# HOLDINGS CALCULATOR
# =============================================================================

class HoldingsCalculator:
    """
    Replays an ordered ledger into FIFO lot queues.

    Lots for a given (account, symbol) are processed in strict chronological
    order. Same-date transactions keep their ledger order.
    """

    def __init__(self):
        self._realized_calc = RealizedPnLCalculator()

    @staticmethod
    def order_transactions(
            transactions: Iterable[Transaction],
            strict_order: bool = False,
    ) -> list[Transaction]:
        """
        Return transactions in ascending date order.

        Args:
            transactions: Ledger entries
            strict_order: If True, an out-of-order ledger is an error
                          instead of being stable-sorted

        Raises:
            InvalidSequenceError: strict_order and a date goes backwards
        """
        txns = list(transactions)
        if strict_order:
            for prev, curr in zip(txns, txns[1:]):
                if curr.date < prev.date:
                    raise InvalidSequenceError(
                        f"Ledger out of order: {curr.date} follows {prev.date}",
                        account_ref=curr.account_ref,
                        symbol=curr.symbol_ref,
                    )
            return txns
        return sorted(txns, key=lambda t: t.date)

    def replay(
            self,
            transactions: Iterable[Transaction],
            as_of_date: date | None = None,
            strict_order: bool = False,
    ) -> LedgerState:
        """
        Replay transactions up to and including as_of_date.

        Args:
            transactions: Ledger entries (any order unless strict_order)
            as_of_date: Ignore transactions after this date (None = all)
            strict_order: Reject out-of-order ledgers

        Returns:
            LedgerState after the last applied transaction

        Raises:
            InvalidTransactionError: Malformed entry
            InvalidSequenceError: Oversell or ordering violation
        """
        state = LedgerState()
        for txn in self.order_transactions(transactions, strict_order):
            if as_of_date is not None and txn.date > as_of_date:
                break
            self.apply_transaction(state, txn)
        return state

    def apply_transaction(self, state: LedgerState, txn: Transaction) -> None:
        """
        Apply one transaction to the replay state.

        Raises:
            InvalidTransactionError: Malformed entry
            InvalidSequenceError: Oversell, or txn dated before the last one applied
        """
        TransactionValidator.validate(txn)

        if state.last_date is not None and txn.date < state.last_date:
            raise InvalidSequenceError(
                f"Transaction on {txn.date} applied after {state.last_date}",
                account_ref=txn.account_ref,
                symbol=txn.symbol_ref,
            )
        state.last_date = txn.date

        account = txn.account_ref
        if txn.fee > ZERO:
            state.accumulate(state.fees, account, txn.fee)

        ttype = txn.transaction_type

        if ttype == TransactionType.BUY:
            self._open_lot(state, txn)

        elif ttype == TransactionType.SELL:
            quantity = quantize_quantity(abs(txn.quantity))
            queue = state.book.queue(account, txn.symbol_ref)
            allocations = queue.consume(quantity, txn.date)
            realized = self._realized_calc.calculate(txn, allocations)
            state.realized_lots.extend(realized)
            logger.debug(
                f"Sold {quantity} {txn.symbol_ref} from {len(allocations)} lot(s) "
                f"in account {account}"
            )

        elif ttype == TransactionType.DIVIDEND:
            state.accumulate(state.dividend_income, account, cash_amount(txn))
            if txn.reinvest:
                self._open_lot(state, txn)

        elif ttype == TransactionType.INTEREST:
            state.accumulate(state.interest_income, account, cash_amount(txn))

        elif ttype == TransactionType.LIABILITY:
            state.accumulate(state.liabilities, account, cash_amount(txn))

        # FEE: only the fee bucket, handled above

    @staticmethod
    def _open_lot(state: LedgerState, txn: Transaction) -> None:
        quantity = quantize_quantity(txn.quantity)
        total_cost = txn.quantity * txn.price + txn.fee
        unit_cost = quantize_price(total_cost / quantity)
        state.book.queue(txn.account_ref, txn.symbol_ref).add(quantity, unit_cost, txn.date)

    def state_to_holdings(
            self,
            state: LedgerState,
            prices: dict[str, Decimal] | None = None,
            excluded_accounts: frozenset[str] = frozenset(),
    ) -> list[Holding]:
        """
        Aggregate open lots into per-symbol holdings.

        Quantities and cost bases are summed across included accounts; the
        per-account queues are left untouched.

        Args:
            state: Replay state
            prices: Current price per symbol; None = cost-only holdings
            excluded_accounts: Accounts left out of the aggregate

        Returns:
            Holdings with non-zero quantity, sorted by symbol
        """
        cost_calc = CostBasisCalculator()
        pnl_calc = UnrealizedPnLCalculator()

        quantities: dict[str, Decimal] = {}
        costs: dict[str, Decimal] = {}
        accounts: dict[str, list[str]] = {}

        for (account_ref, symbol), queue in state.book.items():
            if account_ref in excluded_accounts or not len(queue):
                continue
            quantity, cost = cost_calc.calculate(queue)
            quantities[symbol] = quantities.get(symbol, ZERO) + quantity
            costs[symbol] = costs.get(symbol, ZERO) + cost
            accounts.setdefault(symbol, []).append(account_ref)

        holdings = []
        for symbol in sorted(quantities):
            quantity = quantities[symbol]
            if quantity == ZERO:
                continue
            cost = costs[symbol]

            if prices is None:
                holdings.append(Holding(
                    symbol=symbol,
                    quantity=quantity,
                    cost_basis=cost,
                    account_refs=tuple(sorted(accounts[symbol])),
                ))
                continue

            price = prices[symbol]
            market_value = quantity * price
            holdings.append(Holding(
                symbol=symbol,
                quantity=quantity,
                cost_basis=cost,
                market_value=market_value,
                unrealized_gain_loss=pnl_calc.calculate(market_value, cost),
                current_price=price,
                account_refs=tuple(sorted(accounts[symbol])),
            ))

        return holdings


# =============================================================================
# COST BASIS CALCULATOR
# =============================================================================

class CostBasisCalculator:
    """
    Cost basis of a lot queue under FIFO.

    Each open lot contributes quantity × its own unit cost; there is no
    averaging across lots.
    """

    @staticmethod
    def calculate(lots: Iterable) -> tuple[Decimal, Decimal]:
        """
        Returns:
            (total open quantity, total cost basis)
        """
        quantity = ZERO
        cost = ZERO
        for lot in lots:
            quantity += lot.quantity
            cost += lot.cost_basis
        return quantity, cost


# =============================================================================
# UNREALIZED P&L CALCULATOR
# =============================================================================

class UnrealizedPnLCalculator:
    """Unrealized P&L = market value - cost basis."""

    @staticmethod
    def calculate(market_value: Decimal, cost_basis: Decimal) -> Decimal:
        return market_value - cost_basis


# =============================================================================
# REALIZED P&L CALCULATOR
# =============================================================================

class RealizedPnLCalculator:
    """
    Realized P&L of a sale, computed per consumed lot.

    Net proceeds (quantity × price - fee) are allocated to each lot pro rata
    by quantity; each lot's gain is its proceeds minus its quantity at the
    lot's original unit cost.

    Holding period:
        > 365 days → LONG_TERM
        otherwise  → SHORT_TERM
    """

    @staticmethod
    def calculate(sale: Transaction, allocations: Sequence[LotAllocation]) -> list[RealizedLot]:
        sold_quantity = sum((a.quantity for a in allocations), ZERO)
        if sold_quantity == ZERO:
            return []

        net_proceeds = abs(sale.quantity) * sale.price - sale.fee
        realized = []
        for allocation in allocations:
            proceeds = net_proceeds * allocation.quantity / sold_quantity
            cost = allocation.cost_basis
            holding_days = (sale.date - allocation.lot.acquired_date).days
            term = GainTerm.LONG_TERM if holding_days > LONG_TERM_HOLDING_DAYS else GainTerm.SHORT_TERM
            realized.append(RealizedLot(
                account_ref=sale.account_ref,
                symbol=sale.symbol_ref,
                acquired_date=allocation.lot.acquired_date,
                sold_date=sale.date,
                quantity=allocation.quantity,
                unit_cost=allocation.lot.unit_cost,
                cost_basis=cost,
                proceeds=proceeds,
                gain_loss=proceeds - cost,
                holding_days=holding_days,
                term=term,
            ))
        return realized


# =============================================================================
# CASH FLOW CALCULATOR
# =============================================================================

class CashFlowCalculator:
    """
    External cash flow implied by a transaction.

    The engine tracks securities, not a cash balance, so money crossing the
    portfolio boundary is inferred from trades (positive = money in,
    negative = money out):

        BUY               → +(quantity × price + fee)   investor adds money
        SELL              → -(quantity × price - fee)   investor removes money
        DIVIDEND (cash)   → -amount                     income paid out
        DIVIDEND (reinv.) → +fee                        income stays invested
        FEE               → +fee                        paid from outside
        INTEREST          → -amount                     income paid out
        LIABILITY         → 0                           not a portfolio flow
    """

    @staticmethod
    def calculate(txn: Transaction) -> Decimal:
        ttype = txn.transaction_type
        if ttype == TransactionType.BUY:
            return txn.gross_amount + txn.fee
        if ttype == TransactionType.SELL:
            return -(txn.gross_amount - txn.fee)
        if ttype == TransactionType.DIVIDEND:
            if txn.reinvest:
                return txn.fee
            return -cash_amount(txn) + txn.fee
        if ttype == TransactionType.FEE:
            return txn.fee
        if ttype == TransactionType.INTEREST:
            return -cash_amount(txn) + txn.fee
        return ZERO
