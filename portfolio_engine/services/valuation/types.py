# portfolio_engine/services/valuation/types.py
"""
Data types for the Valuation (holdings and cost-basis) calculators.

All monetary and quantity fields are Decimal.

Architecture:
    - TransactionType: Kinds of ledger entries the engine understands
    - Transaction: Immutable ledger record supplied by the caller
    - Account: Account reference with its aggregate-exclusion flag
    - Lot: One open FIFO tax lot
    - RealizedLot: The part of one lot consumed by one sale
    - Holding: Aggregated per-symbol view with market value
    - HoldingsSummary: Portfolio-level totals
    - HoldingsResult: Everything compute_holdings produces
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

from portfolio_engine.services.constants import ZERO


class TransactionType(str, Enum):
    """Ledger entry types."""
    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"
    FEE = "fee"
    INTEREST = "interest"
    LIABILITY = "liability"


class GainTerm(str, Enum):
    """Holding-period classification of a realized gain."""
    SHORT_TERM = "short_term"
    LONG_TERM = "long_term"


# =============================================================================
# INPUT TYPES
# =============================================================================

@dataclass(frozen=True)
class Transaction:
    """
    A single ledger entry.

    Attributes:
        transaction_type: BUY, SELL, DIVIDEND, FEE, INTEREST or LIABILITY
        date: Trade date
        account_ref: Owning account identifier
        symbol_ref: Security symbol (None for account-level entries)
        quantity: Shares; sells may be negative or positive (read as a reduction)
        price: Price per share (per-share amount for cash dividends)
        fee: Commission or fee, never negative
        reinvest: For dividends, True = buy shares, False = cash income
    """
    transaction_type: TransactionType
    date: date
    account_ref: str
    symbol_ref: str | None = None
    quantity: Decimal = ZERO
    price: Decimal = ZERO
    fee: Decimal = ZERO
    reinvest: bool = False

    @property
    def gross_amount(self) -> Decimal:
        """|quantity| × price, before fees."""
        return abs(self.quantity) * self.price


@dataclass(frozen=True)
class Account:
    """
    Account reference.

    Attributes:
        ref: Identifier matching Transaction.account_ref
        name: Display name
        is_excluded: If True, the account is left out of aggregate views
    """
    ref: str
    name: str = ""
    is_excluded: bool = False


# =============================================================================
# LOT TYPES
# =============================================================================

@dataclass(frozen=True)
class Lot:
    """
    An open FIFO tax lot.

    Attributes:
        quantity: Shares still open in this lot
        unit_cost: Cost per share including the purchase fee
        acquired_date: Purchase (or reinvestment) date
        original_quantity: Shares the lot was opened with
    """
    quantity: Decimal
    unit_cost: Decimal
    acquired_date: date
    original_quantity: Decimal

    @property
    def cost_basis(self) -> Decimal:
        """Cost of the open shares."""
        return self.quantity * self.unit_cost


@dataclass(frozen=True)
class RealizedLot:
    """
    The portion of one lot consumed by one sale.

    Attributes:
        account_ref: Account the lot belonged to
        symbol: Security symbol
        acquired_date: When the lot was bought
        sold_date: When this portion was sold
        quantity: Shares sold out of the lot
        unit_cost: The lot's original cost per share
        cost_basis: quantity × unit_cost
        proceeds: Share of the sale proceeds (net of sell fee)
        gain_loss: proceeds - cost_basis
        holding_days: Days between acquisition and sale
        term: SHORT_TERM or LONG_TERM
    """
    account_ref: str
    symbol: str
    acquired_date: date
    sold_date: date
    quantity: Decimal
    unit_cost: Decimal
    cost_basis: Decimal
    proceeds: Decimal
    gain_loss: Decimal
    holding_days: int
    term: GainTerm


# =============================================================================
# OUTPUT TYPES
# =============================================================================

@dataclass(frozen=True)
class Holding:
    """
    Aggregated position in one symbol across included accounts.

    Market fields are None when no price source was supplied.

    Attributes:
        symbol: Security symbol
        quantity: Total open shares
        cost_basis: Total cost of open shares
        market_value: quantity × current_price
        unrealized_gain_loss: market_value - cost_basis
        current_price: Price used for valuation
        account_refs: Accounts contributing to this holding
    """
    symbol: str
    quantity: Decimal
    cost_basis: Decimal
    market_value: Decimal | None = None
    unrealized_gain_loss: Decimal | None = None
    current_price: Decimal | None = None
    account_refs: tuple[str, ...] = ()

    @property
    def average_cost(self) -> Decimal | None:
        """Cost basis per share."""
        if self.quantity == ZERO:
            return None
        return self.cost_basis / self.quantity

    @property
    def unrealized_gain_loss_pct(self) -> Decimal | None:
        """Unrealized gain/loss as a percentage of cost basis (12.5 = 12.5%)."""
        if self.unrealized_gain_loss is None or self.cost_basis == ZERO:
            return None
        return self.unrealized_gain_loss / self.cost_basis * Decimal("100")


@dataclass(frozen=True)
class HoldingsSummary:
    """Portfolio-level totals over the included holdings."""
    total_value: Decimal | None
    total_cost_basis: Decimal
    total_unrealized_gain_loss: Decimal | None
    total_unrealized_gain_loss_pct: Decimal | None
    holdings_count: int


@dataclass(frozen=True)
class HoldingsResult:
    """
    Result of replaying a ledger up to an as-of date.

    Aggregate fields (holdings, realized totals, income) exclude accounts
    flagged is_excluded; `lots` and `realized_lots` keep every account.

    Attributes:
        as_of_date: Valuation date
        holdings: Aggregated holdings, sorted by symbol
        realized_gain_loss: Total realized gain/loss
        short_term_gain: Realized gain/loss on lots held <= 365 days
        long_term_gain: Realized gain/loss on lots held > 365 days
        realized_lots: Every lot portion consumed by a sale
        lots: Open lots per (account_ref, symbol)
        dividend_income: Cash and reinvested dividends
        interest_income: Interest received
        total_fees: Fees on every transaction type
        liabilities: Sum of liability entries
        warnings: Non-fatal notes
    """
    as_of_date: date
    holdings: tuple[Holding, ...]
    realized_gain_loss: Decimal
    short_term_gain: Decimal = ZERO
    long_term_gain: Decimal = ZERO
    realized_lots: tuple[RealizedLot, ...] = ()
    lots: dict[tuple[str, str], tuple[Lot, ...]] = field(default_factory=dict)
    dividend_income: Decimal = ZERO
    interest_income: Decimal = ZERO
    total_fees: Decimal = ZERO
    liabilities: Decimal = ZERO
    warnings: tuple[str, ...] = ()

    def get_holding(self, symbol: str) -> Holding | None:
        for holding in self.holdings:
            if holding.symbol == symbol:
                return holding
        return None

    @property
    def summary(self) -> HoldingsSummary:
        total_cost = sum((h.cost_basis for h in self.holdings), ZERO)
        priced = all(h.market_value is not None for h in self.holdings)

        if priced:
            total_value = sum((h.market_value for h in self.holdings), ZERO)
            total_pnl = total_value - total_cost
            pnl_pct = total_pnl / total_cost * Decimal("100") if total_cost != ZERO else None
        else:
            total_value = None
            total_pnl = None
            pnl_pct = None

        return HoldingsSummary(
            total_value=total_value,
            total_cost_basis=total_cost,
            total_unrealized_gain_loss=total_pnl,
            total_unrealized_gain_loss_pct=pnl_pct,
            holdings_count=len(self.holdings),
        )
