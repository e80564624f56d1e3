# tests/services/valuation/test_holdings_calculators.py
"""
Tests for ledger replay, cost basis and realized P&L.

Test Coverage:
- compute_holdings: FIFO realized gain, remaining lots, as-of filtering
- Fees folded into unit cost and netted from proceeds
- TransactionValidator rules surfaced as INVALID_TRANSACTION
- Oversell and strict ordering surfaced as INVALID_SEQUENCE
- Long-term vs short-term classification
- Excluded accounts
- Income, fee and liability buckets
- CashFlowCalculator sign conventions
- StaticPriceSource lookup and MISSING_PRICE
"""

from datetime import date
from decimal import Decimal

import pytest

from portfolio_engine.services.exceptions import ErrorKind, InvalidSequenceError
from portfolio_engine.services.valuation.calculators import (
    CashFlowCalculator,
    HoldingsCalculator,
    TransactionValidator,
    cash_amount,
)
from portfolio_engine.services.valuation.service import compute_holdings
from portfolio_engine.services.valuation.sources import InMemoryLedger, StaticPriceSource
from portfolio_engine.services.valuation.types import (
    Account,
    GainTerm,
    Transaction,
    TransactionType,
)


def _txn(ttype: TransactionType, on: date, **kwargs) -> Transaction:
    kwargs.setdefault("account_ref", "brokerage")
    return Transaction(transaction_type=ttype, date=on, **kwargs)


# =============================================================================
# FIFO REPLAY
# =============================================================================

class TestFifoReplay:
    """Buy 100 @ 150, buy 50 @ 300, sell 25 @ 160."""

    def test_realized_gain(self, fifo_ledger):
        result = compute_holdings(fifo_ledger, date(2024, 12, 31)).unwrap()

        assert result.realized_gain_loss == Decimal("250")
        assert len(result.realized_lots) == 1
        realized = result.realized_lots[0]
        assert realized.quantity == Decimal("25")
        assert realized.cost_basis == Decimal("3750")
        assert realized.proceeds == Decimal("4000")

    def test_remaining_lots(self, fifo_ledger):
        result = compute_holdings(fifo_ledger, date(2024, 12, 31)).unwrap()

        lots = result.lots[("brokerage", "AAPL")]
        assert [(lot.quantity, lot.unit_cost) for lot in lots] == [
            (Decimal("75"), Decimal("150")),
            (Decimal("50"), Decimal("300")),
        ]

    def test_holding_aggregate(self, fifo_ledger):
        holding = compute_holdings(fifo_ledger, date(2024, 12, 31)).unwrap().get_holding("AAPL")

        assert holding.quantity == Decimal("125")
        assert holding.cost_basis == Decimal("26250")
        assert holding.average_cost == Decimal("210")
        assert holding.market_value is None
        assert holding.account_refs == ("brokerage",)

    def test_as_of_date_ignores_later_transactions(self, fifo_ledger):
        result = compute_holdings(fifo_ledger, date(2024, 2, 15)).unwrap()

        assert result.realized_gain_loss == Decimal("0")
        assert result.get_holding("AAPL").quantity == Decimal("150")

    def test_unknown_symbol_lookup(self, fifo_ledger):
        result = compute_holdings(fifo_ledger, date(2024, 12, 31)).unwrap()
        assert result.get_holding("MSFT") is None

    def test_ledger_protocol_input(self, fifo_ledger):
        ledger = InMemoryLedger(fifo_ledger)
        result = compute_holdings(ledger.get_transactions(), date(2024, 12, 31))
        assert result.is_ok
        assert len(ledger) == 3


# =============================================================================
# FEES
# =============================================================================

class TestFees:
    """Fees on buys and sells."""

    def test_buy_fee_in_unit_cost(self, make_buy):
        ledger = [make_buy("AAPL", "3", "10", date(2024, 1, 2), fee="1")]
        result = compute_holdings(ledger, date(2024, 1, 2)).unwrap()

        lot = result.lots[("brokerage", "AAPL")][0]
        assert lot.unit_cost == Decimal("10.33333333")
        assert result.total_fees == Decimal("1")

    def test_sell_fee_reduces_proceeds(self, make_buy, make_sell):
        ledger = [
            make_buy("AAPL", "10", "100", date(2024, 1, 2)),
            make_sell("AAPL", "10", "110", date(2024, 2, 1), fee="5"),
        ]
        result = compute_holdings(ledger, date(2024, 2, 1)).unwrap()

        assert result.realized_gain_loss == Decimal("95")
        assert result.holdings == ()

    def test_negative_sell_quantity_is_a_reduction(self, make_buy, make_sell):
        ledger = [
            make_buy("AAPL", "10", "100", date(2024, 1, 2)),
            make_sell("AAPL", "-4", "100", date(2024, 2, 1)),
        ]
        result = compute_holdings(ledger, date(2024, 2, 1)).unwrap()
        assert result.get_holding("AAPL").quantity == Decimal("6")


# =============================================================================
# VALIDATION AND SEQUENCING
# =============================================================================

class TestValidation:
    """Malformed entries and replay ordering."""

    @pytest.mark.parametrize("txn", [
        _txn(TransactionType.BUY, date(2024, 1, 2), symbol_ref="AAPL",
             quantity=Decimal("10"), price=Decimal("100"), fee=Decimal("-1")),
        _txn(TransactionType.BUY, date(2024, 1, 2), symbol_ref="AAPL",
             quantity=Decimal("0"), price=Decimal("100")),
        _txn(TransactionType.BUY, date(2024, 1, 2), symbol_ref="AAPL",
             quantity=Decimal("10"), price=Decimal("0")),
        _txn(TransactionType.BUY, date(2024, 1, 2), quantity=Decimal("10"), price=Decimal("100")),
        _txn(TransactionType.SELL, date(2024, 1, 2), symbol_ref="AAPL",
             quantity=Decimal("0"), price=Decimal("100")),
        _txn(TransactionType.DIVIDEND, date(2024, 1, 2), symbol_ref="AAPL",
             quantity=Decimal("0"), price=Decimal("5"), reinvest=True),
        _txn(TransactionType.FEE, date(2024, 1, 2), quantity=Decimal("1"), fee=Decimal("5")),
        _txn(TransactionType.INTEREST, date(2024, 1, 2), price=Decimal("-3")),
        _txn(TransactionType.BUY, date(2024, 1, 2), symbol_ref="AAPL",
             quantity=Decimal("0.000000001"), price=Decimal("10")),
        _txn(TransactionType.SELL, date(2024, 1, 2), symbol_ref="AAPL",
             quantity=Decimal("-0.000000004"), price=Decimal("10")),
        _txn(TransactionType.DIVIDEND, date(2024, 1, 2), symbol_ref="AAPL",
             quantity=Decimal("0.000000001"), price=Decimal("5"), reinvest=True),
    ], ids=[
        "negative-fee",
        "zero-buy-quantity",
        "zero-buy-price",
        "buy-without-symbol",
        "zero-sell-quantity",
        "reinvest-without-shares",
        "fee-with-quantity",
        "negative-interest",
        "buy-quantity-rounds-to-zero",
        "sell-quantity-rounds-to-zero",
        "reinvest-quantity-rounds-to-zero",
    ])
    def test_invalid_transaction(self, txn):
        result = compute_holdings([txn], date(2024, 12, 31))
        assert result.is_err
        assert result.kind is ErrorKind.INVALID_TRANSACTION

    def test_validator_accepts_lump_sum_dividend(self):
        txn = _txn(TransactionType.DIVIDEND, date(2024, 1, 2), symbol_ref="AAPL", price=Decimal("50"))
        TransactionValidator.validate(txn)

    def test_oversell(self, make_buy, make_sell):
        ledger = [
            make_buy("AAPL", "10", "100", date(2024, 1, 2)),
            make_sell("AAPL", "11", "100", date(2024, 2, 1)),
        ]
        result = compute_holdings(ledger, date(2024, 12, 31))

        assert result.kind is ErrorKind.INVALID_SEQUENCE
        assert "exceeds available quantity 10" in result.message

    def test_sell_in_other_account_is_oversell(self, make_buy, make_sell):
        ledger = [
            make_buy("AAPL", "10", "100", date(2024, 1, 2), account="brokerage"),
            make_sell("AAPL", "5", "100", date(2024, 2, 1), account="ira"),
        ]
        result = compute_holdings(ledger, date(2024, 12, 31))
        assert result.kind is ErrorKind.INVALID_SEQUENCE

    def test_out_of_order_ledger_sorted_by_default(self, fifo_ledger):
        result = compute_holdings(list(reversed(fifo_ledger)), date(2024, 12, 31))
        assert result.is_ok
        assert result.value.realized_gain_loss == Decimal("250")

    def test_strict_order_rejects_out_of_order_ledger(self, fifo_ledger):
        result = compute_holdings(list(reversed(fifo_ledger)), date(2024, 12, 31), strict_order=True)
        assert result.kind is ErrorKind.INVALID_SEQUENCE

    def test_apply_transaction_rejects_backdated_entry(self, make_buy):
        calc = HoldingsCalculator()
        state = calc.replay([make_buy("AAPL", "10", "100", date(2024, 2, 1))])

        with pytest.raises(InvalidSequenceError):
            calc.apply_transaction(state, make_buy("AAPL", "1", "100", date(2024, 1, 1)))


# =============================================================================
# HOLDING PERIOD
# =============================================================================

class TestHoldingPeriod:
    """Long-term means held more than 365 days."""

    def test_long_term(self, make_buy, make_sell):
        ledger = [
            make_buy("AAPL", "10", "100", date(2023, 1, 1)),
            make_sell("AAPL", "10", "120", date(2024, 1, 2)),
        ]
        result = compute_holdings(ledger, date(2024, 12, 31)).unwrap()

        assert result.realized_lots[0].holding_days == 366
        assert result.realized_lots[0].term == GainTerm.LONG_TERM
        assert result.long_term_gain == Decimal("200")
        assert result.short_term_gain == Decimal("0")

    def test_exactly_365_days_is_short_term(self, make_buy, make_sell):
        ledger = [
            make_buy("AAPL", "10", "100", date(2023, 1, 2)),
            make_sell("AAPL", "10", "90", date(2024, 1, 2)),
        ]
        result = compute_holdings(ledger, date(2024, 12, 31)).unwrap()

        assert result.realized_lots[0].term == GainTerm.SHORT_TERM
        assert result.short_term_gain == Decimal("-100")

    def test_sale_across_lots_splits_terms(self, make_buy, make_sell):
        ledger = [
            make_buy("AAPL", "10", "100", date(2022, 6, 1)),
            make_buy("AAPL", "10", "100", date(2023, 12, 1)),
            make_sell("AAPL", "20", "110", date(2024, 1, 2)),
        ]
        result = compute_holdings(ledger, date(2024, 12, 31)).unwrap()

        assert [r.term for r in result.realized_lots] == [GainTerm.LONG_TERM, GainTerm.SHORT_TERM]
        assert result.long_term_gain == Decimal("100")
        assert result.short_term_gain == Decimal("100")


# =============================================================================
# ACCOUNTS
# =============================================================================

class TestExcludedAccounts:
    """Excluded accounts stay out of aggregates but keep their lots."""

    def test_excluded_account(self, fifo_ledger, make_buy):
        ledger = fifo_ledger + [make_buy("AAPL", "10", "100", date(2024, 1, 5), account="ira")]
        accounts = [Account(ref="ira", name="IRA", is_excluded=True)]

        result = compute_holdings(ledger, date(2024, 12, 31), accounts=accounts).unwrap()

        assert result.get_holding("AAPL").quantity == Decimal("125")
        assert ("ira", "AAPL") in result.lots
        assert result.warnings == ("Excluded from totals: ira",)

    def test_included_accounts_are_aggregated(self, fifo_ledger, make_buy):
        ledger = fifo_ledger + [make_buy("AAPL", "10", "100", date(2024, 1, 5), account="ira")]

        holding = compute_holdings(ledger, date(2024, 12, 31)).unwrap().get_holding("AAPL")

        assert holding.quantity == Decimal("135")
        assert holding.account_refs == ("brokerage", "ira")


# =============================================================================
# INCOME AND OTHER BUCKETS
# =============================================================================

class TestIncome:
    """Dividends, interest, fees and liabilities."""

    def test_lump_sum_dividend(self, make_buy):
        ledger = [
            make_buy("AAPL", "10", "100", date(2024, 1, 2)),
            _txn(TransactionType.DIVIDEND, date(2024, 3, 1), symbol_ref="AAPL", price=Decimal("50")),
        ]
        result = compute_holdings(ledger, date(2024, 12, 31)).unwrap()
        assert result.dividend_income == Decimal("50")

    def test_per_share_dividend(self, make_buy):
        ledger = [
            make_buy("AAPL", "100", "100", date(2024, 1, 2)),
            _txn(TransactionType.DIVIDEND, date(2024, 3, 1), symbol_ref="AAPL",
                 quantity=Decimal("100"), price=Decimal("0.5")),
        ]
        result = compute_holdings(ledger, date(2024, 12, 31)).unwrap()
        assert result.dividend_income == Decimal("50")
        assert result.get_holding("AAPL").quantity == Decimal("100")

    def test_reinvested_dividend_opens_lot(self, make_buy):
        ledger = [
            make_buy("AAPL", "10", "100", date(2024, 1, 2)),
            _txn(TransactionType.DIVIDEND, date(2024, 3, 1), symbol_ref="AAPL",
                 quantity=Decimal("2"), price=Decimal("25"), reinvest=True),
        ]
        result = compute_holdings(ledger, date(2024, 12, 31)).unwrap()

        lots = result.lots[("brokerage", "AAPL")]
        assert len(lots) == 2
        assert lots[1].unit_cost == Decimal("25")
        assert lots[1].acquired_date == date(2024, 3, 1)
        assert result.dividend_income == Decimal("50")

    def test_interest_fees_and_liabilities(self):
        ledger = [
            _txn(TransactionType.INTEREST, date(2024, 1, 31), price=Decimal("20")),
            _txn(TransactionType.FEE, date(2024, 2, 1), fee=Decimal("3")),
            _txn(TransactionType.LIABILITY, date(2024, 2, 2), price=Decimal("500")),
        ]
        result = compute_holdings(ledger, date(2024, 12, 31)).unwrap()

        assert result.interest_income == Decimal("20")
        assert result.total_fees == Decimal("3")
        assert result.liabilities == Decimal("500")
        assert result.holdings == ()

    def test_cash_amount(self):
        lump = _txn(TransactionType.DIVIDEND, date(2024, 1, 2), symbol_ref="AAPL", price=Decimal("50"))
        per_share = _txn(TransactionType.DIVIDEND, date(2024, 1, 2), symbol_ref="AAPL",
                         quantity=Decimal("10"), price=Decimal("2"))
        assert cash_amount(lump) == Decimal("50")
        assert cash_amount(per_share) == Decimal("20")


# =============================================================================
# CASH FLOWS
# =============================================================================

class TestCashFlowCalculator:
    """External flow implied by each transaction type."""

    @pytest.mark.parametrize("txn, expected", [
        (_txn(TransactionType.BUY, date(2024, 1, 2), symbol_ref="AAPL",
              quantity=Decimal("10"), price=Decimal("100"), fee=Decimal("5")), Decimal("1005")),
        (_txn(TransactionType.SELL, date(2024, 1, 2), symbol_ref="AAPL",
              quantity=Decimal("10"), price=Decimal("100"), fee=Decimal("5")), Decimal("-995")),
        (_txn(TransactionType.DIVIDEND, date(2024, 1, 2), symbol_ref="AAPL",
              price=Decimal("50")), Decimal("-50")),
        (_txn(TransactionType.DIVIDEND, date(2024, 1, 2), symbol_ref="AAPL",
              quantity=Decimal("2"), price=Decimal("25"), fee=Decimal("1"), reinvest=True), Decimal("1")),
        (_txn(TransactionType.FEE, date(2024, 1, 2), fee=Decimal("3")), Decimal("3")),
        (_txn(TransactionType.INTEREST, date(2024, 1, 2), price=Decimal("20")), Decimal("-20")),
        (_txn(TransactionType.LIABILITY, date(2024, 1, 2), price=Decimal("500")), Decimal("0")),
    ], ids=["buy", "sell", "cash-dividend", "reinvested-dividend", "fee", "interest", "liability"])
    def test_flow(self, txn, expected):
        assert CashFlowCalculator.calculate(txn) == expected


# =============================================================================
# PRICING
# =============================================================================

class TestPricing:
    """Market values from a price source."""

    def test_market_value_and_summary(self, fifo_ledger):
        prices = StaticPriceSource({"AAPL": Decimal("200")})
        result = compute_holdings(fifo_ledger, date(2024, 12, 31), price_source=prices).unwrap()

        holding = result.get_holding("AAPL")
        assert holding.market_value == Decimal("25000")
        assert holding.unrealized_gain_loss == Decimal("-1250")
        assert holding.current_price == Decimal("200")

        summary = result.summary
        assert summary.total_value == Decimal("25000")
        assert summary.total_cost_basis == Decimal("26250")
        assert summary.total_unrealized_gain_loss == Decimal("-1250")
        assert summary.holdings_count == 1
        assert abs(summary.total_unrealized_gain_loss_pct - Decimal("-4.7619")) < Decimal("0.0001")

    def test_summary_without_prices(self, fifo_ledger):
        summary = compute_holdings(fifo_ledger, date(2024, 12, 31)).unwrap().summary
        assert summary.total_value is None
        assert summary.total_cost_basis == Decimal("26250")

    def test_missing_price(self, fifo_ledger):
        prices = StaticPriceSource({"MSFT": Decimal("400")})
        result = compute_holdings(fifo_ledger, date(2024, 12, 31), price_source=prices)

        assert result.kind is ErrorKind.MISSING_PRICE
        assert result.error.symbol == "AAPL"

    def test_closed_position_needs_no_price(self, make_buy, make_sell):
        ledger = [
            make_buy("AAPL", "10", "100", date(2024, 1, 2)),
            make_sell("AAPL", "10", "100", date(2024, 2, 1)),
        ]
        result = compute_holdings(ledger, date(2024, 12, 31), price_source=StaticPriceSource({}))
        assert result.is_ok


class TestStaticPriceSource:
    """Tests for StaticPriceSource."""

    @pytest.fixture
    def prices(self) -> StaticPriceSource:
        return StaticPriceSource({
            "AAPL": {
                date(2024, 1, 2): Decimal("185"),
                date(2024, 1, 5): Decimal("182"),
            },
            "CASHX": Decimal("1"),
        })

    def test_exact_date(self, prices):
        assert prices.get_price("AAPL", date(2024, 1, 5)) == Decimal("182")

    def test_latest_earlier_price(self, prices):
        assert prices.get_price("AAPL", date(2024, 1, 4)) == Decimal("185")

    def test_before_history(self, prices):
        assert prices.get_price("AAPL", date(2024, 1, 1)) is None

    def test_constant_price(self, prices):
        assert prices.get_price("CASHX", date(1999, 1, 1)) == Decimal("1")

    def test_unknown_symbol(self, prices):
        assert prices.get_price("MSFT", date(2024, 1, 5)) is None
