# portfolio_engine/services/valuation/service.py
"""
Valuation Service - Main entry point for holdings and value series.

Operations:
- compute_holdings(): Open positions, cost basis and realized gains as of a date
- build_value_series(): Portfolio value and external flow on each requested date

Design Principles:
- Dependency Injection: Price source and ledger passed in, never fetched
- Result values: Public functions return Ok/Err, never raise ServiceError
- Composable: Uses the specialized calculators for each task

Usage:
    from portfolio_engine.services.valuation import ValuationService

    service = ValuationService(price_source=StaticPriceSource(prices))

    holdings = service.get_holdings(ledger.get_transactions(), date(2024, 12, 31))
    series = service.get_value_series(transactions, month_ends)
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence, TYPE_CHECKING

from portfolio_engine.services.analytics.types import ValuePoint
from portfolio_engine.services.constants import ZERO
from portfolio_engine.services.exceptions import InvalidInputError, MissingPriceError
from portfolio_engine.services.results import Err, Result, as_result
from portfolio_engine.services.valuation.calculators import (
    CashFlowCalculator,
    HoldingsCalculator,
    LedgerState,
)
from portfolio_engine.services.valuation.types import (
    Account,
    GainTerm,
    HoldingsResult,
    Transaction,
)

if TYPE_CHECKING:
    from portfolio_engine.services.protocols import PriceSourceProtocol

logger = logging.getLogger(__name__)


def excluded_refs(accounts: Iterable[Account]) -> frozenset[str]:
    return frozenset(a.ref for a in accounts if a.is_excluded)


def _included_total(bucket: dict[str, Decimal], excluded: frozenset[str]) -> Decimal:
    return sum((v for ref, v in bucket.items() if ref not in excluded), ZERO)


def _fetch_prices(
        state: LedgerState,
        calc: HoldingsCalculator,
        price_source: PriceSourceProtocol,
        on_date: date,
        excluded: frozenset[str],
) -> dict[str, Decimal]:
    """
    Prices for every symbol held in an included account.

    Raises:
        MissingPriceError: The source has no price for a held symbol
    """
    prices: dict[str, Decimal] = {}
    for holding in calc.state_to_holdings(state, excluded_accounts=excluded):
        price = price_source.get_price(holding.symbol, on_date)
        if price is None:
            logger.warning(f"Missing price for {holding.symbol} on {on_date}")
            raise MissingPriceError(holding.symbol, on_date)
        prices[holding.symbol] = price
    return prices


# =============================================================================
# HOLDINGS
# =============================================================================

@as_result
def compute_holdings(
        transactions: Iterable[Transaction],
        as_of_date: date,
        price_source: PriceSourceProtocol | None = None,
        accounts: Iterable[Account] = (),
        strict_order: bool = False,
) -> HoldingsResult:
    """
    Replay the ledger up to as_of_date and report holdings.

    FIFO lots are kept per (account, symbol). Aggregate figures skip accounts
    flagged is_excluded; their lots and realized lots are still reported.

    Args:
        transactions: Ledger entries (stable-sorted by date unless strict_order)
        as_of_date: Transactions after this date are ignored
        price_source: Prices for market value; None = cost-only holdings
        accounts: Account flags; accounts not listed are included
        strict_order: Reject out-of-order ledgers instead of sorting

    Returns:
        Ok(HoldingsResult) or Err(InvalidTransaction / InvalidSequence /
        MissingPrice)
    """
    excluded = excluded_refs(accounts)
    calc = HoldingsCalculator()
    state = calc.replay(transactions, as_of_date=as_of_date, strict_order=strict_order)

    prices = None
    if price_source is not None:
        prices = _fetch_prices(state, calc, price_source, as_of_date, excluded)

    holdings = calc.state_to_holdings(state, prices=prices, excluded_accounts=excluded)

    included_lots = [r for r in state.realized_lots if r.account_ref not in excluded]
    short_term = sum((r.gain_loss for r in included_lots if r.term == GainTerm.SHORT_TERM), ZERO)
    long_term = sum((r.gain_loss for r in included_lots if r.term == GainTerm.LONG_TERM), ZERO)

    warnings = []
    if excluded:
        warnings.append(f"Excluded from totals: {', '.join(sorted(excluded))}")

    logger.debug(f"Holdings as of {as_of_date}: {len(holdings)} position(s)")

    return HoldingsResult(
        as_of_date=as_of_date,
        holdings=tuple(holdings),
        realized_gain_loss=short_term + long_term,
        short_term_gain=short_term,
        long_term_gain=long_term,
        realized_lots=tuple(state.realized_lots),
        lots=state.book.snapshot(),
        dividend_income=_included_total(state.dividend_income, excluded),
        interest_income=_included_total(state.interest_income, excluded),
        total_fees=_included_total(state.fees, excluded),
        liabilities=_included_total(state.liabilities, excluded),
        warnings=tuple(warnings),
    )


# =============================================================================
# VALUE SERIES
# =============================================================================

@as_result
def build_value_series(
        transactions: Iterable[Transaction],
        dates: Sequence[date],
        price_source: PriceSourceProtocol,
        accounts: Iterable[Account] = (),
) -> list[ValuePoint]:
    """
    Value the portfolio on each date and attach the external flow since the
    previous date.

    The ledger is replayed once, advancing to each date in turn. A point's
    value is taken after that date's transactions, so its flow is already
    inside total_value. The first point's flow covers only transactions on
    that date; earlier history is part of its starting value.

    Flows follow CashFlowCalculator (buys in, sales and cash income out).

    Args:
        transactions: Ledger entries
        dates: Strictly ascending valuation dates
        price_source: Prices on each date
        accounts: Account flags; excluded accounts add neither value nor flow

    Returns:
        Ok(list[ValuePoint]) or Err(InvalidInput / InvalidTransaction /
        InvalidSequence / MissingPrice)
    """
    if not dates:
        raise InvalidInputError("At least one valuation date is required", field="dates")
    for prev, curr in zip(dates, dates[1:]):
        if curr <= prev:
            raise InvalidInputError(
                f"Valuation dates must be strictly ascending ({curr} after {prev})",
                field="dates",
            )

    excluded = excluded_refs(accounts)
    calc = HoldingsCalculator()
    ordered = calc.order_transactions(transactions)
    state = LedgerState()

    points: list[ValuePoint] = []
    position = 0
    for i, on_date in enumerate(dates):
        flow = ZERO
        while position < len(ordered) and ordered[position].date <= on_date:
            txn = ordered[position]
            calc.apply_transaction(state, txn)
            position += 1
            if txn.account_ref in excluded:
                continue
            if i > 0 or txn.date == on_date:
                flow += CashFlowCalculator.calculate(txn)

        prices = _fetch_prices(state, calc, price_source, on_date, excluded)
        holdings = calc.state_to_holdings(state, prices=prices, excluded_accounts=excluded)
        total = sum((h.market_value for h in holdings), ZERO)
        points.append(ValuePoint(date=on_date, total_value=total, external_flow=flow))

    logger.debug(f"Built value series of {len(points)} point(s) from {dates[0]} to {dates[-1]}")
    return points


# =============================================================================
# SERVICE
# =============================================================================

class ValuationService:
    """
    Holds the valuation dependencies so callers pass only the ledger.

    Attributes:
        _price_source: Injected price lookup
        _accounts: Account flags applied to every call
    """

    def __init__(
            self,
            price_source: PriceSourceProtocol | None = None,
            accounts: Iterable[Account] = (),
    ) -> None:
        self._price_source = price_source
        self._accounts = tuple(accounts)
        logger.info("ValuationService initialized")

    @property
    def accounts(self) -> tuple[Account, ...]:
        return self._accounts

    def get_holdings(
            self,
            transactions: Iterable[Transaction],
            as_of_date: date,
            strict_order: bool = False,
    ) -> Result[HoldingsResult]:
        return compute_holdings(
            transactions,
            as_of_date,
            price_source=self._price_source,
            accounts=self._accounts,
            strict_order=strict_order,
        )

    def get_value_series(
            self,
            transactions: Iterable[Transaction],
            dates: Sequence[date],
    ) -> Result[list[ValuePoint]]:
        if self._price_source is None:
            return Err(InvalidInputError(
                "A price source is required to build a value series",
                field="price_source",
            ))
        return build_value_series(transactions, dates, self._price_source, self._accounts)


