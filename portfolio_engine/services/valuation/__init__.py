# portfolio_engine/services/valuation/__init__.py
"""
Valuation Service Package.

Replays a transaction ledger into holdings, FIFO cost basis and realized
gains, and values it over time.

Architecture:
    valuation/
    ├── __init__.py              # This file - package exports
    ├── types.py                 # Transactions, lots, holdings
    ├── lots.py                  # FIFO lot queues per (account, symbol)
    ├── calculators.py           # Ledger replay and point-in-time math
    ├── sources.py               # In-memory price source and ledger
    └── service.py               # compute_holdings, build_value_series

Usage:
    from portfolio_engine.services.valuation import ValuationService, StaticPriceSource

    service = ValuationService(price_source=StaticPriceSource({"AAPL": Decimal("190")}))
    result = service.get_holdings(transactions, date(2024, 12, 31))
    if result.is_ok:
        print(result.value.summary.total_value)
"""

from portfolio_engine.services.valuation.calculators import (
    CashFlowCalculator,
    CostBasisCalculator,
    HoldingsCalculator,
    RealizedPnLCalculator,
    TransactionValidator,
    UnrealizedPnLCalculator,
)
from portfolio_engine.services.valuation.lots import LotAllocation, LotBook, LotQueue
from portfolio_engine.services.valuation.service import (
    ValuationService,
    build_value_series,
    compute_holdings,
)
from portfolio_engine.services.valuation.sources import InMemoryLedger, StaticPriceSource
from portfolio_engine.services.valuation.types import (
    Account,
    GainTerm,
    Holding,
    HoldingsResult,
    HoldingsSummary,
    Lot,
    RealizedLot,
    Transaction,
    TransactionType,
)

__all__ = [
    # Service
    "ValuationService",
    "compute_holdings",
    "build_value_series",
    # Sources
    "StaticPriceSource",
    "InMemoryLedger",
    # Calculators
    "HoldingsCalculator",
    "TransactionValidator",
    "CostBasisCalculator",
    "UnrealizedPnLCalculator",
    "RealizedPnLCalculator",
    "CashFlowCalculator",
    # Lots
    "LotQueue",
    "LotBook",
    "LotAllocation",
    # Types
    "Transaction",
    "TransactionType",
    "Account",
    "Lot",
    "RealizedLot",
    "GainTerm",
    "Holding",
    "HoldingsSummary",
    "HoldingsResult",
]
