# portfolio_engine/services/__init__.py
"""
Calculation layer of the portfolio analytics engine.

Services:
- Have NO knowledge of storage or transport (ledger and prices are injected)
- Raise domain-specific exceptions internally
- Return tagged Ok/Err results from every public operation

Architecture:
    services/
    ├── __init__.py                  # This file
    ├── exceptions.py                # Error taxonomy (ErrorKind tags)
    ├── results.py                   # Ok / Err / UNDEFINED, @as_result
    ├── constants.py                 # Numeric parameters and limits
    ├── numeric.py                   # Decimal helpers (sqrt, power, stats)
    ├── protocols.py                 # Ledger / price source / cache interfaces
    ├── valuation/                   # Holdings, FIFO lots, value series
    ├── analytics/                   # Returns, risk, benchmark, correlation
    └── optimization/                # Efficient frontier

Import from the subpackages directly:
    from portfolio_engine.services.valuation import ValuationService
    from portfolio_engine.services.analytics import AnalyticsService
    from portfolio_engine.services.optimization import efficient_frontier
"""
