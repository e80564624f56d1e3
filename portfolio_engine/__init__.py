# portfolio_engine/__init__.py
"""
Portfolio analytics engine.

Decimal-precision holdings and cost basis, performance and risk metrics,
correlation analysis and mean-variance optimization over an injected
transaction ledger and price source.
"""

__version__ = "0.1.0"
