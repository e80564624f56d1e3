# portfolio_engine/utils/__init__.py
"""
Utility modules for the portfolio analytics engine.

- logging: Logging configuration with correlation ID support
- context: Run context management for correlation IDs

Usage:
    from portfolio_engine.utils import setup_logging
    from portfolio_engine.utils import correlation_scope, get_correlation_id
"""

from portfolio_engine.utils.context import (
    get_correlation_id,
    set_correlation_id,
    clear_correlation_id,
    new_correlation_id,
    correlation_scope,
)
from portfolio_engine.utils.logging import setup_logging

__all__ = [
    # Logging
    "setup_logging",
    # Context
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
    "new_correlation_id",
    "correlation_scope",
]
