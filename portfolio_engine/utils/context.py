# portfolio_engine/utils/context.py
"""
Run context management for the analytics engine.

Holds the correlation ID of the current analysis run so every log line
emitted while it runs can be traced back to it.

Uses Python's contextvars, so concurrent runs in different threads or
tasks each see their own ID.

Usage:
    from portfolio_engine.utils.context import correlation_scope, get_correlation_id

    with correlation_scope() as run_id:
        ...
        get_correlation_id()  # Returns run_id
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

# =============================================================================
# CONTEXT VARIABLES
# =============================================================================

# Correlation ID for run tracing
_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


# =============================================================================
# CORRELATION ID
# =============================================================================

def get_correlation_id() -> str | None:
    """
    Get the current run's correlation ID.

    Returns:
        The correlation ID for the current run, or None if not set.
    """
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    """
    Set the correlation ID for the current run.

    Args:
        correlation_id: Unique identifier for this run
    """
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID."""
    _correlation_id_var.set(None)


def new_correlation_id() -> str:
    """Short random identifier suitable for log correlation."""
    return uuid.uuid4().hex[:12]


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """
    Set a correlation ID for the duration of a block, then restore the
    previous one.

    An existing ID is reused when none is given, so nested runs share the
    outer run's ID.
    """
    current = get_correlation_id()
    run_id = correlation_id or current or new_correlation_id()
    token = _correlation_id_var.set(run_id)
    try:
        yield run_id
    finally:
        _correlation_id_var.reset(token)
