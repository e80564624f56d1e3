# tests/test_correlation_id.py
"""
Tests for correlation ID context management.
"""

import logging

from portfolio_engine.utils.context import (
    clear_correlation_id,
    correlation_scope,
    get_correlation_id,
    new_correlation_id,
    set_correlation_id,
)
from portfolio_engine.utils.logging import NO_CORRELATION_ID, CorrelationIdFilter


def _record() -> logging.LogRecord:
    return logging.LogRecord("test", logging.INFO, __file__, 1, "message", None, None)


class TestCorrelationIdContext:
    """Tests for correlation ID context functions."""

    def test_get_returns_none_when_not_set(self):
        """Should return None when correlation ID is not set."""
        clear_correlation_id()
        assert get_correlation_id() is None

    def test_set_and_get_correlation_id(self):
        """Should set and retrieve correlation ID."""
        set_correlation_id("test-correlation-123")
        assert get_correlation_id() == "test-correlation-123"
        clear_correlation_id()

    def test_clear_correlation_id(self):
        """Should clear correlation ID."""
        set_correlation_id("test-correlation-456")
        clear_correlation_id()
        assert get_correlation_id() is None

    def test_new_ids_are_unique(self):
        first, second = new_correlation_id(), new_correlation_id()

        assert first != second
        assert len(first) == 12


class TestCorrelationScope:
    """Tests for correlation_scope."""

    def test_generates_and_restores(self):
        clear_correlation_id()
        with correlation_scope() as run_id:
            assert get_correlation_id() == run_id
        assert get_correlation_id() is None

    def test_explicit_id(self):
        with correlation_scope("run-1") as run_id:
            assert run_id == "run-1"
            assert get_correlation_id() == "run-1"

    def test_nested_scope_reuses_outer_id(self):
        with correlation_scope("outer") as outer:
            with correlation_scope() as inner:
                assert inner == outer
            assert get_correlation_id() == "outer"

    def test_restores_after_exception(self):
        clear_correlation_id()
        try:
            with correlation_scope("failing"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert get_correlation_id() is None


class TestCorrelationIdFilter:
    """Tests for CorrelationIdFilter."""

    def test_adds_current_id(self):
        record = _record()
        with correlation_scope("run-42"):
            assert CorrelationIdFilter().filter(record)
        assert record.correlation_id == "run-42"

    def test_placeholder_without_id(self):
        clear_correlation_id()
        record = _record()
        CorrelationIdFilter().filter(record)
        assert record.correlation_id == NO_CORRELATION_ID
