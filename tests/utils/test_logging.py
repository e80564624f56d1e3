# tests/utils/test_logging.py
"""
Tests for logging setup.

Test Coverage:
- JsonFormatter: valid JSON, correlation ID, Decimal/date/enum extras, exceptions
- _get_log_level: names, case, invalid levels
- setup_logging: engine logger handler, level, formatter choice, root untouched
- Service run summaries carry their figures as extras
"""

import json
import logging
import sys
from datetime import date
from decimal import Decimal

import pytest

from portfolio_engine.services.analytics.service import AnalyticsCache, AnalyticsService
from portfolio_engine.services.exceptions import ErrorKind
from portfolio_engine.utils.logging import (
    ENGINE_LOGGER,
    NO_CORRELATION_ID,
    CorrelationIdFilter,
    JsonFormatter,
    _get_log_level,
    setup_logging,
)


def _record(msg: str = "Analysis complete", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "portfolio_engine.test", logging.INFO, __file__, 10, msg, None, None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def engine_logger():
    """Put the engine logger back the way it was before the test."""
    logger = logging.getLogger(ENGINE_LOGGER)
    handlers = list(logger.handlers)
    level, propagate = logger.level, logger.propagate
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


# =============================================================================
# JSON FORMATTER
# =============================================================================

class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_output_is_json(self):
        entry = json.loads(JsonFormatter().format(_record(correlation_id="abc123")))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "portfolio_engine.test"
        assert entry["message"] == "Analysis complete"
        assert entry["correlation_id"] == "abc123"
        assert "timestamp" in entry

    def test_missing_correlation_id(self):
        entry = json.loads(JsonFormatter().format(_record()))
        assert entry["correlation_id"] == NO_CORRELATION_ID

    def test_extras(self):
        record = _record(points=252, twr=Decimal("0.1234"))
        entry = json.loads(JsonFormatter().format(record))

        assert entry["extra"]["points"] == 252
        assert entry["extra"]["twr"] == "0.1234"

    def test_decimal_keeps_full_precision(self):
        record = _record(irr=Decimal("0.100000000000000000000001"))
        entry = json.loads(JsonFormatter().format(record))
        assert entry["extra"]["irr"] == "0.100000000000000000000001"

    def test_dates_are_iso(self):
        record = _record(start_date=date(2024, 1, 1), end_date=date(2024, 12, 31))
        entry = json.loads(JsonFormatter().format(record))

        assert entry["extra"]["start_date"] == "2024-01-01"
        assert entry["extra"]["end_date"] == "2024-12-31"

    def test_nested_values_and_enums(self):
        record = _record(
            section={"kind": ErrorKind.MISSING_PRICE, "price": Decimal("101.5")},
            symbols=frozenset({"B", "A"}),
        )
        entry = json.loads(JsonFormatter().format(record))

        assert entry["extra"]["section"] == {"kind": "missing_price", "price": "101.5"}
        assert entry["extra"]["symbols"] == ["A", "B"]

    def test_no_extras(self):
        entry = json.loads(JsonFormatter().format(_record()))
        assert "extra" not in entry

    def test_exception(self):
        try:
            raise ValueError("bad input")
        except ValueError:
            record = logging.LogRecord(
                "portfolio_engine.test", logging.ERROR, __file__, 10,
                "failed", None, sys.exc_info(),
            )
        entry = json.loads(JsonFormatter().format(record))
        assert "ValueError: bad input" in entry["exception"]


# =============================================================================
# LOG LEVELS
# =============================================================================

class TestGetLogLevel:
    """Tests for _get_log_level."""

    @pytest.mark.parametrize("name, expected", [
        ("DEBUG", logging.DEBUG),
        ("info", logging.INFO),
        (" warn ", logging.WARNING),
        ("CRITICAL", logging.CRITICAL),
    ])
    def test_valid(self, name, expected):
        assert _get_log_level(name) == expected

    def test_invalid(self):
        with pytest.raises(ValueError, match="Invalid log level"):
            _get_log_level("VERBOSE")


# =============================================================================
# SETUP
# =============================================================================

class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_handler(self, engine_logger):
        assert setup_logging(level="DEBUG", log_format="json") is engine_logger

        assert engine_logger.level == logging.DEBUG
        assert len(engine_logger.handlers) == 1
        handler = engine_logger.handlers[0]
        assert isinstance(handler.formatter, JsonFormatter)
        assert any(isinstance(f, CorrelationIdFilter) for f in handler.filters)

    def test_text_handler(self, engine_logger):
        setup_logging(level="WARNING", log_format="text")

        handler = engine_logger.handlers[0]
        assert engine_logger.level == logging.WARNING
        assert not isinstance(handler.formatter, JsonFormatter)

    def test_repeated_setup_replaces_handler(self, engine_logger):
        setup_logging(level="INFO")
        setup_logging(level="INFO")
        assert len(engine_logger.handlers) == 1

    def test_root_logger_untouched(self, engine_logger):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level

        setup_logging(level="DEBUG", log_format="json")

        assert root.handlers == handlers
        assert root.level == level
        assert not engine_logger.propagate

    def test_invalid_level(self, engine_logger):
        with pytest.raises(ValueError, match="Invalid log level"):
            setup_logging(level="LOUD")


# =============================================================================
# RUN SUMMARIES
# =============================================================================

class TestRunSummary:
    """Tests for the figures attached to analytics run summaries."""

    def test_summary_extras(self, caplog, contribution_series):
        service = AnalyticsService(cache=AnalyticsCache())
        with caplog.at_level(logging.INFO, logger="portfolio_engine.services.analytics.service"):
            service.analyze(contribution_series)

        record = next(r for r in caplog.records if "complete" in r.getMessage())
        assert record.start_date == date(2024, 1, 1)
        assert record.end_date == date(2024, 12, 31)
        assert record.twr == Decimal("0.1")

        entry = json.loads(JsonFormatter().format(record))
        assert entry["extra"] == {"start_date": "2024-01-01", "end_date": "2024-12-31", "twr": "0.1"}
