# portfolio_engine/utils/logging.py
"""
Logging setup for the portfolio analytics engine.

Engine modules only create loggers under the ``portfolio_engine`` namespace
(logging.getLogger(__name__)). An application embedding the engine calls
setup_logging() once to attach a handler to that namespace; its own root
logger is left alone.

Records carry the correlation ID of the analysis run that emitted them
(see utils/context.py). Run summaries pass figures as ``extra``; the JSON
formatter writes Decimal values as exact strings and dates as ISO 8601.

Environment Configuration:
    LOG_LEVEL=DEBUG       # cache hits, lot consumption, solver steps
    LOG_LEVEL=INFO        # run summaries
    LOG_FORMAT=json       # one JSON object per line
"""

import json
import logging
import sys
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from portfolio_engine.config import settings
from portfolio_engine.utils.context import get_correlation_id

# =============================================================================
# CONSTANTS
# =============================================================================

ENGINE_LOGGER = "portfolio_engine"

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | run=%(correlation_id)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NO_CORRELATION_ID = "no-correlation-id"

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"correlation_id", "message", "asctime"}


# =============================================================================
# CORRELATION ID FILTER
# =============================================================================

class CorrelationIdFilter(logging.Filter):
    """Stamp each record with the current analysis run's correlation ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


# =============================================================================
# JSON FORMATTER
# =============================================================================

def _json_value(value: Any) -> Any:
    """json.dumps ``default`` hook for the engine's value types."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


class JsonFormatter(logging.Formatter):
    """
    One JSON object per record.

    {
        "timestamp": "2024-01-15T10:30:00.123456+00:00",
        "level": "INFO",
        "logger": "portfolio_engine.services.analytics.service",
        "correlation_id": "3f2a9c01d4e7",
        "message": "Analytics run 3f2a9c01d4e7 complete",
        "extra": {"twr": "0.1", "end_date": "2024-12-31"}
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "correlation_id": getattr(record, "correlation_id", NO_CORRELATION_ID),
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, default=_json_value)


# =============================================================================
# SETUP
# =============================================================================

def setup_logging(level: str | None = None, log_format: str | None = None) -> logging.Logger:
    """
    Attach a stdout handler to the engine's logger namespace.

    Calling it again replaces the previous handler. Records do not propagate
    to the root logger.

    Args:
        level: Level name; defaults to settings.log_level
        log_format: 'text' or 'json'; defaults to settings.log_format

    Returns:
        The configured ``portfolio_engine`` logger

    Raises:
        ValueError: Unknown level name
    """
    log_level = _get_log_level(level or settings.log_level)
    format_type = (log_format or settings.log_format).lower()

    if format_type == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())

    engine_logger = logging.getLogger(ENGINE_LOGGER)
    engine_logger.setLevel(log_level)
    engine_logger.handlers.clear()
    engine_logger.addHandler(handler)
    engine_logger.propagate = False

    engine_logger.debug(f"Logging configured: level={logging.getLevelName(log_level)}, format={format_type}")
    return engine_logger


def _get_log_level(name: str) -> int:
    key = name.upper().strip()
    if key not in LOG_LEVELS:
        raise ValueError(
            f"Invalid log level: '{name}'. Valid levels are: {', '.join(LOG_LEVELS)}"
        )
    return LOG_LEVELS[key]
