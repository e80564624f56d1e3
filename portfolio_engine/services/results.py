# portfolio_engine/services/results.py
"""
Tagged result values for calculator operations.

Calculators report failures as values, never as escaping exceptions:

    Ok(value)   - the computation succeeded
    Err(error)  - the computation failed; `error` is a ServiceError subclass
                  whose `kind` identifies the failure

Internally the calculators raise the typed exceptions from exceptions.py at
the point of failure. Public operations are wrapped with `@as_result`, which
converts those exceptions (and only those) into `Err` values. Programming
errors (TypeError, etc.) still propagate.

Usage:
    result = time_weighted_return(points)
    if result.is_ok:
        twr = result.value
    elif result.kind is ErrorKind.INSUFFICIENT_DATA:
        ...
"""

import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, TypeVar, Union

from portfolio_engine.services.exceptions import ErrorKind, ServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")


class Undefined(str, Enum):
    """
    Marker for a metric whose denominator is zero.

    Used instead of None (which means "not computed") so that a zero
    drawdown or zero volatility never reads as missing data, and never
    leaks an infinity into later arithmetic.
    """
    UNDEFINED = "undefined"

    def __repr__(self) -> str:
        return "UNDEFINED"


UNDEFINED = Undefined.UNDEFINED


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful calculation result."""
    value: T

    @property
    def is_ok(self) -> bool:
        return True

    @property
    def is_err(self) -> bool:
        return False

    @property
    def kind(self) -> None:
        return None

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: Any) -> T:
        return self.value

    def map(self, func: Callable[[T], U]) -> "Ok[U]":
        return Ok(func(self.value))


@dataclass(frozen=True)
class Err:
    """
    Failed calculation result.

    Attributes:
        error: The typed engine error describing the failure
    """
    error: ServiceError

    @property
    def is_ok(self) -> bool:
        return False

    @property
    def is_err(self) -> bool:
        return True

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind

    @property
    def message(self) -> str:
        return self.error.message

    def unwrap(self) -> Any:
        """Raise the wrapped error. For callers that prefer exceptions."""
        raise self.error

    def unwrap_or(self, default: Any) -> Any:
        return default

    def map(self, func: Callable[[Any], Any]) -> "Err":
        return self


Result = Union[Ok[T], Err]


def as_result(func: Callable[..., T]) -> Callable[..., Result[T]]:
    """
    Decorator: run `func` and wrap its outcome in Ok/Err.

    Only ServiceError subclasses are converted; anything else is a bug and
    propagates.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Result[T]:
        try:
            return Ok(func(*args, **kwargs))
        except ServiceError as e:
            logger.debug(f"{func.__name__} failed with {e.kind.value}: {e.message}")
            return Err(e)

    return wrapper
