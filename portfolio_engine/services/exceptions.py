# portfolio_engine/services/exceptions.py
"""
Calculation engine exceptions.

These exceptions represent domain-specific errors and contain NO presentation
knowledge. Public calculator operations never let them escape: the
`as_result` decorator (see results.py) turns them into `Err` values, and the
caller decides how to present them.

Each exception carries an `ErrorKind` tag so callers can branch on the kind
of failure without isinstance checks.

Exception Hierarchy:
    ServiceError (base)
    ├── InvalidInputError
    │   └── InvalidTransactionError
    ├── InvalidSequenceError
    ├── MissingPriceError
    ├── MisalignedSeriesError
    ├── NoConvergenceError
    ├── SingularCovarianceError
    └── InsufficientDataError
"""

from datetime import date
from decimal import Decimal
from enum import Enum


class ErrorKind(str, Enum):
    """
    Tag identifying the kind of a calculation failure.

    Values are stable strings suitable for serialization.
    """
    INVALID_INPUT = "invalid_input"
    INVALID_TRANSACTION = "invalid_transaction"
    INVALID_SEQUENCE = "invalid_sequence"
    MISSING_PRICE = "missing_price"
    MISALIGNED_SERIES = "misaligned_series"
    NO_CONVERGENCE = "no_convergence"
    SINGULAR_COVARIANCE = "singular_covariance"
    INSUFFICIENT_DATA = "insufficient_data"


class ServiceError(Exception):
    """
    Base exception for all engine errors.

    Attributes:
        message: Human-readable error description
        kind: ErrorKind tag for this error class
    """

    kind: ErrorKind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# INPUT ERRORS
# =============================================================================


class InvalidInputError(ServiceError):
    """
    Raised when calculator input is malformed.

    Attributes:
        field: The field or parameter that failed validation (optional)
    """

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidTransactionError(InvalidInputError):
    """
    Raised when a ledger transaction is malformed.

    Examples:
    - Negative buy quantity
    - Non-positive buy/sell price
    - Negative fee
    - Security transaction without a symbol

    Attributes:
        transaction_date: Date of the offending transaction
        symbol: Symbol of the offending transaction, if any
    """

    kind = ErrorKind.INVALID_TRANSACTION

    def __init__(
            self,
            reason: str,
            transaction_date: date | None = None,
            symbol: str | None = None,
            field: str | None = None,
    ) -> None:
        self.reason = reason
        self.transaction_date = transaction_date
        self.symbol = symbol
        where = f" ({symbol or 'no symbol'} on {transaction_date})" if transaction_date else ""
        super().__init__(f"Invalid transaction{where}: {reason}", field=field)


# =============================================================================
# LEDGER ERRORS
# =============================================================================


class InvalidSequenceError(ServiceError):
    """
    Raised when the ledger cannot be replayed in order.

    This covers oversells (selling more than the open lots hold at that
    point in the ledger) and chronological ordering violations.

    Attributes:
        account_ref: Account whose lot queue was violated
        symbol: Symbol whose lot queue was violated
        requested: Quantity the transaction tried to consume (oversell only)
        available: Quantity open in the queue (oversell only)
    """

    kind = ErrorKind.INVALID_SEQUENCE

    def __init__(
            self,
            message: str,
            account_ref: str | None = None,
            symbol: str | None = None,
            requested: Decimal | None = None,
            available: Decimal | None = None,
    ) -> None:
        self.account_ref = account_ref
        self.symbol = symbol
        self.requested = requested
        self.available = available
        super().__init__(message)

    @classmethod
    def oversell(
            cls,
            account_ref: str,
            symbol: str,
            requested: Decimal,
            available: Decimal,
            sell_date: date,
    ) -> "InvalidSequenceError":
        """Build the error for a sell that exceeds the open lots."""
        return cls(
            f"Sell of {requested} {symbol} in account '{account_ref}' on {sell_date} "
            f"exceeds available quantity {available}",
            account_ref=account_ref,
            symbol=symbol,
            requested=requested,
            available=available,
        )


class MissingPriceError(ServiceError):
    """
    Raised when a valuation needs a price the price source does not have.

    The engine never guesses a price.

    Attributes:
        symbol: Symbol without a price
        price_date: Date for which the price was requested
    """

    kind = ErrorKind.MISSING_PRICE

    def __init__(self, symbol: str, price_date: date) -> None:
        self.symbol = symbol
        self.price_date = price_date
        super().__init__(f"No price available for '{symbol}' on {price_date}")


# =============================================================================
# SERIES ERRORS
# =============================================================================


class MisalignedSeriesError(ServiceError):
    """
    Raised when series used together differ in length or dates.

    Attributes:
        left_length: Length of the first series
        right_length: Length of the second series
    """

    kind = ErrorKind.MISALIGNED_SERIES

    def __init__(
            self,
            left_length: int,
            right_length: int,
            message: str | None = None,
    ) -> None:
        self.left_length = left_length
        self.right_length = right_length
        msg = message or f"Series are misaligned: {left_length} vs {right_length} observations"
        super().__init__(msg)


class InsufficientDataError(ServiceError):
    """
    Raised when a calculation needs more observations than were supplied.

    Risk metrics treat short history as a soft condition and flag the
    result instead of raising.

    Attributes:
        required: Minimum observations needed
        available: Observations supplied
    """

    kind = ErrorKind.INSUFFICIENT_DATA

    def __init__(self, required: int, available: int, what: str = "calculation") -> None:
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient data for {what}: need at least {required}, got {available}"
        )


# =============================================================================
# NUMERICAL ERRORS
# =============================================================================


class NoConvergenceError(ServiceError):
    """
    Raised when an iterative method exceeds its iteration or tolerance bounds.

    Attributes:
        method: Name of the solver that failed
        iterations: Iterations performed before giving up
    """

    kind = ErrorKind.NO_CONVERGENCE

    def __init__(self, method: str, iterations: int, reason: str | None = None) -> None:
        self.method = method
        self.iterations = iterations
        self.reason = reason
        msg = f"{method} did not converge after {iterations} iterations"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class SingularCovarianceError(ServiceError):
    """
    Raised when a covariance matrix cannot be inverted reliably.

    This happens for exactly singular matrices (e.g., two identical assets)
    and for matrices whose pivot ratio falls below the singularity threshold.

    Attributes:
        symbols: Symbols of the matrix
        pivot_ratio: Smallest/largest pivot ratio observed, if computed
    """

    kind = ErrorKind.SINGULAR_COVARIANCE

    def __init__(
            self,
            symbols: tuple[str, ...] = (),
            pivot_ratio: Decimal | None = None,
    ) -> None:
        self.symbols = symbols
        self.pivot_ratio = pivot_ratio
        msg = "Covariance matrix is singular or ill-conditioned"
        if symbols:
            msg += f" for {', '.join(symbols)}"
        super().__init__(msg)


__all__ = [
    "ErrorKind",
    # Base
    "ServiceError",
    # Input
    "InvalidInputError",
    "InvalidTransactionError",
    # Ledger
    "InvalidSequenceError",
    "MissingPriceError",
    # Series
    "MisalignedSeriesError",
    "InsufficientDataError",
    # Numerical
    "NoConvergenceError",
    "SingularCovarianceError",
]
