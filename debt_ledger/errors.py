"""
Error Taxonomy and Classifier

Every failure that leaves the engine is one of three kinds:

- VALIDATION_ERROR: caller-fixable, raised before any mutation, never retried
- STORAGE_ERROR: I/O against the key-value backend, retryable up to a bound
- UNKNOWN_ERROR: everything else

DESIGN DECISION: The classifier is a pure function of the exception.
The retry loop in the persistence adapter asks it whether an error is
worth another attempt; nothing else in the engine inspects raw exceptions.
"""

import json
from enum import Enum
from typing import Optional

from pydantic import ValidationError as PydanticValidationError


class ErrorKind(str, Enum):
    """Top-level error classification."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ErrorCode(str, Enum):
    """Machine-readable error codes carried by LedgerError."""
    # Draft / update validation
    NAME_REQUIRED = "NAME_REQUIRED"
    NAME_TOO_LONG = "NAME_TOO_LONG"
    AMOUNT_REQUIRED = "AMOUNT_REQUIRED"
    AMOUNT_INVALID = "AMOUNT_INVALID"
    AMOUNT_TOO_LARGE = "AMOUNT_TOO_LARGE"
    DESCRIPTION_INVALID = "DESCRIPTION_INVALID"
    DATE_INVALID = "DATE_INVALID"
    TYPE_INVALID = "TYPE_INVALID"

    # Record identity
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE_ID = "DUPLICATE_ID"

    # Partial payments and reconciliation
    PARTIAL_AMOUNT_INVALID = "PARTIAL_AMOUNT_INVALID"
    PARTIAL_AMOUNT_TOO_LARGE = "PARTIAL_AMOUNT_TOO_LARGE"
    AMOUNT_WARNING_PARTIALS = "AMOUNT_WARNING_PARTIALS"
    PARTIAL_PAYMENT_IMMUTABLE = "PARTIAL_PAYMENT_IMMUTABLE"
    PARTIALS_REQUIRE_EDIT = "PARTIALS_REQUIRE_EDIT"
    INVALID_PARENT = "INVALID_PARENT"
    INVALID_CHILD = "INVALID_CHILD"
    ALREADY_SETTLED = "ALREADY_SETTLED"
    FULLY_PAID = "FULLY_PAID"

    # Persistence
    LOAD_FAILED = "LOAD_FAILED"
    SAVE_FAILED = "SAVE_FAILED"
    INVALID_FORMAT = "INVALID_FORMAT"
    UNSUPPORTED_VERSION = "UNSUPPORTED_VERSION"


class LedgerError(Exception):
    """
    Base exception for the ledger engine.

    Carries a kind, a human-readable message, an optional machine code
    and a retryable flag. The original exception (if any) is kept for
    logging but never shown to users.
    """

    default_kind = ErrorKind.UNKNOWN_ERROR
    default_retryable = False

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        kind: Optional[ErrorKind] = None,
        retryable: Optional[bool] = None,
        original: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.kind = kind or self.default_kind
        self.retryable = self.default_retryable if retryable is None else retryable
        self.original = original

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "error_kind": self.kind.value,
            "error_code": self.code.value if self.code else None,
            "error_message": self.message,
            "retryable": self.retryable,
            "original_error": repr(self.original) if self.original else None,
        }

    def __repr__(self) -> str:
        code = self.code.value if self.code else None
        return f"{type(self).__name__}(kind={self.kind.value}, code={code}, message={self.message!r})"


class LedgerValidationError(LedgerError):
    """Caller-fixable input problem. Raised before any state is touched."""
    default_kind = ErrorKind.VALIDATION_ERROR


class TransactionNotFoundError(LedgerValidationError):
    """No transaction with the requested id."""

    def __init__(self, transaction_id: str):
        super().__init__(
            f"Transaction not found: {transaction_id}",
            code=ErrorCode.NOT_FOUND,
        )
        self.transaction_id = transaction_id


class DuplicateTransactionError(LedgerValidationError):
    """A generated id collided with an existing record."""

    def __init__(self, transaction_id: str):
        super().__init__(
            f"Transaction id already exists: {transaction_id}",
            code=ErrorCode.DUPLICATE_ID,
        )
        self.transaction_id = transaction_id


class LedgerStorageError(LedgerError):
    """Key-value backend failure."""
    default_kind = ErrorKind.STORAGE_ERROR
    default_retryable = True


_STORAGE_EXCEPTIONS = (
    OSError,
    TimeoutError,
    json.JSONDecodeError,
    UnicodeDecodeError,
)


def classify_error(error: BaseException) -> LedgerError:
    """
    Map any exception onto the ledger taxonomy.

    LedgerError instances pass through unchanged. Note the ordering:
    JSONDecodeError and UnicodeDecodeError are ValueError subclasses but
    describe a damaged snapshot, so they are checked before ValueError.
    """
    if isinstance(error, LedgerError):
        return error

    if isinstance(error, _STORAGE_EXCEPTIONS):
        return LedgerStorageError(str(error) or type(error).__name__, original=error)

    if isinstance(error, (PydanticValidationError, ValueError, TypeError)):
        return LedgerValidationError(str(error), original=error)

    return LedgerError(
        str(error) or "An unexpected error occurred",
        original=error,
    )


def is_retryable(error: BaseException) -> bool:
    """Retry predicate used by the persistence adapter."""
    return classify_error(error).retryable
