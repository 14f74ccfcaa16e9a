"""
Error taxonomy for the payment ledger.

Every failure the core raises carries one of three kinds. Business declines
from the payment gateway are not errors and never appear here.
"""
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from payment_ledger.database.models import Transaction


class ErrorKind(Enum):
    """Closed classification of ledger errors."""

    INVALID_ARGUMENT = "invalid_argument"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


class PaymentLedgerError(Exception):
    """Base exception for all ledger errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        """
        Initialize ledger error.

        Args:
            message: Human-readable error message
            cause: Underlying exception, if any
        """
        super().__init__(message)
        self.message = message
        self.cause = cause


class InvalidArgumentError(PaymentLedgerError):
    """Raised for malformed identifiers, missing amounts and similar input."""

    kind = ErrorKind.INVALID_ARGUMENT


class InvalidInputError(InvalidArgumentError):
    """Raised when raw card input cannot be tokenized."""


class NotFoundError(PaymentLedgerError):
    """Raised when a requested transaction does not exist."""

    kind = ErrorKind.NOT_FOUND


class InternalError(PaymentLedgerError):
    """Raised for failures the caller cannot correct."""

    kind = ErrorKind.INTERNAL


class StoreError(InternalError):
    """Raised when the storage layer fails (connectivity, constraint violation)."""


class DuplicateIdempotencyKeyError(StoreError):
    """Raised when an insert loses the race for an idempotency key."""

    def __init__(
        self,
        idempotency_key: str,
        existing: "Transaction",
        cause: Optional[BaseException] = None,
    ):
        super().__init__(
            f"Idempotency key {idempotency_key!r} already used by transaction {existing.id}",
            cause=cause,
        )
        self.idempotency_key = idempotency_key
        self.existing = existing
