"""Database package for the payment ledger."""
from .connection import Database
from .models import (
    Base,
    PaymentMethod,
    PaymentMethodKind,
    Transaction,
    TransactionKind,
    TransactionStatus,
)

__all__ = [
    "Base",
    "Database",
    "PaymentMethod",
    "PaymentMethodKind",
    "Transaction",
    "TransactionKind",
    "TransactionStatus",
]
