"""Core payment ledger logic."""
from .ledger import TransactionLedger
from .orchestrator import PaymentOrchestrator, PaymentResult
from .payment_methods import PaymentMethodStore
from .tokenizer import CardTokenizer

__all__ = [
    "CardTokenizer",
    "PaymentMethodStore",
    "PaymentOrchestrator",
    "PaymentResult",
    "TransactionLedger",
]
