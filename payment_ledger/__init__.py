"""
Payment-method and transaction ledger.

Stores tokenized payment instruments per user and records charge/refund
transactions against orders with idempotency and a single-default invariant.
"""

__version__ = "0.1.0"
