"""SQLAlchemy database models for the payment ledger."""
import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Uuid,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentMethodKind(str, Enum):
    CARD = "card"
    BANK = "bank"


class TransactionKind(str, Enum):
    CHARGE = "charge"
    REFUND = "refund"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class PaymentMethod(Base):
    """
    Tokenized payment instruments owned by a user.

    Rows are never updated after insert except for the default flag. At most
    one row per user may be the default; the partial unique index backs up
    the clear-then-insert sequence in the store.
    """

    __tablename__ = "payment_methods"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    kind: Mapped[str] = mapped_column("type", String(20), nullable=False)
    token: Mapped[str] = mapped_column(String(64), nullable=False)
    last_four: Mapped[str] = mapped_column(String(4), nullable=False)
    brand: Mapped[str] = mapped_column(String(50), nullable=False)
    exp_month: Mapped[int] = mapped_column(Integer, nullable=False)
    exp_year: Mapped[int] = mapped_column(Integer, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint("type IN ('card', 'bank')", name="valid_payment_method_type"),
        Index(
            "uq_payment_methods_default_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default"),
        ),
        Index("idx_payment_methods_user_listing", "user_id", "is_default", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation of PaymentMethod."""
        return (
            f"<PaymentMethod(id={self.id}, user_id={self.user_id}, "
            f"brand={self.brand}, last_four={self.last_four}, is_default={self.is_default})>"
        )


class Transaction(Base):
    """
    Immutable ledger rows for charges and refunds.

    Each attempt is a new row; a failed charge is never retried in place.
    Refund rows point at the charge they reverse through
    ``original_transaction_id``.
    """

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    payment_method_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    kind: Mapped[str] = mapped_column("type", String(20), nullable=False)
    provider_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True
    )
    original_transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("transactions.id"), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="non_negative_amount"),
        CheckConstraint(
            "status IN ('pending', 'succeeded', 'failed', 'refunded')",
            name="valid_status",
        ),
        CheckConstraint("type IN ('charge', 'refund')", name="valid_transaction_type"),
        CheckConstraint("length(currency) = 3", name="valid_currency"),
        Index("idx_transactions_order", "order_id", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation of Transaction."""
        return (
            f"<Transaction(id={self.id}, kind={self.kind}, "
            f"amount={self.amount_cents}, status={self.status})>"
        )
