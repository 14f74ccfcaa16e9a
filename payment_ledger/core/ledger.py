"""Append-only transaction ledger with idempotency-key lookup."""
import uuid
from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from payment_ledger.database import (
    Database,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from payment_ledger.errors import (
    DuplicateIdempotencyKeyError,
    InvalidArgumentError,
    StoreError,
)

logger = structlog.get_logger(__name__)

# Upper bound of the BIGINT amount column.
MAX_AMOUNT_CENTS = 2**63 - 1


class TransactionLedger:
    """
    Persists charge and refund rows.

    Rows are inserted once and never updated. Idempotency keys are unique at
    the storage layer, so two concurrent inserts with the same key cannot
    both succeed; the loser gets :class:`DuplicateIdempotencyKeyError`
    carrying the winning row.
    """

    def __init__(self, database: Database):
        self.database = database

    @staticmethod
    def validate_amount(amount_cents: int) -> int:
        if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
            raise InvalidArgumentError("Amount must be an integer number of minor units")
        if amount_cents < 0:
            raise InvalidArgumentError("Amount must not be negative")
        if amount_cents > MAX_AMOUNT_CENTS:
            raise InvalidArgumentError(f"Amount must not exceed {MAX_AMOUNT_CENTS}")
        return amount_cents

    @staticmethod
    def normalize_currency(currency: str) -> str:
        if (
            not isinstance(currency, str)
            or len(currency) != 3
            or not (currency.isascii() and currency.isalpha())
        ):
            raise InvalidArgumentError("Currency must be 3-letter code")
        return currency.upper()

    async def create(
        self,
        *,
        order_id: uuid.UUID,
        user_id: uuid.UUID,
        payment_method_id: Optional[uuid.UUID],
        amount_cents: int,
        currency: str,
        status: TransactionStatus,
        kind: TransactionKind,
        provider_ref: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        original_transaction_id: Optional[uuid.UUID] = None,
    ) -> Transaction:
        """
        Insert a transaction row.

        Args:
            order_id: Order the transaction belongs to
            user_id: Paying user
            payment_method_id: Instrument used, if any
            amount_cents: Amount in minor units (non-negative integer)
            currency: ISO 4217 code
            status: Outcome status
            kind: ``charge`` or ``refund``
            provider_ref: Gateway reference for the attempt
            idempotency_key: Caller-supplied deduplication key
            original_transaction_id: Charge a refund reverses

        Returns:
            Transaction: The stored row

        Raises:
            InvalidArgumentError: If amount or currency is malformed
            DuplicateIdempotencyKeyError: If the key is already taken
            StoreError: If the storage layer fails
        """
        self.validate_amount(amount_cents)
        currency = self.normalize_currency(currency)

        transaction = Transaction(
            id=uuid.uuid4(),
            order_id=order_id,
            user_id=user_id,
            payment_method_id=payment_method_id,
            amount_cents=amount_cents,
            currency=currency,
            status=TransactionStatus(status).value,
            kind=TransactionKind(kind).value,
            provider_ref=provider_ref,
            idempotency_key=idempotency_key,
            original_transaction_id=original_transaction_id,
        )

        try:
            async with self.database.session() as session, session.begin():
                session.add(transaction)
        except IntegrityError as e:
            if idempotency_key is not None:
                existing = await self.find_by_idempotency_key(idempotency_key)
                if existing is not None:
                    logger.warning(
                        "idempotency_key_conflict",
                        idempotency_key=idempotency_key,
                        winning_transaction_id=str(existing.id),
                    )
                    raise DuplicateIdempotencyKeyError(idempotency_key, existing, cause=e) from e
            logger.error("transaction_constraint_violation", error=str(e.orig))
            raise StoreError("Transaction violates a storage constraint", cause=e) from e
        except SQLAlchemyError as e:
            logger.error("transaction_create_failed", order_id=str(order_id), error=str(e))
            raise StoreError("Failed to record transaction", cause=e) from e

        logger.info(
            "transaction_recorded",
            transaction_id=str(transaction.id),
            order_id=str(order_id),
            kind=transaction.kind,
            status=transaction.status,
            amount_cents=amount_cents,
        )
        return transaction

    async def _fetch_one(self, stmt) -> Optional[Transaction]:
        try:
            async with self.database.session() as session:
                result = await session.execute(stmt)
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("transaction_lookup_failed", error=str(e))
            raise StoreError("Failed to read transaction", cause=e) from e

    async def get(self, transaction_id: uuid.UUID) -> Optional[Transaction]:
        """Fetch a transaction by id; None when absent."""
        return await self._fetch_one(select(Transaction).where(Transaction.id == transaction_id))

    async def find_by_idempotency_key(self, idempotency_key: str) -> Optional[Transaction]:
        """Fetch the transaction recorded under an idempotency key; None when absent."""
        return await self._fetch_one(
            select(Transaction).where(Transaction.idempotency_key == idempotency_key)
        )

    async def refunds_for(self, transaction_id: uuid.UUID) -> List[Transaction]:
        """List refund rows recorded against a charge, oldest first."""
        stmt = (
            select(Transaction)
            .where(Transaction.original_transaction_id == transaction_id)
            .where(Transaction.kind == TransactionKind.REFUND.value)
            .order_by(Transaction.created_at.asc())
        )
        try:
            async with self.database.session() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("refund_lookup_failed", transaction_id=str(transaction_id), error=str(e))
            raise StoreError("Failed to list refunds", cause=e) from e
