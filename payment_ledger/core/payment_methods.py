"""
Payment method persistence with the single-default invariant.

Setting a new default clears every other default of the same user and inserts
the new row inside one database transaction. The partial unique index on
``(user_id) WHERE is_default`` catches the one window the transaction cannot
close on its own: two concurrent default inserts for a user with no rows yet.
That conflict is retried, and the retry's clear step then sees the winner.
"""
import uuid
from typing import Any, List

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from payment_ledger.database import Database, PaymentMethod, PaymentMethodKind
from payment_ledger.errors import InvalidArgumentError, StoreError

logger = structlog.get_logger(__name__)


class DefaultFlagConflict(Exception):
    """Raised when a default insert collides with a concurrent one."""


class PaymentMethodStore:
    """Stores payment methods and keeps at most one default per user."""

    def __init__(self, database: Database):
        self.database = database

    @staticmethod
    def _validate_kind(kind: str | PaymentMethodKind) -> str:
        try:
            return PaymentMethodKind(kind).value
        except ValueError:
            raise InvalidArgumentError(f"Unsupported payment method type: {kind!r}")

    @retry(
        retry=retry_if_exception_type(DefaultFlagConflict),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.01, max=0.1),
        reraise=True,
    )
    async def _insert(self, **fields: Any) -> PaymentMethod:
        method = PaymentMethod(id=uuid.uuid4(), **fields)
        try:
            async with self.database.session() as session, session.begin():
                if method.is_default:
                    # Clear before insert, same transaction.
                    await session.execute(
                        update(PaymentMethod)
                        .where(PaymentMethod.user_id == method.user_id)
                        .where(PaymentMethod.is_default.is_(True))
                        .values(is_default=False)
                        .execution_options(synchronize_session=False)
                    )
                session.add(method)
        except IntegrityError as e:
            if method.is_default:
                logger.warning(
                    "payment_method_default_conflict",
                    user_id=str(method.user_id),
                    error=str(e.orig),
                )
                raise DefaultFlagConflict(str(e.orig)) from e
            raise
        return method

    async def add(
        self,
        user_id: uuid.UUID,
        kind: str | PaymentMethodKind,
        token: str,
        last_four: str,
        brand: str,
        exp_month: int,
        exp_year: int,
        is_default: bool = False,
    ) -> PaymentMethod:
        """
        Persist a new payment method.

        Args:
            user_id: Owning user
            kind: ``card`` or ``bank``
            token: Opaque card token
            last_four: Trailing four digits
            brand: Card brand name
            exp_month: Expiry month (1-12)
            exp_year: Expiry year
            is_default: Make this the user's only default

        Returns:
            PaymentMethod: The stored row

        Raises:
            InvalidArgumentError: If the kind is unknown
            StoreError: If the storage layer fails
        """
        kind_value = self._validate_kind(kind)

        try:
            method = await self._insert(
                user_id=user_id,
                kind=kind_value,
                token=token,
                last_four=last_four,
                brand=brand,
                exp_month=exp_month,
                exp_year=exp_year,
                is_default=is_default,
            )
        except DefaultFlagConflict as e:
            raise StoreError(
                "Concurrent default payment method updates did not settle", cause=e
            ) from e
        except SQLAlchemyError as e:
            logger.error("payment_method_add_failed", user_id=str(user_id), error=str(e))
            raise StoreError("Failed to add payment method", cause=e) from e

        logger.info(
            "payment_method_added",
            payment_method_id=str(method.id),
            user_id=str(user_id),
            brand=brand,
            is_default=is_default,
        )
        return method

    async def list(self, user_id: uuid.UUID) -> List[PaymentMethod]:
        """List a user's payment methods, default first, then newest first."""
        stmt = (
            select(PaymentMethod)
            .where(PaymentMethod.user_id == user_id)
            .order_by(PaymentMethod.is_default.desc(), PaymentMethod.created_at.desc())
        )
        try:
            async with self.database.session() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("payment_method_list_failed", user_id=str(user_id), error=str(e))
            raise StoreError("Failed to list payment methods", cause=e) from e

    async def delete(self, payment_method_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        """
        Delete a payment method owned by ``user_id``.

        A wrong id or a different owner removes nothing and is not an error.

        Returns:
            bool: True if a row was removed
        """
        stmt = (
            delete(PaymentMethod)
            .where(PaymentMethod.id == payment_method_id)
            .where(PaymentMethod.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self.database.session() as session, session.begin():
                result = await session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error(
                "payment_method_delete_failed",
                payment_method_id=str(payment_method_id),
                error=str(e),
            )
            raise StoreError("Failed to delete payment method", cause=e) from e

        deleted = result.rowcount > 0
        logger.info(
            "payment_method_delete",
            payment_method_id=str(payment_method_id),
            user_id=str(user_id),
            deleted=deleted,
        )
        return deleted
