"""
Payment orchestration.

Composes tokenizer, payment-method store, ledger and gateway into the
use cases exposed to the transport layer:

Charge flow:
1. Validate amount and currency
2. Replay the stored outcome if the idempotency key is known
3. Call the gateway
4. Record the attempt in the ledger
5. If the insert lost an idempotency race, replay the winner

Refund flow:
1. Validate amount
2. Load the original transaction (NotFound if absent)
3. Reject refunds of refunds, of charges that did not succeed, and of more
   than was charged
4. Call the gateway
5. Record a refund row linked to the original
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

import structlog

from payment_ledger.core.ledger import TransactionLedger
from payment_ledger.core.payment_methods import PaymentMethodStore
from payment_ledger.core.tokenizer import CardTokenizer
from payment_ledger.database import (
    Database,
    PaymentMethod,
    PaymentMethodKind,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from payment_ledger.errors import (
    DuplicateIdempotencyKeyError,
    InvalidArgumentError,
    NotFoundError,
)
from payment_ledger.integrations.gateway import MockPaymentGateway, PaymentGateway

logger = structlog.get_logger(__name__)

CHARGE_DECLINED_MESSAGE = "Charge declined by payment gateway"
REFUND_DECLINED_MESSAGE = "Refund declined by payment gateway"


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of a charge or refund: business result plus the ledger row."""

    success: bool
    transaction: Transaction
    error_message: Optional[str] = None


class PaymentOrchestrator:
    """
    Main payment use-case orchestrator.

    Business declines come back as ``PaymentResult(success=False, ...)``;
    only malformed input, missing transactions and storage failures raise.
    """

    def __init__(
        self,
        store: PaymentMethodStore,
        ledger: TransactionLedger,
        gateway: PaymentGateway,
        tokenizer: Optional[CardTokenizer] = None,
    ):
        self.store = store
        self.ledger = ledger
        self.gateway = gateway
        self.tokenizer = tokenizer or CardTokenizer()

    @classmethod
    def build(
        cls, database: Database, gateway: Optional[PaymentGateway] = None
    ) -> "PaymentOrchestrator":
        """Wire an orchestrator over a shared storage handle."""
        return cls(
            store=PaymentMethodStore(database),
            ledger=TransactionLedger(database),
            gateway=gateway or MockPaymentGateway(),
        )

    @staticmethod
    def _validate_expiry(exp_month: int, exp_year: int, now: Optional[datetime] = None) -> None:
        """
        Reject impossible or expired expiry dates.

        A card stays valid through the last day of its expiry month.
        """
        if not 1 <= exp_month <= 12:
            raise InvalidArgumentError("Expiry month must be between 1 and 12")

        now = now or datetime.now(timezone.utc)
        if (exp_year, exp_month) < (now.year, now.month):
            raise InvalidArgumentError("Card has expired")

    @staticmethod
    def _require_amount(amount_cents: Optional[int]) -> int:
        if amount_cents is None:
            raise InvalidArgumentError("Amount is required")
        return TransactionLedger.validate_amount(amount_cents)

    @staticmethod
    def _replay(transaction: Transaction) -> PaymentResult:
        success = transaction.status == TransactionStatus.SUCCEEDED.value
        return PaymentResult(
            success=success,
            transaction=transaction,
            error_message=None if success else CHARGE_DECLINED_MESSAGE,
        )

    async def add_payment_method(
        self,
        user_id: uuid.UUID,
        kind: str | PaymentMethodKind,
        card_number: str,
        exp_month: int,
        exp_year: int,
        cvv: str,
        is_default: bool = False,
    ) -> PaymentMethod:
        """
        Tokenize a card and store it as a payment method.

        Raises:
            InvalidArgumentError: On short card numbers, bad expiry or unknown kind
            StoreError: If the storage layer fails
        """
        self._validate_expiry(exp_month, exp_year)

        last_four = self.tokenizer.last_four(card_number)
        token = self.tokenizer.tokenize(card_number, cvv)
        brand = self.tokenizer.brand(card_number)

        return await self.store.add(
            user_id=user_id,
            kind=kind,
            token=token,
            last_four=last_four,
            brand=brand,
            exp_month=exp_month,
            exp_year=exp_year,
            is_default=is_default,
        )

    async def list_payment_methods(self, user_id: uuid.UUID) -> List[PaymentMethod]:
        return await self.store.list(user_id)

    async def delete_payment_method(
        self, payment_method_id: uuid.UUID, user_id: uuid.UUID
    ) -> bool:
        return await self.store.delete(payment_method_id, user_id)

    async def charge(
        self,
        order_id: uuid.UUID,
        user_id: uuid.UUID,
        payment_method_id: uuid.UUID,
        amount_cents: Optional[int],
        currency: str,
        idempotency_key: Optional[str] = None,
    ) -> PaymentResult:
        """
        Charge an order, at most once per idempotency key.

        Args:
            order_id: Order being paid
            user_id: Paying user
            payment_method_id: Instrument to charge
            amount_cents: Amount in minor units
            currency: ISO 4217 code
            idempotency_key: Caller-supplied deduplication key (empty means none)

        Returns:
            PaymentResult: Gateway outcome and the recorded (or replayed) row

        Raises:
            InvalidArgumentError: If amount or currency is malformed
            StoreError: If the storage layer fails
        """
        amount_cents = self._require_amount(amount_cents)
        currency = TransactionLedger.normalize_currency(currency)
        idempotency_key = idempotency_key or None
        correlation_id = str(uuid.uuid4())

        logger.info(
            "charge_started",
            correlation_id=correlation_id,
            order_id=str(order_id),
            user_id=str(user_id),
            amount_cents=amount_cents,
            currency=currency,
            idempotency_key=idempotency_key,
        )

        if idempotency_key is not None:
            existing = await self.ledger.find_by_idempotency_key(idempotency_key)
            if existing is not None:
                logger.info(
                    "charge_idempotent_replay",
                    correlation_id=correlation_id,
                    idempotency_key=idempotency_key,
                    transaction_id=str(existing.id),
                    status=existing.status,
                )
                return self._replay(existing)

        gateway_result = await self.gateway.charge(amount_cents)
        status = (
            TransactionStatus.SUCCEEDED if gateway_result.success else TransactionStatus.FAILED
        )

        try:
            transaction = await self.ledger.create(
                order_id=order_id,
                user_id=user_id,
                payment_method_id=payment_method_id,
                amount_cents=amount_cents,
                currency=currency,
                status=status,
                kind=TransactionKind.CHARGE,
                provider_ref=gateway_result.provider_ref,
                idempotency_key=idempotency_key,
            )
        except DuplicateIdempotencyKeyError as e:
            # This gateway attempt is orphaned; its reference is logged for reconciliation.
            logger.warning(
                "charge_idempotency_race_lost",
                correlation_id=correlation_id,
                idempotency_key=idempotency_key,
                orphaned_provider_ref=gateway_result.provider_ref,
                winning_transaction_id=str(e.existing.id),
            )
            return self._replay(e.existing)

        logger.info(
            "charge_completed",
            correlation_id=correlation_id,
            transaction_id=str(transaction.id),
            success=gateway_result.success,
        )
        return PaymentResult(
            success=gateway_result.success,
            transaction=transaction,
            error_message=None if gateway_result.success else CHARGE_DECLINED_MESSAGE,
        )

    async def refund(
        self,
        transaction_id: uuid.UUID,
        amount_cents: Optional[int],
        reason: Optional[str] = None,
    ) -> PaymentResult:
        """
        Refund a recorded charge.

        Refunds are not deduplicated; each call writes a new row.

        Raises:
            InvalidArgumentError: If the amount is malformed or exceeds the charge,
                or the target is a refund or a charge that did not succeed
            NotFoundError: If the original transaction does not exist
            StoreError: If the storage layer fails
        """
        amount_cents = self._require_amount(amount_cents)
        correlation_id = str(uuid.uuid4())

        logger.info(
            "refund_started",
            correlation_id=correlation_id,
            transaction_id=str(transaction_id),
            amount_cents=amount_cents,
            reason=reason,
        )

        original = await self.ledger.get(transaction_id)
        if original is None:
            raise NotFoundError("Transaction not found")
        if original.kind == TransactionKind.REFUND.value:
            raise InvalidArgumentError("Cannot refund a refund transaction")
        if original.status != TransactionStatus.SUCCEEDED.value:
            raise InvalidArgumentError("Only succeeded charges can be refunded")
        if amount_cents > original.amount_cents:
            raise InvalidArgumentError("Refund amount exceeds the charged amount")

        gateway_result = await self.gateway.refund(amount_cents)
        status = (
            TransactionStatus.REFUNDED if gateway_result.success else TransactionStatus.FAILED
        )

        refund = await self.ledger.create(
            order_id=original.order_id,
            user_id=original.user_id,
            payment_method_id=original.payment_method_id,
            amount_cents=amount_cents,
            currency=original.currency,
            status=status,
            kind=TransactionKind.REFUND,
            provider_ref=gateway_result.provider_ref,
            original_transaction_id=original.id,
        )

        logger.info(
            "refund_completed",
            correlation_id=correlation_id,
            transaction_id=str(refund.id),
            original_transaction_id=str(original.id),
            success=gateway_result.success,
        )
        return PaymentResult(
            success=gateway_result.success,
            transaction=refund,
            error_message=None if gateway_result.success else REFUND_DECLINED_MESSAGE,
        )

    async def get_transaction(self, transaction_id: uuid.UUID) -> Transaction:
        """
        Fetch a transaction.

        Raises:
            NotFoundError: If it does not exist
        """
        transaction = await self.ledger.get(transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction not found")
        return transaction

    async def refunds_for(self, transaction_id: uuid.UUID) -> List[Transaction]:
        return await self.ledger.refunds_for(transaction_id)
