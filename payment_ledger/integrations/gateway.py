"""
Payment gateway interface and the mock processor.

A gateway takes an amount and answers with a success flag and an opaque
provider reference. Business declines are results, not exceptions, so a real
network adapter can replace the mock without touching the orchestrator.
"""
import uuid
from dataclasses import dataclass
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)

DEFAULT_DECLINE_THRESHOLD_CENTS = 100_000


@dataclass(frozen=True)
class GatewayResult:
    """Outcome of a single gateway attempt."""

    success: bool
    provider_ref: str


class PaymentGateway(Protocol):
    """Interface for external payment processors."""

    async def charge(self, amount_cents: int) -> GatewayResult:
        """Charge the amount (minor units)."""
        ...

    async def refund(self, amount_cents: int) -> GatewayResult:
        """Refund the amount (minor units)."""
        ...


class MockPaymentGateway:
    """
    Stand-in processor that decides purely on amount.

    Charges below the decline threshold succeed; anything at or above it is
    declined. Refunds always succeed. Every attempt gets a fresh reference.
    """

    def __init__(self, decline_threshold_cents: int = DEFAULT_DECLINE_THRESHOLD_CENTS):
        self.decline_threshold_cents = decline_threshold_cents

    async def charge(self, amount_cents: int) -> GatewayResult:
        success = amount_cents < self.decline_threshold_cents
        result = GatewayResult(success=success, provider_ref=f"mock_charge_{uuid.uuid4()}")

        logger.info(
            "mock_gateway_charge",
            amount_cents=amount_cents,
            success=success,
            provider_ref=result.provider_ref,
        )
        return result

    async def refund(self, amount_cents: int) -> GatewayResult:
        result = GatewayResult(success=True, provider_ref=f"mock_refund_{uuid.uuid4()}")

        logger.info(
            "mock_gateway_refund",
            amount_cents=amount_cents,
            provider_ref=result.provider_ref,
        )
        return result
