"""
Pydantic schemas for API request/response models.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from payment_ledger.database import PaymentMethodKind


class AddPaymentMethodRequest(BaseModel):
    """Request schema for enrolling a payment method."""

    kind: PaymentMethodKind = Field(
        default=PaymentMethodKind.CARD, description="Payment method type (card or bank)"
    )
    card_number: str = Field(..., min_length=1, description="Raw card number (tokenized, never stored)")
    exp_month: int = Field(..., description="Expiry month (1-12)")
    exp_year: int = Field(..., description="Expiry year (four digits)")
    cvv: str = Field(..., description="Card verification value")
    is_default: bool = Field(default=False, description="Make this the user's default method")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "kind": "card",
                    "card_number": "4111111111111111",
                    "exp_month": 12,
                    "exp_year": 2030,
                    "cvv": "123",
                    "is_default": True,
                }
            ]
        }
    }


class PaymentMethodResponse(BaseModel):
    """Response schema for a stored payment method."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Payment method ID")
    user_id: UUID = Field(..., description="Owning user")
    kind: str = Field(..., description="Payment method type")
    token: str = Field(..., description="Opaque card token")
    last_four: str = Field(..., description="Last four digits")
    brand: str = Field(..., description="Card brand")
    exp_month: int = Field(..., description="Expiry month")
    exp_year: int = Field(..., description="Expiry year")
    is_default: bool = Field(..., description="Whether this is the user's default method")
    created_at: datetime = Field(..., description="Creation timestamp (ISO 8601)")


class ListPaymentMethodsResponse(BaseModel):
    """Response schema for listing payment methods."""

    payment_methods: List[PaymentMethodResponse]


class ChargeRequest(BaseModel):
    """Request schema for charging an order."""

    order_id: str = Field(..., description="Order identifier (UUID)")
    user_id: str = Field(..., description="User identifier (UUID)")
    payment_method_id: str = Field(..., description="Payment method identifier (UUID)")
    amount_cents: int = Field(..., description="Amount in minor currency units")
    currency: str = Field(..., min_length=3, max_length=3, description="Currency code (e.g., USD)")
    idempotency_key: Optional[str] = Field(
        default=None, max_length=255, description="Deduplication key for retried requests"
    )

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate currency format."""
        return v.upper()

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "order_id": "0b6f4f4e-5d1c-4c8e-9a63-0f0d7c1f5e21",
                    "user_id": "123e4567-e89b-12d3-a456-426614174000",
                    "payment_method_id": "7d9f0c3a-2b8e-4f61-9d0a-5c3e1b2a4f68",
                    "amount_cents": 2500,
                    "currency": "USD",
                    "idempotency_key": "order-0b6f4f4e-attempt-1",
                }
            ]
        }
    }


class RefundRequest(BaseModel):
    """Request schema for refunding a transaction."""

    amount_cents: int = Field(..., description="Amount to refund in minor currency units")
    reason: Optional[str] = Field(default=None, description="Refund reason")


class TransactionResponse(BaseModel):
    """Response schema for a ledger transaction."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Transaction ID")
    order_id: UUID = Field(..., description="Order identifier")
    user_id: UUID = Field(..., description="User identifier")
    payment_method_id: Optional[UUID] = Field(default=None, description="Payment method used")
    amount_cents: int = Field(..., description="Amount in minor currency units")
    currency: str = Field(..., description="Currency code")
    status: str = Field(..., description="pending, succeeded, failed or refunded")
    kind: str = Field(..., description="charge or refund")
    provider_ref: Optional[str] = Field(default=None, description="Gateway reference")
    idempotency_key: Optional[str] = Field(default=None, description="Idempotency key")
    original_transaction_id: Optional[UUID] = Field(
        default=None, description="Charge a refund reverses"
    )
    created_at: datetime = Field(..., description="Creation timestamp (ISO 8601)")


class PaymentResultResponse(BaseModel):
    """Response schema for charge and refund outcomes."""

    success: bool = Field(..., description="Whether the gateway accepted the attempt")
    transaction: TransactionResponse
    error_message: Optional[str] = Field(default=None, description="Decline message")


class ListTransactionsResponse(BaseModel):
    """Response schema for transaction listings."""

    transactions: List[TransactionResponse]


class ErrorResponse(BaseModel):
    """Response schema for protocol errors."""

    error: str = Field(..., description="invalid_argument, not_found or internal")
    message: str = Field(..., description="Human-readable error message")
