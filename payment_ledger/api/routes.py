"""
API routes for the payment ledger.

Identifiers arrive as strings and are parsed here; everything past this
module works with UUIDs. Ledger errors propagate to the exception handlers
registered in ``api.main``.
"""
import uuid
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, Request, Response, status

from payment_ledger.core import PaymentOrchestrator, PaymentResult
from payment_ledger.errors import InvalidArgumentError

from .schemas import (
    AddPaymentMethodRequest,
    ChargeRequest,
    ErrorResponse,
    ListPaymentMethodsResponse,
    ListTransactionsResponse,
    PaymentMethodResponse,
    PaymentResultResponse,
    RefundRequest,
    TransactionResponse,
)

logger = structlog.get_logger(__name__)

ERROR_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    400: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}

payment_method_router = APIRouter(
    prefix="/users/{user_id}/payment-methods",
    tags=["payment-methods"],
    responses=ERROR_RESPONSES,
)
transaction_router = APIRouter(tags=["transactions"], responses=ERROR_RESPONSES)


def get_orchestrator(request: Request) -> PaymentOrchestrator:
    """Dependency returning the orchestrator built at startup."""
    return request.app.state.orchestrator


def parse_uuid(value: str, label: str) -> uuid.UUID:
    """
    Parse an identifier from the transport layer.

    Raises:
        InvalidArgumentError: If the value is not a UUID
    """
    try:
        return uuid.UUID(value)
    except (ValueError, TypeError, AttributeError):
        raise InvalidArgumentError(f"Invalid {label}")


def to_result_response(result: PaymentResult) -> PaymentResultResponse:
    return PaymentResultResponse(
        success=result.success,
        transaction=TransactionResponse.model_validate(result.transaction),
        error_message=result.error_message,
    )


@payment_method_router.post(
    "",
    response_model=PaymentMethodResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a payment method",
)
async def add_payment_method(
    user_id: str,
    request: AddPaymentMethodRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> PaymentMethodResponse:
    """Tokenize a card and store it for the user."""
    user_uuid = parse_uuid(user_id, "user ID")

    method = await orchestrator.add_payment_method(
        user_id=user_uuid,
        kind=request.kind,
        card_number=request.card_number,
        exp_month=request.exp_month,
        exp_year=request.exp_year,
        cvv=request.cvv,
        is_default=request.is_default,
    )
    return PaymentMethodResponse.model_validate(method)


@payment_method_router.get(
    "",
    response_model=ListPaymentMethodsResponse,
    summary="List payment methods",
)
async def list_payment_methods(
    user_id: str,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> ListPaymentMethodsResponse:
    """List the user's payment methods, default first, then newest first."""
    user_uuid = parse_uuid(user_id, "user ID")

    methods = await orchestrator.list_payment_methods(user_uuid)
    return ListPaymentMethodsResponse(
        payment_methods=[PaymentMethodResponse.model_validate(m) for m in methods]
    )


@payment_method_router.delete(
    "/{payment_method_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete a payment method",
)
async def delete_payment_method(
    user_id: str,
    payment_method_id: str,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> Response:
    """Delete a payment method; unknown or foreign ids are acknowledged the same way."""
    method_uuid = parse_uuid(payment_method_id, "payment method ID")
    user_uuid = parse_uuid(user_id, "user ID")

    await orchestrator.delete_payment_method(method_uuid, user_uuid)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@transaction_router.post(
    "/charges",
    response_model=PaymentResultResponse,
    summary="Charge an order",
    description="Charge an order; retries with the same idempotency key replay the original",
)
async def charge(
    request: ChargeRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> PaymentResultResponse:
    """Charge an order. Declines are reported with ``success: false``."""
    order_uuid = parse_uuid(request.order_id, "order ID")
    user_uuid = parse_uuid(request.user_id, "user ID")
    method_uuid = parse_uuid(request.payment_method_id, "payment method ID")

    logger.info(
        "api_charge_request",
        order_id=request.order_id,
        amount_cents=request.amount_cents,
        currency=request.currency,
    )

    result = await orchestrator.charge(
        order_id=order_uuid,
        user_id=user_uuid,
        payment_method_id=method_uuid,
        amount_cents=request.amount_cents,
        currency=request.currency,
        idempotency_key=request.idempotency_key,
    )
    return to_result_response(result)


@transaction_router.post(
    "/transactions/{transaction_id}/refund",
    response_model=PaymentResultResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Refund a transaction",
)
async def refund(
    transaction_id: str,
    request: RefundRequest,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> PaymentResultResponse:
    """Refund a recorded charge."""
    transaction_uuid = parse_uuid(transaction_id, "transaction ID")

    logger.info(
        "api_refund_request",
        transaction_id=transaction_id,
        amount_cents=request.amount_cents,
        reason=request.reason,
    )

    result = await orchestrator.refund(
        transaction_id=transaction_uuid,
        amount_cents=request.amount_cents,
        reason=request.reason,
    )
    return to_result_response(result)


@transaction_router.get(
    "/transactions/{transaction_id}",
    response_model=TransactionResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get a transaction",
)
async def get_transaction(
    transaction_id: str,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> TransactionResponse:
    transaction_uuid = parse_uuid(transaction_id, "transaction ID")

    transaction = await orchestrator.get_transaction(transaction_uuid)
    return TransactionResponse.model_validate(transaction)


@transaction_router.get(
    "/transactions/{transaction_id}/refunds",
    response_model=ListTransactionsResponse,
    summary="List refunds of a transaction",
)
async def list_refunds(
    transaction_id: str,
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
) -> ListTransactionsResponse:
    transaction_uuid = parse_uuid(transaction_id, "transaction ID")

    refunds = await orchestrator.refunds_for(transaction_uuid)
    return ListTransactionsResponse(
        transactions=[TransactionResponse.model_validate(t) for t in refunds]
    )
