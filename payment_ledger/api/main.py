"""
Main FastAPI application.

HTTP transport for the payment ledger with:
- Explicit storage handle built at startup (startup fails if unreachable)
- Error kind to status code mapping
- Request ID tracking
- Structured logging
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from payment_ledger import __version__
from payment_ledger.config import Settings, get_settings
from payment_ledger.core import PaymentOrchestrator
from payment_ledger.database import Database
from payment_ledger.errors import ErrorKind, PaymentLedgerError, StoreError
from payment_ledger.integrations import MockPaymentGateway, PaymentGateway
from payment_ledger.monitoring import setup_logging

from .routes import payment_method_router, transaction_router

logger = structlog.get_logger(__name__)

STATUS_BY_KIND = {
    ErrorKind.INVALID_ARGUMENT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def ledger_error_handler(request: Request, exc: PaymentLedgerError) -> JSONResponse:
    """Translate ledger errors into protocol errors."""
    if exc.kind is ErrorKind.INTERNAL:
        logger.error(
            "request_internal_error",
            error=exc.message,
            cause=str(exc.cause) if exc.cause else None,
            path=request.url.path,
        )
        # Storage details stay in the logs.
        message = "Internal error"
    else:
        logger.warning(
            "request_rejected",
            error_kind=exc.kind.value,
            error=exc.message,
            path=request.url.path,
        )
        message = exc.message

    return JSONResponse(
        status_code=STATUS_BY_KIND[exc.kind],
        content={"error": exc.kind.value, "message": message},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as invalid arguments."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{field}: {first.get('msg', 'invalid value')}" if field else "Invalid request"

    logger.warning("request_validation_failed", path=request.url.path, error=message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": ErrorKind.INVALID_ARGUMENT.value, "message": message},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.
    """
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": ErrorKind.INTERNAL.value, "message": "Internal error"},
    )


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[PaymentGateway] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use (loaded from the environment when omitted)
        gateway: Payment gateway (mock gateway when omitted)

    Returns:
        FastAPI: Configured application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
        app_settings = settings or get_settings()
        setup_logging(app_settings)

        logger.info(
            "application_startup",
            app_name=app_settings.app_name,
            env=app_settings.app_env,
        )

        database = Database.from_settings(app_settings)
        try:
            await database.ping()
            await database.create_all()
        except StoreError as e:
            logger.error("database_initialization_failed", error=str(e.cause or e))
            await database.close()
            raise

        app.state.database = database
        app.state.orchestrator = PaymentOrchestrator.build(
            database,
            gateway
            or MockPaymentGateway(
                decline_threshold_cents=app_settings.gateway_decline_threshold_cents
            ),
        )

        yield

        logger.info("application_shutdown")
        await database.close()
        logger.info("database_connections_closed")

    app = FastAPI(
        title="Payment Ledger",
        description=(
            "Payment methods and charge/refund ledger with idempotent charges "
            "and a single default payment method per user."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
        """
        Add request ID to all requests for tracing.

        Also adds timing information and structured logging context.
        """
        request_id = str(uuid.uuid4())
        start_time = time.time()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id

            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=time.time() - start_time,
            )
            return response
        finally:
            structlog.contextvars.clear_contextvars()

    app.add_exception_handler(PaymentLedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(payment_method_router)
    app.include_router(transaction_router)

    return app


app = create_app()


def main() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "payment_ledger.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug and not settings.is_production,
        workers=settings.api_workers if not settings.debug else 1,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
