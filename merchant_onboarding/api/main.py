"""
Merchant onboarding service.

Serves the Stripe Connect webhook, admin provisioning and the monitoring
endpoints. Domain errors raised by the account manager are translated to
HTTP statuses here, so routes only deal with the happy path.
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Type

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse

from merchant_onboarding import __version__
from merchant_onboarding.config import get_settings
from merchant_onboarding.core.errors import (
    AlreadyHasAccountError,
    MalformedEventError,
    MerchantRegistrationError,
    NotReadyError,
)
from merchant_onboarding.database.connection import close_db, init_db
from merchant_onboarding.integrations.stripe_client import VendorError, VendorRejectionError
from merchant_onboarding.monitoring.logging import setup_logging

from .routes import admin_router, monitoring_router, webhook_router

setup_logging()
logger = structlog.get_logger(__name__)

settings = get_settings()

REQUEST_ID_HEADER = "X-Request-ID"

# Most specific class first; lookup walks the exception's MRO.
ERROR_STATUS: Dict[Type[Exception], int] = {
    AlreadyHasAccountError: status.HTTP_409_CONFLICT,
    NotReadyError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    MalformedEventError: status.HTTP_400_BAD_REQUEST,
    VendorRejectionError: status.HTTP_502_BAD_GATEWAY,
    VendorError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    """Open the database pool on startup and dispose of it on shutdown."""
    logger.info(
        "merchant_onboarding_starting",
        env=settings.app_env,
        stripe_api_version=settings.stripe_api_version,
        test_mode=settings.is_test_mode,
    )
    await init_db()

    yield

    try:
        await close_db()
    except Exception as e:
        logger.error("database_shutdown_error", error=str(e))
    logger.info("merchant_onboarding_stopped")


app = FastAPI(
    title="Merchant Onboarding",
    description=(
        "Stripe Connect merchant account provisioning and compliance reconciliation. "
        "Maps creator compliance profiles onto Stripe custom accounts and turns "
        "account webhooks into compliance requests and creator notifications."
    ),
    version=__version__,
    lifespan=lifespan,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next: Any) -> Response:
    """Bind a request id to every log line of the request and echo it back."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    started = time.perf_counter()
    structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)

    try:
        response = await call_next(request)
    finally:
        structlog.contextvars.clear_contextvars()

    response.headers[REQUEST_ID_HEADER] = request_id
    logger.info(
        "http_request",
        request_id=request_id,
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    return response


def status_for(exc: Exception) -> int:
    for klass in type(exc).__mro__:
        if klass in ERROR_STATUS:
            return ERROR_STATUS[klass]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(MerchantRegistrationError)
@app.exception_handler(VendorError)
async def domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Translate provisioning and vendor failures into HTTP errors."""
    code = status_for(exc)
    logger.warning(
        "request_rejected",
        path=request.url.path,
        status_code=code,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(status_code=code, content={"detail": getattr(exc, "message", str(exc))})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


app.include_router(webhook_router)
app.include_router(admin_router)
app.include_router(monitoring_router)


@app.get("/", tags=["root"])
async def root() -> Dict[str, Any]:
    """Service information."""
    return {
        "service": settings.app_name,
        "version": __version__,
        "status": "operational",
        "environment": settings.app_env,
        "test_mode": settings.is_test_mode,
        "webhook": "/webhooks/stripe",
        "health": "/health",
        "metrics": "/metrics",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "merchant_onboarding.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
