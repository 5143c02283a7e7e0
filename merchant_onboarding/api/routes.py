"""
API routes for merchant onboarding.
"""
import uuid
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.ext.asyncio import AsyncSession

from merchant_onboarding.core.account_manager import MerchantAccountManager
from merchant_onboarding.core.errors import MalformedEventError
from merchant_onboarding.core.reconciliation import EventReconciler
from merchant_onboarding.database.connection import get_db
from merchant_onboarding.integrations.stripe_client import StripeClient, VendorError
from merchant_onboarding.integrations.webhook_handler import (
    WebhookError,
    WebhookHandler,
    WebhookSignatureError,
)
from merchant_onboarding.monitoring.health import HealthCheck

from .schemas import (
    ExpireRequestsResponse,
    HealthCheckResponse,
    MerchantAccountResponse,
    WebhookResponse,
)

logger = structlog.get_logger(__name__)

webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])
monitoring_router = APIRouter(tags=["monitoring"])

health_check = HealthCheck()

_stripe_client: StripeClient | None = None


def get_stripe_client() -> StripeClient:
    """Shared Stripe client; one circuit breaker for the process."""
    global _stripe_client
    if _stripe_client is None:
        _stripe_client = StripeClient()
    return _stripe_client


def get_webhook_handler() -> WebhookHandler:
    return WebhookHandler()


def get_account_manager(
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> MerchantAccountManager:
    return MerchantAccountManager(db, stripe_client=stripe_client)


def get_event_reconciler(
    db: AsyncSession = Depends(get_db),
    account_manager: MerchantAccountManager = Depends(get_account_manager),
) -> EventReconciler:
    return EventReconciler(
        db,
        stripe_client=account_manager.stripe_client,
        account_manager=account_manager,
        notifier=account_manager.notifier,
    )


@webhook_router.post(
    "/stripe",
    response_model=WebhookResponse,
    summary="Stripe Connect webhook endpoint",
    description="Reconcile Stripe account, capability and deauthorization events",
)
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(..., alias="Stripe-Signature"),
    webhook_handler: WebhookHandler = Depends(get_webhook_handler),
    reconciler: EventReconciler = Depends(get_event_reconciler),
) -> Dict[str, Any]:
    """
    Handle Stripe webhook events.

    Failures other than a bad signature or payload return 500 so Stripe
    redelivers the event.
    """
    body = await request.body()

    try:
        event = webhook_handler.verify_signature(body, stripe_signature)
    except WebhookSignatureError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info(
        "api_webhook_received",
        event_id=event.get("id"),
        event_type=event.get("type"),
    )

    reconciler.register(webhook_handler)
    try:
        return await webhook_handler.process_event(event)
    except WebhookError as e:
        if isinstance(e.__cause__, MalformedEventError):
            raise e.__cause__
        logger.error("api_webhook_error", event_id=event.get("id"), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        )


@admin_router.post(
    "/creators/{creator_id}/merchant_account",
    response_model=MerchantAccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Provision a merchant account",
    description="Create the creator's Stripe custom account",
)
async def create_merchant_account(
    creator_id: uuid.UUID,
    from_admin: bool = False,
    account_manager: MerchantAccountManager = Depends(get_account_manager),
) -> Dict[str, Any]:
    """
    Provision a Stripe account.

    ``from_admin`` replaces a half-provisioned account instead of refusing.
    Not-ready and vendor failures surface through the app error handlers.
    """
    logger.info("api_create_merchant_account", creator_id=str(creator_id), from_admin=from_admin)
    try:
        merchant_account = await account_manager.create_account(creator_id, from_admin=from_admin)
    except VendorError:
        # Keep the tombstoned attempt; the session rolls back on the way out.
        await account_manager.db.commit()
        raise

    return {
        "id": str(merchant_account.id),
        "creator_id": str(merchant_account.creator_id),
        "stripe_account_id": merchant_account.charge_processor_merchant_id,
        "country": merchant_account.country,
        "currency": merchant_account.currency,
        "charge_processor_alive_at": merchant_account.charge_processor_alive_at,
    }


@admin_router.post(
    "/compliance_requests/expire",
    response_model=ExpireRequestsResponse,
    summary="Expire overdue compliance requests",
)
async def expire_compliance_requests(
    reconciler: EventReconciler = Depends(get_event_reconciler),
) -> Dict[str, Any]:
    """Move requests past their due date to expired."""
    expired = await reconciler.expire_overdue_requests()
    return {"expired": expired}


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health() -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    return await health_check.check_all()


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
)
async def liveness() -> Dict[str, Any]:
    """Liveness probe endpoint."""
    return await health_check.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
)
async def readiness() -> Dict[str, Any]:
    """Readiness probe endpoint."""
    result = await health_check.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
