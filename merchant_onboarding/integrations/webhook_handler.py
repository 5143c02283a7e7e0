"""
Stripe webhook handler with signature verification and event routing.

Implements:
- Webhook signature verification
- Event type routing to registered handlers
- Per-event outcome metrics

Events are not deduplicated here: reconciliation is keyed off Stripe
account and event ids, so redelivered events converge on the same state.
"""
import json
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import stripe
import structlog

from merchant_onboarding.config import get_settings
from merchant_onboarding.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

EventCallback = Callable[[Dict[str, Any]], Awaitable[Any]]


class WebhookError(Exception):
    """Raised when webhook processing fails."""

    pass


class WebhookSignatureError(WebhookError):
    """Raised when the Stripe-Signature header does not match the payload."""

    pass


class WebhookHandler:
    """
    Handles Stripe Connect webhook events.

    Features:
    - Signature verification using Stripe webhook secrets
    - Event type routing to appropriate handlers
    - Unrouted event types are acknowledged and ignored
    """

    def __init__(self, secret: Optional[str] = None):
        """
        Initialize webhook handler.

        Args:
            secret: Optional webhook secret (uses config if not provided)
        """
        self.settings = get_settings()
        self.secret = secret or self.settings.stripe_webhook_secret
        self.event_handlers: Dict[str, EventCallback] = {}

        logger.info("webhook_handler_initialized")

    def register_handler(self, event_type: str, handler: EventCallback) -> None:
        """
        Register a handler for a specific event type.

        Args:
            event_type: Stripe event type (e.g., 'account.updated')
            handler: Async callable receiving the full event dict

        Example:
            async def handle_account_updated(event):
                ...

            handler.register_handler('account.updated', handle_account_updated)
        """
        self.event_handlers[event_type] = handler
        logger.info("webhook_handler_registered", event_type=event_type)

    def verify_signature(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """
        Verify webhook signature and decode the event.

        Args:
            payload: Raw request body as bytes
            signature: Stripe-Signature header value

        Returns:
            Dict[str, Any]: The event as plain JSON data

        Raises:
            WebhookSignatureError: If signature verification fails
        """
        try:
            stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=self.secret,
            )
        except stripe.SignatureVerificationError as e:
            logger.error("webhook_signature_verification_failed", error=str(e))
            raise WebhookSignatureError(f"Invalid webhook signature: {str(e)}") from e
        except ValueError as e:
            logger.error("webhook_payload_invalid", error=str(e))
            raise WebhookSignatureError(f"Invalid webhook payload: {str(e)}") from e

        event = json.loads(payload)
        logger.info(
            "webhook_signature_verified",
            event_id=event.get("id"),
            event_type=event.get("type"),
        )
        return event

    async def process_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Process a verified webhook event.

        Args:
            event: Verified Stripe event

        Returns:
            Dict[str, Any]: Processing result

        Raises:
            WebhookError: If the registered handler fails
        """
        event_id = event.get("id")
        event_type = event.get("type", "")
        start_time = time.time()

        logger.info(
            "processing_webhook_event",
            event_id=event_id,
            event_type=event_type,
        )

        handler = self.event_handlers.get(event_type)
        if handler is None:
            logger.info(
                "webhook_no_handler",
                event_id=event_id,
                event_type=event_type,
            )
            metrics.record_webhook_event(event_type, "ignored", time.time() - start_time)
            return {
                "status": "ignored",
                "event_id": event_id,
                "event_type": event_type,
            }

        try:
            result = await handler(event)
        except Exception as e:
            logger.error(
                "webhook_event_processing_failed",
                event_id=event_id,
                event_type=event_type,
                error=str(e),
            )
            metrics.record_webhook_event(event_type, "failed", time.time() - start_time)
            raise WebhookError(f"Failed to process event {event_id}: {str(e)}") from e

        logger.info(
            "webhook_event_processed_successfully",
            event_id=event_id,
            event_type=event_type,
        )
        metrics.record_webhook_event(event_type, "success", time.time() - start_time)

        return {
            "status": "success",
            "event_id": event_id,
            "event_type": event_type,
            "result": result,
        }
