"""
Creator notifications.

Notifications are written to the transactional outbox in the same session
as the changes that caused them; the outbox publisher delivers them.
"""
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from merchant_onboarding.database.models import OutboxEvent, utcnow
from merchant_onboarding.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

CREATOR_AGGREGATE = "creator"
EMAIL_EVENT_PREFIX = "email."


class NotificationKind(str, Enum):
    """Creator-facing emails this service can trigger."""

    MORE_KYC_NEEDED = "more_kyc_needed"
    DOCUMENT_VERIFICATION_FAILED = "stripe_document_verification_failed"
    IDENTITY_VERIFICATION_FAILED = "stripe_identity_verification_failed"
    REMEDIATION = "stripe_remediation"
    SUSPENDED_DUE_TO_RISK = "suspended_due_to_stripe_risk"
    INVALID_BANK_ACCOUNT = "invalid_bank_account"
    CHARGES_DISABLED = "stripe_charges_disabled"
    PAYOUTS_DISABLED = "stripe_payouts_disabled"
    ACCOUNT_DEAUTHORIZED = "account_deauthorized"

    @property
    def event_type(self) -> str:
        return f"{EMAIL_EVENT_PREFIX}{self.value}"


class Notifier:
    """Enqueues creator notifications on a database session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def enqueue(
        self,
        creator_id: uuid.UUID,
        kind: NotificationKind,
        **details: Any,
    ) -> OutboxEvent:
        """
        Write a notification to the outbox.

        Args:
            creator_id: Creator to notify
            kind: Which email to send
            **details: Template parameters (fields needed, error reason, ...)

        Returns:
            OutboxEvent: The pending outbox row
        """
        outbox_event = OutboxEvent(
            aggregate_id=creator_id,
            aggregate_type=CREATOR_AGGREGATE,
            event_type=kind.event_type,
            payload={"creator_id": str(creator_id), "template": kind.value, **details},
            published=False,
            created_at=utcnow(),
        )
        self.db.add(outbox_event)
        metrics.record_notification(kind.value)

        logger.info(
            "creator_notification_enqueued",
            creator_id=str(creator_id),
            template=kind.value,
        )
        return outbox_event


async def pending_notifications(
    db: AsyncSession, creator_id: Optional[uuid.UUID] = None
) -> List[Dict[str, Any]]:
    """Unpublished notification payloads, oldest first."""
    stmt = (
        select(OutboxEvent)
        .where(OutboxEvent.aggregate_type == CREATOR_AGGREGATE)
        .where(OutboxEvent.published == False)  # noqa: E712
        .order_by(OutboxEvent.id)
    )
    if creator_id is not None:
        stmt = stmt.where(OutboxEvent.aggregate_id == creator_id)
    result = await db.execute(stmt)
    return [event.payload for event in result.scalars().all()]
