"""
Tests for notification delivery through the outbox.
"""
import uuid
from typing import Any, Dict, List

import pytest
from sqlalchemy import select

from merchant_onboarding.core.notifications import NotificationKind, Notifier
from merchant_onboarding.core.outbox import OutboxPublisher
from merchant_onboarding.database.models import Creator, OutboxEvent


async def enqueue_two(session_factory: Any) -> uuid.UUID:
    creator_id = uuid.uuid4()
    async with session_factory() as db:
        db.add(Creator(id=creator_id, email="creator@example.com"))
        notifier = Notifier(db)
        notifier.enqueue(creator_id, NotificationKind.MORE_KYC_NEEDED, fields=["individual.dob"])
        notifier.enqueue(creator_id, NotificationKind.INVALID_BANK_ACCOUNT)
        await db.commit()
    return creator_id


class TestOutboxPublisher:
    """Test suite for OutboxPublisher."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_process_batch_delivers_and_marks_published(self, session_factory: Any) -> None:
        creator_id = await enqueue_two(session_factory)
        delivered: List[Dict[str, Any]] = []

        async def deliver(event: Dict[str, Any]) -> None:
            delivered.append(event)

        publisher = OutboxPublisher(publisher_func=deliver, session_factory=session_factory)

        assert await publisher.get_pending_count() == 2
        assert await publisher.process_batch() == 2

        assert [event["event_type"] for event in delivered] == [
            "email.more_kyc_needed",
            "email.invalid_bank_account",
        ]
        assert delivered[0]["aggregate_id"] == str(creator_id)
        assert delivered[0]["payload"]["fields"] == ["individual.dob"]
        assert await publisher.get_pending_count() == 0
        assert await publisher.process_batch() == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_delivery_stays_pending(self, session_factory: Any) -> None:
        await enqueue_two(session_factory)

        async def deliver(event: Dict[str, Any]) -> None:
            if event["event_type"] == "email.invalid_bank_account":
                raise ConnectionError("mailer down")

        publisher = OutboxPublisher(publisher_func=deliver, session_factory=session_factory)

        assert await publisher.process_batch() == 1

        async with session_factory() as db:
            result = await db.execute(select(OutboxEvent).where(OutboxEvent.published == False))  # noqa: E712
            [pending] = result.scalars().all()
        assert pending.event_type == "email.invalid_bank_account"
