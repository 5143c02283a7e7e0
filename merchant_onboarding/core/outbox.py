"""
Transactional outbox publisher for creator notifications.

Notifications are written to the outbox in the same transaction as the
compliance changes that caused them, then handed to the mail delivery
callable here and marked as published.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from merchant_onboarding.database.connection import get_session_factory
from merchant_onboarding.database.models import OutboxEvent, utcnow
from merchant_onboarding.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

DeliveryFunc = Callable[[Dict[str, Any]], Awaitable[Any]]


class OutboxPublisher:
    """
    Delivers events from the outbox table.

    1. Read unpublished events from the outbox
    2. Hand each to the delivery callable
    3. Mark the delivered ones as published
    """

    def __init__(
        self,
        publisher_func: Optional[DeliveryFunc] = None,
        batch_size: int = 100,
        poll_interval_seconds: float = 1.0,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        """
        Initialize outbox publisher.

        Args:
            publisher_func: Async callable delivering one event (e.g. to the mailer)
            batch_size: Number of events to process per batch
            poll_interval_seconds: Polling interval
            session_factory: Optional session factory (defaults to the app's)
        """
        self.publisher_func = publisher_func or self._default_publisher
        self.batch_size = batch_size
        self.poll_interval_seconds = poll_interval_seconds
        self.session_factory = session_factory
        self._running = False

        logger.info(
            "outbox_publisher_initialized",
            batch_size=batch_size,
            poll_interval=poll_interval_seconds,
        )

    async def _default_publisher(self, event_data: Dict[str, Any]) -> None:
        """Log-only delivery, used when no mailer is wired in."""
        logger.info(
            "outbox_event_published_default",
            event_type=event_data.get("event_type"),
            aggregate_id=event_data.get("aggregate_id"),
        )

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        return self.session_factory or get_session_factory()

    async def _fetch_unpublished_events(self, db: AsyncSession) -> List[OutboxEvent]:
        stmt = (
            select(OutboxEvent)
            .where(OutboxEvent.published == False)  # noqa: E712
            .order_by(OutboxEvent.created_at, OutboxEvent.id)
            .limit(self.batch_size)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def _publish_event(self, event: OutboxEvent) -> bool:
        """
        Deliver a single event.

        Returns:
            bool: True if delivered, False otherwise
        """
        event_data = {
            "id": event.id,
            "aggregate_id": str(event.aggregate_id),
            "aggregate_type": event.aggregate_type,
            "event_type": event.event_type,
            "payload": event.payload,
            "created_at": event.created_at.isoformat(),
        }
        try:
            await self.publisher_func(event_data)
        except Exception as e:
            # Left unpublished; the next batch retries it.
            logger.error(
                "outbox_event_publish_failed",
                event_id=event.id,
                event_type=event.event_type,
                error=str(e),
            )
            return False

        metrics.record_outbox_event_published(event.event_type)
        logger.info(
            "outbox_event_published",
            event_id=event.id,
            event_type=event.event_type,
            aggregate_id=str(event.aggregate_id),
        )
        return True

    async def _mark_as_published(self, db: AsyncSession, event_ids: List[int]) -> None:
        if not event_ids:
            return

        stmt = (
            update(OutboxEvent)
            .where(OutboxEvent.id.in_(event_ids))
            .values(published=True, published_at=utcnow())
        )
        await db.execute(stmt)
        await db.commit()

        logger.info("outbox_events_marked_published", count=len(event_ids))

    async def process_batch(self) -> int:
        """
        Process a batch of unpublished events.

        Returns:
            int: Number of events published
        """
        async with self._sessions()() as db:
            events = await self._fetch_unpublished_events(db)
            if not events:
                return 0

            logger.info("outbox_batch_processing_started", batch_size=len(events))

            published_ids = []
            for event in events:
                if await self._publish_event(event):
                    published_ids.append(event.id)

            await self._mark_as_published(db, published_ids)

            logger.info(
                "outbox_batch_processed",
                total=len(events),
                published=len(published_ids),
                failed=len(events) - len(published_ids),
            )
            return len(published_ids)

    async def start(self) -> None:
        """
        Start the outbox publisher loop.

        Continuously polls for unpublished events and delivers them.
        """
        self._running = True
        logger.info("outbox_publisher_started")

        try:
            while self._running:
                try:
                    published_count = await self.process_batch()
                    metrics.set_outbox_queue_depth(await self.get_pending_count())
                except Exception as e:
                    logger.error("outbox_publisher_error", error=str(e))
                    published_count = 0

                if published_count == 0:
                    await asyncio.sleep(self.poll_interval_seconds)
                else:
                    # More may be waiting
                    await asyncio.sleep(0.1)
        finally:
            logger.info("outbox_publisher_stopped")

    def stop(self) -> None:
        """Stop the outbox publisher."""
        self._running = False
        logger.info("outbox_publisher_stop_requested")

    async def get_pending_count(self) -> int:
        """Number of unpublished events."""
        async with self._sessions()() as db:
            stmt = select(func.count(OutboxEvent.id)).where(
                OutboxEvent.published == False  # noqa: E712
            )
            result = await db.execute(stmt)
            return int(result.scalar_one())
