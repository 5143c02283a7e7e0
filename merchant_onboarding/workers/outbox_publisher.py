"""
Outbox publisher background worker.

Continuously polls the outbox table and hands creator notifications to the
mail delivery service.
"""
import asyncio
import signal
import sys
from typing import Any, Dict

import structlog

from merchant_onboarding.core.outbox import OutboxPublisher
from merchant_onboarding.monitoring.logging import setup_logging

logger = structlog.get_logger(__name__)


async def deliver_notification(event_data: Dict[str, Any]) -> None:
    """
    Deliver one creator notification.

    Args:
        event_data: Outbox event; ``payload`` holds the template and its parameters
    """
    payload = event_data.get("payload") or {}
    logger.info(
        "creator_notification_delivered",
        template=payload.get("template"),
        creator_id=payload.get("creator_id"),
    )


async def start_outbox_publisher() -> None:
    """
    Start the outbox publisher worker.

    Runs continuously until stopped.
    """
    setup_logging()

    logger.info("outbox_publisher_worker_starting")

    publisher = OutboxPublisher(
        publisher_func=deliver_notification,
        batch_size=100,
        poll_interval_seconds=1.0,
    )

    def signal_handler(sig: int, frame: Any) -> None:
        logger.info("outbox_publisher_worker_shutdown_signal_received", signal=sig)
        publisher.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await publisher.start()
    except Exception as e:
        logger.error("outbox_publisher_worker_error", error=str(e))
        raise
    finally:
        logger.info("outbox_publisher_worker_stopped")


def main() -> None:
    asyncio.run(start_outbox_publisher())


if __name__ == "__main__":
    main()
