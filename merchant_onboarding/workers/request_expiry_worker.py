"""
Compliance request expiry worker.

Runs once a day and expires requests whose Stripe deadline has passed.
"""
import argparse
import asyncio
import signal
from datetime import datetime, timedelta
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from merchant_onboarding.core.reconciliation import EventReconciler
from merchant_onboarding.database.connection import get_session_factory
from merchant_onboarding.monitoring.logging import setup_logging

logger = structlog.get_logger(__name__)


async def run_request_expiry(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Expire overdue compliance requests in one transaction.

    Returns:
        int: Number of requests expired
    """
    logger.info("request_expiry_started")

    async with (session_factory or get_session_factory())() as db:
        expired = await EventReconciler(db).expire_overdue_requests(now)
        await db.commit()

    logger.info("request_expiry_completed", expired=expired)
    return expired


def seconds_until_next_run(target_hour: int = 3, now: Optional[datetime] = None) -> float:
    """Seconds until the next ``target_hour``:00."""
    now = now or datetime.now()
    next_run = now.replace(hour=target_hour, minute=0, second=0, microsecond=0)
    if now >= next_run:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


async def start_request_expiry_worker(target_hour: int = 3) -> None:
    """
    Start the expiry worker.

    Args:
        target_hour: Hour of day to run (default: 3 AM)
    """
    setup_logging()

    logger.info("request_expiry_worker_starting", target_hour=target_hour)

    running = True

    def signal_handler(sig: int, frame: Any) -> None:
        nonlocal running
        logger.info("request_expiry_worker_shutdown_signal_received", signal=sig)
        running = False

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        while running:
            seconds_until = seconds_until_next_run(target_hour)
            logger.info("request_expiry_next_run_scheduled", seconds_until=seconds_until)

            # Sleep in short steps so a shutdown signal is noticed
            while seconds_until > 0 and running:
                sleep_time = min(seconds_until, 60)
                await asyncio.sleep(sleep_time)
                seconds_until -= sleep_time

            if not running:
                break

            try:
                await run_request_expiry()
            except Exception as e:
                # One failed run must not stop tomorrow's
                logger.error("request_expiry_execution_error", error=str(e))
    finally:
        logger.info("request_expiry_worker_stopped")


def main() -> None:
    parser = argparse.ArgumentParser(description="Compliance request expiry worker")
    parser.add_argument("--hour", type=int, default=3, help="Hour of day to run (0-23)")
    args = parser.parse_args()

    asyncio.run(start_request_expiry_worker(target_hour=args.hour))


if __name__ == "__main__":
    main()
