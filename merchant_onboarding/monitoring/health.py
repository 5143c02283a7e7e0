"""
Health checks for readiness/liveness probes.

Checks:
- Database connectivity
- Stripe API reachability
"""
import asyncio
from typing import Any, Dict

import stripe
import structlog
from sqlalchemy import text

from merchant_onboarding.config import get_settings
from merchant_onboarding.database.connection import get_session_factory

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """Health check service for the database and Stripe."""

    def __init__(self) -> None:
        """Initialize health check service."""
        self.settings = get_settings()

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Raises:
            HealthCheckError: If database check fails
        """
        try:
            session_factory = get_session_factory()
            async with session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}") from e

        return {
            "status": "healthy",
            "service": "database",
            "message": "Database connection successful",
        }

    async def check_stripe(self) -> Dict[str, Any]:
        """
        Check Stripe API reachability by retrieving the platform account.

        Raises:
            HealthCheckError: If Stripe check fails
        """
        try:
            stripe.api_key = self.settings.stripe_secret_key
            await asyncio.get_running_loop().run_in_executor(None, stripe.Account.retrieve)
        except Exception as e:
            logger.error("stripe_health_check_failed", error=str(e))
            raise HealthCheckError(f"Stripe health check failed: {str(e)}") from e

        return {
            "status": "healthy",
            "service": "stripe",
            "message": "Stripe API connection successful",
            "test_mode": self.settings.is_test_mode,
        }

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks = {}
        all_healthy = True

        for name, check in (("database", self.check_database), ("stripe", self.check_stripe)):
            try:
                checks[name] = await check()
            except HealthCheckError as e:
                checks[name] = {"status": "unhealthy", "service": name, "error": str(e)}
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """Liveness probe; does not check external dependencies."""
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        """Readiness probe; only the database gates serving webhooks."""
        try:
            database = await self.check_database()
        except HealthCheckError as e:
            return {"status": "unhealthy", "checks": {"database": {"error": str(e)}}}
        return {"status": "healthy", "checks": {"database": database}}
