"""
Engine and session lifecycle for the onboarding database.

The API opens one session per request through ``get_db``; the webhook route
commits the reconciliation changes and their outbox rows together when the
request finishes. The outbox publisher and the request expiry worker run
outside FastAPI and open their own sessions from ``get_session_factory``.
"""
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from merchant_onboarding.config import Settings, get_settings
from merchant_onboarding.database.models import Base

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

POOL_RECYCLE_SECONDS = 3600


def engine_options(settings: Settings) -> dict[str, Any]:
    """
    Keyword arguments for ``create_async_engine``.

    Pool sizing only applies to server databases; SQLite runs on its
    default pool, which rejects those options.
    """
    options: dict[str, Any] = {"echo": settings.database_echo}
    if settings.database_url.startswith("sqlite"):
        return options
    options.update(
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=POOL_RECYCLE_SECONDS,
    )
    return options


def get_engine() -> AsyncEngine:
    """Process-wide engine, created from settings on first use."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(settings.database_url, **engine_options(settings))
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Session factory bound to the process-wide engine.

    Objects stay readable after commit so the account manager can keep
    using the rows it just wrote.
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, Any]:
    """
    FastAPI dependency yielding one session per request.

    The session commits when the route returns and rolls back when it
    raises, so a failed reconciliation leaves no requests or outbox rows
    behind.
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create any missing tables."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine; the next ``get_engine`` call builds a new one."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
