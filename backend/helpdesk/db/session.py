"""
Database session management.

WHY: Every lifecycle operation is one unit of work: it opens a session,
performs its conditional writes, commits, and only then notifies. The
session factory is created once per process and injected into services.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from helpdesk.core.config import settings, to_async_url
from helpdesk.models.base import Base


def create_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> AsyncEngine:
    """
    Create the async engine.

    WHY: pool_pre_ping recycles stale connections in long-running workers.
    SQLite ignores pool sizing, so those options are only passed for servers.

    Args:
        database_url: Override for settings.async_database_url
        echo: Override for settings.DEBUG
    """
    url = to_async_url(database_url) if database_url else settings.async_database_url
    kwargs = {"echo": settings.DEBUG if echo is None else echo}
    if not url.startswith("sqlite"):
        kwargs.update(pool_pre_ping=True, pool_size=10, max_overflow=20)
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Create a session factory bound to an engine.

    WHY: expire_on_commit=False lets services hand committed tickets back to
    callers without lazy-loading in an async context. autoflush=False gives
    explicit control over when conditional updates hit the database.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables (development and tests; production uses migrations)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
