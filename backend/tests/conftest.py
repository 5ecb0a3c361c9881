"""
Pytest configuration and fixtures.

WHY: Fixtures provide reusable test setup/teardown logic, reducing
duplication and ensuring consistent test environments.
"""

import pytest
import pytest_asyncio
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from helpdesk.db.session import create_session_factory, init_models
from helpdesk.models.base import Base
from helpdesk.services.notification_service import NotificationService
from helpdesk.services.sla_timer_registry import SLATimerRegistry
from helpdesk.services.ticket_lifecycle import TicketLifecycleService


# Test database URL
# WHY: Using SQLite for tests eliminates external database dependencies
# and makes tests faster. StaticPool keeps the in-memory database alive
# across the sessions each service call opens.
TEST_ASYNC_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """
    Create a test database engine.

    WHY: Function scope ensures each test gets a fresh database state,
    preventing test pollution and ensuring test isolation.
    """
    engine = create_async_engine(
        TEST_ASYNC_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    await init_models(engine)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Session factory handed to services, one session per operation."""
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session for factories and direct DAO tests.

    Yields:
        AsyncSession: Database session for the test
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def notifier():
    """
    Notification gateway double.

    WHY: Lifecycle tests assert on the events sent, never on Slack.
    """
    mock = MagicMock(spec=NotificationService)
    mock.send = AsyncMock(return_value=True)
    return mock


@pytest_asyncio.fixture
async def sla_registry(notifier):
    """
    SLA registry with its scheduler stopped.

    WHY: Jobs stay pending, so tests can inspect them without any deadline
    ever firing. Reset afterwards keeps tests independent.
    """
    registry = SLATimerRegistry(notifier=notifier)
    yield registry
    registry.shutdown()
    await registry.drain_notifications()


@pytest_asyncio.fixture
async def lifecycle(session_factory, notifier, sla_registry):
    """Lifecycle service wired to the test database and doubles."""
    service = TicketLifecycleService(
        session_factory,
        notification_service=notifier,
        sla_registry=sla_registry,
    )
    yield service
    await service.drain_notifications()


@pytest.fixture
def sample_ticket_data() -> dict:
    """
    Sample ticket fields for tests.

    WHY: Centralizing test data ensures consistency across tests
    and makes it easy to update test data in one place.
    """
    return {
        "title": "Laptop will not boot",
        "description": "Black screen after the latest update",
        "category": "hardware_issue",
        "severity": "high",
    }
