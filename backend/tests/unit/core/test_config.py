"""
Tests for database URL handling.

WHY: Verifies that:
1. Plain PostgreSQL URLs are pointed at the asyncpg driver
2. URLs that already name a driver are left alone
3. Engines built from an explicit URL get the same rewrite as settings
"""

import pytest

from helpdesk.core.config import to_async_url
from helpdesk.db.session import create_engine


class TestAsyncUrl:
    """Tests for to_async_url."""

    def test_plain_postgres_gets_asyncpg(self):
        assert (
            to_async_url("postgresql://u:p@localhost/helpdesk")
            == "postgresql+asyncpg://u:p@localhost/helpdesk"
        )

    def test_driver_urls_unchanged(self):
        assert to_async_url("postgresql+asyncpg://u:p@db/helpdesk") == "postgresql+asyncpg://u:p@db/helpdesk"
        assert to_async_url("sqlite+aiosqlite:///:memory:") == "sqlite+aiosqlite:///:memory:"


class TestCreateEngine:
    """Tests for create_engine URL overrides."""

    @pytest.mark.asyncio
    async def test_explicit_postgres_url_uses_asyncpg(self):
        engine = create_engine("postgresql://u:p@localhost/helpdesk")
        try:
            assert engine.url.drivername == "postgresql+asyncpg"
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_explicit_sqlite_url_kept(self):
        engine = create_engine("sqlite+aiosqlite:///:memory:")
        try:
            assert engine.url.drivername == "sqlite+aiosqlite"
        finally:
            await engine.dispose()
