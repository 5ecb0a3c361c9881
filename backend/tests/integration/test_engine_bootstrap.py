"""
Integration tests for the engine bootstrap.

WHY: Verifies that a process can start the engine, work tickets, stop it,
and on the next start pick up the SLA timers of tickets still being worked.
"""

from datetime import timedelta

import pytest

from helpdesk.core.permissions import UserRole
from helpdesk.main import SLA_SWEEP_JOB_ID, HelpdeskEngine, engine_lifespan
from helpdesk.models.base import utcnow
from tests.factories import TENANT

IT = UserRole.IT_HELPDESK_ANALYST


class TestEngineBootstrap:
    """Tests for HelpdeskEngine and engine_lifespan."""

    @pytest.fixture
    def database_url(self, tmp_path):
        return f"sqlite+aiosqlite:///{tmp_path / 'engine.db'}"

    @pytest.mark.asyncio
    async def test_lifespan_starts_and_stops(self, database_url, notifier):
        async with engine_lifespan(database_url, create_tables=True, notifications=notifier) as helpdesk:
            assert helpdesk.sla_registry.running is True
            assert helpdesk.sla_registry.scheduler.get_job(SLA_SWEEP_JOB_ID) is not None

            health = helpdesk.health()
            assert health["status"] == "healthy"
            assert health["scheduler_running"] is True

        assert helpdesk.sla_registry.running is False

    @pytest.mark.asyncio
    async def test_timers_restored_on_restart(self, database_url, notifier, sample_ticket_data):
        async with engine_lifespan(database_url, create_tables=True, notifications=notifier) as helpdesk:
            ticket = await helpdesk.lifecycle.create_ticket(TENANT, "user-1", sample_ticket_data)
            await helpdesk.lifecycle.self_assign(
                TENANT, ticket.id, "it-1", UserRole.IT_HELPDESK_ANALYST
            )
            await helpdesk.lifecycle.create_ticket(TENANT, "user-2", sample_ticket_data)

        async with engine_lifespan(database_url, notifications=notifier) as restarted:
            assert len(restarted.sla_registry.pending_job_ids(ticket.id)) == 3
            assert restarted.health()["scheduled_jobs"] == 4

    @pytest.mark.asyncio
    async def test_shutdown_is_idempotent(self, database_url, notifier, sample_ticket_data):
        helpdesk = HelpdeskEngine(database_url, notifier)
        await helpdesk.startup(create_tables=True)
        await helpdesk.lifecycle.create_ticket(TENANT, "user-1", sample_ticket_data)

        await helpdesk.shutdown()
        await helpdesk.shutdown()

        assert helpdesk.sla_registry.running is False
        assert helpdesk.lifecycle.pending_notifications == 0
        assert notifier.send.await_count == 1

    @pytest.mark.asyncio
    async def test_health_counts_drop_after_resolve(self, database_url, notifier, sample_ticket_data):
        async with engine_lifespan(database_url, create_tables=True, notifications=notifier) as helpdesk:
            ticket = await helpdesk.lifecycle.create_ticket(TENANT, "user-1", sample_ticket_data)
            await helpdesk.lifecycle.self_assign(TENANT, ticket.id, "it-1", IT)
            await helpdesk.sla_registry.handle_deadline(ticket.id, "resolution")
            assert helpdesk.health()["breached"] == 1

            await helpdesk.lifecycle.update_ticket(
                TENANT, ticket.id, {"status": "resolved", "resolution": "Fixed"}, "it-1", IT
            )
            assert helpdesk.health()["breached"] == 0

            await helpdesk.sla_service.sweep_overdue(utcnow() + timedelta(days=2))
            health = helpdesk.health()
            assert health["breached"] == 0
            assert health["at_risk"] == 0
