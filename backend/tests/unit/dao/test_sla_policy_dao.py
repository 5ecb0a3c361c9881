"""
Unit tests for SLA policy DAO.

WHY: Verifies tenant policies override the default hours and that
invalid policies are rejected.
"""

import pytest

from helpdesk.core.exceptions import ValidationError
from helpdesk.dao.sla_policy import SLAPolicyDAO
from helpdesk.models.ticket import DEFAULT_SLA_HOURS, TicketSeverity
from tests.factories import OTHER_TENANT, TENANT, SLAPolicyFactory


class TestSLAPolicyDAO:
    """Tests for SLAPolicyDAO."""

    @pytest.mark.asyncio
    async def test_defaults_without_policy(self, db_session):
        hours = await SLAPolicyDAO(db_session).get_hours(TENANT, TicketSeverity.CRITICAL)

        assert hours == DEFAULT_SLA_HOURS[TicketSeverity.CRITICAL]

    @pytest.mark.asyncio
    async def test_tenant_policy_overrides_defaults(self, db_session):
        await SLAPolicyFactory.create(
            db_session, severity=TicketSeverity.HIGH,
            response_time_hours=2, resolution_time_hours=6,
        )
        dao = SLAPolicyDAO(db_session)

        assert await dao.get_hours(TENANT, TicketSeverity.HIGH) == {
            "response_hours": 2,
            "resolution_hours": 6,
        }
        # Other tenants keep the defaults
        assert await dao.get_hours(OTHER_TENANT, TicketSeverity.HIGH) == (
            DEFAULT_SLA_HOURS[TicketSeverity.HIGH]
        )

    @pytest.mark.asyncio
    async def test_upsert_creates_then_replaces(self, db_session):
        dao = SLAPolicyDAO(db_session)

        created = await dao.upsert(TENANT, TicketSeverity.LOW, 12, 96)
        replaced = await dao.upsert(TENANT, TicketSeverity.LOW, 6, 48)

        assert replaced.id == created.id
        assert replaced.response_time_hours == 6
        assert len(await dao.list_for_tenant(TENANT)) == 1

    @pytest.mark.asyncio
    async def test_upsert_rejects_non_positive_hours(self, db_session):
        with pytest.raises(ValidationError):
            await SLAPolicyDAO(db_session).upsert(TENANT, TicketSeverity.LOW, 0, 10)

    @pytest.mark.asyncio
    async def test_upsert_rejects_response_after_resolution(self, db_session):
        with pytest.raises(ValidationError):
            await SLAPolicyDAO(db_session).upsert(TENANT, TicketSeverity.LOW, 10, 5)
