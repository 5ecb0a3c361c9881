"""
Unit tests for the queue manager.

WHAT: Tests queue ordering, role scoping and metrics.

WHY: Verifies that:
1. Unassigned tickets always precede assigned ones
2. Unassigned tickets sort by severity, then age, then insertion order
3. Assigned tickets sort by assignment time
4. Analysts only see their categories; requesters only their tickets
"""

import pytest
from datetime import datetime, timedelta
from types import SimpleNamespace

from helpdesk.core.permissions import UserRole
from helpdesk.models.base import utcnow
from helpdesk.models.ticket import TicketCategory, TicketSeverity, TicketStatus
from helpdesk.schemas.ticket import TicketFilters
from helpdesk.services.queue_manager import QueueManager, order_queue
from tests.factories import TENANT, TicketFactory


def _t(id, severity, created_at, assignee=None, assigned_at=None):
    return SimpleNamespace(
        id=id,
        severity=severity,
        created_at=created_at,
        assignee=assignee,
        assigned_at=assigned_at,
    )


class TestOrderQueue:
    """Tests for the pure ordering function."""

    def test_unassigned_critical_before_assigned_high(self):
        """C1, C2 unassigned critical; H1 assigned high."""
        t0 = datetime(2024, 1, 1, 9, 0)
        c1 = _t(1, TicketSeverity.CRITICAL, t0)
        c2 = _t(2, TicketSeverity.CRITICAL, t0 + timedelta(minutes=5))
        h1 = _t(3, TicketSeverity.HIGH, t0 - timedelta(hours=1), "it-1", t0)

        assert [t.id for t in order_queue([h1, c2, c1])] == [1, 2, 3]

    def test_low_unassigned_before_critical_assigned(self):
        t0 = datetime(2024, 1, 1, 9, 0)
        low = _t(1, TicketSeverity.LOW, t0 + timedelta(hours=5))
        critical = _t(2, TicketSeverity.CRITICAL, t0, "sec-1", t0)

        assert [t.id for t in order_queue([critical, low])] == [1, 2]

    def test_severity_then_age(self):
        t0 = datetime(2024, 1, 1, 9, 0)
        tickets = [
            _t(1, TicketSeverity.LOW, t0),
            _t(2, TicketSeverity.HIGH, t0 + timedelta(minutes=10)),
            _t(3, TicketSeverity.HIGH, t0 + timedelta(minutes=1)),
            _t(4, TicketSeverity.MEDIUM, t0),
        ]

        assert [t.id for t in order_queue(tickets)] == [3, 2, 4, 1]

    def test_identical_timestamps_fall_back_to_id(self):
        t0 = datetime(2024, 1, 1, 9, 0)
        tickets = [_t(9, TicketSeverity.HIGH, t0), _t(4, TicketSeverity.HIGH, t0)]

        assert [t.id for t in order_queue(tickets)] == [4, 9]

    def test_assigned_by_assignment_time(self):
        t0 = datetime(2024, 1, 1, 9, 0)
        tickets = [
            _t(1, TicketSeverity.CRITICAL, t0, "a", t0 + timedelta(hours=2)),
            _t(2, TicketSeverity.LOW, t0, "b", t0 + timedelta(hours=1)),
        ]

        assert [t.id for t in order_queue(tickets)] == [2, 1]

    def test_empty(self):
        assert order_queue([]) == []


class TestQueueManager:
    """Tests for QueueManager reads."""

    @pytest.fixture
    def queue(self, session_factory, sla_registry):
        return QueueManager(session_factory, sla_registry)

    @pytest.mark.asyncio
    async def test_queue_orders_and_excludes_closed(self, db_session, queue):
        now = utcnow()
        h1 = await TicketFactory.create(
            db_session, severity=TicketSeverity.HIGH, status=TicketStatus.IN_PROGRESS,
            assignee="it-1", created_at=now - timedelta(hours=2),
        )
        c1 = await TicketFactory.create(
            db_session, severity=TicketSeverity.CRITICAL, created_at=now - timedelta(minutes=10),
        )
        c2 = await TicketFactory.create(
            db_session, severity=TicketSeverity.CRITICAL, created_at=now - timedelta(minutes=5),
        )
        await TicketFactory.create(db_session, status=TicketStatus.CLOSED)

        result = await queue.get_queue(TENANT, UserRole.TENANT_ADMIN, "admin-1")

        assert [t.id for t in result["tickets"]] == [c1.id, c2.id, h1.id]
        assert result["total"] == 3

    @pytest.mark.asyncio
    async def test_queue_hides_other_team_categories(self, db_session, queue):
        it_ticket = await TicketFactory.create(db_session, category=TicketCategory.IT_SUPPORT)
        await TicketFactory.create(db_session, category=TicketCategory.PHISHING_ATTEMPT)
        general = await TicketFactory.create(db_session, category=TicketCategory.GENERAL_REQUEST)

        result = await queue.get_queue(TENANT, UserRole.IT_HELPDESK_ANALYST, "it-1")

        assert {t.id for t in result["tickets"]} == {it_ticket.id, general.id}

    @pytest.mark.asyncio
    async def test_user_sees_only_requested(self, db_session, queue):
        mine = await TicketFactory.create(db_session, requester="user-1")
        await TicketFactory.create(db_session, requester="user-2")

        result = await queue.get_queue(TENANT, UserRole.USER, "user-1")

        assert [t.id for t in result["tickets"]] == [mine.id]

    @pytest.mark.asyncio
    async def test_pagination_and_unassigned_filter(self, db_session, queue):
        for _ in range(3):
            await TicketFactory.create(db_session)
        await TicketFactory.create(
            db_session, status=TicketStatus.IN_PROGRESS, assignee="it-1"
        )

        result = await queue.get_queue(
            TENANT, UserRole.TENANT_ADMIN, "admin-1",
            TicketFilters(unassigned_only=True, skip=1, limit=1),
        )

        assert result["total"] == 3
        assert len(result["tickets"]) == 1

    @pytest.mark.asyncio
    async def test_my_queue(self, db_session, queue):
        mine = await TicketFactory.create(
            db_session, status=TicketStatus.IN_PROGRESS, assignee="it-1"
        )
        await TicketFactory.create(
            db_session, status=TicketStatus.IN_PROGRESS, assignee="it-2"
        )
        await TicketFactory.create(db_session, status=TicketStatus.CLOSED, last_assignee="it-1")

        result = await queue.get_my_queue(TENANT, "it-1", UserRole.IT_HELPDESK_ANALYST)

        assert [t.id for t in result["tickets"]] == [mine.id]

    @pytest.mark.asyncio
    async def test_metrics(self, db_session, queue, sla_registry):
        now = utcnow()
        await TicketFactory.create(
            db_session, severity=TicketSeverity.CRITICAL, created_at=now - timedelta(hours=2)
        )
        assigned = await TicketFactory.create(
            db_session, status=TicketStatus.IN_PROGRESS, assignee="it-1",
        )
        await TicketFactory.create(db_session, status=TicketStatus.CLOSED)
        sla_registry.start(assigned.id, None, now + timedelta(hours=1), tenant_id=TENANT)
        await sla_registry.handle_deadline(assigned.id, "resolution")

        metrics = await queue.get_metrics(TENANT, UserRole.TENANT_ADMIN, "admin-1")

        assert metrics["total"] == 3
        assert metrics["open"] == 2
        assert metrics["unassigned"] == 1
        assert metrics["assigned"] == 1
        assert metrics["by_status"]["closed"] == 1
        assert metrics["by_severity"]["critical"] == 1
        assert metrics["breached"] == 1
        assert metrics["at_risk"] == 0
        assert metrics["average_queue_time_hours"] >= 1.9


class TestQueueThroughLifecycle:
    """The queue is re-derived after every change, not cached."""

    @pytest.mark.asyncio
    async def test_claimed_ticket_moves_behind_unassigned(self, db_session, lifecycle):
        t0 = utcnow() - timedelta(hours=1)
        c1 = await TicketFactory.create(
            db_session, severity=TicketSeverity.CRITICAL, created_at=t0
        )
        c2 = await TicketFactory.create(
            db_session, severity=TicketSeverity.CRITICAL, created_at=t0 + timedelta(minutes=10)
        )
        h1 = await TicketFactory.create(
            db_session, severity=TicketSeverity.HIGH, created_at=t0 + timedelta(minutes=5)
        )

        before = await lifecycle.get_tickets(TENANT, None, UserRole.TENANT_ADMIN, "admin-1")
        assert [t.id for t in before["tickets"]] == [c1.id, c2.id, h1.id]

        await lifecycle.self_assign(TENANT, c1.id, "it-1", UserRole.IT_HELPDESK_ANALYST)

        after = await lifecycle.get_tickets(TENANT, None, UserRole.TENANT_ADMIN, "admin-1")
        assert [t.id for t in after["tickets"]] == [c2.id, h1.id, c1.id]
