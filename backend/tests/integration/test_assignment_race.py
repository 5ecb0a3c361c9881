"""
Integration test for concurrent self-assignment.

WHAT: Several analysts claim the same new ticket at the same moment.

WHY: Exactly one claim may win. Every other caller must get
AssignmentConflictError, and the ticket must show the winner with a single
assignment event and a single notification.

HOW: Uses a file-backed SQLite database so each concurrent session gets
its own connection and the database arbitrates the conditional updates.
"""

import asyncio

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from helpdesk.core.exceptions import AssignmentConflictError
from helpdesk.core.permissions import UserRole
from helpdesk.db.session import create_session_factory, init_models
from helpdesk.models.ticket import Ticket, TicketStatus
from helpdesk.models.ticket_event import TicketEventType
from helpdesk.services.notification_service import TICKET_ASSIGNED
from helpdesk.services.ticket_lifecycle import TicketLifecycleService
from tests.factories import TENANT, sent_events

ANALYSTS = 6


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'race.db'}",
        connect_args={"timeout": 30},
    )
    await init_models(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def race_lifecycle(file_session_factory, notifier, sla_registry):
    return TicketLifecycleService(
        file_session_factory,
        notification_service=notifier,
        sla_registry=sla_registry,
    )


class TestAssignmentRace:
    """Concurrent self_assign on one ticket."""

    @pytest.mark.asyncio
    async def test_exactly_one_winner(self, race_lifecycle, notifier, sample_ticket_data):
        ticket = await race_lifecycle.create_ticket(TENANT, "user-1", sample_ticket_data)
        notifier.send.reset_mock()

        results = await asyncio.gather(
            *[
                race_lifecycle.self_assign(
                    TENANT, ticket.id, f"it-{n}", UserRole.IT_HELPDESK_ANALYST
                )
                for n in range(ANALYSTS)
            ],
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, Ticket)]
        losers = [r for r in results if isinstance(r, AssignmentConflictError)]
        assert len(winners) == 1
        assert len(losers) == ANALYSTS - 1

        current = await race_lifecycle.get_ticket(TENANT, ticket.id)
        assert current.status == TicketStatus.IN_PROGRESS
        assert current.assignee == winners[0].assignee

        events = await race_lifecycle.get_ticket_events(TENANT, ticket.id)
        assigned = [e for e in events if e.event_type == TicketEventType.ASSIGNED]
        assert len(assigned) == 1
        assert assigned[0].extra_data["assignee"] == current.assignee

        assert sent_events(notifier) == [TICKET_ASSIGNED]

    @pytest.mark.asyncio
    async def test_losers_can_take_other_tickets(self, race_lifecycle, sample_ticket_data):
        first = await race_lifecycle.create_ticket(TENANT, "user-1", sample_ticket_data)
        second = await race_lifecycle.create_ticket(TENANT, "user-2", sample_ticket_data)

        results = await asyncio.gather(
            race_lifecycle.self_assign(TENANT, first.id, "it-1", UserRole.IT_HELPDESK_ANALYST),
            race_lifecycle.self_assign(TENANT, first.id, "it-2", UserRole.IT_HELPDESK_ANALYST),
            return_exceptions=True,
        )
        loser = "it-2" if isinstance(results[1], AssignmentConflictError) else "it-1"

        taken = await race_lifecycle.self_assign(
            TENANT, second.id, loser, UserRole.IT_HELPDESK_ANALYST
        )

        assert taken.assignee == loser
