"""
Assignment Coordinator.

WHAT: Claims an unassigned ticket for exactly one analyst.

WHY: Analysts pull work from a shared queue. When several click "take" on
the same ticket at once, exactly one must win and every other caller must
get a definite AssignmentConflictError, never a silent overwrite.

HOW: The claim is one conditional update on the ticket row with
expected {assignee: None, status: new}. The database decides the winner;
service code never compares and then writes. There is no automatic retry:
a loser re-fetches the queue and picks another ticket.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpdesk.core.exceptions import (
    AssignmentConflictError,
    InvalidStateTransitionError,
    PermissionDeniedError,
    TicketNotFoundError,
)
from helpdesk.core.permissions import (
    UserRole,
    can_self_assign,
    can_view_ticket,
    require_admin,
)
from helpdesk.dao.ticket import TicketDAO
from helpdesk.dao.ticket_event import TicketEventDAO
from helpdesk.models.base import utcnow
from helpdesk.models.ticket import Ticket, TicketStatus
from helpdesk.models.ticket_event import TicketEventType
from helpdesk.services.sla_service import SLAService

logger = logging.getLogger(__name__)


class AssignmentCoordinator:
    """
    Resolves concurrent assignment attempts to a single winner.

    Each call runs in its own session, so concurrent callers never share a
    transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sla_service: Optional[SLAService] = None,
    ):
        self._session_factory = session_factory
        self._sla_service = sla_service or SLAService(session_factory)

    async def self_assign(
        self,
        tenant_id: str,
        ticket_id: int,
        actor_id: str,
        actor_role: UserRole,
    ) -> Ticket:
        """
        Claim a new ticket for the calling analyst.

        Args:
            tenant_id: Tenant of the actor
            ticket_id: Ticket to claim
            actor_id: Analyst claiming the ticket
            actor_role: Role of the analyst

        Returns:
            The ticket, now in_progress and assigned to actor_id

        Raises:
            TicketNotFoundError: Ticket absent, in another tenant, or hidden from the role
            PermissionDeniedError: Role may not claim tickets
            AssignmentConflictError: Ticket already assigned, or the race was lost
            InvalidStateTransitionError: Ticket is unassigned but not new
        """
        if not can_self_assign(actor_role):
            raise PermissionDeniedError(
                message="Role may not self-assign tickets",
                role=UserRole(actor_role).value,
            )
        return await self._claim(
            tenant_id, ticket_id, assignee_id=actor_id, actor_id=actor_id,
            actor_role=actor_role, self_assigned=True,
        )

    async def assign_to(
        self,
        tenant_id: str,
        ticket_id: int,
        assignee_id: str,
        actor_id: str,
        actor_role: UserRole,
    ) -> Ticket:
        """
        Administrator assignment of a new ticket to a named analyst.

        WHY: Goes through the same conditional update as self_assign, so an
        admin assignment racing an analyst's claim still has one winner.

        Raises:
            PermissionDeniedError: Actor is not an administrator
            (plus everything self_assign raises)
        """
        require_admin(actor_role, "assign tickets to other analysts")
        return await self._claim(
            tenant_id, ticket_id, assignee_id=assignee_id, actor_id=actor_id,
            actor_role=actor_role, self_assigned=False,
        )

    async def _claim(
        self,
        tenant_id: str,
        ticket_id: int,
        assignee_id: str,
        actor_id: str,
        actor_role: UserRole,
        self_assigned: bool,
    ) -> Ticket:
        async with self._session_factory() as session:
            ticket_dao = TicketDAO(session)

            ticket = await ticket_dao.get_by_id(ticket_id, tenant_id)
            if ticket is None or not can_view_ticket(actor_role, actor_id, ticket):
                raise TicketNotFoundError(ticket_id=ticket_id)

            if ticket.assignee is not None:
                logger.warning(
                    f"Assignment of ticket {ticket_id} to {assignee_id} refused: "
                    f"already assigned"
                )
                raise AssignmentConflictError(ticket_id=ticket_id)

            if ticket.status != TicketStatus.NEW:
                raise InvalidStateTransitionError(
                    message=f"Only new tickets can be assigned (status is '{ticket.status.value}')",
                    ticket_id=ticket_id,
                    from_status=ticket.status.value,
                    to_status=TicketStatus.IN_PROGRESS.value,
                )

            now = utcnow()
            response_due_at, resolution_due_at = await self._sla_service.due_dates_for(
                session, tenant_id, ticket.severity, now
            )

            updated = await ticket_dao.conditional_update(
                ticket_id,
                expected={
                    "tenant_id": tenant_id,
                    "assignee": None,
                    "status": TicketStatus.NEW,
                },
                new={
                    "assignee": assignee_id,
                    "status": TicketStatus.IN_PROGRESS,
                    "assigned_at": now,
                    "sla_response_due_at": response_due_at,
                    "sla_resolution_due_at": resolution_due_at,
                    "updated_at": now,
                },
            )
            if updated is None:
                await session.rollback()
                logger.warning(
                    f"Assignment of ticket {ticket_id} to {assignee_id} lost a concurrent race"
                )
                raise AssignmentConflictError(ticket_id=ticket_id)

            await TicketEventDAO(session).record(
                tenant_id=tenant_id,
                ticket_id=ticket_id,
                event_type=TicketEventType.ASSIGNED,
                actor_id=actor_id,
                from_status=TicketStatus.NEW.value,
                to_status=TicketStatus.IN_PROGRESS.value,
                extra_data={"assignee": assignee_id, "self_assigned": self_assigned},
            )
            await session.commit()

        logger.info(f"Ticket {ticket_id} assigned to {assignee_id} by {actor_id}")
        return updated
