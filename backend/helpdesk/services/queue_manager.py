"""
Queue Manager.

WHAT: Ordered, role-scoped views of tickets for analysts, and the
dashboard counts computed over the same set.

WHY: The queue is never stored. Every read re-derives it from the ticket
store, so a new critical ticket or a fresh assignment shows up on the very
next call.

HOW: The visible set comes from one DAO query (tenant scope, role category
filter, status filter). Ordering is the pure function order_queue:
1. Unassigned tickets first, by severity rank (critical first), then
   created_at ascending, then id (insertion sequence) for true ties
2. Assigned tickets after, by assigned_at ascending, then id
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpdesk.core.permissions import UserRole, visible_categories
from helpdesk.dao.ticket import TicketDAO
from helpdesk.models.base import utcnow
from helpdesk.models.ticket import (
    ACTIVE_STATUSES,
    SEVERITY_RANK,
    Ticket,
    TicketSeverity,
    TicketStatus,
)
from helpdesk.schemas.ticket import TicketFilters
from helpdesk.services.sla_timer_registry import SLATimerRegistry

logger = logging.getLogger(__name__)


def order_queue(tickets: Iterable[Ticket]) -> List[Ticket]:
    """
    Order tickets for the work queue.

    Every unassigned ticket sorts before every assigned one, whatever the
    assigned ticket's severity.

    Args:
        tickets: Ticket snapshots

    Returns:
        New list in queue order
    """
    unassigned = []
    assigned = []
    for ticket in tickets:
        (assigned if ticket.assignee is not None else unassigned).append(ticket)

    unassigned.sort(key=lambda t: (-SEVERITY_RANK[t.severity], t.created_at, t.id))
    # assigned_at is always set by assignment; created_at covers legacy rows
    assigned.sort(key=lambda t: (t.assigned_at or t.created_at, t.id))

    return unassigned + assigned


class QueueManager:
    """
    Read-side projection of the ticket store.

    Holds no ticket state; the SLA registry is only read for at-risk and
    breached counts.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sla_registry: Optional[SLATimerRegistry] = None,
    ):
        self._session_factory = session_factory
        self._sla_registry = sla_registry

    async def _visible(
        self,
        tenant_id: str,
        actor_role: UserRole,
        actor_id: Optional[str],
        statuses: Optional[Iterable[TicketStatus]],
        filters: TicketFilters,
        mine: bool = False,
    ) -> List[Ticket]:
        role = UserRole(actor_role)
        requester = actor_id if role == UserRole.USER else None
        assignee = filters.assignee
        if mine and role != UserRole.USER:
            assignee = actor_id

        async with self._session_factory() as session:
            tickets = await TicketDAO(session).list_visible(
                tenant_id,
                statuses=statuses,
                categories=visible_categories(role),
                always_include_assignee=actor_id if role != UserRole.USER else None,
                requester=requester,
                assignee=assignee,
                severity=filters.severity,
                category=filters.category,
                search=filters.search,
            )

        if filters.unassigned_only:
            tickets = [t for t in tickets if t.assignee is None]
        return tickets

    async def get_queue(
        self,
        tenant_id: str,
        actor_role: UserRole,
        actor_id: Optional[str] = None,
        filters: Optional[TicketFilters] = None,
    ) -> Dict[str, Any]:
        """
        Ordered page of the tickets an actor may work on.

        Args:
            tenant_id: Tenant scope
            actor_role: Role used for the category filter
            actor_id: Actor identity (requester filter for USER)
            filters: Optional narrowing and pagination; with no statuses the
                queue holds active tickets only

        Returns:
            Dict with "tickets" (ordered page) and "total" (size before paging)
        """
        filters = filters or TicketFilters()
        statuses = filters.statuses or list(ACTIVE_STATUSES)

        tickets = order_queue(
            await self._visible(tenant_id, actor_role, actor_id, statuses, filters)
        )
        page = tickets[filters.skip:filters.skip + filters.limit]
        return {"tickets": page, "total": len(tickets)}

    async def get_my_queue(
        self,
        tenant_id: str,
        actor_id: str,
        actor_role: UserRole,
        filters: Optional[TicketFilters] = None,
    ) -> Dict[str, Any]:
        """
        Tickets assigned to an analyst, or requested by a USER.

        Closed tickets are excluded unless filters name statuses.
        """
        filters = filters or TicketFilters()
        statuses = filters.statuses or [s for s in TicketStatus if s != TicketStatus.CLOSED]

        tickets = order_queue(
            await self._visible(tenant_id, actor_role, actor_id, statuses, filters, mine=True)
        )
        page = tickets[filters.skip:filters.skip + filters.limit]
        return {"tickets": page, "total": len(tickets)}

    async def get_metrics(
        self,
        tenant_id: str,
        actor_role: UserRole,
        actor_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Dashboard counts over the actor's visible tickets.

        Returns:
            Dict with total, open, unassigned, assigned, by_severity,
            by_status, at_risk, breached and average_queue_time_hours
        """
        tickets = await self._visible(
            tenant_id, actor_role, actor_id, statuses=None, filters=TicketFilters()
        )

        by_status = {s.value: 0 for s in TicketStatus}
        by_severity = {s.value: 0 for s in TicketSeverity}
        for ticket in tickets:
            by_status[ticket.status.value] += 1
            by_severity[ticket.severity.value] += 1

        active = [t for t in tickets if t.status in ACTIVE_STATUSES]
        unassigned = [t for t in active if t.assignee is None]

        now = utcnow()
        if unassigned:
            waited = sum((now - t.created_at).total_seconds() for t in unassigned)
            average_queue_time_hours = round(waited / len(unassigned) / 3600, 2)
        else:
            average_queue_time_hours = 0.0

        visible_ids = {t.id for t in active}
        at_risk = breached = 0
        if self._sla_registry is not None:
            at_risk = len(visible_ids.intersection(self._sla_registry.at_risk_ids()))
            breached = len(visible_ids.intersection(self._sla_registry.breached_ids()))

        return {
            "total": len(tickets),
            "open": len(active),
            "unassigned": len(unassigned),
            "assigned": len(active) - len(unassigned),
            "by_severity": by_severity,
            "by_status": by_status,
            "at_risk": at_risk,
            "breached": breached,
            "average_queue_time_hours": average_queue_time_hours,
        }
