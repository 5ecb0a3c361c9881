"""
Ticket event Data Access Object.

WHAT: Writes and reads the append-only lifecycle audit trail.

WHY: Events are written in the same session as the mutation they describe,
so an event exists iff the mutation committed.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.dao.base import BaseDAO
from helpdesk.models.ticket_event import TicketEvent, TicketEventType


class TicketEventDAO(BaseDAO[TicketEvent]):
    """
    Data Access Object for TicketEvent records.

    There is no update or delete: audit rows are immutable.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(TicketEvent, session)

    async def record(
        self,
        tenant_id: str,
        ticket_id: int,
        event_type: TicketEventType,
        actor_id: Optional[str] = None,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> TicketEvent:
        """
        Append one lifecycle event.

        Args:
            tenant_id: Owning tenant
            ticket_id: Ticket the event belongs to
            event_type: What happened
            actor_id: Who did it (None for system events)
            from_status: Status before a transition
            to_status: Status after a transition
            extra_data: Event-specific context

        Returns:
            Created TicketEvent
        """
        return await self.create(
            tenant_id=tenant_id,
            ticket_id=ticket_id,
            event_type=event_type,
            actor_id=actor_id,
            from_status=from_status,
            to_status=to_status,
            extra_data=extra_data,
        )

    async def list_for_ticket(self, tenant_id: str, ticket_id: int) -> List[TicketEvent]:
        """Get a ticket's events oldest first."""
        result = await self.session.execute(
            select(TicketEvent)
            .where(
                TicketEvent.tenant_id == tenant_id,
                TicketEvent.ticket_id == ticket_id,
            )
            .order_by(TicketEvent.created_at.asc(), TicketEvent.id.asc())
        )
        return list(result.scalars().all())
