"""
Ticket Data Access Object.

WHAT: DAOs for ticket and comment persistence.

WHY: Encapsulates all ticket database operations with:
1. Tenant-scoped lookups for multi-tenancy
2. Atomic conditional updates (compare-and-set) for every status change
3. Append-only comments with a stable reading order
4. Visible-set queries for the work queue

HOW: Uses SQLAlchemy 2.0 async. Conditional updates are one
UPDATE ... WHERE statement so the database, not service code, decides the
winner of concurrent writes.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import select, update, delete, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.exceptions import ValidationError
from helpdesk.dao.base import BaseDAO
from helpdesk.models.ticket import (
    Ticket,
    TicketCategory,
    TicketComment,
    TicketSeverity,
    TicketStatus,
)

# Columns a conditional update may compare or write
_TICKET_COLUMNS = frozenset(c.key for c in Ticket.__table__.columns)


class TicketDAO(BaseDAO[Ticket]):
    """
    Data Access Object for Ticket operations.

    WHAT: Ticket store with atomic conditional update.

    WHY: Service code never does read-compare-write on status or assignee.
    It reads a snapshot, decides, then asks the store to apply the change
    only if the row still matches what it saw.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(Ticket, session)

    async def get_by_id(
        self,
        ticket_id: int,
        tenant_id: Optional[str] = None,
    ) -> Optional[Ticket]:
        """
        Get ticket by ID with optional tenant scoping.

        Args:
            ticket_id: Ticket ID
            tenant_id: Owning tenant; None only for cross-tenant admin reads

        Returns:
            Ticket or None if absent (or owned by another tenant)
        """
        query = select(Ticket).where(Ticket.id == ticket_id)

        if tenant_id is not None:
            query = query.where(Ticket.tenant_id == tenant_id)

        # Always return the row as stored, not a stale identity-map copy
        query = query.execution_options(populate_existing=True)

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def conditional_update(
        self,
        ticket_id: int,
        expected: Mapping[str, Any],
        new: Mapping[str, Any],
    ) -> Optional[Ticket]:
        """
        Apply `new` to a ticket only if its columns still equal `expected`.

        WHAT: Single UPDATE tickets SET <new> WHERE id = :id AND <expected>.

        WHY: This is the compare-and-set the assignment race and every other
        status change rely on. Concurrent callers that observed the same
        snapshot cannot both succeed: the first write changes the row and the
        others match zero rows.

        Args:
            ticket_id: Ticket ID
            expected: Column values the row must still have (None means IS NULL)
            new: Column values to write

        Returns:
            The updated Ticket, or None when the row no longer matched

        Raises:
            ValidationError: If a key is not a ticket column
        """
        unknown = (set(expected) | set(new)) - _TICKET_COLUMNS
        if unknown:
            raise ValidationError(
                message="Unknown ticket fields in conditional update",
                fields=sorted(unknown),
            )

        stmt = update(Ticket).where(Ticket.id == ticket_id)
        for column, value in expected.items():
            attr = getattr(Ticket, column)
            stmt = stmt.where(attr.is_(None) if value is None else attr == value)

        stmt = stmt.values(**new).execution_options(synchronize_session=False)
        result = await self.session.execute(stmt)

        if result.rowcount != 1:
            return None

        return await self.get_by_id(ticket_id)

    async def list_visible(
        self,
        tenant_id: Optional[str],
        statuses: Optional[Iterable[TicketStatus]] = None,
        categories: Optional[Iterable[TicketCategory]] = None,
        always_include_assignee: Optional[str] = None,
        requester: Optional[str] = None,
        assignee: Optional[str] = None,
        severity: Optional[TicketSeverity] = None,
        category: Optional[TicketCategory] = None,
        search: Optional[str] = None,
    ) -> List[Ticket]:
        """
        List every ticket matching the filters, unordered.

        WHAT: The raw visible set the queue manager orders.

        Args:
            tenant_id: Tenant scope (None only for super-admin views)
            statuses: Restrict to these statuses
            categories: Role category restriction
            always_include_assignee: Tickets assigned to this analyst bypass
                the category restriction
            requester: Only tickets requested by this user
            assignee: Only tickets assigned to this user
            severity: Only this severity
            category: Only this category
            search: Case-insensitive match in title or description

        Returns:
            List of tickets in id order
        """
        query = select(Ticket)

        if tenant_id is not None:
            query = query.where(Ticket.tenant_id == tenant_id)

        if statuses is not None:
            query = query.where(Ticket.status.in_(list(statuses)))

        if categories is not None:
            category_clause = Ticket.category.in_(list(categories))
            if always_include_assignee is not None:
                category_clause = or_(
                    category_clause, Ticket.assignee == always_include_assignee
                )
            query = query.where(category_clause)

        if requester is not None:
            query = query.where(Ticket.requester == requester)

        if assignee is not None:
            query = query.where(Ticket.assignee == assignee)

        if severity is not None:
            query = query.where(Ticket.severity == severity)

        if category is not None:
            query = query.where(Ticket.category == category)

        if search:
            search_pattern = f"%{search}%"
            query = query.where(
                or_(
                    Ticket.title.ilike(search_pattern),
                    Ticket.description.ilike(search_pattern),
                )
            )

        result = await self.session.execute(query.order_by(Ticket.id))
        return list(result.scalars().all())

    async def list_with_sla_deadlines(self) -> List[Ticket]:
        """
        Get assigned tickets that carry SLA due dates.

        WHY: Used at boot to re-register timers and by the periodic sweep.
        """
        query = select(Ticket).where(
            Ticket.status.in_([TicketStatus.IN_PROGRESS, TicketStatus.AWAITING_RESPONSE]),
            or_(
                Ticket.sla_response_due_at.isnot(None),
                Ticket.sla_resolution_due_at.isnot(None),
            ),
        )
        result = await self.session.execute(query.order_by(Ticket.id))
        return list(result.scalars().all())

    async def get_sla_breached_tickets(self, now, tenant_id: Optional[str] = None) -> List[Ticket]:
        """
        Get open tickets whose response or resolution deadline has passed.

        Args:
            now: Reference time (naive UTC)
            tenant_id: Optional tenant filter
        """
        # Response SLA breached: no first_response_at and due date passed
        response_breached = and_(
            Ticket.first_response_at.is_(None),
            Ticket.sla_response_due_at.isnot(None),
            Ticket.sla_response_due_at < now,
        )

        # Resolution SLA breached: due date passed while still being worked
        resolution_breached = and_(
            Ticket.sla_resolution_due_at.isnot(None),
            Ticket.sla_resolution_due_at < now,
        )

        query = select(Ticket).where(
            Ticket.status.in_([TicketStatus.IN_PROGRESS, TicketStatus.AWAITING_RESPONSE]),
            or_(response_breached, resolution_breached),
        )

        if tenant_id is not None:
            query = query.where(Ticket.tenant_id == tenant_id)

        result = await self.session.execute(query.order_by(Ticket.id))
        return list(result.scalars().all())

    async def delete(self, ticket_id: int, tenant_id: str) -> bool:
        """
        Delete a ticket and its comments.

        WHY: Comments are owned by the ticket. They are removed explicitly
        because SQLite does not enforce ON DELETE CASCADE by default.

        Returns:
            True if deleted, False if not found
        """
        ticket = await self.get_by_id(ticket_id, tenant_id)
        if not ticket:
            return False

        await self.session.execute(
            delete(TicketComment)
            .where(TicketComment.ticket_id == ticket_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(
            delete(Ticket)
            .where(Ticket.id == ticket_id, Ticket.tenant_id == tenant_id)
            .execution_options(synchronize_session=False)
        )
        self.session.expunge(ticket)
        return True


class TicketCommentDAO(BaseDAO[TicketComment]):
    """
    Data Access Object for TicketComment operations.

    Comments are append-only: there is no update method.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(TicketComment, session)

    async def append(
        self,
        ticket_id: int,
        author_id: str,
        content: str,
        is_internal: bool = False,
    ) -> TicketComment:
        """
        Append a comment to a ticket.

        Args:
            ticket_id: Ticket ID
            author_id: Comment author
            content: Comment body
            is_internal: Whether this is an internal note

        Returns:
            Created TicketComment
        """
        return await self.create(
            ticket_id=ticket_id,
            author_id=author_id,
            content=content,
            is_internal=is_internal,
        )

    async def list_for_ticket(
        self,
        ticket_id: int,
        include_internal: bool = True,
    ) -> List[TicketComment]:
        """
        Get comments for a ticket in chronological order.

        WHY: created_at can tie within a clock tick; id is the insertion
        sequence and keeps the order stable.

        Args:
            ticket_id: Ticket ID
            include_internal: Whether to include internal notes

        Returns:
            List of comments ordered by (created_at, id)
        """
        query = select(TicketComment).where(TicketComment.ticket_id == ticket_id)

        if not include_internal:
            query = query.where(TicketComment.is_internal == False)  # noqa: E712

        query = query.order_by(TicketComment.created_at.asc(), TicketComment.id.asc())

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_for_ticket(self, ticket_id: int) -> int:
        return await self.count(ticket_id=ticket_id)


def changed_fields(ticket: Ticket, patch: Dict[str, Any]) -> Dict[str, Any]:
    """
    Keep only the patch entries that differ from the ticket's current values.
    """
    return {
        key: value
        for key, value in patch.items()
        if getattr(ticket, key) != value
    }
