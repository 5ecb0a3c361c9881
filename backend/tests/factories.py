"""
Test factories for creating test data.

WHY: Factories provide a consistent, reusable way to create test objects,
reducing duplication and making tests more maintainable. Using factories
instead of manual object creation ensures tests stay consistent when models change.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.models.base import utcnow
from helpdesk.models.sla_policy import SLAPolicy
from helpdesk.models.ticket import (
    DEFAULT_PRIORITY_BY_SEVERITY,
    Ticket,
    TicketCategory,
    TicketComment,
    TicketSeverity,
    TicketStatus,
)


class TicketFactory:
    """
    Factory for creating Ticket test instances.

    WHY: Writes rows directly, bypassing the lifecycle service, so tests
    can start from any status/assignee combination.
    """

    @staticmethod
    async def create(
        session: AsyncSession,
        tenant_id: str = "tenant-a",
        requester: str = "user-1",
        title: str = "Test Ticket",
        description: str = "Test ticket description",
        category: TicketCategory = TicketCategory.IT_SUPPORT,
        severity: TicketSeverity = TicketSeverity.MEDIUM,
        status: TicketStatus = TicketStatus.NEW,
        assignee: Optional[str] = None,
        created_at: Optional[datetime] = None,
        assigned_at: Optional[datetime] = None,
        **kwargs,
    ) -> Ticket:
        """
        Create a ticket for testing.

        Args:
            session: Database session
            tenant_id: Owning tenant
            requester: Requesting user id
            title: Ticket title
            description: Ticket description
            category: Ticket category
            severity: Ticket severity
            status: Initial status
            assignee: Assigned analyst id
            created_at: Creation time (defaults to now)
            assigned_at: Assignment time (defaults to now when assignee is set)
            **kwargs: Any other Ticket column

        Returns:
            Created Ticket instance
        """
        now = utcnow()
        if assignee is not None and assigned_at is None:
            assigned_at = now

        ticket = Ticket(
            tenant_id=tenant_id,
            requester=requester,
            created_by=kwargs.pop("created_by", requester),
            title=title,
            description=description,
            category=category,
            severity=severity,
            priority=kwargs.pop("priority", DEFAULT_PRIORITY_BY_SEVERITY[severity]),
            status=status,
            assignee=assignee,
            assigned_at=assigned_at,
            created_at=created_at or now,
            updated_at=created_at or now,
            **kwargs,
        )
        session.add(ticket)
        await session.commit()
        await session.refresh(ticket)
        return ticket


class TicketCommentFactory:
    """Factory for creating TicketComment test instances."""

    @staticmethod
    async def create(
        session: AsyncSession,
        ticket: Ticket,
        author_id: str = "user-1",
        content: str = "Test comment",
        is_internal: bool = False,
        created_at: Optional[datetime] = None,
    ) -> TicketComment:
        comment = TicketComment(
            ticket_id=ticket.id,
            author_id=author_id,
            content=content,
            is_internal=is_internal,
            created_at=created_at or utcnow(),
        )
        session.add(comment)
        await session.commit()
        await session.refresh(comment)
        return comment


class SLAPolicyFactory:
    """Factory for creating tenant SLA policies."""

    @staticmethod
    async def create(
        session: AsyncSession,
        tenant_id: str = "tenant-a",
        severity: TicketSeverity = TicketSeverity.HIGH,
        response_time_hours: int = 2,
        resolution_time_hours: int = 8,
    ) -> SLAPolicy:
        policy = SLAPolicy(
            tenant_id=tenant_id,
            severity=severity,
            response_time_hours=response_time_hours,
            resolution_time_hours=resolution_time_hours,
        )
        session.add(policy)
        await session.commit()
        await session.refresh(policy)
        return policy


TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


def sent_events(notifier) -> list:
    """Event names passed to a mocked notifier's send(), in call order."""
    return [c.args[0] for c in notifier.send.call_args_list]
