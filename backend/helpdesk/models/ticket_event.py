"""
Ticket Event Model.

WHAT: Append-only audit trail of ticket lifecycle events.

WHY: Closure must be traceable to a person, and a requester reply that
reopens a ticket must show up as two events (the comment, then the reopen).
This table is the record of who moved which ticket where, and when.

HOW: Immutable rows written in the same transaction as the mutation they
describe. JSON extra_data holds event-specific context.
"""

import enum
from datetime import datetime
from typing import Optional, Any, Dict

from sqlalchemy import Integer, String, DateTime, JSON, Enum as SQLEnum, Index
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.models.base import Base, utcnow


class TicketEventType(str, enum.Enum):
    """
    Enumeration of recorded lifecycle events.
    """

    CREATED = "created"
    ASSIGNED = "assigned"
    STATUS_CHANGED = "status_changed"
    RESOLVED = "resolved"
    REOPENED = "reopened"
    CLOSED = "closed"
    COMMENTED = "commented"
    UPDATED = "updated"
    DELETED = "deleted"


class TicketEvent(Base):
    """
    Immutable lifecycle event for one ticket.

    Fields:
    - ticket_id: Not a foreign key, events outlive a deleted ticket
    - actor_id: Who triggered the event (None for system events)
    - from_status / to_status: Present for transitions
    """

    __tablename__ = "ticket_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    ticket_id: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[TicketEventType] = mapped_column(
        SQLEnum(TicketEventType, name="ticketeventtype"), nullable=False
    )
    actor_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    from_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    to_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    extra_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_ticket_events_ticket_id", "ticket_id"),
        Index("ix_ticket_events_tenant_id", "tenant_id"),
    )

    def __repr__(self) -> str:
        return f"<TicketEvent(ticket_id={self.ticket_id}, event_type={self.event_type.value})>"
