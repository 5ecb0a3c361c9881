"""
Database models package.

WHY: Importing every model here registers it on Base.metadata, so
create_all and the session layer see the whole schema.
"""

from helpdesk.models.base import Base, utcnow
from helpdesk.models.ticket import (
    Ticket,
    TicketComment,
    TicketStatus,
    TicketSeverity,
    TicketPriority,
    TicketCategory,
    ContactMethod,
    SEVERITY_RANK,
    DEFAULT_PRIORITY_BY_SEVERITY,
    DEFAULT_SLA_HOURS,
    ACTIVE_STATUSES,
    ASSIGNED_STATUSES,
)
from helpdesk.models.sla_policy import SLAPolicy
from helpdesk.models.ticket_event import TicketEvent, TicketEventType

__all__ = [
    "Base",
    "utcnow",
    "Ticket",
    "TicketComment",
    "TicketStatus",
    "TicketSeverity",
    "TicketPriority",
    "TicketCategory",
    "ContactMethod",
    "SEVERITY_RANK",
    "DEFAULT_PRIORITY_BY_SEVERITY",
    "DEFAULT_SLA_HOURS",
    "ACTIVE_STATUSES",
    "ASSIGNED_STATUSES",
    "SLAPolicy",
    "TicketEvent",
    "TicketEventType",
]
