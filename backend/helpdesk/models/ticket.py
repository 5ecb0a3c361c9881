"""
Ticket models for the help desk lifecycle engine.

WHAT: SQLAlchemy models for tickets and their comments.

WHY: Provides structured support request management with:
1. Severity-ranked work queues
2. Status workflow (new → in_progress → awaiting_response → resolved → closed)
3. Single-assignee ownership guarded by conditional updates
4. Comment threading with internal notes
5. SLA due dates snapshotted when work starts

HOW: Uses SQLAlchemy 2.0 with:
- Enums for status, severity, priority and category fields
- String identities for tenants and users (owned by external services)
- Computed properties for SLA status
- Indexes for the queue and tenant-scoped queries
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    ForeignKey,
    Enum as SQLEnum,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.models.base import Base, utcnow


# ============================================================================
# Enums
# ============================================================================


class TicketStatus(str, Enum):
    """
    Ticket status values.

    WHAT: Tracks the lifecycle of a support ticket.

    WHY: Status determines assignment and SLA timer behavior:
    - NEW: Created, waiting in the unassigned queue
    - IN_PROGRESS: Owned by an analyst, SLA timer running
    - AWAITING_RESPONSE: Analyst waiting on the requester
    - RESOLVED: Resolution submitted, requester may still reply
    - CLOSED: Manually closed, terminal
    """

    NEW = "new"
    IN_PROGRESS = "in_progress"
    AWAITING_RESPONSE = "awaiting_response"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketSeverity(str, Enum):
    """
    Ticket severity levels.

    WHAT: Urgency classification, the primary queue sort key.
    """

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TicketPriority(str, Enum):
    """
    Ticket priority levels (display only, derived from severity by default).
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketCategory(str, Enum):
    """
    Ticket category for classification and role-based visibility.

    WHY: Categories decide which analyst team sees a ticket:
    security categories go to security analysts, IT categories to the IT
    help desk, general ones to everybody.
    """

    # Security
    SECURITY_INCIDENT = "security_incident"
    VULNERABILITY = "vulnerability"
    MALWARE_DETECTION = "malware_detection"
    PHISHING_ATTEMPT = "phishing_attempt"
    DATA_BREACH = "data_breach"
    POLICY_VIOLATION = "policy_violation"
    COMPLIANCE = "compliance"

    # IT support
    IT_SUPPORT = "it_support"
    HARDWARE_ISSUE = "hardware_issue"
    SOFTWARE_ISSUE = "software_issue"
    NETWORK_ISSUE = "network_issue"
    ACCESS_REQUEST = "access_request"
    ACCOUNT_SETUP = "account_setup"

    # General
    GENERAL_REQUEST = "general_request"
    OTHER = "other"


class ContactMethod(str, Enum):
    """Preferred way to reach the requester."""

    EMAIL = "email"
    PHONE = "phone"
    PORTAL = "portal"


# ============================================================================
# Ordering & SLA Configuration
# ============================================================================

# Higher rank sorts first in the queue
SEVERITY_RANK = {
    TicketSeverity.CRITICAL: 4,
    TicketSeverity.HIGH: 3,
    TicketSeverity.MEDIUM: 2,
    TicketSeverity.LOW: 1,
}

DEFAULT_PRIORITY_BY_SEVERITY = {
    TicketSeverity.CRITICAL: TicketPriority.URGENT,
    TicketSeverity.HIGH: TicketPriority.HIGH,
    TicketSeverity.MEDIUM: TicketPriority.MEDIUM,
    TicketSeverity.LOW: TicketPriority.LOW,
}

# SLA times in hours for each severity when a tenant has no policy of its own
DEFAULT_SLA_HOURS = {
    TicketSeverity.CRITICAL: {"response_hours": 1, "resolution_hours": 4},
    TicketSeverity.HIGH: {"response_hours": 4, "resolution_hours": 24},
    TicketSeverity.MEDIUM: {"response_hours": 8, "resolution_hours": 72},
    TicketSeverity.LOW: {"response_hours": 24, "resolution_hours": 168},
}

ACTIVE_STATUSES = (
    TicketStatus.NEW,
    TicketStatus.IN_PROGRESS,
    TicketStatus.AWAITING_RESPONSE,
)

ASSIGNED_STATUSES = (
    TicketStatus.IN_PROGRESS,
    TicketStatus.AWAITING_RESPONSE,
)


# ============================================================================
# Ticket Model
# ============================================================================


class Ticket(Base):
    """
    Support ticket, the aggregate root of the help desk.

    WHAT: Represents a support request from a requester in one tenant.

    WHY: Every lifecycle rule hangs off this row:
    - tenant_id is the ownership boundary and never changes
    - assignee is set iff status is IN_PROGRESS or AWAITING_RESPONSE
    - status/assignee are only changed through conditional updates

    Security: Tenant-scoped, callers only see their tenant's tickets.
    """

    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Ticket details
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Classification
    category: Mapped[TicketCategory] = mapped_column(
        SQLEnum(TicketCategory, name="ticketcategory"),
        nullable=False,
    )
    severity: Mapped[TicketSeverity] = mapped_column(
        SQLEnum(TicketSeverity, name="ticketseverity"),
        nullable=False,
    )
    priority: Mapped[TicketPriority] = mapped_column(
        SQLEnum(TicketPriority, name="ticketpriority"),
        default=TicketPriority.MEDIUM,
        nullable=False,
    )
    status: Mapped[TicketStatus] = mapped_column(
        SQLEnum(TicketStatus, name="ticketstatus"),
        default=TicketStatus.NEW,
        nullable=False,
    )

    # Contact details
    device_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_method: Mapped[Optional[ContactMethod]] = mapped_column(
        SQLEnum(ContactMethod, name="contactmethod"),
        nullable=True,
    )
    phone_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    # People
    requester: Mapped[str] = mapped_column(String(64), nullable=False)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    assignee: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    last_assignee: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    """Analyst who held the ticket when it was resolved; restored on reopen."""

    resolution: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # SLA tracking
    sla_response_due_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    sla_resolution_due_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    first_response_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )

    # Status timestamps
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    """When the current assignment started; queue order key for assigned tickets."""

    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )

    # Indexes for common queries
    __table_args__ = (
        Index("ix_tickets_tenant_id", "tenant_id"),
        Index("ix_tickets_tenant_status", "tenant_id", "status"),
        Index("ix_tickets_assignee", "assignee"),
        Index("ix_tickets_requester", "requester"),
        Index("ix_tickets_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, title='{self.title[:30]}...', status={self.status.value})>"

    @property
    def is_open(self) -> bool:
        """Check if ticket is still open (not closed)."""
        return self.status != TicketStatus.CLOSED

    @property
    def is_assigned(self) -> bool:
        return self.assignee is not None

    @property
    def severity_rank(self) -> int:
        return SEVERITY_RANK[self.severity]

    @property
    def is_sla_response_breached(self) -> bool:
        """
        Check if first response SLA is breached.
        """
        if self.first_response_at is not None:
            return False  # Already responded
        if self.sla_response_due_at is None:
            return False
        return utcnow() > self.sla_response_due_at

    @property
    def is_sla_resolution_breached(self) -> bool:
        """
        Check if resolution SLA is breached.
        """
        if self.status in (TicketStatus.RESOLVED, TicketStatus.CLOSED):
            return False  # Already resolved
        if self.sla_resolution_due_at is None:
            return False
        return utcnow() > self.sla_resolution_due_at

    @property
    def sla_resolution_remaining_seconds(self) -> Optional[float]:
        """Get remaining seconds until resolution SLA breach."""
        if self.status in (TicketStatus.RESOLVED, TicketStatus.CLOSED):
            return None
        if self.sla_resolution_due_at is None:
            return None
        remaining = (self.sla_resolution_due_at - utcnow()).total_seconds()
        return max(0, remaining)


# ============================================================================
# TicketComment Model
# ============================================================================


class TicketComment(Base):
    """
    Comment on a ticket.

    WHAT: Represents a reply or note on a ticket.

    WHY: Enables conversation threading with:
    - Public comments visible to all participants
    - Internal notes hidden from the requester

    Comments are append-only. Reading order is (created_at, id) so that
    comments written within the same clock tick keep insertion order.
    """

    __tablename__ = "ticket_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[str] = mapped_column(String(64), nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_ticket_comments_ticket_id", "ticket_id"),
        Index("ix_ticket_comments_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<TicketComment(id={self.id}, ticket_id={self.ticket_id}, is_internal={self.is_internal})>"
