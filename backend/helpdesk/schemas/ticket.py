"""
Pydantic schemas for ticket operations.

WHAT: Input schemas for the lifecycle service (create, patch, comment,
queue filters) and the SLA status projection it returns.

WHY: Schemas define the contracts of the service layer:
1. Validate incoming data before any store access
2. Strip whitespace so "   " never passes as a title or resolution
3. Provide type safety for callers

HOW: Uses Pydantic v2 with Field constraints and field validators. The
lifecycle service accepts either a schema instance or a plain dict and
converts pydantic errors into the engine's ValidationError.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from helpdesk.models.ticket import (
    ContactMethod,
    TicketCategory,
    TicketPriority,
    TicketSeverity,
    TicketStatus,
)


def _strip(value: Optional[str]) -> Optional[str]:
    return value.strip() if isinstance(value, str) else value


# ============================================================================
# Comment Schemas
# ============================================================================


class CommentCreate(BaseModel):
    """
    Comment creation request.

    WHAT: Data for adding a comment to a ticket.
    """

    content: str = Field(
        ...,
        min_length=1,
        max_length=50000,
        description="Comment content (supports markdown)",
    )
    is_internal: bool = Field(
        default=False,
        description="True for internal notes (hidden from the requester)",
    )

    @field_validator("content", mode="before")
    @classmethod
    def strip_content(cls, v):
        return _strip(v)


# ============================================================================
# Ticket Schemas
# ============================================================================


class TicketCreate(BaseModel):
    """
    Ticket creation request.

    WHAT: Data for creating a new support ticket.

    WHY: title, description, category and severity are required; priority
    defaults to the one derived from severity when omitted.
    """

    title: str = Field(..., min_length=1, max_length=500, description="Ticket title")
    description: str = Field(
        ...,
        min_length=1,
        max_length=50000,
        description="Detailed description of the issue",
    )
    category: TicketCategory = Field(..., description="Ticket category")
    severity: TicketSeverity = Field(..., description="Ticket severity")
    priority: TicketPriority | None = Field(
        default=None,
        description="Display priority (derived from severity when omitted)",
    )
    device_id: str | None = Field(default=None, max_length=255)
    contact_method: ContactMethod | None = Field(default=None)
    phone_number: str | None = Field(default=None, max_length=32)

    @field_validator("title", "description", "device_id", "phone_number", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip(v)


class TicketUpdate(BaseModel):
    """
    Ticket patch.

    WHAT: Partial update of content fields and/or a status transition.

    WHY: One entry point drives every non-assignment transition. Only
    fields explicitly set are applied (model_fields_set).
    """

    status: TicketStatus | None = Field(default=None, description="Requested status")
    resolution: str | None = Field(
        default=None,
        max_length=50000,
        description="Resolution text, required when resolving",
    )
    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = Field(default=None, min_length=1, max_length=50000)
    category: TicketCategory | None = Field(default=None)
    severity: TicketSeverity | None = Field(default=None)
    priority: TicketPriority | None = Field(default=None)
    device_id: str | None = Field(default=None, max_length=255)
    contact_method: ContactMethod | None = Field(default=None)
    phone_number: str | None = Field(default=None, max_length=32)

    @field_validator(
        "resolution", "title", "description", "device_id", "phone_number", mode="before"
    )
    @classmethod
    def strip_text(cls, v):
        return _strip(v)

    def content_changes(self) -> dict:
        """Explicitly set content fields (everything except status and resolution)."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name not in ("status", "resolution")
        }


class TicketFilters(BaseModel):
    """
    Queue and list filters.

    WHAT: Narrows the visible set before ordering and pagination.

    WHY: With no statuses given the queue shows only active work
    (new, in_progress, awaiting_response).
    """

    statuses: List[TicketStatus] | None = Field(default=None)
    severity: TicketSeverity | None = Field(default=None)
    category: TicketCategory | None = Field(default=None)
    assignee: str | None = Field(default=None)
    unassigned_only: bool = Field(default=False)
    search: str | None = Field(default=None, max_length=200)
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=50, ge=1, le=500)


# ============================================================================
# SLA Schemas
# ============================================================================


class SLATimeRemaining(BaseModel):
    """
    Time remaining breakdown for one SLA deadline.
    """

    hours: int
    minutes: int
    total_seconds: int
    is_breached: bool


class SLAStatus(BaseModel):
    """
    SLA status of one ticket.

    WHAT: Response and resolution deadlines with warning/breach flags, plus
    the registry's at-risk/breached mark when a timer has fired.
    """

    ticket_id: int
    response_due_at: datetime | None = None
    resolution_due_at: datetime | None = None
    response_remaining: SLATimeRemaining | None = None
    resolution_remaining: SLATimeRemaining | None = None
    response_warning: bool = False
    resolution_warning: bool = False
    response_breached: bool = False
    resolution_breached: bool = False
    first_response_at: datetime | None = None
    timer_state: str | None = None
