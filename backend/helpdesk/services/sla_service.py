"""
SLA (Service Level Agreement) service for ticket management.

WHAT: Computes SLA due dates and status, and runs the periodic overdue
sweep.

WHY: SLA compliance is a contractual obligation per tenant. This service
provides:
- Due dates from the tenant policy (or DEFAULT_SLA_HOURS) at the moment a
  ticket enters in_progress
- Time-remaining breakdowns and warning-zone detection
- A sweep that marks deadlines which passed while the scheduler was down

HOW: Pure calculations plus a few queries through the DAOs. Breach
announcements go through the SLA timer registry so each ticket is
announced once per deadline.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpdesk.core.config import settings
from helpdesk.dao.sla_policy import SLAPolicyDAO
from helpdesk.dao.ticket import TicketDAO
from helpdesk.models.base import utcnow
from helpdesk.models.ticket import Ticket, TicketSeverity, TicketStatus
from helpdesk.schemas.ticket import SLAStatus, SLATimeRemaining
from helpdesk.services.sla_timer_registry import (
    AT_RISK,
    RESOLUTION,
    RESPONSE,
    SLATimerRegistry,
)

logger = logging.getLogger(__name__)


class SLAService:
    """
    Service for SLA calculations and monitoring.

    Example:
        sla = SLAService(session_factory, registry)
        response_due, resolution_due = await sla.due_dates_for(
            session, ticket.tenant_id, ticket.severity, utcnow()
        )
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        registry: Optional[SLATimerRegistry] = None,
        warning_threshold: Optional[float] = None,
    ):
        """
        Args:
            session_factory: Needed only for the sweep
            registry: Registry used to mark and announce breaches
            warning_threshold: Defaults to settings.SLA_WARNING_THRESHOLD
        """
        self._session_factory = session_factory
        self._registry = registry
        self.warning_threshold = (
            warning_threshold
            if warning_threshold is not None
            else settings.SLA_WARNING_THRESHOLD
        )

    # =========================================================================
    # Due dates
    # =========================================================================

    @staticmethod
    def calculate_due_dates(
        hours: Dict[str, int],
        start_at: datetime,
    ) -> Tuple[datetime, datetime]:
        """
        Add policy hours to a start time.

        Args:
            hours: Dict with response_hours and resolution_hours
            start_at: When the SLA window opens (entry into in_progress)

        Returns:
            Tuple of (response_due_at, resolution_due_at)
        """
        return (
            start_at + timedelta(hours=hours["response_hours"]),
            start_at + timedelta(hours=hours["resolution_hours"]),
        )

    async def due_dates_for(
        self,
        session: AsyncSession,
        tenant_id: str,
        severity: TicketSeverity,
        start_at: datetime,
    ) -> Tuple[datetime, datetime]:
        """
        Resolve the tenant policy for a severity and compute due dates.

        WHY: Takes the caller's session so the policy read happens inside the
        same unit of work as the assignment it feeds.
        """
        hours = await SLAPolicyDAO(session).get_hours(tenant_id, severity)
        return self.calculate_due_dates(hours, start_at)

    # =========================================================================
    # Status
    # =========================================================================

    def calculate_time_remaining(
        self,
        due_at: Optional[datetime],
        reference_time: Optional[datetime] = None,
    ) -> Optional[SLATimeRemaining]:
        """
        Calculate time remaining until an SLA deadline.

        Args:
            due_at: SLA due datetime
            reference_time: Current time (defaults to UTC now)

        Returns:
            SLATimeRemaining, or None if due_at is not set
        """
        if due_at is None:
            return None

        now = reference_time or utcnow()
        total_seconds = (due_at - now).total_seconds()

        if total_seconds <= 0:
            return SLATimeRemaining(hours=0, minutes=0, total_seconds=0, is_breached=True)

        return SLATimeRemaining(
            hours=int(total_seconds // 3600),
            minutes=int((total_seconds % 3600) // 60),
            total_seconds=int(total_seconds),
            is_breached=False,
        )

    def is_in_warning_zone(
        self,
        started_at: Optional[datetime],
        due_at: Optional[datetime],
        reference_time: Optional[datetime] = None,
    ) -> bool:
        """
        Check if an SLA window is past the warning threshold but not breached.

        Args:
            started_at: When the SLA window opened
            due_at: SLA due datetime
            reference_time: Current time (defaults to UTC now)

        Returns:
            True if the elapsed share is at least warning_threshold
        """
        if started_at is None or due_at is None:
            return False

        now = reference_time or utcnow()
        if now >= due_at:
            return False  # Breached, not warning

        total_time = (due_at - started_at).total_seconds()
        if total_time <= 0:
            return False

        elapsed = (now - started_at).total_seconds()
        return elapsed / total_time >= self.warning_threshold

    def build_status(
        self,
        ticket: Ticket,
        reference_time: Optional[datetime] = None,
    ) -> SLAStatus:
        """
        Project a ticket's SLA status.

        WHY: Resolved and closed tickets have no running clock; their
        remaining time is reported as None.
        """
        now = reference_time or utcnow()
        finished = ticket.status in (TicketStatus.RESOLVED, TicketStatus.CLOSED)
        responded = ticket.first_response_at is not None

        response_open = not responded and not finished
        state = self._registry.get_state(ticket.id) if self._registry else None

        return SLAStatus(
            ticket_id=ticket.id,
            response_due_at=ticket.sla_response_due_at,
            resolution_due_at=ticket.sla_resolution_due_at,
            response_remaining=(
                self.calculate_time_remaining(ticket.sla_response_due_at, now)
                if response_open
                else None
            ),
            resolution_remaining=(
                self.calculate_time_remaining(ticket.sla_resolution_due_at, now)
                if not finished
                else None
            ),
            response_warning=response_open
            and self.is_in_warning_zone(ticket.assigned_at, ticket.sla_response_due_at, now),
            resolution_warning=not finished
            and self.is_in_warning_zone(ticket.assigned_at, ticket.sla_resolution_due_at, now),
            response_breached=response_open
            and ticket.sla_response_due_at is not None
            and now > ticket.sla_response_due_at,
            resolution_breached=not finished
            and ticket.sla_resolution_due_at is not None
            and now > ticket.sla_resolution_due_at,
            first_response_at=ticket.first_response_at,
            timer_state=state.value if state else None,
        )

    # =========================================================================
    # Sweep
    # =========================================================================

    async def get_overdue_tickets(
        self,
        tenant_id: Optional[str] = None,
        reference_time: Optional[datetime] = None,
    ) -> List[Ticket]:
        """Get assigned tickets with a passed response or resolution deadline."""
        async with self._session_factory() as session:
            return await TicketDAO(session).get_sla_breached_tickets(
                reference_time or utcnow(), tenant_id
            )

    async def sweep_overdue(self, reference_time: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Mark every ticket whose SLA deadline has passed or is near.

        WHAT: Periodic job (SLA_CHECK_INTERVAL_SECONDS) over all assigned
        tickets that carry due dates.

        WHY: Timers live in process memory. Deadlines that passed while the
        scheduler was down would otherwise never be announced. Only tickets
        the registry still tracks are marked (restore_sla_timers registers
        them at boot), so the sweep never revives the timer of a ticket
        resolved or closed after it took its snapshot.

        Returns:
            Dict with checked, at_risk, response_breaches, resolution_breaches, errors
        """
        now = reference_time or utcnow()
        stats = {
            "checked": 0,
            "at_risk": 0,
            "response_breaches": 0,
            "resolution_breaches": 0,
            "errors": 0,
        }

        async with self._session_factory() as session:
            tickets = await TicketDAO(session).list_with_sla_deadlines()

        for ticket in tickets:
            stats["checked"] += 1
            try:
                marks = []
                if (
                    ticket.first_response_at is None
                    and ticket.sla_response_due_at is not None
                    and now >= ticket.sla_response_due_at
                ):
                    marks.append((RESPONSE, "response_breaches"))
                if ticket.sla_resolution_due_at is not None and now >= ticket.sla_resolution_due_at:
                    marks.append((RESOLUTION, "resolution_breaches"))
                elif self.is_in_warning_zone(ticket.assigned_at, ticket.sla_resolution_due_at, now):
                    marks.append((AT_RISK, "at_risk"))

                for kind, counter in marks:
                    # Tickets resolved since the snapshot have no timer left
                    if await self._registry.mark(ticket.id, kind):
                        stats[counter] += 1
            except Exception as e:
                logger.error(f"Error sweeping SLA for ticket {ticket.id}: {e}")
                stats["errors"] += 1

        logger.info(
            f"SLA sweep complete: {stats['checked']} checked, "
            f"{stats['at_risk']} at risk, "
            f"{stats['response_breaches'] + stats['resolution_breaches']} breaches"
        )
        return stats
