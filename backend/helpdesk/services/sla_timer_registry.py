"""
SLA Timer Registry.

WHAT: Schedules per-ticket response/resolution deadlines and reports when
they pass.

WHY: SLA escalation needs a callback at a point in time, not a poll. The
registry is an explicit object owned by whoever boots the engine, with a
full reset for shutdown and test isolation, instead of module-level
scheduler state.

HOW: Wraps an APScheduler AsyncIOScheduler. Each ticket gets up to three
DateTrigger jobs (at-risk point, response deadline, resolution deadline).
When a job fires the registry marks the ticket and emits an event through
the notification gateway. It never changes ticket status.

Example:
    registry = SLATimerRegistry(notifier=NotificationService())
    registry.start_scheduler()
    registry.start(ticket.id, response_due, resolution_due, tenant_id=ticket.tenant_id)
    ...
    registry.shutdown()
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from helpdesk.core.config import settings
from helpdesk.core.exceptions import SLASchedulingError
from helpdesk.models.base import utcnow
from helpdesk.services.notification_service import (
    SLA_AT_RISK,
    SLA_RESOLUTION_BREACHED,
    SLA_RESPONSE_BREACHED,
    NotificationDispatcher,
)

logger = logging.getLogger(__name__)


class SLATimerState(str, Enum):
    """Mark a ticket carries in the registry."""

    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BREACHED = "breached"


# Deadline kinds, also the job id suffixes
AT_RISK = "at_risk"
RESPONSE = "response"
RESOLUTION = "resolution"

_EVENT_FOR_KIND = {
    AT_RISK: SLA_AT_RISK,
    RESPONSE: SLA_RESPONSE_BREACHED,
    RESOLUTION: SLA_RESOLUTION_BREACHED,
}


@dataclass
class SLATimer:
    """
    Deadlines and marks held for one ticket.
    """

    ticket_id: int
    tenant_id: Optional[str]
    response_due_at: Optional[datetime]
    resolution_due_at: Optional[datetime]
    at_risk_at: Optional[datetime]
    state: SLATimerState = SLATimerState.ON_TRACK
    breached: Set[str] = field(default_factory=set)


def _job_id(ticket_id: int, kind: str) -> str:
    return f"sla:{ticket_id}:{kind}"


def _as_utc(value: datetime) -> datetime:
    """Stored datetimes are naive UTC; APScheduler wants aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SLATimerRegistry:
    """
    Process-wide registry of SLA deadline timers.

    WHAT: start/cancel/reset_all per ticket, plus read access to the
    at-risk and breached marks used by queue metrics.

    WHY: Jobs fire "at or after" their deadline: misfire_grace_time=None
    means a late job still runs instead of being dropped.

    Attributes:
        scheduler: The underlying AsyncIOScheduler
        warning_threshold: Fraction of the resolution window before at-risk
    """

    def __init__(
        self,
        notifier: Optional[Any] = None,
        warning_threshold: Optional[float] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the registry.

        Args:
            notifier: Object with an async send(event_type, payload) method
            warning_threshold: Defaults to settings.SLA_WARNING_THRESHOLD
            scheduler: Pre-built scheduler (defaults to an in-memory AsyncIOScheduler)
            clock: Source of naive-UTC "now"
        """
        self.notifier = notifier
        self._dispatcher = NotificationDispatcher(notifier) if notifier is not None else None
        self.warning_threshold = (
            warning_threshold
            if warning_threshold is not None
            else settings.SLA_WARNING_THRESHOLD
        )
        self.scheduler = scheduler or AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            executors={"default": AsyncIOExecutor()},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": None,
            },
            timezone="UTC",
        )
        self._clock = clock
        self._timers: Dict[int, SLATimer] = {}
        # AsyncIOScheduler.shutdown() takes effect on a later loop iteration
        self._stopping = False

    # =========================================================================
    # Scheduler lifecycle
    # =========================================================================

    @property
    def running(self) -> bool:
        return self.scheduler.running and not self._stopping

    def start_scheduler(self) -> None:
        """
        Start the underlying scheduler.

        Note: Must be called from inside a running event loop.
        """
        if self.running:
            logger.warning("SLA scheduler already running")
            return
        self._stopping = False
        self.scheduler.start()
        logger.info("SLA scheduler started")

    def add_interval_job(
        self,
        func: Callable[..., Any],
        seconds: int,
        job_id: str,
        name: Optional[str] = None,
    ) -> None:
        """
        Register a periodic job (the overdue sweep) on the same scheduler.

        Args:
            func: Coroutine function to run
            seconds: Interval in seconds
            job_id: Stable id, replaced if already present
            name: Human-readable job name
        """
        self.scheduler.add_job(
            func=func,
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            name=name or job_id,
            replace_existing=True,
        )
        logger.info(f"Registered job {job_id} (interval: {seconds}s)")

    def shutdown(self, wait: bool = False) -> None:
        """
        Cancel every timer and stop the scheduler. Safe to call repeatedly.
        """
        self.reset_all()
        if self.running:
            self._stopping = True
            self.scheduler.shutdown(wait=wait)
            logger.info("SLA scheduler shut down")

    async def drain_notifications(self) -> None:
        """Wait for SLA notifications still being delivered."""
        if self._dispatcher is not None:
            await self._dispatcher.drain()

    # =========================================================================
    # Timers
    # =========================================================================

    def start(
        self,
        ticket_id: int,
        response_due_at: Optional[datetime],
        resolution_due_at: Optional[datetime],
        tenant_id: Optional[str] = None,
        started_at: Optional[datetime] = None,
    ) -> SLATimer:
        """
        Register deadlines for a ticket, replacing any prior schedule.

        WHAT: Schedules the at-risk point, the response deadline and the
        resolution deadline. Prior jobs and marks for the ticket are dropped,
        so a reopened ticket starts clean.

        Args:
            ticket_id: Ticket ID
            response_due_at: First response deadline (None if already met)
            resolution_due_at: Resolution deadline
            tenant_id: Owning tenant, carried into event payloads
            started_at: Start of the SLA window (defaults to now)

        Returns:
            The registered SLATimer

        Raises:
            SLASchedulingError: If the scheduler rejects a job
        """
        self.cancel(ticket_id)

        start = started_at or self._clock()
        at_risk_at = None
        if resolution_due_at is not None and resolution_due_at > start:
            window = resolution_due_at - start
            at_risk_at = start + window * self.warning_threshold

        timer = SLATimer(
            ticket_id=ticket_id,
            tenant_id=tenant_id,
            response_due_at=response_due_at,
            resolution_due_at=resolution_due_at,
            at_risk_at=at_risk_at,
        )

        deadlines = {
            AT_RISK: at_risk_at,
            RESPONSE: response_due_at,
            RESOLUTION: resolution_due_at,
        }
        try:
            for kind, run_at in deadlines.items():
                if run_at is None:
                    continue
                self.scheduler.add_job(
                    self.handle_deadline,
                    trigger=DateTrigger(run_date=_as_utc(run_at), timezone="UTC"),
                    args=[ticket_id, kind],
                    id=_job_id(ticket_id, kind),
                    name=f"SLA {kind} for ticket {ticket_id}",
                    replace_existing=True,
                    misfire_grace_time=None,
                )
        except Exception as e:
            self._remove_jobs(ticket_id)
            raise SLASchedulingError(
                message="Failed to schedule SLA deadlines",
                ticket_id=ticket_id,
                error=str(e),
            ) from e

        self._timers[ticket_id] = timer
        logger.info(
            f"SLA timers started for ticket {ticket_id} "
            f"(response={response_due_at}, resolution={resolution_due_at})"
        )
        return timer

    def cancel(self, ticket_id: int) -> bool:
        """
        Remove pending deadlines and marks for a ticket.

        Returns:
            True if the ticket had a timer or mark
        """
        self._remove_jobs(ticket_id)
        existed = self._timers.pop(ticket_id, None) is not None
        if existed:
            logger.info(f"SLA timers cancelled for ticket {ticket_id}")
        return existed

    def complete_response(self, ticket_id: int) -> bool:
        """
        Drop the pending response deadline once the first response is made.

        Returns:
            True if a response job was pending
        """
        timer = self._timers.get(ticket_id)
        if timer is not None:
            timer.response_due_at = None
        try:
            self.scheduler.remove_job(_job_id(ticket_id, RESPONSE))
        except JobLookupError:
            return False
        logger.info(f"Response SLA met for ticket {ticket_id}")
        return True

    def reset_all(self) -> int:
        """
        Cancel every timer. Idempotent.

        Returns:
            Number of tickets whose timers were cancelled
        """
        count = len(self._timers)
        for ticket_id in list(self._timers):
            self._remove_jobs(ticket_id)
        self._timers.clear()
        if count:
            logger.info(f"SLA registry reset ({count} timers cancelled)")
        return count

    def _remove_jobs(self, ticket_id: int) -> None:
        for kind in (AT_RISK, RESPONSE, RESOLUTION):
            try:
                self.scheduler.remove_job(_job_id(ticket_id, kind))
            except JobLookupError:
                pass

    # =========================================================================
    # Marks
    # =========================================================================

    def get_timer(self, ticket_id: int) -> Optional[SLATimer]:
        return self._timers.get(ticket_id)

    def get_state(self, ticket_id: int) -> Optional[SLATimerState]:
        timer = self._timers.get(ticket_id)
        return timer.state if timer else None

    def at_risk_ids(self) -> List[int]:
        return sorted(
            tid for tid, t in self._timers.items() if t.state == SLATimerState.AT_RISK
        )

    def breached_ids(self) -> List[int]:
        return sorted(
            tid for tid, t in self._timers.items() if t.state == SLATimerState.BREACHED
        )

    def pending_job_ids(self, ticket_id: int) -> List[str]:
        """Ids of the scheduler jobs still pending for a ticket."""
        return [
            _job_id(ticket_id, kind)
            for kind in (AT_RISK, RESPONSE, RESOLUTION)
            if self.scheduler.get_job(_job_id(ticket_id, kind)) is not None
        ]

    async def handle_deadline(self, ticket_id: int, kind: str) -> bool:
        """
        Scheduler callback for one deadline.

        WHAT: Marks the ticket and emits the matching SLA event.

        WHY: A deadline that fires after cancel (the job was already running)
        finds no timer and does nothing.

        Args:
            ticket_id: Ticket ID
            kind: at_risk, response or resolution

        Returns:
            True if the mark changed and an event was emitted
        """
        timer = self._timers.get(ticket_id)
        if timer is None:
            logger.debug(f"SLA {kind} deadline fired for untracked ticket {ticket_id}")
            return False
        return await self._apply_mark(timer, kind)

    async def mark(self, ticket_id: int, kind: str) -> bool:
        """
        Mark a tracked ticket from outside the scheduler (the periodic sweep).

        WHY: Deadlines that passed while the scheduler was stopped are only
        found by the sweep. Only tickets that still hold a timer are marked:
        the sweep works from a snapshot, and a ticket resolved or closed
        since then has had its timer cancelled. Marking is idempotent, so a
        ticket is announced once per kind.

        Returns:
            True if the mark changed and an event was emitted
        """
        timer = self._timers.get(ticket_id)
        if timer is None:
            logger.debug(f"SLA sweep skipped untracked ticket {ticket_id}")
            return False
        return await self._apply_mark(timer, kind)

    async def _apply_mark(self, timer: SLATimer, kind: str) -> bool:
        if kind == AT_RISK:
            if timer.state != SLATimerState.ON_TRACK:
                return False
            timer.state = SLATimerState.AT_RISK
            due_at = timer.resolution_due_at
        else:
            if kind in timer.breached:
                return False
            timer.breached.add(kind)
            timer.state = SLATimerState.BREACHED
            due_at = timer.response_due_at if kind == RESPONSE else timer.resolution_due_at

        event_type = _EVENT_FOR_KIND[kind]
        log = logger.info if kind == AT_RISK else logger.warning
        log(f"SLA {kind} deadline reached for ticket {timer.ticket_id}")

        self._emit(
            event_type,
            {
                "ticket_id": timer.ticket_id,
                "tenant_id": timer.tenant_id,
                "due_at": due_at.isoformat() if due_at else None,
                "state": timer.state.value,
            },
        )
        return True

    def _emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self._dispatcher is None:
            return
        self._dispatcher.dispatch(event_type, payload)
