"""
Engine bootstrap.

WHY: This is the entry point for a process hosting the ticket engine. It
builds the database engine, the session factory and the service graph
once, starts the SLA scheduler, and tears everything down on shutdown.

Example:
    async with engine_lifespan(create_tables=True) as helpdesk:
        ticket = await helpdesk.lifecycle.create_ticket("acme", "u-1", {...})
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from helpdesk.core.config import settings
from helpdesk.db.session import create_engine, create_session_factory, init_models
from helpdesk.services.notification_service import NotificationService
from helpdesk.services.sla_service import SLAService
from helpdesk.services.sla_timer_registry import SLATimerRegistry
from helpdesk.services.ticket_lifecycle import TicketLifecycleService

logger = logging.getLogger(__name__)

SLA_SWEEP_JOB_ID = "sla_sweep"


class HelpdeskEngine:
    """
    Container for one process's engine state.

    WHY: The SLA registry holds timers for the whole process, so exactly one
    instance is created here and shared by every service.

    Attributes:
        engine: SQLAlchemy async engine
        session_factory: Session factory handed to services
        notifications: Notification gateway
        sla_registry: SLA timer registry
        sla_service: SLA calculations and overdue sweep
        lifecycle: Ticket lifecycle service
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        notifications: Optional[NotificationService] = None,
    ):
        """
        Build the service graph without touching the database.

        Args:
            database_url: Override for settings.DATABASE_URL
            notifications: Notification gateway (defaults to Slack from settings)
        """
        self.engine = create_engine(database_url)
        self.session_factory = create_session_factory(self.engine)
        self.notifications = notifications or NotificationService()
        self.sla_registry = SLATimerRegistry(notifier=self.notifications)
        self.sla_service = SLAService(self.session_factory, self.sla_registry)
        self.lifecycle = TicketLifecycleService(
            self.session_factory,
            notification_service=self.notifications,
            sla_registry=self.sla_registry,
            sla_service=self.sla_service,
        )

    async def startup(self, create_tables: bool = False) -> None:
        """
        Start background processing.

        WHAT:
        1. Optionally creates tables (development and tests)
        2. Starts the SLA scheduler
        3. Registers the periodic overdue sweep
        4. Re-registers timers for tickets already being worked

        Note: Must be awaited from inside the running event loop.
        """
        if create_tables:
            await init_models(self.engine)

        self.sla_registry.start_scheduler()
        self.sla_registry.add_interval_job(
            self.sla_service.sweep_overdue,
            seconds=settings.SLA_CHECK_INTERVAL_SECONDS,
            job_id=SLA_SWEEP_JOB_ID,
            name="SLA overdue sweep",
        )
        await self.lifecycle.restore_sla_timers()
        logger.info(f"{settings.PROJECT_NAME} started")

    async def shutdown(self) -> None:
        """
        Stop timers and deliver queued notifications, then release database
        connections. Safe to call twice.
        """
        self.sla_registry.shutdown()
        await self.lifecycle.drain_notifications()
        await self.sla_registry.drain_notifications()
        await self.engine.dispose()
        logger.info(f"{settings.PROJECT_NAME} stopped")

    def health(self) -> dict:
        """
        Scheduler and timer summary for monitoring.

        at_risk and breached count tracked tickets only; resolving or
        closing a ticket drops its timer and its marks.
        """
        jobs = self.sla_registry.scheduler.get_jobs() if self.sla_registry.running else []
        return {
            "status": "healthy",
            "version": settings.VERSION,
            "scheduler_running": self.sla_registry.running,
            "scheduled_jobs": len(jobs),
            "at_risk": len(self.sla_registry.at_risk_ids()),
            "breached": len(self.sla_registry.breached_ids()),
        }


@asynccontextmanager
async def engine_lifespan(
    database_url: Optional[str] = None,
    create_tables: bool = False,
    notifications: Optional[NotificationService] = None,
) -> AsyncIterator[HelpdeskEngine]:
    """
    Run a HelpdeskEngine for the duration of a block.

    WHY: Guarantees the scheduler is stopped and timers are cancelled even
    when the block raises.
    """
    helpdesk = HelpdeskEngine(database_url, notifications)
    await helpdesk.startup(create_tables=create_tables)
    try:
        yield helpdesk
    finally:
        await helpdesk.shutdown()


if __name__ == "__main__":
    import asyncio

    logging.basicConfig(level=logging.DEBUG if settings.DEBUG else logging.INFO)

    async def _serve() -> None:
        # WHY: Runs the scheduler standalone, e.g. `python -m helpdesk.main`;
        # embedding services import HelpdeskEngine instead.
        async with engine_lifespan(create_tables=True):
            await asyncio.Event().wait()

    asyncio.run(_serve())
