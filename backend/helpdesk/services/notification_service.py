"""
Notification Gateway.

WHAT: Single entry point through which the engine announces lifecycle and
SLA events to the outside world.

WHY: The lifecycle service and SLA registry only know an event name and a
payload. Channel selection and formatting live here, so adding a channel
never touches ticket code.

HOW: send(event_type, payload) formats the event and delegates to channel
services (SlackService today). Channel errors propagate as
NotificationDeliveryError. Callers never await a delivery: they hand the
event to a NotificationDispatcher, which sends it in a background task and
logs failures.
"""

import asyncio
import logging
from typing import Any, Awaitable, Dict, Optional, Set

from helpdesk.core.config import settings
from helpdesk.services.slack_service import (
    SlackService,
    build_sla_message,
    build_ticket_event_message,
)

logger = logging.getLogger(__name__)


# Event names the engine emits
TICKET_CREATED = "ticket_created"
TICKET_ASSIGNED = "ticket_assigned"
TICKET_STATUS_CHANGED = "ticket_status_changed"
TICKET_RESOLVED = "ticket_resolved"
TICKET_REOPENED = "ticket_reopened"
TICKET_CLOSED = "ticket_closed"
TICKET_DELETED = "ticket_deleted"
COMMENT_ADDED = "comment_added"
SLA_AT_RISK = "sla_at_risk"
SLA_RESPONSE_BREACHED = "sla_response_breached"
SLA_RESOLUTION_BREACHED = "sla_resolution_breached"

SLA_EVENTS = frozenset({SLA_AT_RISK, SLA_RESPONSE_BREACHED, SLA_RESOLUTION_BREACHED})


class NotificationService:
    """
    Orchestrates notifications across channels.

    Attributes:
        slack_service: Service for Slack webhook notifications
        base_url: Base URL for generating ticket links
    """

    def __init__(
        self,
        slack_service: Optional[SlackService] = None,
        base_url: Optional[str] = None,
    ):
        """
        Initialize NotificationService.

        Args:
            slack_service: SlackService instance (defaults to new instance)
            base_url: Base URL for ticket links (defaults to settings)
        """
        self.slack_service = slack_service or SlackService()
        self.base_url = base_url or settings.FRONTEND_URL

    def _build_ticket_url(self, ticket_id: Any) -> str:
        return f"{self.base_url}/tickets/{ticket_id}"

    async def send(self, event_type: str, payload: Dict[str, Any]) -> bool:
        """
        Deliver one event to every configured channel.

        Args:
            event_type: Event name (see module constants)
            payload: Event data; must contain ticket_id

        Returns:
            True if at least one channel accepted the message

        Raises:
            NotificationDeliveryError: If a channel fails
        """
        ticket_url = self._build_ticket_url(payload.get("ticket_id"))

        if event_type in SLA_EVENTS:
            text, blocks = build_sla_message(event_type, payload, ticket_url)
        else:
            text, blocks = build_ticket_event_message(event_type, payload, ticket_url)

        logger.info(
            f"Dispatching {event_type} notification for ticket #{payload.get('ticket_id')}"
        )
        return await self.slack_service.send_message(text, blocks)


class NotificationDispatcher:
    """
    Fire-and-forget delivery through a gateway.

    WHAT: dispatch() starts the gateway's send() in a background task and
    returns immediately; drain() waits for everything still in flight.

    WHY: A slow or failing channel must never delay or fail a ticket
    operation. Tasks are held in a set until done so they are not garbage
    collected mid-flight, and shutdown can drain them.

    Example:
        dispatcher = NotificationDispatcher(NotificationService())
        dispatcher.dispatch(TICKET_CREATED, {"ticket_id": 1, ...})
        ...
        await dispatcher.drain()
    """

    def __init__(self, gateway: Any):
        """
        Args:
            gateway: Object with an async send(event_type, payload) method
        """
        self.gateway = gateway
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of deliveries still in flight."""
        return len(self._pending)

    def dispatch(self, event_type: str, payload: Dict[str, Any]) -> asyncio.Task:
        """
        Schedule one delivery. Must be called from inside the running loop.

        Returns:
            The background task (callers normally ignore it)
        """
        task = asyncio.create_task(
            self._deliver(event_type, payload, self.gateway.send(event_type, payload))
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait until every dispatched delivery has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def _deliver(
        self,
        event_type: str,
        payload: Dict[str, Any],
        delivery: Awaitable[Any],
    ) -> None:
        try:
            await delivery
        except Exception as e:
            logger.error(
                f"Failed to send {event_type} notification for ticket "
                f"{payload.get('ticket_id')}: {e}"
            )
