"""
Slack Webhook Integration Service.

WHAT: Sends ticket lifecycle and SLA messages to a Slack channel via an
incoming webhook.

WHY: Analysts get real-time visibility into new, reassigned, reopened and
at-risk tickets without polling the queue.

HOW: Uses Slack's Incoming Webhooks API with Block Kit formatting. Delivery
failures raise NotificationDeliveryError; callers decide whether to swallow.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from helpdesk.core.config import settings
from helpdesk.core.exceptions import NotificationDeliveryError

logger = logging.getLogger(__name__)


class SlackService:
    """
    Service for sending messages to Slack via webhooks.

    Attributes:
        webhook_url: Slack Incoming Webhook URL
        enabled: Whether Slack notifications are enabled
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        enabled: Optional[bool] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize SlackService.

        Args:
            webhook_url: Slack webhook URL (defaults to settings)
            enabled: Whether notifications are enabled (defaults to settings)
            timeout: HTTP request timeout in seconds (defaults to settings)
        """
        self.webhook_url = webhook_url or settings.SLACK_WEBHOOK_URL
        self.enabled = enabled if enabled is not None else settings.SLACK_WEBHOOK_ENABLED
        self.timeout = timeout if timeout is not None else settings.NOTIFICATION_TIMEOUT_SECONDS

    async def send_message(
        self,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None,
    ) -> bool:
        """
        Send a message to Slack.

        Args:
            text: Plain text message (also used as fallback for blocks)
            blocks: Optional Block Kit blocks for rich formatting

        Returns:
            True if message was sent, False if the channel is disabled

        Raises:
            NotificationDeliveryError: If the webhook call fails
        """
        if not self.enabled:
            logger.debug("Slack notifications disabled, skipping message")
            return False

        if not self.webhook_url:
            logger.warning("Slack webhook URL not configured")
            return False

        payload: Dict[str, Any] = {"text": text}
        if blocks:
            payload["blocks"] = blocks

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"Slack webhook timeout: {e}")
            raise NotificationDeliveryError(
                message="Slack webhook request timed out",
                channel="slack",
                timeout=self.timeout,
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Slack webhook request error: {e}")
            raise NotificationDeliveryError(
                message="Failed to connect to Slack webhook",
                channel="slack",
                error=str(e),
            ) from e

        # Slack answers "ok" for accepted messages
        if response.status_code == 200 and response.text == "ok":
            logger.info("Slack message sent successfully")
            return True

        logger.error(
            f"Slack webhook returned error: {response.status_code} - {response.text}"
        )
        raise NotificationDeliveryError(
            message="Slack webhook returned an error",
            channel="slack",
            response_status=response.status_code,
            response_text=response.text,
        )


# ============================================================================
# Block Kit Builders
# ============================================================================


def build_header_block(text: str) -> Dict[str, Any]:
    """Header block; Slack truncates header text at 150 characters."""
    return {
        "type": "header",
        "text": {"type": "plain_text", "text": text[:150], "emoji": True},
    }


def build_section_block(text: str) -> Dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def build_fields_block(fields: List[Dict[str, str]]) -> Dict[str, Any]:
    """
    Build a section block with only fields (no text).

    Args:
        fields: List of dicts with 'label' and 'value' keys
    """
    return {
        "type": "section",
        "fields": [
            {"type": "mrkdwn", "text": f"*{f['label']}:*\n{f['value']}"}
            for f in fields
        ],
    }


def build_context_block(text: str) -> Dict[str, Any]:
    return {
        "type": "context",
        "elements": [{"type": "mrkdwn", "text": text}],
    }


def build_divider_block() -> Dict[str, Any]:
    return {"type": "divider"}


def build_actions_block(buttons: List[Dict[str, str]]) -> Dict[str, Any]:
    """
    Build an actions block with link buttons.

    Args:
        buttons: List of dicts with 'text' and 'url' keys
    """
    return {
        "type": "actions",
        "elements": [
            {
                "type": "button",
                "text": {"type": "plain_text", "text": b["text"], "emoji": True},
                "url": b["url"],
            }
            for b in buttons
        ],
    }


# ============================================================================
# Pre-built Message Templates
# ============================================================================

SEVERITY_EMOJI = {
    "critical": ":rotating_light:",
    "high": ":red_circle:",
    "medium": ":large_orange_circle:",
    "low": ":large_blue_circle:",
}

TICKET_EVENT_TITLES = {
    "ticket_created": "New Ticket",
    "ticket_assigned": "Ticket Assigned",
    "ticket_status_changed": "Ticket Status Changed",
    "ticket_resolved": "Ticket Resolved",
    "ticket_reopened": "Ticket Reopened",
    "ticket_closed": "Ticket Closed",
    "ticket_deleted": "Ticket Deleted",
    "comment_added": "New Comment",
}

SLA_EVENT_TITLES = {
    "sla_at_risk": "SLA At Risk",
    "sla_response_breached": "Response SLA Breached",
    "sla_resolution_breached": "Resolution SLA Breached",
}


def build_ticket_event_message(
    event_type: str,
    payload: Dict[str, Any],
    ticket_url: str,
) -> tuple[str, List[Dict[str, Any]]]:
    """
    Build Slack message for a ticket lifecycle event.

    Args:
        event_type: Lifecycle event name (ticket_created, ticket_reopened, ...)
        payload: Event payload produced by the lifecycle service
        ticket_url: Direct link to ticket

    Returns:
        Tuple of (fallback text, Block Kit blocks)
    """
    title = TICKET_EVENT_TITLES.get(event_type, event_type.replace("_", " ").title())
    severity = str(payload.get("severity") or "")
    emoji = SEVERITY_EMOJI.get(severity, "")
    ticket_id = payload.get("ticket_id")

    text = f"{title} #{ticket_id}: {payload.get('title', '')}"

    fields = [
        {"label": "Ticket", "value": f"#{ticket_id}"},
        {"label": "Severity", "value": severity.capitalize() or "-"},
        {"label": "Status", "value": str(payload.get("status") or "-").replace("_", " ")},
        {"label": "Assignee", "value": payload.get("assignee") or "Unassigned"},
    ]
    if payload.get("from_status"):
        fields.append({"label": "Previous Status", "value": payload["from_status"]})

    blocks = [
        build_header_block(f"{emoji} {title}".strip()),
        build_section_block(f"*{payload.get('title', '')}*"),
        build_fields_block(fields),
    ]
    if payload.get("actor_id"):
        blocks.append(build_context_block(f"By {payload['actor_id']}"))
    blocks.append(build_divider_block())
    blocks.append(build_actions_block([{"text": "View Ticket", "url": ticket_url}]))

    return text, blocks


def build_sla_message(
    event_type: str,
    payload: Dict[str, Any],
    ticket_url: str,
) -> tuple[str, List[Dict[str, Any]]]:
    """
    Build Slack message for an SLA timer event.

    Args:
        event_type: sla_at_risk, sla_response_breached or sla_resolution_breached
        payload: Registry payload (ticket_id, tenant_id, due_at)
        ticket_url: Direct link to ticket

    Returns:
        Tuple of (fallback text, Block Kit blocks)
    """
    title = SLA_EVENT_TITLES.get(event_type, event_type)
    ticket_id = payload.get("ticket_id")
    text = f"{title} for ticket #{ticket_id}"

    blocks = [
        build_header_block(f":warning: {title}"),
        build_fields_block([
            {"label": "Ticket", "value": f"#{ticket_id}"},
            {"label": "Due", "value": payload.get("due_at") or "-"},
        ]),
        build_divider_block(),
        build_actions_block([{"text": "View Ticket", "url": ticket_url}]),
    ]

    return text, blocks
