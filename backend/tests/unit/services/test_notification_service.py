"""
Unit tests for NotificationService.

WHAT: Tests event dispatch to channels.

WHY: Ensures lifecycle and SLA events are formatted with the right template
and that channel errors reach the caller.

HOW: Uses mocked SlackService to verify notification calls.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from helpdesk.core.exceptions import NotificationDeliveryError
from helpdesk.services.notification_service import (
    SLA_RESPONSE_BREACHED,
    TICKET_CREATED,
    NotificationService,
)
from helpdesk.services.slack_service import SlackService


class TestNotificationService:
    """Tests for NotificationService class."""

    @pytest.fixture
    def mock_slack_service(self):
        """Create a mocked SlackService."""
        mock = MagicMock(spec=SlackService)
        mock.send_message = AsyncMock(return_value=True)
        return mock

    @pytest.fixture
    def notification_service(self, mock_slack_service):
        """Create NotificationService with mocked Slack."""
        return NotificationService(
            slack_service=mock_slack_service,
            base_url="https://app.example.com",
        )

    @pytest.mark.asyncio
    async def test_ticket_event(self, notification_service, mock_slack_service):
        result = await notification_service.send(
            TICKET_CREATED,
            {"ticket_id": 12, "title": "Phishing mail", "severity": "high", "status": "new"},
        )

        assert result is True
        text, blocks = mock_slack_service.send_message.call_args.args
        assert text == "New Ticket #12: Phishing mail"
        assert blocks[-1]["elements"][0]["url"] == "https://app.example.com/tickets/12"

    @pytest.mark.asyncio
    async def test_sla_event_uses_sla_template(self, notification_service, mock_slack_service):
        await notification_service.send(SLA_RESPONSE_BREACHED, {"ticket_id": 3, "due_at": None})

        text, _ = mock_slack_service.send_message.call_args.args
        assert text == "Response SLA Breached for ticket #3"

    @pytest.mark.asyncio
    async def test_channel_disabled(self, notification_service, mock_slack_service):
        mock_slack_service.send_message = AsyncMock(return_value=False)

        assert await notification_service.send(TICKET_CREATED, {"ticket_id": 1}) is False

    @pytest.mark.asyncio
    async def test_channel_error_propagates(self, notification_service, mock_slack_service):
        """The lifecycle service, not the gateway, decides to swallow failures."""
        mock_slack_service.send_message = AsyncMock(
            side_effect=NotificationDeliveryError("Slack down")
        )

        with pytest.raises(NotificationDeliveryError):
            await notification_service.send(TICKET_CREATED, {"ticket_id": 1})
