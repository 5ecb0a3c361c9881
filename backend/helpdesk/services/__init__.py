"""
Business logic services package.

WHY: Services contain the ticket lifecycle rules, separated from data
access, following the layered architecture (Service → DAO → Model).
"""

from helpdesk.services.assignment import AssignmentCoordinator
from helpdesk.services.notification_service import NotificationDispatcher, NotificationService
from helpdesk.services.queue_manager import QueueManager, order_queue
from helpdesk.services.slack_service import SlackService
from helpdesk.services.sla_service import SLAService
from helpdesk.services.sla_timer_registry import SLATimerRegistry, SLATimerState
from helpdesk.services.ticket_lifecycle import TicketLifecycleService

__all__ = [
    "AssignmentCoordinator",
    "NotificationDispatcher",
    "NotificationService",
    "QueueManager",
    "order_queue",
    "SlackService",
    "SLAService",
    "SLATimerRegistry",
    "SLATimerState",
    "TicketLifecycleService",
]
