"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and business logic,
making the codebase more testable and maintainable.
"""

from helpdesk.dao.base import BaseDAO
from helpdesk.dao.ticket import TicketDAO, TicketCommentDAO
from helpdesk.dao.sla_policy import SLAPolicyDAO
from helpdesk.dao.ticket_event import TicketEventDAO

__all__ = [
    "BaseDAO",
    "TicketDAO",
    "TicketCommentDAO",
    "SLAPolicyDAO",
    "TicketEventDAO",
]
