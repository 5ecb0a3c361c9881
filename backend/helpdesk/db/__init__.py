"""Database package"""

from helpdesk.db.session import create_engine, create_session_factory, init_models
from helpdesk.models.base import Base

__all__ = ["Base", "create_engine", "create_session_factory", "init_models"]
