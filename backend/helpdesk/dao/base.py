"""
Base Data Access Object (DAO) class.

WHY: Keeps SQL out of the lifecycle services. Ticket, comment, event and
SLA policy DAOs share insert, lookup and count; everything ticket-specific
(tenant scoping, conditional updates) lives in the subclasses.
"""

from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.exceptions import DatabaseError
from helpdesk.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseDAO(Generic[ModelType]):
    """
    Generic insert/lookup/count for one model within one session.

    The DAO never commits; the service owning the unit of work does.

    Type Parameters:
        ModelType: The SQLAlchemy model class this DAO manages
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    async def create(self, **kwargs: Any) -> ModelType:
        """
        Insert a row and return it with generated fields populated.

        Raises:
            DatabaseError: If the insert fails (constraint violation, lost connection)
        """
        instance = self.model(**kwargs)
        self.session.add(instance)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            raise DatabaseError(
                message=f"Failed to create {self.model.__name__}",
                error=str(e),
            ) from e
        await self.session.refresh(instance)
        return instance

    async def get_by_id(self, id: int) -> Optional[ModelType]:
        result = await self.session.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def count(self, **filters: Any) -> int:
        """
        Count rows matching column equality filters.

        Args:
            **filters: Column name to value (unknown names are ignored)
        """
        query = select(func.count()).select_from(self.model)
        for name, value in filters.items():
            if hasattr(self.model, name):
                query = query.where(getattr(self.model, name) == value)

        result = await self.session.execute(query)
        return result.scalar_one()
