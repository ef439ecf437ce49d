from typing import Any, Dict, Generic, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from licencias.core.exceptions import DatabaseError
from licencias.utils.logging import get_logger

ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Base repository implementing common read operations.

    Reads always refresh instances already present in the session
    (``populate_existing``) so callers see the latest committed state.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session
            model: The SQLAlchemy model class this repository manages
        """
        self.session = session
        self.model = model
        self.logger = LOGGER

    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        """Get a record by its primary key.

        Args:
            id: Primary key value

        Returns:
            The record if found, None otherwise
        """
        query = (
            select(self.model)
            .where(self.model.id == id)
            .execution_options(populate_existing=True)
        )
        result = await self._execute(query, f"get {self.model.__name__} {id}")
        return result.scalar_one_or_none()

    async def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records matching equality filters."""
        query = select(func.count()).select_from(self.model)
        for field, value in (filters or {}).items():
            query = query.where(getattr(self.model, field) == value)
        result = await self._execute(query, f"count {self.model.__name__}")
        return result.scalar_one()

    async def _execute(self, statement, description: str):
        try:
            return await self.session.execute(statement)
        except SQLAlchemyError as e:
            self.logger.error(f"Error during {description}: {str(e)}", exc_info=True)
            raise DatabaseError(f"Database error during {description}", original_error=e) from e

    async def _commit(self, description: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(f"Error committing {description}: {str(e)}", exc_info=True)
            raise
