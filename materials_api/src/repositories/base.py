from __future__ import annotations

from typing import Any, Iterable, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import Executable
from sqlalchemy.ext.asyncio import AsyncSession

ModelT = TypeVar("ModelT")


class BaseRepository:
    """
    Base class for repositories providing common helpers.

    Repositories never commit on their own; the calling service decides where
    the transaction boundary is.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def execute(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute a SQLAlchemy statement."""
        return await self.session.execute(statement, params or {})

    async def scalars(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return scalars."""
        result = await self.execute(statement, params)
        return result.scalars()

    async def scalar_one_or_none(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return a single scalar or None."""
        result = await self.execute(statement, params)
        return result.scalar_one_or_none()

    async def get_by_id(self, model: Type[ModelT], entity_id: UUID) -> Optional[ModelT]:
        """Fetch one entity by primary key from the identity map or the database."""
        return await self.session.get(model, entity_id)

    async def add_all(self, entities: Iterable[Any]) -> None:
        """Add multiple entities to session."""
        self.session.add_all(list(entities))

    async def add(self, entity: Any) -> None:
        """Add a single entity to session."""
        self.session.add(entity)

    async def flush(self) -> None:
        """Flush pending changes so database constraints are checked early."""
        await self.session.flush()
