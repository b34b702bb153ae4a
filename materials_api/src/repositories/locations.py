from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.enums import LotStatus
from src.db.models.inventory import BatchLot
from src.db.models.storage import StorageLocation
from .base import BaseRepository


class LocationRepository(BaseRepository):
    """Repository for storage locations."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def list_locations(
        self, *, parent_id: Optional[UUID] = None, limit: int = 100, offset: int = 0
    ) -> List[StorageLocation]:
        stmt = select(StorageLocation)
        if parent_id:
            stmt = stmt.where(StorageLocation.parent_id == parent_id)
        stmt = stmt.order_by(StorageLocation.code).offset(offset).limit(limit)
        result = await self.scalars(stmt)
        return list(result)

    async def get_location(self, location_id: UUID) -> Optional[StorageLocation]:
        return await self.get_by_id(StorageLocation, location_id)

    async def get_by_code(self, code: str) -> Optional[StorageLocation]:
        stmt = select(StorageLocation).where(StorageLocation.code == code)
        return await self.scalar_one_or_none(stmt)

    async def list_children(self, parent_ids: Iterable[UUID]) -> List[StorageLocation]:
        ids = list(parent_ids)
        if not ids:
            return []
        stmt = select(StorageLocation).where(StorageLocation.parent_id.in_(ids))
        res = await self.scalars(stmt)
        return list(res)

    async def sum_stored_quantity(self, location_ids: Iterable[UUID], statuses: Iterable[LotStatus]) -> Decimal:
        """Sum remaining quantity of lots in the given locations and statuses."""
        ids = list(location_ids)
        if not ids:
            return Decimal("0")
        stmt = select(func.coalesce(func.sum(BatchLot.remaining_quantity), 0)).where(
            BatchLot.location_id.in_(ids),
            BatchLot.status.in_(list(statuses)),
        )
        res = await self.execute(stmt)
        return Decimal(str(res.scalar_one()))
