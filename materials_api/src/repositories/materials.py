from __future__ import annotations

from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.catalog import Material
from src.db.models.enums import MaterialType
from .base import BaseRepository


class MaterialRepository(BaseRepository):
    """Repository for the material catalog."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def list_materials(
        self,
        *,
        search: Optional[str] = None,
        material_type: Optional[MaterialType] = None,
        is_active: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Material]:
        stmt = select(Material)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(Material.code.ilike(like), Material.name.ilike(like)))
        if material_type:
            stmt = stmt.where(Material.material_type == material_type)
        if is_active is not None:
            stmt = stmt.where(Material.is_active == is_active)
        stmt = stmt.order_by(Material.code).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def get_material(self, material_id: UUID) -> Optional[Material]:
        return await self.get_by_id(Material, material_id)

    async def get_by_code(self, code: str) -> Optional[Material]:
        stmt = select(Material).where(Material.code == code)
        return await self.scalar_one_or_none(stmt)

    async def list_for_planning(self, material_ids: Optional[Sequence[UUID]] = None) -> List[Material]:
        """Active materials ordered by code, optionally restricted to the given ids."""
        stmt = select(Material).where(Material.is_active.is_(True))
        if material_ids:
            stmt = stmt.where(Material.id.in_(list(material_ids)))
        stmt = stmt.order_by(Material.code)
        res = await self.scalars(stmt)
        return list(res)
