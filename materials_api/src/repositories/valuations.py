from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update

from src.db.models.enums import ValuationMethod
from src.db.models.valuation import MaterialValuation
from .base import BaseRepository


class ValuationRepository(BaseRepository):
    """Repository for material valuation records."""

    def _active_stmt(self, material_id: UUID, method: ValuationMethod, batch_lot_id: Optional[UUID]):
        stmt = select(MaterialValuation).where(
            MaterialValuation.material_id == material_id,
            MaterialValuation.method == method,
            MaterialValuation.is_active.is_(True),
        )
        if method == ValuationMethod.BATCH_SPECIFIC:
            stmt = stmt.where(MaterialValuation.batch_lot_id == batch_lot_id)
        return stmt

    async def get_active(
        self, material_id: UUID, method: ValuationMethod, batch_lot_id: Optional[UUID] = None
    ) -> Optional[MaterialValuation]:
        stmt = self._active_stmt(material_id, method, batch_lot_id).order_by(
            MaterialValuation.valuation_date.desc(), MaterialValuation.created_at.desc()
        ).limit(1)
        return await self.scalar_one_or_none(stmt)

    async def deactivate(
        self, material_id: UUID, method: ValuationMethod, batch_lot_id: Optional[UUID] = None
    ) -> None:
        """Flag every active record for the (material, method[, lot]) key inactive."""
        stmt = update(MaterialValuation).where(
            MaterialValuation.material_id == material_id,
            MaterialValuation.method == method,
            MaterialValuation.is_active.is_(True),
        )
        if method == ValuationMethod.BATCH_SPECIFIC:
            stmt = stmt.where(MaterialValuation.batch_lot_id == batch_lot_id)
        await self.execute(stmt.values(is_active=False).execution_options(synchronize_session="fetch"))

    async def list_valuations(
        self,
        material_id: UUID,
        *,
        method: Optional[ValuationMethod] = None,
        active_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> List[MaterialValuation]:
        stmt = select(MaterialValuation).where(MaterialValuation.material_id == material_id)
        if method:
            stmt = stmt.where(MaterialValuation.method == method)
        if active_only:
            stmt = stmt.where(MaterialValuation.is_active.is_(True))
        stmt = stmt.order_by(MaterialValuation.valuation_date.desc(), MaterialValuation.created_at.desc())
        stmt = stmt.offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)
