from __future__ import annotations

from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update

from src.db.models.enums import RequirementStatus
from src.db.models.planning import MaterialDemand, MaterialRequirement, MrpRun
from .base import BaseRepository


class DemandRepository(BaseRepository):
    """Repository for the MRP demand feed."""

    async def list_demands(
        self,
        *,
        material_id: Optional[UUID] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[MaterialDemand]:
        stmt = select(MaterialDemand)
        if material_id:
            stmt = stmt.where(MaterialDemand.material_id == material_id)
        if start:
            stmt = stmt.where(MaterialDemand.need_date >= start)
        if end:
            stmt = stmt.where(MaterialDemand.need_date <= end)
        stmt = stmt.order_by(MaterialDemand.need_date.asc(), MaterialDemand.created_at.asc())
        stmt = stmt.offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def demands_in_horizon(self, material_id: UUID, start: date, end: date) -> List[MaterialDemand]:
        """All demand of a material whose need date falls in [start, end]."""
        stmt = (
            select(MaterialDemand)
            .where(
                MaterialDemand.material_id == material_id,
                MaterialDemand.need_date >= start,
                MaterialDemand.need_date <= end,
            )
            .order_by(MaterialDemand.need_date.asc(), MaterialDemand.created_at.asc())
        )
        res = await self.scalars(stmt)
        return list(res)


class MrpRunRepository(BaseRepository):
    """Repository for planning run headers."""

    async def get_run(self, run_id: UUID) -> Optional[MrpRun]:
        return await self.get_by_id(MrpRun, run_id)

    async def list_runs(self, *, limit: int = 50, offset: int = 0) -> List[MrpRun]:
        stmt = select(MrpRun).order_by(MrpRun.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)


class RequirementRepository(BaseRepository):
    """Repository for planned material requirements."""

    async def get_requirement(self, requirement_id: UUID) -> Optional[MaterialRequirement]:
        return await self.get_by_id(MaterialRequirement, requirement_id)

    async def list_requirements(
        self,
        *,
        run_id: Optional[UUID] = None,
        material_id: Optional[UUID] = None,
        status: Optional[RequirementStatus] = None,
        current_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> List[MaterialRequirement]:
        stmt = select(MaterialRequirement)
        if run_id:
            stmt = stmt.where(MaterialRequirement.mrp_run_id == run_id)
        if material_id:
            stmt = stmt.where(MaterialRequirement.material_id == material_id)
        if status:
            stmt = stmt.where(MaterialRequirement.status == status)
        if current_only:
            stmt = stmt.where(MaterialRequirement.is_current.is_(True))
        stmt = stmt.order_by(
            MaterialRequirement.requirement_date.asc(),
            MaterialRequirement.material_id.asc(),
            MaterialRequirement.created_at.asc(),
        )
        stmt = stmt.offset(offset).limit(limit).execution_options(populate_existing=True)
        res = await self.scalars(stmt)
        return list(res)

    async def supersede_planned(self, material_id: UUID, start: date, end: date) -> int:
        """
        Mark current `planned` requirements of a material inside the horizon as
        no longer current. Released/converted records are left untouched.
        """
        stmt = (
            update(MaterialRequirement)
            .where(
                MaterialRequirement.material_id == material_id,
                MaterialRequirement.requirement_date >= start,
                MaterialRequirement.requirement_date <= end,
                MaterialRequirement.status == RequirementStatus.PLANNED,
                MaterialRequirement.is_current.is_(True),
            )
            .values(is_current=False)
            .execution_options(synchronize_session="fetch")
        )
        res = await self.execute(stmt)
        return res.rowcount or 0
