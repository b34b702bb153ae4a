from __future__ import annotations

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_db_session, get_settings_dep
from src.core.settings import AppSettings
from src.db.models.enums import RequirementStatus
from src.schemas.planning import (
    DemandCreate,
    DemandRead,
    MrpRunRead,
    MrpRunRequest,
    RequirementConvert,
    RequirementRead,
)
from src.services.mrp import MrpService

router = APIRouter(prefix="/mrp", tags=["MRP"])


# PUBLIC_INTERFACE
@router.post(
    "/demands",
    response_model=DemandRead,
    status_code=status.HTTP_201_CREATED,
    summary="Record demand",
    description="Store a (material, quantity, need date, source) demand tuple for planning.",
)
async def record_demand(
    payload: DemandCreate,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> DemandRead:
    svc = MrpService(session, settings)
    return DemandRead.model_validate(await svc.record_demand(payload))


# PUBLIC_INTERFACE
@router.get("/demands", response_model=List[DemandRead], summary="List demands")
async def list_demands(
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
    material_id: Optional[UUID] = Query(None),
    start: Optional[date] = Query(None, description="Need date from (inclusive)"),
    end: Optional[date] = Query(None, description="Need date to (inclusive)"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[DemandRead]:
    svc = MrpService(session, settings)
    records = await svc.list_demands(material_id=material_id, start=start, end=end, limit=limit, offset=offset)
    return [DemandRead.model_validate(r) for r in records]


# PUBLIC_INTERFACE
@router.post(
    "/runs",
    response_model=MrpRunRead,
    status_code=status.HTTP_201_CREATED,
    summary="Run MRP",
    description=(
        "Net demand in the horizon against available stock and safety stock for every active "
        "material and write planned requirements. Materials with missing/negative lead times are "
        "skipped; a failing material is rolled back without aborting the run."
    ),
)
async def run_mrp(
    payload: MrpRunRequest,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> MrpRunRead:
    svc = MrpService(session, settings)
    return MrpRunRead.model_validate(await svc.run_mrp(payload))


# PUBLIC_INTERFACE
@router.get("/runs", response_model=List[MrpRunRead], summary="List MRP runs")
async def list_runs(
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> List[MrpRunRead]:
    svc = MrpService(session, settings)
    return [MrpRunRead.model_validate(r) for r in await svc.list_runs(limit=limit, offset=offset)]


# PUBLIC_INTERFACE
@router.get("/runs/{run_id}", response_model=MrpRunRead, summary="Get MRP run")
async def get_run(
    run_id: UUID,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> MrpRunRead:
    svc = MrpService(session, settings)
    return MrpRunRead.model_validate(await svc.get_run(run_id))


# PUBLIC_INTERFACE
@router.get("/requirements", response_model=List[RequirementRead], summary="List material requirements")
async def list_requirements(
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
    run_id: Optional[UUID] = Query(None),
    material_id: Optional[UUID] = Query(None),
    status_: Optional[RequirementStatus] = Query(None, alias="status"),
    current_only: bool = Query(True, description="Hide requirements superseded by later runs"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[RequirementRead]:
    svc = MrpService(session, settings)
    records = await svc.list_requirements(
        run_id=run_id,
        material_id=material_id,
        status=status_,
        current_only=current_only,
        limit=limit,
        offset=offset,
    )
    return [RequirementRead.model_validate(r) for r in records]


# PUBLIC_INTERFACE
@router.post("/requirements/{requirement_id}/release", response_model=RequirementRead, summary="Release requirement")
async def release_requirement(
    requirement_id: UUID,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> RequirementRead:
    svc = MrpService(session, settings)
    return RequirementRead.model_validate(await svc.release_requirement(requirement_id))


# PUBLIC_INTERFACE
@router.post(
    "/requirements/{requirement_id}/convert",
    response_model=RequirementRead,
    summary="Convert requirement",
    description="Link a planned/released requirement to the purchase or production order created from it.",
)
async def convert_requirement(
    requirement_id: UUID,
    payload: RequirementConvert,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> RequirementRead:
    svc = MrpService(session, settings)
    requirement = await svc.convert_requirement(requirement_id, payload.order_type, payload.order_id)
    return RequirementRead.model_validate(requirement)


# PUBLIC_INTERFACE
@router.post("/requirements/{requirement_id}/cancel", response_model=RequirementRead, summary="Cancel requirement")
async def cancel_requirement(
    requirement_id: UUID,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> RequirementRead:
    svc = MrpService(session, settings)
    return RequirementRead.model_validate(await svc.cancel_requirement(requirement_id))
