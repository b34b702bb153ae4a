from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_db_session, get_settings_dep
from src.core.settings import AppSettings
from src.db.models.enums import MaterialType, ValuationMethod
from src.schemas.inventory import LotAllocationRead, LotSelectionRequest
from src.schemas.materials import MaterialRead, MaterialUpsert, ValuationRead, ValuationRequest
from src.services.catalog import CatalogService
from src.services.lots import LotAllocation, LotService
from src.services.valuation import ValuationService

router = APIRouter(prefix="/materials", tags=["Materials"])


def _allocation_read(allocation: LotAllocation) -> LotAllocationRead:
    lot = allocation.lot
    return LotAllocationRead(
        lot_id=lot.id,
        batch_number=lot.batch_number,
        quantity=float(allocation.quantity),
        received_date=lot.received_date,
        expiration_date=lot.expiration_date,
        unit_cost=float(lot.unit_cost),
    )


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[MaterialRead],
    summary="List materials",
    description="List materials ordered by code with optional search/type/active filters.",
)
async def list_materials(
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
    q: Optional[str] = Query(None, description="Search code or name (case-insensitive)"),
    material_type: Optional[MaterialType] = Query(None, description="Filter by material type"),
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[MaterialRead]:
    """Return materials from the catalog."""
    svc = CatalogService(session, settings)
    records = await svc.list_materials(
        search=q, material_type=material_type, is_active=is_active, limit=limit, offset=offset
    )
    return [MaterialRead.model_validate(r) for r in records]


# PUBLIC_INTERFACE
@router.put(
    "",
    response_model=MaterialRead,
    summary="Create or update material",
    description="Upsert a material by id (when given) or code, validating planning parameters.",
)
async def upsert_material(
    payload: MaterialUpsert,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> MaterialRead:
    svc = CatalogService(session, settings)
    material = await svc.upsert_material(payload)
    return MaterialRead.model_validate(material)


# PUBLIC_INTERFACE
@router.get("/{material_id}", response_model=MaterialRead, summary="Get material")
async def get_material(
    material_id: UUID,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> MaterialRead:
    svc = CatalogService(session, settings)
    return MaterialRead.model_validate(await svc.get_material(material_id))


# PUBLIC_INTERFACE
@router.post(
    "/{material_id}/valuations",
    response_model=ValuationRead,
    status_code=status.HTTP_201_CREATED,
    summary="Record valuation",
    description=(
        "Compute the unit value of the material under a costing method and store it as the "
        "active valuation; the previous active record is deactivated."
    ),
)
async def record_valuation(
    material_id: UUID,
    payload: ValuationRequest,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> ValuationRead:
    """Record a valuation; 422 insufficient_data when the method lacks lot history."""
    svc = ValuationService(session, settings)
    record = await svc.record_valuation(
        material_id,
        payload.method,
        payload.as_of_date,
        batch_lot_id=payload.batch_lot_id,
        quantity=payload.quantity,
        reason=payload.reason,
    )
    return ValuationRead.model_validate(record)


# PUBLIC_INTERFACE
@router.get(
    "/{material_id}/valuations",
    response_model=List[ValuationRead],
    summary="Valuation history",
)
async def list_valuations(
    material_id: UUID,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
    method: Optional[ValuationMethod] = Query(None),
    active_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[ValuationRead]:
    svc = ValuationService(session, settings)
    records = await svc.list_valuations(
        material_id, method=method, active_only=active_only, limit=limit, offset=offset
    )
    return [ValuationRead.model_validate(r) for r in records]


# PUBLIC_INTERFACE
@router.get(
    "/{material_id}/valuations/current",
    response_model=ValuationRead,
    summary="Current valuation",
    description="Latest active valuation for a method (and lot, for batch_specific).",
)
async def get_current_value(
    material_id: UUID,
    method: ValuationMethod = Query(..., description="Costing method"),
    batch_lot_id: Optional[UUID] = Query(None),
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> ValuationRead:
    svc = ValuationService(session, settings)
    return ValuationRead.model_validate(await svc.get_current_value(material_id, method, batch_lot_id))


# PUBLIC_INTERFACE
@router.post(
    "/{material_id}/lot-selection",
    response_model=List[LotAllocationRead],
    summary="Select lots for consumption",
    description="Plan which available, unexpired lots cover a quantity under FIFO, FEFO or LIFO. Nothing is consumed.",
)
async def select_lots(
    material_id: UUID,
    payload: LotSelectionRequest,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> List[LotAllocationRead]:
    svc = LotService(session, settings)
    allocations = await svc.select_lots_for_consumption(material_id, payload.quantity, payload.policy, payload.as_of)
    return [_allocation_read(a) for a in allocations]


# PUBLIC_INTERFACE
@router.post(
    "/{material_id}/issue",
    response_model=List[LotAllocationRead],
    summary="Issue material",
    description="Select lots under a picking policy and consume them in one transaction.",
)
async def issue_material(
    material_id: UUID,
    payload: LotSelectionRequest,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
    reference_type: Optional[str] = Query(None),
    reference_id: Optional[str] = Query(None),
) -> List[LotAllocationRead]:
    svc = LotService(session, settings)
    allocations = await svc.issue_material(
        material_id,
        payload.quantity,
        payload.policy,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    return [_allocation_read(a) for a in allocations]
