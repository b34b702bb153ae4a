from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_db_session, get_settings_dep
from src.core.settings import AppSettings
from src.schemas.locations import LocationCreate, LocationMove, LocationRead, LocationUtilization
from src.services.storage import StorageService

router = APIRouter(prefix="/locations", tags=["Locations"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[LocationRead],
    summary="List storage locations",
    description="List storage locations ordered by code, optionally only the children of a parent.",
)
async def list_locations(
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
    parent_id: Optional[UUID] = Query(None, description="Only direct children of this location"),
    limit: int = Query(100, ge=1, le=1000, description="Max records"),
    offset: int = Query(0, ge=0, description="Records to skip"),
) -> List[LocationRead]:
    """Return storage locations."""
    svc = StorageService(session, settings)
    records = await svc.list_locations(parent_id=parent_id, limit=limit, offset=offset)
    return [LocationRead.model_validate(r) for r in records]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=LocationRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create storage location",
    description=(
        "Create a location. The parent must exist, must not be a descendant of the new node, "
        "and must rank above it in warehouse > area > zone > bin > shelf/rack/cell."
    ),
)
async def create_location(
    payload: LocationCreate,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> LocationRead:
    """Create a storage location; 422 hierarchy_violation on an invalid parent."""
    svc = StorageService(session, settings)
    loc = await svc.create_location(payload)
    return LocationRead.model_validate(loc)


# PUBLIC_INTERFACE
@router.get("/{location_id}", response_model=LocationRead, summary="Get storage location")
async def get_location(
    location_id: UUID,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> LocationRead:
    svc = StorageService(session, settings)
    return LocationRead.model_validate(await svc.get_location(location_id))


# PUBLIC_INTERFACE
@router.post(
    "/{location_id}/move",
    response_model=LocationRead,
    summary="Re-parent storage location",
    description="Move a location under a new parent (or make it a root) with cycle and type-order checks.",
)
async def move_location(
    location_id: UUID,
    payload: LocationMove,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> LocationRead:
    svc = StorageService(session, settings)
    loc = await svc.move_location(location_id, payload.parent_id)
    return LocationRead.model_validate(loc)


# PUBLIC_INTERFACE
@router.get(
    "/{location_id}/utilization",
    response_model=LocationUtilization,
    summary="Location utilization",
    description="Quantity stored in the location subtree against its capacity.",
)
async def location_utilization(
    location_id: UUID,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> LocationUtilization:
    svc = StorageService(session, settings)
    return await svc.compute_utilization(location_id)
