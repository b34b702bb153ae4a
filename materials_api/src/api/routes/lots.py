from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_db_session, get_settings_dep
from src.core.settings import AppSettings
from src.db.models.enums import LotStatus
from src.db.models.inventory import BatchLot
from src.schemas.inventory import (
    ConsumeRequest,
    HoldRequest,
    InventoryTransactionRead,
    LotRead,
    LotReceive,
    ReasonRequest,
    ReservationRead,
    ReserveRequest,
    SplitRequest,
)
from src.services.lot_lifecycle import effective_status
from src.services.lots import LotService

router = APIRouter(tags=["Lots"])


def _lot_read(lot: BatchLot) -> LotRead:
    return LotRead.model_validate(lot).model_copy(update={"effective_status": effective_status(lot)})


# PUBLIC_INTERFACE
@router.get(
    "/lots",
    response_model=List[LotRead],
    summary="List lots",
    description="List lots (batches) with optional material/status/location filters.",
)
async def list_lots(
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
    material_id: Optional[UUID] = Query(None, description="Filter by material"),
    status_: Optional[LotStatus] = Query(None, alias="status", description="Filter by stored status"),
    location_id: Optional[UUID] = Query(None, description="Filter by storage location"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[LotRead]:
    """
    Return lots. `effective_status` reports `expired` for lots past their
    expiration date regardless of the stored status.
    """
    svc = LotService(session, settings)
    lots = await svc.list_lots(
        material_id=material_id, status=status_, location_id=location_id, limit=limit, offset=offset
    )
    return [_lot_read(x) for x in lots]


# PUBLIC_INTERFACE
@router.post(
    "/lots",
    response_model=LotRead,
    status_code=status.HTTP_201_CREATED,
    summary="Receive lot",
    description="Create an available lot from a goods receipt; revalues moving-average materials.",
)
async def receive_lot(
    payload: LotReceive,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> LotRead:
    svc = LotService(session, settings)
    return _lot_read(await svc.receive_lot(payload))


# PUBLIC_INTERFACE
@router.get("/lots/{lot_id}", response_model=LotRead, summary="Get lot")
async def get_lot(
    lot_id: UUID,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> LotRead:
    svc = LotService(session, settings)
    return _lot_read(await svc.get_lot(lot_id))


# PUBLIC_INTERFACE
@router.post(
    "/lots/{lot_id}/reserve",
    response_model=ReservationRead,
    status_code=status.HTTP_201_CREATED,
    summary="Reserve lot quantity",
    description="Place a hold on part of a lot. Remaining quantity is unchanged; 409 when free quantity is short.",
)
async def reserve_lot(
    lot_id: UUID,
    payload: ReserveRequest,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> ReservationRead:
    svc = LotService(session, settings)
    reservation = await svc.reserve(
        lot_id, payload.quantity, reference_type=payload.reference_type, reference_id=payload.reference_id
    )
    return ReservationRead.model_validate(reservation)


# PUBLIC_INTERFACE
@router.get("/lots/{lot_id}/reservations", response_model=List[ReservationRead], summary="Active reservations")
async def list_reservations(
    lot_id: UUID,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> List[ReservationRead]:
    svc = LotService(session, settings)
    return [ReservationRead.model_validate(r) for r in await svc.list_reservations(lot_id)]


# PUBLIC_INTERFACE
@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationRead, summary="Cancel reservation")
async def cancel_reservation(
    reservation_id: UUID,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> ReservationRead:
    svc = LotService(session, settings)
    return ReservationRead.model_validate(await svc.cancel_reservation(reservation_id))


# PUBLIC_INTERFACE
@router.post(
    "/lots/{lot_id}/consume",
    response_model=LotRead,
    summary="Consume from lot",
    description="Decrement remaining quantity; the lot becomes consumed at zero. 409 when the lot cannot cover it.",
)
async def consume_lot(
    lot_id: UUID,
    payload: ConsumeRequest,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> LotRead:
    svc = LotService(session, settings)
    lot = await svc.consume(
        lot_id,
        payload.quantity,
        reservation_id=payload.reservation_id,
        reference_type=payload.reference_type,
        reference_id=payload.reference_id,
    )
    return _lot_read(lot)


# PUBLIC_INTERFACE
@router.post("/lots/{lot_id}/quarantine", response_model=LotRead, summary="Place lot on quality hold")
async def quarantine_lot(
    lot_id: UUID,
    payload: HoldRequest,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> LotRead:
    svc = LotService(session, settings)
    return _lot_read(await svc.quarantine(lot_id, payload.reason, payload.hold_status))


# PUBLIC_INTERFACE
@router.post("/lots/{lot_id}/release", response_model=LotRead, summary="Release lot from hold")
async def release_lot(
    lot_id: UUID,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> LotRead:
    svc = LotService(session, settings)
    return _lot_read(await svc.release(lot_id))


# PUBLIC_INTERFACE
@router.post("/lots/{lot_id}/reject", response_model=LotRead, summary="Reject held lot")
async def reject_lot(
    lot_id: UUID,
    payload: ReasonRequest,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> LotRead:
    svc = LotService(session, settings)
    return _lot_read(await svc.reject(lot_id, payload.reason))


# PUBLIC_INTERFACE
@router.post("/lots/{lot_id}/recall", response_model=LotRead, summary="Recall lot")
async def recall_lot(
    lot_id: UUID,
    payload: ReasonRequest,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> LotRead:
    svc = LotService(session, settings)
    return _lot_read(await svc.recall(lot_id, payload.reason))


# PUBLIC_INTERFACE
@router.post(
    "/lots/{lot_id}/split",
    response_model=LotRead,
    status_code=status.HTTP_201_CREATED,
    summary="Split lot",
    description="Repack part of an available lot into a child lot that records its parent.",
)
async def split_lot(
    lot_id: UUID,
    payload: SplitRequest,
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
) -> LotRead:
    svc = LotService(session, settings)
    child = await svc.split_lot(
        lot_id, payload.quantity, batch_number=payload.batch_number, location_id=payload.location_id
    )
    return _lot_read(child)


# PUBLIC_INTERFACE
@router.get(
    "/transactions",
    response_model=List[InventoryTransactionRead],
    summary="List inventory transactions",
    description="List lot ledger entries ordered by created_at desc.",
)
async def list_inventory_transactions(
    session: AsyncSession = Depends(get_db_session),
    settings: AppSettings = Depends(get_settings_dep),
    lot_id: Optional[UUID] = Query(None, description="Filter by lot"),
    material_id: Optional[UUID] = Query(None, description="Filter by material"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[InventoryTransactionRead]:
    svc = LotService(session, settings)
    txns = await svc.list_transactions(lot_id=lot_id, material_id=material_id, limit=limit, offset=offset)
    return [InventoryTransactionRead.model_validate(x) for x in txns]
