from __future__ import annotations

from datetime import date
from typing import Any, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.base import utcnow
from src.db.models.enums import LotStatus, ReservationStatus
from src.db.models.inventory import BatchLot, InventoryTransaction, MaterialReservation
from .base import BaseRepository


class LotRepository(BaseRepository):
    """Repository for batch lots."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def get_lot(self, lot_id: UUID, *, fresh: bool = False) -> Optional[BatchLot]:
        """
        Load a lot. With `fresh=True` the row is re-read from the database and
        overwrites any stale state held in the identity map.
        """
        stmt = select(BatchLot).where(BatchLot.id == lot_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        return await self.scalar_one_or_none(stmt)

    async def get_by_batch_number(self, batch_number: str) -> Optional[BatchLot]:
        stmt = select(BatchLot).where(BatchLot.batch_number == batch_number)
        return await self.scalar_one_or_none(stmt)

    async def list_lots(
        self,
        *,
        material_id: Optional[UUID] = None,
        status: Optional[LotStatus] = None,
        location_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[BatchLot]:
        stmt = select(BatchLot)
        if material_id:
            stmt = stmt.where(BatchLot.material_id == material_id)
        if status:
            stmt = stmt.where(BatchLot.status == status)
        if location_id:
            stmt = stmt.where(BatchLot.location_id == location_id)
        stmt = stmt.order_by(BatchLot.received_date.desc(), BatchLot.batch_number).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def list_material_lots(
        self,
        material_id: UUID,
        *,
        statuses: Iterable[LotStatus],
        received_on_or_before: Optional[date] = None,
    ) -> List[BatchLot]:
        """Lots of one material in the given stored statuses, oldest receipt first."""
        stmt = select(BatchLot).where(
            BatchLot.material_id == material_id,
            BatchLot.status.in_(list(statuses)),
        )
        if received_on_or_before is not None:
            stmt = stmt.where(BatchLot.received_date <= received_on_or_before)
        stmt = stmt.order_by(BatchLot.received_date.asc(), BatchLot.created_at.asc(), BatchLot.batch_number.asc())
        stmt = stmt.execution_options(populate_existing=True)
        res = await self.scalars(stmt)
        return list(res)

    async def compare_and_set(self, lot_id: UUID, expected_version: int, values: dict[str, Any]) -> bool:
        """
        Apply `values` only if the row still carries `expected_version`.

        Returns False when another writer got there first; the version is bumped
        on success so later stale writers fail in turn.
        """
        stmt = (
            update(BatchLot)
            .where(BatchLot.id == lot_id, BatchLot.version == expected_version)
            .values(version=expected_version + 1, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        res = await self.execute(stmt)
        return res.rowcount == 1


class ReservationRepository(BaseRepository):
    """Repository for lot reservations."""

    async def get_reservation(self, reservation_id: UUID) -> Optional[MaterialReservation]:
        return await self.get_by_id(MaterialReservation, reservation_id)

    async def list_active_for_lot(self, lot_id: UUID) -> List[MaterialReservation]:
        stmt = (
            select(MaterialReservation)
            .where(
                MaterialReservation.batch_lot_id == lot_id,
                MaterialReservation.status == ReservationStatus.ACTIVE,
            )
            .order_by(MaterialReservation.created_at.asc())
        )
        res = await self.scalars(stmt)
        return list(res)


class InventoryTransactionRepository(BaseRepository):
    """Repository for the lot movement ledger."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def list_transactions(
        self, *, lot_id: Optional[UUID] = None, material_id: Optional[UUID] = None, limit: int = 100, offset: int = 0
    ) -> List[InventoryTransaction]:
        stmt = select(InventoryTransaction)
        if lot_id:
            stmt = stmt.where(InventoryTransaction.lot_id == lot_id)
        if material_id:
            stmt = stmt.where(InventoryTransaction.material_id == material_id)
        stmt = stmt.order_by(InventoryTransaction.created_at.desc()).offset(offset).limit(limit)
        res = await self.scalars(stmt)
        return list(res)

    async def list_material_history(self, material_id: UUID, *, up_to: date) -> List[InventoryTransaction]:
        """Ledger of a material dated on or before `up_to`, in posting order."""
        stmt = (
            select(InventoryTransaction)
            .where(
                InventoryTransaction.material_id == material_id,
                InventoryTransaction.txn_date <= up_to,
            )
            .order_by(InventoryTransaction.created_at.asc())
        )
        res = await self.scalars(stmt)
        return list(res)
