from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import (
    InsufficientQuantityError,
    InsufficientStockError,
    InvalidStateTransitionError,
    MaterialsError,
    NotFoundError,
    ValidationError,
)
from src.core.settings import AppSettings
from src.db.models.catalog import Material
from src.db.models.enums import (
    LotStatus,
    PickingPolicy,
    ReservationStatus,
    TransactionType,
    ValuationMethod,
)
from src.db.models.inventory import BatchLot, InventoryTransaction, MaterialReservation
from src.repositories.inventory import InventoryTransactionRepository, LotRepository, ReservationRepository
from src.repositories.locations import LocationRepository
from src.repositories.materials import MaterialRepository
from src.schemas.inventory import LotReceive
from src.services.base import BaseService
from src.services.lot_lifecycle import HOLD_STATUSES, effective_status, ensure_transition
from src.services.valuation import ValuationService

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

_HOLD_QUALITY_STATUS = {
    LotStatus.QUARANTINE: "on_hold",
    LotStatus.ON_HOLD: "on_hold",
    LotStatus.IN_QA: "in_inspection",
}


@dataclass
class LotAllocation:
    """One step of a consumption plan: take `quantity` from `lot`."""
    lot: BatchLot
    quantity: Decimal


def free_quantity(lot: BatchLot) -> Decimal:
    """Remaining quantity not held by reservations."""
    return Decimal(lot.remaining_quantity) - Decimal(lot.reserved_quantity or 0)


def _sort_for_policy(lots: List[BatchLot], policy: PickingPolicy) -> List[BatchLot]:
    if policy == PickingPolicy.FEFO:
        return sorted(
            lots,
            key=lambda lot: (
                lot.expiration_date is None,
                lot.expiration_date or date.max,
                lot.received_date,
                lot.created_at,
            ),
        )
    ordered = sorted(lots, key=lambda lot: (lot.received_date, lot.created_at))
    if policy == PickingPolicy.LIFO:
        ordered.reverse()
    return ordered


class LotService(BaseService):
    """
    Lot/batch ledger: receipts, holds, consumption and the quality lifecycle.

    Every quantity or status write goes through `_update_lot`, a conditional
    UPDATE guarded by the lot's version. A lost race re-reads the lot and
    re-checks the request before trying again.
    """

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.lots = LotRepository(session)
        self.reservations = ReservationRepository(session)
        self.txns = InventoryTransactionRepository(session)
        self.materials = MaterialRepository(session)
        self.locations = LocationRepository(session)

    # PUBLIC_INTERFACE
    async def get_lot(self, lot_id: UUID) -> BatchLot:
        lot = await self.lots.get_lot(lot_id)
        if lot is None:
            raise NotFoundError.for_entity("Lot", lot_id)
        return lot

    # PUBLIC_INTERFACE
    async def list_lots(
        self,
        *,
        material_id: Optional[UUID] = None,
        status: Optional[LotStatus] = None,
        location_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[BatchLot]:
        return await self.lots.list_lots(
            material_id=material_id, status=status, location_id=location_id, limit=limit, offset=offset
        )

    # PUBLIC_INTERFACE
    async def list_transactions(
        self, *, lot_id: Optional[UUID] = None, material_id: Optional[UUID] = None, limit: int = 100, offset: int = 0
    ) -> List[InventoryTransaction]:
        return await self.txns.list_transactions(lot_id=lot_id, material_id=material_id, limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def list_reservations(self, lot_id: UUID) -> List[MaterialReservation]:
        """Active reservations held against a lot."""
        await self.get_lot(lot_id)
        return await self.reservations.list_active_for_lot(lot_id)

    # PUBLIC_INTERFACE
    async def receive_lot(self, payload: LotReceive) -> BatchLot:
        """
        Create a lot in `available` status from a goods receipt.

        Location defaults to the material's default location and expiration to
        received date + shelf life. When the material is valued by moving
        average, the average is recomputed as of the posting date (or the
        receipt date when that lies ahead).
        Raises ValidationError for a non-positive quantity.
        """
        if payload.quantity <= 0:
            raise ValidationError("quantity must be > 0", details={"quantity": str(payload.quantity)})
        material = await self._get_material(payload.material_id)

        location_id = payload.location_id or material.default_location_id
        if location_id is not None and await self.locations.get_location(location_id) is None:
            raise NotFoundError.for_entity("Location", location_id)
        if payload.parent_lot_id is not None and await self.lots.get_lot(payload.parent_lot_id) is None:
            raise NotFoundError.for_entity("Lot", payload.parent_lot_id)

        received = payload.received_date or date.today()
        expiration = payload.expiration_date
        if expiration is None and material.shelf_life_days is not None:
            expiration = received + timedelta(days=material.shelf_life_days)
        if payload.manufacture_date and expiration and expiration < payload.manufacture_date:
            raise ValidationError("expiration_date precedes manufacture_date")

        batch_number = payload.batch_number or self._new_batch_number(material, received)
        if await self.lots.get_by_batch_number(batch_number) is not None:
            raise ValidationError(f"Batch number '{batch_number}' already exists", details={"batch_number": batch_number})

        lot = BatchLot(
            batch_number=batch_number,
            material_id=material.id,
            quantity=payload.quantity,
            remaining_quantity=payload.quantity,
            reserved_quantity=ZERO,
            uom=material.uom,
            status=LotStatus.AVAILABLE,
            manufacture_date=payload.manufacture_date,
            expiration_date=expiration,
            received_date=received,
            unit_cost=payload.unit_cost,
            location_id=location_id,
            vendor_id=payload.vendor_id,
            parent_lot_id=payload.parent_lot_id,
            quality_status="pending",
            version=1,
        )
        await self.lots.add(lot)
        await self.lots.flush()
        self._log_txn(
            lot,
            TransactionType.RECEIPT,
            quantity=payload.quantity,
            txn_date=received,
            unit_cost=payload.unit_cost,
            ref_type="vendor" if payload.vendor_id else None,
            ref_id=str(payload.vendor_id) if payload.vendor_id else None,
        )
        await self.txns.flush()

        if material.default_valuation_method == ValuationMethod.MOVING_AVERAGE:
            await ValuationService(self.session, self.settings).record_valuation(
                material.id,
                ValuationMethod.MOVING_AVERAGE,
                max(received, date.today()),
                reason=f"receipt {batch_number}",
                commit=False,
            )

        await self.session.commit()
        logger.info("Received lot %s: %s %s of %s", batch_number, payload.quantity, material.uom, material.code)
        return lot

    # PUBLIC_INTERFACE
    async def reserve(
        self,
        lot_id: UUID,
        quantity: Decimal,
        *,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> MaterialReservation:
        """
        Place a hold of `quantity` on a lot.

        Remaining quantity is not touched; the hold is tracked in
        `reserved_quantity` and a reservation record. The lot reads `reserved`
        once every remaining unit is held.
        Raises InsufficientQuantityError when the lot's free quantity is short.
        """
        quantity = self._positive(quantity)

        def plan(lot: BatchLot) -> Dict[str, Any]:
            ensure_transition(lot, LotStatus.RESERVED)
            free = free_quantity(lot)
            if quantity > free:
                raise InsufficientQuantityError(
                    f"Lot {lot.batch_number} has {free} free, {quantity} requested",
                    details={"lot_id": str(lot.id), "free": str(free), "requested": str(quantity)},
                )
            reserved = Decimal(lot.reserved_quantity) + quantity
            status = LotStatus.RESERVED if reserved >= Decimal(lot.remaining_quantity) else LotStatus.AVAILABLE
            ensure_transition(lot, status)
            return {"reserved_quantity": reserved, "status": status}

        lot = await self._update_lot(lot_id, plan, self._quantity_conflict(lot_id, quantity))
        reservation = MaterialReservation(
            material_id=lot.material_id,
            batch_lot_id=lot.id,
            quantity=quantity,
            fulfilled_quantity=ZERO,
            reference_type=reference_type,
            reference_id=reference_id,
            status=ReservationStatus.ACTIVE,
        )
        await self.reservations.add(reservation)
        await self.reservations.flush()
        self._log_txn(
            lot,
            TransactionType.RESERVE,
            held_quantity=quantity,
            ref_type="reservation",
            ref_id=str(reservation.id),
        )
        await self.session.commit()
        return reservation

    # PUBLIC_INTERFACE
    async def cancel_reservation(self, reservation_id: UUID) -> MaterialReservation:
        """Release the outstanding part of an active reservation."""
        reservation = await self.reservations.get_reservation(reservation_id)
        if reservation is None:
            raise NotFoundError.for_entity("Reservation", reservation_id)
        if reservation.status != ReservationStatus.ACTIVE:
            raise InvalidStateTransitionError(
                f"Reservation is {reservation.status.value}", details={"reservation_id": str(reservation.id)}
            )
        outstanding = Decimal(reservation.quantity) - Decimal(reservation.fulfilled_quantity)

        def plan(lot: BatchLot) -> Dict[str, Any]:
            reserved = max(ZERO, Decimal(lot.reserved_quantity) - outstanding)
            values: Dict[str, Any] = {"reserved_quantity": reserved}
            if lot.status == LotStatus.RESERVED and reserved < Decimal(lot.remaining_quantity):
                values["status"] = LotStatus.AVAILABLE
            return values

        lot = await self._update_lot(
            reservation.batch_lot_id,
            plan,
            lambda: InvalidStateTransitionError("Lot changed concurrently; cancellation not applied"),
        )
        reservation.status = ReservationStatus.CANCELLED
        self._log_txn(
            lot,
            TransactionType.UNRESERVE,
            held_quantity=outstanding,
            ref_type="reservation",
            ref_id=str(reservation.id),
        )
        await self.session.commit()
        return reservation

    # PUBLIC_INTERFACE
    async def consume(
        self,
        lot_id: UUID,
        quantity: Decimal,
        *,
        reservation_id: Optional[UUID] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> BatchLot:
        """
        Consume `quantity` from a lot.

        Without a reservation only the free (unheld) quantity can be taken; with
        one, its outstanding hold is drawn down first. The lot becomes
        `consumed` when nothing remains.
        Raises InsufficientQuantityError when the lot cannot cover the request,
        also after a lost concurrent update has been retried.
        """
        lot = await self._consume(
            lot_id,
            quantity,
            reservation_id=reservation_id,
            reference_type=reference_type,
            reference_id=reference_id,
        )
        await self.session.commit()
        return lot

    # PUBLIC_INTERFACE
    async def quarantine(self, lot_id: UUID, reason: str, hold_status: LotStatus = LotStatus.QUARANTINE) -> BatchLot:
        """Move an available lot into a quality hold (quarantine, on_hold or in_qa)."""
        if hold_status not in HOLD_STATUSES:
            raise ValidationError(f"{hold_status.value} is not a hold status")

        def plan(lot: BatchLot) -> Dict[str, Any]:
            ensure_transition(lot, hold_status)
            return {
                "status": hold_status,
                "hold_reason": reason,
                "quality_status": _HOLD_QUALITY_STATUS[hold_status],
            }

        lot = await self._update_lot(lot_id, plan, self._status_conflict(lot_id))
        self._log_txn(lot, TransactionType.QUARANTINE, held_quantity=lot.remaining_quantity, reason=reason)
        await self.session.commit()
        logger.info("Lot %s placed on %s: %s", lot.batch_number, hold_status.value, reason)
        return lot

    # PUBLIC_INTERFACE
    async def release(self, lot_id: UUID) -> BatchLot:
        """Return a held lot to `available`."""

        def plan(lot: BatchLot) -> Dict[str, Any]:
            current = ensure_transition(lot, LotStatus.AVAILABLE)
            if current not in HOLD_STATUSES:
                raise InvalidStateTransitionError(
                    f"Lot {lot.batch_number} is {current.value}, not on hold",
                    details={"lot_id": str(lot.id), "status": current.value},
                )
            return {"status": LotStatus.AVAILABLE, "hold_reason": None, "quality_status": "passed"}

        lot = await self._update_lot(lot_id, plan, self._status_conflict(lot_id))
        self._log_txn(lot, TransactionType.RELEASE, held_quantity=lot.remaining_quantity)
        await self.session.commit()
        return lot

    # PUBLIC_INTERFACE
    async def reject(self, lot_id: UUID, reason: str) -> BatchLot:
        """Reject a held lot; its remaining stock is written off."""

        def plan(lot: BatchLot) -> Dict[str, Any]:
            ensure_transition(lot, LotStatus.REJECTED)
            return {
                "status": LotStatus.REJECTED,
                "reserved_quantity": ZERO,
                "hold_reason": reason,
                "quality_status": "failed",
            }

        lot = await self._write_off(lot_id, plan, TransactionType.REJECT, reason)
        logger.info("Lot %s rejected: %s", lot.batch_number, reason)
        return lot

    # PUBLIC_INTERFACE
    async def recall(self, lot_id: UUID, reason: str) -> BatchLot:
        """Administratively recall a lot from any non-terminal state."""

        def plan(lot: BatchLot) -> Dict[str, Any]:
            ensure_transition(lot, LotStatus.RECALLED)
            return {"status": LotStatus.RECALLED, "reserved_quantity": ZERO, "hold_reason": reason}

        lot = await self._write_off(lot_id, plan, TransactionType.RECALL, reason)
        logger.warning("Lot %s recalled: %s", lot.batch_number, reason)
        return lot

    # PUBLIC_INTERFACE
    async def select_lots_for_consumption(
        self,
        material_id: UUID,
        quantity: Decimal,
        policy: PickingPolicy = PickingPolicy.FEFO,
        as_of: Optional[date] = None,
    ) -> List[LotAllocation]:
        """
        Plan which lots cover `quantity` under a picking policy.

        Only `available` lots that are not past their expiration date on `as_of`
        take part, and each contributes at most its free quantity.
        FEFO orders by soonest expiration (lots without one last), then
        earliest receipt.
        Raises InsufficientStockError when eligible lots fall short.
        """
        quantity = self._positive(quantity)
        material = await self._get_material(material_id)
        as_of = as_of or date.today()

        candidates = await self.lots.list_material_lots(
            material.id, statuses=[LotStatus.AVAILABLE], received_on_or_before=as_of
        )
        eligible = [
            lot
            for lot in candidates
            if effective_status(lot, as_of) == LotStatus.AVAILABLE and free_quantity(lot) > 0
        ]
        total = sum((free_quantity(lot) for lot in eligible), ZERO)
        if total < quantity:
            raise InsufficientStockError(
                f"Only {total} {material.uom} of {material.code} available, {quantity} requested",
                details={"material_id": str(material.id), "available": str(total), "requested": str(quantity)},
            )

        allocations: List[LotAllocation] = []
        needed = quantity
        for lot in _sort_for_policy(eligible, policy):
            if needed <= 0:
                break
            take = min(free_quantity(lot), needed)
            allocations.append(LotAllocation(lot=lot, quantity=take))
            needed -= take
        return allocations

    # PUBLIC_INTERFACE
    async def issue_material(
        self,
        material_id: UUID,
        quantity: Decimal,
        policy: PickingPolicy = PickingPolicy.FEFO,
        *,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> List[LotAllocation]:
        """Select lots under `policy` and consume every allocation in one transaction."""
        allocations = await self.select_lots_for_consumption(material_id, quantity, policy)
        try:
            for allocation in allocations:
                allocation.lot = await self._consume(
                    allocation.lot.id,
                    allocation.quantity,
                    reference_type=reference_type,
                    reference_id=reference_id,
                )
        except MaterialsError:
            await self.session.rollback()
            raise
        await self.session.commit()
        return allocations

    # PUBLIC_INTERFACE
    async def split_lot(
        self,
        lot_id: UUID,
        quantity: Decimal,
        *,
        batch_number: Optional[str] = None,
        location_id: Optional[UUID] = None,
    ) -> BatchLot:
        """
        Repack `quantity` of an available lot into a new child lot that keeps
        the parent's material, cost and dates and records `parent_lot_id`.
        """
        quantity = self._positive(quantity)
        if location_id is not None and await self.locations.get_location(location_id) is None:
            raise NotFoundError.for_entity("Location", location_id)
        if batch_number is not None and await self.lots.get_by_batch_number(batch_number) is not None:
            raise ValidationError(f"Batch number '{batch_number}' already exists", details={"batch_number": batch_number})

        def plan(lot: BatchLot) -> Dict[str, Any]:
            current = effective_status(lot)
            if current != LotStatus.AVAILABLE:
                raise InvalidStateTransitionError(
                    f"Only available lots can be split; lot is {current.value}",
                    details={"lot_id": str(lot.id), "status": current.value},
                )
            free = free_quantity(lot)
            if quantity > free:
                raise InsufficientQuantityError(
                    f"Lot {lot.batch_number} has {free} free, {quantity} requested",
                    details={"lot_id": str(lot.id), "free": str(free), "requested": str(quantity)},
                )
            remaining = Decimal(lot.remaining_quantity) - quantity
            if remaining == 0:
                status = LotStatus.CONSUMED
            elif Decimal(lot.reserved_quantity) >= remaining:
                status = LotStatus.RESERVED
            else:
                status = LotStatus.AVAILABLE
            ensure_transition(lot, status)
            return {"remaining_quantity": remaining, "status": status}

        parent = await self._update_lot(lot_id, plan, self._quantity_conflict(lot_id, quantity))
        child = BatchLot(
            batch_number=batch_number or f"{parent.batch_number}-S{uuid4().hex[:4].upper()}",
            material_id=parent.material_id,
            quantity=quantity,
            remaining_quantity=quantity,
            reserved_quantity=ZERO,
            uom=parent.uom,
            status=LotStatus.AVAILABLE,
            manufacture_date=parent.manufacture_date,
            expiration_date=parent.expiration_date,
            received_date=parent.received_date,
            unit_cost=parent.unit_cost,
            location_id=location_id or parent.location_id,
            vendor_id=parent.vendor_id,
            parent_lot_id=parent.id,
            quality_status=parent.quality_status,
            version=1,
        )
        await self.lots.add(child)
        await self.lots.flush()
        self._log_txn(parent, TransactionType.SPLIT_OUT, quantity=-quantity, unit_cost=parent.unit_cost,
                      ref_type="lot", ref_id=str(child.id))
        self._log_txn(child, TransactionType.SPLIT_IN, quantity=quantity, unit_cost=child.unit_cost,
                      ref_type="lot", ref_id=str(parent.id))
        await self.session.commit()
        return child

    async def _consume(
        self,
        lot_id: UUID,
        quantity: Decimal,
        *,
        reservation_id: Optional[UUID] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> BatchLot:
        quantity = self._positive(quantity)
        reservation: Optional[MaterialReservation] = None
        outstanding = ZERO
        if reservation_id is not None:
            reservation = await self.reservations.get_reservation(reservation_id)
            if reservation is None:
                raise NotFoundError.for_entity("Reservation", reservation_id)
            if reservation.batch_lot_id != lot_id:
                raise ValidationError("Reservation belongs to a different lot", details={"reservation_id": str(reservation_id)})
            if reservation.status != ReservationStatus.ACTIVE:
                raise InvalidStateTransitionError(
                    f"Reservation is {reservation.status.value}", details={"reservation_id": str(reservation_id)}
                )
            outstanding = Decimal(reservation.quantity) - Decimal(reservation.fulfilled_quantity)
        from_hold = min(quantity, outstanding)

        def plan(lot: BatchLot) -> Dict[str, Any]:
            ensure_transition(lot, LotStatus.CONSUMED)
            remaining = Decimal(lot.remaining_quantity)
            reserved = Decimal(lot.reserved_quantity)
            if quantity > remaining or quantity - from_hold > remaining - reserved:
                raise InsufficientQuantityError(
                    f"Lot {lot.batch_number} cannot supply {quantity} (remaining {remaining}, held {reserved})",
                    details={
                        "lot_id": str(lot.id),
                        "remaining": str(remaining),
                        "reserved": str(reserved),
                        "requested": str(quantity),
                    },
                )
            new_remaining = remaining - quantity
            new_reserved = min(reserved - from_hold, new_remaining)
            if new_remaining == 0:
                status = LotStatus.CONSUMED
            elif new_reserved >= new_remaining:
                status = LotStatus.RESERVED
            else:
                status = LotStatus.AVAILABLE
            ensure_transition(lot, status)
            return {"remaining_quantity": new_remaining, "reserved_quantity": new_reserved, "status": status}

        lot = await self._update_lot(lot_id, plan, self._quantity_conflict(lot_id, quantity))

        if reservation is not None:
            reservation.fulfilled_quantity = Decimal(reservation.fulfilled_quantity) + from_hold
            if reservation.fulfilled_quantity >= Decimal(reservation.quantity):
                reservation.status = ReservationStatus.FULFILLED
        self._log_txn(
            lot,
            TransactionType.CONSUME,
            quantity=-quantity,
            held_quantity=from_hold,
            unit_cost=lot.unit_cost,
            ref_type="reservation" if reservation is not None else reference_type,
            ref_id=str(reservation.id) if reservation is not None else reference_id,
        )
        await self.txns.flush()
        return lot

    async def _write_off(
        self, lot_id: UUID, plan: Callable[[BatchLot], Dict[str, Any]], txn_type: TransactionType, reason: str
    ) -> BatchLot:
        lot = await self._update_lot(lot_id, plan, self._status_conflict(lot_id))
        for reservation in await self.reservations.list_active_for_lot(lot.id):
            reservation.status = ReservationStatus.CANCELLED
        self._log_txn(
            lot,
            txn_type,
            quantity=-Decimal(lot.remaining_quantity),
            unit_cost=lot.unit_cost,
            reason=reason,
        )
        await self.session.commit()
        return lot

    async def _update_lot(
        self,
        lot_id: UUID,
        plan: Callable[[BatchLot], Dict[str, Any]],
        on_conflict: Callable[[], MaterialsError],
    ) -> BatchLot:
        """
        Read the lot, let `plan` validate and compute the new column values, and
        write them only if nobody else changed the lot in between. Domain errors
        raised by `plan` propagate unchanged.
        """
        attempts = self.settings.LOT_UPDATE_MAX_ATTEMPTS
        for attempt in range(1, attempts + 1):
            lot = await self.lots.get_lot(lot_id, fresh=True)
            if lot is None:
                raise NotFoundError.for_entity("Lot", lot_id)
            values = plan(lot)
            if await self.lots.compare_and_set(lot.id, lot.version, values):
                updated = await self.lots.get_lot(lot_id, fresh=True)
                if updated is None:
                    raise NotFoundError.for_entity("Lot", lot_id)
                return updated
            logger.info("Lot %s changed concurrently (attempt %d/%d)", lot.batch_number, attempt, attempts)
        raise on_conflict()

    @staticmethod
    def _quantity_conflict(lot_id: UUID, quantity: Decimal) -> Callable[[], MaterialsError]:
        return lambda: InsufficientQuantityError(
            "Lot kept changing under concurrent updates; request not applied",
            details={"lot_id": str(lot_id), "requested": str(quantity)},
        )

    @staticmethod
    def _status_conflict(lot_id: UUID) -> Callable[[], MaterialsError]:
        return lambda: InvalidStateTransitionError(
            "Lot kept changing under concurrent updates; transition not applied", details={"lot_id": str(lot_id)}
        )

    def _log_txn(
        self,
        lot: BatchLot,
        txn_type: TransactionType,
        *,
        quantity: Decimal = ZERO,
        held_quantity: Decimal = ZERO,
        unit_cost: Optional[Decimal] = None,
        txn_date: Optional[date] = None,
        reason: Optional[str] = None,
        ref_type: Optional[str] = None,
        ref_id: Optional[str] = None,
    ) -> InventoryTransaction:
        txn = InventoryTransaction(
            lot_id=lot.id,
            material_id=lot.material_id,
            txn_type=txn_type,
            txn_date=txn_date or date.today(),
            quantity=quantity,
            held_quantity=held_quantity,
            unit_cost=unit_cost,
            location_id=lot.location_id,
            reason=reason,
            ref_type=ref_type,
            ref_id=ref_id,
        )
        self.session.add(txn)
        return txn

    async def _get_material(self, material_id: UUID) -> Material:
        material = await self.materials.get_material(material_id)
        if material is None:
            raise NotFoundError.for_entity("Material", material_id)
        return material

    @staticmethod
    def _positive(quantity: Decimal) -> Decimal:
        quantity = Decimal(quantity)
        if quantity <= 0:
            raise ValidationError("quantity must be > 0", details={"quantity": str(quantity)})
        return quantity

    @staticmethod
    def _new_batch_number(material: Material, received: date) -> str:
        return f"{material.code}-{received:%Y%m%d}-{uuid4().hex[:6].upper()}"
