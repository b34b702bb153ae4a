from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, Numeric, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, TimestampMixin, UUIDPkMixin
from src.db.models.enums import (
    LotStatus,
    ReservationStatus,
    TransactionType,
    enum_column,
)


class BatchLot(UUIDPkMixin, TimestampMixin, Base):
    """Traceable quantity of a material received or produced together."""
    __tablename__ = "batch_lots"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="quantity_positive"),
        CheckConstraint("remaining_quantity >= 0", name="remaining_non_negative"),
        CheckConstraint("remaining_quantity <= quantity", name="remaining_within_total"),
        CheckConstraint("reserved_quantity >= 0", name="reserved_non_negative"),
        CheckConstraint("reserved_quantity <= remaining_quantity", name="reserved_within_remaining"),
    )

    batch_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    material_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("materials.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    remaining_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    reserved_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    uom: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[LotStatus] = mapped_column(
        enum_column(LotStatus, "lot_status"), nullable=False, default=LotStatus.AVAILABLE
    )
    manufacture_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expiration_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    received_date: Mapped[date] = mapped_column(Date, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    location_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("storage_locations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    # Vendor directory lives outside this service; referenced by id only.
    vendor_id: Mapped[Optional[UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    parent_lot_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("batch_lots.id", ondelete="SET NULL"), nullable=True
    )
    quality_status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    hold_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Bumped on every quantity/status write; guards the read-check-write cycle.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class MaterialReservation(UUIDPkMixin, TimestampMixin, Base):
    """Hold placed on part of a lot for a downstream order."""
    __tablename__ = "material_reservations"

    material_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("materials.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    batch_lot_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("batch_lots.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    fulfilled_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    reference_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # e.g., SalesOrder/ProductionOrder
    reference_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[ReservationStatus] = mapped_column(
        enum_column(ReservationStatus, "reservation_status"), nullable=False, default=ReservationStatus.ACTIVE
    )


class InventoryTransaction(UUIDPkMixin, TimestampMixin, Base):
    """
    Ledger entry for a lot movement or status change.

    `quantity` is the signed change to on-hand stock (receipts positive, issues
    and write-offs negative, zero for pure status changes); `held_quantity`
    carries the amount affected by reservations and holds.
    """
    __tablename__ = "inventory_transactions"

    lot_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("batch_lots.id", ondelete="CASCADE"), nullable=False, index=True
    )
    material_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("materials.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    txn_type: Mapped[TransactionType] = mapped_column(enum_column(TransactionType, "transaction_type"), nullable=False)
    txn_date: Mapped[date] = mapped_column(Date, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    held_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)
    location_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("storage_locations.id", ondelete="SET NULL"), nullable=True
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ref_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # e.g., reservation/order
    ref_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
