from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from src.db.models.enums import (
    LotStatus,
    PickingPolicy,
    ReservationStatus,
    TransactionType,
)


class LotRead(BaseModel):
    """Read model for a batch/lot."""
    id: UUID = Field(..., description="Lot ID")
    batch_number: str = Field(..., description="Batch number")
    material_id: UUID = Field(..., description="Material ID")
    quantity: float = Field(..., description="Total received quantity")
    remaining_quantity: float = Field(..., description="Unconsumed quantity")
    reserved_quantity: float = Field(..., description="Quantity held by active reservations")
    uom: str
    status: LotStatus = Field(..., description="Stored lifecycle status")
    effective_status: Optional[LotStatus] = Field(
        None, description="Status after the expiration override, as of today"
    )
    manufacture_date: Optional[date] = Field(None)
    expiration_date: Optional[date] = Field(None)
    received_date: date
    unit_cost: float
    location_id: Optional[UUID] = Field(None)
    vendor_id: Optional[UUID] = Field(None)
    parent_lot_id: Optional[UUID] = Field(None)
    quality_status: str
    hold_reason: Optional[str] = Field(None)
    created_at: datetime = Field(..., description="Created timestamp")
    updated_at: datetime = Field(..., description="Updated timestamp")

    class Config:
        from_attributes = True


class LotReceive(BaseModel):
    """Goods receipt creating a new lot."""
    material_id: UUID = Field(..., description="Material received")
    quantity: Decimal = Field(..., description="Received quantity (must be > 0)")
    unit_cost: Decimal = Field(..., ge=0, description="Actual cost per unit")
    location_id: Optional[UUID] = Field(None, description="Defaults to the material's default location")
    vendor_id: Optional[UUID] = Field(None)
    batch_number: Optional[str] = Field(None, description="Generated when omitted")
    received_date: Optional[date] = Field(None, description="Defaults to today")
    manufacture_date: Optional[date] = Field(None)
    expiration_date: Optional[date] = Field(None, description="Defaults to received + shelf life")
    parent_lot_id: Optional[UUID] = Field(None)


class ReserveRequest(BaseModel):
    """Place a hold on part of a lot."""
    quantity: Decimal = Field(..., gt=0)
    reference_type: Optional[str] = Field(None, description="e.g., SalesOrder, ProductionOrder")
    reference_id: Optional[str] = Field(None)


class ConsumeRequest(BaseModel):
    """Consume quantity from a lot."""
    quantity: Decimal = Field(..., gt=0)
    reservation_id: Optional[UUID] = Field(None, description="Reservation fulfilled by this consumption")
    reference_type: Optional[str] = Field(None)
    reference_id: Optional[str] = Field(None)


class HoldRequest(BaseModel):
    """Move a lot into a quality hold."""
    reason: str = Field(..., min_length=1)
    hold_status: LotStatus = Field(LotStatus.QUARANTINE, description="quarantine, on_hold or in_qa")

    @model_validator(mode="after")
    def _check_hold_status(self) -> "HoldRequest":
        if self.hold_status not in (LotStatus.QUARANTINE, LotStatus.ON_HOLD, LotStatus.IN_QA):
            raise ValueError("hold_status must be one of quarantine, on_hold, in_qa")
        return self


class ReasonRequest(BaseModel):
    """Reason attached to a rejection or recall."""
    reason: str = Field(..., min_length=1)


class SplitRequest(BaseModel):
    """Repack part of a lot into a child lot."""
    quantity: Decimal = Field(..., gt=0)
    batch_number: Optional[str] = Field(None)
    location_id: Optional[UUID] = Field(None, description="Defaults to the parent lot's location")


class LotSelectionRequest(BaseModel):
    """Ask which lots would satisfy a quantity under a picking policy."""
    quantity: Decimal = Field(..., gt=0)
    policy: PickingPolicy = Field(PickingPolicy.FEFO)
    as_of: Optional[date] = Field(None, description="Expiration reference date; defaults to today")


class LotAllocationRead(BaseModel):
    """One (lot, quantity) pair of a consumption plan."""
    lot_id: UUID
    batch_number: str
    quantity: float
    received_date: date
    expiration_date: Optional[date] = Field(None)
    unit_cost: float


class ReservationRead(BaseModel):
    """Reservation read model."""
    id: UUID
    material_id: UUID
    batch_lot_id: UUID
    quantity: float
    fulfilled_quantity: float
    reference_type: Optional[str] = Field(None)
    reference_id: Optional[str] = Field(None)
    status: ReservationStatus
    created_at: datetime

    class Config:
        from_attributes = True


class InventoryTransactionRead(BaseModel):
    """Read model for a lot ledger entry."""
    id: UUID = Field(..., description="Transaction ID")
    lot_id: UUID = Field(..., description="Lot ID")
    material_id: UUID
    txn_type: TransactionType
    txn_date: date
    quantity: float = Field(..., description="Signed on-hand change")
    held_quantity: float = Field(..., description="Quantity affected by holds/reservations")
    unit_cost: Optional[float] = Field(None)
    location_id: Optional[UUID] = Field(None)
    reason: Optional[str] = Field(None)
    ref_type: Optional[str] = Field(None, description="Reference type")
    ref_id: Optional[str] = Field(None, description="Reference ID")
    created_at: datetime = Field(..., description="Created timestamp")

    class Config:
        from_attributes = True
