from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from src.db.models.enums import MaterialType, ValuationMethod


class MaterialRead(BaseModel):
    """Material master read model."""
    id: UUID = Field(..., description="Material ID")
    code: str = Field(..., description="Material code")
    name: str = Field(..., description="Material name")
    description: Optional[str] = Field(None)
    material_type: MaterialType
    uom: str
    price: float = Field(..., description="Standard price")
    currency: str
    lead_time_days: Optional[int] = Field(None)
    reorder_point: Optional[float] = Field(None)
    economic_order_quantity: Optional[float] = Field(None)
    order_multiple: Optional[float] = Field(None)
    safety_stock: float
    min_stock: Optional[float] = Field(None)
    max_stock: Optional[float] = Field(None)
    default_location_id: Optional[UUID] = Field(None)
    default_valuation_method: ValuationMethod
    is_active: bool
    is_lot_tracked: bool
    shelf_life_days: Optional[int] = Field(None)
    created_at: datetime = Field(..., description="Created timestamp")
    updated_at: datetime = Field(..., description="Updated timestamp")

    class Config:
        from_attributes = True


class MaterialUpsert(BaseModel):
    """
    Create-or-update material payload.

    Matched by `id` when given, otherwise by `code`. Cross-field invariants
    (reorder point vs max stock, min vs max) are checked by the catalog service.
    """
    id: Optional[UUID] = Field(None, description="Existing material id to update")
    code: str = Field(..., min_length=1, description="Unique material code")
    name: str = Field(..., min_length=1)
    description: Optional[str] = Field(None)
    material_type: MaterialType = Field(MaterialType.RAW)
    uom: str = Field("EA", min_length=1)
    price: Decimal = Field(Decimal("0"))
    currency: Optional[str] = Field(None, description="Defaults to the configured currency")
    lead_time_days: Optional[int] = Field(None)
    reorder_point: Optional[Decimal] = Field(None)
    economic_order_quantity: Optional[Decimal] = Field(None)
    order_multiple: Optional[Decimal] = Field(None)
    safety_stock: Decimal = Field(Decimal("0"))
    min_stock: Optional[Decimal] = Field(None)
    max_stock: Optional[Decimal] = Field(None)
    default_location_id: Optional[UUID] = Field(None)
    default_valuation_method: ValuationMethod = Field(ValuationMethod.MOVING_AVERAGE)
    is_active: bool = Field(True)
    is_lot_tracked: bool = Field(True)
    shelf_life_days: Optional[int] = Field(None, ge=0)


class ValuationRequest(BaseModel):
    """Parameters for recording a valuation."""
    method: ValuationMethod = Field(..., description="Costing method")
    as_of_date: Optional[date] = Field(None, description="Defaults to today")
    batch_lot_id: Optional[UUID] = Field(None, description="Required for batch_specific")
    quantity: Optional[Decimal] = Field(None, gt=0, description="Quantity to value (FIFO/LIFO); defaults to on-hand")
    reason: Optional[str] = Field(None, description="Change reason stored with the record")


class ValuationRead(BaseModel):
    """Material valuation read model."""
    id: UUID
    material_id: UUID
    method: ValuationMethod
    valuation_date: date
    unit_value: float
    total_value: float
    quantity_basis: float
    currency: str
    batch_lot_id: Optional[UUID] = Field(None)
    is_active: bool
    previous_unit_value: Optional[float] = Field(None)
    change_reason: Optional[str] = Field(None)
    variance_amount: Optional[float] = Field(None)
    created_at: datetime

    class Config:
        from_attributes = True
