from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from src.db.models.enums import DemandSourceType, MrpRunStatus, RequirementStatus


class DemandCreate(BaseModel):
    """Demand record supplied by the sales/production/forecast feeds."""
    material_id: UUID
    quantity: Decimal = Field(..., gt=0)
    need_date: date
    source_type: DemandSourceType = Field(DemandSourceType.MANUAL)
    source_id: Optional[str] = Field(None)
    priority: int = Field(5, ge=1, le=10)
    notes: Optional[str] = Field(None)


class DemandRead(BaseModel):
    id: UUID
    material_id: UUID
    quantity: float
    need_date: date
    source_type: DemandSourceType
    source_id: Optional[str] = Field(None)
    priority: int
    notes: Optional[str] = Field(None)
    created_at: datetime

    class Config:
        from_attributes = True


class MrpRunRequest(BaseModel):
    """Parameters of a planning run."""
    run_name: Optional[str] = Field(None)
    run_date: Optional[date] = Field(None, description="Run start date; defaults to today")
    horizon_start: Optional[date] = Field(None, description="Defaults to the run date")
    horizon_end: Optional[date] = Field(None, description="Defaults to start + configured horizon")
    material_ids: Optional[List[UUID]] = Field(None, description="Restrict the run to these materials")
    consider_safety_stock: bool = Field(True)
    consider_current_inventory: bool = Field(True)
    consider_lead_times: bool = Field(True)
    consider_batch_sizes: bool = Field(True)
    simulation_mode: bool = Field(False, description="What-if run: requirements are kept out of the live plan")

    @model_validator(mode="after")
    def _check_horizon(self) -> "MrpRunRequest":
        if self.horizon_start and self.horizon_end and self.horizon_end < self.horizon_start:
            raise ValueError("horizon_end must not be before horizon_start")
        return self


class MrpRunRead(BaseModel):
    id: UUID
    run_name: str
    run_date: date
    horizon_start: date
    horizon_end: date
    status: MrpRunStatus
    consider_safety_stock: bool
    consider_current_inventory: bool
    consider_lead_times: bool
    consider_batch_sizes: bool
    simulation_mode: bool
    started_at: Optional[datetime] = Field(None)
    completed_at: Optional[datetime] = Field(None)
    materials_planned: int
    materials_skipped: int
    materials_failed: int
    requirements_created: int
    log_details: Optional[str] = Field(None)

    class Config:
        from_attributes = True


class RequirementRead(BaseModel):
    id: UUID
    mrp_run_id: UUID
    material_id: UUID
    requirement_date: date
    required_quantity: float
    available_quantity: float
    net_requirement: float
    planned_order_quantity: float
    planned_release_date: date
    uom: str
    source_type: Optional[str] = Field(None)
    source_id: Optional[str] = Field(None)
    priority: int
    status: RequirementStatus
    lead_time_days: int
    safety_stock_level: float
    economic_order_quantity: Optional[float] = Field(None)
    is_late: bool
    action_message: Optional[str] = Field(None)
    estimated_unit_cost: Optional[float] = Field(None)
    estimated_cost: Optional[float] = Field(None)
    converted_order_type: Optional[str] = Field(None)
    converted_order_id: Optional[str] = Field(None)
    is_current: bool

    class Config:
        from_attributes = True


class RequirementConvert(BaseModel):
    """Link a requirement to the purchase/production order created from it."""
    order_type: str = Field(..., pattern="^(purchase|production)$")
    order_id: str = Field(..., min_length=1)
