from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, TimestampMixin, UUIDPkMixin
from src.db.models.enums import (
    DemandSourceType,
    MrpRunStatus,
    RequirementStatus,
    enum_column,
)


class MaterialDemand(UUIDPkMixin, TimestampMixin, Base):
    """Gross demand fed by forecasts and firm sales/production orders."""
    __tablename__ = "material_demands"
    __table_args__ = (
        Index("ix_material_demands_material_need_date", "material_id", "need_date"),
    )

    material_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("materials.id", ondelete="CASCADE"), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    need_date: Mapped[date] = mapped_column(Date, nullable=False)
    source_type: Mapped[DemandSourceType] = mapped_column(
        enum_column(DemandSourceType, "demand_source_type"), nullable=False
    )
    source_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class MrpRun(UUIDPkMixin, TimestampMixin, Base):
    """Header of a single planning run over a horizon."""
    __tablename__ = "mrp_runs"

    run_name: Mapped[str] = mapped_column(Text, nullable=False)
    run_date: Mapped[date] = mapped_column(Date, nullable=False)
    horizon_start: Mapped[date] = mapped_column(Date, nullable=False)
    horizon_end: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[MrpRunStatus] = mapped_column(
        enum_column(MrpRunStatus, "mrp_run_status"), nullable=False, default=MrpRunStatus.IN_PROGRESS
    )
    consider_safety_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    consider_current_inventory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    consider_lead_times: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    consider_batch_sizes: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    simulation_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    materials_planned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    materials_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    materials_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    requirements_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    log_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class MaterialRequirement(UUIDPkMixin, TimestampMixin, Base):
    """Net requirement and planned order for one material and due-date bucket."""
    __tablename__ = "material_requirements"
    __table_args__ = (
        Index("ix_material_requirements_material_current", "material_id", "is_current"),
    )

    mrp_run_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("mrp_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    material_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("materials.id", ondelete="CASCADE"), nullable=False
    )
    requirement_date: Mapped[date] = mapped_column(Date, nullable=False)
    required_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    available_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    net_requirement: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    planned_order_quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    planned_release_date: Mapped[date] = mapped_column(Date, nullable=False)
    uom: Mapped[str] = mapped_column(Text, nullable=False)
    source_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    status: Mapped[RequirementStatus] = mapped_column(
        enum_column(RequirementStatus, "requirement_status"), nullable=False, default=RequirementStatus.PLANNED
    )
    lead_time_days: Mapped[int] = mapped_column(Integer, nullable=False)
    safety_stock_level: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    economic_order_quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)
    is_late: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    action_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    estimated_unit_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)
    estimated_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)
    converted_order_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # purchase/production
    converted_order_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # False once a later run for the same material has superseded this record.
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
