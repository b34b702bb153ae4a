from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Numeric, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, TimestampMixin, UUIDPkMixin
from src.db.models.enums import ValuationMethod, enum_column


class MaterialValuation(UUIDPkMixin, TimestampMixin, Base):
    """Point-in-time value of a material's on-hand stock under one costing method."""
    __tablename__ = "material_valuations"
    __table_args__ = (
        Index("ix_material_valuations_lookup", "material_id", "method", "is_active"),
    )

    material_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("materials.id", ondelete="CASCADE"), nullable=False
    )
    method: Mapped[ValuationMethod] = mapped_column(enum_column(ValuationMethod, "valuation_method"), nullable=False)
    valuation_date: Mapped[date] = mapped_column(Date, nullable=False)
    unit_value: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    total_value: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    quantity_basis: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    currency: Mapped[str] = mapped_column(Text, nullable=False, default="USD")
    batch_lot_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("batch_lots.id", ondelete="SET NULL"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    previous_unit_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)
    change_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Standard costing only: (actual lot cost - standard price) x remaining, summed.
    variance_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)
