from __future__ import annotations

from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, TimestampMixin, UUIDPkMixin
from src.db.models.enums import MaterialType, ValuationMethod, enum_column


class Material(UUIDPkMixin, TimestampMixin, Base):
    """Material master record with planning and valuation defaults."""
    __tablename__ = "materials"

    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    material_type: Mapped[MaterialType] = mapped_column(enum_column(MaterialType, "material_type"), nullable=False)
    uom: Mapped[str] = mapped_column(Text, nullable=False)  # e.g., EA, KG, L

    # Standard price, also the unit value under standard costing
    price: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(Text, nullable=False, default="USD")

    # Planning parameters
    lead_time_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reorder_point: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)
    economic_order_quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)
    order_multiple: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)
    safety_stock: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False, default=Decimal("0"))
    min_stock: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)
    max_stock: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)

    default_location_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("storage_locations.id", ondelete="SET NULL"), nullable=True
    )
    default_valuation_method: Mapped[ValuationMethod] = mapped_column(
        enum_column(ValuationMethod, "valuation_method"),
        nullable=False,
        default=ValuationMethod.MOVING_AVERAGE,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    is_lot_tracked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    shelf_life_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
