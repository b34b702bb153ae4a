from __future__ import annotations

from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Numeric, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base, TimestampMixin, UUIDPkMixin
from src.db.models.enums import LocationType, enum_column


class StorageLocation(UUIDPkMixin, TimestampMixin, Base):
    """Node of the storage hierarchy (warehouse, zone, bin, shelf...)."""
    __tablename__ = "storage_locations"

    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[LocationType] = mapped_column(enum_column(LocationType, "location_type"), nullable=False)
    parent_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("storage_locations.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    capacity: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 6), nullable=True)
    capacity_unit: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")

    parent: Mapped[Optional["StorageLocation"]] = relationship(
        "StorageLocation", remote_side="StorageLocation.id", lazy="raise"
    )
