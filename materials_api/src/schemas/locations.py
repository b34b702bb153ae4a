from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from src.db.models.enums import LocationType


class LocationRead(BaseModel):
    """Read model for a storage location."""
    id: UUID = Field(..., description="Location ID")
    code: str = Field(..., description="Location code")
    name: str = Field(..., description="Location name")
    type: LocationType = Field(..., description="Location type")
    parent_id: Optional[UUID] = Field(None, description="Parent location ID")
    capacity: Optional[float] = Field(None, description="Capacity in capacity_unit")
    capacity_unit: Optional[str] = Field(None)
    is_active: bool = Field(..., description="Active flag")
    created_at: datetime = Field(..., description="Creation timestamp (UTC)")
    updated_at: datetime = Field(..., description="Last update timestamp (UTC)")

    class Config:
        from_attributes = True


class LocationCreate(BaseModel):
    """Create location payload."""
    id: Optional[UUID] = Field(None, description="Client-assigned id (optional)")
    code: str = Field(..., min_length=1, description="Unique location code")
    name: str = Field(..., min_length=1)
    type: LocationType = Field(..., description="Location type")
    parent_id: Optional[UUID] = Field(None, description="Parent location ID")
    capacity: Optional[Decimal] = Field(None, ge=0)
    capacity_unit: Optional[str] = Field(None)
    is_active: bool = Field(True)


class LocationMove(BaseModel):
    """Re-parent a location."""
    parent_id: Optional[UUID] = Field(None, description="New parent (null makes it a root)")


class LocationUtilization(BaseModel):
    """Capacity consumed by lots stored in a location subtree."""
    location_id: UUID
    used: float = Field(..., description="Quantity held by stock-bearing lots")
    capacity: Optional[float] = Field(None, description="Own capacity, or summed descendant capacity")
    ratio: Optional[float] = Field(None, description="used / capacity, null when capacity unknown")
    locations_counted: int = Field(..., description="Nodes included in the subtree")
