from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import NotFoundError, ValidationError
from src.core.settings import AppSettings
from src.db.models.catalog import Material
from src.db.models.enums import MaterialType
from src.repositories.locations import LocationRepository
from src.repositories.materials import MaterialRepository
from src.repositories.valuations import ValuationRepository
from src.schemas.materials import MaterialUpsert
from src.services.base import BaseService

logger = logging.getLogger(__name__)

_UPSERT_FIELDS = (
    "code",
    "name",
    "description",
    "material_type",
    "uom",
    "price",
    "lead_time_days",
    "reorder_point",
    "economic_order_quantity",
    "order_multiple",
    "safety_stock",
    "min_stock",
    "max_stock",
    "default_location_id",
    "default_valuation_method",
    "is_active",
    "is_lot_tracked",
    "shelf_life_days",
)


class CatalogService(BaseService):
    """Material master maintenance."""

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.materials = MaterialRepository(session)
        self.locations = LocationRepository(session)
        self.valuations = ValuationRepository(session)

    # PUBLIC_INTERFACE
    async def get_material(self, material_id: UUID) -> Material:
        """Return a material or raise NotFoundError."""
        material = await self.materials.get_material(material_id)
        if material is None:
            raise NotFoundError.for_entity("Material", material_id)
        return material

    # PUBLIC_INTERFACE
    async def list_materials(
        self,
        *,
        search: Optional[str] = None,
        material_type: Optional[MaterialType] = None,
        is_active: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Material]:
        return await self.materials.list_materials(
            search=search, material_type=material_type, is_active=is_active, limit=limit, offset=offset
        )

    # PUBLIC_INTERFACE
    async def upsert_material(self, payload: MaterialUpsert) -> Material:
        """
        Create or update a material.

        The record is matched by `id` when given, else by `code`. Raises
        ValidationError on a code owned by another material and on any violated
        planning invariant.
        """
        self._validate_parameters(payload)

        if payload.default_location_id is not None:
            if await self.locations.get_location(payload.default_location_id) is None:
                raise ValidationError(
                    "Default location does not exist",
                    details={"default_location_id": str(payload.default_location_id)},
                )

        by_code = await self.materials.get_by_code(payload.code)
        existing: Optional[Material]
        if payload.id is not None:
            existing = await self.materials.get_material(payload.id)
            if by_code is not None and by_code.id != payload.id:
                raise ValidationError(f"Material code '{payload.code}' already exists", details={"code": payload.code})
        else:
            existing = by_code

        values = payload.model_dump(include=set(_UPSERT_FIELDS))
        currency = payload.currency or (existing.currency if existing else self.settings.DEFAULT_CURRENCY)

        if existing is None:
            material = Material(currency=currency, **values)
            if payload.id is not None:
                material.id = payload.id
            await self.materials.add(material)
            action = "Created"
        else:
            material = existing
            for key, value in values.items():
                setattr(material, key, value)
            material.currency = currency
            action = "Updated"

        await self.session.commit()
        logger.info("%s material %s", action, material.code)
        return material

    # PUBLIC_INTERFACE
    async def current_unit_cost(self, material: Material) -> Decimal:
        """Unit value of the active valuation under the default method, else the standard price."""
        active = await self.valuations.get_active(material.id, material.default_valuation_method)
        if active is not None:
            return Decimal(active.unit_value)
        return Decimal(material.price or 0)

    @staticmethod
    def _validate_parameters(payload: MaterialUpsert) -> None:
        errors = []
        if payload.lead_time_days is not None and payload.lead_time_days < 0:
            errors.append("lead_time_days must be >= 0")
        if payload.price < 0:
            errors.append("price must be >= 0")
        if payload.safety_stock < 0:
            errors.append("safety_stock must be >= 0")
        if payload.reorder_point is not None and payload.reorder_point < 0:
            errors.append("reorder_point must be >= 0")
        if payload.economic_order_quantity is not None and payload.economic_order_quantity <= 0:
            errors.append("economic_order_quantity must be > 0")
        if payload.order_multiple is not None and payload.order_multiple <= 0:
            errors.append("order_multiple must be > 0")
        for name in ("min_stock", "max_stock"):
            value = getattr(payload, name)
            if value is not None and value < 0:
                errors.append(f"{name} must be >= 0")
        if payload.max_stock is not None:
            if payload.reorder_point is not None and payload.reorder_point > payload.max_stock:
                errors.append("reorder_point must not exceed max_stock")
            if payload.min_stock is not None and payload.min_stock > payload.max_stock:
                errors.append("min_stock must not exceed max_stock")
        if errors:
            raise ValidationError("Invalid material parameters", details={"errors": errors})
