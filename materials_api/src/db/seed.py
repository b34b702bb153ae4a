"""
Database seeding utilities for minimal reference data.

Seeds:
- A warehouse with one zone and two bins
- Sample materials (RAW-AL-ROD valued by moving average, PKG-BOX-S by standard cost)
- Two received lots of RAW-AL-ROD at different costs
- A small demand profile for the next two weeks

Seeding goes through the domain services so receipts write ledger entries and
valuations exactly as live traffic does. Existing rows (by code) are left alone.

Usage:
  python -m src.db.run_migrations upgrade head
  python -m src.db.seed
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.enums import DemandSourceType, LocationType, MaterialType, ValuationMethod
from src.db.session import get_async_session
from src.repositories.locations import LocationRepository
from src.repositories.materials import MaterialRepository
from src.schemas.inventory import LotReceive
from src.schemas.locations import LocationCreate
from src.schemas.materials import MaterialUpsert
from src.schemas.planning import DemandCreate
from src.services.catalog import CatalogService
from src.services.lots import LotService
from src.services.mrp import MrpService
from src.services.storage import StorageService

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
async def seed_all() -> None:
    """
    Seed the database with minimal reference data.

    This function:
      - Creates a small storage hierarchy
      - Upserts two sample materials
      - Receives opening stock and records demand when the material has no lots yet
    """
    # Create a standalone session via dependency to reuse engine configuration.
    async for session in get_async_session():
        locations = await _seed_locations(session)
        materials = await _seed_materials(session, locations)
        await _seed_stock_and_demand(session, materials["RAW-AL-ROD"], locations["WH1-A-01"])


async def _seed_locations(session: AsyncSession) -> Dict[str, UUID]:
    """
    Create WH1 > WH1-A > WH1-A-01/WH1-A-02 unless present.

    Returns:
      dict mapping location code to id
    """
    repo = LocationRepository(session)
    service = StorageService(session)
    tree = [
        ("WH1", "Main Warehouse", LocationType.WAREHOUSE, None, None),
        ("WH1-A", "Zone A", LocationType.ZONE, "WH1", None),
        ("WH1-A-01", "Bin A-01", LocationType.BIN, "WH1-A", Decimal("500")),
        ("WH1-A-02", "Bin A-02", LocationType.BIN, "WH1-A", Decimal("500")),
    ]
    ids: Dict[str, UUID] = {}
    for code, name, loc_type, parent_code, capacity in tree:
        existing = await repo.get_by_code(code)
        if existing is not None:
            ids[code] = existing.id
            continue
        created = await service.create_location(
            LocationCreate(
                code=code,
                name=name,
                type=loc_type,
                parent_id=ids.get(parent_code) if parent_code else None,
                capacity=capacity,
                capacity_unit="KG" if capacity is not None else None,
            )
        )
        ids[code] = created.id
    return ids


async def _seed_materials(session: AsyncSession, locations: Dict[str, UUID]) -> Dict[str, UUID]:
    """
    Upsert sample materials.

    Returns:
      dict mapping material code to id
    """
    catalog = CatalogService(session)
    samples: List[MaterialUpsert] = [
        MaterialUpsert(
            code="RAW-AL-ROD",
            name="Aluminum Rod Raw",
            material_type=MaterialType.RAW,
            uom="KG",
            price=Decimal("11.50"),
            lead_time_days=5,
            safety_stock=Decimal("20"),
            economic_order_quantity=Decimal("100"),
            order_multiple=Decimal("25"),
            shelf_life_days=365,
            default_location_id=locations["WH1-A-01"],
            default_valuation_method=ValuationMethod.MOVING_AVERAGE,
        ),
        MaterialUpsert(
            code="PKG-BOX-S",
            name="Shipping Box Small",
            material_type=MaterialType.PACKAGING,
            uom="EA",
            price=Decimal("0.40"),
            lead_time_days=3,
            order_multiple=Decimal("50"),
            default_location_id=locations["WH1-A-02"],
            default_valuation_method=ValuationMethod.STANDARD_COST,
        ),
    ]
    ids: Dict[str, UUID] = {}
    for payload in samples:
        material = await catalog.upsert_material(payload)
        ids[material.code] = material.id
    return ids


async def _seed_stock_and_demand(session: AsyncSession, material_id: UUID, location_id: Optional[UUID]) -> None:
    """Receive two lots and record demand, only for a material without any lots."""
    lots = LotService(session)
    if await lots.list_lots(material_id=material_id, limit=1):
        logger.info("Stock already present for %s; skipping lot/demand seed", material_id)
        return

    today = date.today()
    for days_ago, qty, cost in ((10, Decimal("60"), Decimal("10.00")), (3, Decimal("40"), Decimal("12.00"))):
        await lots.receive_lot(
            LotReceive(
                material_id=material_id,
                quantity=qty,
                unit_cost=cost,
                location_id=location_id,
                received_date=today - timedelta(days=days_ago),
            )
        )

    mrp = MrpService(session)
    for offset, qty, source in (
        (4, Decimal("50"), DemandSourceType.SALES_ORDER),
        (9, Decimal("80"), DemandSourceType.PRODUCTION_ORDER),
        (14, Decimal("30"), DemandSourceType.FORECAST),
    ):
        await mrp.record_demand(
            DemandCreate(material_id=material_id, quantity=qty, need_date=today + timedelta(days=offset), source_type=source)
        )


# PUBLIC_INTERFACE
def main() -> None:
    """Entrypoint to run the asynchronous seeding."""
    asyncio.run(seed_all())


if __name__ == "__main__":
    main()
