"""
Shared fixtures: a fresh SQLite database per test, services bound to it, and
an in-process HTTP client for the FastAPI app.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine

from src.core.deps import get_db_session, get_settings_dep
from src.core.settings import AppSettings
from src.db.base import Base
from src.db.models.enums import LocationType, MaterialType, ValuationMethod
from src.db.session import make_session_factory
from src.schemas.inventory import LotReceive
from src.schemas.locations import LocationCreate
from src.schemas.materials import MaterialUpsert
from src.services.catalog import CatalogService
from src.services.lots import LotService
from src.services.mrp import MrpService
from src.services.storage import StorageService
from src.services.valuation import ValuationService

DAY_1 = date(2024, 3, 1)


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'materials.db'}")

    # pysqlite's implicit transaction handling breaks SAVEPOINT; take over BEGIN.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        RUN_MIGRATIONS_ON_STARTUP=False,
        AUTO_SEED=False,
        DEFAULT_CURRENCY="USD",
        LOT_UPDATE_MAX_ATTEMPTS=3,
        MRP_DEFAULT_HORIZON_DAYS=30,
        MRP_ELEVATED_PRIORITY=1,
    )


@pytest.fixture
def storage(session, settings) -> StorageService:
    return StorageService(session, settings)


@pytest.fixture
def catalog(session, settings) -> CatalogService:
    return CatalogService(session, settings)


@pytest.fixture
def lots(session, settings) -> LotService:
    return LotService(session, settings)


@pytest.fixture
def valuation(session, settings) -> ValuationService:
    return ValuationService(session, settings)


@pytest.fixture
def mrp(session, settings) -> MrpService:
    return MrpService(session, settings)


@pytest.fixture
async def warehouse(storage):
    return await storage.create_location(
        LocationCreate(code="WH1", name="Main Warehouse", type=LocationType.WAREHOUSE)
    )


@pytest.fixture
async def bin_a(storage, warehouse):
    zone = await storage.create_location(
        LocationCreate(code="WH1-A", name="Zone A", type=LocationType.ZONE, parent_id=warehouse.id)
    )
    return await storage.create_location(
        LocationCreate(
            code="WH1-A-01",
            name="Bin A-01",
            type=LocationType.BIN,
            parent_id=zone.id,
            capacity=Decimal("200"),
            capacity_unit="KG",
        )
    )


@pytest.fixture
async def raw_material(catalog, bin_a):
    """M1 from the planning example: EOQ 100, lead time 5 days, safety stock 20."""
    return await catalog.upsert_material(
        MaterialUpsert(
            code="M1",
            name="Aluminum Rod",
            material_type=MaterialType.RAW,
            uom="KG",
            price=Decimal("10"),
            lead_time_days=5,
            safety_stock=Decimal("20"),
            economic_order_quantity=Decimal("100"),
            default_location_id=bin_a.id,
            default_valuation_method=ValuationMethod.MOVING_AVERAGE,
        )
    )


@pytest.fixture
def receive(lots, raw_material):
    """Receive a lot of `raw_material` (or another material) with compact arguments."""

    async def _receive(quantity, unit_cost="10", received=DAY_1, expiration=None, material=None, **extra):
        return await lots.receive_lot(
            LotReceive(
                material_id=(material or raw_material).id,
                quantity=Decimal(str(quantity)),
                unit_cost=Decimal(str(unit_cost)),
                received_date=received,
                expiration_date=expiration,
                **extra,
            )
        )

    return _receive


@pytest.fixture
async def client(session_factory, settings) -> AsyncGenerator[httpx.AsyncClient, None]:
    from src.api.main import app

    async def _session_override():
        async with session_factory() as session:
            try:
                yield session
            finally:
                if session.in_transaction():
                    await session.rollback()

    app.dependency_overrides[get_db_session] = _session_override
    app.dependency_overrides[get_settings_dep] = lambda: settings
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()
