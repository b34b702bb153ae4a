from decimal import Decimal
from uuid import uuid4

import pytest

from src.core.errors import HierarchyViolationError, NotFoundError, ValidationError
from src.db.models.enums import LocationType
from src.schemas.locations import LocationCreate


class TestLocationHierarchy:
    """Creation and re-parenting rules of the storage tree"""

    async def test_warehouse_under_bin_is_rejected(self, storage, bin_a):
        with pytest.raises(HierarchyViolationError):
            await storage.create_location(
                LocationCreate(code="WH2", name="Second", type=LocationType.WAREHOUSE, parent_id=bin_a.id)
            )

    async def test_same_rank_parent_is_rejected(self, storage, bin_a):
        with pytest.raises(HierarchyViolationError):
            await storage.create_location(
                LocationCreate(code="BIN-X", name="Nested bin", type=LocationType.BIN, parent_id=bin_a.id)
            )

    async def test_shelf_under_bin_is_accepted(self, storage, bin_a):
        shelf = await storage.create_location(
            LocationCreate(code="SH-1", name="Shelf 1", type=LocationType.SHELF, parent_id=bin_a.id)
        )
        assert shelf.parent_id == bin_a.id

    async def test_missing_parent(self, storage):
        with pytest.raises(HierarchyViolationError):
            await storage.create_location(
                LocationCreate(code="Z-1", name="Orphan", type=LocationType.ZONE, parent_id=uuid4())
            )

    async def test_duplicate_code(self, storage, warehouse):
        with pytest.raises(ValidationError):
            await storage.create_location(
                LocationCreate(code="WH1", name="Again", type=LocationType.WAREHOUSE)
            )

    async def test_moving_a_node_under_its_descendant_is_rejected(self, storage, warehouse, bin_a):
        with pytest.raises(HierarchyViolationError):
            await storage.move_location(warehouse.id, bin_a.id)
        reloaded = await storage.get_location(warehouse.id)
        assert reloaded.parent_id is None

    async def test_move_to_root(self, storage, bin_a):
        moved = await storage.move_location(bin_a.id, None)
        assert moved.parent_id is None

    async def test_get_unknown_location(self, storage):
        with pytest.raises(NotFoundError):
            await storage.get_location(uuid4())


class TestUtilization:
    """Capacity accounting over a subtree"""

    async def test_rolls_up_bin_capacity_and_stock(self, storage, warehouse, bin_a, receive):
        await receive(50)
        await receive(30)

        result = await storage.compute_utilization(warehouse.id)

        assert result.used == pytest.approx(80.0)
        assert result.capacity == pytest.approx(200.0)
        assert result.ratio == pytest.approx(0.4)
        assert result.locations_counted == 3

    async def test_consumed_stock_frees_capacity(self, storage, bin_a, receive, lots):
        lot = await receive(50)
        await lots.consume(lot.id, Decimal("50"))

        result = await storage.compute_utilization(bin_a.id)

        assert result.used == 0
        assert result.ratio == 0

    async def test_unknown_capacity_gives_no_ratio(self, storage, warehouse):
        result = await storage.compute_utilization(warehouse.id)
        assert result.capacity is None
        assert result.ratio is None
