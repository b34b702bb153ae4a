import math
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from src.core.errors import InsufficientDataError, NotFoundError, ValidationError
from src.db.models.enums import ValuationMethod
from src.schemas.materials import MaterialUpsert
from src.services.valuation import CALCULATORS, ValuationService

DAY_1 = date(2024, 3, 1)


def day(n: int) -> date:
    return DAY_1.replace(day=n)


@pytest.fixture
async def standard_material(catalog):
    return await catalog.upsert_material(
        MaterialUpsert(
            code="STD-1",
            name="Standard costed part",
            price=Decimal("10"),
            default_valuation_method=ValuationMethod.STANDARD_COST,
        )
    )


class TestMovingAverage:
    """Receipts move the running average"""

    async def test_receipt_at_higher_cost(self, valuation, receive, raw_material):
        await receive(100, unit_cost="10", received=day(1))
        await receive(50, unit_cost="13", received=day(2))

        current = await valuation.get_current_value(raw_material.id, ValuationMethod.MOVING_AVERAGE)

        assert current.unit_value == Decimal("11")
        assert current.quantity_basis == Decimal("150")
        assert current.total_value == Decimal("1650")
        assert current.previous_unit_value == Decimal("10")

    async def test_only_latest_record_stays_active(self, valuation, receive, raw_material):
        await receive(100, unit_cost="10", received=day(1))
        await receive(50, unit_cost="13", received=day(2))

        active = await valuation.list_valuations(
            raw_material.id, method=ValuationMethod.MOVING_AVERAGE, active_only=True
        )
        history = await valuation.list_valuations(raw_material.id, method=ValuationMethod.MOVING_AVERAGE)

        assert len(active) == 1
        assert len(history) == 2

    async def test_issues_reduce_basis_not_average(self, valuation, lots, receive, raw_material):
        first = await receive(100, unit_cost="10", received=day(1))
        await receive(50, unit_cost="13", received=day(2))
        await lots.consume(first.id, Decimal("50"))

        record = await valuation.record_valuation(raw_material.id, ValuationMethod.MOVING_AVERAGE)

        assert record.unit_value == Decimal("11")
        assert record.quantity_basis == Decimal("100")

    async def test_backdated_receipt_after_full_issue(self, valuation, lots, receive, raw_material):
        first = await receive(100, unit_cost="10", received=day(1))
        await lots.consume(first.id, Decimal("100"))
        await receive(50, unit_cost="13", received=day(2))

        current = await valuation.get_current_value(raw_material.id, ValuationMethod.MOVING_AVERAGE)

        assert current.unit_value == Decimal("13")
        assert current.quantity_basis == Decimal("50")
        assert current.total_value == Decimal("650")

    async def test_split_does_not_move_average(self, valuation, lots, receive, raw_material):
        lot = await receive(100, unit_cost="10", received=day(1))
        await lots.split_lot(lot.id, Decimal("40"))

        record = await valuation.record_valuation(raw_material.id, ValuationMethod.MOVING_AVERAGE)

        assert record.unit_value == Decimal("10")
        assert record.quantity_basis == Decimal("100")

    async def test_no_receipts_seeds_from_price(self, valuation, raw_material):
        record = await valuation.record_valuation(raw_material.id, ValuationMethod.MOVING_AVERAGE, day(1))
        assert record.unit_value == Decimal("10")
        assert record.quantity_basis == 0


class TestCostLayers:
    """FIFO and LIFO walk lots by receipt date"""

    async def test_fifo_takes_oldest_cost_first(self, valuation, receive, raw_material):
        await receive(10, unit_cost="5", received=day(1))
        await receive(10, unit_cost="7", received=day(2))

        record = await valuation.record_valuation(
            raw_material.id, ValuationMethod.FIFO, day(3), quantity=Decimal("15")
        )

        assert record.unit_value == Decimal("5.666667")
        assert record.quantity_basis == Decimal("15")

    async def test_lifo_takes_newest_cost_first(self, valuation, receive, raw_material):
        await receive(10, unit_cost="5", received=day(1))
        await receive(10, unit_cost="7", received=day(2))

        record = await valuation.record_valuation(
            raw_material.id, ValuationMethod.LIFO, day(3), quantity=Decimal("15")
        )

        assert record.unit_value == Decimal("6.333333")

    async def test_whole_stock_values_alike(self, valuation, receive, raw_material):
        await receive(10, unit_cost="5", received=day(1))
        await receive(10, unit_cost="7", received=day(2))

        fifo = await valuation.record_valuation(raw_material.id, ValuationMethod.FIFO, day(3))
        lifo = await valuation.record_valuation(raw_material.id, ValuationMethod.LIFO, day(3))

        assert fifo.unit_value == lifo.unit_value == Decimal("6")
        assert fifo.quantity_basis == Decimal("20")

    async def test_lots_received_after_as_of_are_ignored(self, valuation, receive, raw_material):
        await receive(10, unit_cost="5", received=day(1))
        await receive(10, unit_cost="7", received=day(5))

        record = await valuation.record_valuation(raw_material.id, ValuationMethod.FIFO, day(3))

        assert record.unit_value == Decimal("5")
        assert record.quantity_basis == Decimal("10")

    async def test_without_lots(self, valuation, raw_material):
        with pytest.raises(InsufficientDataError):
            await valuation.record_valuation(raw_material.id, ValuationMethod.FIFO, day(3))

    async def test_quantity_beyond_on_hand(self, valuation, receive, raw_material):
        await receive(10, unit_cost="5", received=day(1))
        with pytest.raises(InsufficientDataError):
            await valuation.record_valuation(
                raw_material.id, ValuationMethod.LIFO, day(3), quantity=Decimal("11")
            )

    async def test_non_positive_quantity(self, valuation, receive, raw_material):
        await receive(10, unit_cost="5", received=day(1))
        with pytest.raises(ValidationError):
            await valuation.record_valuation(
                raw_material.id, ValuationMethod.FIFO, day(3), quantity=Decimal("0")
            )


class TestStandardCost:
    """Fixed standard price with variance against actual lot cost"""

    async def test_records_variance(self, valuation, receive, standard_material):
        await receive(10, unit_cost="12", received=day(1), material=standard_material)
        await receive(5, unit_cost="9", received=day(2), material=standard_material)

        record = await valuation.record_valuation(standard_material.id, ValuationMethod.STANDARD_COST, day(3))

        assert record.unit_value == Decimal("10")
        assert record.quantity_basis == Decimal("15")
        assert record.total_value == Decimal("150")
        assert record.variance_amount == Decimal("15")


class TestBatchSpecific:
    """Actual cost of one identified lot"""

    async def test_values_the_given_lot(self, valuation, receive, raw_material):
        await receive(10, unit_cost="5", received=day(1))
        lot = await receive(8, unit_cost="6.5", received=day(2))

        record = await valuation.record_valuation(
            raw_material.id, ValuationMethod.BATCH_SPECIFIC, day(3), batch_lot_id=lot.id
        )

        assert record.batch_lot_id == lot.id
        assert record.unit_value == Decimal("6.5")
        assert record.total_value == Decimal("52")

    async def test_requires_lot_id(self, valuation, receive, raw_material):
        await receive(10, unit_cost="5", received=day(1))
        with pytest.raises(ValidationError):
            await valuation.record_valuation(raw_material.id, ValuationMethod.BATCH_SPECIFIC, day(3))

    async def test_without_any_lot(self, valuation, raw_material):
        with pytest.raises(InsufficientDataError):
            await valuation.record_valuation(raw_material.id, ValuationMethod.BATCH_SPECIFIC, day(3))

    async def test_lot_of_another_material(self, valuation, receive, raw_material, standard_material):
        foreign = await receive(5, unit_cost="9", received=day(1), material=standard_material)
        with pytest.raises(ValidationError):
            await valuation.record_valuation(
                raw_material.id, ValuationMethod.BATCH_SPECIFIC, day(3), batch_lot_id=foreign.id
            )

    async def test_unknown_lot(self, valuation, raw_material):
        with pytest.raises(NotFoundError):
            await valuation.record_valuation(
                raw_material.id, ValuationMethod.BATCH_SPECIFIC, day(3), batch_lot_id=uuid4()
            )


class TestValuationRecords:
    """Properties shared by every method"""

    @pytest.mark.parametrize("method", list(ValuationMethod))
    async def test_total_matches_unit_times_basis(self, method, valuation, receive, raw_material):
        await receive(7, unit_cost="3.333333", received=day(1))
        lot = await receive(11, unit_cost="4.1", received=day(2))

        record = await valuation.record_valuation(
            raw_material.id,
            method,
            day(3),
            batch_lot_id=lot.id if method == ValuationMethod.BATCH_SPECIFIC else None,
        )

        assert math.isclose(
            float(record.total_value),
            float(record.unit_value * record.quantity_basis),
            rel_tol=1e-6,
        )

    async def test_unknown_material(self, valuation):
        with pytest.raises(NotFoundError):
            await valuation.record_valuation(uuid4(), ValuationMethod.FIFO)

    async def test_no_active_valuation(self, valuation, standard_material):
        with pytest.raises(NotFoundError):
            await valuation.get_current_value(standard_material.id, ValuationMethod.FIFO)

    def test_every_method_has_a_calculator(self):
        assert set(CALCULATORS) == set(ValuationMethod)
        for name in CALCULATORS.values():
            assert callable(getattr(ValuationService, name))
