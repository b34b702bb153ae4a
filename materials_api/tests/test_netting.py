from datetime import date
from decimal import Decimal
from types import SimpleNamespace

from src.db.models.enums import DemandSourceType
from src.services.netting import MIXED_SOURCE, PlanningPolicy, bucket_demands, plan_material, size_order

DAY_1 = date(2024, 3, 1)


def day(n: int) -> date:
    return DAY_1.replace(day=n)


def demand(quantity, need_date, source_type=DemandSourceType.SALES_ORDER, source_id=None, priority=5):
    return SimpleNamespace(
        quantity=Decimal(str(quantity)),
        need_date=need_date,
        source_type=source_type,
        source_id=source_id,
        priority=priority,
    )


def plan(demands, available, policy, run_date=DAY_1, elevated_priority=1):
    return plan_material(bucket_demands(demands), Decimal(str(available)), policy, run_date, elevated_priority)


class TestSizeOrder:
    """Lot sizing"""

    def test_nothing_to_order(self):
        assert size_order(Decimal("0"), Decimal("100"), Decimal("10")) == 0

    def test_eoq_covers_net(self):
        assert size_order(Decimal("50"), Decimal("100")) == 100

    def test_net_above_eoq_is_lot_for_lot(self):
        assert size_order(Decimal("130"), Decimal("100")) == 130

    def test_rounds_up_to_multiple(self):
        assert size_order(Decimal("23"), None, Decimal("10")) == 30
        assert size_order(Decimal("130"), Decimal("100"), Decimal("25")) == 150
        assert size_order(Decimal("2.5"), None, Decimal("0.5")) == Decimal("2.5")


class TestPlanMaterial:
    """Netting demand against stock and safety stock"""

    def test_single_bucket_with_eoq_and_lead_time(self):
        policy = PlanningPolicy(
            safety_stock=Decimal("20"), lead_time_days=5, economic_order_quantity=Decimal("100")
        )

        [bucket] = plan([demand(80, day(10), source_id="SO-7")], 50, policy)

        assert bucket.net == 50
        assert bucket.planned_quantity == 100
        assert bucket.release_date == day(5)
        assert bucket.projected_available == 30
        assert not bucket.is_late
        assert bucket.priority == 5
        assert bucket.source_type == "sales_order"
        assert bucket.source_id == "SO-7"
        assert bucket.action_message == "Release order by 2024-03-05"

    def test_stock_carries_across_buckets(self):
        buckets = plan([demand(60, day(5)), demand(60, day(10))], 100, PlanningPolicy())

        assert [b.net for b in buckets] == [0, 20]
        assert [b.planned_quantity for b in buckets] == [0, 20]
        assert buckets[0].action_message is None

    def test_safety_shortfall_lands_in_first_bucket(self):
        [bucket] = plan([demand(5, day(10))], 10, PlanningPolicy(safety_stock=Decimal("20")))
        assert bucket.net == 15
        assert bucket.projected_available == 0

    def test_late_release_is_elevated(self):
        policy = PlanningPolicy(lead_time_days=10)

        [bucket] = plan([demand(40, day(5), priority=7)], 0, policy, run_date=day(1), elevated_priority=1)

        assert bucket.release_date == date(2024, 2, 24)
        assert bucket.is_late
        assert bucket.priority == 1
        assert bucket.action_message.startswith("Expedite")

    def test_covered_bucket_is_never_late(self):
        [bucket] = plan([demand(10, day(2))], 50, PlanningPolicy(lead_time_days=10), run_date=day(1))
        assert bucket.planned_quantity == 0
        assert not bucket.is_late

    def test_same_day_demands_are_merged(self):
        demands = [
            demand(10, day(8), DemandSourceType.SALES_ORDER, "SO-1", priority=6),
            demand(15, day(8), DemandSourceType.FORECAST, None, priority=3),
        ]

        [bucket] = plan(demands, 0, PlanningPolicy())

        assert bucket.gross == 25
        assert bucket.source_type == MIXED_SOURCE
        assert bucket.source_id is None
        assert bucket.priority == 3

    def test_same_inputs_same_plan(self):
        demands = [demand(30, day(4)), demand(45, day(9)), demand(12, day(9), DemandSourceType.FORECAST)]
        policy = PlanningPolicy(
            safety_stock=Decimal("5"),
            lead_time_days=2,
            economic_order_quantity=Decimal("40"),
            order_multiple=Decimal("10"),
        )
        assert plan(demands, 20, policy) == plan(list(reversed(demands)), 20, policy)
