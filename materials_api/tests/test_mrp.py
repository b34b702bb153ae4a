from datetime import date
from decimal import Decimal

import pytest

from src.core.errors import InvalidStateTransitionError, NotFoundError, ValidationError
from src.db.models.enums import DemandSourceType, MrpRunStatus, RequirementStatus
from src.schemas.materials import MaterialUpsert
from src.schemas.planning import DemandCreate, MrpRunRequest
from src.services.mrp import MrpService

DAY_1 = date(2024, 3, 1)


def day(n: int) -> date:
    return DAY_1.replace(day=n)


def run_request(**overrides) -> MrpRunRequest:
    values = dict(run_date=day(1), horizon_start=day(1), horizon_end=day(31))
    values.update(overrides)
    return MrpRunRequest(**values)


def snapshot(requirements):
    return [
        (
            r.material_id,
            r.requirement_date,
            r.required_quantity,
            r.net_requirement,
            r.planned_order_quantity,
            r.planned_release_date,
        )
        for r in requirements
    ]


@pytest.fixture
def add_demand(mrp, raw_material):
    async def _add(quantity, need_date, material=None, **extra):
        return await mrp.record_demand(
            DemandCreate(
                material_id=(material or raw_material).id,
                quantity=Decimal(str(quantity)),
                need_date=need_date,
                **extra,
            )
        )

    return _add


@pytest.fixture
async def second_material(catalog):
    return await catalog.upsert_material(
        MaterialUpsert(code="M2", name="Brass Insert", uom="EA", price=Decimal("0.3"), lead_time_days=2)
    )


class TestRunMrp:
    """Planning runs end to end"""

    async def test_planned_order_for_shortage(self, mrp, receive, add_demand, raw_material):
        await receive(50, received=day(1))
        await add_demand(80, day(10), source_type=DemandSourceType.SALES_ORDER, source_id="SO-42")

        run = await mrp.run_mrp(run_request())

        assert run.status == MrpRunStatus.COMPLETED
        assert run.materials_planned == 1
        assert run.requirements_created == 1
        [req] = await mrp.list_requirements(run_id=run.id)
        assert req.material_id == raw_material.id
        assert req.net_requirement == 50
        assert req.planned_order_quantity == 100
        assert req.planned_release_date == day(5)
        assert req.status == RequirementStatus.PLANNED
        assert req.source_type == "sales_order"
        assert req.source_id == "SO-42"
        assert req.estimated_cost == Decimal("1000")

    async def test_expired_and_held_stock_is_not_available(self, mrp, lots, receive, raw_material):
        await receive(50, received=day(1), expiration=day(3))
        held = await receive(40, received=day(1))
        await lots.quarantine(held.id, "inspection")
        await receive(25, received=day(1))

        assert await mrp.available_quantity(raw_material.id, day(2)) == 75
        assert await mrp.available_quantity(raw_material.id, day(4)) == 25

    async def test_rerun_is_identical_and_supersedes(self, mrp, receive, add_demand, raw_material):
        await receive(50, received=day(1))
        await add_demand(80, day(10))
        await add_demand(30, day(20))

        first = await mrp.run_mrp(run_request())
        second = await mrp.run_mrp(run_request())

        first_reqs = await mrp.list_requirements(run_id=first.id)
        second_reqs = await mrp.list_requirements(run_id=second.id)
        assert snapshot(first_reqs) == snapshot(second_reqs)
        assert all(not r.is_current for r in first_reqs)
        current = await mrp.list_requirements(material_id=raw_material.id, current_only=True)
        assert {r.id for r in current} == {r.id for r in second_reqs}

    async def test_missing_lead_time_is_skipped(self, mrp, catalog, add_demand):
        no_lead = await catalog.upsert_material(MaterialUpsert(code="NL", name="No lead time"))
        await add_demand(10, day(10), material=no_lead)

        run = await mrp.run_mrp(run_request(material_ids=[no_lead.id]))

        assert run.status == MrpRunStatus.COMPLETED
        assert run.materials_skipped == 1
        assert run.requirements_created == 0
        assert "NL: skipped (lead time missing)" in run.log_details
        assert await mrp.list_requirements(material_id=no_lead.id) == []

    async def test_lead_times_can_be_ignored(self, mrp, catalog, add_demand):
        no_lead = await catalog.upsert_material(MaterialUpsert(code="NL", name="No lead time"))
        await add_demand(10, day(10), material=no_lead)

        run = await mrp.run_mrp(run_request(material_ids=[no_lead.id], consider_lead_times=False))

        [req] = await mrp.list_requirements(run_id=run.id)
        assert req.planned_release_date == day(10)
        assert req.lead_time_days == 0

    async def test_late_release_is_flagged(self, mrp, add_demand, raw_material):
        await add_demand(40, day(3), priority=8)

        run = await mrp.run_mrp(run_request(consider_safety_stock=False))

        [req] = await mrp.list_requirements(run_id=run.id)
        assert req.is_late
        assert req.priority == 1
        assert req.planned_release_date == date(2024, 2, 27)

    async def test_failing_material_rolls_back_alone(
        self, mrp, session_factory, add_demand, raw_material, second_material, monkeypatch
    ):
        await add_demand(80, day(10))
        await add_demand(500, day(12), material=second_material)
        baseline = await mrp.run_mrp(run_request())
        baseline_m2 = await mrp.list_requirements(run_id=baseline.id, material_id=second_material.id)

        original = mrp._persist_plan

        async def persist_then_fail(run, material, policy, buckets, unit_cost):
            await original(run, material, policy, buckets, unit_cost)
            if material.code == "M2":
                raise RuntimeError("disk full")

        monkeypatch.setattr(mrp, "_persist_plan", persist_then_fail)
        run = await mrp.run_mrp(run_request())

        assert run.status == MrpRunStatus.COMPLETED_WITH_ERRORS
        assert run.materials_planned == 1
        assert run.materials_failed == 1
        assert "M2: failed (RuntimeError: disk full)" in run.log_details

        async with session_factory() as check_session:
            check = MrpService(check_session)
            assert await check.list_requirements(run_id=run.id, material_id=second_material.id) == []
            assert len(await check.list_requirements(run_id=run.id, material_id=raw_material.id)) == 1
            still_current = await check.list_requirements(material_id=second_material.id, current_only=True)
            assert {r.id for r in still_current} == {r.id for r in baseline_m2}

    async def test_simulation_leaves_live_plan_untouched(self, mrp, add_demand, raw_material):
        await add_demand(80, day(10))
        live = await mrp.run_mrp(run_request())
        live_reqs = await mrp.list_requirements(run_id=live.id)
        await add_demand(200, day(15))

        what_if = await mrp.run_mrp(run_request(simulation_mode=True))

        assert what_if.simulation_mode
        assert what_if.requirements_created == 2
        simulated = await mrp.list_requirements(run_id=what_if.id)
        assert [r.required_quantity for r in simulated] == [80, 200]
        assert all(not r.is_current for r in simulated)
        current = await mrp.list_requirements(material_id=raw_material.id, current_only=True)
        assert {r.id for r in current} == {r.id for r in live_reqs}
        with pytest.raises(InvalidStateTransitionError):
            await mrp.release_requirement(simulated[0].id)

    async def test_horizon_must_not_end_before_run_date(self, mrp):
        with pytest.raises(ValidationError):
            await mrp.run_mrp(MrpRunRequest(run_date=day(20), horizon_end=day(10)))

    async def test_unknown_material_demand(self, mrp):
        from uuid import uuid4

        with pytest.raises(NotFoundError):
            await mrp.record_demand(DemandCreate(material_id=uuid4(), quantity=Decimal("1"), need_date=day(2)))


class TestRequirementLifecycle:
    """planned -> released -> converted, cancellation"""

    @pytest.fixture
    async def requirement(self, mrp, add_demand):
        await add_demand(80, day(10), source_type=DemandSourceType.PRODUCTION_ORDER, source_id="WO-9")
        run = await mrp.run_mrp(run_request())
        [req] = await mrp.list_requirements(run_id=run.id)
        return req

    async def test_release_then_convert(self, mrp, requirement):
        released = await mrp.release_requirement(requirement.id)
        assert released.status == RequirementStatus.RELEASED

        converted = await mrp.convert_requirement(requirement.id, "purchase", "PO-1001")

        assert converted.status == RequirementStatus.CONVERTED
        assert converted.converted_order_type == "purchase"
        assert converted.converted_order_id == "PO-1001"
        assert converted.source_type == "production_order"
        assert converted.source_id == "WO-9"

    async def test_converted_is_final(self, mrp, requirement):
        await mrp.convert_requirement(requirement.id, "production", "MO-7")
        with pytest.raises(InvalidStateTransitionError):
            await mrp.cancel_requirement(requirement.id)
        with pytest.raises(InvalidStateTransitionError):
            await mrp.release_requirement(requirement.id)

    async def test_released_requirement_survives_rerun(self, mrp, requirement):
        await mrp.release_requirement(requirement.id)
        await mrp.run_mrp(run_request())

        reloaded = await mrp.get_requirement(requirement.id)
        assert reloaded.is_current
        assert reloaded.status == RequirementStatus.RELEASED

    async def test_superseded_requirement_can_only_be_cancelled(self, mrp, requirement):
        await mrp.run_mrp(run_request())

        with pytest.raises(InvalidStateTransitionError):
            await mrp.release_requirement(requirement.id)
        cancelled = await mrp.cancel_requirement(requirement.id)
        assert cancelled.status == RequirementStatus.CANCELLED
