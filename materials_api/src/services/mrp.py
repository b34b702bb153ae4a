from __future__ import annotations

import asyncio
import logging
import weakref
import zlib
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import InvalidStateTransitionError, NotFoundError, ValidationError
from src.core.settings import AppSettings
from src.db.base import utcnow
from src.db.models.catalog import Material
from src.db.models.enums import LotStatus, MrpRunStatus, RequirementStatus
from src.db.models.planning import MaterialDemand, MaterialRequirement, MrpRun
from src.repositories.inventory import LotRepository
from src.repositories.materials import MaterialRepository
from src.repositories.planning import DemandRepository, MrpRunRepository, RequirementRepository
from src.schemas.planning import DemandCreate, MrpRunRequest
from src.services.base import BaseService
from src.services.catalog import CatalogService
from src.services.lot_lifecycle import effective_status
from src.services.lots import free_quantity
from src.services.netting import PlannedBucket, PlanningPolicy, bucket_demands, plan_material

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

REQUIREMENT_TRANSITIONS: Dict[RequirementStatus, FrozenSet[RequirementStatus]] = {
    RequirementStatus.PLANNED: frozenset({RequirementStatus.RELEASED, RequirementStatus.CONVERTED, RequirementStatus.CANCELLED}),
    RequirementStatus.RELEASED: frozenset({RequirementStatus.CONVERTED, RequirementStatus.CANCELLED}),
    RequirementStatus.CONVERTED: frozenset(),
    RequirementStatus.CANCELLED: frozenset(),
}

# One in-process lock per (material, horizon); runs over the same key never overlap.
_RUN_LOCKS: "weakref.WeakValueDictionary[Tuple[UUID, date, date], asyncio.Lock]" = weakref.WeakValueDictionary()


def _run_lock(material_id: UUID, start: date, end: date) -> asyncio.Lock:
    key = (material_id, start, end)
    lock = _RUN_LOCKS.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _RUN_LOCKS[key] = lock
    return lock


def advisory_key(material_id: UUID, start: date, end: date) -> int:
    """Stable bigint key for pg_advisory_xact_lock."""
    return zlib.crc32(f"mrp:{material_id}:{start.isoformat()}:{end.isoformat()}".encode("utf-8"))


class _MaterialSkipped(Exception):
    """Raised inside a material's planning step to skip it without writing."""


class MrpService(BaseService):
    """
    Material requirements planning.

    A run nets every material independently inside its own SAVEPOINT: a
    failure rolls back only that material's writes and the run carries on.
    """

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.materials = MaterialRepository(session)
        self.lots = LotRepository(session)
        self.demands = DemandRepository(session)
        self.runs = MrpRunRepository(session)
        self.requirements = RequirementRepository(session)
        self.catalog = CatalogService(session, self.settings)

    # PUBLIC_INTERFACE
    async def record_demand(self, payload: DemandCreate) -> MaterialDemand:
        """Store one demand tuple from the sales/production/forecast feed."""
        if await self.materials.get_material(payload.material_id) is None:
            raise NotFoundError.for_entity("Material", payload.material_id)
        demand = MaterialDemand(**payload.model_dump())
        await self.demands.add(demand)
        await self.session.commit()
        return demand

    # PUBLIC_INTERFACE
    async def list_demands(
        self,
        *,
        material_id: Optional[UUID] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[MaterialDemand]:
        return await self.demands.list_demands(material_id=material_id, start=start, end=end, limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def get_run(self, run_id: UUID) -> MrpRun:
        run = await self.runs.get_run(run_id)
        if run is None:
            raise NotFoundError.for_entity("MRP run", run_id)
        return run

    # PUBLIC_INTERFACE
    async def list_runs(self, *, limit: int = 50, offset: int = 0) -> List[MrpRun]:
        return await self.runs.list_runs(limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def run_mrp(self, options: MrpRunRequest) -> MrpRun:
        """
        Execute a planning run and return its header.

        Per material: gather demand in the horizon bucketed by need date, net it
        against free stock of available, unexpired lots and safety stock, size
        orders by EOQ/order multiple, back-schedule by lead time and persist one
        requirement per bucket. Earlier `planned` requirements of the material
        in the horizon are superseded. Materials with a missing or negative lead
        time are skipped; unexpected errors roll back that material only.

        With `simulation_mode` the requirements are written as not current and
        nothing is superseded, so the live plan is left as it was.
        """
        run_date = options.run_date or date.today()
        start = options.horizon_start or run_date
        end = options.horizon_end or start + timedelta(days=self.settings.MRP_DEFAULT_HORIZON_DAYS)
        if end < start:
            raise ValidationError("horizon_end must not be before horizon_start")

        run = MrpRun(
            run_name=options.run_name or f"MRP {run_date.isoformat()}",
            run_date=run_date,
            horizon_start=start,
            horizon_end=end,
            status=MrpRunStatus.IN_PROGRESS,
            consider_safety_stock=options.consider_safety_stock,
            consider_current_inventory=options.consider_current_inventory,
            consider_lead_times=options.consider_lead_times,
            consider_batch_sizes=options.consider_batch_sizes,
            simulation_mode=options.simulation_mode,
            started_at=utcnow(),
        )
        await self.runs.add(run)
        await self.session.commit()
        logger.info(
            "MRP run %s started: horizon %s..%s%s", run.run_name, start, end, " (simulation)" if run.simulation_mode else ""
        )

        log_lines: List[str] = []
        planned = skipped = failed = created = 0
        try:
            materials = await self.materials.list_for_planning(options.material_ids)
            for material in materials:
                material_id, code = material.id, material.code
                async with _run_lock(material_id, start, end):
                    try:
                        async with self.session.begin_nested():
                            await self._acquire_advisory_lock(material_id, start, end)
                            count = await self._plan_one(run, material)
                        await self.session.commit()
                    except _MaterialSkipped as exc:
                        skipped += 1
                        log_lines.append(f"{code}: skipped ({exc})")
                        logger.warning("MRP run %s skipped %s: %s", run.id, code, exc)
                        continue
                    except Exception as exc:
                        failed += 1
                        log_lines.append(f"{code}: failed ({exc.__class__.__name__}: {exc})")
                        logger.exception("MRP run %s rolled back material %s", run.id, code)
                        continue
                planned += 1
                created += count
                log_lines.append(f"{code}: {count} requirement(s)")
        except Exception:
            run.status = MrpRunStatus.FAILED
            run.completed_at = utcnow()
            run.log_details = "\n".join(log_lines)
            await self.session.commit()
            logger.exception("MRP run %s failed", run.id)
            raise

        run.status = MrpRunStatus.COMPLETED_WITH_ERRORS if failed else MrpRunStatus.COMPLETED
        run.materials_planned = planned
        run.materials_skipped = skipped
        run.materials_failed = failed
        run.requirements_created = created
        run.completed_at = utcnow()
        run.log_details = "\n".join(log_lines)
        await self.session.commit()
        logger.info(
            "MRP run %s finished: planned=%d skipped=%d failed=%d requirements=%d",
            run.id,
            planned,
            skipped,
            failed,
            created,
        )
        return run

    # PUBLIC_INTERFACE
    async def available_quantity(self, material_id: UUID, as_of: date) -> Decimal:
        """Free quantity of available, unexpired lots received by `as_of`."""
        lots = await self.lots.list_material_lots(
            material_id, statuses=[LotStatus.AVAILABLE], received_on_or_before=as_of
        )
        return sum(
            (free_quantity(lot) for lot in lots if effective_status(lot, as_of) == LotStatus.AVAILABLE),
            ZERO,
        )

    async def _plan_one(self, run: MrpRun, material: Material) -> int:
        lead_time = material.lead_time_days
        if run.consider_lead_times:
            if lead_time is None:
                raise _MaterialSkipped("lead time missing")
            if lead_time < 0:
                raise _MaterialSkipped(f"negative lead time {lead_time}")
        else:
            lead_time = 0

        demands = await self.demands.demands_in_horizon(material.id, run.horizon_start, run.horizon_end)
        available = (
            await self.available_quantity(material.id, run.run_date) if run.consider_current_inventory else ZERO
        )
        policy = PlanningPolicy(
            safety_stock=Decimal(material.safety_stock or 0) if run.consider_safety_stock else ZERO,
            lead_time_days=lead_time,
            economic_order_quantity=material.economic_order_quantity if run.consider_batch_sizes else None,
            order_multiple=material.order_multiple if run.consider_batch_sizes else None,
        )
        buckets = plan_material(
            bucket_demands(demands), available, policy, run.run_date, self.settings.MRP_ELEVATED_PRIORITY
        )

        if not run.simulation_mode:
            superseded = await self.requirements.supersede_planned(material.id, run.horizon_start, run.horizon_end)
            if superseded:
                logger.debug("Superseded %d planned requirement(s) of %s", superseded, material.code)

        unit_cost = await self.catalog.current_unit_cost(material)
        await self._persist_plan(run, material, policy, buckets, unit_cost)
        return len(buckets)

    async def _persist_plan(
        self,
        run: MrpRun,
        material: Material,
        policy: PlanningPolicy,
        buckets: List[PlannedBucket],
        unit_cost: Decimal,
    ) -> None:
        for bucket in buckets:
            requirement = MaterialRequirement(
                mrp_run_id=run.id,
                material_id=material.id,
                requirement_date=bucket.due_date,
                required_quantity=bucket.gross,
                available_quantity=bucket.projected_available,
                net_requirement=bucket.net,
                planned_order_quantity=bucket.planned_quantity,
                planned_release_date=bucket.release_date,
                uom=material.uom,
                source_type=bucket.source_type,
                source_id=bucket.source_id,
                priority=bucket.priority,
                status=RequirementStatus.PLANNED,
                lead_time_days=policy.lead_time_days,
                safety_stock_level=policy.safety_stock,
                economic_order_quantity=policy.economic_order_quantity,
                is_late=bucket.is_late,
                action_message=bucket.action_message,
                estimated_unit_cost=unit_cost,
                estimated_cost=unit_cost * bucket.planned_quantity,
                is_current=not run.simulation_mode,
            )
            await self.requirements.add(requirement)
            await self.requirements.flush()

    async def _acquire_advisory_lock(self, material_id: UUID, start: date, end: date) -> None:
        # Cross-process guard; released when the surrounding transaction ends.
        if self.session.get_bind().dialect.name != "postgresql":
            return
        await self.session.execute(
            text("SELECT pg_advisory_xact_lock(:key)"), {"key": advisory_key(material_id, start, end)}
        )

    # PUBLIC_INTERFACE
    async def get_requirement(self, requirement_id: UUID) -> MaterialRequirement:
        requirement = await self.requirements.get_requirement(requirement_id)
        if requirement is None:
            raise NotFoundError.for_entity("Requirement", requirement_id)
        return requirement

    # PUBLIC_INTERFACE
    async def list_requirements(
        self,
        *,
        run_id: Optional[UUID] = None,
        material_id: Optional[UUID] = None,
        status: Optional[RequirementStatus] = None,
        current_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> List[MaterialRequirement]:
        return await self.requirements.list_requirements(
            run_id=run_id,
            material_id=material_id,
            status=status,
            current_only=current_only,
            limit=limit,
            offset=offset,
        )

    # PUBLIC_INTERFACE
    async def release_requirement(self, requirement_id: UUID) -> MaterialRequirement:
        """planned -> released."""
        requirement = await self._transition(requirement_id, RequirementStatus.RELEASED)
        await self.session.commit()
        return requirement

    # PUBLIC_INTERFACE
    async def convert_requirement(self, requirement_id: UUID, order_type: str, order_id: str) -> MaterialRequirement:
        """
        Record the purchase/production order created from a requirement.

        The order reference is kept in `converted_order_type`/`converted_order_id`;
        the demand origin in `source_type`/`source_id` is left intact.
        """
        requirement = await self._transition(requirement_id, RequirementStatus.CONVERTED)
        requirement.converted_order_type = order_type
        requirement.converted_order_id = order_id
        await self.session.commit()
        logger.info("Requirement %s converted to %s order %s", requirement.id, order_type, order_id)
        return requirement

    # PUBLIC_INTERFACE
    async def cancel_requirement(self, requirement_id: UUID) -> MaterialRequirement:
        requirement = await self._transition(requirement_id, RequirementStatus.CANCELLED)
        await self.session.commit()
        return requirement

    async def _transition(self, requirement_id: UUID, target: RequirementStatus) -> MaterialRequirement:
        requirement = await self.get_requirement(requirement_id)
        if target not in REQUIREMENT_TRANSITIONS[requirement.status]:
            raise InvalidStateTransitionError(
                f"Requirement is {requirement.status.value}; cannot move to {target.value}",
                details={"requirement_id": str(requirement.id)},
            )
        if not requirement.is_current and target != RequirementStatus.CANCELLED:
            raise InvalidStateTransitionError(
                "Requirement is not part of the current plan", details={"requirement_id": str(requirement.id)}
            )
        requirement.status = target
        return requirement
