"""
Pure MRP netting for a single material.

Nothing here touches the database: the same demand, stock and policy inputs
always produce the same planned buckets.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_CEILING, Decimal
from itertools import groupby
from typing import Iterable, List, Optional, Protocol

ZERO = Decimal("0")
MIXED_SOURCE = "mixed"


class DemandLike(Protocol):
    quantity: Decimal
    need_date: date
    source_type: object
    source_id: Optional[str]
    priority: int


@dataclass(frozen=True)
class DemandBucket:
    """Gross requirement due on one date, aggregated from one or more demands."""
    due_date: date
    gross: Decimal
    source_type: Optional[str]
    source_id: Optional[str]
    priority: int


@dataclass(frozen=True)
class PlanningPolicy:
    safety_stock: Decimal = ZERO
    lead_time_days: int = 0
    economic_order_quantity: Optional[Decimal] = None
    order_multiple: Optional[Decimal] = None


@dataclass(frozen=True)
class PlannedBucket:
    due_date: date
    gross: Decimal
    projected_available: Decimal
    net: Decimal
    planned_quantity: Decimal
    release_date: date
    priority: int
    is_late: bool
    action_message: Optional[str]
    source_type: Optional[str]
    source_id: Optional[str]


def _source_value(source_type: object) -> str:
    return getattr(source_type, "value", str(source_type))


# PUBLIC_INTERFACE
def bucket_demands(demands: Iterable[DemandLike]) -> List[DemandBucket]:
    """Group demands by need date, ascending."""
    ordered = sorted(demands, key=lambda d: d.need_date)
    buckets: List[DemandBucket] = []
    for due, group in groupby(ordered, key=lambda d: d.need_date):
        items = list(group)
        types = {_source_value(d.source_type) for d in items}
        buckets.append(
            DemandBucket(
                due_date=due,
                gross=sum((Decimal(d.quantity) for d in items), ZERO),
                source_type=types.pop() if len(types) == 1 else MIXED_SOURCE,
                source_id=items[0].source_id if len(items) == 1 else None,
                priority=min(d.priority for d in items),
            )
        )
    return buckets


# PUBLIC_INTERFACE
def size_order(net: Decimal, eoq: Optional[Decimal] = None, multiple: Optional[Decimal] = None) -> Decimal:
    """
    Planned order quantity for a net requirement: the EOQ when it covers the
    need, else lot-for-lot, rounded up to the order multiple.
    """
    if net <= 0:
        return ZERO
    qty = eoq if eoq is not None and eoq >= net else net
    if multiple is not None and multiple > 0:
        qty = (qty / multiple).to_integral_value(rounding=ROUND_CEILING) * multiple
    return qty


# PUBLIC_INTERFACE
def plan_material(
    buckets: Iterable[DemandBucket],
    available: Decimal,
    policy: PlanningPolicy,
    run_date: date,
    elevated_priority: int,
) -> List[PlannedBucket]:
    """
    Net gross requirements against available stock, bucket by bucket.

    Safety stock is withheld once for the whole horizon: the running balance
    starts at available - safety stock, and every bucket draws it down.
    A shortfall below safety stock is therefore planned in the first bucket.
    """
    running = Decimal(available) - policy.safety_stock
    planned: List[PlannedBucket] = []
    for bucket in sorted(buckets, key=lambda b: b.due_date):
        projected = running
        net = max(ZERO, bucket.gross - running)
        running = max(ZERO, running - bucket.gross)

        quantity = size_order(net, policy.economic_order_quantity, policy.order_multiple)
        release = bucket.due_date - timedelta(days=policy.lead_time_days)
        is_late = quantity > 0 and release < run_date
        priority = elevated_priority if is_late else bucket.priority

        if quantity <= 0:
            message = None
        elif is_late:
            message = f"Expedite: release was due {release.isoformat()}, before run date {run_date.isoformat()}"
        else:
            message = f"Release order by {release.isoformat()}"

        planned.append(
            PlannedBucket(
                due_date=bucket.due_date,
                gross=bucket.gross,
                projected_available=max(ZERO, projected),
                net=net,
                planned_quantity=quantity,
                release_date=release,
                priority=priority,
                is_late=is_late,
                action_message=message,
                source_type=bucket.source_type,
                source_id=bucket.source_id,
            )
        )
    return planned
