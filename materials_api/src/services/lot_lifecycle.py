"""
Lot status state machine.

Stored statuses move only along ALLOWED_TRANSITIONS. `expired` is never written
by a transition: it is an override computed at read time from the expiration
date, see `effective_status`.
"""
from __future__ import annotations

from datetime import date
from typing import Dict, FrozenSet, Optional

from src.core.errors import InvalidStateTransitionError
from src.db.models.enums import LotStatus
from src.db.models.inventory import BatchLot

TERMINAL_STATUSES: FrozenSet[LotStatus] = frozenset(
    {LotStatus.CONSUMED, LotStatus.REJECTED, LotStatus.EXPIRED, LotStatus.RECALLED}
)

HOLD_STATUSES: FrozenSet[LotStatus] = frozenset({LotStatus.ON_HOLD, LotStatus.QUARANTINE, LotStatus.IN_QA})

# Lots physically on hand (they occupy storage and carry value).
STOCK_STATUSES: FrozenSet[LotStatus] = frozenset(LotStatus) - TERMINAL_STATUSES

# Lots that may be picked for new demand, before the expiration override.
PICKABLE_STATUSES: FrozenSet[LotStatus] = frozenset({LotStatus.AVAILABLE, LotStatus.RESERVED})

ALLOWED_TRANSITIONS: Dict[LotStatus, FrozenSet[LotStatus]] = {
    LotStatus.AVAILABLE: frozenset(
        {
            LotStatus.AVAILABLE,
            LotStatus.RESERVED,
            LotStatus.CONSUMED,
            LotStatus.ON_HOLD,
            LotStatus.QUARANTINE,
            LotStatus.IN_QA,
            LotStatus.RECALLED,
        }
    ),
    LotStatus.RESERVED: frozenset(
        {LotStatus.RESERVED, LotStatus.AVAILABLE, LotStatus.CONSUMED, LotStatus.RECALLED}
    ),
    LotStatus.ON_HOLD: frozenset({LotStatus.AVAILABLE, LotStatus.REJECTED, LotStatus.RECALLED}),
    LotStatus.QUARANTINE: frozenset({LotStatus.AVAILABLE, LotStatus.REJECTED, LotStatus.RECALLED}),
    LotStatus.IN_QA: frozenset({LotStatus.AVAILABLE, LotStatus.REJECTED, LotStatus.RECALLED}),
    LotStatus.REJECTED: frozenset(),
    LotStatus.CONSUMED: frozenset(),
    LotStatus.EXPIRED: frozenset(),
    LotStatus.RECALLED: frozenset(),
}


# PUBLIC_INTERFACE
def is_expired(lot: BatchLot, as_of: date) -> bool:
    """True when the lot has an expiration date strictly before `as_of`."""
    return lot.expiration_date is not None and lot.expiration_date < as_of


# PUBLIC_INTERFACE
def effective_status(lot: BatchLot, as_of: Optional[date] = None) -> LotStatus:
    """
    Status of a lot as seen on `as_of` (defaults to today).

    Terminal stored statuses win; otherwise a lot past its expiration date
    reads as `expired`.
    """
    as_of = as_of or date.today()
    if lot.status in TERMINAL_STATUSES:
        return lot.status
    if is_expired(lot, as_of):
        return LotStatus.EXPIRED
    return lot.status


# PUBLIC_INTERFACE
def ensure_transition(lot: BatchLot, target: LotStatus, as_of: Optional[date] = None) -> LotStatus:
    """
    Validate moving `lot` to `target` and return its current effective status.

    Raises InvalidStateTransitionError out of terminal states (including the
    read-time expiry) and for edges the state machine does not define.
    """
    current = effective_status(lot, as_of)
    if current in TERMINAL_STATUSES:
        raise InvalidStateTransitionError(
            f"Lot {lot.batch_number} is {current.value}; no further transitions allowed",
            details={"lot_id": str(lot.id), "status": current.value, "target": target.value},
        )
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStateTransitionError(
            f"Lot {lot.batch_number} cannot move from {current.value} to {target.value}",
            details={"lot_id": str(lot.id), "status": current.value, "target": target.value},
        )
    return current
