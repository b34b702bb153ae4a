from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Set
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import HierarchyViolationError, NotFoundError, ValidationError
from src.core.settings import AppSettings
from src.db.models.enums import LocationType
from src.db.models.storage import StorageLocation
from src.repositories.locations import LocationRepository
from src.schemas.locations import LocationCreate, LocationUtilization
from src.services.base import BaseService
from src.services.lot_lifecycle import STOCK_STATUSES

logger = logging.getLogger(__name__)

# Canonical ordering; a parent must rank strictly above (lower number) its child.
LOCATION_RANK: Dict[LocationType, int] = {
    LocationType.WAREHOUSE: 0,
    LocationType.AREA: 1,
    LocationType.ZONE: 2,
    LocationType.BIN: 3,
    LocationType.SHELF: 4,
    LocationType.RACK: 4,
    LocationType.CELL: 4,
}


class StorageService(BaseService):
    """Storage hierarchy maintenance and capacity accounting."""

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.locations = LocationRepository(session)

    # PUBLIC_INTERFACE
    async def get_location(self, location_id: UUID) -> StorageLocation:
        """Return a location or raise NotFoundError."""
        loc = await self.locations.get_location(location_id)
        if loc is None:
            raise NotFoundError.for_entity("Location", location_id)
        return loc

    # PUBLIC_INTERFACE
    async def list_locations(
        self, *, parent_id: Optional[UUID] = None, limit: int = 100, offset: int = 0
    ) -> List[StorageLocation]:
        """List locations, optionally only the direct children of `parent_id`."""
        return await self.locations.list_locations(parent_id=parent_id, limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def create_location(self, payload: LocationCreate) -> StorageLocation:
        """
        Create a storage location.

        The parent, when given, must exist, must not lie below the new node and
        must rank above it in the canonical type ordering.
        Raises HierarchyViolationError or ValidationError (duplicate code/id).
        """
        if await self.locations.get_by_code(payload.code) is not None:
            raise ValidationError(f"Location code '{payload.code}' already exists", details={"code": payload.code})
        if payload.id is not None and await self.locations.get_location(payload.id) is not None:
            raise ValidationError("Location id already exists", details={"id": str(payload.id)})

        if payload.parent_id is not None:
            await self._check_parent(payload.id, payload.type, payload.parent_id)

        loc = StorageLocation(
            code=payload.code,
            name=payload.name,
            type=payload.type,
            parent_id=payload.parent_id,
            capacity=payload.capacity,
            capacity_unit=payload.capacity_unit,
            is_active=payload.is_active,
        )
        if payload.id is not None:
            loc.id = payload.id
        await self.locations.add(loc)
        await self.session.commit()
        logger.info("Created location %s (%s) under %s", loc.code, loc.type.value, loc.parent_id)
        return loc

    # PUBLIC_INTERFACE
    async def move_location(self, location_id: UUID, new_parent_id: Optional[UUID]) -> StorageLocation:
        """Re-parent a location, applying the same cycle and type-order checks as creation."""
        loc = await self.get_location(location_id)
        if new_parent_id is not None:
            await self._check_parent(loc.id, loc.type, new_parent_id)
        loc.parent_id = new_parent_id
        await self.session.commit()
        logger.info("Moved location %s under %s", loc.code, new_parent_id)
        return loc

    # PUBLIC_INTERFACE
    async def compute_utilization(self, location_id: UUID) -> LocationUtilization:
        """
        Capacity consumed by stock-bearing lots stored in a location and all of
        its descendants.

        Capacity is the node's own capacity, or for container nodes without one
        the capacity of their sub-nodes summed recursively. The ratio is None
        when no capacity is known anywhere in the subtree.
        """
        root = await self.get_location(location_id)

        nodes: Dict[UUID, StorageLocation] = {root.id: root}
        children: Dict[UUID, List[UUID]] = {}
        frontier = [root.id]
        while frontier:
            level = await self.locations.list_children(frontier)
            frontier = []
            for child in level:
                if child.id in nodes:
                    continue
                nodes[child.id] = child
                children.setdefault(child.parent_id, []).append(child.id)
                frontier.append(child.id)

        used = await self.locations.sum_stored_quantity(nodes.keys(), STOCK_STATUSES)
        capacity = self._subtree_capacity(root.id, nodes, children)

        ratio: Optional[float] = None
        if capacity is not None and capacity > 0:
            ratio = float(used / capacity)
        return LocationUtilization(
            location_id=root.id,
            used=float(used),
            capacity=float(capacity) if capacity is not None else None,
            ratio=ratio,
            locations_counted=len(nodes),
        )

    def _subtree_capacity(
        self, node_id: UUID, nodes: Dict[UUID, StorageLocation], children: Dict[UUID, List[UUID]]
    ) -> Optional[Decimal]:
        own = nodes[node_id].capacity
        if own is not None:
            return Decimal(own)
        total: Optional[Decimal] = None
        for child_id in children.get(node_id, []):
            cap = self._subtree_capacity(child_id, nodes, children)
            if cap is not None:
                total = (total or Decimal("0")) + cap
        return total

    async def _check_parent(self, node_id: Optional[UUID], node_type: LocationType, parent_id: UUID) -> None:
        parent = await self.locations.get_location(parent_id)
        if parent is None:
            raise HierarchyViolationError("Parent location does not exist", details={"parent_id": str(parent_id)})

        if LOCATION_RANK[parent.type] >= LOCATION_RANK[node_type]:
            raise HierarchyViolationError(
                f"A {node_type.value} cannot be placed under a {parent.type.value}",
                details={"parent_type": parent.type.value, "child_type": node_type.value},
            )

        # Walk up from the prospective parent; meeting the node itself means a cycle.
        seen: Set[UUID] = set()
        current: Optional[StorageLocation] = parent
        while current is not None:
            if node_id is not None and current.id == node_id:
                raise HierarchyViolationError(
                    "Parent chain would form a cycle", details={"location_id": str(node_id), "parent_id": str(parent_id)}
                )
            if current.id in seen:
                raise HierarchyViolationError("Existing parent chain contains a cycle", details={"at": str(current.id)})
            seen.add(current.id)
            current = await self.locations.get_location(current.parent_id) if current.parent_id else None
