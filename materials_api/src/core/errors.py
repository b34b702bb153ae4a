"""
Domain error taxonomy for the materials core.

Every error is locally recoverable: services raise them, API exception handlers
turn them into the standard ErrorResponse envelope using `status_code` and
`error_type`.
"""
from __future__ import annotations

from typing import Any, Optional


class MaterialsError(Exception):
    """Base class for all domain errors raised by the services."""

    status_code: int = 400
    error_type: str = "materials_error"

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(MaterialsError):
    """Malformed or out-of-range input."""

    status_code = 422
    error_type = "validation_error"


class NotFoundError(MaterialsError):
    """A referenced entity does not exist."""

    status_code = 404
    error_type = "not_found"

    @classmethod
    def for_entity(cls, entity: str, entity_id: Any) -> "NotFoundError":
        return cls(f"{entity} not found", details={"id": str(entity_id)})


class InsufficientQuantityError(MaterialsError):
    """Requested quantity exceeds what a single lot can provide."""

    status_code = 409
    error_type = "insufficient_quantity"


class InsufficientStockError(MaterialsError):
    """Eligible lots of a material cannot cover the requested quantity."""

    status_code = 409
    error_type = "insufficient_stock"


class InvalidStateTransitionError(MaterialsError):
    """Lifecycle violation (lot or requirement status)."""

    status_code = 409
    error_type = "invalid_state_transition"


class HierarchyViolationError(MaterialsError):
    """Storage tree cycle or type-order violation."""

    status_code = 422
    error_type = "hierarchy_violation"


class InsufficientDataError(MaterialsError):
    """Valuation method lacks the lot history it needs."""

    status_code = 422
    error_type = "insufficient_data"
