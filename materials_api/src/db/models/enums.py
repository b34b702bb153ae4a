"""
Closed enumerations shared by ORM models, schemas and services.

Values are stored as plain strings (non-native enums) so that the same schema
works on PostgreSQL and SQLite.
"""
from __future__ import annotations

import enum
from typing import Type

from sqlalchemy import Enum as SAEnum


class MaterialType(str, enum.Enum):
    RAW = "raw"
    COMPONENT = "component"
    PACKAGING = "packaging"
    CONSUMABLE = "consumable"
    FINISHED = "finished"
    SEMI_FINISHED = "semi_finished"
    BYPRODUCT = "byproduct"
    WASTE = "waste"
    SPARE = "spare"


class LocationType(str, enum.Enum):
    WAREHOUSE = "warehouse"
    AREA = "area"
    ZONE = "zone"
    BIN = "bin"
    SHELF = "shelf"
    RACK = "rack"
    CELL = "cell"


class LotStatus(str, enum.Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    ON_HOLD = "on_hold"
    IN_QA = "in_qa"
    QUARANTINE = "quarantine"
    REJECTED = "rejected"
    CONSUMED = "consumed"
    EXPIRED = "expired"
    RECALLED = "recalled"


class ValuationMethod(str, enum.Enum):
    FIFO = "fifo"
    LIFO = "lifo"
    MOVING_AVERAGE = "moving_average"
    STANDARD_COST = "standard_cost"
    BATCH_SPECIFIC = "batch_specific"


class PickingPolicy(str, enum.Enum):
    FIFO = "fifo"
    FEFO = "fefo"
    LIFO = "lifo"


class ReservationStatus(str, enum.Enum):
    ACTIVE = "active"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


class TransactionType(str, enum.Enum):
    RECEIPT = "receipt"
    CONSUME = "consume"
    RESERVE = "reserve"
    UNRESERVE = "unreserve"
    QUARANTINE = "quarantine"
    RELEASE = "release"
    REJECT = "reject"
    RECALL = "recall"
    SPLIT_OUT = "split_out"
    SPLIT_IN = "split_in"


class DemandSourceType(str, enum.Enum):
    FORECAST = "forecast"
    SALES_ORDER = "sales_order"
    PRODUCTION_ORDER = "production_order"
    SAFETY_STOCK = "safety_stock"
    MANUAL = "manual"


class RequirementStatus(str, enum.Enum):
    PLANNED = "planned"
    RELEASED = "released"
    CONVERTED = "converted"
    CANCELLED = "cancelled"


class MrpRunStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


def enum_column(enum_cls: Type[enum.Enum], name: str) -> SAEnum:
    """Column type storing the enum's values (not member names) as strings."""
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )
