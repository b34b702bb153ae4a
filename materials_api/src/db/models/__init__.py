"""
ORM models for the materials core: storage locations, material catalog,
lot/batch ledger, valuations and requirements planning.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

# Re-export commonly used models for convenience and to ensure import side-effects
# register all mapped classes with SQLAlchemy metadata.

from .storage import (  # noqa: F401
    StorageLocation,
)
from .catalog import (  # noqa: F401
    Material,
)
from .inventory import (  # noqa: F401
    BatchLot,
    MaterialReservation,
    InventoryTransaction,
)
from .valuation import (  # noqa: F401
    MaterialValuation,
)
from .planning import (  # noqa: F401
    MaterialDemand,
    MrpRun,
    MaterialRequirement,
)
