"""
ORM models for the shop-floor tracker: routing master data, operators, and the
production order / travel sheet / operation execution records.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .master_data import (  # noqa: F401
    PartNumber,
    PartRouting,
    Process,
    WorkCenter,
)
from .personnel import (  # noqa: F401
    Operator,
)
from .production import (  # noqa: F401
    ProductionOrder,
    ProductionStatusEvent,
    TravelSheet,
    TravelSheetOperation,
)
