"""Status vocabularies shared by ORM rows, schemas and services. Values are stored as text."""

from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    CREATED = "Created"
    RELEASED = "Released"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    @property
    def is_open(self) -> bool:
        return self not in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


class OrderPriority(str, Enum):
    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"
    CRITICAL = "Critical"


class TravelSheetStatus(str, Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class OperationStatus(str, Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class RiskStatus(str, Enum):
    GREEN = "Green"
    YELLOW = "Yellow"
    RED = "Red"
