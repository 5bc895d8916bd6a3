"""
Due-date risk heuristic for production orders.

required minutes  = remaining units x per-unit minutes of the operations still to run
available minutes = days until due x productive minutes per day
load ratio        = required / available, bucketed into Green / Yellow / Red
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from tracker.core.settings import AppSettings
from tracker.db.models.enums import OrderStatus, RiskStatus


@dataclass(frozen=True)
class RiskPolicy:
    """Bucket thresholds for the load ratio."""
    productive_minutes_per_day: float = 480.0
    green_max_load: float = 0.75
    yellow_max_load: float = 1.0
    default_unit_minutes: float = 1.0

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "RiskPolicy":
        return cls(
            productive_minutes_per_day=settings.RISK_PRODUCTIVE_MINUTES_PER_DAY,
            green_max_load=settings.RISK_GREEN_MAX_LOAD,
            yellow_max_load=settings.RISK_YELLOW_MAX_LOAD,
            default_unit_minutes=settings.RISK_DEFAULT_UNIT_MINUTES,
        )


@dataclass(frozen=True)
class RiskAssessment:
    status: RiskStatus
    completion_percentage: int
    remaining_quantity: int
    days_until_due: Optional[int] = None
    load_ratio: Optional[float] = None


def completion_percentage(quantity_completed: int, quantity: int) -> int:
    """floor(100 * completed / quantity), 0 for an empty order, clamped to [0, 100]."""
    if quantity <= 0:
        return 0
    return max(0, min(100, (100 * quantity_completed) // quantity))


# PUBLIC_INTERFACE
def score_risk(
    *,
    status: str,
    due_date: Optional[date],
    quantity: int,
    quantity_completed: int,
    quantity_scrapped: int,
    remaining_unit_minutes: float,
    today: date,
    policy: RiskPolicy = RiskPolicy(),
) -> RiskAssessment:
    """
    Classify an order's due-date health. Pure; callers supply ``today``.

    Parameters:
        status: order status value
        due_date: order due date, None when unscheduled
        quantity / quantity_completed / quantity_scrapped: order counters
        remaining_unit_minutes: standard minutes per unit of the operations not yet completed
        today: reference date
        policy: bucket thresholds
    """
    percentage = completion_percentage(quantity_completed, quantity)
    remaining = max(0, quantity - quantity_completed - quantity_scrapped)

    if status in (OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value) or due_date is None:
        return RiskAssessment(RiskStatus.GREEN, percentage, remaining)

    days_until_due = (due_date - today).days
    if remaining == 0:
        return RiskAssessment(RiskStatus.GREEN, percentage, remaining, days_until_due, 0.0)
    if days_until_due <= 0:
        return RiskAssessment(RiskStatus.RED, percentage, remaining, days_until_due)

    required = remaining * remaining_unit_minutes
    available = days_until_due * policy.productive_minutes_per_day
    load_ratio = required / available

    if load_ratio <= policy.green_max_load:
        bucket = RiskStatus.GREEN
    elif load_ratio <= policy.yellow_max_load:
        bucket = RiskStatus.YELLOW
    else:
        bucket = RiskStatus.RED
    return RiskAssessment(bucket, percentage, remaining, days_until_due, round(load_ratio, 4))
