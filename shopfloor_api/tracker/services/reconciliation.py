"""
Quantity reconciliation for operation completions.

A completion reports ``(good, scrap, pending)`` against the operation's intake, which
is the previous operation's good output (or the sheet quantity for the first step).
Scrap is rolled up to the order at every step; good output is credited to the order
only when the sheet's final operation completes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Union

from tracker.core.errors import ConsistencyFault, InvalidQuantityError, QuantityOverrunError
from tracker.db.models.enums import OperationStatus
from tracker.db.models.production import ProductionOrder, TravelSheet, TravelSheetOperation


class _Unset:
    """Marker for a pending quantity that was never reported."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()


@dataclass(frozen=True)
class Count:
    """A reported pending quantity."""
    value: int


PendingQuantity = Union[_Unset, Count]


def pending_from_optional(value: Optional[int]) -> PendingQuantity:
    return UNSET if value is None else Count(value)


def resolve_pending(pending: PendingQuantity) -> int:
    """Unset counts as zero; only reconciliation may make that call."""
    return pending.value if isinstance(pending, Count) else 0


@dataclass(frozen=True)
class QuantityReport:
    """Quantities submitted with a completion."""
    good: int
    scrap: int = 0
    pending: PendingQuantity = UNSET

    @classmethod
    def from_values(cls, good: int, scrap: int = 0, pending: Optional[int] = None) -> "QuantityReport":
        return cls(good=good, scrap=scrap, pending=pending_from_optional(pending))


@dataclass(frozen=True)
class Reconciliation:
    """Accepted completion quantities and the deltas they add to the order."""
    good: int
    scrap: int
    pending: int
    intake: int
    completed_delta: int
    scrapped_delta: int

    @property
    def reported_total(self) -> int:
        return self.good + self.scrap + self.pending


@dataclass(frozen=True)
class OrderRollup:
    """Order counters as they will be after the completion is applied."""
    quantity: int
    quantity_completed: int
    quantity_scrapped: int

    @property
    def is_fully_accounted(self) -> bool:
        return self.quantity_completed + self.quantity_scrapped == self.quantity


# PUBLIC_INTERFACE
def intake_quantity(
    operation: TravelSheetOperation,
    operations: Sequence[TravelSheetOperation],
    sheet: TravelSheet,
) -> int:
    """
    Units available to ``operation``.

    The predecessor is the operation with the highest sequence number below this one,
    compared numerically. Its good output is only meaningful once it is Completed.
    """
    predecessors = [op for op in operations if op.sequence_number < operation.sequence_number]
    if not predecessors:
        return sheet.quantity
    previous = max(predecessors, key=lambda op: op.sequence_number)
    if previous.status != OperationStatus.COMPLETED.value:
        raise ConsistencyFault(
            "Predecessor operation is not completed; intake is undefined.",
            {"operation_id": operation.id, "previous_operation_id": previous.id},
        )
    return previous.quantity_good


# PUBLIC_INTERFACE
def reconcile(
    operation: TravelSheetOperation,
    report: QuantityReport,
    *,
    intake: int,
    is_final: bool,
) -> Reconciliation:
    """
    Validate a completion report against the operation's intake.

    Raises:
        InvalidQuantityError: a negative quantity was submitted
        QuantityOverrunError: good + scrap + pending exceeds the intake
    """
    pending = resolve_pending(report.pending)
    for name, value in (("quantity_good", report.good), ("quantity_scrap", report.scrap), ("quantity_pending", pending)):
        if value < 0:
            raise InvalidQuantityError(
                f"{name} must not be negative.",
                {"operation_id": operation.id, "field": name, "received": value},
            )

    submitted = report.good + report.scrap + pending
    if submitted > intake:
        raise QuantityOverrunError(operation.id, intake, submitted)

    return Reconciliation(
        good=report.good,
        scrap=report.scrap,
        pending=pending,
        intake=intake,
        completed_delta=report.good if is_final else 0,
        scrapped_delta=report.scrap,
    )


# PUBLIC_INTERFACE
def project_rollup(order: ProductionOrder, reconciliation: Reconciliation) -> OrderRollup:
    """
    Compute the order counters after ``reconciliation`` is applied.

    Raises ConsistencyFault if the result would exceed the ordered quantity.
    """
    rollup = OrderRollup(
        quantity=order.quantity,
        quantity_completed=order.quantity_completed + reconciliation.completed_delta,
        quantity_scrapped=order.quantity_scrapped + reconciliation.scrapped_delta,
    )
    if rollup.quantity_completed + rollup.quantity_scrapped > rollup.quantity:
        raise ConsistencyFault(
            "Rollup would exceed the production order quantity.",
            {
                "production_order_id": order.id,
                "quantity": rollup.quantity,
                "quantity_completed": rollup.quantity_completed,
                "quantity_scrapped": rollup.quantity_scrapped,
            },
        )
    return rollup
