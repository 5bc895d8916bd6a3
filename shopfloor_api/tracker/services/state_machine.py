"""
Operation lifecycle: Pending -> In Progress -> Completed.

The functions here are pure guard checks over already-loaded rows. They never touch
the session; the production service calls them while holding the sheet lock and
then applies the transition with a compare-and-swap UPDATE.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional, Sequence
from uuid import UUID

from tracker.core.errors import (
    AlreadyCompletedError,
    OperationNotStartedError,
    OperatorMismatchError,
    SequenceViolationError,
    SheetNotActiveError,
)
from tracker.db.models.enums import OperationStatus, OrderStatus, TravelSheetStatus
from tracker.db.models.production import ProductionOrder, TravelSheet, TravelSheetOperation

class ScanDecision(str, Enum):
    """What a scan on an operation's checkpoint token leads to."""
    START = "started"
    AWAIT_COMPLETION = "awaiting_completion"


def lowest_open_sequence(operations: Iterable[TravelSheetOperation]) -> Optional[int]:
    """Lowest sequence number among the non-Completed operations, or None when all are done."""
    open_sequences = [
        op.sequence_number for op in operations if op.status != OperationStatus.COMPLETED.value
    ]
    return min(open_sequences) if open_sequences else None


def is_final_operation(operation: TravelSheetOperation, operations: Sequence[TravelSheetOperation]) -> bool:
    """True when ``operation`` carries the highest sequence number of its sheet."""
    return operation.sequence_number == max(op.sequence_number for op in operations)


# PUBLIC_INTERFACE
def ensure_sheet_accepts_scans(
    sheet: TravelSheet, order: ProductionOrder, operation: Optional[TravelSheetOperation] = None
) -> None:
    """
    Scans are only accepted on Active sheets of orders that were not cancelled.

    A Completed ``operation`` answers AlreadyCompletedError first, also after its
    sheet closed, so rescans and lost completion races report the same error.
    """
    if operation is not None and operation.status == OperationStatus.COMPLETED.value:
        raise AlreadyCompletedError(operation.id)
    if sheet.status != TravelSheetStatus.ACTIVE.value:
        raise SheetNotActiveError(sheet.id, sheet.status)
    if order.status == OrderStatus.CANCELLED.value:
        raise SheetNotActiveError(sheet.id, f"part of a {OrderStatus.CANCELLED.value.lower()} order")


# PUBLIC_INTERFACE
def decide_scan(
    operation: TravelSheetOperation,
    operations: Sequence[TravelSheetOperation],
    operator_id: UUID,
) -> ScanDecision:
    """
    Decide how a scan by ``operator_id`` affects ``operation``.

    Parameters:
        operation: the scanned operation, freshly loaded under the sheet lock
        operations: every operation of the same sheet
        operator_id: resolved operator
    Returns:
        START when the Pending operation is eligible, AWAIT_COMPLETION when the holder re-scans.
    Raises:
        AlreadyCompletedError, OperatorMismatchError, SequenceViolationError
    """
    if operation.status == OperationStatus.COMPLETED.value:
        raise AlreadyCompletedError(operation.id)

    if operation.status == OperationStatus.IN_PROGRESS.value:
        if operation.operator_id != operator_id:
            raise OperatorMismatchError(operation.id, operation.operator_id, operator_id)
        return ScanDecision.AWAIT_COMPLETION

    expected = lowest_open_sequence(operations)
    if expected is None or operation.sequence_number != expected:
        raise SequenceViolationError(
            operation.id,
            operation.sequence_number,
            expected if expected is not None else operation.sequence_number,
        )
    return ScanDecision.START


# PUBLIC_INTERFACE
def ensure_completable(operation: TravelSheetOperation, operator_id: UUID) -> None:
    """Completion requires an In Progress operation held by the submitting operator."""
    if operation.status == OperationStatus.COMPLETED.value:
        raise AlreadyCompletedError(operation.id)
    if operation.status == OperationStatus.PENDING.value:
        raise OperationNotStartedError(operation.id)
    if operation.operator_id != operator_id:
        raise OperatorMismatchError(operation.id, operation.operator_id, operator_id)
