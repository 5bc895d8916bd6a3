"""
Error taxonomy for the shop-floor tracker.

Three families, kept distinct so callers never confuse a normal workflow collision
with a defect:

- InputError: client caused (unknown token, malformed quantities). Recoverable by
  a corrected resubmission.
- GuardError: an invariant guard of the operation state machine rejected the request.
  Expected and frequent; always surfaced, never retried automatically.
- ConsistencyFault: a rollup would have violated a data invariant. The mutation is
  rolled back and the fault propagates as an internal error.

Every error carries a machine-readable ``code``, a plain-language ``message`` for
operator-facing screens and a ``details`` dict (operation id, expected vs received
quantity, ...).
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import UUID


class TrackerError(Exception):
    """Base class for all tracker errors."""

    code: str = "tracker_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = {
            k: (str(v) if isinstance(v, UUID) else v) for k, v in (details or {}).items()
        }


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------
class InputError(TrackerError):
    """Client-caused error, fixed by resubmitting corrected input."""

    code = "input_error"


class NotFoundError(InputError):
    """A referenced entity or token does not resolve."""

    code = "not_found"


class UnknownOperatorError(NotFoundError):
    code = "unknown_operator"

    def __init__(self, badge_token: str) -> None:
        super().__init__(
            "Operator badge not recognized or inactive.",
            {"badge_token": badge_token},
        )


class UnknownCheckpointError(NotFoundError):
    code = "unknown_checkpoint"

    def __init__(self, checkpoint_token: str) -> None:
        super().__init__(
            "Checkpoint code does not belong to any operation.",
            {"checkpoint_token": checkpoint_token},
        )


class UnknownOperationError(NotFoundError):
    code = "unknown_operation"

    def __init__(self, operation_id: UUID) -> None:
        super().__init__("Operation not found.", {"operation_id": operation_id})


class UnknownProductionOrderError(NotFoundError):
    code = "unknown_production_order"

    def __init__(self, production_order_id: UUID) -> None:
        super().__init__(
            "Production order not found.", {"production_order_id": production_order_id}
        )


class UnknownTravelSheetError(NotFoundError):
    code = "unknown_travel_sheet"

    def __init__(self, travel_sheet_id: UUID) -> None:
        super().__init__("Travel sheet not found.", {"travel_sheet_id": travel_sheet_id})


class InvalidQuantityError(InputError):
    code = "invalid_quantity"


class InvalidRoutingError(InputError):
    code = "invalid_routing"


# ---------------------------------------------------------------------------
# Invariant guard errors
# ---------------------------------------------------------------------------
class GuardError(TrackerError):
    """The state machine rejected a transition; this is expected behaviour."""

    code = "guard_error"


class SequenceViolationError(GuardError):
    code = "sequence_violation"

    def __init__(self, operation_id: UUID, sequence_number: int, expected_sequence: int) -> None:
        super().__init__(
            "Previous operation not yet complete.",
            {
                "operation_id": operation_id,
                "sequence_number": sequence_number,
                "expected_sequence_number": expected_sequence,
            },
        )


class OperatorMismatchError(GuardError):
    code = "operator_mismatch"

    def __init__(self, operation_id: UUID, holder_id: Optional[UUID], operator_id: UUID) -> None:
        super().__init__(
            "Operation was started by another operator.",
            {
                "operation_id": operation_id,
                "started_by": holder_id,
                "scanned_by": operator_id,
            },
        )


class AlreadyCompletedError(GuardError):
    code = "already_completed"

    def __init__(self, operation_id: UUID) -> None:
        super().__init__("Operation is already completed.", {"operation_id": operation_id})


class OperationNotStartedError(GuardError):
    code = "operation_not_started"

    def __init__(self, operation_id: UUID) -> None:
        super().__init__(
            "Operation has not been started; scan it first.", {"operation_id": operation_id}
        )


class QuantityOverrunError(GuardError):
    code = "quantity_overrun"

    def __init__(self, operation_id: UUID, intake: int, submitted: int) -> None:
        super().__init__(
            f"Reported quantity {submitted} exceeds the {intake} units available to this operation.",
            {"operation_id": operation_id, "expected_max": intake, "received": submitted},
        )


class DuplicateGenerationError(GuardError):
    code = "duplicate_travel_sheet"

    def __init__(self, production_order_id: UUID, active_sheet_number: str) -> None:
        super().__init__(
            "Production order already has an active travel sheet.",
            {
                "production_order_id": production_order_id,
                "active_travel_sheet": active_sheet_number,
            },
        )


class SheetNotActiveError(GuardError):
    code = "travel_sheet_not_active"

    def __init__(self, travel_sheet_id: UUID, status: str) -> None:
        super().__init__(
            f"Travel sheet is {status}; scans are not accepted.",
            {"travel_sheet_id": travel_sheet_id, "status": status},
        )


class OrderStateError(GuardError):
    code = "order_state"


# ---------------------------------------------------------------------------
# Consistency faults
# ---------------------------------------------------------------------------
class ConsistencyFault(TrackerError):
    """A mutation would break a data invariant. Indicates a defect, not a user error."""

    code = "consistency_fault"
