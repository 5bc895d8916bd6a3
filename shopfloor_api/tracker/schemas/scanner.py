"""
Request/response variants for the scan and completion calls.

Wire payloads are validated here before anything reaches the state machine. The scan
result is a closed union discriminated on ``status``.
"""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from tracker.db.models.enums import OperationStatus, OrderStatus, TravelSheetStatus


def _strip_token(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("token must not be blank")
    return v


class ScanRequest(BaseModel):
    """A scan event: operator badge plus operation checkpoint code."""
    qr_code: str = Field(..., max_length=200, description="Decoded operation checkpoint token")
    badge_id: str = Field(..., max_length=200, description="Decoded operator badge token")

    @field_validator("qr_code", "badge_id")
    @classmethod
    def _strip(cls, v: str) -> str:
        return _strip_token(v)


class ScanStarted(BaseModel):
    """The operation moved Pending -> In Progress."""
    status: Literal["started"] = "started"
    success: bool = True
    message: str = "Operation started; scan again when finished."
    operation_id: UUID
    process_name: str
    sequence_number: int
    travel_sheet_number: str


class ScanAwaitingCompletion(BaseModel):
    """The holding operator re-scanned; the caller must now collect quantities."""
    status: Literal["awaiting_completion"] = "awaiting_completion"
    success: bool = True
    message: str = "Enter good, scrap and pending quantities to complete the operation."
    operation_id: UUID
    process_name: str
    sequence_number: int
    travel_sheet_number: str
    intake_quantity: int = Field(..., description="Maximum units that can be reported")


ScanResult = Annotated[Union[ScanStarted, ScanAwaitingCompletion], Field(discriminator="status")]


class CompletionRequest(BaseModel):
    """Completion submission carrying the quantities known at the end of the operation."""
    badge_id: str = Field(..., max_length=200, description="Badge of the operator holding the operation")
    quantity_good: int = Field(..., ge=0, description="Units that passed this step")
    quantity_scrap: int = Field(0, ge=0, description="Units lost at this step")
    quantity_pending: Optional[int] = Field(
        None, ge=0, description="Units staged but not yet processed; omitted means unset"
    )
    operator_notes: Optional[str] = Field(None, max_length=1000)
    machine_id: Optional[str] = Field(None, max_length=50)

    @field_validator("badge_id")
    @classmethod
    def _strip(cls, v: str) -> str:
        return _strip_token(v)


class CompletionResult(BaseModel):
    """Outcome of an accepted completion."""
    success: bool = True
    operation_id: UUID
    operation_status: OperationStatus
    travel_sheet_status: TravelSheetStatus
    updated_order_status: OrderStatus
    quantity_completed: int = Field(..., description="Order rollup after this completion")
    quantity_scrapped: int = Field(..., description="Order rollup after this completion")
