from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from tracker.db.models.enums import (
    OperationStatus,
    OrderPriority,
    OrderStatus,
    TravelSheetStatus,
)


class ProductionOrderCreate(BaseModel):
    """Create production order payload (order intake)."""
    po_number: str = Field(..., min_length=1, max_length=50, description="Production order number")
    part_number_id: UUID = Field(..., description="Part number to manufacture")
    quantity: int = Field(..., ge=0, description="Ordered (input) quantity")
    priority: OrderPriority = Field(OrderPriority.NORMAL)
    sales_order_ref: Optional[str] = Field(None, max_length=50)
    start_date: Optional[date] = Field(None)
    due_date: Optional[date] = Field(None)


class ProductionOrderRead(BaseModel):
    """Production order read model."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Production order id")
    po_number: str = Field(..., description="Production order number")
    part_number_id: UUID = Field(...)
    sales_order_ref: Optional[str] = Field(None)
    quantity: int = Field(...)
    quantity_completed: int = Field(...)
    quantity_scrapped: int = Field(...)
    status: OrderStatus = Field(...)
    priority: OrderPriority = Field(...)
    start_date: Optional[date] = Field(None)
    due_date: Optional[date] = Field(None)
    created_at: datetime = Field(..., description="Created at")
    updated_at: datetime = Field(..., description="Updated at")


class TravelSheetGenerate(BaseModel):
    """Optional parameters for travel sheet generation."""
    batch_number: Optional[str] = Field(None, max_length=50, description="Material batch / lot reference")
    quantity: Optional[int] = Field(
        None, description="Units to release onto the sheet; defaults to the order's unallocated remainder"
    )


class OperationRead(BaseModel):
    """Travel sheet operation read model."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Operation id")
    travel_sheet_id: UUID = Field(...)
    process_id: UUID = Field(...)
    process_name: Optional[str] = Field(None)
    work_center_id: Optional[UUID] = Field(None)
    sequence_number: int = Field(..., description="Required completion order within the sheet")
    standard_time_minutes: Optional[float] = Field(None)
    checkpoint_token: str = Field(..., description="Opaque token printed as the operation QR code")
    status: OperationStatus = Field(...)
    operator_id: Optional[UUID] = Field(None)
    machine_id: Optional[str] = Field(None)
    start_time: Optional[datetime] = Field(None)
    end_time: Optional[datetime] = Field(None)
    duration_minutes: Optional[float] = Field(None)
    quantity_good: int = Field(0)
    quantity_scrap: int = Field(0)
    quantity_pending: Optional[int] = Field(None, description="Unset until the completion is submitted")
    operator_notes: Optional[str] = Field(None)


class TravelSheetRead(BaseModel):
    """Travel sheet with its operations in sequence order."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Travel sheet id")
    travel_sheet_number: str = Field(...)
    production_order_id: UUID = Field(...)
    qr_code: str = Field(...)
    batch_number: Optional[str] = Field(None)
    quantity: int = Field(..., description="Units released onto this sheet")
    status: TravelSheetStatus = Field(...)
    next_sequence_number: Optional[int] = Field(
        None, description="Sequence number currently eligible to start; None once all operations completed"
    )
    created_at: datetime = Field(...)
    operations: List[OperationRead] = Field(default_factory=list)
