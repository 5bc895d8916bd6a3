from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class WsEnvelope(BaseModel):
    """Envelope for WebSocket messages."""
    type: str = Field(..., description="Message type (e.g., 'operation.started', 'operation.completed').")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Message payload.")
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Timestamp (UTC).")
    channel: Optional[str] = Field(default=None, description="Optional sub-channel (work center code).")


class FloorEvent(BaseModel):
    """Shop-floor progress event pushed to station displays and dashboards."""
    event: str = Field(..., description="Event type (e.g., 'operation.started', 'operation.completed').")
    operation_id: UUID = Field(...)
    travel_sheet_id: UUID = Field(...)
    production_order_id: UUID = Field(...)
    sequence_number: int = Field(...)
    operator_id: Optional[UUID] = Field(default=None)
    details: Dict[str, Any] = Field(default_factory=dict, description="Event details (quantities, statuses).")
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Event timestamp (UTC).")
