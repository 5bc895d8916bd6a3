from __future__ import annotations

import datetime as dt
from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from tracker.db.models.enums import OrderStatus, RiskStatus


class RiskAssessmentRead(BaseModel):
    """Due-date health of a production order."""
    production_order_id: UUID = Field(...)
    risk_status: RiskStatus = Field(...)
    completion_percentage: int = Field(..., ge=0, le=100)
    remaining_quantity: int = Field(..., ge=0)
    days_until_due: Optional[int] = Field(None, description="Negative when overdue")
    load_ratio: Optional[float] = Field(None, description="Required / available minutes until due date")


class ProductionDashboardItem(BaseModel):
    """One row of the production dashboard."""
    id: UUID = Field(..., description="Production order id")
    po_number: str = Field(...)
    sales_order_ref: Optional[str] = Field(None)
    part_number: str = Field(...)
    part_description: Optional[str] = Field(None)
    quantity: int = Field(...)
    quantity_completed: int = Field(...)
    quantity_scrapped: int = Field(...)
    status: OrderStatus = Field(...)
    due_date: Optional[date] = Field(None)
    risk_status: RiskStatus = Field(...)
    completion_percentage: int = Field(..., ge=0, le=100)


class DashboardStats(BaseModel):
    """Headline counters for the production dashboard."""
    total_open_orders: int = Field(0)
    total_completed_orders: int = Field(0)
    total_in_production: int = Field(0)
    total_on_time: int = Field(0, description="Open orders rated Green")
    total_at_risk: int = Field(0, description="Open orders rated Yellow")
    total_delayed: int = Field(0, description="Open orders rated Red")


class WorkCenterLoadItem(BaseModel):
    """Operation counts of one work center over the Active travel sheets."""
    work_center_id: Optional[UUID] = Field(None, description="None groups operations without a work center")
    work_center_code: Optional[str] = Field(None)
    work_center_name: str = Field(...)
    pending: int = Field(0)
    in_progress: int = Field(0)
    completed: int = Field(0)


class DailyProductionItem(BaseModel):
    """Units reported on one UTC calendar day."""
    date: dt.date = Field(...)
    good: int = Field(0, description="Good units of final operations, as credited to orders")
    scrap: int = Field(0, description="Scrap reported at any step")
