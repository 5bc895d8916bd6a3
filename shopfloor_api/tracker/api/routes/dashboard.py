from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from tracker.core.deps import get_dashboard_service
from tracker.db.models.enums import RiskStatus
from tracker.schemas.dashboard import (
    DailyProductionItem,
    DashboardStats,
    ProductionDashboardItem,
    WorkCenterLoadItem,
)
from tracker.services.dashboard import DashboardService

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


# PUBLIC_INTERFACE
@router.get(
    "/stats",
    response_model=DashboardStats,
    summary="Dashboard counters",
    description="Open/completed/in-production counts and risk buckets over open orders.",
)
async def dashboard_stats(svc: DashboardService = Depends(get_dashboard_service)) -> DashboardStats:
    return await svc.dashboard_stats()


# PUBLIC_INTERFACE
@router.get(
    "/production",
    response_model=List[ProductionDashboardItem],
    summary="Production dashboard",
    description="One row per non-cancelled production order with risk status and completion percentage.",
)
async def production_dashboard(
    risk_status: Optional[RiskStatus] = Query(None, description="Filter by risk bucket"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    svc: DashboardService = Depends(get_dashboard_service),
) -> List[ProductionDashboardItem]:
    return await svc.production_dashboard(risk_status=risk_status, limit=limit, offset=offset)


# PUBLIC_INTERFACE
@router.get(
    "/work-center-load",
    response_model=List[WorkCenterLoadItem],
    summary="Work center load",
    description="Pending, in-progress and completed operations per work center on active travel sheets.",
)
async def work_center_load(svc: DashboardService = Depends(get_dashboard_service)) -> List[WorkCenterLoadItem]:
    return await svc.work_center_load()


# PUBLIC_INTERFACE
@router.get(
    "/daily-production",
    response_model=List[DailyProductionItem],
    summary="Daily production",
    description="Good and scrap units per UTC day, oldest first; days without completions report zeros.",
)
async def daily_production(
    days: int = Query(7, ge=1, le=90, description="Number of days ending today"),
    svc: DashboardService = Depends(get_dashboard_service),
) -> List[DailyProductionItem]:
    return await svc.daily_production(days=days)
