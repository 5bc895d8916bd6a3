from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query, status

from tracker.core.deps import get_dashboard_service, get_production_service
from tracker.db.models.enums import OrderStatus
from tracker.schemas.common import MessageResponse
from tracker.schemas.dashboard import RiskAssessmentRead
from tracker.schemas.production import (
    ProductionOrderCreate,
    ProductionOrderRead,
    TravelSheetGenerate,
    TravelSheetRead,
)
from tracker.services.dashboard import DashboardService
from tracker.services.production import ProductionService

router = APIRouter(tags=["Production"])


# PUBLIC_INTERFACE
@router.get(
    "/production-orders",
    response_model=List[ProductionOrderRead],
    summary="List production orders",
    description="List production orders ordered by created_at desc.",
)
async def list_production_orders(
    svc: ProductionService = Depends(get_production_service),
    status_filter: Optional[List[OrderStatus]] = Query(None, alias="status", description="Filter by status"),
    po_number: Optional[str] = Query(None, description="Filter by PO number (substring)"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[ProductionOrderRead]:
    items = await svc.list_production_orders(status=status_filter, po_number=po_number, limit=limit, offset=offset)
    return [ProductionOrderRead.model_validate(x) for x in items]


# PUBLIC_INTERFACE
@router.post(
    "/production-orders",
    response_model=ProductionOrderRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create production order",
    description="Register a production order (order intake). The order starts in status Created.",
)
async def create_production_order(
    payload: ProductionOrderCreate,
    svc: ProductionService = Depends(get_production_service),
) -> ProductionOrderRead:
    created = await svc.create_production_order(payload)
    return ProductionOrderRead.model_validate(created)


# PUBLIC_INTERFACE
@router.get(
    "/production-orders/{po_id}",
    response_model=ProductionOrderRead,
    summary="Get production order",
)
async def get_production_order(
    po_id: UUID = Path(...),
    svc: ProductionService = Depends(get_production_service),
) -> ProductionOrderRead:
    return ProductionOrderRead.model_validate(await svc.get_production_order(po_id))


# PUBLIC_INTERFACE
@router.post(
    "/production-orders/{po_id}/cancel",
    response_model=ProductionOrderRead,
    summary="Cancel production order",
    description="Cancel an open production order and its Active travel sheets.",
)
async def cancel_production_order(
    po_id: UUID = Path(...),
    svc: ProductionService = Depends(get_production_service),
) -> ProductionOrderRead:
    return ProductionOrderRead.model_validate(await svc.cancel_production_order(po_id))


# PUBLIC_INTERFACE
@router.delete(
    "/production-orders/{po_id}",
    response_model=MessageResponse,
    summary="Delete production order",
    description="Delete a production order. Rejected with 409 while any non-cancelled travel sheet references it.",
)
async def delete_production_order(
    po_id: UUID = Path(...),
    svc: ProductionService = Depends(get_production_service),
) -> MessageResponse:
    await svc.delete_production_order(po_id)
    return MessageResponse(message="Production order deleted", details={"id": str(po_id)})


# PUBLIC_INTERFACE
@router.post(
    "/production-orders/{po_id}/generate-travel-sheet",
    response_model=TravelSheetRead,
    status_code=status.HTTP_201_CREATED,
    summary="Generate travel sheet",
    description=(
        "Materialize a travel sheet with one Pending operation per routing step. Each operation "
        "carries a unique checkpoint token to be printed as its QR code."
    ),
)
async def generate_travel_sheet(
    po_id: UUID = Path(...),
    payload: Optional[TravelSheetGenerate] = Body(None),
    svc: ProductionService = Depends(get_production_service),
) -> TravelSheetRead:
    payload = payload or TravelSheetGenerate()
    return await svc.generate_travel_sheet(po_id, batch_number=payload.batch_number, quantity=payload.quantity)


# PUBLIC_INTERFACE
@router.get(
    "/production-orders/{po_id}/travel-sheets",
    response_model=List[TravelSheetRead],
    summary="List travel sheets of an order",
)
async def list_travel_sheets(
    po_id: UUID = Path(...),
    svc: ProductionService = Depends(get_production_service),
) -> List[TravelSheetRead]:
    return await svc.list_travel_sheets(po_id)


# PUBLIC_INTERFACE
@router.get(
    "/production-orders/{po_id}/risk",
    response_model=RiskAssessmentRead,
    summary="Due-date risk of an order",
    description="Green/Yellow/Red due-date health and completion percentage.",
)
async def get_order_risk(
    po_id: UUID = Path(...),
    svc: DashboardService = Depends(get_dashboard_service),
) -> RiskAssessmentRead:
    return await svc.order_risk(po_id)


# PUBLIC_INTERFACE
@router.get(
    "/travel-sheets/{sheet_id}",
    response_model=TravelSheetRead,
    summary="Get travel sheet",
)
async def get_travel_sheet(
    sheet_id: UUID = Path(...),
    svc: ProductionService = Depends(get_production_service),
) -> TravelSheetRead:
    return await svc.get_travel_sheet(sheet_id)


# PUBLIC_INTERFACE
@router.post(
    "/travel-sheets/{sheet_id}/cancel",
    response_model=TravelSheetRead,
    summary="Cancel travel sheet",
    description="Cancel an Active travel sheet that has no operation in progress.",
)
async def cancel_travel_sheet(
    sheet_id: UUID = Path(...),
    svc: ProductionService = Depends(get_production_service),
) -> TravelSheetRead:
    return await svc.cancel_travel_sheet(sheet_id)
