from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Path

from tracker.core.deps import get_production_service
from tracker.schemas.production import OperationRead
from tracker.schemas.scanner import CompletionRequest, CompletionResult, ScanRequest, ScanResult
from tracker.services.production import ProductionService

router = APIRouter(prefix="/qr-scanner", tags=["QR Scanner"])


# PUBLIC_INTERFACE
@router.post(
    "/scan",
    response_model=ScanResult,
    summary="Process a checkpoint scan",
    description=(
        "Start the scanned operation, or, when its holder scans it again, ask for completion "
        "quantities (status 'awaiting_completion')."
    ),
)
async def scan(
    payload: ScanRequest,
    svc: ProductionService = Depends(get_production_service),
):
    return await svc.process_scan(payload.badge_id, payload.qr_code)


# PUBLIC_INTERFACE
@router.put(
    "/operations/{operation_id}/complete",
    response_model=CompletionResult,
    summary="Complete an operation",
    description="Submit good/scrap/pending quantities for an operation in progress and roll them up to the order.",
)
async def complete_operation(
    payload: CompletionRequest,
    operation_id: UUID = Path(...),
    svc: ProductionService = Depends(get_production_service),
) -> CompletionResult:
    return await svc.complete_operation(operation_id, payload)


# PUBLIC_INTERFACE
@router.get(
    "/operations/{operation_id}",
    response_model=OperationRead,
    summary="Get operation",
)
async def get_operation(
    operation_id: UUID = Path(...),
    svc: ProductionService = Depends(get_production_service),
) -> OperationRead:
    return await svc.get_operation(operation_id)
