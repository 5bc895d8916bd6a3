from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.errors import (
    ConsistencyFault,
    UnknownCheckpointError,
    UnknownOperationError,
    UnknownOperatorError,
)
from tracker.db.models.personnel import Operator
from tracker.db.models.production import ProductionOrder, TravelSheet, TravelSheetOperation
from tracker.repositories.master_data import ProcessRepository
from tracker.repositories.personnel import OperatorRepository
from tracker.repositories.production import (
    OperationRepository,
    ProductionOrderRepository,
    TravelSheetRepository,
)
from tracker.services.base import BaseService


@dataclass(frozen=True)
class OperationContext:
    """An operation together with the sheet and order it belongs to."""
    operation: TravelSheetOperation
    travel_sheet: TravelSheet
    production_order: ProductionOrder


@dataclass(frozen=True)
class CheckpointContext(OperationContext):
    """Read snapshot for one scan event: who scanned which operation."""
    operator: Operator


class CheckpointResolver(BaseService):
    """Maps opaque badge and checkpoint tokens to domain rows. Lookups only."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.operator_repo = OperatorRepository(session)
        self.operation_repo = OperationRepository(session)
        self.sheet_repo = TravelSheetRepository(session)
        self.order_repo = ProductionOrderRepository(session)
        self.process_repo = ProcessRepository(session)

    # PUBLIC_INTERFACE
    async def resolve_operator(self, badge_token: str) -> Operator:
        """Return the active operator for a badge; inactive badges do not resolve."""
        operator = await self.operator_repo.get_by_badge(badge_token)
        if operator is None or not operator.is_active:
            raise UnknownOperatorError(badge_token)
        return operator

    # PUBLIC_INTERFACE
    async def resolve_checkpoint(self, checkpoint_token: str) -> TravelSheetOperation:
        operation = await self.operation_repo.get_by_checkpoint(checkpoint_token)
        if operation is None:
            raise UnknownCheckpointError(checkpoint_token)
        return operation

    # PUBLIC_INTERFACE
    async def load_operation(self, operation_id: UUID, *, fresh: bool = False) -> OperationContext:
        """
        Load an operation with its sheet and order.

        ``fresh`` re-reads the rows (and row-locks them where the backend supports it);
        use it once the entity locks are held.
        """
        operation = await self.operation_repo.get_operation(operation_id, for_update=fresh)
        if operation is None:
            raise UnknownOperationError(operation_id)
        sheet = await self.sheet_repo.get_sheet(operation.travel_sheet_id, for_update=fresh)
        if sheet is None:
            raise ConsistencyFault(
                "Operation references a missing travel sheet.",
                {"operation_id": operation.id, "travel_sheet_id": operation.travel_sheet_id},
            )
        order = await self.order_repo.get_order(sheet.production_order_id, for_update=fresh)
        if order is None:
            raise ConsistencyFault(
                "Travel sheet references a missing production order.",
                {"travel_sheet_id": sheet.id, "production_order_id": sheet.production_order_id},
            )
        return OperationContext(operation=operation, travel_sheet=sheet, production_order=order)

    # PUBLIC_INTERFACE
    async def resolve(self, badge_token: str, checkpoint_token: str, *, fresh: bool = False) -> CheckpointContext:
        """
        Resolve a scan event to a CheckpointContext.

        Raises:
            UnknownOperatorError: badge missing or operator inactive
            UnknownCheckpointError: token does not belong to any operation
        """
        operator = await self.resolve_operator(badge_token)
        operation = await self.resolve_checkpoint(checkpoint_token)
        ctx = await self.load_operation(operation.id, fresh=fresh)
        return CheckpointContext(
            operation=ctx.operation,
            travel_sheet=ctx.travel_sheet,
            production_order=ctx.production_order,
            operator=operator,
        )

    async def process_name(self, operation: TravelSheetOperation) -> Optional[str]:
        process = await self.process_repo.get_process(operation.process_id)
        return process.name if process is not None else None
