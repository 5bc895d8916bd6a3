from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tracker.core.errors import (
    ConsistencyFault,
    InvalidQuantityError,
    NotFoundError,
    OrderStateError,
    SheetNotActiveError,
    UnknownProductionOrderError,
    UnknownTravelSheetError,
)
from tracker.core.settings import AppSettings, get_app_settings
from tracker.db.base import as_utc, utcnow
from tracker.db.models.enums import OperationStatus, OrderStatus, TravelSheetStatus
from tracker.db.models.production import ProductionOrder, TravelSheet, TravelSheetOperation
from tracker.repositories.master_data import PartNumberRepository, ProcessRepository
from tracker.repositories.production import (
    OperationRepository,
    ProductionOrderRepository,
    StatusEventRepository,
    TravelSheetRepository,
)
from tracker.schemas.production import OperationRead, ProductionOrderCreate, TravelSheetRead
from tracker.schemas.realtime import FloorEvent
from tracker.schemas.scanner import (
    CompletionRequest,
    CompletionResult,
    ScanAwaitingCompletion,
    ScanStarted,
)
from tracker.services.base import BaseService
from tracker.services.checkpoints import CheckpointResolver
from tracker.services.locks import entity_locks, order_key, sheet_key
from tracker.services.realtime import broadcast_manager
from tracker.services.reconciliation import (
    QuantityReport,
    intake_quantity,
    project_rollup,
    reconcile,
)
from tracker.services.state_machine import (
    ScanDecision,
    decide_scan,
    ensure_completable,
    ensure_sheet_accepts_scans,
    is_final_operation,
    lowest_open_sequence,
)
from tracker.services.travel_sheets import TravelSheetGenerator

logger = logging.getLogger(__name__)

ScanOutcome = Union[ScanStarted, ScanAwaitingCompletion]


class ProductionService(BaseService):
    """
    Domain service for shop-floor execution.

    Every mutating call follows the same shape: resolve the entities, take the sheet
    lock(s) then the order lock, re-read the rows, run the pure guards, apply
    compare-and-swap updates, commit. Any error rolls the whole unit back. Floor
    events are published after the commit and never fail the call.
    """

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session)
        self.settings = settings or get_app_settings()
        self.order_repo = ProductionOrderRepository(session)
        self.sheet_repo = TravelSheetRepository(session)
        self.operation_repo = OperationRepository(session)
        self.event_repo = StatusEventRepository(session)
        self.part_repo = PartNumberRepository(session)
        self.process_repo = ProcessRepository(session)
        self.resolver = CheckpointResolver(session)
        self.generator = TravelSheetGenerator(session, self.settings)

    async def _publish(
        self, event: str, operation: TravelSheetOperation, order_id: UUID, operator_id: UUID, **details
    ) -> None:
        try:
            await broadcast_manager.publish_floor_event(
                FloorEvent(
                    event=event,
                    operation_id=operation.id,
                    travel_sheet_id=operation.travel_sheet_id,
                    production_order_id=order_id,
                    sequence_number=operation.sequence_number,
                    operator_id=operator_id,
                    details=details,
                )
            )
        except Exception:
            logger.exception("Failed to publish floor event %s", event)

    async def _sheet_for(self, sheet_id: UUID) -> TravelSheet:
        sheet = await self.sheet_repo.get_sheet(sheet_id)
        if sheet is None:
            raise UnknownTravelSheetError(sheet_id)
        return sheet

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------
    def _operation_read(self, op: TravelSheetOperation, process_name: Optional[str]) -> OperationRead:
        read = OperationRead.model_validate(op)
        return read.model_copy(
            update={
                "process_name": process_name,
                "start_time": as_utc(op.start_time),
                "end_time": as_utc(op.end_time),
            }
        )

    async def _sheet_read(self, sheet: TravelSheet) -> TravelSheetRead:
        operations = await self.operation_repo.list_for_sheet(sheet.id)
        names = await self.process_repo.get_names(op.process_id for op in operations)
        read = TravelSheetRead.model_validate(sheet, from_attributes=True)
        return read.model_copy(
            update={
                "next_sequence_number": lowest_open_sequence(operations),
                "operations": [self._operation_read(op, names.get(op.process_id)) for op in operations],
            }
        )

    # ------------------------------------------------------------------
    # Production orders
    # ------------------------------------------------------------------
    # PUBLIC_INTERFACE
    async def create_production_order(self, payload: ProductionOrderCreate) -> ProductionOrder:
        """Register a production order in status Created."""
        async with self.unit_of_work("create_production_order"):
            if payload.quantity < 0:
                raise InvalidQuantityError("Order quantity must not be negative.", {"received": payload.quantity})
            part = await self.part_repo.get_part_number(payload.part_number_id)
            if part is None:
                raise NotFoundError("Part number not found.", {"part_number_id": payload.part_number_id})
            if await self.order_repo.get_by_po_number(payload.po_number) is not None:
                raise OrderStateError(
                    "Production order number already exists.", {"po_number": payload.po_number}
                )
            order = await self.order_repo.create_order(payload)
            await self.event_repo.record(
                entity_type="production_order", entity_id=order.id, status=OrderStatus.CREATED.value,
                reason_code="created",
            )
        logger.info("Created production order %s for %d units", order.po_number, order.quantity)
        return order

    # PUBLIC_INTERFACE
    async def list_production_orders(
        self,
        *,
        status: Optional[Sequence[OrderStatus]] = None,
        po_number: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[ProductionOrder]:
        statuses = [s.value for s in status] if status else None
        return await self.order_repo.list_orders(status=statuses, po_number=po_number, limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def get_production_order(self, production_order_id: UUID) -> ProductionOrder:
        order = await self.order_repo.get_order(production_order_id)
        if order is None:
            raise UnknownProductionOrderError(production_order_id)
        return order

    # PUBLIC_INTERFACE
    async def cancel_production_order(self, production_order_id: UUID) -> ProductionOrder:
        """Cancel an open order together with its Active travel sheets."""
        await self.get_production_order(production_order_id)
        active = await self.sheet_repo.list_by_status(production_order_id, [TravelSheetStatus.ACTIVE.value])
        keys = [sheet_key(s.id) for s in sorted(active, key=lambda s: str(s.id))]
        async with entity_locks.hold(*keys, order_key(production_order_id)):
            async with self.unit_of_work("cancel_production_order"):
                order = await self.order_repo.get_order(production_order_id, for_update=True)
                if order is None:
                    raise UnknownProductionOrderError(production_order_id)
                if not OrderStatus(order.status).is_open:
                    raise OrderStateError(
                        f"Production order is already {order.status}.",
                        {"production_order_id": order.id, "status": order.status},
                    )
                for sheet in await self.sheet_repo.list_by_status(order.id, [TravelSheetStatus.ACTIVE.value]):
                    await self.sheet_repo.set_status(
                        sheet.id, TravelSheetStatus.CANCELLED.value, expected=[TravelSheetStatus.ACTIVE.value]
                    )
                    await self.event_repo.record(
                        entity_type="travel_sheet", entity_id=sheet.id, status=TravelSheetStatus.CANCELLED.value,
                        reason_code="order_cancelled",
                    )
                if not await self.order_repo.set_status(
                    order.id, OrderStatus.CANCELLED.value, expected=[order.status]
                ):
                    raise ConsistencyFault("Order status changed under lock.", {"production_order_id": order.id})
                await self.event_repo.record(
                    entity_type="production_order", entity_id=order.id, status=OrderStatus.CANCELLED.value,
                    reason_code="cancelled",
                )
            await self.session.refresh(order)
        logger.info("Cancelled production order %s", order.po_number)
        return order

    # PUBLIC_INTERFACE
    async def delete_production_order(self, production_order_id: UUID) -> None:
        """
        Delete an order. Forbidden while any non-cancelled travel sheet references it;
        cancelled sheets are removed together with the order.
        """
        async with entity_locks.hold(order_key(production_order_id)):
            async with self.unit_of_work("delete_production_order"):
                order = await self.order_repo.get_order(production_order_id, for_update=True)
                if order is None:
                    raise UnknownProductionOrderError(production_order_id)
                live = await self.sheet_repo.list_by_status(
                    order.id, [TravelSheetStatus.ACTIVE.value, TravelSheetStatus.COMPLETED.value]
                )
                if live:
                    raise OrderStateError(
                        "Production order is referenced by travel sheets that are not cancelled.",
                        {
                            "production_order_id": order.id,
                            "travel_sheets": [s.travel_sheet_number for s in live],
                        },
                    )
                await self.order_repo.delete_order_tree(order.id)
        logger.info("Deleted production order %s", production_order_id)

    # ------------------------------------------------------------------
    # Travel sheets
    # ------------------------------------------------------------------
    # PUBLIC_INTERFACE
    async def generate_travel_sheet(
        self,
        production_order_id: UUID,
        *,
        batch_number: Optional[str] = None,
        quantity: Optional[int] = None,
    ) -> TravelSheetRead:
        """
        Generate a travel sheet for an order (GenerateTravelSheet).

        Returns:
            The new sheet with its Pending operations and their checkpoint tokens.
        """
        async with entity_locks.hold(order_key(production_order_id)):
            async with self.unit_of_work("generate_travel_sheet"):
                sheet = await self.generator.generate(
                    production_order_id, batch_number=batch_number, quantity=quantity
                )
            return await self._sheet_read(sheet)

    # PUBLIC_INTERFACE
    async def list_travel_sheets(self, production_order_id: UUID) -> List[TravelSheetRead]:
        await self.get_production_order(production_order_id)
        sheets = await self.sheet_repo.list_for_order(production_order_id)
        return [await self._sheet_read(s) for s in sheets]

    # PUBLIC_INTERFACE
    async def get_travel_sheet(self, travel_sheet_id: UUID) -> TravelSheetRead:
        return await self._sheet_read(await self._sheet_for(travel_sheet_id))

    # PUBLIC_INTERFACE
    async def cancel_travel_sheet(self, travel_sheet_id: UUID) -> TravelSheetRead:
        """
        Cancel an Active sheet with no operation In Progress. Completed operations keep
        what they already rolled up; the sheet's quantity becomes allocatable again.
        """
        sheet = await self._sheet_for(travel_sheet_id)
        async with entity_locks.hold(sheet_key(sheet.id), order_key(sheet.production_order_id)):
            async with self.unit_of_work("cancel_travel_sheet"):
                sheet = await self.sheet_repo.get_sheet(travel_sheet_id, for_update=True)
                if sheet is None:
                    raise UnknownTravelSheetError(travel_sheet_id)
                if sheet.status != TravelSheetStatus.ACTIVE.value:
                    raise SheetNotActiveError(sheet.id, sheet.status)
                busy = await self.operation_repo.count_in_progress(sheet.id)
                if busy:
                    raise OrderStateError(
                        "Travel sheet has operations in progress; complete them before cancelling.",
                        {"travel_sheet_id": sheet.id, "in_progress": busy},
                    )
                if not await self.sheet_repo.set_status(
                    sheet.id, TravelSheetStatus.CANCELLED.value, expected=[TravelSheetStatus.ACTIVE.value]
                ):
                    raise ConsistencyFault("Travel sheet status changed under lock.", {"travel_sheet_id": sheet.id})
                await self.event_repo.record(
                    entity_type="travel_sheet", entity_id=sheet.id, status=TravelSheetStatus.CANCELLED.value,
                    reason_code="cancelled",
                )
            await self.session.refresh(sheet)
            logger.info("Cancelled travel sheet %s", sheet.travel_sheet_number)
            return await self._sheet_read(sheet)

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------
    # PUBLIC_INTERFACE
    async def get_operation(self, operation_id: UUID) -> OperationRead:
        ctx = await self.resolver.load_operation(operation_id)
        return self._operation_read(ctx.operation, await self.resolver.process_name(ctx.operation))

    # PUBLIC_INTERFACE
    async def process_scan(self, badge_token: str, checkpoint_token: str) -> ScanOutcome:
        """
        Handle one scan event (ProcessScan).

        A Pending operation that is next in sequence starts; the holding operator's
        re-scan of an In Progress operation asks for completion quantities.

        Raises:
            UnknownOperatorError, UnknownCheckpointError, SheetNotActiveError,
            SequenceViolationError, OperatorMismatchError, AlreadyCompletedError
        """
        # Tokens are resolved before locking to find the lock keys; the rows are
        # re-read once the locks are held.
        await self.resolver.resolve_operator(badge_token)
        located = await self.resolver.resolve_checkpoint(checkpoint_token)
        sheet = await self._sheet_for(located.travel_sheet_id)

        async with entity_locks.hold(sheet_key(sheet.id), order_key(sheet.production_order_id)):
            async with self.unit_of_work("process_scan"):
                ctx = await self.resolver.resolve(badge_token, checkpoint_token, fresh=True)
                ensure_sheet_accepts_scans(ctx.travel_sheet, ctx.production_order, ctx.operation)
                operations = await self.operation_repo.list_for_sheet(ctx.travel_sheet.id)
                decision = decide_scan(ctx.operation, operations, ctx.operator.id)
                process_name = await self.resolver.process_name(ctx.operation) or ""

                if decision is ScanDecision.START and not await self.operation_repo.mark_started(
                    ctx.operation.id, operator_id=ctx.operator.id, at=utcnow()
                ):
                    # Another worker process started it first; decide again on its row.
                    fresh = await self.operation_repo.get_operation(ctx.operation.id, for_update=True)
                    decision = decide_scan(fresh, operations, ctx.operator.id)
                    if decision is ScanDecision.START:
                        raise ConsistencyFault(
                            "Operation could not be started.", {"operation_id": ctx.operation.id}
                        )

                if decision is ScanDecision.AWAIT_COMPLETION:
                    result: ScanOutcome = ScanAwaitingCompletion(
                        operation_id=ctx.operation.id,
                        process_name=process_name,
                        sequence_number=ctx.operation.sequence_number,
                        travel_sheet_number=ctx.travel_sheet.travel_sheet_number,
                        intake_quantity=intake_quantity(ctx.operation, operations, ctx.travel_sheet),
                    )
                else:
                    await self.event_repo.record(
                        entity_type="operation", entity_id=ctx.operation.id,
                        status=OperationStatus.IN_PROGRESS.value, reason_code="scan_start",
                        operator_id=ctx.operator.id,
                    )
                    if await self.order_repo.set_status(
                        ctx.production_order.id, OrderStatus.IN_PROGRESS.value,
                        expected=[OrderStatus.RELEASED.value],
                    ):
                        await self.event_repo.record(
                            entity_type="production_order", entity_id=ctx.production_order.id,
                            status=OrderStatus.IN_PROGRESS.value, reason_code="first_operation_started",
                        )
                    result = ScanStarted(
                        operation_id=ctx.operation.id,
                        process_name=process_name,
                        sequence_number=ctx.operation.sequence_number,
                        travel_sheet_number=ctx.travel_sheet.travel_sheet_number,
                    )

        if isinstance(result, ScanStarted):
            logger.info(
                "Operation %s (seq %d, sheet %s) started by operator %s",
                result.operation_id, result.sequence_number, result.travel_sheet_number, ctx.operator.id,
            )
            await self._publish("operation.started", ctx.operation, ctx.production_order.id, ctx.operator.id)
        return result

    # PUBLIC_INTERFACE
    async def complete_operation(self, operation_id: UUID, request: CompletionRequest) -> CompletionResult:
        """
        Complete an In Progress operation and reconcile its quantities (CompleteOperation).

        Scrap rolls up to the order at every step; good output only when the final
        operation of the sheet completes. The order completes once
        ``quantity_completed + quantity_scrapped == quantity``.

        Raises:
            UnknownOperatorError, UnknownOperationError, InvalidQuantityError,
            SheetNotActiveError, AlreadyCompletedError, OperationNotStartedError,
            OperatorMismatchError, QuantityOverrunError, ConsistencyFault
        """
        report = QuantityReport.from_values(request.quantity_good, request.quantity_scrap, request.quantity_pending)
        operator = await self.resolver.resolve_operator(request.badge_id)
        located = await self.resolver.load_operation(operation_id)
        sheet_id = located.travel_sheet.id
        order_id = located.production_order.id

        async with entity_locks.hold(sheet_key(sheet_id), order_key(order_id)):
            async with self.unit_of_work("complete_operation"):
                ctx = await self.resolver.load_operation(operation_id, fresh=True)
                ensure_sheet_accepts_scans(ctx.travel_sheet, ctx.production_order, ctx.operation)
                ensure_completable(ctx.operation, operator.id)

                operations = await self.operation_repo.list_for_sheet(sheet_id)
                is_final = is_final_operation(ctx.operation, operations)
                outcome = reconcile(
                    ctx.operation,
                    report,
                    intake=intake_quantity(ctx.operation, operations, ctx.travel_sheet),
                    is_final=is_final,
                )
                rollup = project_rollup(ctx.production_order, outcome)

                now = utcnow()
                started_at = as_utc(ctx.operation.start_time)
                duration = round((now - started_at).total_seconds() / 60.0, 2) if started_at else None
                completed = await self.operation_repo.mark_completed(
                    ctx.operation.id,
                    operator_id=operator.id,
                    good=outcome.good,
                    scrap=outcome.scrap,
                    pending=outcome.pending,
                    at=now,
                    duration_minutes=duration,
                    notes=request.operator_notes,
                    machine_id=request.machine_id,
                )
                if not completed:
                    fresh = await self.operation_repo.get_operation(ctx.operation.id, for_update=True)
                    ensure_completable(fresh, operator.id)
                    raise ConsistencyFault("Operation could not be completed.", {"operation_id": ctx.operation.id})
                await self.event_repo.record(
                    entity_type="operation", entity_id=ctx.operation.id, status=OperationStatus.COMPLETED.value,
                    reason_code="scan_complete", notes=request.operator_notes, operator_id=operator.id,
                )

                if not await self.order_repo.apply_rollup(
                    order_id, completed_delta=outcome.completed_delta, scrapped_delta=outcome.scrapped_delta
                ):
                    raise ConsistencyFault(
                        "Rollup would exceed the production order quantity.",
                        {
                            "production_order_id": order_id,
                            "completed_delta": outcome.completed_delta,
                            "scrapped_delta": outcome.scrapped_delta,
                        },
                    )

                sheet_status = TravelSheetStatus(ctx.travel_sheet.status)
                if is_final:
                    if not await self.sheet_repo.set_status(
                        sheet_id, TravelSheetStatus.COMPLETED.value, expected=[TravelSheetStatus.ACTIVE.value]
                    ):
                        raise ConsistencyFault("Travel sheet status changed under lock.", {"travel_sheet_id": sheet_id})
                    sheet_status = TravelSheetStatus.COMPLETED
                    await self.event_repo.record(
                        entity_type="travel_sheet", entity_id=sheet_id, status=sheet_status.value,
                        reason_code="final_operation_completed",
                    )

                order_status = OrderStatus(ctx.production_order.status)
                if rollup.is_fully_accounted and order_status != OrderStatus.COMPLETED:
                    if not await self.order_repo.set_status(
                        order_id, OrderStatus.COMPLETED.value,
                        expected=[OrderStatus.RELEASED.value, OrderStatus.IN_PROGRESS.value],
                    ):
                        raise ConsistencyFault(
                            "Order could not be completed.", {"production_order_id": order_id, "status": order_status.value}
                        )
                    order_status = OrderStatus.COMPLETED
                    await self.event_repo.record(
                        entity_type="production_order", entity_id=order_id, status=order_status.value,
                        reason_code="quantity_reconciled",
                    )

        logger.info(
            "Operation %s completed by operator %s: good=%d scrap=%d pending=%d intake=%d",
            operation_id, operator.id, outcome.good, outcome.scrap, outcome.pending, outcome.intake,
        )
        await self._publish(
            "operation.completed",
            ctx.operation,
            order_id,
            operator.id,
            quantity_good=outcome.good,
            quantity_scrap=outcome.scrap,
            quantity_pending=outcome.pending,
            travel_sheet_status=sheet_status.value,
            order_status=order_status.value,
        )
        return CompletionResult(
            operation_id=operation_id,
            operation_status=OperationStatus.COMPLETED,
            travel_sheet_status=sheet_status,
            updated_order_status=order_status,
            quantity_completed=rollup.quantity_completed,
            quantity_scrapped=rollup.quantity_scrapped,
        )

