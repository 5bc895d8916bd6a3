"""End-to-end scan and completion workflows through ProductionService."""

from uuid import uuid4

import pytest

from tracker.core.errors import (
    AlreadyCompletedError,
    ConsistencyFault,
    OperationNotStartedError,
    OperatorMismatchError,
    OrderStateError,
    QuantityOverrunError,
    SequenceViolationError,
    SheetNotActiveError,
    UnknownCheckpointError,
    UnknownOperationError,
    UnknownOperatorError,
    UnknownProductionOrderError,
)
from tracker.db.models.enums import OperationStatus, OrderStatus, TravelSheetStatus
from tracker.repositories.production import ProductionOrderRepository, StatusEventRepository
from tracker.schemas.scanner import CompletionRequest, ScanAwaitingCompletion, ScanStarted


def _completion(operator, good, scrap=0, pending=None, **extra) -> CompletionRequest:
    return CompletionRequest(
        badge_id=operator.badge_token,
        quantity_good=good,
        quantity_scrap=scrap,
        quantity_pending=pending,
        **extra,
    )


async def _run_step(service, operator, operation, good, scrap=0, pending=None):
    async with service() as svc:
        await svc.process_scan(operator.badge_token, operation.checkpoint_token)
    async with service() as svc:
        return await svc.complete_operation(operation.id, _completion(operator, good, scrap, pending))


class TestFloorScenarios:
    """The canonical floor walk-throughs."""

    @pytest.mark.asyncio
    async def test_single_step_order_completes(self, floor, service):
        order, sheet = await floor.released(100)
        operator = await floor.operator()
        op = sheet.operations[0]

        async with service() as svc:
            started = await svc.process_scan(operator.badge_token, op.checkpoint_token)
        assert isinstance(started, ScanStarted)
        assert started.status == "started"
        assert started.process_name == "Process 10"
        assert started.travel_sheet_number == sheet.travel_sheet_number

        async with service() as svc:
            assert (await svc.get_production_order(order.id)).status == OrderStatus.IN_PROGRESS.value
            current = await svc.get_operation(op.id)
        assert current.status is OperationStatus.IN_PROGRESS
        assert current.operator_id == operator.id
        assert current.start_time is not None and current.start_time.tzinfo is not None

        async with service() as svc:
            result = await svc.complete_operation(op.id, _completion(operator, 95, 5, 0, machine_id="M-1"))
        assert result.operation_status is OperationStatus.COMPLETED
        assert result.travel_sheet_status is TravelSheetStatus.COMPLETED
        assert result.updated_order_status is OrderStatus.COMPLETED
        assert (result.quantity_completed, result.quantity_scrapped) == (95, 5)

        async with service() as svc:
            done = await svc.get_operation(op.id)
            order_row = await svc.get_production_order(order.id)
        assert (done.quantity_good, done.quantity_scrap, done.quantity_pending) == (95, 5, 0)
        assert done.machine_id == "M-1"
        assert done.duration_minutes is not None and done.duration_minutes >= 0
        assert order_row.status == OrderStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_two_step_intake_and_rollup(self, floor, service):
        order, sheet = await floor.released(50, steps=((10, 1.0), (20, 1.0)))
        operator = await floor.operator()
        first, second = sheet.operations

        step_one = await _run_step(service, operator, first, 48, 2, 0)
        assert step_one.travel_sheet_status is TravelSheetStatus.ACTIVE
        assert (step_one.quantity_completed, step_one.quantity_scrapped) == (0, 2)

        async with service() as svc:
            await svc.process_scan(operator.badge_token, second.checkpoint_token)
        async with service() as svc:
            awaiting = await svc.process_scan(operator.badge_token, second.checkpoint_token)
        assert isinstance(awaiting, ScanAwaitingCompletion)
        assert awaiting.intake_quantity == 48

        async with service() as svc:
            result = await svc.complete_operation(second.id, _completion(operator, 30, 0, 18))
        assert (result.quantity_completed, result.quantity_scrapped) == (30, 2)
        assert result.travel_sheet_status is TravelSheetStatus.COMPLETED
        # 30 + 2 < 50: units still pending keep the order open
        assert result.updated_order_status is OrderStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_other_operator_cannot_complete(self, floor, service):
        _, sheet = await floor.released(10)
        alice, bob = await floor.operator(), await floor.operator()
        op = sheet.operations[0]

        async with service() as svc:
            await svc.process_scan(alice.badge_token, op.checkpoint_token)
        async with service() as svc:
            with pytest.raises(OperatorMismatchError):
                await svc.complete_operation(op.id, _completion(bob, 10))
        async with service() as svc:
            with pytest.raises(OperatorMismatchError):
                await svc.process_scan(bob.badge_token, op.checkpoint_token)

    @pytest.mark.asyncio
    async def test_rescan_of_completed_operation(self, floor, service):
        _, sheet = await floor.released(10, steps=((10, 1.0), (20, 1.0)))
        operator = await floor.operator()
        first = sheet.operations[0]
        await _run_step(service, operator, first, 10)

        async with service() as svc:
            with pytest.raises(AlreadyCompletedError):
                await svc.process_scan(operator.badge_token, first.checkpoint_token)
        async with service() as svc:
            with pytest.raises(AlreadyCompletedError):
                await svc.complete_operation(first.id, _completion(operator, 10))

    @pytest.mark.asyncio
    async def test_rescan_after_final_operation_closes_the_sheet(self, floor, service):
        _, sheet = await floor.released(100)
        operator, other = await floor.operator(), await floor.operator()
        op = sheet.operations[0]
        result = await _run_step(service, operator, op, 95, 5, 0)
        assert result.travel_sheet_status is TravelSheetStatus.COMPLETED

        for badge in (operator.badge_token, other.badge_token):
            async with service() as svc:
                with pytest.raises(AlreadyCompletedError):
                    await svc.process_scan(badge, op.checkpoint_token)
        async with service() as svc:
            with pytest.raises(AlreadyCompletedError):
                await svc.complete_operation(op.id, _completion(operator, 95, 5, 0))

    @pytest.mark.asyncio
    async def test_failed_rollup_rolls_back_the_completion(self, floor, service, monkeypatch):
        order, sheet = await floor.released(10)
        operator = await floor.operator()
        op = sheet.operations[0]
        async with service() as svc:
            await svc.process_scan(operator.badge_token, op.checkpoint_token)

        async def refuse_rollup(self, order_id, *, completed_delta, scrapped_delta):
            return False

        monkeypatch.setattr(ProductionOrderRepository, "apply_rollup", refuse_rollup)
        async with service() as svc:
            with pytest.raises(ConsistencyFault):
                await svc.complete_operation(op.id, _completion(operator, 9, 1, 0))
        monkeypatch.undo()

        async with service() as svc:
            current = await svc.get_operation(op.id)
            order_row = await svc.get_production_order(order.id)
            sheet_row = await svc.get_travel_sheet(sheet.id)
        assert current.status is OperationStatus.IN_PROGRESS
        assert (current.quantity_good, current.quantity_scrap, current.quantity_pending) == (0, 0, None)
        assert current.end_time is None
        assert (order_row.quantity_completed, order_row.quantity_scrapped) == (0, 0)
        assert order_row.status == OrderStatus.IN_PROGRESS.value
        assert sheet_row.status == TravelSheetStatus.ACTIVE.value

        # the rejected attempt left nothing behind, so the holder can still complete
        async with service() as svc:
            result = await svc.complete_operation(op.id, _completion(operator, 9, 1, 0))
        assert result.updated_order_status is OrderStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_overrun_leaves_no_trace(self, floor, service):
        order, sheet = await floor.released(10, steps=((10, 1.0), (20, 1.0)))
        operator = await floor.operator()
        first, second = sheet.operations
        await _run_step(service, operator, first, 8, 2)

        async with service() as svc:
            await svc.process_scan(operator.badge_token, second.checkpoint_token)
        async with service() as svc:
            with pytest.raises(QuantityOverrunError) as exc:
                await svc.complete_operation(second.id, _completion(operator, 10, 0, 0))
        assert exc.value.details["expected_max"] == 8
        assert exc.value.details["received"] == 10

        async with service() as svc:
            op = await svc.get_operation(second.id)
            order_row = await svc.get_production_order(order.id)
        assert op.status is OperationStatus.IN_PROGRESS
        assert op.quantity_pending is None
        assert (order_row.quantity_completed, order_row.quantity_scrapped) == (0, 2)


class TestScanGuards:
    @pytest.mark.asyncio
    async def test_unknown_and_inactive_badges(self, floor, service):
        _, sheet = await floor.released(5)
        retired = await floor.operator(active=False)
        token = sheet.operations[0].checkpoint_token

        async with service() as svc:
            with pytest.raises(UnknownOperatorError):
                await svc.process_scan("NO-SUCH-BADGE", token)
        async with service() as svc:
            with pytest.raises(UnknownOperatorError):
                await svc.process_scan(retired.badge_token, token)

    @pytest.mark.asyncio
    async def test_unknown_checkpoint(self, floor, service):
        operator = await floor.operator()
        async with service() as svc:
            with pytest.raises(UnknownCheckpointError):
                await svc.process_scan(operator.badge_token, "not-a-token")

    @pytest.mark.asyncio
    async def test_unknown_operation(self, floor, service):
        operator = await floor.operator()
        async with service() as svc:
            with pytest.raises(UnknownOperationError):
                await svc.complete_operation(uuid4(), _completion(operator, 1))

    @pytest.mark.asyncio
    async def test_sequence_is_enforced(self, floor, service):
        _, sheet = await floor.released(5, steps=((10, 1.0), (20, 1.0), (30, 1.0)))
        operator = await floor.operator()
        async with service() as svc:
            with pytest.raises(SequenceViolationError) as exc:
                await svc.process_scan(operator.badge_token, sheet.operations[2].checkpoint_token)
        assert exc.value.details["expected_sequence_number"] == 10

        async with service() as svc:
            refreshed = await svc.get_travel_sheet(sheet.id)
        assert all(op.status is OperationStatus.PENDING for op in refreshed.operations)

    @pytest.mark.asyncio
    async def test_completion_requires_start(self, floor, service):
        _, sheet = await floor.released(5)
        operator = await floor.operator()
        async with service() as svc:
            with pytest.raises(OperationNotStartedError):
                await svc.complete_operation(sheet.operations[0].id, _completion(operator, 5))

    @pytest.mark.asyncio
    async def test_pending_left_unset_reconciles_as_zero(self, floor, service):
        _, sheet = await floor.released(5)
        operator = await floor.operator()
        await _run_step(service, operator, sheet.operations[0], 4, 1)
        async with service() as svc:
            op = await svc.get_operation(sheet.operations[0].id)
        assert op.quantity_pending == 0

    @pytest.mark.asyncio
    async def test_status_changes_are_logged(self, floor, service, session_maker):
        order, sheet = await floor.released(3)
        operator = await floor.operator()
        op = sheet.operations[0]
        await _run_step(service, operator, op, 3, 0, 0)

        async with session_maker() as session:
            events = StatusEventRepository(session)
            op_events = await events.list_for_entity(op.id)
            order_events = await events.list_for_entity(order.id)
            sheet_events = await events.list_for_entity(sheet.id)
        assert {e.status for e in op_events} == {"In Progress", "Completed"}
        assert all(e.operator_id == operator.id for e in op_events)
        assert {e.status for e in order_events} == {"Created", "Released", "In Progress", "Completed"}
        assert {e.status for e in sheet_events} == {"Active", "Completed"}


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_sheet_rejects_scans(self, floor, service):
        _, sheet = await floor.released(5)
        operator = await floor.operator()
        async with service() as svc:
            cancelled = await svc.cancel_travel_sheet(sheet.id)
        assert cancelled.status is TravelSheetStatus.CANCELLED

        async with service() as svc:
            with pytest.raises(SheetNotActiveError):
                await svc.process_scan(operator.badge_token, sheet.operations[0].checkpoint_token)

    @pytest.mark.asyncio
    async def test_sheet_with_running_operation_cannot_be_cancelled(self, floor, service):
        _, sheet = await floor.released(5)
        operator = await floor.operator()
        async with service() as svc:
            await svc.process_scan(operator.badge_token, sheet.operations[0].checkpoint_token)
        async with service() as svc:
            with pytest.raises(OrderStateError):
                await svc.cancel_travel_sheet(sheet.id)

    @pytest.mark.asyncio
    async def test_order_cancel_cascades_to_active_sheets(self, floor, service):
        order, sheet = await floor.released(5)
        operator = await floor.operator()
        op = sheet.operations[0]
        async with service() as svc:
            await svc.process_scan(operator.badge_token, op.checkpoint_token)
        async with service() as svc:
            cancelled = await svc.cancel_production_order(order.id)
        assert cancelled.status == OrderStatus.CANCELLED.value

        async with service() as svc:
            assert (await svc.get_travel_sheet(sheet.id)).status is TravelSheetStatus.CANCELLED
            with pytest.raises(SheetNotActiveError):
                await svc.complete_operation(op.id, _completion(operator, 5))
        async with service() as svc:
            with pytest.raises(OrderStateError):
                await svc.cancel_production_order(order.id)

    @pytest.mark.asyncio
    async def test_delete_refused_while_sheet_is_live(self, floor, service):
        order, sheet = await floor.released(5)
        async with service() as svc:
            with pytest.raises(OrderStateError) as exc:
                await svc.delete_production_order(order.id)
        assert exc.value.details["travel_sheets"] == [sheet.travel_sheet_number]

        async with service() as svc:
            await svc.cancel_travel_sheet(sheet.id)
        async with service() as svc:
            await svc.delete_production_order(order.id)
        async with service() as svc:
            with pytest.raises(UnknownProductionOrderError):
                await svc.get_production_order(order.id)
