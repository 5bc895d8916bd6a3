"""Travel sheet generation against a real (SQLite) database."""

from uuid import uuid4

import pytest

from tracker.core.errors import (
    DuplicateGenerationError,
    InvalidQuantityError,
    InvalidRoutingError,
    OrderStateError,
    UnknownProductionOrderError,
)
from tracker.db.models.enums import OperationStatus, OrderStatus, TravelSheetStatus
from tracker.repositories.master_data import RoutingStep
from tracker.services.travel_sheets import format_sheet_number, mint_token, validate_routing


class TestHelpers:
    def test_tokens_are_unique_and_opaque(self):
        tokens = {mint_token() for _ in range(200)}
        assert len(tokens) == 200
        assert all(len(t) >= 20 for t in tokens)

    def test_sheet_number_format(self):
        assert format_sheet_number("TS", "PO-7", 1) == "TS-PO-7-01"
        assert format_sheet_number("TS", "PO-7", 12) == "TS-PO-7-12"

    def test_duplicate_sequence_numbers_rejected(self):
        step = RoutingStep(
            sequence_number=10, process_id=uuid4(), process_code="CUT", process_name="Cut",
            work_center_id=None, standard_time_minutes=1.0,
        )
        with pytest.raises(InvalidRoutingError):
            validate_routing(uuid4(), [step, step])


class TestGenerateTravelSheet:
    """One Active sheet per order, one Pending operation per routing step."""

    @pytest.mark.asyncio
    async def test_generates_operations_in_sequence_order(self, floor, service):
        order, sheet = await floor.released(40, steps=((30, 2.0), (10, 1.0), (20, None)))

        assert sheet.status is TravelSheetStatus.ACTIVE
        assert sheet.quantity == 40
        assert sheet.travel_sheet_number == f"TS-{order.po_number}-01"
        assert [op.sequence_number for op in sheet.operations] == [10, 20, 30]
        assert all(op.status is OperationStatus.PENDING for op in sheet.operations)
        assert all(op.quantity_pending is None for op in sheet.operations)
        assert all(op.operator_id is None for op in sheet.operations)
        assert sheet.next_sequence_number == 10
        assert sheet.operations[0].process_name == "Process 10"

        tokens = {op.checkpoint_token for op in sheet.operations} | {sheet.qr_code}
        assert len(tokens) == 4

        async with service() as svc:
            refreshed = await svc.get_production_order(order.id)
        assert refreshed.status == OrderStatus.RELEASED.value

    @pytest.mark.asyncio
    async def test_second_generation_is_rejected(self, floor, service):
        order, sheet = await floor.released(10)
        async with service() as svc:
            with pytest.raises(DuplicateGenerationError) as exc:
                await svc.generate_travel_sheet(order.id)
        assert exc.value.details["active_travel_sheet"] == sheet.travel_sheet_number

        async with service() as svc:
            assert len(await svc.list_travel_sheets(order.id)) == 1

    @pytest.mark.asyncio
    async def test_unknown_order(self, service):
        async with service() as svc:
            with pytest.raises(UnknownProductionOrderError):
                await svc.generate_travel_sheet(uuid4())

    @pytest.mark.asyncio
    async def test_empty_routing_creates_nothing(self, floor, service):
        part = await floor.part(steps=())
        order = await floor.order(part, 10)
        async with service() as svc:
            with pytest.raises(InvalidRoutingError):
                await svc.generate_travel_sheet(order.id)
        async with service() as svc:
            assert await svc.list_travel_sheets(order.id) == []
            assert (await svc.get_production_order(order.id)).status == OrderStatus.CREATED.value

    @pytest.mark.asyncio
    async def test_in_progress_order_cannot_generate(self, floor, service):
        order, sheet = await floor.released(10)
        operator = await floor.operator()
        async with service() as svc:
            await svc.process_scan(operator.badge_token, sheet.operations[0].checkpoint_token)
        async with service() as svc:
            with pytest.raises(OrderStateError):
                await svc.generate_travel_sheet(order.id)

    @pytest.mark.asyncio
    async def test_cancelled_sheet_frees_quantity(self, floor, service):
        order, sheet = await floor.released(10)
        async with service() as svc:
            await svc.cancel_travel_sheet(sheet.id)
        async with service() as svc:
            second = await svc.generate_travel_sheet(order.id, batch_number="LOT-9")
        assert second.quantity == 10
        assert second.batch_number == "LOT-9"
        assert second.travel_sheet_number.endswith("-02")


class TestSplitSheets:
    """With multiple active sheets allowed, an order can be released in parts."""

    @pytest.mark.asyncio
    async def test_split_until_fully_allocated(self, floor, service, settings):
        split = settings.model_copy(update={"ALLOW_MULTIPLE_ACTIVE_SHEETS": True})
        part = await floor.part()
        order = await floor.order(part, 10)

        async with service(split) as svc:
            first = await svc.generate_travel_sheet(order.id, quantity=4)
        async with service(split) as svc:
            second = await svc.generate_travel_sheet(order.id)
        assert (first.quantity, second.quantity) == (4, 6)

        async with service(split) as svc:
            with pytest.raises(OrderStateError):
                await svc.generate_travel_sheet(order.id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("requested", [0, -3, 11])
    async def test_requested_quantity_must_fit_remainder(self, floor, service, settings, requested):
        split = settings.model_copy(update={"ALLOW_MULTIPLE_ACTIVE_SHEETS": True})
        part = await floor.part()
        order = await floor.order(part, 10)
        async with service(split) as svc:
            with pytest.raises(InvalidQuantityError):
                await svc.generate_travel_sheet(order.id, quantity=requested)

    @pytest.mark.asyncio
    async def test_zero_quantity_order_cannot_generate(self, floor, service):
        part = await floor.part()
        order = await floor.order(part, 0)
        async with service() as svc:
            with pytest.raises(OrderStateError):
                await svc.generate_travel_sheet(order.id)
