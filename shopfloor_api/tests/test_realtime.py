from uuid import uuid4

import pytest
from starlette.websockets import WebSocketState

from tracker.core.errors import SequenceViolationError
from tracker.schemas.realtime import FloorEvent
from tracker.schemas.scanner import CompletionRequest
from tracker.services.realtime import BroadcastManager, broadcast_manager


class FakeSocket:
    """Stands in for an accepted starlette WebSocket."""

    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail
        self.application_state = WebSocketState.CONNECTED
        self.client_state = WebSocketState.CONNECTED

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)


def _event(order_id=None) -> FloorEvent:
    return FloorEvent(
        event="operation.started",
        operation_id=uuid4(),
        travel_sheet_id=uuid4(),
        production_order_id=order_id or uuid4(),
        sequence_number=10,
    )


class TestBroadcastManager:
    def test_topics(self):
        manager = BroadcastManager()
        order_id = uuid4()
        assert manager.floor_topic() == "floor"
        assert manager.floor_topic(order_id) == f"floor:{order_id}"

    @pytest.mark.asyncio
    async def test_floor_event_reaches_both_topics(self):
        manager = BroadcastManager()
        order_id = uuid4()
        everything, one_order, other_order = FakeSocket(), FakeSocket(), FakeSocket()
        await manager.connect(manager.floor_topic(), everything)
        await manager.connect(manager.floor_topic(order_id), one_order)
        await manager.connect(manager.floor_topic(uuid4()), other_order)

        await manager.publish_floor_event(_event(order_id), channel="WC-1")

        assert len(everything.sent) == 1
        assert len(one_order.sent) == 1
        assert other_order.sent == []
        message = everything.sent[0]
        assert message["type"] == "operation.started"
        assert message["channel"] == "WC-1"
        assert message["payload"]["production_order_id"] == str(order_id)

    @pytest.mark.asyncio
    async def test_broken_subscriber_is_dropped(self):
        manager = BroadcastManager()
        healthy, broken = FakeSocket(), FakeSocket(fail=True)
        await manager.connect("floor", healthy)
        await manager.connect("floor", broken)

        await manager.broadcast("floor", {"type": "x"})
        assert manager.subscriber_count("floor") == 1
        assert healthy.sent == [{"type": "x"}]

    @pytest.mark.asyncio
    async def test_disconnected_subscriber_is_skipped(self):
        manager = BroadcastManager()
        gone = FakeSocket()
        gone.client_state = WebSocketState.DISCONNECTED
        await manager.connect("floor", gone)
        await manager.broadcast("floor", {"type": "x"})
        assert gone.sent == []
        assert manager.subscriber_count("floor") == 0
        assert manager.topic_count() == 0

    @pytest.mark.asyncio
    async def test_unwatched_orders_leave_no_topics_behind(self):
        manager = BroadcastManager()
        for _ in range(50):
            await manager.publish_floor_event(_event())
        assert manager.topic_count() == 0
        assert manager._locks == {}

    @pytest.mark.asyncio
    async def test_topic_is_released_with_its_last_subscriber(self):
        manager = BroadcastManager()
        first, second = FakeSocket(), FakeSocket()
        topic = manager.floor_topic(uuid4())
        await manager.connect(topic, first)
        await manager.connect(topic, second)

        await manager.disconnect(topic, first)
        assert manager.subscriber_count(topic) == 1
        await manager.disconnect(topic, second)
        assert manager.topic_count() == 0
        assert topic not in manager._locks

        # disconnecting again is harmless
        await manager.disconnect(topic, second)


class TestServicePublishes:
    @pytest.mark.asyncio
    async def test_start_and_completion_are_broadcast(self, floor, service):
        order, sheet = await floor.released(4)
        operator = await floor.operator()
        op = sheet.operations[0]
        listener = FakeSocket()
        topic = broadcast_manager.floor_topic(order.id)
        await broadcast_manager.connect(topic, listener)
        try:
            async with service() as svc:
                await svc.process_scan(operator.badge_token, op.checkpoint_token)
            async with service() as svc:
                await svc.complete_operation(
                    op.id, CompletionRequest(badge_id=operator.badge_token, quantity_good=4)
                )
        finally:
            await broadcast_manager.disconnect(topic, listener)

        assert [m["type"] for m in listener.sent] == ["operation.started", "operation.completed"]
        completed = listener.sent[1]["payload"]
        assert completed["operation_id"] == str(op.id)
        assert completed["operator_id"] == str(operator.id)
        assert completed["details"]["quantity_good"] == 4
        assert completed["details"]["order_status"] == "Completed"

    @pytest.mark.asyncio
    async def test_rejected_scan_publishes_nothing(self, floor, service):
        order, sheet = await floor.released(4, steps=((10, 1.0), (20, 1.0)))
        operator = await floor.operator()
        listener = FakeSocket()
        topic = broadcast_manager.floor_topic(order.id)
        await broadcast_manager.connect(topic, listener)
        try:
            async with service() as svc:
                with pytest.raises(SequenceViolationError):
                    await svc.process_scan(operator.badge_token, sheet.operations[1].checkpoint_token)
        finally:
            await broadcast_manager.disconnect(topic, listener)
        assert listener.sent == []
