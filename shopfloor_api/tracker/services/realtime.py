from __future__ import annotations

import asyncio

import logging
from typing import Dict, Optional, Set
from uuid import UUID

from starlette.websockets import WebSocket, WebSocketState

from tracker.schemas.realtime import FloorEvent, WsEnvelope

logger = logging.getLogger(__name__)


class BroadcastManager:
    """
    Simple in-process pub-sub manager for WebSocket topics.

    Topics:
      - floor                       every operation start/completion
      - floor:{production_order_id} events of one order (station displays, order screens)

    A topic and its send lock exist only while it has subscribers; membership changes
    take the global lock, sends take the topic lock.
    """

    def __init__(self) -> None:
        self._topics: Dict[str, Set[WebSocket]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._global_lock = asyncio.Lock()

    # PUBLIC_INTERFACE
    def floor_topic(self, production_order_id: UUID | str | None = None) -> str:
        """Return the floor-wide topic, or the per-order topic when an order id is given."""
        if production_order_id:
            return f"floor:{production_order_id}"
        return "floor"

    def _prune(self, topic: str) -> None:
        # caller holds the global lock
        if topic in self._topics and not self._topics[topic]:
            del self._topics[topic]
            self._locks.pop(topic, None)

    # PUBLIC_INTERFACE
    async def connect(self, topic: str, websocket: WebSocket) -> None:
        """
        Add an accepted websocket to the topic subscribers.
        """
        async with self._global_lock:
            subscribers = self._topics.setdefault(topic, set())
            self._locks.setdefault(topic, asyncio.Lock())
            subscribers.add(websocket)
            logger.info("WebSocket connected to topic=%s; subscribers=%d", topic, len(subscribers))

    # PUBLIC_INTERFACE
    async def disconnect(self, topic: str, websocket: WebSocket) -> None:
        """Remove websocket from topic subscribers; the topic goes away with its last subscriber."""
        async with self._global_lock:
            subscribers = self._topics.get(topic)
            if subscribers is None:
                return
            subscribers.discard(websocket)
            logger.info("WebSocket disconnected from topic=%s; subscribers=%d", topic, len(subscribers))
            self._prune(topic)

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    def topic_count(self) -> int:
        return len(self._topics)

    # PUBLIC_INTERFACE
    async def broadcast(self, topic: str, message: dict, exclude: Optional[WebSocket] = None) -> None:
        """
        Broadcast a dict message to all subscribers in the topic.

        Topics nobody listens to are skipped without being created.
        """
        lock = self._locks.get(topic)
        if lock is None or not self._topics.get(topic):
            return
        async with lock:
            to_drop: list[WebSocket] = []
            for ws in list(self._topics.get(topic, ())):
                if exclude is not None and ws is exclude:
                    continue
                try:
                    if ws.application_state == WebSocketState.DISCONNECTED or ws.client_state == WebSocketState.DISCONNECTED:
                        to_drop.append(ws)
                        continue
                    await ws.send_json(message)
                except Exception:
                    logger.exception("Failed to send message to websocket; scheduling drop")
                    to_drop.append(ws)
        if to_drop:
            async with self._global_lock:
                subscribers = self._topics.get(topic, set())
                for ws in to_drop:
                    subscribers.discard(ws)
                self._prune(topic)

    # PUBLIC_INTERFACE
    async def publish_floor_event(self, event: FloorEvent, channel: Optional[str] = None) -> None:
        """Publish an operation event to the floor topic and to the order's topic."""
        env = WsEnvelope(type=event.event, payload=event.model_dump(mode="json"), channel=channel)
        message = env.model_dump(mode="json")
        await self.broadcast(self.floor_topic(), message)
        await self.broadcast(self.floor_topic(event.production_order_id), message)


# Singleton instance
broadcast_manager = BroadcastManager()
