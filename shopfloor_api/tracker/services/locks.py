from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Dict
from uuid import UUID

logger = logging.getLogger(__name__)


def sheet_key(sheet_id: UUID) -> str:
    return f"sheet:{sheet_id}"


def order_key(order_id: UUID) -> str:
    return f"order:{order_id}"


class EntityLockRegistry:
    """
    In-process registry of per-entity asyncio locks.

    Keys are ``sheet:<id>`` (guards every operation of one travel sheet) and
    ``order:<id>`` (guards one order's status and rollups). Callers always take sheet
    locks before the order lock, in the order passed to :meth:`hold`. Locks are
    dropped from the registry once nobody holds or waits for them.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._refcounts: Dict[str, int] = {}

    def _checkout(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._refcounts[key] = self._refcounts.get(key, 0) + 1
        return lock

    def _checkin(self, key: str) -> None:
        remaining = self._refcounts[key] - 1
        if remaining:
            self._refcounts[key] = remaining
        else:
            del self._refcounts[key]
            del self._locks[key]

    @asynccontextmanager
    async def _hold_one(self, key: str) -> AsyncIterator[None]:
        lock = self._checkout(key)
        try:
            async with lock:
                yield
        finally:
            self._checkin(key)

    # PUBLIC_INTERFACE
    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        """Acquire the locks for ``keys`` in the given order and release them in reverse."""
        async with AsyncExitStack() as stack:
            for key in dict.fromkeys(keys):
                await stack.enter_async_context(self._hold_one(key))
            yield

    def held_keys(self) -> list[str]:
        """Keys currently checked out; used by diagnostics and tests."""
        return sorted(self._locks)


# Singleton instance
entity_locks = EntityLockRegistry()
