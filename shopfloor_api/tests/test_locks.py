import asyncio
from uuid import uuid4

import pytest

from tracker.services.locks import EntityLockRegistry, order_key, sheet_key


@pytest.mark.asyncio
async def test_same_key_is_serialized():
    registry = EntityLockRegistry()
    key = sheet_key(uuid4())
    events = []

    async def worker(name):
        async with registry.hold(key):
            events.append(f"{name}:in")
            await asyncio.sleep(0.01)
            events.append(f"{name}:out")

    await asyncio.gather(worker("a"), worker("b"))
    assert events in (["a:in", "a:out", "b:in", "b:out"], ["b:in", "b:out", "a:in", "a:out"])


@pytest.mark.asyncio
async def test_different_keys_do_not_contend():
    registry = EntityLockRegistry()
    first, second = sheet_key(uuid4()), sheet_key(uuid4())
    inside = asyncio.Event()

    async def holder():
        async with registry.hold(first):
            inside.set()
            await asyncio.sleep(0.05)

    task = asyncio.create_task(holder())
    await inside.wait()
    # Would time out if the second key waited on the first.
    await asyncio.wait_for(_enter(registry, second), timeout=0.02)
    await task


async def _enter(registry, key):
    async with registry.hold(key):
        return True


@pytest.mark.asyncio
async def test_registry_forgets_released_locks():
    registry = EntityLockRegistry()
    order_id = uuid4()
    async with registry.hold(sheet_key(uuid4()), order_key(order_id), order_key(order_id)):
        assert len(registry.held_keys()) == 2
    assert registry.held_keys() == []
