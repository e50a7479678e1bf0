"""Unit tests for KeyedLock."""

import asyncio

from src.bridge.sync.locks import KeyedLock


def run_async(coro):
    return asyncio.run(coro)


def test_lock_is_released_and_forgotten():
    locks = KeyedLock()

    async def scenario():
        async with locks.hold("a"):
            assert locks.locked("a")
            assert len(locks) == 1
        return len(locks)

    assert run_async(scenario()) == 0
    assert not locks.locked("a")


def test_different_keys_run_concurrently():
    locks = KeyedLock()
    order = []

    async def worker(key, delay):
        async with locks.hold(key):
            order.append(f"start-{key}")
            await asyncio.sleep(delay)
            order.append(f"end-{key}")

    async def scenario():
        await asyncio.gather(worker("a", 0.02), worker("b", 0.0))

    run_async(scenario())

    assert order.index("end-b") < order.index("end-a")


def test_same_key_is_exclusive():
    locks = KeyedLock()
    order = []

    async def worker(name):
        async with locks.hold("branch"):
            order.append(f"start-{name}")
            await asyncio.sleep(0.01)
            order.append(f"end-{name}")

    async def scenario():
        await asyncio.gather(worker("1"), worker("2"))

    run_async(scenario())

    assert order == ["start-1", "end-1", "start-2", "end-2"]


def test_lock_released_when_body_raises():
    locks = KeyedLock()

    async def scenario():
        try:
            async with locks.hold("a"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        return len(locks)

    assert run_async(scenario()) == 0
