"""Tests for per-key locks."""

import asyncio

from treatment_sessions.services.locks import KeyedLocks


def test_lock_is_dropped_after_last_holder() -> None:
    locks = KeyedLocks()

    async def use_once() -> bool:
        async with locks.hold("a"):
            return locks.in_use("a") and len(locks) == 1

    assert asyncio.run(use_once())
    assert not locks.in_use("a")
    assert len(locks) == 0


def test_waiting_holder_keeps_the_lock_alive() -> None:
    locks = KeyedLocks()
    order: list[str] = []

    async def worker(name: str) -> None:
        async with locks.hold("a"):
            order.append(f"{name}-in")
            await asyncio.sleep(0)
            order.append(f"{name}-out")

    async def run_both() -> None:
        await asyncio.gather(worker("first"), worker("second"))

    asyncio.run(run_both())

    assert order == ["first-in", "first-out", "second-in", "second-out"]
    assert len(locks) == 0
