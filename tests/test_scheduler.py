"""Tests for deadline scheduling."""

import asyncio
from datetime import timedelta
from uuid import UUID, uuid4

from treatment_sessions.services.scheduler import DeadlineScheduler
from tests.conftest import FakeClock


def _recording_scheduler(clock: FakeClock) -> tuple[DeadlineScheduler, list[UUID]]:
    fired: list[UUID] = []

    async def callback(session_id: UUID) -> None:
        fired.append(session_id)

    return DeadlineScheduler(clock=clock, callback=callback), fired


def test_fires_in_deadline_order_and_only_when_due() -> None:
    clock = FakeClock()
    scheduler, fired = _recording_scheduler(clock)
    late, early = uuid4(), uuid4()
    scheduler.schedule(late, clock.now() + timedelta(seconds=20))
    scheduler.schedule(early, clock.now() + timedelta(seconds=10))

    asyncio.run(scheduler.fire_due())
    assert fired == []

    clock.advance(10)
    asyncio.run(scheduler.fire_due())
    assert fired == [early]

    clock.advance(30)
    asyncio.run(scheduler.fire_due())
    assert fired == [early, late]
    assert scheduler.pending() == 0


def test_cancelled_entry_never_fires() -> None:
    clock = FakeClock()
    scheduler, fired = _recording_scheduler(clock)
    session_id = uuid4()
    handle = scheduler.schedule(session_id, clock.now() + timedelta(seconds=5))

    assert scheduler.cancel(session_id) is True
    assert handle.cancelled
    assert scheduler.cancel(session_id) is False

    clock.advance(60)
    asyncio.run(scheduler.fire_due())
    assert fired == []
    assert scheduler.next_deadline() is None


def test_rescheduling_supersedes_previous_entry() -> None:
    clock = FakeClock()
    scheduler, fired = _recording_scheduler(clock)
    session_id = uuid4()
    scheduler.schedule(session_id, clock.now() + timedelta(seconds=5))
    scheduler.schedule(session_id, clock.now() + timedelta(seconds=50))

    clock.advance(10)
    asyncio.run(scheduler.fire_due())
    assert fired == []

    clock.advance(40)
    asyncio.run(scheduler.fire_due())
    assert fired == [session_id]


def test_failing_callback_does_not_stop_other_deadlines() -> None:
    clock = FakeClock()
    fired: list[UUID] = []
    broken = uuid4()

    async def callback(session_id: UUID) -> None:
        if session_id == broken:
            raise RuntimeError("boom")
        fired.append(session_id)

    scheduler = DeadlineScheduler(clock=clock, callback=callback)
    healthy = uuid4()
    scheduler.schedule(broken, clock.now())
    scheduler.schedule(healthy, clock.now() + timedelta(seconds=1))
    clock.advance(1)

    result = asyncio.run(scheduler.fire_due())

    assert result == [broken, healthy]
    assert fired == [healthy]


def test_background_loop_fires_due_deadline() -> None:
    clock = FakeClock()
    scheduler, fired = _recording_scheduler(clock)
    scheduler.poll_seconds = 0.01
    session_id = uuid4()

    async def scenario() -> None:
        scheduler.start()
        scheduler.schedule(session_id, clock.now() + timedelta(seconds=30))
        await asyncio.sleep(0.05)
        assert fired == []
        clock.advance(30)
        for _ in range(100):
            if fired:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

    asyncio.run(scenario())

    assert fired == [session_id]
