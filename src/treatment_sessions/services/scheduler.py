"""One-shot deadline scheduling for active sessions."""

import asyncio
import contextlib
import heapq
import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from treatment_sessions.services.clock import Clock

logger = logging.getLogger(__name__)

ExpiryCallback = Callable[[UUID], Awaitable[object]]


@dataclass(order=True)
class ScheduledExpiry:
    """Heap entry and cancellation handle for one armed deadline."""

    deadline: datetime
    sequence: int
    session_id: UUID = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        """Mark the entry so the scheduler skips it."""
        self.cancelled = True


class DeadlineScheduler:
    """Min-heap of deadlines drained by a single background task.

    Each session has at most one live entry; scheduling it again supersedes
    the earlier entry. Entries fire at or after their deadline as read from
    the injected clock. Cancellation is advisory: the expiry callback must
    itself ignore sessions that are no longer due.
    """

    def __init__(
        self,
        clock: Clock,
        poll_seconds: float = 1.0,
        callback: ExpiryCallback | None = None,
    ) -> None:
        self.clock = clock
        self.poll_seconds = poll_seconds
        self._callback = callback
        self._heap: list[ScheduledExpiry] = []
        self._entries: dict[UUID, ScheduledExpiry] = {}
        self._sequence = itertools.count()
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def bind(self, callback: ExpiryCallback) -> None:
        """Set the coroutine invoked with the session id when a deadline passes."""
        self._callback = callback

    def schedule(self, session_id: UUID, deadline: datetime) -> ScheduledExpiry:
        """Arm a deadline for a session, replacing any earlier one."""
        previous = self._entries.get(session_id)
        if previous is not None:
            previous.cancel()
        entry = ScheduledExpiry(
            deadline=deadline,
            sequence=next(self._sequence),
            session_id=session_id,
        )
        self._entries[session_id] = entry
        heapq.heappush(self._heap, entry)
        self._wakeup.set()
        return entry

    def cancel(self, session_id: UUID) -> bool:
        """Cancel the live entry for a session; return false if none was armed."""
        entry = self._entries.pop(session_id, None)
        if entry is None:
            return False
        entry.cancel()
        return True

    def pending(self) -> int:
        """Return the number of armed, uncancelled deadlines."""
        return len(self._entries)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_deadline(self) -> datetime | None:
        self._discard_cancelled()
        return self._heap[0].deadline if self._heap else None

    async def fire_due(self) -> list[UUID]:
        """Invoke the callback for every entry whose deadline has passed."""
        fired: list[UUID] = []
        now = self.clock.now()
        while True:
            self._discard_cancelled()
            if not self._heap or self._heap[0].deadline > now:
                break
            entry = heapq.heappop(self._heap)
            if self._entries.get(entry.session_id) is entry:
                del self._entries[entry.session_id]
            fired.append(entry.session_id)
            if self._callback is None:
                logger.warning(
                    "Deadline fired without a callback",
                    extra={"session_id": str(entry.session_id)},
                )
                continue
            try:
                await self._callback(entry.session_id)
            except Exception:
                logger.exception(
                    "Expiry callback failed",
                    extra={"session_id": str(entry.session_id)},
                )
        return fired

    async def run(self) -> None:
        """Drain due deadlines until cancelled."""
        while True:
            self._wakeup.clear()
            await self.fire_due()
            timeout = self.poll_seconds
            upcoming = self.next_deadline()
            if upcoming is not None:
                until = (upcoming - self.clock.now()).total_seconds()
                timeout = max(0.0, min(timeout, until))
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._wakeup.wait(), timeout=timeout)

    def start(self) -> None:
        """Start the background loop on the running event loop."""
        if self._task is None or self._task.done():
            self._wakeup = asyncio.Event()
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Stop the background loop."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    def _discard_cancelled(self) -> None:
        while self._heap and self._heap[0].cancelled:
            heapq.heappop(self._heap)
