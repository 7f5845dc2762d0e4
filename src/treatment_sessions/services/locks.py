"""Per-key asyncio locks that are discarded once unused."""

import asyncio
import contextlib
from collections.abc import AsyncIterator, Hashable


class KeyedLocks:
    """Creates one lock per key on demand and drops it after the last holder.

    A caller counts as a user from the moment it asks for the lock, so a lock
    is never dropped while another coroutine is still waiting to acquire it.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def in_use(self, key: Hashable) -> bool:
        return key in self._users

    def __len__(self) -> int:
        return len(self._locks)
