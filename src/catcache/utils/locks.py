"""
Per-key coordination primitives for asyncio.

KeyedLock serializes operations on one key while leaving other keys free.
SingleFlight collapses concurrent calls for the same key into one.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Generic, TypeVar

T = TypeVar("T")


class KeyedLock:
    """A mutex per key, created on first use and dropped when idle."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for key for the duration of the block."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def locked(self, key: str) -> bool:
        """Whether some task currently holds the lock for key."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


class SingleFlight(Generic[T]):
    """Share one in-flight call per key between concurrent callers.

    The first caller for a key starts the function in its own task; every
    caller, the first included, awaits that task through a shield. A caller
    that is cancelled stops waiting, but the run continues for the others.
    Once it finishes the key is forgotten, so the next call runs again.
    """

    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Future[T]] = {}

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run fn for key, or join a run already in progress."""
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Future[T]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark retrieved in case every waiter was cancelled
        if not task.cancelled():
            task.exception()

    def in_flight(self, key: str) -> bool:
        """Whether a call for key is currently running."""
        return key in self._inflight
