"""Per-key asyncio locks.

Two deliveries for the same pull request can arrive together (a label
and a push a second apart). Reconciling the same branch from both at once
would race the exists-then-create check, so reconciliation holds a lock
keyed by (project, branch) for the duration of the sequence.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable


class KeyedLock:
    """A registry of asyncio.Lock objects created on demand per key.

    Locks are dropped once nobody holds or waits for them, so the registry
    does not grow with the number of branches ever seen.
    """

    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Acquire the lock for ``key`` for the body of the context."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]
