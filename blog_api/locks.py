import asyncio
from collections.abc import Hashable
from contextlib import asynccontextmanager


class KeyedLock:
    """
    A family of ``asyncio.Lock`` objects addressed by key.

    Callers holding different keys never wait on each other.  A key's lock
    is dropped as soon as nobody holds or waits for it, so the table only
    ever contains keys that are currently contended.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable):
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

    def __len__(self) -> int:
        return len(self._locks)
