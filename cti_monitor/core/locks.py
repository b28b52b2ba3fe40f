"""Per-key asyncio locking."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class KeyedLock:
    """
    A table of asyncio locks, one per key.

    Holders of different keys never wait on each other. An entry lives only
    while some task holds or waits for its lock, so the table does not grow
    with the number of keys ever seen.

    Usage:
        locks = KeyedLock()

        async with locks.hold(call_id):
            ...
    """

    def __init__(self) -> None:
        self._entries: Dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        entry = self._entries.get(key)
        if entry is None:
            entry = _LockEntry()
            self._entries[key] = entry
        entry.users += 1

        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    def locked(self, key: str) -> bool:
        """Whether some task currently holds ``key``."""
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def keys(self) -> List[str]:
        """Keys with a holder or waiter."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
