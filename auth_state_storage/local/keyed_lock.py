"""
Per-key mutual exclusion for asyncio tasks.

Operations acquiring the same key run one at a time, in the order they
asked; operations on different keys never wait for each other. A lock is
created on first use and dropped once nobody holds or waits for it, so
the map only holds keys with work in flight.

In-process only: nothing here coordinates with other processes touching
the same files.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class KeyedLock:
    """Map of lazily created ``asyncio.Lock`` objects, one per key."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def locked(self, key: Hashable) -> bool:
        """Whether some task currently holds ``key``."""
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    @asynccontextmanager
    async def acquire(self, key: Hashable) -> AsyncIterator[None]:
        """Hold ``key`` for the duration of the ``async with`` block.

        Waiters are woken in FIFO order.
        """
        entry = self._entries.get(key)
        if entry is None:
            entry = _Entry()
            self._entries[key] = entry
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]


# Shared by every directory store in the process, keyed by resolved file path
file_locks = KeyedLock()
