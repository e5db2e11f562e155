"""
Per-aggregate lock registry.

Writers on the same permohonan are serialized; writers on different ones
never wait for each other.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator
from typing import Dict
from uuid import UUID


class LockRegistry:
    """Hands out one asyncio.Lock per permohonan id, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: Dict[UUID, asyncio.Lock] = {}
        self._users: Dict[UUID, int] = {}

    @asynccontextmanager
    async def hold(self, permohonan_id: UUID) -> AsyncIterator[None]:
        lock = self._locks.setdefault(permohonan_id, asyncio.Lock())
        self._users[permohonan_id] = self._users.get(permohonan_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[permohonan_id] -= 1
            if self._users[permohonan_id] == 0:
                del self._users[permohonan_id]
                del self._locks[permohonan_id]

    def __len__(self) -> int:
        return len(self._locks)
