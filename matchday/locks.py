"""Per-match asyncio locks, created on demand and dropped when idle."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class MatchLockRegistry:

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, match_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(match_id, asyncio.Lock())
        self._holders[match_id] = self._holders.get(match_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[match_id] -= 1
            if self._holders[match_id] == 0:
                del self._holders[match_id]
                del self._locks[match_id]

    def __len__(self) -> int:
        return len(self._locks)
