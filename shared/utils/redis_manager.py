"""
Redis connection manager for the live-match services.
Provides the async connection pool, key namespace utilities and the
token-guarded lock used to serialize writers on one match id.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis

from shared.config import Settings, get_settings
from shared.errors import StorageError
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Key namespaces ──────────────────────────────────────────────────────
MATCH_KEY = "{prefix}:match:{match_id}"
MATCH_INDEX_KEY = "{prefix}:matches"
AGGREGATE_KEY = "{prefix}:standings:{bucket}:team:{team_id}"
AGGREGATE_INDEX_KEY = "{prefix}:standings:{bucket}:teams"
MATCH_LOCK_KEY = "{prefix}:lock:match:{match_id}"


def _fmt(template: str, **kwargs: Any) -> str:
    return template.format(**kwargs)


class RedisManager:
    """Manages the async Redis connection pool and provides typed helpers."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._pool: Optional[Redis] = None

    async def connect(self) -> None:
        """Initialize the connection pool."""
        self._pool = aioredis.from_url(
            self._settings.redis_url_str,
            max_connections=self._settings.redis_max_connections,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            retry_on_timeout=True,
        )
        await self._pool.ping()
        logger.info("redis_connected", url=self._settings.redis_url_str)

    async def disconnect(self) -> None:
        """Graceful shutdown."""
        if self._pool:
            await self._pool.aclose()
            self._pool = None
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        if self._pool is None:
            raise RuntimeError("RedisManager not connected. Call connect() first.")
        return self._pool

    def key(self, template: str, **kwargs: Any) -> str:
        return _fmt(template, prefix=self._settings.redis_key_prefix, **kwargs)

    # ── Match locks ─────────────────────────────────────────────────────

    # Lua script: atomically delete only if we hold the lock
    _RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    redis.call("del", KEYS[1])
    return 1
end
return 0
"""

    async def try_acquire_lock(self, key: str, token: str, ttl_ms: int) -> bool:
        """Attempt to take the lock using SET NX PX."""
        return bool(await self.client.set(key, token, nx=True, px=ttl_ms))

    async def release_lock(self, key: str, token: str) -> bool:
        """Atomically release the lock only if we hold it."""
        result = await self.client.eval(self._RELEASE_LOCK_SCRIPT, 1, key, token)
        return bool(result)

    @asynccontextmanager
    async def lock(
        self,
        key: str,
        ttl_ms: int = 10_000,
        wait_timeout_s: float = 5.0,
        retry_delay_s: float = 0.05,
    ) -> AsyncIterator[None]:
        """
        Hold a token-guarded lock for the duration of the block.

        Raises StorageError when the lock cannot be taken within
        ``wait_timeout_s``.
        """
        token = uuid.uuid4().hex
        deadline = time.monotonic() + wait_timeout_s
        while not await self.try_acquire_lock(key, token, ttl_ms):
            if time.monotonic() >= deadline:
                raise StorageError("Timed out waiting for match lock", lock=key)
            await asyncio.sleep(retry_delay_s)
        try:
            yield
        finally:
            released = await self.release_lock(key, token)
            if not released:
                logger.warning("redis_lock_expired_before_release", lock=key)
