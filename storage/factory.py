"""Builds the LeagueStore selected by ``LL_STORAGE_BACKEND``."""
from __future__ import annotations

from shared.config import Settings, StorageBackend, get_settings
from shared.utils.logging import get_logger
from storage.base import LeagueStore

logger = get_logger(__name__)


def create_store(settings: Settings | None = None) -> LeagueStore:
    settings = settings or get_settings()
    backend = settings.storage_backend

    if backend == StorageBackend.REDIS:
        from shared.utils.redis_manager import RedisManager
        from storage.redis_store import RedisLeagueStore

        store: LeagueStore = RedisLeagueStore(RedisManager(settings))
    elif backend == StorageBackend.SQL:
        from shared.utils.database import DatabaseManager
        from storage.sql_store import SqlLeagueStore

        store = SqlLeagueStore(DatabaseManager(settings), create_schema=settings.environment.value == "dev")
    else:
        from storage.memory import InMemoryLeagueStore

        store = InMemoryLeagueStore()

    logger.info("store_selected", backend=store.backend_name)
    return store
