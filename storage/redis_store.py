"""
Redis-backed LeagueStore.

Matches and team aggregates are stored as JSON documents. Partial match
updates run under WATCH/MULTI so concurrent writers never lose fields, and a
pair of team aggregates is written in one MULTI/EXEC transaction.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence

from redis.exceptions import RedisError, WatchError

from shared.errors import NotFound, StorageError
from shared.models.domain import Match, TeamAggregate
from shared.models.enums import CompetitionBucket, MatchPhase
from shared.utils.logging import get_logger
from shared.utils.redis_manager import (
    AGGREGATE_INDEX_KEY,
    AGGREGATE_KEY,
    MATCH_INDEX_KEY,
    MATCH_KEY,
    MATCH_LOCK_KEY,
    RedisManager,
)
from storage.base import AggregateWrite, LeagueStore

logger = get_logger(__name__)

MAX_WATCH_RETRIES = 5


class RedisLeagueStore(LeagueStore):

    def __init__(self, redis: RedisManager, owns_connection: bool = True) -> None:
        self._redis = redis
        self._owns_connection = owns_connection

    @property
    def backend_name(self) -> str:
        return "redis"

    async def connect(self) -> None:
        if self._owns_connection:
            try:
                await self._redis.connect()
            except RedisError as exc:
                raise StorageError("Redis connection failed", error=str(exc)) from exc

    async def close(self) -> None:
        if self._owns_connection:
            await self._redis.disconnect()

    @asynccontextmanager
    async def match_guard(self, match_id: str) -> AsyncIterator[None]:
        key = self._redis.key(MATCH_LOCK_KEY, match_id=match_id)
        try:
            async with self._redis.lock(key):
                yield
        except RedisError as exc:
            raise StorageError("Redis lock failed", match_id=match_id, error=str(exc)) from exc

    # ── Matches ─────────────────────────────────────────────────────────
    def _match_key(self, match_id: str) -> str:
        return self._redis.key(MATCH_KEY, match_id=match_id)

    async def load_match(self, match_id: str) -> Match:
        try:
            raw = await self._redis.client.get(self._match_key(match_id))
        except RedisError as exc:
            raise StorageError("Failed to load match", match_id=match_id, error=str(exc)) from exc
        if raw is None:
            raise NotFound(f"Match {match_id} not found", match_id=match_id)
        return Match.model_validate_json(raw)

    async def save_match(self, match_id: str, fields: dict[str, Any]) -> None:
        key = self._match_key(match_id)
        try:
            async with self._redis.client.pipeline(transaction=True) as pipe:
                for _ in range(MAX_WATCH_RETRIES):
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        if raw is None:
                            raise NotFound(f"Match {match_id} not found", match_id=match_id)
                        updated = Match.model_validate_json(raw).merged(fields)
                        pipe.multi()
                        pipe.set(key, updated.model_dump_json())
                        await pipe.execute()
                        return
                    except WatchError:
                        logger.debug("redis_match_write_conflict", match_id=match_id)
                        continue
        except RedisError as exc:
            raise StorageError("Failed to save match", match_id=match_id, error=str(exc)) from exc
        raise StorageError("Match kept changing during update", match_id=match_id)

    async def add_match(self, match: Match) -> None:
        try:
            pipe = self._redis.client.pipeline(transaction=True)
            pipe.set(self._match_key(match.id), match.model_dump_json())
            pipe.sadd(self._redis.key(MATCH_INDEX_KEY), match.id)
            await pipe.execute()
        except RedisError as exc:
            raise StorageError("Failed to add match", match_id=match.id, error=str(exc)) from exc

    async def list_matches(self, phase: Optional[MatchPhase] = None) -> list[Match]:
        try:
            ids = sorted(await self._redis.client.smembers(self._redis.key(MATCH_INDEX_KEY)))
            raws = await self._redis.client.mget([self._match_key(i) for i in ids]) if ids else []
        except RedisError as exc:
            raise StorageError("Failed to list matches", error=str(exc)) from exc
        matches = [Match.model_validate_json(r) for r in raws if r is not None]
        return [m for m in matches if phase is None or m.phase == phase]

    # ── Team aggregates ─────────────────────────────────────────────────
    def _aggregate_key(self, bucket: CompetitionBucket, team_id: str) -> str:
        return self._redis.key(AGGREGATE_KEY, bucket=bucket.value, team_id=team_id)

    async def load_team_aggregate(self, bucket: CompetitionBucket, team_id: str) -> TeamAggregate:
        try:
            raw = await self._redis.client.get(self._aggregate_key(bucket, team_id))
        except RedisError as exc:
            raise StorageError("Failed to load team aggregate", team_id=team_id, error=str(exc)) from exc
        if raw is None:
            raise NotFound(
                f"Team {team_id} not found in {bucket.value} standings",
                team_id=team_id,
                bucket=bucket.value,
            )
        return TeamAggregate.model_validate_json(raw)

    async def save_team_aggregates(
        self,
        bucket: CompetitionBucket,
        writes: Sequence[AggregateWrite],
    ) -> None:
        try:
            pipe = self._redis.client.pipeline(transaction=True)
            for team_id, aggregate in writes:
                doc = aggregate.model_copy(update={"team_id": team_id, "bucket": bucket})
                pipe.set(self._aggregate_key(bucket, team_id), doc.model_dump_json())
            await pipe.execute()
        except RedisError as exc:
            raise StorageError(
                "Failed to save team aggregates",
                bucket=bucket.value,
                teams=[t for t, _ in writes],
                error=str(exc),
            ) from exc

    async def add_team_aggregate(self, aggregate: TeamAggregate) -> None:
        try:
            pipe = self._redis.client.pipeline(transaction=True)
            pipe.set(self._aggregate_key(aggregate.bucket, aggregate.team_id), aggregate.model_dump_json())
            pipe.sadd(self._redis.key(AGGREGATE_INDEX_KEY, bucket=aggregate.bucket.value), aggregate.team_id)
            await pipe.execute()
        except RedisError as exc:
            raise StorageError("Failed to add team aggregate", team_id=aggregate.team_id, error=str(exc)) from exc

    async def list_team_aggregates(self, bucket: CompetitionBucket) -> list[TeamAggregate]:
        try:
            ids = sorted(await self._redis.client.smembers(self._redis.key(AGGREGATE_INDEX_KEY, bucket=bucket.value)))
            raws = await self._redis.client.mget([self._aggregate_key(bucket, i) for i in ids]) if ids else []
        except RedisError as exc:
            raise StorageError("Failed to list team aggregates", bucket=bucket.value, error=str(exc)) from exc
        return [TeamAggregate.model_validate_json(r) for r in raws if r is not None]
