"""
SQL-backed LeagueStore (PostgreSQL in deployments, SQLite in tests).

A team aggregate pair is written inside one database transaction. Partial
match updates lock the row with SELECT ... FOR UPDATE where the dialect
supports it.
"""
from __future__ import annotations

from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from shared.errors import NotFound, StorageError
from shared.models.domain import Match, TeamAggregate
from shared.models.enums import CompetitionBucket, MatchPhase
from shared.models.orm import MatchORM, TeamAggregateORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from storage.base import AggregateWrite, LeagueStore

logger = get_logger(__name__)


def _columns(model: Match | TeamAggregate) -> dict[str, Any]:
    data = model.model_dump()
    for key, value in data.items():
        if isinstance(value, (MatchPhase, CompetitionBucket)):
            data[key] = value.value
        elif isinstance(value, dict):
            data[key] = getattr(model, key).model_dump(mode="json")
    return data


def _missing_team(bucket: CompetitionBucket, team_id: str) -> NotFound:
    return NotFound(
        f"Team {team_id} not found in {bucket.value} standings",
        team_id=team_id,
        bucket=bucket.value,
    )


class SqlLeagueStore(LeagueStore):

    def __init__(
        self,
        db: DatabaseManager,
        owns_connection: bool = True,
        create_schema: bool = False,
    ) -> None:
        self._db = db
        self._owns_connection = owns_connection
        self._create_schema = create_schema

    @property
    def backend_name(self) -> str:
        return "sql"

    async def connect(self) -> None:
        if not self._owns_connection:
            return
        try:
            await self._db.connect()
            if self._create_schema:
                await self._db.create_schema()
        except SQLAlchemyError as exc:
            raise StorageError("Database connection failed", error=str(exc)) from exc

    async def close(self) -> None:
        if self._owns_connection:
            await self._db.disconnect()

    # ── Matches ─────────────────────────────────────────────────────────
    async def load_match(self, match_id: str) -> Match:
        try:
            async with self._db.read_session() as session:
                row = await session.get(MatchORM, match_id)
        except SQLAlchemyError as exc:
            raise StorageError("Failed to load match", match_id=match_id, error=str(exc)) from exc
        if row is None:
            raise NotFound(f"Match {match_id} not found", match_id=match_id)
        return Match.model_validate(row)

    async def save_match(self, match_id: str, fields: dict[str, Any]) -> None:
        try:
            async with self._db.write_session() as session:
                stmt = select(MatchORM).where(MatchORM.id == match_id).with_for_update()
                row = (await session.execute(stmt)).scalar_one_or_none()
                if row is None:
                    raise NotFound(f"Match {match_id} not found", match_id=match_id)
                updated = Match.model_validate(row).merged(fields)
                for key, value in _columns(updated).items():
                    if key in fields:
                        setattr(row, key, value)
        except SQLAlchemyError as exc:
            raise StorageError("Failed to save match", match_id=match_id, error=str(exc)) from exc

    async def add_match(self, match: Match) -> None:
        try:
            async with self._db.write_session() as session:
                await session.merge(MatchORM(**_columns(match)))
        except SQLAlchemyError as exc:
            raise StorageError("Failed to add match", match_id=match.id, error=str(exc)) from exc

    async def list_matches(self, phase: Optional[MatchPhase] = None) -> list[Match]:
        stmt = select(MatchORM).order_by(MatchORM.id)
        if phase is not None:
            stmt = stmt.where(MatchORM.phase == phase.value)
        try:
            async with self._db.read_session() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError("Failed to list matches", error=str(exc)) from exc
        return [Match.model_validate(r) for r in rows]

    # ── Team aggregates ─────────────────────────────────────────────────
    async def load_team_aggregate(self, bucket: CompetitionBucket, team_id: str) -> TeamAggregate:
        try:
            async with self._db.read_session() as session:
                row = await session.get(TeamAggregateORM, (bucket.value, team_id))
        except SQLAlchemyError as exc:
            raise StorageError("Failed to load team aggregate", team_id=team_id, error=str(exc)) from exc
        if row is None:
            raise _missing_team(bucket, team_id)
        return TeamAggregate.model_validate(row)

    async def save_team_aggregates(
        self,
        bucket: CompetitionBucket,
        writes: Sequence[AggregateWrite],
    ) -> None:
        try:
            async with self._db.write_session() as session:
                for team_id, aggregate in writes:
                    row = await session.get(TeamAggregateORM, (bucket.value, team_id), with_for_update=True)
                    if row is None:
                        raise _missing_team(bucket, team_id)
                    values = _columns(aggregate)
                    values.update(team_id=team_id, bucket=bucket.value)
                    for key, value in values.items():
                        setattr(row, key, value)
        except SQLAlchemyError as exc:
            raise StorageError(
                "Failed to save team aggregates",
                bucket=bucket.value,
                teams=[t for t, _ in writes],
                error=str(exc),
            ) from exc

    async def add_team_aggregate(self, aggregate: TeamAggregate) -> None:
        try:
            async with self._db.write_session() as session:
                await session.merge(TeamAggregateORM(**_columns(aggregate)))
        except SQLAlchemyError as exc:
            raise StorageError("Failed to add team aggregate", team_id=aggregate.team_id, error=str(exc)) from exc

    async def list_team_aggregates(self, bucket: CompetitionBucket) -> list[TeamAggregate]:
        stmt = (
            select(TeamAggregateORM)
            .where(TeamAggregateORM.bucket == bucket.value)
            .order_by(TeamAggregateORM.team_id)
        )
        try:
            async with self._db.read_session() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError("Failed to list team aggregates", bucket=bucket.value, error=str(exc)) from exc
        return [TeamAggregate.model_validate(r) for r in rows]
