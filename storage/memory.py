"""
In-process LeagueStore backed by dicts.
Used by tests and single-process dev runs; copies on every read and write so
callers never share mutable state with the store.
"""
from __future__ import annotations

from typing import Any, Optional, Sequence

from shared.errors import NotFound
from shared.models.domain import Match, TeamAggregate
from shared.models.enums import CompetitionBucket, MatchPhase
from storage.base import AggregateWrite, LeagueStore


class InMemoryLeagueStore(LeagueStore):

    def __init__(self) -> None:
        self._matches: dict[str, Match] = {}
        self._aggregates: dict[tuple[CompetitionBucket, str], TeamAggregate] = {}

    @property
    def backend_name(self) -> str:
        return "memory"

    async def load_match(self, match_id: str) -> Match:
        match = self._matches.get(match_id)
        if match is None:
            raise NotFound(f"Match {match_id} not found", match_id=match_id)
        return match.model_copy(deep=True)

    async def save_match(self, match_id: str, fields: dict[str, Any]) -> None:
        current = await self.load_match(match_id)
        self._matches[match_id] = current.merged(fields)

    async def add_match(self, match: Match) -> None:
        self._matches[match.id] = match.model_copy(deep=True)

    async def list_matches(self, phase: Optional[MatchPhase] = None) -> list[Match]:
        return [
            m.model_copy(deep=True)
            for m in self._matches.values()
            if phase is None or m.phase == phase
        ]

    async def load_team_aggregate(self, bucket: CompetitionBucket, team_id: str) -> TeamAggregate:
        aggregate = self._aggregates.get((bucket, team_id))
        if aggregate is None:
            raise NotFound(
                f"Team {team_id} not found in {bucket.value} standings",
                team_id=team_id,
                bucket=bucket.value,
            )
        return aggregate.model_copy()

    async def save_team_aggregates(
        self,
        bucket: CompetitionBucket,
        writes: Sequence[AggregateWrite],
    ) -> None:
        # Validate the whole batch first so a bad entry leaves nothing written.
        for team_id, _ in writes:
            if (bucket, team_id) not in self._aggregates:
                raise NotFound(
                    f"Team {team_id} not found in {bucket.value} standings",
                    team_id=team_id,
                    bucket=bucket.value,
                )
        for team_id, aggregate in writes:
            self._aggregates[(bucket, team_id)] = aggregate.model_copy(
                update={"team_id": team_id, "bucket": bucket}
            )

    async def add_team_aggregate(self, aggregate: TeamAggregate) -> None:
        self._aggregates[(aggregate.bucket, aggregate.team_id)] = aggregate.model_copy()

    async def list_team_aggregates(self, bucket: CompetitionBucket) -> list[TeamAggregate]:
        return [a.model_copy() for (b, _), a in self._aggregates.items() if b == bucket]
