"""
Storage collaborator interface for the live-match core.
Every adapter (memory, Redis, SQL) implements LeagueStore and raises the core
error kinds: NotFound for missing documents, StorageError for I/O failures.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Sequence

from shared.models.domain import Match, TeamAggregate
from shared.models.enums import CompetitionBucket, MatchPhase
from shared.utils.logging import get_logger

logger = get_logger(__name__)

AggregateWrite = tuple[str, TeamAggregate]


class LeagueStore(ABC):
    """Document store for matches and team aggregates."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        pass

    async def connect(self) -> None:
        """Open connections. No-op for stores without any."""

    async def close(self) -> None:
        """Release connections. No-op for stores without any."""

    @asynccontextmanager
    async def match_guard(self, match_id: str) -> AsyncIterator[None]:
        """
        Cross-process mutual exclusion for one match id.
        Stores that are only ever used from one process need nothing here.
        """
        yield

    # ── Matches ─────────────────────────────────────────────────────────
    @abstractmethod
    async def load_match(self, match_id: str) -> Match:
        """Return the match or raise NotFound."""

    @abstractmethod
    async def save_match(self, match_id: str, fields: dict[str, Any]) -> None:
        """Partial-field update of an existing match."""

    @abstractmethod
    async def add_match(self, match: Match) -> None:
        """Create or replace a match document."""

    @abstractmethod
    async def list_matches(self, phase: Optional[MatchPhase] = None) -> list[Match]:
        pass

    # ── Team aggregates ─────────────────────────────────────────────────
    @abstractmethod
    async def load_team_aggregate(self, bucket: CompetitionBucket, team_id: str) -> TeamAggregate:
        """Return the aggregate or raise NotFound."""

    @abstractmethod
    async def save_team_aggregates(
        self,
        bucket: CompetitionBucket,
        writes: Sequence[AggregateWrite],
    ) -> None:
        """Persist every aggregate in ``writes`` in a single transaction where supported."""

    @abstractmethod
    async def add_team_aggregate(self, aggregate: TeamAggregate) -> None:
        """Create or replace a team aggregate."""

    @abstractmethod
    async def list_team_aggregates(self, bucket: CompetitionBucket) -> list[TeamAggregate]:
        pass
