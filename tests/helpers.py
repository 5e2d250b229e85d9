"""Test doubles shared across the suite."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Sequence

from shared.errors import StorageError
from shared.models.domain import TeamAggregate
from shared.models.enums import CompetitionBucket
from storage.base import AggregateWrite
from storage.memory import InMemoryLeagueStore

T0 = datetime(2026, 3, 14, 18, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable ``now`` that tests move forward by hand."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, minutes: float = 0, seconds: float = 0) -> datetime:
        self.current += timedelta(minutes=minutes, seconds=seconds)
        return self.current


class FlakyStore(InMemoryLeagueStore):
    """Fails the next ``failures`` aggregate writes."""

    def __init__(self, failures: int = 0) -> None:
        super().__init__()
        self.failures = failures
        self.write_calls = 0

    async def save_team_aggregates(self, bucket: CompetitionBucket, writes: Sequence[AggregateWrite]) -> None:
        self.write_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise StorageError("write failed", bucket=bucket.value)
        await super().save_team_aggregates(bucket, writes)


def make_team(
    team_id: str,
    name: str = "",
    bucket: CompetitionBucket = CompetitionBucket.OPENING,
    **stats: int,
) -> TeamAggregate:
    return TeamAggregate(team_id=team_id, bucket=bucket, name=name or team_id, **stats)
