"""Shared fixtures: a controllable clock, a seeded in-memory store and a state machine."""
from __future__ import annotations

import pytest

from shared.config import Settings
from shared.models.domain import Match
from matchday.state_machine import MatchStateMachine
from storage.memory import InMemoryLeagueStore

from tests.helpers import FakeClock, make_team


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        storage_backend="memory",
        metrics_enabled=False,
        reconcile_retry_attempts=1,
        reconcile_retry_base_delay_s=0.0,
    )


@pytest.fixture
async def store() -> InMemoryLeagueStore:
    s = InMemoryLeagueStore()
    await s.add_team_aggregate(make_team("A", "Atlético Norte"))
    await s.add_team_aggregate(make_team("B", "Barrio Sur"))
    await s.add_team_aggregate(make_team("C", "Ciudad FC"))
    await s.add_match(Match(id="A_B", home_team_id="A", away_team_id="B"))
    return s


@pytest.fixture
def machine(store: InMemoryLeagueStore, settings: Settings, fake_clock: FakeClock) -> MatchStateMachine:
    return MatchStateMachine(store, settings=settings, now=fake_clock)
