"""
Tests for the tick driver: auto transitions, listeners and error isolation.

Run: pytest tests/test_tick_driver.py -v
"""
from __future__ import annotations

import asyncio

import pytest

from shared.config import Settings
from shared.errors import StorageError
from shared.models.domain import Match
from shared.models.enums import ClockLabel, CompetitionBucket, MatchPhase
from matchday.state_machine import MatchStateMachine
from ticker.driver import TickDriver

from tests.helpers import FakeClock, FlakyStore, make_team


@pytest.fixture
def driver(machine: MatchStateMachine, settings: Settings) -> TickDriver:
    return TickDriver(machine, settings, discover=False)


@pytest.mark.asyncio
async def test_refresh_tracks_live_matches(machine: MatchStateMachine, driver: TickDriver) -> None:
    await machine.start_match("A_B")
    await driver.refresh_watched()
    assert driver.watched == frozenset({"A_B"})


@pytest.mark.asyncio
async def test_listeners_receive_readings(machine: MatchStateMachine, driver: TickDriver, fake_clock: FakeClock) -> None:
    seen: list[tuple[str, int]] = []

    async def record_async(match_id, reading) -> None:
        seen.append((match_id, reading.minute))

    driver.add_listener(lambda match_id, reading: seen.append((match_id, reading.minute)))
    driver.add_listener(record_async)
    await machine.start_match("A_B")
    driver.watch("A_B")
    fake_clock.advance(minutes=12)
    await driver.tick()
    assert seen == [("A_B", 12), ("A_B", 12)]


@pytest.mark.asyncio
async def test_auto_closes_first_half(machine: MatchStateMachine, driver: TickDriver, fake_clock: FakeClock) -> None:
    await machine.start_match("A_B")
    await machine.set_first_half_stoppage("A_B", 3)
    driver.watch("A_B")

    fake_clock.advance(minutes=47)
    readings = await driver.tick()
    assert readings["A_B"].label == ClockLabel.FIRST_HALF

    fake_clock.advance(minutes=1)
    readings = await driver.tick()
    assert readings["A_B"].label == ClockLabel.HALFTIME
    assert readings["A_B"].minute == 48
    assert (await machine.store.load_match("A_B")).in_halftime_break


@pytest.mark.asyncio
async def test_no_auto_close_without_stoppage_by_default(machine: MatchStateMachine, driver: TickDriver, fake_clock: FakeClock) -> None:
    await machine.start_match("A_B")
    driver.watch("A_B")
    fake_clock.advance(minutes=55)
    readings = await driver.tick()
    assert readings["A_B"].label == ClockLabel.FIRST_HALF
    assert readings["A_B"].minute == 55


@pytest.mark.asyncio
async def test_concurrent_drivers_close_once(machine: MatchStateMachine, settings: Settings, fake_clock: FakeClock) -> None:
    await machine.start_match("A_B")
    await machine.set_first_half_stoppage("A_B", 2)
    drivers = [TickDriver(machine, settings, discover=False) for _ in range(3)]
    for d in drivers:
        d.watch("A_B")
    fake_clock.advance(minutes=50)
    results = await asyncio.gather(*(d.tick() for d in drivers))
    assert all(r["A_B"].label == ClockLabel.HALFTIME for r in results)
    assert (await machine.store.load_match("A_B")).first_half_stoppage == 2


@pytest.mark.asyncio
async def test_auto_finish_after_grace(store, fake_clock: FakeClock) -> None:
    settings = Settings(metrics_enabled=False, auto_finish_enabled=True, auto_finish_grace_minutes=5)
    machine = MatchStateMachine(store, settings=settings, now=fake_clock)
    driver = TickDriver(machine, settings, discover=False)
    await machine.start_match("A_B")
    fake_clock.advance(minutes=46)
    await machine.close_first_half("A_B")
    fake_clock.advance(minutes=15)
    await machine.resume_second_half("A_B")
    await machine.set_second_half_stoppage("A_B", 2)
    driver.watch("A_B")

    fake_clock.advance(minutes=51)
    await driver.tick()
    assert (await store.load_match("A_B")).phase == MatchPhase.LIVE

    fake_clock.advance(minutes=1)
    readings = await driver.tick()
    assert (await store.load_match("A_B")).phase == MatchPhase.FINISHED
    assert readings["A_B"].label == ClockLabel.FULL_TIME
    assert "A_B" not in driver.watched


@pytest.mark.asyncio
async def test_failing_match_does_not_stop_others(machine: MatchStateMachine, driver: TickDriver, store, fake_clock: FakeClock) -> None:
    await store.add_match(Match(id="A_C", home_team_id="A", away_team_id="C"))
    await machine.start_match("A_C")
    driver.watch("A_C")
    driver.watch("gone")
    fake_clock.advance(minutes=5)
    readings = await driver.tick()
    assert readings["A_C"].minute == 5
    assert "gone" not in driver.watched


@pytest.mark.asyncio
async def test_listener_error_is_isolated(machine: MatchStateMachine, driver: TickDriver, store) -> None:
    await store.add_match(Match(id="B_C", home_team_id="B", away_team_id="C"))
    await machine.start_match("A_B")
    await machine.start_match("B_C")
    driver.watch("A_B")
    driver.watch("B_C")

    def explode(match_id, reading) -> None:
        if match_id == "A_B":
            raise RuntimeError("listener down")

    driver.add_listener(explode)
    readings = await driver.tick()
    assert set(readings) == {"B_C"}
    assert driver.watched == frozenset({"A_B", "B_C"})


@pytest.mark.asyncio
async def test_run_stops_on_shutdown(machine: MatchStateMachine, fake_clock: FakeClock) -> None:
    settings = Settings(metrics_enabled=False, tick_interval_s=0.01, tick_refresh_every_n=1)
    driver = TickDriver(machine, settings)
    await machine.start_match("A_B")
    task = asyncio.create_task(driver.run())
    await asyncio.sleep(0.05)
    driver.request_shutdown()
    await asyncio.wait_for(task, timeout=1.0)
    assert driver.watched == frozenset({"A_B"})


@pytest.mark.asyncio
async def test_tick_replays_failed_standings_writes(settings: Settings, fake_clock: FakeClock) -> None:
    store = FlakyStore()
    await store.add_team_aggregate(make_team("A"))
    await store.add_team_aggregate(make_team("B"))
    await store.add_match(Match(id="A_B", home_team_id="A", away_team_id="B"))
    await store.add_match(Match(id="B_A", home_team_id="B", away_team_id="A"))
    machine = MatchStateMachine(store, settings=settings, now=fake_clock)
    await machine.start_match("A_B")
    await machine.start_match("B_A")
    fake_clock.advance(minutes=46)
    await machine.close_first_half("B_A")
    fake_clock.advance(minutes=15)
    await machine.resume_second_half("B_A")
    fake_clock.advance(minutes=45)

    store.failures = 100
    with pytest.raises(StorageError):
        await machine.update_score("A_B", 1, 0)
    with pytest.raises(StorageError):
        await machine.finish_match("B_A")
    store.failures = 0

    driver = TickDriver(machine, settings, discover=False)
    await driver.refresh_watched()
    assert driver.watched == frozenset({"A_B", "B_A"})

    readings = await driver.tick()
    assert set(readings) == {"A_B"}
    assert driver.watched == frozenset({"A_B"})
    for match_id in ("A_B", "B_A"):
        assert (await store.load_match(match_id)).pending_reconciliation is None
    a = await store.load_team_aggregate(CompetitionBucket.OPENING, "A")
    assert (a.played, a.won, a.drawn) == (2, 1, 1)
