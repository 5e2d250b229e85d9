"""API route tests against an injected in-memory store; no Redis or Postgres needed."""
from __future__ import annotations

import asyncio
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from shared.config import SERVICE_VERSION, Settings
from shared.errors import StorageError
from shared.models.domain import Match
from shared.models.enums import CompetitionBucket
from storage.memory import InMemoryLeagueStore
from api import service as api_service
from api.app import create_app

from tests.helpers import FakeClock, make_team


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def api_store() -> InMemoryLeagueStore:
    store = InMemoryLeagueStore()

    async def seed() -> None:
        await store.add_team_aggregate(make_team("A", "Atlético Norte"))
        await store.add_team_aggregate(make_team("B", "Barrio Sur"))
        await store.add_team_aggregate(
            make_team("A", "Atlético Norte", bucket=CompetitionBucket.CLOSING, played=1, won=1, points=3)
        )
        await store.add_match(Match(id="A_B", home_team_id="A", away_team_id="B"))

    asyncio.run(seed())
    return store


@pytest.fixture
def client(api_store: InMemoryLeagueStore, clock: FakeClock) -> Iterator[TestClient]:
    """Test client with lifespan disabled and the state machine clock under test control."""
    settings = Settings(metrics_enabled=False, reconcile_retry_base_delay_s=0.0)
    app = create_app(api_store, use_lifespan=False, settings=settings)
    app.state.machine._now = clock
    with TestClient(app) as c:
        yield c


def test_health_returns_ok(client: TestClient) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "service": "api", "backend": "memory"}


def test_get_match_includes_clock(client: TestClient) -> None:
    r = client.get("/v1/matches/A_B")
    assert r.status_code == 200
    data = r.json()
    assert data["phase"] == "scheduled"
    assert data["clock"] == {
        "minute": 0,
        "label": "not_started",
        "display": "0'",
        "near_boundary": False,
        "can_finish": False,
        "should_close_first_half": False,
    }


def test_unknown_match_is_404(client: TestClient) -> None:
    r = client.get("/v1/matches/X_Y/clock")
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"
    assert "X-Request-ID" in r.headers


def test_start_and_score(client: TestClient, clock: FakeClock) -> None:
    assert client.post("/v1/matches/A_B/start").status_code == 200
    clock.advance(minutes=23)
    r = client.put("/v1/matches/A_B/score", json={"home": 1, "away": 0})
    assert r.status_code == 200
    assert r.json()["home_score"] == 1
    assert r.json()["clock"]["display"] == "23'"

    table = client.get("/v1/standings/opening").json()["teams"]
    assert table[0]["team_id"] == "A"
    assert (table[0]["points"], table[0]["position"]) == (3, 1)


def test_negative_score_is_422(client: TestClient) -> None:
    client.post("/v1/matches/A_B/start")
    r = client.put("/v1/matches/A_B/score", json={"home": -1, "away": 0})
    assert r.status_code == 422
    assert r.json()["error"] == "validation_error"
    assert client.get("/v1/matches/A_B").json()["home_score"] == 0


def test_boolean_score_is_422(client: TestClient) -> None:
    client.post("/v1/matches/A_B/start")
    assert client.put("/v1/matches/A_B/score", json={"home": True, "away": 0}).status_code == 422


def test_start_twice_is_409(client: TestClient) -> None:
    client.post("/v1/matches/A_B/start")
    r = client.post("/v1/matches/A_B/start")
    assert r.status_code == 409
    assert r.json()["error"] == "invalid_transition"


def test_early_finish_reports_minute(client: TestClient, clock: FakeClock) -> None:
    client.post("/v1/matches/A_B/start")
    clock.advance(minutes=46)
    client.post("/v1/matches/A_B/first-half/close")
    clock.advance(minutes=15)
    client.post("/v1/matches/A_B/second-half/resume")
    clock.advance(minutes=30)
    r = client.post("/v1/matches/A_B/finish")
    assert r.status_code == 409
    assert r.json()["minute"] == 75


def test_full_flow_with_stoppage(client: TestClient, clock: FakeClock) -> None:
    client.post("/v1/matches/A_B/start")
    assert client.put("/v1/matches/A_B/stoppage/first", json={"minutes": 2}).status_code == 200
    clock.advance(minutes=46)
    assert client.get("/v1/matches/A_B/clock").json()["display"] == "45' +1"
    assert client.post("/v1/matches/A_B/first-half/close").json()["clock"]["display"] == "HT 45' +2"
    clock.advance(minutes=15)
    client.post("/v1/matches/A_B/second-half/resume")
    client.put("/v1/matches/A_B/stoppage/second", json={"minutes": 3})
    clock.advance(minutes=48)
    r = client.post("/v1/matches/A_B/finish")
    assert r.status_code == 200
    assert r.json()["phase"] == "finished"
    assert r.json()["clock"]["display"] == "FT"


def test_stoppage_out_of_range_is_422(client: TestClient) -> None:
    client.post("/v1/matches/A_B/start")
    assert client.put("/v1/matches/A_B/stoppage/first", json={"minutes": 16}).status_code == 422
    assert client.put("/v1/matches/A_B/stoppage/third", json={"minutes": 1}).status_code == 422


def test_suspend_toggle(client: TestClient) -> None:
    r = client.put("/v1/matches/A_B/suspended", json={"suspended": True})
    assert r.status_code == 200
    assert r.json()["suspended"] is True
    assert r.json()["phase"] == "scheduled"


def test_accumulated_standings(client: TestClient) -> None:
    r = client.get("/v1/standings/accumulated")
    assert r.status_code == 200
    teams = {t["team_id"]: t for t in r.json()["teams"]}
    assert teams["A"]["points"] == 3
    assert teams["A"]["position"] == 1
    assert client.get("/v1/standings/playoffs").status_code == 422


def test_storage_error_is_503(client: TestClient, api_store: InMemoryLeagueStore) -> None:
    async def broken(match_id: str) -> Match:
        raise StorageError("backend down", match_id=match_id)

    api_store.load_match = broken
    r = client.get("/v1/matches/A_B")
    assert r.status_code == 503
    assert r.json()["error"] == "storage_error"


def test_service_info_is_recorded(client: TestClient) -> None:
    labels = {"service": "api", "version": SERVICE_VERSION, "backend": "memory", "environment": "dev"}
    assert REGISTRY.get_sample_value("ll_service_info", labels) == 1.0


def test_service_entrypoint_uses_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: dict = {}
    settings = Settings(api_port=8123, log_level="DEBUG", api_keep_alive_s=12)
    monkeypatch.setattr(api_service, "get_settings", lambda: settings)
    monkeypatch.setattr(api_service.uvicorn, "run", lambda target, **kwargs: calls.update(target=target, **kwargs))

    api_service.main()
    assert calls["target"] == "api.app:app"
    assert (calls["port"], calls["log_level"], calls["timeout_keep_alive"]) == (8123, "debug", 12)
    assert calls["access_log"] is False


def test_standings_retry_replays_failed_write(client: TestClient, api_store: InMemoryLeagueStore) -> None:
    client.post("/v1/matches/A_B/start")
    save = api_store.save_team_aggregates

    async def broken(bucket, writes) -> None:
        raise StorageError("backend down", bucket=bucket.value)

    api_store.save_team_aggregates = broken
    assert client.put("/v1/matches/A_B/score", json={"home": 0, "away": 2}).status_code == 503
    assert client.get("/v1/matches/A_B").json()["pending_reconciliation"]["new"] == [0, 2]

    api_store.save_team_aggregates = save
    r = client.post("/v1/matches/A_B/standings/retry")
    assert r.status_code == 200
    assert r.json()["pending_reconciliation"] is None
    table = {t["team_id"]: t for t in client.get("/v1/standings/opening").json()["teams"]}
    assert (table["B"]["points"], table["B"]["goals_for"]) == (3, 2)
