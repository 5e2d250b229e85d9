"""Unit tests for league table ordering and the accumulated table."""
from __future__ import annotations

from shared.models.enums import CompetitionBucket
from matchday.standings import accumulate, sort_standings

from tests.helpers import make_team


def test_played_is_the_first_criterion() -> None:
    table = sort_standings([
        make_team("A", played=1, won=1, points=3),
        make_team("B", played=2, lost=2),
    ])
    assert [t.team_id for t in table] == ["B", "A"]
    assert [t.position for t in table] == [1, 2]


def test_points_then_goal_diff_then_goals_for() -> None:
    table = sort_standings([
        make_team("low", played=3, points=4),
        make_team("gd", played=3, points=6, goal_diff=1, goals_for=2),
        make_team("gf", played=3, points=6, goal_diff=1, goals_for=5),
        make_team("top", played=3, points=6, goal_diff=4, goals_for=4),
    ])
    assert [t.team_id for t in table] == ["top", "gf", "gd", "low"]


def test_name_breaks_full_ties() -> None:
    table = sort_standings([make_team("2", "Zeta"), make_team("1", "Alfa")])
    assert [t.name for t in table] == ["Alfa", "Zeta"]


def test_accumulate_sums_buckets() -> None:
    opening = [
        make_team("A", played=2, won=1, drawn=1, goals_for=3, goals_against=1, points=4),
        make_team("B", played=2, lost=2, goals_against=4),
    ]
    closing = [
        make_team("A", bucket=CompetitionBucket.CLOSING, played=1, lost=1, goals_against=2),
        make_team("B", bucket=CompetitionBucket.CLOSING, played=1, won=1, goals_for=2, points=3),
    ]
    table = {t.team_id: t for t in accumulate(opening, closing)}
    a, b = table["A"], table["B"]
    assert (a.played, a.won, a.drawn, a.lost) == (3, 1, 1, 1)
    assert (a.goals_for, a.goals_against, a.goal_diff, a.points) == (3, 3, 0, 4)
    assert (b.played, b.won, b.lost, b.goal_diff, b.points) == (3, 1, 2, -2, 3)
    assert a.position == 1 and b.position == 2


def test_accumulate_keeps_teams_from_one_bucket() -> None:
    table = accumulate([make_team("A", played=1)], [])
    assert [t.team_id for t in table] == ["A"]
