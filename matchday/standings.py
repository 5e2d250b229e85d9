"""League table ordering and the accumulated (opening + closing) table."""
from __future__ import annotations

from typing import Iterable

from shared.models.domain import TeamAggregate


def _sort_key(team: TeamAggregate) -> tuple:
    return (-team.played, -team.points, -team.goal_diff, -team.goals_for, team.name or "")


def sort_standings(teams: Iterable[TeamAggregate]) -> list[TeamAggregate]:
    """
    Order a table and assign positions 1..n.

    Criteria: played, points, goal difference and goals for (all descending),
    then name. Teams that have played go ahead of teams that have not.
    """
    ordered = sorted(teams, key=_sort_key)
    return [team.model_copy(update={"position": i}) for i, team in enumerate(ordered, start=1)]


def accumulate(
    opening: Iterable[TeamAggregate],
    closing: Iterable[TeamAggregate],
) -> list[TeamAggregate]:
    """Per-team sum of both buckets, sorted, with derived goal difference and points."""
    totals: dict[str, TeamAggregate] = {}
    for team in [*opening, *closing]:
        current = totals.get(team.team_id)
        if current is None:
            totals[team.team_id] = team.model_copy(update={"position": None})
            continue
        totals[team.team_id] = current.model_copy(
            update={
                "name": current.name or team.name,
                "played": current.played + team.played,
                "won": current.won + team.won,
                "drawn": current.drawn + team.drawn,
                "lost": current.lost + team.lost,
                "goals_for": current.goals_for + team.goals_for,
                "goals_against": current.goals_against + team.goals_against,
            }
        )
    rows = [
        t.model_copy(
            update={
                "goal_diff": t.goals_for - t.goals_against,
                "points": t.won * 3 + t.drawn,
            }
        )
        for t in totals.values()
    ]
    return sort_standings(rows)
