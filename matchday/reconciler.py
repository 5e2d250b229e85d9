"""
Incremental standings reconciler.

Turns a score change of one match into a consistent update of both teams'
aggregates by reversing the previously counted result and applying the new
one. Goal tallies move by the score delta, so replaying any sequence of edits
(0-0 -> s1 -> ... -> sn) lands on the same aggregates as a single direct
(0-0 -> sn) computation.

``played`` is never written here except through ``record_kickoff``.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from shared.errors import NotFound, StorageError, TeamLookupError
from shared.models.domain import TeamAggregate, TeamAggregateDelta
from shared.models.enums import CompetitionBucket, MatchResult
from shared.utils.logging import get_logger
from shared.utils.metrics import (
    RECONCILIATION_LATENCY,
    STANDINGS_RECONCILIATION_FAILURES,
    STANDINGS_RECONCILIATIONS,
    atrack_latency,
)
from storage.base import LeagueStore

logger = get_logger(__name__)

Score = tuple[int, int]
AggregatePair = tuple[TeamAggregate, TeamAggregate]

# (home counter, away counter) touched by each result
_RESULT_COUNTERS: dict[MatchResult, tuple[str, str]] = {
    MatchResult.HOME_WIN: ("won", "lost"),
    MatchResult.DRAW: ("drawn", "drawn"),
    MatchResult.AWAY_WIN: ("lost", "won"),
}


def _shift(
    team: TeamAggregate,
    *,
    goals_for: int,
    goals_against: int,
    remove: Optional[str],
    add: str,
) -> TeamAggregateDelta:
    counters = {"won": team.won, "drawn": team.drawn, "lost": team.lost}
    if remove is not None:
        counters[remove] = max(0, counters[remove] - 1)
    counters[add] += 1
    return TeamAggregateDelta.derive(
        goals_for=team.goals_for + goals_for,
        goals_against=team.goals_against + goals_against,
        **counters,
    )


def reconcile_pair(
    home: TeamAggregate,
    away: TeamAggregate,
    previous: Score,
    new: Score,
    *,
    reverse_previous: bool = True,
) -> AggregatePair:
    """
    Pure reconciliation of one score change onto both aggregates.

    With ``reverse_previous=False`` the previous result is treated as never
    counted, which is the case for the first edit of a match.
    """
    d_home = new[0] - previous[0]
    d_away = new[1] - previous[1]

    old_home_counter, old_away_counter = _RESULT_COUNTERS[MatchResult.from_score(*previous)]
    new_home_counter, new_away_counter = _RESULT_COUNTERS[MatchResult.from_score(*new)]

    home_delta = _shift(
        home,
        goals_for=d_home,
        goals_against=d_away,
        remove=old_home_counter if reverse_previous else None,
        add=new_home_counter,
    )
    away_delta = _shift(
        away,
        goals_for=d_away,
        goals_against=d_home,
        remove=old_away_counter if reverse_previous else None,
        add=new_away_counter,
    )
    return home.apply(home_delta), away.apply(away_delta)


class StandingsReconciler:
    """Loads, reconciles and persists the aggregate pair of one match."""

    def __init__(
        self,
        store: LeagueStore,
        retry_attempts: int = 2,
        retry_base_delay_s: float = 0.2,
    ) -> None:
        self._store = store
        self._retry_attempts = retry_attempts
        self._retry_base_delay_s = retry_base_delay_s

    async def load_pair(
        self,
        bucket: CompetitionBucket,
        home_team_id: str,
        away_team_id: str,
    ) -> AggregatePair:
        """Load both aggregates or fail before anything is written."""
        try:
            home = await self._store.load_team_aggregate(bucket, home_team_id)
            away = await self._store.load_team_aggregate(bucket, away_team_id)
        except TeamLookupError:
            raise
        except NotFound as exc:
            raise TeamLookupError(
                exc.message,
                bucket=bucket.value,
                home_team_id=home_team_id,
                away_team_id=away_team_id,
            ) from exc
        return home, away

    async def _write_pair(self, bucket: CompetitionBucket, pair: AggregatePair, **context) -> None:
        """Persist both aggregates, retrying the identical write on StorageError."""
        home, away = pair
        writes = [(home.team_id, home), (away.team_id, away)]
        attempt = 0
        while True:
            try:
                await self._store.save_team_aggregates(bucket, writes)
                return
            except StorageError as exc:
                if attempt >= self._retry_attempts:
                    STANDINGS_RECONCILIATION_FAILURES.labels(bucket=bucket.value).inc()
                    logger.error(
                        "standings_write_failed",
                        bucket=bucket.value,
                        attempts=attempt + 1,
                        error=exc.message,
                        **context,
                    )
                    raise StorageError(
                        "Team aggregates could not be written; the pending update is kept for a retry",
                        bucket=bucket.value,
                        home_team_id=home.team_id,
                        away_team_id=away.team_id,
                        **context,
                    ) from exc
                delay = self._retry_base_delay_s * (2 ** attempt)
                attempt += 1
                logger.warning(
                    "standings_write_retry",
                    bucket=bucket.value,
                    attempt=attempt,
                    delay_s=delay,
                    error=exc.message,
                )
                await asyncio.sleep(delay)

    async def record_kickoff(
        self,
        bucket: CompetitionBucket,
        home_team_id: str,
        away_team_id: str,
        pair: Optional[AggregatePair] = None,
    ) -> AggregatePair:
        """Increment ``played`` for both teams. Called once per match, on start."""
        home, away = pair or await self.load_pair(bucket, home_team_id, away_team_id)
        updated = (home.kicked_off(), away.kicked_off())
        await self._write_pair(bucket, updated, operation="kickoff")
        logger.info(
            "standings_kickoff_recorded",
            bucket=bucket.value,
            home_team_id=home_team_id,
            away_team_id=away_team_id,
        )
        return updated

    async def reconcile(
        self,
        bucket: CompetitionBucket,
        home_team_id: str,
        away_team_id: str,
        previous: Score,
        new: Score,
        *,
        reverse_previous: bool = True,
        pair: Optional[AggregatePair] = None,
    ) -> AggregatePair:
        """
        Apply ``previous -> new`` to both teams and persist them together.

        ``pair`` lets the caller pass aggregates it already loaded so that team
        lookup failures surface before the match itself is written.
        """
        async with atrack_latency(RECONCILIATION_LATENCY, bucket=bucket.value):
            home, away = pair or await self.load_pair(bucket, home_team_id, away_team_id)
            updated = reconcile_pair(home, away, previous, new, reverse_previous=reverse_previous)
            await self._write_pair(
                bucket,
                updated,
                previous=list(previous),
                new=list(new),
                reverse_previous=reverse_previous,
            )

        STANDINGS_RECONCILIATIONS.labels(bucket=bucket.value).inc()
        logger.info(
            "standings_reconciled",
            bucket=bucket.value,
            home_team_id=home_team_id,
            away_team_id=away_team_id,
            previous=f"{previous[0]}-{previous[1]}",
            new=f"{new[0]}-{new[1]}",
            reverse_previous=reverse_previous,
        )
        return updated
