"""
Phase state machine for a live match.

    scheduled --start--> live[first half] --close--> live[break]
              --resume--> live[second half] --finish--> finished

Every operation loads the match, validates its arguments, checks the phase
precondition and only then writes. Score changes are handed to the
StandingsReconciler after the match document is updated.

The match write also records the standings work it owes as a
``PendingReconciliation``, cleared once the aggregate pair is saved. Any later
operation on the match (or ``retry_pending``) replays a record left behind by
a failed aggregate write before doing its own work.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Optional

from shared.config import Settings, get_settings
from shared.errors import InvalidTransition, LeagueError, ValidationError
from shared.models.domain import Match, PendingReconciliation
from shared.models.enums import MatchPhase, Operation
from shared.utils.logging import get_logger
from shared.utils.metrics import MATCH_TRANSITIONS
from matchday import clock
from matchday.clock import ClockReading
from matchday.locks import MatchLockRegistry
from matchday.reconciler import AggregatePair, StandingsReconciler
from storage.base import LeagueStore

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _require_int(name: str, value: Any, *, minimum: int = 0, maximum: Optional[int] = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", field=name, value=repr(value))
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f"between {minimum} and {maximum}" if maximum is not None else f">= {minimum}"
        raise ValidationError(f"{name} must be {bounds}", field=name, value=value)
    return value


def _require_live(match: Match, operation: Operation) -> None:
    if not match.phase.is_live:
        raise InvalidTransition(
            f"Cannot {operation.value} while match is {match.phase.value}",
            match_id=match.id,
            phase=match.phase.value,
        )


class MatchStateMachine:
    """
    Executes match transitions against a LeagueStore.

    Writers on the same match id are serialized in-process by a lock registry
    and across processes by the store's ``match_guard``.
    """

    def __init__(
        self,
        store: LeagueStore,
        reconciler: Optional[StandingsReconciler] = None,
        settings: Optional[Settings] = None,
        now: Callable[[], datetime] = utc_now,
        locks: Optional[MatchLockRegistry] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._reconciler = reconciler or StandingsReconciler(
            store,
            retry_attempts=self._settings.reconcile_retry_attempts,
            retry_base_delay_s=self._settings.reconcile_retry_base_delay_s,
        )
        self._now = now
        self._locks = locks or MatchLockRegistry()

    @property
    def store(self) -> LeagueStore:
        return self._store

    @asynccontextmanager
    async def _transition(self, operation: Operation, match_id: str) -> AsyncIterator[None]:
        """Serialize on the match id and record the outcome of one operation."""
        try:
            async with self._locks.hold(match_id):
                async with self._store.match_guard(match_id):
                    yield
        except LeagueError as exc:
            MATCH_TRANSITIONS.labels(operation=operation.value, outcome=exc.code).inc()
            logger.info(
                "match_transition_rejected",
                operation=operation.value,
                match_id=match_id,
                error=exc.code,
                reason=exc.message,
            )
            raise
        MATCH_TRANSITIONS.labels(operation=operation.value, outcome="ok").inc()

    async def _write(self, match: Match, fields: dict[str, Any]) -> Match:
        await self._store.save_match(match.id, fields)
        return match.merged(fields)

    # ── Pending standings work ──────────────────────────────────────────
    async def _settle(self, match: Match, pair: Optional[AggregatePair] = None) -> Match:
        """Persist the aggregate pair owed by ``match`` and clear its pending record."""
        pending = match.pending_reconciliation
        if pending is None:
            return match
        home_id, away_id = match.team_ids()
        if pending.operation == Operation.START:
            await self._reconciler.record_kickoff(match.bucket, home_id, away_id, pair=pair)
        else:
            await self._reconciler.reconcile(
                match.bucket,
                home_id,
                away_id,
                pending.previous,
                pending.new,
                reverse_previous=pending.reverse_previous,
                pair=pair,
            )
        return await self._write(match, {"pending_reconciliation": None})

    async def _replay(self, match: Match) -> Match:
        pending = match.pending_reconciliation
        if pending is None:
            return match
        logger.warning(
            "pending_reconciliation_replayed",
            match_id=match.id,
            operation=pending.operation.value,
            previous=list(pending.previous),
            new=list(pending.new),
        )
        return await self._settle(match)

    async def _load(self, match_id: str) -> Match:
        """Load a match, replaying standings work a failed write left behind."""
        return await self._replay(await self._store.load_match(match_id))

    async def retry_pending(self, match_id: str) -> Match:
        """Replay outstanding standings work for a match. No-op when there is none."""
        async with self._transition(Operation.RETRY_PENDING, match_id):
            return await self._load(match_id)

    # ── Start ───────────────────────────────────────────────────────────
    async def start_match(self, match_id: str) -> Match:
        async with self._transition(Operation.START, match_id):
            match = await self._store.load_match(match_id)
            pending = match.pending_reconciliation
            match = await self._replay(match)
            # A retried start completes the kickoff the first call could not write.
            if pending is not None and pending.operation == Operation.START:
                return match
            if match.phase != MatchPhase.SCHEDULED:
                raise InvalidTransition(
                    f"Match {match_id} is {match.phase.value}, only scheduled matches can start",
                    match_id=match_id,
                    phase=match.phase.value,
                )
            home_id, away_id = match.team_ids()
            pair = await self._reconciler.load_pair(match.bucket, home_id, away_id)

            now = self._now()
            fields: dict[str, Any] = {
                "phase": MatchPhase.LIVE,
                "half_started_at": now,
                "second_half_started_at": None,
                "in_first_half": True,
                "in_halftime_break": False,
                "first_half_stoppage": 0,
                "second_half_stoppage": 0,
                "pending_reconciliation": PendingReconciliation(operation=Operation.START),
            }
            if match.home_score is None:
                fields["home_score"] = 0
            if match.away_score is None:
                fields["away_score"] = 0
            updated = await self._settle(await self._write(match, fields), pair=pair)

        logger.info("match_started", match_id=match_id, home_team_id=home_id, away_team_id=away_id)
        return updated

    # ── Score ───────────────────────────────────────────────────────────
    async def update_score(self, match_id: str, home: Any, away: Any) -> Match:
        async with self._transition(Operation.UPDATE_SCORE, match_id):
            match = await self._load(match_id)
            new = (_require_int("home", home), _require_int("away", away))
            _require_live(match, Operation.UPDATE_SCORE)
            home_id, away_id = match.team_ids()
            pair = await self._reconciler.load_pair(match.bucket, home_id, away_id)

            previous = match.score
            pending = PendingReconciliation(
                operation=Operation.UPDATE_SCORE,
                previous=previous,
                new=new,
                reverse_previous=match.result_counted,
            )
            updated = await self._write(
                match,
                {
                    "home_score": new[0],
                    "away_score": new[1],
                    "result_counted": True,
                    "pending_reconciliation": pending,
                },
            )
            updated = await self._settle(updated, pair=pair)

        logger.info(
            "score_updated",
            match_id=match_id,
            previous=f"{previous[0]}-{previous[1]}",
            score=f"{new[0]}-{new[1]}",
        )
        return updated

    # ── Stoppage time ───────────────────────────────────────────────────
    async def _set_stoppage(self, operation: Operation, field: str, match_id: str, minutes: Any) -> Match:
        async with self._transition(operation, match_id):
            match = await self._load(match_id)
            minutes = _require_int("minutes", minutes, maximum=self._settings.max_stoppage_minutes)
            _require_live(match, operation)
            updated = await self._write(match, {field: minutes})

        logger.info("stoppage_set", match_id=match_id, half=field, minutes=minutes)
        return updated

    async def set_first_half_stoppage(self, match_id: str, minutes: Any) -> Match:
        return await self._set_stoppage(
            Operation.FIRST_HALF_STOPPAGE, "first_half_stoppage", match_id, minutes
        )

    async def set_second_half_stoppage(self, match_id: str, minutes: Any) -> Match:
        return await self._set_stoppage(
            Operation.SECOND_HALF_STOPPAGE, "second_half_stoppage", match_id, minutes
        )

    # ── Half-time ───────────────────────────────────────────────────────
    def _check_can_close(self, match: Match) -> None:
        _require_live(match, Operation.CLOSE_FIRST_HALF)
        if not match.in_first_half or match.in_halftime_break:
            raise InvalidTransition(
                f"Match {match.id} is not in the first half",
                match_id=match.id,
                minute=clock.elapsed_minutes(match, self._now()),
            )

    def _is_close_due(self, match: Match) -> bool:
        return clock.should_close_first_half(
            match,
            self._now(),
            close_without_stoppage=self._settings.auto_close_without_stoppage,
        )

    async def _close(self, match: Match) -> Match:
        return await self._write(
            match,
            {
                "first_half_stoppage": match.first_half_stoppage or 0,
                "in_halftime_break": True,
            },
        )

    async def close_first_half(self, match_id: str) -> Match:
        async with self._transition(Operation.CLOSE_FIRST_HALF, match_id):
            match = await self._load(match_id)
            self._check_can_close(match)
            updated = await self._close(match)

        logger.info("first_half_closed", match_id=match_id, stoppage=updated.first_half_stoppage)
        return updated

    async def close_first_half_if_due(self, match_id: str) -> bool:
        """
        Close the first half when the auto-trigger condition holds.

        Returns False without writing when it does not, including when another
        caller already closed the half.
        """
        if not self._is_close_due(await self._store.load_match(match_id)):
            return False

        async with self._transition(Operation.CLOSE_FIRST_HALF, match_id):
            # Re-read under the lock; a concurrent caller may have closed it.
            match = await self._load(match_id)
            if not self._is_close_due(match):
                return False
            await self._close(match)

        logger.info(
            "first_half_auto_closed",
            match_id=match_id,
            stoppage=match.first_half_stoppage or 0,
        )
        return True

    async def resume_second_half(self, match_id: str) -> Match:
        async with self._transition(Operation.RESUME_SECOND_HALF, match_id):
            match = await self._load(match_id)
            _require_live(match, Operation.RESUME_SECOND_HALF)
            if not match.in_halftime_break:
                raise InvalidTransition(
                    f"Match {match_id} is not in the half-time break",
                    match_id=match_id,
                    minute=clock.elapsed_minutes(match, self._now()),
                )
            updated = await self._write(
                match,
                {
                    "in_halftime_break": False,
                    "in_first_half": False,
                    "second_half_started_at": self._now(),
                },
            )

        logger.info("second_half_started", match_id=match_id)
        return updated

    # ── Finish ──────────────────────────────────────────────────────────
    async def finish_match(self, match_id: str) -> Match:
        async with self._transition(Operation.FINISH, match_id):
            match = await self._store.load_match(match_id)
            pending = match.pending_reconciliation
            match = await self._replay(match)
            # A retried finish completes the count the first call could not write.
            if pending is not None and pending.operation == Operation.FINISH:
                return match
            _require_live(match, Operation.FINISH)
            now = self._now()
            if not clock.can_finish(match, now):
                minute = clock.elapsed_minutes(match, now)
                raise InvalidTransition(
                    f"Match {match_id} cannot finish at minute {minute}",
                    minute=minute,
                    match_id=match_id,
                    required=clock.FULL_TIME_MINUTES + (match.second_half_stoppage or 0),
                )

            # Finishing makes no standings change once a score edit has been
            # counted. A match whose score was never edited (a goalless draw
            # left at its kickoff 0-0) has its result counted here, once.
            fields: dict[str, Any] = {"phase": MatchPhase.FINISHED, "result_counted": True}
            pair = None
            count_result = not match.result_counted
            if count_result:
                home_id, away_id = match.team_ids()
                pair = await self._reconciler.load_pair(match.bucket, home_id, away_id)
                fields["pending_reconciliation"] = PendingReconciliation(
                    operation=Operation.FINISH,
                    previous=(0, 0),
                    new=match.score,
                    reverse_previous=False,
                )
            updated = await self._settle(await self._write(match, fields), pair=pair)

        logger.info(
            "match_finished",
            match_id=match_id,
            score=f"{match.score[0]}-{match.score[1]}",
            counted_on_finish=count_result,
        )
        return updated

    # ── Flags ───────────────────────────────────────────────────────────
    async def set_suspended(self, match_id: str, suspended: Any) -> Match:
        async with self._transition(Operation.SUSPEND, match_id):
            match = await self._load(match_id)
            if not isinstance(suspended, bool):
                raise ValidationError("suspended must be a boolean", field="suspended", value=repr(suspended))
            if match.phase.is_terminal:
                raise InvalidTransition(
                    f"Cannot change suspension of a {match.phase.value} match",
                    match_id=match_id,
                    phase=match.phase.value,
                )
            updated = await self._write(match, {"suspended": suspended})

        logger.info("match_suspension_changed", match_id=match_id, suspended=suspended)
        return updated

    # ── Queries ─────────────────────────────────────────────────────────
    async def get_clock(self, match_id: str) -> ClockReading:
        match = await self._store.load_match(match_id)
        return self.read(match)

    def read(self, match: Match, now: Optional[datetime] = None) -> ClockReading:
        return clock.read_clock(
            match,
            now or self._now(),
            close_without_stoppage=self._settings.auto_close_without_stoppage,
        )
