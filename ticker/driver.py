"""
Client tick driver.

Cooperative single-task loop that re-reads the clock of every watched match on
an interval, hands each reading to listeners and fires the automatic
transitions once their conditions hold. It only writes through the state
machine's idempotent entry points, so any number of drivers may run against
the same match.
"""
from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Optional

from shared.config import Settings, get_settings
from shared.errors import InvalidTransition, LeagueError, NotFound
from shared.models.enums import ClockLabel, Operation
from shared.utils.logging import get_logger
from shared.utils.metrics import LIVE_MATCHES, TICK_AUTO_TRANSITIONS, TICK_ERRORS
from matchday.clock import FULL_TIME_MINUTES, ClockReading
from matchday.state_machine import MatchStateMachine

logger = get_logger(__name__)

ClockListener = Callable[[str, ClockReading], Any]


class TickDriver:
    """
    Re-evaluates watched matches every ``tick_interval_s``.

    With ``discover=True`` the watched set is refreshed from the store's live
    matches every ``tick_refresh_every_n`` ticks.
    """

    def __init__(
        self,
        machine: MatchStateMachine,
        settings: Settings | None = None,
        discover: bool = True,
    ) -> None:
        self._machine = machine
        self._settings = settings or get_settings()
        self._discover = discover
        self._watched: set[str] = set()
        self._listeners: list[ClockListener] = []
        self._shutdown = asyncio.Event()

    # ── Registration ────────────────────────────────────────────────────
    def watch(self, match_id: str) -> None:
        self._watched.add(match_id)
        LIVE_MATCHES.set(len(self._watched))

    def unwatch(self, match_id: str) -> None:
        self._watched.discard(match_id)
        LIVE_MATCHES.set(len(self._watched))

    @property
    def watched(self) -> frozenset[str]:
        return frozenset(self._watched)

    def add_listener(self, listener: ClockListener) -> None:
        self._listeners.append(listener)

    async def refresh_watched(self) -> None:
        """Track the live matches plus any match still owing standings work."""
        matches = await self._machine.store.list_matches()
        ids = {m.id for m in matches if m.phase.is_live or m.pending_reconciliation is not None}
        for match_id in ids - self._watched:
            logger.info("tick_match_watched", match_id=match_id)
        for match_id in self._watched - ids:
            logger.info("tick_match_released", match_id=match_id)
        self._watched = ids
        LIVE_MATCHES.set(len(self._watched))

    # ── Evaluation ──────────────────────────────────────────────────────
    async def _publish(self, match_id: str, reading: ClockReading) -> None:
        for listener in self._listeners:
            result = listener(match_id, reading)
            if inspect.isawaitable(result):
                await result

    def _finish_due(self, reading: ClockReading, stoppage: int) -> bool:
        if not self._settings.auto_finish_enabled or reading.label != ClockLabel.SECOND_HALF:
            return False
        grace = self._settings.auto_finish_grace_minutes
        return reading.minute >= FULL_TIME_MINUTES + stoppage + grace

    async def _evaluate(self, match_id: str) -> Optional[ClockReading]:
        match = await self._machine.store.load_match(match_id)
        if match.pending_reconciliation is not None:
            match = await self._machine.retry_pending(match_id)
            TICK_AUTO_TRANSITIONS.labels(operation=Operation.RETRY_PENDING.value).inc()
        if not match.phase.is_live:
            self.unwatch(match_id)
            return None

        reading = self._machine.read(match)
        if reading.should_close_first_half:
            if await self._machine.close_first_half_if_due(match_id):
                TICK_AUTO_TRANSITIONS.labels(operation=Operation.CLOSE_FIRST_HALF.value).inc()
            reading = await self._machine.get_clock(match_id)
        elif self._finish_due(reading, match.second_half_stoppage or 0):
            try:
                await self._machine.finish_match(match_id)
            except InvalidTransition as exc:
                # Finished or reopened by another caller in the meantime.
                logger.debug("tick_auto_finish_skipped", match_id=match_id, reason=exc.message)
            else:
                TICK_AUTO_TRANSITIONS.labels(operation=Operation.FINISH.value).inc()
                logger.info("match_auto_finished", match_id=match_id, minute=reading.minute)
                self.unwatch(match_id)
            reading = await self._machine.get_clock(match_id)

        await self._publish(match_id, reading)
        return reading

    async def tick(self) -> dict[str, ClockReading]:
        """One pass over every watched match. A failing match does not stop the others."""
        readings: dict[str, ClockReading] = {}
        for match_id in sorted(self._watched):
            try:
                reading = await self._evaluate(match_id)
            except NotFound:
                logger.warning("tick_match_missing", match_id=match_id)
                self.unwatch(match_id)
                continue
            except LeagueError as exc:
                TICK_ERRORS.inc()
                logger.error("tick_match_error", match_id=match_id, **exc.to_dict())
                continue
            except Exception as exc:
                TICK_ERRORS.inc()
                logger.error("tick_match_error", match_id=match_id, error=str(exc), exc_info=True)
                continue
            if reading is not None:
                readings[match_id] = reading
        return readings

    # ── Main loop ───────────────────────────────────────────────────────
    async def run(self) -> None:
        refresh_counter = self._settings.tick_refresh_every_n
        while not self._shutdown.is_set():
            try:
                if self._discover:
                    refresh_counter += 1
                    if refresh_counter >= self._settings.tick_refresh_every_n:
                        await self.refresh_watched()
                        refresh_counter = 0

                await self.tick()
                await asyncio.sleep(self._settings.tick_interval_s)

            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("tick_loop_error", error=str(exc), exc_info=True)
                await asyncio.sleep(2.0)

    def request_shutdown(self) -> None:
        self._shutdown.set()
