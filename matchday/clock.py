"""
Match clock.

Pure functions deriving the displayed minute of a match from its stored phase
fields and the current time. Nothing here ticks or persists: every reading is
recomputed from ``half_started_at`` / ``second_half_started_at``.

    first half      minute = floor((now - half_started_at) / 60s), uncapped
    half-time       minute = 45 + first_half_stoppage (frozen)
    second half     minute = 45 + floor((now - second_half_started_at) / 60s)

The second half always resumes at 45 regardless of how much first-half
stoppage was played.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from shared.models.domain import Match
from shared.models.enums import ClockLabel, MatchPhase

HALF_MINUTES = 45
FULL_TIME_MINUTES = 90
FIRST_HALF_WARNING_MINUTE = 40
SECOND_HALF_WARNING_MINUTE = 85


@dataclass(frozen=True)
class ClockReading:
    """Snapshot of a match clock at one instant."""
    minute: int
    label: ClockLabel
    display: str
    near_boundary: bool = False
    can_finish: bool = False
    should_close_first_half: bool = False


def _whole_minutes(start: datetime, now: datetime) -> int:
    return max(0, int((now - start).total_seconds() // 60))


def clock_label(match: Match) -> ClockLabel:
    if match.phase == MatchPhase.FINISHED:
        return ClockLabel.FULL_TIME
    if match.phase != MatchPhase.LIVE:
        return ClockLabel.NOT_STARTED
    if match.in_halftime_break:
        return ClockLabel.HALFTIME
    if match.in_second_half:
        return ClockLabel.SECOND_HALF
    return ClockLabel.FIRST_HALF


def elapsed_minutes(match: Match, now: datetime) -> int:
    """Displayed game minute; 0 for anything that is not live."""
    if match.phase != MatchPhase.LIVE or match.half_started_at is None:
        return 0
    if match.in_halftime_break:
        return HALF_MINUTES + (match.first_half_stoppage or 0)
    if match.in_second_half:
        return HALF_MINUTES + _whole_minutes(match.second_half_started_at, now)
    return _whole_minutes(match.half_started_at, now)


def can_finish(match: Match, now: datetime) -> bool:
    """True once the second half has run to 90 plus its configured stoppage."""
    if match.phase != MatchPhase.LIVE or not match.in_second_half:
        return False
    return elapsed_minutes(match, now) >= FULL_TIME_MINUTES + (match.second_half_stoppage or 0)


def is_near_boundary(match: Match, now: datetime) -> bool:
    """Advisory prompt to configure stoppage time before the half ends."""
    label = clock_label(match)
    if label == ClockLabel.FIRST_HALF:
        return elapsed_minutes(match, now) >= FIRST_HALF_WARNING_MINUTE
    if label == ClockLabel.SECOND_HALF:
        return elapsed_minutes(match, now) >= SECOND_HALF_WARNING_MINUTE
    return False


def should_close_first_half(
    match: Match,
    now: datetime,
    *,
    close_without_stoppage: bool = False,
) -> bool:
    """
    Auto-trigger condition for closing the first half.

    Fires once configured first-half stoppage has been played out. With
    ``close_without_stoppage`` it also fires at 45 when none was configured.
    """
    if clock_label(match) != ClockLabel.FIRST_HALF:
        return False
    stoppage = match.first_half_stoppage or 0
    minute = elapsed_minutes(match, now)
    if stoppage > 0:
        return minute >= HALF_MINUTES + stoppage
    return close_without_stoppage and minute >= HALF_MINUTES


def _capped(minute: int, cap: int, stoppage: int) -> str:
    if minute > cap and stoppage > 0:
        return f"{cap}' +{minute - cap}"
    return f"{min(minute, cap)}'"


def format_minute(match: Match, now: datetime) -> str:
    """Human clock text, e.g. ``37'``, ``45' +2``, ``HT``, ``90' +4``."""
    label = clock_label(match)
    if label == ClockLabel.FULL_TIME:
        return "FT"
    if label == ClockLabel.NOT_STARTED:
        return "0'"
    if label == ClockLabel.HALFTIME:
        stoppage = match.first_half_stoppage or 0
        return f"HT 45' +{stoppage}" if stoppage else "HT 45'"

    minute = elapsed_minutes(match, now)
    if label == ClockLabel.FIRST_HALF:
        return _capped(minute, HALF_MINUTES, match.first_half_stoppage or 0)
    return _capped(minute, FULL_TIME_MINUTES, match.second_half_stoppage or 0)


def read_clock(
    match: Match,
    now: datetime,
    *,
    close_without_stoppage: bool = False,
) -> ClockReading:
    return ClockReading(
        minute=elapsed_minutes(match, now),
        label=clock_label(match),
        display=format_minute(match, now),
        near_boundary=is_near_boundary(match, now),
        can_finish=can_finish(match, now),
        should_close_first_half=should_close_first_half(
            match, now, close_without_stoppage=close_without_stoppage
        ),
    )
