"""Domain enumerations for the league live-match core."""
from __future__ import annotations

from enum import Enum


class MatchPhase(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINISHED = "finished"
    CANCELLED = "cancelled"

    @property
    def is_live(self) -> bool:
        return self == MatchPhase.LIVE

    @property
    def is_terminal(self) -> bool:
        return self in (MatchPhase.FINISHED, MatchPhase.CANCELLED)


class ClockLabel(str, Enum):
    """Phase label shown next to the clock minute."""
    NOT_STARTED = "not_started"
    FIRST_HALF = "first_half"
    HALFTIME = "halftime"
    SECOND_HALF = "second_half"
    FULL_TIME = "full_time"


class CompetitionBucket(str, Enum):
    """Standings table a match counts towards."""
    OPENING = "opening"
    CLOSING = "closing"


class MatchResult(str, Enum):
    HOME_WIN = "home_win"
    DRAW = "draw"
    AWAY_WIN = "away_win"

    @classmethod
    def from_score(cls, home: int, away: int) -> "MatchResult":
        if home > away:
            return cls.HOME_WIN
        if home < away:
            return cls.AWAY_WIN
        return cls.DRAW


class Operation(str, Enum):
    """Phase state machine operations, used as metric and log labels."""
    START = "start_match"
    UPDATE_SCORE = "update_score"
    FIRST_HALF_STOPPAGE = "set_first_half_stoppage"
    SECOND_HALF_STOPPAGE = "set_second_half_stoppage"
    CLOSE_FIRST_HALF = "close_first_half"
    RESUME_SECOND_HALF = "resume_second_half"
    FINISH = "finish_match"
    SUSPEND = "set_suspended"
    RETRY_PENDING = "retry_pending"
