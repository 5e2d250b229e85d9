"""
Pydantic v2 domain models for the live-match core.
These are the canonical storage/wire representations — NOT ORM models.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.errors import TeamLookupError, ValidationError
from shared.models.enums import CompetitionBucket, MatchPhase, Operation


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite and some document stores hand back naive timestamps; they are stored as UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ── Match ───────────────────────────────────────────────────────────────
class PendingReconciliation(DomainModel):
    """
    Standings work a match write still owes its two teams.

    Saved together with the match fields that caused it and cleared once the
    aggregate pair is persisted. While it is set, the same previous/new pair
    can be replayed after a failed aggregate write.
    """
    operation: Operation
    previous: tuple[int, int] = (0, 0)
    new: tuple[int, int] = (0, 0)
    reverse_previous: bool = True


class Match(DomainModel):
    """A league fixture and its live clock fields."""
    id: str
    home_team_id: Optional[str] = None
    away_team_id: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    bucket: CompetitionBucket = CompetitionBucket.OPENING
    round_number: Optional[int] = None
    venue: Optional[str] = None

    home_score: Optional[int] = Field(default=None, ge=0)
    away_score: Optional[int] = Field(default=None, ge=0)
    phase: MatchPhase = MatchPhase.SCHEDULED
    suspended: bool = False

    half_started_at: Optional[datetime] = None
    second_half_started_at: Optional[datetime] = None
    in_first_half: bool = False
    in_halftime_break: bool = False
    first_half_stoppage: Optional[int] = Field(default=None, ge=0)
    second_half_stoppage: Optional[int] = Field(default=None, ge=0)

    # Set once the current score's result has been counted in the standings.
    result_counted: bool = False
    pending_reconciliation: Optional[PendingReconciliation] = None

    @field_validator("scheduled_at", "half_started_at", "second_half_started_at")
    @classmethod
    def _normalize_tz(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @property
    def score(self) -> tuple[int, int]:
        """Current score with unset sides read as 0."""
        return (self.home_score or 0, self.away_score or 0)

    @property
    def in_second_half(self) -> bool:
        return (
            not self.in_first_half
            and not self.in_halftime_break
            and self.second_half_started_at is not None
        )

    def team_ids(self) -> tuple[str, str]:
        """
        Resolve (home, away) team ids.

        Falls back to splitting the match id ("<home>_<away>") when either id
        is missing on the document.
        """
        home, away = self.home_team_id, self.away_team_id
        if not home or not away:
            parts = self.id.split("_")
            if len(parts) >= 2:
                home = home or parts[0]
                away = away or parts[1]
        if not home or not away:
            raise TeamLookupError(
                f"Cannot identify the teams of match {self.id}",
                match_id=self.id,
            )
        return home, away

    def merged(self, fields: dict[str, Any]) -> "Match":
        """Return a validated copy with a partial-field update applied."""
        unknown = set(fields) - set(type(self).model_fields)
        if unknown:
            raise ValidationError(
                f"Unknown match fields: {', '.join(sorted(unknown))}",
                match_id=self.id,
            )
        return type(self).model_validate({**self.model_dump(), **fields})


# ── Standings ───────────────────────────────────────────────────────────
class TeamAggregateDelta(DomainModel):
    """
    The only aggregate fields a score reconciliation may write.
    Deliberately has no ``played`` field.
    """
    model_config = ConfigDict(frozen=True)

    won: int
    drawn: int
    lost: int
    goals_for: int
    goals_against: int
    goal_diff: int
    points: int

    @classmethod
    def derive(cls, *, won: int, drawn: int, lost: int, goals_for: int, goals_against: int) -> "TeamAggregateDelta":
        """Build a delta with goal difference and points derived from the counters."""
        return cls(
            won=won,
            drawn=drawn,
            lost=lost,
            goals_for=goals_for,
            goals_against=goals_against,
            goal_diff=goals_for - goals_against,
            points=won * 3 + drawn,
        )


class TeamAggregate(DomainModel):
    """A team's cumulative record within one competition bucket."""
    team_id: str
    bucket: CompetitionBucket = CompetitionBucket.OPENING
    name: str = ""
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_diff: int = 0
    points: int = 0
    position: Optional[int] = None

    def apply(self, delta: TeamAggregateDelta) -> "TeamAggregate":
        return self.model_copy(update=delta.model_dump())

    def kicked_off(self) -> "TeamAggregate":
        """The single write path that changes ``played``."""
        return self.model_copy(update={"played": self.played + 1})

    @property
    def is_consistent(self) -> bool:
        return (
            self.points == self.won * 3 + self.drawn
            and self.goal_diff == self.goals_for - self.goals_against
        )
