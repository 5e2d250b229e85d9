"""
SQLAlchemy 2.0 ORM models for the league live-match store.
Portable column types only, so the same schema runs on PostgreSQL and SQLite.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Integer,
    JSON,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class MatchORM(Base):
    __tablename__ = "matches"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    home_team_id: Mapped[Optional[str]] = mapped_column(String(100))
    away_team_id: Mapped[Optional[str]] = mapped_column(String(100))
    scheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    bucket: Mapped[str] = mapped_column(String(20), nullable=False, default="opening")
    round_number: Mapped[Optional[int]] = mapped_column(Integer)
    venue: Mapped[Optional[str]] = mapped_column(String(200))

    home_score: Mapped[Optional[int]] = mapped_column(Integer)
    away_score: Mapped[Optional[int]] = mapped_column(Integer)
    phase: Mapped[str] = mapped_column(String(20), nullable=False, default="scheduled", index=True)
    suspended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    half_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    second_half_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    in_first_half: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    in_halftime_break: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    first_half_stoppage: Mapped[Optional[int]] = mapped_column(Integer)
    second_half_stoppage: Mapped[Optional[int]] = mapped_column(Integer)
    result_counted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pending_reconciliation: Mapped[Optional[dict]] = mapped_column(JSON(none_as_null=True))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("home_score IS NULL OR home_score >= 0", name="ck_match_home_score"),
        CheckConstraint("away_score IS NULL OR away_score >= 0", name="ck_match_away_score"),
    )


class TeamAggregateORM(Base):
    __tablename__ = "team_aggregates"

    bucket: Mapped[str] = mapped_column(String(20), primary_key=True)
    team_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    won: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    drawn: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    goals_for: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    goals_against: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    goal_diff: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    position: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
