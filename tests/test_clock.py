"""
Unit tests for the match clock.

Run: pytest tests/test_clock.py -v
"""
from __future__ import annotations

from datetime import timedelta

import pytest

from shared.models.domain import Match
from shared.models.enums import ClockLabel, MatchPhase
from matchday import clock

from tests.helpers import T0


def first_half(**overrides) -> Match:
    fields = dict(
        id="A_B",
        phase=MatchPhase.LIVE,
        half_started_at=T0,
        in_first_half=True,
        first_half_stoppage=0,
        second_half_stoppage=0,
    )
    fields.update(overrides)
    return Match(**fields)


def second_half(resumed_at=T0, **overrides) -> Match:
    return first_half(
        in_first_half=False,
        second_half_started_at=resumed_at,
        **overrides,
    )


def at(minutes: float):
    return T0 + timedelta(minutes=minutes)


# ── elapsed_minutes ─────────────────────────────────────────────────────

def test_not_live_reads_zero() -> None:
    assert clock.elapsed_minutes(Match(id="A_B"), at(30)) == 0
    assert clock.format_minute(Match(id="A_B"), at(30)) == "0'"


def test_first_half_counts_whole_minutes() -> None:
    assert clock.elapsed_minutes(first_half(), at(12.99)) == 12


def test_first_half_is_uncapped() -> None:
    assert clock.elapsed_minutes(first_half(), at(52)) == 52


def test_clock_before_kickoff_timestamp_is_zero() -> None:
    assert clock.elapsed_minutes(first_half(), T0 - timedelta(seconds=30)) == 0


def test_halftime_freezes_at_45_plus_stoppage() -> None:
    match = first_half(in_first_half=True, in_halftime_break=True, first_half_stoppage=3)
    assert clock.elapsed_minutes(match, at(48)) == 48
    assert clock.elapsed_minutes(match, at(70)) == 48
    assert clock.clock_label(match) == ClockLabel.HALFTIME


@pytest.mark.parametrize("first_half_stoppage", [0, 3, 15])
def test_second_half_resumes_at_45(first_half_stoppage: int) -> None:
    match = second_half(resumed_at=at(60), first_half_stoppage=first_half_stoppage)
    assert clock.elapsed_minutes(match, at(60)) == 45


def test_second_half_advances_from_resume() -> None:
    match = second_half(resumed_at=at(60))
    assert clock.elapsed_minutes(match, at(100)) == 85


def test_minute_is_monotonic_within_a_half() -> None:
    match = first_half()
    readings = [clock.elapsed_minutes(match, T0 + timedelta(seconds=s)) for s in range(0, 6000, 37)]
    assert readings == sorted(readings)


# ── can_finish ──────────────────────────────────────────────────────────

def test_can_finish_only_in_second_half() -> None:
    assert not clock.can_finish(first_half(), at(120))


def test_can_finish_at_90_without_stoppage() -> None:
    match = second_half()
    assert not clock.can_finish(match, at(44) + timedelta(seconds=59))
    assert clock.can_finish(match, at(45))


def test_can_finish_waits_for_stoppage() -> None:
    match = second_half(second_half_stoppage=4)
    assert not clock.can_finish(match, at(48))
    assert clock.can_finish(match, at(49))


def test_finished_match_cannot_finish_again() -> None:
    match = second_half().model_copy(update={"phase": MatchPhase.FINISHED})
    assert not clock.can_finish(match, at(60))


# ── near boundary ───────────────────────────────────────────────────────

def test_near_boundary_first_half() -> None:
    assert not clock.is_near_boundary(first_half(), at(39))
    assert clock.is_near_boundary(first_half(), at(40))


def test_near_boundary_second_half() -> None:
    assert not clock.is_near_boundary(second_half(), at(39))
    assert clock.is_near_boundary(second_half(), at(40))


def test_near_boundary_off_during_break() -> None:
    match = first_half(in_halftime_break=True)
    assert not clock.is_near_boundary(match, at(46))


# ── auto close trigger ──────────────────────────────────────────────────

def test_auto_close_needs_configured_stoppage() -> None:
    assert not clock.should_close_first_half(first_half(), at(60))


def test_auto_close_fires_after_stoppage() -> None:
    match = first_half(first_half_stoppage=3)
    assert not clock.should_close_first_half(match, at(47))
    assert clock.should_close_first_half(match, at(48))


def test_auto_close_without_stoppage_when_enabled() -> None:
    assert clock.should_close_first_half(first_half(), at(45), close_without_stoppage=True)


def test_auto_close_not_during_break() -> None:
    match = first_half(first_half_stoppage=3, in_halftime_break=True)
    assert not clock.should_close_first_half(match, at(60))


# ── display ─────────────────────────────────────────────────────────────

def test_display_first_half_plain() -> None:
    assert clock.format_minute(first_half(), at(37)) == "37'"


def test_display_first_half_added_time() -> None:
    assert clock.format_minute(first_half(first_half_stoppage=3), at(47)) == "45' +2"


def test_display_first_half_over_45_without_stoppage_caps() -> None:
    assert clock.format_minute(first_half(), at(47)) == "45'"


def test_display_halftime() -> None:
    assert clock.format_minute(first_half(in_halftime_break=True), at(46)) == "HT 45'"
    assert clock.format_minute(first_half(in_halftime_break=True, first_half_stoppage=2), at(46)) == "HT 45' +2"


def test_display_second_half_added_time() -> None:
    assert clock.format_minute(second_half(second_half_stoppage=4), at(48)) == "90' +3"


def test_display_full_time() -> None:
    match = second_half().model_copy(update={"phase": MatchPhase.FINISHED})
    assert clock.format_minute(match, at(50)) == "FT"


def test_read_clock_bundles_signals() -> None:
    reading = clock.read_clock(second_half(second_half_stoppage=4), at(49))
    assert reading.minute == 94
    assert reading.label == ClockLabel.SECOND_HALF
    assert reading.near_boundary
    assert reading.can_finish
    assert not reading.should_close_first_half
