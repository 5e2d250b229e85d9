"""
Match REST endpoints.

GET  /v1/matches/{id}                     — Match document with its clock reading.
GET  /v1/matches/{id}/clock               — Clock reading only.
POST /v1/matches/{id}/start               — Kick off.
PUT  /v1/matches/{id}/score               — Set the score (reconciles standings).
PUT  /v1/matches/{id}/stoppage/{half}     — Configure stoppage time for a half.
POST /v1/matches/{id}/first-half/close    — Start the half-time break.
POST /v1/matches/{id}/second-half/resume  — Start the second half.
POST /v1/matches/{id}/finish              — Final whistle.
PUT  /v1/matches/{id}/suspended           — Toggle the suspension flag.
POST /v1/matches/{id}/standings/retry     — Replay standings work left by a failed write.
"""
from __future__ import annotations

from dataclasses import asdict
from typing import Any, Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, StrictBool, StrictInt

from shared.models.domain import Match
from matchday.clock import ClockReading
from matchday.state_machine import MatchStateMachine

from api.dependencies import get_machine

router = APIRouter(prefix="/v1/matches", tags=["matches"])


class ScoreBody(BaseModel):
    home: StrictInt
    away: StrictInt


class StoppageBody(BaseModel):
    minutes: StrictInt


class SuspendedBody(BaseModel):
    suspended: StrictBool


def clock_payload(reading: ClockReading) -> dict[str, Any]:
    data = asdict(reading)
    data["label"] = reading.label.value
    return data


def match_payload(match: Match, reading: ClockReading) -> dict[str, Any]:
    return {**match.model_dump(mode="json"), "clock": clock_payload(reading)}


@router.get("/{match_id}")
async def get_match(match_id: str, machine: MatchStateMachine = Depends(get_machine)) -> dict[str, Any]:
    match = await machine.store.load_match(match_id)
    return match_payload(match, machine.read(match))


@router.get("/{match_id}/clock")
async def get_clock(match_id: str, machine: MatchStateMachine = Depends(get_machine)) -> dict[str, Any]:
    return clock_payload(await machine.get_clock(match_id))


@router.post("/{match_id}/start")
async def start_match(match_id: str, machine: MatchStateMachine = Depends(get_machine)) -> dict[str, Any]:
    match = await machine.start_match(match_id)
    return match_payload(match, machine.read(match))


@router.put("/{match_id}/score")
async def update_score(
    match_id: str,
    body: ScoreBody,
    machine: MatchStateMachine = Depends(get_machine),
) -> dict[str, Any]:
    match = await machine.update_score(match_id, body.home, body.away)
    return match_payload(match, machine.read(match))


@router.put("/{match_id}/stoppage/{half}")
async def set_stoppage(
    match_id: str,
    half: Literal["first", "second"],
    body: StoppageBody,
    machine: MatchStateMachine = Depends(get_machine),
) -> dict[str, Any]:
    if half == "first":
        match = await machine.set_first_half_stoppage(match_id, body.minutes)
    else:
        match = await machine.set_second_half_stoppage(match_id, body.minutes)
    return match_payload(match, machine.read(match))


@router.post("/{match_id}/first-half/close")
async def close_first_half(match_id: str, machine: MatchStateMachine = Depends(get_machine)) -> dict[str, Any]:
    match = await machine.close_first_half(match_id)
    return match_payload(match, machine.read(match))


@router.post("/{match_id}/second-half/resume")
async def resume_second_half(match_id: str, machine: MatchStateMachine = Depends(get_machine)) -> dict[str, Any]:
    match = await machine.resume_second_half(match_id)
    return match_payload(match, machine.read(match))


@router.post("/{match_id}/finish")
async def finish_match(match_id: str, machine: MatchStateMachine = Depends(get_machine)) -> dict[str, Any]:
    match = await machine.finish_match(match_id)
    return match_payload(match, machine.read(match))


@router.put("/{match_id}/suspended")
async def set_suspended(
    match_id: str,
    body: SuspendedBody,
    machine: MatchStateMachine = Depends(get_machine),
) -> dict[str, Any]:
    match = await machine.set_suspended(match_id, body.suspended)
    return match_payload(match, machine.read(match))


@router.post("/{match_id}/standings/retry")
async def retry_standings(match_id: str, machine: MatchStateMachine = Depends(get_machine)) -> dict[str, Any]:
    match = await machine.retry_pending(match_id)
    return match_payload(match, machine.read(match))
