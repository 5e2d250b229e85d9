"""
Dependency injection for the API service.
Components live on ``app.state``, set by the lifespan or by ``create_app`` in tests.
"""
from __future__ import annotations

from fastapi import Request

from matchday.state_machine import MatchStateMachine
from storage.base import LeagueStore


def get_store(request: Request) -> LeagueStore:
    """FastAPI dependency: returns the shared LeagueStore."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise RuntimeError("LeagueStore not initialized; the app lifespan has not run")
    return store


def get_machine(request: Request) -> MatchStateMachine:
    """FastAPI dependency: returns the shared MatchStateMachine."""
    machine = getattr(request.app.state, "machine", None)
    if machine is None:
        raise RuntimeError("MatchStateMachine not initialized; the app lifespan has not run")
    return machine
