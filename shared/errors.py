"""
Error kinds surfaced by the live-match core.

Every failure carries a stable ``code`` and a ``context`` dict so that the API
layer and the logs can report it without parsing the message.
"""
from __future__ import annotations

from typing import Any, Optional


class LeagueError(Exception):
    """Base class for all live-match core errors."""

    code = "league_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.context}


class NotFound(LeagueError):
    """A match or team aggregate does not exist."""

    code = "not_found"


class InvalidTransition(LeagueError):
    """A phase or flag precondition does not hold."""

    code = "invalid_transition"

    def __init__(self, message: str, minute: Optional[int] = None, **context: Any) -> None:
        super().__init__(message, minute=minute, **context)
        self.minute = minute


class ValidationError(LeagueError):
    """An argument is out of range or of the wrong type."""

    code = "validation_error"


class TeamLookupError(NotFound):
    """The teams of a match cannot be resolved or loaded."""

    code = "team_lookup_error"


class StorageError(LeagueError):
    """The storage collaborator failed. Safe to retry with the same inputs."""

    code = "storage_error"
