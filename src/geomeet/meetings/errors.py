"""Failure kinds raised by the meeting core.

Every error carries an ErrorKind so the API layer can map it to a status
code without inspecting messages.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.geomeet.meetings.schemas import Meeting


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_INPUT = "invalid_input"
    UNAVAILABLE = "unavailable"


class MeetingError(Exception):
    """Base class for meeting core failures."""

    kind: ErrorKind = ErrorKind.INVALID_INPUT

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class MeetingNotFoundError(MeetingError):
    """Raised when an operation targets a meeting id that does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, meeting_id: str) -> None:
        self.meeting_id = meeting_id
        super().__init__(f"Meeting not found: {meeting_id}")


class MeetingConflictError(MeetingError):
    """Raised when a scheduling conflict blocks an update or a join.

    Attributes:
        conflicts: The meetings that block the operation.
    """

    kind = ErrorKind.CONFLICT

    def __init__(self, message: str, conflicts: list[Meeting]) -> None:
        self.conflicts = conflicts
        super().__init__(message)


class InvalidMeetingInputError(MeetingError):
    """Raised for malformed bounds, non-positive radii or bad coordinates."""

    kind = ErrorKind.INVALID_INPUT


class LockUnavailableError(MeetingError):
    """Raised when a bucket lock cannot be acquired in time."""

    kind = ErrorKind.UNAVAILABLE
