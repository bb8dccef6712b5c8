"""Wire contracts of the automation service HTTP boundary.

Field names are snake_case in Python and camelCase on the wire
(``meetingId``, ``activeSessions``).
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthStatus(str, Enum):
    READY = "ready"
    INITIALIZING = "initializing"
    ERROR = "error"


class JoinCredentials(_WireModel):
    """Opaque identity data passed through to join strategies."""

    email: str | None = None
    display_name: str | None = None
    password: str | None = None


class JoinMeetingRequest(_WireModel):
    """Body of POST /api/join-meeting.

    Required fields are typed optional so the route can answer missing ones
    with a 400 and an explicit message instead of a 422.
    """

    meeting_id: str | None = None
    url: str | None = None
    platform: str | None = None
    title: str | None = None
    credentials: JoinCredentials | None = None


class LeaveMeetingRequest(_WireModel):
    meeting_id: str | None = None


class ProbeRequest(_WireModel):
    url: str | None = None


class AutomationResponse(_WireModel):
    """Result of a join/leave call as seen by the orchestrator."""

    success: bool
    message: str | None = None
    error: str | None = None
    timestamp: datetime | None = None


class AutomationHealth(_WireModel):
    """Health snapshot of the automation service."""

    status: HealthStatus
    active_sessions: int = 0
    timestamp: datetime = Field(default_factory=utcnow)


class SessionsResponse(_WireModel):
    active_sessions: int = 0
    timestamp: datetime = Field(default_factory=utcnow)


class JoinResult(BaseModel):
    """Outcome of a single join attempt."""

    success: bool
    message: str | None = None
    reason: str | None = None

    @classmethod
    def ok(cls, message: str) -> JoinResult:
        return cls(success=True, message=message)

    @classmethod
    def failed(cls, reason: str) -> JoinResult:
        return cls(success=False, reason=reason)
