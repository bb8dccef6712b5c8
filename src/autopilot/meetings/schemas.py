"""Pydantic v2 schemas for the meeting lifecycle domain.

Defines the meeting entity, its lifecycle status and platform tag, the
creation payloads accepted from manual entry and schedule extraction, and the
transition records emitted by the orchestrator tick.

All models serialize with camelCase aliases to match the JSON contracts of
the HTTP surfaces, while Python code uses snake_case field names.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_MEETING_DURATION = timedelta(hours=1)


# ── Enums ────────────────────────────────────────────────────────────────────


class Platform(str, Enum):
    """Video-conference provider a join link belongs to."""

    GOOGLE_MEET = "google-meet"
    ZOOM = "zoom"
    TEAMS = "teams"
    OTHER = "other"


class MeetingStatus(str, Enum):
    """Lifecycle status of a meeting.

    pending -> active -> completed. CANCELLED is a legal terminal value that
    no time-based rule produces.
    """

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class JoinMethod(str, Enum):
    """How a meeting activation was carried out."""

    AUTOMATED = "automated"
    MANUAL_FALLBACK = "manual_fallback"
    MANUAL = "manual"


def _ensure_aware(value: datetime) -> datetime:
    """Interpret naive datetimes as host-local time and attach the offset."""
    if value.tzinfo is None:
        return value.astimezone()
    return value


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Meeting ──────────────────────────────────────────────────────────────────


class Meeting(_CamelModel):
    """A scheduled, time-boxed meeting owned by the orchestrator.

    Instances are immutable: the orchestrator replaces a meeting with
    ``model_copy(update=...)`` when its status changes. The platform tag is
    resolved once at creation and carried through every copy unchanged.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    start_time: datetime
    end_time: datetime
    link: str
    platform: Platform
    status: MeetingStatus = MeetingStatus.PENDING
    auto_record: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return _ensure_aware(value)

    @model_validator(mode="after")
    def _check_window(self) -> Meeting:
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class MeetingCreate(_CamelModel):
    """Payload for creating a meeting from manual entry or ingestion.

    ``end_time`` defaults to one hour after ``start_time``; ``auto_record``
    left unset means "use the configured default".
    """

    title: str = Field(min_length=1)
    link: str = Field(min_length=1)
    start_time: datetime
    end_time: datetime | None = None
    auto_record: bool | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _aware(cls, value: datetime | None) -> datetime | None:
        return _ensure_aware(value) if value is not None else None

    @model_validator(mode="after")
    def _default_end(self) -> MeetingCreate:
        if self.end_time is None:
            self.end_time = self.start_time + DEFAULT_MEETING_DURATION
        elif self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class ParsedMeeting(_CamelModel):
    """One candidate meeting produced by the schedule extractor."""

    title: str = Field(description="Short title of the meeting")
    start_time: datetime = Field(description="ISO 8601 start time")
    end_time: datetime | None = Field(None, description="ISO 8601 end time")
    link: str = Field(description="The URL to join the meeting")


class ScheduleParseRequest(_CamelModel):
    """Request body for free-text schedule ingestion."""

    text: str = Field(min_length=1)
    now: datetime | None = None


class Transition(BaseModel):
    """A status change applied by one orchestrator tick."""

    meeting_id: str
    from_status: MeetingStatus
    to_status: MeetingStatus


class ExtractedSchedule(BaseModel):
    """instructor ``response_model`` wrapping every meeting found in a text."""

    meetings: list[ParsedMeeting] = Field(default_factory=list)
