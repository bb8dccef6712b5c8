"""Error taxonomy for the automation and recording boundaries.

Only NotReadyError and SessionNotFoundError ever cross the session manager's
public API as exceptions. Timeouts are reported as failed join results, and
remote/device failures are absorbed by the orchestrator.
"""

from __future__ import annotations


class AutomationError(Exception):
    """Base class for automation and recording failures."""


class NotReadyError(AutomationError):
    """The browser provider is not initialized."""


class SessionNotFoundError(AutomationError):
    """No live session exists for the requested meeting id."""

    def __init__(self, meeting_id: str) -> None:
        super().__init__(f"Meeting session not found: {meeting_id}")
        self.meeting_id = meeting_id


class JoinTimeoutError(AutomationError):
    """A bounded wait (navigation or element) expired during a join."""


class RemoteUnavailableError(AutomationError):
    """The automation service could not be reached or answered badly."""


class RequestTimeoutError(RemoteUnavailableError):
    """The automation service did not answer within the request timeout."""


class DeviceError(AutomationError):
    """A recording device call failed."""


class RecordingStateConflict(DeviceError):
    """The device is already in the requested recording state."""
