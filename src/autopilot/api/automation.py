"""HTTP boundary of the automation service.

Endpoints (camelCase JSON):
- GET  /health              -> {status, activeSessions, timestamp}
- POST /api/join-meeting    -> {success, message?|error?, timestamp}
- POST /api/leave-meeting   -> {success, error?}
- GET  /api/sessions        -> {activeSessions, timestamp}
- POST /api/test-automation -> {success, title?|error?}

Missing required fields answer 400, an uninitialized session manager
answers 503, and unexpected failures answer 500 with ``details``.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from src.autopilot.automation.errors import NotReadyError, SessionNotFoundError
from src.autopilot.automation.schemas import (
    AutomationHealth,
    AutomationResponse,
    HealthStatus,
    JoinMeetingRequest,
    LeaveMeetingRequest,
    ProbeRequest,
    SessionsResponse,
    utcnow,
)
from src.autopilot.automation.session_manager import SessionManager

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["automation"])


def _get_session_manager(request: Request) -> SessionManager | None:
    return getattr(request.app.state, "session_manager", None)


def _failure(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, **extra},
    )


def _not_ready() -> JSONResponse:
    return _failure(status.HTTP_503_SERVICE_UNAVAILABLE, "Meeting agent not ready")


def _internal_error(exc: Exception) -> JSONResponse:
    return _failure(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        details=str(exc),
    )


def _dump(model: Any) -> dict:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Report session manager readiness and live session count."""
    manager = _get_session_manager(request)
    if manager is None:
        health = AutomationHealth(status=HealthStatus.INITIALIZING)
    else:
        health = AutomationHealth(status=manager.status, active_sessions=manager.session_count())
    return _dump(health)


@router.post("/api/join-meeting")
async def join_meeting(body: JoinMeetingRequest, request: Request):
    """Join a meeting in a new isolated browser session."""
    manager = _get_session_manager(request)
    if manager is None or not manager.ready:
        return _not_ready()

    if not (body.meeting_id and body.url and body.platform):
        return _failure(
            status.HTTP_400_BAD_REQUEST,
            "Missing required fields: meetingId, url, platform",
        )

    logger.info(
        "automation.join_requested",
        meeting_id=body.meeting_id,
        title=body.title,
        platform=body.platform,
    )

    try:
        result = await manager.join(
            body.meeting_id, body.url, body.platform, body.credentials
        )
    except NotReadyError:
        return _not_ready()
    except Exception as exc:
        logger.error("automation.join_endpoint_error", meeting_id=body.meeting_id, exc_info=True)
        return _internal_error(exc)

    response = AutomationResponse(
        success=result.success,
        message=result.message,
        error=result.reason,
        timestamp=utcnow(),
    )
    return _dump(response)


@router.post("/api/leave-meeting")
async def leave_meeting(body: LeaveMeetingRequest, request: Request):
    """Close the browser session for a meeting."""
    if not body.meeting_id:
        return _failure(status.HTTP_400_BAD_REQUEST, "Missing meetingId")

    manager = _get_session_manager(request)
    if manager is None:
        return _not_ready()

    try:
        await manager.leave(body.meeting_id)
    except SessionNotFoundError:
        return _dump(AutomationResponse(success=False, error="Meeting session not found"))
    except Exception as exc:
        logger.error("automation.leave_endpoint_error", meeting_id=body.meeting_id, exc_info=True)
        return _internal_error(exc)

    return _dump(AutomationResponse(success=True))


@router.get("/api/sessions")
async def list_sessions(request: Request) -> dict:
    """Return the live session count."""
    manager = _get_session_manager(request)
    count = manager.session_count() if manager is not None else 0
    return _dump(SessionsResponse(active_sessions=count))


@router.post("/api/test-automation")
async def test_automation(body: ProbeRequest, request: Request):
    """Navigate a throwaway page to ``url`` to check the browser works."""
    if not body.url:
        return _failure(status.HTTP_400_BAD_REQUEST, "URL required for test")

    manager = _get_session_manager(request)
    if manager is None or not manager.ready:
        return _not_ready()

    try:
        title = await manager.probe(body.url)
    except NotReadyError:
        return _not_ready()
    except Exception as exc:
        logger.warning("automation.probe_failed", url=body.url, error=str(exc))
        return {"success": False, "error": str(exc)}

    return {"success": True, "title": title}
