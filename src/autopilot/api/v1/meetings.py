"""REST endpoints for the meeting collection.

Meetings are created manually (POST /meetings) or ingested from free-text
schedules (POST /meetings/parse). Status is owned by the orchestrator tick;
callers can only remove a meeting or flip its auto-record flag.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException, Request, Response, status

from src.autopilot.meetings.orchestrator import MeetingOrchestrator
from src.autopilot.meetings.parser import ScheduleExtractor
from src.autopilot.meetings.schemas import Meeting, MeetingCreate, ScheduleParseRequest

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/meetings", tags=["meetings"])


def _get_orchestrator(request: Request) -> MeetingOrchestrator:
    """Retrieve MeetingOrchestrator from app.state, 503 if not available."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Meeting orchestrator not available",
        )
    return orchestrator


def _get_extractor(request: Request) -> ScheduleExtractor:
    """Retrieve ScheduleExtractor from app.state, 503 if not available."""
    extractor = getattr(request.app.state, "schedule_extractor", None)
    if extractor is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Schedule extractor not available",
        )
    return extractor


def _not_found(meeting_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Meeting {meeting_id} not found",
    )


@router.get("", response_model=list[Meeting])
async def list_meetings(request: Request) -> list[Meeting]:
    """All meetings, sorted by start time."""
    return _get_orchestrator(request).list_meetings()


@router.post("", response_model=Meeting, status_code=status.HTTP_201_CREATED)
async def create_meeting(body: MeetingCreate, request: Request) -> Meeting:
    """Create a pending meeting; end defaults to start + 1 hour."""
    return _get_orchestrator(request).add_meeting(body)


@router.post("/parse", response_model=list[Meeting], status_code=status.HTTP_201_CREATED)
async def parse_schedule(body: ScheduleParseRequest, request: Request) -> list[Meeting]:
    """Extract meetings from free text and ingest every valid one.

    An extraction failure yields an empty list rather than an error.
    """
    orchestrator = _get_orchestrator(request)
    extractor = _get_extractor(request)

    parsed = await extractor.extract(body.text, body.now)
    created = orchestrator.ingest(parsed)
    logger.info(
        "meetings_api.schedule_ingested",
        extracted=len(parsed),
        created=len(created),
    )
    return created


@router.get("/{meeting_id}", response_model=Meeting)
async def get_meeting(meeting_id: str, request: Request) -> Meeting:
    meeting = _get_orchestrator(request).get_meeting(meeting_id)
    if meeting is None:
        raise _not_found(meeting_id)
    return meeting


@router.delete("/{meeting_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_meeting(meeting_id: str, request: Request) -> Response:
    """Remove a meeting at any status; an active one is left and its recording stopped."""
    if _get_orchestrator(request).remove_meeting(meeting_id) is None:
        raise _not_found(meeting_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{meeting_id}/auto-record", response_model=Meeting)
async def toggle_auto_record(meeting_id: str, request: Request) -> Meeting:
    meeting = _get_orchestrator(request).toggle_auto_record(meeting_id)
    if meeting is None:
        raise _not_found(meeting_id)
    return meeting
