"""Automation toggle and cached automation-service health."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from src.autopilot.automation.client import AutomationClient
from src.autopilot.automation.schemas import HealthStatus, ProbeRequest
from src.autopilot.meetings.orchestrator import MeetingOrchestrator

router = APIRouter(prefix="/automation", tags=["automation"])


# ── Schemas ──────────────────────────────────────────────────────────────────


class AutomationStatus(BaseModel):
    """Automation toggle plus the most recent cached health probe."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    enabled: bool
    status: HealthStatus
    active_sessions: int
    timestamp: datetime


class AutomationToggle(BaseModel):
    enabled: bool


class ProbeResult(BaseModel):
    success: bool
    title: str | None = None
    error: str | None = None


# ── Helpers ──────────────────────────────────────────────────────────────────


def _get_orchestrator(request: Request) -> MeetingOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Meeting orchestrator not available",
        )
    return orchestrator


def _get_client(request: Request) -> AutomationClient:
    client = getattr(request.app.state, "automation_client", None)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Automation client not available",
        )
    return client


def _status(orchestrator: MeetingOrchestrator, client: AutomationClient) -> AutomationStatus:
    health = client.health
    return AutomationStatus(
        enabled=orchestrator.automation_enabled,
        status=health.status,
        active_sessions=health.active_sessions,
        timestamp=health.timestamp,
    )


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("", response_model=AutomationStatus)
async def get_automation(request: Request) -> AutomationStatus:
    """Report the toggle and cached health; never probes inline."""
    return _status(_get_orchestrator(request), _get_client(request))


@router.put("", response_model=AutomationStatus)
async def set_automation(body: AutomationToggle, request: Request) -> AutomationStatus:
    orchestrator = _get_orchestrator(request)
    orchestrator.set_automation_enabled(body.enabled)
    return _status(orchestrator, _get_client(request))


@router.post("/test", response_model=ProbeResult, response_model_exclude_none=True)
async def test_automation(body: ProbeRequest, request: Request) -> ProbeResult:
    """Ask the automation service to open ``url`` in a throwaway page."""
    if not body.url:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="URL required for test",
        )
    response = await _get_client(request).probe(body.url)
    if response.success:
        return ProbeResult(success=True, title=response.message)
    return ProbeResult(success=False, error=response.error)
