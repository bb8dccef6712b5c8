"""Liveness endpoint for the orchestrator service."""

from __future__ import annotations

from fastapi import APIRouter

from src.autopilot.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check.

    No collaborators are consulted -- only that the process is serving.
    """
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}
