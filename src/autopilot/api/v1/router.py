"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.autopilot.api.v1 import automation, health, meetings, recording

router = APIRouter()

router.include_router(health.router)
router.include_router(meetings.router)
router.include_router(automation.router)
router.include_router(recording.router)
