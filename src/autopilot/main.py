"""FastAPI application factory for the orchestrator service.

Startup wires the AutomationClient, RecordingController, ScheduleExtractor
and MeetingOrchestrator onto app.state and launches two independent loops:
the automation health probe and the scheduler tick. Shutdown stops both
loops, drains in-flight side effects and disconnects the recording device.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.autopilot.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.autopilot.api.v1.router import router as v1_router
from src.autopilot.automation.client import AutomationClient
from src.autopilot.automation.schemas import JoinCredentials
from src.autopilot.config import Settings, get_settings
from src.autopilot.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.autopilot.meetings.orchestrator import MeetingOrchestrator
from src.autopilot.meetings.parser import ScheduleExtractor
from src.autopilot.recording.controller import RecordingController

DRAIN_TIMEOUT_SECONDS = 10.0


def build_services(settings: Settings) -> dict:
    """Construct the orchestrator's collaborators from settings."""
    automation_client = AutomationClient(
        base_url=settings.AUTOMATION_URL,
        request_timeout=settings.automation_request_timeout(),
        health_timeout=settings.AUTOMATION_HEALTH_TIMEOUT,
        health_interval=settings.HEALTH_POLL_INTERVAL_SECONDS,
        default_credentials=JoinCredentials(
            display_name=settings.DEFAULT_DISPLAY_NAME,
            email=settings.DEFAULT_EMAIL or None,
        ),
    )
    recording_controller = RecordingController(
        address=settings.OBS_ADDRESS,
        password=settings.OBS_PASSWORD,
        timeout=settings.OBS_TIMEOUT_SECONDS,
    )
    orchestrator = MeetingOrchestrator(
        automation_client=automation_client,
        recording_controller=recording_controller,
        automation_enabled=settings.AUTOMATION_ENABLED,
        tick_interval=settings.TICK_INTERVAL_SECONDS,
        default_auto_record=settings.DEFAULT_AUTO_RECORD,
    )
    return {
        "automation_client": automation_client,
        "recording_controller": recording_controller,
        "schedule_extractor": ScheduleExtractor(model=settings.SCHEDULE_PARSER_MODEL),
        "orchestrator": orchestrator,
    }


async def _cancel(task: asyncio.Task | None) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the health and tick loops on startup, stop them on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()

    if settings.SENTRY_DSN:
        init_sentry(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT.value,
            service="orchestrator",
        )

    for name, service in build_services(settings).items():
        if getattr(app.state, name, None) is None:
            setattr(app.state, name, service)

    automation_client: AutomationClient = app.state.automation_client
    orchestrator: MeetingOrchestrator = app.state.orchestrator
    recording_controller: RecordingController = app.state.recording_controller

    if settings.OBS_AUTO_CONNECT:
        await recording_controller.connect()

    app.state.health_task = asyncio.create_task(
        automation_client.run_health_loop(), name="automation_health_loop"
    )
    app.state.tick_task = asyncio.create_task(
        orchestrator.run_tick_loop(), name="meeting_tick_loop"
    )
    log.info(
        "orchestrator.started",
        automation_url=automation_client.base_url,
        automation_enabled=orchestrator.automation_enabled,
    )

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    orchestrator.stop()
    automation_client.stop()
    await _cancel(app.state.tick_task)
    await _cancel(app.state.health_task)

    await orchestrator.drain(timeout=DRAIN_TIMEOUT_SECONDS)
    await recording_controller.disconnect()
    log.info("orchestrator.stopped")


def create_app() -> FastAPI:
    """Create the orchestrator service app."""
    settings = get_settings()

    app = FastAPI(
        title="Meeting Autopilot",
        version="0.1.0",
        description="Schedules, joins and records video meetings",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware, service="orchestrator")
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router, prefix="/api/v1")

    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


def run() -> None:
    """Console entry point: serve the orchestrator app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("src.autopilot.main:app", host=settings.API_HOST, port=settings.API_PORT)


# Module-level app for uvicorn
app = create_app()
