"""FastAPI application factory for the automation service.

Owns the shared browser provider and the SessionManager. The browser is
launched in the background after startup so /health can report
``initializing`` while Chromium comes up. On shutdown (SIGINT/SIGTERM via
uvicorn) every session is closed and the browser released within
SHUTDOWN_TIMEOUT_SECONDS.
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

from src.autopilot.api.automation import router as automation_router
from src.autopilot.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.autopilot.automation.browser import BrowserProvider
from src.autopilot.automation.session_manager import SessionManager
from src.autopilot.config import Settings, get_settings
from src.autopilot.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry


def build_session_manager(settings: Settings) -> SessionManager:
    """Wire a SessionManager to a fresh BrowserProvider from settings."""
    provider = BrowserProvider(
        headless=settings.BROWSER_HEADLESS,
        user_agent=settings.BROWSER_USER_AGENT,
        close_timeout=settings.SESSION_CLOSE_TIMEOUT_SECONDS * 2,
    )
    return SessionManager(
        provider=provider,
        navigation_timeout_ms=settings.NAVIGATION_TIMEOUT_MS,
        selector_timeout_ms=settings.SELECTOR_TIMEOUT_MS,
        close_timeout=settings.SESSION_CLOSE_TIMEOUT_SECONDS,
        join_timeout=settings.JOIN_TIMEOUT_SECONDS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Launch the browser on startup, close every session on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()

    if settings.SENTRY_DSN:
        init_sentry(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT.value,
            service="automation",
        )

    manager = getattr(app.state, "session_manager", None)
    if manager is None:
        manager = build_session_manager(settings)
        app.state.session_manager = manager

    async def _initialize() -> None:
        if await manager.initialize():
            log.info("automation.agent_ready")
        else:
            log.error("automation.agent_init_failed")

    init_task = asyncio.create_task(_initialize(), name="session_manager_init")

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    if not init_task.done():
        init_task.cancel()
        try:
            await init_task
        except asyncio.CancelledError:
            pass

    try:
        await asyncio.wait_for(manager.shutdown(), timeout=settings.SHUTDOWN_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        log.warning("automation.shutdown_timeout", timeout=settings.SHUTDOWN_TIMEOUT_SECONDS)
    log.info("automation.stopped")


def create_automation_app(session_manager: SessionManager | None = None) -> FastAPI:
    """Create the automation service app.

    Args:
        session_manager: Pre-built manager (tests inject one); built from
            settings in the lifespan when omitted.
    """
    settings = get_settings()

    app = FastAPI(
        title="Meeting Autopilot Automation Service",
        version="0.1.0",
        description="Browser automation for joining video meetings",
        lifespan=lifespan,
    )
    app.state.session_manager = session_manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware, service="automation")
    app.add_middleware(MetricsMiddleware)

    app.include_router(automation_router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


def run() -> None:
    """Console entry point: serve the automation app with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.autopilot.automation_main:app",
        host=settings.AUTOMATION_HOST,
        port=settings.AUTOMATION_PORT,
    )


# Module-level app for uvicorn
app = create_automation_app()
