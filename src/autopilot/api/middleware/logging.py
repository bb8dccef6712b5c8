"""Structured request logging middleware.

Logs every request with:
- method, path, status_code, duration_ms
- service (orchestrator or automation)
- meeting_id when the path addresses one meeting (``/meetings/{id}``)
- request_id (UUID generated per request, added to response as X-Request-ID)

request_id and meeting_id are bound to structlog contextvars for the
duration of the request, so every log line emitted while handling it
(orchestrator, client, session manager) carries them too.

Uses structlog for structured JSON logging in production and
human-readable console output in development.
"""

from __future__ import annotations

import logging
import re
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from src.autopilot.config import Environment, get_settings

logger = structlog.get_logger(__name__)

# /meetings/{id} and /meetings/{id}/auto-record; /meetings/parse is a collection route
_MEETING_PATH = re.compile(r"/meetings/(?!parse(?:/|$))(?P<meeting_id>[^/]+)")


def configure_structlog() -> None:
    """Configure structlog processors based on environment."""
    settings = get_settings()

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    )

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.ENVIRONMENT == Environment.production:
        shared_processors.append(structlog.processors.JSONRenderer())
    else:
        shared_processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def meeting_id_from_path(path: str) -> str | None:
    """Return the meeting id addressed by ``path``, if any."""
    match = _MEETING_PATH.search(path)
    return match.group("meeting_id") if match else None


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that logs every request with meeting context and timing.

    Generates a unique X-Request-ID for each request and includes it in
    both the log entry and the response headers.

    Args:
        app: The wrapped ASGI app.
        service: Name logged with every request, one per process.
    """

    def __init__(self, app: ASGIApp, service: str = "orchestrator") -> None:
        super().__init__(app)
        self.service = service

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = str(uuid.uuid4())
        meeting_id = meeting_id_from_path(request.url.path)
        start_time = time.monotonic()

        context = {"request_id": request_id, "service": self.service}
        if meeting_id is not None:
            context["meeting_id"] = meeting_id
        structlog.contextvars.bind_contextvars(**context)

        try:
            try:
                response = await call_next(request)
            except Exception:
                duration_ms = round((time.monotonic() - start_time) * 1000, 2)
                logger.error(
                    "request_error",
                    method=request.method,
                    path=request.url.path,
                    status_code=500,
                    duration_ms=duration_ms,
                )
                raise

            duration_ms = round((time.monotonic() - start_time) * 1000, 2)
            response.headers["X-Request-ID"] = request_id

            log_method = logger.info if response.status_code < 400 else logger.warning
            if response.status_code >= 500:
                log_method = logger.error

            log_method(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
            )
            return response
        finally:
            structlog.contextvars.unbind_contextvars(*context)
