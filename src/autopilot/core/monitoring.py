"""Prometheus metrics and Sentry integration.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- Meeting, automation and recording counters used across both services
- init_sentry(): Initialize Sentry when a DSN is configured
- get_metrics_response(): Prometheus exposition for the /metrics route
"""

from __future__ import annotations

import time

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

# ── Meeting Lifecycle Metrics ────────────────────────────────────────────────

meeting_transitions_total = Counter(
    "meeting_transitions_total",
    "Meeting status transitions applied by the scheduler tick",
    ["transition"],
)

meeting_join_actions_total = Counter(
    "meeting_join_actions_total",
    "Meeting activations by join method",
    ["method"],
)

side_effect_failures_total = Counter(
    "meeting_side_effect_failures_total",
    "Dispatched join/leave/record actions that raised",
    ["action"],
)

# ── Automation Metrics ───────────────────────────────────────────────────────

automation_join_attempts_total = Counter(
    "automation_join_attempts_total",
    "Browser join attempts by platform and outcome",
    ["platform", "outcome"],
)

automation_active_sessions = Gauge(
    "automation_active_sessions",
    "Live browser sessions held by the session manager",
)

# ── Recording Metrics ────────────────────────────────────────────────────────

recording_commands_total = Counter(
    "recording_commands_total",
    "Recording device commands by outcome",
    ["command", "outcome"],
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Skips the /metrics endpoint itself to avoid self-referential counting.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        endpoint = request.url.path

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


# ── Sentry Integration ───────────────────────────────────────────────────────


def init_sentry(dsn: str, environment: str, service: str) -> None:
    """Initialize Sentry SDK tagged with the service name.

    Args:
        dsn: Sentry DSN string.
        environment: Deployment environment (development, staging, production).
        service: Which process is reporting (orchestrator or automation).
    """
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    traces_sample_rate = 0.1 if environment == "production" else 1.0

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        integrations=[
            StarletteIntegration(),
            FastApiIntegration(),
        ],
    )
    sentry_sdk.set_tag("service", service)


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
