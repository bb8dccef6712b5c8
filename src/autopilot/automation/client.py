"""Async HTTP client for the automation service.

Used by the orchestrator to reach the SessionManager across the process
boundary. Two responsibilities:

- A health-probe loop on its own fixed interval that refreshes a cached
  AutomationHealth. The orchestrator reads ``health`` and never probes inline.
- Error translation: transport failures, timeouts, non-2xx answers and
  malformed bodies all come back as ``AutomationResponse(success=False)``.
  Nothing raises past this client. Transport failures additionally degrade
  the cached health to ``error`` until the next successful probe.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from src.autopilot.automation.errors import RemoteUnavailableError, RequestTimeoutError
from src.autopilot.automation.schemas import (
    AutomationHealth,
    AutomationResponse,
    HealthStatus,
    JoinCredentials,
    JoinMeetingRequest,
    SessionsResponse,
    utcnow,
)
from src.autopilot.meetings.schemas import Meeting

logger = structlog.get_logger(__name__)


class AutomationClient:
    """Client for the automation service's HTTP+JSON API.

    Args:
        base_url: Automation service root, e.g. ``http://localhost:3333``.
        request_timeout: Seconds allowed for join/leave calls. A join runs a
            whole browser flow server-side, so this is generous.
        health_timeout: Seconds allowed for a health probe.
        health_interval: Seconds between health probes in run_health_loop().
        default_credentials: Identity merged into every join request.
    """

    def __init__(
        self,
        base_url: str,
        request_timeout: float = 60.0,
        health_timeout: float = 5.0,
        health_interval: float = 30.0,
        default_credentials: JoinCredentials | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._request_timeout = request_timeout
        self._health_timeout = health_timeout
        self._health_interval = health_interval
        self._default_credentials = default_credentials or JoinCredentials()
        self._health = AutomationHealth(status=HealthStatus.INITIALIZING)
        self._running = False

    def _client(self, timeout: float) -> httpx.AsyncClient:
        """Create a new httpx client with specified timeout."""
        return httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )

    # ── Configuration ────────────────────────────────────────────────────

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_base_url(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")

    @property
    def default_credentials(self) -> JoinCredentials:
        return self._default_credentials

    def set_default_credentials(self, **overrides: str | None) -> None:
        """Merge ``overrides`` (email, display_name, password) into the defaults."""
        merged = self._default_credentials.model_dump()
        merged.update({k: v for k, v in overrides.items() if k in merged})
        self._default_credentials = JoinCredentials(**merged)

    # ── Health ───────────────────────────────────────────────────────────

    @property
    def health(self) -> AutomationHealth:
        """Most recent cached health snapshot."""
        return self._health

    @property
    def is_ready(self) -> bool:
        return self._health.status == HealthStatus.READY

    async def check_health(self) -> AutomationHealth:
        """Probe GET /health, update the cache, and return the new snapshot."""
        try:
            async with self._client(self._health_timeout) as client:
                response = await client.get(f"{self._base_url}/health")
            response.raise_for_status()
            health = AutomationHealth.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("automation_client.health_check_failed", error=str(exc))
            health = AutomationHealth(status=HealthStatus.ERROR, active_sessions=0)

        if health.status != self._health.status:
            logger.info(
                "automation_client.health_changed",
                previous=self._health.status.value,
                current=health.status.value,
                active_sessions=health.active_sessions,
            )
        self._health = health
        return health

    async def run_health_loop(self) -> None:
        """Probe immediately, then every ``health_interval`` seconds until stop()."""
        self._running = True
        logger.info("automation_client.health_loop_started", interval=self._health_interval)

        while self._running:
            try:
                await self.check_health()
            except Exception:
                logger.exception("automation_client.health_loop_error")
            await asyncio.sleep(self._health_interval)

    def stop(self) -> None:
        """Signal the health loop to stop."""
        self._running = False

    # ── Meeting operations ───────────────────────────────────────────────

    async def join_meeting(
        self, meeting: Meeting, credentials: JoinCredentials | None = None
    ) -> AutomationResponse:
        """Ask the automation service to join ``meeting``."""
        merged = self._default_credentials.model_dump(exclude_none=True)
        if credentials is not None:
            merged.update(credentials.model_dump(exclude_none=True))

        payload = JoinMeetingRequest(
            meeting_id=meeting.id,
            url=meeting.link,
            platform=meeting.platform.value,
            title=meeting.title,
            credentials=JoinCredentials(**merged),
        )
        logger.info(
            "automation_client.join_requested",
            meeting_id=meeting.id,
            title=meeting.title,
            platform=meeting.platform.value,
        )
        body = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
        try:
            data = await self._send("/api/join-meeting", body)
        except RequestTimeoutError as exc:
            # The service may still finish this join; close whatever it registers.
            await self._abandon_join(meeting.id)
            return self._failure(str(exc))
        except RemoteUnavailableError as exc:
            return self._failure(str(exc))
        return self._parse("/api/join-meeting", data)

    async def leave_meeting(self, meeting_id: str) -> AutomationResponse:
        """Ask the automation service to close the session for ``meeting_id``."""
        return await self._post("/api/leave-meeting", {"meetingId": meeting_id})

    async def probe(self, url: str) -> AutomationResponse:
        """Run the navigation probe against ``url``; the page title comes back as ``message``."""
        return await self._post("/api/test-automation", {"url": url}, title_as_message=True)

    async def get_active_sessions(self) -> SessionsResponse:
        """GET /api/sessions, degrading to zero sessions on any failure."""
        try:
            async with self._client(self._health_timeout) as client:
                response = await client.get(f"{self._base_url}/api/sessions")
            response.raise_for_status()
            return SessionsResponse.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("automation_client.sessions_failed", error=str(exc))
            return SessionsResponse(active_sessions=0)

    # ── Internals ────────────────────────────────────────────────────────

    async def _post(
        self, path: str, payload: dict[str, Any], title_as_message: bool = False
    ) -> AutomationResponse:
        try:
            data = await self._send(path, payload)
        except RemoteUnavailableError as exc:
            return self._failure(str(exc))
        return self._parse(path, data, title_as_message)

    def _parse(
        self, path: str, data: dict[str, Any], title_as_message: bool = False
    ) -> AutomationResponse:
        if title_as_message and "title" in data and "message" not in data:
            data = {**data, "message": data["title"]}

        try:
            return AutomationResponse.model_validate(data)
        except ValidationError as exc:
            logger.warning("automation_client.malformed_response", path=path, error=str(exc))
            return self._failure("Malformed response from automation service")

    async def _send(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST ``payload`` and return the decoded JSON object.

        Raises:
            RequestTimeoutError: No answer within the request timeout.
            RemoteUnavailableError: Transport failure, non-2xx status, or a
                body that is not a JSON object.
        """
        url = f"{self._base_url}{path}"
        try:
            async with self._client(self._request_timeout) as client:
                response = await client.post(url, json=payload)
        except httpx.TimeoutException as exc:
            logger.warning("automation_client.request_timeout", path=path, error=str(exc))
            self._health = AutomationHealth(status=HealthStatus.ERROR, active_sessions=0)
            raise RequestTimeoutError(
                f"Automation service unavailable: request timed out ({exc})"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("automation_client.unreachable", path=path, error=str(exc))
            self._health = AutomationHealth(status=HealthStatus.ERROR, active_sessions=0)
            raise RemoteUnavailableError(f"Automation service unavailable: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_error:
            error = data.get("error") if isinstance(data, dict) else None
            logger.warning(
                "automation_client.error_status",
                path=path,
                status_code=response.status_code,
                error=error,
            )
            raise RemoteUnavailableError(error or f"HTTP {response.status_code}")

        if not isinstance(data, dict):
            logger.warning("automation_client.malformed_response", path=path)
            raise RemoteUnavailableError("Malformed response from automation service")

        return data

    async def _abandon_join(self, meeting_id: str) -> None:
        """Best-effort leave after a join request timed out on this side."""
        response = await self.leave_meeting(meeting_id)
        logger.info(
            "automation_client.abandoned_join",
            meeting_id=meeting_id,
            left=response.success,
            error=response.error,
        )

    @staticmethod
    def _failure(error: str) -> AutomationResponse:
        return AutomationResponse(success=False, error=error, timestamp=utcnow())
