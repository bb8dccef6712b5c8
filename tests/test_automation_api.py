"""Tests for the automation service HTTP boundary.

Uses httpx ASGITransport against create_automation_app() with a
SessionManager on fake browser objects. The lifespan does not run under
ASGITransport, so the manager is injected and initialized by the fixtures.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.autopilot.automation.schemas import JoinResult
from src.autopilot.automation.session_manager import SessionManager
from src.autopilot.automation.strategies import StrategyRegistry
from src.autopilot.automation_main import create_automation_app

from tests.fakes import FakeProvider, StubStrategy

JOIN_BODY = {
    "meetingId": "m-1",
    "url": "https://meet.google.com/abc-defg-hij",
    "platform": "google-meet",
    "title": "Weekly sync",
    "credentials": {"displayName": "Meeting Recorder"},
}


def _client_for(manager: SessionManager | None) -> AsyncClient:
    app = create_automation_app(session_manager=manager)
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest_asyncio.fixture
async def client(ready_manager):
    """Client against an app with an initialized manager."""
    async with _client_for(ready_manager) as ac:
        yield ac


# ── Health / Sessions ───────────────────────────────────────────────────────


class TestHealth:
    """GET /health and GET /api/sessions."""

    @pytest.mark.asyncio
    async def test_ready(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ready"
        assert body["activeSessions"] == 0
        assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_initializing_before_browser_starts(self, session_manager):
        async with _client_for(session_manager) as ac:
            response = await ac.get("/health")
        assert response.json()["status"] == "initializing"

    @pytest.mark.asyncio
    async def test_error_after_failed_initialize(self):
        manager = SessionManager(provider=FakeProvider(start_error=RuntimeError("no browser")))
        await manager.initialize()
        async with _client_for(manager) as ac:
            response = await ac.get("/health")
        assert response.json()["status"] == "error"

    @pytest.mark.asyncio
    async def test_sessions_count(self, client):
        await client.post("/api/join-meeting", json=JOIN_BODY)
        response = await client.get("/api/sessions")

        assert response.status_code == 200
        assert response.json()["activeSessions"] == 1


# ── Join ────────────────────────────────────────────────────────────────────


class TestJoinMeeting:
    """POST /api/join-meeting."""

    @pytest.mark.asyncio
    async def test_join_success(self, client, ready_manager):
        response = await client.post("/api/join-meeting", json=JOIN_BODY)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "joined"
        assert "error" not in body
        assert ready_manager.has_session("m-1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["meetingId", "url", "platform"])
    async def test_missing_field_is_400(self, client, missing):
        body = {k: v for k, v in JOIN_BODY.items() if k != missing}
        response = await client.post("/api/join-meeting", json=body)

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "Missing required fields: meetingId, url, platform",
        }

    @pytest.mark.asyncio
    async def test_not_initialized_is_503(self, session_manager):
        async with _client_for(session_manager) as ac:
            response = await ac.post("/api/join-meeting", json=JOIN_BODY)

        assert response.status_code == 503
        assert response.json()["error"] == "Meeting agent not ready"

    @pytest.mark.asyncio
    async def test_strategy_failure_reported(self):
        """A failed join answers 200 with success false and the reason."""
        failing = StubStrategy(JoinResult.failed("Join button not found"))
        manager = SessionManager(
            provider=FakeProvider(), registry=StrategyRegistry(fallback=failing)
        )
        await manager.initialize()
        async with _client_for(manager) as ac:
            response = await ac.post("/api/join-meeting", json=JOIN_BODY)

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error"] == "Join button not found"
        assert manager.session_count() == 0


# ── Leave ───────────────────────────────────────────────────────────────────


class TestLeaveMeeting:
    """POST /api/leave-meeting."""

    @pytest.mark.asyncio
    async def test_leave_after_join(self, client, ready_manager):
        await client.post("/api/join-meeting", json=JOIN_BODY)
        response = await client.post("/api/leave-meeting", json={"meetingId": "m-1"})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert ready_manager.session_count() == 0

    @pytest.mark.asyncio
    async def test_missing_meeting_id_is_400(self, client):
        response = await client.post("/api/leave-meeting", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "Missing meetingId"

    @pytest.mark.asyncio
    async def test_unknown_session_is_soft_failure(self, client):
        """No session for the id answers 200 with success false."""
        response = await client.post("/api/leave-meeting", json={"meetingId": "ghost"})

        assert response.status_code == 200
        assert response.json() == {"success": False, "error": "Meeting session not found"}


# ── Probe ───────────────────────────────────────────────────────────────────


class TestAutomationProbe:
    """POST /api/test-automation."""

    @pytest.mark.asyncio
    async def test_probe_returns_title(self, client, ready_manager):
        response = await client.post("/api/test-automation", json={"url": "https://example.com"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "title": "Title of https://example.com"}
        assert ready_manager.session_count() == 0

    @pytest.mark.asyncio
    async def test_probe_requires_url(self, client):
        response = await client.post("/api/test-automation", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "URL required for test"

    @pytest.mark.asyncio
    async def test_probe_not_ready(self, session_manager):
        async with _client_for(session_manager) as ac:
            response = await ac.post("/api/test-automation", json={"url": "https://example.com"})
        assert response.status_code == 503
