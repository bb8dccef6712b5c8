"""Tests for the orchestrator service REST API (/api/v1).

The lifespan does not run under ASGITransport, so the fixtures place an
orchestrator, a mocked automation client, a RecordingController on a
FakeDevice and a mocked schedule extractor on app.state directly.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.autopilot.automation.schemas import AutomationHealth, AutomationResponse, HealthStatus
from src.autopilot.main import create_app
from src.autopilot.meetings.orchestrator import MeetingOrchestrator
from src.autopilot.meetings.schemas import ParsedMeeting
from src.autopilot.recording.controller import RecordingController

from tests.fakes import NOW, FakeDevice

START = NOW + timedelta(hours=2)


@pytest.fixture
def automation():
    client = MagicMock()
    client.is_ready = True
    client.health = AutomationHealth(status=HealthStatus.READY, active_sessions=2)
    client.probe = AsyncMock(
        return_value=AutomationResponse(success=True, message="Google Meet")
    )
    return client


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def app(automation, device):
    application = create_app()
    recording = RecordingController(address="ws://obs:4455", device_factory=lambda a, p: device)
    application.state.automation_client = automation
    application.state.recording_controller = recording
    application.state.orchestrator = MeetingOrchestrator(
        automation_client=automation,
        recording_controller=recording,
        link_opener=AsyncMock(),
    )
    application.state.schedule_extractor = MagicMock()
    return application


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def _meeting_body(**overrides) -> dict:
    body = {
        "title": "Design review",
        "link": "https://meet.google.com/abc-defg-hij",
        "startTime": START.isoformat(),
    }
    body.update(overrides)
    return body


# ── Health ──────────────────────────────────────────────────────────────────


class TestHealth:
    @pytest.mark.asyncio
    async def test_liveness(self, client):
        response = await client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.asyncio
    async def test_metrics_exposed(self, client):
        response = await client.get("/metrics")
        assert response.status_code == 200
        assert "meeting_transitions_total" in response.text


# ── Meetings ────────────────────────────────────────────────────────────────


class TestMeetingsApi:
    """CRUD surface over the orchestrator's collection."""

    @pytest.mark.asyncio
    async def test_create_meeting(self, client):
        response = await client.post("/api/v1/meetings", json=_meeting_body())

        assert response.status_code == 201
        body = response.json()
        assert body["platform"] == "google-meet"
        assert body["status"] == "pending"
        assert body["autoRecord"] is True
        assert body["id"]
        end = body["endTime"].replace("Z", "+00:00")
        assert end == (START + timedelta(hours=1)).isoformat()

    @pytest.mark.asyncio
    async def test_create_rejects_inverted_window(self, client):
        body = _meeting_body(endTime=(START - timedelta(minutes=1)).isoformat())
        response = await client.post("/api/v1/meetings", json=body)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_create_requires_link(self, client):
        body = _meeting_body()
        del body["link"]
        response = await client.post("/api/v1/meetings", json=body)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_sorted_by_start(self, client):
        later = (START + timedelta(days=1)).isoformat()
        await client.post("/api/v1/meetings", json=_meeting_body(title="later", startTime=later))
        await client.post("/api/v1/meetings", json=_meeting_body(title="sooner"))

        response = await client.get("/api/v1/meetings")

        assert [m["title"] for m in response.json()] == ["sooner", "later"]

    @pytest.mark.asyncio
    async def test_get_and_delete(self, client):
        created = (await client.post("/api/v1/meetings", json=_meeting_body())).json()

        fetched = await client.get(f"/api/v1/meetings/{created['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["title"] == "Design review"

        deleted = await client.delete(f"/api/v1/meetings/{created['id']}")
        assert deleted.status_code == 204
        assert (await client.get("/api/v1/meetings")).json() == []

    @pytest.mark.asyncio
    async def test_unknown_meeting_is_404(self, client):
        assert (await client.get("/api/v1/meetings/nope")).status_code == 404
        assert (await client.delete("/api/v1/meetings/nope")).status_code == 404
        assert (await client.post("/api/v1/meetings/nope/auto-record")).status_code == 404

    @pytest.mark.asyncio
    async def test_toggle_auto_record(self, client):
        created = (await client.post("/api/v1/meetings", json=_meeting_body())).json()

        response = await client.post(f"/api/v1/meetings/{created['id']}/auto-record")

        assert response.status_code == 200
        assert response.json()["autoRecord"] is False

    @pytest.mark.asyncio
    async def test_parse_ingests_valid_records(self, client, app):
        """Extracted records are ingested; invalid windows are skipped."""
        app.state.schedule_extractor.extract = AsyncMock(
            return_value=[
                ParsedMeeting(
                    title="Standup", start_time=START, end_time=None, link="https://zoom.us/j/1"
                ),
                ParsedMeeting(
                    title="Broken",
                    start_time=START,
                    end_time=START - timedelta(hours=1),
                    link="https://zoom.us/j/2",
                ),
            ]
        )

        response = await client.post(
            "/api/v1/meetings/parse", json={"text": "Standup at 4pm zoom.us/j/1"}
        )

        assert response.status_code == 201
        created = response.json()
        assert [m["title"] for m in created] == ["Standup"]
        assert created[0]["platform"] == "zoom"
        app.state.schedule_extractor.extract.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_orchestrator_is_503(self, app, client):
        app.state.orchestrator = None
        response = await client.get("/api/v1/meetings")
        assert response.status_code == 503


# ── Automation ──────────────────────────────────────────────────────────────


class TestAutomationApi:
    """Automation toggle, cached health and probe passthrough."""

    @pytest.mark.asyncio
    async def test_status_from_cache(self, client):
        response = await client.get("/api/v1/automation")

        body = response.json()
        assert body["enabled"] is True
        assert body["status"] == "ready"
        assert body["activeSessions"] == 2

    @pytest.mark.asyncio
    async def test_toggle(self, client, app):
        response = await client.put("/api/v1/automation", json={"enabled": False})

        assert response.json()["enabled"] is False
        assert app.state.orchestrator.automation_enabled is False

    @pytest.mark.asyncio
    async def test_probe(self, client, automation):
        response = await client.post(
            "/api/v1/automation/test", json={"url": "https://meet.google.com/new"}
        )

        assert response.json() == {"success": True, "title": "Google Meet"}
        automation.probe.assert_awaited_once_with("https://meet.google.com/new")

    @pytest.mark.asyncio
    async def test_probe_requires_url(self, client):
        response = await client.post("/api/v1/automation/test", json={})
        assert response.status_code == 400


# ── Recording ───────────────────────────────────────────────────────────────


class TestRecordingApi:
    """Device connection lifecycle over HTTP."""

    @pytest.mark.asyncio
    async def test_initially_disconnected(self, client):
        response = await client.get("/api/v1/recording")

        body = response.json()
        assert body["connectionState"] == "disconnected"
        assert body["recording"] is False

    @pytest.mark.asyncio
    async def test_connect_and_disconnect(self, client, device):
        connected = await client.post(
            "/api/v1/recording/connect", json={"address": "ws://studio:4460"}
        )
        assert connected.json()["connectionState"] == "connected"
        assert connected.json()["address"] == "ws://studio:4460"
        assert device.connected is True

        disconnected = await client.post("/api/v1/recording/disconnect")
        assert disconnected.json()["connectionState"] == "disconnected"
        assert device.connected is False

    @pytest.mark.asyncio
    async def test_status_reports_recording(self, client, device, app):
        await client.post("/api/v1/recording/connect", json={})
        await app.state.recording_controller.start_recording()

        response = await client.get("/api/v1/recording")

        assert response.json()["recording"] is True
