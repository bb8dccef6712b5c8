"""Tests for the per-platform join strategies and their registry.

Pages are scripted doubles: ``elements`` maps a CSS selector to a fake
element, ``controls`` lists the visible text of interactive controls for the
generic strategy. No browser is launched.
"""

from __future__ import annotations

import re
from typing import Any

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.autopilot.automation.schemas import JoinCredentials
from src.autopilot.automation.strategies import (
    GenericJoinStrategy,
    GoogleMeetStrategy,
    StrategyRegistry,
    TeamsStrategy,
    ZoomStrategy,
    build_default_registry,
)
from src.autopilot.meetings.schemas import Platform


# ── Scripted page doubles ───────────────────────────────────────────────────


class FakeElement:
    def __init__(self, page: "ScriptedPage", selector: str) -> None:
        self._page = page
        self.selector = selector
        self.value: str | None = None

    async def click(self, **kwargs: Any) -> None:
        self._page.clicked.append(self.selector)

    async def fill(self, value: str) -> None:
        self.value = value
        self._page.filled[self.selector] = value


class FakeLocator:
    def __init__(self, page: "ScriptedPage", matches: list[str]) -> None:
        self._page = page
        self._matches = matches

    async def count(self) -> int:
        return len(self._matches)

    @property
    def first(self) -> "FakeLocator":
        return FakeLocator(self._page, self._matches[:1])

    async def click(self, **kwargs: Any) -> None:
        self._page.clicked.append(self._matches[0])


class ScriptedPage:
    def __init__(
        self,
        selectors: list[str] | None = None,
        controls: list[str] | None = None,
        click_error: Exception | None = None,
    ) -> None:
        self.elements = {s: FakeElement(self, s) for s in selectors or []}
        self.controls = controls or []
        self.clicked: list[str] = []
        self.filled: dict[str, str] = {}
        self._click_error = click_error

    async def wait_for_timeout(self, ms: int) -> None:
        return None

    async def query_selector(self, selector: str) -> FakeElement | None:
        return self.elements.get(selector)

    async def wait_for_selector(self, selector: str, timeout: int = 0) -> FakeElement:
        for part in selector.split(", "):
            if part in self.elements:
                return self.elements[part]
        if selector == GenericJoinStrategy.CONTROL_SELECTOR and self.controls:
            return FakeElement(self, selector)
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def fill(self, selector: str, value: str) -> None:
        self.filled[selector] = value

    async def click(self, selector: str) -> None:
        if self._click_error is not None:
            raise self._click_error
        self.clicked.append(selector)

    def locator(self, selector: str, has_text: re.Pattern) -> FakeLocator:
        return FakeLocator(self, [text for text in self.controls if has_text.search(text)])


def _fast(strategy_cls):
    return strategy_cls(selector_timeout_ms=10, settle_ms=0, confirm_ms=0)


# ── Google Meet ─────────────────────────────────────────────────────────────


class TestGoogleMeetStrategy:
    """Google Meet pre-join flow."""

    @pytest.mark.asyncio
    async def test_mutes_names_and_joins(self):
        """Camera and mic are turned off, name filled, join clicked."""
        page = ScriptedPage(
            [
                "[data-is-muted]",
                '[data-is-camera-on="true"]',
                '[data-is-muted="false"]',
                'input[aria-label="Your name"]',
                'button:has-text("Ask to join")',
            ]
        )
        result = await _fast(GoogleMeetStrategy).attempt_join(
            page, JoinCredentials(display_name="Meeting Recorder")
        )

        assert result.success is True
        assert result.message == "Joined Google Meet successfully"
        assert page.clicked == [
            '[data-is-camera-on="true"]',
            '[data-is-muted="false"]',
            'button:has-text("Ask to join")',
        ]
        assert page.filled['input[aria-label="Your name"]'] == "Meeting Recorder"

    @pytest.mark.asyncio
    async def test_missing_join_button(self):
        """Pre-join screen without a join control is a failed result."""
        page = ScriptedPage(["[data-is-muted]"])
        result = await _fast(GoogleMeetStrategy).attempt_join(page)
        assert result.success is False
        assert result.reason == "Join button not found"

    @pytest.mark.asyncio
    async def test_prejoin_timeout_is_failure(self):
        """A selector wait that times out becomes a failed result, not an exception."""
        result = await _fast(GoogleMeetStrategy).attempt_join(ScriptedPage())
        assert result.success is False
        assert "Timed out" in result.reason

    @pytest.mark.asyncio
    async def test_sign_in_when_form_present(self):
        """With an email and the Google sign-in form shown, credentials are entered."""
        page = ScriptedPage(
            [
                "#identifierId",
                '#password input[type="password"]',
                "[data-is-muted]",
                '[jsname="Qx7uuf"]',
            ]
        )
        result = await _fast(GoogleMeetStrategy).attempt_join(
            page, JoinCredentials(email="rec@example.com", password="s3cret")
        )

        assert result.success is True
        assert page.filled["#identifierId"] == "rec@example.com"
        assert page.filled['#password input[type="password"]'] == "s3cret"
        assert "#identifierNext" in page.clicked
        assert "#passwordNext" in page.clicked

    @pytest.mark.asyncio
    async def test_sign_in_failure_does_not_abort_join(self):
        """An error inside the sign-in step is logged and the join continues."""
        page = ScriptedPage(
            ["#identifierId", "[data-is-muted]", '[jsname="Qx7uuf"]'],
            click_error=PlaywrightError("element detached"),
        )
        result = await _fast(GoogleMeetStrategy).attempt_join(
            page, JoinCredentials(email="rec@example.com")
        )
        assert result.success is True

    @pytest.mark.asyncio
    async def test_sign_in_skipped_without_email(self):
        """No email means the sign-in form is left alone."""
        page = ScriptedPage(["#identifierId", "[data-is-muted]", '[jsname="Qx7uuf"]'])
        await _fast(GoogleMeetStrategy).attempt_join(page)
        assert "#identifierId" not in page.filled


# ── Zoom / Teams ────────────────────────────────────────────────────────────


class TestZoomStrategy:
    """Zoom web-client flow."""

    @pytest.mark.asyncio
    async def test_joins_from_browser(self):
        """Browser-join link, name, mute, video off, join."""
        page = ScriptedPage(
            [
                'a:has-text("Join from your browser")',
                "#inputname",
                "#preview-audio-control-button",
                "#joinBtn",
            ]
        )
        result = await _fast(ZoomStrategy).attempt_join(
            page, JoinCredentials(display_name="Recorder")
        )

        assert result.success is True
        assert page.filled["#inputname"] == "Recorder"
        assert page.clicked == [
            'a:has-text("Join from your browser")',
            "#preview-audio-control-button",
            "#joinBtn",
        ]

    @pytest.mark.asyncio
    async def test_no_join_options(self):
        """A landing page with no browser-join path fails."""
        result = await _fast(ZoomStrategy).attempt_join(ScriptedPage())
        assert result.success is False
        assert result.reason == "Could not find join options"


class TestTeamsStrategy:
    """Teams guest web flow."""

    @pytest.mark.asyncio
    async def test_joins_on_web(self):
        """Continue on web, fill name, toggle devices off, join."""
        page = ScriptedPage(
            [
                '[data-tid="joinOnWeb"]',
                "#guest-name-input",
                '[data-tid="toggle-video"][aria-checked="true"]',
                '[data-tid="prejoin-join-button"]',
            ]
        )
        result = await _fast(TeamsStrategy).attempt_join(
            page, JoinCredentials(display_name="Recorder")
        )

        assert result.success is True
        assert page.clicked[-1] == '[data-tid="prejoin-join-button"]'
        assert page.filled["#guest-name-input"] == "Recorder"

    @pytest.mark.asyncio
    async def test_missing_web_join(self):
        result = await _fast(TeamsStrategy).attempt_join(ScriptedPage())
        assert result.success is False
        assert result.reason == "Could not find Teams join button"


# ── Generic ─────────────────────────────────────────────────────────────────


class TestGenericJoinStrategy:
    """Text-matching fallback strategy."""

    @pytest.mark.asyncio
    async def test_prefers_specific_phrase(self):
        """'Join now' is chosen over a bare 'Start' control."""
        page = ScriptedPage(controls=["Start", "Join now", "Help"])
        result = await _fast(GenericJoinStrategy).attempt_join(page)

        assert result.success is True
        assert page.clicked == ["Join now"]

    @pytest.mark.asyncio
    async def test_phrase_matching_is_case_insensitive(self):
        page = ScriptedPage(controls=["ENTER MEETING"])
        result = await _fast(GenericJoinStrategy).attempt_join(page)
        assert result.success is True
        assert page.clicked == ["ENTER MEETING"]

    @pytest.mark.asyncio
    async def test_no_matching_control(self):
        """Controls without a join phrase produce a failed result."""
        page = ScriptedPage(controls=["Sign in", "Help"])
        result = await _fast(GenericJoinStrategy).attempt_join(page)
        assert result.success is False
        assert result.reason == "No join button found with generic method"

    @pytest.mark.asyncio
    async def test_page_without_controls_times_out(self):
        result = await _fast(GenericJoinStrategy).attempt_join(ScriptedPage())
        assert result.success is False


# ── Registry ────────────────────────────────────────────────────────────────


class TestStrategyRegistry:
    """Lookup by platform tag with a generic fallback."""

    def test_default_registry_covers_every_platform(self):
        registry = build_default_registry()
        assert len(registry) == len(Platform)
        for platform in Platform:
            assert platform in registry

    @pytest.mark.parametrize(
        "tag, expected",
        [
            ("google-meet", GoogleMeetStrategy),
            (Platform.ZOOM, ZoomStrategy),
            ("teams", TeamsStrategy),
            ("other", GenericJoinStrategy),
        ],
    )
    def test_lookup(self, tag, expected):
        assert isinstance(build_default_registry().get(tag), expected)

    @pytest.mark.parametrize("tag", ["webex", "", None])
    def test_unknown_tag_uses_fallback(self, tag):
        """Unrecognised tags resolve to the fallback strategy."""
        fallback = _fast(GenericJoinStrategy)
        registry = StrategyRegistry(fallback=fallback)
        registry.register(_fast(ZoomStrategy))
        assert registry.get(tag) is fallback

    def test_register_adds_platform(self):
        """New platforms are supported by registration alone."""
        registry = StrategyRegistry(fallback=_fast(GenericJoinStrategy))
        assert Platform.TEAMS not in registry
        registry.register(_fast(TeamsStrategy))
        assert isinstance(registry.get("teams"), TeamsStrategy)

    def test_registry_passes_selector_timeout(self):
        registry = build_default_registry(selector_timeout_ms=1234)
        assert registry.get("zoom").selector_timeout_ms == 1234
