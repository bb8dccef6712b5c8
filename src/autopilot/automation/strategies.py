"""Per-platform join strategies.

Each strategy performs exactly one bounded join attempt on a page that has
already been navigated to the meeting URL: dismiss consent prompts, turn the
camera and microphone off, fill in the display name where asked, and activate
the join control. Every wait carries an explicit timeout, and a timeout is an
ordinary failed result rather than an exception.

Strategies never retry and never open or close pages; the session manager
owns page lifetime. New platforms are supported by registering another
JoinStrategy with the StrategyRegistry.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.autopilot.automation.schemas import JoinCredentials, JoinResult
from src.autopilot.meetings.schemas import Platform

if TYPE_CHECKING:
    from playwright.async_api import ElementHandle, Page

logger = structlog.get_logger(__name__)

DEFAULT_SELECTOR_TIMEOUT_MS = 15000

CONSENT_SELECTORS: tuple[str, ...] = (
    "#onetrust-accept-btn-handler",
    'button:has-text("Accept all")',
    'button:has-text("Got it")',
    'button:has-text("Dismiss")',
)


class JoinStrategy(ABC):
    """Base class for one platform's join flow.

    Args:
        selector_timeout_ms: Upper bound for each element-appearance wait.
        settle_ms: Pause after navigation before inspecting the page.
        confirm_ms: Pause after clicking join, letting the call connect.
    """

    platform: Platform = Platform.OTHER
    name: str = "generic"

    def __init__(
        self,
        selector_timeout_ms: int = DEFAULT_SELECTOR_TIMEOUT_MS,
        settle_ms: int = 3000,
        confirm_ms: int = 5000,
    ) -> None:
        self.selector_timeout_ms = selector_timeout_ms
        self.settle_ms = settle_ms
        self.confirm_ms = confirm_ms

    async def attempt_join(
        self, page: Page, credentials: JoinCredentials | None = None
    ) -> JoinResult:
        """Run the join flow once and report the outcome. Never raises Playwright errors."""
        try:
            return await self._join(page, credentials or JoinCredentials())
        except PlaywrightTimeoutError as exc:
            logger.info("strategy.timeout", strategy=self.name, error=str(exc))
            return JoinResult.failed(f"Timed out waiting for {self.name} join controls")
        except PlaywrightError as exc:
            logger.info("strategy.page_error", strategy=self.name, error=str(exc))
            return JoinResult.failed(str(exc))

    @abstractmethod
    async def _join(self, page: Page, credentials: JoinCredentials) -> JoinResult:
        ...

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    async def _first(page: Page, selectors: tuple[str, ...]) -> ElementHandle | None:
        """Return the first element matching any selector, without waiting."""
        for selector in selectors:
            element = await page.query_selector(selector)
            if element is not None:
                return element
        return None

    async def _wait_any(self, page: Page, selectors: tuple[str, ...]) -> ElementHandle | None:
        """Wait up to the selector timeout for any of ``selectors`` to appear."""
        return await page.wait_for_selector(
            ", ".join(selectors), timeout=self.selector_timeout_ms
        )

    async def _click_if_present(
        self, page: Page, selectors: tuple[str, ...], pause_ms: int = 1000
    ) -> bool:
        element = await self._first(page, selectors)
        if element is None:
            return False
        await element.click()
        if pause_ms:
            await page.wait_for_timeout(pause_ms)
        return True

    async def _dismiss_consent(self, page: Page) -> None:
        if await self._click_if_present(page, CONSENT_SELECTORS, pause_ms=500):
            logger.debug("strategy.consent_dismissed", strategy=self.name)

    async def _fill_name(
        self, page: Page, selectors: tuple[str, ...], display_name: str | None
    ) -> None:
        if not display_name:
            return
        name_input = await self._first(page, selectors)
        if name_input is not None:
            await name_input.fill(display_name)


class GoogleMeetStrategy(JoinStrategy):
    """Join flow for Google Meet, including the optional Google sign-in step."""

    platform = Platform.GOOGLE_MEET
    name = "google-meet"

    PREJOIN_SELECTORS = ("[data-is-muted]",)
    CAMERA_ON_SELECTORS = ('[data-is-camera-on="true"]',)
    MIC_ON_SELECTORS = ('[data-is-muted="false"]',)
    NAME_SELECTORS = ('input[aria-label="Your name"]', 'input[placeholder="Your name"]')
    JOIN_SELECTORS = (
        '[jsname="Qx7uuf"]',
        'button:has-text("Join now")',
        'button:has-text("Ask to join")',
        '[data-mdc-dialog-action="ok"]',
    )

    async def _join(self, page: Page, credentials: JoinCredentials) -> JoinResult:
        await page.wait_for_timeout(self.settle_ms)

        if credentials.email and await page.query_selector("#identifierId") is not None:
            await self._sign_in(page, credentials)

        await self._dismiss_consent(page)
        await self._wait_any(page, self.PREJOIN_SELECTORS)

        await self._click_if_present(page, self.CAMERA_ON_SELECTORS)
        await self._click_if_present(page, self.MIC_ON_SELECTORS)
        await self._fill_name(page, self.NAME_SELECTORS, credentials.display_name)

        join_button = await self._first(page, self.JOIN_SELECTORS)
        if join_button is None:
            return JoinResult.failed("Join button not found")

        await join_button.click()
        await page.wait_for_timeout(self.confirm_ms)
        return JoinResult.ok("Joined Google Meet successfully")

    async def _sign_in(self, page: Page, credentials: JoinCredentials) -> None:
        """Fill the Google account form. Failures are logged and the join continues."""
        try:
            await page.fill("#identifierId", credentials.email or "")
            await page.click("#identifierNext")
            await page.wait_for_timeout(2000)

            password_input = await page.query_selector('#password input[type="password"]')
            if password_input is not None and credentials.password:
                await password_input.fill(credentials.password)
                await page.click("#passwordNext")
                await page.wait_for_timeout(3000)
        except PlaywrightError as exc:
            logger.warning("strategy.google_sign_in_failed", error=str(exc))


class ZoomStrategy(JoinStrategy):
    """Join flow for Zoom via the web client (never the desktop launcher)."""

    platform = Platform.ZOOM
    name = "zoom"

    BROWSER_JOIN_SELECTORS = (
        'a[href*="wc/join"]',
        'a:has-text("Join from your browser")',
        "#joinBtn",
    )
    NAME_SELECTORS = ("#inputname", 'input[placeholder*="name" i]')
    MUTE_SELECTORS = ('button[aria-label*="Mute" i]', "#preview-audio-control-button")
    VIDEO_OFF_SELECTORS = ('button[aria-label*="Stop Video" i]', "#preview-video-control-button")
    JOIN_SELECTORS = ("#joinBtn", 'button:has-text("Join")', 'button[type="submit"]')

    async def _join(self, page: Page, credentials: JoinCredentials) -> JoinResult:
        await page.wait_for_timeout(self.settle_ms)
        await self._dismiss_consent(page)

        browser_link = await self._first(page, self.BROWSER_JOIN_SELECTORS)
        if browser_link is None:
            return JoinResult.failed("Could not find join options")

        await browser_link.click()
        await self._wait_any(page, self.JOIN_SELECTORS)

        await self._fill_name(page, self.NAME_SELECTORS, credentials.display_name)
        await self._click_if_present(page, self.MUTE_SELECTORS, pause_ms=300)
        await self._click_if_present(page, self.VIDEO_OFF_SELECTORS, pause_ms=300)

        join_button = await self._first(page, self.JOIN_SELECTORS)
        if join_button is None:
            return JoinResult.failed("Could not find join options")

        await join_button.click()
        await page.wait_for_timeout(self.confirm_ms)
        return JoinResult.ok("Joined Zoom meeting via browser")


class TeamsStrategy(JoinStrategy):
    """Join flow for Microsoft Teams on the web, as a guest."""

    platform = Platform.TEAMS
    name = "teams"

    WEB_JOIN_SELECTORS = ('[data-tid="joinOnWeb"]', 'button[title*="browser" i]')
    NAME_SELECTORS = ("#guest-name-input", 'input[placeholder*="name" i]')
    VIDEO_ON_SELECTORS = ('[data-tid="toggle-video"][aria-checked="true"]',)
    MIC_ON_SELECTORS = ('[data-tid="toggle-mute"][aria-checked="true"]',)
    JOIN_SELECTORS = ('[data-tid="prejoin-join-button"]', 'button[title*="Join now" i]')

    async def _join(self, page: Page, credentials: JoinCredentials) -> JoinResult:
        await page.wait_for_timeout(self.settle_ms)
        await self._dismiss_consent(page)

        web_join = await self._first(page, self.WEB_JOIN_SELECTORS)
        if web_join is None:
            return JoinResult.failed("Could not find Teams join button")

        await web_join.click()
        join_button = await self._wait_any(page, self.JOIN_SELECTORS)
        if join_button is None:
            return JoinResult.failed("Could not find Teams join button")

        await self._fill_name(page, self.NAME_SELECTORS, credentials.display_name)
        await self._click_if_present(page, self.VIDEO_ON_SELECTORS, pause_ms=300)
        await self._click_if_present(page, self.MIC_ON_SELECTORS, pause_ms=300)

        await join_button.click()
        await page.wait_for_timeout(self.confirm_ms)
        return JoinResult.ok("Joined Teams meeting")


class GenericJoinStrategy(JoinStrategy):
    """Fallback: scan interactive controls for a known join phrase."""

    platform = Platform.OTHER
    name = "generic"

    CONTROL_SELECTOR = "button, [role='button'], a"
    # Most specific first so "join meeting" wins over a bare "start"
    JOIN_PHRASES: tuple[str, ...] = ("join meeting", "join now", "enter meeting", "join", "start")

    async def _join(self, page: Page, credentials: JoinCredentials) -> JoinResult:
        await page.wait_for_selector(self.CONTROL_SELECTOR, timeout=self.selector_timeout_ms)
        await self._dismiss_consent(page)

        for phrase in self.JOIN_PHRASES:
            pattern = re.compile(rf"\b{re.escape(phrase)}\b", re.IGNORECASE)
            candidates = page.locator(self.CONTROL_SELECTOR, has_text=pattern)
            if await candidates.count() == 0:
                continue
            await candidates.first.click(timeout=self.selector_timeout_ms)
            await page.wait_for_timeout(self.confirm_ms)
            logger.info("strategy.generic_matched", phrase=phrase)
            return JoinResult.ok("Joined meeting using generic method")

        return JoinResult.failed("No join button found with generic method")


# ── Registry ─────────────────────────────────────────────────────────────────


class StrategyRegistry:
    """Maps platform tags to join strategies, with a fallback for the rest."""

    def __init__(self, fallback: JoinStrategy) -> None:
        self._fallback = fallback
        self._strategies: dict[Platform, JoinStrategy] = {}

    def register(self, strategy: JoinStrategy) -> None:
        self._strategies[strategy.platform] = strategy

    def get(self, platform: Platform | str | None) -> JoinStrategy:
        """Return the strategy for ``platform``; unknown tags get the fallback."""
        try:
            key = Platform(platform)
        except ValueError:
            return self._fallback
        return self._strategies.get(key, self._fallback)

    def __contains__(self, platform: object) -> bool:
        return platform in self._strategies

    def __len__(self) -> int:
        return len(self._strategies)


def build_default_registry(
    selector_timeout_ms: int = DEFAULT_SELECTOR_TIMEOUT_MS,
) -> StrategyRegistry:
    """Registry with the built-in Google Meet, Zoom, Teams and generic strategies."""
    generic = GenericJoinStrategy(selector_timeout_ms=selector_timeout_ms)
    registry = StrategyRegistry(fallback=generic)
    for strategy_cls in (GoogleMeetStrategy, ZoomStrategy, TeamsStrategy):
        registry.register(strategy_cls(selector_timeout_ms=selector_timeout_ms))
    registry.register(generic)
    return registry
