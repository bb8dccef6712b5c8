"""Shared browser provider for meeting automation.

One Chromium instance is launched per automation service and reused by every
session. Each join gets its own BrowserContext, so cookies, permissions and
pages never leak between meetings. Media capture is stubbed both at the
Chromium flag level (fake devices, auto-accepted prompts) and inside each
page, so joining never touches a real camera or microphone.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import structlog

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, Playwright

logger = structlog.get_logger(__name__)

CHROMIUM_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--disable-gpu",
    "--use-fake-ui-for-media-stream",
    "--use-fake-device-for-media-stream",
    "--autoplay-policy=no-user-gesture-required",
    "--disable-background-timer-throttling",
    "--disable-renderer-backgrounding",
    "--disable-features=TranslateUI",
    "--disable-blink-features=AutomationControlled",
)

MEDIA_PERMISSIONS: tuple[str, ...] = ("camera", "microphone")

# Replaces getUserMedia with silent, empty tracks before any page script runs.
MEDIA_STUB_SCRIPT = """
(() => {
  const fakeStream = () => ({
    getVideoTracks: () => [{ stop: () => {} }],
    getAudioTracks: () => [{ stop: () => {} }],
    getTracks: () => [],
  });
  if (navigator.mediaDevices) {
    navigator.mediaDevices.getUserMedia = () => Promise.resolve(fakeStream());
  }
  Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
})();
"""


def origin_of(url: str) -> str | None:
    """Return scheme://host[:port] for a URL, or None if it has no origin."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


class BrowserProvider:
    """Owns the Playwright driver and the single shared Chromium instance.

    Lifetime is scoped explicitly: ``start()`` acquires, ``close()`` releases.
    The session manager receives the provider by reference and never launches
    or closes the browser itself outside those two calls.

    Args:
        headless: Run Chromium without a visible window.
        user_agent: User agent string for every context.
        close_timeout: Seconds allowed for browser close / driver stop each.
    """

    def __init__(
        self,
        headless: bool = False,
        user_agent: str | None = None,
        close_timeout: float = 10.0,
    ) -> None:
        self._headless = headless
        self._user_agent = user_agent
        self._close_timeout = close_timeout
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    @property
    def is_running(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    async def start(self) -> None:
        """Launch Chromium. Raises on failure; a failed start leaves nothing running."""
        if self._browser is not None:
            return

        from playwright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self._headless,
                args=list(CHROMIUM_ARGS),
                ignore_default_args=["--enable-automation"],
            )
        except Exception:
            await self._stop_driver()
            raise
        logger.info("browser.started", headless=self._headless)

    async def new_context(self, url: str) -> BrowserContext:
        """Create an isolated context with media permissions granted for ``url``'s origin."""
        if self._browser is None:
            raise RuntimeError("Browser provider is not started")

        context = await self._browser.new_context(user_agent=self._user_agent)
        try:
            origin = origin_of(url)
            if origin is not None:
                await context.grant_permissions(list(MEDIA_PERMISSIONS), origin=origin)
            else:
                await context.grant_permissions(list(MEDIA_PERMISSIONS))
            await context.add_init_script(MEDIA_STUB_SCRIPT)
        except Exception:
            await context.close()
            raise
        return context

    async def close(self) -> None:
        """Close the browser and stop the driver, bounded by ``close_timeout`` each."""
        if self._browser is not None:
            try:
                await asyncio.wait_for(self._browser.close(), timeout=self._close_timeout)
            except asyncio.TimeoutError:
                logger.warning("browser.close_timeout", timeout=self._close_timeout)
            except Exception:
                logger.warning("browser.close_failed", exc_info=True)
            self._browser = None
            logger.info("browser.closed")

        await self._stop_driver()

    async def _stop_driver(self) -> None:
        if self._playwright is None:
            return
        try:
            await asyncio.wait_for(self._playwright.stop(), timeout=self._close_timeout)
        except asyncio.TimeoutError:
            logger.warning("browser.driver_stop_timeout", timeout=self._close_timeout)
        except Exception:
            logger.warning("browser.driver_stop_failed", exc_info=True)
        self._playwright = None
