"""SessionManager -- one isolated browser session per joined meeting.

Owns the mapping meeting_id -> Session and the lifecycle around it:

- join opens a fresh BrowserContext + page, navigates with a bounded
  timeout, runs the platform's JoinStrategy once, and registers a session
  only if the strategy reports success. Any failure closes the context, so a
  failed join leaves no session behind.
  Navigation plus strategy share one overall deadline (``join_timeout``).
- leave closes and forgets the session, raising SessionNotFoundError when
  there is none.
- shutdown closes every session (each isolated, each time-bounded) and then
  releases the shared browser provider.

Operations on the same meeting id are serialized by a per-id asyncio.Lock,
dropped once no operation holds or awaits it; distinct ids proceed
concurrently on their own contexts.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.autopilot.automation.errors import (
    JoinTimeoutError,
    NotReadyError,
    SessionNotFoundError,
)
from src.autopilot.automation.schemas import HealthStatus, JoinCredentials, JoinResult
from src.autopilot.automation.strategies import (
    JoinStrategy,
    StrategyRegistry,
    build_default_registry,
)
from src.autopilot.core.monitoring import (
    automation_active_sessions,
    automation_join_attempts_total,
)

if TYPE_CHECKING:
    from src.autopilot.automation.browser import BrowserProvider

logger = structlog.get_logger(__name__)


@dataclass
class Session:
    """A live browser session bound to one meeting."""

    meeting_id: str
    context: Any
    page: Any
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SessionManager:
    """Manages browser sessions for automated meeting joins.

    Args:
        provider: The shared BrowserProvider. Started by initialize(),
            released by shutdown().
        registry: Strategy lookup by platform tag. Defaults to the built-in
            strategies with ``selector_timeout_ms``.
        navigation_timeout_ms: Bound for the initial page navigation.
        selector_timeout_ms: Bound for each element wait inside strategies.
        close_timeout: Seconds allowed to close one session's context.
        join_timeout: Overall seconds allowed for navigation plus the strategy.
            Must stay below the caller's request timeout, otherwise the caller
            gives up on a join that still completes here.
    """

    def __init__(
        self,
        provider: BrowserProvider,
        registry: StrategyRegistry | None = None,
        navigation_timeout_ms: int = 30000,
        selector_timeout_ms: int = 15000,
        close_timeout: float = 5.0,
        join_timeout: float = 45.0,
    ) -> None:
        self._provider = provider
        if registry is None:
            registry = build_default_registry(selector_timeout_ms)
        self._registry = registry
        self._navigation_timeout_ms = navigation_timeout_ms
        self._close_timeout = close_timeout
        self._join_timeout = join_timeout
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()
        self._ready = False
        self._init_failed = False

    # ── Lifecycle ────────────────────────────────────────────────────────

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def status(self) -> HealthStatus:
        """ready once initialized, error after a failed initialize, else initializing."""
        if self._ready:
            return HealthStatus.READY
        return HealthStatus.ERROR if self._init_failed else HealthStatus.INITIALIZING

    async def initialize(self) -> bool:
        """Start the shared browser. Returns False (and stays not-ready) on failure."""
        try:
            await self._provider.start()
        except Exception:
            logger.error("session_manager.initialize_failed", exc_info=True)
            self._ready = False
            self._init_failed = True
            return False

        self._ready = True
        self._init_failed = False
        logger.info("session_manager.ready")
        return True

    async def shutdown(self) -> None:
        """Close all sessions and release the browser provider.

        Per-session failures are logged and never stop the remaining cleanup.
        """
        self._ready = False
        sessions = list(self._sessions.values())
        self._sessions.clear()
        automation_active_sessions.set(0)

        if sessions:
            await asyncio.gather(*(self._close_session(s) for s in sessions))

        await self._provider.close()
        logger.info("session_manager.shutdown_complete", sessions_closed=len(sessions))

    # ── Join / Leave ─────────────────────────────────────────────────────

    async def join(
        self,
        meeting_id: str,
        url: str,
        platform: str,
        credentials: JoinCredentials | None = None,
    ) -> JoinResult:
        """Open a page for ``url`` and run the platform's join strategy once.

        Raises:
            NotReadyError: The browser provider is not initialized.
        """
        if not self._ready:
            raise NotReadyError("Meeting agent not ready")

        async with self._meeting_lock(meeting_id):
            if meeting_id in self._sessions:
                logger.error("session_manager.duplicate_join", meeting_id=meeting_id)
                return JoinResult.failed(f"Session already exists for meeting {meeting_id}")

            strategy = self._registry.get(platform)
            logger.info(
                "session_manager.join_started",
                meeting_id=meeting_id,
                platform=platform,
                strategy=strategy.name,
            )

            context = None
            registered = False
            try:
                try:
                    context = await self._provider.new_context(url)
                    page = await context.new_page()
                    result = await asyncio.wait_for(
                        self._attempt(page, url, strategy, credentials),
                        timeout=self._join_timeout,
                    )
                except asyncio.TimeoutError:
                    result = JoinResult.failed(
                        f"Timeout: join exceeded {self._join_timeout:g} s"
                    )
                except JoinTimeoutError as exc:
                    result = JoinResult.failed(str(exc))
                except (PlaywrightError, RuntimeError) as exc:
                    result = JoinResult.failed(str(exc))

                if result.success and not self._ready:
                    # shutdown() ran while this join was in flight
                    result = JoinResult.failed("Meeting agent shutting down")

                if result.success:
                    self._sessions[meeting_id] = Session(
                        meeting_id=meeting_id, context=context, page=page
                    )
                    registered = True
                    automation_active_sessions.set(len(self._sessions))
            finally:
                if not registered and context is not None:
                    await self._close_context(meeting_id, context)

        outcome = "success" if result.success else "failure"
        automation_join_attempts_total.labels(platform=str(platform), outcome=outcome).inc()
        if result.success:
            logger.info("session_manager.joined", meeting_id=meeting_id, platform=platform)
        else:
            logger.warning(
                "session_manager.join_failed",
                meeting_id=meeting_id,
                platform=platform,
                reason=result.reason,
            )
        return result

    async def leave(self, meeting_id: str) -> None:
        """Close the session for ``meeting_id``.

        Raises:
            SessionNotFoundError: No session exists for this meeting.
        """
        async with self._meeting_lock(meeting_id):
            session = self._sessions.pop(meeting_id, None)
            if session is None:
                raise SessionNotFoundError(meeting_id)
            automation_active_sessions.set(len(self._sessions))
            await self._close_session(session)

        logger.info("session_manager.left", meeting_id=meeting_id)

    def session_count(self) -> int:
        return len(self._sessions)

    def has_session(self, meeting_id: str) -> bool:
        return meeting_id in self._sessions

    def lock_count(self) -> int:
        """Number of meeting ids with a held or awaited lock."""
        return len(self._locks)

    # ── Navigation probe ─────────────────────────────────────────────────

    async def probe(self, url: str) -> str:
        """Navigate a throwaway page to ``url`` and return its title.

        The page is always closed; no session is registered.

        Raises:
            NotReadyError: The browser provider is not initialized.
        """
        if not self._ready:
            raise NotReadyError("Meeting agent not ready")

        context = await self._provider.new_context(url)
        try:
            page = await context.new_page()
            await page.goto(
                url, wait_until="domcontentloaded", timeout=self._navigation_timeout_ms
            )
            return await page.title()
        finally:
            await self._close_context("probe", context)

    # ── Internals ────────────────────────────────────────────────────────

    @asynccontextmanager
    async def _meeting_lock(self, meeting_id: str) -> AsyncIterator[None]:
        """Hold the per-meeting lock; it is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(meeting_id, asyncio.Lock())
        self._lock_users[meeting_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[meeting_id] -= 1
            if self._lock_users[meeting_id] <= 0:
                del self._lock_users[meeting_id]
                self._locks.pop(meeting_id, None)

    async def _attempt(
        self,
        page: Any,
        url: str,
        strategy: JoinStrategy,
        credentials: JoinCredentials | None,
    ) -> JoinResult:
        await self._navigate(page, url)
        return await strategy.attempt_join(page, credentials)

    async def _navigate(self, page: Any, url: str) -> None:
        try:
            await page.goto(url, wait_until="networkidle", timeout=self._navigation_timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise JoinTimeoutError(
                f"Timeout: navigation exceeded {self._navigation_timeout_ms} ms"
            ) from exc

    async def _close_session(self, session: Session) -> None:
        await self._close_context(session.meeting_id, session.context)

    async def _close_context(self, meeting_id: str, context: Any) -> None:
        """Close a context within ``close_timeout``. Never raises."""
        try:
            await asyncio.wait_for(context.close(), timeout=self._close_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "session_manager.close_timeout",
                meeting_id=meeting_id,
                timeout=self._close_timeout,
            )
        except Exception:
            logger.warning("session_manager.close_failed", meeting_id=meeting_id, exc_info=True)
