"""MeetingOrchestrator -- owns the meeting collection and drives its lifecycle.

Every ``tick_interval`` seconds the tick evaluates all meetings against the
clock:

    pending --[start <= now < end]--> active     (join + start recording)
    pending --[now >= end]----------> completed  (nothing was started)
    active  --[now >= end]----------> completed  (leave + stop recording)

The status change itself is applied synchronously inside ``tick()``. Remote
side effects (automation join/leave, manual link opening, recording
start/stop) are dispatched as event-loop tasks and never awaited by the
tick, so a slow automation service cannot delay evaluation of other
meetings. Every dispatched action is wrapped: failures are logged and
counted, never propagated.

The join path (automated vs manual) is decided at tick time from the
AutomationClient's cached health, never from an inline probe.
"""

from __future__ import annotations

import asyncio
import webbrowser
from collections.abc import Awaitable, Callable, Coroutine
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from src.autopilot.automation.schemas import AutomationResponse
from src.autopilot.core.monitoring import (
    meeting_join_actions_total,
    meeting_transitions_total,
    side_effect_failures_total,
)
from src.autopilot.meetings.platform import detect_platform
from src.autopilot.meetings.schemas import (
    JoinMethod,
    Meeting,
    MeetingCreate,
    MeetingStatus,
    ParsedMeeting,
    Transition,
)

if TYPE_CHECKING:
    from src.autopilot.automation.client import AutomationClient
    from src.autopilot.recording.controller import RecordingController

logger = structlog.get_logger(__name__)

LinkOpener = Callable[[str], Awaitable[Any]]


async def open_in_browser(url: str) -> None:
    """Open ``url`` in a new tab of the host's default browser."""
    await asyncio.to_thread(webbrowser.open_new_tab, url)


class MeetingOrchestrator:
    """Scheduler for the meeting lifecycle state machine.

    Args:
        automation_client: Caller side of the automation boundary; its cached
            health decides the join path.
        recording_controller: Recording device binding; recording actions are
            only dispatched while it reports connected.
        link_opener: Coroutine function used for the manual join path.
            Defaults to opening the link in the system browser.
        automation_enabled: Initial value of the automation toggle.
        tick_interval: Seconds between ticks in run_tick_loop().
        default_auto_record: Auto-record flag for meetings created without one.
    """

    def __init__(
        self,
        automation_client: AutomationClient,
        recording_controller: RecordingController,
        link_opener: LinkOpener | None = None,
        automation_enabled: bool = True,
        tick_interval: float = 5.0,
        default_auto_record: bool = True,
    ) -> None:
        self._automation = automation_client
        self._recording = recording_controller
        self._link_opener = link_opener or open_in_browser
        self._automation_enabled = automation_enabled
        self._tick_interval = tick_interval
        self._default_auto_record = default_auto_record
        self._meetings: list[Meeting] = []
        self._tasks: set[asyncio.Task] = set()
        self._joins: dict[str, asyncio.Task] = {}
        self._running = False

    # ── Collection ───────────────────────────────────────────────────────

    def add_meeting(self, data: MeetingCreate) -> Meeting:
        """Create a pending meeting and insert it in start-time order."""
        auto_record = (
            data.auto_record if data.auto_record is not None else self._default_auto_record
        )
        meeting = Meeting(
            title=data.title,
            start_time=data.start_time,
            end_time=data.end_time,
            link=data.link,
            platform=detect_platform(data.link),
            auto_record=auto_record,
        )
        self._meetings.append(meeting)
        self._sort()
        logger.info(
            "orchestrator.meeting_added",
            meeting_id=meeting.id,
            title=meeting.title,
            platform=meeting.platform.value,
            start_time=meeting.start_time.isoformat(),
        )
        return meeting

    def ingest(self, parsed: list[ParsedMeeting]) -> list[Meeting]:
        """Add every extracted record that satisfies the meeting invariants.

        Records whose end is not after their start are skipped and logged.
        """
        created: list[Meeting] = []
        for record in parsed:
            try:
                data = MeetingCreate(
                    title=record.title,
                    link=record.link,
                    start_time=record.start_time,
                    end_time=record.end_time,
                )
            except ValidationError as exc:
                logger.warning(
                    "orchestrator.ingest_skipped",
                    title=record.title,
                    error=str(exc),
                )
                continue
            created.append(self.add_meeting(data))
        return created

    def remove_meeting(self, meeting_id: str) -> Meeting | None:
        """Remove a meeting at any status.

        Removing an active meeting dispatches the same leave and
        stop-recording actions as completion.
        """
        meeting = self.get_meeting(meeting_id)
        if meeting is None:
            return None

        self._meetings = [m for m in self._meetings if m.id != meeting_id]
        if meeting.status == MeetingStatus.ACTIVE:
            self._dispatch_completion(meeting)
        logger.info(
            "orchestrator.meeting_removed",
            meeting_id=meeting_id,
            status=meeting.status.value,
        )
        return meeting

    def toggle_auto_record(self, meeting_id: str) -> Meeting | None:
        meeting = self.get_meeting(meeting_id)
        if meeting is None:
            return None
        updated = meeting.model_copy(update={"auto_record": not meeting.auto_record})
        self._replace(updated)
        logger.info(
            "orchestrator.auto_record_toggled",
            meeting_id=meeting_id,
            auto_record=updated.auto_record,
        )
        return updated

    def get_meeting(self, meeting_id: str) -> Meeting | None:
        for meeting in self._meetings:
            if meeting.id == meeting_id:
                return meeting
        return None

    def list_meetings(self) -> list[Meeting]:
        return list(self._meetings)

    @property
    def automation_enabled(self) -> bool:
        return self._automation_enabled

    def set_automation_enabled(self, enabled: bool) -> None:
        if enabled != self._automation_enabled:
            logger.info("orchestrator.automation_toggled", enabled=enabled)
        self._automation_enabled = enabled

    @property
    def pending_actions(self) -> int:
        """Number of dispatched side effects that have not finished yet."""
        return len(self._tasks)

    # ── Tick ─────────────────────────────────────────────────────────────

    def tick(self, now: datetime | None = None) -> list[Transition]:
        """Apply every due status transition for ``now`` and dispatch side effects.

        Must be called from a running event loop. Calling it twice with the
        same ``now`` produces no further transitions.

        Returns:
            The transitions applied, in collection order.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.astimezone()

        transitions: list[Transition] = []
        use_automation = self._automation_enabled and self._automation.is_ready

        for meeting in list(self._meetings):
            if meeting.status == MeetingStatus.PENDING:
                if now >= meeting.end_time:
                    # Window elapsed before it was ever observed: nothing to undo.
                    self._transition(meeting, MeetingStatus.COMPLETED, transitions)
                elif meeting.start_time <= now:
                    updated = self._transition(meeting, MeetingStatus.ACTIVE, transitions)
                    self._dispatch_activation(updated, use_automation)
            elif meeting.status == MeetingStatus.ACTIVE and now >= meeting.end_time:
                updated = self._transition(meeting, MeetingStatus.COMPLETED, transitions)
                self._dispatch_completion(updated)

        return transitions

    async def run_tick_loop(self) -> None:
        """Tick every ``tick_interval`` seconds until stop()."""
        self._running = True
        logger.info("orchestrator.tick_loop_started", interval=self._tick_interval)

        while self._running:
            try:
                self.tick()
            except Exception:
                logger.exception("orchestrator.tick_error")
            await asyncio.sleep(self._tick_interval)

    def stop(self) -> None:
        """Signal the tick loop to stop."""
        self._running = False
        logger.info("orchestrator.tick_loop_stopped")

    async def drain(self, timeout: float | None = None) -> int:
        """Wait for dispatched side effects; cancel whatever is left at ``timeout``.

        Returns:
            Number of actions cancelled.
        """
        if not self._tasks:
            return 0
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("orchestrator.drain_cancelled", count=len(pending))
        return len(pending)

    # ── Internals ────────────────────────────────────────────────────────

    def _transition(
        self, meeting: Meeting, status: MeetingStatus, transitions: list[Transition]
    ) -> Meeting:
        updated = meeting.model_copy(update={"status": status})
        self._replace(updated)
        label = f"{meeting.status.value}_to_{status.value}"
        meeting_transitions_total.labels(transition=label).inc()
        logger.info(
            "orchestrator.meeting_transitioned",
            meeting_id=meeting.id,
            title=meeting.title,
            transition=label,
        )
        transitions.append(
            Transition(meeting_id=meeting.id, from_status=meeting.status, to_status=status)
        )
        return updated

    def _replace(self, updated: Meeting) -> None:
        self._meetings = [updated if m.id == updated.id else m for m in self._meetings]

    def _sort(self) -> None:
        self._meetings.sort(key=lambda m: m.start_time)

    def _dispatch_activation(self, meeting: Meeting, use_automation: bool) -> None:
        join = self._dispatch("join", meeting.id, self._join(meeting, use_automation))
        self._joins[meeting.id] = join
        join.add_done_callback(lambda task: self._forget_join(meeting.id, task))
        if meeting.auto_record and self._recording.is_connected:
            self._dispatch("start_recording", meeting.id, self._recording.start_recording())

    def _dispatch_completion(self, meeting: Meeting) -> None:
        if self._automation_enabled:
            self._dispatch("leave", meeting.id, self._leave(meeting))
        if meeting.auto_record and self._recording.is_connected:
            self._dispatch("stop_recording", meeting.id, self._recording.stop_recording())

    def _dispatch(
        self, action: str, meeting_id: str, coro: Coroutine[Any, Any, Any]
    ) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._guarded(action, meeting_id, coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _forget_join(self, meeting_id: str, task: asyncio.Task) -> None:
        if self._joins.get(meeting_id) is task:
            del self._joins[meeting_id]

    async def _guarded(
        self, action: str, meeting_id: str, coro: Coroutine[Any, Any, Any]
    ) -> None:
        try:
            await coro
        except Exception:
            side_effect_failures_total.labels(action=action).inc()
            logger.exception("orchestrator.action_failed", action=action, meeting_id=meeting_id)

    async def _join(self, meeting: Meeting, use_automation: bool) -> None:
        method = JoinMethod.MANUAL
        if use_automation:
            try:
                response = await self._automation.join_meeting(meeting)
            except Exception as exc:
                response = AutomationResponse(success=False, error=str(exc))
            if response.success:
                meeting_join_actions_total.labels(method=JoinMethod.AUTOMATED.value).inc()
                logger.info("orchestrator.joined_automatically", meeting_id=meeting.id)
                return
            logger.warning(
                "orchestrator.automated_join_failed",
                meeting_id=meeting.id,
                error=response.error,
            )
            method = JoinMethod.MANUAL_FALLBACK

        await self._link_opener(meeting.link)
        meeting_join_actions_total.labels(method=method.value).inc()
        logger.info("orchestrator.link_opened", meeting_id=meeting.id, method=method.value)

    async def _leave(self, meeting: Meeting) -> None:
        """Leave after this meeting's in-flight join settles, never ahead of it."""
        join = self._joins.get(meeting.id)
        if join is not None and not join.done():
            await asyncio.wait({join})
        response = await self._automation.leave_meeting(meeting.id)
        if response.success:
            logger.info("orchestrator.left_meeting", meeting_id=meeting.id)
        else:
            logger.warning(
                "orchestrator.leave_failed", meeting_id=meeting.id, error=response.error
            )
