"""ScheduleExtractor -- free-text schedule to candidate meetings.

Uses instructor + LiteLLM structured extraction into ParsedMeeting records.
The orchestrator treats the result as an opaque producer of candidates and
validates each record on ingestion.

Exports:
    ScheduleExtractor: LLM-powered schedule text extraction.
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from src.autopilot.meetings.schemas import ExtractedSchedule, ParsedMeeting

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = (
    "You extract meetings from raw schedule or calendar text. "
    "Only return meetings that have a joinable link "
    "(Zoom, Google Meet, Teams, Webex, etc.). "
    "If a meeting has no explicit end time, assume it lasts 1 hour. "
    "Convert every time to an absolute ISO 8601 timestamp with offset, "
    "resolving relative expressions against the reference time."
)


class ScheduleExtractor:
    """Extract meetings with join links from free text.

    Fail-open: any LLM or validation error yields an empty list.

    Args:
        model: LiteLLM model name (provider API key is read from the environment).
    """

    def __init__(self, model: str = "gemini/gemini-2.5-flash") -> None:
        self._model = model

    async def extract(self, text: str, now: datetime | None = None) -> list[ParsedMeeting]:
        """Return every meeting found in ``text``, resolved against ``now``."""
        import instructor
        import litellm

        reference = now or datetime.now(timezone.utc)
        if reference.tzinfo is None:
            reference = reference.astimezone()

        try:
            client = instructor.from_litellm(litellm.acompletion)

            extracted = await client.chat.completions.create(
                model=self._model,
                response_model=ExtractedSchedule,
                messages=self._build_messages(text, reference),
                max_tokens=2048,
                temperature=0.0,
                max_retries=2,
            )
        except Exception as exc:
            logger.warning(
                "schedule_extractor.failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return []

        logger.info("schedule_extractor.extracted", count=len(extracted.meetings))
        return extracted.meetings

    @staticmethod
    def _build_messages(text: str, reference: datetime) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": (
                    f"Current reference time (now): {reference.isoformat()}\n\n"
                    f"Text to parse:\n{text}"
                ),
            },
        ]
