"""Classify a meeting join link into a platform tag.

Pure substring matching on the lower-cased URL; anything unrecognised
(including providers without a dedicated join strategy, such as Webex)
is tagged ``Platform.OTHER``.
"""

from __future__ import annotations

from src.autopilot.meetings.schemas import Platform

# First match wins
_PLATFORM_MARKERS: tuple[tuple[str, Platform], ...] = (
    ("zoom.us", Platform.ZOOM),
    ("meet.google.com", Platform.GOOGLE_MEET),
    ("teams.microsoft.com", Platform.TEAMS),
    ("teams.live.com", Platform.TEAMS),
)


def detect_platform(url: str | None) -> Platform:
    """Return the platform tag for a join URL. Never raises."""
    if not url:
        return Platform.OTHER
    lowered = url.lower()
    for marker, platform in _PLATFORM_MARKERS:
        if marker in lowered:
            return platform
    return Platform.OTHER
