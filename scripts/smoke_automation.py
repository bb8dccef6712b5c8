#!/usr/bin/env python3
"""Smoke test for a running automation service.

Checks /health, joins the given meeting URL, waits, then leaves it.

Usage:
    python scripts/smoke_automation.py \
        --automation-url http://localhost:3333 \
        --meeting-url https://meet.google.com/new \
        --platform google-meet

Exit code 0 if all checks pass, 1 if any fail.
"""

import argparse
import sys
import time
import uuid
from typing import Tuple

import httpx

HEALTH_TIMEOUT = 10.0
JOIN_TIMEOUT = 90.0


def check_health(base_url: str) -> Tuple[bool, str]:
    """GET /health must answer 200 with status ready."""
    try:
        response = httpx.get(f"{base_url}/health", timeout=HEALTH_TIMEOUT)
        if response.status_code != 200:
            return False, f"HTTP {response.status_code}"
        data = response.json()
    except ValueError:
        return False, "Response is not valid JSON"
    except httpx.HTTPError as exc:
        return False, f"HTTP error: {exc}"

    status = data.get("status", "unknown")
    if status == "ready":
        return True, f"ready, {data.get('activeSessions', 0)} active sessions"
    return False, f"Status: {status}"


def post(base_url: str, path: str, payload: dict) -> Tuple[bool, str]:
    """POST ``payload`` and report the service's success flag."""
    try:
        response = httpx.post(f"{base_url}{path}", json=payload, timeout=JOIN_TIMEOUT)
        data = response.json()
    except ValueError:
        return False, "Response is not valid JSON"
    except httpx.HTTPError as exc:
        return False, f"HTTP error: {exc}"

    if data.get("success"):
        return True, data.get("message") or f"HTTP {response.status_code}"
    return False, data.get("error") or f"HTTP {response.status_code}"


def print_results(results: list) -> None:
    """Print a formatted table of check results."""
    separator = "-" * 70
    print()
    print(separator)
    print(f"{'CHECK':<25} {'STATUS':<10} {'DETAIL'}")
    print(separator)
    for name, passed, detail in results:
        status = "PASS" if passed else "FAIL"
        print(f"{name:<25} {status:<10} {detail}")
    print(separator)
    print()


def main() -> None:
    parser = argparse.ArgumentParser(description="Smoke test the meeting automation service")
    parser.add_argument(
        "--automation-url",
        default="http://localhost:3333",
        help="Root URL of the automation service",
    )
    parser.add_argument("--meeting-url", required=True, help="Meeting link to join")
    parser.add_argument(
        "--platform",
        default="google-meet",
        choices=["google-meet", "zoom", "teams", "other"],
    )
    parser.add_argument("--display-name", default="Test Automation")
    parser.add_argument(
        "--hold-seconds",
        type=float,
        default=5.0,
        help="How long to stay in the meeting before leaving",
    )
    args = parser.parse_args()

    base_url = args.automation_url.rstrip("/")
    meeting_id = f"smoke-{uuid.uuid4()}"
    results = []

    passed, detail = check_health(base_url)
    results.append(("Health", passed, detail))

    if passed:
        joined, detail = post(
            base_url,
            "/api/join-meeting",
            {
                "meetingId": meeting_id,
                "url": args.meeting_url,
                "platform": args.platform,
                "title": "Smoke test",
                "credentials": {"displayName": args.display_name},
            },
        )
        results.append(("Join", joined, detail))

        if joined:
            time.sleep(args.hold_seconds)
            passed, detail = post(base_url, "/api/leave-meeting", {"meetingId": meeting_id})
            results.append(("Leave", passed, detail))

    print_results(results)

    all_passed = all(passed for _, passed, _ in results)
    print("All checks passed." if all_passed else "Some checks FAILED.")
    sys.exit(0 if all_passed else 1)


if __name__ == "__main__":
    main()
