"""Shared fixtures for the meeting autopilot tests.

Provides:
- A FakeProvider and a StubStrategy that always joins
- A SessionManager wired to those fakes, uninitialized and ready variants
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from src.autopilot.automation.session_manager import SessionManager
from src.autopilot.automation.strategies import StrategyRegistry

from tests.fakes import FakeProvider, StubStrategy


# ── Fixtures ────────────────────────────────────────────────────────────────


@pytest.fixture
def provider():
    """FakeProvider that starts cleanly."""
    return FakeProvider()


@pytest.fixture
def stub_strategy():
    """StubStrategy that always joins successfully."""
    return StubStrategy()


@pytest.fixture
def session_manager(provider, stub_strategy):
    """SessionManager (not yet initialized) on fakes."""
    return SessionManager(
        provider=provider,
        registry=StrategyRegistry(fallback=stub_strategy),
        navigation_timeout_ms=1000,
        close_timeout=1.0,
    )


@pytest_asyncio.fixture
async def ready_manager(session_manager):
    """Initialized SessionManager on fakes."""
    assert await session_manager.initialize()
    yield session_manager
    await session_manager.shutdown()


