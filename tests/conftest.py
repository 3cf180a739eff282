"""
Shared pytest fixtures for runguard tests.

Provides:
- Logging/settings/context reset between tests
- Deterministic timestamps and snapshot builders
- In-memory directory, queue and launcher wired together
"""

from __future__ import annotations

from pathlib import Path

import pytest
import structlog

from runguard.adapters.memory import InMemoryAdmissionQueue, InMemoryDirectory, InMemoryLauncher, ticking_clock
from runguard.core.settings import clear_settings_cache
from tests._support.builders import BASE_TIME, JOB_ID


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate(monkeypatch):
    """Keep settings, log config and bound context from leaking between tests."""
    for var in ("QUEUE_URL", "STATE_MACHINE_ARN", "RUNGUARD_JOB_ID", "RUNGUARD_QUEUE_URL"):
        monkeypatch.delenv(var, raising=False)
    clear_settings_cache()
    structlog.contextvars.clear_contextvars()
    yield
    clear_settings_cache()
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def job_id() -> str:
    return JOB_ID


@pytest.fixture
def directory() -> InMemoryDirectory:
    return InMemoryDirectory()


@pytest.fixture
def queue() -> InMemoryAdmissionQueue:
    return InMemoryAdmissionQueue()


@pytest.fixture
def launcher(directory) -> InMemoryLauncher:
    return InMemoryLauncher(directory, clock=ticking_clock(BASE_TIME))


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays."""
    delays: list[float] = []

    def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep
