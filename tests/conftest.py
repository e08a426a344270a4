# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from subconscious.cli.bootstrap import create_initial_state
from subconscious.core.state import AppState
from subconscious.tasks.task_manager import TaskManager

from .fakes import FakeCapability, FakeQueueStore, RecordingObserver


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and the core loop.

    We intentionally use a SimpleNamespace rather than the real env-driven
    Settings, to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="subconscious-test",
        data_dir=tmp_path / "data",
        dequeue_mode="pop",
        lease_seconds=60.0,
        liveness_marker_ttl_seconds=10,
        capability_backend="offline",
        short_term_capacity=10,
        routine_interval_seconds=0.02,
        liveness_interval_seconds=0.03,
        drive_mode="rate_bounded",
        max_in_flight=10,
        drive_slice_seconds=0.01,
        seed_permanent_tasks=True,
        console_enabled=False,
    )


@pytest.fixture()
def store() -> FakeQueueStore:
    return FakeQueueStore()


@pytest.fixture()
def capability() -> FakeCapability:
    return FakeCapability()


@pytest.fixture()
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture()
def manager(store: FakeQueueStore) -> TaskManager:
    return TaskManager(store)


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    store: FakeQueueStore,
    capability: FakeCapability,
    observer: RecordingObserver,
) -> AppState:
    """
    AppState wired with deterministic fakes (no Redis, no HTTP).
    """
    return create_initial_state(settings=settings, store=store, capability=capability, observer=observer)
