# tests/test_core_loop.py

from __future__ import annotations

import asyncio

import pytest

from subconscious.core.core_loop import CoreLoop, LoopStats
from subconscious.core.orchestrator import ROUTINE_TASK_DESCRIPTION, Subconscious
from subconscious.tasks.task_manager import LIVENESS_KEY
from subconscious.tasks.task_models import Task

from .fakes import FakeCapability, RecordingObserver


def _loop(manager, capability, observer, **kwargs) -> CoreLoop:
    params = {
        "routine_interval_seconds": 0.02,
        "liveness_interval_seconds": 0.03,
        "drive_slice_seconds": 0.01,
    }
    params.update(kwargs)
    return CoreLoop(Subconscious(manager, capability), observer=observer, **params)


@pytest.mark.asyncio
async def test_liveness_reports_store_down_and_capability_up(manager, store, capability, observer) -> None:
    loop = _loop(manager, capability, observer)
    store.fail = True

    report = await loop.liveness_tick()

    assert report.store.ok is False
    assert report.capability.ok is True
    assert capability.liveness_calls == 1
    assert "Redis connection: ERROR - " in report.text
    assert "LLM connection: OK" in report.text
    assert observer.reports == [report.text]
    assert [kind for kind, _ in observer.errors] == ["store_unavailable"]


@pytest.mark.asyncio
async def test_liveness_reports_capability_down_and_store_up(manager, store, observer) -> None:
    capability = FakeCapability(live=False)
    loop = _loop(manager, capability, observer)

    report = await loop.liveness_tick()

    assert report.store.ok is True
    assert report.capability.ok is False
    assert "Redis connection: OK" in report.text
    assert "LLM connection: ERROR - capability endpoint unreachable" in report.text
    assert store.keys[LIVENESS_KEY] == ("OK", 10)
    assert [kind for kind, _ in observer.errors] == ["capability_failure"]


@pytest.mark.asyncio
async def test_liveness_report_includes_uptime_rate_and_memory(manager, capability, observer) -> None:
    loop = _loop(manager, capability, observer)
    loop.orchestrator.record_memory("learned from task: A")

    report = await loop.liveness_tick()

    assert report.text.startswith("Time running: ")
    assert "Iterations per second: " in report.text
    assert "learned from task: A" in report.text


@pytest.mark.asyncio
async def test_maintenance_tick_failure_is_reported_not_raised(manager, store, capability, observer) -> None:
    loop = _loop(manager, capability, observer)
    store.fail = True

    assert await loop.maintenance_tick() is False
    assert observer.errors and observer.errors[0][0] == "store_unavailable"

    store.fail = False
    assert await loop.maintenance_tick() is True
    assert [t.description for t in await manager.list()] == [ROUTINE_TASK_DESCRIPTION]


@pytest.mark.asyncio
async def test_drive_once_counts_iterations_and_reports_store_errors(manager, store, capability, observer) -> None:
    loop = _loop(manager, capability, observer)
    store.fail_on = {"lpop"}

    await loop.drive_once()
    await loop.drive_once()

    assert loop.stats.iterations == 2
    assert [kind for kind, _ in observer.errors] == ["store_unavailable", "store_unavailable"]


def test_loop_stats_rate() -> None:
    stats = LoopStats(started_at=100.0, iterations=50)

    assert stats.elapsed(now=110.0) == 10.0
    assert stats.rate(now=110.0) == 5.0
    assert stats.rate(now=100.0) == 0.0


def test_unknown_drive_mode_is_rejected(manager, capability) -> None:
    with pytest.raises(ValueError):
        CoreLoop(Subconscious(manager, capability), drive_mode="turbo")


@pytest.mark.parametrize("drive_mode", ["rate_bounded", "continuous"])
@pytest.mark.asyncio
async def test_run_processes_routine_tasks_and_reports_health(manager, capability, drive_mode: str) -> None:
    observer = RecordingObserver()
    loop = _loop(manager, capability, observer, drive_mode=drive_mode)

    runner = asyncio.create_task(loop.run())
    await asyncio.sleep(0.2)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert loop.stats.iterations > 0
    assert (ROUTINE_TASK_DESCRIPTION, "Perform routine check") in capability.calls
    assert observer.reports
    assert observer.errors == []
    assert "learned from task: Routine check" in loop.orchestrator.memory_snapshot().short_term


class _CountingOrchestrator:
    """Stands in for Subconscious where only call counts and overlap matter."""

    def __init__(self, *, pass_seconds: float = 0.05) -> None:
        self.pass_seconds = pass_seconds
        self.active = 0
        self.max_active = 0
        self.passes = 0
        self.injections = 0

    async def process_once(self, lock=None) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.pass_seconds)
        finally:
            self.active -= 1
            self.passes += 1

    async def inject_routine_task(self):
        self.injections += 1
        raise RuntimeError("unexpected bug")


@pytest.mark.asyncio
async def test_rate_bounded_drive_never_exceeds_max_in_flight(observer) -> None:
    orchestrator = _CountingOrchestrator(pass_seconds=0.05)
    loop = CoreLoop(orchestrator, observer=observer, max_in_flight=3, drive_slice_seconds=0.001)

    drive = asyncio.create_task(loop.run_drive_loop())
    await asyncio.sleep(0.25)
    drive.cancel()
    with pytest.raises(asyncio.CancelledError):
        await drive

    assert orchestrator.max_active == 3
    assert orchestrator.passes >= 6
    assert orchestrator.active == 0


@pytest.mark.asyncio
async def test_maintenance_ticker_survives_unexpected_errors(observer) -> None:
    orchestrator = _CountingOrchestrator()
    loop = CoreLoop(orchestrator, observer=observer, routine_interval_seconds=0.01)

    ticker = asyncio.create_task(loop.run_maintenance_ticker())
    await asyncio.sleep(0.1)

    assert not ticker.done()
    assert orchestrator.injections >= 2
    ticker.cancel()
    with pytest.raises(asyncio.CancelledError):
        await ticker


@pytest.mark.asyncio
async def test_slow_capability_call_does_not_hold_the_lock(manager, observer) -> None:
    started = asyncio.Event()
    release = asyncio.Event()

    class BlockedCapability(FakeCapability):
        async def process(self, description: str, action: str) -> str:
            self.calls.append((description, action))
            started.set()
            await release.wait()
            return "ok"

    loop = _loop(manager, BlockedCapability(), observer)
    await manager.enqueue(Task(description="slow", action="wait"))

    drive = asyncio.create_task(loop.drive_once())
    await asyncio.wait_for(started.wait(), timeout=1.0)

    report = await asyncio.wait_for(loop.liveness_tick(), timeout=1.0)
    injected = await asyncio.wait_for(loop.maintenance_tick(), timeout=1.0)

    assert report.store.ok and report.capability.ok
    assert injected is True
    assert not drive.done()

    release.set()
    await asyncio.wait_for(drive, timeout=1.0)
    assert "learned from task: slow" in loop.orchestrator.memory_snapshot().short_term
