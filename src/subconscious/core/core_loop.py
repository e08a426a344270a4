# src/subconscious/core/core_loop.py

from __future__ import annotations

"""
Core loop.

Three activities share one orchestrator behind one asyncio.Lock:
- maintenance ticker: enqueue the routine task every interval,
- liveness ticker:    probe the store and the capability independently and
                      report uptime / iteration rate / memory,
- drive loop:         run process_once() over and over.

The drive loop has two modes:
- continuous:   back to back, yielding to the event loop between passes,
- rate_bounded: at most `max_in_flight` passes in flight, one admitted every
                `drive_slice_seconds` (about 10 passes/s with the defaults).

Errors in any activity are reported to the observer and the activity carries
on with its next tick. To stop, cancel run().
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..errors import SubconsciousError
from .observer import LoggingObserver
from .orchestrator import Subconscious
from .ports import StatusObserver

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LoopStats:
    started_at: float = field(default_factory=time.monotonic)
    iterations: int = 0

    def elapsed(self, now: float | None = None) -> float:
        return (time.monotonic() if now is None else now) - self.started_at

    def rate(self, now: float | None = None) -> float:
        elapsed = self.elapsed(now)
        return self.iterations / elapsed if elapsed > 0 else 0.0


@dataclass(slots=True, frozen=True)
class DependencyHealth:
    name: str
    ok: bool
    detail: str | None = None

    def render(self) -> str:
        return "OK" if self.ok else f"ERROR - {self.detail}"


@dataclass(slots=True, frozen=True)
class HealthReport:
    store: DependencyHealth
    capability: DependencyHealth
    elapsed_seconds: float
    iterations_per_second: float
    text: str


class CoreLoop:
    def __init__(
        self,
        orchestrator: Subconscious,
        *,
        lock: asyncio.Lock | None = None,
        observer: StatusObserver | None = None,
        routine_interval_seconds: float = 10.0,
        liveness_interval_seconds: float = 10.0,
        drive_mode: str = "rate_bounded",
        max_in_flight: int = 10,
        drive_slice_seconds: float = 0.1,
    ) -> None:
        if drive_mode not in ("rate_bounded", "continuous"):
            raise ValueError(f"unknown drive mode: {drive_mode!r}")

        self.orchestrator = orchestrator
        self.lock = lock if lock is not None else asyncio.Lock()
        self.observer = observer if observer is not None else LoggingObserver()
        self.routine_interval_seconds = max(0.01, float(routine_interval_seconds))
        self.liveness_interval_seconds = max(0.01, float(liveness_interval_seconds))
        self.drive_mode = drive_mode
        self.max_in_flight = max(1, int(max_in_flight))
        self.drive_slice_seconds = max(0.0, float(drive_slice_seconds))
        self.stats = LoopStats()

    def _report_error(self, kind: str, detail: str) -> None:
        try:
            self.observer.on_error(kind, detail)
        except Exception:
            logger.exception("Observer on_error failed.")

    # ---- single steps ----

    async def maintenance_tick(self) -> bool:
        try:
            async with self.lock:
                task = await self.orchestrator.inject_routine_task()
        except SubconsciousError as e:
            logger.error("Routine task injection failed: %s", e)
            self._report_error(e.kind, f"routine task injection failed: {e}")
            return False
        logger.debug("Routine task injected id=%s", task.id)
        return True

    async def _probe(self, name: str, check: Callable[[], Awaitable[Any]]) -> DependencyHealth:
        # Each dependency is probed on its own: one failure never hides the other.
        try:
            await check()
        except Exception as e:
            kind = getattr(e, "kind", "error")
            self._report_error(kind, f"{name} liveness check failed: {e}")
            return DependencyHealth(name=name, ok=False, detail=str(e) or e.__class__.__name__)
        return DependencyHealth(name=name, ok=True)

    async def liveness_tick(self) -> HealthReport:
        async with self.lock:
            snapshot = self.orchestrator.memory_snapshot()

        store = await self._probe("store", self.orchestrator.task_manager.check_liveness)
        capability = await self._probe("capability", self.orchestrator.capability.check_liveness)

        now = time.monotonic()
        elapsed = self.stats.elapsed(now)
        rate = self.stats.rate(now)
        text = (
            f"Time running: {int(elapsed)} seconds, "
            f"Iterations per second: {rate:.2f}, "
            f"Redis connection: {store.render()}, "
            f"LLM connection: {capability.render()}\n"
            f"{snapshot.render()}"
        )
        try:
            self.observer.on_status_report(text)
        except Exception:
            logger.exception("Observer on_status_report failed.")

        return HealthReport(
            store=store,
            capability=capability,
            elapsed_seconds=elapsed,
            iterations_per_second=rate,
            text=text,
        )

    async def drive_once(self) -> None:
        self.stats.iterations += 1
        try:
            await self.orchestrator.process_once(lock=self.lock)
        except SubconsciousError as e:
            logger.error("Processing pass failed: %s", e)
            self._report_error(e.kind, f"processing pass failed: {e}")

    # ---- long-running activities ----

    async def run_maintenance_ticker(self) -> None:
        while True:
            await asyncio.sleep(self.routine_interval_seconds)
            try:
                await self.maintenance_tick()
            except Exception:
                logger.exception("Maintenance tick crashed.")

    async def run_liveness_ticker(self) -> None:
        while True:
            await asyncio.sleep(self.liveness_interval_seconds)
            try:
                await self.liveness_tick()
            except Exception:
                logger.exception("Liveness tick crashed.")

    async def _admitted_pass(self, gate: asyncio.Semaphore) -> None:
        try:
            await self.drive_once()
        except Exception:
            logger.exception("Processing pass crashed.")
        finally:
            gate.release()

    async def run_drive_loop(self) -> None:
        if self.drive_mode == "continuous":
            while True:
                try:
                    await self.drive_once()
                except Exception:
                    logger.exception("Processing pass crashed.")
                # Let the tickers get the lock between passes.
                await asyncio.sleep(0)

        gate = asyncio.Semaphore(self.max_in_flight)
        in_flight: set[asyncio.Task[None]] = set()
        try:
            while True:
                await gate.acquire()
                spawned = asyncio.create_task(self._admitted_pass(gate))
                in_flight.add(spawned)
                spawned.add_done_callback(in_flight.discard)
                await asyncio.sleep(self.drive_slice_seconds)
        finally:
            for spawned in list(in_flight):
                spawned.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.gather(*in_flight, return_exceptions=True)

    async def run(self) -> None:
        """Run the three activities until cancelled."""
        self.stats = LoopStats()
        logger.info(
            "Core loop started (drive=%s, max_in_flight=%d, routine every %.1fs, liveness every %.1fs).",
            self.drive_mode,
            self.max_in_flight,
            self.routine_interval_seconds,
            self.liveness_interval_seconds,
        )
        activities = [
            asyncio.create_task(self.run_drive_loop(), name="drive-loop"),
            asyncio.create_task(self.run_maintenance_ticker(), name="maintenance-ticker"),
            asyncio.create_task(self.run_liveness_ticker(), name="liveness-ticker"),
        ]
        try:
            await asyncio.gather(*activities)
        finally:
            for activity in activities:
                activity.cancel()
            await asyncio.gather(*activities, return_exceptions=True)
            logger.info("Core loop stopped after %d iteration(s).", self.stats.iterations)
