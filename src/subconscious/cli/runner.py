# src/subconscious/cli/runner.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from ..core.state import AppState
from .bootstrap import build_core_loop, prepare_queue

logger = logging.getLogger(__name__)


async def run_core(state: AppState, stop_event: asyncio.Event) -> None:
    """
    Prepare the queue, run the core loop until stop_event is set, then close
    the store and capability clients.

    Shutdown model:
    - main thread sets stop_event via loop.call_soon_threadsafe(stop_event.set)
    - the core loop is cancelled; in-flight passes are abandoned, not drained.
    """
    core_loop = build_core_loop(state)
    await prepare_queue(state)

    core_task = asyncio.create_task(core_loop.run(), name="core-loop")
    stop_task = asyncio.create_task(stop_event.wait(), name="core-stop")
    try:
        done, _ = await asyncio.wait({core_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if core_task in done and core_task.exception() is not None:
            logger.error("Core loop crashed.", exc_info=core_task.exception())
    finally:
        for task in (core_task, stop_task):
            task.cancel()
        await asyncio.gather(core_task, stop_task, return_exceptions=True)

        with contextlib.suppress(Exception):
            await state.capability.aclose()
        with contextlib.suppress(Exception):
            await state.store.close()
        logger.info("Core stopped.")


@dataclass
class CoreLoopRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Core loop already closed.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)

    def is_alive(self) -> bool:
        return self.thread.is_alive()


def start_core_loop_in_background(state: AppState) -> CoreLoopRunner | None:
    """
    Start the core loop in a background thread (so the console REPL can run in parallel).

    Why a thread:
    - console REPL is blocking (input()).
    - the core loop is async and wants its own event loop.

    Sets state.loop so console commands can submit coroutines to it.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        loop.call_soon(ready.set)

        try:
            loop.run_until_complete(run_core(state, stop_event))
        finally:
            with contextlib.suppress(Exception):
                loop.run_until_complete(loop.shutdown_asyncgens())
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="subconscious-core", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Core loop thread did not initialize properly.")
        return None

    state.loop = loop
    logger.info("Core loop background thread started.")
    return CoreLoopRunner(thread=t, loop=loop, stop_event=stop_event)
