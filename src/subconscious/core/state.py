# src/subconscious/core/state.py

from __future__ import annotations

import asyncio
import time
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from ..tasks.task_manager import TaskManager
from .orchestrator import Subconscious
from .ports import CapabilityClient, QueueStore, StatusObserver

if TYPE_CHECKING:
    from .core_loop import CoreLoop

T = TypeVar("T")


@dataclass
class AppState:
    # Settings are kept on the state so every layer reads the same object.
    settings: Any

    store: QueueStore
    capability: CapabilityClient
    task_manager: TaskManager
    orchestrator: Subconscious
    observer: StatusObserver

    # The shared handle: every activity touching the orchestrator takes it.
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    started_at: float = field(default_factory=time.monotonic)

    # Set once the core loop runs in its background event loop.
    loop: asyncio.AbstractEventLoop | None = None
    core_loop: CoreLoop | None = None

    def call(self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
        """
        Run a coroutine from synchronous code (console commands).

        With a running core loop it is scheduled there, so it shares the lock
        and the store client; otherwise it runs in a fresh event loop.
        """
        if self.loop is None or not self.loop.is_running():
            return asyncio.run(coro)
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)
