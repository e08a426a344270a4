# src/subconscious/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures the local (gitignored) data directory exists,
- wires concrete implementations into AppState (store/capability/tasks/memory),
- prepares the queue at startup (lease recovery, permanent task replay, seeding).
"""

from __future__ import annotations

import logging

from ..capability.offline import OfflineCapabilityClient
from ..capability.ollama import OllamaCapabilityClient
from ..capability.openai_compat import OpenAICapabilityClient
from ..config import get_settings
from ..core.core_loop import CoreLoop
from ..core.observer import LoggingObserver
from ..core.orchestrator import Subconscious
from ..core.ports import CapabilityClient, QueueStore, StatusObserver
from ..core.state import AppState
from ..errors import StoreUnavailable
from ..memory.journal import MemoryJournal
from ..tasks.task_manager import DequeueMode, TaskManager
from ..tasks.task_models import Task, TaskStatus
from ..tasks.task_store import RedisQueueStore

logger = logging.getLogger(__name__)

SEED_TASK_DESCRIPTION = "Check actions against Asimov's 3 laws of robotics"
SEED_TASK_ACTION = "check_asimov_laws"


def seed_tasks() -> list[Task]:
    return [
        Task(
            description=SEED_TASK_DESCRIPTION,
            action=SEED_TASK_ACTION,
            status=TaskStatus.PENDING,
            is_permanent=True,
        )
    ]


def build_capability_client(settings) -> CapabilityClient:
    backend = str(getattr(settings, "capability_backend", "ollama"))
    if backend == "offline":
        return OfflineCapabilityClient()
    if backend == "openai":
        return OpenAICapabilityClient(
            settings.capability_base_url,
            settings.capability_model,
            api_key=settings.capability_api_key,
            timeout_seconds=settings.capability_timeout_seconds,
            extra_headers={"X-Title": settings.app_name},
        )
    return OllamaCapabilityClient(
        settings.capability_base_url,
        settings.capability_model,
        timeout_seconds=settings.capability_timeout_seconds,
    )


def create_initial_state(
    *,
    settings=None,
    store: QueueStore | None = None,
    capability: CapabilityClient | None = None,
    observer: StatusObserver | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Store/capability/observer are injectable for tests. If settings is None,
    falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    settings.data_dir.mkdir(parents=True, exist_ok=True)

    if store is None:
        store = RedisQueueStore(settings.redis_url)

    if capability is None:
        try:
            capability = build_capability_client(settings)
        except ValueError as e:
            # Fallback for demos / local runs without an endpoint.
            logger.warning("Capability backend %r unusable (%s); using offline mode.", settings.capability_backend, e)
            capability = OfflineCapabilityClient()

    task_manager = TaskManager(
        store,
        dequeue_mode=DequeueMode(settings.dequeue_mode),
        lease_seconds=settings.lease_seconds,
        liveness_ttl_seconds=settings.liveness_marker_ttl_seconds,
    )
    orchestrator = Subconscious(
        task_manager,
        capability,
        journal=MemoryJournal(settings.short_term_capacity),
    )
    return AppState(
        settings=settings,
        store=store,
        capability=capability,
        task_manager=task_manager,
        orchestrator=orchestrator,
        observer=observer if observer is not None else LoggingObserver(),
    )


def build_core_loop(state: AppState) -> CoreLoop:
    settings = state.settings
    core_loop = CoreLoop(
        state.orchestrator,
        lock=state.lock,
        observer=state.observer,
        routine_interval_seconds=settings.routine_interval_seconds,
        liveness_interval_seconds=settings.liveness_interval_seconds,
        drive_mode=settings.drive_mode,
        max_in_flight=settings.max_in_flight,
        drive_slice_seconds=settings.drive_slice_seconds,
    )
    state.core_loop = core_loop
    return core_loop


async def prepare_queue(state: AppState, *, seed: bool | None = None) -> int:
    """
    Startup work on the queue, before the core loop runs:
    - return interrupted leases (lease mode),
    - replay permanent tasks that are no longer queued,
    - seed the default permanent tasks once (first start).

    Returns how many tasks were (re)queued. Store failures are logged, not raised:
    the liveness ticker keeps reporting the outage.
    """
    if seed is None:
        seed = bool(getattr(state.settings, "seed_permanent_tasks", True))

    manager = state.task_manager
    queued = 0
    try:
        async with state.lock:
            if manager.dequeue_mode is DequeueMode.LEASE:
                queued += await manager.reclaim_expired()
            queued += await manager.replay_permanent()

            if seed:
                known = {t.content_key for t in await manager.list_permanent()}
                for task in seed_tasks():
                    if task.content_key in known:
                        continue
                    await manager.enqueue(task)
                    queued += 1
                    logger.info("Added persistent task: %r", task.description)
    except StoreUnavailable as e:
        logger.error("Queue preparation failed: %s", e)
    return queued
