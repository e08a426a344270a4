# tests/test_bootstrap.py

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from subconscious.capability.offline import OfflineCapabilityClient
from subconscious.capability.ollama import OllamaCapabilityClient
from subconscious.cli.bootstrap import (
    SEED_TASK_ACTION,
    SEED_TASK_DESCRIPTION,
    build_capability_client,
    build_core_loop,
    create_initial_state,
    prepare_queue,
)
from subconscious.cli.runner import run_core
from subconscious.tasks.task_manager import PERMANENT_KEY, PROCESSING_KEY, TASKS_KEY
from subconscious.tasks.task_models import Task

from .fakes import FakeQueueStore


def test_create_initial_state_wires_components(state, settings, store, capability) -> None:
    assert state.store is store
    assert state.capability is capability
    assert state.orchestrator.task_manager is state.task_manager
    assert state.orchestrator.journal.capacity == settings.short_term_capacity
    assert settings.data_dir.is_dir()


def test_unusable_backend_falls_back_to_offline(settings) -> None:
    settings.capability_backend = "openai"
    settings.capability_base_url = ""
    settings.capability_model = "gpt-test"
    settings.capability_api_key = ""
    settings.capability_timeout_seconds = None

    state = create_initial_state(settings=settings, store=FakeQueueStore())

    assert isinstance(state.capability, OfflineCapabilityClient)


@pytest.mark.asyncio
async def test_build_capability_client_defaults_to_ollama() -> None:
    settings = SimpleNamespace(
        app_name="t",
        capability_backend="ollama",
        capability_base_url="http://127.0.0.1:11434",
        capability_model="llama3",
        capability_timeout_seconds=None,
    )

    client = build_capability_client(settings)

    assert isinstance(client, OllamaCapabilityClient)
    assert client.generate_url == "http://127.0.0.1:11434/api/generate"
    await client.aclose()


@pytest.mark.asyncio
async def test_prepare_queue_seeds_once(state, store) -> None:
    assert await prepare_queue(state) == 1
    assert await prepare_queue(state) == 0

    permanent = await state.task_manager.list_permanent()
    assert [(t.description, t.action, t.is_permanent) for t in permanent] == [
        (SEED_TASK_DESCRIPTION, SEED_TASK_ACTION, True)
    ]
    assert len(store.lists[TASKS_KEY]) == 1


@pytest.mark.asyncio
async def test_prepare_queue_replays_drained_permanent_tasks(state, capability) -> None:
    await prepare_queue(state)
    await state.task_manager.drain_and_execute(capability)
    assert await state.task_manager.list() == []

    assert await prepare_queue(state) == 1
    assert [t.description for t in await state.task_manager.list()] == [SEED_TASK_DESCRIPTION]


@pytest.mark.asyncio
async def test_prepare_queue_reclaims_leases_in_lease_mode(settings, store, capability, observer) -> None:
    settings.dequeue_mode = "lease"
    state = create_initial_state(settings=settings, store=store, capability=capability, observer=observer)
    interrupted = Task(description="interrupted", action="resume")
    store.lists[PROCESSING_KEY].append(interrupted.to_json())

    await prepare_queue(state, seed=False)

    assert [t.id for t in await state.task_manager.list()] == [interrupted.id]
    assert store.lists[PROCESSING_KEY] == []


@pytest.mark.asyncio
async def test_prepare_queue_logs_store_outage(state, store) -> None:
    store.fail = True

    assert await prepare_queue(state) == 0
    store.fail = False
    assert store.lists[PERMANENT_KEY] == []


@pytest.mark.asyncio
async def test_run_core_stops_on_event_and_closes_clients(state, store, capability, observer) -> None:
    stop = asyncio.Event()

    runner = asyncio.create_task(run_core(state, stop))
    await asyncio.sleep(0.1)
    stop.set()
    await asyncio.wait_for(runner, timeout=2.0)

    assert state.core_loop is not None
    assert state.core_loop.stats.iterations > 0
    assert (SEED_TASK_DESCRIPTION, SEED_TASK_ACTION) in capability.calls
    assert capability.closed and store.closed
    assert observer.reports


def test_build_core_loop_uses_shared_lock(state) -> None:
    loop = build_core_loop(state)

    assert loop.lock is state.lock
    assert state.core_loop is loop
