# tests/test_task_api.py

from __future__ import annotations

import asyncio

import pytest

from subconscious.cli.bootstrap import build_core_loop
from subconscious.errors import StoreUnavailable, TaskNotFound
from subconscious.tasks import task_api
from subconscious.tasks.task_models import TaskStatus


@pytest.mark.asyncio
async def test_add_task_rejects_empty_fields(state) -> None:
    with pytest.raises(ValueError):
        await task_api.add_task(state, description=" ", action="x")
    with pytest.raises(ValueError):
        await task_api.add_task(state, description="d", action="")


@pytest.mark.asyncio
async def test_add_task_propagates_store_failure(state, store) -> None:
    store.fail = True

    with pytest.raises(StoreUnavailable):
        await task_api.add_task(state, description="d", action="a")


@pytest.mark.asyncio
async def test_validate_permanent_task_archives_it(state) -> None:
    await task_api.add_task(state, description="C", action="z", permanent=True)

    task = await task_api.validate_task(state, description="C", action="z")

    assert task.status is TaskStatus.COMPLETED
    assert [t.description for t in await task_api.list_completed(state)] == ["C"]

    with pytest.raises(TaskNotFound):
        await task_api.validate_task(state, description="C", action="other")


@pytest.mark.asyncio
async def test_get_status_includes_loop_stats_once_built(state) -> None:
    status = await task_api.get_status(state)
    assert "iterations" not in status

    build_core_loop(state)
    status = await task_api.get_status(state)
    assert status["iterations"] == 0
    assert status["queued"] == 0
    assert status["archived"] == 0


@pytest.mark.asyncio
async def test_chat_without_follow_up(state, capability) -> None:
    result = await task_api.chat(state, "hello", enqueue_follow_up=False)

    assert result.response == "Write the weekly summary"
    assert result.follow_up is None
    assert await task_api.list_tasks(state) == []


@pytest.mark.asyncio
async def test_chat_with_empty_answer_queues_nothing(state, capability) -> None:
    capability.reply = "   "

    result = await task_api.chat(state, "hello")

    assert result.follow_up is None
    assert await task_api.list_tasks(state) == []


@pytest.mark.asyncio
async def test_memory_snapshot_waits_for_the_shared_lock(state) -> None:
    state.orchestrator.record_memory("learned from task: A")

    async with state.lock:
        pending = asyncio.create_task(task_api.memory_snapshot(state))
        await asyncio.sleep(0.01)
        assert not pending.done()

    snapshot = await pending
    assert snapshot.short_term == ("learned from task: A",)
