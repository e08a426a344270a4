# tests/test_orchestrator.py

from __future__ import annotations

import asyncio

import pytest

from subconscious.core.orchestrator import (
    ROUTINE_TASK_ACTION,
    ROUTINE_TASK_DESCRIPTION,
    Subconscious,
)
from subconscious.errors import StoreUnavailable
from subconscious.memory.journal import MemoryJournal
from subconscious.tasks.task_models import Task, TaskStatus


@pytest.mark.asyncio
async def test_inject_routine_task_enqueues_non_permanent_check(manager, capability) -> None:
    sub = Subconscious(manager, capability)

    task = await sub.inject_routine_task()

    assert (task.description, task.action) == (ROUTINE_TASK_DESCRIPTION, ROUTINE_TASK_ACTION)
    assert task.is_permanent is False
    assert [t.id for t in await manager.list()] == [task.id]


@pytest.mark.asyncio
async def test_inject_routine_task_propagates_store_failure(manager, store, capability) -> None:
    sub = Subconscious(manager, capability)
    store.fail = True

    with pytest.raises(StoreUnavailable):
        await sub.inject_routine_task()


@pytest.mark.asyncio
async def test_process_once_journals_completed_tasks(manager, capability) -> None:
    sub = Subconscious(manager, capability, journal=MemoryJournal(10))
    await manager.enqueue(Task(description="A", action="x"))
    await manager.enqueue(Task(description="B", action="y"))

    report = await sub.process_once(asyncio.Lock())

    assert len(report.completed) == 2
    assert sub.memory_snapshot().short_term == ("learned from task: A", "learned from task: B")


@pytest.mark.asyncio
async def test_process_once_journals_operator_validated_tasks(manager, capability) -> None:
    sub = Subconscious(manager, capability)
    task = await manager.enqueue(Task(description="validated", action="v"))
    await manager.set_status(task, TaskStatus.COMPLETED)

    await sub.process_once()

    assert capability.calls == []
    assert sub.memory_snapshot().short_term == ("learned from task: validated",)


@pytest.mark.asyncio
async def test_process_once_on_empty_queue_learns_nothing(manager, capability) -> None:
    sub = Subconscious(manager, capability)

    report = await sub.process_once()

    assert report.attempted == 0
    assert sub.memory_snapshot().short_term == ()


def test_record_memory_and_evict_go_through_the_journal(manager, capability) -> None:
    sub = Subconscious(manager, capability, journal=MemoryJournal(1))
    sub.record_memory("one")

    assert sub.evict_if_full() == "one"
    assert sub.memory_snapshot().long_term == ("one",)
