# src/subconscious/core/orchestrator.py

"""
The Subconscious: task manager + capability client + memory journal.

It never schedules itself; the core loop decides when each operation runs.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from ..memory.journal import MemoryJournal, MemorySnapshot
from ..tasks.task_manager import DrainReport, TaskManager
from ..tasks.task_models import Task, TaskStatus
from .ports import CapabilityClient

logger = logging.getLogger(__name__)

ROUTINE_TASK_DESCRIPTION = "Routine check"
ROUTINE_TASK_ACTION = "Perform routine check"
LEARNED_PREFIX = "learned from task: "


def routine_task() -> Task:
    return Task(
        description=ROUTINE_TASK_DESCRIPTION,
        action=ROUTINE_TASK_ACTION,
        status=TaskStatus.PENDING,
        is_permanent=False,
    )


def learned_entry(task: Task) -> str:
    return f"{LEARNED_PREFIX}{task.description}"


class Subconscious:
    def __init__(
        self,
        task_manager: TaskManager,
        capability: CapabilityClient,
        *,
        journal: MemoryJournal | None = None,
    ) -> None:
        self.task_manager = task_manager
        self.capability = capability
        self.journal = journal if journal is not None else MemoryJournal()

    async def inject_routine_task(self) -> Task:
        """Enqueue the routine check. Store failures propagate to the caller."""
        return await self.task_manager.enqueue(routine_task())

    async def process_once(self, lock: asyncio.Lock | None = None) -> DrainReport:
        """
        Drain the queue, then journal what was learned.

        Journaled: tasks completed by this drain, completed tasks the drain
        dropped (validated by an operator before being drained), and any
        completed task still queued. Best-effort; the same task can be
        journaled twice if it shows up in more than one of those places
        across passes.
        """
        report = await self.task_manager.drain_and_execute(self.capability, lock=lock)

        learned: list[Task] = [outcome.task for outcome in report.completed]
        learned += [t for t in report.skipped if t.status is TaskStatus.COMPLETED]

        async with lock if lock is not None else contextlib.nullcontext():
            remaining = await self.task_manager.list()
            learned += [t for t in remaining if t.status is TaskStatus.COMPLETED]

            for task in learned:
                self.record_memory(learned_entry(task))

        return report

    def record_memory(self, entry: str) -> None:
        self.journal.record(entry)

    def evict_if_full(self) -> str | None:
        return self.journal.evict_if_full()

    def memory_snapshot(self) -> MemorySnapshot:
        return self.journal.snapshot()
