# src/subconscious/tasks/task_manager.py

from __future__ import annotations

"""
Task manager.

Owns the mapping between the queue store's raw JSON lists and typed Task
records:
- enqueue (tail of "tasks", plus "persistent_tasks" for permanent tasks),
- status transitions (first match, list rewritten in place),
- drain-and-execute through a capability client,
- best-effort listing for monitoring callers.

Two dequeue modes:
- pop:   destructive pop before processing. A task whose capability call fails
         is logged and lost; it is in neither the queue nor the archive.
- lease: the head moves to "processing_tasks" with a lease deadline; success
         removes it, failure (or an expired lease) puts it back at the head.
"""

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, field
from enum import StrEnum

from ..core.ports import CapabilityClient, QueueStore
from ..errors import CapabilityFailure, SerializationFailure, StoreUnavailable, TaskNotFound
from .task_models import Task, TaskKey, TaskStatus

logger = logging.getLogger(__name__)

TASKS_KEY = "tasks"
PERMANENT_KEY = "persistent_tasks"
COMPLETED_KEY = "completed_tasks"
PROCESSING_KEY = "processing_tasks"
LEASES_KEY = "task_leases"
LIVENESS_KEY = "redis_connection_check"


class DequeueMode(StrEnum):
    POP = "pop"
    LEASE = "lease"


@dataclass(slots=True, frozen=True)
class TaskOutcome:
    task: Task
    result: str | None = None
    error: str | None = None


@dataclass(slots=True)
class DrainReport:
    """What one drain pass did, in processing order."""

    completed: list[TaskOutcome] = field(default_factory=list)
    failed: list[TaskOutcome] = field(default_factory=list)
    skipped: list[Task] = field(default_factory=list)
    malformed: int = 0

    @property
    def attempted(self) -> int:
        return len(self.completed) + len(self.failed)


@dataclass(slots=True, frozen=True)
class _Claim:
    task: Task
    raw: str


class TaskManager:
    def __init__(
        self,
        store: QueueStore,
        *,
        dequeue_mode: DequeueMode | str = DequeueMode.POP,
        lease_seconds: float = 60.0,
        liveness_ttl_seconds: int = 10,
    ) -> None:
        self._store = store
        self.dequeue_mode = DequeueMode(dequeue_mode)
        self.lease_seconds = max(1.0, float(lease_seconds))
        self.liveness_ttl_seconds = max(1, int(liveness_ttl_seconds))

    @property
    def store(self) -> QueueStore:
        return self._store

    # ---- low-level helpers ----

    @staticmethod
    def _decode_all(raws: list[str], *, source: str) -> list[Task]:
        tasks: list[Task] = []
        for raw in raws:
            try:
                tasks.append(Task.from_json(raw))
            except SerializationFailure as e:
                logger.warning("Skipping malformed record in %s: %s", source, e)
        return tasks

    async def _list_best_effort(self, key: str) -> list[Task]:
        try:
            raws = await self._store.lrange(key, 0, -1)
        except StoreUnavailable as e:
            logger.error("Failed to read %s: %s", key, e)
            return []
        tasks = self._decode_all(raws, source=key)
        logger.debug("Read %d task(s) from %s", len(tasks), key)
        return tasks

    async def _archive(self, task: Task) -> bool:
        """Append to the completed archive unless this id is already there."""
        archived = self._decode_all(await self._store.lrange(COMPLETED_KEY, 0, -1), source=COMPLETED_KEY)
        if any(t.id == task.id for t in archived):
            logger.debug("Task id=%s already archived", task.id)
            return False
        await self._store.rpush(COMPLETED_KEY, task.to_json())
        logger.info("Archived permanent task id=%s description=%r", task.id, task.description)
        return True

    # ---- public API ----

    async def enqueue(self, task: Task) -> Task:
        """
        Append a task at the tail of the queue.

        Permanent tasks are also appended to the permanent list, in the same
        store transaction: both lists are written or neither is.
        """
        raw = task.to_json()
        entries = [(TASKS_KEY, raw)]
        if task.is_permanent:
            entries.append((PERMANENT_KEY, raw))

        await self._store.append_all(entries)
        logger.info(
            "Task enqueued id=%s description=%r permanent=%s",
            task.id,
            task.description,
            task.is_permanent,
        )
        return task

    async def set_status(self, task_key: TaskKey | Task, new_status: TaskStatus) -> Task:
        """
        Rewrite the status of the first queued task matching task_key.

        Matching is by id when the key has one, else by (description, action).
        Entries after the first match are left alone, malformed entries are
        kept verbatim. A permanent task entering Completed is archived.
        """
        key = task_key.key if isinstance(task_key, Task) else task_key

        raws = await self._store.lrange(TASKS_KEY, 0, -1)
        for i, raw in enumerate(raws):
            try:
                existing = Task.from_json(raw)
            except SerializationFailure as e:
                logger.warning("set_status: skipping malformed record at %d: %s", i, e)
                continue

            if not key.matches(existing):
                continue

            updated = existing.with_status(new_status)
            raws[i] = updated.to_json()
            await self._store.replace_list(TASKS_KEY, raws)
            logger.info("Task id=%s status %s -> %s", updated.id, existing.status, updated.status)

            if (
                new_status is TaskStatus.COMPLETED
                and existing.status is not TaskStatus.COMPLETED
                and updated.is_permanent
            ):
                await self._archive(updated)
            return updated

        raise TaskNotFound(f"no queued task matches description={key.description!r} action={key.action!r}")

    async def drain_and_execute(
        self,
        capability: CapabilityClient,
        lock: asyncio.Lock | None = None,
    ) -> DrainReport:
        """
        Take tasks from the head of the queue until it is empty.

        Pending tasks go through capability.process(); anything else is
        dropped from the queue and reported as skipped.

        With a lock, claiming and committing happen under it and the capability
        call happens outside of it.

        In lease mode failed tasks stay leased until the pass ends, then go back
        to the head in their original order: each task is tried at most once
        per pass.
        """
        guard = lock if lock is not None else contextlib.nullcontext()
        report = DrainReport()
        held: list[_Claim] = []

        if self.dequeue_mode is DequeueMode.LEASE:
            async with guard:
                await self.reclaim_expired()

        try:
            while True:
                async with guard:
                    claim = await self._claim_next(report)
                if claim is None:
                    break

                task = claim.task
                if task.status is not TaskStatus.PENDING:
                    # Already out of the processing list (see _claim_next).
                    logger.debug("Dropping non-pending task id=%s status=%s", task.id, task.status)
                    report.skipped.append(task)
                    continue

                logger.debug("Executing task id=%s description=%r", task.id, task.description)
                try:
                    result = await capability.process(task.description, task.action)
                except CapabilityFailure as e:
                    report.failed.append(TaskOutcome(task=task, error=str(e)))
                    if self.dequeue_mode is DequeueMode.LEASE:
                        logger.warning("Task id=%s failed, will be released: %s", task.id, e)
                        held.append(claim)
                    else:
                        logger.error("Task id=%s lost after capability failure: %s", task.id, e)
                    continue

                done = task.with_status(TaskStatus.COMPLETED)
                async with guard:
                    if self.dequeue_mode is DequeueMode.LEASE:
                        await self._ack(claim)
                    if done.is_permanent:
                        await self._archive(done)
                report.completed.append(TaskOutcome(task=done, result=result))
                logger.info("Task completed id=%s description=%r", done.id, done.description)
        finally:
            if held:
                async with guard:
                    await self._release(held)

        if report.attempted or report.skipped or report.malformed:
            logger.info(
                "Drain pass: completed=%d failed=%d skipped=%d malformed=%d",
                len(report.completed),
                len(report.failed),
                len(report.skipped),
                report.malformed,
            )
        return report

    async def list(self) -> list[Task]:
        """Every queued task in order; [] when the store is unavailable."""
        return await self._list_best_effort(TASKS_KEY)

    async def list_completed(self) -> list[Task]:
        return await self._list_best_effort(COMPLETED_KEY)

    async def list_permanent(self) -> list[Task]:
        return await self._list_best_effort(PERMANENT_KEY)

    async def list_in_flight(self) -> list[Task]:
        """Leased tasks (lease mode), reported as InProgress."""
        tasks = await self._list_best_effort(PROCESSING_KEY)
        return [t.with_status(TaskStatus.IN_PROGRESS) for t in tasks if t.status is not TaskStatus.COMPLETED]

    async def check_liveness(self) -> None:
        await self._store.set_ex(LIVENESS_KEY, "OK", self.liveness_ttl_seconds)

    async def replay_permanent(self) -> int:
        """
        Re-enqueue permanent tasks that are not queued any more.

        Does not touch the permanent list itself. Returns how many were queued.
        """
        permanent = self._decode_all(await self._store.lrange(PERMANENT_KEY, 0, -1), source=PERMANENT_KEY)
        queued = self._decode_all(await self._store.lrange(TASKS_KEY, 0, -1), source=TASKS_KEY)
        queued_ids = {t.id for t in queued}

        entries: list[tuple[str, str]] = []
        for task in permanent:
            if task.id in queued_ids:
                continue
            queued_ids.add(task.id)
            entries.append((TASKS_KEY, Task(
                description=task.description,
                action=task.action,
                status=TaskStatus.PENDING,
                is_permanent=True,
                id=task.id,
            ).to_json()))

        await self._store.append_all(entries)
        if entries:
            logger.info("Replayed %d permanent task(s)", len(entries))
        return len(entries)

    async def reclaim_expired(self, now: float | None = None) -> int:
        """
        Return expired or orphaned leases to the head of the queue as Pending.

        Orphans (in the processing list without a lease) come from a crash
        between claim and completion.
        """
        if now is None:
            now = time.time()

        leases = await self._store.hgetall(LEASES_KEY)
        raws = await self._store.lrange(PROCESSING_KEY, 0, -1)

        reclaimed = 0
        # Walk from the tail so the pushes to the head keep the original order.
        for raw in reversed(raws):
            try:
                task = Task.from_json(raw)
            except SerializationFailure as e:
                logger.error("Dropping malformed in-flight record: %s", e)
                await self._store.lrem(PROCESSING_KEY, 1, raw)
                continue

            if task.status is TaskStatus.COMPLETED:
                # Completed is terminal: drop it, never requeue it as Pending.
                logger.warning("Dropping completed in-flight task id=%s", task.id)
                await self._store.lrem(PROCESSING_KEY, 1, raw)
                await self._store.hdel(LEASES_KEY, task.id)
                continue

            deadline = leases.get(task.id)
            try:
                expired = deadline is None or float(deadline) <= now
            except ValueError:
                expired = True
            if not expired:
                continue

            released = task.with_status(TaskStatus.PENDING)
            if await self._store.move_to_head(PROCESSING_KEY, TASKS_KEY, raw, released.to_json()):
                reclaimed += 1
                logger.warning("Reclaimed in-flight task id=%s description=%r", task.id, task.description)
            await self._store.hdel(LEASES_KEY, task.id)

        return reclaimed

    # ---- claim / ack / release ----

    async def _claim_next(self, report: DrainReport) -> _Claim | None:
        while True:
            if self.dequeue_mode is DequeueMode.LEASE:
                raw = await self._store.lmove(TASKS_KEY, PROCESSING_KEY)
            else:
                raw = await self._store.lpop(TASKS_KEY)
            if raw is None:
                return None

            try:
                task = Task.from_json(raw)
            except SerializationFailure as e:
                logger.error("Discarding malformed queue record: %s", e)
                report.malformed += 1
                if self.dequeue_mode is DequeueMode.LEASE:
                    await self._store.lrem(PROCESSING_KEY, 1, raw)
                continue

            if self.dequeue_mode is DequeueMode.LEASE:
                if task.status is TaskStatus.PENDING:
                    await self._store.hset(LEASES_KEY, task.id, str(time.time() + self.lease_seconds))
                    logger.debug("Leased task id=%s for %.0fs", task.id, self.lease_seconds)
                else:
                    # Never leave an unleased record behind for reclaim_expired() to find.
                    await self._store.lrem(PROCESSING_KEY, 1, raw)

            return _Claim(task=task, raw=raw)

    async def _ack(self, claim: _Claim) -> None:
        await self._store.lrem(PROCESSING_KEY, 1, claim.raw)
        await self._store.hdel(LEASES_KEY, claim.task.id)

    async def _release(self, claims: list[_Claim]) -> None:
        for claim in reversed(claims):
            released = claim.task.with_status(TaskStatus.PENDING)
            try:
                await self._store.move_to_head(PROCESSING_KEY, TASKS_KEY, claim.raw, released.to_json())
                await self._store.hdel(LEASES_KEY, claim.task.id)
            except StoreUnavailable:
                # The lease expires on its own and reclaim_expired() picks it up.
                logger.exception("Failed to release task id=%s", claim.task.id)
