# src/subconscious/tasks/task_api.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..capability.prompts import build_chat_prompt
from ..memory.journal import MemorySnapshot
from ..core.state import AppState
from .task_models import Task, TaskKey, TaskStatus

logger = logging.getLogger(__name__)

FOLLOW_UP_DESCRIPTION = "Task defined by LLM"


@dataclass(slots=True, frozen=True)
class ChatResult:
    response: str
    follow_up: Task | None


async def add_task(state: AppState, *, description: str, action: str, permanent: bool = False) -> Task:
    """Enqueue a new Pending task. Store failures propagate."""
    if not description or not description.strip():
        raise ValueError("description is required")
    if not action or not action.strip():
        raise ValueError("action is required")

    task = Task(
        description=description.strip(),
        action=action.strip(),
        status=TaskStatus.PENDING,
        is_permanent=permanent,
    )
    async with state.lock:
        return await state.task_manager.enqueue(task)


async def validate_task(state: AppState, *, description: str, action: str) -> Task:
    """Mark the first queued (description, action) match Completed. Raises TaskNotFound."""
    key = TaskKey(description=description.strip(), action=action.strip())
    async with state.lock:
        return await state.task_manager.set_status(key, TaskStatus.COMPLETED)


async def list_tasks(state: AppState) -> list[Task]:
    return await state.task_manager.list()


async def list_completed(state: AppState) -> list[Task]:
    return await state.task_manager.list_completed()


async def change_model(state: AppState, model: str) -> str:
    async with state.lock:
        state.capability.change_model(model)
    return state.capability.model


async def memory_snapshot(state: AppState) -> MemorySnapshot:
    async with state.lock:
        return state.orchestrator.memory_snapshot()


async def get_status(state: AppState) -> dict[str, Any]:
    tasks = await state.task_manager.list()
    in_flight = await state.task_manager.list_in_flight()
    completed = await state.task_manager.list_completed()
    snapshot = await memory_snapshot(state)

    status: dict[str, Any] = {
        "queued": len(tasks),
        "pending": sum(1 for t in tasks if t.status is TaskStatus.PENDING),
        "in_flight": len(in_flight),
        "archived": len(completed),
        "model": state.capability.model,
        "dequeue_mode": state.task_manager.dequeue_mode.value,
        "short_term_memories": len(snapshot.short_term),
        "long_term_memories": len(snapshot.long_term),
    }
    if state.core_loop is not None:
        stats = state.core_loop.stats
        status["uptime_seconds"] = int(stats.elapsed())
        status["iterations"] = stats.iterations
        status["iterations_per_second"] = round(stats.rate(), 2)
    return status


async def chat(state: AppState, message: str, *, enqueue_follow_up: bool = True) -> ChatResult:
    """
    Forward an operator message to the capability, with the current task list
    as context. A non-empty answer is enqueued as a follow-up task.

    Capability and store failures propagate.
    """
    if not message or not message.strip():
        raise ValueError("message is required")

    tasks = await state.task_manager.list()
    response = await state.capability.send_message(build_chat_prompt(message, tasks))

    follow_up: Task | None = None
    if enqueue_follow_up and response.strip():
        follow_up = await add_task(state, description=FOLLOW_UP_DESCRIPTION, action=response.strip())
        logger.info("Chat follow-up task enqueued id=%s", follow_up.id)
    return ChatResult(response=response, follow_up=follow_up)
