# src/subconscious/capability/prompts.py

from __future__ import annotations

from collections.abc import Iterable

from ..tasks.task_models import Task

TASK_SYSTEM_PROMPT = (
    "You are the background task executor of an autonomous agent. "
    "Carry out the task you are given and answer with a short plain-text result."
)

CHAT_SYSTEM_PROMPT = (
    "You are the planning voice of an autonomous agent. "
    "Answer the operator. If a new task is needed, describe its action in one sentence."
)


def build_task_prompt(description: str, action: str) -> str:
    return f"Task: {description.strip()}\nAction: {action.strip()}"


def build_chat_prompt(message: str, tasks: Iterable[Task]) -> str:
    lines = ["Current tasks:"]
    for i, task in enumerate(tasks, start=1):
        flag = " (permanent)" if task.is_permanent else ""
        lines.append(f"{i}. [{task.status.value}] {task.description}: {task.action}{flag}")
    if len(lines) == 1:
        lines.append("(none)")
    lines.append("")
    lines.append(f"Operator message: {message.strip()}")
    return "\n".join(lines)
