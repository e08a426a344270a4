# src/subconscious/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Callable

from ..core.state import AppState
from ..errors import CapabilityFailure, SubconsciousError
from ..tasks import task_api
from ..tasks.task_models import Task

CommandHandler = Callable[[AppState, list[str]], str]

logger = logging.getLogger(__name__)

PERMANENT_FLAG = "--permanent"


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Core errors (store down, task not found, capability failure) become
        the reply; the caller sees the failure, nothing is retried.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return handler(state, args)
        except ValueError as e:
            return f"{e}. {self._help.get(name, '')}".strip()
        except SubconsciousError as e:
            logger.info("Command /%s failed: %s", name, e)
            return f"Failed ({e.kind}): {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _render_tasks(title: str, tasks: list[Task]) -> str:
    if not tasks:
        return f"{title}: (none)"
    lines = [f"{title} ({len(tasks)}):"]
    for i, t in enumerate(tasks, start=1):
        flag = " [permanent]" if t.is_permanent else ""
        lines.append(f"{i}. [{t.status.value}] {t.description} -> {t.action}{flag}")
    return "\n".join(lines)


def _split_task_args(args: list[str]) -> tuple[str, str, bool]:
    """'<description> | <action> [--permanent]' -> (description, action, permanent)."""
    permanent = PERMANENT_FLAG in args
    text = " ".join(a for a in args if a != PERMANENT_FLAG)
    description, sep, action = text.partition("|")
    if not sep or not description.strip() or not action.strip():
        raise ValueError("Expected '<description> | <action>'")
    return description.strip(), action.strip(), permanent


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_tasks(state: AppState, args: list[str]) -> str:
    tasks = state.call(task_api.list_tasks(state))
    return _render_tasks("Queued tasks", tasks)


def cmd_completed(state: AppState, args: list[str]) -> str:
    tasks = state.call(task_api.list_completed(state))
    return _render_tasks("Archived permanent tasks", tasks)


def cmd_add(state: AppState, args: list[str]) -> str:
    description, action, permanent = _split_task_args(args)
    task = state.call(task_api.add_task(state, description=description, action=action, permanent=permanent))
    return f"Task added: {task.description} (id={task.id}{', permanent' if task.is_permanent else ''})"


def cmd_validate(state: AppState, args: list[str]) -> str:
    description, action, _ = _split_task_args(args)
    task = state.call(task_api.validate_task(state, description=description, action=action))
    return f"Task validated: {task.description} -> {task.status.value}"


def cmd_model(state: AppState, args: list[str]) -> str:
    """
    /model        -> show the active model
    /model <name> -> switch the capability to another model
    """
    if not args:
        return f"Active model: {state.capability.model}"
    model = state.call(task_api.change_model(state, args[0]))
    return f"Model changed to: {model}"


def cmd_status(state: AppState, args: list[str]) -> str:
    status = state.call(task_api.get_status(state))
    lines = ["Status:"]
    lines += [f"  {key}: {value}" for key, value in status.items()]
    return "\n".join(lines)


def cmd_memory(state: AppState, args: list[str]) -> str:
    return state.call(task_api.memory_snapshot(state)).render()


def cmd_chat(state: AppState, args: list[str]) -> str:
    message = " ".join(args).strip()
    if not message:
        raise ValueError("Message is empty")
    try:
        result = state.call(task_api.chat(state, message))
    except CapabilityFailure as e:
        return f"[LLM] {e}"
    reply = result.response.strip() or "(no output)"
    if result.follow_up is not None:
        reply += f"\n(follow-up task queued, id={result.follow_up.id})"
    return reply


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("tasks", cmd_tasks, help_text="List queued tasks.", aliases=["list"])
registry.register("completed", cmd_completed, help_text="List archived permanent tasks.")
registry.register(
    "add", cmd_add, help_text="Add a task: /add <description> | <action> [--permanent]."
)
registry.register(
    "validate", cmd_validate, help_text="Mark a task completed: /validate <description> | <action>."
)
registry.register("model", cmd_model, help_text="Show or change the model: /model [name].")
registry.register("status", cmd_status, help_text="Show queue, model and loop status.")
registry.register("memory", cmd_memory, help_text="Show the memory journal.", aliases=["mem"])
registry.register("chat", cmd_chat, help_text="Ask the model; its answer becomes a task: /chat <message>.")
