# src/subconscious/tasks/task_models.py

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from ..errors import InvalidTransition, SerializationFailure


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Values are the exact strings stored in the queue ("Pending", not "pending"),
    so records written by older producers stay readable.

    Notes:
    - IN_PROGRESS is only assigned by the lease-based dequeue (claim time).
    - COMPLETED is terminal.
    """

    PENDING = "Pending"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"

    def can_become(self, new_status: TaskStatus) -> bool:
        # Completed -> Completed is a no-op; everything else may move freely
        # (InProgress -> Pending is how a failed lease is released).
        if self is TaskStatus.COMPLETED:
            return new_status is TaskStatus.COMPLETED
        return True


def new_task_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True, frozen=True)
class TaskKey:
    """
    What a status update looks a task up by.

    With an id the match is exact. Without one, the first queued entry with the
    same (description, action) wins; duplicates further down are untouched.
    """

    description: str
    action: str
    id: str | None = None

    def matches(self, task: Task) -> bool:
        if self.id:
            return task.id == self.id
        return task.description == self.description and task.action == self.action


@dataclass(slots=True)
class Task:
    description: str
    action: str
    status: TaskStatus = TaskStatus.PENDING
    is_permanent: bool = False
    id: str = field(default_factory=new_task_id)

    @property
    def key(self) -> TaskKey:
        return TaskKey(description=self.description, action=self.action, id=self.id)

    @property
    def content_key(self) -> TaskKey:
        return TaskKey(description=self.description, action=self.action)

    def with_status(self, new_status: TaskStatus) -> Task:
        if not self.status.can_become(new_status):
            raise InvalidTransition(f"{self.status.value} -> {new_status.value} is not allowed")
        return replace(self, status=new_status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "action": self.action,
            "status": self.status.value,
            "is_permanent": self.is_permanent,
            "id": self.id,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, fallback_id: str | None = None) -> Task:
        if not isinstance(data, dict):
            raise SerializationFailure(f"task record must be an object, got {type(data).__name__}")

        description = data.get("description")
        action = data.get("action")
        if not isinstance(description, str) or not isinstance(action, str):
            raise SerializationFailure("task record is missing description/action")

        raw_status = data.get("status", TaskStatus.PENDING.value)
        try:
            status = TaskStatus(raw_status)
        except ValueError as e:
            raise SerializationFailure(f"unknown task status: {raw_status!r}") from e

        task_id = data.get("id")
        return cls(
            description=description,
            action=action,
            status=status,
            is_permanent=bool(data.get("is_permanent", False)),
            # Legacy writers stored no id; assign one on read.
            id=str(task_id) if task_id else (fallback_id or new_task_id()),
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> Task:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise SerializationFailure(f"task record is not valid JSON: {raw!r}") from e
        # Same raw record -> same id on every read, so ids handed out by list() stay usable.
        text = raw.decode("utf-8", "replace") if isinstance(raw, bytes) else raw
        return cls.from_dict(data, fallback_id=uuid.uuid5(uuid.NAMESPACE_URL, text).hex)
