# src/subconscious/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the queue store, capability providers and report sinks swappable
and makes testing easier.
"""

from typing import Any, Protocol


class QueueStore(Protocol):
    """
    Durable ordered lists of JSON strings, keyed by name.

    Every method raises StoreUnavailable when the backend cannot be reached.
    Multi-step methods (replace_list, append_all, move_to_head) are applied
    as one transaction by the backend.
    """

    async def rpush(self, key: str, *values: str) -> int: ...
    async def lpush(self, key: str, *values: str) -> int: ...
    async def lpop(self, key: str) -> str | None: ...
    async def lrange(self, key: str, start: int = 0, end: int = -1) -> list[str]: ...
    async def lrem(self, key: str, count: int, value: str) -> int: ...

    # Pop the head of `src` and append it to the tail of `dst`.
    async def lmove(self, src: str, dst: str) -> str | None: ...

    # Remove `value` from `src` and push `pushed` onto the head of `dst`.
    async def move_to_head(self, src: str, dst: str, value: str, pushed: str) -> bool: ...

    async def replace_list(self, key: str, values: list[str]) -> None: ...
    async def append_all(self, entries: list[tuple[str, str]]) -> None: ...

    async def hset(self, key: str, field: str, value: str) -> None: ...
    async def hdel(self, key: str, *fields: str) -> int: ...
    async def hgetall(self, key: str) -> dict[str, str]: ...

    async def set_ex(self, key: str, value: str, seconds: int) -> None: ...
    async def close(self) -> None: ...


class CapabilityClient(Protocol):
    """External reasoning endpoint (LLM) used to execute a task's action."""

    model: str

    async def process(self, description: str, action: str) -> str: ...

    # Raises CapabilityFailure when the endpoint does not answer for the model.
    async def check_liveness(self, model_name: str | None = None) -> dict[str, Any]: ...

    async def send_message(self, message: str) -> str: ...
    def change_model(self, model: str) -> None: ...
    async def aclose(self) -> None: ...


class StatusObserver(Protocol):
    """
    Where the core loop sends its reports.

    The core never prints; the surrounding application picks the sink
    (log file, console, tests).
    """

    def on_status_report(self, text: str) -> None: ...
    def on_error(self, kind: str, detail: str) -> None: ...
