# src/subconscious/capability/offline.py

from __future__ import annotations

from typing import Any


class OfflineCapabilityClient:
    """
    Offline deterministic capability used for demos when no endpoint is configured.

    Behavior:
    - process      -> "done: <action>"
    - send_message -> a fixed demo reply quoting the last line of the prompt
    - liveness     -> always OK
    """

    def __init__(self, model: str = "offline") -> None:
        self.model = model

    async def process(self, description: str, action: str) -> str:
        return f"done: {action.strip() or description.strip()}"

    async def send_message(self, message: str) -> str:
        last = (message or "").strip().splitlines()[-1:] or [""]
        return f"Offline demo mode: no capability endpoint is configured. {last[0]}".strip()

    async def check_liveness(self, model_name: str | None = None) -> dict[str, Any]:
        return {"name": model_name or self.model, "format": "offline"}

    def change_model(self, model: str) -> None:
        self.model = (model or "").strip() or self.model

    async def aclose(self) -> None:
        return
