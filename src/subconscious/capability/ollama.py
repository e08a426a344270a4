# src/subconscious/capability/ollama.py

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import CapabilityFailure
from .prompts import build_task_prompt

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:11434"
DEFAULT_MODEL = "llama3"


def _make_timeout(seconds: float | None) -> httpx.Timeout:
    """None means wait forever, like the endpoint's own default."""
    if seconds is None:
        return httpx.Timeout(None)
    return httpx.Timeout(connect=min(5.0, seconds), read=seconds, write=seconds, pool=seconds)


class OllamaCapabilityClient:
    """
    Ollama-native capability client.

    - process / send_message -> POST {base}/api/generate {"model","prompt","stream":false}
    - check_liveness         -> POST {base}/api/show {"name": model}

    No retries: a transport error or a non-2xx answer is a CapabilityFailure
    for that call.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        *,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base_url = (base_url or "").strip().rstrip("/")
        if not base_url:
            raise ValueError("capability base URL is not set")
        # Accept a full ".../api/generate" URL as well as the server root.
        for suffix in ("/api/generate", "/api"):
            if base_url.endswith(suffix):
                base_url = base_url[: -len(suffix)]
                break

        self.base_url = base_url
        self.model = (model or DEFAULT_MODEL).strip()
        self._client = httpx.AsyncClient(timeout=_make_timeout(timeout_seconds), transport=transport)

    @property
    def generate_url(self) -> str:
        return f"{self.base_url}/api/generate"

    @property
    def show_url(self) -> str:
        return f"{self.base_url}/api/show"

    async def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise CapabilityFailure(f"request to {url} failed: {e.__class__.__name__}: {e}") from e

        if not response.is_success:
            raise CapabilityFailure(
                f"capability endpoint returned status: {response.status_code} - {response.text[:500]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise CapabilityFailure(f"capability endpoint returned invalid JSON from {url}") from e
        if not isinstance(data, dict):
            raise CapabilityFailure(f"capability endpoint returned {type(data).__name__}, expected an object")
        return data

    async def generate(self, prompt: str) -> str:
        logger.debug("Sending request to capability endpoint %s (model=%s)", self.generate_url, self.model)
        data = await self._post(
            self.generate_url,
            {"model": self.model, "prompt": prompt, "stream": False},
        )
        text = data.get("response")
        if not isinstance(text, str):
            raise CapabilityFailure("capability response has no 'response' text")
        logger.debug("Capability response (%d chars)", len(text))
        return text

    async def process(self, description: str, action: str) -> str:
        return await self.generate(build_task_prompt(description, action))

    async def send_message(self, message: str) -> str:
        return await self.generate(message)

    async def check_liveness(self, model_name: str | None = None) -> dict[str, Any]:
        name = (model_name or self.model).strip()
        data = await self._post(self.show_url, {"name": name})
        details = data.get("details") or {}
        if not isinstance(details, dict):
            details = {}
        info = {
            "name": name,
            "format": details.get("format"),
            "family": details.get("family"),
            "parameter_size": details.get("parameter_size"),
            "quantization_level": details.get("quantization_level"),
        }
        logger.debug("Model information: %s", info)
        return info

    def change_model(self, model: str) -> None:
        model = (model or "").strip()
        if not model:
            raise ValueError("model name is required")
        logger.info("Changing capability model %s -> %s", self.model, model)
        self.model = model

    async def aclose(self) -> None:
        await self._client.aclose()
