# src/subconscious/capability/openai_compat.py

from __future__ import annotations

import logging
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from ..errors import CapabilityFailure
from .prompts import CHAT_SYSTEM_PROMPT, TASK_SYSTEM_PROMPT, build_task_prompt

logger = logging.getLogger(__name__)


def _is_auth_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError))


def _describe(exc: Exception) -> str:
    if _is_auth_error(exc):
        return "authentication failed (check SUBCON_CAPABILITY_API_KEY)"
    if isinstance(exc, openai.RateLimitError):
        return "rate-limited"
    if isinstance(exc, openai.NotFoundError):
        return "model not available (404)"
    if isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError)):
        return f"network/timeout error: {exc}"
    return f"{exc.__class__.__name__}: {exc}"


class OpenAICapabilityClient:
    """
    Capability client for OpenAI-compatible chat completion APIs
    (OpenRouter, vLLM, Ollama's /v1 endpoint, ...).

    Automatic retries are disabled: a failed call is a CapabilityFailure.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        *,
        api_key: str | None = None,
        timeout_seconds: float | None = None,
        extra_headers: dict[str, str] | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        if not (model or "").strip():
            raise ValueError("capability model is not set")
        if client is None:
            if not (base_url or "").strip():
                raise ValueError("capability base URL is not set")
            if not (api_key or "").strip():
                raise ValueError("capability API key is not set")
            client = AsyncOpenAI(
                base_url=base_url,
                api_key=api_key,
                timeout=httpx.Timeout(timeout_seconds),
                max_retries=0,
            )
        self.model = model.strip()
        self._client = client
        self._headers = dict(extra_headers or {})

    async def _complete(self, system_prompt: str, user_text: str) -> str:
        try:
            completion = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_text},
                ],
                extra_headers=self._headers or None,
            )
        except openai.APIError as e:
            raise CapabilityFailure(f"model={self.model}: {_describe(e)}") from e

        try:
            content = completion.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise CapabilityFailure(f"model={self.model} returned no choices") from e
        if not content:
            raise CapabilityFailure(f"model={self.model} returned no content")
        return content

    async def process(self, description: str, action: str) -> str:
        return await self._complete(TASK_SYSTEM_PROMPT, build_task_prompt(description, action))

    async def send_message(self, message: str) -> str:
        return await self._complete(CHAT_SYSTEM_PROMPT, message)

    async def check_liveness(self, model_name: str | None = None) -> dict[str, Any]:
        name = (model_name or self.model).strip()
        try:
            model = await self._client.models.retrieve(name)
        except openai.APIError as e:
            raise CapabilityFailure(f"model={name}: {_describe(e)}") from e
        return {"name": model.id, "owned_by": getattr(model, "owned_by", None)}

    def change_model(self, model: str) -> None:
        model = (model or "").strip()
        if not model:
            raise ValueError("model name is required")
        logger.info("Changing capability model %s -> %s", self.model, model)
        self.model = model

    async def aclose(self) -> None:
        await self._client.close()
