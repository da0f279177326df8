"""OpenAI model client adapter."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import time
from typing import Any

from .base import BaseModelClient, ModelResponse


@dataclass(slots=True)
class OpenAIClientConfig:
    """Configuration for OpenAI-compatible API calls."""

    timeout_seconds: int = 120


def build_messages(system_prompt: str | None, user_prompt: str) -> list[dict[str, str]]:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_prompt})
    return messages


class OpenAIModelClient(BaseModelClient):
    """Async wrapper around the OpenAI Python SDK using Chat Completions API."""

    provider = "openai"
    max_tokens_param = "max_completion_tokens"

    def __init__(
        self,
        api_model: str,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        dry_run: bool = False,
        config: OpenAIClientConfig | None = None,
    ) -> None:
        super().__init__(api_model=api_model, dry_run=dry_run)
        self.api_key = api_key
        self.base_url = base_url
        self.config = config or OpenAIClientConfig()

        self._client: Any | None = None
        if not self.dry_run:
            if not self.api_key:
                raise ValueError(f"Missing API key for {self.provider} client")
            self._init_client()

    def _init_client(self) -> None:
        try:
            from openai import AsyncOpenAI
        except ImportError as exc:
            raise RuntimeError("openai package is not installed") from exc

        kwargs: dict[str, Any] = {
            "api_key": self.api_key,
            "timeout": self.config.timeout_seconds,
        }
        if self.base_url:
            kwargs["base_url"] = self.base_url

        self._client = AsyncOpenAI(**kwargs)

    async def generate(
        self,
        *,
        system_prompt: str | None,
        user_prompt: str,
        temperature: float | None,
        max_tokens: int,
    ) -> ModelResponse:
        if self.dry_run:
            return self._mock_response(user_prompt=user_prompt)

        if self._client is None:
            raise RuntimeError(f"{self.provider} client not initialized")

        kwargs: dict[str, Any] = {
            "model": self.api_model,
            "messages": build_messages(system_prompt, user_prompt),
            self.max_tokens_param: max_tokens,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature

        started = time.perf_counter()
        response = await self._client.chat.completions.create(**kwargs)
        elapsed_ms = (time.perf_counter() - started) * 1000

        text = (response.choices[0].message.content or "") if response.choices else ""
        usage = response.usage
        input_tokens = int(getattr(usage, "prompt_tokens", 0) or 0)
        output_tokens = int(getattr(usage, "completion_tokens", 0) or 0)

        return ModelResponse(
            text=text.strip(),
            model_name=self.api_model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            latency_ms=elapsed_ms,
            raw={"id": getattr(response, "id", None), "provider": self.provider},
        )

    async def close(self) -> None:
        if self._client is None:
            await asyncio.sleep(0)
            return

        close_fn = getattr(self._client, "close", None)
        if close_fn is not None:
            maybe_coro = close_fn()
            if asyncio.iscoroutine(maybe_coro):
                await maybe_coro
            return

        await asyncio.sleep(0)
