"""Anthropic model client adapter."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import time
from typing import Any

from .base import BaseModelClient, ModelResponse


@dataclass(slots=True)
class AnthropicClientConfig:
    """Configuration for Anthropic API calls."""

    timeout_seconds: int = 60


class AnthropicModelClient(BaseModelClient):
    """Async wrapper around official anthropic SDK."""

    provider = "anthropic"

    def __init__(
        self,
        api_model: str,
        api_key: str | None = None,
        *,
        dry_run: bool = False,
        config: AnthropicClientConfig | None = None,
    ) -> None:
        super().__init__(api_model=api_model, dry_run=dry_run)
        self.api_key = api_key
        self.config = config or AnthropicClientConfig()

        self._client: Any | None = None
        if not self.dry_run:
            if not self.api_key:
                raise ValueError("Missing ANTHROPIC_API_KEY for non-dry run")
            try:
                from anthropic import AsyncAnthropic
            except ImportError as exc:
                raise RuntimeError("anthropic package is not installed") from exc
            self._client = AsyncAnthropic(api_key=self.api_key, timeout=self.config.timeout_seconds)

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
            raise RuntimeError("Anthropic client not initialized")

        kwargs: dict[str, Any] = {
            "model": self.api_model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if temperature is not None:
            kwargs["temperature"] = temperature

        started = time.perf_counter()
        response = await self._client.messages.create(**kwargs)
        elapsed_ms = (time.perf_counter() - started) * 1000

        text_chunks = []
        for chunk in response.content:
            if getattr(chunk, "type", None) == "text":
                text_chunks.append(chunk.text)

        usage = getattr(response, "usage", None)
        return ModelResponse(
            text="\n".join(text_chunks).strip(),
            model_name=self.api_model,
            input_tokens=int(getattr(usage, "input_tokens", 0) or 0),
            output_tokens=int(getattr(usage, "output_tokens", 0) or 0),
            latency_ms=elapsed_ms,
            raw={"id": getattr(response, "id", None), "provider": self.provider},
        )

    async def close(self) -> None:
        if self._client is None:
            await asyncio.sleep(0)
            return
        await self._client.close()
