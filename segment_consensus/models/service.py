"""Provider-agnostic model invocation port used by the consensus engine."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import os

from ..utils.rate_limiter import AsyncRateLimiter
from .anthropic_client import AnthropicModelClient
from .base import BaseModelClient
from .google_client import GoogleModelClient
from .openai_client import OpenAIModelClient


SUPPORTED_PROVIDERS = ("openai", "anthropic", "google")

API_KEY_ENV = {
    "openai": ("OPENAI_API_KEY",),
    "anthropic": ("ANTHROPIC_API_KEY",),
    "google": ("GOOGLE_GENERATIVE_AI_API_KEY", "GOOGLE_API_KEY"),
}


class UnsupportedProviderError(ValueError):
    """Raised when a role is configured with an unknown provider id."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"Unsupported provider: {provider}")
        self.provider = provider


@dataclass(slots=True)
class TokenUsage:
    input_tokens: int
    output_tokens: int
    total_tokens: int


@dataclass(slots=True)
class GenerationResult:
    """Generated text plus token accounting for one call."""

    text: str
    usage: TokenUsage


@dataclass(slots=True)
class ModelServiceConfig:
    """Runtime knobs shared by every provider client."""

    temperature: float | None = None
    max_tokens: int = 4096
    rpm_limits: dict[str, int] = field(default_factory=dict)
    default_rpm: int = 60
    dry_run: bool = False


def resolve_api_key(provider: str) -> str | None:
    for name in API_KEY_ENV.get(provider, ()):
        value = os.getenv(name)
        if value:
            return value
    return None


class ModelService:
    """Routes ``(provider, model)`` requests to cached provider clients."""

    def __init__(
        self,
        config: ModelServiceConfig | None = None,
        *,
        rate_limiter: AsyncRateLimiter | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config or ModelServiceConfig()
        self.rate_limiter = rate_limiter or AsyncRateLimiter()
        self.logger = logger or logging.getLogger("segment_consensus")
        self._client_cache: dict[tuple[str, str], BaseModelClient] = {}

    async def generate(
        self,
        provider: str,
        model: str,
        prompt: str,
        system: str | None = None,
    ) -> GenerationResult:
        """Generate text; provider and transport failures propagate."""
        client = self._get_client(provider, model)
        rpm = int(self.config.rpm_limits.get(model, self.config.default_rpm))
        await self.rate_limiter.acquire(key=f"{provider}:{model}", rpm=rpm)

        response = await client.generate(
            system_prompt=system,
            user_prompt=prompt,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
        )
        self.logger.debug(
            "%s:%s returned %d chars in %.0fms (in=%d out=%d)",
            provider,
            model,
            len(response.text),
            response.latency_ms,
            response.input_tokens,
            response.output_tokens,
        )
        return GenerationResult(
            text=response.text,
            usage=TokenUsage(
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
                total_tokens=response.input_tokens + response.output_tokens,
            ),
        )

    def _get_client(self, provider: str, model: str) -> BaseModelClient:
        key = (provider, model)
        if key in self._client_cache:
            return self._client_cache[key]

        if provider not in SUPPORTED_PROVIDERS:
            raise UnsupportedProviderError(provider)

        api_key = resolve_api_key(provider)
        dry_run = self.config.dry_run
        if provider == "openai":
            client: BaseModelClient = OpenAIModelClient(api_model=model, api_key=api_key, dry_run=dry_run)
        elif provider == "anthropic":
            client = AnthropicModelClient(api_model=model, api_key=api_key, dry_run=dry_run)
        else:
            client = GoogleModelClient(api_model=model, api_key=api_key, dry_run=dry_run)

        self._client_cache[key] = client
        return client

    async def close(self) -> None:
        """Close all cached clients."""
        await asyncio.gather(*[client.close() for client in self._client_cache.values()])
        self._client_cache.clear()
