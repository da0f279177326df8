"""Abstract async model interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import random
from typing import Any


@dataclass(slots=True)
class ModelResponse:
    """Normalized provider response payload."""

    text: str
    model_name: str
    input_tokens: int
    output_tokens: int
    latency_ms: float
    raw: dict[str, Any]


class BaseModelClient(ABC):
    """Base class for provider-specific async model clients."""

    provider: str

    def __init__(self, api_model: str, dry_run: bool = False) -> None:
        self.api_model = api_model
        self.dry_run = dry_run

    @abstractmethod
    async def generate(
        self,
        *,
        system_prompt: str | None,
        user_prompt: str,
        temperature: float | None,
        max_tokens: int,
    ) -> ModelResponse:
        """Generate model output asynchronously."""

    def _mock_response(self, *, user_prompt: str) -> ModelResponse:
        seed = hash((self.api_model, user_prompt[:80])) % 1_000_000
        rnd = random.Random(seed)
        sample = user_prompt.split()[:40]
        text = "[DRY-RUN:{}] {}".format(self.api_model, " ".join(sample) or "empty prompt")
        return ModelResponse(
            text=text,
            model_name=self.api_model,
            input_tokens=max(32, len(user_prompt) // 4),
            output_tokens=max(64, len(text) // 3 + rnd.randint(0, 8)),
            latency_ms=1.0,
            raw={"dry_run": True},
        )

    async def close(self) -> None:
        """Optional resource cleanup hook."""
        return None
