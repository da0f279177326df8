"""Google Gemini model client adapter.

Uses the OpenAI-compatible Chat Completions endpoint exposed by the Gemini API
instead of the google-generativeai SDK.
"""

from __future__ import annotations

from .openai_client import OpenAIClientConfig, OpenAIModelClient


GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


class GoogleModelClient(OpenAIModelClient):
    """Async Gemini client using the OpenAI-compatible endpoint."""

    provider = "google"
    max_tokens_param = "max_tokens"

    def __init__(
        self,
        api_model: str,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        dry_run: bool = False,
        config: OpenAIClientConfig | None = None,
    ) -> None:
        super().__init__(
            api_model=api_model,
            api_key=api_key,
            base_url=base_url or GEMINI_OPENAI_BASE_URL,
            dry_run=dry_run,
            config=config,
        )
