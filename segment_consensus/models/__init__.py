"""Model client adapters and the invocation port."""

from .anthropic_client import AnthropicModelClient
from .base import BaseModelClient, ModelResponse
from .google_client import GoogleModelClient
from .openai_client import OpenAIModelClient
from .service import (
    SUPPORTED_PROVIDERS,
    GenerationResult,
    ModelService,
    ModelServiceConfig,
    TokenUsage,
    UnsupportedProviderError,
)

__all__ = [
    "BaseModelClient",
    "ModelResponse",
    "AnthropicModelClient",
    "GoogleModelClient",
    "OpenAIModelClient",
    "SUPPORTED_PROVIDERS",
    "GenerationResult",
    "ModelService",
    "ModelServiceConfig",
    "TokenUsage",
    "UnsupportedProviderError",
]
