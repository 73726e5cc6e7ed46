"""
Provider adapters for name generation.

Each adapter turns a ``GenerationRequest`` into a ``GenerationResponse`` over
the vendor's HTTP API; ``build_provider`` picks the adapter for a model.
"""

from typing import Optional

import httpx

from namegen.llm.providers.anthropic import AnthropicProvider
from namegen.llm.providers.base import (
    GenerationRequest,
    GenerationResponse,
    NameProvider,
    ProviderType,
    RetryPolicy,
    parse_names,
)
from namegen.llm.providers.gemini import GeminiProvider
from namegen.llm.providers.openai_compatible import OpenAICompatibleProvider


def build_provider(
    descriptor,
    settings,
    retry_policy: Optional[RetryPolicy] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> NameProvider:
    """Create the adapter serving ``descriptor`` with credentials from ``settings``."""
    common = {
        "api_key": settings.api_key_for(descriptor.provider.value),
        "timeout": descriptor.timeout_seconds or settings.adapter_timeout_seconds,
        "retry_policy": retry_policy or RetryPolicy.from_settings(settings),
        "transport": transport,
        "max_names": settings.max_names_per_model,
    }
    provider = descriptor.provider
    if provider == ProviderType.OPENAI:
        return OpenAICompatibleProvider(ProviderType.OPENAI, base_url=settings.openai_base_url, **common)
    if provider == ProviderType.XAI:
        return OpenAICompatibleProvider(ProviderType.XAI, base_url=settings.xai_base_url, **common)
    if provider == ProviderType.ANTHROPIC:
        return AnthropicProvider(
            api_version=settings.anthropic_version, base_url=settings.anthropic_base_url, **common
        )
    if provider == ProviderType.GOOGLE:
        return GeminiProvider(base_url=settings.google_base_url, **common)
    raise ValueError(f"Unsupported provider: {provider}")


__all__ = [
    "AnthropicProvider",
    "GeminiProvider",
    "GenerationRequest",
    "GenerationResponse",
    "NameProvider",
    "OpenAICompatibleProvider",
    "ProviderType",
    "RetryPolicy",
    "build_provider",
    "parse_names",
]
