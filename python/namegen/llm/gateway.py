"""
Generation gateway: the single adapter entry point used by the coordinator.

Checks availability, validates the prompt, bounds each call with the
provider-specific timeout, memoizes responses and normalizes every failure
into a ``GenerationError`` subclass.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from namegen.cache.store import ResponseCache
from namegen.config.settings import Settings, get_settings
from namegen.exceptions import (
    ConfigurationError,
    GenerationError,
    GenerationTimeoutError,
    ModelUnavailableError,
    ProviderError,
    ValidationError,
)
from namegen.llm.prompts import SYSTEM_PROMPT
from namegen.llm.providers import GenerationRequest, NameProvider, build_provider
from namegen.llm.registry import ModelRegistry, ModelStatus

logger = logging.getLogger(__name__)

MAX_PROMPT_LENGTH = 20000


@dataclass
class ModelOutcome:
    """Names produced by one model call plus what it took to get them."""
    model_id: str
    names: List[str]
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: float = 0.0
    cached: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


class GenerationGateway:
    """Uniform ``generate(model_id, prompt, parameters)`` over all providers."""

    def __init__(
        self,
        registry: ModelRegistry,
        settings_provider: Callable[[], Settings] = get_settings,
        response_cache: Optional[ResponseCache] = None,
        provider_factory: Callable[..., NameProvider] = build_provider,
    ):
        self.registry = registry
        self._settings_provider = settings_provider
        self.response_cache = response_cache
        self._provider_factory = provider_factory

    async def generate(self, model_id: str, prompt: str, parameters: Optional[Dict[str, Any]] = None) -> ModelOutcome:
        """
        Run one model call.

        Raises:
            ValidationError: empty or oversized prompt
            ModelUnavailableError: model disabled, in maintenance or missing a credential
            ProviderError: upstream failure (raw message kept for operators only)
            GenerationTimeoutError: the call exceeded its timeout
        """
        parameters = dict(parameters or {})
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt must not be empty")
        if len(prompt) > MAX_PROMPT_LENGTH:
            raise ValidationError(f"Prompt exceeds {MAX_PROMPT_LENGTH} characters")

        status = self.registry.status(model_id)
        if status != ModelStatus.AVAILABLE:
            raise ModelUnavailableError(f"Model {model_id} is {status.value}", model_id=model_id, reason=status.value)
        descriptor = self.registry.get(model_id)

        settings = self._settings_provider()
        mode = str(parameters.get("mode", ""))
        deep_thinking = bool(parameters.get("deep_thinking", False))
        limit = settings.max_names_per_model

        start = time.perf_counter()
        if self.response_cache is not None:
            cached = self.response_cache.get(model_id, prompt, mode, deep_thinking)
            if cached:
                return ModelOutcome(
                    model_id=model_id,
                    names=list(cached)[:limit],
                    latency_ms=(time.perf_counter() - start) * 1000,
                    cached=True,
                )

        request = GenerationRequest(
            model_id=model_id,
            prompt=prompt,
            upstream_model=descriptor.upstream_model,
            temperature=float(parameters.get("temperature", descriptor.temperature)),
            max_tokens=int(parameters.get("max_tokens", min(descriptor.max_tokens, 1000))),
            system_prompt=parameters.get("system_prompt", SYSTEM_PROMPT),
            metadata={"mode": mode, "deep_thinking": deep_thinking},
        )
        timeout = descriptor.timeout_seconds or settings.adapter_timeout_seconds

        try:
            provider = self._provider_factory(descriptor, settings)
            response = await asyncio.wait_for(provider.generate(request), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise GenerationTimeoutError(
                f"Model {model_id} timed out after {timeout}s", model_id=model_id, timeout_seconds=timeout
            ) from e
        except ConfigurationError as e:
            raise ModelUnavailableError(str(e.message), model_id=model_id, reason=ModelStatus.MISSING_API_KEY.value) from e
        except GenerationError:
            raise
        except Exception as e:
            raise ProviderError(
                f"Model {model_id} failed", model_id=model_id, upstream_message=f"{type(e).__name__}: {e}"
            ) from e

        names = list(response.names)[:limit]
        if self.response_cache is not None and names:
            self.response_cache.put(model_id, prompt, mode, deep_thinking, names)

        return ModelOutcome(
            model_id=model_id,
            names=names,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            latency_ms=(time.perf_counter() - start) * 1000,
            metadata={"provider": response.provider},
        )
