"""Tests for the generation gateway (namegen/llm/gateway.py)."""

import asyncio

import pytest

from namegen.cache.store import CacheStore, ResponseCache
from namegen.exceptions import (
    ConfigurationError,
    GenerationTimeoutError,
    ModelUnavailableError,
    ProviderError,
    ValidationError,
)
from namegen.llm.gateway import GenerationGateway
from namegen.llm.providers.base import GenerationResponse
from namegen.llm.registry import ModelRegistry


class FakeProvider:
    def __init__(self, behaviour):
        self.behaviour = behaviour
        self.requests = []

    async def generate(self, request):
        self.requests.append(request)
        if isinstance(self.behaviour, BaseException):
            raise self.behaviour
        if callable(self.behaviour):
            return await self.behaviour(request)
        return GenerationResponse(
            names=list(self.behaviour), model_id=request.model_id, provider="openai",
            input_tokens=40, output_tokens=20, latency_ms=5.0,
        )


@pytest.fixture
def build_gateway(settings):
    def _build(behaviour, cache=True, **overrides):
        active = settings.model_copy(update=overrides)
        registry = ModelRegistry(settings_provider=lambda: active)
        provider = FakeProvider(behaviour)
        factory_calls = []

        def factory(descriptor, settings):
            factory_calls.append(descriptor.model_id)
            return provider

        response_cache = ResponseCache(CacheStore(), ttl_seconds=60) if cache else None
        gateway = GenerationGateway(registry, lambda: active, response_cache=response_cache, provider_factory=factory)
        gateway.provider = provider
        gateway.factory_calls = factory_calls
        return gateway
    return _build


async def test_generate_returns_outcome(build_gateway):
    gateway = build_gateway(["Roastly", "BrewForge"])
    outcome = await gateway.generate("gpt-4", "Name my coffee startup", {"temperature": 0.3, "mode": "creative"})

    assert outcome.names == ["Roastly", "BrewForge"]
    assert (outcome.input_tokens, outcome.output_tokens) == (40, 20)
    assert outcome.cached is False
    request = gateway.provider.requests[0]
    assert request.temperature == 0.3
    assert request.upstream_model == "gpt-4"
    assert request.system_prompt


async def test_identical_requests_hit_the_cache(build_gateway):
    gateway = build_gateway(["Roastly"])
    await gateway.generate("gpt-4", "Name my coffee startup", {"mode": "creative"})
    outcome = await gateway.generate("gpt-4", "  name my COFFEE startup ", {"mode": "creative"})

    assert outcome.cached is True
    assert outcome.names == ["Roastly"]
    assert outcome.input_tokens == 0
    assert len(gateway.provider.requests) == 1


async def test_cache_keys_include_mode_and_deep_thinking(build_gateway):
    gateway = build_gateway(["Roastly"])
    await gateway.generate("gpt-4", "prompt", {"mode": "creative"})
    await gateway.generate("gpt-4", "prompt", {"mode": "professional"})
    await gateway.generate("gpt-4", "prompt", {"mode": "creative", "deep_thinking": True})
    assert len(gateway.provider.requests) == 3


async def test_names_are_capped(build_gateway):
    gateway = build_gateway([f"Name{i}" for i in range(15)], max_names_per_model=4)
    outcome = await gateway.generate("gpt-4", "prompt")
    assert outcome.names == ["Name0", "Name1", "Name2", "Name3"]


@pytest.mark.parametrize("prompt", ["", "   ", "x" * 20001])
async def test_bad_prompt_rejected(build_gateway, prompt):
    gateway = build_gateway(["Roastly"])
    with pytest.raises(ValidationError):
        await gateway.generate("gpt-4", prompt)
    assert gateway.factory_calls == []


async def test_unavailable_model_never_reaches_provider(build_gateway):
    gateway = build_gateway(["Roastly"], openai_api_key=None)
    with pytest.raises(ModelUnavailableError) as excinfo:
        await gateway.generate("gpt-4", "prompt")
    assert excinfo.value.kind.value == "unavailable"
    assert gateway.factory_calls == []


async def test_timeout(build_gateway):
    async def slow(request):
        await asyncio.sleep(5)

    gateway = build_gateway(slow)
    gateway.registry.update("gpt-4", timeout_seconds=0.05)

    with pytest.raises(GenerationTimeoutError) as excinfo:
        await gateway.generate("gpt-4", "prompt")
    assert excinfo.value.kind.value == "timeout"


async def test_provider_error_passes_through(build_gateway):
    failure = ProviderError("upstream said no", model_id="gpt-4", upstream_message="quota", status_code=429)
    gateway = build_gateway(failure)
    with pytest.raises(ProviderError) as excinfo:
        await gateway.generate("gpt-4", "prompt")
    assert excinfo.value is failure


async def test_unexpected_exception_becomes_provider_error(build_gateway):
    gateway = build_gateway(RuntimeError("socket exploded"))
    with pytest.raises(ProviderError) as excinfo:
        await gateway.generate("gpt-4", "prompt")
    assert excinfo.value.kind.value == "provider_error"
    assert "socket exploded" not in excinfo.value.user_message


async def test_configuration_error_means_unavailable(build_gateway):
    gateway = build_gateway(ConfigurationError("openai requires an API key"))
    with pytest.raises(ModelUnavailableError):
        await gateway.generate("gpt-4", "prompt")


async def test_failures_are_not_cached(build_gateway):
    gateway = build_gateway(RuntimeError("boom"))
    with pytest.raises(ProviderError):
        await gateway.generate("gpt-4", "prompt")
    gateway.provider.behaviour = ["Roastly"]
    outcome = await gateway.generate("gpt-4", "prompt")
    assert outcome.cached is False
