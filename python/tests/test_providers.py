"""Tests for the HTTP provider adapters, using httpx.MockTransport."""

import json

import httpx
import pytest

from namegen.exceptions import ConfigurationError, GenerationTimeoutError, ProviderError
from namegen.llm.providers import (
    AnthropicProvider,
    GeminiProvider,
    GenerationRequest,
    OpenAICompatibleProvider,
    ProviderType,
    RetryPolicy,
    build_provider,
    parse_names,
)
from namegen.llm.registry import ModelRegistry

FAST_RETRY = RetryPolicy(attempts=3, min_wait=0, max_wait=0)
NUMBERED_REPLY = "Here are some names:\n1. BrewForge\n2. Roastly - a punchy name\n3. **Beanstalk Labs**"


def make_request(model_id="gpt-4", upstream="gpt-4"):
    return GenerationRequest(model_id=model_id, prompt="Name my coffee startup", upstream_model=upstream,
                             system_prompt="You are a naming expert.")


class Recorder:
    """MockTransport handler replaying queued responses and remembering requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def openai_reply(text, prompt_tokens=12, completion_tokens=30):
    return httpx.Response(200, json={
        "choices": [{"message": {"role": "assistant", "content": text}}],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    })


def openai_provider(handler, **kwargs):
    return OpenAICompatibleProvider(
        api_key="sk-test",
        base_url="https://api.openai.test/v1",
        retry_policy=FAST_RETRY,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


# --- OpenAI-compatible ---

async def test_openai_success():
    handler = Recorder(openai_reply(NUMBERED_REPLY))
    response = await openai_provider(handler).generate(make_request())

    assert response.names == ["BrewForge", "Roastly", "Beanstalk Labs"]
    assert response.input_tokens == 12
    assert response.output_tokens == 30
    assert response.provider == "openai"

    sent = handler.requests[0]
    assert sent.url == "https://api.openai.test/v1/chat/completions"
    assert sent.headers["authorization"] == "Bearer sk-test"
    body = json.loads(sent.content)
    assert body["model"] == "gpt-4"
    assert body["messages"][0] == {"role": "system", "content": "You are a naming expert."}


async def test_server_errors_are_retried():
    handler = Recorder(httpx.Response(500, text="oops"), openai_reply("Roastly"))
    response = await openai_provider(handler).generate(make_request())

    assert response.names == ["Roastly"]
    assert len(handler.requests) == 2


async def test_client_errors_are_not_retried():
    handler = Recorder(httpx.Response(401, text="bad key"))

    with pytest.raises(ProviderError) as excinfo:
        await openai_provider(handler).generate(make_request())

    assert excinfo.value.status_code == 401
    assert len(handler.requests) == 1
    # Upstream text is kept for operators but not shown to callers
    assert "bad key" not in json.dumps(excinfo.value.to_api_response())


async def test_rate_limit_exhausts_attempts():
    handler = Recorder(httpx.Response(429, text="slow down"))

    with pytest.raises(ProviderError) as excinfo:
        await openai_provider(handler).generate(make_request())

    assert excinfo.value.status_code == 429
    assert len(handler.requests) == 3


async def test_connection_failure_becomes_provider_error():
    handler = Recorder(httpx.ConnectError("connection refused"))

    with pytest.raises(ProviderError):
        await openai_provider(handler).generate(make_request())
    assert len(handler.requests) == 3


async def test_read_timeout_becomes_timeout_error():
    handler = Recorder(httpx.ReadTimeout("timed out"))

    with pytest.raises(GenerationTimeoutError):
        await openai_provider(handler).generate(make_request())


async def test_malformed_payload_becomes_provider_error():
    handler = Recorder(httpx.Response(200, json={"unexpected": True}))

    with pytest.raises(ProviderError) as excinfo:
        await openai_provider(handler).generate(make_request())
    assert "unexpected payload" in excinfo.value.message


async def test_reply_without_names_is_an_error():
    handler = Recorder(openai_reply("Sure! Here you go:"))
    with pytest.raises(ProviderError):
        await openai_provider(handler).generate(make_request())


async def test_missing_usage_falls_back_to_estimate():
    handler = Recorder(httpx.Response(200, json={"choices": [{"message": {"content": "Roastly"}}]}))
    response = await openai_provider(handler).generate(make_request())
    assert response.input_tokens > 0
    assert response.output_tokens > 0


async def test_missing_api_key_is_configuration_error():
    provider = OpenAICompatibleProvider(api_key=None, base_url="https://api.openai.test/v1")
    with pytest.raises(ConfigurationError):
        await provider.generate(make_request())


async def test_max_names_caps_the_reply():
    reply = "\n".join(f"{i}. Name{i}" for i in range(1, 20))
    handler = Recorder(openai_reply(reply))
    response = await openai_provider(handler, max_names=5).generate(make_request())
    assert response.names == ["Name1", "Name2", "Name3", "Name4", "Name5"]


# --- Anthropic ---

async def test_anthropic_request_and_parsing():
    handler = Recorder(httpx.Response(200, json={
        "content": [{"type": "text", "text": "- Kettle & Kiln\n- Steamline"}],
        "usage": {"input_tokens": 20, "output_tokens": 8},
    }))
    provider = AnthropicProvider(
        api_key="sk-ant", base_url="https://api.anthropic.test/v1", api_version="2023-06-01",
        retry_policy=FAST_RETRY, transport=httpx.MockTransport(handler),
    )
    response = await provider.generate(make_request("claude-3.5-sonnet", "claude-3-5-sonnet-20241022"))

    assert response.names == ["Kettle & Kiln", "Steamline"]
    assert (response.input_tokens, response.output_tokens) == (20, 8)
    sent = handler.requests[0]
    assert sent.url == "https://api.anthropic.test/v1/messages"
    assert sent.headers["x-api-key"] == "sk-ant"
    assert sent.headers["anthropic-version"] == "2023-06-01"
    assert json.loads(sent.content)["system"] == "You are a naming expert."


# --- Gemini ---

async def test_gemini_request_and_parsing():
    handler = Recorder(httpx.Response(200, json={
        "candidates": [{"content": {"parts": [{"text": "1) Arabica Atlas\n2) Crema Works"}]}}],
        "usageMetadata": {"promptTokenCount": 15, "candidatesTokenCount": 6},
    }))
    provider = GeminiProvider(
        api_key="g-key", base_url="https://gemini.test/v1beta",
        retry_policy=FAST_RETRY, transport=httpx.MockTransport(handler),
    )
    response = await provider.generate(make_request("gemini-1.5-pro", "gemini-1.5-pro"))

    assert response.names == ["Arabica Atlas", "Crema Works"]
    sent = handler.requests[0]
    assert sent.url.path == "/v1beta/models/gemini-1.5-pro:generateContent"
    assert sent.url.params["key"] == "g-key"


# --- Factory ---

def test_build_provider_picks_adapter(settings):
    registry = ModelRegistry(settings_provider=lambda: settings)

    grok = build_provider(registry.get("grok-beta"), settings)
    assert isinstance(grok, OpenAICompatibleProvider)
    assert grok.provider_type == ProviderType.XAI
    assert grok.api_key == "xai-test"

    assert isinstance(build_provider(registry.get("claude-3.5-sonnet"), settings), AnthropicProvider)
    assert isinstance(build_provider(registry.get("gemini-1.5-pro"), settings), GeminiProvider)
    assert build_provider(registry.get("gpt-4"), settings).timeout == settings.adapter_timeout_seconds


# --- Reply parsing ---

@pytest.mark.parametrize("text,expected", [
    ("1. Alpha\n2. Beta", ["Alpha", "Beta"]),
    ("* Alpha\n• Beta\n- Gamma", ["Alpha", "Beta", "Gamma"]),
    ('"Alpha"\n\'Beta\'', ["Alpha", "Beta"]),
    ("Alpha: the first letter\nBeta — the second", ["Alpha", "Beta"]),
    ("Alpha\nalpha\nALPHA", ["Alpha"]),
    ("Ideas:\n\n1. Alpha\n", ["Alpha"]),
    ("", []),
])
def test_parse_names(text, expected):
    assert parse_names(text) == expected


def test_parse_names_skips_overlong_lines():
    assert parse_names("x" * 81 + "\nShort") == ["Short"]
