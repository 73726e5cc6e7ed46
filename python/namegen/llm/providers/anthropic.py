"""Anthropic Messages API provider."""

from typing import Any, Dict, Tuple

import httpx

from namegen.llm.providers.base import GenerationRequest, NameProvider, ProviderType


class AnthropicProvider(NameProvider):

    def __init__(self, api_version: str = "2023-06-01", **kwargs):
        self.api_version = api_version
        super().__init__(**kwargs)

    def _get_provider_type(self) -> ProviderType:
        return ProviderType.ANTHROPIC

    async def _complete(self, client: httpx.AsyncClient, request: GenerationRequest) -> Tuple[str, int, int]:
        payload: Dict[str, Any] = {
            "model": request.upstream_model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt
        r = await client.post(
            f"{self.base_url}/messages",
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": self.api_version,
                "content-type": "application/json",
            },
            json=payload,
        )
        self._raise_for_status(r, request)
        d = r.json()
        text = "".join(block.get("text", "") for block in d["content"] if block.get("type", "text") == "text")
        usage = d.get("usage") or {}
        return text, int(usage.get("input_tokens", 0)), int(usage.get("output_tokens", 0))
