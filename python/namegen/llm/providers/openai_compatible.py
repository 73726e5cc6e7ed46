"""OpenAI chat-completions provider; also serves xAI's compatible endpoint."""

from typing import Any, Dict, List, Tuple

import httpx

from namegen.llm.providers.base import GenerationRequest, NameProvider, ProviderType


class OpenAICompatibleProvider(NameProvider):
    """Chat-completions API (OpenAI, xAI)."""

    def __init__(self, provider_type: ProviderType = ProviderType.OPENAI, **kwargs):
        self._provider_type = provider_type
        super().__init__(**kwargs)

    def _get_provider_type(self) -> ProviderType:
        return self._provider_type

    def _build_messages(self, request: GenerationRequest) -> List[Dict[str, str]]:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})
        return messages

    async def _complete(self, client: httpx.AsyncClient, request: GenerationRequest) -> Tuple[str, int, int]:
        payload: Dict[str, Any] = {
            "model": request.upstream_model,
            "messages": self._build_messages(request),
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        r = await client.post(
            f"{self.base_url}/chat/completions",
            headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            json=payload,
        )
        self._raise_for_status(r, request)
        d = r.json()
        usage = d.get("usage") or {}
        return (
            d["choices"][0]["message"]["content"] or "",
            int(usage.get("prompt_tokens", 0)),
            int(usage.get("completion_tokens", 0)),
        )
