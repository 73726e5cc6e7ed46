"""Google Gemini generateContent provider."""

from typing import Any, Dict, Tuple

import httpx

from namegen.llm.providers.base import GenerationRequest, NameProvider, ProviderType


class GeminiProvider(NameProvider):

    def _get_provider_type(self) -> ProviderType:
        return ProviderType.GOOGLE

    async def _complete(self, client: httpx.AsyncClient, request: GenerationRequest) -> Tuple[str, int, int]:
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
            "generationConfig": {"maxOutputTokens": request.max_tokens, "temperature": request.temperature},
        }
        if request.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}
        r = await client.post(
            f"{self.base_url}/models/{request.upstream_model}:generateContent",
            params={"key": self.api_key},
            json=payload,
        )
        self._raise_for_status(r, request)
        d = r.json()
        parts = d["candidates"][0]["content"]["parts"]
        text = "".join(part.get("text", "") for part in parts)
        usage = d.get("usageMetadata") or {}
        return text, int(usage.get("promptTokenCount", 0)), int(usage.get("candidatesTokenCount", 0))
