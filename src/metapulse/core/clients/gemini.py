"""Google Gemini generateContent client.

API docs: https://ai.google.dev/api/generate-content
Rate limit: 60 requests/minute.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..errors import ProviderError
from .base import REPAIR_INSTRUCTION, ChatProvider

logger = logging.getLogger(__name__)

API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.5-flash"


class GeminiProvider(ChatProvider):
    name = "gemini"

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, **kwargs):
        super().__init__(api_key, model, **kwargs)

    async def _complete(
        self,
        client: httpx.AsyncClient,
        system: str,
        user: str,
        previous: Optional[str] = None,
    ) -> tuple[str, Optional[int]]:
        contents = [{"role": "user", "parts": [{"text": user}]}]
        if previous is not None:
            contents.append({"role": "model", "parts": [{"text": previous}]})
            contents.append({"role": "user", "parts": [{"text": REPAIR_INSTRUCTION}]})

        body = {
            "system_instruction": {"parts": [{"text": system}]},
            "contents": contents,
            "generationConfig": {
                "temperature": 0.1,
                "maxOutputTokens": 500,
                "responseMimeType": "application/json",
            },
        }
        response = await client.post(
            f"{API_BASE}/models/{self.model}:generateContent",
            params={"key": self.api_key},
            json=body,
        )
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(self.name, "response body is not JSON") from exc

        try:
            candidates = data.get("candidates") or [{}]
            parts = (candidates[0].get("content") or {}).get("parts") or []
            content = "".join(part.get("text", "") for part in parts)
            tokens = (data.get("usageMetadata") or {}).get("totalTokenCount")
        except (AttributeError, IndexError, KeyError, TypeError) as exc:
            raise ProviderError(self.name, "unexpected response shape") from exc
        return content, tokens if isinstance(tokens, int) else None
