"""Groq chat-completions client (OpenAI-compatible API).

API docs: https://console.groq.com/docs/api-reference#chat
Rate limit: 30 requests/minute on the free tier.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..errors import ProviderError
from .base import REPAIR_INSTRUCTION, ChatProvider

logger = logging.getLogger(__name__)

API_BASE = "https://api.groq.com/openai/v1"
DEFAULT_MODEL = "llama-3.1-8b-instant"


class GroqProvider(ChatProvider):
    name = "groq"

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, **kwargs):
        super().__init__(api_key, model, **kwargs)

    def _messages(self, system: str, user: str, previous: Optional[str]) -> list[dict]:
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]
        if previous is not None:
            messages.append({"role": "assistant", "content": previous})
            messages.append({"role": "user", "content": REPAIR_INSTRUCTION})
        return messages

    async def _complete(
        self,
        client: httpx.AsyncClient,
        system: str,
        user: str,
        previous: Optional[str] = None,
    ) -> tuple[str, Optional[int]]:
        body = {
            "model": self.model,
            "messages": self._messages(system, user, previous),
            "temperature": 0.1,
            "max_tokens": 500,
            "response_format": {"type": "json_object"},
        }
        response = await client.post(
            f"{API_BASE}/chat/completions",
            json=body,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        response.raise_for_status()
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(self.name, "response body is not JSON") from exc

        try:
            choices = data.get("choices") or [{}]
            content = (choices[0].get("message") or {}).get("content") or ""
            tokens = (data.get("usage") or {}).get("total_tokens")
        except (AttributeError, IndexError, KeyError, TypeError) as exc:
            raise ProviderError(self.name, "unexpected response shape") from exc
        if not isinstance(content, str):
            raise ProviderError(self.name, "unexpected response shape")
        return content, tokens if isinstance(tokens, int) else None
