"""Shared prompt, reply parsing and call flow for the AI provider clients.

Each provider turns a TokenSnapshot into a validated AiScore:
1. Build the system + user prompt from the snapshot
2. Call the model through the shared RateLimiter (service ``<provider>:chat``)
3. Parse the JSON reply; on a malformed reply ask once for a corrected one
4. Validate the parsed object against the AiScore schema
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

import httpx
from pydantic import ValidationError

from ..errors import ProviderError, RateLimitExceeded, SchemaValidationError
from ..models import AiScore, ProviderScore, ProviderUsage, TokenSnapshot
from ..ratelimit import RateLimiter
from ..store import CounterStore, MemoryCounterStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(20.0, connect=5.0)
USAGE_TTL_SECONDS = 2 * 24 * 3600

SYSTEM_PROMPT = """You are an expert crypto analyst. Analyze the provided token data and return ONLY a valid JSON response matching this exact schema:

{
  "prob_enterable": number (0-1),
  "risk": "LOW" | "MEDIUM" | "HIGH",
  "expected_roi_p50": number (>=0),
  "expected_roi_p90": number (>=0),
  "reasoning": string (6-800 chars)
}

Return ONLY the JSON object, no other text."""

REPAIR_INSTRUCTION = "Return valid JSON only matching the schema. No additional text."


def _fmt(value) -> str:
    if value is None:
        return "unknown"
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def build_prompt(snapshot: TokenSnapshot) -> tuple[str, str]:
    """Return the (system, user) prompt pair for a snapshot."""
    user = "\n".join([
        "Analyze this token data:",
        f"Mint: {snapshot.mint}",
        f"Name: {snapshot.name or 'Unknown'}",
        f"Symbol: {snapshot.symbol or 'Unknown'}",
        f"Market Cap: {_fmt(snapshot.market_cap)} SOL",
        f"Liquidity: {_fmt(snapshot.liquidity)} SOL",
        f"Volume 24h: {_fmt(snapshot.volume_24h)} SOL",
        f"Age: {_fmt(snapshot.age_hours)} hours",
        f"Unique Buyers: {_fmt(snapshot.unique_buyers)}",
        f"Buyer/Seller Ratio: {_fmt(snapshot.buyer_seller_ratio)}",
        f"Whale Share: {_fmt(snapshot.whale_share)}%",
        f"TX Count 1h: {_fmt(snapshot.tx_count_1h)}",
        "",
        "Provide investment analysis as JSON only.",
    ])
    return SYSTEM_PROMPT, user


def parse_json_payload(text: Optional[str]) -> Optional[dict]:
    """Extract a JSON object from a model reply, handling markdown code fences."""
    if not text:
        return None
    text = text.strip()
    if text.startswith("```"):
        lines = [line for line in text.split("\n") if not line.strip().startswith("```")]
        text = "\n".join(lines).strip()
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}") + 1
        if start < 0 or end <= start:
            return None
        try:
            payload = json.loads(text[start:end])
        except json.JSONDecodeError:
            return None
    return payload if isinstance(payload, dict) else None


def validate_ai_score(payload: dict) -> AiScore:
    try:
        return AiScore.model_validate(payload)
    except ValidationError as exc:
        raise SchemaValidationError(
            f"AI reply failed schema validation ({exc.error_count()} errors)",
            exc.errors(include_url=False),
        ) from exc


class ChatProvider(ABC):
    """One remote chat model, called at most at the limiter's configured rate."""

    name = "provider"

    def __init__(
        self,
        api_key: str,
        model: str,
        limiter: Optional[RateLimiter] = None,
        *,
        store: Optional[CounterStore] = None,
        timeout: httpx.Timeout = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 3,
        backoff_ms: float = 1000,
        daily_token_budget: Optional[int] = None,
    ):
        if not api_key:
            raise ValueError(f"{self.name} API key is required")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_ms = backoff_ms
        self.daily_token_budget = daily_token_budget
        self._limiter = limiter or RateLimiter()
        self._store = store or MemoryCounterStore()
        self._client = client

    @property
    def service(self) -> str:
        return f"{self.name}:chat"

    @abstractmethod
    async def _complete(
        self,
        client: httpx.AsyncClient,
        system: str,
        user: str,
        previous: Optional[str] = None,
    ) -> tuple[str, Optional[int]]:
        """Send one chat request and return (reply text, tokens used).

        ``previous`` carries a malformed earlier reply that the model must correct.
        """

    async def get_score(self, snapshot: TokenSnapshot) -> ProviderScore:
        started = time.monotonic()
        try:
            await self._check_budget()
            if self._client is not None:
                payload, tokens = await self._score_with(self._client, snapshot)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    payload, tokens = await self._score_with(client, snapshot)
            score = validate_ai_score(payload)
        except RateLimitExceeded as exc:
            raise ProviderError(self.name, f"rate limit denied: {exc}") from exc
        except SchemaValidationError as exc:
            raise ProviderError(self.name, str(exc)) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(self.name, f"transport failure: {exc}") from exc

        latency_ms = (time.monotonic() - started) * 1000
        logger.debug("%s scored %s in %.0fms (%s tokens)", self.name, snapshot.mint, latency_ms, tokens)
        return ProviderScore(response=score, tokens_used=tokens, latency_ms=latency_ms)

    async def _score_with(self, client: httpx.AsyncClient, snapshot: TokenSnapshot) -> tuple[dict, Optional[int]]:
        system, user = build_prompt(snapshot)
        content, tokens = await self._call(client, system, user)
        payload = parse_json_payload(content)
        if payload is None:
            logger.warning("%s returned malformed JSON for %s, asking for a corrected reply", self.name, snapshot.mint)
            content, retry_tokens = await self._call(client, system, user, previous=content)
            payload = parse_json_payload(content)
            if retry_tokens is not None:
                tokens = (tokens or 0) + retry_tokens
            if payload is None:
                raise ProviderError(self.name, "reply was not valid JSON after one repair attempt")
        return payload, tokens

    async def _call(
        self,
        client: httpx.AsyncClient,
        system: str,
        user: str,
        previous: Optional[str] = None,
    ) -> tuple[str, Optional[int]]:
        content, tokens = await self._limiter.execute(
            self.service,
            lambda: self._complete(client, system, user, previous),
            max_retries=self.max_retries,
            backoff_ms=self.backoff_ms,
        )
        await self._record_usage(tokens)
        if not content:
            raise ProviderError(self.name, "no content in response")
        return content, tokens

    # ─── Daily usage ─────────────────────────────────────────────────────────

    @staticmethod
    def _today() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d")

    def _usage_key(self, day: str, counter: str) -> str:
        return f"{self.name}:usage:{day}:{counter}"

    async def _record_usage(self, tokens: Optional[int]) -> None:
        day = self._today()
        await self._store.incr(self._usage_key(day, "requests"), 1, USAGE_TTL_SECONDS)
        if tokens:
            await self._store.incr(self._usage_key(day, "tokens"), tokens, USAGE_TTL_SECONDS)

    async def _check_budget(self) -> None:
        if self.daily_token_budget is None:
            return
        used = await self._store.get(self._usage_key(self._today(), "tokens"))
        if used is not None and int(used) >= self.daily_token_budget:
            raise ProviderError(self.name, f"daily token budget of {self.daily_token_budget} exhausted")

    async def usage(self) -> ProviderUsage:
        day = self._today()
        requests = await self._store.get(self._usage_key(day, "requests"))
        tokens = await self._store.get(self._usage_key(day, "tokens"))
        return ProviderUsage(
            provider=self.name,
            day=day,
            requests=int(requests or 0),
            tokens=int(tokens or 0),
            daily_token_budget=self.daily_token_budget,
        )
