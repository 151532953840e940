"""Per-service rate limiting and retry/backoff for outbound calls.

One ``RateLimiter`` is built at process start and handed to every client
that talks to an external service. Each service gets a fixed-window request
counter plus an optional minimum spacing between consecutive requests.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections import defaultdict
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

import httpx

from .errors import RateLimitExceeded
from .models import LimitCheck, RateLimitConfig, RateLimitEntry, RateLimitStatus
from .store import CounterStore, MemoryCounterStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

DEFAULT_RATE_LIMITS: dict[str, RateLimitConfig] = {
    # AI providers
    "groq:chat": RateLimitConfig(max_requests=30, window_ms=MINUTE_MS, retry_after_ms=MINUTE_MS, burst_limit=5),
    "gemini:chat": RateLimitConfig(max_requests=60, window_ms=MINUTE_MS, retry_after_ms=MINUTE_MS, burst_limit=10),
    # Social
    "twitter:search": RateLimitConfig(max_requests=300, window_ms=15 * MINUTE_MS, retry_after_ms=15 * MINUTE_MS, burst_limit=10),
    "twitter:user_lookup": RateLimitConfig(max_requests=300, window_ms=15 * MINUTE_MS, retry_after_ms=15 * MINUTE_MS),
    # Google
    "google:search": RateLimitConfig(max_requests=100, window_ms=DAY_MS, retry_after_ms=HOUR_MS),
    "google:translate": RateLimitConfig(max_requests=1000, window_ms=MINUTE_MS, retry_after_ms=MINUTE_MS),
    # Market data
    "dexscreener:search": RateLimitConfig(max_requests=300, window_ms=MINUTE_MS, retry_after_ms=MINUTE_MS, burst_limit=10),
    "dexscreener:pairs": RateLimitConfig(max_requests=300, window_ms=MINUTE_MS, retry_after_ms=MINUTE_MS),
    "pumpportal:token": RateLimitConfig(max_requests=100, window_ms=MINUTE_MS, retry_after_ms=MINUTE_MS),
    "coingecko:price": RateLimitConfig(max_requests=50, window_ms=MINUTE_MS, retry_after_ms=MINUTE_MS),
    # Internal
    "internal:analysis": RateLimitConfig(max_requests=1000, window_ms=MINUTE_MS, retry_after_ms=1000),
}

_RATE_LIMIT_PHRASES = ("rate limit", "too many requests", "quota exceeded", "rate exceeded")
_RETRY_AFTER_PATTERN = re.compile(r"retry.*?(\d+).*?(second|minute|hour)", re.IGNORECASE)
_UNIT_MS = {"second": 1000, "minute": MINUTE_MS, "hour": HOUR_MS}


# ─── Retry hints ─────────────────────────────────────────────────────────────


def _status_code(exc: BaseException) -> Optional[int]:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    for attr in ("status", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for HTTP 429 or an error message that reads like a quota rejection."""
    if _status_code(exc) == 429:
        return True
    message = str(exc).lower()
    return any(phrase in message for phrase in _RATE_LIMIT_PHRASES)


def retry_after_from_headers(exc: BaseException) -> Optional[float]:
    """Structured ``Retry-After`` header (seconds) converted to milliseconds."""
    headers: Any = None
    if isinstance(exc, httpx.HTTPStatusError):
        headers = exc.response.headers
    else:
        headers = getattr(exc, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after") or headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value) * 1000
    except (TypeError, ValueError):
        return None


def retry_after_from_message(message: str) -> Optional[float]:
    """Best-effort parse of phrases like "retry after 30 seconds"."""
    match = _RETRY_AFTER_PATTERN.search(message or "")
    if not match:
        return None
    return int(match.group(1)) * _UNIT_MS[match.group(2).lower()]


def extract_retry_after_ms(exc: BaseException) -> Optional[float]:
    """Prefer transport metadata; fall back to the error text."""
    delay = retry_after_from_headers(exc)
    if delay is not None:
        return delay
    return retry_after_from_message(str(exc))


def _now_ms() -> float:
    return time.time() * 1000


# ─── Limiter ─────────────────────────────────────────────────────────────────


class RateLimiter:
    """Fixed-window quota plus burst spacing, keyed by service name."""

    def __init__(
        self,
        configs: Optional[Mapping[str, RateLimitConfig]] = None,
        store: Optional[CounterStore] = None,
        clock: Callable[[], float] = _now_ms,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._configs: dict[str, RateLimitConfig] = dict(DEFAULT_RATE_LIMITS if configs is None else configs)
        self._store = store or MemoryCounterStore(clock=lambda: clock() / 1000)
        self._clock = clock
        self._sleep = sleep
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def configs(self) -> dict[str, RateLimitConfig]:
        return dict(self._configs)

    @staticmethod
    def _key(service: str) -> str:
        return f"ratelimit:{service}"

    async def _load(self, service: str) -> tuple[Optional[str], Optional[RateLimitEntry]]:
        raw = await self._store.get(self._key(service))
        if raw is None:
            return None, None
        return raw, RateLimitEntry.model_validate_json(raw)

    @staticmethod
    def _ttl_seconds(config: RateLimitConfig) -> float:
        # Keep the entry around long enough for both the window and the spacing check.
        return 2 * max(config.window_ms, config.min_spacing_ms) / 1000

    async def check_limit(self, service: str) -> LimitCheck:
        """Consume one request slot for ``service`` if its quota allows it.

        The slot is claimed with a compare-and-set on the stored entry, so
        limiters in other processes sharing the store cannot overshoot the
        quota. A lost race re-reads the entry and decides again.
        """
        config = self._configs.get(service)
        if config is None:
            logger.warning("No rate limit config found for service: %s", service)
            return LimitCheck(allowed=True)

        async with self._locks[service]:
            while True:
                now = self._clock()
                raw, entry = await self._load(service)
                entry = entry or RateLimitEntry(count=0, reset_time=now + config.window_ms)

                if now >= entry.reset_time:
                    entry.count = 0
                    entry.reset_time = now + config.window_ms

                spacing = config.min_spacing_ms
                if spacing and now - entry.last_request < spacing:
                    return LimitCheck(
                        allowed=False,
                        retry_after_ms=spacing - (now - entry.last_request),
                        remaining=max(0, config.max_requests - entry.count),
                    )

                if entry.count >= config.max_requests:
                    return LimitCheck(allowed=False, retry_after_ms=entry.reset_time - now, remaining=0)

                entry.count += 1
                entry.last_request = now
                claimed = await self._store.compare_and_set(
                    self._key(service), raw, entry.model_dump_json(), self._ttl_seconds(config)
                )
                if claimed:
                    return LimitCheck(allowed=True, remaining=max(0, config.max_requests - entry.count))
                logger.debug("Lost a race for %s quota, re-reading", service)

    async def execute(
        self,
        service: str,
        fn: Callable[[], Awaitable[T]],
        max_retries: int = 3,
        backoff_ms: float = 1000,
    ) -> T:
        """Run ``fn`` under the service's quota, retrying rate-limit failures with backoff."""
        retries = 0
        errors: list[BaseException] = []
        last_wait: Optional[float] = None

        while retries <= max_retries:
            check = await self.check_limit(service)
            if check.allowed:
                try:
                    return await fn()
                except Exception as exc:
                    if not is_rate_limit_error(exc):
                        raise
                    errors.append(exc)
                    last_wait = extract_retry_after_ms(exc) or backoff_ms * (2 ** retries)
                    logger.warning("Rate limited by %s API, retrying after %.0fms", service, last_wait)
                    await self._sleep(last_wait / 1000)
                    retries += 1
                    continue

            if retries >= max_retries:
                raise RateLimitExceeded(
                    service,
                    f"Rate limit exceeded for {service}. Max retries reached.",
                    retry_after_ms=check.retry_after_ms,
                    errors=errors,
                )
            last_wait = check.retry_after_ms or backoff_ms * (2 ** retries)
            logger.warning(
                "Rate limited for %s, waiting %.0fms before retry %d/%d",
                service, last_wait, retries + 1, max_retries,
            )
            await self._sleep(last_wait / 1000)
            retries += 1

        raise RateLimitExceeded(
            service,
            f"Rate limit exceeded for {service} after {max_retries} retries",
            retry_after_ms=last_wait,
            errors=errors,
        )

    async def get_status(self, service: str) -> RateLimitStatus:
        """Remaining quota and window reset time; -1 remaining when unknown."""
        config = self._configs.get(service)
        _, entry = await self._load(service) if config else (None, None)
        if config is None or entry is None:
            return RateLimitStatus(remaining=-1, reset_time=0, is_limited=False)
        remaining = max(0, config.max_requests - entry.count)
        return RateLimitStatus(
            remaining=remaining,
            reset_time=entry.reset_time,
            is_limited=remaining == 0 and self._clock() < entry.reset_time,
        )

    async def get_all_statuses(self) -> dict[str, RateLimitStatus]:
        return {service: await self.get_status(service) for service in self._configs}

    def update_config(self, service: str, config: RateLimitConfig) -> None:
        self._configs[service] = config

    async def reset_limits(self, service: Optional[str] = None) -> None:
        """Forget counter state for one service, or for every configured service."""
        services = [service] if service else list(self._configs)
        for name in services:
            await self._store.delete(self._key(name))
