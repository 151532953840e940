"""Key-value counter store used for cross-call limiter and usage state.

``MemoryCounterStore`` serves a single process. For several processes on one
host, ``metapulse.counters.SqlCounterStore`` implements the same interface on
top of SQLite.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Callable, Optional


class CounterStore(ABC):
    """Async get/set/incr store with per-key TTL (seconds)."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        ...

    @abstractmethod
    async def incr(self, key: str, amount: int = 1, ttl_seconds: Optional[float] = None) -> int:
        """Atomically add ``amount`` and return the new value.

        ``ttl_seconds`` only applies when the key is created.
        """

    @abstractmethod
    async def compare_and_set(
        self,
        key: str,
        expected: Optional[str],
        value: str,
        ttl_seconds: Optional[float] = None,
    ) -> bool:
        """Write ``value`` only if the live value still equals ``expected``.

        ``expected=None`` means the key must be missing or expired. Returns
        whether the write happened.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


class MemoryCounterStore(CounterStore):
    """Process-local store. Operations never await, so each is atomic on the event loop."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: dict[str, tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[str]:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def _expiry(self, ttl_seconds: Optional[float]) -> Optional[float]:
        return self._clock() + ttl_seconds if ttl_seconds else None

    async def get(self, key: str) -> Optional[str]:
        return self._live(key)

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        self._data[key] = (value, self._expiry(ttl_seconds))

    async def incr(self, key: str, amount: int = 1, ttl_seconds: Optional[float] = None) -> int:
        current = self._live(key)
        if current is None:
            new_value = amount
            expires_at = self._expiry(ttl_seconds)
        else:
            new_value = int(current) + amount
            expires_at = self._data[key][1]
        self._data[key] = (str(new_value), expires_at)
        return new_value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def compare_and_set(
        self,
        key: str,
        expected: Optional[str],
        value: str,
        ttl_seconds: Optional[float] = None,
    ) -> bool:
        if self._live(key) != expected:
            return False
        self._data[key] = (value, self._expiry(ttl_seconds))
        return True
