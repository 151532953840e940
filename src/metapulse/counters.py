"""SQLite-backed counter store shared by every process on the host.

Each operation is a single statement in its own transaction, so ``incr`` is
atomic across processes. Expired keys read as missing and are overwritten by
the next write.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from sqlalchemy import Integer, String, and_, case, cast, delete, or_, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .core.store import CounterStore
from .db import get_session_factory
from .sqlmodels import CounterEntry

logger = logging.getLogger(__name__)


class SqlCounterStore(CounterStore):
    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._session_factory = session_factory
        self._clock = clock

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    def _expiry(self, ttl_seconds: Optional[float]) -> Optional[float]:
        return self._clock() + ttl_seconds if ttl_seconds else None

    def _expired(self, now: float):
        return and_(CounterEntry.expires_at.is_not(None), CounterEntry.expires_at <= now)

    async def get(self, key: str) -> Optional[str]:
        now = self._clock()
        async with self._sessions()() as session:
            row = (await session.execute(
                select(CounterEntry.value, CounterEntry.expires_at).where(CounterEntry.key == key)
            )).first()
        if row is None:
            return None
        if row.expires_at is not None and row.expires_at <= now:
            return None
        return row.value

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        stmt = sqlite_insert(CounterEntry).values(key=key, value=value, expires_at=self._expiry(ttl_seconds))
        stmt = stmt.on_conflict_do_update(
            index_elements=[CounterEntry.key],
            set_={"value": stmt.excluded.value, "expires_at": stmt.excluded.expires_at},
        )
        async with self._sessions()() as session:
            await session.execute(stmt)
            await session.commit()

    async def incr(self, key: str, amount: int = 1, ttl_seconds: Optional[float] = None) -> int:
        now = self._clock()
        stmt = sqlite_insert(CounterEntry).values(key=key, value=str(amount), expires_at=self._expiry(ttl_seconds))
        expired = self._expired(now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[CounterEntry.key],
            set_={
                "value": case(
                    (expired, stmt.excluded.value),
                    else_=cast(cast(CounterEntry.value, Integer) + amount, String),
                ),
                "expires_at": case(
                    (expired, stmt.excluded.expires_at),
                    else_=CounterEntry.expires_at,
                ),
            },
        ).returning(CounterEntry.value)

        async with self._sessions()() as session:
            result = await session.execute(stmt)
            value = result.scalar_one()
            await session.commit()
        return int(value)

    async def compare_and_set(
        self,
        key: str,
        expected: Optional[str],
        value: str,
        ttl_seconds: Optional[float] = None,
    ) -> bool:
        """Conditional write in one statement; the row count tells whether it applied."""
        now = self._clock()
        expires_at = self._expiry(ttl_seconds)
        if expected is None:
            stmt = sqlite_insert(CounterEntry).values(key=key, value=value, expires_at=expires_at)
            stmt = stmt.on_conflict_do_update(
                index_elements=[CounterEntry.key],
                set_={"value": stmt.excluded.value, "expires_at": stmt.excluded.expires_at},
                where=self._expired(now),
            )
        else:
            stmt = (
                update(CounterEntry)
                .where(
                    CounterEntry.key == key,
                    CounterEntry.value == expected,
                    or_(CounterEntry.expires_at.is_(None), CounterEntry.expires_at > now),
                )
                .values(value=value, expires_at=expires_at)
                .execution_options(synchronize_session=False)
            )

        async with self._sessions()() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount == 1

    async def delete(self, key: str) -> None:
        async with self._sessions()() as session:
            await session.execute(delete(CounterEntry).where(CounterEntry.key == key))
            await session.commit()

    async def purge_expired(self) -> int:
        """Delete expired rows. Returns how many were removed."""
        async with self._sessions()() as session:
            result = await session.execute(delete(CounterEntry).where(self._expired(self._clock())))
            await session.commit()
        if result.rowcount:
            logger.debug("Purged %d expired counters", result.rowcount)
        return result.rowcount or 0
