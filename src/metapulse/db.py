"""SQLite database connection and schema management.

Data is stored in ~/.metapulse/metapulse.db by default.
WAL mode is enabled so that several evaluator processes can share counters.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = os.path.expanduser("~/.metapulse")
DB_FILENAME = "metapulse.db"


def get_data_dir(data_dir: Optional[str] = None) -> Path:
    """Get the data directory, creating it if needed."""
    data_dir = Path(data_dir or os.environ.get("DATA_DIR", DEFAULT_DATA_DIR)).expanduser()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_db_url(data_dir: Optional[str] = None) -> str:
    db_path = get_data_dir(data_dir) / DB_FILENAME
    return f"sqlite+aiosqlite:///{db_path}"


def _configure_sqlite(dbapi_connection, connection_record):
    """Per-connection SQLite setup: WAL journal and a busy timeout for cross-process writers."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


_engine = None
_session_factory = None


def get_engine(data_dir: Optional[str] = None):
    global _engine
    if _engine is None:
        _engine = create_async_engine(get_db_url(data_dir), echo=False)
        event.listen(_engine.sync_engine, "connect", _configure_sqlite)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def init_db(data_dir: Optional[str] = None):
    """Create all tables if they don't exist."""
    from .sqlmodels import Base

    engine = get_engine(data_dir)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized at %s", get_data_dir(data_dir) / DB_FILENAME)


async def close_db():
    """Close the database engine."""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None
