"""SQLAlchemy models for the shared SQLite counter store.

Holds short-lived rate-limit entries and daily provider usage counters so
that several processes on one host draw from the same quotas.
"""

from __future__ import annotations

from sqlalchemy import Float, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class CounterEntry(Base):
    """One key of the counter store. ``expires_at`` is a Unix timestamp."""

    __tablename__ = "counters"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        Index("ix_counters_expires_at", "expires_at"),
    )
