"""SQLAlchemy Declarative Base — shared base class and column helpers for all ORM models.

Invariants:
    - All models inherit from Base
    - Base is the single source of truth for table metadata
    - as_utc() normalizes datetimes read back from backends without tz support

Design Decisions:
    - Separate file for Base: avoids circular imports between models
"""

from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all BadgeLedger ORM models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite returns naive datetimes for DateTime(timezone=True); treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
