"""Shared SQLAlchemy metadata, declarative base, and model mixins."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from ulid import ULID

from .types import UTCDateTime

# Naming convention (helps Alembic + keeps constraints consistent)
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)


class Base(DeclarativeBase):
    metadata = metadata


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def generate_id(prefix: str) -> str:
    """Return a prefixed, lexicographically sortable identifier (``role_01H...``)."""

    return f"{prefix}_{ULID()}"


class TimestampMixin:
    """Mixin that records created/updated timestamps as timezone-aware datetimes."""

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )


__all__ = [
    "Base",
    "NAMING_CONVENTION",
    "TimestampMixin",
    "generate_id",
    "metadata",
    "utc_now",
]
