"""Tenant and key rows owned by collaborators outside the RBAC engine."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from keygate_db import Base, TimestampMixin, UTCDateTime

from ._ids import ID_LENGTH, PrefixedIdPrimaryKeyMixin


class Workspace(PrefixedIdPrimaryKeyMixin, TimestampMixin, Base):
    """Tenant boundary every RBAC entity is scoped to."""

    __tablename__ = "workspaces"
    __id_prefix__ = "ws"

    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Key(PrefixedIdPrimaryKeyMixin, TimestampMixin, Base):
    """API key record; soft-deleted keys keep their row with ``deleted_at`` set."""

    __tablename__ = "keys"
    __id_prefix__ = "key"

    workspace_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (Index("ix_keys_workspace_id", "workspace_id"),)


__all__ = ["Key", "Workspace"]
