"""Append-only audit log written by the default SQL audit sink."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from keygate_db import Base, TimestampMixin

from ._ids import ID_LENGTH, PrefixedIdPrimaryKeyMixin


class AuditLog(PrefixedIdPrimaryKeyMixin, TimestampMixin, Base):
    """One structured entry per RBAC mutation."""

    __tablename__ = "audit_logs"
    __id_prefix__ = "audit"

    workspace_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    actor_type: Mapped[str] = mapped_column(String(32), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    event: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text(), nullable=False)
    resources: Mapped[list[dict[str, Any]]] = mapped_column(JSON(), nullable=False, default=list)
    context: Mapped[dict[str, Any]] = mapped_column(JSON(), nullable=False, default=dict)

    __table_args__ = (
        Index("ix_audit_logs_workspace_created", "workspace_id", "created_at"),
        Index("ix_audit_logs_event", "event"),
    )


__all__ = ["AuditLog"]
