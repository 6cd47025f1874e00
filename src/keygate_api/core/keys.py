"""Key store seam: existence and soft-delete state of keys."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from keygate_db.models import Key


class KeyStore(Protocol):
    """Source of truth for key existence; only active keys are ever returned."""

    def get_active(self, *, workspace_id: str, key_id: str) -> Key | None: ...

    def list_active(self, *, workspace_id: str, key_ids: Sequence[str]) -> list[Key]: ...


class SqlKeyStore:
    """Default key store reading the ``keys`` table in the caller's session."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_active(self, *, workspace_id: str, key_id: str) -> Key | None:
        stmt = select(Key).where(
            Key.id == key_id,
            Key.workspace_id == workspace_id,
            Key.deleted_at.is_(None),
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def list_active(self, *, workspace_id: str, key_ids: Sequence[str]) -> list[Key]:
        if not key_ids:
            return []
        stmt = (
            select(Key)
            .where(
                Key.id.in_(list(key_ids)),
                Key.workspace_id == workspace_id,
                Key.deleted_at.is_(None),
            )
            .order_by(Key.id)
        )
        return list(self._session.execute(stmt).scalars().all())


__all__ = ["KeyStore", "SqlKeyStore"]
