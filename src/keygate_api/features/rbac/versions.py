"""Optimistic version token for a key's authorization state."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from keygate_db import utc_now
from keygate_db.models import KeyAuthzVersion

from .exceptions import ConflictError


def current_version(session: Session, *, workspace_id: str, key_id: str) -> int:
    stmt = select(KeyAuthzVersion.version).where(
        KeyAuthzVersion.key_id == key_id,
        KeyAuthzVersion.workspace_id == workspace_id,
    )
    return int(session.execute(stmt).scalar_one_or_none() or 0)


def advance_version(
    session: Session,
    *,
    workspace_id: str,
    key_id: str,
    expected: int | None = None,
) -> int:
    """Compare-and-increment the key's version; raise ``ConflictError`` when stale."""

    current = current_version(session, workspace_id=workspace_id, key_id=key_id)
    if expected is not None and expected != current:
        raise ConflictError(
            f"Authorization state of key {key_id} changed (expected version {expected}, "
            f"found {current})"
        )

    if current == 0:
        row = KeyAuthzVersion(key_id=key_id, workspace_id=workspace_id, version=1)
        try:
            with session.begin_nested():
                session.add(row)
                session.flush([row])
        except IntegrityError as exc:
            raise ConflictError(
                f"Authorization state of key {key_id} was modified concurrently"
            ) from exc
        return 1

    result = session.execute(
        update(KeyAuthzVersion)
        .where(
            KeyAuthzVersion.key_id == key_id,
            KeyAuthzVersion.workspace_id == workspace_id,
            KeyAuthzVersion.version == current,
        )
        .values(version=current + 1, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError(f"Authorization state of key {key_id} was modified concurrently")
    return current + 1


def advance_versions(session: Session, *, workspace_id: str, key_ids: Iterable[str]) -> None:
    for key_id in sorted(set(key_ids)):
        advance_version(session, workspace_id=workspace_id, key_id=key_id)


__all__ = ["advance_version", "advance_versions", "current_version"]
