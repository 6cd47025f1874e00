"""Junction-table helpers: referential checks, idempotent inserts and the replace planner.

Junction tables carry no foreign keys, so every insert is preceded by an
explicit existence check of both endpoints within the workspace.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .exceptions import BadRequestError, missing_message
from .validation import unique_ids

logger = logging.getLogger(__name__)


def plan_link_replacement(
    current: Iterable[str],
    desired: Iterable[str],
) -> tuple[list[str], list[str]]:
    """Return ``(to_delete, to_insert)`` turning ``current`` into ``desired``.

    Applying the plan yields exactly the desired set, the same end state as
    deleting every current link and inserting every desired one. ``to_delete``
    is sorted; ``to_insert`` keeps the order of ``desired``.
    """

    current_ids = set(current)
    desired_ids = unique_ids(desired)
    desired_set = set(desired_ids)
    to_delete = sorted(current_ids - desired_set)
    to_insert = [item for item in desired_ids if item not in current_ids]
    return to_delete, to_insert


def find_in_workspace(
    session: Session,
    model: Any,
    *,
    workspace_id: str,
    ids: Sequence[str],
) -> list[Any]:
    if not ids:
        return []
    stmt = select(model).where(model.id.in_(list(ids)), model.workspace_id == workspace_id)
    return list(session.execute(stmt).scalars().all())


def require_all_in_workspace(
    session: Session,
    model: Any,
    *,
    workspace_id: str,
    ids: Sequence[str],
    kind: str,
) -> list[Any]:
    """Resolve every id or raise ``BadRequestError`` naming the missing ones."""

    found = find_in_workspace(session, model, workspace_id=workspace_id, ids=ids)
    if len(found) != len(ids):
        found_ids = {row.id for row in found}
        missing = [item for item in ids if item not in found_ids]
        raise BadRequestError(missing_message(kind, missing), missing_ids=missing)
    return found


def insert_link_if_missing(session: Session, model: Any, *, workspace_id: str, **keys: str) -> bool:
    """Insert a junction row unless it already exists; return whether it was created."""

    stmt = select(model).filter_by(workspace_id=workspace_id, **keys)
    existing = session.execute(stmt).scalar_one_or_none()
    if existing is not None:
        return False

    row = model(workspace_id=workspace_id, **keys)
    try:
        with session.begin_nested():
            session.add(row)
            session.flush([row])
    except IntegrityError:
        # Lost a race with a concurrent connect of the same pair.
        logger.debug(
            "rbac.link.exists",
            extra={"table": model.__tablename__, "workspace_id": workspace_id, **keys},
        )
        return False
    return True


def linked_ids(session: Session, column: Any, *, where: Sequence[Any]) -> list[str]:
    stmt = select(column).where(*where).distinct()
    return list(session.execute(stmt).scalars().all())


__all__ = [
    "find_in_workspace",
    "insert_link_if_missing",
    "linked_ids",
    "plan_link_replacement",
    "require_all_in_workspace",
]
