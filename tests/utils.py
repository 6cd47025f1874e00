from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from keygate_db import utc_now
from keygate_db.models import Key, Workspace


@dataclass(frozen=True, slots=True)
class SeededWorkspace:
    workspace_id: str
    secondary_workspace_id: str
    key_id: str
    second_key_id: str
    deleted_key_id: str
    foreign_key_id: str


def seed_workspaces(session: Session) -> SeededWorkspace:
    """Two workspaces with a handful of keys, one of them soft-deleted."""

    primary = Workspace(name="Primary Workspace")
    secondary = Workspace(name="Secondary Workspace")
    session.add_all([primary, secondary])
    session.flush()

    key = Key(workspace_id=primary.id, name="ci-deployer")
    second_key = Key(workspace_id=primary.id, name="billing-sync")
    deleted_key = Key(workspace_id=primary.id, name="retired", deleted_at=utc_now())
    foreign_key = Key(workspace_id=secondary.id, name="other-tenant")
    session.add_all([key, second_key, deleted_key, foreign_key])
    session.commit()

    return SeededWorkspace(
        workspace_id=primary.id,
        secondary_workspace_id=secondary.id,
        key_id=key.id,
        second_key_id=second_key.id,
        deleted_key_id=deleted_key.id,
        foreign_key_id=foreign_key.id,
    )


def tenant_headers(workspace_id: str, actor_id: str = "user_admin") -> dict[str, str]:
    return {"X-Workspace-Id": workspace_id, "X-Actor-Id": actor_id}
