from __future__ import annotations

from sqlalchemy import event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from keygate_api.features.rbac.links import insert_link_if_missing
from keygate_db.models import RolePermission
from tests.utils import SeededWorkspace


def test_insert_link_if_missing_is_idempotent(
    db_session: Session,
    seeded: SeededWorkspace,
) -> None:
    first = insert_link_if_missing(
        db_session,
        RolePermission,
        workspace_id=seeded.workspace_id,
        role_id="role_a",
        permission_id="perm_a",
    )
    second = insert_link_if_missing(
        db_session,
        RolePermission,
        workspace_id=seeded.workspace_id,
        role_id="role_a",
        permission_id="perm_a",
    )

    assert (first, second) == (True, False)
    count = db_session.execute(select(func.count()).select_from(RolePermission)).scalar_one()
    assert count == 1


def test_insert_link_existence_check_is_workspace_scoped(
    db_engine: Engine,
    db_session: Session,
    seeded: SeededWorkspace,
) -> None:
    statements: list[tuple[str, tuple]] = []

    def _capture(conn, cursor, statement, parameters, context, executemany) -> None:
        if statement.lstrip().upper().startswith("SELECT"):
            statements.append((statement, tuple(parameters or ())))

    event.listen(db_engine, "before_cursor_execute", _capture)
    try:
        insert_link_if_missing(
            db_session,
            RolePermission,
            workspace_id=seeded.workspace_id,
            role_id="role_a",
            permission_id="perm_a",
        )
    finally:
        event.remove(db_engine, "before_cursor_execute", _capture)

    existence_check, parameters = statements[0]
    assert "roles_permissions.workspace_id" in existence_check
    assert seeded.workspace_id in parameters


def test_link_in_other_workspace_is_not_reported_as_existing(
    db_session: Session,
    seeded: SeededWorkspace,
) -> None:
    db_session.add(
        RolePermission(
            role_id="role_a",
            permission_id="perm_a",
            workspace_id=seeded.secondary_workspace_id,
        )
    )
    db_session.flush()

    created = insert_link_if_missing(
        db_session,
        RolePermission,
        workspace_id=seeded.workspace_id,
        role_id="role_b",
        permission_id="perm_a",
    )

    assert created is True
    rows = db_session.execute(
        select(RolePermission.workspace_id).where(RolePermission.permission_id == "perm_a")
    ).scalars()
    assert sorted(rows) == sorted([seeded.workspace_id, seeded.secondary_workspace_id])
