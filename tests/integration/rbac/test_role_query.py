from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from keygate_api.common.list_filters import FilterItem
from keygate_api.features.rbac import BadRequestError, NotFoundError, RbacService
from keygate_db.models import AuditLog, KeyRole, Role
from tests.utils import SeededWorkspace


def _filter(field: str, operator: str, value: str) -> FilterItem:
    return FilterItem(id=field, operator=operator, value=value)


def _stamp(session: Session, roles: list[Role]) -> None:
    """Give roles distinct, ascending update times."""

    base = datetime(2025, 1, 1, tzinfo=UTC)
    for offset, role in enumerate(roles):
        role.updated_at = base + timedelta(minutes=offset)
    session.flush()


def test_query_roles_orders_by_most_recent_update(rbac: RbacService, db_session: Session) -> None:
    oldest = rbac.create_role(name="oldest")
    middle = rbac.create_role(name="middle")
    newest = rbac.create_role(name="newest")
    _stamp(db_session, [oldest, middle, newest])

    page = rbac.query_roles()

    assert [role.id for role in page.items] == [newest.id, middle.id, oldest.id]
    assert page.meta.total == 3
    assert page.meta.has_more is False
    assert page.meta.next_cursor is None


def test_query_roles_walks_pages_with_cursor(rbac: RbacService, db_session: Session) -> None:
    roles = [rbac.create_role(name=f"role-{index}") for index in range(5)]
    _stamp(db_session, roles)

    first = rbac.query_roles(limit=2)
    second = rbac.query_roles(limit=2, cursor=first.meta.next_cursor)
    third = rbac.query_roles(limit=2, cursor=second.meta.next_cursor)

    expected = [role.id for role in reversed(roles)]
    assert [role.id for role in first.items] == expected[:2]
    assert [role.id for role in second.items] == expected[2:4]
    assert [role.id for role in third.items] == expected[4:]
    assert (first.meta.has_more, second.meta.has_more, third.meta.has_more) == (
        True,
        True,
        False,
    )
    assert {first.meta.total, second.meta.total, third.meta.total} == {5}


def test_query_roles_breaks_timestamp_ties_by_id(rbac: RbacService, db_session: Session) -> None:
    roles = [rbac.create_role(name=f"tied-{index}") for index in range(3)]
    same_time = datetime(2025, 1, 1, tzinfo=UTC)
    for role in roles:
        role.updated_at = same_time
    db_session.flush()

    first = rbac.query_roles(limit=2)
    second = rbac.query_roles(limit=2, cursor=first.meta.next_cursor)

    ids = [role.id for role in first.items + second.items]
    assert ids == sorted((role.id for role in roles), reverse=True)


def test_query_roles_filters_on_role_columns(rbac: RbacService) -> None:
    admins = rbac.create_role(name="admins", description="Full access")
    rbac.create_role(name="readers", description="Read only")

    by_name = rbac.query_roles(filters=[_filter("name", "is", "admins")])
    by_description = rbac.query_roles(filters=[_filter("description", "contains", "full")])

    assert [role.id for role in by_name.items] == [admins.id]
    assert [role.id for role in by_description.items] == [admins.id]
    assert by_name.meta.total == 1


def test_query_roles_filters_on_permissions_and_keys(
    rbac: RbacService,
    seeded: SeededWorkspace,
) -> None:
    read = rbac.create_permission(name="api.*.read_api")
    rbac.update_permission(read.id, name="read-apis", description=None)
    limit = rbac.create_permission(name="ratelimit.*.limit")
    readers = rbac.create_role(name="readers", permission_ids=[read.id])
    limiters = rbac.create_role(name="limiters", permission_ids=[limit.id])
    rbac.connect_role_to_key(seeded.key_id, readers.id)

    by_slug = rbac.query_roles(filters=[_filter("permissionSlug", "startsWith", "api.")])
    by_permission_name = rbac.query_roles(filters=[_filter("permissionName", "is", "read-apis")])
    by_key_id = rbac.query_roles(filters=[_filter("keyId", "is", seeded.key_id)])
    by_key_name = rbac.query_roles(filters=[_filter("keyName", "endsWith", "deployer")])
    combined = rbac.query_roles(
        filters=[
            _filter("permissionSlug", "endsWith", "limit"),
            _filter("keyId", "is", seeded.key_id),
        ]
    )

    assert [role.id for role in by_slug.items] == [readers.id]
    assert [role.id for role in by_permission_name.items] == [readers.id]
    assert [role.id for role in by_key_id.items] == [readers.id]
    assert [role.id for role in by_key_name.items] == [readers.id]
    assert combined.items == []
    assert limiters.id not in {role.id for role in by_slug.items}


def test_query_roles_ignores_soft_deleted_key_holders(
    rbac: RbacService,
    db_session: Session,
    seeded: SeededWorkspace,
) -> None:
    role = rbac.create_role(name="retired-role")
    db_session.add(
        KeyRole(key_id=seeded.deleted_key_id, role_id=role.id, workspace_id=seeded.workspace_id)
    )
    db_session.flush()

    by_name = rbac.query_roles(filters=[_filter("keyName", "is", "retired")])
    by_id = rbac.query_roles(filters=[_filter("keyId", "is", seeded.deleted_key_id)])

    assert by_name.items == []
    assert by_id.meta.total == 0


def test_query_roles_treats_like_wildcards_literally(rbac: RbacService) -> None:
    rbac.create_role(name="role_under")
    rbac.create_role(name="roleXunder")

    page = rbac.query_roles(filters=[_filter("name", "contains", "e_u")])

    assert [role.name for role in page.items] == ["role_under"]


def test_query_roles_is_scoped_to_workspace(
    rbac: RbacService,
    rbac_for,
    seeded: SeededWorkspace,
) -> None:
    rbac.create_role(name="readers")
    rbac_for(seeded.secondary_workspace_id).create_role(name="readers")

    page = rbac.query_roles()

    assert page.meta.total == 1


def test_query_roles_rejects_unknown_filter(rbac: RbacService) -> None:
    with pytest.raises(HTTPException) as excinfo:
        rbac.query_roles(filters=[_filter("owner", "is", "someone")])

    assert excinfo.value.status_code == 422


def test_replace_role_keys_sets_exact_key_set(
    rbac: RbacService,
    db_session: Session,
    seeded: SeededWorkspace,
) -> None:
    role = rbac.create_role(name="deployers", key_ids=[seeded.key_id])
    assert rbac.bindings.role_key_ids(role.id) == [seeded.key_id]
    assert rbac.bindings.version(seeded.key_id) == 1

    rbac.replace_role_keys(role.id, [seeded.second_key_id])

    assert rbac.bindings.role_key_ids(role.id) == [seeded.second_key_id]
    assert rbac.bindings.version(seeded.key_id) == 2
    assert rbac.bindings.version(seeded.second_key_id) == 1

    connects = db_session.execute(
        select(AuditLog).where(AuditLog.event == "authorization.connect_role_and_key")
    ).scalars().all()
    assert sorted(entry.resources[1]["id"] for entry in connects) == sorted(
        [seeded.key_id, seeded.second_key_id]
    )


def test_replace_role_keys_rejects_inactive_keys_without_writing(
    rbac: RbacService,
    seeded: SeededWorkspace,
) -> None:
    role = rbac.create_role(name="deployers", key_ids=[seeded.key_id])

    with pytest.raises(BadRequestError) as excinfo:
        rbac.replace_role_keys(
            role.id, [seeded.second_key_id, seeded.deleted_key_id, seeded.foreign_key_id]
        )

    assert excinfo.value.missing_ids == [seeded.deleted_key_id, seeded.foreign_key_id]
    assert rbac.bindings.role_key_ids(role.id) == [seeded.key_id]


def test_replace_role_keys_on_missing_role_is_not_found(
    rbac: RbacService,
    seeded: SeededWorkspace,
) -> None:
    with pytest.raises(NotFoundError):
        rbac.replace_role_keys("role_missing", [seeded.key_id])


def test_create_role_with_unknown_key_creates_nothing(
    rbac: RbacService,
    db_session: Session,
) -> None:
    with pytest.raises(BadRequestError):
        rbac.create_role(name="deployers", key_ids=["key_missing"])

    assert db_session.execute(select(Role)).scalars().all() == []


def test_update_role_replaces_link_sets_when_given(
    rbac: RbacService,
    seeded: SeededWorkspace,
) -> None:
    read = rbac.create_permission(name="api.*.read_api")
    update = rbac.create_permission(name="api.*.update_api")
    role = rbac.create_role(name="readers", permission_ids=[read.id], key_ids=[seeded.key_id])

    rbac.update_role(role.id, description="Renamed")
    assert rbac.roles.permission_ids(role.id) == [read.id]
    assert rbac.bindings.role_key_ids(role.id) == [seeded.key_id]

    rbac.update_role(role.id, permission_ids=[update.id], key_ids=[])

    assert rbac.roles.permission_ids(role.id) == [update.id]
    assert rbac.bindings.role_key_ids(role.id) == []
