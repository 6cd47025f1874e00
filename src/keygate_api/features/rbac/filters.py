from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from keygate_api.common.list_filters import (
    FilterField,
    FilterItem,
    FilterRegistry,
    ParsedFilter,
    build_predicate,
    combine_by_field,
    prepare_filters,
)
from keygate_db.models import Key, KeyRole, Permission, Role, RolePermission

ROLE_FILTER_REGISTRY = FilterRegistry([
    FilterField(id="name", column=Role.name),
    FilterField(id="description", column=Role.description),
    FilterField(id="keyName", column=Key.name),
    FilterField(id="keyId", column=Key.id),
    FilterField(id="permissionName", column=Permission.name),
    FilterField(id="permissionSlug", column=Permission.slug),
])

_KEY_FIELDS = frozenset({"keyName", "keyId"})
_PERMISSION_FIELDS = frozenset({"permissionName", "permissionSlug"})


def _roles_holding_key(workspace_id: str, predicate: ColumnElement[Any]) -> ColumnElement[bool]:
    held_by = (
        select(KeyRole.role_id)
        .join(Key, Key.id == KeyRole.key_id)
        .where(
            KeyRole.workspace_id == workspace_id,
            Key.workspace_id == workspace_id,
            Key.deleted_at.is_(None),
            predicate,
        )
    )
    return Role.id.in_(held_by)


def _roles_granting_permission(
    workspace_id: str,
    predicate: ColumnElement[Any],
) -> ColumnElement[bool]:
    granting = (
        select(RolePermission.role_id)
        .join(Permission, Permission.id == RolePermission.permission_id)
        .where(
            RolePermission.workspace_id == workspace_id,
            Permission.workspace_id == workspace_id,
            predicate,
        )
    )
    return Role.id.in_(granting)


def apply_role_filters(
    stmt: Select,
    filters: list[FilterItem],
    *,
    workspace_id: str,
) -> Select:
    """Narrow a role query; filters on one field are ORed, fields are ANDed."""

    parsed = prepare_filters(filters, ROLE_FILTER_REGISTRY)

    def _build(item: ParsedFilter) -> ColumnElement[Any]:
        predicate = build_predicate(item)
        if item.field.id in _KEY_FIELDS:
            return _roles_holding_key(workspace_id, predicate)
        if item.field.id in _PERMISSION_FIELDS:
            return _roles_granting_permission(workspace_id, predicate)
        return predicate

    combined = combine_by_field(parsed, _build)
    if combined is not None:
        stmt = stmt.where(combined)
    return stmt


__all__ = ["ROLE_FILTER_REGISTRY", "apply_role_filters"]
