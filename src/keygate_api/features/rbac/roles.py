"""Role entities and the Role<->Permission links they own."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from keygate_api.common.cursor_listing import DEFAULT_LIMIT, CursorPage, paginate_query_cursor
from keygate_api.common.list_filters import FilterItem
from keygate_api.core.context import WorkspaceContext
from keygate_api.features.audit import AuditResource, AuditSink, build_entry
from keygate_db.models import KeyRole, Permission, Role, RolePermission

from .exceptions import BadRequestError, ConflictError, NotFoundError, missing_message
from .filters import apply_role_filters
from .links import (
    find_in_workspace,
    insert_link_if_missing,
    linked_ids,
    plan_link_replacement,
    require_all_in_workspace,
)
from .permissions import permission_resource
from .sorting import ROLE_KEYSET_SORT
from .validation import normalize_description, unique_ids, validate_name
from .versions import advance_versions

logger = logging.getLogger(__name__)


def role_resource(role: Role) -> AuditResource:
    return AuditResource(type="role", id=role.id, name=role.name)


class RoleStore:
    """Workspace-scoped access to ``roles`` and ``roles_permissions`` rows."""

    def __init__(self, *, session: Session, context: WorkspaceContext, audit: AuditSink) -> None:
        self._session = session
        self._context = context
        self._audit = audit

    @property
    def workspace_id(self) -> str:
        return self._context.workspace_id

    def _record(self, event: str, description: str, resources: Sequence[AuditResource]) -> None:
        self._audit.record(
            build_entry(self._context, event=event, description=description, resources=resources)
        )

    # ------------- reads -------------------

    def find(self, role_id: str) -> Role | None:
        stmt = select(Role).where(Role.id == role_id, Role.workspace_id == self.workspace_id)
        return self._session.execute(stmt).scalar_one_or_none()

    def get(self, role_id: str) -> Role:
        role = self.find(role_id)
        if role is None:
            raise NotFoundError(f"Role {role_id} not found")
        return role

    def list_all(self) -> list[Role]:
        stmt = (
            select(Role)
            .where(Role.workspace_id == self.workspace_id)
            .order_by(Role.name, Role.id)
        )
        return list(self._session.execute(stmt).scalars().all())

    def query(
        self,
        *,
        filters: Sequence[FilterItem] = (),
        limit: int = DEFAULT_LIMIT,
        cursor: str | None = None,
    ) -> CursorPage[Role]:
        """Page through roles, most recently updated first."""

        stmt = select(Role).where(Role.workspace_id == self.workspace_id)
        stmt = apply_role_filters(stmt, list(filters), workspace_id=self.workspace_id)
        return paginate_query_cursor(
            self._session, stmt, sort=ROLE_KEYSET_SORT, limit=limit, cursor=cursor
        )

    def permission_ids(self, role_id: str) -> list[str]:
        return linked_ids(
            self._session,
            RolePermission.permission_id,
            where=[
                RolePermission.role_id == role_id,
                RolePermission.workspace_id == self.workspace_id,
            ],
        )

    def _name_taken(self, name: str, *, exclude_id: str | None = None) -> bool:
        stmt = select(Role.id).where(Role.workspace_id == self.workspace_id, Role.name == name)
        if exclude_id is not None:
            stmt = stmt.where(Role.id != exclude_id)
        return self._session.execute(stmt.limit(1)).scalar_one_or_none() is not None

    def _get_permission(self, permission_id: str) -> Permission:
        found = find_in_workspace(
            self._session, Permission, workspace_id=self.workspace_id, ids=[permission_id]
        )
        if not found:
            raise NotFoundError(f"Permission {permission_id} not found")
        return found[0]

    # ------------- writes -------------------

    def create(
        self,
        *,
        name: str,
        description: str | None = None,
        permission_ids: Sequence[str] = (),
    ) -> Role:
        normalized = validate_name(name, kind="Role")
        requested = unique_ids(permission_ids)
        if self._name_taken(normalized):
            raise ConflictError(f"Role {normalized} already exists")
        permissions = require_all_in_workspace(
            self._session,
            Permission,
            workspace_id=self.workspace_id,
            ids=requested,
            kind="Permissions",
        )

        role = Role(
            workspace_id=self.workspace_id,
            name=normalized,
            description=normalize_description(description),
        )
        try:
            with self._session.begin_nested():
                self._session.add(role)
                self._session.flush([role])
        except IntegrityError as exc:
            logger.debug(
                "rbac.role.create.conflict",
                extra={"workspace_id": self.workspace_id, "role_name": normalized},
            )
            raise ConflictError(f"Role {normalized} already exists") from exc

        self._session.add_all(
            [
                RolePermission(
                    role_id=role.id,
                    permission_id=permission_id,
                    workspace_id=self.workspace_id,
                )
                for permission_id in requested
            ]
        )
        self._session.flush()

        self._record("role.create", f"Created {role.id}", [role_resource(role)])
        by_id = {permission.id: permission for permission in permissions}
        for permission_id in requested:
            permission = by_id[permission_id]
            self._record(
                "authorization.connect_role_and_permission",
                f"Connected {role.id} and {permission.id}",
                [role_resource(role), permission_resource(permission)],
            )
        return role

    def update(
        self,
        role_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> Role:
        """Rename and/or redescribe a role; ``None`` leaves a field unchanged."""

        role = self.get(role_id)
        if name is not None:
            normalized = validate_name(name, kind="Role")
            if normalized != role.name and self._name_taken(normalized, exclude_id=role.id):
                raise ConflictError(f"Role {normalized} already exists")
            role.name = normalized
        if description is not None:
            role.description = normalize_description(description)

        try:
            with self._session.begin_nested():
                self._session.flush([role])
        except IntegrityError as exc:
            raise ConflictError(f"Role {role.name} already exists") from exc

        self._record("role.update", f"Updated role {role.id}", [role_resource(role)])
        return role

    def delete_with_relations(self, role_ids: str | Sequence[str]) -> int:
        """Delete roles with their permission and key links; all or nothing."""

        requested = [role_ids] if isinstance(role_ids, str) else unique_ids(role_ids)
        if not requested:
            raise BadRequestError("At least one role id is required")

        roles = find_in_workspace(
            self._session, Role, workspace_id=self.workspace_id, ids=requested
        )
        if len(roles) != len(requested):
            found = {role.id for role in roles}
            missing = [role_id for role_id in requested if role_id not in found]
            raise NotFoundError(missing_message("Roles", missing), missing_ids=missing)

        affected_keys = linked_ids(
            self._session,
            KeyRole.key_id,
            where=[KeyRole.role_id.in_(requested), KeyRole.workspace_id == self.workspace_id],
        )

        self._session.execute(
            delete(RolePermission).where(
                RolePermission.role_id.in_(requested),
                RolePermission.workspace_id == self.workspace_id,
            )
        )
        self._session.execute(
            delete(KeyRole).where(
                KeyRole.role_id.in_(requested),
                KeyRole.workspace_id == self.workspace_id,
            )
        )
        resources = [role_resource(role) for role in roles]
        self._session.execute(
            delete(Role).where(Role.id.in_(requested), Role.workspace_id == self.workspace_id)
        )
        self._session.flush()
        advance_versions(self._session, workspace_id=self.workspace_id, key_ids=affected_keys)

        self._record(
            "role.delete",
            f"Deleted {len(roles)} role(s): {', '.join(role.id for role in roles)}",
            resources,
        )
        return len(roles)

    def delete(self, role_id: str) -> int:
        return self.delete_with_relations([role_id])

    def connect_permission(self, role_id: str, permission_id: str) -> bool:
        role = self.get(role_id)
        permission = self._get_permission(permission_id)
        created = insert_link_if_missing(
            self._session,
            RolePermission,
            workspace_id=self.workspace_id,
            role_id=role.id,
            permission_id=permission.id,
        )
        self._record(
            "authorization.connect_role_and_permission",
            f"Connected {role.id} and {permission.id}",
            [role_resource(role), permission_resource(permission)],
        )
        return created

    def disconnect_permission(self, role_id: str, permission_id: str) -> bool:
        result = self._session.execute(
            delete(RolePermission).where(
                RolePermission.role_id == role_id,
                RolePermission.permission_id == permission_id,
                RolePermission.workspace_id == self.workspace_id,
            )
        )
        self._record(
            "authorization.disconnect_role_and_permissions",
            f"Disconnected {role_id} and {permission_id}",
            [
                AuditResource(type="role", id=role_id),
                AuditResource(type="permission", id=permission_id),
            ],
        )
        return bool(result.rowcount)

    def replace_permissions(self, role_id: str, permission_ids: Sequence[str]) -> tuple[int, int]:
        """Make ``permission_ids`` the role's complete permission set.

        Returns ``(removed, added)`` link counts.
        """

        role = self.get(role_id)
        requested = unique_ids(permission_ids)
        permissions = require_all_in_workspace(
            self._session,
            Permission,
            workspace_id=self.workspace_id,
            ids=requested,
            kind="Permissions",
        )

        to_delete, to_insert = plan_link_replacement(self.permission_ids(role.id), requested)
        if to_delete:
            self._session.execute(
                delete(RolePermission).where(
                    RolePermission.role_id == role.id,
                    RolePermission.permission_id.in_(to_delete),
                    RolePermission.workspace_id == self.workspace_id,
                )
            )
        self._session.add_all(
            [
                RolePermission(
                    role_id=role.id,
                    permission_id=permission_id,
                    workspace_id=self.workspace_id,
                )
                for permission_id in to_insert
            ]
        )
        self._session.flush()

        by_id = {permission.id: permission for permission in permissions}
        for permission_id in to_insert:
            self._record(
                "authorization.connect_role_and_permission",
                f"Connected {role.id} and {permission_id}",
                [role_resource(role), permission_resource(by_id[permission_id])],
            )
        if to_delete:
            self._record(
                "authorization.disconnect_role_and_permissions",
                f"Disconnected {role.id} from {len(to_delete)} permission(s)",
                [role_resource(role)]
                + [AuditResource(type="permission", id=item) for item in to_delete],
            )
        return len(to_delete), len(to_insert)


__all__ = ["RoleStore", "role_resource"]
