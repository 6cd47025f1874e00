"""Key<->Role and Key<->Permission links, including the atomic full replace."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import delete
from sqlalchemy.orm import Session

from keygate_api.core.context import WorkspaceContext
from keygate_api.core.keys import KeyStore
from keygate_api.features.audit import AuditResource, AuditSink, build_entry
from keygate_db.models import Key, KeyPermission, KeyRole, Permission, Role, RolePermission

from .exceptions import BadRequestError, NotFoundError, missing_message
from .links import (
    find_in_workspace,
    insert_link_if_missing,
    linked_ids,
    plan_link_replacement,
    require_all_in_workspace,
)
from .permissions import PermissionStore, permission_resource
from .roles import role_resource
from .validation import unique_ids
from .versions import advance_version, advance_versions, current_version

logger = logging.getLogger(__name__)

@dataclass(frozen=True, slots=True)
class KeyReplaceResult:
    key_id: str
    roles_assigned: int
    direct_permissions_assigned: int
    total_effective_permissions: int
    version: int

def key_resource(key: Key) -> AuditResource:
    return AuditResource(type="key", id=key.id, name=key.name)

class KeyAuthzBinding:
    """Owns ``keys_roles`` and ``keys_permissions`` rows for one workspace."""

    def __init__(
        self,
        *,
        session: Session,
        context: WorkspaceContext,
        audit: AuditSink,
        key_store: KeyStore,
        permissions: PermissionStore,
    ) -> None:
        self._session = session
        self._context = context
        self._audit = audit
        self._keys = key_store
        self._permissions = permissions

    @property
    def workspace_id(self) -> str:
        return self._context.workspace_id

    def _record(self, event: str, description: str, resources: Sequence[AuditResource]) -> None:
        self._audit.record(
            build_entry(self._context, event=event, description=description, resources=resources)
        )

    def _get_key(self, key_id: str) -> Key:
        key = self._keys.get_active(workspace_id=self.workspace_id, key_id=key_id)
        if key is None:
            raise NotFoundError(f"Key {key_id} not found")
        return key

    def _get_one(self, model: type[Role] | type[Permission], item_id: str, kind: str):
        found = find_in_workspace(
            self._session, model, workspace_id=self.workspace_id, ids=[item_id]
        )
        if not found:
            raise NotFoundError(f"{kind} {item_id} not found")
        return found[0]

    # ------------- reads -------------------

    def role_ids(self, key_id: str) -> list[str]:
        return linked_ids(
            self._session,
            KeyRole.role_id,
            where=[KeyRole.key_id == key_id, KeyRole.workspace_id == self.workspace_id],
        )

    def permission_ids(self, key_id: str) -> list[str]:
        return linked_ids(
            self._session,
            KeyPermission.permission_id,
            where=[KeyPermission.key_id == key_id, KeyPermission.workspace_id == self.workspace_id],
        )

    def role_key_ids(self, role_id: str) -> list[str]:
        return linked_ids(
            self._session,
            KeyRole.key_id,
            where=[KeyRole.role_id == role_id, KeyRole.workspace_id == self.workspace_id],
        )

    def version(self, key_id: str) -> int:
        return current_version(self._session, workspace_id=self.workspace_id, key_id=key_id)

    # ------------- single links -------------------

    def connect_role(self, key_id: str, role_id: str) -> bool:
        key = self._get_key(key_id)
        role = self._get_one(Role, role_id, "Role")
        created = insert_link_if_missing(
            self._session, KeyRole, workspace_id=self.workspace_id, key_id=key.id, role_id=role.id
        )
        if created:
            advance_version(self._session, workspace_id=self.workspace_id, key_id=key.id)
        self._record(
            "authorization.connect_role_and_key",
            f"Connected {role.id} and {key.id}",
            [role_resource(role), key_resource(key)],
        )
        return created

    def disconnect_role(self, key_id: str, role_id: str) -> bool:
        result = self._session.execute(
            delete(KeyRole).where(
                KeyRole.key_id == key_id,
                KeyRole.role_id == role_id,
                KeyRole.workspace_id == self.workspace_id,
            )
        )
        removed = bool(result.rowcount)
        if removed:
            advance_version(self._session, workspace_id=self.workspace_id, key_id=key_id)
        self._record(
            "authorization.disconnect_role_and_key",
            f"Disconnected {role_id} and {key_id}",
            [AuditResource(type="role", id=role_id), AuditResource(type="key", id=key_id)],
        )
        return removed

    def connect_permission(self, key_id: str, permission_id: str) -> bool:
        key = self._get_key(key_id)
        permission = self._get_one(Permission, permission_id, "Permission")
        created = insert_link_if_missing(
            self._session,
            KeyPermission,
            workspace_id=self.workspace_id,
            key_id=key.id,
            permission_id=permission.id,
        )
        if created:
            advance_version(self._session, workspace_id=self.workspace_id, key_id=key.id)
        self._record(
            "authorization.connect_permission_and_key",
            f"Connected {permission.id} and {key.id}",
            [permission_resource(permission), key_resource(key)],
        )
        return created

    def disconnect_permission(self, key_id: str, permission_id: str) -> bool:
        result = self._session.execute(
            delete(KeyPermission).where(
                KeyPermission.key_id == key_id,
                KeyPermission.permission_id == permission_id,
                KeyPermission.workspace_id == self.workspace_id,
            )
        )
        removed = bool(result.rowcount)
        if removed:
            advance_version(self._session, workspace_id=self.workspace_id, key_id=key_id)
        self._record(
            "authorization.disconnect_permission_and_key",
            f"Disconnected {permission_id} and {key_id}",
            [
                AuditResource(type="permission", id=permission_id),
                AuditResource(type="key", id=key_id),
            ],
        )
        return removed

    def add_permissions_by_name(self, key_id: str, names: Sequence[str]) -> list[Permission]:
        """Get-or-create permissions by slug and attach them directly to the key."""

        key = self._get_key(key_id)
        if not names:
            raise BadRequestError("At least one permission name is required")

        permissions = self._permissions.upsert_many(names)
        created_any = False
        for permission in permissions:
            created = insert_link_if_missing(
                self._session,
                KeyPermission,
                workspace_id=self.workspace_id,
                key_id=key.id,
                permission_id=permission.id,
            )
            created_any = created_any or created
            self._record(
                "authorization.connect_permission_and_key",
                f"Connected {permission.id} and {key.id}",
                [permission_resource(permission), key_resource(key)],
            )
        if created_any:
            advance_version(self._session, workspace_id=self.workspace_id, key_id=key.id)
        return permissions

    # ------------- full replace -------------------

    def replace(
        self,
        key_id: str,
        *,
        role_ids: Sequence[str],
        permission_ids: Sequence[str],
        expected_version: int | None = None,
    ) -> KeyReplaceResult:
        """Make ``role_ids`` and ``permission_ids`` the key's complete link sets.

        Every id is validated before the first write. When ``expected_version``
        is given and no longer matches, the call fails with ``ConflictError``.
        """

        key = self._get_key(key_id)
        desired_roles = unique_ids(role_ids)
        desired_permissions = unique_ids(permission_ids)

        require_all_in_workspace(
            self._session, Role, workspace_id=self.workspace_id, ids=desired_roles, kind="Roles"
        )
        require_all_in_workspace(
            self._session,
            Permission,
            workspace_id=self.workspace_id,
            ids=desired_permissions,
            kind="Permissions",
        )

        version = advance_version(
            self._session,
            workspace_id=self.workspace_id,
            key_id=key.id,
            expected=expected_version,
        )

        roles_delete, roles_insert = plan_link_replacement(self.role_ids(key.id), desired_roles)
        perms_delete, perms_insert = plan_link_replacement(
            self.permission_ids(key.id), desired_permissions
        )

        if roles_delete:
            self._session.execute(
                delete(KeyRole).where(
                    KeyRole.key_id == key.id,
                    KeyRole.role_id.in_(roles_delete),
                    KeyRole.workspace_id == self.workspace_id,
                )
            )
        if perms_delete:
            self._session.execute(
                delete(KeyPermission).where(
                    KeyPermission.key_id == key.id,
                    KeyPermission.permission_id.in_(perms_delete),
                    KeyPermission.workspace_id == self.workspace_id,
                )
            )
        self._session.add_all(
            [
                KeyRole(key_id=key.id, role_id=role_id, workspace_id=self.workspace_id)
                for role_id in roles_insert
            ]
            + [
                KeyPermission(
                    key_id=key.id, permission_id=permission_id, workspace_id=self.workspace_id
                )
                for permission_id in perms_insert
            ]
        )
        self._session.flush()

        via_roles = linked_ids(
            self._session,
            RolePermission.permission_id,
            where=[
                RolePermission.role_id.in_(desired_roles),
                RolePermission.workspace_id == self.workspace_id,
            ],
        )
        total = len(set(via_roles) | set(desired_permissions))

        result = KeyReplaceResult(
            key_id=key.id,
            roles_assigned=len(desired_roles),
            direct_permissions_assigned=len(desired_permissions),
            total_effective_permissions=total,
            version=version,
        )
        self._record(
            "authorization.replace_key_rbac",
            (
                f"Replaced authorization of {key.id}: {result.roles_assigned} role(s), "
                f"{result.direct_permissions_assigned} direct permission(s), "
                f"{result.total_effective_permissions} effective"
            ),
            [key_resource(key)],
        )
        logger.debug(
            "rbac.key.replace.plan",
            extra={
                "workspace_id": self.workspace_id,
                "key_id": key.id,
                "roles_removed": len(roles_delete),
                "roles_added": len(roles_insert),
                "permissions_removed": len(perms_delete),
                "permissions_added": len(perms_insert),
            },
        )
        return result

    def replace_role_keys(self, role_id: str, key_ids: Sequence[str]) -> tuple[int, int]:
        """Make ``key_ids`` the complete set of keys holding the role.

        Returns ``(removed, added)`` link counts. Every key whose links change
        has its version advanced.
        """

        role = self._get_one(Role, role_id, "Role")
        requested = unique_ids(key_ids)
        keys = self._keys.list_active(workspace_id=self.workspace_id, key_ids=requested)
        if len(keys) != len(requested):
            found = {key.id for key in keys}
            missing = [key_id for key_id in requested if key_id not in found]
            raise BadRequestError(missing_message("Keys", missing), missing_ids=missing)

        to_delete, to_insert = plan_link_replacement(self.role_key_ids(role.id), requested)
        if to_delete:
            self._session.execute(
                delete(KeyRole).where(
                    KeyRole.role_id == role.id,
                    KeyRole.key_id.in_(to_delete),
                    KeyRole.workspace_id == self.workspace_id,
                )
            )
        self._session.add_all(
            [
                KeyRole(key_id=key_id, role_id=role.id, workspace_id=self.workspace_id)
                for key_id in to_insert
            ]
        )
        self._session.flush()
        advance_versions(
            self._session, workspace_id=self.workspace_id, key_ids=[*to_delete, *to_insert]
        )

        by_id = {key.id: key for key in keys}
        for key_id in to_insert:
            self._record(
                "authorization.connect_role_and_key",
                f"Connected {role.id} and {key_id}",
                [role_resource(role), key_resource(by_id[key_id])],
            )
        if to_delete:
            self._record(
                "authorization.disconnect_role_and_key",
                f"Disconnected {role.id} from {len(to_delete)} key(s)",
                [role_resource(role)]
                + [AuditResource(type="key", id=key_id) for key_id in to_delete],
            )
        return len(to_delete), len(to_insert)


__all__ = ["KeyAuthzBinding", "KeyReplaceResult", "key_resource"]
