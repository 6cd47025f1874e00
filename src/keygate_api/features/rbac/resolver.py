"""Read-only effective-permission views across direct and role-derived grants."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from sqlalchemy import select
from sqlalchemy.orm import Session

from keygate_api.core.context import WorkspaceContext
from keygate_api.core.keys import KeyStore
from keygate_db.models import Key, KeyPermission, KeyRole, Permission, Role, RolePermission

from .exceptions import NotFoundError
from .links import require_all_in_workspace
from .validation import unique_ids
from .versions import current_version

PermissionSource = Literal["direct", "role"]


@dataclass(frozen=True, slots=True)
class EffectivePermission:
    id: str
    name: str
    slug: str
    description: str | None
    source: PermissionSource
    role_id: str | None = None


@dataclass(frozen=True, slots=True)
class KeyRbacView:
    key_id: str
    name: str | None
    last_updated: datetime
    version: int
    roles: list[Role] = field(default_factory=list)
    permissions: list[EffectivePermission] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class RoleRbacView:
    role_id: str
    name: str
    description: str | None
    last_updated: datetime
    keys: list[Key] = field(default_factory=list)
    permissions: list[Permission] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class SlugResolution:
    slugs: list[str]
    from_roles: int
    from_direct_permissions: int

    @property
    def total_count(self) -> int:
        return len(self.slugs)


class EffectivePermissionResolver:
    """Never mutates; every query is filtered by the context's workspace."""

    def __init__(self, *, session: Session, context: WorkspaceContext, key_store: KeyStore) -> None:
        self._session = session
        self._context = context
        self._keys = key_store

    @property
    def workspace_id(self) -> str:
        return self._context.workspace_id

    def by_key(self, key_id: str) -> KeyRbacView:
        """Roles held by the key and the union of its direct and role-derived permissions.

        A permission reachable both ways is reported once, tagged ``direct``.
        """

        key = self._keys.get_active(workspace_id=self.workspace_id, key_id=key_id)
        if key is None:
            raise NotFoundError(f"Key {key_id} not found")

        roles = list(
            self._session.execute(
                select(Role)
                .join(KeyRole, KeyRole.role_id == Role.id)
                .where(
                    KeyRole.key_id == key.id,
                    KeyRole.workspace_id == self.workspace_id,
                    Role.workspace_id == self.workspace_id,
                )
                .order_by(Role.name, Role.id)
            ).scalars()
        )

        direct = self._session.execute(
            select(Permission)
            .join(KeyPermission, KeyPermission.permission_id == Permission.id)
            .where(
                KeyPermission.key_id == key.id,
                KeyPermission.workspace_id == self.workspace_id,
                Permission.workspace_id == self.workspace_id,
            )
            .order_by(Permission.name, Permission.id)
        ).scalars()

        merged: dict[str, EffectivePermission] = {}
        for permission in direct:
            merged[permission.id] = EffectivePermission(
                id=permission.id,
                name=permission.name,
                slug=permission.slug,
                description=permission.description,
                source="direct",
            )

        role_ids = [role.id for role in roles]
        role_rank = {role_id: index for index, role_id in enumerate(role_ids)}
        if role_ids:
            rows = self._session.execute(
                select(RolePermission.role_id, Permission)
                .join(Permission, Permission.id == RolePermission.permission_id)
                .where(
                    RolePermission.role_id.in_(role_ids),
                    RolePermission.workspace_id == self.workspace_id,
                    Permission.workspace_id == self.workspace_id,
                )
            ).all()
            for role_id, permission in sorted(rows, key=lambda row: role_rank[row[0]]):
                if permission.id in merged:
                    continue
                merged[permission.id] = EffectivePermission(
                    id=permission.id,
                    name=permission.name,
                    slug=permission.slug,
                    description=permission.description,
                    source="role",
                    role_id=role_id,
                )

        return KeyRbacView(
            key_id=key.id,
            name=key.name,
            last_updated=key.updated_at,
            version=current_version(self._session, workspace_id=self.workspace_id, key_id=key.id),
            roles=roles,
            permissions=sorted(merged.values(), key=lambda item: (item.name, item.id)),
        )

    def by_role(self, role_id: str) -> RoleRbacView:
        role = self._session.execute(
            select(Role).where(Role.id == role_id, Role.workspace_id == self.workspace_id)
        ).scalar_one_or_none()
        if role is None:
            raise NotFoundError(f"Role {role_id} not found")

        key_ids = list(
            self._session.execute(
                select(KeyRole.key_id)
                .where(KeyRole.role_id == role.id, KeyRole.workspace_id == self.workspace_id)
                .distinct()
            ).scalars()
        )
        keys = self._keys.list_active(workspace_id=self.workspace_id, key_ids=key_ids)

        permissions = list(
            self._session.execute(
                select(Permission)
                .join(RolePermission, RolePermission.permission_id == Permission.id)
                .where(
                    RolePermission.role_id == role.id,
                    RolePermission.workspace_id == self.workspace_id,
                    Permission.workspace_id == self.workspace_id,
                )
                .distinct()
                .order_by(Permission.name, Permission.id)
            ).scalars()
        )

        return RoleRbacView(
            role_id=role.id,
            name=role.name,
            description=role.description,
            last_updated=role.updated_at,
            keys=keys,
            permissions=permissions,
        )

    def slugs_for(
        self,
        role_ids: Sequence[str],
        permission_ids: Sequence[str],
    ) -> SlugResolution:
        """Flat, deduplicated, sorted slugs reachable from the given roles and permissions.

        Unknown role or permission ids fail with ``BadRequestError`` rather than
        yielding a smaller set.
        """

        requested_roles = unique_ids(role_ids)
        requested_permissions = unique_ids(permission_ids)
        if not requested_roles and not requested_permissions:
            return SlugResolution(slugs=[], from_roles=0, from_direct_permissions=0)

        role_slugs: set[str] = set()
        if requested_roles:
            require_all_in_workspace(
                self._session,
                Role,
                workspace_id=self.workspace_id,
                ids=requested_roles,
                kind="Roles",
            )
            role_slugs = set(
                self._session.execute(
                    select(Permission.slug)
                    .join(RolePermission, RolePermission.permission_id == Permission.id)
                    .where(
                        RolePermission.role_id.in_(requested_roles),
                        RolePermission.workspace_id == self.workspace_id,
                        Permission.workspace_id == self.workspace_id,
                    )
                    .distinct()
                ).scalars()
            )

        direct_slugs: set[str] = set()
        if requested_permissions:
            permissions = require_all_in_workspace(
                self._session,
                Permission,
                workspace_id=self.workspace_id,
                ids=requested_permissions,
                kind="Permissions",
            )
            direct_slugs = {permission.slug for permission in permissions}

        return SlugResolution(
            slugs=sorted(role_slugs | direct_slugs),
            from_roles=len(role_slugs),
            from_direct_permissions=len(direct_slugs),
        )


__all__ = [
    "EffectivePermission",
    "EffectivePermissionResolver",
    "KeyRbacView",
    "RoleRbacView",
    "SlugResolution",
]
