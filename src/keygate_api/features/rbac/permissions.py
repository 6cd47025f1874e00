"""Permission entities: CRUD plus idempotent get-or-create by slug."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from keygate_api.core.context import WorkspaceContext
from keygate_api.features.audit import AuditResource, AuditSink, build_entry
from keygate_db.models import KeyPermission, Permission, RolePermission

from .exceptions import ConflictError, NotFoundError
from .links import linked_ids
from .validation import normalize_description, unique_ids, validate_name
from .versions import advance_versions

logger = logging.getLogger(__name__)


def permission_resource(permission: Permission) -> AuditResource:
    return AuditResource(type="permission", id=permission.id, name=permission.name)


class PermissionStore:
    """Workspace-scoped access to ``permissions`` rows."""

    def __init__(self, *, session: Session, context: WorkspaceContext, audit: AuditSink) -> None:
        self._session = session
        self._context = context
        self._audit = audit

    @property
    def workspace_id(self) -> str:
        return self._context.workspace_id

    # ------------- reads -------------------

    def find(self, permission_id: str) -> Permission | None:
        stmt = select(Permission).where(
            Permission.id == permission_id,
            Permission.workspace_id == self.workspace_id,
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def get(self, permission_id: str) -> Permission:
        permission = self.find(permission_id)
        if permission is None:
            raise NotFoundError(f"Permission {permission_id} not found")
        return permission

    def list_all(self) -> list[Permission]:
        stmt = (
            select(Permission)
            .where(Permission.workspace_id == self.workspace_id)
            .order_by(Permission.name, Permission.id)
        )
        return list(self._session.execute(stmt).scalars().all())

    def _find_by_slugs(self, slugs: Sequence[str]) -> dict[str, Permission]:
        if not slugs:
            return {}
        stmt = select(Permission).where(
            Permission.workspace_id == self.workspace_id,
            Permission.slug.in_(list(slugs)),
        )
        rows = self._session.execute(stmt).scalars()
        return {permission.slug: permission for permission in rows}

    def _name_or_slug_taken(self, name: str, *, exclude_id: str | None = None) -> bool:
        stmt = select(Permission.id).where(
            Permission.workspace_id == self.workspace_id,
            or_(Permission.name == name, Permission.slug == name),
        )
        if exclude_id is not None:
            stmt = stmt.where(Permission.id != exclude_id)
        return self._session.execute(stmt.limit(1)).scalar_one_or_none() is not None

    # ------------- writes -------------------

    def _insert(self, *, name: str, description: str | None) -> Permission:
        permission = Permission(
            workspace_id=self.workspace_id,
            name=name,
            slug=name,
            description=description,
        )
        with self._session.begin_nested():
            self._session.add(permission)
            self._session.flush([permission])
        self._audit.record(
            build_entry(
                self._context,
                event="permission.create",
                description=f"Created {permission.id}",
                resources=[permission_resource(permission)],
            )
        )
        return permission

    def create(self, *, name: str, description: str | None = None) -> Permission:
        normalized = validate_name(name, kind="Permission")
        if self._name_or_slug_taken(normalized):
            raise ConflictError(f"Permission {normalized} already exists")
        try:
            return self._insert(name=normalized, description=normalize_description(description))
        except IntegrityError as exc:
            raise ConflictError(f"Permission {normalized} already exists") from exc

    def upsert(self, slug: str) -> Permission:
        return self.upsert_many([slug])[0]

    def upsert_many(self, slugs: Sequence[str]) -> list[Permission]:
        """Get-or-create a permission for every slug.

        Existing rows are matched on ``slug`` and returned unmodified, so the
        result always carries exactly the requested slugs. A slug that is only
        another permission's display name is a conflict.
        """

        normalized = unique_ids(validate_name(slug, kind="Permission") for slug in slugs)
        by_slug = self._find_by_slugs(normalized)

        for slug in normalized:
            if slug in by_slug:
                continue
            if self._name_or_slug_taken(slug):
                raise ConflictError(f"Permission name {slug} is used by another permission")
            try:
                by_slug[slug] = self._insert(name=slug, description=None)
            except IntegrityError as exc:
                # A concurrent upsert may have created it first.
                existing = self._find_by_slugs([slug]).get(slug)
                if existing is None:
                    raise ConflictError(
                        f"Permission name {slug} is used by another permission"
                    ) from exc
                logger.debug(
                    "rbac.permission.upsert.race",
                    extra={"workspace_id": self.workspace_id, "permission_slug": slug},
                )
                by_slug[slug] = existing

        return [by_slug[slug] for slug in normalized]

    def update(self, permission_id: str, *, name: str, description: str | None) -> Permission:
        """Rename and/or redescribe a permission; its slug never changes."""

        permission = self.get(permission_id)
        normalized = validate_name(name, kind="Permission")
        if normalized != permission.name and self._name_or_slug_taken(
            normalized, exclude_id=permission.id
        ):
            raise ConflictError(f"Permission {normalized} already exists")

        permission.name = normalized
        permission.description = normalize_description(description)
        try:
            with self._session.begin_nested():
                self._session.flush([permission])
        except IntegrityError as exc:
            raise ConflictError(f"Permission {normalized} already exists") from exc

        self._audit.record(
            build_entry(
                self._context,
                event="permission.update",
                description=f"Updated {permission.id}",
                resources=[permission_resource(permission)],
            )
        )
        return permission

    def delete(self, permission_id: str) -> None:
        """Delete a permission and every link pointing at it, children first."""

        permission = self.get(permission_id)
        affected_keys = linked_ids(
            self._session,
            KeyPermission.key_id,
            where=[
                KeyPermission.permission_id == permission.id,
                KeyPermission.workspace_id == self.workspace_id,
            ],
        )

        self._session.execute(
            delete(RolePermission).where(
                RolePermission.permission_id == permission.id,
                RolePermission.workspace_id == self.workspace_id,
            )
        )
        self._session.execute(
            delete(KeyPermission).where(
                KeyPermission.permission_id == permission.id,
                KeyPermission.workspace_id == self.workspace_id,
            )
        )
        resource = permission_resource(permission)
        self._session.delete(permission)
        self._session.flush()
        advance_versions(self._session, workspace_id=self.workspace_id, key_ids=affected_keys)

        self._audit.record(
            build_entry(
                self._context,
                event="permission.delete",
                description=f"Deleted {permission_id}",
                resources=[resource],
            )
        )


__all__ = ["PermissionStore", "permission_resource"]
