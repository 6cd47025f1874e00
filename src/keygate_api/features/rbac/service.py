"""RBAC facade: one entry point per logical operation.

Each mutation runs in exactly one transaction (a SAVEPOINT when the caller
already holds one), classified errors propagate unchanged, and storage
failures are logged with context and re-raised as ``InternalError``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from keygate_api.common.cursor_listing import DEFAULT_LIMIT, CursorPage
from keygate_api.common.list_filters import FilterItem
from keygate_api.common.logging import log_context
from keygate_api.core.context import WorkspaceContext
from keygate_api.core.keys import KeyStore, SqlKeyStore
from keygate_api.features.audit import AuditSink, SqlAuditSink
from keygate_db.models import Permission, Role

from .bindings import KeyAuthzBinding, KeyReplaceResult
from .categories import PermissionCategories, categorize
from .exceptions import InternalError, RbacError
from .permissions import PermissionStore
from .resolver import EffectivePermissionResolver, KeyRbacView, RoleRbacView, SlugResolution
from .roles import RoleStore

logger = logging.getLogger(__name__)


class RbacService:
    """Composes the RBAC stores for one workspace and acting identity."""

    def __init__(
        self,
        *,
        session: Session,
        context: WorkspaceContext,
        key_store: KeyStore | None = None,
        audit: AuditSink | None = None,
    ) -> None:
        self._session = session
        self._context = context
        key_store = key_store or SqlKeyStore(session)
        audit = audit or SqlAuditSink(session)

        self.permissions = PermissionStore(session=session, context=context, audit=audit)
        self.roles = RoleStore(session=session, context=context, audit=audit)
        self.bindings = KeyAuthzBinding(
            session=session,
            context=context,
            audit=audit,
            key_store=key_store,
            permissions=self.permissions,
        )
        self.resolver = EffectivePermissionResolver(
            session=session, context=context, key_store=key_store
        )

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        if self._session.in_transaction():
            with self._session.begin_nested():
                yield
        else:
            with self._session.begin():
                yield

    def _run[T](
        self,
        event: str,
        operation: Callable[[], T],
        *,
        write: bool = True,
        **fields: Any,
    ) -> T:
        ctx = log_context(
            workspace_id=self._context.workspace_id,
            actor_id=self._context.actor_id,
            **fields,
        )
        try:
            if write:
                with self._atomic():
                    result = operation()
            else:
                result = operation()
        except RbacError as exc:
            logger.info(
                f"{event}.rejected",
                extra={**ctx, "error_type": exc.error_type, "detail": exc.message},
            )
            raise
        except SQLAlchemyError as exc:
            logger.exception(f"{event}.failed", extra=ctx)
            raise InternalError() from exc

        if write:
            logger.info(f"{event}.success", extra=ctx)
        return result

    # ------------- permissions -------------------

    def create_permission(self, *, name: str, description: str | None = None) -> Permission:
        return self._run(
            "rbac.permission.create",
            lambda: self.permissions.create(name=name, description=description),
            permission_name=name,
        )

    def upsert_permission(self, name: str) -> Permission:
        return self._run(
            "rbac.permission.upsert",
            lambda: self.permissions.upsert(name),
            permission_name=name,
        )

    def upsert_permissions(self, names: Sequence[str]) -> list[Permission]:
        return self._run(
            "rbac.permission.upsert_many",
            lambda: self.permissions.upsert_many(names),
            count=len(names),
        )

    def update_permission(
        self,
        permission_id: str,
        *,
        name: str,
        description: str | None,
    ) -> Permission:
        return self._run(
            "rbac.permission.update",
            lambda: self.permissions.update(permission_id, name=name, description=description),
            permission_id=permission_id,
        )

    def delete_permission(self, permission_id: str) -> None:
        self._run(
            "rbac.permission.delete",
            lambda: self.permissions.delete(permission_id),
            permission_id=permission_id,
        )

    def get_permission(self, permission_id: str) -> Permission:
        return self._run(
            "rbac.permission.get",
            lambda: self.permissions.get(permission_id),
            write=False,
            permission_id=permission_id,
        )

    def list_permissions(self) -> list[Permission]:
        return self._run("rbac.permission.list", self.permissions.list_all, write=False)

    # ------------- roles -------------------

    def create_role(
        self,
        *,
        name: str,
        description: str | None = None,
        permission_ids: Sequence[str] = (),
        key_ids: Sequence[str] = (),
    ) -> Role:
        def _create() -> Role:
            role = self.roles.create(
                name=name, description=description, permission_ids=permission_ids
            )
            if key_ids:
                self.bindings.replace_role_keys(role.id, key_ids)
            return role

        return self._run(
            "rbac.role.create",
            _create,
            role_name=name,
            permission_count=len(permission_ids),
            key_count=len(key_ids),
        )

    def update_role(
        self,
        role_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        permission_ids: Sequence[str] | None = None,
        key_ids: Sequence[str] | None = None,
    ) -> Role:
        """Update a role; link sets given as ``None`` are left untouched."""

        def _update() -> Role:
            role = self.roles.update(role_id, name=name, description=description)
            if permission_ids is not None:
                self.roles.replace_permissions(role.id, permission_ids)
            if key_ids is not None:
                self.bindings.replace_role_keys(role.id, key_ids)
            return role

        return self._run("rbac.role.update", _update, role_id=role_id)

    def delete_roles(self, role_ids: str | Sequence[str]) -> int:
        return self._run(
            "rbac.role.delete_with_relations",
            lambda: self.roles.delete_with_relations(role_ids),
            role_ids=[role_ids] if isinstance(role_ids, str) else list(role_ids),
        )

    def delete_role(self, role_id: str) -> int:
        return self._run("rbac.role.delete", lambda: self.roles.delete(role_id), role_id=role_id)

    def get_role(self, role_id: str) -> Role:
        return self._run(
            "rbac.role.get", lambda: self.roles.get(role_id), write=False, role_id=role_id
        )

    def list_roles(self) -> list[Role]:
        return self._run("rbac.role.list", self.roles.list_all, write=False)

    def query_roles(
        self,
        *,
        filters: Sequence[FilterItem] = (),
        limit: int = DEFAULT_LIMIT,
        cursor: str | None = None,
    ) -> CursorPage[Role]:
        return self._run(
            "rbac.role.query",
            lambda: self.roles.query(filters=filters, limit=limit, cursor=cursor),
            write=False,
            filter_count=len(filters),
        )

    def replace_role_permissions(self, role_id: str, permission_ids: Sequence[str]) -> None:
        self._run(
            "rbac.role.replace_permissions",
            lambda: self.roles.replace_permissions(role_id, permission_ids),
            role_id=role_id,
            permission_count=len(permission_ids),
        )

    def replace_role_keys(self, role_id: str, key_ids: Sequence[str]) -> None:
        self._run(
            "rbac.role.replace_keys",
            lambda: self.bindings.replace_role_keys(role_id, key_ids),
            role_id=role_id,
            key_count=len(key_ids),
        )

    def connect_permission_to_role(self, role_id: str, permission_id: str) -> None:
        self._run(
            "rbac.role.connect_permission",
            lambda: self.roles.connect_permission(role_id, permission_id),
            role_id=role_id,
            permission_id=permission_id,
        )

    def disconnect_permission_from_role(self, role_id: str, permission_id: str) -> None:
        self._run(
            "rbac.role.disconnect_permission",
            lambda: self.roles.disconnect_permission(role_id, permission_id),
            role_id=role_id,
            permission_id=permission_id,
        )

    # ------------- keys -------------------

    def connect_role_to_key(self, key_id: str, role_id: str) -> None:
        self._run(
            "rbac.key.connect_role",
            lambda: self.bindings.connect_role(key_id, role_id),
            key_id=key_id,
            role_id=role_id,
        )

    def disconnect_role_from_key(self, key_id: str, role_id: str) -> None:
        self._run(
            "rbac.key.disconnect_role",
            lambda: self.bindings.disconnect_role(key_id, role_id),
            key_id=key_id,
            role_id=role_id,
        )

    def connect_permission_to_key(self, key_id: str, permission_id: str) -> None:
        self._run(
            "rbac.key.connect_permission",
            lambda: self.bindings.connect_permission(key_id, permission_id),
            key_id=key_id,
            permission_id=permission_id,
        )

    def disconnect_permission_from_key(self, key_id: str, permission_id: str) -> None:
        self._run(
            "rbac.key.disconnect_permission",
            lambda: self.bindings.disconnect_permission(key_id, permission_id),
            key_id=key_id,
            permission_id=permission_id,
        )

    def add_permissions_to_key_by_name(self, key_id: str, names: Sequence[str]) -> list[Permission]:
        return self._run(
            "rbac.key.add_permissions_by_name",
            lambda: self.bindings.add_permissions_by_name(key_id, names),
            key_id=key_id,
            count=len(names),
        )

    def replace_key_rbac(
        self,
        key_id: str,
        *,
        role_ids: Sequence[str],
        permission_ids: Sequence[str],
        expected_version: int | None = None,
    ) -> KeyReplaceResult:
        return self._run(
            "rbac.key.replace",
            lambda: self.bindings.replace(
                key_id,
                role_ids=role_ids,
                permission_ids=permission_ids,
                expected_version=expected_version,
            ),
            key_id=key_id,
            role_count=len(role_ids),
            permission_count=len(permission_ids),
            expected_version=expected_version,
        )

    # ------------- resolvers -------------------

    def resolve_key(self, key_id: str) -> KeyRbacView:
        return self._run(
            "rbac.resolve.key", lambda: self.resolver.by_key(key_id), write=False, key_id=key_id
        )

    def resolve_role(self, role_id: str) -> RoleRbacView:
        return self._run(
            "rbac.resolve.role",
            lambda: self.resolver.by_role(role_id),
            write=False,
            role_id=role_id,
        )

    def resolve_slugs(
        self,
        *,
        role_ids: Sequence[str],
        permission_ids: Sequence[str],
    ) -> SlugResolution:
        return self._run(
            "rbac.resolve.slugs",
            lambda: self.resolver.slugs_for(role_ids, permission_ids),
            write=False,
        )

    @staticmethod
    def categorize_permissions(names: Sequence[str]) -> PermissionCategories:
        return categorize(names)


__all__ = ["RbacService"]
