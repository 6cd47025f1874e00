"""RBAC graph: permissions, roles and the junction tables linking them to keys.

Junction rows carry no foreign keys and no cascading deletes. Deleting an
endpoint must remove its junction rows explicitly, children first.
"""

from __future__ import annotations

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from keygate_db import Base, TimestampMixin

from ._ids import ID_LENGTH, PrefixedIdPrimaryKeyMixin

NAME_LENGTH = 512


class Permission(PrefixedIdPrimaryKeyMixin, TimestampMixin, Base):
    """Workspace-scoped capability; ``slug`` is what runtime enforcement checks."""

    __tablename__ = "permissions"
    __id_prefix__ = "perm"

    workspace_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    name: Mapped[str] = mapped_column(String(NAME_LENGTH), nullable=False)
    slug: Mapped[str] = mapped_column(String(NAME_LENGTH), nullable=False)
    description: Mapped[str | None] = mapped_column(Text(), nullable=True)

    __table_args__ = (
        UniqueConstraint("workspace_id", "name", name="uq_permissions_workspace_name"),
        UniqueConstraint("workspace_id", "slug", name="uq_permissions_workspace_slug"),
        Index("ix_permissions_workspace_id", "workspace_id"),
    )


class Role(PrefixedIdPrimaryKeyMixin, TimestampMixin, Base):
    """Named bundle of permissions within a workspace."""

    __tablename__ = "roles"
    __id_prefix__ = "role"

    workspace_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    name: Mapped[str] = mapped_column(String(NAME_LENGTH), nullable=False)
    description: Mapped[str | None] = mapped_column(Text(), nullable=True)

    __table_args__ = (
        UniqueConstraint("workspace_id", "name", name="uq_roles_workspace_name"),
        Index("ix_roles_workspace_id", "workspace_id"),
    )


class RolePermission(TimestampMixin, Base):
    """Link from a role to one of its permissions."""

    __tablename__ = "roles_permissions"

    role_id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    permission_id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    workspace_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)

    __table_args__ = (
        Index("ix_roles_permissions_workspace_id", "workspace_id"),
        Index("ix_roles_permissions_permission_id", "permission_id"),
    )


class KeyRole(TimestampMixin, Base):
    """Link from a key to a role it holds."""

    __tablename__ = "keys_roles"

    key_id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    role_id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    workspace_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)

    __table_args__ = (
        Index("ix_keys_roles_workspace_id", "workspace_id"),
        Index("ix_keys_roles_role_id", "role_id"),
    )


class KeyPermission(TimestampMixin, Base):
    """Direct permission grant on a key, bypassing roles."""

    __tablename__ = "keys_permissions"

    key_id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    permission_id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    workspace_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)

    __table_args__ = (
        Index("ix_keys_permissions_workspace_id", "workspace_id"),
        Index("ix_keys_permissions_permission_id", "permission_id"),
    )


class KeyAuthzVersion(TimestampMixin, Base):
    """Monotonic version of a key's authorization state (roles + direct permissions)."""

    __tablename__ = "key_authz_versions"

    key_id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    workspace_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    version: Mapped[int] = mapped_column(Integer(), nullable=False, default=0)


__all__ = [
    "KeyAuthzVersion",
    "KeyPermission",
    "KeyRole",
    "NAME_LENGTH",
    "Permission",
    "Role",
    "RolePermission",
]
