"""Initial keygate schema: tenants, keys, RBAC graph and audit log.

Notes:
- Ids are prefixed ULID strings generated by the application.
- Junction tables carry no foreign keys; deletes cascade in application code.
"""

from __future__ import annotations

from typing import Optional

import sqlalchemy as sa
from alembic import op

from keygate_db.types import UTCDateTime

# Revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision: Optional[str] = None
branch_labels: Optional[str] = None
depends_on: Optional[str] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=False),
    ]


def _link_table(name: str, left: str, right: str) -> None:
    op.create_table(
        name,
        sa.Column(left, sa.String(64), nullable=False),
        sa.Column(right, sa.String(64), nullable=False),
        sa.Column("workspace_id", sa.String(64), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint(left, right, name=op.f(f"pk_{name}")),
    )
    op.create_index(f"ix_{name}_workspace_id", name, ["workspace_id"])
    op.create_index(f"ix_{name}_{right}", name, [right])


def upgrade() -> None:
    op.create_table(
        "workspaces",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_workspaces")),
    )

    op.create_table(
        "keys",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("workspace_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("deleted_at", UTCDateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_keys")),
    )
    op.create_index("ix_keys_workspace_id", "keys", ["workspace_id"])

    op.create_table(
        "permissions",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("workspace_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("slug", sa.String(512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_permissions")),
        sa.UniqueConstraint("workspace_id", "name", name="uq_permissions_workspace_name"),
        sa.UniqueConstraint("workspace_id", "slug", name="uq_permissions_workspace_slug"),
    )
    op.create_index("ix_permissions_workspace_id", "permissions", ["workspace_id"])

    op.create_table(
        "roles",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("workspace_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_roles")),
        sa.UniqueConstraint("workspace_id", "name", name="uq_roles_workspace_name"),
    )
    op.create_index("ix_roles_workspace_id", "roles", ["workspace_id"])

    _link_table("roles_permissions", "role_id", "permission_id")
    _link_table("keys_roles", "key_id", "role_id")
    _link_table("keys_permissions", "key_id", "permission_id")

    op.create_table(
        "key_authz_versions",
        sa.Column("key_id", sa.String(64), nullable=False),
        sa.Column("workspace_id", sa.String(64), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("key_id", name=op.f("pk_key_authz_versions")),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("workspace_id", sa.String(64), nullable=False),
        sa.Column("actor_type", sa.String(32), nullable=False),
        sa.Column("actor_id", sa.String(255), nullable=False),
        sa.Column("event", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("resources", sa.JSON(), nullable=False),
        sa.Column("context", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_audit_logs")),
    )
    op.create_index(
        "ix_audit_logs_workspace_created", "audit_logs", ["workspace_id", "created_at"]
    )
    op.create_index("ix_audit_logs_event", "audit_logs", ["event"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("key_authz_versions")
    op.drop_table("keys_permissions")
    op.drop_table("keys_roles")
    op.drop_table("roles_permissions")
    op.drop_table("roles")
    op.drop_table("permissions")
    op.drop_table("keys")
    op.drop_table("workspaces")
