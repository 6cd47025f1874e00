"""Central exports for keygate SQLAlchemy models."""

from .audit import AuditLog
from .rbac import (
    KeyAuthzVersion,
    KeyPermission,
    KeyRole,
    Permission,
    Role,
    RolePermission,
)
from .workspace import Key, Workspace

__all__ = [
    "AuditLog",
    "Key",
    "KeyAuthzVersion",
    "KeyPermission",
    "KeyRole",
    "Permission",
    "Role",
    "RolePermission",
    "Workspace",
]
