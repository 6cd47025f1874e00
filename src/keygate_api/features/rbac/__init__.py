"""Workspace-scoped RBAC engine: permissions, roles, key bindings and resolvers."""

from .categories import PermissionCategories, categorize
from .exceptions import BadRequestError, ConflictError, InternalError, NotFoundError, RbacError
from .links import plan_link_replacement
from .service import RbacService

__all__ = [
    "BadRequestError",
    "ConflictError",
    "InternalError",
    "NotFoundError",
    "PermissionCategories",
    "RbacError",
    "RbacService",
    "categorize",
    "plan_link_replacement",
]
