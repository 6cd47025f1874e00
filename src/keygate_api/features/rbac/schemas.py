"""Request and response models for the RBAC routes (camelCase on the wire)."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import Field

from keygate_api.common.cursor_listing import CursorMeta
from keygate_api.common.schema import BaseSchema


class PermissionOut(BaseSchema):
    id: str
    name: str
    slug: str
    description: str | None = None
    created_at: datetime
    updated_at: datetime


class PermissionCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=512)
    description: str | None = Field(default=None, max_length=2000)


class PermissionUpdate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=512)
    description: str | None = Field(default=None, max_length=2000)


class RoleOut(BaseSchema):
    id: str
    name: str
    description: str | None = None
    created_at: datetime
    updated_at: datetime


class RoleCreate(BaseSchema):
    name: str = Field(..., min_length=1, max_length=512)
    description: str | None = Field(default=None, max_length=2000)
    permission_ids: list[str] = Field(default_factory=list)
    key_ids: list[str] = Field(default_factory=list)


class RoleCreated(BaseSchema):
    role_id: str


class RoleUpdate(BaseSchema):
    name: str | None = Field(default=None, min_length=1, max_length=512)
    description: str | None = Field(default=None, max_length=2000)
    permission_ids: list[str] | None = None
    key_ids: list[str] | None = None


class RolePage(BaseSchema):
    items: list[RoleOut]
    meta: CursorMeta


class RoleDeleteRequest(BaseSchema):
    role_ids: str | list[str]


class RoleDeleteResponse(BaseSchema):
    deleted_count: int


class RolePermissionsReplace(BaseSchema):
    permission_ids: list[str] = Field(default_factory=list)


class RoleKeysReplace(BaseSchema):
    key_ids: list[str] = Field(default_factory=list)


class KeyPermissionsByName(BaseSchema):
    names: list[str] = Field(..., min_length=1)


class KeyRbacReplace(BaseSchema):
    """Complete desired state of a key's roles and direct permissions."""

    role_ids: list[str] = Field(default_factory=list)
    direct_permission_ids: list[str] = Field(default_factory=list)
    expected_version: int | None = Field(default=None, ge=0)


class KeyRbacReplaceResult(BaseSchema):
    key_id: str
    roles_assigned: int
    direct_permissions_assigned: int
    total_effective_permissions: int
    version: int


class RoleSummary(BaseSchema):
    id: str
    name: str
    description: str | None = None


class KeySummary(BaseSchema):
    id: str
    name: str | None = None


class PermissionSummary(BaseSchema):
    id: str
    name: str
    slug: str
    description: str | None = None


class EffectivePermissionOut(PermissionSummary):
    source: Literal["direct", "role"]
    role_id: str | None = None


class KeyRbacOut(BaseSchema):
    key_id: str
    name: str | None = None
    last_updated: datetime
    version: int
    roles: list[RoleSummary]
    permissions: list[EffectivePermissionOut]


class RoleRbacOut(BaseSchema):
    role_id: str
    name: str
    description: str | None = None
    last_updated: datetime
    keys: list[KeySummary]
    permissions: list[PermissionSummary]


class SlugsRequest(BaseSchema):
    role_ids: list[str] = Field(default_factory=list)
    permission_ids: list[str] = Field(default_factory=list)


class SlugBreakdown(BaseSchema):
    from_roles: int
    from_direct_permissions: int


class SlugsResponse(BaseSchema):
    slugs: list[str]
    total_count: int
    breakdown: SlugBreakdown


class CategorizeRequest(BaseSchema):
    permissions: list[str] = Field(default_factory=list)


class CategorizeResponse(BaseSchema):
    total: int
    categories: dict[str, int]
    has_critical_perm: bool


__all__ = [
    "CategorizeRequest",
    "CategorizeResponse",
    "EffectivePermissionOut",
    "KeyPermissionsByName",
    "KeyRbacOut",
    "KeyRbacReplace",
    "KeyRbacReplaceResult",
    "KeySummary",
    "PermissionCreate",
    "PermissionOut",
    "PermissionSummary",
    "PermissionUpdate",
    "RoleCreate",
    "RoleCreated",
    "RoleDeleteRequest",
    "RoleDeleteResponse",
    "RoleKeysReplace",
    "RoleOut",
    "RolePage",
    "RolePermissionsReplace",
    "RoleRbacOut",
    "RoleSummary",
    "RoleUpdate",
    "SlugBreakdown",
    "SlugsRequest",
    "SlugsResponse",
]
