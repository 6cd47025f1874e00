from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Response, status

from keygate_api.api.deps import RbacReadServiceDep, RbacServiceDep
from keygate_api.common.cursor_listing import CursorQueryParams, cursor_query_params
from keygate_db.models import Permission, Role

from .categories import categorize
from .schemas import (
    CategorizeRequest,
    CategorizeResponse,
    EffectivePermissionOut,
    KeyPermissionsByName,
    KeyRbacOut,
    KeyRbacReplace,
    KeyRbacReplaceResult,
    KeySummary,
    PermissionCreate,
    PermissionOut,
    PermissionSummary,
    PermissionUpdate,
    RoleCreate,
    RoleCreated,
    RoleDeleteRequest,
    RoleDeleteResponse,
    RoleKeysReplace,
    RoleOut,
    RolePage,
    RolePermissionsReplace,
    RoleRbacOut,
    RoleSummary,
    RoleUpdate,
    SlugBreakdown,
    SlugsRequest,
    SlugsResponse,
)

router = APIRouter(tags=["rbac"])

PermissionPath = Annotated[str, Path(description="Permission identifier", alias="permissionId")]
RolePath = Annotated[str, Path(description="Role identifier", alias="roleId")]
KeyPath = Annotated[str, Path(description="Key identifier", alias="keyId")]


def _no_content() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _serialize_permission(permission: Permission) -> PermissionOut:
    return PermissionOut.model_validate(permission)


def _serialize_role(role: Role) -> RoleOut:
    return RoleOut.model_validate(role)


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


@router.post(
    "/permissions",
    response_model=PermissionOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a permission",
)
def create_permission(payload: PermissionCreate, service: RbacServiceDep) -> PermissionOut:
    permission = service.create_permission(name=payload.name, description=payload.description)
    return _serialize_permission(permission)


@router.get("/permissions", response_model=list[PermissionOut], summary="List permissions")
def list_permissions(service: RbacReadServiceDep) -> list[PermissionOut]:
    return [_serialize_permission(permission) for permission in service.list_permissions()]


@router.put(
    "/permissions/by-name/{name}",
    response_model=PermissionOut,
    summary="Get or create a permission by name",
)
def upsert_permission(
    name: Annotated[str, Path(description="Permission name")],
    service: RbacServiceDep,
) -> PermissionOut:
    return _serialize_permission(service.upsert_permission(name))


@router.get(
    "/permissions/{permissionId}",
    response_model=PermissionOut,
    summary="Retrieve a permission",
)
def read_permission(permission_id: PermissionPath, service: RbacReadServiceDep) -> PermissionOut:
    return _serialize_permission(service.get_permission(permission_id))


@router.patch(
    "/permissions/{permissionId}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Rename or redescribe a permission (slug is unchanged)",
)
def update_permission(
    permission_id: PermissionPath,
    payload: PermissionUpdate,
    service: RbacServiceDep,
) -> Response:
    service.update_permission(permission_id, name=payload.name, description=payload.description)
    return _no_content()


@router.delete(
    "/permissions/{permissionId}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a permission and its links",
)
def delete_permission(permission_id: PermissionPath, service: RbacServiceDep) -> Response:
    service.delete_permission(permission_id)
    return _no_content()


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


@router.post(
    "/roles",
    response_model=RoleCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Create a role with its permissions and keys",
)
def create_role(payload: RoleCreate, service: RbacServiceDep) -> RoleCreated:
    role = service.create_role(
        name=payload.name,
        description=payload.description,
        permission_ids=payload.permission_ids,
        key_ids=payload.key_ids,
    )
    return RoleCreated(role_id=role.id)


@router.get("/roles", response_model=RolePage, summary="List roles, most recently updated first")
def list_roles(
    service: RbacReadServiceDep,
    list_query: Annotated[CursorQueryParams, Depends(cursor_query_params)],
) -> RolePage:
    page = service.query_roles(
        filters=list_query.filters,
        limit=list_query.limit,
        cursor=list_query.cursor,
    )
    return RolePage(items=[_serialize_role(role) for role in page.items], meta=page.meta)


@router.post(
    "/roles/delete",
    response_model=RoleDeleteResponse,
    summary="Delete roles together with their permission and key links",
)
def delete_roles(payload: RoleDeleteRequest, service: RbacServiceDep) -> RoleDeleteResponse:
    return RoleDeleteResponse(deleted_count=service.delete_roles(payload.role_ids))


@router.get("/roles/{roleId}", response_model=RoleOut, summary="Retrieve a role")
def read_role(role_id: RolePath, service: RbacReadServiceDep) -> RoleOut:
    return _serialize_role(service.get_role(role_id))


@router.patch(
    "/roles/{roleId}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Update a role and, when given, its permission and key sets",
)
def update_role(role_id: RolePath, payload: RoleUpdate, service: RbacServiceDep) -> Response:
    service.update_role(
        role_id,
        name=payload.name,
        description=payload.description,
        permission_ids=payload.permission_ids,
        key_ids=payload.key_ids,
    )
    return _no_content()


@router.delete(
    "/roles/{roleId}",
    response_model=RoleDeleteResponse,
    summary="Delete a role and its links",
)
def delete_role(role_id: RolePath, service: RbacServiceDep) -> RoleDeleteResponse:
    return RoleDeleteResponse(deleted_count=service.delete_role(role_id))


@router.put(
    "/roles/{roleId}/permissions",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Replace the complete permission set of a role",
)
def replace_role_permissions(
    role_id: RolePath,
    payload: RolePermissionsReplace,
    service: RbacServiceDep,
) -> Response:
    service.replace_role_permissions(role_id, payload.permission_ids)
    return _no_content()


@router.put(
    "/roles/{roleId}/keys",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Replace the complete set of keys holding a role",
)
def replace_role_keys(
    role_id: RolePath,
    payload: RoleKeysReplace,
    service: RbacServiceDep,
) -> Response:
    service.replace_role_keys(role_id, payload.key_ids)
    return _no_content()


@router.put(
    "/roles/{roleId}/permissions/{permissionId}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Connect a permission to a role",
)
def connect_permission_to_role(
    role_id: RolePath,
    permission_id: PermissionPath,
    service: RbacServiceDep,
) -> Response:
    service.connect_permission_to_role(role_id, permission_id)
    return _no_content()


@router.delete(
    "/roles/{roleId}/permissions/{permissionId}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Disconnect a permission from a role",
)
def disconnect_permission_from_role(
    role_id: RolePath,
    permission_id: PermissionPath,
    service: RbacServiceDep,
) -> Response:
    service.disconnect_permission_from_role(role_id, permission_id)
    return _no_content()


@router.get(
    "/roles/{roleId}/rbac",
    response_model=RoleRbacOut,
    summary="Keys holding a role and the permissions it grants",
)
def resolve_role(role_id: RolePath, service: RbacReadServiceDep) -> RoleRbacOut:
    view = service.resolve_role(role_id)
    return RoleRbacOut(
        role_id=view.role_id,
        name=view.name,
        description=view.description,
        last_updated=view.last_updated,
        keys=[KeySummary.model_validate(key) for key in view.keys],
        permissions=[PermissionSummary.model_validate(item) for item in view.permissions],
    )


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@router.put(
    "/keys/{keyId}/roles/{roleId}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Connect a role to a key",
)
def connect_role_to_key(key_id: KeyPath, role_id: RolePath, service: RbacServiceDep) -> Response:
    service.connect_role_to_key(key_id, role_id)
    return _no_content()


@router.delete(
    "/keys/{keyId}/roles/{roleId}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Disconnect a role from a key",
)
def disconnect_role_from_key(
    key_id: KeyPath,
    role_id: RolePath,
    service: RbacServiceDep,
) -> Response:
    service.disconnect_role_from_key(key_id, role_id)
    return _no_content()


@router.put(
    "/keys/{keyId}/permissions/{permissionId}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Connect a permission directly to a key",
)
def connect_permission_to_key(
    key_id: KeyPath,
    permission_id: PermissionPath,
    service: RbacServiceDep,
) -> Response:
    service.connect_permission_to_key(key_id, permission_id)
    return _no_content()


@router.delete(
    "/keys/{keyId}/permissions/{permissionId}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Disconnect a direct permission from a key",
)
def disconnect_permission_from_key(
    key_id: KeyPath,
    permission_id: PermissionPath,
    service: RbacServiceDep,
) -> Response:
    service.disconnect_permission_from_key(key_id, permission_id)
    return _no_content()


@router.post(
    "/keys/{keyId}/permissions/by-name",
    response_model=list[PermissionOut],
    summary="Get or create permissions by name and attach them to a key",
)
def add_permissions_to_key_by_name(
    key_id: KeyPath,
    payload: KeyPermissionsByName,
    service: RbacServiceDep,
) -> list[PermissionOut]:
    permissions = service.add_permissions_to_key_by_name(key_id, payload.names)
    return [_serialize_permission(permission) for permission in permissions]


@router.put(
    "/keys/{keyId}/rbac",
    response_model=KeyRbacReplaceResult,
    summary="Replace a key's roles and direct permissions",
)
def replace_key_rbac(
    key_id: KeyPath,
    payload: KeyRbacReplace,
    service: RbacServiceDep,
) -> KeyRbacReplaceResult:
    result = service.replace_key_rbac(
        key_id,
        role_ids=payload.role_ids,
        permission_ids=payload.direct_permission_ids,
        expected_version=payload.expected_version,
    )
    return KeyRbacReplaceResult(
        key_id=result.key_id,
        roles_assigned=result.roles_assigned,
        direct_permissions_assigned=result.direct_permissions_assigned,
        total_effective_permissions=result.total_effective_permissions,
        version=result.version,
    )


@router.get(
    "/keys/{keyId}/rbac",
    response_model=KeyRbacOut,
    summary="Roles and effective permissions of a key",
)
def resolve_key(key_id: KeyPath, service: RbacReadServiceDep) -> KeyRbacOut:
    view = service.resolve_key(key_id)
    return KeyRbacOut(
        key_id=view.key_id,
        name=view.name,
        last_updated=view.last_updated,
        version=view.version,
        roles=[RoleSummary.model_validate(role) for role in view.roles],
        permissions=[EffectivePermissionOut.model_validate(item) for item in view.permissions],
    )


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------


@router.post(
    "/rbac/slugs",
    response_model=SlugsResponse,
    summary="Resolve permission slugs for a set of roles and permissions",
)
def resolve_slugs(payload: SlugsRequest, service: RbacReadServiceDep) -> SlugsResponse:
    resolution = service.resolve_slugs(
        role_ids=payload.role_ids,
        permission_ids=payload.permission_ids,
    )
    return SlugsResponse(
        slugs=resolution.slugs,
        total_count=resolution.total_count,
        breakdown=SlugBreakdown(
            from_roles=resolution.from_roles,
            from_direct_permissions=resolution.from_direct_permissions,
        ),
    )


@router.post(
    "/rbac/categorize",
    response_model=CategorizeResponse,
    summary="Summarize permission names by category",
)
def categorize_permissions(payload: CategorizeRequest) -> CategorizeResponse:
    summary = categorize(payload.permissions)
    return CategorizeResponse(
        total=summary.total,
        categories=summary.categories,
        has_critical_perm=summary.has_critical_perm,
    )


__all__ = ["router"]
