from __future__ import annotations

import json
from typing import Any

import pytest
from httpx import AsyncClient

from tests.utils import SeededWorkspace, tenant_headers

pytestmark = pytest.mark.asyncio

PROBLEM_JSON = "application/problem+json"


async def _create_permission(
    client: AsyncClient,
    headers: dict[str, str],
    name: str,
) -> dict[str, Any]:
    response = await client.post("/api/v1/permissions", json={"name": name}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def _create_role(
    client: AsyncClient,
    headers: dict[str, str],
    name: str,
    permission_ids: list[str] | None = None,
) -> str:
    response = await client.post(
        "/api/v1/roles",
        json={"name": name, "permissionIds": permission_ids or []},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["roleId"]


async def test_permission_crud(async_client: AsyncClient, api_seeded: SeededWorkspace) -> None:
    headers = tenant_headers(api_seeded.workspace_id)
    created = await _create_permission(async_client, headers, "api.*.read_api")

    assert created["slug"] == "api.*.read_api"
    assert "createdAt" in created

    update = await async_client.patch(
        f"/api/v1/permissions/{created['id']}",
        json={"name": "api.*.read_apis", "description": "Read every API"},
        headers=headers,
    )
    assert update.status_code == 204

    fetched = await async_client.get(f"/api/v1/permissions/{created['id']}", headers=headers)
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "api.*.read_apis"
    assert fetched.json()["slug"] == "api.*.read_api"

    listing = await async_client.get("/api/v1/permissions", headers=headers)
    assert [item["id"] for item in listing.json()] == [created["id"]]

    deleted = await async_client.delete(f"/api/v1/permissions/{created['id']}", headers=headers)
    assert deleted.status_code == 204

    missing = await async_client.get(f"/api/v1/permissions/{created['id']}", headers=headers)
    assert missing.status_code == 404
    assert missing.headers["content-type"].startswith(PROBLEM_JSON)
    assert missing.json()["type"] == "not_found"


async def test_upsert_permission_by_name(
    async_client: AsyncClient,
    api_seeded: SeededWorkspace,
) -> None:
    headers = tenant_headers(api_seeded.workspace_id)

    first = await async_client.put("/api/v1/permissions/by-name/api.*.read_api", headers=headers)
    second = await async_client.put("/api/v1/permissions/by-name/api.*.read_api", headers=headers)

    assert first.status_code == 200
    assert first.json()["id"] == second.json()["id"]


async def test_duplicate_permission_returns_conflict(
    async_client: AsyncClient,
    api_seeded: SeededWorkspace,
) -> None:
    headers = tenant_headers(api_seeded.workspace_id)
    await _create_permission(async_client, headers, "api.*.read_api")

    response = await async_client.post(
        "/api/v1/permissions", json={"name": "api.*.read_api"}, headers=headers
    )

    assert response.status_code == 409
    payload = response.json()
    assert payload["type"] == "conflict"
    assert payload["instance"] == "/api/v1/permissions"
    assert payload["requestId"] == response.headers["X-Request-ID"]


async def test_malformed_permission_name_is_bad_request(
    async_client: AsyncClient,
    api_seeded: SeededWorkspace,
) -> None:
    response = await async_client.post(
        "/api/v1/permissions",
        json={"name": "has spaces"},
        headers=tenant_headers(api_seeded.workspace_id),
    )

    assert response.status_code == 400
    assert response.json()["type"] == "bad_request"


async def test_missing_workspace_header_is_bad_request(
    async_client: AsyncClient,
    api_seeded: SeededWorkspace,
) -> None:
    response = await async_client.get("/api/v1/roles", headers={"X-Actor-Id": "user_admin"})

    assert response.status_code == 400
    assert "X-Workspace-Id" in response.json()["detail"]


async def test_role_lifecycle(async_client: AsyncClient, api_seeded: SeededWorkspace) -> None:
    headers = tenant_headers(api_seeded.workspace_id)
    read = await _create_permission(async_client, headers, "api.*.read_api")
    update = await _create_permission(async_client, headers, "api.*.update_api")
    role_id = await _create_role(async_client, headers, "readers", [read["id"]])

    renamed = await async_client.patch(
        f"/api/v1/roles/{role_id}", json={"name": "api-readers"}, headers=headers
    )
    assert renamed.status_code == 204

    replaced = await async_client.put(
        f"/api/v1/roles/{role_id}/permissions",
        json={"permissionIds": [update["id"]]},
        headers=headers,
    )
    assert replaced.status_code == 204

    connected = await async_client.put(
        f"/api/v1/roles/{role_id}/permissions/{read['id']}", headers=headers
    )
    assert connected.status_code == 204

    disconnected = await async_client.delete(
        f"/api/v1/roles/{role_id}/permissions/{update['id']}", headers=headers
    )
    assert disconnected.status_code == 204

    view = await async_client.get(f"/api/v1/roles/{role_id}/rbac", headers=headers)
    assert view.status_code == 200
    payload = view.json()
    assert payload["roleId"] == role_id
    assert payload["name"] == "api-readers"
    assert [item["id"] for item in payload["permissions"]] == [read["id"]]
    assert payload["keys"] == []

    deleted = await async_client.delete(f"/api/v1/roles/{role_id}", headers=headers)
    assert deleted.status_code == 200
    assert deleted.json() == {"deletedCount": 1}


async def test_create_role_with_unknown_permission_lists_missing_ids(
    async_client: AsyncClient,
    api_seeded: SeededWorkspace,
) -> None:
    response = await async_client.post(
        "/api/v1/roles",
        json={"name": "readers", "permissionIds": ["perm_missing"]},
        headers=tenant_headers(api_seeded.workspace_id),
    )

    assert response.status_code == 400
    assert response.json()["errors"] == [
        {"path": "perm_missing", "message": "Not found in workspace", "code": "missing_id"}
    ]


async def test_bulk_role_delete_is_atomic(
    async_client: AsyncClient,
    api_seeded: SeededWorkspace,
) -> None:
    headers = tenant_headers(api_seeded.workspace_id)
    role_id = await _create_role(async_client, headers, "readers")

    response = await async_client.post(
        "/api/v1/roles/delete",
        json={"roleIds": [role_id, "role_missing"]},
        headers=headers,
    )
    assert response.status_code == 404

    still_there = await async_client.get(f"/api/v1/roles/{role_id}", headers=headers)
    assert still_there.status_code == 200

    single = await async_client.post(
        "/api/v1/roles/delete", json={"roleIds": role_id}, headers=headers
    )
    assert single.json() == {"deletedCount": 1}


async def test_replace_and_resolve_key(
    async_client: AsyncClient,
    api_seeded: SeededWorkspace,
) -> None:
    headers = tenant_headers(api_seeded.workspace_id)
    read = await _create_permission(async_client, headers, "api.*.read_api")
    limit = await _create_permission(async_client, headers, "ratelimit.*.limit")
    role_id = await _create_role(async_client, headers, "readers", [read["id"]])

    replaced = await async_client.put(
        f"/api/v1/keys/{api_seeded.key_id}/rbac",
        json={"roleIds": [role_id], "directPermissionIds": [limit["id"]], "expectedVersion": 0},
        headers=headers,
    )
    assert replaced.status_code == 200
    assert replaced.json() == {
        "keyId": api_seeded.key_id,
        "rolesAssigned": 1,
        "directPermissionsAssigned": 1,
        "totalEffectivePermissions": 2,
        "version": 1,
    }

    stale = await async_client.put(
        f"/api/v1/keys/{api_seeded.key_id}/rbac",
        json={"roleIds": [], "directPermissionIds": [], "expectedVersion": 0},
        headers=headers,
    )
    assert stale.status_code == 409

    view = await async_client.get(f"/api/v1/keys/{api_seeded.key_id}/rbac", headers=headers)
    assert view.status_code == 200
    payload = view.json()
    assert payload["version"] == 1
    assert [role["id"] for role in payload["roles"]] == [role_id]
    assert [(item["slug"], item["source"]) for item in payload["permissions"]] == [
        ("api.*.read_api", "role"),
        ("ratelimit.*.limit", "direct"),
    ]
    assert payload["permissions"][0]["roleId"] == role_id


async def test_key_links_and_add_by_name(
    async_client: AsyncClient,
    api_seeded: SeededWorkspace,
) -> None:
    headers = tenant_headers(api_seeded.workspace_id)
    key_id = api_seeded.key_id
    role_id = await _create_role(async_client, headers, "readers")

    assert (
        await async_client.put(f"/api/v1/keys/{key_id}/roles/{role_id}", headers=headers)
    ).status_code == 204
    assert (
        await async_client.delete(f"/api/v1/keys/{key_id}/roles/{role_id}", headers=headers)
    ).status_code == 204

    added = await async_client.post(
        f"/api/v1/keys/{key_id}/permissions/by-name",
        json={"names": ["api.*.create_key", "api.*.read_key"]},
        headers=headers,
    )
    assert added.status_code == 200
    names = [item["name"] for item in added.json()]
    assert names == ["api.*.create_key", "api.*.read_key"]

    permission_id = added.json()[0]["id"]
    removed = await async_client.delete(
        f"/api/v1/keys/{key_id}/permissions/{permission_id}", headers=headers
    )
    assert removed.status_code == 204
    reconnected = await async_client.put(
        f"/api/v1/keys/{key_id}/permissions/{permission_id}", headers=headers
    )
    assert reconnected.status_code == 204

    empty = await async_client.post(
        f"/api/v1/keys/{key_id}/permissions/by-name", json={"names": []}, headers=headers
    )
    assert empty.status_code == 422
    assert empty.json()["type"] == "validation_error"


async def test_soft_deleted_key_is_not_found(
    async_client: AsyncClient,
    api_seeded: SeededWorkspace,
) -> None:
    response = await async_client.get(
        f"/api/v1/keys/{api_seeded.deleted_key_id}/rbac",
        headers=tenant_headers(api_seeded.workspace_id),
    )

    assert response.status_code == 404


async def test_other_workspace_cannot_see_roles(
    async_client: AsyncClient,
    api_seeded: SeededWorkspace,
) -> None:
    role_id = await _create_role(async_client, tenant_headers(api_seeded.workspace_id), "readers")

    response = await async_client.get(
        f"/api/v1/roles/{role_id}",
        headers=tenant_headers(api_seeded.secondary_workspace_id),
    )

    assert response.status_code == 404


async def test_resolve_slugs(async_client: AsyncClient, api_seeded: SeededWorkspace) -> None:
    headers = tenant_headers(api_seeded.workspace_id)
    read = await _create_permission(async_client, headers, "api.*.read_api")
    limit = await _create_permission(async_client, headers, "ratelimit.*.limit")
    role_id = await _create_role(async_client, headers, "readers", [read["id"]])

    response = await async_client.post(
        "/api/v1/rbac/slugs",
        json={"roleIds": [role_id], "permissionIds": [limit["id"]]},
        headers=headers,
    )

    assert response.status_code == 200
    assert response.json() == {
        "slugs": ["api.*.read_api", "ratelimit.*.limit"],
        "totalCount": 2,
        "breakdown": {"fromRoles": 1, "fromDirectPermissions": 1},
    }


async def test_categorize(async_client: AsyncClient, api_seeded: SeededWorkspace) -> None:
    response = await async_client.post(
        "/api/v1/rbac/categorize",
        json={"permissions": ["api.*.create_key", "ratelimit.*.delete_override", "short"]},
        headers=tenant_headers(api_seeded.workspace_id),
    )

    assert response.status_code == 200
    assert response.json() == {
        "total": 3,
        "categories": {"Keys": 1, "Ratelimit": 1},
        "hasCriticalPerm": True,
    }


async def test_audit_log_lists_workspace_entries(
    async_client: AsyncClient,
    api_seeded: SeededWorkspace,
) -> None:
    headers = tenant_headers(api_seeded.workspace_id, actor_id="user_auditor")
    await _create_permission(async_client, headers, "api.*.read_api")
    await _create_role(async_client, headers, "readers")

    response = await async_client.get(
        "/api/v1/audit-logs", params={"event": "role.create"}, headers=headers
    )
    assert response.status_code == 200
    entries = response.json()
    assert len(entries) == 1
    assert entries[0]["actorId"] == "user_auditor"
    assert entries[0]["resources"][0]["type"] == "role"

    foreign = await async_client.get(
        "/api/v1/audit-logs", headers=tenant_headers(api_seeded.secondary_workspace_id)
    )
    assert foreign.json() == []


async def test_list_roles_pages_with_cursor(
    async_client: AsyncClient,
    api_seeded: SeededWorkspace,
) -> None:
    headers = tenant_headers(api_seeded.workspace_id)
    role_ids = {await _create_role(async_client, headers, name) for name in ("a-1", "b-2", "c-3")}

    first = await async_client.get("/api/v1/roles", params={"limit": 2}, headers=headers)
    assert first.status_code == 200
    first_page = first.json()
    assert first_page["meta"]["total"] == 3
    assert first_page["meta"]["hasMore"] is True
    assert len(first_page["items"]) == 2

    second = await async_client.get(
        "/api/v1/roles",
        params={"limit": 2, "cursor": first_page["meta"]["nextCursor"]},
        headers=headers,
    )
    second_page = second.json()
    assert second_page["meta"]["hasMore"] is False
    assert second_page["meta"]["nextCursor"] is None

    seen = [item["id"] for item in first_page["items"] + second_page["items"]]
    assert len(seen) == 3
    assert set(seen) == role_ids


async def test_list_roles_filters_by_permission_and_key(
    async_client: AsyncClient,
    api_seeded: SeededWorkspace,
) -> None:
    headers = tenant_headers(api_seeded.workspace_id)
    read = await _create_permission(async_client, headers, "api.*.read_api")
    limit = await _create_permission(async_client, headers, "ratelimit.*.limit")
    readers = await _create_role(async_client, headers, "readers", [read["id"]])
    limiters = await _create_role(async_client, headers, "limiters", [limit["id"]])
    await async_client.put(f"/api/v1/keys/{api_seeded.key_id}/roles/{limiters}", headers=headers)

    by_slug = await async_client.get(
        "/api/v1/roles",
        params={
            "filters": json.dumps(
                [{"id": "permissionSlug", "operator": "startsWith", "value": "api."}]
            )
        },
        headers=headers,
    )
    assert [item["id"] for item in by_slug.json()["items"]] == [readers]
    assert by_slug.json()["meta"]["total"] == 1

    by_key = await async_client.get(
        "/api/v1/roles",
        params={
            "filters": json.dumps([{"id": "keyName", "operator": "is", "value": "ci-deployer"}])
        },
        headers=headers,
    )
    assert [item["id"] for item in by_key.json()["items"]] == [limiters]

    either_name = await async_client.get(
        "/api/v1/roles",
        params={
            "filters": json.dumps(
                [
                    {"id": "name", "operator": "contains", "value": "read"},
                    {"id": "name", "operator": "endsWith", "value": "iters"},
                ]
            )
        },
        headers=headers,
    )
    assert {item["id"] for item in either_name.json()["items"]} == {readers, limiters}


async def test_list_roles_rejects_unknown_filter_and_bad_cursor(
    async_client: AsyncClient,
    api_seeded: SeededWorkspace,
) -> None:
    headers = tenant_headers(api_seeded.workspace_id)

    unknown = await async_client.get(
        "/api/v1/roles",
        params={"filters": json.dumps([{"id": "owner", "operator": "is", "value": "x"}])},
        headers=headers,
    )
    assert unknown.status_code == 422
    assert unknown.headers["content-type"].startswith(PROBLEM_JSON)

    bad_cursor = await async_client.get(
        "/api/v1/roles", params={"cursor": "not-a-cursor"}, headers=headers
    )
    assert bad_cursor.status_code == 422


async def test_role_key_set_replace_and_create_with_keys(
    async_client: AsyncClient,
    api_seeded: SeededWorkspace,
) -> None:
    headers = tenant_headers(api_seeded.workspace_id)
    created = await async_client.post(
        "/api/v1/roles",
        json={"name": "deployers", "keyIds": [api_seeded.key_id]},
        headers=headers,
    )
    assert created.status_code == 201
    role_id = created.json()["roleId"]

    replaced = await async_client.put(
        f"/api/v1/roles/{role_id}/keys",
        json={"keyIds": [api_seeded.second_key_id]},
        headers=headers,
    )
    assert replaced.status_code == 204

    view = await async_client.get(f"/api/v1/roles/{role_id}/rbac", headers=headers)
    assert [key["id"] for key in view.json()["keys"]] == [api_seeded.second_key_id]

    rejected = await async_client.patch(
        f"/api/v1/roles/{role_id}",
        json={"name": "deployers-v2", "keyIds": [api_seeded.deleted_key_id]},
        headers=headers,
    )
    assert rejected.status_code == 400
    assert rejected.json()["errors"][0]["path"] == api_seeded.deleted_key_id

    unchanged = await async_client.get(f"/api/v1/roles/{role_id}", headers=headers)
    assert unchanged.json()["name"] == "deployers"
