from __future__ import annotations

from keygate_api.common.problem_details import (
    build_problem_details,
    error_items_from_pydantic,
    format_error_path,
)
from keygate_api.features.rbac import BadRequestError, ConflictError, InternalError, NotFoundError
from keygate_api.features.rbac.errors import to_api_error


def test_format_error_path_drops_location_prefix() -> None:
    assert format_error_path(("body", "roleIds", 2)) == "roleIds[2]"
    assert format_error_path(("query", "limit")) == "limit"
    assert format_error_path(("body",)) is None
    assert format_error_path(None) is None


def test_error_items_from_pydantic() -> None:
    items = error_items_from_pydantic(
        [{"loc": ("body", "names"), "msg": "List should have at least 1 item", "type": "too_short"}]
    )

    assert len(items) == 1
    assert items[0].path == "names"
    assert items[0].code == "too_short"


def test_build_problem_details_uses_status_defaults() -> None:
    problem = build_problem_details(
        status_code=409,
        instance="/api/v1/roles",
        request_id="req-1",
        detail="Role deployers already exists",
    )

    payload = problem.model_dump(by_alias=True, exclude_none=True)
    assert payload == {
        "type": "conflict",
        "title": "Conflict",
        "status": 409,
        "detail": "Role deployers already exists",
        "instance": "/api/v1/roles",
        "requestId": "req-1",
    }


def test_rbac_errors_map_to_status_codes() -> None:
    assert to_api_error(NotFoundError("Role role_1 not found")).status_code == 404
    assert to_api_error(BadRequestError("bad")).status_code == 400
    assert to_api_error(ConflictError("taken")).status_code == 409


def test_missing_ids_become_error_items() -> None:
    error = to_api_error(BadRequestError("Roles not found: role_x", missing_ids=["role_x"]))

    assert error.errors is not None
    assert [item.path for item in error.errors] == ["role_x"]


def test_internal_error_detail_is_opaque() -> None:
    error = to_api_error(InternalError())

    assert error.status_code == 500
    assert error.detail == "Internal server error"
    assert error.errors is None
