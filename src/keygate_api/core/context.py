"""Tenant context: which workspace a call is scoped to and who is acting."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request, status

from keygate_api.common.problem_details import ApiError
from keygate_api.settings import Settings


@dataclass(frozen=True, slots=True)
class WorkspaceContext:
    """Scoping workspace plus the acting identity used for audit attribution."""

    workspace_id: str
    actor_id: str
    actor_type: str = "user"
    location: str | None = None
    user_agent: str | None = None


def _required_header(request: Request, name: str) -> str:
    value = (request.headers.get(name) or "").strip()
    if not value:
        raise ApiError(
            error_type="bad_request",
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing required header: {name}",
        )
    return value


def workspace_context_from_request(request: Request, settings: Settings) -> WorkspaceContext:
    client_host = request.client.host if request.client is not None else None
    return WorkspaceContext(
        workspace_id=_required_header(request, settings.workspace_header),
        actor_id=_required_header(request, settings.actor_header),
        location=client_host,
        user_agent=request.headers.get("user-agent"),
    )


__all__ = ["WorkspaceContext", "workspace_context_from_request"]
