from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query

from keygate_api.api.deps import ReadSessionDep, WorkspaceContextDep

from .schemas import AuditLogOut
from .sink import SqlAuditSink

router = APIRouter(tags=["audit"])


@router.get(
    "/audit-logs",
    response_model=list[AuditLogOut],
    summary="List recent audit entries for the workspace",
)
def list_audit_logs(
    session: ReadSessionDep,
    context: WorkspaceContextDep,
    event: Annotated[str | None, Query(description="Only entries with this event name")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> list[AuditLogOut]:
    entries = SqlAuditSink(session).list_entries(
        workspace_id=context.workspace_id,
        event=event,
        limit=limit,
    )
    return [AuditLogOut.model_validate(entry) for entry in entries]


__all__ = ["router"]
