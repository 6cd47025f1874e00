"""Helpers for recording audit entries."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from keygate_api.core.context import WorkspaceContext
from keygate_db.models import AuditLog

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class AuditResource:
    type: str
    id: str
    name: str | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "id": self.id}
        if self.name is not None:
            payload["name"] = self.name
        return payload


@dataclass(slots=True)
class AuditEntry:
    """Structured entry accepted by an :class:`AuditSink`."""

    workspace_id: str
    actor_type: str
    actor_id: str
    event: str
    description: str
    resources: list[AuditResource] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)


class AuditSink(Protocol):
    def record(self, entry: AuditEntry) -> None: ...


def build_entry(
    context: WorkspaceContext,
    *,
    event: str,
    description: str,
    resources: Iterable[AuditResource],
) -> AuditEntry:
    """Attribute an entry to the acting identity of ``context``."""

    request_context: dict[str, Any] = {}
    if context.location:
        request_context["location"] = context.location
    if context.user_agent:
        request_context["user_agent"] = context.user_agent
    return AuditEntry(
        workspace_id=context.workspace_id,
        actor_type=context.actor_type,
        actor_id=context.actor_id,
        event=event,
        description=description,
        resources=list(resources),
        context=request_context,
    )


def _normalise_payload(payload: Any) -> Any:
    # Sorted keys so retries emit identical JSON structures.
    return json.loads(json.dumps(payload, sort_keys=True, separators=(",", ":")))


class SqlAuditSink:
    """Writes ``audit_logs`` rows inside the caller's transaction."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def record(self, entry: AuditEntry) -> None:
        row = AuditLog(
            workspace_id=entry.workspace_id,
            actor_type=entry.actor_type,
            actor_id=entry.actor_id,
            event=entry.event,
            description=entry.description,
            resources=_normalise_payload([resource.as_dict() for resource in entry.resources]),
            context=_normalise_payload(entry.context),
        )
        self._session.add(row)
        self._session.flush([row])
        logger.debug(
            "audit.record",
            extra={
                "workspace_id": entry.workspace_id,
                "event": entry.event,
                "audit_id": row.id,
            },
        )

    def list_entries(
        self,
        *,
        workspace_id: str,
        event: str | None = None,
        limit: int = 100,
    ) -> list[AuditLog]:
        stmt = select(AuditLog).where(AuditLog.workspace_id == workspace_id)
        if event:
            stmt = stmt.where(AuditLog.event == event)
        stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
        return list(self._session.execute(stmt).scalars().all())


__all__ = ["AuditEntry", "AuditResource", "AuditSink", "SqlAuditSink", "build_entry"]
