from __future__ import annotations

from datetime import datetime
from typing import Any

from keygate_api.common.schema import BaseSchema


class AuditLogOut(BaseSchema):
    id: str
    workspace_id: str
    actor_type: str
    actor_id: str
    event: str
    description: str
    resources: list[dict[str, Any]]
    context: dict[str, Any]
    created_at: datetime


__all__ = ["AuditLogOut"]
