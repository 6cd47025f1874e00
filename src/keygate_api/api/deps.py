"""Dependency factories used by API routers.

This module should be the single place routers import per-request service
constructors from.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from keygate_api.core.context import WorkspaceContext, workspace_context_from_request
from keygate_api.db import get_db_read, get_db_write
from keygate_api.features.rbac.service import RbacService
from keygate_api.settings import Settings

WriteSessionDep = Annotated[Session, Depends(get_db_write)]
ReadSessionDep = Annotated[Session, Depends(get_db_read)]


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


def get_workspace_context(request: Request, settings: SettingsDep) -> WorkspaceContext:
    return workspace_context_from_request(request, settings)


WorkspaceContextDep = Annotated[WorkspaceContext, Depends(get_workspace_context)]


def get_rbac_service(session: WriteSessionDep, context: WorkspaceContextDep) -> RbacService:
    return RbacService(session=session, context=context)


def get_rbac_service_read(session: ReadSessionDep, context: WorkspaceContextDep) -> RbacService:
    return RbacService(session=session, context=context)


RbacServiceDep = Annotated[RbacService, Depends(get_rbac_service)]
RbacReadServiceDep = Annotated[RbacService, Depends(get_rbac_service_read)]

__all__ = [
    "RbacReadServiceDep",
    "RbacServiceDep",
    "ReadSessionDep",
    "SettingsDep",
    "WorkspaceContextDep",
    "WriteSessionDep",
    "get_app_settings",
    "get_rbac_service",
    "get_rbac_service_read",
    "get_workspace_context",
]
