"""Aggregate the versioned API routers."""

from __future__ import annotations

from fastapi import APIRouter

from keygate_api.features.audit.router import router as audit_router
from keygate_api.features.rbac.router import router as rbac_router


def create_api_router() -> APIRouter:
    router = APIRouter()
    router.include_router(rbac_router)
    router.include_router(audit_router)
    return router


__all__ = ["create_api_router"]
