"""Operational liveness/readiness endpoints."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from keygate_api.api.deps import ReadSessionDep, SettingsDep
from keygate_api.common.problem_details import ApiError
from keygate_api.common.schema import BaseSchema

router = APIRouter(tags=["health"])


class HealthCheckResponse(BaseSchema):
    status: Literal["ok"]
    version: str | None = None


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    status_code=status.HTTP_200_OK,
    summary="Service liveness check",
    response_model_exclude_none=True,
)
def read_liveness(settings: SettingsDep) -> HealthCheckResponse:
    """Return liveness status without touching the database."""

    return HealthCheckResponse(status="ok", version=settings.app_version)


@router.get(
    "/ready",
    response_model=HealthCheckResponse,
    status_code=status.HTTP_200_OK,
    summary="Service readiness probe",
    response_model_exclude_none=True,
)
def read_readiness(settings: SettingsDep, db: ReadSessionDep) -> HealthCheckResponse:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise ApiError(
            error_type="service_unavailable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable",
        ) from exc
    return HealthCheckResponse(status="ok", version=settings.app_version)


__all__ = ["router"]
