"""Translate RBAC domain errors into Problem Details responses."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import cast

from fastapi import FastAPI, Request
from starlette.responses import Response

from keygate_api.common.exceptions import api_error_handler
from keygate_api.common.problem_details import ApiError, ProblemDetailsErrorItem

from .exceptions import InternalError, RbacError

type HttpExceptionHandler = Callable[[Request, Exception], Response | Awaitable[Response]]


def to_api_error(exc: RbacError) -> ApiError:
    if isinstance(exc, InternalError):
        # Storage detail stays in the server logs.
        return ApiError(
            error_type=exc.error_type,
            status_code=exc.status_code,
            detail="Internal server error",
        )
    errors = [
        ProblemDetailsErrorItem(path=item, message="Not found in workspace", code="missing_id")
        for item in exc.missing_ids
    ]
    return ApiError(
        error_type=exc.error_type,
        status_code=exc.status_code,
        detail=exc.message,
        errors=errors or None,
    )


def _handle_rbac_error(request: Request, exc: RbacError) -> Response:
    return api_error_handler(request, to_api_error(exc))


def register_rbac_exception_handlers(app: FastAPI) -> None:
    """Attach RBAC error handlers to the FastAPI app."""

    app.add_exception_handler(RbacError, cast(HttpExceptionHandler, _handle_rbac_error))


__all__ = ["register_rbac_exception_handlers", "to_api_error"]
