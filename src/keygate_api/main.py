"""keygate FastAPI application entry point."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import cast

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from .api.v1.router import create_api_router
from .common.exceptions import (
    api_error_handler,
    http_exception_handler,
    request_validation_exception_handler,
    unhandled_exception_handler,
)
from .common.logging import setup_logging
from .common.middleware import register_middleware
from .common.problem_details import ApiError
from .db import init_db, shutdown_db
from .features.health.router import router as health_router
from .features.rbac.errors import register_rbac_exception_handlers
from .settings import Settings, get_settings

type HttpExceptionHandler = Callable[[Request, Exception], Response | Awaitable[Response]]
logger = logging.getLogger(__name__)


def _as_http_exception_handler(handler: Callable[..., Response]) -> HttpExceptionHandler:
    return cast(HttpExceptionHandler, handler)


def create_application_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        init_db(app, settings)
        logger.info(
            "keygate.startup",
            extra={"app_version": settings.app_version, "api_prefix": settings.api_prefix},
        )
        try:
            yield
        finally:
            shutdown_db(app)
            logger.info("keygate.shutdown")

    return lifespan


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the keygate FastAPI application."""
    # Settings + logging first so everything else uses the configured root logger.
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url=settings.docs_url,
        redoc_url=None,
        openapi_url=settings.openapi_url,
        debug=False,
        lifespan=create_application_lifespan(settings),
    )
    app.state.settings = settings

    app.add_exception_handler(
        RequestValidationError, _as_http_exception_handler(request_validation_exception_handler)
    )
    app.add_exception_handler(
        StarletteHTTPException, _as_http_exception_handler(http_exception_handler)
    )
    app.add_exception_handler(ApiError, _as_http_exception_handler(api_error_handler))
    app.add_exception_handler(Exception, _as_http_exception_handler(unhandled_exception_handler))
    register_rbac_exception_handlers(app)

    register_middleware(app)
    app.include_router(health_router, include_in_schema=False)
    app.include_router(create_api_router(), prefix=settings.api_prefix)

    return app


__all__ = ["create_app"]
