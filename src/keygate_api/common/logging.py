"""Logging configuration and helpers for the keygate API.

Two output formats are supported: human-readable console lines and one JSON
object per line for production ingestion. The module also binds a
request-scoped correlation id and builds consistent ``extra`` payloads.

Everything uses the standard :mod:`logging` library.
"""

from __future__ import annotations

import json
import logging
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from keygate_api.settings import Settings

# Request-scoped correlation ID, set/cleared by RequestContextMiddleware.
_CORRELATION_ID: ContextVar[str | None] = ContextVar(
    "keygate_correlation_id",
    default=None,
)

# Attributes already handled by logging; never copied into extras.
_STANDARD_ATTRS: set[str] = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "message",
    "asctime",
    "correlation_id",
    "taskName",
    "color_message",
}

_CONFIGURED_FLAG = "_keygate_configured"
_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


def _format_time(record: logging.LogRecord, datefmt: str | None = None) -> str:
    dt = datetime.fromtimestamp(record.created, tz=UTC)
    base = dt.strftime(datefmt or _TIME_FORMAT)
    return f"{base}.{int(record.msecs):03d}Z"


class ConsoleLogFormatter(logging.Formatter):
    """Render log records as single-line console output.

    Example line:

        2026-03-02T10:14:07.118Z INFO  keygate_api.features.rbac.service [cid=1f0c]
        rbac.key.replace.success workspace_id=ws_01J... key_id=key_01J...
    """

    def __init__(self) -> None:
        fmt = "%(asctime)s %(levelname)-5s %(name)s [cid=%(correlation_id)s] %(message)s"
        super().__init__(fmt=fmt, datefmt=_TIME_FORMAT)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        return _format_time(record, datefmt)

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - std signature
        record.correlation_id = getattr(record, "correlation_id", None) or _CORRELATION_ID.get() or "-"
        base = super().format(record)
        extras = [
            f"{key}={_format_extra_value(value)}"
            for key, value in sorted(_record_extras(record).items())
        ]
        if extras:
            return f"{base} " + " ".join(extras)
        return base


class JsonLogFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        return _format_time(record, datefmt)

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - std signature
        cid = getattr(record, "correlation_id", None) or _CORRELATION_ID.get() or "-"
        record.correlation_id = cid
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "service": "keygate-api",
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": cid,
        }
        payload.update(_record_extras(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, separators=(",", ":"))


def setup_logging(settings: Settings) -> None:
    """Configure root logging for the keygate API process.

    Installs a single StreamHandler at ``settings.log_level`` and routes
    uvicorn, alembic and SQLAlchemy loggers through it. SQLAlchemy defaults to
    WARNING unless ``KEYGATE_DATABASE_LOG_LEVEL`` says otherwise.
    """
    root_logger = logging.getLogger()
    level = getattr(logging, settings.log_level)

    configured = getattr(root_logger, _CONFIGURED_FLAG, False)
    if not configured or not root_logger.handlers:
        root_logger.handlers = [logging.StreamHandler()]
        setattr(root_logger, _CONFIGURED_FLAG, True)
    else:
        root_logger.handlers = [root_logger.handlers[0]]

    handler = root_logger.handlers[0]
    handler.setFormatter(_build_formatter(settings.log_format))
    root_logger.setLevel(level)

    for name in (
        "uvicorn",
        "uvicorn.error",
        "uvicorn.access",
        "keygate_api.request",
        "alembic",
        "sqlalchemy",
        "sqlalchemy.engine",
        "sqlalchemy.pool",
    ):
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.propagate = True
        logger.disabled = False
        logger.setLevel(logging.NOTSET)

    logging.getLogger("keygate_api.request").setLevel(
        getattr(logging, settings.effective_request_log_level)
    )

    db_level = getattr(logging, settings.database_log_level or "WARNING")
    for name in ("sqlalchemy", "sqlalchemy.engine", "sqlalchemy.pool"):
        logging.getLogger(name).setLevel(db_level)


def bind_request_context(correlation_id: str | None) -> None:
    """Bind a correlation ID to the logging context for the current request."""
    _CORRELATION_ID.set(correlation_id)


def clear_request_context() -> None:
    _CORRELATION_ID.set(None)


def current_request_id() -> str | None:
    return _CORRELATION_ID.get()


def log_context(
    *,
    workspace_id: str | None = None,
    key_id: str | None = None,
    role_id: str | None = None,
    permission_id: str | None = None,
    actor_id: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build a consistent ``extra`` payload for structured logs.

    Example:
        logger.info(
            "rbac.role.connect_permission.success",
            extra=log_context(workspace_id=ws_id, role_id=role_id, permission_id=perm_id),
        )
    """
    ctx: dict[str, Any] = {}

    if workspace_id is not None:
        ctx["workspace_id"] = str(workspace_id)
    if key_id is not None:
        ctx["key_id"] = str(key_id)
    if role_id is not None:
        ctx["role_id"] = str(role_id)
    if permission_id is not None:
        ctx["permission_id"] = str(permission_id)
    if actor_id is not None:
        ctx["actor_id"] = str(actor_id)

    for key, value in extra.items():
        ctx[key] = value

    return ctx


def _format_extra_value(value: Any) -> str:
    if value is None:
        return "null"
    return str(value)


def _record_extras(record: logging.LogRecord) -> dict[str, Any]:
    extras: dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_ATTRS or key.startswith("_"):
            continue
        extras[key] = value
    return extras


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return JsonLogFormatter()
    return ConsoleLogFormatter()


__all__ = [
    "ConsoleLogFormatter",
    "JsonLogFormatter",
    "bind_request_context",
    "clear_request_context",
    "current_request_id",
    "log_context",
    "setup_logging",
]
