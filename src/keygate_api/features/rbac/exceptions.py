"""RBAC error taxonomy.

``NotFoundError``, ``BadRequestError`` and ``ConflictError`` are classified,
non-retryable failures surfaced to callers unchanged. ``InternalError`` wraps
storage failures and never carries storage-layer detail.
"""

from __future__ import annotations

from collections.abc import Sequence


class RbacError(Exception):
    """Base class for RBAC engine errors."""

    error_type = "rbac_error"
    status_code = 500

    def __init__(self, message: str, *, missing_ids: Sequence[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.missing_ids = list(missing_ids or ())


class NotFoundError(RbacError):
    """Entity absent, or owned by a different workspace."""

    error_type = "not_found"
    status_code = 404


class BadRequestError(RbacError):
    """Referenced ids do not resolve, or input is malformed."""

    error_type = "bad_request"
    status_code = 400


class ConflictError(RbacError):
    """Duplicate name or stale authorization version."""

    error_type = "conflict"
    status_code = 409


class InternalError(RbacError):
    error_type = "internal_error"
    status_code = 500

    def __init__(self, message: str = "Internal error while updating authorization state") -> None:
        super().__init__(message)


def missing_message(kind: str, missing: Sequence[str]) -> str:
    return f"{kind} not found: {', '.join(missing)}"


__all__ = [
    "BadRequestError",
    "ConflictError",
    "InternalError",
    "NotFoundError",
    "RbacError",
    "missing_message",
]
