"""Input normalization shared by the RBAC stores."""

from __future__ import annotations

import re
from collections.abc import Iterable

from .exceptions import BadRequestError

NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_:\-.*]+$")
MIN_NAME_LENGTH = 3


def validate_name(value: str, *, kind: str) -> str:
    candidate = (value or "").strip()
    if len(candidate) < MIN_NAME_LENGTH:
        raise BadRequestError(f"{kind} name must be at least {MIN_NAME_LENGTH} characters long")
    if not NAME_PATTERN.match(candidate):
        raise BadRequestError(
            f"{kind} name may only contain letters, numbers, '_', ':', '-', '.' and '*'"
        )
    return candidate


def normalize_description(value: str | None) -> str | None:
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def unique_ids(ids: Iterable[str]) -> list[str]:
    """Drop duplicates while preserving first-seen order."""

    return list(dict.fromkeys(ids))


__all__ = [
    "MIN_NAME_LENGTH",
    "NAME_PATTERN",
    "normalize_description",
    "unique_ids",
    "validate_name",
]
