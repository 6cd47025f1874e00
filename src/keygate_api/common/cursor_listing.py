"""Keyset pagination over a fixed descending sort with opaque cursor tokens."""

from __future__ import annotations

import base64
import json
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from fastapi import HTTPException, Query
from pydantic import Field
from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from keygate_api.common.list_filters import FilterItem, parse_filter_items
from keygate_api.common.schema import BaseSchema

DEFAULT_LIMIT = 50
MAX_LIMIT = 200
MAX_FILTERS = 25
MAX_FILTERS_RAW_LENGTH = 8 * 1024
CURSOR_VERSION = 1

ROLE_FILTER_EXAMPLE = '[{"id":"permissionSlug","operator":"startsWith","value":"api."}]'


@dataclass(frozen=True)
class CursorQueryParams:
    limit: int
    cursor: str | None
    filters: list[FilterItem]


class CursorMeta(BaseSchema):
    limit: int
    has_more: bool = Field(alias="hasMore")
    next_cursor: str | None = Field(default=None, alias="nextCursor")
    total: int


@dataclass(frozen=True)
class CursorPage[T]:
    items: list[T]
    meta: CursorMeta


@dataclass(frozen=True)
class KeysetSort[T]:
    """Descending sort columns plus how to read and parse their cursor values."""

    columns: tuple[ColumnElement[Any], ...]
    key: Callable[[T], Sequence[Any]]
    parse: Callable[[Sequence[Any]], Sequence[Any]]


def cursor_query_params(
    limit: int = Query(
        DEFAULT_LIMIT,
        ge=1,
        le=MAX_LIMIT,
        description=f"Items per page (max {MAX_LIMIT})",
    ),
    cursor: str | None = Query(
        None,
        description="Opaque cursor token for pagination.",
    ),
    filters: str | None = Query(
        None,
        description="URL-encoded JSON array of filter objects.",
        examples={
            "permissionSlug": {
                "summary": "Roles granting any api.* permission",
                "value": ROLE_FILTER_EXAMPLE,
            }
        },
    ),
) -> CursorQueryParams:
    filter_items = parse_filter_items(
        filters,
        max_filters=MAX_FILTERS,
        max_raw_length=MAX_FILTERS_RAW_LENGTH,
    )
    return CursorQueryParams(limit=limit, cursor=cursor, filters=filter_items)


def encode_cursor(values: Sequence[Any]) -> str:
    payload = {"v": CURSOR_VERSION, "values": [serialize_cursor_value(v) for v in values]}
    raw = json.dumps(payload, separators=(",", ":"))
    encoded = base64.urlsafe_b64encode(raw.encode("utf-8")).decode("utf-8")
    return encoded.rstrip("=")


def decode_cursor(token: str) -> list[Any]:
    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("utf-8")).decode("utf-8")
        payload = json.loads(raw)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail="Invalid cursor token.") from exc

    if not isinstance(payload, dict):
        raise HTTPException(status_code=422, detail="Invalid cursor token.")
    if payload.get("v") != CURSOR_VERSION:
        raise HTTPException(status_code=422, detail="Unsupported cursor token.")
    values = payload.get("values")
    if not isinstance(values, list):
        raise HTTPException(status_code=422, detail="Invalid cursor token.")
    return values


def serialize_cursor_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def parse_datetime(value: Any) -> datetime:
    if not isinstance(value, str):
        raise HTTPException(status_code=422, detail="Invalid cursor token.")
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail="Invalid cursor token.") from exc


def parse_str(value: Any) -> str:
    if not isinstance(value, str):
        raise HTTPException(status_code=422, detail="Invalid cursor token.")
    return value


def _build_cursor_predicate(
    columns: Sequence[ColumnElement[Any]],
    values: Sequence[Any],
) -> ColumnElement[bool]:
    # (a, b) < (x, y) expanded for databases without row-value comparison.
    clauses = []
    for index, column in enumerate(columns):
        equal_prefix = [columns[i] == values[i] for i in range(index)]
        clauses.append(and_(*equal_prefix, column < values[index]))
    return or_(*clauses)


def paginate_query_cursor[T](
    session: Session,
    stmt: Select,
    *,
    sort: KeysetSort[T],
    limit: int,
    cursor: str | None,
) -> CursorPage[T]:
    count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
    total = int(session.execute(count_stmt).scalar_one())

    ordered_stmt = stmt.order_by(*(column.desc() for column in sort.columns))
    if cursor:
        raw_values = decode_cursor(cursor)
        if len(raw_values) != len(sort.columns):
            raise HTTPException(status_code=422, detail="Invalid cursor token.")
        values = sort.parse(raw_values)
        ordered_stmt = ordered_stmt.where(_build_cursor_predicate(sort.columns, values))

    rows = list(session.execute(ordered_stmt.limit(limit + 1)).scalars().all())
    has_more = len(rows) > limit
    items = rows[:limit]

    next_cursor = None
    if has_more and items:
        next_cursor = encode_cursor(sort.key(items[-1]))

    meta = CursorMeta(limit=limit, has_more=has_more, next_cursor=next_cursor, total=total)
    return CursorPage(items=items, meta=meta)


__all__ = [
    "CursorMeta",
    "CursorPage",
    "CursorQueryParams",
    "DEFAULT_LIMIT",
    "KeysetSort",
    "MAX_LIMIT",
    "cursor_query_params",
    "decode_cursor",
    "encode_cursor",
    "paginate_query_cursor",
    "parse_datetime",
    "parse_str",
]
