from __future__ import annotations

import json
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import HTTPException, status
from pydantic import BaseModel, ConfigDict, ValidationError
from sqlalchemy import and_, or_
from sqlalchemy.orm.attributes import QueryableAttribute
from sqlalchemy.sql.elements import ColumnElement


class FilterOperator(str, Enum):
    IS = "is"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"


class FilterItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    operator: FilterOperator
    value: str


@dataclass(frozen=True)
class FilterField:
    id: str
    column: ColumnElement[Any] | QueryableAttribute[Any]
    operators: frozenset[FilterOperator] = frozenset(FilterOperator)


@dataclass(frozen=True)
class ParsedFilter:
    field: FilterField
    operator: FilterOperator
    value: str


class FilterRegistry:
    def __init__(self, fields: Iterable[FilterField]) -> None:
        self._fields = {field.id: field for field in fields}

    def get(self, key: str) -> FilterField | None:
        return self._fields.get(key)

    def keys(self) -> Sequence[str]:
        return tuple(self._fields.keys())


def parse_filter_items(
    raw_filters: str | None,
    *,
    max_filters: int,
    max_raw_length: int,
) -> list[FilterItem]:
    decoded = _parse_raw_filters(raw_filters, max_raw_length=max_raw_length)
    if not decoded:
        return []

    if len(decoded) > max_filters:
        raise HTTPException(
            status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail=f"Too many filters (max {max_filters}).",
        )

    items: list[FilterItem] = []
    for index, raw in enumerate(decoded):
        if not isinstance(raw, dict):
            raise HTTPException(
                status.HTTP_422_UNPROCESSABLE_CONTENT,
                detail=f"Filter #{index + 1} must be an object",
            )
        try:
            item = FilterItem.model_validate(raw)
        except ValidationError as exc:
            raise HTTPException(
                status.HTTP_422_UNPROCESSABLE_CONTENT,
                detail=f"Filter #{index + 1} is invalid",
            ) from exc
        # Blank values filter nothing.
        if not item.value.strip():
            continue
        items.append(item)
    return items


def _parse_raw_filters(raw_filters: str | None, *, max_raw_length: int) -> list[Any]:
    if raw_filters is None:
        return []

    candidate = raw_filters.strip()
    if not candidate:
        return []

    if len(candidate) > max_raw_length:
        raise HTTPException(
            status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail=f"filters exceeds {max_raw_length} characters",
        )

    try:
        decoded = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise HTTPException(
            status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail="filters must be valid JSON",
        ) from exc

    if not isinstance(decoded, list):
        raise HTTPException(
            status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail="filters must be a JSON array",
        )

    return decoded


def prepare_filters(
    items: Iterable[FilterItem],
    registry: FilterRegistry,
) -> list[ParsedFilter]:
    parsed: list[ParsedFilter] = []
    for item in items:
        field = registry.get(item.id)
        if field is None:
            allowed = ", ".join(sorted(registry.keys()))
            raise HTTPException(
                status.HTTP_422_UNPROCESSABLE_CONTENT,
                detail=f"Unsupported filter id '{item.id}'. Allowed: {allowed}",
            )
        if item.operator not in field.operators:
            allowed_ops = ", ".join(sorted(op.value for op in field.operators))
            raise HTTPException(
                status.HTTP_422_UNPROCESSABLE_CONTENT,
                detail=(
                    f"Unsupported operator '{item.operator.value}' for '{item.id}'. "
                    f"Allowed: {allowed_ops}"
                ),
            )
        parsed.append(ParsedFilter(field=field, operator=item.operator, value=item.value))
    return parsed


def build_predicate(parsed: ParsedFilter) -> ColumnElement[Any]:
    builder = _PREDICATE_BUILDERS[parsed.operator]
    return builder(parsed.field.column, parsed.value)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


_PredicateBuilder = Callable[
    [ColumnElement[Any] | QueryableAttribute[Any], str],
    ColumnElement[Any],
]
_PREDICATE_BUILDERS: dict[FilterOperator, _PredicateBuilder] = {
    FilterOperator.IS: lambda column, value: column == value,
    FilterOperator.CONTAINS: lambda column, value: column.ilike(
        f"%{_escape_like(value)}%", escape="\\"
    ),
    FilterOperator.STARTS_WITH: lambda column, value: column.ilike(
        f"{_escape_like(value)}%", escape="\\"
    ),
    FilterOperator.ENDS_WITH: lambda column, value: column.ilike(
        f"%{_escape_like(value)}", escape="\\"
    ),
}


def combine_by_field(
    parsed: Sequence[ParsedFilter],
    build: Callable[[ParsedFilter], ColumnElement[Any]] = build_predicate,
) -> ColumnElement[Any] | None:
    """OR the filters on one field together, then AND the fields."""

    if not parsed:
        return None
    grouped: dict[str, list[ColumnElement[Any]]] = defaultdict(list)
    for item in parsed:
        grouped[item.field.id].append(build(item))
    return and_(*(or_(*predicates) for predicates in grouped.values()))


__all__ = [
    "FilterField",
    "FilterItem",
    "FilterOperator",
    "FilterRegistry",
    "ParsedFilter",
    "build_predicate",
    "combine_by_field",
    "parse_filter_items",
    "prepare_filters",
]
