"""Primary-key mixin for prefixed ULID identifiers."""

from __future__ import annotations

from typing import ClassVar

from sqlalchemy import String
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from keygate_db import generate_id

ID_LENGTH = 64


class PrefixedIdPrimaryKeyMixin:
    """Mixin that supplies a ``<prefix>_<ULID>`` string primary key."""

    __id_prefix__: ClassVar[str] = "id"

    @declared_attr.directive
    def id(cls) -> Mapped[str]:  # noqa: N805 - SQLAlchemy declared attr
        prefix = getattr(cls, "__id_prefix__", "id")
        return mapped_column(
            String(ID_LENGTH),
            primary_key=True,
            default=lambda: generate_id(prefix),
        )


__all__ = ["ID_LENGTH", "PrefixedIdPrimaryKeyMixin"]
