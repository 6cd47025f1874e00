from __future__ import annotations

from keygate_api.common.cursor_listing import KeysetSort, parse_datetime, parse_str
from keygate_db.models import Role

# Most recently updated first; id breaks ties between equal timestamps.
ROLE_KEYSET_SORT: KeysetSort[Role] = KeysetSort(
    columns=(Role.updated_at, Role.id),
    key=lambda role: (role.updated_at, role.id),
    parse=lambda values: (parse_datetime(values[0]), parse_str(values[1])),
)


__all__ = ["ROLE_KEYSET_SORT"]
