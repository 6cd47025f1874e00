"""Display summary of permission names grouped by resource."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

CRITICAL_MARKERS = ("delete", "decrypt", "remove")

_RESOURCE_CATEGORIES = {
    "api": "API",
    "ratelimit": "Ratelimit",
    "rbac": "Permissions",
    "identity": "Identities",
}


@dataclass(frozen=True, slots=True)
class PermissionCategories:
    total: int
    categories: dict[str, int] = field(default_factory=dict)
    has_critical_perm: bool = False


def category_for(resource: str, action: str) -> str:
    if resource == "api" and "key" in action:
        return "Keys"
    return _RESOURCE_CATEGORIES.get(resource, "Other")


def categorize(names: Sequence[str]) -> PermissionCategories:
    """Count ``<resource>.<selector>.<action>`` names per category.

    Names with fewer than three segments are left out of the counts.
    """

    counts: Counter[str] = Counter()
    for name in names:
        parts = name.split(".")
        if len(parts) < 3:
            continue
        counts[category_for(parts[0], parts[2])] += 1

    return PermissionCategories(
        total=len(names),
        categories=dict(counts),
        has_critical_perm=any(marker in name for name in names for marker in CRITICAL_MARKERS),
    )


__all__ = ["CRITICAL_MARKERS", "PermissionCategories", "categorize", "category_for"]
