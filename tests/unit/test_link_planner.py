from __future__ import annotations

import pytest

from keygate_api.features.rbac import plan_link_replacement


def _apply(current: list[str], to_delete: list[str], to_insert: list[str]) -> set[str]:
    return (set(current) - set(to_delete)) | set(to_insert)


def test_plan_from_empty_inserts_everything_in_desired_order() -> None:
    to_delete, to_insert = plan_link_replacement([], ["perm_b", "perm_a"])

    assert to_delete == []
    assert to_insert == ["perm_b", "perm_a"]


def test_plan_to_empty_deletes_everything_sorted() -> None:
    to_delete, to_insert = plan_link_replacement(["perm_c", "perm_a", "perm_b"], [])

    assert to_delete == ["perm_a", "perm_b", "perm_c"]
    assert to_insert == []


def test_plan_leaves_overlap_untouched() -> None:
    to_delete, to_insert = plan_link_replacement(["r1", "r2", "r3"], ["r2", "r3", "r4"])

    assert to_delete == ["r1"]
    assert to_insert == ["r4"]


def test_plan_for_identical_sets_is_empty() -> None:
    assert plan_link_replacement(["r1", "r2"], ["r2", "r1"]) == ([], [])


def test_plan_ignores_duplicate_desired_ids() -> None:
    to_delete, to_insert = plan_link_replacement(["r1"], ["r2", "r2", "r1", "r3", "r2"])

    assert to_delete == []
    assert to_insert == ["r2", "r3"]


@pytest.mark.parametrize(
    ("current", "desired"),
    [
        (["a", "b", "c"], ["c", "d"]),
        ([], []),
        (["x"], ["x"]),
        (["a", "b"], ["c", "d", "e"]),
    ],
)
def test_applying_plan_yields_desired_set(current: list[str], desired: list[str]) -> None:
    to_delete, to_insert = plan_link_replacement(current, desired)

    assert _apply(current, to_delete, to_insert) == set(desired)
    assert not set(to_delete) & set(desired)
    assert not set(to_insert) & set(current)
