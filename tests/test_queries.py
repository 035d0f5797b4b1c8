"""Tests for query helpers."""
from conftest import make_item
from worklog.queries import (
    filter_active,
    filter_items,
    find_next,
    get_descendant_ids,
    get_siblings,
)

ITEMS = [
    make_item("r1"),
    make_item("r2", status="completed"),
    make_item("c1", parent="r1", status="in-progress"),
    make_item("c2", parent="r1", status="deleted"),
    make_item("g1", parent="c1"),
]


def test_filter_active():
    assert [i["id"] for i in filter_active(ITEMS)] == ["r1", "c1", "g1"]


def test_filter_by_status():
    assert [i["id"] for i in filter_items(ITEMS, status="completed")] == ["r2"]


def test_filter_roots_only():
    assert [i["id"] for i in filter_items(ITEMS, roots_only=True)] == ["r1", "r2"]


def test_filter_by_parent():
    assert [i["id"] for i in filter_items(ITEMS, parent="r1")] == ["c1", "c2"]


def test_siblings_exclude_self():
    assert [i["id"] for i in get_siblings(ITEMS, "r1", exclude="c1")] == ["c2"]


def test_root_siblings():
    assert [i["id"] for i in get_siblings(ITEMS, None)] == ["r1", "r2"]


def test_descendants():
    assert get_descendant_ids(ITEMS, "r1") == {"c1", "c2", "g1"}
    assert get_descendant_ids(ITEMS, "g1") == set()


def test_find_next_skips_non_open():
    assert find_next(ITEMS[1:])["id"] == "g1"


def test_find_next_none():
    assert find_next([make_item("a", status="blocked")]) is None
