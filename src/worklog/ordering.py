"""Sort-index ordering for work items.

Pure functions only: nothing here reads the store, prints, or logs.

- flatten: deterministic pre-order traversal of the parent/child forest
- allocate: spaced ranks per sibling group, reporting only changed ranks
- next_rank: append position for a newly created item
"""
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime

DEFAULT_GAP = 100


class OrderingError(Exception):
    """Base class for ordering failures."""
    pass


class InvalidGapError(OrderingError, ValueError):
    """Raised when a rank gap is not a positive integer."""
    pass


class HierarchyIntegrityError(OrderingError):
    """Raised when parent links form a cycle or point at a missing item.

    Attributes:
        ids: Sorted tuple of the offending item IDs.
    """

    def __init__(self, message: str, ids: Iterable[str] = ()):
        super().__init__(message)
        self.ids = tuple(sorted(set(ids)))


def validate_gap(gap) -> int:
    """Return gap if it is a positive integer, else raise InvalidGapError."""
    # bool is an int subclass; True is not a gap
    if isinstance(gap, bool) or not isinstance(gap, int):
        raise InvalidGapError(f"Gap must be a positive integer, got {gap!r}")
    if gap <= 0:
        raise InvalidGapError(f"Gap must be a positive integer, got {gap}")
    return gap


def parse_gap(text: str) -> int:
    """Parse a user-supplied gap string strictly ("10abc" is rejected)."""
    value = str(text).strip()
    # isdigit alone accepts superscripts and other digits int() rejects
    if not (value.isascii() and value.isdigit()):
        raise InvalidGapError(f"Gap must be a positive integer, got '{text}'")
    return validate_gap(int(value))


def _created_key(item: Mapping) -> tuple:
    """Parsed created_at for tie-breaking. Missing or unparseable sorts last."""
    raw = item.get("created_at")
    if not raw:
        return (1, 0.0)
    try:
        parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return (1, 0.0)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return (0, parsed.timestamp())


def sibling_key(item: Mapping) -> tuple:
    """Order within a sibling group: sort_index (nulls last), created_at, id."""
    rank = item.get("sort_index")
    return (rank is None, rank if rank is not None else 0, _created_key(item), item["id"])


def build_children_index(items: Iterable[Mapping]) -> tuple[dict, dict]:
    """Index items by id and group child ids by parent id.

    Returns (by_id, children) where children maps parent_id (None for roots)
    to a list of child items sorted by sibling_key.
    """
    by_id: dict[str, Mapping] = {}
    duplicates = set()
    for item in items:
        if item["id"] in by_id:
            duplicates.add(item["id"])
        by_id[item["id"]] = item
    if duplicates:
        raise HierarchyIntegrityError(
            f"Duplicate item IDs: {', '.join(sorted(duplicates))}", duplicates
        )

    dangling = [i["id"] for i in by_id.values()
                if i.get("parent_id") is not None and i["parent_id"] not in by_id]
    if dangling:
        raise HierarchyIntegrityError(
            f"Parent not found for: {', '.join(sorted(dangling))}", dangling
        )

    children: dict[str | None, list] = {}
    for item in by_id.values():
        children.setdefault(item.get("parent_id"), []).append(item)
    for group in children.values():
        group.sort(key=sibling_key)
    return by_id, children


def _find_cycles(by_id: dict, reached: set) -> list[str]:
    """Return ids of items stuck on parent-link cycles.

    Only called for items the root walk never reached; every such item
    either sits on a cycle or descends from one.
    """
    on_cycle = set()
    for start in sorted(set(by_id) - reached):
        path = []
        seen = set()
        current = start
        while current is not None and current not in seen:
            seen.add(current)
            path.append(current)
            current = by_id[current].get("parent_id")
        if current is not None:
            on_cycle.update(path[path.index(current):])
    return sorted(on_cycle)


def flatten(items: Iterable[Mapping]) -> list:
    """Flatten the forest into a deterministic pre-order sequence.

    Roots come first in sibling order; each item is followed immediately by
    its descendants, also in sibling order. The result does not depend on
    the iteration order of items.

    Raises:
        HierarchyIntegrityError: on duplicate ids, a parent_id that names no
            item, or a parent-link cycle. No partial sequence is returned.
    """
    by_id, children = build_children_index(items)

    ordered = []
    # Explicit stack: deep chains must not hit the recursion limit
    stack = list(reversed(children.get(None, [])))
    while stack:
        item = stack.pop()
        ordered.append(item)
        stack.extend(reversed(children.get(item["id"], [])))

    if len(ordered) != len(by_id):
        reached = {i["id"] for i in ordered}
        cycle_ids = _find_cycles(by_id, reached)
        raise HierarchyIntegrityError(
            f"Parent cycle detected involving: {', '.join(cycle_ids)}", cycle_ids
        )
    return ordered


def assign_ranks(sequence: Sequence[Mapping], gap: int) -> dict[str, int]:
    """Rank every item in sequence: gap, 2*gap, ... per parent.

    One counter per parent_id, so a sibling group keeps counting after a
    subtree has been walked.
    """
    validate_gap(gap)
    counters: dict[str | None, int] = {}
    ranks = {}
    for item in sequence:
        parent = item.get("parent_id")
        counters[parent] = counters.get(parent, 0) + gap
        ranks[item["id"]] = counters[parent]
    return ranks


def allocate(sequence: Sequence[Mapping], gap: int) -> dict[str, int]:
    """New ranks for items whose rank would change, in sequence order."""
    current = {item["id"]: item.get("sort_index") for item in sequence}
    return {
        item_id: rank
        for item_id, rank in assign_ranks(sequence, gap).items()
        if current[item_id] != rank
    }


def next_rank(existing_sibling_ranks: Iterable[int | None], gap: int) -> int:
    """Rank that sorts after every existing sibling.

    Null (unassigned) ranks are ignored; an empty or unranked group starts
    at gap.
    """
    validate_gap(gap)
    ranked = [r for r in existing_sibling_ranks if r is not None]
    if not ranked:
        return gap
    return max(ranked) + gap
