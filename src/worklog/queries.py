"""Query functions for filtering items."""

INACTIVE_STATUSES = ("completed", "deleted")


def is_active(item: dict) -> bool:
    return item["status"] not in INACTIVE_STATUSES


def filter_active(items: list[dict]) -> list[dict]:
    """Return items that are neither completed nor deleted, order kept."""
    return [i for i in items if is_active(i)]


def filter_items(items: list[dict], status: str | None = None, parent: str | None = None,
                 roots_only: bool = False) -> list[dict]:
    """Filter by status and/or parent, keeping input order."""
    if status:
        items = [i for i in items if i["status"] == status]
    if roots_only:
        items = [i for i in items if i.get("parent_id") is None]
    elif parent:
        items = [i for i in items if i.get("parent_id") == parent]
    return items


def get_siblings(items: list[dict], parent_id: str | None, exclude: str | None = None) -> list[dict]:
    """Items sharing parent_id (None for the root group)."""
    return [i for i in items if i.get("parent_id") == parent_id and i["id"] != exclude]


def get_descendant_ids(items: list[dict], item_id: str) -> set[str]:
    """IDs of every item below item_id."""
    children: dict[str, list[str]] = {}
    for item in items:
        if item.get("parent_id") is not None:
            children.setdefault(item["parent_id"], []).append(item["id"])
    found = set()
    stack = list(children.get(item_id, []))
    while stack:
        current = stack.pop()
        if current in found:
            continue
        found.add(current)
        stack.extend(children.get(current, []))
    return found


def find_next(sequence: list[dict]) -> dict | None:
    """First open item in traversal order, or None."""
    for item in sequence:
        if item["status"] == "open":
            return item
    return None
