"""Sort-index migration and resort.

Both recompute every rank from the live hierarchy:

- scope "all" (``wl migrate sort-index``) ranks every item, including
  completed and deleted ones, for stores that predate sort_index.
- scope "active" (``wl resort``) leaves completed and deleted items out
  entirely; their stored rank is never touched.

plan() is pure. commit() is the only write and replaces the whole items
file in one atomic step, so a failure leaves every rank as it was.
"""
from worklog.ordering import allocate, flatten, validate_gap
from worklog.queries import filter_active
from worklog.storage import StoreWriteError, load_items, make_backup, transaction

SCOPES = ("all", "active")
MODES = ("preview", "apply")


def _check_scope(scope: str) -> None:
    if scope not in SCOPES:
        raise ValueError(f"Unknown scope '{scope}' (expected one of: {', '.join(SCOPES)})")


def select_scope(sequence: list[dict], scope: str) -> list[dict]:
    """Drop out-of-scope items from a traversal sequence, keeping order."""
    _check_scope(scope)
    if scope == "active":
        return filter_active(sequence)
    return list(sequence)


def plan(items: list[dict], scope: str, gap: int) -> list[dict]:
    """Rank changes for items, as {id, title, sort_index} rows in apply order.

    The full item set is flattened (so integrity is checked everywhere)
    before scope filtering; sibling order inside each group is the same
    either way.
    """
    validate_gap(gap)
    _check_scope(scope)
    sequence = select_scope(flatten(items), scope)
    titles = {i["id"]: i["title"] for i in sequence}
    return [
        {"id": item_id, "title": titles[item_id], "sort_index": rank}
        for item_id, rank in allocate(sequence, gap).items()
    ]


def commit(changes: list[dict]) -> int:
    """Write changed ranks back in a single atomic save.

    Runs inside storage.transaction(): the store is re-read, ranks are set
    by id and the file is replaced in one step. On any error nothing is
    written. Returns the number of items updated.
    """
    if not changes:
        return 0
    ranks = {c["id"]: c["sort_index"] for c in changes}
    with transaction() as items:
        missing = sorted(set(ranks) - {i["id"] for i in items})
        if missing:
            raise StoreWriteError(f"Cannot update missing item(s): {', '.join(missing)}")
        for item in items:
            if item["id"] in ranks:
                item["sort_index"] = ranks[item["id"]]
    return len(ranks)


def preview(scope: str, gap: int) -> list[dict]:
    """Changes apply() would make, without writing."""
    validate_gap(gap)
    _check_scope(scope)
    return plan(load_items(), scope, gap)


def apply(scope: str, gap: int, backup: bool = False, keep: int = 5) -> dict:
    """Recompute and persist ranks. Returns {"updated": n, "backup": path}.

    A second call with the same scope and gap finds nothing to change.
    A store with unreadable lines is refused before anything is written.
    """
    validate_gap(gap)
    _check_scope(scope)
    changes = plan(load_items(strict=True), scope, gap)
    if not changes:
        return {"updated": 0, "backup": None}

    backup_path = make_backup(keep) if backup else None
    updated = commit(changes)
    return {"updated": updated, "backup": str(backup_path) if backup_path else None}


def run(scope: str, gap: int, mode: str, backup: bool = False, keep: int = 5) -> dict:
    """Single entry point for preview or apply."""
    validate_gap(gap)
    _check_scope(scope)
    if mode == "preview":
        rows = preview(scope, gap)
        return {"mode": "preview", "count": len(rows), "items": rows}
    if mode == "apply":
        return {"mode": "apply", **apply(scope, gap, backup=backup, keep=keep)}
    raise ValueError(f"Unknown mode '{mode}' (expected one of: {', '.join(MODES)})")
