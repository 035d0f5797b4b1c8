"""Worklog CLI - main entry point."""
import argparse
import json
import sys
from pathlib import Path

from worklog import migrate
from worklog.config import DEFAULTS, load_config, save_config
from worklog.display import format_item, format_json, format_jsonl, format_preview, format_tree
from worklog.ids import generate_unique_id
from worklog.ordering import (
    OrderingError,
    flatten,
    next_rank,
    parse_gap,
    sibling_key,
)
from worklog.queries import filter_active, filter_items, find_next, get_descendant_ids, get_siblings
from worklog.storage import (
    DATA_DIR_NAME,
    ITEMS_FILE,
    PRIORITIES,
    STATUSES,
    WorklogError,
    check_initialized,
    error,
    find_by_id,
    get_creator,
    load_items,
    now_iso,
    set_verbose,
    transaction,
    use_data_dir,
)

try:
    from importlib.metadata import PackageNotFoundError, version as _meta_version
    __version__ = _meta_version("worklog")
except PackageNotFoundError:
    __version__ = "0.0.0"


def normalize_title(title: str) -> str:
    """Single line, trimmed. Exits if nothing is left."""
    title = " ".join(title.split())
    if not title:
        error("Title cannot be empty")
    return title


def parse_tags(value: str) -> list[str]:
    return [t.strip() for t in value.split(",") if t.strip()]


def resolve_gap(args) -> tuple[int, dict]:
    """Return (gap, config).

    --gap is parsed before anything is read; without it the configured
    sort_gap applies.
    """
    gap = parse_gap(args.gap) if args.gap is not None else None
    config = load_config()
    return (gap if gap is not None else config["sort_gap"]), config


def emit(args, payload: dict, text: str) -> None:
    """Print payload as JSON in --json mode, otherwise text."""
    if getattr(args, "json", False):
        print(format_json(payload))
    else:
        print(text)


def cmd_init(args):
    """Initialize .worklog/ directory."""
    prefix = args.prefix

    # Validate prefix: alphanumeric only, no spaces or hyphens
    if not prefix.isalnum():
        error(f"Prefix must be alphanumeric (no spaces or hyphens), got '{prefix}'")

    worklog_dir = Path(DATA_DIR_NAME)
    if worklog_dir.exists():
        error(f"{DATA_DIR_NAME}/ already exists.")

    worklog_dir.mkdir()
    (worklog_dir / ITEMS_FILE).touch()
    use_data_dir(worklog_dir)
    save_config({**DEFAULTS, "project_name": args.name or Path.cwd().name, "prefix": prefix})
    print(f"Initialized {DATA_DIR_NAME}/ with prefix '{prefix}'")


def cmd_create(args):
    """Create a work item at the end of its sibling group."""
    check_initialized()
    title = normalize_title(args.title)
    gap, config = resolve_gap(args)

    with transaction() as items:
        parent_id = None
        if args.parent:
            parent = find_by_id(items, args.parent, config["prefix"])
            if not parent:
                error(f"Parent '{args.parent}' not found")
            parent_id = parent["id"]

        siblings = get_siblings(items, parent_id)
        now = now_iso()
        item = {
            "id": generate_unique_id(config["prefix"], {i["id"] for i in items}),
            "title": title,
            "description": args.description or "",
            "status": args.status,
            "priority": args.priority,
            "parent_id": parent_id,
            "sort_index": next_rank([s.get("sort_index") for s in siblings], gap),
            "created_at": now,
            "updated_at": now,
            "tags": parse_tags(args.tags) if args.tags else [],
            "assignee": args.assignee or "",
            "created_by": get_creator(),
        }
        items.append(item)

    if args.quiet:
        print(item["id"])
    else:
        emit(args, {"success": True, "work_item": item}, f"Created: {item['id']}")


def cmd_list(args):
    """List items in traversal order."""
    check_initialized()

    sequence = flatten(load_items())
    if not (args.all or args.status):
        sequence = filter_active(sequence)

    roots_only = args.parent is not None and args.parent.lower() == "none"
    parent = None
    if args.parent and not roots_only:
        found = find_by_id(sequence, args.parent, load_config()["prefix"])
        parent = found["id"] if found else args.parent
    sequence = filter_items(sequence, status=args.status, parent=parent, roots_only=roots_only)

    if args.json:
        print(format_json({"success": True, "count": len(sequence), "work_items": sequence}))
    elif args.jsonl:
        if sequence:
            print(format_jsonl(sequence))
    else:
        print(format_tree(sequence))


def cmd_show(args):
    """Show details for a single item."""
    check_initialized()

    items = load_items()
    item = find_by_id(items, args.id, load_config()["prefix"])
    if not item:
        error(f"Item '{args.id}' not found")

    children = None
    if args.children:
        children = sorted(get_siblings(items, item["id"]), key=sibling_key)

    if args.json:
        payload = dict(item)
        if children is not None:
            payload["children"] = children
        print(format_json(payload))
        return
    print(format_item(item, children))


def cmd_update(args):
    """Edit item fields. Rank only changes when the parent changes."""
    check_initialized()

    has_edit = any(v is not None for v in (
        args.title, args.description, args.status, args.priority,
        args.parent, args.tags, args.assignee,
    ))
    if not has_edit:
        error("At least one edit flag required: --title, --description, --status, "
              "--priority, --parent, --tags, --assignee")

    config = load_config()
    with transaction() as items:
        item = find_by_id(items, args.id, config["prefix"])
        if not item:
            error(f"Item '{args.id}' not found")

        if args.title is not None:
            item["title"] = normalize_title(args.title)
        if args.description is not None:
            item["description"] = args.description
        if args.status is not None:
            item["status"] = args.status
        if args.priority is not None:
            item["priority"] = args.priority
        if args.tags is not None:
            item["tags"] = parse_tags(args.tags)
        if args.assignee is not None:
            item["assignee"] = args.assignee

        if args.parent is not None:
            new_parent = None
            if args.parent.lower() != "none":
                parent = find_by_id(items, args.parent, config["prefix"])
                if not parent:
                    error(f"Parent '{args.parent}' not found")
                new_parent = parent["id"]
            if new_parent == item["id"] or new_parent in get_descendant_ids(items, item["id"]):
                error(f"Cannot move {item['id']} under itself or one of its descendants")
            if new_parent != item.get("parent_id"):
                # Append to the end of the new sibling group
                siblings = get_siblings(items, new_parent, exclude=item["id"])
                item["parent_id"] = new_parent
                item["sort_index"] = next_rank(
                    [s.get("sort_index") for s in siblings], config["sort_gap"]
                )

        item["updated_at"] = now_iso()

    if args.quiet:
        print(item["id"])
    else:
        emit(args, {"success": True, "work_item": item}, f"Updated: {item['id']}")


def cmd_close(args):
    """Mark one or more items completed."""
    check_initialized()

    prefix = load_config()["prefix"]
    closed, missing = [], []
    with transaction() as items:
        for item_id in args.ids:
            item = find_by_id(items, item_id, prefix)
            if not item:
                missing.append(item_id)
                continue
            item["status"] = "completed"
            item["updated_at"] = now_iso()
            closed.append(item["id"])

    if args.json:
        results = [{"id": i, "success": True} for i in closed]
        results += [{"id": i, "success": False, "error": "Work item not found"} for i in missing]
        print(format_json({"success": not missing, "results": results}))
    else:
        for item_id in closed:
            print(f"Closed {item_id}")
        for item_id in missing:
            print(f"Error: Item '{item_id}' not found", file=sys.stderr)
    if missing:
        sys.exit(1)


def cmd_delete(args):
    """Soft-delete an item (status becomes 'deleted')."""
    check_initialized()

    prefix = load_config()["prefix"]
    with transaction() as items:
        item = find_by_id(items, args.id, prefix)
        if not item:
            error(f"Item '{args.id}' not found")
        item["status"] = "deleted"
        item["deleted_by"] = get_creator()
        item["delete_reason"] = args.reason or ""
        item["updated_at"] = now_iso()

    emit(args, {"success": True, "deleted_id": item["id"]}, f"Deleted: {item['id']}")


def cmd_next(args):
    """Show the first open item in display order."""
    check_initialized()

    item = find_next(filter_active(flatten(load_items())))
    if args.json:
        print(format_json({"success": True, "work_item": item}))
    elif item is None:
        print("No open work items.")
    else:
        print(format_item(item))


def run_rank_command(args, scope: str, label: str):
    """Shared body of `migrate sort-index` and `resort`."""
    check_initialized()
    gap, config = resolve_gap(args)

    if args.dry_run:
        rows = migrate.preview(scope, gap)
        emit(args, {"success": True, "dry_run": True, "gap": gap, "count": len(rows), "items": rows},
             format_preview(rows))
        return

    result = migrate.apply(scope, gap, backup=config["backup_before_resort"],
                           keep=config["backups_to_keep"])
    text = f"{label} complete. Updated {result['updated']} item(s)."
    if result["backup"]:
        text += f"\nBackup: {result['backup']}"
    emit(args, {"success": True, "updated": result["updated"], "gap": gap, "backup": result["backup"]},
         text)


def cmd_migrate_sort_index(args):
    """Assign sort_index to every item from the current hierarchy."""
    run_rank_command(args, "all", "Migration")


def cmd_resort(args):
    """Recompute sort_index for active (not completed/deleted) items."""
    run_rank_command(args, "active", "Resort")


def cmd_help(args, parser):
    """Show help."""
    if args.command_name:
        subparsers_actions = [
            action for action in parser._actions
            if isinstance(action, argparse._SubParsersAction)
        ]
        if subparsers_actions:
            subparsers = subparsers_actions[0]
            if args.command_name in subparsers.choices:
                subparsers.choices[args.command_name].print_help()
            else:
                print(f"Unknown command: {args.command_name}", file=sys.stderr)
                sys.exit(1)
    else:
        parser.print_help()


def add_output_flags(subparser, json=False, jsonl=False, quiet=False):
    """Add output format flags to a subparser."""
    if json:
        subparser.add_argument("--json", action="store_true", help="Output as JSON")
    if jsonl:
        subparser.add_argument("--jsonl", action="store_true", help="Output as flat JSONL")
    if quiet:
        subparser.add_argument("--quiet", "-q", action="store_true", help="Print only the item ID")


def add_rank_flags(subparser):
    subparser.add_argument("--dry-run", action="store_true",
                           help="Preview changes without writing")
    subparser.add_argument("--gap", help=f"Gap between sort_index values (default: config sort_gap, "
                                         f"{DEFAULTS['sort_gap']})")
    add_output_flags(subparser, json=True)


def report_failure(args, exc: Exception) -> None:
    """Render an exception for the user and exit 1."""
    ids = getattr(exc, "ids", None)
    if getattr(args, "json", False):
        payload = {"success": False, "error": str(exc)}
        if ids:
            payload["ids"] = list(ids)
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        print(f"Error: {exc}", file=sys.stderr)
    sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wl",
        description="Local work-item tracker with hierarchical ordering"
    )
    parser.add_argument("--version", action="version", version=f"wl {__version__}")
    parser.add_argument("--verbose", action="store_true", help="Print diagnostics to stderr")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init
    init_parser = subparsers.add_parser("init", help="Initialize .worklog/")
    init_parser.add_argument("--prefix", default=DEFAULTS["prefix"],
                             help=f"ID prefix (default: {DEFAULTS['prefix']})")
    init_parser.add_argument("--name", help="Project name (default: directory name)")
    init_parser.set_defaults(func=cmd_init)

    # create
    create_parser = subparsers.add_parser("create", help="Create a work item")
    create_parser.add_argument("title", help="Title for the item")
    create_parser.add_argument("--description", "-d", help="Description")
    create_parser.add_argument("--status", "-s", choices=STATUSES, default="open", help="Status (default: open)")
    create_parser.add_argument("--priority", "-p", choices=PRIORITIES, default="medium",
                               help="Priority (default: medium)")
    create_parser.add_argument("--parent", "-P", help="Parent item ID")
    create_parser.add_argument("--tags", help="Comma-separated tags")
    create_parser.add_argument("--assignee", "-a", help="Assignee")
    create_parser.add_argument("--gap", help="Gap after the last sibling's sort_index")
    add_output_flags(create_parser, json=True, quiet=True)
    create_parser.set_defaults(func=cmd_create)

    # list
    list_parser = subparsers.add_parser("list", help="List items in display order")
    list_parser.add_argument("--status", "-s", choices=STATUSES, help="Only items with this status")
    list_parser.add_argument("--parent", "-P", help="Only children of this item ('none' for roots)")
    list_parser.add_argument("--all", action="store_true", help="Include completed and deleted items")
    add_output_flags(list_parser, json=True, jsonl=True)
    list_parser.set_defaults(func=cmd_list)

    # show
    show_parser = subparsers.add_parser("show", help="View item details")
    show_parser.add_argument("id", help="Item ID to show")
    show_parser.add_argument("--children", "-c", action="store_true", help="Also show children")
    add_output_flags(show_parser, json=True)
    show_parser.set_defaults(func=cmd_show)

    # update
    update_parser = subparsers.add_parser("update", help="Edit item fields")
    update_parser.add_argument("id", help="Item ID to edit")
    update_parser.add_argument("--title", "-t", help="New title")
    update_parser.add_argument("--description", "-d", help="New description")
    update_parser.add_argument("--status", "-s", choices=STATUSES, help="New status")
    update_parser.add_argument("--priority", "-p", choices=PRIORITIES, help="New priority")
    update_parser.add_argument("--parent", "-P", help="New parent ID ('none' to make a root item)")
    update_parser.add_argument("--tags", help="New comma-separated tags")
    update_parser.add_argument("--assignee", "-a", help="New assignee")
    add_output_flags(update_parser, json=True, quiet=True)
    update_parser.set_defaults(func=cmd_update)

    # close
    close_parser = subparsers.add_parser("close", help="Mark items completed")
    close_parser.add_argument("ids", nargs="+", help="Item IDs to close")
    add_output_flags(close_parser, json=True)
    close_parser.set_defaults(func=cmd_close)

    # delete
    delete_parser = subparsers.add_parser("delete", help="Mark an item deleted")
    delete_parser.add_argument("id", help="Item ID to delete")
    delete_parser.add_argument("--reason", help="Why it was deleted")
    add_output_flags(delete_parser, json=True)
    delete_parser.set_defaults(func=cmd_delete)

    # next
    next_parser = subparsers.add_parser("next", help="Show the next open item")
    add_output_flags(next_parser, json=True)
    next_parser.set_defaults(func=cmd_next)

    # migrate sort-index
    migrate_parser = subparsers.add_parser("migrate", help="Run data migrations")
    migrate_sub = migrate_parser.add_subparsers(dest="migration", help="Migrations")
    sort_index_parser = migrate_sub.add_parser(
        "sort-index", aliases=["sort_index"],
        help="Assign sort_index to every item from the current hierarchy",
    )
    add_rank_flags(sort_index_parser)
    sort_index_parser.set_defaults(func=cmd_migrate_sort_index)
    migrate_parser.set_defaults(func=lambda args: migrate_parser.print_help())

    # resort
    resort_parser = subparsers.add_parser(
        "resort", help="Recompute sort_index for active items (skips completed/deleted)"
    )
    add_rank_flags(resort_parser)
    resort_parser.set_defaults(func=cmd_resort)

    # help
    help_parser = subparsers.add_parser("help", help="Show help")
    help_parser.add_argument("command_name", nargs="?", help="Command to get help for")
    help_parser.set_defaults(func=lambda args: cmd_help(args, parser))

    return parser


def main():
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.verbose:
        set_verbose(True)

    try:
        args.func(args)
    except (WorklogError, OrderingError) as e:
        report_failure(args, e)


if __name__ == "__main__":
    main()
