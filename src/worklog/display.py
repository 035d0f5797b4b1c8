"""Display formatting for worklog output."""
import json

STATUS_ICONS = {
    "open": "○",
    "in-progress": "◐",
    "completed": "✓",
    "blocked": "⊘",
    "deleted": "✗",
}


def format_json(data) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def format_jsonl(items: list[dict]) -> str:
    """Format as flat JSONL, one item per line."""
    return "\n".join(json.dumps(item, ensure_ascii=False) for item in items)


def format_line(item: dict, depth: int = 0) -> str:
    icon = STATUS_ICONS.get(item["status"], "?")
    suffix = ""
    if item["status"] not in ("open", "completed"):
        suffix = f" [{item['status']}]"
    return f"{'  ' * depth}{icon} {item['title']} ({item['id']}){suffix}"


def format_tree(sequence: list[dict]) -> str:
    """Format a traversal sequence as an indented tree.

    Depth comes from parents present in the sequence; an item whose
    parent was filtered out is shown at the left margin.
    """
    if not sequence:
        return "No work items found."

    depths: dict[str, int] = {}
    lines = []
    for item in sequence:
        parent = item.get("parent_id")
        depth = depths[parent] + 1 if parent in depths else 0
        depths[item["id"]] = depth
        lines.append(format_line(item, depth))
    return "\n".join(lines)


def format_item(item: dict, children: list[dict] | None = None) -> str:
    """Detail view for one item."""
    rank = item.get("sort_index")
    lines = [
        format_line(item),
        f"   Status: {item['status']}",
        f"   Priority: {item.get('priority', 'medium')}",
        f"   Sort index: {rank if rank is not None else 'unassigned'}",
        f"   Parent: {item.get('parent_id') or '-'}",
        f"   Created: {item.get('created_at', '?')} by {item.get('created_by', '?')}",
    ]
    if item.get("assignee"):
        lines.append(f"   Assignee: {item['assignee']}")
    if item.get("tags"):
        lines.append(f"   Tags: {', '.join(item['tags'])}")
    if item.get("description"):
        lines.append("")
        lines.extend(f"   {line}" for line in item["description"].splitlines())
    if children:
        lines.append("")
        lines.append("   Children:")
        lines.extend(f"   {format_line(child, 1)}" for child in children)
    return "\n".join(lines)


def format_preview(rows: list[dict]) -> str:
    """Human form of a rank preview: header then `id title -> rank` lines."""
    lines = [f"Dry run: {len(rows)} item(s) would be updated."]
    for row in rows:
        lines.append(f"{row['id']} {row['title']} -> {row['sort_index']}")
    return "\n".join(lines)
