#!/usr/bin/env python3
"""Benchmark the sort-index migration on a synthetic forest.

Usage:
    python scripts/benchmark_sort_index.py --level-size 1000 --depth 3

Builds level_size * depth unranked items in a temporary .worklog/ (each
item on level n > 0 hangs off item i % level_size of level n - 1), then
times one `migrate.apply("all", gap)` call.
"""
import argparse
import json
import shutil
import sys
import tempfile
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path

from worklog import migrate
from worklog.ids import generate_unique_id
from worklog.storage import DATA_DIR_NAME, PRIORITIES, save_items, use_data_dir

DEFAULT_LEVEL_SIZE = 1000
DEFAULT_DEPTH = 3
DEFAULT_GAP = 100


def build_dataset(level_size: int, depth: int, prefix: str = "BENCH") -> list[dict]:
    """Synthetic forest with null ranks and strictly increasing created_at."""
    base = datetime(2026, 1, 1, tzinfo=UTC)
    existing: set[str] = set()
    items = []
    parents: list[str] = []

    for level in range(depth):
        current = []
        for i in range(level_size):
            item_id = generate_unique_id(prefix, existing)
            existing.add(item_id)
            created = (base + timedelta(milliseconds=len(items))).isoformat(
                timespec="milliseconds").replace("+00:00", "Z")
            items.append({
                "id": item_id,
                "title": f"Bench L{level} #{i + 1}",
                "description": "",
                "status": "open",
                "priority": PRIORITIES[i % len(PRIORITIES)],
                "parent_id": parents[i % len(parents)] if level > 0 else None,
                "sort_index": None,
                "created_at": created,
                "updated_at": created,
                "tags": [],
                "assignee": "",
                "created_by": "benchmark",
            })
            current.append(item_id)
        parents = current

    return items


def run_benchmark(level_size: int, depth: int, gap: int, root: Path, prefix: str = "BENCH") -> dict:
    """Write the dataset under root/.worklog and time a full apply."""
    worklog_dir = root / DATA_DIR_NAME
    worklog_dir.mkdir(parents=True, exist_ok=True)
    use_data_dir(worklog_dir)

    items = build_dataset(level_size, depth, prefix)
    save_items(items)

    start = time.perf_counter()
    result = migrate.apply("all", gap)
    duration = time.perf_counter() - start

    return {
        "level_size": level_size,
        "depth": depth,
        "total_items": len(items),
        "gap": gap,
        "updated_items": result["updated"],
        "duration_ms": round(duration * 1000, 2),
        "items_per_second": round(result["updated"] / duration, 2) if duration > 0 else 0,
        "data_dir": str(worklog_dir),
        "timestamp": datetime.now(UTC).isoformat(timespec="seconds").replace("+00:00", "Z"),
    }


def positive_int(value: str) -> int:
    if not value.isdigit() or int(value) <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got '{value}'")
    return int(value)


def main():
    parser = argparse.ArgumentParser(description="Benchmark sort-index migration")
    parser.add_argument("--level-size", type=positive_int, default=DEFAULT_LEVEL_SIZE,
                        help=f"Items per level (default: {DEFAULT_LEVEL_SIZE})")
    parser.add_argument("--depth", type=positive_int, default=DEFAULT_DEPTH,
                        help=f"Number of levels (default: {DEFAULT_DEPTH})")
    parser.add_argument("--gap", type=positive_int, default=DEFAULT_GAP,
                        help=f"Gap between sort_index values (default: {DEFAULT_GAP})")
    parser.add_argument("--prefix", default="BENCH", help="ID prefix (default: BENCH)")
    parser.add_argument("--keep", action="store_true", help="Keep the temporary data directory")
    args = parser.parse_args()

    root = Path(tempfile.mkdtemp(prefix="worklog-sort-index-bench-"))
    try:
        summary = run_benchmark(args.level_size, args.depth, args.gap, root, args.prefix)
    finally:
        if not args.keep:
            shutil.rmtree(root, ignore_errors=True)

    print("Sort-index migration benchmark")
    print(f"- level size: {summary['level_size']:,}")
    print(f"- depth: {summary['depth']}")
    print(f"- total items: {summary['total_items']:,}")
    print(f"- gap: {summary['gap']}")
    print(f"- updated items: {summary['updated_items']:,}")
    print(f"- duration: {summary['duration_ms']} ms")
    print(f"- items/second: {summary['items_per_second']:,}")
    if args.keep:
        print(f"- data dir: {summary['data_dir']}")
    print("---")
    print(json.dumps(summary))
    return 0


if __name__ == "__main__":
    sys.exit(main())
