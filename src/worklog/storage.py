"""Storage operations for worklog items."""
import json
import os
import shutil
import subprocess
import sys
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

DATA_DIR_NAME = ".worklog"
ITEMS_FILE = "items.jsonl"
BACKUPS_DIR = "backups"

STATUSES = ("open", "in-progress", "completed", "blocked", "deleted")
PRIORITIES = ("low", "medium", "high", "critical")

_data_dir: Path | None = None
_verbose = os.environ.get("WORKLOG_VERBOSE") == "1"


class WorklogError(Exception):
    """Base class for errors reported to the user."""
    pass


class ValidationError(WorklogError):
    """Raised when item validation fails."""
    pass


class ConfigError(WorklogError):
    """Raised when configuration cannot be read or is invalid."""
    pass


class StoreWriteError(WorklogError):
    """Raised when items cannot be written. The store is left unchanged."""
    pass


def error(message: str) -> None:
    """Print error message and exit."""
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def warn(message: str) -> None:
    """Print warning message to stderr (does not exit)."""
    print(f"Warning: {message}", file=sys.stderr)


def debug(message: str) -> None:
    """Print diagnostic message to stderr when verbose mode is on."""
    if _verbose:
        print(f"Debug: {message}", file=sys.stderr)


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def find_data_dir(start: Path | None = None) -> Path | None:
    """Walk up from start (default: cwd) looking for .worklog/."""
    current = (start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        path = candidate / DATA_DIR_NAME
        if path.is_dir():
            return path
    return None


def data_dir() -> Path:
    """Resolved .worklog/ directory, cached for the process.

    Falls back to ./.worklog when none is found so that callers get a
    stable path to report.
    """
    global _data_dir
    if _data_dir is None:
        _data_dir = find_data_dir() or Path(DATA_DIR_NAME)
    return _data_dir


def use_data_dir(path: Path) -> None:
    """Pin the data directory (used by the benchmark harness)."""
    global _data_dir
    _data_dir = Path(path)


def _reset_data_dir() -> None:
    global _data_dir
    _data_dir = None


def items_path() -> Path:
    return data_dir() / ITEMS_FILE


def check_initialized() -> None:
    """Check if .worklog/ is initialized. Exit with error if not."""
    if not data_dir().is_dir():
        error("Not initialized. Run `wl init` first.")


def validate_item(item: dict) -> None:
    """Validate item has required fields. Raises ValidationError if invalid."""
    if not isinstance(item, dict):
        raise ValidationError("Item must be a JSON object")

    for field in ("id", "title", "status"):
        if field not in item:
            raise ValidationError(f"Missing required field: {field}")

    if item["status"] not in STATUSES:
        raise ValidationError(f"Invalid status: {item['status']}")

    priority = item.get("priority")
    if priority is not None and priority not in PRIORITIES:
        raise ValidationError(f"Invalid priority: {priority}")

    rank = item.get("sort_index")
    if rank is not None and (isinstance(rank, bool) or not isinstance(rank, int)):
        raise ValidationError(f"Invalid sort_index: {rank!r}")

    parent = item.get("parent_id")
    if parent is not None and not isinstance(parent, str):
        raise ValidationError(f"Invalid parent_id: {parent!r}")


def _recency(item: dict) -> str:
    return item.get("updated_at") or item.get("created_at") or ""


def load_items(strict: bool = False) -> list[dict]:
    """Load all items from JSONL with validation.

    Duplicate IDs (git union-merge artifacts) keep the most recently
    updated version; ties go to the later line.

    Args:
        strict: If True, raise ValidationError when any line was skipped
            (malformed item or conflict marker). Used before a rewrite, which
            would otherwise drop those lines from the file.
    """
    path = items_path()
    if not path.exists():
        return []

    seen: dict[str, dict] = {}
    duplicates = set()
    skipped = []
    for line_num, line in enumerate(path.read_text().splitlines(), 1):
        line = line.strip()
        if not line:
            continue
        if line.startswith(("<<<<<<<", "=======", ">>>>>>>")):
            warn(f"Git conflict marker on line {line_num} of {path}; resolve the merge")
            skipped.append(line_num)
            continue
        try:
            item = json.loads(line)
            validate_item(item)
        except (json.JSONDecodeError, ValidationError) as e:
            warn(f"Skipping malformed item on line {line_num}: {e}")
            skipped.append(line_num)
            continue
        existing = seen.get(item["id"])
        if existing is not None:
            duplicates.add(item["id"])
            if _recency(existing) > _recency(item):
                continue
        seen[item["id"]] = item

    if duplicates:
        warn(f"Duplicate IDs found: {', '.join(sorted(duplicates))}")
    if strict and skipped:
        raise ValidationError(
            f"Refusing to rewrite {path}: unreadable line(s) "
            f"{', '.join(str(n) for n in skipped)}; fix or remove them first"
        )
    debug(f"Loaded {len(seen)} item(s) from {path}")
    return list(seen.values())


def save_items(items: list[dict]) -> None:
    """Save items atomically, sorted by ID for deterministic output.

    The file is replaced in one rename; readers see either the old or the
    new content. Raises StoreWriteError if the write fails.
    """
    path = items_path()
    tmp = path.with_suffix(".tmp")

    try:
        with open(tmp, "w") as f:
            for item in sorted(items, key=lambda i: i.get("id", "")):
                f.write(json.dumps(item, ensure_ascii=False) + "\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise StoreWriteError(f"Failed to write {path}: {e}") from e
    debug(f"Saved {len(items)} item(s) to {path}")


@contextmanager
def transaction():
    """Load items, yield them for mutation, save on clean exit.

    An exception inside the block discards every change: nothing is
    written. Loading is strict, so a file with unreadable lines is never
    rewritten.
    """
    items = load_items(strict=True)
    yield items
    save_items(items)


def make_backup(keep: int = 5) -> Path | None:
    """Copy items.jsonl into backups/, keeping the newest `keep` copies.

    Returns the backup path, or None when there is nothing to back up.
    Raises StoreWriteError if the copy fails.
    """
    source = items_path()
    if not source.exists():
        return None

    backups = data_dir() / BACKUPS_DIR
    stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S%f")
    target = backups / f"{ITEMS_FILE}.{stamp}"
    try:
        backups.mkdir(exist_ok=True)
        shutil.copy2(source, target)
    except OSError as e:
        raise StoreWriteError(f"Failed to create backup {target}: {e}") from e

    existing = sorted(backups.glob(f"{ITEMS_FILE}.*"), key=lambda p: p.name, reverse=True)
    for old in existing[max(keep, 1):]:
        try:
            old.unlink()
        except OSError as e:
            warn(f"Failed to prune old backup {old}: {e}")
    debug(f"Created backup: {target}")
    return target


def find_by_id(items: list[dict], item_id: str, prefix: str | None = None) -> dict | None:
    """Find item by ID. Returns None if not found.

    Searches all items regardless of status. Tries exact match first,
    then prefix + id, then a case-insensitive match (IDs are upper-case).
    """
    for item in items:
        if item["id"] == item_id:
            return item

    if prefix and not item_id.upper().startswith(prefix.upper() + "-"):
        prefixed = f"{prefix}-{item_id}"
        for item in items:
            if item["id"] == prefixed:
                return item
        item_id = prefixed

    wanted = item_id.upper()
    for item in items:
        if item["id"].upper() == wanted:
            return item

    return None


def get_creator() -> str:
    """Get creator identifier for new items.

    Name priority:
    1. WORKLOG_USER env var (explicit override)
    2. git config user.name
    3. USER env var
    4. "unknown"
    """
    if name := os.environ.get("WORKLOG_USER"):
        return name

    try:
        result = subprocess.run(
            ["git", "config", "user.name"],
            capture_output=True, text=True, timeout=2
        )
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
    except (subprocess.TimeoutExpired, FileNotFoundError):
        pass

    return os.environ.get("USER", "unknown")


def now_iso() -> str:
    """Current time in ISO8601 format."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
