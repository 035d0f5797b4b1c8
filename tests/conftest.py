"""Pytest configuration and fixtures."""
import json
import os
import subprocess
import sys
from pathlib import Path

import pytest
import yaml

from worklog.storage import _reset_data_dir, set_verbose

SRC_DIR = Path(__file__).parent.parent / "src"


@pytest.fixture(autouse=True)
def _reset_storage_cache():
    """Reset cached data dir between tests so monkeypatch.chdir works."""
    _reset_data_dir()
    set_verbose(False)
    yield
    _reset_data_dir()


@pytest.fixture
def fixtures_dir():
    """Return path to fixtures directory."""
    return Path(__file__).parent.parent / "fixtures"


def _init_dir(root: Path, content: str = "") -> Path:
    worklog_path = root / ".worklog"
    worklog_path.mkdir()
    (worklog_path / "items.jsonl").write_text(content)
    (worklog_path / "config.yaml").write_text(yaml.safe_dump({"prefix": "WL"}))
    return root


@pytest.fixture
def wl_dir(tmp_path):
    """Create temp dir with initialized .worklog/."""
    return _init_dir(tmp_path)


@pytest.fixture
def wl_dir_with_fixture(request, tmp_path, fixtures_dir):
    """Load a specific fixture into .worklog/.

    Usage:
        @pytest.mark.parametrize("wl_dir_with_fixture", ["unranked_roots"], indirect=True)
        def test_something(wl_dir_with_fixture):
            ...
    """
    fixture_file = fixtures_dir / f"{request.param}.jsonl"
    content = fixture_file.read_text() if fixture_file.exists() else ""
    return _init_dir(tmp_path, content)


def read_items(root: Path) -> dict[str, dict]:
    """Items on disk keyed by id."""
    path = root / ".worklog" / "items.jsonl"
    items = [json.loads(line) for line in path.read_text().splitlines() if line.strip()]
    return {i["id"]: i for i in items}


def write_items(root: Path, items: list[dict]) -> None:
    path = root / ".worklog" / "items.jsonl"
    path.write_text("".join(json.dumps(i) + "\n" for i in items))


def make_item(item_id, parent=None, rank=None, status="open", created="2026-01-01T00:00:00Z", title=None):
    """Minimal valid item dict."""
    return {
        "id": item_id,
        "title": title or item_id,
        "status": status,
        "priority": "medium",
        "parent_id": parent,
        "sort_index": rank,
        "created_at": created,
        "updated_at": created,
    }


def run_wl(*args, cwd=None, env=None, input=None):
    """Run wl CLI and return result."""
    run_env = dict(os.environ if env is None else env)
    run_env["PYTHONPATH"] = os.pathsep.join(
        p for p in (str(SRC_DIR), run_env.get("PYTHONPATH", "")) if p
    )
    run_env.setdefault("WORKLOG_USER", "tester")
    result = subprocess.run(
        [sys.executable, "-m", "worklog.cli", *args],
        capture_output=True,
        text=True,
        cwd=cwd,
        env=run_env,
        input=input,
    )
    return result
