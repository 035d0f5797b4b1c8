"""Tests for wl create command."""
import json

import pytest
import yaml

from conftest import make_item, read_items, run_wl, write_items


class TestCreate:
    def test_first_item_gets_gap(self, wl_dir):
        """First root item gets sort_index equal to the gap."""
        result = run_wl("create", "First", cwd=wl_dir)

        assert result.returncode == 0
        assert result.stdout.startswith("Created: WL-")
        (item,) = read_items(wl_dir).values()
        assert item["title"] == "First"
        assert item["sort_index"] == 100
        assert item["parent_id"] is None
        assert item["created_by"] == "tester"
        assert item["created_at"].endswith("Z")

    def test_appends_after_max_sibling(self, wl_dir):
        """New item lands after the highest ranked sibling."""
        write_items(wl_dir, [make_item("WL-A", rank=250), make_item("WL-B", rank=100),
                             make_item("WL-C")])

        result = run_wl("create", "Next", "-q", cwd=wl_dir)

        items = read_items(wl_dir)
        assert items[result.stdout.strip()]["sort_index"] == 350
        assert items["WL-A"] == make_item("WL-A", rank=250)
        assert items["WL-B"] == make_item("WL-B", rank=100)
        assert items["WL-C"] == make_item("WL-C")

    def test_child_ranked_in_parent_group(self, wl_dir):
        write_items(wl_dir, [make_item("WL-P", rank=900),
                             make_item("WL-K", parent="WL-P", rank=100)])

        result = run_wl("create", "Child", "--parent", "P", "-q", cwd=wl_dir)

        item = read_items(wl_dir)[result.stdout.strip()]
        assert item["parent_id"] == "WL-P"
        assert item["sort_index"] == 200

    def test_custom_gap(self, wl_dir):
        write_items(wl_dir, [make_item("WL-A", rank=100)])

        result = run_wl("create", "Next", "--gap", "7", "-q", cwd=wl_dir)

        assert read_items(wl_dir)[result.stdout.strip()]["sort_index"] == 107

    def test_config_gap(self, wl_dir):
        (wl_dir / ".worklog" / "config.yaml").write_text(
            yaml.safe_dump({"prefix": "WL", "sort_gap": 10}))

        result = run_wl("create", "First", "-q", cwd=wl_dir)

        assert read_items(wl_dir)[result.stdout.strip()]["sort_index"] == 10

    @pytest.mark.parametrize("gap", ["0", "-5", "abc"])
    def test_bad_gap_rejected(self, wl_dir, gap):
        result = run_wl("create", "First", "--gap", gap, cwd=wl_dir)

        assert result.returncode == 1
        assert "positive integer" in result.stderr
        assert read_items(wl_dir) == {}

    def test_missing_parent(self, wl_dir):
        result = run_wl("create", "Orphan", "--parent", "WL-NOPE", cwd=wl_dir)

        assert result.returncode == 1
        assert "not found" in result.stderr
        assert read_items(wl_dir) == {}

    def test_empty_title_rejected(self, wl_dir):
        result = run_wl("create", "   ", cwd=wl_dir)

        assert result.returncode == 1
        assert "Title cannot be empty" in result.stderr

    def test_json_output(self, wl_dir):
        result = run_wl("create", "Tagged", "--tags", "a, b", "-p", "high", "--json", cwd=wl_dir)

        data = json.loads(result.stdout)
        assert data["success"] is True
        assert data["work_item"]["tags"] == ["a", "b"]
        assert data["work_item"]["priority"] == "high"

    def test_unreadable_store_not_rewritten(self, wl_dir):
        """Creating into a store with a broken line fails instead of dropping it."""
        path = wl_dir / ".worklog" / "items.jsonl"
        path.write_text(json.dumps(make_item("WL-A")) + "\n{broken\n")
        before = path.read_text()

        result = run_wl("create", "New", cwd=wl_dir)

        assert result.returncode == 1
        assert "Refusing to rewrite" in result.stderr
        assert path.read_text() == before
