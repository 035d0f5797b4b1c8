"""Tests for the sort-index benchmark harness."""
from benchmark_sort_index import build_dataset, run_benchmark
from worklog.ordering import flatten


def test_dataset_shape():
    items = build_dataset(level_size=4, depth=3)

    assert len(items) == 12
    assert all(i["sort_index"] is None for i in items)
    assert sum(i["parent_id"] is None for i in items) == 4
    assert len(flatten(items)) == 12


def test_created_at_increases():
    items = build_dataset(level_size=5, depth=2)

    stamps = [i["created_at"] for i in items]
    assert stamps == sorted(stamps)
    assert len(set(stamps)) == len(stamps)


def test_run_benchmark(tmp_path):
    summary = run_benchmark(level_size=10, depth=2, gap=100, root=tmp_path)

    assert summary["total_items"] == 20
    assert summary["updated_items"] == 20
    assert summary["gap"] == 100
    assert (tmp_path / ".worklog" / "items.jsonl").exists()
