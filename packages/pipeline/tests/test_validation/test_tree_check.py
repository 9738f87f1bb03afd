"""
tests/test_validation/test_tree_check.py — Structural checks over a published tree.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from pulse_pipeline.loaders.json_store import write_json
from pulse_pipeline.loaders.partitioner import partition_and_save
from pulse_pipeline.pipelines.manifest import generate_all_manifests
from pulse_pipeline.validation.tree_check import check_tree, is_time_series_file

NOW = datetime(2024, 6, 30, tzinfo=timezone.utc)


def _daily(start: date, count: int) -> list[dict]:
    return [{"date": (start + timedelta(days=i)).isoformat(), "killed": 1} for i in range(count)]


def _failed(report) -> dict[str, list[str]]:
    return {c.name: c.problems for c in report.checks if not c.passed}


@pytest.fixture
def tree(data_dir: Path) -> Path:
    gs = data_dir / "goodshepherd"
    partition_and_save(
        _daily(date(2023, 10, 7), 40), gs / "prisoners" / "children",
        dataset="child-prisoners", source="goodshepherd", now=NOW, threshold=10,
    )
    partition_and_save(
        _daily(date(2024, 5, 1), 3), gs / "demolitions", dataset="demolitions", source="goodshepherd", now=NOW
    )
    partition_and_save(
        _daily(date(2024, 1, 1), 2), data_dir / "hdx" / "hapi" / "casualties",
        dataset="casualties", source="hdx-hapi", now=NOW,
    )
    write_json(data_dir / "worldbank" / "sp_pop_totl.json", {"data": [{"year": 2023}]})
    t4p = data_dir / "tech4palestine"
    write_json(t4p / "killed-in-gaza" / "page-1.json", [{}])
    write_json(t4p / "killed-in-gaza" / "index.json", ["page-1.json"])
    generate_all_manifests(data_dir, now=NOW)
    return data_dir


class TestCheckTree:
    def test_healthy_tree_passes(self, tree: Path, quiet_logger):
        report = check_tree(tree, baseline="2023-10-07", logger=quiet_logger)

        assert _failed(report) == {}
        assert report.exit_code == 0
        assert report.success_rate == "100.0%"
        assert report.largest_file is not None
        assert quiet_logger.counters.success == report.total

    def test_missing_manifest_and_sources(self, data_dir: Path):
        report = check_tree(data_dir, baseline="2023-10-07")

        failed = _failed(report)
        assert "Manifest file exists" in failed
        assert "Manifest has version" in failed
        assert "hdx directory exists" in failed
        assert report.exit_code == 1

    def test_wrong_baseline_in_manifest(self, tree: Path):
        failed = _failed(check_tree(tree, baseline="2020-01-01"))
        assert failed["Manifest has baseline_date"] == ["expected 2020-01-01, found 2023-10-07"]

    def test_unsorted_series_is_reported(self, tree: Path):
        path = tree / "goodshepherd" / "demolitions" / "data.json"
        write_json(path, {"metadata": {}, "data": [{"date": "2024-05-02"}, {"date": "2024-05-01"}]})

        [problem] = _failed(check_tree(tree, baseline="2023-10-07"))[
            "Time-series files have correct structure"
        ]
        assert problem.startswith("goodshepherd/demolitions/data.json: not sorted")

    def test_dates_before_baseline_and_unparseable(self, tree: Path):
        path = tree / "hdx" / "hapi" / "casualties" / "data.json"
        write_json(path, {"metadata": {}, "data": [{"date": "2023-01-01"}, {"date": "someday"}]})

        problems = _failed(check_tree(tree, baseline="2023-10-07"))[
            "All dates are valid and on or after 2023-10-07"
        ]
        assert problems == [
            "hdx/hapi/casualties/data.json[0]: 2023-01-01 before 2023-10-07",
            "hdx/hapi/casualties/data.json[1]: invalid date 'someday'",
        ]

    def test_invalid_json_and_oversized_files(self, tree: Path):
        (tree / "goodshepherd" / "broken.json").write_text("{")

        failed = _failed(check_tree(tree, baseline="2023-10-07", max_file_size=64))
        [invalid] = [name for name in failed if name.startswith("All JSON files are valid")]
        assert failed[invalid][0].startswith("goodshepherd/broken.json:")
        assert any(name.startswith("All files under 64 Bytes") for name in failed)

    def test_index_listing_a_missing_partition(self, tree: Path):
        (tree / "goodshepherd" / "prisoners" / "children" / "2023-Q4.json").unlink()

        problems = _failed(check_tree(tree, baseline="2023-10-07"))["All index files have correct structure"]
        assert problems == ["goodshepherd/prisoners/children/index.json: listed file missing: 2023-Q4.json"]

    def test_time_series_file_selection(self, tmp_path: Path):
        assert is_time_series_file(tmp_path / "goodshepherd" / "prisoners" / "children" / "2024-Q1.json", tmp_path)
        assert is_time_series_file(tmp_path / "hdx" / "hapi" / "displacement" / "recent.json", tmp_path)
        assert not is_time_series_file(tmp_path / "goodshepherd" / "prisoners" / "statistics" / "monthly-totals.json", tmp_path)
        assert not is_time_series_file(tmp_path / "goodshepherd" / "demolitions" / "index.json", tmp_path)
        assert not is_time_series_file(tmp_path / "hdx" / "conflict" / "acled" / "data.json", tmp_path)
