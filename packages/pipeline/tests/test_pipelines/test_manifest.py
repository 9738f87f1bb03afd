"""
tests/test_pipelines/test_manifest.py — Record counting and manifest generation.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

from pulse_pipeline.loaders.json_store import write_json
from pulse_pipeline.loaders.partitioner import partition_and_save
from pulse_pipeline.pipelines.manifest import count_records, generate_all_manifests, scan_dataset_dir

NOW = datetime(2024, 6, 30, tzinfo=timezone.utc)


def _daily(start: date, count: int) -> list[dict]:
    return [{"date": (start + timedelta(days=i)).isoformat()} for i in range(count)]


def _read(path: Path):
    return json.loads(path.read_text())


class TestCountRecords:
    @pytest.mark.parametrize(
        "document,expected",
        [
            ([{"a": 1}, {"a": 2}], 2),
            ({"data": [{}, {}, {}]}, 3),
            ({"metadata": {}, "data": {"data": [{}]}}, 1),
            ({"records": [{}, {}]}, 2),
            ({"metadata": {"record_count": 5}}, 5),
            ({"csv": "a,b\n1,2\n# note\n\n3,4\n"}, 2),
            ({"data": {"csv": "a,b\n"}}, 0),
            ({"something": "else"}, 0),
        ],
    )
    def test_shapes(self, tmp_path: Path, document, expected):
        path = tmp_path / "x.json"
        path.write_text(json.dumps(document))
        assert count_records(path) == expected

    def test_unreadable_is_zero(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text("{")
        assert count_records(path) == 0
        assert count_records(tmp_path / "missing.json") == 0


class TestScanDatasetDir:
    def test_partitioned_counts_from_partitions(self, tmp_path: Path):
        partition_and_save(_daily(date(2024, 1, 1), 120), tmp_path, dataset="d", source="s", now=NOW, threshold=50)
        scan = scan_dataset_dir(tmp_path, "conflict/d")
        assert scan.partitioned
        assert scan.record_count == 120
        assert [p["quarter"] for p in scan.partitions] == ["2024-Q1", "2024-Q2"]
        assert scan.to_dict()["partition_count"] == 2

    def test_single_file_uses_metadata_range(self, tmp_path: Path):
        partition_and_save(_daily(date(2024, 6, 1), 3), tmp_path, dataset="d", source="s", now=NOW)
        scan = scan_dataset_dir(tmp_path, "demolitions")
        assert not scan.partitioned
        assert scan.files == ["data.json"]
        assert scan.date_range == {"start": "2024-06-01", "end": "2024-06-03"}
        assert scan.recent_records == 3

    def test_directory_without_data(self, tmp_path: Path):
        write_json(tmp_path / "validation.json", {})
        assert scan_dataset_dir(tmp_path, "x") is None


@pytest.fixture
def published(data_dir: Path) -> Path:
    hdx = data_dir / "hdx" / "conflict" / "acled"
    partition_and_save(_daily(date(2024, 1, 1), 4), hdx, dataset="acled", source="hdx", now=NOW)
    write_json(hdx / "raw.json", {"data": {"csv": "a\n1\n2\n3\n4"}})
    write_json(hdx / "validation.json", {"qualityScore": 1.0})

    gs = data_dir / "goodshepherd"
    partition_and_save(_daily(date(2023, 10, 7), 30), gs / "healthcare", dataset="h", source="goodshepherd", now=NOW)
    write_json(gs / "ngo" / "organizations.json", {"data": [{}, {}]})
    write_json(gs / "ngo" / "funding-by-year.json", {"data": [{}]})

    wb = data_dir / "worldbank"
    write_json(wb / "sp_pop_totl.json", {"indicator": "SP.POP.TOTL", "indicator_name": "Population, total", "data": [{}, {}, {}]})
    write_json(wb / "sp_pop_totl_validation.json", {"qualityScore": 1.0})
    write_json(wb / "all-indicators.json", {"data": [{}, {}, {}]})

    t4p = data_dir / "tech4palestine"
    write_json(t4p / "summary.json", {"gaza": {}})
    write_json(t4p / "press-killed.json", [{}, {}])
    write_json(t4p / "killed-in-gaza" / "page-1.json", [{}, {}, {}])
    write_json(t4p / "killed-in-gaza" / "index.json", ["page-1.json"])
    return data_dir


class TestGenerateAllManifests:
    def test_source_counts(self, published: Path, quiet_logger):
        manifest = generate_all_manifests(published, now=NOW, logger=quiet_logger)

        assert manifest.sources["hdx"].records == 4
        assert manifest.sources["hdx"].datasets == 1
        assert manifest.sources["goodshepherd"].records == 30 + 3
        assert manifest.sources["goodshepherd"].datasets == 2
        assert manifest.sources["worldbank"].records == 3
        assert manifest.sources["worldbank"].datasets == 1
        assert manifest.sources["tech4palestine"].records == 5
        assert manifest.summary.total_sources == 4
        assert manifest.summary.total_records == 4 + 33 + 3 + 5
        assert quiet_logger.counters.success == 4

    def test_files_written(self, published: Path):
        generate_all_manifests(published, now=NOW)

        written = _read(published / "manifest.json")
        assert written["version"] == "3.0.0"
        assert written["sources"]["worldbank"]["indicators"] == 1
        assert written["sources"]["hdx"]["path"] == "/data/hdx"

        t4p = _read(published / "tech4palestine" / "metadata.json")
        assert t4p["datasets"] == {"summary": "available", "pressKilled": 2, "killedInGaza": 3}

        wb = _read(published / "worldbank" / "metadata.json")
        assert [i["code"] for i in wb["indicators"]] == ["SP.POP.TOTL"]
        assert wb["indicators"][0]["category"] == "population"

        gs = _read(published / "goodshepherd" / "metadata.json")
        assert set(gs["datasets"]) == {"healthcare", "ngo"}
        assert gs["datasets"]["ngo"]["files"] == ["funding-by-year.json", "organizations.json"]

    def test_hapi_datasets_join_hdx_manifest(self, published: Path):
        hapi = published / "hdx" / "hapi" / "conflict-events"
        partition_and_save(_daily(date(2024, 2, 1), 6), hapi, dataset="conflict-events", source="hdx-hapi", now=NOW)
        write_json(published / "hdx" / "hapi" / "metadata.json", {"source": "hdx-hapi"})

        manifest = generate_all_manifests(published, now=NOW)

        assert manifest.sources["hdx"].datasets == 2
        assert manifest.sources["hdx"].records == 4 + 6
        hdx = _read(published / "hdx" / "metadata.json")
        assert hdx["categories"]["hapi"] == 1
        [entry] = [d for d in hdx["datasets"] if d["category"] == "hapi"]
        assert entry["id"] == "hapi/conflict-events"
        assert _read(published / "hdx" / "hapi" / "metadata.json") == {"source": "hdx-hapi"}

    def test_second_run_is_identical(self, published: Path):
        first = generate_all_manifests(published, now=NOW)
        second = generate_all_manifests(published, now=NOW)
        assert first.to_json_dict() == second.to_json_dict()

    def test_missing_sources_report_zero(self, data_dir: Path):
        manifest = generate_all_manifests(data_dir, now=NOW)
        assert manifest.summary.total_records == 0
        assert manifest.sources["tech4palestine"].last_updated is None
        assert not (data_dir / "tech4palestine" / "metadata.json").exists()
        assert (data_dir / "manifest.json").exists()
