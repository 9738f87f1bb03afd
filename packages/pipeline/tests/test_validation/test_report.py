"""
tests/test_validation/test_report.py — Cross-source validation report aggregation.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from pulse_pipeline.validation.report import (
    collect_validation_results,
    common_issues,
    generate_validation_report,
)
from pulse_pipeline.validation.validator import validate_dataset


def _result(score, *, valid, completeness=1.0, errors=(), warnings=(), dataset_type="conflict"):
    return {
        "datasetType": dataset_type,
        "recordCount": 10,
        "qualityScore": score,
        "completeness": completeness,
        "consistency": 1.0,
        "accuracy": 1.0,
        "meetsThreshold": valid,
        "errors": list(errors),
        "warnings": list(warnings),
    }


def _issue(field, message, affected, severity="error"):
    return {"field": field, "message": message, "severity": severity, "affectedRecords": affected}


def _write(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


@pytest.fixture
def populated(data_dir: Path) -> Path:
    missing_date = "Missing required field: date"
    _write(
        data_dir / "hdx" / "conflict" / "acled" / "validation.json",
        _result(0.95, valid=True, errors=[_issue("date", missing_date, 2)]),
    )
    _write(
        data_dir / "hdx" / "water" / "wash" / "validation.json",
        _result(0.6, valid=False, completeness=0.5, dataset_type="water",
                errors=[_issue("date", missing_date, 5), _issue("name", "Missing required field: name", 9)]),
    )
    _write(
        data_dir / "worldbank" / "sp_pop_totl_validation.json",
        _result(1.0, valid=True, dataset_type="worldbank",
                warnings=[_issue("year", "Value out of range for year", 1, "warning")]),
    )
    # Not a validation result
    _write(data_dir / "worldbank" / "sp_pop_totl.json", {"data": []})
    (data_dir / "goodshepherd").mkdir()
    (data_dir / "goodshepherd" / "validation.json").write_text("{broken")
    return data_dir


class TestCollect:
    def test_finds_nested_and_flat_result_files(self, populated: Path):
        results = collect_validation_results(populated)
        assert [r["file"] for r in results["hdx"]] == [
            "conflict/acled/validation.json",
            "water/wash/validation.json",
        ]
        assert [r["file"] for r in results["worldbank"]] == ["sp_pop_totl_validation.json"]
        assert results["goodshepherd"] == []
        assert results["tech4palestine"] == []


class TestGenerateReport:
    def test_summary_and_breakdown(self, populated: Path):
        report = generate_validation_report(populated)
        summary = report["summary"]

        assert summary["totalDatasets"] == 3
        assert summary["passedValidation"] == 2
        assert summary["failedValidation"] == 1
        assert summary["passRate"] == "66.7%"
        assert summary["averageQualityScore"] == pytest.approx((0.95 + 0.6 + 1.0) / 3)
        assert summary["totalErrors"] == 3
        assert summary["totalWarnings"] == 1
        assert report["bySource"]["hdx"]["failed"] == 1
        assert report["bySource"]["goodshepherd"]["datasets"] == 0

    def test_quality_issue_buckets(self, populated: Path):
        issues = generate_validation_report(populated)["qualityIssues"]
        assert issues["lowQualityDatasets"] == 1
        assert issues["lowCompletenessDatasets"] == 1
        assert issues["failedValidationDatasets"] == 1
        assert issues["highErrorCountDatasets"] == 1
        assert issues["details"]["failedValidation"][0]["dataset"] == "water/wash/validation.json"

    def test_high_error_count_uses_failing_records(self, populated: Path):
        [flagged] = generate_validation_report(populated)["qualityIssues"]["details"]["highErrorCount"]
        assert flagged["dataset"] == "water/wash/validation.json"
        assert flagged["errorCount"] == 2
        assert flagged["errorRecordCount"] == 14

    def test_stored_result_with_many_failing_records_is_flagged(self, data_dir: Path):
        result = validate_dataset([{"date": "2024-01-01"}] * 1000, "casualties")
        assert result.error_count == 2
        _write(data_dir / "goodshepherd" / "prisoners" / "validation.json", result.to_json_dict())

        issues = generate_validation_report(data_dir)["qualityIssues"]
        assert issues["highErrorCountDatasets"] == 1
        assert issues["details"]["highErrorCount"][0]["errorRecordCount"] == 2000

    def test_report_written_to_data_dir(self, populated: Path, quiet_logger):
        generate_validation_report(populated, logger=quiet_logger)
        written = json.loads((populated / "validation-report.json").read_text())
        assert written["summary"]["passRate"] == "66.7%"
        assert quiet_logger.counters.success == 1

    def test_empty_tree(self, data_dir: Path):
        summary = generate_validation_report(data_dir)["summary"]
        assert summary["totalDatasets"] == 0
        assert summary["passRate"] == "0%"


class TestCommonIssues:
    def test_grouped_by_field_and_message(self, populated: Path):
        errors = common_issues(collect_validation_results(populated), "errors")

        assert [(e["field"], e["affectedRecords"]) for e in errors] == [("name", 9), ("date", 7)]
        date_group = errors[1]
        assert date_group["datasetCount"] == 2
        assert date_group["sources"] == ["hdx"]
        assert date_group["severity"] == "error"

    def test_no_issues(self):
        assert common_issues({"hdx": []}, "warnings") == []
