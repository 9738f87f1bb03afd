"""
tests/test_validation/test_validator.py — Quality scoring and issue severities.
"""

from __future__ import annotations

import pytest

from pulse_pipeline.validation.schemas import SCHEMAS, get_schema
from pulse_pipeline.validation.validator import (
    QualityThresholds,
    validate_data_completeness,
    validate_data_structure,
    validate_dataset,
)


def casualty(date="2024-01-01", killed=3, injured=5, **extra):
    return {"date": date, "killed": killed, "injured": injured, **extra}


class TestValidateDataset:
    def test_clean_dataset_scores_one(self):
        result = validate_dataset([casualty(), casualty(date="2024-01-02")], "casualties")
        assert result.quality_score == pytest.approx(1.0)
        assert result.is_valid
        assert result.errors == []
        assert result.record_count == 2

    def test_empty_dataset_is_valid_with_warning(self):
        result = validate_dataset([], "casualties")
        assert result.quality_score == 1.0
        assert result.is_valid
        assert [w.message for w in result.warnings] == ["Dataset is empty"]

    def test_score_weights(self):
        # 1 of 4 records lacks `killed`; another has an out-of-range value
        records = [casualty(), casualty(killed=None), casualty(killed=-1), casualty()]
        result = validate_dataset(records, "casualties")
        assert result.completeness == pytest.approx(0.75)
        assert result.consistency == pytest.approx(1.0)
        assert result.accuracy == pytest.approx(0.75)
        assert result.quality_score == pytest.approx(0.4 * 0.75 + 0.3 * 1.0 + 0.3 * 0.75)
        assert not result.is_valid

    def test_every_record_missing_a_field_scores_zero_completeness(self):
        records = [casualty(injured=None) for _ in range(5)]
        result = validate_dataset(records, "casualties")
        assert result.completeness == 0.0
        assert not result.is_valid

    def test_custom_thresholds(self):
        records = [casualty(), casualty(killed=None)]
        lenient = QualityThresholds(completeness=0.5, consistency=0.5, accuracy=0.5, overall=0.5)
        assert validate_dataset(records, "casualties", thresholds=lenient).is_valid

    def test_logger_records_outcome(self, quiet_logger):
        validate_dataset([casualty()], "casualties", logger=quiet_logger)
        validate_dataset([casualty(killed="many")], "casualties", logger=quiet_logger)
        summary = quiet_logger.summary()
        assert summary.success == 1
        assert summary.warnings == 1

    def test_serialised_with_camel_case(self):
        payload = validate_dataset([casualty()], "casualties").to_json_dict()
        assert payload["qualityScore"] == pytest.approx(1.0)
        assert payload["datasetType"] == "casualties"
        assert payload["meetsThreshold"] is True
        assert "missingFields" in payload


class TestStructureSeverities:
    def test_missing_on_most_records_is_critical(self):
        records = [casualty(injured=None), casualty(injured=None), casualty()]
        report = validate_data_structure(records, SCHEMAS["casualties"])
        [issue] = report.errors
        assert issue.field == "injured"
        assert issue.severity == "critical"
        assert issue.affected_records == 2

    def test_missing_on_few_records_is_error(self):
        records = [casualty(injured=""), casualty(), casualty()]
        [issue] = validate_data_structure(records, SCHEMAS["casualties"]).errors
        assert issue.severity == "error"

    def test_coercible_type_is_warning_and_bad_type_is_error(self):
        records = [casualty(killed="12"), casualty(killed="lots")]
        report = validate_data_structure(records, SCHEMAS["casualties"])
        assert [w.field for w in report.warnings] == ["killed"]
        assert report.warnings[0].message.startswith("Coercible type")
        assert [e.message.split(":")[0] for e in report.errors] == ["Invalid type for field killed"]
        assert report.consistent_records == 0

    def test_malformed_date_is_error(self):
        report = validate_data_structure([casualty(date="01/02/2024")], SCHEMAS["casualties"])
        assert report.errors[0].message == "Invalid date format in field date"

    def test_issues_aggregated_per_field(self):
        records = [casualty(killed=-5) for _ in range(3)]
        report = validate_data_structure(records, SCHEMAS["casualties"])
        [warning] = report.warnings
        assert warning.affected_records == 3


class TestCompleteness:
    def test_record_level_fraction(self):
        records = [{"a": 1, "b": 2}, {"a": 1, "b": " "}, {"b": 2}]
        report = validate_data_completeness(records, ("a", "b"))
        assert report.completeness == pytest.approx(1 / 3)
        assert report.missing_fields == {"a": 1, "b": 1}

    def test_no_required_fields_is_complete(self):
        assert validate_data_completeness([{"x": 1}], ()).completeness == 1.0


class TestSchemaLookup:
    def test_exact_and_partial_names(self):
        assert get_schema("conflict").name == "conflict"
        assert get_schema("Conflict").name == "conflict"
        assert get_schema("healthcare-attacks").name == "healthcare"

    def test_unknown_falls_back_to_generic(self):
        assert get_schema("zzz").name == "generic"
        result = validate_dataset([{"anything": 1}], "zzz")
        assert result.is_valid
