"""
validation/validator.py — Record-level quality scoring for standard datasets.

Three passes over the records, each against the dataset's schema:

  structure     required fields, field types, ISO date formats, numeric
                ranges and enum values; issues aggregated per field
  completeness  fraction of records with every required field present
  quality       consistency (types and dates match) and accuracy (ranges
                and enums pass), combined into the overall score

    overall = 0.4 * completeness + 0.3 * consistency + 0.3 * accuracy

A dataset is valid when overall, completeness, consistency and accuracy all
meet their thresholds (settings.quality_*). Validation never raises and never
blocks a save; the result is written next to the data.

Usage:
    from pulse_pipeline.validation.validator import validate_dataset

    result = validate_dataset(records, "conflict", logger=logger)
    if not result.is_valid:
        ...
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from pulse_pipeline.transforms.normalize import safe_float
from pulse_pipeline.validation.schemas import DatasetSchema, FieldType, get_schema
from pulse_shared.config import settings
from pulse_shared.models.validation import ValidationIssue, ValidationResult
from pulse_shared.time_utils import is_iso_date

if TYPE_CHECKING:
    from pulse_pipeline.utils.logging import CollectionLogger

log = structlog.get_logger(__name__)

Record = dict[str, Any]

WEIGHTS = {"completeness": 0.4, "consistency": 0.3, "accuracy": 0.3}
CRITICAL_MISSING_SHARE = 0.5


@dataclass(frozen=True)
class QualityThresholds:
    completeness: float = 0.95
    consistency: float = 0.90
    accuracy: float = 0.85
    overall: float = 0.90

    @classmethod
    def from_settings(cls) -> QualityThresholds:
        return cls(
            completeness=settings.quality_completeness,
            consistency=settings.quality_consistency,
            accuracy=settings.quality_accuracy,
            overall=settings.quality_overall,
        )


# ---------------------------------------------------------------------------
# Field checks
# ---------------------------------------------------------------------------


def is_present(value: Any) -> bool:
    """Present means not None and not a blank string."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def matches_type(value: Any, expected: FieldType) -> bool:
    match expected:
        case "string":
            return isinstance(value, str)
        case "number":
            return isinstance(value, (int, float)) and not isinstance(value, bool) and value == value
        case "boolean":
            return isinstance(value, bool)
        case "array":
            return isinstance(value, list)
        case "object":
            return isinstance(value, dict)
    return True


def is_coercible(value: Any, expected: FieldType) -> bool:
    """True when a mismatched value converts cleanly ("12" for a number)."""
    match expected:
        case "number":
            return isinstance(value, str) and safe_float(value) is not None
        case "string":
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        case "boolean":
            return isinstance(value, str) and value.strip().lower() in {"true", "false"}
    return False


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------


@dataclass
class StructureReport:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    consistent_records: int = 0
    accurate_records: int = 0
    total_records: int = 0


@dataclass
class CompletenessReport:
    completeness: float
    missing_fields: dict[str, int]
    complete_records: int
    total_records: int


@dataclass
class QualityReport:
    completeness: float
    consistency: float
    accuracy: float
    overall: float
    structure: StructureReport
    completeness_detail: CompletenessReport


def validate_data_structure(records: Sequence[Record], schema: DatasetSchema) -> StructureReport:
    """
    Check every record against the schema and aggregate issues per field.

    Severities:
        critical  required field missing on more than half the records
        error     required field missing on fewer, non-coercible type mismatch,
                  malformed date
        warning   coercible type mismatch, out-of-range number, unknown enum value
    """
    report = StructureReport(total_records=len(records))
    if not records:
        report.warnings.append(
            ValidationIssue(
                field="root",
                message="Dataset is empty",
                severity="warning",
                affected_records=0,
            )
        )
        return report

    # (field, message, severity) -> affected record count
    issues: Counter[tuple[str, str, str]] = Counter()
    missing: Counter[str] = Counter()

    for record in records:
        consistent = True
        accurate = True

        for name in schema.required_fields:
            if not is_present(record.get(name)):
                missing[name] += 1

        for name, expected in schema.field_types.items():
            value = record.get(name)
            if not is_present(value) or matches_type(value, expected):
                continue
            consistent = False
            actual = type(value).__name__
            if is_coercible(value, expected):
                issues[(name, f"Coercible type for field {name}: expected {expected}, got {actual}", "warning")] += 1
            else:
                issues[(name, f"Invalid type for field {name}: expected {expected}, got {actual}", "error")] += 1

        for name in schema.date_fields:
            value = record.get(name)
            if is_present(value) and not is_iso_date(value):
                consistent = False
                issues[(name, f"Invalid date format in field {name}", "error")] += 1

        for name, bounds in schema.numeric_ranges.items():
            value = record.get(name)
            if not matches_type(value, "number"):
                continue
            if not bounds.contains(value):
                accurate = False
                issues[(name, f"Value out of range for {name} (expected {bounds.describe()})", "warning")] += 1

        for name, allowed in schema.enum_values.items():
            value = record.get(name)
            if not is_present(value):
                continue
            if not isinstance(value, str) or value.strip().lower() not in allowed:
                accurate = False
                issues[(name, f"Invalid enum value for {name} (expected one of: {', '.join(allowed)})", "warning")] += 1

        report.consistent_records += consistent
        report.accurate_records += accurate

    total = len(records)
    for name in schema.required_fields:
        count = missing[name]
        if count:
            severity = "critical" if count / total > CRITICAL_MISSING_SHARE else "error"
            report.errors.append(
                ValidationIssue(
                    field=name,
                    message=f"Missing required field: {name}",
                    severity=severity,
                    affected_records=count,
                )
            )

    for (name, message, severity), count in issues.items():
        issue = ValidationIssue(
            field=name, message=message, severity=severity, affected_records=count
        )
        if severity == "warning":
            report.warnings.append(issue)
        else:
            report.errors.append(issue)

    return report


def validate_data_completeness(
    records: Sequence[Record],
    required_fields: Sequence[str],
) -> CompletenessReport:
    """Fraction of records whose required fields are all present and non-empty."""
    missing = {name: 0 for name in required_fields}
    complete = 0
    for record in records:
        record_complete = True
        for name in required_fields:
            if not is_present(record.get(name)):
                missing[name] += 1
                record_complete = False
        complete += record_complete

    total = len(records)
    return CompletenessReport(
        completeness=complete / total if total else 1.0,
        missing_fields=missing,
        complete_records=complete,
        total_records=total,
    )


def validate_data_quality(records: Sequence[Record], schema: DatasetSchema) -> QualityReport:
    structure = validate_data_structure(records, schema)
    completeness = validate_data_completeness(records, schema.required_fields)

    total = len(records)
    consistency = structure.consistent_records / total if total else 1.0
    accuracy = structure.accurate_records / total if total else 1.0
    overall = (
        WEIGHTS["completeness"] * completeness.completeness
        + WEIGHTS["consistency"] * consistency
        + WEIGHTS["accuracy"] * accuracy
    )
    return QualityReport(
        completeness=completeness.completeness,
        consistency=consistency,
        accuracy=accuracy,
        overall=overall,
        structure=structure,
        completeness_detail=completeness,
    )


def validate_dataset(
    records: Sequence[Record],
    dataset_type: str,
    *,
    logger: CollectionLogger | None = None,
    thresholds: QualityThresholds | None = None,
) -> ValidationResult:
    """
    Validate one dataset and return its ValidationResult.

    Args:
        records:      Standard records.
        dataset_type: Schema name, resolved with get_schema().
        logger:       Collection logger for the outcome line.
        thresholds:   Pass/fail thresholds (default from settings).

    Returns:
        ValidationResult. Never raises on bad data.
    """
    thresholds = thresholds or QualityThresholds.from_settings()
    schema = get_schema(dataset_type)
    quality = validate_data_quality(records, schema)

    is_valid = (
        quality.overall >= thresholds.overall
        and quality.completeness >= thresholds.completeness
        and quality.consistency >= thresholds.consistency
        and quality.accuracy >= thresholds.accuracy
    )

    result = ValidationResult(
        dataset_type=dataset_type,
        record_count=len(records),
        quality_score=quality.overall,
        completeness=quality.completeness,
        consistency=quality.consistency,
        accuracy=quality.accuracy,
        is_valid=is_valid,
        errors=quality.structure.errors,
        warnings=quality.structure.warnings,
        missing_fields=quality.completeness_detail.missing_fields,
    )

    score = f"{quality.overall * 100:.1f}%"
    if logger is not None:
        if is_valid:
            logger.success(f"Dataset {dataset_type} passed validation (score: {score})")
        else:
            logger.warn(f"Dataset {dataset_type} quality below threshold (score: {score})")
        if result.errors:
            logger.debug(f"Found {len(result.errors)} validation error groups in {dataset_type}")
    else:
        log.info(
            "dataset_validated",
            dataset_type=dataset_type,
            schema=schema.name,
            records=len(records),
            quality_score=round(quality.overall, 4),
            is_valid=is_valid,
            errors=len(result.errors),
            warnings=len(result.warnings),
        )
    return result
