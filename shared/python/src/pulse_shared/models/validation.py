"""
models/validation.py — Pydantic models for per-dataset validation results.

Serialised with camelCase keys (`model_dump(by_alias=True)`) because the
dashboard and the validation report read `validation.json` in that shape.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

Severity = Literal["critical", "error", "warning"]


class ValidationIssue(BaseModel):
    """One error or warning, aggregated over the records it affects."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    field: str
    message: str
    severity: Severity
    affected_records: int = 0


class ValidationResult(BaseModel):
    """
    Quality verdict for one dataset.

    quality_score = 0.4 * completeness + 0.3 * consistency + 0.3 * accuracy
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    dataset_type: str
    record_count: int
    quality_score: float
    completeness: float
    consistency: float
    accuracy: float
    is_valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    missing_fields: dict[str, int] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def meets_threshold(self) -> bool:
        return self.is_valid

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def error_record_count(self) -> int:
        """Failing record occurrences summed over every error group."""
        return sum(e.affected_records for e in self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def summary(self) -> dict[str, Any]:
        """Compact form embedded in index/catalog files."""
        return {
            "qualityScore": self.quality_score,
            "completeness": self.completeness,
            "consistency": self.consistency,
            "accuracy": self.accuracy,
            "meetsThreshold": self.is_valid,
            "errorCount": self.error_count,
            "errorRecordCount": self.error_record_count,
            "warningCount": self.warning_count,
        }

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
