"""
pulse_shared.models — Pydantic models for the files the pipeline publishes.

These models are used by:
- pulse_pipeline.validation: per-dataset validation.json
- pulse_pipeline.pipelines.manifest: manifest.json
- pulse_pipeline.pipelines.fetch_all: data-collection-summary.json

All models provide .to_json_dict() returning the on-disk JSON shape.
"""

from pulse_shared.models.manifest import GlobalManifest, ManifestSummary, SourceEntry
from pulse_shared.models.run_summary import (
    DataCollectionStats,
    RunError,
    RunSummary,
    RunWarning,
    StepResult,
)
from pulse_shared.models.validation import ValidationIssue, ValidationResult

__all__ = [
    "ValidationIssue",
    "ValidationResult",
    "SourceEntry",
    "ManifestSummary",
    "GlobalManifest",
    "StepResult",
    "RunError",
    "RunWarning",
    "DataCollectionStats",
    "RunSummary",
]
