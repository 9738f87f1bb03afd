"""
models/run_summary.py — Pydantic models for one orchestrator execution.

Written once per run to data-collection-summary.json; the pipeline never
reads it back (the `status` CLI command only prints it).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

RunState = Literal["not_started", "running", "completed", "completed_with_errors"]


def format_bytes(size: int) -> str:
    """Human-readable size: 0 Bytes, 1.5 KB, 2.25 MB ..."""
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"


class StepResult(BaseModel):
    """Outcome of one orchestrator step."""

    name: str
    description: str
    started_at: datetime
    finished_at: datetime
    success: bool
    error: str | None = None

    @property
    def duration_seconds(self) -> float:
        return round((self.finished_at - self.started_at).total_seconds(), 2)


class RunError(BaseModel):
    """A failed step, or one failed item inside a fetcher step (`item` set)."""

    script: str
    error: str
    timestamp: datetime
    item: str | None = None
    stage: str | None = None


class RunWarning(BaseModel):
    script: str
    message: str
    timestamp: datetime
    item: str | None = None


class DataCollectionStats(BaseModel):
    total_datasets: int = 0
    total_records: int = 0
    storage_size_bytes: int = 0

    @property
    def storage_size_formatted(self) -> str:
        return format_bytes(self.storage_size_bytes)


class RunSummary(BaseModel):
    """Matches public/data/data-collection-summary.json."""

    state: RunState = "not_started"
    started_at: datetime
    finished_at: datetime | None = None
    steps: list[StepResult] = Field(default_factory=list)
    errors: list[RunError] = Field(default_factory=list)
    warnings: list[RunWarning] = Field(default_factory=list)
    data_collection: DataCollectionStats = Field(default_factory=DataCollectionStats)
    validation: dict[str, Any] | None = None
    sources: dict[str, Any] = Field(default_factory=dict)

    @property
    def failed_steps(self) -> list[StepResult]:
        return [s for s in self.steps if not s.success]

    @property
    def exit_code(self) -> int:
        return 1 if self.failed_steps else 0

    def to_json_dict(self) -> dict[str, Any]:
        finished = self.finished_at or self.started_at
        duration = (finished - self.started_at).total_seconds()
        total = len(self.steps)
        successful = total - len(self.failed_steps)
        return {
            "generated_at": finished.isoformat(),
            "state": self.state,
            "execution": {
                "start_time": self.started_at.isoformat(),
                "end_time": finished.isoformat(),
                "duration_seconds": f"{duration:.2f}",
                "duration_formatted": f"{int(duration // 60)}m {int(duration % 60)}s",
            },
            "scripts": {
                "total": total,
                "successful": successful,
                "failed": total - successful,
                "success_rate": f"{(successful / total * 100) if total else 0:.1f}%",
                "details": [
                    {
                        "name": s.name,
                        "description": s.description,
                        "success": s.success,
                        "duration_seconds": f"{s.duration_seconds:.2f}",
                        "error": s.error,
                    }
                    for s in self.steps
                ],
            },
            "data_collection": {
                "total_datasets": self.data_collection.total_datasets,
                "total_records": self.data_collection.total_records,
                "storage_size_bytes": self.data_collection.storage_size_bytes,
                "storage_size_formatted": self.data_collection.storage_size_formatted,
            },
            "errors": {
                "count": len(self.errors),
                "details": [e.model_dump(mode="json") for e in self.errors],
            },
            "warnings": {
                "count": len(self.warnings),
                "details": [w.model_dump(mode="json") for w in self.warnings],
            },
            "validation": self.validation,
            "sources": self.sources,
        }
