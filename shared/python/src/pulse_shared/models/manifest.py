"""
models/manifest.py — Pydantic models for the global data manifest.

`manifest.json` is read by the dashboard to discover which sources exist,
how large they are and when they were last refreshed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from pulse_shared.constants import MANIFEST_VERSION


def bytes_to_mb(size_bytes: int) -> str:
    return f"{size_bytes / (1024 * 1024):.2f}"


class SourceEntry(BaseModel):
    """One source in manifest.json."""

    name: str
    path: str
    datasets: int = 0
    records: int = 0
    size_bytes: int = 0
    size_mb: str = "0.00"
    last_updated: datetime | None = None
    extra: dict[str, Any] = Field(default_factory=dict, exclude=True)

    def to_json_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data.update(self.extra)
        return data


class ManifestSummary(BaseModel):
    total_sources: int = 0
    total_datasets: int = 0
    total_records: int = 0
    total_size_bytes: int = 0
    total_size_mb: str = "0.00"


class GlobalManifest(BaseModel):
    """Matches public/data/manifest.json."""

    generated_at: datetime
    version: str = MANIFEST_VERSION
    baseline_date: str
    sources: dict[str, SourceEntry] = Field(default_factory=dict)
    summary: ManifestSummary = Field(default_factory=ManifestSummary)

    def add_source(self, source_id: str, entry: SourceEntry) -> None:
        self.sources[source_id] = entry
        self.summary.total_sources += 1
        self.summary.total_datasets += entry.datasets
        self.summary.total_records += entry.records
        self.summary.total_size_bytes += entry.size_bytes
        self.summary.total_size_mb = bytes_to_mb(self.summary.total_size_bytes)

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "version": self.version,
            "baseline_date": self.baseline_date,
            "sources": {k: v.to_json_dict() for k, v in self.sources.items()},
            "summary": self.summary.model_dump(mode="json"),
        }
