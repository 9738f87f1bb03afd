"""
pipelines/manifest.py — Manifest generator for the published data tree.

Scans every source directory after the fetchers have run and writes:

  {source}/metadata.json   per-source dataset listing (hdx, goodshepherd,
                           worldbank, tech4palestine)
  manifest.json            global summary read by the dashboard

Dataset files are only read. Directory sizes leave out the files written
here, so two runs over unchanged data produce identical summaries and
differ only in their timestamps.

Usage:
    python -m pulse_pipeline.pipelines.manifest

    from pulse_pipeline.pipelines.manifest import generate_all_manifests
    manifest = generate_all_manifests()
    print(manifest.summary.total_records)
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from pulse_pipeline.loaders.json_store import directory_size, read_json, write_json
from pulse_pipeline.sources import tech4palestine
from pulse_pipeline.transforms.payloads import (
    ArrayPayload,
    EmbeddedCsvPayload,
    MetadataCountPayload,
    NestedDataPayload,
    PayloadError,
    parse_payload,
)
from pulse_pipeline.transforms.worldbank import indicator_category, indicator_unit
from pulse_pipeline.utils.logging import CollectionLogger, configure_logging, create_logger
from pulse_shared.config import settings
from pulse_shared.constants import (
    HAPI_DIR,
    HDX_CATEGORIES,
    INDEX_FILE,
    MANIFEST_FILE,
    METADATA_FILE,
    RECENT_FILE,
    SINGLE_FILE,
    SOURCES,
    VALIDATION_FILE,
    WORLDBANK_ALL_FILE,
)
from pulse_shared.models.manifest import GlobalManifest, SourceEntry, bytes_to_mb

log = structlog.get_logger(__name__)

# Files inside a dataset directory that are not record-bearing data
_NON_DATA_FILES = frozenset(
    {INDEX_FILE, RECENT_FILE, METADATA_FILE, VALIDATION_FILE, "raw.json", "transformed.json"}
)


# ---------------------------------------------------------------------------
# Record counting
# ---------------------------------------------------------------------------


def _csv_rows(text: str) -> int:
    lines = [line for line in text.split("\n") if line.strip() and not line.startswith("#")]
    return max(0, len(lines) - 1)


def count_records(path: Path) -> int:
    """
    Number of records in a published JSON file. Never raises.

    Understands arrays, {data: [...]}, {data: {data: [...]}}, {records: [...]},
    {metadata: {record_count}} and embedded CSV ({csv} or {data: {csv}}, header
    row, blank and '#' lines not counted). Unreadable files and unknown shapes
    count as 0 with a warning.
    """
    try:
        raw = read_json(path)
    except (OSError, json.JSONDecodeError) as exc:
        log.warning("count_records_unreadable", path=str(path), error=str(exc))
        return 0

    try:
        payload = parse_payload(raw)
    except PayloadError as exc:
        log.warning("count_records_unknown_shape", path=str(path), error=str(exc))
        return 0

    match payload:
        case ArrayPayload(records=records) | NestedDataPayload(records=records):
            return len(records)
        case MetadataCountPayload(count=count):
            return count
        case EmbeddedCsvPayload(text=text):
            return _csv_rows(text)
    return 0


# ---------------------------------------------------------------------------
# Dataset directory scanning
# ---------------------------------------------------------------------------


@dataclass
class DatasetScan:
    """What one dataset directory holds."""

    id: str
    record_count: int = 0
    partitioned: bool = False
    partitions: list[dict[str, Any]] = field(default_factory=list)
    date_range: dict[str, Any] | None = None
    recent_records: int = 0
    files: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.id.split("/")[-1].replace("-", " ").title(),
            "record_count": self.record_count,
            "date_range": self.date_range,
            "partitioned": self.partitioned,
        }
        if self.partitioned:
            data["partition_count"] = len(self.partitions)
            data["partition_strategy"] = "quarter"
            data["partitions"] = self.partitions
        else:
            data["files"] = self.files
        data["has_recent_file"] = self.recent_records > 0
        data["recent_records"] = self.recent_records
        return data


def _json_or_none(path: Path) -> Any:
    try:
        return read_json(path)
    except (OSError, json.JSONDecodeError) as exc:
        log.warning("manifest_read_failed", path=str(path), error=str(exc))
        return None


def scan_dataset_dir(path: Path, dataset_id: str) -> DatasetScan | None:
    """
    Summarise a dataset directory written by a fetcher.

    Partitioned datasets are counted partition by partition from index.json;
    otherwise every data file (data.json, organizations.json, ...) is counted.

    Returns:
        DatasetScan, or None when the directory holds no data files.
    """
    scan = DatasetScan(id=dataset_id)
    recent = path / RECENT_FILE
    if recent.is_file():
        scan.recent_records = count_records(recent)

    index = _json_or_none(path / INDEX_FILE) if (path / INDEX_FILE).is_file() else None
    if isinstance(index, dict) and isinstance(index.get("partitions"), list):
        scan.partitioned = True
        scan.date_range = index.get("date_range")
        for partition in index["partitions"]:
            if not isinstance(partition, dict) or not partition.get("file"):
                continue
            records = count_records(path / partition["file"])
            scan.record_count += records
            scan.partitions.append(
                {
                    "file": partition["file"],
                    "quarter": partition.get("quarter"),
                    "record_count": records,
                    "date_range": partition.get("date_range"),
                }
            )
        return scan

    data_files = sorted(
        p for p in path.glob("*.json") if p.is_file() and p.name not in _NON_DATA_FILES
    )
    if not data_files:
        return None
    for data_file in data_files:
        scan.record_count += count_records(data_file)
        scan.files.append(data_file.name)
    single = path / SINGLE_FILE
    if single.is_file():
        document = _json_or_none(single)
        if isinstance(document, dict) and isinstance(document.get("metadata"), dict):
            scan.date_range = document["metadata"].get("date_range")
    return scan


def _dataset_dirs(root: Path) -> list[Path]:
    """Every directory under `root` that directly holds JSON files, sorted."""
    if not root.is_dir():
        return []
    return sorted(
        p for p in root.rglob("*") if p.is_dir() and any(p.glob("*.json"))
    )


def _newest_mtime(root: Path, exclude: set[Path]) -> datetime | None:
    if not root.is_dir():
        return None
    mtimes = [
        p.stat().st_mtime
        for p in root.rglob("*.json")
        if p.is_file() and p.resolve() not in exclude
    ]
    if not mtimes:
        return None
    return datetime.fromtimestamp(max(mtimes), tz=timezone.utc)


# ---------------------------------------------------------------------------
# Per-source manifests
# ---------------------------------------------------------------------------


@dataclass
class SourceManifest:
    """A per-source document plus the numbers the global manifest needs."""

    source_id: str
    document: dict[str, Any]
    datasets: int
    records: int
    extra: dict[str, Any] = field(default_factory=dict)


def _hdx_manifest(root: Path, generated_at: str) -> SourceManifest:
    datasets: list[dict[str, Any]] = []
    categories: dict[str, int] = {}
    for category in HDX_CATEGORIES:
        found = 0
        category_dir = root / category
        if category_dir.is_dir():
            for dataset_dir in sorted(p for p in category_dir.iterdir() if p.is_dir()):
                scan = scan_dataset_dir(dataset_dir, dataset_dir.name)
                if scan is None:
                    continue
                datasets.append({**scan.to_dict(), "category": category})
                found += 1
        categories[category] = found

    # HAPI datasets sit one level up: hdx/hapi/{dataset}/
    hapi_dir = root / HAPI_DIR
    if hapi_dir.is_dir():
        found = 0
        for dataset_dir in sorted(p for p in hapi_dir.iterdir() if p.is_dir()):
            scan = scan_dataset_dir(dataset_dir, f"{HAPI_DIR}/{dataset_dir.name}")
            if scan is None:
                continue
            datasets.append({**scan.to_dict(), "category": HAPI_DIR})
            found += 1
        categories[HAPI_DIR] = found

    records = sum(d["record_count"] for d in datasets)
    document = {
        "source": "hdx-ckan",
        "last_updated": generated_at,
        "baseline_date": settings.baseline_date,
        "total_datasets": len(datasets),
        "total_records": records,
        "datasets": datasets,
        "categories": categories,
    }
    return SourceManifest("hdx", document, len(datasets), records, {"categories": len(categories)})


def _goodshepherd_manifest(root: Path, generated_at: str) -> SourceManifest:
    datasets: dict[str, Any] = {}
    partitions = 0
    for dataset_dir in _dataset_dirs(root):
        dataset_id = dataset_dir.relative_to(root).as_posix()
        scan = scan_dataset_dir(dataset_dir, dataset_id)
        if scan is None:
            continue
        entry = scan.to_dict()
        entry["category"] = dataset_id.split("/", 1)[0]
        datasets[dataset_id] = entry
        partitions += len(scan.partitions)

    records = sum(d["record_count"] for d in datasets.values())
    document = {
        "source": "goodshepherd",
        "api_base": settings.goodshepherd_base_url,
        "last_updated": generated_at,
        "baseline_date": settings.baseline_date,
        "datasets": datasets,
        "summary": {
            "total_datasets": len(datasets),
            "total_records": records,
            "total_partitions": partitions,
        },
    }
    return SourceManifest(
        "goodshepherd", document, len(datasets), records, {"partitions": partitions}
    )


def _is_indicator_file(path: Path) -> bool:
    return (
        path.suffix == ".json"
        and path.name not in {METADATA_FILE, WORLDBANK_ALL_FILE}
        and not path.stem.endswith("_validation")
    )


def _worldbank_manifest(root: Path, generated_at: str) -> SourceManifest:
    indicators: list[dict[str, Any]] = []
    files = sorted(p for p in root.glob("*.json") if p.is_file() and _is_indicator_file(p))
    for path in files:
        document = _json_or_none(path)
        if not isinstance(document, dict):
            continue
        code = document.get("indicator") or path.stem.upper().replace("_", ".")
        name = document.get("indicator_name") or code
        indicators.append(
            {
                "code": code,
                "name": name,
                "category": indicator_category(code),
                "data_points": count_records(path),
                "unit": indicator_unit(name),
                "validation": document.get("validation"),
            }
        )
    indicators.sort(key=lambda i: (i["category"], i["code"]))

    points = sum(i["data_points"] for i in indicators)
    document = {
        "metadata": {
            "source": "worldbank",
            "country": "Palestine",
            "country_code": settings.worldbank_country,
            "last_updated": generated_at,
            "indicators": len(indicators),
            "total_data_points": points,
        },
        "indicators": indicators,
    }
    return SourceManifest(
        "worldbank",
        document,
        len(indicators),
        points,
        {"indicators": len(indicators), "data_points": points},
    )


def _tech4palestine_manifest(root: Path, generated_at: str) -> SourceManifest:
    datasets: dict[str, int | str] = {}
    scanned = tech4palestine.scan(root)
    for found in scanned:
        if found.counts_records:
            datasets[found.expected.key] = sum(count_records(p) for p in found.files)
        else:
            datasets[found.expected.key] = "available"

    records = sum(v for v in datasets.values() if isinstance(v, int))
    data_modified = tech4palestine.last_modified(scanned)
    document = {
        "source": tech4palestine.NAME,
        "last_updated": generated_at,
        "data_last_modified": data_modified.isoformat() if data_modified else None,
        "datasets": datasets,
    }
    return SourceManifest(tech4palestine.NAME, document, len(datasets), records)


_BUILDERS = {
    "hdx": _hdx_manifest,
    "goodshepherd": _goodshepherd_manifest,
    "worldbank": _worldbank_manifest,
    "tech4palestine": _tech4palestine_manifest,
}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def generate_all_manifests(
    data_dir: Path | None = None,
    *,
    now: datetime | None = None,
    logger: CollectionLogger | None = None,
) -> GlobalManifest:
    """
    Write every per-source metadata.json and the global manifest.json.

    Args:
        data_dir: Root of the published tree (default settings.data_dir).
        now:      generated_at timestamp (default: now, UTC).
        logger:   Collection logger for progress lines.

    Returns:
        The GlobalManifest that was written.

    Raises:
        StorageError: a manifest file could not be written.
    """
    data_dir = Path(data_dir or settings.data_dir)
    now = now or datetime.now(timezone.utc)
    generated_at = now.isoformat()
    manifest = GlobalManifest(generated_at=now, baseline_date=settings.baseline_date)

    outputs = {(data_dir / MANIFEST_FILE).resolve()}
    outputs.update((data_dir / s / METADATA_FILE).resolve() for s in _BUILDERS)

    for source_id, build in _BUILDERS.items():
        root = data_dir / source_id
        built = build(root, generated_at)
        if root.is_dir():
            write_json(root / METADATA_FILE, built.document)

        size = directory_size(root, exclude=outputs)
        entry = SourceEntry(
            name=SOURCES[source_id],
            path=f"/data/{source_id}",
            datasets=built.datasets,
            records=built.records,
            size_bytes=size,
            size_mb=bytes_to_mb(size),
            last_updated=_newest_mtime(root, outputs),
            extra=built.extra,
        )
        manifest.add_source(source_id, entry)

        message = f"{SOURCES[source_id]}: {built.datasets} datasets, {built.records} records"
        if logger is not None:
            logger.success(message)
        else:
            log.info("source_manifest", source=source_id, datasets=built.datasets, records=built.records)

    write_json(data_dir / MANIFEST_FILE, manifest.to_json_dict())
    summary = manifest.summary
    if logger is not None:
        logger.info(
            f"Global manifest: {summary.total_sources} sources, {summary.total_datasets} datasets, "
            f"{summary.total_records} records, {summary.total_size_mb}MB"
        )
    else:
        log.info(
            "manifest_complete",
            sources=summary.total_sources,
            datasets=summary.total_datasets,
            records=summary.total_records,
            size_mb=summary.total_size_mb,
        )
    return manifest


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate per-source and global manifests")
    parser.add_argument("--data-dir", type=Path, default=None, help="Published data root")
    args = parser.parse_args()

    configure_logging()
    logger = create_logger(context="Manifest")
    generate_all_manifests(args.data_dir, logger=logger)
    logger.log_summary()
    return 0


if __name__ == "__main__":
    sys.exit(main())
