"""
validation/tree_check.py — Structural checks over the published data tree.

Where validation/report.py aggregates per-dataset quality scores, this module
checks that the tree as a whole is publishable:

  manifest      manifest.json exists, parses, carries the baseline date,
                a version and its sources
  json          every *.json file under the tree parses
  size          every file is at most 10 MB
  time-series   partition files (data.json, recent.json, YYYY-QN.json) under
                casualties/, displacement/, prisoners/ and demolitions/ have
                `metadata` and a `data` list sorted by date
  dates         every dated record there parses and is on or after the baseline
  sources       each source directory exists and holds metadata.json
  indexes       every index.json names its dataset and lists files that exist

Usage:
    python -m pulse_pipeline.validation.tree_check
    pulse-pipeline validate --tree

    from pulse_pipeline.validation.tree_check import check_tree
    report = check_tree()
    print(report.passed, report.failed)
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from pulse_pipeline.loaders.partitioner import QUARTER_FILE_PATTERN
from pulse_pipeline.sources.tech4palestine import EXPECTED_DATASETS
from pulse_pipeline.sources.tech4palestine import NAME as TECH4PALESTINE
from pulse_pipeline.utils.logging import CollectionLogger, configure_logging, create_logger
from pulse_shared.config import settings
from pulse_shared.constants import (
    INDEX_FILE,
    MANIFEST_FILE,
    METADATA_FILE,
    RECENT_FILE,
    SINGLE_FILE,
    SOURCES,
)
from pulse_shared.models.run_summary import format_bytes
from pulse_shared.time_utils import parse_date

log = structlog.get_logger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024
TIME_SERIES_DIRS = frozenset({"casualties", "displacement", "prisoners", "demolitions"})

# Upstream index files with the provider's own shape
_PROVIDER_INDEXES = frozenset(
    f"{TECH4PALESTINE}/{d.path}/{INDEX_FILE}" for d in EXPECTED_DATASETS if INDEX_FILE in d.exclude
)


@dataclass
class TreeCheck:
    name: str
    passed: bool
    problems: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "passed": self.passed, "problems": self.problems}


@dataclass
class TreeCheckReport:
    data_dir: Path
    files: int = 0
    largest_file: dict[str, Any] | None = None
    checks: list[TreeCheck] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.checks)

    @property
    def passed(self) -> int:
        return sum(1 for c in self.checks if c.passed)

    @property
    def failed(self) -> int:
        return self.total - self.passed

    @property
    def success_rate(self) -> str:
        if not self.checks:
            return "0.0%"
        return f"{self.passed / self.total * 100:.1f}%"

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "data_dir": str(self.data_dir),
            "files": self.files,
            "largest_file": self.largest_file,
            "summary": {
                "total": self.total,
                "passed": self.passed,
                "failed": self.failed,
                "success_rate": self.success_rate,
            },
            "checks": [c.to_dict() for c in self.checks],
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _relative(path: Path, root: Path) -> str:
    return path.relative_to(root).as_posix()


def _load(path: Path) -> tuple[Any, str | None]:
    try:
        with path.open(encoding="utf-8") as fh:
            return json.load(fh), None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        return None, str(exc)


def is_time_series_file(path: Path, root: Path) -> bool:
    """A partition file below one of the time-series directories."""
    parts = path.relative_to(root).parts[:-1]
    if not TIME_SERIES_DIRS.intersection(parts):
        return False
    return path.name in (SINGLE_FILE, RECENT_FILE) or bool(QUARTER_FILE_PATTERN.match(path.name))


def _series_problem(document: Any) -> str | None:
    if not isinstance(document, dict) or "metadata" not in document:
        return "missing metadata"
    records = document.get("data")
    if not isinstance(records, list):
        return "data is not a list"
    dates = [r.get("date") for r in records if isinstance(r, dict)]
    for previous, current in zip(dates, dates[1:]):
        if previous and current and str(previous) > str(current):
            return f"not sorted by date ({previous} before {current})"
    return None


def _index_problems(document: Any, index_path: Path) -> list[str]:
    if not isinstance(document, dict) or not document.get("dataset"):
        return ["missing dataset"]
    listed = document.get("files", document.get("partitions"))
    if not isinstance(listed, list):
        return ["no files or partitions list"]
    problems = []
    for entry in listed:
        name = entry.get("file") if isinstance(entry, dict) else entry
        if not isinstance(name, str) or not (index_path.parent / name).is_file():
            problems.append(f"listed file missing: {name}")
    return problems


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def _check_manifest(root: Path, baseline: str) -> list[TreeCheck]:
    path = root / MANIFEST_FILE
    exists = path.is_file()
    manifest, error = _load(path) if exists else (None, "missing")
    manifest = manifest if isinstance(manifest, dict) else {}
    return [
        TreeCheck("Manifest file exists", exists),
        TreeCheck("Manifest is valid JSON", error is None, [error] if error and exists else []),
        TreeCheck(
            "Manifest has baseline_date",
            manifest.get("baseline_date") == baseline,
            [] if manifest.get("baseline_date") == baseline
            else [f"expected {baseline}, found {manifest.get('baseline_date')}"],
        ),
        TreeCheck("Manifest has version", bool(manifest.get("version"))),
        TreeCheck("Manifest has sources", bool(manifest.get("sources"))),
    ]


def check_tree(
    data_dir: Path | None = None,
    *,
    baseline: str | None = None,
    max_file_size: int = MAX_FILE_SIZE,
    logger: CollectionLogger | None = None,
) -> TreeCheckReport:
    """
    Run every structural check over the published tree.

    Args:
        data_dir:      Root of the published tree (default settings.data_dir).
        baseline:      Earliest allowed record date (default settings.baseline_date).
        max_file_size: Largest allowed file, in bytes.
        logger:        Receives one success or failure line per check.

    Returns:
        TreeCheckReport; `exit_code` is 1 when any check failed.
    """
    root = Path(data_dir or settings.data_dir)
    baseline = baseline or settings.baseline_date
    start = parse_date(baseline)
    report = TreeCheckReport(data_dir=root)

    files = sorted(p for p in root.rglob("*.json") if p.is_file()) if root.is_dir() else []
    report.files = len(files)
    report.checks.extend(_check_manifest(root, baseline))

    invalid: list[str] = []
    oversized: list[str] = []
    bad_series: list[str] = []
    bad_dates: list[str] = []
    bad_indexes: list[str] = []
    largest: tuple[int, Path] | None = None

    for path in files:
        rel = _relative(path, root)
        size = path.stat().st_size
        if largest is None or size > largest[0]:
            largest = (size, path)
        if size > max_file_size:
            oversized.append(f"{rel} ({format_bytes(size)})")

        document, error = _load(path)
        if error is not None:
            invalid.append(f"{rel}: {error}")
            continue

        if is_time_series_file(path, root):
            problem = _series_problem(document)
            if problem:
                bad_series.append(f"{rel}: {problem}")
            else:
                for i, record in enumerate(document["data"]):
                    value = record.get("date") if isinstance(record, dict) else None
                    if not value:
                        continue
                    parsed = parse_date(value)
                    if parsed is None:
                        bad_dates.append(f"{rel}[{i}]: invalid date {value!r}")
                    elif start is not None and parsed < start:
                        bad_dates.append(f"{rel}[{i}]: {value} before {baseline}")

        if path.name == INDEX_FILE and rel not in _PROVIDER_INDEXES:
            bad_indexes.extend(f"{rel}: {p}" for p in _index_problems(document, path))

    if largest is not None:
        report.largest_file = {
            "path": _relative(largest[1], root),
            "size_bytes": largest[0],
            "size_formatted": format_bytes(largest[0]),
        }

    report.checks.append(
        TreeCheck(
            f"All JSON files are valid ({len(files) - len(invalid)}/{len(files)})", not invalid, invalid
        )
    )
    report.checks.append(
        TreeCheck(
            f"All files under {format_bytes(max_file_size)} ({len(files) - len(oversized)}/{len(files)})",
            not oversized,
            oversized,
        )
    )
    report.checks.append(TreeCheck("Time-series files have correct structure", not bad_series, bad_series))
    report.checks.append(TreeCheck(f"All dates are valid and on or after {baseline}", not bad_dates, bad_dates))

    for source in SOURCES:
        source_dir = root / source
        exists = source_dir.is_dir()
        report.checks.append(TreeCheck(f"{source} directory exists", exists))
        if exists:
            report.checks.append(
                TreeCheck(f"{source} has metadata.json", (source_dir / METADATA_FILE).is_file())
            )

    report.checks.append(TreeCheck("All index files have correct structure", not bad_indexes, bad_indexes))

    if logger is not None:
        for check in report.checks:
            if check.passed:
                logger.success(check.name)
            else:
                logger.failure(check.name, problems=check.problems[:10])
    log.info(
        "tree_check_complete",
        data_dir=str(root),
        files=report.files,
        passed=report.passed,
        failed=report.failed,
    )
    return report


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Check the structure of the published data tree")
    parser.add_argument("--data-dir", type=Path, default=None, help="Published data root")
    args = parser.parse_args(argv)

    configure_logging()
    logger = create_logger(context="TreeCheck")
    report = check_tree(args.data_dir, logger=logger)
    logger.info(
        f"Checks: {report.total}, passed: {report.passed}, failed: {report.failed} "
        f"({report.success_rate})"
    )
    logger.log_summary()
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
