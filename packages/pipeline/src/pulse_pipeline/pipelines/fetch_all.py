"""
pipelines/fetch_all.py — Orchestrator: every fetcher, then manifests and reports.

Steps run sequentially; a failed step is recorded and the next one still runs.

  1. hdx                python -m pulse_pipeline.sources.hdx           (child process)
  2. goodshepherd       python -m pulse_pipeline.sources.goodshepherd  (child process)
  3. worldbank          python -m pulse_pipeline.sources.worldbank     (child process)
  4. manifest           generate_all_manifests()                        (in process)
  5. validation-report  generate_validation_report()                    (in process)

The hdx-hapi step (python -m pulse_pipeline.sources.hdx_hapi) runs after hdx
only when named in --steps.

Fetchers run as child processes so a crash in one provider's code cannot take
down the run; they inherit the environment with DATA_DIR pointing at the same
tree. A file lock on {data_dir}/.collection.lock keeps two runs from writing
the tree at once.

After each fetcher step the items it recorded as failed or empty in its
metadata.json are added to the run's errors and warnings; the manifest step
rewrites those files later. After the steps the tree is scanned for dataset,
record and byte totals and data-collection-summary.json is written. The state
is completed_with_errors when any step or item failed; the process exits 1
only if a step failed.

Usage:
    python -m pulse_pipeline.pipelines.fetch_all
    python -m pulse_pipeline.pipelines.fetch_all --steps hdx manifest

    from pulse_pipeline.pipelines.fetch_all import run_all
    summary = run_all()
    print(summary.state, summary.exit_code)
"""

from __future__ import annotations

import argparse
import json
import os
import subprocess
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import structlog
from filelock import FileLock, Timeout

from pulse_pipeline.loaders.json_store import directory_size, read_json, read_json_or_none, write_json
from pulse_pipeline.pipelines.manifest import generate_all_manifests
from pulse_pipeline.transforms.payloads import (
    ArrayPayload,
    NestedDataPayload,
    PayloadError,
    parse_payload,
)
from pulse_pipeline.utils.logging import CollectionLogger, configure_logging, create_logger
from pulse_pipeline.validation.report import generate_validation_report
from pulse_shared.config import settings
from pulse_shared.constants import (
    HAPI_DIR,
    METADATA_FILE,
    RECENT_FILE,
    RUN_SUMMARY_FILE,
    SOURCES,
    VALIDATION_REPORT_FILE,
    WORLDBANK_ALL_FILE,
)
from pulse_shared.models.run_summary import (
    DataCollectionStats,
    RunError,
    RunSummary,
    RunWarning,
    StepResult,
    format_bytes,
)

log = structlog.get_logger(__name__)

LOCK_FILE = ".collection.lock"

# Copies of records published elsewhere in the same tree
_DERIVED_COPIES = frozenset({RECENT_FILE, "raw.json", "transformed.json", WORLDBANK_ALL_FILE})

# Coarse filesystem timestamps can trail the step start slightly
_MTIME_SLACK = timedelta(seconds=2)


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Step:
    """
    One orchestrator step: a child-process module or an in-process call.

    Exactly one of `module` and `call` is set. `call` receives the data
    directory and the step's logger. `source` names the directory whose
    metadata.json the fetcher writes its per-item outcomes to.
    """

    name: str
    description: str
    module: str | None = None
    call: Callable[[Path, CollectionLogger], Any] | None = None
    source: str | None = None


def _manifest_step(data_dir: Path, logger: CollectionLogger) -> None:
    generate_all_manifests(data_dir, logger=logger)


def _validation_report_step(data_dir: Path, logger: CollectionLogger) -> None:
    generate_validation_report(data_dir, logger=logger)


DEFAULT_STEPS: tuple[Step, ...] = (
    Step("hdx", "HDX CKAN data", module="pulse_pipeline.sources.hdx", source="hdx"),
    Step(
        "goodshepherd",
        "Good Shepherd Collective data",
        module="pulse_pipeline.sources.goodshepherd",
        source="goodshepherd",
    ),
    Step("worldbank", "World Bank data", module="pulse_pipeline.sources.worldbank", source="worldbank"),
    Step("manifest", "Global and per-source manifests", call=_manifest_step),
    Step("validation-report", "Cross-source validation report", call=_validation_report_step),
)

# Run only when named; HAPI needs HDX_API_KEY
OPTIONAL_STEPS: tuple[Step, ...] = (
    Step(
        "hdx-hapi",
        "HDX HAPI data",
        module="pulse_pipeline.sources.hdx_hapi",
        source=f"hdx/{HAPI_DIR}",
    ),
)

# Every step in run order; optional steps run right after HDX CKAN
ALL_STEPS: tuple[Step, ...] = (DEFAULT_STEPS[0], *OPTIONAL_STEPS, *DEFAULT_STEPS[1:])

ALL_STEP_NAMES: tuple[str, ...] = tuple(s.name for s in ALL_STEPS)


def select_steps(names: Sequence[str] | None) -> list[Step]:
    """Default steps, or the named steps (optional ones included) in run order."""
    if not names:
        return list(DEFAULT_STEPS)
    unknown = set(names) - set(ALL_STEP_NAMES)
    if unknown:
        raise ValueError(f"Unknown steps: {', '.join(sorted(unknown))}")
    return [s for s in ALL_STEPS if s.name in names]


def _run_module(module: str, data_dir: Path) -> str | None:
    """Run `python -m module`; returns an error message, or None on exit code 0."""
    env = {**os.environ, "DATA_DIR": str(data_dir)}
    try:
        completed = subprocess.run([sys.executable, "-m", module], env=env, check=False)
    except OSError as exc:
        return str(exc)
    if completed.returncode != 0:
        return f"Process exited with code {completed.returncode}"
    return None


def execute_step(step: Step, data_dir: Path, logger: CollectionLogger) -> StepResult:
    """Run one step and record its outcome. Never raises for a step failure."""
    step_logger = logger.child(step.name)
    step_logger.info(f"Starting {step.description}...")
    started_at = datetime.now(timezone.utc)

    error: str | None = None
    if step.module is not None:
        error = _run_module(step.module, data_dir)
    elif step.call is not None:
        try:
            step.call(data_dir, step_logger)
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
    else:
        error = "Step has neither a module nor a call"

    result = StepResult(
        name=step.name,
        description=step.description,
        started_at=started_at,
        finished_at=datetime.now(timezone.utc),
        success=error is None,
        error=error,
    )
    if result.success:
        step_logger.success(f"{step.description} completed in {result.duration_seconds:.2f}s")
    else:
        step_logger.error(f"{step.description} failed: {error}")
    return result


# ---------------------------------------------------------------------------
# Fetcher item outcomes
# ---------------------------------------------------------------------------


def item_outcomes(step: StepResult, source_dir: Path) -> tuple[list[RunError], list[RunWarning]]:
    """
    Failed and empty items a fetcher recorded in {source_dir}/metadata.json.

    Only a metadata file written during the step counts; an older one
    belongs to a previous run. Read before the manifest step rewrites it.
    """
    path = source_dir / METADATA_FILE
    try:
        written = datetime.fromtimestamp(path.stat().st_mtime, timezone.utc)
    except OSError:
        return [], []
    if written < step.started_at - _MTIME_SLACK:
        return [], []
    metadata = read_json_or_none(path)
    if not isinstance(metadata, dict):
        return [], []

    errors = [
        RunError(
            script=step.name,
            item=str(entry.get("item")),
            stage=entry.get("stage"),
            error=str(entry.get("error") or "unknown error"),
            timestamp=written,
        )
        for entry in metadata.get("errors") or []
        if isinstance(entry, dict)
    ]
    warnings = [
        RunWarning(script=step.name, item=str(name), message="No data available", timestamp=written)
        for name in metadata.get("no_data") or []
    ]
    return errors, warnings


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def _file_records(path: Path) -> int:
    try:
        payload = parse_payload(read_json(path))
    except (OSError, json.JSONDecodeError, PayloadError):
        return 0
    match payload:
        case ArrayPayload(records=records) | NestedDataPayload(records=records):
            return len(records)
    return 0


def source_statistics(root: Path) -> dict[str, Any] | None:
    """
    Dataset, record and byte totals for one source directory.

    Datasets are the top-level subdirectories and JSON files; records are
    counted over every JSON file holding a record list, skipping derived
    copies (recent.json, raw.json, ...). None when the directory is missing.
    """
    if not root.is_dir():
        return None
    datasets = sum(1 for p in root.iterdir() if p.is_dir() or p.suffix == ".json")
    records = sum(
        _file_records(p)
        for p in root.rglob("*.json")
        if p.is_file() and p.name not in _DERIVED_COPIES
    )
    size = directory_size(root)
    return {
        "datasets": datasets,
        "records": records,
        "size_bytes": size,
        "size_formatted": format_bytes(size),
    }


def collect_statistics(data_dir: Path) -> tuple[DataCollectionStats, dict[str, Any]]:
    stats = DataCollectionStats()
    sources: dict[str, Any] = {}
    for source_id, name in SOURCES.items():
        source_stats = source_statistics(data_dir / source_id)
        if source_stats is None:
            continue
        sources[source_id] = {"name": name, **source_stats}
        stats.total_datasets += source_stats["datasets"]
        stats.total_records += source_stats["records"]
        stats.storage_size_bytes += source_stats["size_bytes"]
    return stats, sources


def validation_overview(data_dir: Path) -> dict[str, Any] | None:
    """Headline numbers from validation-report.json, or None if there is none."""
    report = read_json_or_none(data_dir / VALIDATION_REPORT_FILE)
    if not isinstance(report, dict) or not isinstance(report.get("summary"), dict):
        return None
    summary = report["summary"]
    return {
        "total_datasets_validated": summary.get("totalDatasets", 0),
        "passed": summary.get("passedValidation", 0),
        "failed": summary.get("failedValidation", 0),
        "pass_rate": summary.get("passRate", "0%"),
        "errors": summary.get("totalErrors", 0),
        "warnings": summary.get("totalWarnings", 0),
        "average_quality_score": summary.get("averageQualityScore", 0),
    }


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


def run_all(
    steps: Sequence[Step] | None = None,
    *,
    data_dir: Path | None = None,
    logger: CollectionLogger | None = None,
) -> RunSummary:
    """
    Run every step in order and write data-collection-summary.json.

    Args:
        steps:    Steps to run (default DEFAULT_STEPS).
        data_dir: Root of the published tree (default settings.data_dir).
        logger:   Collection logger (default: a new "FetchAllData" logger).

    Returns:
        The RunSummary that was written; `exit_code` is 1 if any step failed.

    Raises:
        filelock.Timeout: another run holds the collection lock.
        StorageError:     the run summary could not be written.
    """
    data_dir = Path(data_dir or settings.data_dir)
    logger = logger or create_logger(context="FetchAllData")
    steps = list(DEFAULT_STEPS if steps is None else steps)

    data_dir.mkdir(parents=True, exist_ok=True)
    lock = FileLock(str(data_dir / LOCK_FILE), timeout=0)
    with lock:
        summary = RunSummary(started_at=datetime.now(timezone.utc))
        logger.info(f"Data directory: {data_dir}")
        logger.info(f"Baseline date: {settings.baseline_date}")

        summary.state = "running"
        for index, step in enumerate(steps, start=1):
            logger.info(f"Step {index}/{len(steps)}: {step.name}")
            result = execute_step(step, data_dir, logger)
            summary.steps.append(result)
            if not result.success:
                summary.errors.append(
                    RunError(script=step.name, error=result.error or "", timestamp=result.finished_at)
                )
            if step.source is not None:
                errors, warnings = item_outcomes(result, data_dir / step.source)
                summary.errors.extend(errors)
                summary.warnings.extend(warnings)
                for error in errors:
                    logger.warn(f"{step.name}: {error.item} failed at {error.stage}: {error.error}")

        logger.info("Calculating statistics...")
        summary.data_collection, summary.sources = collect_statistics(data_dir)
        summary.validation = validation_overview(data_dir)
        summary.state = "completed_with_errors" if summary.errors else "completed"
        summary.finished_at = datetime.now(timezone.utc)
        write_json(data_dir / RUN_SUMMARY_FILE, summary.to_json_dict())

    stats = summary.data_collection
    logger.info(
        f"Total: {stats.total_datasets} datasets, {stats.total_records} records, "
        f"{stats.storage_size_formatted}"
    )
    successful = len(summary.steps) - len(summary.failed_steps)
    logger.info(f"Steps: {successful}/{len(summary.steps)} successful")
    if summary.failed_steps:
        logger.warn(f"Failed steps: {', '.join(s.name for s in summary.failed_steps)}")
    log.info(
        "run_complete",
        state=summary.state,
        steps=len(summary.steps),
        failed=len(summary.failed_steps),
        records=stats.total_records,
    )
    return summary


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run every Palestine Pulse data collection step")
    parser.add_argument(
        "--steps",
        nargs="+",
        choices=ALL_STEP_NAMES,
        default=None,
        help="Steps to run (default: all but hdx-hapi, in order)",
    )
    parser.add_argument("--data-dir", type=Path, default=None, help="Published data root")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
    )
    args = parser.parse_args(argv)

    configure_logging(log_level=args.log_level)
    logger = create_logger(context="FetchAllData", log_level=args.log_level)
    try:
        summary = run_all(select_steps(args.steps), data_dir=args.data_dir, logger=logger)
    except Timeout:
        logger.error("Another data collection run holds the lock; exiting")
        return 1
    logger.log_summary()
    return summary.exit_code


if __name__ == "__main__":
    sys.exit(main())
