"""
validation/report.py — Cross-source validation report.

Collects the validation results the fetchers wrote next to their data and
aggregates them into {data_dir}/validation-report.json:

  summary          totals, pass rate and average scores over every dataset
  bySource         the same numbers per source
  qualityIssues    datasets with low quality, more than 10 failing records,
                   low completeness or a failed verdict
  commonErrors     top 20 (field, message) error groups by affected records
  commonWarnings   same for warnings
  detailedResults  every collected validation result, per source

Result files are `validation.json` anywhere under a source directory and
World Bank's flat `{indicator}_validation.json` files.

Usage:
    python -m pulse_pipeline.validation.report

    from pulse_pipeline.validation.report import generate_validation_report
    report = generate_validation_report()
    print(report["summary"]["passRate"])
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import polars as pl
import structlog

from pulse_pipeline.loaders.json_store import read_json, write_json
from pulse_pipeline.utils.logging import CollectionLogger, configure_logging, create_logger
from pulse_shared.config import settings
from pulse_shared.constants import SOURCES, VALIDATION_FILE, VALIDATION_REPORT_FILE

log = structlog.get_logger(__name__)

LOW_QUALITY = 0.85
HIGH_ERROR_COUNT = 10
LOW_COMPLETENESS = 0.95
TOP_ISSUES = 20

_ISSUE_SCHEMA = {
    "source": pl.Utf8,
    "dataset": pl.Utf8,
    "field": pl.Utf8,
    "message": pl.Utf8,
    "severity": pl.Utf8,
    "affected": pl.Int64,
}


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


def _is_result_file(path: Path) -> bool:
    return path.name == VALIDATION_FILE or path.name.endswith("_validation.json")


def collect_validation_results(data_dir: Path) -> dict[str, list[dict[str, Any]]]:
    """
    Every readable validation result, keyed by source id.

    Each entry is the stored result plus `file`, its path relative to the
    source directory. Unreadable files are skipped with a warning.
    """
    results: dict[str, list[dict[str, Any]]] = {}
    for source_id in SOURCES:
        root = data_dir / source_id
        entries: list[dict[str, Any]] = []
        if root.is_dir():
            for path in sorted(p for p in root.rglob("*.json") if p.is_file() and _is_result_file(p)):
                try:
                    data = read_json(path)
                except (OSError, json.JSONDecodeError) as exc:
                    log.warning("validation_result_unreadable", path=str(path), error=str(exc))
                    continue
                if isinstance(data, dict):
                    entries.append({"file": path.relative_to(root).as_posix(), **data})
        results[source_id] = entries
    return results


def _error_count(result: dict[str, Any]) -> int:
    return int(result.get("errorCount") or len(result.get("errors") or []))


def _error_records(result: dict[str, Any]) -> int:
    """Failing records summed over the error groups; one per group when unstated."""
    stored = result.get("errorRecordCount")
    if isinstance(stored, int):
        return stored
    return sum(
        int(issue.get("affectedRecords") or 1)
        for issue in result.get("errors") or []
        if isinstance(issue, dict)
    )


def _warning_count(result: dict[str, Any]) -> int:
    return int(result.get("warningCount") or len(result.get("warnings") or []))


def _score(result: dict[str, Any], key: str) -> float:
    value = result.get(key)
    return float(value) if isinstance(value, (int, float)) else 0.0


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def summarize(results: dict[str, list[dict[str, Any]]]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Overall summary and the per-source breakdown."""
    by_source: dict[str, Any] = {}
    flat: list[dict[str, Any]] = []
    for source_id, entries in results.items():
        passed = sum(1 for r in entries if r.get("meetsThreshold"))
        by_source[source_id] = {
            "datasets": len(entries),
            "passed": passed,
            "failed": len(entries) - passed,
            "averageQualityScore": (
                sum(_score(r, "qualityScore") for r in entries) / len(entries) if entries else 0
            ),
            "totalErrors": sum(_error_count(r) for r in entries),
            "totalWarnings": sum(_warning_count(r) for r in entries),
        }
        flat.extend(entries)

    total = len(flat)
    passed = sum(s["passed"] for s in by_source.values())

    def average(key: str) -> float:
        return sum(_score(r, key) for r in flat) / total if total else 0

    summary = {
        "totalDatasets": total,
        "passedValidation": passed,
        "failedValidation": total - passed,
        "passRate": f"{passed / total * 100:.1f}%" if total else "0%",
        "averageQualityScore": average("qualityScore"),
        "averageCompleteness": average("completeness"),
        "averageConsistency": average("consistency"),
        "averageAccuracy": average("accuracy"),
        "totalErrors": sum(s["totalErrors"] for s in by_source.values()),
        "totalWarnings": sum(s["totalWarnings"] for s in by_source.values()),
    }
    return summary, by_source


def _issue_rows(results: dict[str, list[dict[str, Any]]], kind: str) -> list[dict[str, Any]]:
    rows = []
    for source_id, entries in results.items():
        for result in entries:
            for issue in result.get(kind) or []:
                if not isinstance(issue, dict):
                    continue
                rows.append(
                    {
                        "source": source_id,
                        "dataset": result["file"],
                        "field": issue.get("field") or "unknown",
                        "message": issue.get("message") or "unknown",
                        "severity": issue.get("severity"),
                        "affected": int(issue.get("affectedRecords") or 1),
                    }
                )
    return rows


def common_issues(results: dict[str, list[dict[str, Any]]], kind: str) -> list[dict[str, Any]]:
    """
    Errors or warnings (kind = "errors" | "warnings") grouped by field and
    message, most affected records first, at most TOP_ISSUES groups.
    """
    rows = _issue_rows(results, kind)
    if not rows:
        return []
    df = pl.DataFrame(rows, schema=_ISSUE_SCHEMA)
    grouped = (
        df.group_by(["field", "message"], maintain_order=True)
        .agg(
            pl.col("severity").first(),
            pl.col("affected").sum().alias("affectedRecords"),
            pl.col("source").unique(maintain_order=True).alias("sources"),
            pl.len().alias("datasetCount"),
        )
        .sort(["affectedRecords", "field", "message"], descending=[True, False, False])
        .head(TOP_ISSUES)
    )
    return grouped.to_dicts()


def quality_issues(results: dict[str, list[dict[str, Any]]]) -> dict[str, list[dict[str, Any]]]:
    issues: dict[str, list[dict[str, Any]]] = {
        "lowQuality": [],
        "highErrorCount": [],
        "lowCompleteness": [],
        "failedValidation": [],
    }
    for source_id, entries in results.items():
        for result in entries:
            dataset = {
                "source": source_id,
                "dataset": result["file"],
                "datasetType": result.get("datasetType"),
                "qualityScore": _score(result, "qualityScore"),
                "completeness": _score(result, "completeness"),
                "errorCount": _error_count(result),
                "errorRecordCount": _error_records(result),
                "warningCount": _warning_count(result),
            }
            if dataset["qualityScore"] < LOW_QUALITY:
                issues["lowQuality"].append(dataset)
            if dataset["errorRecordCount"] > HIGH_ERROR_COUNT:
                issues["highErrorCount"].append(dataset)
            if dataset["completeness"] < LOW_COMPLETENESS:
                issues["lowCompleteness"].append(dataset)
            if not result.get("meetsThreshold"):
                issues["failedValidation"].append(dataset)

    issues["lowQuality"].sort(key=lambda d: d["qualityScore"])
    issues["highErrorCount"].sort(key=lambda d: d["errorRecordCount"], reverse=True)
    issues["lowCompleteness"].sort(key=lambda d: d["completeness"])
    return issues


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def generate_validation_report(
    data_dir: Path | None = None,
    output_path: Path | None = None,
    *,
    logger: CollectionLogger | None = None,
) -> dict[str, Any]:
    """
    Build and write validation-report.json.

    Args:
        data_dir:    Root of the published tree (default settings.data_dir).
        output_path: Report location (default {data_dir}/validation-report.json).
        logger:      Collection logger for progress lines.

    Returns:
        The report as written.

    Raises:
        StorageError: the report could not be written.
    """
    data_dir = Path(data_dir or settings.data_dir)
    output_path = Path(output_path or data_dir / VALIDATION_REPORT_FILE)

    results = collect_validation_results(data_dir)
    summary, by_source = summarize(results)
    issues = quality_issues(results)

    report = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "summary": summary,
        "bySource": by_source,
        "qualityIssues": {
            "lowQualityDatasets": len(issues["lowQuality"]),
            "highErrorCountDatasets": len(issues["highErrorCount"]),
            "lowCompletenessDatasets": len(issues["lowCompleteness"]),
            "failedValidationDatasets": len(issues["failedValidation"]),
            "details": issues,
        },
        "commonErrors": common_issues(results, "errors"),
        "commonWarnings": common_issues(results, "warnings"),
        "detailedResults": results,
    }
    write_json(output_path, report)

    if logger is not None:
        logger.success(f"Validation report saved to {output_path}")
        logger.info(
            f"Datasets: {summary['totalDatasets']}, passed: {summary['passedValidation']} "
            f"({summary['passRate']}), failed: {summary['failedValidation']}"
        )
        logger.info(f"Average quality score: {summary['averageQualityScore'] * 100:.1f}%")
        if issues["failedValidation"]:
            logger.warn(f"Datasets with quality issues: {len(issues['failedValidation'])}")
    else:
        log.info(
            "validation_report_complete",
            path=str(output_path),
            datasets=summary["totalDatasets"],
            passed=summary["passedValidation"],
            failed=summary["failedValidation"],
        )
    return report


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate the cross-source validation report")
    parser.add_argument("--data-dir", type=Path, default=None, help="Published data root")
    parser.add_argument("--output", type=Path, default=None, help="Report path")
    args = parser.parse_args()

    configure_logging()
    logger = create_logger(context="ValidationReport")
    generate_validation_report(args.data_dir, args.output, logger=logger)
    logger.log_summary()
    return 0


if __name__ == "__main__":
    sys.exit(main())
