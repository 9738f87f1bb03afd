"""
freshness_check.py — Lightweight data freshness monitor for Palestine Pulse.

Reads the global manifest.json written by the manifest generator, works out
how long ago each source's files last changed, prints a report table and
writes freshness-report.json next to the manifest. A source is stale when
its last update is older than settings.freshness_max_age_hours, or when the
manifest has no update time for it.

Exit code 1 when any source is stale or the manifest is missing.

Usage:
    python monitoring/freshness_check.py
    python monitoring/freshness_check.py --data-dir public/data --max-age-hours 24
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pulse_shared.config import settings
from pulse_shared.constants import MANIFEST_FILE

REPORT_FILE = "freshness-report.json"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _source_freshness(
    source_id: str,
    entry: dict[str, Any],
    max_age_hours: int,
    now: datetime,
) -> dict[str, Any]:
    """Return freshness info for a single manifest source entry."""
    result: dict[str, Any] = {
        "source": source_id,
        "name": entry.get("name", source_id),
        "records": entry.get("records", 0),
        "last_updated": entry.get("last_updated"),
        "hours_since_update": None,
        "max_age_hours": max_age_hours,
        "is_stale": True,
    }

    raw = entry.get("last_updated")
    try:
        updated = datetime.fromisoformat(raw) if isinstance(raw, str) else None
    except ValueError:
        updated = None
    if updated is None:
        result["error"] = "no update time in manifest"
        return result
    if updated.tzinfo is None:
        updated = updated.replace(tzinfo=timezone.utc)

    hours = (now - updated).total_seconds() / 3600
    result["hours_since_update"] = round(hours, 1)
    result["is_stale"] = hours > max_age_hours
    return result


# ---------------------------------------------------------------------------
# Report generation
# ---------------------------------------------------------------------------


def generate_report(
    manifest: dict[str, Any],
    max_age_hours: int | None = None,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Freshness rows for every source listed in the manifest."""
    max_age = max_age_hours if max_age_hours is not None else settings.freshness_max_age_hours
    now = now or datetime.now(timezone.utc)
    return [
        _source_freshness(source_id, entry, max_age, now)
        for source_id, entry in (manifest.get("sources") or {}).items()
    ]


def print_report_table(report: list[dict[str, Any]]) -> None:
    """Pretty-print the report as an aligned text table."""
    header = (
        f"{'Source':<16} {'Name':<28} {'Records':>9} "
        f"{'Last Updated':>20} {'Hours Ago':>10} {'Max':>5} {'Stale?':>7}"
    )
    sep = "-" * len(header)
    print()
    print(header)
    print(sep)

    for row in report:
        stale_flag = "YES" if row["is_stale"] else ""
        if row.get("error"):
            stale_flag = "ERROR"
        updated = (row["last_updated"] or "-")[:19]
        hours = row["hours_since_update"] if row["hours_since_update"] is not None else "-"
        print(
            f"{row['source']:<16} {row['name']:<28} "
            f"{row['records']:>9} {updated:>20} {str(hours):>10} "
            f"{row['max_age_hours']:>5} {stale_flag:>7}"
        )

    print(sep)
    print()


def write_json_report(report: list[dict[str, Any]], path: Path) -> None:
    """Write the report list to a JSON file."""
    payload = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "stale_sources": [r["source"] for r in report if r["is_stale"]],
        "sources": report,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, default=str) + "\n")
    print(f"Report written to {path}")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Check how fresh the published data is")
    parser.add_argument("--data-dir", type=Path, default=None, help="Published data root")
    parser.add_argument("--max-age-hours", type=int, default=None, help="Staleness threshold")
    args = parser.parse_args(argv)

    data_dir = Path(args.data_dir or settings.data_dir)
    print("=== Palestine Pulse data freshness check ===")

    manifest_path = data_dir / MANIFEST_FILE
    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        print(f"Cannot read {manifest_path}: {exc}")
        return 1

    report = generate_report(manifest, args.max_age_hours)
    print_report_table(report)
    write_json_report(report, data_dir / REPORT_FILE)

    stale = [r for r in report if r["is_stale"]]
    if stale:
        print(f"🚨 {len(stale)} source(s) are stale!")
        return 1
    print("✅ All sources are within the freshness threshold.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
