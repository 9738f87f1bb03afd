#!/usr/bin/env python3
"""
scripts/run_pipeline.py — CLI entry point for Palestine Pulse data collection.

A thin wrapper over the `pulse-pipeline` click group (pulse_pipeline.cli):
the arguments are translated and the matching command does the work.

Usage:
    python scripts/run_pipeline.py all
    python scripts/run_pipeline.py hdx
    python scripts/run_pipeline.py worldbank --log-level DEBUG
    python scripts/run_pipeline.py manifest --data-dir /tmp/data
    python scripts/run_pipeline.py validation-report --tree

Available steps:
    hdx                — HDX CKAN priority datasets, by category
    hdx-hapi           — HDX HAPI endpoints (needs HDX_API_KEY)
    goodshepherd       — Good Shepherd Collective feeds
    worldbank          — World Bank indicators for Palestine
    manifest           — per-source metadata and the global manifest
    validation-report  — cross-source validation report
    all                — every default step, in order, with a run summary
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

FETCH_STEPS = ("hdx", "hdx-hapi", "goodshepherd", "worldbank", "all")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="run_pipeline",
        description="Palestine Pulse data collection runner",
    )
    parser.add_argument(
        "step",
        choices=[*FETCH_STEPS, "manifest", "validation-report"],
        help="Step to run",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Published data root (default: DATA_DIR / settings.data_dir)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
    )
    parser.add_argument(
        "--tree",
        action="store_true",
        help="validation-report only: also check the published tree",
    )
    return parser


def cli_args(args: argparse.Namespace) -> list[str]:
    """The `pulse-pipeline` arguments equivalent to a parsed script invocation."""
    argv = ["--log-level", args.log_level]
    if args.data_dir is not None:
        argv += ["--data-dir", str(args.data_dir)]

    if args.step in FETCH_STEPS:
        return [*argv, "run", args.step]
    if args.step == "manifest":
        return [*argv, "manifest"]
    return [*argv, "validate", *(["--tree"] if args.tree else [])]


def run_step(args: argparse.Namespace) -> int:
    """Run the requested step through the click CLI and return its exit code."""
    from pulse_pipeline.cli import main as cli

    code = cli.main(args=cli_args(args), prog_name="pulse-pipeline", standalone_mode=False)
    return code if isinstance(code, int) else 0


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    sys.exit(run_step(args))


if __name__ == "__main__":
    main()
