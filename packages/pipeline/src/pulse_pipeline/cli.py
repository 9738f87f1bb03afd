"""
cli.py — Click CLI entrypoint for the data collection pipeline.

Usage:
    pulse-pipeline run all
    pulse-pipeline run hdx
    pulse-pipeline manifest
    pulse-pipeline validate
    pulse-pipeline validate --tree
    pulse-pipeline status
"""

from __future__ import annotations

from pathlib import Path

import click
import structlog

from pulse_shared.config import settings
from pulse_shared.constants import RUN_SUMMARY_FILE

log = structlog.get_logger(__name__)


@click.group()
@click.option(
    "--log-level",
    default=settings.log_level,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Log level",
)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Published data root (default: settings.data_dir)",
)
@click.pass_context
def main(ctx: click.Context, log_level: str, data_dir: Path | None) -> None:
    """Palestine Pulse data collection pipeline."""
    from pulse_pipeline.utils.logging import configure_logging

    configure_logging(log_level=log_level)
    ctx.obj = {"log_level": log_level, "data_dir": data_dir or settings.data_dir}


@main.command()
@click.argument(
    "step",
    type=click.Choice(
        ["hdx", "hdx-hapi", "goodshepherd", "worldbank", "manifest", "validation-report", "all"],
        case_sensitive=False,
    ),
)
@click.pass_context
def run(ctx: click.Context, step: str) -> None:
    """Run one collection step, or 'all' to run every step in order."""
    from filelock import Timeout

    from pulse_pipeline.pipelines.fetch_all import run_all, select_steps
    from pulse_pipeline.utils.logging import create_logger

    log.info("pipeline_start", step=step)
    logger = create_logger(context="FetchAllData", log_level=ctx.obj["log_level"])
    try:
        summary = run_all(
            select_steps(None if step == "all" else [step]),
            data_dir=ctx.obj["data_dir"],
            logger=logger,
        )
    except Timeout:
        click.echo("Another data collection run is in progress.", err=True)
        ctx.exit(1)
    logger.log_summary()
    log.info("pipeline_complete", step=step, state=summary.state)
    ctx.exit(summary.exit_code)


@main.command()
@click.pass_context
def manifest(ctx: click.Context) -> None:
    """Regenerate per-source metadata and the global manifest."""
    from pulse_pipeline.pipelines.manifest import generate_all_manifests
    from pulse_pipeline.utils.logging import create_logger

    logger = create_logger(context="Manifest", log_level=ctx.obj["log_level"])
    result = generate_all_manifests(ctx.obj["data_dir"], logger=logger)
    click.echo(
        f"  {result.summary.total_sources} sources, {result.summary.total_datasets} datasets, "
        f"{result.summary.total_records} records"
    )


@main.command()
@click.option("--tree", is_flag=True, help="Also check the structure of the published tree.")
@click.pass_context
def validate(ctx: click.Context, tree: bool) -> None:
    """Regenerate the cross-source validation report."""
    from pulse_pipeline.utils.logging import create_logger
    from pulse_pipeline.validation.report import generate_validation_report

    logger = create_logger(context="ValidationReport", log_level=ctx.obj["log_level"])
    report = generate_validation_report(ctx.obj["data_dir"], logger=logger)
    summary = report["summary"]
    click.echo(
        f"  {summary['totalDatasets']} datasets, {summary['passedValidation']} passed "
        f"({summary['passRate']}), {summary['failedValidation']} failed"
    )
    if not tree:
        return

    from pulse_pipeline.validation.tree_check import check_tree

    checks = check_tree(ctx.obj["data_dir"], logger=logger.child("Tree"))
    for check in checks.checks:
        click.echo(f"  {'✓' if check.passed else '✗'} {check.name}")
        for problem in check.problems[:5]:
            click.echo(f"      {problem}")
    click.echo(f"  Tree checks: {checks.passed}/{checks.total} passed ({checks.success_rate})")
    ctx.exit(checks.exit_code)


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the outcome of the last orchestrator run."""
    from pulse_pipeline.loaders.json_store import read_json_or_none

    summary = read_json_or_none(Path(ctx.obj["data_dir"]) / RUN_SUMMARY_FILE)
    if not isinstance(summary, dict):
        click.echo("  No data collection runs found.")
        return

    execution = summary.get("execution", {})
    click.echo(f"Last run: {execution.get('start_time', '?')[:19]}  ({summary.get('state', '?')})")
    for step in summary.get("scripts", {}).get("details", []):
        status_mark = "✓" if step.get("success") else "✗"
        line = f"  {status_mark} {step.get('name', '?'):20s} {step.get('duration_seconds', '?')}s"
        if step.get("error"):
            line += f"  {step['error']}"
        click.echo(line)

    collection = summary.get("data_collection", {})
    click.echo(
        f"  {collection.get('total_datasets', 0)} datasets, "
        f"{collection.get('total_records', 0)} records, "
        f"{collection.get('storage_size_formatted', '0 Bytes')}"
    )


if __name__ == "__main__":
    main()
