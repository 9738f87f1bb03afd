"""
tests/test_pipelines/test_cli.py — Click commands over a temporary data tree.
"""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from pulse_pipeline.cli import main


def _invoke(data_dir: Path, *args: str):
    runner = CliRunner()
    with runner.isolated_filesystem():
        return runner.invoke(main, ["--data-dir", str(data_dir), *args])


class TestCli:
    def test_status_without_runs(self, data_dir):
        result = _invoke(data_dir, "status")
        assert result.exit_code == 0
        assert "No data collection runs found." in result.output

    def test_manifest_command(self, data_dir):
        result = _invoke(data_dir, "manifest")
        assert result.exit_code == 0
        assert "4 sources, 0 datasets, 0 records" in result.output
        assert (data_dir / "manifest.json").exists()

    def test_validate_command(self, data_dir):
        result = _invoke(data_dir, "validate")
        assert result.exit_code == 0
        assert "0 datasets, 0 passed (0%)" in result.output

    def test_run_then_status(self, data_dir):
        run = _invoke(data_dir, "run", "manifest")
        assert run.exit_code == 0
        assert json.loads((data_dir / "data-collection-summary.json").read_text())["state"] == "completed"

        status = _invoke(data_dir, "status")
        assert "(completed)" in status.output
        assert "manifest" in status.output

    def test_unknown_step_rejected(self, data_dir):
        assert _invoke(data_dir, "run", "weather").exit_code == 2

    def test_validate_tree_passes_after_manifest(self, data_dir):
        for source in ("hdx", "goodshepherd", "worldbank", "tech4palestine"):
            (data_dir / source).mkdir()
        assert _invoke(data_dir, "manifest").exit_code == 0

        result = _invoke(data_dir, "validate", "--tree")
        assert result.exit_code == 0
        assert "✓ Manifest has baseline_date" in result.output
        assert "passed (100.0%)" in result.output

    def test_validate_tree_fails_without_manifest(self, data_dir):
        result = _invoke(data_dir, "validate", "--tree")
        assert result.exit_code == 1
        assert "✗ Manifest file exists" in result.output
