"""
tests/test_pipelines/test_run_pipeline_script.py — scripts/run_pipeline.py delegates to the click CLI.
"""

from __future__ import annotations

import importlib.util
import json
from pathlib import Path

import pytest

SCRIPT = Path(__file__).parents[2] / "scripts" / "run_pipeline.py"


@pytest.fixture(scope="module")
def script():
    spec = importlib.util.spec_from_file_location("run_pipeline", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestCliArgs:
    @pytest.mark.parametrize(
        "argv,expected",
        [
            (["all"], ["--log-level", "INFO", "run", "all"]),
            (["hdx-hapi", "--log-level", "DEBUG"], ["--log-level", "DEBUG", "run", "hdx-hapi"]),
            (["manifest", "--data-dir", "/tmp/d"], ["--log-level", "INFO", "--data-dir", "/tmp/d", "manifest"]),
            (["validation-report"], ["--log-level", "INFO", "validate"]),
            (["validation-report", "--tree"], ["--log-level", "INFO", "validate", "--tree"]),
        ],
    )
    def test_translation(self, script, argv, expected):
        args = script.build_parser().parse_args(argv)
        assert script.cli_args(args) == expected

    def test_unknown_step_rejected(self, script):
        with pytest.raises(SystemExit):
            script.build_parser().parse_args(["weather"])


class TestRunStep:
    def test_manifest_through_cli(self, script, data_dir, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        args = script.build_parser().parse_args(["manifest", "--data-dir", str(data_dir)])
        assert script.run_step(args) == 0
        assert json.loads((data_dir / "manifest.json").read_text())["version"]

    def test_failing_tree_check_exit_code(self, script, data_dir, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        args = script.build_parser().parse_args(["validation-report", "--tree", "--data-dir", str(data_dir)])
        assert script.run_step(args) == 1
        assert (data_dir / "validation-report.json").exists()
