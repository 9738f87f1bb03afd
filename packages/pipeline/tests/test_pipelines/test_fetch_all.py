"""
tests/test_pipelines/test_fetch_all.py — Orchestrator steps, run summary and locking.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from filelock import FileLock, Timeout

from pulse_pipeline.loaders.json_store import write_json
from pulse_pipeline.pipelines import fetch_all
from pulse_pipeline.pipelines.fetch_all import (
    LOCK_FILE,
    Step,
    collect_statistics,
    execute_step,
    item_outcomes,
    run_all,
    select_steps,
    validation_overview,
)
from pulse_shared.models.run_summary import StepResult


def _ok(data_dir: Path, logger) -> None:
    logger.info("working")


def _boom(data_dir: Path, logger) -> None:
    raise RuntimeError("provider unreachable")


class TestSelectSteps:
    def test_default_order(self):
        assert [s.name for s in select_steps(None)] == [
            "hdx",
            "goodshepherd",
            "worldbank",
            "manifest",
            "validation-report",
        ]

    def test_subset_keeps_run_order(self):
        assert [s.name for s in select_steps(["manifest", "hdx"])] == ["hdx", "manifest"]

    def test_hapi_runs_only_when_named(self):
        assert "hdx-hapi" not in [s.name for s in select_steps(None)]
        selected = select_steps(["goodshepherd", "hdx-hapi", "hdx"])
        assert [s.name for s in selected] == ["hdx", "hdx-hapi", "goodshepherd"]
        assert selected[1].module == "pulse_pipeline.sources.hdx_hapi"
        assert selected[1].source == "hdx/hapi"

    def test_unknown_step(self):
        with pytest.raises(ValueError, match="weather"):
            select_steps(["weather"])


class TestExecuteStep:
    def test_call_failure_is_recorded(self, data_dir, quiet_logger):
        result = execute_step(Step("x", "Broken step", call=_boom), data_dir, quiet_logger)
        assert not result.success
        assert result.error == "RuntimeError: provider unreachable"
        assert quiet_logger.counters.failed == 1

    def test_module_exit_code_is_recorded(self, data_dir, quiet_logger, monkeypatch):
        calls = []

        def fake_run_module(module, path):
            calls.append((module, path))
            return "Process exited with code 1"

        monkeypatch.setattr(fetch_all, "_run_module", fake_run_module)
        result = execute_step(Step("hdx", "HDX", module="pulse_pipeline.sources.hdx"), data_dir, quiet_logger)
        assert calls == [("pulse_pipeline.sources.hdx", data_dir)]
        assert result.error == "Process exited with code 1"

    def test_missing_module_fails(self, data_dir, quiet_logger):
        result = execute_step(
            Step("ghost", "Missing module", module="pulse_pipeline.no_such_module"), data_dir, quiet_logger
        )
        assert not result.success
        assert result.error.startswith("Process exited with code")

    def test_step_without_action(self, data_dir, quiet_logger):
        assert not execute_step(Step("empty", "Nothing"), data_dir, quiet_logger).success


class TestRunAll:
    def test_failure_does_not_stop_later_steps(self, data_dir, quiet_logger):
        steps = [Step("a", "First", call=_ok), Step("b", "Second", call=_boom), Step("c", "Third", call=_ok)]
        summary = run_all(steps, data_dir=data_dir, logger=quiet_logger)

        assert [s.success for s in summary.steps] == [True, False, True]
        assert summary.state == "completed_with_errors"
        assert summary.exit_code == 1
        assert [e.script for e in summary.errors] == ["b"]

        written = json.loads((data_dir / "data-collection-summary.json").read_text())
        assert written["state"] == "completed_with_errors"
        assert written["scripts"]["total"] == 3
        assert written["scripts"]["failed"] == 1
        assert written["scripts"]["success_rate"] == "66.7%"
        assert written["errors"]["details"][0]["error"] == "RuntimeError: provider unreachable"

    def test_all_steps_succeed(self, data_dir, quiet_logger):
        summary = run_all([Step("a", "Only", call=_ok)], data_dir=data_dir, logger=quiet_logger)
        assert summary.state == "completed"
        assert summary.exit_code == 0
        assert summary.validation is None

    def test_in_process_steps_end_to_end(self, data_dir, quiet_logger):
        write_json(data_dir / "worldbank" / "sp_pop_totl.json", {"indicator": "SP.POP.TOTL", "data": [{}, {}]})
        write_json(data_dir / "worldbank" / "sp_pop_totl_validation.json", {"qualityScore": 1.0, "meetsThreshold": True})

        summary = run_all(select_steps(["manifest", "validation-report"]), data_dir=data_dir, logger=quiet_logger)

        assert summary.exit_code == 0
        assert (data_dir / "manifest.json").exists()
        assert summary.validation["total_datasets_validated"] == 1
        assert summary.validation["pass_rate"] == "100.0%"
        assert summary.sources["worldbank"]["records"] == 2

    def test_lock_held_elsewhere(self, data_dir, quiet_logger):
        with FileLock(str(data_dir / LOCK_FILE)):
            with pytest.raises(Timeout):
                run_all([Step("a", "Only", call=_ok)], data_dir=data_dir, logger=quiet_logger)
        assert not (data_dir / "data-collection-summary.json").exists()

    def test_main_exits_one_when_locked(self, data_dir, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with FileLock(str(data_dir / LOCK_FILE)):
            assert fetch_all.main(["--steps", "manifest", "--data-dir", str(data_dir)]) == 1


class TestStatistics:
    def test_derived_copies_not_counted(self, data_dir):
        hdx = data_dir / "hdx" / "conflict" / "acled"
        write_json(hdx / "data.json", {"data": [{}, {}, {}]})
        write_json(hdx / "recent.json", {"data": [{}]})
        write_json(hdx / "transformed.json", {"data": [{}, {}, {}]})
        write_json(hdx / "raw.json", {"data": {"csv": "a\n1\n2\n3"}})
        write_json(data_dir / "worldbank" / "all-indicators.json", {"data": [{}, {}]})
        write_json(data_dir / "worldbank" / "sp_pop_totl.json", {"data": [{}, {}]})

        stats, sources = collect_statistics(data_dir)
        assert sources["hdx"]["records"] == 3
        assert sources["hdx"]["datasets"] == 1
        assert sources["worldbank"]["records"] == 2
        assert sources["worldbank"]["datasets"] == 2
        assert "goodshepherd" not in sources
        assert stats.total_records == 5
        assert stats.storage_size_bytes == sources["hdx"]["size_bytes"] + sources["worldbank"]["size_bytes"]

    def test_validation_overview_reads_report_summary(self, data_dir):
        assert validation_overview(data_dir) is None
        write_json(
            data_dir / "validation-report.json",
            {"summary": {"totalDatasets": 4, "passedValidation": 3, "failedValidation": 1, "passRate": "75.0%"}},
        )
        overview = validation_overview(data_dir)
        assert overview["passed"] == 3
        assert overview["pass_rate"] == "75.0%"
        assert overview["errors"] == 0


class TestItemOutcomes:
    @staticmethod
    def _step(started_at: datetime) -> StepResult:
        return StepResult(
            name="worldbank",
            description="World Bank data",
            started_at=started_at,
            finished_at=started_at,
            success=True,
        )

    def test_errors_and_empty_items_from_fresh_metadata(self, data_dir):
        step = self._step(datetime.now(timezone.utc))
        write_json(
            data_dir / "worldbank" / "metadata.json",
            {
                "errors": [{"item": "NY.GDP.MKTP.CD", "stage": "fetching", "error": "HTTP 500"}],
                "no_data": ["SH.STA.SUIC.P5"],
            },
        )
        errors, warnings = item_outcomes(step, data_dir / "worldbank")

        assert [(e.script, e.item, e.stage, e.error) for e in errors] == [
            ("worldbank", "NY.GDP.MKTP.CD", "fetching", "HTTP 500")
        ]
        assert [(w.item, w.message) for w in warnings] == [("SH.STA.SUIC.P5", "No data available")]

    def test_metadata_from_previous_run_ignored(self, data_dir):
        path = data_dir / "worldbank" / "metadata.json"
        write_json(path, {"errors": [{"item": "old", "stage": "fetching", "error": "x"}]})
        an_hour_ago = (datetime.now(timezone.utc) - timedelta(hours=1)).timestamp()
        os.utime(path, (an_hour_ago, an_hour_ago))

        assert item_outcomes(self._step(datetime.now(timezone.utc)), data_dir / "worldbank") == ([], [])

    def test_missing_metadata(self, data_dir):
        assert item_outcomes(self._step(datetime.now(timezone.utc)), data_dir / "hdx") == ([], [])

    def test_warnings_written_to_summary(self, data_dir, quiet_logger):
        def fetch(root: Path, logger) -> None:
            write_json(root / "worldbank" / "metadata.json", {"errors": [], "no_data": ["SP.POP.TOTL"]})

        summary = run_all([Step("worldbank", "World Bank", call=fetch, source="worldbank")],
                          data_dir=data_dir, logger=quiet_logger)

        assert summary.state == "completed"
        written = json.loads((data_dir / "data-collection-summary.json").read_text())
        assert written["warnings"]["count"] == 1
        assert written["warnings"]["details"][0]["item"] == "SP.POP.TOTL"
