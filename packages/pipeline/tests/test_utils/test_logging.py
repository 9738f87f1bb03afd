"""
tests/test_utils/test_logging.py — CollectionLogger levels, file sink and summaries.
"""

from __future__ import annotations

from pathlib import Path

from pulse_pipeline.utils.logging import create_logger


class TestCollectionLoggerFile:
    def test_lines_carry_level_and_context(self, tmp_path: Path):
        log_file = tmp_path / "collection.log"
        logger = create_logger(context="HDX-Fetcher", log_file=log_file, enable_console=False)
        logger.info("Starting")
        logger.warn("Slow response", url="https://x")

        lines = log_file.read_text().splitlines()
        assert "[INFO] [HDX-Fetcher] Starting" in lines[0]
        assert "[WARN] [HDX-Fetcher] Slow response" in lines[1]
        assert '"url": "https://x"' in lines[2]

    def test_error_includes_exception(self, tmp_path: Path):
        log_file = tmp_path / "collection.log"
        logger = create_logger(log_file=log_file, enable_console=False)
        logger.error("Download failed", ValueError("bad payload"))
        assert "Error: ValueError: bad payload" in log_file.read_text()

    def test_level_filters_lower_priority(self, tmp_path: Path):
        log_file = tmp_path / "collection.log"
        logger = create_logger(log_level="WARN", log_file=log_file, enable_console=False)
        logger.info("hidden")
        logger.debug("hidden too")
        logger.warn("shown")
        text = log_file.read_text()
        assert "hidden" not in text
        assert "shown" in text

    def test_warning_alias_accepted(self, tmp_path: Path):
        logger = create_logger(log_level="WARNING", log_file=tmp_path / "x.log", enable_console=False)
        assert logger.level == "WARN"

    def test_unwritable_file_degrades_silently(self, tmp_path: Path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        logger = create_logger(log_file=blocker / "nested.log", enable_console=False)
        logger.info("still fine")
        assert logger.file_enabled is False


class TestCollectionLoggerCounters:
    def test_child_shares_counters_and_extends_context(self, quiet_logger):
        child = quiet_logger.child("conflict")
        child.success("saved")
        quiet_logger.failure("broken")
        child.warn("odd")

        assert child.context == "Test:conflict"
        summary = quiet_logger.summary()
        assert summary.success == 1
        assert summary.failed == 1
        assert summary.warnings == 1
        assert summary.total == 2
        assert summary.success_rate == "50.0%"

    def test_summary_banner_written_to_file(self, tmp_path: Path):
        log_file = tmp_path / "collection.log"
        logger = create_logger(context="WorldBank-Fetcher", log_file=log_file, enable_console=False)
        logger.success("one")
        result = logger.log_summary()

        text = log_file.read_text()
        assert "Operation Summary: WorldBank-Fetcher" in text
        assert "Success Rate: 100.0%" in text
        assert result.to_dict()["operations"]["total"] == 1

    def test_empty_summary_rate(self, quiet_logger):
        assert quiet_logger.summary().success_rate == "0%"
