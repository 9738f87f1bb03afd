"""
utils/logging.py — structlog configuration and the run-level collection logger.

Two layers:

* configure_logging() / get_logger() set up structlog for event-style
  module logs (JSON or console output controlled by settings.log_format).
  Call configure_logging() once at process startup (done by every entry
  point).
* CollectionLogger is the leveled ERROR/WARN/INFO/DEBUG logger a fetcher
  run is narrated through. It writes each call to the console (through
  structlog) and appends one line to the run log file, keeps success/failure
  counters and prints an operation summary at the end. Build one per process
  with create_logger() and hand it (or a child) to each component.

Usage:
    from pulse_pipeline.utils.logging import configure_logging, create_logger

    configure_logging()
    logger = create_logger(context="HDX-Fetcher")
    category_logger = logger.child("conflict")     # context "HDX-Fetcher:conflict"
    category_logger.success("Downloaded acled-data-for-palestine")
    logger.log_summary()
"""

from __future__ import annotations

import json
import logging
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from pulse_shared.config import settings

# ---------------------------------------------------------------------------
# structlog setup
# ---------------------------------------------------------------------------


def configure_logging(
    log_level: str | None = None,
    log_format: str | None = None,
) -> None:
    """
    Configure structlog for the pipeline process.

    Should be called once at startup. Idempotent.

    Args:
        log_level:  Override settings.log_level ("DEBUG", "INFO", …).
        log_format: Override settings.log_format ("json" | "console").
    """
    level = log_level or settings.log_level
    fmt = log_format or settings.log_format

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]

    if fmt == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **initial_values: Any) -> structlog.BoundLogger:
    """
    Return a bound structlog logger with optional initial context values.

    Args:
        name:           Logger name (conventionally the module __name__).
        **initial_values: Key-value pairs merged into every log record.

    Returns:
        structlog.BoundLogger
    """
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# Collection logger
# ---------------------------------------------------------------------------

LEVELS: dict[str, int] = {"ERROR": 0, "WARN": 1, "INFO": 2, "DEBUG": 3}
_LEVEL_ALIASES = {"WARNING": "WARN", "CRITICAL": "ERROR"}


def _resolve_level(level: str | None) -> str:
    name = (level or settings.log_level).upper()
    name = _LEVEL_ALIASES.get(name, name)
    return name if name in LEVELS else "INFO"


@dataclass
class OperationCounters:
    """Shared between a logger and all of its children."""

    success: int = 0
    failed: int = 0
    warnings: int = 0

    @property
    def total(self) -> int:
        return self.success + self.failed


class _FileSink:
    """Append-only log file. Disables itself on the first write failure."""

    def __init__(self, path: Path, enabled: bool) -> None:
        self.path = path
        self.enabled = enabled

    def write(self, text: str) -> None:
        if not self.enabled:
            return
        try:
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(text + "\n")
        except OSError as exc:
            self.enabled = False
            structlog.get_logger(__name__).warning(
                "log_file_unwritable", path=str(self.path), error=str(exc)
            )


@dataclass
class LogSummary:
    context: str
    duration_seconds: float
    total: int
    success: int
    failed: int
    warnings: int

    @property
    def success_rate(self) -> str:
        if self.total == 0:
            return "0%"
        return f"{self.success / self.total * 100:.1f}%"

    def to_dict(self) -> dict[str, Any]:
        return {
            "context": self.context,
            "duration": f"{self.duration_seconds:.2f}s",
            "operations": {
                "total": self.total,
                "success": self.success,
                "failed": self.failed,
                "warnings": self.warnings,
                "successRate": self.success_rate,
            },
        }


class CollectionLogger:
    """
    Leveled dual-sink logger for one data-collection process.

    Never raises on a logging failure: an unwritable log file degrades the
    logger to console-only output.
    """

    def __init__(
        self,
        context: str,
        *,
        level: str,
        sink: _FileSink,
        counters: OperationCounters,
        enable_console: bool,
        started_at: float,
    ) -> None:
        self.context = context
        self.level = level
        self._sink = sink
        self._counters = counters
        self._enable_console = enable_console
        self._started_at = started_at
        self._log = structlog.get_logger("pulse_pipeline.collection").bind(context=context)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def counters(self) -> OperationCounters:
        return self._counters

    @property
    def log_file(self) -> Path:
        return self._sink.path

    @property
    def file_enabled(self) -> bool:
        return self._sink.enabled

    # ------------------------------------------------------------------
    # Leveled calls
    # ------------------------------------------------------------------

    def error(self, message: str, err: BaseException | None = None, **data: Any) -> None:
        self._emit("ERROR", message, err, data)
        self._counters.failed += 1

    def failure(self, message: str, err: BaseException | None = None, **data: Any) -> None:
        self.error(f"✗ {message}", err, **data)

    def warn(self, message: str, err: BaseException | None = None, **data: Any) -> None:
        self._emit("WARN", message, err, data)
        self._counters.warnings += 1

    def info(self, message: str, err: BaseException | None = None, **data: Any) -> None:
        self._emit("INFO", message, err, data)

    def debug(self, message: str, err: BaseException | None = None, **data: Any) -> None:
        self._emit("DEBUG", message, err, data)

    def success(self, message: str, err: BaseException | None = None, **data: Any) -> None:
        self._emit("INFO", f"✓ {message}", err, data)
        self._counters.success += 1

    # ------------------------------------------------------------------
    # Scoping and summaries
    # ------------------------------------------------------------------

    def child(self, context: str) -> CollectionLogger:
        """Return a logger for a nested scope sharing this logger's sinks and counters."""
        return CollectionLogger(
            f"{self.context}:{context}",
            level=self.level,
            sink=self._sink,
            counters=self._counters,
            enable_console=self._enable_console,
            started_at=self._started_at,
        )

    def summary(self) -> LogSummary:
        c = self._counters
        return LogSummary(
            context=self.context,
            duration_seconds=time.monotonic() - self._started_at,
            total=c.total,
            success=c.success,
            failed=c.failed,
            warnings=c.warnings,
        )

    def log_summary(self) -> LogSummary:
        """Write the operation summary banner to both sinks and return it."""
        s = self.summary()
        rule = "=" * 40
        banner = "\n".join(
            [
                rule,
                f"Operation Summary: {s.context}",
                rule,
                f"Duration: {s.duration_seconds:.2f}s",
                f"Total Operations: {s.total}",
                f"Successful: {s.success}",
                f"Failed: {s.failed}",
                f"Warnings: {s.warnings}",
                f"Success Rate: {s.success_rate}",
                f"Completed: {_timestamp()}",
                rule,
            ]
        )
        if self._enable_console:
            self._log.info(
                "operation_summary",
                duration_s=round(s.duration_seconds, 2),
                total=s.total,
                success=s.success,
                failed=s.failed,
                warnings=s.warnings,
                success_rate=s.success_rate,
            )
        self._sink.write(banner)
        return s

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _enabled_for(self, level: str) -> bool:
        return LEVELS[level] <= LEVELS[self.level]

    def _emit(
        self,
        level: str,
        message: str,
        err: BaseException | None,
        data: dict[str, Any],
    ) -> None:
        if not self._enabled_for(level):
            return

        line = f"[{_timestamp()}] [{level}] [{self.context}] {message}"
        if err is not None:
            line += f"\n  Error: {type(err).__name__}: {err}"
        if data:
            line += f"\n  Data: {json.dumps(data, default=str)}"

        if self._enable_console:
            fields = dict(data)
            if err is not None:
                fields["error"] = str(err)
            match level:
                case "ERROR":
                    self._log.error(message, **fields)
                case "WARN":
                    self._log.warning(message, **fields)
                case "DEBUG":
                    self._log.debug(message, **fields)
                case _:
                    self._log.info(message, **fields)

        self._sink.write(line)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def create_logger(
    context: str = "DataCollection",
    log_level: str | None = None,
    log_file: str | Path | None = None,
    enable_console: bool = True,
    enable_file: bool = True,
) -> CollectionLogger:
    """
    Build the root collection logger for a process.

    Args:
        context:        Tag written on every line, e.g. "HDX-Fetcher".
        log_level:      "ERROR" | "WARN" | "INFO" | "DEBUG" (default settings.log_level).
        log_file:       Append-only log path (default settings.log_file).
        enable_console: Emit through structlog.
        enable_file:    Append to log_file.

    Returns:
        CollectionLogger
    """
    sink = _FileSink(Path(log_file or settings.log_file), enabled=enable_file)
    return CollectionLogger(
        context,
        level=_resolve_level(log_level),
        sink=sink,
        counters=OperationCounters(),
        enable_console=enable_console,
        started_at=time.monotonic(),
    )
