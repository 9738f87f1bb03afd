"""
sources/base.py — Abstract base class for all data source fetchers.

A fetcher walks a fixed list of configured items (HDX datasets, Good
Shepherd feeds, World Bank indicators). Each item moves through

    pending -> fetching -> transforming -> validating -> partitioning -> saved

or ends in `failed` at whatever stage raised. An item's failure is logged
with its name and stage and recorded; the remaining items still run. A
StorageError is the exception: it aborts the whole fetcher.

Each concrete source must implement:
  items()          — the configured items, in processing order
  item_name()      — display name of one item
  process_item()   — fetch → transform → validate → save one item
  write_metadata() — the source-level catalog/metadata file

The run() method drives the item loop, timing and logging. Callers use run()
rather than the individual methods.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

import httpx
import structlog

from pulse_pipeline.loaders.json_store import StorageError
from pulse_pipeline.utils.logging import CollectionLogger, configure_logging, create_logger
from pulse_pipeline.utils.retry import (
    RateLimiter,
    RetryEvent,
    RetryPolicy,
    fetch_json_with_retry,
    fetch_text_with_retry,
    fetch_with_retry,
)
from pulse_shared.config import settings

log = structlog.get_logger(__name__)

ItemStage = Literal[
    "pending", "fetching", "transforming", "validating", "partitioning", "saved", "failed"
]
ItemStatus = Literal["saved", "failed", "no_data"]


@dataclass
class ItemTracker:
    """Current stage of the item being processed."""

    name: str
    stage: ItemStage = "pending"

    def advance(self, stage: ItemStage) -> None:
        self.stage = stage


@dataclass
class ItemResult:
    name: str
    status: ItemStatus
    stage: ItemStage
    error: str | None = None
    record_count: int = 0
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "stage": self.stage,
            "error": self.error,
            "record_count": self.record_count,
        }


@dataclass
class SourceRunResult:
    source: str
    started_at: datetime
    finished_at: datetime | None = None
    items: list[ItemResult] = field(default_factory=list)
    fatal_error: str | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for i in self.items if i.status == "saved")

    @property
    def failed(self) -> int:
        return sum(1 for i in self.items if i.status == "failed")

    @property
    def no_data(self) -> int:
        return sum(1 for i in self.items if i.status == "no_data")

    @property
    def errors(self) -> list[dict[str, Any]]:
        return [
            {"item": i.name, "stage": i.stage, "error": i.error}
            for i in self.items
            if i.status == "failed"
        ]

    @property
    def exit_code(self) -> int:
        return 1 if self.fatal_error else 0


class BaseSource(ABC):
    """Abstract base for all Palestine Pulse source fetchers."""

    # Override in subclass — output directory under data_dir and log context
    name: str = "unknown"
    display_name: str = "Unknown"
    rate_limit_delay: float = 0.0

    def __init__(
        self,
        *,
        data_dir: Path | None = None,
        logger: CollectionLogger | None = None,
        client: httpx.AsyncClient | None = None,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.data_dir = Path(data_dir or settings.data_dir)
        self.logger = logger or create_logger(context=f"{self.display_name}-Fetcher")
        self._client = client
        self._policy = policy or RetryPolicy.from_settings()
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._rate_limiter = RateLimiter(self.rate_limit_delay, sleep=sleep)
        self._log = log.bind(source_name=self.name)

    @property
    def output_dir(self) -> Path:
        return self.data_dir / self.name

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Abstract interface — subclasses must implement all four
    # ------------------------------------------------------------------

    @abstractmethod
    def items(self) -> Sequence[Any]:
        """Configured items, in processing order."""
        ...

    @abstractmethod
    def item_name(self, item: Any) -> str:
        ...

    @abstractmethod
    async def process_item(self, item: Any, tracker: ItemTracker) -> ItemResult:
        """
        Fetch, transform, validate and save one item.

        Implementations call tracker.advance() as they enter each stage so a
        failure is recorded against the right stage.

        Returns:
            ItemResult with status "saved" or "no_data".
        """
        ...

    @abstractmethod
    def write_metadata(self, result: SourceRunResult) -> None:
        """Write the source-level catalog / metadata file."""
        ...

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _on_retry(self, event: RetryEvent) -> None:
        self.logger.warn(
            f"Retry {event.attempt}/{self._policy.max_retries} for {event.url} "
            f"({event.reason}), waiting {event.delay:.1f}s"
        )

    def _request_kwargs(self, headers: dict[str, str] | None) -> dict[str, Any]:
        return {
            "client": self._client,
            "headers": headers,
            "policy": self._policy,
            "observer": self._on_retry,
            "sleep": self._sleep,
        }

    async def fetch_response(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        await self._rate_limiter.wait()
        return await fetch_with_retry(url, params=params, **self._request_kwargs(headers))

    async def fetch_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Rate-limited GET with retries, decoded as JSON."""
        await self._rate_limiter.wait()
        return await fetch_json_with_retry(url, params=params, **self._request_kwargs(headers))

    async def fetch_text(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> str:
        await self._rate_limiter.wait()
        return await fetch_text_with_retry(url, params=params, **self._request_kwargs(headers))

    # ------------------------------------------------------------------
    # Orchestration — the orchestrator and module entry points call this
    # ------------------------------------------------------------------

    async def run(self) -> SourceRunResult:
        """
        Process every configured item, then write the source metadata.

        Returns:
            SourceRunResult with one ItemResult per item.

        Raises:
            StorageError: a write failed; remaining items are not attempted.
        """
        result = SourceRunResult(source=self.name, started_at=self.now())
        self._log.info("source_run_start", items=len(self.items()))
        self.logger.info(f"{self.display_name} fetcher starting")
        self.logger.info(f"Data directory: {self.output_dir}")

        t0 = time.monotonic()
        owns_client = self._client is None
        if owns_client:
            self._client = httpx.AsyncClient(timeout=settings.http_timeout, follow_redirects=True)
        try:
            for item in self.items():
                result.items.append(await self._run_item(item))
            self.write_metadata(result)
        except StorageError as exc:
            result.fatal_error = str(exc)
            self.logger.error("Storage failure, aborting fetcher", exc)
            self._log.error(
                "source_run_failed",
                error=str(exc),
                duration_ms=int((time.monotonic() - t0) * 1000),
                exc_info=True,
            )
            raise
        finally:
            if owns_client and self._client is not None:
                await self._client.aclose()
                self._client = None
            result.finished_at = self.now()

        self._log.info(
            "source_run_complete",
            succeeded=result.succeeded,
            failed=result.failed,
            no_data=result.no_data,
            total_duration_ms=int((time.monotonic() - t0) * 1000),
        )
        self.logger.info(
            f"Summary: {result.succeeded} saved, {result.failed} failed, {result.no_data} without data"
        )
        if result.failed:
            self.logger.warn("Errors encountered", errors=result.errors)
        return result

    async def _run_item(self, item: Any) -> ItemResult:
        tracker = ItemTracker(name=self.item_name(item))
        t0 = time.monotonic()
        try:
            outcome = await self.process_item(item, tracker)
        except StorageError:
            tracker.advance("failed")
            raise
        except Exception as exc:
            failed_stage = tracker.stage
            tracker.advance("failed")
            self.logger.failure(f"{tracker.name} failed during {failed_stage}", exc)
            self._log.error(
                "item_failed",
                item=tracker.name,
                stage=failed_stage,
                error=str(exc),
                duration_ms=int((time.monotonic() - t0) * 1000),
            )
            return ItemResult(
                name=tracker.name, status="failed", stage=failed_stage, error=str(exc)
            )

        if outcome.status == "saved":
            tracker.advance("saved")
        return outcome


# ---------------------------------------------------------------------------
# Module entry points
# ---------------------------------------------------------------------------


def run_source_main(source_cls: type[BaseSource]) -> int:
    """
    Standalone entry point shared by the fetcher modules.

    Configured only through environment variables (see pulse_shared.config).

    Returns:
        Process exit code: 0, or 1 after a fatal storage error.
    """
    configure_logging()
    logger = create_logger(context=f"{source_cls.display_name}-Fetcher")
    try:
        result = asyncio.run(source_cls(logger=logger).run())
    except StorageError:
        logger.log_summary()
        return 1
    logger.log_summary()
    return result.exit_code
