"""
sources/hdx_hapi.py — HDX HAPI (Humanitarian API) fetcher.

API: https://hapi.humdata.org/api/v1/{endpoint}?location_code=PSE&output_format=json&limit=10000
Requires HDX_API_KEY, sent as a Bearer token.

Endpoints and where they land under {data_dir}/hdx/hapi/:

  /affected-people     -> casualties/
  /population-social   -> displacement/
  /food-security       -> food-security/
  /conflict-event      -> conflict-events/

Each dataset is filtered to the baseline date, validated and partitioned by
quarter with a recent.json window. The CKAN fetcher (sources/hdx.py) owns the
rest of hdx/; this one writes only below hapi/.

Not part of the default orchestrator run; select it explicitly.

Usage:
    python -m pulse_pipeline.sources.hdx_hapi
    pulse-pipeline run hdx-hapi
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pulse_pipeline.loaders.json_store import write_json
from pulse_pipeline.loaders.partitioner import partition_and_save
from pulse_pipeline.sources.base import (
    BaseSource,
    ItemResult,
    ItemTracker,
    SourceRunResult,
    run_source_main,
)
from pulse_pipeline.transforms.hdx_hapi import (
    SOURCE,
    hapi_rows,
    transform_affected_people,
    transform_conflict_events,
    transform_food_security,
    transform_population_social,
)
from pulse_pipeline.utils.logging import create_logger
from pulse_pipeline.validation.validator import validate_dataset
from pulse_shared.config import settings
from pulse_shared.constants import HAPI_DIR, METADATA_FILE, VALIDATION_FILE
from pulse_shared.time_utils import date_span

RESULT_LIMIT = 10_000


class MissingApiKey(RuntimeError):
    """HAPI refuses unauthenticated requests."""


@dataclass(frozen=True)
class HapiEndpoint:
    key: str
    name: str
    endpoint: str
    dataset: str
    transform: Callable[..., list[dict[str, Any]]]


ENDPOINTS: tuple[HapiEndpoint, ...] = (
    HapiEndpoint(
        key="casualties",
        name="Humanitarian Needs",
        endpoint="affected-people",
        dataset="casualties",
        transform=transform_affected_people,
    ),
    HapiEndpoint(
        key="displacement",
        name="Population",
        endpoint="population-social",
        dataset="displacement",
        transform=transform_population_social,
    ),
    HapiEndpoint(
        key="foodSecurity",
        name="Food Security",
        endpoint="food-security",
        dataset="food-security",
        transform=transform_food_security,
    ),
    HapiEndpoint(
        key="conflictEvents",
        name="Conflict Events",
        endpoint="conflict-event",
        dataset="conflict-events",
        transform=transform_conflict_events,
    ),
)


class HdxHapiSource(BaseSource):
    """Fetches the HAPI endpoints for one location into hdx/hapi/."""

    name = "hdx-hapi"
    display_name = "HDX-HAPI"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        location: str | None = None,
        baseline: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.rate_limit_delay = settings.hdx_hapi_rate_limit_delay
        super().__init__(**kwargs)
        self._base_url = (base_url or settings.hdx_hapi_base_url).rstrip("/")
        self._api_key = settings.hdx_api_key if api_key is None else api_key
        if not self._api_key:
            raise MissingApiKey("HDX_API_KEY is required for HDX HAPI")
        self.location = location or settings.hdx_hapi_location
        self.baseline = baseline or settings.baseline_date

    @property
    def output_dir(self) -> Path:
        return self.data_dir / "hdx" / HAPI_DIR

    @property
    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "Authorization": f"Bearer {self._api_key}"}

    async def fetch_endpoint(self, endpoint: str) -> list[dict[str, Any]]:
        payload = await self.fetch_json(
            f"{self._base_url}/{endpoint}",
            params={
                "location_code": self.location,
                "output_format": "json",
                "limit": RESULT_LIMIT,
            },
            headers=self._headers,
        )
        return hapi_rows(payload)

    # ------------------------------------------------------------------
    # BaseSource interface
    # ------------------------------------------------------------------

    def items(self) -> tuple[HapiEndpoint, ...]:
        return ENDPOINTS

    def item_name(self, item: HapiEndpoint) -> str:
        return item.dataset

    async def process_item(self, item: HapiEndpoint, tracker: ItemTracker) -> ItemResult:
        self.logger.info(f"Fetching {item.name}...")
        tracker.advance("fetching")
        rows = await self.fetch_endpoint(item.endpoint)
        self.logger.info(f"Received {len(rows)} rows")

        tracker.advance("transforming")
        records = item.transform(rows, baseline=self.baseline, logger=self.logger)
        if not records:
            self.logger.warn(f"No {item.name} records since {self.baseline}")
            return ItemResult(name=item.dataset, status="no_data", stage="transforming")

        tracker.advance("validating")
        validation = validate_dataset(records, "hapi", logger=self.logger)

        tracker.advance("partitioning")
        out = self.output_dir / item.dataset
        index = partition_and_save(
            records,
            out,
            dataset=item.dataset,
            source=SOURCE,
            now=self.now(),
            logger=self.logger,
        )
        write_json(out / VALIDATION_FILE, validation.to_json_dict())
        self.logger.success(f"Saved {len(records)} {item.name} records")

        return ItemResult(
            name=item.dataset,
            status="saved",
            stage="partitioning",
            record_count=len(records),
            details={
                "key": item.key,
                "entry": {
                    "name": item.name,
                    "endpoint": item.endpoint,
                    "record_count": len(records),
                    "date_range": date_span(r.get("date") for r in records),
                    "partitioned": index.partitioned,
                    "partition_count": index.partition_count,
                    "has_recent_file": index.has_recent_file,
                    "validation": validation.summary(),
                },
            },
        )

    def write_metadata(self, result: SourceRunResult) -> None:
        datasets = {
            item.details["key"]: item.details["entry"]
            for item in result.items
            if item.status == "saved"
        }
        write_json(
            self.output_dir / METADATA_FILE,
            {
                "source": SOURCE,
                "api_base": self._base_url,
                "location": self.location,
                "last_updated": self.now().isoformat(),
                "baseline_date": self.baseline,
                "datasets": datasets,
                "summary": {
                    "total_datasets": len(datasets),
                    "total_records": sum(d["record_count"] for d in datasets.values()),
                    "failed": result.failed,
                },
                "no_data": [i.name for i in result.items if i.status == "no_data"],
                "errors": result.errors,
            },
        )


def main() -> int:
    if not settings.hdx_api_key:
        create_logger(context="HDX-HAPI-Fetcher").error("HDX_API_KEY environment variable is required")
        return 1
    return run_source_main(HdxHapiSource)


if __name__ == "__main__":
    sys.exit(main())
