"""
sources/goodshepherd.py — Good Shepherd Collective fetcher.

API base: https://goodshepherdcollective.org/api

Feeds (all plain JSON files):
  /child_prisoners.json     child detentions        -> prisoners/children/
  /prisoner_data.json       political prisoners     -> prisoners/political/
  /home_demolitions.json    home demolitions        -> demolitions/
  /wb_data.json             West Bank reports       -> westbank/
  /healthcare_attacks.json  attacks on healthcare   -> healthcare/
  /ngo_data.json            NGO financial filings   -> ngo/

Dated feeds are filtered to the baseline date (2023-10-07 by default),
validated and partitioned by quarter with a recent.json window. NGO data is
undated and written as organizations.json + funding-by-year.json. A final
item stores the raw prisoner statistics under prisoners/statistics/.

When GOODSHEPHERD_FALLBACK_DIR is set, the prisoner and demolition feeds fall
back to local snapshots (minors-pre.json, spi-pre.json, demolitions-pre.json)
if the API fails or returns nothing. Records carry source "goodshepherd-api"
or "goodshepherd-local" accordingly.

Usage:
    python -m pulse_pipeline.sources.goodshepherd
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import httpx

from pulse_pipeline.loaders.json_store import read_json, write_json
from pulse_pipeline.loaders.partitioner import partition_and_save
from pulse_pipeline.sources.base import (
    BaseSource,
    ItemResult,
    ItemTracker,
    SourceRunResult,
    run_source_main,
)
from pulse_pipeline.transforms.goodshepherd import (
    flatten_westbank_reports,
    funding_by_year,
    schema_for_dataset,
    transform_child_prisoners,
    transform_demolitions,
    transform_healthcare_attacks,
    transform_ngo_organizations,
    transform_political_prisoners,
    transform_westbank_incidents,
)
from pulse_pipeline.transforms.payloads import extract_records, parse_payload
from pulse_pipeline.utils.retry import FetchExhausted
from pulse_pipeline.validation.validator import validate_dataset
from pulse_shared.config import settings
from pulse_shared.constants import INDEX_FILE, METADATA_FILE, VALIDATION_FILE
from pulse_shared.time_utils import date_span

FeedKind = Literal["dated", "ngo", "statistics"]
FeedOrigin = Literal["api", "local"]


def _standard_rows(raw: Any) -> list[dict[str, Any]]:
    return extract_records(parse_payload(raw))


@dataclass(frozen=True)
class Feed:
    """One Good Shepherd item: where it comes from and where it lands."""

    key: str
    name: str
    endpoint: str
    path: str
    dataset: str
    kind: FeedKind = "dated"
    transform: Callable[..., list[dict[str, Any]]] | None = None
    rows: Callable[[Any], list[dict[str, Any]]] = _standard_rows
    # Local snapshot file name under the fallback directory
    fallback: str | None = None


FEEDS: tuple[Feed, ...] = (
    Feed(
        key="childPrisoners",
        name="Child Prisoners",
        endpoint="/child_prisoners.json",
        path="prisoners/children",
        dataset="child-prisoners",
        transform=transform_child_prisoners,
        fallback="minors-pre.json",
    ),
    Feed(
        key="politicalPrisoners",
        name="Political Prisoners",
        endpoint="/prisoner_data.json",
        path="prisoners/political",
        dataset="political-prisoners",
        transform=transform_political_prisoners,
        fallback="spi-pre.json",
    ),
    Feed(
        key="demolitions",
        name="Home Demolitions",
        endpoint="/home_demolitions.json",
        path="demolitions",
        dataset="demolitions",
        transform=transform_demolitions,
        fallback="demolitions-pre.json",
    ),
    Feed(
        key="westBankIncidents",
        name="West Bank Incidents",
        endpoint="/wb_data.json",
        path="westbank",
        dataset="westbank-incidents",
        transform=transform_westbank_incidents,
        rows=flatten_westbank_reports,
    ),
    Feed(
        key="healthcare",
        name="Healthcare Attacks",
        endpoint="/healthcare_attacks.json",
        path="healthcare",
        dataset="healthcare-attacks",
        transform=transform_healthcare_attacks,
    ),
    Feed(
        key="ngo",
        name="NGO Financial Data",
        endpoint="/ngo_data.json",
        path="ngo",
        dataset="ngo-data",
        kind="ngo",
    ),
    Feed(
        key="prisonerStatistics",
        name="Prisoner Statistics",
        endpoint="/prisoner_data.json",
        path="prisoners/statistics",
        dataset="prisoner-statistics",
        kind="statistics",
    ),
)

CHILD_STATISTICS_ENDPOINT = "/child_prisoners.json"
SOURCE_PREFIX = "goodshepherd"


class GoodShepherdSource(BaseSource):
    """Fetches every Good Shepherd Collective feed into goodshepherd/."""

    name = "goodshepherd"
    display_name = "GoodShepherd"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        baseline: str | None = None,
        fallback_dir: Path | None = None,
        **kwargs: Any,
    ) -> None:
        self.rate_limit_delay = settings.goodshepherd_rate_limit_delay
        super().__init__(**kwargs)
        self._base_url = (base_url or settings.goodshepherd_base_url).rstrip("/")
        self.baseline = baseline or settings.baseline_date
        self.fallback_dir = fallback_dir or settings.goodshepherd_fallback_dir
        # Feeds share endpoints (prisoner data feeds both prisoner items)
        self._responses: dict[str, Any] = {}

    async def fetch_feed(self, endpoint: str) -> Any:
        if endpoint not in self._responses:
            self._responses[endpoint] = await self.fetch_json(f"{self._base_url}{endpoint}")
        return self._responses[endpoint]

    def fallback_path(self, item: Feed) -> Path | None:
        if self.fallback_dir is None or item.fallback is None:
            return None
        path = Path(self.fallback_dir) / item.fallback
        return path if path.is_file() else None

    async def fetch_with_fallback(self, item: Feed) -> tuple[Any, FeedOrigin]:
        """
        Fetch a feed from the API, or from its local snapshot.

        The snapshot is used when the API request fails or yields no rows.
        Without a snapshot, API errors propagate and empty payloads are
        returned as-is.

        Returns:
            (payload, origin) where origin is "api" or "local".
        """
        fallback = self.fallback_path(item)
        if fallback is None:
            return await self.fetch_feed(item.endpoint), "api"

        try:
            raw = await self.fetch_feed(item.endpoint)
        except (FetchExhausted, httpx.HTTPError, ValueError) as exc:
            self.logger.warn(f"{item.name} API failed, using local fallback", exc)
        else:
            if item.rows(raw):
                return raw, "api"
            self.logger.warn(f"{item.name} API returned no records, using local fallback")

        raw = read_json(fallback)
        self.logger.info(f"Loaded {item.name} from {fallback}")
        return raw, "local"

    # ------------------------------------------------------------------
    # BaseSource interface
    # ------------------------------------------------------------------

    def items(self) -> tuple[Feed, ...]:
        return FEEDS

    def item_name(self, item: Feed) -> str:
        return item.dataset

    async def process_item(self, item: Feed, tracker: ItemTracker) -> ItemResult:
        self.logger.info(f"Fetching {item.name}...")
        match item.kind:
            case "ngo":
                return await self._process_ngo(item, tracker)
            case "statistics":
                return await self._process_statistics(item, tracker)
        return await self._process_dated(item, tracker)

    async def _process_dated(self, item: Feed, tracker: ItemTracker) -> ItemResult:
        if item.transform is None:
            raise ValueError(f"dated feed {item.key!r} has no transform")
        tracker.advance("fetching")
        raw, origin = await self.fetch_with_fallback(item)

        tracker.advance("transforming")
        records = item.transform(
            item.rows(raw),
            baseline=self.baseline,
            source=f"{SOURCE_PREFIX}-{origin}",
            logger=self.logger,
        )
        if not records:
            self.logger.warn(f"No {item.name} records since {self.baseline}")
            return ItemResult(name=item.dataset, status="no_data", stage="transforming")
        self.logger.success(f"Filtered to {len(records)} records (since {self.baseline})")

        tracker.advance("validating")
        validation = validate_dataset(records, schema_for_dataset(item.dataset), logger=self.logger)

        tracker.advance("partitioning")
        out = self.output_dir / item.path
        index = partition_and_save(
            records,
            out,
            dataset=item.dataset,
            source=self.name,
            now=self.now(),
            logger=self.logger,
        )
        write_json(out / VALIDATION_FILE, validation.to_json_dict())

        return ItemResult(
            name=item.dataset,
            status="saved",
            stage="partitioning",
            record_count=len(records),
            details={
                "key": item.key,
                "entry": {
                    "name": item.name,
                    "category": item.path.split("/", 1)[0],
                    "record_count": len(records),
                    "date_range": date_span(r.get("date") for r in records),
                    "partitioned": index.partitioned,
                    "partition_count": index.partition_count,
                    "partition_strategy": "quarter",
                    "has_recent_file": index.has_recent_file,
                    "origin": origin,
                    "validation": validation.summary(),
                },
            },
        )

    async def _process_ngo(self, item: Feed, tracker: ItemTracker) -> ItemResult:
        tracker.advance("fetching")
        raw = await self.fetch_feed(item.endpoint)
        now = self.now()

        tracker.advance("transforming")
        organizations = transform_ngo_organizations(raw, current_year=now.year)
        if not organizations:
            self.logger.warn("No NGO data to save")
            return ItemResult(name=item.dataset, status="no_data", stage="transforming")
        by_year = funding_by_year(organizations)
        total_funding = sum(o["total_revenue"] for o in organizations)
        self.logger.success(f"Loaded {len(organizations)} NGO records")

        tracker.advance("validating")
        validation = validate_dataset(organizations, "ngo", logger=self.logger)

        tracker.advance("partitioning")
        out = self.output_dir / item.path
        last_updated = now.isoformat()
        write_json(
            out / "organizations.json",
            {
                "metadata": {
                    "source": self.name,
                    "dataset": "ngo-organizations",
                    "record_count": len(organizations),
                    "last_updated": last_updated,
                },
                "data": organizations,
            },
        )
        write_json(
            out / "funding-by-year.json",
            {
                "metadata": {
                    "source": self.name,
                    "dataset": "ngo-funding",
                    "record_count": len(by_year),
                    "last_updated": last_updated,
                },
                "data": by_year,
            },
        )
        write_json(
            out / INDEX_FILE,
            {
                "dataset": item.dataset,
                "total_organizations": len(organizations),
                "total_funding": total_funding,
                "years": [y["year"] for y in by_year],
                "files": [
                    {"file": "organizations.json", "records": len(organizations)},
                    {"file": "funding-by-year.json", "records": len(by_year)},
                ],
                "validation": validation.summary(),
                "last_updated": last_updated,
            },
        )
        write_json(out / VALIDATION_FILE, validation.to_json_dict())

        return ItemResult(
            name=item.dataset,
            status="saved",
            stage="partitioning",
            record_count=len(organizations),
            details={
                "key": item.key,
                "entry": {
                    "name": item.name,
                    "category": "ngo",
                    "record_count": len(organizations),
                    "total_funding": total_funding,
                    "partitioned": False,
                    "files": ["organizations.json", "funding-by-year.json"],
                    "validation": validation.summary(),
                },
            },
        )

    async def _process_statistics(self, item: Feed, tracker: ItemTracker) -> ItemResult:
        """Store the provider's statistical summaries as published, untransformed."""
        tracker.advance("fetching")
        monthly = await self.fetch_feed(item.endpoint)
        child_groups = await self.fetch_feed(CHILD_STATISTICS_ENDPOINT)
        monthly_count = len(monthly) if isinstance(monthly, list) else 0

        tracker.advance("partitioning")
        out = self.output_dir / item.path
        last_updated = self.now().isoformat()
        write_json(
            out / "monthly-totals.json",
            {
                "metadata": {
                    "source": self.name,
                    "dataset": item.dataset,
                    "description": "Monthly prisoner statistics including totals, administrative detention, women, etc.",
                    "record_count": monthly_count,
                    "last_updated": last_updated,
                },
                "data": monthly,
            },
        )
        write_json(
            out / "child-age-groups.json",
            {
                "metadata": {
                    "source": self.name,
                    "dataset": "child-prisoner-statistics",
                    "description": "Child prisoner statistics by age group and detention type",
                    "last_updated": last_updated,
                },
                "data": child_groups,
            },
        )
        write_json(
            out / INDEX_FILE,
            {
                "dataset": item.dataset,
                "description": "Statistical summaries for prisoner data",
                "files": [
                    {
                        "file": "monthly-totals.json",
                        "description": "Monthly totals and administrative detention data",
                        "records": monthly_count,
                    },
                    {
                        "file": "child-age-groups.json",
                        "description": "Child prisoner age group breakdowns",
                    },
                ],
                "last_updated": last_updated,
            },
        )
        self.logger.success(f"Saved prisoner statistics ({monthly_count} monthly records)")
        return ItemResult(
            name=item.dataset,
            status="saved",
            stage="partitioning",
            record_count=monthly_count,
            details={"key": item.key},
        )

    def write_metadata(self, result: SourceRunResult) -> None:
        datasets: dict[str, Any] = {}
        for item in result.items:
            entry = item.details.get("entry")
            if item.status == "saved" and entry is not None:
                datasets[item.details["key"]] = entry

        write_json(
            self.output_dir / METADATA_FILE,
            {
                "source": self.name,
                "api_base": self._base_url,
                "last_updated": self.now().isoformat(),
                "baseline_date": self.baseline,
                "datasets": datasets,
                "summary": {
                    "total_datasets": len(datasets),
                    "total_records": sum(d["record_count"] for d in datasets.values()),
                    "total_partitions": sum(d.get("partition_count", 0) for d in datasets.values()),
                    "failed": result.failed,
                },
                "no_data": [i.name for i in result.items if i.status == "no_data"],
                "errors": result.errors,
            },
        )


def main() -> int:
    return run_source_main(GoodShepherdSource)


if __name__ == "__main__":
    sys.exit(main())
