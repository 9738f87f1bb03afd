"""
sources/worldbank.py — World Bank Open Data fetcher for Palestine (PSE).

API: https://api.worldbank.org/v2/country/PSE/indicator/{code}?format=json&date=2010:2024&per_page=100

One item per indicator in transforms.worldbank.INDICATORS. The layout is
flat under {data_dir}/worldbank/:

  {code_lower_underscored}.json             records + validation summary
  {code_lower_underscored}_validation.json  full ValidationResult
  metadata.json                             per-indicator category, unit, points
  all-indicators.json                       every data point, category summary

An indicator without data points for the country ends as `no_data`: it is
reported, not counted as a failure, and writes no files.

Usage:
    python -m pulse_pipeline.sources.worldbank
"""

from __future__ import annotations

import sys
from typing import Any

from pulse_pipeline.loaders.json_store import write_json
from pulse_pipeline.sources.base import (
    BaseSource,
    ItemResult,
    ItemTracker,
    SourceRunResult,
    run_source_main,
)
from pulse_pipeline.transforms.worldbank import (
    INDICATORS,
    category_summary,
    indicator_category,
    indicator_filename,
    indicator_unit,
    transform_indicator,
)
from pulse_pipeline.validation.validator import validate_dataset
from pulse_shared.config import settings
from pulse_shared.constants import METADATA_FILE, WORLDBANK_ALL_FILE

PER_PAGE = 100


class WorldBankSource(BaseSource):
    """Fetches every configured World Bank indicator for one country."""

    name = "worldbank"
    display_name = "WorldBank"

    def __init__(
        self,
        *,
        base_url: str | None = None,
        country: str | None = None,
        date_range: str | None = None,
        indicators: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        self.rate_limit_delay = settings.worldbank_rate_limit_delay
        super().__init__(**kwargs)
        self._base_url = (base_url or settings.worldbank_base_url).rstrip("/")
        self.country = country or settings.worldbank_country
        self.date_range = date_range or settings.worldbank_date_range
        self.indicators = indicators if indicators is not None else INDICATORS

    def indicator_url(self, code: str) -> str:
        return f"{self._base_url}/country/{self.country}/indicator/{code}"

    # ------------------------------------------------------------------
    # BaseSource interface
    # ------------------------------------------------------------------

    def items(self) -> list[tuple[str, str]]:
        return list(self.indicators.items())

    def item_name(self, item: tuple[str, str]) -> str:
        return item[0]

    async def process_item(self, item: tuple[str, str], tracker: ItemTracker) -> ItemResult:
        code, indicator_name = item
        self.logger.info(f"Fetching: {indicator_name}...")

        tracker.advance("fetching")
        payload = await self.fetch_json(
            self.indicator_url(code),
            params={"format": "json", "date": self.date_range, "per_page": PER_PAGE},
        )

        tracker.advance("transforming")
        records = transform_indicator(payload, code, indicator_name)
        if not records:
            self.logger.warn(f"No data points found for {code}")
            return ItemResult(name=code, status="no_data", stage="transforming")
        self.logger.success(f"Found {len(records)} data points for {code}")

        tracker.advance("validating")
        validation = validate_dataset(records, "worldbank", logger=self.logger)

        tracker.advance("partitioning")
        now = self.now().isoformat()
        write_json(
            self.output_dir / indicator_filename(code),
            {
                "indicator": code,
                "indicator_name": indicator_name,
                "data": records,
                "metadata": {
                    "source": "World Bank Open Data",
                    "last_updated": now,
                    "total_points": len(records),
                },
                "validation": validation.summary(),
            },
        )
        write_json(
            self.output_dir / indicator_filename(code, "_validation"),
            validation.to_json_dict(),
        )

        return ItemResult(
            name=code,
            status="saved",
            stage="partitioning",
            record_count=len(records),
            details={
                "indicator_name": indicator_name,
                "records": records,
                "validation": validation.summary(),
            },
        )

    def write_metadata(self, result: SourceRunResult) -> None:
        saved = [i for i in result.items if i.status == "saved"]
        all_data = sorted(
            (r for i in saved for r in i.details["records"]),
            key=lambda r: r["year"],
        )
        metadata = {
            "source": self.name,
            "country": "Palestine",
            "country_code": self.country,
            "last_updated": self.now().isoformat(),
            "indicators": len(saved),
            "total_data_points": len(all_data),
        }

        write_json(
            self.output_dir / METADATA_FILE,
            {
                "metadata": metadata,
                "indicators": [
                    {
                        "code": i.name,
                        "name": i.details["indicator_name"],
                        "category": indicator_category(i.name),
                        "data_points": i.record_count,
                        "unit": indicator_unit(i.details["indicator_name"]),
                        "validation": i.details["validation"],
                    }
                    for i in saved
                ],
                "no_data": [i.name for i in result.items if i.status == "no_data"],
                "errors": result.errors,
            },
        )
        write_json(
            self.output_dir / WORLDBANK_ALL_FILE,
            {
                "metadata": {
                    **metadata,
                    "categories": category_summary(
                        {i.name: i.details["indicator_name"] for i in saved}
                    ),
                },
                "data": all_data,
            },
        )
        self.logger.info(f"Indicators fetched: {len(saved)}/{len(self.indicators)}")
        self.logger.info(f"Total data points: {len(all_data)}")


def main() -> int:
    return run_source_main(WorldBankSource)


if __name__ == "__main__":
    sys.exit(main())
