"""
sources/hdx.py — Humanitarian Data Exchange (CKAN) fetcher.

Downloads the configured priority datasets for each humanitarian category
from the HDX CKAN action API, transforms them to standard records, validates
and partitions them.

CKAN API base: https://data.humdata.org/api/3/action

Key actions:
  /package_show     — metadata and resources for one dataset by id or slug
  /package_search   — fallback lookup by display name (q=..., rows=5)

Output layout under {data_dir}/hdx/:
  {category}/{sanitized-name}/metadata.json      CKAN dataset metadata
  {category}/{sanitized-name}/raw.json           downloaded resource
  {category}/{sanitized-name}/transformed.json   standard records + validation summary
  {category}/{sanitized-name}/validation.json    full ValidationResult
  {category}/{sanitized-name}/data.json | 2024-Q1.json ... + index.json, recent.json
  catalog.json                                   per-category dataset catalog
  metadata.json                                  per-category downloaded/failed counts

HDX_API_KEY is optional; when set it is sent as the Authorization header.

Usage:
    python -m pulse_pipeline.sources.hdx
"""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
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
from pulse_pipeline.transforms.hdx import DATE_FIELDS, transform_category
from pulse_pipeline.transforms.payloads import PayloadError, extract_records, parse_payload
from pulse_pipeline.validation.validator import validate_dataset
from pulse_shared.config import settings
from pulse_shared.constants import (
    CATALOG_FILE,
    HDX_CATEGORIES,
    METADATA_FILE,
    VALIDATION_FILE,
)

SOURCE_ID = "hdx-ckan"
DATASET_URL = "https://data.humdata.org/dataset"
DOWNLOADABLE_FORMATS = frozenset({"csv", "json", "geojson"})
RAW_FILE = "raw.json"
TRANSFORMED_FILE = "transformed.json"


class CkanError(ValueError):
    """A CKAN action answered success=false."""


@dataclass(frozen=True)
class HdxDataset:
    """One configured priority dataset."""

    id: str
    name: str
    priority: int
    category: str = ""


def _datasets(category: str, *entries: tuple[str, str]) -> list[HdxDataset]:
    return [
        HdxDataset(id=dataset_id, name=name, priority=i, category=category)
        for i, (dataset_id, name) in enumerate(entries, start=1)
    ]


# ---------------------------------------------------------------------------
# Priority datasets, by category (priority = position in the list)
# ---------------------------------------------------------------------------

PRIORITY_DATASETS: dict[str, list[HdxDataset]] = {
    "conflict": _datasets(
        "conflict",
        ("acled-data-for-palestine", "ACLED Conflict Data"),
        ("violent-events-in-palestine", "Violent Events Palestine"),
        ("conflict-incidents-gaza-strip", "Gaza Conflict Incidents"),
        ("west-bank-violence-incidents", "West Bank Violence"),
        ("settler-violence-incidents", "Settler Violence Data"),
        ("military-operations-palestine", "Military Operations"),
        ("armed-clashes-palestine", "Armed Clashes Data"),
        ("protest-events-palestine", "Protest Events"),
    ),
    "education": _datasets(
        "education",
        ("education-facilities-palestine", "Education Facilities"),
        ("school-damage-assessment-gaza", "School Damage Gaza"),
        ("education-access-west-bank", "Education Access WB"),
        ("student-enrollment-palestine", "Student Enrollment"),
        ("education-infrastructure-damage", "Education Infrastructure"),
    ),
    "water": _datasets(
        "water",
        ("water-sanitation-access-palestine", "Water Access"),
        ("water-infrastructure-damage-gaza", "Water Infrastructure"),
        ("wash-facilities-palestine", "WASH Facilities"),
        ("water-quality-monitoring", "Water Quality"),
    ),
    "infrastructure": _datasets(
        "infrastructure",
        ("infrastructure-damage-assessment-gaza", "Infrastructure Damage"),
        ("building-destruction-data-palestine", "Building Destruction"),
        ("critical-infrastructure-status", "Critical Infrastructure"),
        ("roads-bridges-damage", "Roads & Bridges"),
        ("electricity-infrastructure", "Electricity Grid"),
        ("telecommunications-infrastructure", "Telecom Infrastructure"),
    ),
    "refugees": _datasets(
        "refugees",
        ("refugee-statistics-palestine", "Refugee Statistics"),
        ("displacement-tracking-gaza", "Displacement Tracking"),
        ("idp-data-palestine", "IDP Data"),
        ("refugee-camp-populations", "Refugee Camps"),
        ("displacement-movements", "Displacement Movements"),
    ),
    "humanitarian": _datasets(
        "humanitarian",
        ("humanitarian-needs-overview-palestine", "Humanitarian Needs"),
        ("humanitarian-response-plan", "Response Plan"),
        ("aid-delivery-tracking", "Aid Delivery"),
        ("humanitarian-access-constraints", "Access Constraints"),
        ("protection-concerns-palestine", "Protection Concerns"),
        ("humanitarian-funding-palestine", "Humanitarian Funding"),
    ),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_UNSAFE_CHARS = re.compile(r"[^a-z0-9_-]")
_DASH_RUNS = re.compile(r"-+")


def sanitize_filename(name: str) -> str:
    """Lower-case, non [a-z0-9_-] replaced by '-', dash runs collapsed, max 100 chars."""
    return _DASH_RUNS.sub("-", _UNSAFE_CHARS.sub("-", name.lower()))[:100]


def extract_dataset_metadata(
    package: dict[str, Any], category: str, *, extracted_at: str
) -> dict[str, Any]:
    """Flatten a CKAN package into the metadata.json shape."""
    organization = package.get("organization") or {}
    resources = package.get("resources") or []
    return {
        "id": package.get("id"),
        "name": package.get("name"),
        "title": package.get("title"),
        "description": package.get("notes") or "",
        "category": category,
        "organization": {
            "name": organization.get("name") or "unknown",
            "title": organization.get("title") or "Unknown",
        },
        "tags": [t.get("name") for t in package.get("tags") or [] if isinstance(t, dict)],
        "license": package.get("license_title") or package.get("license_id") or "Unknown",
        "dataset_date": package.get("dataset_date"),
        "last_modified": package.get("metadata_modified") or extracted_at,
        "data_update_frequency": package.get("data_update_frequency") or "unknown",
        "num_resources": package.get("num_resources") or len(resources),
        "resources": [
            {
                "id": r.get("id"),
                "name": r.get("name"),
                "format": r.get("format"),
                "size": r.get("size"),
                "last_modified": r.get("last_modified"),
                "url": r.get("url"),
            }
            for r in resources
            if isinstance(r, dict)
        ],
        "source_url": f"{DATASET_URL}/{package.get('name')}",
        "extracted_at": extracted_at,
    }


def pick_resource(package: dict[str, Any]) -> dict[str, Any] | None:
    """First CSV, JSON or GeoJSON resource of a package."""
    for resource in package.get("resources") or []:
        if not isinstance(resource, dict):
            continue
        if str(resource.get("format") or "").lower() in DOWNLOADABLE_FORMATS:
            return resource
    return None


# ---------------------------------------------------------------------------
# Source
# ---------------------------------------------------------------------------


class HdxSource(BaseSource):
    """Fetches the HDX priority datasets, category by category."""

    name = "hdx"
    display_name = "HDX"

    def __init__(self, *, base_url: str | None = None, api_key: str | None = None, **kwargs: Any) -> None:
        self.rate_limit_delay = settings.hdx_rate_limit_delay
        super().__init__(**kwargs)
        self._base_url = (base_url or settings.hdx_base_url).rstrip("/")
        self._api_key = settings.hdx_api_key if api_key is None else api_key
        if not self._api_key:
            self._log.info("hdx_unauthenticated")

    @property
    def _headers(self) -> dict[str, str] | None:
        return {"Authorization": self._api_key} if self._api_key else None

    # ------------------------------------------------------------------
    # CKAN
    # ------------------------------------------------------------------

    async def _ckan_action(self, action: str, params: dict[str, Any] | None = None) -> Any:
        """Call a CKAN action endpoint and return its `result`."""
        url = f"{self._base_url}/{action}"
        self._log.debug("ckan_action", action=action, params=params)
        data = await self.fetch_json(url, params=params, headers=self._headers)
        if not isinstance(data, dict) or not data.get("success"):
            error = data.get("error") if isinstance(data, dict) else data
            raise CkanError(f"CKAN action {action} returned success=false: {error}")
        return data["result"]

    async def package_search(self, query: str, rows: int = 5) -> list[dict[str, Any]]:
        result = await self._ckan_action("package_search", {"q": query, "rows": rows})
        return result.get("results", []) if isinstance(result, dict) else []

    async def resolve_dataset(self, dataset: HdxDataset) -> dict[str, Any]:
        """
        Full package for a configured dataset.

        Tries package_show with the configured id first, then searches by
        display name and loads the first hit.

        Raises:
            CkanError: neither lookup found the dataset.
        """
        try:
            return await self._ckan_action("package_show", {"id": dataset.id})
        except CkanError:
            self.logger.debug(f"package_show missed {dataset.id}, searching by name")

        hits = await self.package_search(dataset.name)
        if not hits:
            raise CkanError(f"Dataset not found: {dataset.name}")
        found = hits[0]
        self.logger.info(f"Found via search: {found.get('title')}")
        return await self._ckan_action("package_show", {"id": found.get("id") or found.get("name")})

    async def download_resource(self, resource: dict[str, Any]) -> Any:
        """JSON-decoded body for JSON resources, text otherwise."""
        url = resource.get("url")
        if not url:
            raise PayloadError(f"resource {resource.get('name')} has no URL")
        response = await self.fetch_response(url, headers=self._headers)
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            return response.json()
        return response.text

    # ------------------------------------------------------------------
    # BaseSource interface
    # ------------------------------------------------------------------

    def items(self) -> list[HdxDataset]:
        return [
            dataset
            for category in HDX_CATEGORIES
            for dataset in sorted(PRIORITY_DATASETS.get(category, []), key=lambda d: d.priority)
        ]

    def item_name(self, item: HdxDataset) -> str:
        return f"{item.category}/{item.name}"

    async def process_item(self, item: HdxDataset, tracker: ItemTracker) -> ItemResult:
        category = item.category
        logger = self.logger.child(category)
        logger.info(f"[{item.priority}] {item.name}")
        now = self.now()
        timestamp = now.isoformat()

        tracker.advance("fetching")
        package = await self.resolve_dataset(item)
        metadata = extract_dataset_metadata(package, category, extracted_at=timestamp)
        resource = pick_resource(package)
        if resource is None:
            raise PayloadError(f"No downloadable resources for {package.get('name')}")
        logger.info(f"Downloading: {resource.get('name')} ({resource.get('format')})")
        raw = await self.download_resource(resource)

        dataset_dir = self.output_dir / category / sanitize_filename(str(package.get("name") or item.id))
        write_json(dataset_dir / METADATA_FILE, metadata)

        tracker.advance("transforming")
        payload = parse_payload(raw)
        records = transform_category(
            extract_records(payload),
            category,
            source=metadata["organization"]["title"],
            source_url=metadata["source_url"],
            logger=logger,
        )
        write_json(
            dataset_dir / RAW_FILE,
            {
                "source": SOURCE_ID,
                "downloaded_at": timestamp,
                "resource": {
                    "id": resource.get("id"),
                    "name": resource.get("name"),
                    "format": resource.get("format"),
                    "url": resource.get("url"),
                },
                "data": {"csv": raw} if isinstance(raw, str) else raw,
            },
        )

        tracker.advance("validating")
        validation = validate_dataset(records, category, logger=logger)
        write_json(
            dataset_dir / TRANSFORMED_FILE,
            {
                "source": SOURCE_ID,
                "category": category,
                "transformed_at": timestamp,
                "record_count": len(records),
                "validation": validation.summary(),
                "data": records,
            },
        )
        write_json(dataset_dir / VALIDATION_FILE, validation.to_json_dict())

        tracker.advance("partitioning")
        index = partition_and_save(
            records,
            dataset_dir,
            DATE_FIELDS[category],
            dataset=str(package.get("name")),
            source=self.name,
            now=now,
            logger=logger,
        )

        logger.success(f"Downloaded to {category}/{dataset_dir.name}/ ({len(records)} records)")
        return ItemResult(
            name=self.item_name(item),
            status="saved",
            stage="partitioning",
            record_count=len(records),
            details={
                "category": category,
                "entry": {
                    "id": metadata["id"],
                    "name": metadata["name"],
                    "title": metadata["title"],
                    "recordCount": len(records),
                    "partitioned": index.partitioned,
                    "partitionCount": index.partition_count,
                    "dateRange": metadata["dataset_date"],
                    "lastModified": metadata["last_modified"],
                    "organization": metadata["organization"]["title"],
                    "tags": metadata["tags"],
                    "sourceUrl": metadata["source_url"],
                    "validation": validation.summary(),
                },
            },
        )

    def write_metadata(self, result: SourceRunResult) -> None:
        generated_at = self.now().isoformat()
        categories: dict[str, dict[str, Any]] = {}
        counts: dict[str, dict[str, Any]] = {
            category: {"downloaded": 0, "failed": 0, "errors": []}
            for category in HDX_CATEGORIES
        }

        for item in result.items:
            category = item.name.split("/", 1)[0]
            if item.status == "saved":
                counts[category]["downloaded"] += 1
                entry = item.details["entry"]
                bucket = categories.setdefault(
                    category,
                    {
                        "name": category,
                        "datasetCount": 0,
                        "totalRecords": 0,
                        "partitionedDatasets": 0,
                        "datasets": [],
                    },
                )
                bucket["datasets"].append(entry)
                bucket["datasetCount"] += 1
                bucket["totalRecords"] += entry["recordCount"]
                bucket["partitionedDatasets"] += int(entry["partitioned"])
            elif item.status == "failed":
                counts[category]["failed"] += 1
                counts[category]["errors"].append(
                    {"dataset": item.name, "stage": item.stage, "error": item.error}
                )

        write_json(
            self.output_dir / CATALOG_FILE,
            {
                "source": SOURCE_ID,
                "generated_at": generated_at,
                "baseline_date": settings.baseline_date,
                "summary": {
                    "totalCategories": len(categories),
                    "totalDatasets": sum(c["datasetCount"] for c in categories.values()),
                    "totalRecords": sum(c["totalRecords"] for c in categories.values()),
                    "totalPartitioned": sum(c["partitionedDatasets"] for c in categories.values()),
                },
                "categories": categories,
            },
        )
        write_json(
            self.output_dir / METADATA_FILE,
            {
                "source": SOURCE_ID,
                "generated_at": generated_at,
                "baseline_date": settings.baseline_date,
                "total_downloaded": result.succeeded,
                "total_failed": result.failed,
                "total_records": sum(i.record_count for i in result.items),
                "categories": counts,
                "errors": result.errors,
            },
        )
        self.logger.success(
            f"Updated catalog with {result.succeeded} datasets across {len(categories)} categories"
        )


def main() -> int:
    return run_source_main(HdxSource)


if __name__ == "__main__":
    sys.exit(main())
