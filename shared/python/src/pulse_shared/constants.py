"""
constants.py — shared constants used across the pipeline and monitoring.

Source identifiers, display names and the published file names are defined
here so the fetchers, the manifest generator and the orchestrator agree on
the on-disk contract.
"""

from __future__ import annotations

from typing import Final

# ---------------------------------------------------------------------------
# Sources: directory id -> display name
# ---------------------------------------------------------------------------
SOURCES: Final[dict[str, str]] = {
    "hdx": "Humanitarian Data Exchange",
    "goodshepherd": "Good Shepherd Collective",
    "worldbank": "World Bank",
    "tech4palestine": "Tech4Palestine",
}

# ---------------------------------------------------------------------------
# HDX categories, in processing order
# ---------------------------------------------------------------------------
HDX_CATEGORIES: Final[tuple[str, ...]] = (
    "conflict",
    "education",
    "water",
    "infrastructure",
    "refugees",
    "humanitarian",
)

# HDX HAPI datasets live under hdx/{HAPI_DIR}/
HAPI_DIR: Final = "hapi"

# ---------------------------------------------------------------------------
# Published file names
# ---------------------------------------------------------------------------
MANIFEST_FILE: Final = "manifest.json"
METADATA_FILE: Final = "metadata.json"
CATALOG_FILE: Final = "catalog.json"
INDEX_FILE: Final = "index.json"
RECENT_FILE: Final = "recent.json"
SINGLE_FILE: Final = "data.json"
VALIDATION_FILE: Final = "validation.json"
VALIDATION_REPORT_FILE: Final = "validation-report.json"
RUN_SUMMARY_FILE: Final = "data-collection-summary.json"
WORLDBANK_ALL_FILE: Final = "all-indicators.json"

MANIFEST_VERSION: Final = "3.0.0"
