"""
transforms/goodshepherd.py — Transformers for Good Shepherd Collective feeds.

Feeds and their standard record shapes:

  child_prisoners.json     date, name, age, location, status, notes
  prisoner_data.json       date, name, age, location, detention_type, notes
  home_demolitions.json    date, location, homes_demolished, people_affected, reason
  wb_data.json             date, location, incident_type, killed, injured, description
  healthcare_attacks.json  date, facility_name, facility_type, location, incident_type,
                           description, casualties{killed, injured, kidnapped}, lat/lon
  ngo_data.json            name, ein, state, totals from the latest filing

Every dated feed is filtered to dates on or after the baseline and sorted
ascending. Feed columns use the provider's spreadsheet headings
("Date of event", "Housing Units"), matched alongside snake_case aliases.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pulse_pipeline.transforms.normalize import (
    DateCoercer,
    clean_string,
    filter_since,
    pick,
    safe_float,
    safe_int,
    safe_int_or_zero,
    sort_by_date,
)

if TYPE_CHECKING:
    from pulse_pipeline.utils.logging import CollectionLogger

Row = dict[str, Any]
Record = dict[str, Any]

SOURCE = "goodshepherd-api"
PALESTINE_ISO_CODES = frozenset({"PSE", "PS"})


def _dated(
    rows: list[Row],
    mapper: Callable[[Row, str | None], Record],
    date_keys: tuple[str, ...],
    *,
    dataset: str,
    baseline: str,
    logger: CollectionLogger | None,
) -> list[Record]:
    dates = DateCoercer(dataset=dataset, logger=logger)
    mapped = [
        mapper(row, dates.coerce(pick(row, *date_keys), index=i))
        for i, row in enumerate(rows)
    ]
    return sort_by_date(filter_since(mapped, baseline))


# ---------------------------------------------------------------------------
# Prisoners
# ---------------------------------------------------------------------------


def transform_child_prisoners(
    rows: list[Row],
    *,
    baseline: str,
    source: str = SOURCE,
    logger: CollectionLogger | None = None,
) -> list[Record]:
    def mapper(row: Row, date: str | None) -> Record:
        return {
            "date": date,
            "name": clean_string(pick(row, "Name", "name")) or "Unknown",
            "age": safe_int(pick(row, "Age", "age")) or 17,
            "location": clean_string(pick(row, "Place of residence", "location")) or "Unknown",
            "status": "detained",
            "notes": clean_string(pick(row, "Notes", "notes")) or "",
            "source": source,
        }

    return _dated(
        rows, mapper, ("Date of event", "date"),
        dataset="child-prisoners", baseline=baseline, logger=logger,
    )


def transform_political_prisoners(
    rows: list[Row],
    *,
    baseline: str,
    source: str = SOURCE,
    logger: CollectionLogger | None = None,
) -> list[Record]:
    def mapper(row: Row, date: str | None) -> Record:
        return {
            "date": date,
            "name": clean_string(pick(row, "name", "Name")) or "Unknown",
            "age": safe_int(pick(row, "age", "Age")),
            "location": clean_string(pick(row, "location", "Place of residence")) or "Unknown",
            "detention_type": clean_string(row.get("detention_type")) or "administrative",
            "notes": clean_string(pick(row, "notes", "Notes")) or "",
            "source": source,
        }

    return _dated(
        rows, mapper, ("Date of event", "date"),
        dataset="political-prisoners", baseline=baseline, logger=logger,
    )


# ---------------------------------------------------------------------------
# Demolitions and West Bank incidents
# ---------------------------------------------------------------------------


def transform_demolitions(
    rows: list[Row],
    *,
    baseline: str,
    source: str = SOURCE,
    logger: CollectionLogger | None = None,
) -> list[Record]:
    def mapper(row: Row, date: str | None) -> Record:
        return {
            "date": date,
            "location": clean_string(pick(row, "Locality", "location")) or "Unknown",
            "homes_demolished": safe_int(pick(row, "Housing Units", "homes")) or 1,
            "people_affected": safe_int_or_zero(
                pick(row, "People left Homeless", "people_affected")
            ),
            "reason": clean_string(row.get("reason")) or "Administrative demolition",
            "source": source,
        }

    return _dated(
        rows, mapper, ("Date of Demolition", "date"),
        dataset="demolitions", baseline=baseline, logger=logger,
    )


def flatten_westbank_reports(raw: Any) -> list[Row]:
    """
    Flatten {reports: [{metadata: {Date}, data: [...]}, ...]} into rows.

    Each row carries `report_date` from its report's metadata.
    """
    if not isinstance(raw, dict) or not isinstance(raw.get("reports"), list):
        return []
    rows: list[Row] = []
    for report in raw["reports"]:
        if not isinstance(report, dict) or not isinstance(report.get("data"), list):
            continue
        metadata = report.get("metadata") if isinstance(report.get("metadata"), dict) else {}
        for item in report["data"]:
            if isinstance(item, dict):
                rows.append({**item, "report_date": metadata.get("Date")})
    return rows


def transform_westbank_incidents(
    rows: list[Row],
    *,
    baseline: str,
    source: str = SOURCE,
    logger: CollectionLogger | None = None,
) -> list[Record]:
    def mapper(row: Row, date: str | None) -> Record:
        return {
            "date": date,
            "location": clean_string(pick(row, "location", "Location")) or "West Bank",
            "incident_type": clean_string(pick(row, "incident_type", "type", "Incident Type"))
            or "unknown",
            "killed": safe_int_or_zero(pick(row, "killed", "Killed")),
            "injured": safe_int_or_zero(pick(row, "injured", "Injured")),
            "description": clean_string(pick(row, "description", "Description")) or "",
            "source": source,
        }

    return _dated(
        rows, mapper, ("date", "report_date", "Date of event"),
        dataset="westbank-incidents", baseline=baseline, logger=logger,
    )


# ---------------------------------------------------------------------------
# Healthcare attacks
# ---------------------------------------------------------------------------


def _in_palestine(row: Row) -> bool:
    if row.get("isoCode") in PALESTINE_ISO_CODES:
        return True
    location = row.get("location")
    return isinstance(location, str) and "palestine" in location.lower()


def transform_healthcare_attacks(
    rows: list[Row],
    *,
    baseline: str,
    source: str = SOURCE,
    logger: CollectionLogger | None = None,
) -> list[Record]:
    def mapper(row: Row, date: str | None) -> Record:
        return {
            "date": date,
            "facility_name": clean_string(pick(row, "facility_name", "facility")) or "Unknown",
            "facility_type": clean_string(pick(row, "facility_type", "type")) or "healthcare",
            "location": clean_string(row.get("location")) or "Unknown",
            "incident_type": clean_string(row.get("incident_type")) or "attack",
            "description": clean_string(pick(row, "editedIncidentDescription", "description"))
            or "",
            "casualties": {
                "killed": safe_int_or_zero(pick(row, "totalHealthWorkerKilled", "killed")),
                "injured": safe_int_or_zero(pick(row, "totalHealthWorkerInjured", "injured")),
                "kidnapped": safe_int_or_zero(row.get("totalHealthWorkerKidnapped")),
            },
            "latitude": safe_float(row.get("latitude")),
            "longitude": safe_float(row.get("longitude")),
            "source": source,
        }

    return _dated(
        [row for row in rows if _in_palestine(row)],
        mapper,
        ("isoDate", "date", "Date of event"),
        dataset="healthcare-attacks",
        baseline=baseline,
        logger=logger,
    )


# ---------------------------------------------------------------------------
# NGO financials (undated, never filtered by baseline)
# ---------------------------------------------------------------------------


def transform_ngo_organizations(
    raw: Any,
    *,
    current_year: int,
    source: str = SOURCE,
) -> list[Record]:
    """
    Map {value, data: [{name, ein, state, filings: [...], latestPdfUrl}]} to
    one record per organisation, totals taken from its last filing.
    """
    items = raw.get("data") if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        return []

    records: list[Record] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        filings = item.get("filings") if isinstance(item.get("filings"), list) else []
        latest = filings[-1] if filings and isinstance(filings[-1], dict) else {}
        records.append(
            {
                "name": clean_string(item.get("name")) or "Unknown",
                "ein": clean_string(pick(item, "ein", "EIN")) or "",
                "state": clean_string(item.get("state")) or "",
                "total_assets": safe_float(pick(latest, "assetsEnd") or item.get("total_assets"))
                or 0,
                "total_revenue": safe_float(pick(latest, "revenue") or item.get("totalRevenue"))
                or 0,
                "total_expenses": safe_float(latest.get("expenses")) or 0,
                "total_liabilities": safe_float(latest.get("liabilitiesEnd")) or 0,
                "filing_year": safe_int(latest.get("year")) or current_year,
                "filings_count": len(filings),
                "pdf_url": clean_string(item.get("latestPdfUrl")),
                "source": source,
            }
        )
    return records


def funding_by_year(organizations: list[Record]) -> list[Record]:
    """Aggregate revenue, expenses and assets per filing year, ascending."""
    years: dict[int, Record] = {}
    for org in organizations:
        year = org["filing_year"]
        bucket = years.setdefault(
            year,
            {
                "year": year,
                "total_revenue": 0,
                "total_expenses": 0,
                "total_assets": 0,
                "organization_count": 0,
            },
        )
        bucket["total_revenue"] += org.get("total_revenue") or 0
        bucket["total_expenses"] += org.get("total_expenses") or 0
        bucket["total_assets"] += org.get("total_assets") or 0
        bucket["organization_count"] += 1
    return [years[y] for y in sorted(years)]


def schema_for_dataset(name: str) -> str:
    """Validator schema for a Good Shepherd dataset name."""
    if "healthcare" in name:
        return "healthcare"
    if "demolition" in name:
        return "demolitions"
    if "prisoner" in name:
        return "casualties"
    if "ngo" in name:
        return "ngo"
    if "westbank" in name:
        return "westbank"
    return "generic"
