"""
transforms/hdx.py — Category transformers for HDX (CKAN) dataset rows.

Each HDX category has its own standard record shape. Provider columns are
matched through alias lists because different publishers name the same
measure differently (ACLED "fatalities" vs OCHA "killed").

Transformers are pure: rows in, standard records out. `source` on every
record is the publishing organisation's title unless the row names one.

Usage:
    from pulse_pipeline.transforms.hdx import transform_category, DATE_FIELDS

    records = transform_category(
        rows, "conflict", source="ACLED", source_url="https://data.humdata.org/dataset/x"
    )
    date_field = DATE_FIELDS["conflict"]   # "date"
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pulse_pipeline.transforms.normalize import (
    DateCoercer,
    build_location,
    clean_string,
    pick,
    safe_float,
    safe_int_or_zero,
)

if TYPE_CHECKING:
    from pulse_pipeline.utils.logging import CollectionLogger

Row = dict[str, Any]
Record = dict[str, Any]

# Field each category is partitioned on
DATE_FIELDS: dict[str, str] = {
    "conflict": "date",
    "education": "last_assessed",
    "water": "last_assessed",
    "infrastructure": "damage_date",
    "refugees": "date",
    "humanitarian": "date",
}

_FACILITY_NAMES = ("location", "governorate", "region", "area")


@dataclass
class _Context:
    source: str
    source_url: str | None
    dates: DateCoercer


def _conflict(row: Row, i: int, ctx: _Context) -> Record:
    return {
        "date": ctx.dates.coerce(pick(row, "event_date", "date", "timestamp"), index=i),
        "event_type": clean_string(pick(row, "event_type", "type")) or "unknown",
        "location": build_location(row, ("location", "admin1", "region")),
        "fatalities": safe_int_or_zero(pick(row, "fatalities", "killed", "deaths")),
        "injuries": safe_int_or_zero(pick(row, "injuries", "injured", "wounded")),
        "actors": {
            "actor1": clean_string(pick(row, "actor1", "perpetrator")),
            "actor2": clean_string(pick(row, "actor2", "target")),
        },
        "description": clean_string(pick(row, "notes", "description", "event_description")) or "",
        "source": clean_string(row.get("source")) or ctx.source,
        "source_url": clean_string(row.get("source_url")) or ctx.source_url,
    }


def _education(row: Row, i: int, ctx: _Context) -> Record:
    return {
        "facility_id": clean_string(pick(row, "id", "facility_id")),
        "name": clean_string(pick(row, "name", "facility_name", "school_name")) or "unknown",
        "type": clean_string(pick(row, "type", "facility_type")) or "school",
        "location": build_location(row, _FACILITY_NAMES),
        "status": clean_string(pick(row, "status", "operational_status")) or "unknown",
        "damage_level": clean_string(pick(row, "damage", "damage_level", "damage_assessment")),
        "students": safe_int_or_zero(pick(row, "students", "enrollment", "capacity")),
        "staff": safe_int_or_zero(pick(row, "staff", "teachers")),
        "last_assessed": ctx.dates.coerce(pick(row, "assessment_date", "last_updated"), index=i),
        "source": ctx.source,
    }


def _water(row: Row, i: int, ctx: _Context) -> Record:
    return {
        "facility_id": clean_string(pick(row, "id", "facility_id")),
        "name": clean_string(pick(row, "name", "facility_name")) or "unknown",
        "type": clean_string(pick(row, "type", "facility_type")) or "water",
        "location": build_location(row, _FACILITY_NAMES),
        "status": clean_string(pick(row, "status", "operational_status")) or "unknown",
        "capacity": safe_float(pick(row, "capacity", "daily_capacity")) or 0.0,
        "population_served": safe_int_or_zero(pick(row, "population_served", "beneficiaries")),
        "water_quality": clean_string(pick(row, "water_quality", "quality_status")),
        "last_assessed": ctx.dates.coerce(pick(row, "assessment_date", "last_updated"), index=i),
        "source": ctx.source,
    }


def _infrastructure(row: Row, i: int, ctx: _Context) -> Record:
    return {
        "structure_id": clean_string(pick(row, "id", "structure_id")),
        "name": clean_string(pick(row, "name", "building_name")) or "unknown",
        "type": clean_string(pick(row, "type", "structure_type", "building_type")) or "building",
        "location": build_location(row, _FACILITY_NAMES),
        "damage_level": clean_string(pick(row, "damage", "damage_level", "damage_assessment"))
        or "unknown",
        "damage_date": ctx.dates.coerce(
            pick(row, "damage_date", "incident_date", "date"), index=i
        ),
        "estimated_cost": safe_float(pick(row, "cost", "damage_cost", "estimated_cost")) or 0.0,
        "people_affected": safe_int_or_zero(pick(row, "people_affected", "affected_population")),
        "status": clean_string(pick(row, "status", "current_status")) or "damaged",
        "source": ctx.source,
    }


def _refugees(row: Row, i: int, ctx: _Context) -> Record:
    return {
        "date": ctx.dates.coerce(pick(row, "date", "reporting_date", "timestamp"), index=i),
        "location": build_location(
            row,
            _FACILITY_NAMES,
            type=clean_string(row.get("location_type")) or "area",
        ),
        "displaced_population": safe_int_or_zero(pick(row, "idps", "displaced", "population")),
        "refugees": safe_int_or_zero(row.get("refugees")),
        "displacement_type": clean_string(pick(row, "displacement_type", "type")) or "internal",
        "origin": clean_string(pick(row, "origin", "origin_location")),
        "destination": clean_string(pick(row, "destination", "current_location")),
        "reason": clean_string(pick(row, "reason", "displacement_reason")),
        "source": ctx.source,
    }


def _humanitarian(row: Row, i: int, ctx: _Context) -> Record:
    return {
        "date": ctx.dates.coerce(
            pick(row, "date", "reporting_date", "assessment_date"), index=i
        ),
        "location": build_location(row, _FACILITY_NAMES),
        "sector": clean_string(pick(row, "sector", "cluster")) or "multi-sector",
        "people_in_need": safe_int_or_zero(pick(row, "people_in_need", "pin", "affected")),
        "people_targeted": safe_int_or_zero(pick(row, "people_targeted", "target")),
        "people_reached": safe_int_or_zero(pick(row, "people_reached", "reached")),
        "severity": clean_string(pick(row, "severity", "severity_level")),
        "priority": clean_string(pick(row, "priority", "priority_level")),
        "funding_required": safe_float(pick(row, "funding_required", "budget")) or 0.0,
        "funding_received": safe_float(pick(row, "funding_received", "funded")) or 0.0,
        "source": ctx.source,
    }


_TRANSFORMERS: dict[str, Callable[[Row, int, _Context], Record]] = {
    "conflict": _conflict,
    "education": _education,
    "water": _water,
    "infrastructure": _infrastructure,
    "refugees": _refugees,
    "humanitarian": _humanitarian,
}


def transform_category(
    rows: list[Row],
    category: str,
    *,
    source: str,
    source_url: str | None = None,
    logger: CollectionLogger | None = None,
) -> list[Record]:
    """
    Map raw HDX rows to the standard record shape of `category`.

    Args:
        rows:       Records from extract_records().
        category:   One of the HDX categories.
        source:     Attribution (organisation title).
        source_url: Dataset landing page, carried on conflict records.
        logger:     Receives one warning per unparseable date.

    Returns:
        Standard records, same order as `rows`.

    Raises:
        KeyError: unknown category.
    """
    try:
        transformer = _TRANSFORMERS[category]
    except KeyError:
        raise KeyError(f"no HDX transformer for category {category!r}") from None

    ctx = _Context(source, source_url, DateCoercer(dataset=category, logger=logger))
    return [transformer(row, i, ctx) for i, row in enumerate(rows)]
