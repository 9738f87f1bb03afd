"""
validation/schemas.py — Schema registry for the data validator.

One frozen DatasetSchema per dataset type. Field names follow the standard
records the transformers emit, so a clean transform validates at 1.0.

Lookup rules (get_schema):
  1. exact, case-insensitive match on the type name
  2. partial match either way ("hdx-conflict" -> conflict, "ngo" -> ngo)
  3. the permissive `generic` schema, with a logged warning

Usage:
    from pulse_pipeline.validation.schemas import get_schema

    schema = get_schema("healthcare-attacks")   # healthcare schema
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

import structlog

log = structlog.get_logger(__name__)

FieldType = Literal["string", "number", "boolean", "array", "object"]


@dataclass(frozen=True)
class NumericRange:
    min: float | None = None
    max: float | None = None

    def contains(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True

    def describe(self) -> str:
        return f"{self.min}-{self.max}"


@dataclass(frozen=True)
class DatasetSchema:
    name: str
    required_fields: tuple[str, ...] = ()
    optional_fields: tuple[str, ...] = ()
    field_types: dict[str, FieldType] = field(default_factory=dict)
    numeric_ranges: dict[str, NumericRange] = field(default_factory=dict)
    enum_values: dict[str, tuple[str, ...]] = field(default_factory=dict)
    # Fields that must hold YYYY-MM-DD[THH:MM:SS[.sss][Z]] when present
    date_fields: tuple[str, ...] = ("date",)


SCHEMAS: dict[str, DatasetSchema] = {
    "casualties": DatasetSchema(
        name="casualties",
        required_fields=("date", "killed", "injured"),
        optional_fields=("location", "region", "incident_type", "source"),
        field_types={
            "date": "string",
            "killed": "number",
            "injured": "number",
            "location": "string",
            "region": "string",
            "incident_type": "string",
            "source": "string",
        },
        numeric_ranges={
            "killed": NumericRange(0, 100_000),
            "injured": NumericRange(0, 500_000),
        },
    ),
    "demolitions": DatasetSchema(
        name="demolitions",
        required_fields=("date", "location", "homes_demolished"),
        optional_fields=("people_affected", "reason", "source"),
        field_types={
            "date": "string",
            "location": "string",
            "homes_demolished": "number",
            "people_affected": "number",
            "reason": "string",
            "source": "string",
        },
        numeric_ranges={
            "homes_demolished": NumericRange(0, 10_000),
            "people_affected": NumericRange(0, 100_000),
        },
    ),
    "healthcare": DatasetSchema(
        name="healthcare",
        required_fields=("date", "facility_name", "incident_type"),
        optional_fields=("facility_type", "location", "casualties", "latitude", "longitude"),
        field_types={
            "date": "string",
            "facility_name": "string",
            "incident_type": "string",
            "facility_type": "string",
            "location": "string",
            "casualties": "object",
            "latitude": "number",
            "longitude": "number",
        },
        numeric_ranges={
            "latitude": NumericRange(-90, 90),
            "longitude": NumericRange(-180, 180),
        },
        enum_values={
            "facility_type": (
                "hospital",
                "clinic",
                "pharmacy",
                "ambulance",
                "medical_center",
                "healthcare",
            ),
        },
    ),
    "ngo": DatasetSchema(
        name="ngo",
        required_fields=("name", "filing_year"),
        optional_fields=("ein", "state", "total_assets", "total_revenue", "total_expenses"),
        field_types={
            "name": "string",
            "ein": "string",
            "state": "string",
            "total_assets": "number",
            "total_revenue": "number",
            "total_expenses": "number",
            "total_liabilities": "number",
            "filing_year": "number",
        },
        numeric_ranges={
            "total_revenue": NumericRange(0, 1_000_000_000),
            "filing_year": NumericRange(1990, 2030),
        },
        date_fields=(),
    ),
    "worldbank": DatasetSchema(
        name="worldbank",
        required_fields=("year", "value", "country"),
        optional_fields=("indicator", "indicator_name", "source"),
        field_types={
            "year": "number",
            "value": "number",
            "country": "string",
            "indicator": "string",
            "indicator_name": "string",
        },
        numeric_ranges={"year": NumericRange(1960, 2030)},
        date_fields=(),
    ),
    "conflict": DatasetSchema(
        name="conflict",
        required_fields=("date", "event_type", "location"),
        optional_fields=("fatalities", "injuries", "actors", "description", "source"),
        field_types={
            "date": "string",
            "event_type": "string",
            "location": "object",
            "fatalities": "number",
            "injuries": "number",
            "actors": "object",
            "description": "string",
            "source": "string",
        },
        numeric_ranges={
            "fatalities": NumericRange(0, 100_000),
            "injuries": NumericRange(0, 500_000),
        },
    ),
    "infrastructure": DatasetSchema(
        name="infrastructure",
        required_fields=("damage_date", "type", "damage_level"),
        optional_fields=("name", "location", "estimated_cost", "people_affected", "status"),
        field_types={
            "damage_date": "string",
            "type": "string",
            "damage_level": "string",
            "name": "string",
            "location": "object",
            "estimated_cost": "number",
            "people_affected": "number",
        },
        numeric_ranges={"estimated_cost": NumericRange(0, None)},
        enum_values={
            "damage_level": ("destroyed", "severe", "moderate", "minor", "damaged", "unknown"),
        },
        date_fields=("damage_date",),
    ),
    "humanitarian": DatasetSchema(
        name="humanitarian",
        required_fields=("date", "sector", "people_in_need"),
        optional_fields=("location", "people_targeted", "people_reached", "severity"),
        field_types={
            "date": "string",
            "sector": "string",
            "location": "object",
            "people_in_need": "number",
            "people_targeted": "number",
            "people_reached": "number",
            "funding_required": "number",
            "funding_received": "number",
        },
        numeric_ranges={
            "people_in_need": NumericRange(0, 10_000_000),
            "funding_required": NumericRange(0, None),
            "funding_received": NumericRange(0, None),
        },
    ),
    "education": DatasetSchema(
        name="education",
        required_fields=("name", "type", "status"),
        optional_fields=("facility_id", "location", "damage_level", "students", "staff"),
        field_types={
            "name": "string",
            "type": "string",
            "status": "string",
            "location": "object",
            "students": "number",
            "staff": "number",
            "last_assessed": "string",
        },
        numeric_ranges={
            "students": NumericRange(0, 100_000),
            "staff": NumericRange(0, 10_000),
        },
        date_fields=("last_assessed",),
    ),
    "water": DatasetSchema(
        name="water",
        required_fields=("name", "type", "status"),
        optional_fields=("facility_id", "location", "capacity", "population_served"),
        field_types={
            "name": "string",
            "type": "string",
            "status": "string",
            "location": "object",
            "capacity": "number",
            "population_served": "number",
            "last_assessed": "string",
        },
        numeric_ranges={
            "capacity": NumericRange(0, None),
            "population_served": NumericRange(0, 10_000_000),
        },
        date_fields=("last_assessed",),
    ),
    "refugees": DatasetSchema(
        name="refugees",
        required_fields=("date", "location", "displaced_population"),
        optional_fields=("refugees", "displacement_type", "origin", "destination", "reason"),
        field_types={
            "date": "string",
            "location": "object",
            "displaced_population": "number",
            "refugees": "number",
            "displacement_type": "string",
        },
        numeric_ranges={
            "displaced_population": NumericRange(0, 10_000_000),
            "refugees": NumericRange(0, 10_000_000),
        },
    ),
    "westbank": DatasetSchema(
        name="westbank",
        required_fields=("date", "location", "incident_type"),
        optional_fields=("killed", "injured", "description", "source"),
        field_types={
            "date": "string",
            "location": "string",
            "incident_type": "string",
            "killed": "number",
            "injured": "number",
            "description": "string",
        },
        numeric_ranges={
            "killed": NumericRange(0, 100_000),
            "injured": NumericRange(0, 500_000),
        },
    ),
    "hapi": DatasetSchema(
        name="hapi",
        required_fields=("date", "location"),
        optional_fields=("affected", "population", "category", "event_type", "fatalities", "source"),
        field_types={
            "date": "string",
            "location": "string",
            "affected": "number",
            "population": "number",
            "category": "string",
            "event_type": "string",
            "fatalities": "number",
            "source": "string",
        },
        numeric_ranges={
            "affected": NumericRange(0, 10_000_000),
            "population": NumericRange(0, 10_000_000),
            "fatalities": NumericRange(0, 100_000),
        },
    ),
    "generic": DatasetSchema(name="generic"),
}


def get_schema(dataset_type: str) -> DatasetSchema:
    """
    Resolve a dataset type to its schema. Never raises.

    Args:
        dataset_type: Schema name or any name containing one.

    Returns:
        DatasetSchema (generic when nothing matches).
    """
    normalized = dataset_type.strip().lower()
    if normalized in SCHEMAS:
        return SCHEMAS[normalized]

    if normalized:
        for name, schema in SCHEMAS.items():
            if name == "generic":
                continue
            if name in normalized or normalized in name:
                return schema

    log.warning("schema_fallback_generic", dataset_type=dataset_type)
    return SCHEMAS["generic"]
