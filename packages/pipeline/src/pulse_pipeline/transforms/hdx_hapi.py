"""
transforms/hdx_hapi.py — Transformers for HDX HAPI (Humanitarian API) rows.

HAPI endpoints return flat rows under `data`. Standard record shapes:

  affected-people     date, location, affected, category
  population-social   date, location, population, category
  food-security       date, location, population, ipc_phase, ipc_type
  conflict-event      date, location, event_type, fatalities

Dated by reference_period_start (falling back to reference_period_end);
conflict events by event_date. Every record keeps the reference period and
`source` = "hdx-hapi". Records before the baseline are dropped and the rest
sorted ascending.

Usage:
    from pulse_pipeline.transforms.hdx_hapi import transform_affected_people

    records = transform_affected_people(payload["data"], baseline="2023-10-07")
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pulse_pipeline.transforms.normalize import (
    DateCoercer,
    clean_string,
    filter_since,
    pick,
    safe_int_or_zero,
    sort_by_date,
)

if TYPE_CHECKING:
    from pulse_pipeline.utils.logging import CollectionLogger

Row = dict[str, Any]
Record = dict[str, Any]

SOURCE = "hdx-hapi"
_REFERENCE_DATE = ("reference_period_start", "reference_period_end")


def hapi_rows(payload: Any) -> list[Row]:
    """Rows of a HAPI response ({"data": [...]}); anything else yields none."""
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        return [row for row in payload["data"] if isinstance(row, dict)]
    return []


def _location(row: Row) -> str:
    return clean_string(pick(row, "location_name", "admin1_name", "admin2_name")) or "unknown"


def _reference_period(row: Row) -> Record:
    return {
        "reference_period_start": clean_string(row.get("reference_period_start")),
        "reference_period_end": clean_string(row.get("reference_period_end")),
    }


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


def transform_affected_people(
    rows: list[Row],
    *,
    baseline: str,
    logger: CollectionLogger | None = None,
) -> list[Record]:
    def mapper(row: Row, date: str | None) -> Record:
        return {
            "date": date,
            "location": _location(row),
            "affected": safe_int_or_zero(pick(row, "population", "affected")),
            "category": clean_string(pick(row, "category", "population_group")) or "unknown",
            "source": SOURCE,
            **_reference_period(row),
        }

    return _dated(rows, mapper, _REFERENCE_DATE, dataset="casualties", baseline=baseline, logger=logger)


def transform_population_social(
    rows: list[Row],
    *,
    baseline: str,
    logger: CollectionLogger | None = None,
) -> list[Record]:
    def mapper(row: Row, date: str | None) -> Record:
        return {
            "date": date,
            "location": _location(row),
            "population": safe_int_or_zero(row.get("population")),
            "category": clean_string(pick(row, "category", "population_group")) or "unknown",
            "source": SOURCE,
            **_reference_period(row),
        }

    return _dated(rows, mapper, _REFERENCE_DATE, dataset="displacement", baseline=baseline, logger=logger)


def transform_food_security(
    rows: list[Row],
    *,
    baseline: str,
    logger: CollectionLogger | None = None,
) -> list[Record]:
    def mapper(row: Row, date: str | None) -> Record:
        return {
            "date": date,
            "location": _location(row),
            "population": safe_int_or_zero(row.get("population")),
            "ipc_phase": clean_string(row.get("ipc_phase")) or "unknown",
            "ipc_type": clean_string(row.get("ipc_type")) or "unknown",
            "source": SOURCE,
            **_reference_period(row),
        }

    return _dated(rows, mapper, _REFERENCE_DATE, dataset="food-security", baseline=baseline, logger=logger)


def transform_conflict_events(
    rows: list[Row],
    *,
    baseline: str,
    logger: CollectionLogger | None = None,
) -> list[Record]:
    def mapper(row: Row, date: str | None) -> Record:
        return {
            "date": date,
            "location": _location(row),
            "event_type": clean_string(row.get("event_type")) or "unknown",
            "fatalities": safe_int_or_zero(row.get("fatalities")),
            "source": SOURCE,
            **_reference_period(row),
        }

    return _dated(
        rows, mapper, ("event_date", *_REFERENCE_DATE),
        dataset="conflict-events", baseline=baseline, logger=logger,
    )
