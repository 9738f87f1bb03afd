"""
transforms/normalize.py — Field-level helpers shared by every transformer.

Provider rows use inconsistent field names ("fatalities" / "killed" /
"deaths"), string-typed numbers ("1,234", "N/A") and mixed date formats.
These helpers turn one raw value into its standard form and never raise.

Usage:
    from pulse_pipeline.transforms.normalize import pick, safe_int, DateCoercer

    fatalities = safe_int(pick(row, "fatalities", "killed", "deaths"))
    dates = DateCoercer(dataset="conflict", logger=logger)
    record["date"] = dates.coerce(pick(row, "event_date", "date"), index=i)
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import structlog

from pulse_shared.time_utils import normalize_date, parse_date

if TYPE_CHECKING:
    from pulse_pipeline.utils.logging import CollectionLogger

log = structlog.get_logger(__name__)

_MISSING_MARKERS = {"", "n/a", "na", "null", "none", "-", "--", "unknown"}
_NUMBER_CLEAN = re.compile(r"[,\s$]")


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() in _MISSING_MARKERS
    return False


def clean_string(value: Any) -> str | None:
    """Strip whitespace; missing markers become None."""
    if is_missing(value):
        return None
    return str(value).strip()


def safe_float(value: Any) -> float | None:
    """Parse a number, tolerating thousands separators and currency signs."""
    if is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(_NUMBER_CLEAN.sub("", str(value)))
    except ValueError:
        return None


def safe_int(value: Any) -> int | None:
    number = safe_float(value)
    if number is None or number != number:  # NaN
        return None
    return int(number)


def safe_int_or_zero(value: Any) -> int:
    return safe_int(value) or 0


def pick(record: dict[str, Any], *keys: str) -> Any:
    """Return the first non-missing value among `keys`, else None."""
    for key in keys:
        value = record.get(key)
        if not is_missing(value):
            return value
    return None


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------


def build_location(
    record: dict[str, Any],
    name_keys: Iterable[str] = ("location", "admin1", "region"),
    **extra: Any,
) -> dict[str, Any]:
    """
    Standard location object: {name, latitude, longitude, admin1, admin2, ...}.

    `extra` entries are added verbatim (e.g. type="camp").
    """
    location: dict[str, Any] = {
        "name": clean_string(pick(record, *name_keys)),
        "latitude": safe_float(pick(record, "latitude", "lat")),
        "longitude": safe_float(pick(record, "longitude", "lon", "lng")),
        "admin1": clean_string(record.get("admin1")),
        "admin2": clean_string(record.get("admin2")),
    }
    location.update(extra)
    return location


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


class DateCoercer:
    """
    Normalises dates to YYYY-MM-DD for one dataset.

    An unparseable non-empty value becomes None and produces one warning per
    record; the transform continues. `failures` counts them.
    """

    def __init__(self, dataset: str, logger: CollectionLogger | None = None) -> None:
        self.dataset = dataset
        self._logger = logger
        self.failures = 0

    def coerce(self, value: Any, *, index: int | None = None) -> str | None:
        if is_missing(value):
            return None
        normalized = normalize_date(value)
        if normalized is None:
            self.failures += 1
            if self._logger is not None:
                self._logger.warn(
                    f"Unparseable date in {self.dataset}",
                    value=str(value),
                    record_index=index,
                )
            else:
                log.warning(
                    "unparseable_date",
                    dataset=self.dataset,
                    value=str(value),
                    record_index=index,
                )
        return normalized


def filter_since(
    records: Iterable[dict[str, Any]],
    baseline: str,
    field: str = "date",
) -> list[dict[str, Any]]:
    """Keep records dated on or after `baseline` (undated records are dropped)."""
    start = parse_date(baseline)
    kept = []
    for record in records:
        d = parse_date(record.get(field))
        if d is not None and (start is None or d >= start):
            kept.append(record)
    return kept


def sort_by_date(
    records: Iterable[dict[str, Any]],
    field: str = "date",
) -> list[dict[str, Any]]:
    """Stable sort ascending by date; undated records go last."""
    return sorted(records, key=lambda r: (r.get(field) is None, r.get(field) or ""))
