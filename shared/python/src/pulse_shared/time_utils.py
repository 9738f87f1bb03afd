"""
time_utils.py — Date parsing, quarter keys and date-window helpers.

The upstream providers publish dates in several formats:
- ISO: "2024-01-15"
- ISO datetime: "2024-01-15T10:30:00Z", "2024-01-15T10:30:00.000Z"
- US style: "01/15/2024", "1/5/2024"
- Day first: "15-01-2024", "15.01.2024"
- Slashed ISO: "2024/01/15"
- Text: "January 15, 2024", "15 Jan 2024"

Usage:
    from pulse_shared.time_utils import normalize_date, quarter_key

    normalize_date("01/15/2024")          # "2024-01-15"
    normalize_date("2024-01-15T10:30:00Z")  # "2024-01-15"
    quarter_key(date(2024, 8, 15))        # "2024-Q3"
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from typing import Any

from dateutil import parser as date_parser

# Reference used by dateutil for missing components; keeps parsing deterministic.
_PARSE_DEFAULT = datetime(2000, 1, 1)

ISO_DATE_PATTERN = re.compile(
    r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}:\d{2}(\.\d{3})?Z?)?$"
)


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(raw: Any) -> date | None:
    """
    Parse a provider date value into a Python date.

    Returns None if the value cannot be parsed. Never raises.

    Args:
        raw: str, date or datetime.

    Returns:
        datetime.date or None.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        return None

    s = raw.strip()
    if not s:
        return None

    # ISO date or datetime prefix: YYYY-MM-DD[...]
    m = re.match(r"(\d{4})-(\d{2})-(\d{2})(?:$|[T ])", s)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    # Slashed ISO: YYYY/MM/DD
    m = re.fullmatch(r"(\d{4})/(\d{1,2})/(\d{1,2})", s)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    # US style MM/DD/YYYY, day-first when the first part cannot be a month
    m = re.fullmatch(r"(\d{1,2})/(\d{1,2})/(\d{4})", s)
    if m:
        first, second, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        if first > 12:
            return _safe_date(year, second, first)
        return _safe_date(year, first, second)

    # Day first with dashes or dots: DD-MM-YYYY / DD.MM.YYYY
    m = re.fullmatch(r"(\d{1,2})[-.](\d{1,2})[-.](\d{4})", s)
    if m:
        return _safe_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))

    # Text months ("January 15, 2024", "15 Jan 2024")
    if re.search(r"[A-Za-z]{3,}", s) and re.search(r"\d{4}", s):
        try:
            return date_parser.parse(s, default=_PARSE_DEFAULT).date()
        except (ValueError, OverflowError):
            return None

    return None


def normalize_date(raw: Any) -> str | None:
    """Return the value as a YYYY-MM-DD string, or None if unparseable."""
    parsed = parse_date(raw)
    return parsed.isoformat() if parsed else None


def is_iso_date(value: Any) -> bool:
    """True for YYYY-MM-DD strings, optionally with a THH:MM:SS[.sss][Z] suffix."""
    if not isinstance(value, str) or not ISO_DATE_PATTERN.match(value):
        return False
    return parse_date(value) is not None


def quarter_key(d: date) -> str:
    """
    Return the calendar-quarter key for a date.

    Examples:
        quarter_key(date(2024, 8, 15))   -> "2024-Q3"
        quarter_key(date(2023, 12, 31))  -> "2023-Q4"
    """
    return f"{d.year}-Q{(d.month - 1) // 3 + 1}"


def date_span(values: Iterable[Any]) -> dict[str, str | None]:
    """Return {"start": ..., "end": ...} over the parseable values."""
    dates = sorted(d for d in (parse_date(v) for v in values) if d is not None)
    if not dates:
        return {"start": None, "end": None}
    return {"start": dates[0].isoformat(), "end": dates[-1].isoformat()}


def within_window(d: date, now: date, days: int) -> bool:
    """True when d falls in [now - days, now]."""
    return now - timedelta(days=days) <= d <= now
