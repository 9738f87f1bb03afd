"""
tests/test_transforms/test_normalize.py — Scalar cleaning, dates and locations.
"""

from __future__ import annotations

from datetime import date

import pytest

from pulse_pipeline.transforms.normalize import (
    DateCoercer,
    build_location,
    clean_string,
    filter_since,
    pick,
    safe_float,
    safe_int,
    sort_by_date,
)
from pulse_shared.time_utils import date_span, is_iso_date, normalize_date, quarter_key


class TestScalars:
    @pytest.mark.parametrize("value", [None, "", "  ", "N/A", "null", "-", "Unknown"])
    def test_missing_markers_clean_to_none(self, value):
        assert clean_string(value) is None

    def test_clean_string_strips(self):
        assert clean_string("  Gaza City ") == "Gaza City"

    def test_safe_float_handles_separators(self):
        assert safe_float("1,234.5") == 1234.5
        assert safe_float("$ 12") == 12.0
        assert safe_float("abc") is None
        assert safe_float(True) is None

    def test_safe_int_truncates(self):
        assert safe_int("7.9") == 7
        assert safe_int(float("nan")) is None

    def test_pick_skips_missing(self):
        assert pick({"a": "", "b": "n/a", "c": 3}, "a", "b", "c") == 3
        assert pick({"a": None}, "a", "b") is None


class TestDates:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("2024-01-15", "2024-01-15"),
            ("2024-01-15T10:30:00.000Z", "2024-01-15"),
            ("01/15/2024", "2024-01-15"),
            ("15/01/2024", "2024-01-15"),
            ("15-01-2024", "2024-01-15"),
            ("2024/1/5", "2024-01-05"),
            ("January 15, 2024", "2024-01-15"),
            ("2024-02-30", None),
            ("yesterday", None),
        ],
    )
    def test_normalize_date(self, raw, expected):
        assert normalize_date(raw) == expected

    def test_quarter_keys(self):
        assert quarter_key(date(2024, 8, 15)) == "2024-Q3"
        assert quarter_key(date(2023, 12, 31)) == "2023-Q4"
        assert quarter_key(date(2024, 1, 1)) == "2024-Q1"

    def test_iso_check(self):
        assert is_iso_date("2024-03-01")
        assert is_iso_date("2024-03-01T12:00:00Z")
        assert not is_iso_date("03/01/2024")
        assert not is_iso_date("2024-13-01")

    def test_date_span_ignores_unparseable(self):
        assert date_span(["2024-02-01", None, "bad", "2023-12-01"]) == {
            "start": "2023-12-01",
            "end": "2024-02-01",
        }
        assert date_span([]) == {"start": None, "end": None}

    def test_coercer_counts_failures_and_warns(self, quiet_logger):
        coercer = DateCoercer("conflict", logger=quiet_logger)
        assert coercer.coerce("2024-05-06", index=0) == "2024-05-06"
        assert coercer.coerce("", index=1) is None
        assert coercer.coerce("someday", index=2) is None
        assert coercer.failures == 1
        assert quiet_logger.counters.warnings == 1

    def test_filter_since_and_sort(self):
        records = [{"date": "2024-01-02"}, {"date": "2023-10-06"}, {"date": None}, {"date": "2023-10-07"}]
        kept = filter_since(records, "2023-10-07")
        assert [r["date"] for r in sort_by_date(kept)] == ["2023-10-07", "2024-01-02"]

    def test_sort_puts_undated_last(self):
        records = [{"date": None}, {"date": "2024-01-01"}]
        assert sort_by_date(records)[-1]["date"] is None


class TestLocation:
    def test_build_location_with_aliases_and_extra(self):
        row = {"governorate": "Rafah", "lat": "31.28", "lng": 34.25, "admin1": "Gaza Strip"}
        location = build_location(row, ("location", "governorate"), type="camp")
        assert location == {
            "name": "Rafah",
            "latitude": 31.28,
            "longitude": 34.25,
            "admin1": "Gaza Strip",
            "admin2": None,
            "type": "camp",
        }
