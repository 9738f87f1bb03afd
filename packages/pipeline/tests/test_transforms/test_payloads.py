"""
tests/test_transforms/test_payloads.py — Envelope recognition and record extraction.
"""

from __future__ import annotations

import pytest

from pulse_pipeline.transforms.payloads import (
    ArrayPayload,
    EmbeddedCsvPayload,
    MetadataCountPayload,
    NestedDataPayload,
    PayloadError,
    extract_records,
    parse_csv,
    parse_payload,
)


class TestParsePayload:
    def test_bare_array(self):
        assert parse_payload([{"a": 1}, "junk", {"a": 2}]) == ArrayPayload(records=[{"a": 1}, {"a": 2}])

    def test_data_array(self):
        assert parse_payload({"data": [{"a": 1}]}) == NestedDataPayload(records=[{"a": 1}])

    def test_doubly_nested_data(self):
        payload = parse_payload({"metadata": {}, "data": {"data": [{"a": 1}, {"a": 2}]}})
        assert isinstance(payload, NestedDataPayload)
        assert len(payload.records) == 2

    def test_records_key(self):
        assert parse_payload({"records": [{"a": 1}]}) == NestedDataPayload(records=[{"a": 1}])

    def test_metadata_count_only(self):
        assert parse_payload({"metadata": {"record_count": "42"}}) == MetadataCountPayload(count=42)

    def test_embedded_csv_top_level_and_nested(self):
        assert isinstance(parse_payload({"csv": "a,b\n1,2"}), EmbeddedCsvPayload)
        assert isinstance(parse_payload({"data": {"csv": "a,b\n1,2"}}), EmbeddedCsvPayload)

    def test_bare_csv_text(self):
        assert parse_payload("date,killed\n2024-01-01,3\n") == EmbeddedCsvPayload(
            text="date,killed\n2024-01-01,3\n"
        )

    def test_json_text_is_decoded(self):
        assert parse_payload(b'[{"a": 1}]') == ArrayPayload(records=[{"a": 1}])

    @pytest.mark.parametrize(
        "raw",
        [{"unexpected": True}, 42, None, "just words", "{not json", {"metadata": {"record_count": "x"}}],
    )
    def test_unknown_shapes_raise(self, raw):
        with pytest.raises(PayloadError):
            parse_payload(raw)


class TestExtractRecords:
    def test_csv_rows_as_strings_with_comments_skipped(self):
        text = "# exported 2024-10-01\nevent_date,fatalities\n2024-01-02,3\n2024-01-03,\n"
        rows = extract_records(parse_payload({"csv": text}))
        assert rows == [
            {"event_date": "2024-01-02", "fatalities": "3"},
            {"event_date": "2024-01-03", "fatalities": None},
        ]

    def test_count_only_payload_has_no_records(self):
        assert extract_records(MetadataCountPayload(count=7)) == []

    def test_extract_returns_copy(self):
        payload = ArrayPayload(records=[{"a": 1}])
        records = extract_records(payload)
        records.append({"a": 2})
        assert len(payload.records) == 1

    def test_empty_csv(self):
        assert parse_csv("   ") == []
