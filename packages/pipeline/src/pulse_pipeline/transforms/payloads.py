"""
transforms/payloads.py — Typed parse step for raw provider payloads.

Providers return records in several envelopes. The shape is recognised once,
at the I/O boundary, and everything downstream dispatches on the variant:

    [ {...}, {...} ]                       -> ArrayPayload
    {"data": [...]} / {"data": {"data": [...]}} / {"records": [...]}
                                           -> NestedDataPayload
    {"metadata": {"record_count": N}}      -> MetadataCountPayload (no records)
    {"csv": "..."} / {"data": {"csv": "..."}} / "a,b\\n1,2"
                                           -> EmbeddedCsvPayload

Usage:
    from pulse_pipeline.transforms.payloads import parse_payload, extract_records

    payload = parse_payload(response.json())
    records = extract_records(payload)
"""

from __future__ import annotations

import io
import json
from dataclasses import dataclass
from typing import Any

import polars as pl
import structlog

log = structlog.get_logger(__name__)


class PayloadError(ValueError):
    """Raw payload does not match any known envelope."""


@dataclass(frozen=True)
class ArrayPayload:
    records: list[dict[str, Any]]


@dataclass(frozen=True)
class NestedDataPayload:
    records: list[dict[str, Any]]


@dataclass(frozen=True)
class MetadataCountPayload:
    count: int


@dataclass(frozen=True)
class EmbeddedCsvPayload:
    text: str


Payload = ArrayPayload | NestedDataPayload | MetadataCountPayload | EmbeddedCsvPayload


def _records(items: list[Any]) -> list[dict[str, Any]]:
    return [item for item in items if isinstance(item, dict)]


def _looks_like_csv(text: str) -> bool:
    first_line = text.lstrip().split("\n", 1)[0]
    return "," in first_line


def parse_payload(raw: Any) -> Payload:
    """
    Recognise the envelope of a decoded (or still textual) payload.

    Args:
        raw: JSON-decoded value, or str/bytes of a JSON or CSV body.

    Returns:
        One of the Payload variants.

    Raises:
        PayloadError: for any other shape.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8-sig", errors="replace")

    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith(("[", "{")):
            try:
                return parse_payload(json.loads(text))
            except json.JSONDecodeError as exc:
                raise PayloadError(f"invalid JSON body: {exc}") from exc
        if text and _looks_like_csv(text):
            return EmbeddedCsvPayload(text=raw)
        raise PayloadError("text body is neither JSON nor CSV")

    if isinstance(raw, list):
        return ArrayPayload(records=_records(raw))

    if isinstance(raw, dict):
        if isinstance(raw.get("csv"), str):
            return EmbeddedCsvPayload(text=raw["csv"])

        data = raw.get("data")
        if isinstance(data, list):
            return NestedDataPayload(records=_records(data))
        if isinstance(data, dict):
            if isinstance(data.get("data"), list):
                return NestedDataPayload(records=_records(data["data"]))
            if isinstance(data.get("csv"), str):
                return EmbeddedCsvPayload(text=data["csv"])

        if isinstance(raw.get("records"), list):
            return NestedDataPayload(records=_records(raw["records"]))

        metadata = raw.get("metadata")
        if isinstance(metadata, dict) and "record_count" in metadata:
            try:
                return MetadataCountPayload(count=int(metadata["record_count"]))
            except (TypeError, ValueError) as exc:
                raise PayloadError(
                    f"metadata.record_count is not an integer: {metadata['record_count']!r}"
                ) from exc

        raise PayloadError(f"unrecognised object payload with keys {sorted(raw)[:10]}")

    raise PayloadError(f"unrecognised payload type {type(raw).__name__}")


def parse_csv(text: str) -> list[dict[str, Any]]:
    """
    Parse CSV text into row dicts, every column as a string.

    Lines starting with '#' are comments.
    """
    if not text.strip():
        return []
    df = pl.read_csv(
        io.StringIO(text),
        infer_schema_length=0,
        comment_prefix="#",
        truncate_ragged_lines=True,
    )
    return df.to_dicts()


def extract_records(payload: Payload) -> list[dict[str, Any]]:
    """Return the records carried by a payload (none for a count-only payload)."""
    match payload:
        case ArrayPayload(records=records) | NestedDataPayload(records=records):
            return list(records)
        case EmbeddedCsvPayload(text=text):
            return parse_csv(text)
        case MetadataCountPayload(count=count):
            log.debug("payload_count_only", record_count=count)
            return []
    raise PayloadError(f"not a payload: {payload!r}")
