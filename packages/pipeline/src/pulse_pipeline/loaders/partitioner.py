"""
loaders/partitioner.py — Quarter partitioning of standard datasets.

Output layout in `output_dir`:

  more than `threshold` records (default 1000):
      2024-Q1.json, 2024-Q2.json, ...   {metadata: {...}, data: [...]}
      index.json                        partition list with record counts
  otherwise:
      data.json                         every record, single file
  always (write_recent=True):
      recent.json                       records dated in [now - 90 days, now]

Records whose date field is missing or unparseable cannot be assigned a
quarter; they are left out of the partitions and counted in
`skipped_records`. Partition files from a previous run that are no longer
produced are removed, so the directory always reflects exactly one run.

Usage:
    from pulse_pipeline.loaders.partitioner import partition_and_save

    index = partition_and_save(
        records, data_dir / "goodshepherd" / "healthcare",
        dataset="healthcare-attacks", source="goodshepherd",
    )
    print(index.partitioned, len(index.partitions))
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from pulse_pipeline.loaders.json_store import write_json
from pulse_shared.config import settings
from pulse_shared.constants import INDEX_FILE, RECENT_FILE, SINGLE_FILE
from pulse_shared.time_utils import date_span, parse_date, quarter_key, within_window

if TYPE_CHECKING:
    from pulse_pipeline.utils.logging import CollectionLogger

log = structlog.get_logger(__name__)

QUARTER_FILE_PATTERN = re.compile(r"^\d{4}-Q[1-4]\.json$")


@dataclass
class PartitionInfo:
    file: str
    quarter: str
    record_count: int
    date_range: dict[str, str | None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "quarter": self.quarter,
            "record_count": self.record_count,
            "date_range": self.date_range,
        }


@dataclass
class PartitionIndex:
    """What partition_and_save() wrote."""

    partitioned: bool
    total_records: int
    partitions: list[PartitionInfo] = field(default_factory=list)
    skipped_records: int = 0
    recent_records: int | None = None
    date_range: dict[str, str | None] = field(
        default_factory=lambda: {"start": None, "end": None}
    )

    @property
    def partition_count(self) -> int:
        return len(self.partitions)

    @property
    def has_recent_file(self) -> bool:
        return self.recent_records is not None


def partition_by_quarter(
    records: list[dict[str, Any]],
    date_field: str = "date",
) -> tuple[dict[str, list[dict[str, Any]]], int]:
    """
    Bucket records by calendar quarter of `date_field`.

    Returns:
        ({quarter_key: records}, skipped) with quarters in ascending order;
        skipped counts records without a parseable date.
    """
    buckets: dict[str, list[dict[str, Any]]] = defaultdict(list)
    skipped = 0
    for record in records:
        d = parse_date(record.get(date_field))
        if d is None:
            skipped += 1
            continue
        buckets[quarter_key(d)].append(record)
    return dict(sorted(buckets.items())), skipped


def recent_records(
    records: list[dict[str, Any]],
    now: date,
    days: int,
    date_field: str = "date",
) -> list[dict[str, Any]]:
    """Records dated within [now - days, now]."""
    selected = []
    for record in records:
        d = parse_date(record.get(date_field))
        if d is not None and within_window(d, now, days):
            selected.append(record)
    return selected


def _remove_stale(output_dir: Path, keep: set[str], *, partitioned: bool) -> None:
    for path in output_dir.iterdir():
        if not path.is_file() or path.name in keep:
            continue
        stale_quarter = bool(QUARTER_FILE_PATTERN.match(path.name))
        stale_mode_file = path.name == (SINGLE_FILE if partitioned else INDEX_FILE)
        if stale_quarter or stale_mode_file:
            path.unlink()
            log.debug("stale_partition_removed", path=str(path))


def partition_and_save(
    records: list[dict[str, Any]],
    output_dir: Path,
    date_field: str = "date",
    *,
    dataset: str,
    source: str,
    now: datetime | None = None,
    threshold: int | None = None,
    recent_days: int | None = None,
    write_recent: bool = True,
    logger: CollectionLogger | None = None,
) -> PartitionIndex:
    """
    Write a dataset as quarter partitions or a single file, plus recent.json.

    Args:
        records:      Standard records.
        output_dir:   Dataset directory (created if needed).
        date_field:   Field holding the record date.
        dataset:      Dataset id written into file metadata.
        source:       Source id written into file metadata.
        now:          Reference time for the recent window (default: now, UTC).
        threshold:    Partition above this many records (default settings).
        recent_days:  Recent window length (default settings).
        write_recent: Write recent.json.
        logger:       Collection logger for progress lines.

    Returns:
        PartitionIndex describing the files written.

    Raises:
        StorageError: a write failed.
    """
    now = now or datetime.now(timezone.utc)
    threshold = settings.partition_threshold if threshold is None else threshold
    recent_days = settings.recent_window_days if recent_days is None else recent_days
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    generated_at = now.isoformat()

    total = len(records)
    overall_range = date_span(r.get(date_field) for r in records)
    written: set[str] = set()

    if total > threshold:
        buckets, skipped = partition_by_quarter(records, date_field)
        if skipped:
            message = f"{skipped} records in {dataset} have no parseable {date_field}, excluded from partitions"
            if logger is not None:
                logger.warn(message)
            else:
                log.warning("records_without_date", dataset=dataset, skipped=skipped)

        partitions: list[PartitionInfo] = []
        for quarter, bucket in buckets.items():
            info = PartitionInfo(
                file=f"{quarter}.json",
                quarter=quarter,
                record_count=len(bucket),
                date_range=date_span(r.get(date_field) for r in bucket),
            )
            write_json(
                output_dir / info.file,
                {
                    "metadata": {
                        "source": source,
                        "dataset": dataset,
                        "quarter": quarter,
                        "record_count": info.record_count,
                        "date_range": info.date_range,
                        "last_updated": generated_at,
                    },
                    "data": bucket,
                },
            )
            written.add(info.file)
            partitions.append(info)

        result = PartitionIndex(
            partitioned=True,
            total_records=total - skipped,
            partitions=partitions,
            skipped_records=skipped,
            date_range=overall_range,
        )
    else:
        write_json(
            output_dir / SINGLE_FILE,
            {
                "metadata": {
                    "source": source,
                    "dataset": dataset,
                    "record_count": total,
                    "date_range": overall_range,
                    "last_updated": generated_at,
                },
                "data": records,
            },
        )
        written.add(SINGLE_FILE)
        result = PartitionIndex(partitioned=False, total_records=total, date_range=overall_range)

    if write_recent:
        recent = recent_records(records, now.date(), recent_days, date_field)
        write_json(
            output_dir / RECENT_FILE,
            {
                "metadata": {
                    "source": source,
                    "dataset": dataset,
                    "description": f"Last {recent_days} days of data",
                    "record_count": len(recent),
                    "date_range": date_span(r.get(date_field) for r in recent),
                    "window_days": recent_days,
                    "last_updated": generated_at,
                },
                "data": recent,
            },
        )
        written.add(RECENT_FILE)
        result.recent_records = len(recent)

    if result.partitioned:
        write_json(
            output_dir / INDEX_FILE,
            {
                "dataset": dataset,
                "source": source,
                "total_partitions": result.partition_count,
                "total_records": result.total_records,
                "skipped_records": result.skipped_records,
                "date_range": result.date_range,
                "partitions": [p.to_dict() for p in result.partitions],
                "has_recent_file": result.has_recent_file,
                "recent_file": RECENT_FILE if result.has_recent_file else None,
                "generated_at": generated_at,
            },
        )
        written.add(INDEX_FILE)

    _remove_stale(output_dir, written, partitioned=result.partitioned)

    summary = (
        f"Partitioned {dataset} into {result.partition_count} quarters ({result.total_records} records)"
        if result.partitioned
        else f"Saved {dataset} as a single file ({total} records)"
    )
    if logger is not None:
        logger.info(summary)
    else:
        log.info(
            "dataset_saved",
            dataset=dataset,
            partitioned=result.partitioned,
            partitions=result.partition_count,
            records=result.total_records,
            recent=result.recent_records,
        )
    return result
