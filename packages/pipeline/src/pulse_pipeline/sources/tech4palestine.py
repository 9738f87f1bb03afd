"""
sources/tech4palestine.py — Passive description of the Tech4Palestine tree.

Tech4Palestine files arrive through their own upstream job; this pipeline
never fetches or writes them. The manifest generator uses the layout below
to find the files and count their records.

Expected layout under {data_dir}/tech4palestine/:
  summary.json           daily summary (presence only)
  press-killed.json      journalists killed
  casualties/*.json      casualty series
  killed-in-gaza/*.json  named victims, split files (index.json excluded)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

NAME = "tech4palestine"

DatasetKind = Literal["presence", "file", "directory"]


@dataclass(frozen=True)
class ExpectedDataset:
    key: str
    path: str
    kind: DatasetKind
    exclude: tuple[str, ...] = ()


EXPECTED_DATASETS: tuple[ExpectedDataset, ...] = (
    ExpectedDataset("summary", "summary.json", "presence"),
    ExpectedDataset("pressKilled", "press-killed.json", "file"),
    ExpectedDataset("casualties", "casualties", "directory"),
    ExpectedDataset("killedInGaza", "killed-in-gaza", "directory", exclude=("index.json",)),
)


@dataclass
class FoundDataset:
    expected: ExpectedDataset
    files: list[Path]

    @property
    def counts_records(self) -> bool:
        return self.expected.kind != "presence"


def scan(root: Path) -> list[FoundDataset]:
    """
    The expected datasets present under `root` (the tech4palestine directory).

    A directory dataset is present when the directory exists, even if empty.
    """
    found: list[FoundDataset] = []
    for expected in EXPECTED_DATASETS:
        target = root / expected.path
        if expected.kind == "directory":
            if not target.is_dir():
                continue
            files = sorted(
                p
                for p in target.iterdir()
                if p.is_file() and p.suffix == ".json" and p.name not in expected.exclude
            )
            found.append(FoundDataset(expected, files))
        elif target.is_file():
            found.append(FoundDataset(expected, [target]))
    return found


def last_modified(found: list[FoundDataset]) -> datetime | None:
    """Newest modification time over the scanned files."""
    mtimes = [p.stat().st_mtime for d in found for p in d.files]
    if not mtimes:
        return None
    return datetime.fromtimestamp(max(mtimes), tz=timezone.utc)
