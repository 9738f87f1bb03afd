"""
loaders/json_store.py — Atomic JSON writes under the published data tree.

The dashboard reads files from public/data while a run is in progress, so a
published path must never hold a half-written file. write_json() writes to a
temporary sibling and swaps it into place with os.replace(); the result
carries the usual umask-derived mode, not mkstemp's owner-only 0600.

Usage:
    from pulse_pipeline.loaders.json_store import write_json, read_json

    write_json(data_dir / "hdx" / "catalog.json", catalog)
    catalog = read_json(data_dir / "hdx" / "catalog.json")
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Iterable
from datetime import date, datetime
from pathlib import Path
from typing import Any

import structlog

log = structlog.get_logger(__name__)


class StorageError(OSError):
    """A write at a published path failed. Aborts the current fetcher."""

    def __init__(self, path: Path, cause: BaseException) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"failed to write {path}: {cause}")


def _published_mode() -> int:
    """Mode a plain open() would give a new file under the current umask."""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json", by_alias=True)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def write_json(path: Path, data: Any, *, indent: int | None = 2) -> int:
    """
    Serialise `data` to `path` atomically.

    Args:
        path:   Destination file; parent directories are created.
        data:   JSON-serialisable value (datetimes and pydantic models allowed).
        indent: Pretty-print indent (None for compact output).

    Returns:
        Number of bytes written.

    Raises:
        StorageError: on any filesystem failure.
    """
    path = Path(path)
    tmp_name: str | None = None
    try:
        payload = json.dumps(data, indent=indent, ensure_ascii=False, default=_default)
        encoded = payload.encode("utf-8")
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
        with os.fdopen(fd, "wb") as fh:
            fh.write(encoded)
        # mkstemp files are 0600
        os.chmod(tmp_name, _published_mode())
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as exc:
        log.error("json_write_failed", path=str(path), error=str(exc))
        raise StorageError(path, exc) from exc
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)

    log.debug("json_written", path=str(path), bytes=len(encoded))
    return len(encoded)


def read_json(path: Path) -> Any:
    """Load a JSON file. Raises OSError / json.JSONDecodeError unchanged."""
    with Path(path).open(encoding="utf-8") as fh:
        return json.load(fh)


def read_json_or_none(path: Path) -> Any:
    """Load a JSON file, or None (with a warning) when missing or malformed."""
    try:
        return read_json(path)
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as exc:
        log.warning("json_read_failed", path=str(path), error=str(exc))
        return None


def directory_size(root: Path, *, exclude: Iterable[Path] = ()) -> int:
    """Total size in bytes of the files under `root`, skipping `exclude`."""
    root = Path(root)
    if not root.exists():
        return 0
    skipped = {Path(p).resolve() for p in exclude}
    total = 0
    for path in root.rglob("*"):
        if not path.is_file() or path.name.endswith(".tmp"):
            continue
        if path.resolve() in skipped:
            continue
        try:
            total += path.stat().st_size
        except OSError:
            continue
    return total
