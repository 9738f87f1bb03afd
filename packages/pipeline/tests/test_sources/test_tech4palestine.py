"""
tests/test_sources/test_tech4palestine.py — Passive scan of the Tech4Palestine tree.
"""

from __future__ import annotations

import os
from pathlib import Path

from pulse_pipeline.sources.tech4palestine import last_modified, scan


class TestScan:
    def test_finds_expected_datasets(self, tmp_path: Path):
        (tmp_path / "summary.json").write_text("{}")
        (tmp_path / "killed-in-gaza").mkdir()
        (tmp_path / "killed-in-gaza" / "page-2.json").write_text("[]")
        (tmp_path / "killed-in-gaza" / "page-1.json").write_text("[]")
        (tmp_path / "killed-in-gaza" / "index.json").write_text("[]")
        (tmp_path / "killed-in-gaza" / "notes.txt").write_text("")
        (tmp_path / "casualties").mkdir()

        found = {d.expected.key: d for d in scan(tmp_path)}

        assert set(found) == {"summary", "killedInGaza", "casualties"}
        assert not found["summary"].counts_records
        assert [p.name for p in found["killedInGaza"].files] == ["page-1.json", "page-2.json"]
        assert found["casualties"].files == []

    def test_missing_root(self, tmp_path: Path):
        assert scan(tmp_path / "absent") == []

    def test_last_modified_is_newest_file(self, tmp_path: Path):
        old, new = tmp_path / "press-killed.json", tmp_path / "summary.json"
        old.write_text("[]")
        new.write_text("{}")
        os.utime(old, (1_700_000_000, 1_700_000_000))
        os.utime(new, (1_710_000_000, 1_710_000_000))

        assert last_modified(scan(tmp_path)).timestamp() == 1_710_000_000
        assert last_modified([]) is None
