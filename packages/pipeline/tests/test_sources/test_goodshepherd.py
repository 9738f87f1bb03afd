"""
tests/test_sources/test_goodshepherd.py — Good Shepherd feeds, NGO data and statistics.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest
import respx

from pulse_pipeline.sources.goodshepherd import Feed, GoodShepherdSource

BASE = "https://gs.test/api"
NOW = datetime(2024, 3, 1, tzinfo=timezone.utc)

WEST_BANK = {
    "reports": [
        {
            "metadata": {"Date": "2024-02-20"},
            "data": [{"location": "Jenin", "type": "Raid", "killed": 2, "injured": 5}],
        }
    ]
}
HEALTHCARE = [
    {"isoCode": "PSE", "isoDate": "2024-01-15", "facility": "Al-Shifa", "totalHealthWorkerKilled": 3},
    {"isoCode": "SDN", "isoDate": "2024-01-16", "facility": "Elsewhere"},
]
NGO = {
    "value": 2,
    "data": [
        {"name": "Relief Org", "ein": "1", "filings": [{"year": 2022, "revenue": 100, "expenses": 80}]},
        {"name": "Aid Org", "ein": "2", "filings": [{"year": 2023, "revenue": 50}]},
    ],
}


def _read(path):
    return json.loads(path.read_text())


@pytest.fixture
def gs_router(goodshepherd_child_prisoners):
    with respx.mock() as router:
        router.get(f"{BASE}/child_prisoners.json").mock(
            return_value=httpx.Response(200, json=goodshepherd_child_prisoners)
        )
        router.get(f"{BASE}/prisoner_data.json").mock(return_value=httpx.Response(200, json=[]))
        router.get(f"{BASE}/home_demolitions.json").mock(return_value=httpx.Response(404))
        router.get(f"{BASE}/wb_data.json").mock(return_value=httpx.Response(200, json=WEST_BANK))
        router.get(f"{BASE}/healthcare_attacks.json").mock(return_value=httpx.Response(200, json=HEALTHCARE))
        router.get(f"{BASE}/ngo_data.json").mock(return_value=httpx.Response(200, json=NGO))
        yield router


class TestGoodShepherdRun:
    @pytest.mark.asyncio
    async def test_item_outcomes(self, data_dir, quiet_logger, fake_sleep, gs_router):
        source = GoodShepherdSource(
            data_dir=data_dir, logger=quiet_logger, sleep=fake_sleep, base_url=BASE, clock=lambda: NOW
        )
        result = await source.run()

        status = {item.name: item.status for item in result.items}
        assert status == {
            "child-prisoners": "saved",
            "political-prisoners": "no_data",
            "demolitions": "failed",
            "westbank-incidents": "saved",
            "healthcare-attacks": "saved",
            "ngo-data": "saved",
            "prisoner-statistics": "saved",
        }
        assert result.exit_code == 0
        assert result.errors == [
            {"item": "demolitions", "stage": "fetching", "error": result.items[2].error}
        ]
        # prisoner_data.json serves two items but is requested once
        assert gs_router.routes[1].call_count == 1

    @pytest.mark.asyncio
    async def test_files_written(self, data_dir, quiet_logger, fake_sleep, gs_router):
        source = GoodShepherdSource(
            data_dir=data_dir, logger=quiet_logger, sleep=fake_sleep, base_url=BASE, clock=lambda: NOW
        )
        await source.run()
        root = data_dir / "goodshepherd"

        children = _read(root / "prisoners" / "children" / "data.json")
        assert [r["name"] for r in children["data"]] == ["Yusuf", "Ahmad", "Omar"]
        recent = _read(root / "prisoners" / "children" / "recent.json")
        assert [r["name"] for r in recent["data"]] == ["Omar"]
        assert _read(root / "prisoners" / "children" / "validation.json")["datasetType"] == "casualties"

        assert not (root / "prisoners" / "political").exists()
        assert not (root / "demolitions").exists()

        westbank = _read(root / "westbank" / "data.json")
        assert westbank["data"][0]["date"] == "2024-02-20"
        assert westbank["data"][0]["killed"] == 2

        healthcare = _read(root / "healthcare" / "data.json")
        assert len(healthcare["data"]) == 1

        ngo_index = _read(root / "ngo" / "index.json")
        assert ngo_index["total_organizations"] == 2
        assert ngo_index["total_funding"] == 150
        assert ngo_index["years"] == [2022, 2023]
        assert (root / "ngo" / "organizations.json").exists()
        assert (root / "ngo" / "funding-by-year.json").exists()

        stats = _read(root / "prisoners" / "statistics" / "index.json")
        assert stats["files"][0]["records"] == 0
        assert (root / "prisoners" / "statistics" / "child-age-groups.json").exists()

        metadata = _read(root / "metadata.json")
        assert set(metadata["datasets"]) == {"childPrisoners", "westBankIncidents", "healthcare", "ngo"}
        assert metadata["summary"]["total_records"] == 3 + 1 + 1 + 2
        assert metadata["summary"]["failed"] == 1
        assert metadata["baseline_date"] == "2023-10-07"

    @pytest.mark.asyncio
    async def test_baseline_override(self, data_dir, quiet_logger, fake_sleep, gs_router):
        source = GoodShepherdSource(
            data_dir=data_dir,
            logger=quiet_logger,
            sleep=fake_sleep,
            base_url=BASE,
            baseline="2024-01-01",
            clock=lambda: NOW,
        )
        await source.run()
        children = _read(data_dir / "goodshepherd" / "prisoners" / "children" / "data.json")
        assert [r["name"] for r in children["data"]] == ["Omar"]


class TestLocalFallback:
    @pytest.fixture
    def fallback_dir(self, tmp_path):
        root = tmp_path / "snapshots"
        root.mkdir()
        (root / "demolitions-pre.json").write_text(
            json.dumps([{"Date of Demolition": "2024-01-10", "Locality": "Masafer Yatta", "Housing Units": "3"}])
        )
        (root / "spi-pre.json").write_text(
            json.dumps([{"date": "2023-12-01", "name": "Held Without Charge", "detention_type": "administrative"}])
        )
        (root / "minors-pre.json").write_text(
            json.dumps([{"Date of event": "2024-01-01", "Name": "From Snapshot"}])
        )
        return root

    def _source(self, data_dir, quiet_logger, fake_sleep, **kwargs):
        return GoodShepherdSource(
            data_dir=data_dir,
            logger=quiet_logger,
            sleep=fake_sleep,
            base_url=BASE,
            clock=lambda: NOW,
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_failed_and_empty_feeds_use_snapshots(
        self, data_dir, quiet_logger, fake_sleep, gs_router, fallback_dir
    ):
        result = await self._source(data_dir, quiet_logger, fake_sleep, fallback_dir=fallback_dir).run()
        status = {item.name: item.status for item in result.items}
        assert status["demolitions"] == "saved"
        assert status["political-prisoners"] == "saved"
        assert result.errors == []

        root = data_dir / "goodshepherd"
        demolitions = _read(root / "demolitions" / "data.json")["data"]
        assert demolitions[0]["location"] == "Masafer Yatta"
        assert demolitions[0]["homes_demolished"] == 3
        assert demolitions[0]["source"] == "goodshepherd-local"
        political = _read(root / "prisoners" / "political" / "data.json")["data"]
        assert political[0]["source"] == "goodshepherd-local"

        metadata = _read(root / "metadata.json")
        assert metadata["datasets"]["demolitions"]["origin"] == "local"
        assert metadata["datasets"]["childPrisoners"]["origin"] == "api"

    @pytest.mark.asyncio
    async def test_working_api_ignores_snapshot(
        self, data_dir, quiet_logger, fake_sleep, gs_router, fallback_dir
    ):
        await self._source(data_dir, quiet_logger, fake_sleep, fallback_dir=fallback_dir).run()
        children = _read(data_dir / "goodshepherd" / "prisoners" / "children" / "data.json")["data"]
        assert "From Snapshot" not in [r["name"] for r in children]
        assert {r["source"] for r in children} == {"goodshepherd-api"}

    @pytest.mark.asyncio
    async def test_missing_snapshot_file_keeps_api_failure(
        self, data_dir, quiet_logger, fake_sleep, gs_router, fallback_dir
    ):
        (fallback_dir / "demolitions-pre.json").unlink()
        result = await self._source(data_dir, quiet_logger, fake_sleep, fallback_dir=fallback_dir).run()
        [error] = result.errors
        assert error["item"] == "demolitions"
        assert error["stage"] == "fetching"


class TestFeedWithoutTransform:
    @pytest.mark.asyncio
    async def test_dated_feed_without_transform_fails_the_item(
        self, data_dir, quiet_logger, fake_sleep, monkeypatch
    ):
        broken = Feed(
            key="broken", name="Broken", endpoint="/broken.json", path="broken", dataset="broken"
        )
        monkeypatch.setattr(GoodShepherdSource, "items", lambda self: (broken,))
        source = GoodShepherdSource(
            data_dir=data_dir, logger=quiet_logger, sleep=fake_sleep, base_url=BASE, clock=lambda: NOW
        )
        result = await source.run()
        [item] = result.items
        assert item.status == "failed"
        assert "has no transform" in item.error
        assert result.failed == 1
