"""
tests/conftest.py — Shared pytest fixtures for the pipeline test suite.

Provides:
  fixture_path()   — resolves paths to tests/fixtures/
  data_dir         — empty published-data root under tmp_path
  quiet_logger     — CollectionLogger with console and file output disabled
  fake_sleep       — awaitable sleep that records delays instead of waiting
  *_payload        — pre-loaded provider responses from fixture files
  mock_http        — configured respx router for faking HTTP responses
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import respx

from pulse_pipeline.utils.logging import CollectionLogger, create_logger

FIXTURES_DIR = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def fixture_path() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    root = tmp_path / "data"
    root.mkdir()
    return root


# ---------------------------------------------------------------------------
# Logging and timing
# ---------------------------------------------------------------------------

@pytest.fixture
def quiet_logger() -> CollectionLogger:
    """A collection logger that writes nowhere but still counts operations."""
    return create_logger(context="Test", enable_console=False, enable_file=False)


class SleepRecorder:
    """Stand-in for asyncio.sleep; remembers every requested delay."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_sleep() -> SleepRecorder:
    return SleepRecorder()


# ---------------------------------------------------------------------------
# Provider payloads
# ---------------------------------------------------------------------------

@pytest.fixture
def hdx_package() -> dict:
    """CKAN package_show result for a conflict dataset."""
    return json.loads((FIXTURES_DIR / "hdx_package_show.json").read_text())


@pytest.fixture
def goodshepherd_child_prisoners() -> list:
    return json.loads((FIXTURES_DIR / "goodshepherd_child_prisoners.json").read_text())


@pytest.fixture
def worldbank_population_payload() -> list:
    """World Bank [meta, rows] response for SP.POP.TOTL."""
    return json.loads((FIXTURES_DIR / "worldbank_sp_pop_totl.json").read_text())


# ---------------------------------------------------------------------------
# respx HTTP mock router
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_http():
    """
    Activate the respx mock router for all httpx requests.

    Usage in tests:
        def test_something(mock_http):
            mock_http.get("https://...").mock(return_value=httpx.Response(200, json={...}))
    """
    with respx.mock(assert_all_called=False) as router:
        yield router
