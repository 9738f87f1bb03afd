"""
pulse_pipeline — data collection pipeline for the Palestine Pulse dashboard.

Architecture:
  sources/     — one fetcher per provider (HDX CKAN, Good Shepherd, World Bank)
                 plus the passive Tech4Palestine layout
  transforms/  — payload parsing, field normalization, per-source record shapes
  validation/  — schema-driven quality scoring and the cross-source report
  loaders/     — atomic JSON writes and quarter partitioning
  pipelines/   — manifest generator and the fetch-all orchestrator
  utils/       — structlog setup, the collection logger, retrying HTTP client

Quick start:
    from pulse_pipeline.pipelines.fetch_all import run_all
    summary = run_all()
    print(summary.state)

CLI:
    pulse-pipeline run all
    python scripts/run_pipeline.py hdx
    python -m pulse_pipeline.sources.worldbank

Shared code from pulse_shared:
    from pulse_shared.config import settings
    from pulse_shared.constants import SOURCES, HDX_CATEGORIES
    from pulse_shared.models.validation import ValidationResult
    from pulse_shared.time_utils import quarter_key
"""

__version__ = "0.1.0"
