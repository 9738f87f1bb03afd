"""
pulse_pipeline.sources — data source fetchers.

Each source wraps one external data provider:
  HdxSource          — Humanitarian Data Exchange CKAN API (priority datasets)
  HdxHapiSource      — HDX HAPI endpoints (needs HDX_API_KEY)
  GoodShepherdSource — Good Shepherd Collective JSON feeds
  WorldBankSource    — World Bank v2 indicators API
  tech4palestine     — passive layout description (never fetched)
"""

from pulse_pipeline.sources.goodshepherd import GoodShepherdSource
from pulse_pipeline.sources.hdx import HdxSource
from pulse_pipeline.sources.hdx_hapi import HdxHapiSource
from pulse_pipeline.sources.worldbank import WorldBankSource

__all__ = [
    "HdxSource",
    "HdxHapiSource",
    "GoodShepherdSource",
    "WorldBankSource",
]
