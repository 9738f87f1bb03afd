"""
config.py — pydantic-settings Settings class.

All environment variables for the Palestine Pulse data pipeline are declared
here. Fetchers, generators and the monitoring script import `settings` from
this module.

Usage:
    from pulse_shared.config import settings
    print(settings.data_dir)
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_dotenv() -> Path | None:
    """Walk up from CWD to find the nearest .env file."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        candidate = parent / ".env"
        if candidate.is_file():
            return candidate
    return None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_find_dotenv() or ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Output tree
    # -------------------------------------------------------------------------
    data_dir: Path = Field(default=Path("public/data"))
    baseline_date: str = Field(default="2023-10-07")

    # -------------------------------------------------------------------------
    # Data sources
    # -------------------------------------------------------------------------
    hdx_base_url: str = Field(default="https://data.humdata.org/api/3/action")
    hdx_api_key: str = Field(default="")
    hdx_hapi_base_url: str = Field(default="https://hapi.humdata.org/api/v1")
    hdx_hapi_location: str = Field(default="PSE")
    goodshepherd_base_url: str = Field(
        default="https://goodshepherdcollective.org/api"
    )
    # Directory holding minors-pre.json, spi-pre.json and demolitions-pre.json
    goodshepherd_fallback_dir: Path | None = Field(default=None)
    worldbank_base_url: str = Field(default="https://api.worldbank.org/v2")
    worldbank_country: str = Field(default="PSE")
    worldbank_date_range: str = Field(default="2010:2024")

    # Seconds between successive requests to the same provider
    hdx_rate_limit_delay: float = Field(default=1.1)
    hdx_hapi_rate_limit_delay: float = Field(default=1.1)
    goodshepherd_rate_limit_delay: float = Field(default=1.0)
    worldbank_rate_limit_delay: float = Field(default=0.5)

    # -------------------------------------------------------------------------
    # HTTP retry policy
    # -------------------------------------------------------------------------
    http_timeout: float = Field(default=60.0)
    retry_max_retries: int = Field(default=3, ge=0)
    retry_initial_delay: float = Field(default=1.0, ge=0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1)
    retry_max_delay: float = Field(default=30.0, ge=0)

    # -------------------------------------------------------------------------
    # Partitioning
    # -------------------------------------------------------------------------
    partition_threshold: int = Field(default=1000, ge=0)
    recent_window_days: int = Field(default=90, ge=1)

    # -------------------------------------------------------------------------
    # Validation thresholds
    # -------------------------------------------------------------------------
    quality_completeness: float = Field(default=0.95, ge=0, le=1)
    quality_consistency: float = Field(default=0.90, ge=0, le=1)
    quality_accuracy: float = Field(default=0.85, ge=0, le=1)
    quality_overall: float = Field(default=0.90, ge=0, le=1)

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------
    freshness_max_age_hours: int = Field(default=48)

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_file: Path = Field(default=Path("data-collection.log"))
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_format: Literal["json", "console"] = Field(default="console")

    @field_validator(
        "hdx_base_url",
        "hdx_hapi_base_url",
        "goodshepherd_base_url",
        "worldbank_base_url",
        mode="before",
    )
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/") if isinstance(v, str) else v


# ---------------------------------------------------------------------------
# Module-level singleton — import this everywhere
# ---------------------------------------------------------------------------
settings = Settings()
