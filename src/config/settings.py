"""Application settings using Pydantic Settings.

Centralized configuration for the IHT engine. Every field can be set from
the environment with an ``IHT_`` prefix (for example ``IHT_TAX_YEAR=2025-26``)
or from a local ``.env`` file.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class IHTSettings(BaseSettings):
    """Runtime settings for calculations, caching and logging."""

    model_config = SettingsConfigDict(
        env_prefix="IHT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Tax parameters
    tax_year: str = Field(default="2025-26", description="Tax year whose parameter bundle is loaded")
    config_dir: Optional[Path] = Field(default=None, description="Override directory for YAML bundles")

    # Life tables
    life_table_version: str = Field(default="ONS_2020_2022", description="Life table used for projections")
    default_years_until_death: int = Field(
        default=25, ge=1, description="Horizon assumed when date of birth is unknown"
    )

    # Cache
    enable_caching: bool = Field(default=True, description="Reuse results while inputs are unchanged")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")
    json_logs: bool = Field(default=False, description="Emit JSON log lines")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")

    @field_validator("tax_year")
    @classmethod
    def validate_tax_year(cls, v: str) -> str:
        parts = v.split("-")
        if len(parts) != 2 or not all(p.isdigit() for p in parts) or len(parts[0]) != 4:
            raise ValueError(f"Tax year must look like '2025-26', got '{v}'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level '{v}'")
        return level


@lru_cache
def get_settings() -> IHTSettings:
    """
    Get cached application settings instance.

    Returns:
        IHTSettings: Cached settings loaded from environment.
    """
    return IHTSettings()
