"""Configuration module for the IHT engine."""

from .settings import IHTSettings, get_settings
from .tax_config_loader import (
    ConfigurationError,
    TaxConfigLoader,
    clear_config_cache,
    get_config_loader,
    get_iht_parameters,
)

__all__ = [
    "IHTSettings",
    "get_settings",
    "ConfigurationError",
    "TaxConfigLoader",
    "clear_config_cache",
    "get_config_loader",
    "get_iht_parameters",
]
