"""
Tax Configuration Loader.

Loads IHT parameter bundles and life tables from YAML files, enabling:
- Annual updates without code changes
- Environment-specific overrides
- Audit trail of configuration changes
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from calculator.iht_parameters import IHTParameters
from models.estate import Gender, LifeTableRow

logger = logging.getLogger(__name__)

# Default config directories
CONFIG_DIR = Path(__file__).parent / "tax_parameters"
LIFE_TABLE_DIR = Path(__file__).parent / "life_tables"

REQUIRED_PARAMETERS = (
    "nil_rate_band",
    "residence_nil_rate_band",
    "rnrb_taper_threshold",
    "standard_rate",
    "reduced_charity_rate",
    "annual_exemption",
    "clt_lifetime_rate",
)


class ConfigurationError(ValueError):
    """A configuration file is missing or incomplete."""


@dataclass
class ConfigMetadata:
    """Metadata about a configuration file."""
    version: str
    tax_year: str
    effective_date: str
    source: str  # "HMRC", "ONS", "custom"
    references: List[str] = field(default_factory=list)
    last_updated: str = ""
    updated_by: str = ""
    notes: str = ""


@dataclass
class ConfigChange:
    """Record of a configuration change."""
    parameter: str
    old_value: Any
    new_value: Any
    changed_at: str
    changed_by: str
    reason: str
    reference: Optional[str] = None


def _file_key(tax_year: str) -> str:
    return tax_year.replace("-", "_")


class TaxConfigLoader:
    """
    Loads and manages IHT configuration from YAML files.

    Features:
    - File discovery by tax year (``iht_2025_26.yaml``)
    - Environment variable overrides (``IHT_2025_26_NIL_RATE_BAND=350000``)
    - Validation of required parameters
    - Change tracking
    """

    def __init__(self, config_dir: Optional[Path] = None, life_table_dir: Optional[Path] = None):
        """
        Initialize the config loader.

        Args:
            config_dir: Directory containing parameter YAML files.
                       Defaults to src/config/tax_parameters/
            life_table_dir: Directory containing life table YAML files.
        """
        self.config_dir = Path(config_dir) if config_dir else CONFIG_DIR
        self.life_table_dir = Path(life_table_dir) if life_table_dir else LIFE_TABLE_DIR
        self._configs: Dict[str, Dict[str, Any]] = {}
        self._metadata: Dict[str, ConfigMetadata] = {}
        self._life_tables: Dict[str, List[LifeTableRow]] = {}
        self._changes: List[ConfigChange] = []

    # Tax parameters

    def load_config(self, tax_year: str) -> Dict[str, Any]:
        """
        Load the raw parameter mapping for a tax year.

        Args:
            tax_year: The tax year to load (e.g., "2025-26")

        Raises:
            ConfigurationError: if no file exists or required keys are missing
        """
        if tax_year in self._configs:
            return self._configs[tax_year]

        config = self._load_from_file(tax_year)
        config = self._apply_env_overrides(config, tax_year)
        self._validate_config(config, tax_year)

        self._configs[tax_year] = config
        return config

    def load_parameters(self, tax_year: str) -> IHTParameters:
        """Load a tax year's bundle as an ``IHTParameters`` instance."""
        return IHTParameters.from_mapping(self.load_config(tax_year), tax_year=tax_year)

    def _load_from_file(self, tax_year: str) -> Dict[str, Any]:
        year_file = self.config_dir / f"iht_{_file_key(tax_year)}.yaml"
        if not year_file.exists():
            raise ConfigurationError(f"No IHT parameter file for tax year {tax_year}: {year_file}")

        logger.info(f"Loading IHT config from {year_file}")
        with open(year_file, 'r') as f:
            year_config = yaml.safe_load(f) or {}

        if '_metadata' in year_config:
            self._metadata[tax_year] = ConfigMetadata(**year_config.pop('_metadata'))
        return dict(year_config)

    def _apply_env_overrides(self, config: Dict[str, Any], tax_year: str) -> Dict[str, Any]:
        """Apply environment variable overrides to scalar parameters."""
        prefix = f"IHT_{_file_key(tax_year)}_".upper()

        for key, value in os.environ.items():
            if key.startswith(prefix):
                param_name = key[len(prefix):].lower()
                if isinstance(config.get(param_name), (dict, list)):
                    logger.warning(f"Ignoring env override for structured parameter: {key}")
                    continue
                config[param_name] = value
                logger.info(f"Applied env override: {param_name}={value}")

        return config

    def _validate_config(self, config: Dict[str, Any], tax_year: str) -> None:
        missing = [p for p in REQUIRED_PARAMETERS if p not in config]
        if missing:
            raise ConfigurationError(f"Missing required parameters for {tax_year}: {missing}")

    def get_metadata(self, tax_year: str) -> Optional[ConfigMetadata]:
        """Get metadata for a tax year's configuration."""
        self.load_config(tax_year)  # Ensure loaded
        return self._metadata.get(tax_year)

    # Life tables

    def load_life_table(self, table_version: str) -> List[LifeTableRow]:
        """
        Load life table rows for a version such as ``ONS_2020_2022``.

        The YAML file holds one mapping of age to life expectancy per gender.
        """
        if table_version in self._life_tables:
            return self._life_tables[table_version]

        table_file = self.life_table_dir / f"{table_version.lower()}.yaml"
        if not table_file.exists():
            raise ConfigurationError(f"No life table file for {table_version}: {table_file}")

        logger.info(f"Loading life table from {table_file}")
        with open(table_file, 'r') as f:
            data = yaml.safe_load(f) or {}

        rows = [
            LifeTableRow(
                age=int(age),
                gender=Gender(gender),
                table_version=table_version,
                life_expectancy_years=str(years),
            )
            for gender, by_age in (data.get('life_expectancy') or {}).items()
            for age, years in by_age.items()
        ]
        if not rows:
            raise ConfigurationError(f"Life table {table_version} has no rows")

        self._life_tables[table_version] = rows
        return rows

    # Change tracking

    def record_change(
        self,
        parameter: str,
        old_value: Any,
        new_value: Any,
        reason: str,
        changed_by: str = "system",
        reference: Optional[str] = None
    ) -> None:
        """Record a configuration change for audit purposes."""
        change = ConfigChange(
            parameter=parameter,
            old_value=old_value,
            new_value=new_value,
            changed_at=datetime.now(timezone.utc).isoformat(),
            changed_by=changed_by,
            reason=reason,
            reference=reference
        )
        self._changes.append(change)
        logger.info(f"Config change recorded: {parameter} {old_value} -> {new_value}")

    def get_change_history(self) -> List[ConfigChange]:
        """Get history of configuration changes."""
        return self._changes.copy()

    def compare_years(self, year1: str, year2: str) -> Dict[str, Dict[str, Any]]:
        """
        Compare configuration between two tax years.

        Returns:
            Dictionary with 'added', 'removed', 'changed' keys
        """
        config1 = self.load_config(year1)
        config2 = self.load_config(year2)

        keys1 = set(config1.keys())
        keys2 = set(config2.keys())

        return {
            'added': {k: config2[k] for k in keys2 - keys1},
            'removed': {k: config1[k] for k in keys1 - keys2},
            'changed': {
                k: {'old': config1[k], 'new': config2[k]}
                for k in keys1 & keys2
                if config1[k] != config2[k]
            }
        }


# Global singleton
_config_loader: Optional[TaxConfigLoader] = None


def get_config_loader() -> TaxConfigLoader:
    """Get the global config loader instance."""
    global _config_loader
    if _config_loader is None:
        _config_loader = TaxConfigLoader()
    return _config_loader


@lru_cache(maxsize=10)
def get_iht_parameters(tax_year: str) -> IHTParameters:
    """
    Convenience function to get a tax year's parameter bundle.

    Example:
        >>> get_iht_parameters("2025-26").nil_rate_band
        Decimal('325000')
    """
    return get_config_loader().load_parameters(tax_year)


def clear_config_cache() -> None:
    """Clear the configuration cache (useful for testing)."""
    get_iht_parameters.cache_clear()
    global _config_loader
    _config_loader = None
