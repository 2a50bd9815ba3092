"""Pytest configuration and fixtures for the IHT test suite."""

import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


@pytest.fixture(autouse=True)
def reset_config_cache():
    """Loader singletons and cached settings must not leak between tests."""
    from config.settings import get_settings
    from config.tax_config_loader import clear_config_cache

    clear_config_cache()
    get_settings.cache_clear()
    yield
    clear_config_cache()
    get_settings.cache_clear()


@pytest.fixture
def today():
    """Fixed calculation date."""
    return date(2025, 6, 1)


@pytest.fixture
def params():
    from calculator.iht_parameters import IHTParameters
    return IHTParameters.for_2025_26()


@pytest.fixture
def life_table_rows():
    from config.tax_config_loader import TaxConfigLoader
    return TaxConfigLoader().load_life_table("ONS_2020_2022")


@pytest.fixture
def life_table(params, life_table_rows):
    from projection.actuarial_table import ActuarialTable
    return ActuarialTable(life_table_rows, params=params)


@pytest.fixture
def engine(params, life_table):
    from projection.projection_engine import IHTProjectionEngine
    return IHTProjectionEngine(params, life_table)


@pytest.fixture
def single_snapshot():
    """Unmarried woman aged 70 with a £900,000 estate and no residence."""
    from models.estate import Asset, AssetType, EstateSnapshot, Gender, Person

    return EstateSnapshot(
        person=Person(person_id="p-1", name="Margaret", date_of_birth=date(1955, 1, 15), gender=Gender.FEMALE),
        assets=[
            Asset(type=AssetType.CASH, name="Savings", value=Decimal("400000")),
            Asset(type=AssetType.INVESTMENT, name="Portfolio", value=Decimal("500000")),
        ],
    )

