"""
Tests for flattening results to JSON-compatible data.
"""

import pytest
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Tuple
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))


@dataclass(frozen=True)
class _Sample:
    liability: Decimal
    rate: Decimal
    growth_rate: Decimal
    as_of: date
    flags: Tuple = ()


class TestToSerializable:
    """Tests for recursive conversion."""

    def test_money_two_places(self):
        """Test money rounds half-up to pennies."""
        from calculator.serialization import to_serializable
        assert to_serializable(Decimal("1234.565"), "liability") == 1234.57

    def test_rates_four_places(self):
        """Test rate-named keys keep four decimal places."""
        from calculator.serialization import to_serializable
        result = to_serializable(_Sample(
            liability=Decimal("1.005"),
            rate=Decimal("0.123456"),
            growth_rate=Decimal("0.04999"),
            as_of=date(2025, 6, 1),
        ))
        assert result["liability"] == 1.01
        assert result["rate"] == 0.1235
        assert result["growth_rate"] == 0.05
        assert result["as_of"] == "2025-06-01"

    def test_enums_and_models(self):
        """Test enums become values and pydantic models become dicts."""
        from calculator.serialization import to_serializable
        from models.estate import Asset, AssetType, DataQualityFlag
        asset = Asset(type=AssetType.CASH, name="Savings", value=Decimal("100.456"))
        assert to_serializable(asset)["type"] == "cash"
        assert to_serializable(asset)["value"] == 100.46
        assert to_serializable([DataQualityFlag.NO_LIFE_TABLE_DATA]) == ["no_life_table_data"]

    def test_rate_mapping_values(self):
        """Test values under a rates mapping are treated as rates."""
        from calculator.serialization import to_serializable
        result = to_serializable({"growth_rates": {"cash": Decimal("0.04444")}})
        assert result["growth_rates"]["cash"] == 0.0444

    def test_booleans_unchanged(self):
        """Test booleans are not mistaken for numbers."""
        from calculator.serialization import to_serializable
        assert to_serializable({"applied": True}) == {"applied": True}


class TestToJson:
    """Tests for stable JSON output."""

    def test_sorted_keys(self):
        """Test key order does not affect the output."""
        from calculator.serialization import to_json
        assert to_json({"b": 1, "a": 2}) == to_json({"a": 2, "b": 1})
        assert to_json({"b": 1, "a": 2}) == '{"a":2,"b":1}'
