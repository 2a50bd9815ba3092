"""
Future value of estate assets.

Each asset compounds annually at the growth rate for its type. Exempt
assets are projected too, but kept out of the chargeable totals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple

from calculator.decimal_math import ONE, ZERO, Numeric, compound, divide, to_decimal
from calculator.exceptions import require_money
from calculator.iht_parameters import IHTParameters
from models.estate import Asset


@dataclass(frozen=True)
class AssetProjection:
    name: str
    asset_type: str
    current_value: Decimal
    growth_rate: Decimal
    projected_value: Decimal
    iht_exempt: bool = False


@dataclass(frozen=True)
class EstateProjection:
    years: int
    current_value: Decimal
    projected_value: Decimal
    chargeable_current_value: Decimal
    chargeable_projected_value: Decimal
    assets: Tuple[AssetProjection, ...] = ()
    projected_by_type: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def growth(self) -> Decimal:
        return self.projected_value - self.current_value


class FutureValueCalculator:
    """Compound growth by asset type, using the parameter bundle's rates."""

    def __init__(self, params: Optional[IHTParameters] = None):
        self.params = params or IHTParameters.for_2025_26()

    def future_value(self, present_value: Numeric, annual_rate: Numeric, years: int) -> Decimal:
        """FV = PV x (1 + r)^n; years below one leave the value unchanged."""
        return compound(present_value, annual_rate, max(int(years), 0))

    def project_assets(self, assets: Iterable[Asset], years: int) -> EstateProjection:
        projections = []
        by_type: Dict[str, Decimal] = {}

        for index, asset in enumerate(assets):
            value = require_money(asset.value, f"assets[{index}].value")
            growth_rate = self.params.growth_rate(asset.type)
            projected = self.future_value(value, growth_rate, years)
            projections.append(AssetProjection(
                name=asset.name,
                asset_type=asset.type.value,
                current_value=value,
                growth_rate=growth_rate,
                projected_value=projected,
                iht_exempt=asset.iht_exempt,
            ))
            by_type[asset.type.value] = by_type.get(asset.type.value, ZERO) + projected

        return EstateProjection(
            years=max(int(years), 0),
            current_value=sum((p.current_value for p in projections), ZERO),
            projected_value=sum((p.projected_value for p in projections), ZERO),
            chargeable_current_value=sum((p.current_value for p in projections if not p.iht_exempt), ZERO),
            chargeable_projected_value=sum((p.projected_value for p in projections if not p.iht_exempt), ZERO),
            assets=tuple(projections),
            projected_by_type=dict(sorted(by_type.items())),
        )

    def project_value(self, value: Numeric, years: int, rate_key: str = "default") -> Decimal:
        """Grow a single combined value at the rate configured for ``rate_key``."""
        amount = require_money(value, "value")
        return self.future_value(amount, self.params.growth_rate(rate_key), years)

    def real_value(self, nominal_value: Numeric, years: int, inflation_rate: Optional[Numeric] = None) -> Decimal:
        """Deflate a future nominal value to today's money."""
        inflation = self.params.inflation_rate if inflation_rate is None else to_decimal(inflation_rate)
        return divide(nominal_value, (ONE + inflation) ** max(int(years), 0))

    def required_growth_rate(self, present_value: Numeric, target_value: Numeric, years: int) -> Decimal:
        """Compound annual growth rate needed to reach ``target_value``."""
        present = to_decimal(present_value)
        if present <= 0 or years <= 0:
            return ZERO
        return (to_decimal(target_value) / present) ** (ONE / Decimal(years)) - ONE
