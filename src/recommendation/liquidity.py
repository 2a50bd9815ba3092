"""
Asset liquidity and giftability.

Classifies each asset by how readily it can be given away during life.
The main residence cannot be gifted while lived in (gift with reservation),
and pensions already sit outside the estate, so neither counts towards
giftable capacity.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

from calculator.allowance_calculator import residence_by_name
from calculator.decimal_math import ZERO
from calculator.exceptions import require_money
from models.estate import Asset, AssetType, IHTProfile


class Liquidity(str, Enum):
    LIQUID = "liquid"
    SEMI_LIQUID = "semi_liquid"
    ILLIQUID = "illiquid"


@dataclass(frozen=True)
class AssetClassification:
    name: str
    asset_type: AssetType
    value: Decimal
    liquidity: Liquidity
    is_giftable: bool
    not_giftable_reason: Optional[str] = None


@dataclass(frozen=True)
class LiquidityAnalysis:
    assets: Tuple[AssetClassification, ...]
    liquid_value: Decimal
    semi_liquid_value: Decimal
    illiquid_value: Decimal
    immediately_giftable: Decimal
    giftable_with_planning: Decimal
    not_giftable: Decimal

    @property
    def total_giftable(self) -> Decimal:
        return self.immediately_giftable + self.giftable_with_planning


# (liquidity, giftable, reason) by asset type
_CLASSIFICATION: Dict[AssetType, Tuple[Liquidity, bool, Optional[str]]] = {
    AssetType.CASH: (Liquidity.LIQUID, True, None),
    AssetType.INVESTMENT: (Liquidity.LIQUID, True, None),
    AssetType.PENSION: (Liquidity.LIQUID, False, "Pensions are already outside the estate"),
    AssetType.PROPERTY: (Liquidity.SEMI_LIQUID, True, None),
    AssetType.BUSINESS: (Liquidity.SEMI_LIQUID, True, None),
    AssetType.CHATTEL: (Liquidity.SEMI_LIQUID, True, None),
    AssetType.OTHER: (Liquidity.LIQUID, True, None),
}

MAIN_RESIDENCE_REASON = "Main residence: gift with reservation of benefit while still lived in"


class LiquidityAnalyzer:

    def classify(self, asset: Asset, is_main_residence: bool = False) -> AssetClassification:
        value = require_money(asset.value, "value")
        if asset.is_main_residence or is_main_residence:
            return AssetClassification(
                asset.name, asset.type, value, Liquidity.ILLIQUID, False, MAIN_RESIDENCE_REASON
            )
        liquidity, giftable, reason = _CLASSIFICATION[asset.type]
        return AssetClassification(asset.name, asset.type, value, liquidity, giftable, reason)

    def analyze(self, assets: Iterable[Asset], profile: Optional[IHTProfile] = None) -> LiquidityAnalysis:
        """
        Classify every asset and total giftable capacity.

        When no asset is flagged as the main residence, the profile and asset
        names are used to infer one, so the home is not counted as giftable.
        """
        assets = list(assets)
        inferred_home: Optional[Asset] = None
        if profile is not None and profile.own_home and not any(a.is_main_residence for a in assets):
            inferred_home = residence_by_name(assets)

        classified = tuple(self.classify(a, a is inferred_home) for a in assets)

        def value_of(liquidity: Liquidity, giftable: Optional[bool] = None) -> Decimal:
            return sum(
                (c.value for c in classified
                 if c.liquidity == liquidity and (giftable is None or c.is_giftable == giftable)),
                ZERO,
            )

        return LiquidityAnalysis(
            assets=classified,
            liquid_value=value_of(Liquidity.LIQUID),
            semi_liquid_value=value_of(Liquidity.SEMI_LIQUID),
            illiquid_value=value_of(Liquidity.ILLIQUID),
            immediately_giftable=value_of(Liquidity.LIQUID, True),
            giftable_with_planning=value_of(Liquidity.SEMI_LIQUID, True),
            not_giftable=sum((c.value for c in classified if not c.is_giftable), ZERO),
        )
