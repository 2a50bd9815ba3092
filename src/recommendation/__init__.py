"""IHT Mitigation Recommendations.

This package sizes lifetime gifting strategies and life cover against a
projected inheritance tax liability:
- Asset liquidity and giftable capacity
- Annual exemption, income gifting, PET and CLT waterfall
- Whole of life cover, joint life second death and self-insurance
"""

from .liquidity import AssetClassification, Liquidity, LiquidityAnalysis, LiquidityAnalyzer
from .life_cover import (
    CoverRecommendation,
    CoverScenario,
    InsuredLife,
    LifeCoverAnalysis,
    LifeCoverCalculator,
    PremiumRateTable,
    SelfInsuranceScenario,
    confidence_level,
)
from .strategy_optimizer import (
    MitigationPlan,
    MitigationStrategy,
    RiskLevel,
    ScheduledGift,
    StrategyKind,
    StrategyOptimizer,
)

__all__ = [
    "AssetClassification",
    "Liquidity",
    "LiquidityAnalysis",
    "LiquidityAnalyzer",
    # Life cover
    "CoverRecommendation",
    "CoverScenario",
    "InsuredLife",
    "LifeCoverAnalysis",
    "LifeCoverCalculator",
    "PremiumRateTable",
    "SelfInsuranceScenario",
    "confidence_level",
    # Strategy waterfall
    "MitigationPlan",
    "MitigationStrategy",
    "RiskLevel",
    "ScheduledGift",
    "StrategyKind",
    "StrategyOptimizer",
]
