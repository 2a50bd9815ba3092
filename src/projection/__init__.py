"""Life expectancy, estate growth and multi-generation IHT projections."""

from .actuarial_table import ActuarialTable, DeathProjection, LifeExpectancyEstimate, LookupMethod
from .future_value import EstateProjection, FutureValueCalculator
from .spousal_transfer import SpousalTransfer, SpousalTransferTracker
from .projection_engine import (
    EstateValuation,
    IHTProjectionEngine,
    JointProjection,
    LiabilitySnapshot,
    SingleProjection,
)

__all__ = [
    "ActuarialTable",
    "DeathProjection",
    "LifeExpectancyEstimate",
    "LookupMethod",
    "EstateProjection",
    "FutureValueCalculator",
    "SpousalTransfer",
    "SpousalTransferTracker",
    "EstateValuation",
    "IHTProjectionEngine",
    "JointProjection",
    "LiabilitySnapshot",
    "SingleProjection",
]
