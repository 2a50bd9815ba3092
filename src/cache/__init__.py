"""Cache layer for IHT calculations.

Stores flattened calculation results keyed by a content fingerprint of
the asset and liability values they were computed from.
"""

from .calculation_cache import (
    CacheRecord,
    CalculationCacheStore,
    InMemoryCalculationStore,
    assets_hash,
    fingerprint,
    liabilities_hash,
)

__all__ = [
    "CacheRecord",
    "CalculationCacheStore",
    "InMemoryCalculationStore",
    "assets_hash",
    "fingerprint",
    "liabilities_hash",
]
