"""
Services Module - orchestration and infrastructure for the IHT engine.

Application Services:
- IHTCalculationService: projections, mitigation plans and result caching

Infrastructure Services:
- Logging and calculation audit trail
"""

from .iht_calculation_service import IHTCalculationService
from .logging_config import CalculationLogger, configure_logging, get_logger

__all__ = [
    "IHTCalculationService",
    "CalculationLogger",
    "configure_logging",
    "get_logger",
]
