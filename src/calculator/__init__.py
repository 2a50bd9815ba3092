from .iht_parameters import IHTParameters
from .exceptions import IHTCalculationError, InvalidEstateValue, MissingActuarialInput
from .allowance_calculator import (
    AllowanceBreakdown,
    AllowanceCalculator,
    AllowanceReason,
    RNRBStatus,
    find_qualifying_residence,
)
from .gift_ledger import (
    AnnualExemptionStatus,
    GiftLedger,
    GiftingLiability,
    PETLedgerResult,
    CLTLedgerResult,
)
from .trust_charges import TrustChargeCalculator

__all__ = [
    "IHTParameters",
    "IHTCalculationError",
    "InvalidEstateValue",
    "MissingActuarialInput",
    "AllowanceBreakdown",
    "AllowanceCalculator",
    "AllowanceReason",
    "RNRBStatus",
    "find_qualifying_residence",
    "AnnualExemptionStatus",
    "GiftLedger",
    "GiftingLiability",
    "PETLedgerResult",
    "CLTLedgerResult",
    "TrustChargeCalculator",
]
