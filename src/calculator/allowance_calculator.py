"""
Allowance Calculator.

Determines the nil-rate bands available to an estate and the resulting
liability:
- Nil Rate Band (NRB), plus any unused NRB inherited from a deceased spouse
- Residence Nil Rate Band (RNRB), tapered away above the taper threshold
- Standard or reduced (charitable) death rate

Reference: IHTA 1984 s.7, s.8A-8M, Sch 1A
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Tuple

from calculator.decimal_math import (
    ZERO,
    Numeric,
    add,
    clamp,
    format_money,
    min_decimal,
    non_negative,
    percent_of,
    to_decimal,
)
from calculator.exceptions import require_money, require_percentage
from calculator.iht_parameters import IHTParameters
from models.estate import (
    Asset,
    AssetType,
    DataQualityFlag,
    IHTProfile,
    MARRIED_STATUSES,
    MaritalStatus,
)

logger = logging.getLogger(__name__)

# Statuses under which an inherited allowance can exist
_TRANSFER_STATUSES = MARRIED_STATUSES | {MaritalStatus.WIDOWED}

# Last-resort keywords when no asset is flagged as the main residence
_RESIDENCE_KEYWORDS = ("main residence", "primary residence", "family home", "home")


class RNRBStatus(str, Enum):
    FULL = "full"
    TAPERED = "tapered"
    NONE = "none"


class AllowanceReason(str, Enum):
    """Why the RNRB ended up at its value."""
    ELIGIBLE = "eligible"
    NO_QUALIFYING_RESIDENCE = "no_qualifying_residence"
    PARTIALLY_TAPERED = "partially_tapered"
    FULLY_TAPERED = "fully_tapered"


@dataclass(frozen=True)
class ResidenceCheck:
    """Outcome of looking for a qualifying residence."""
    qualifies: bool
    inferred: bool = False
    residence_value: Decimal = ZERO


@dataclass(frozen=True)
class AllowanceBreakdown:
    """Nil-rate bands, rate and liability for one estate value."""
    estate_value: Decimal

    own_nrb: Decimal
    transferred_nrb: Decimal
    total_nrb: Decimal
    nrb_used_by_gifts: Decimal
    remaining_nrb: Decimal

    full_rnrb: Decimal
    rnrb_taper_reduction: Decimal
    rnrb: Decimal
    rnrb_status: RNRBStatus
    rnrb_reason: AllowanceReason

    total_allowance: Decimal
    taxable_estate: Decimal
    rate: Decimal
    charitable_rate_applied: bool
    liability: Decimal
    effective_rate_percent: Decimal

    nrb_message: str = ""
    rnrb_message: str = ""
    data_quality: Tuple[DataQualityFlag, ...] = field(default_factory=tuple)


def residence_by_name(assets: Iterable[Asset]) -> Optional[Asset]:
    """First property asset whose name suggests it is the home."""
    for asset in assets:
        name = asset.name.lower()
        if asset.type == AssetType.PROPERTY and any(k in name for k in _RESIDENCE_KEYWORDS):
            return asset
    return None


def find_qualifying_residence(profile: IHTProfile, assets: Iterable[Asset] = ()) -> ResidenceCheck:
    """
    Decide whether the estate includes a qualifying residence.

    Explicit data wins: any asset flagged ``is_main_residence``, then the
    profile's home flag and value. Only when neither says anything is a
    property asset name matched against keywords, and the result is marked
    as inferred.
    """
    assets = list(assets)

    flagged = [a for a in assets if a.is_main_residence and not a.iht_exempt]
    if flagged:
        return ResidenceCheck(True, residence_value=sum((a.value for a in flagged), ZERO))

    if profile.own_home and profile.home_value > 0:
        return ResidenceCheck(True, residence_value=profile.home_value)

    if profile.own_home:
        match = residence_by_name(assets)
        if match is not None:
            logger.warning(f"Main residence inferred from asset name '{match.name}'")
            return ResidenceCheck(True, inferred=True, residence_value=match.value)

    return ResidenceCheck(False)


class AllowanceCalculator:
    """
    Computes NRB, RNRB, rate and liability for a given estate value.

    Pure: the same inputs always give the same breakdown. Eligibility
    problems never raise; they produce a zero allowance with a reason.
    """

    def __init__(self, params: Optional[IHTParameters] = None):
        self.params = params or IHTParameters.for_2025_26()

    def available_nrb(self, profile: IHTProfile) -> Tuple[Decimal, Decimal]:
        """Return (own NRB, transferred NRB) for the profile."""
        own = self.params.nil_rate_band
        transferred = require_money(profile.nrb_transferred_from_spouse, "nrb_transferred_from_spouse")

        if transferred > 0 and profile.marital_status not in _TRANSFER_STATUSES:
            logger.warning(
                f"Ignoring transferred NRB of {format_money(transferred)} "
                f"for marital status '{profile.marital_status.value}'"
            )
            transferred = ZERO

        # Transfer is limited to 100% of one band
        return own, min_decimal(transferred, own)

    def full_rnrb(self, profile: IHTProfile) -> Tuple[Decimal, Decimal]:
        """Return (own RNRB, transferred RNRB) before taper."""
        own = self.params.residence_nil_rate_band
        transferred = require_money(profile.rnrb_transferred_from_spouse, "rnrb_transferred_from_spouse")
        if transferred > 0 and profile.marital_status not in _TRANSFER_STATUSES:
            transferred = ZERO
        return own, min_decimal(transferred, own)

    def rnrb_taper(self, full_rnrb: Numeric, net_estate: Numeric) -> Tuple[Decimal, Decimal]:
        """
        Apply the RNRB taper.

        Returns (reduction, tapered RNRB). The tapered RNRB is never
        negative.
        """
        excess = non_negative(to_decimal(net_estate) - self.params.rnrb_taper_threshold)
        reduction = excess * self.params.rnrb_taper_rate
        full = to_decimal(full_rnrb)
        return reduction, clamp(full - reduction, ZERO, full)

    def calculate(
        self,
        estate_value: Numeric,
        profile: IHTProfile,
        nrb_used_by_gifts: Numeric = 0,
        residence: Optional[ResidenceCheck] = None,
    ) -> AllowanceBreakdown:
        """
        Calculate allowances and liability.

        Args:
            estate_value: Net chargeable estate (after liabilities)
            profile: Allowance-relevant facts
            nrb_used_by_gifts: NRB already consumed by failed PETs
            residence: Pre-computed residence check; derived from the
                profile alone when omitted

        Raises:
            InvalidEstateValue: for negative or non-finite inputs
        """
        estate = require_money(estate_value, "estate_value")
        used = require_money(nrb_used_by_gifts, "nrb_used_by_gifts")
        charity_pct = require_percentage(profile.charitable_giving_percent, "charitable_giving_percent")
        require_money(profile.home_value, "home_value")

        flags = []

        own_nrb, transferred_nrb = self.available_nrb(profile)
        total_nrb = own_nrb + transferred_nrb
        used = min_decimal(used, total_nrb)
        remaining_nrb = total_nrb - used

        if residence is None:
            residence = find_qualifying_residence(profile)
        if residence.inferred:
            flags.append(DataQualityFlag.MAIN_RESIDENCE_INFERRED)

        if residence.qualifies:
            own_rnrb, transferred_rnrb = self.full_rnrb(profile)
            full_rnrb = own_rnrb + transferred_rnrb
            reduction, rnrb = self.rnrb_taper(full_rnrb, estate)
            if reduction == 0:
                status, reason = RNRBStatus.FULL, AllowanceReason.ELIGIBLE
            elif rnrb > 0:
                status, reason = RNRBStatus.TAPERED, AllowanceReason.PARTIALLY_TAPERED
            else:
                status, reason = RNRBStatus.NONE, AllowanceReason.FULLY_TAPERED
        else:
            full_rnrb, reduction, rnrb = ZERO, ZERO, ZERO
            status, reason = RNRBStatus.NONE, AllowanceReason.NO_QUALIFYING_RESIDENCE
            flags.append(DataQualityFlag.INELIGIBLE_ALLOWANCE)

        total_allowance = add(remaining_nrb, rnrb)
        taxable = non_negative(estate - total_allowance)
        death_rate = self.params.death_rate(charity_pct)
        liability = taxable * death_rate

        return AllowanceBreakdown(
            estate_value=estate,
            own_nrb=own_nrb,
            transferred_nrb=transferred_nrb,
            total_nrb=total_nrb,
            nrb_used_by_gifts=used,
            remaining_nrb=remaining_nrb,
            full_rnrb=full_rnrb,
            rnrb_taper_reduction=reduction,
            rnrb=rnrb,
            rnrb_status=status,
            rnrb_reason=reason,
            total_allowance=total_allowance,
            taxable_estate=taxable,
            rate=death_rate,
            charitable_rate_applied=charity_pct >= self.params.charity_rate_threshold_percent,
            liability=liability,
            effective_rate_percent=percent_of(liability, estate),
            nrb_message=self._nrb_message(own_nrb, transferred_nrb, used, remaining_nrb),
            rnrb_message=self._rnrb_message(status, full_rnrb, rnrb, reduction),
            data_quality=tuple(flags),
        )

    def _nrb_message(self, own: Decimal, transferred: Decimal, used: Decimal, remaining: Decimal) -> str:
        parts = [f"NRB of {format_money(own)}"]
        if transferred > 0:
            parts.append(f"plus {format_money(transferred)} transferred from spouse")
        if used > 0:
            parts.append(f"less {format_money(used)} used by lifetime gifts")
        return " ".join(parts) + f"; {format_money(remaining)} available"

    def _rnrb_message(self, status: RNRBStatus, full: Decimal, rnrb: Decimal, reduction: Decimal) -> str:
        if full == 0:
            return "RNRB not available: no qualifying residence"
        if status == RNRBStatus.FULL:
            return f"Full RNRB of {format_money(rnrb)} available"
        if status == RNRBStatus.TAPERED:
            return (
                f"RNRB tapered by {format_money(reduction)} to {format_money(rnrb)} "
                f"(estate above {format_money(self.params.rnrb_taper_threshold)})"
            )
        return f"RNRB fully tapered away (reduction of {format_money(reduction)})"

