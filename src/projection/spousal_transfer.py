"""
Spousal Transfer Tracker.

On the first death everything passes to the surviving spouse under the
spouse exemption, so the deceased's nil-rate band is largely unused. Whatever
was not consumed by PETs in the 7 years before death transfers to the
survivor, as does the RNRB unless the home went to descendants.

Reference: IHTA 1984 s.8A, s.8L
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from calculator.allowance_calculator import find_qualifying_residence
from calculator.date_utils import whole_years_between
from calculator.decimal_math import ZERO, min_decimal, percent_of, total
from calculator.exceptions import require_money
from calculator.iht_parameters import IHTParameters
from models.estate import Asset, Gift, GiftKind, IHTProfile, MaritalStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpousalTransfer:
    death_date: date
    deceased_nrb: Decimal
    gifts_within_window: Decimal
    own_nrb_used: Decimal
    transferable_nrb: Decimal
    transferable_nrb_percent: Decimal
    deceased_owned_residence: bool
    residence_bequeathed_to_descendants: bool
    rnrb_used: Decimal
    transferable_rnrb: Decimal


class SpousalTransferTracker:

    def __init__(self, params: Optional[IHTParameters] = None):
        self.params = params or IHTParameters.for_2025_26()

    def calculate(
        self,
        deceased_gifts: Iterable[Gift],
        deceased_profile: IHTProfile,
        death_date: date,
        deceased_assets: Iterable[Asset] = (),
    ) -> SpousalTransfer:
        nrb = self.params.nil_rate_band
        window = self.params.pet_survival_years

        recent = []
        for index, gift in enumerate(deceased_gifts):
            require_money(gift.value, f"deceased_gifts[{index}].value")
            if gift.kind != GiftKind.PET or gift.date > death_date:
                continue
            if whole_years_between(gift.date, death_date) < window:
                recent.append(gift.value)
        gifted = total(recent)

        own_used = min_decimal(nrb, gifted)
        transferable_nrb = nrb - own_used

        owned_residence = find_qualifying_residence(deceased_profile, deceased_assets).qualifies
        bequeathed = deceased_profile.residence_bequeathed_to_descendants
        if owned_residence and bequeathed:
            rnrb_used, transferable_rnrb = self.params.residence_nil_rate_band, ZERO
        else:
            rnrb_used, transferable_rnrb = ZERO, self.params.residence_nil_rate_band

        logger.info(
            f"Spousal transfer on {death_date.isoformat()}: NRB {transferable_nrb} "
            f"({percent_of(transferable_nrb, nrb):.0f}%), RNRB {transferable_rnrb}"
        )
        return SpousalTransfer(
            death_date=death_date,
            deceased_nrb=nrb,
            gifts_within_window=gifted,
            own_nrb_used=own_used,
            transferable_nrb=transferable_nrb,
            transferable_nrb_percent=percent_of(transferable_nrb, nrb),
            deceased_owned_residence=owned_residence,
            residence_bequeathed_to_descendants=bequeathed,
            rnrb_used=rnrb_used,
            transferable_rnrb=transferable_rnrb,
        )

    def survivor_profile(
        self,
        survivor: IHTProfile,
        deceased: IHTProfile,
        transfer: SpousalTransfer,
    ) -> IHTProfile:
        """
        The survivor's profile after the first death.

        The survivor is widowed, holds the transferred bands, and inherits the
        deceased's interest in the home.
        """
        return survivor.model_copy(update={
            "marital_status": MaritalStatus.WIDOWED,
            "nrb_transferred_from_spouse": transfer.transferable_nrb,
            "rnrb_transferred_from_spouse": transfer.transferable_rnrb,
            "own_home": survivor.own_home or deceased.own_home,
            "home_value": survivor.home_value + deceased.home_value,
        })
