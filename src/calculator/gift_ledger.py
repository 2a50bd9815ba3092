"""
Gift Ledger Engine.

Accounts for lifetime gifts in date order:
- Potentially Exempt Transfers (PETs) made within 7 years of death consume
  the nil-rate band first; any excess is taxed at the tapered rate for the
  time elapsed since the gift.
- Chargeable Lifetime Transfers (CLTs) into relevant property trusts are
  cumulated over 14 years and charged at the lifetime rate on the amount
  above the nil-rate band.
- Annual exemption (with one year carry-forward) and small-gift checks.

The PET pass is a left fold over an immutable accumulator, so each gift's
assessment depends only on the gifts before it.

Reference: IHTA 1984 s.3A, s.7(4), s.19, s.20
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from functools import reduce
from typing import Iterable, List, Optional, Sequence, Tuple

from calculator.date_utils import tax_year_label, tax_year_start, whole_years_between
from calculator.decimal_math import ZERO, Numeric, min_decimal, non_negative, total
from calculator.exceptions import require_money
from calculator.iht_parameters import IHTParameters
from models.estate import DataQualityFlag, Gift, GiftKind

logger = logging.getLogger(__name__)

# Gifts that draw on the annual exemption
_ANNUAL_EXEMPTION_KINDS = frozenset({GiftKind.PET, GiftKind.CLT, GiftKind.EXEMPT_TRANSFER})


@dataclass(frozen=True)
class PETAssessment:
    """How one PET is treated on death."""
    gift: Gift
    years_since_gift: int
    cumulative_before: Decimal
    nrb_available_before: Decimal
    nrb_covering: Decimal
    taxable_portion: Decimal
    taper_rate: Decimal
    gift_tax: Decimal


@dataclass(frozen=True)
class _PETFoldState:
    cumulative_total: Decimal
    nrb_remaining: Decimal
    assessments: Tuple[PETAssessment, ...] = ()


@dataclass(frozen=True)
class PETLedgerResult:
    as_of: date
    total_nrb: Decimal
    gifts: Tuple[PETAssessment, ...]
    total_gift_value: Decimal
    total_liability: Decimal
    nrb_used_by_gifts: Decimal
    nrb_remaining_for_estate: Decimal
    excluded_count: int = 0


@dataclass(frozen=True)
class CLTAssessment:
    gift: Gift
    years_since_gift: int
    cumulative_before: Decimal
    nrb_available_before: Decimal
    chargeable_amount: Decimal
    lifetime_charge: Decimal
    death_recharge_possible: bool


@dataclass(frozen=True)
class CLTLedgerResult:
    as_of: date
    nil_rate_band: Decimal
    gifts: Tuple[CLTAssessment, ...]
    total_value: Decimal
    total_lifetime_charge: Decimal
    death_recharge_flagged: bool
    data_quality: Tuple[DataQualityFlag, ...] = ()


@dataclass(frozen=True)
class GiftingLiability:
    """Combined PET and CLT position."""
    pets: PETLedgerResult
    clts: CLTLedgerResult
    total_liability: Decimal
    data_quality: Tuple[DataQualityFlag, ...] = ()


@dataclass(frozen=True)
class AnnualExemptionStatus:
    tax_year: str
    annual_exemption: Decimal
    used_this_year: Decimal
    remaining_this_year: Decimal
    carried_forward_available: Decimal
    total_available: Decimal


@dataclass(frozen=True)
class SmallGiftGroup:
    recipient: str
    tax_year: str
    total_value: Decimal
    gift_count: int
    exceeds_limit: bool


@dataclass
class _Bucket:
    total: Decimal = ZERO
    count: int = 0


class GiftLedger:
    """Chronological accounting of lifetime gifts."""

    def __init__(self, params: Optional[IHTParameters] = None):
        self.params = params or IHTParameters.for_2025_26()

    def _validated(self, gifts: Iterable[Gift]) -> List[Gift]:
        checked = []
        for index, gift in enumerate(gifts):
            require_money(gift.value, f"gifts[{index}].value")
            checked.append(gift)
        return checked

    def active_pets(self, gifts: Iterable[Gift], as_of: date) -> List[Gift]:
        """
        PETs still within the survival window, oldest first.

        ``sorted`` is stable, so gifts on the same date keep their input order.
        Gifts dated after ``as_of`` have not been made yet and are skipped.
        """
        window = self.params.pet_survival_years
        active = [
            g for g in self._validated(gifts)
            if g.kind == GiftKind.PET and g.date <= as_of and whole_years_between(g.date, as_of) < window
        ]
        return sorted(active, key=lambda g: g.date)

    def _fold_pet(self, state: _PETFoldState, gift: Gift, as_of: date) -> _PETFoldState:
        years = whole_years_between(gift.date, as_of)
        nrb_covering = min_decimal(gift.value, state.nrb_remaining)
        taxable = gift.value - nrb_covering
        taper = self.params.taper_rate(years)

        assessment = PETAssessment(
            gift=gift,
            years_since_gift=years,
            cumulative_before=state.cumulative_total,
            nrb_available_before=state.nrb_remaining,
            nrb_covering=nrb_covering,
            taxable_portion=taxable,
            taper_rate=taper,
            gift_tax=taxable * taper,
        )
        return _PETFoldState(
            cumulative_total=state.cumulative_total + gift.value,
            nrb_remaining=state.nrb_remaining - nrb_covering,
            assessments=state.assessments + (assessment,),
        )

    def assess_pets(self, gifts: Sequence[Gift], total_nrb: Numeric, as_of: date) -> PETLedgerResult:
        """
        Assess PETs against the nil-rate band as if death occurred on ``as_of``.

        Args:
            gifts: All recorded gifts; non-PETs and expired PETs are ignored
            total_nrb: Own NRB plus any NRB transferred from a spouse
            as_of: Date of (actual or projected) death
        """
        nrb = require_money(total_nrb, "total_nrb")
        gifts = list(gifts)
        active = self.active_pets(gifts, as_of)
        excluded = sum(1 for g in gifts if g.kind == GiftKind.PET) - len(active)

        final = reduce(
            lambda state, gift: self._fold_pet(state, gift, as_of),
            active,
            _PETFoldState(cumulative_total=ZERO, nrb_remaining=nrb),
        )

        used = min_decimal(nrb, final.cumulative_total)
        result = PETLedgerResult(
            as_of=as_of,
            total_nrb=nrb,
            gifts=final.assessments,
            total_gift_value=final.cumulative_total,
            total_liability=total(a.gift_tax for a in final.assessments),
            nrb_used_by_gifts=used,
            nrb_remaining_for_estate=nrb - used,
            excluded_count=excluded,
        )
        logger.debug(
            f"PET ledger: {len(active)} active, {excluded} excluded, "
            f"NRB used {used}, liability {result.total_liability}"
        )
        return result

    def assess_clts(
        self,
        gifts: Sequence[Gift],
        as_of: date,
        nil_rate_band: Optional[Numeric] = None,
    ) -> CLTLedgerResult:
        """
        Lifetime charge on CLTs made within the 14-year lookback.

        Each CLT is cumulated with the CLTs before it; only the amount above
        the NRB left at that point is charged. No taper applies. CLTs still
        inside the 7-year window could be re-charged at the death rate; that
        top-up is flagged, not computed.
        """
        nrb = self.params.nil_rate_band if nil_rate_band is None else require_money(nil_rate_band, "nil_rate_band")
        lookback = self.params.clt_lookback_years
        clts = sorted(
            (
                g for g in self._validated(gifts)
                if g.kind == GiftKind.CLT and g.date <= as_of and whole_years_between(g.date, as_of) < lookback
            ),
            key=lambda g: g.date,
        )

        assessments: List[CLTAssessment] = []
        cumulative = ZERO
        for gift in clts:
            years = whole_years_between(gift.date, as_of)
            available = non_negative(nrb - cumulative)
            chargeable = non_negative(gift.value - available)
            assessments.append(CLTAssessment(
                gift=gift,
                years_since_gift=years,
                cumulative_before=cumulative,
                nrb_available_before=available,
                chargeable_amount=chargeable,
                lifetime_charge=chargeable * self.params.clt_lifetime_rate,
                death_recharge_possible=years < self.params.pet_survival_years,
            ))
            cumulative += gift.value

        recharge = any(a.death_recharge_possible and a.chargeable_amount > 0 for a in assessments)
        return CLTLedgerResult(
            as_of=as_of,
            nil_rate_band=nrb,
            gifts=tuple(assessments),
            total_value=cumulative,
            total_lifetime_charge=total(a.lifetime_charge for a in assessments),
            death_recharge_flagged=recharge,
            data_quality=(DataQualityFlag.CLT_DEATH_RECHARGE_NOT_COMPUTED,) if recharge else (),
        )

    def assess(self, gifts: Sequence[Gift], total_nrb: Numeric, as_of: date) -> GiftingLiability:
        pets = self.assess_pets(gifts, total_nrb, as_of)
        clts = self.assess_clts(gifts, as_of)
        return GiftingLiability(
            pets=pets,
            clts=clts,
            total_liability=pets.total_liability + clts.total_lifetime_charge,
            data_quality=clts.data_quality,
        )

    def annual_exemption_available(self, gifts: Iterable[Gift], as_of: date) -> AnnualExemptionStatus:
        """
        Annual exemption left for the tax year containing ``as_of``.

        The current year's exemption is used first; any unused exemption from
        the previous year can then be carried forward once.
        """
        annual = self.params.annual_exemption
        current_start = tax_year_start(as_of)
        previous_start = current_start.replace(year=current_start.year - 1)

        this_year = ZERO
        last_year = ZERO
        for gift in self._validated(gifts):
            if gift.kind not in _ANNUAL_EXEMPTION_KINDS or gift.date > as_of:
                continue
            if gift.date >= current_start:
                this_year += gift.value
            elif gift.date >= previous_start:
                last_year += gift.value

        used_now = min_decimal(annual, this_year)
        overflow = this_year - used_now

        carry_forward = ZERO
        if self.params.annual_exemption_carry_forward_years > 0:
            carry_forward = non_negative(annual - last_year)
            carry_forward = non_negative(carry_forward - overflow)

        remaining_now = annual - used_now
        return AnnualExemptionStatus(
            tax_year=tax_year_label(as_of),
            annual_exemption=annual,
            used_this_year=used_now,
            remaining_this_year=remaining_now,
            carried_forward_available=carry_forward,
            total_available=remaining_now + carry_forward,
        )

    def small_gift_summary(self, gifts: Iterable[Gift]) -> List[SmallGiftGroup]:
        """
        Group small gifts by recipient and tax year.

        The small-gift exemption covers gifts up to the limit per recipient
        per tax year; a group above the limit does not qualify at all.
        """
        buckets: "OrderedDict[Tuple[str, str], _Bucket]" = OrderedDict()
        for gift in sorted(self._validated(gifts), key=lambda g: g.date):
            if gift.kind != GiftKind.SMALL_GIFT:
                continue
            key = (gift.recipient, tax_year_label(gift.date))
            bucket = buckets.setdefault(key, _Bucket())
            bucket.total += gift.value
            bucket.count += 1

        groups = []
        for (recipient, year), bucket in buckets.items():
            exceeds = bucket.total > self.params.small_gift_limit
            if exceeds:
                logger.info(f"Small gifts to '{recipient}' in {year} exceed the limit: {bucket.total}")
            groups.append(SmallGiftGroup(recipient, year, bucket.total, bucket.count, exceeds))
        return groups


def reclassify_failed_small_gifts(gifts: Iterable[Gift], groups: Iterable[SmallGiftGroup]) -> List[Gift]:
    """Treat small gifts in over-limit groups as PETs."""
    failing = {(g.recipient, g.tax_year) for g in groups if g.exceeds_limit}
    return [
        g.model_copy(update={"kind": GiftKind.PET})
        if g.kind == GiftKind.SMALL_GIFT and (g.recipient, tax_year_label(g.date)) in failing
        else g
        for g in gifts
    ]
