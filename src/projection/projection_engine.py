"""
IHT Projection Engine.

Produces a present-day liability ("if death occurred today") and a liability
projected to an actuarially estimated death date, for:
- a single person, and
- a married couple, where the first death is spouse-exempt and the combined
  estate is taxed on the second death with the deceased's unused bands.

The engine orchestrates the pure components (allowance calculator, gift
ledger, actuarial table, future value calculator, spousal transfer tracker)
and owns no state. "Today" is always passed in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from calculator.allowance_calculator import AllowanceBreakdown, AllowanceCalculator, find_qualifying_residence
from calculator.date_utils import add_years
from calculator.decimal_math import ZERO, non_negative, total
from calculator.exceptions import MissingActuarialInput, require_money
from calculator.gift_ledger import (
    AnnualExemptionStatus,
    GiftingLiability,
    GiftLedger,
    SmallGiftGroup,
    reclassify_failed_small_gifts,
)
from calculator.iht_parameters import IHTParameters
from calculator.trust_charges import PeriodicChargeResult, TrustChargeCalculator
from models.estate import (
    Asset,
    DataQualityFlag,
    EstateSnapshot,
    Gender,
    Gift,
    IHTProfile,
    Person,
    Trust,
)
from projection.actuarial_table import ActuarialTable, DeathProjection
from projection.future_value import EstateProjection, FutureValueCalculator
from projection.spousal_transfer import SpousalTransfer, SpousalTransferTracker

logger = logging.getLogger(__name__)

FIRST_DEATH_NOTE = "All assets pass to the surviving spouse; no IHT due under the spouse exemption"


@dataclass(frozen=True)
class EstateValuation:
    """gross_estate = assets + trust IHT values; net_estate excludes exempt assets and liabilities."""
    gross_estate: Decimal
    asset_value: Decimal
    trust_value: Decimal
    exempt_value: Decimal
    liabilities: Decimal
    net_estate: Decimal


@dataclass(frozen=True)
class LiabilitySnapshot:
    """IHT position if death occurred on ``as_of``."""
    as_of: date
    valuation: EstateValuation
    allowances: AllowanceBreakdown
    gifts: GiftingLiability
    estate_liability: Decimal
    gift_liability: Decimal
    total_liability: Decimal
    data_quality: Tuple[DataQualityFlag, ...] = ()


@dataclass(frozen=True)
class LifeHorizon:
    """How long the projection runs and how that was decided."""
    years_until_death: int
    estimated_death_date: date
    current_age: Optional[int] = None
    estimated_age_at_death: Optional[int] = None
    death: Optional[DeathProjection] = None
    data_quality: Tuple[DataQualityFlag, ...] = ()


@dataclass(frozen=True)
class SingleProjection:
    as_of: date
    person_id: str
    horizon: LifeHorizon
    estate_projection: EstateProjection
    current: LiabilitySnapshot
    projected: LiabilitySnapshot
    annual_exemption: AnnualExemptionStatus
    small_gifts: Tuple[SmallGiftGroup, ...] = ()
    trust_charges: Tuple[PeriodicChargeResult, ...] = ()
    data_quality: Tuple[DataQualityFlag, ...] = ()
    scenario: str = "single"

    @property
    def projected_liability(self) -> Decimal:
        return self.projected.total_liability

    @property
    def projected_estate_value(self) -> Decimal:
        return self.projected.valuation.net_estate


@dataclass(frozen=True)
class FirstDeath:
    person_id: str
    name: str
    horizon: LifeHorizon
    current_estate_value: Decimal
    projected_estate_value: Decimal
    iht_liability: Decimal = ZERO
    note: str = FIRST_DEATH_NOTE


@dataclass(frozen=True)
class SecondDeath:
    person_id: str
    name: str
    horizon: LifeHorizon
    current_estate_value: Decimal
    own_estate_at_first_death: Decimal
    inherited_from_first_death: Decimal
    combined_estate_at_first_death: Decimal
    projected_combined_estate: Decimal
    years_between_deaths: int


@dataclass(frozen=True)
class JointProjection:
    as_of: date
    first_death: FirstDeath
    second_death: SecondDeath
    spousal_transfer: SpousalTransfer
    current: LiabilitySnapshot
    projected: LiabilitySnapshot
    total_iht_payable: Decimal
    growth_rates: Dict[str, Decimal] = field(default_factory=dict)
    data_quality: Tuple[DataQualityFlag, ...] = ()
    scenario: str = "second_death"

    @property
    def projected_liability(self) -> Decimal:
        return self.projected.total_liability

    @property
    def projected_estate_value(self) -> Decimal:
        return self.projected.valuation.net_estate


def _merge_flags(*groups: Iterable[DataQualityFlag]) -> Tuple[DataQualityFlag, ...]:
    seen: List[DataQualityFlag] = []
    for group in groups:
        for flag in group:
            if flag not in seen:
                seen.append(flag)
    return tuple(seen)


class IHTProjectionEngine:
    """
    Orchestrates allowance, gift and actuarial components.

    Usage:
        engine = IHTProjectionEngine(params, ActuarialTable(rows))
        result = engine.project_single(snapshot, today=date.today())
    """

    def __init__(self, params: Optional[IHTParameters] = None, life_table: Optional[ActuarialTable] = None):
        self.params = params or IHTParameters.for_2025_26()
        self.life_table = life_table or ActuarialTable([], params=self.params)
        self.allowances = AllowanceCalculator(self.params)
        self.ledger = GiftLedger(self.params)
        self.future_values = FutureValueCalculator(self.params)
        self.spousal = SpousalTransferTracker(self.params)
        self.trusts = TrustChargeCalculator(self.params)

    # Valuation

    def value_estate(
        self,
        assets: Sequence[Asset],
        trusts: Sequence[Trust] = (),
        liabilities: Sequence[Decimal] = (),
    ) -> EstateValuation:
        asset_values = [require_money(a.value, f"assets[{i}].value") for i, a in enumerate(assets)]
        exempt = total(v for v, a in zip(asset_values, assets) if a.iht_exempt)
        debts = total(require_money(v, f"liabilities[{i}]") for i, v in enumerate(liabilities))
        return self._valuation(total(asset_values), self.trusts.estate_value(trusts), exempt, debts)

    def _valuation(self, asset_value: Decimal, trust_value: Decimal, exempt: Decimal, debts: Decimal) -> EstateValuation:
        gross = asset_value + trust_value
        return EstateValuation(
            gross_estate=gross,
            asset_value=asset_value,
            trust_value=trust_value,
            exempt_value=exempt,
            liabilities=debts,
            net_estate=non_negative(gross - exempt - debts),
        )

    def liability_at(
        self,
        valuation: EstateValuation,
        profile: IHTProfile,
        gifts: Sequence[Gift],
        assets: Sequence[Asset],
        as_of: date,
    ) -> LiabilitySnapshot:
        """Run gift ledger then allowance calculator for death on ``as_of``."""
        small_gifts = self.ledger.small_gift_summary(gifts)
        gifts = reclassify_failed_small_gifts(gifts, small_gifts)

        own_nrb, transferred_nrb = self.allowances.available_nrb(profile)
        gift_result = self.ledger.assess(gifts, own_nrb + transferred_nrb, as_of)
        residence = find_qualifying_residence(profile, assets)
        allowance = self.allowances.calculate(
            valuation.net_estate,
            profile,
            nrb_used_by_gifts=gift_result.pets.nrb_used_by_gifts,
            residence=residence,
        )
        gift_tax = gift_result.pets.total_liability
        return LiabilitySnapshot(
            as_of=as_of,
            valuation=valuation,
            allowances=allowance,
            gifts=gift_result,
            estate_liability=allowance.liability,
            gift_liability=gift_tax,
            total_liability=allowance.liability + gift_tax,
            data_quality=_merge_flags(allowance.data_quality, gift_result.data_quality),
        )

    # Life expectancy

    def horizon_for(self, person: Person, today: date) -> LifeHorizon:
        """
        Years until expected death for one person.

        Missing date of birth falls back to the configured default horizon;
        missing gender uses the shorter of the male and female expectancies.
        Both are flagged as assumed.
        """
        if person.date_of_birth is None:
            years = self.params.default_years_until_death
            logger.warning(f"No date of birth for '{person.person_id}'; assuming {years} years")
            return LifeHorizon(
                years_until_death=years,
                estimated_death_date=add_years(today, years),
                data_quality=(DataQualityFlag.ASSUMED_LIFE_EXPECTANCY,),
            )

        if person.gender is None:
            candidates = [self.life_table.project_death(person.date_of_birth, g, today) for g in Gender]
            death = min(candidates, key=lambda d: d.life_expectancy.life_expectancy_years)
            flags = (DataQualityFlag.ASSUMED_LIFE_EXPECTANCY,) + death.life_expectancy.data_quality
        else:
            death = self.life_table.project_death(person.date_of_birth, person.gender, today)
            flags = death.life_expectancy.data_quality

        return LifeHorizon(
            years_until_death=death.years_until_death,
            estimated_death_date=death.estimated_death_date,
            current_age=death.current_age,
            estimated_age_at_death=death.estimated_age_at_death,
            death=death,
            data_quality=_merge_flags(flags),
        )

    # Single person

    def project_single(self, snapshot: EstateSnapshot, today: date) -> SingleProjection:
        horizon = self.horizon_for(snapshot.person, today)
        profile = snapshot.profile

        current_valuation = self.value_estate(snapshot.assets, snapshot.trusts, snapshot.liabilities)
        current = self.liability_at(current_valuation, profile, snapshot.gifts, snapshot.assets, today)

        grown = self.future_values.project_assets(snapshot.assets, horizon.years_until_death)
        projected_valuation = self._valuation(
            grown.projected_value,
            current_valuation.trust_value,
            grown.projected_value - grown.chargeable_projected_value,
            current_valuation.liabilities,
        )
        projected = self.liability_at(
            projected_valuation, profile, snapshot.gifts, snapshot.assets, horizon.estimated_death_date
        )

        trust_charges = tuple(
            self.trusts.periodic_charge(t, today) for t in snapshot.trusts if t.is_relevant_property
        )

        logger.info(
            f"Single projection for '{snapshot.person.person_id}': "
            f"{horizon.years_until_death} years, current {current.total_liability}, "
            f"projected {projected.total_liability}"
        )
        return SingleProjection(
            as_of=today,
            person_id=snapshot.person.person_id,
            horizon=horizon,
            estate_projection=grown,
            current=current,
            projected=projected,
            annual_exemption=self.ledger.annual_exemption_available(snapshot.gifts, today),
            small_gifts=tuple(self.ledger.small_gift_summary(snapshot.gifts)),
            trust_charges=trust_charges,
            data_quality=_merge_flags(horizon.data_quality, current.data_quality, projected.data_quality),
        )

    # Married couple

    def project_second_death_estate(self, combined_value_at_first_death, years_between_deaths: int) -> Decimal:
        """Grow the combined estate from first to second death at the default rate."""
        return self.future_values.project_value(
            combined_value_at_first_death, max(int(years_between_deaths), 0), "default"
        )

    def _require_actuarial_inputs(self, primary: Person, spouse: Person) -> None:
        missing: Dict[str, List[str]] = {}
        for role, person in (("primary", primary), ("spouse", spouse)):
            fields_missing = [
                name for name, value in (("date_of_birth", person.date_of_birth), ("gender", person.gender))
                if value is None
            ]
            if fields_missing:
                missing[person.person_id or role] = fields_missing
        if missing:
            raise MissingActuarialInput(missing)

    def project_joint(self, primary: EstateSnapshot, spouse: EstateSnapshot, today: date) -> JointProjection:
        """
        Two-phase projection for a married couple.

        The partner with the shorter expectancy dies first. Both estates grow
        by asset type to that date; the first death is spouse-exempt; the
        combined value then grows at the default rate until the survivor's
        death, when it is taxed with the transferred bands.

        Raises:
            MissingActuarialInput: if either party lacks date of birth or gender
        """
        self._require_actuarial_inputs(primary.person, spouse.person)

        primary_horizon = self.horizon_for(primary.person, today)
        spouse_horizon = self.horizon_for(spouse.person, today)

        if primary_horizon.years_until_death > spouse_horizon.years_until_death:
            survivor, survivor_horizon, deceased, deceased_horizon = primary, primary_horizon, spouse, spouse_horizon
        else:
            survivor, survivor_horizon, deceased, deceased_horizon = spouse, spouse_horizon, primary, primary_horizon

        first_years = deceased_horizon.years_until_death
        years_between = max(survivor_horizon.years_until_death - first_years, 0)

        # Phase 1: both estates to the first death
        deceased_grown = self.future_values.project_assets(deceased.assets, first_years)
        survivor_grown = self.future_values.project_assets(survivor.assets, first_years)
        deceased_valuation = self.value_estate(deceased.assets, (), deceased.liabilities)
        survivor_valuation = self.value_estate(survivor.assets, survivor.trusts, survivor.liabilities)

        inherited = non_negative(deceased_grown.chargeable_projected_value - deceased_valuation.liabilities)
        own_at_first_death = survivor_grown.chargeable_projected_value
        combined_at_first_death = own_at_first_death + inherited

        transfer = self.spousal.calculate(
            deceased.gifts, deceased.profile, deceased_horizon.estimated_death_date, deceased.assets
        )
        survivor_profile = self.spousal.survivor_profile(survivor.profile, deceased.profile, transfer)
        all_assets = list(survivor.assets) + list(deceased.assets)

        # Phase 2: combined estate to the second death
        projected_combined = self.project_second_death_estate(combined_at_first_death, years_between)
        second_valuation = self._valuation(
            projected_combined, survivor_valuation.trust_value, ZERO, survivor_valuation.liabilities
        )
        projected = self.liability_at(
            second_valuation, survivor_profile, survivor.gifts, all_assets, survivor_horizon.estimated_death_date
        )

        # Today's comparison: combined estate with the bands that would transfer now
        transfer_today = self.spousal.calculate(deceased.gifts, deceased.profile, today, deceased.assets)
        profile_today = self.spousal.survivor_profile(survivor.profile, deceased.profile, transfer_today)
        current_valuation = self._valuation(
            survivor_valuation.asset_value + deceased_valuation.asset_value,
            survivor_valuation.trust_value,
            survivor_valuation.exempt_value + deceased_valuation.exempt_value,
            survivor_valuation.liabilities + deceased_valuation.liabilities,
        )
        current = self.liability_at(current_valuation, profile_today, survivor.gifts, all_assets, today)

        logger.info(
            f"Joint projection: first death in {first_years} years, second in "
            f"{survivor_horizon.years_until_death}; projected liability {projected.total_liability}"
        )

        return JointProjection(
            as_of=today,
            first_death=FirstDeath(
                person_id=deceased.person.person_id,
                name=deceased.person.name,
                horizon=deceased_horizon,
                current_estate_value=deceased_valuation.net_estate,
                projected_estate_value=inherited,
            ),
            second_death=SecondDeath(
                person_id=survivor.person.person_id,
                name=survivor.person.name,
                horizon=survivor_horizon,
                current_estate_value=survivor_valuation.net_estate,
                own_estate_at_first_death=own_at_first_death,
                inherited_from_first_death=inherited,
                combined_estate_at_first_death=combined_at_first_death,
                projected_combined_estate=projected_combined,
                years_between_deaths=years_between,
            ),
            spousal_transfer=transfer,
            current=current,
            projected=projected,
            total_iht_payable=projected.total_liability,
            growth_rates=dict(self.params.growth_rates),
            data_quality=_merge_flags(
                deceased_horizon.data_quality,
                survivor_horizon.data_quality,
                current.data_quality,
                projected.data_quality,
            ),
        )
