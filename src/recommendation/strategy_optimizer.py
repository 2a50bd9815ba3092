"""
Strategy Optimizer.

Greedy waterfall of IHT mitigation strategies, cheapest and safest first.
Each step works on whatever liability and estate the previous steps left:

1. Annual exemption gifts (immediately exempt)
2. Regular gifts out of surplus income (immediately exempt if affordable)
3. PETs sized to the nil-rate band, one per complete 7 year cycle
4. A chargeable lifetime transfer into trust for anything still left

Life cover is then priced for whatever liability remains.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from calculator.decimal_math import (
    ZERO,
    Numeric,
    divide,
    min_decimal,
    non_negative,
    percent_of,
)
from calculator.exceptions import require_money
from calculator.iht_parameters import IHTParameters
from models.estate import DataQualityFlag, EstateSnapshot, FinancialProfile, Person
from projection.projection_engine import JointProjection, LifeHorizon, SingleProjection
from recommendation.life_cover import InsuredLife, LifeCoverAnalysis, LifeCoverCalculator
from recommendation.liquidity import LiquidityAnalyzer

logger = logging.getLogger(__name__)


class StrategyKind(str, Enum):
    ANNUAL_EXEMPTION = "annual_exemption"
    INCOME_GIFTING = "income_gifting"
    PET_CYCLES = "pet_cycles"
    CLT_TRUST = "clt_trust"


class RiskLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    MEDIUM_HIGH = "medium_high"


STRATEGY_NAMES = {
    StrategyKind.ANNUAL_EXEMPTION: "Annual Exemption",
    StrategyKind.INCOME_GIFTING: "Normal Expenditure Out of Income",
    StrategyKind.PET_CYCLES: "Potentially Exempt Transfers",
    StrategyKind.CLT_TRUST: "Chargeable Lifetime Transfer into Trust",
}

STRATEGY_RISK = {
    StrategyKind.ANNUAL_EXEMPTION: RiskLevel.NONE,
    StrategyKind.INCOME_GIFTING: RiskLevel.LOW,
    StrategyKind.PET_CYCLES: RiskLevel.MEDIUM,
    StrategyKind.CLT_TRUST: RiskLevel.MEDIUM_HIGH,
}


@dataclass(frozen=True)
class ScheduledGift:
    year: int
    amount: Decimal
    exempt_from_year: int


@dataclass(frozen=True)
class MitigationStrategy:
    kind: StrategyKind
    name: str
    amount_transferred: Decimal
    iht_saved: Decimal
    risk_level: RiskLevel
    schedule: Tuple[ScheduledGift, ...] = ()
    applied: bool = True
    immediate_charge: Decimal = ZERO
    notes: str = ""


@dataclass(frozen=True)
class MitigationPlan:
    original_liability: Decimal
    estate_value: Decimal
    years_until_death: int
    strategies: Tuple[MitigationStrategy, ...]
    total_transferred: Decimal
    total_iht_saved: Decimal
    remaining_liability: Decimal
    estate_after_gifting: Decimal
    reduction_percent: Decimal
    life_cover: Optional[LifeCoverAnalysis] = None
    data_quality: Tuple[DataQualityFlag, ...] = field(default_factory=tuple)

    def strategy(self, kind: StrategyKind) -> Optional[MitigationStrategy]:
        return next((s for s in self.strategies if s.kind == kind), None)


@dataclass
class _Waterfall:
    """Running totals between strategy steps."""
    liability: Decimal
    estate: Decimal
    giftable: Optional[Decimal] = None
    strategies: List[MitigationStrategy] = field(default_factory=list)
    flags: List[DataQualityFlag] = field(default_factory=list)

    def apply(self, strategy: MitigationStrategy) -> None:
        self.strategies.append(strategy)
        self.liability = non_negative(self.liability - strategy.iht_saved)
        self.estate = non_negative(self.estate - strategy.amount_transferred)
        if self.giftable is not None:
            self.giftable = non_negative(self.giftable - strategy.amount_transferred)

    def capacity(self) -> Decimal:
        """What can still be given away: the estate, or the giftable assets if known."""
        if self.giftable is None:
            return self.estate
        return min_decimal(self.estate, self.giftable)

    def skip(self, kind: StrategyKind, notes: str, flag: Optional[DataQualityFlag] = None) -> None:
        self.strategies.append(MitigationStrategy(
            kind=kind,
            name=STRATEGY_NAMES[kind],
            amount_transferred=ZERO,
            iht_saved=ZERO,
            risk_level=STRATEGY_RISK[kind],
            applied=False,
            notes=notes,
        ))
        if flag is not None and flag not in self.flags:
            self.flags.append(flag)


class StrategyOptimizer:
    """
    Sizes the mitigation waterfall against a projected liability.

    Usage:
        optimizer = StrategyOptimizer(params)
        plan = optimizer.plan_single(projection, snapshot)
    """

    def __init__(self, params: Optional[IHTParameters] = None):
        self.params = params or IHTParameters.for_2025_26()
        self.life_cover = LifeCoverCalculator(self.params)
        self.liquidity = LiquidityAnalyzer()

    def _saving(self, amount: Decimal, remaining_liability: Decimal) -> Decimal:
        return min_decimal(amount * self.params.standard_rate, remaining_liability)

    # Individual strategies

    def annual_exemption(self, years: int, state: _Waterfall) -> None:
        kind = StrategyKind.ANNUAL_EXEMPTION
        yearly = self.params.annual_exemption
        transferred = min_decimal(yearly * years, state.capacity())
        state.apply(MitigationStrategy(
            kind=kind,
            name=STRATEGY_NAMES[kind],
            amount_transferred=transferred,
            iht_saved=self._saving(transferred, state.liability),
            risk_level=STRATEGY_RISK[kind],
            schedule=tuple(ScheduledGift(year, yearly, year) for year in range(years)),
            notes=f"Gift {yearly} a year for {years} years, exempt immediately",
        ))

    def income_gifting(self, years: int, finances: Optional[FinancialProfile], state: _Waterfall) -> None:
        kind = StrategyKind.INCOME_GIFTING
        if finances is None:
            state.skip(kind, "No income and expenditure data", DataQualityFlag.AFFORDABILITY_NOT_MET)
            return

        surplus = non_negative(finances.annual_income - finances.annual_expenditure)
        yearly = surplus * self.params.income_gifting_share
        if surplus <= 0 or yearly < self.params.income_gifting_minimum:
            state.skip(
                kind,
                f"Surplus income of {surplus} does not support regular gifts of "
                f"{self.params.income_gifting_minimum} a year",
                DataQualityFlag.AFFORDABILITY_NOT_MET,
            )
            return

        transferred = min_decimal(yearly * years, state.capacity())
        state.apply(MitigationStrategy(
            kind=kind,
            name=STRATEGY_NAMES[kind],
            amount_transferred=transferred,
            iht_saved=self._saving(transferred, state.liability),
            risk_level=STRATEGY_RISK[kind],
            schedule=tuple(ScheduledGift(year, yearly, year) for year in range(years)),
            notes=f"Gift {yearly} a year out of surplus income",
        ))

    def pet_cycles(self, years: int, total_nrb: Decimal, state: _Waterfall) -> None:
        """
        One PET per complete survival window, each sized to the nil-rate band
        or to whatever the earlier gifts have left, whichever is smaller.
        """
        kind = StrategyKind.PET_CYCLES
        window = self.params.pet_survival_years
        cycles = years // window
        if cycles == 0:
            state.skip(
                kind,
                f"Fewer than {window} years remain, so no PET can become exempt",
                DataQualityFlag.INSUFFICIENT_TIME_FOR_PET,
            )
            return

        schedule: List[ScheduledGift] = []
        left = state.capacity()
        for cycle in range(cycles):
            amount = non_negative(min_decimal(total_nrb, left))
            if amount <= 0:
                break
            schedule.append(ScheduledGift(cycle * window, amount, (cycle + 1) * window))
            left -= amount

        transferred = sum((g.amount for g in schedule), ZERO)
        state.apply(MitigationStrategy(
            kind=kind,
            name=STRATEGY_NAMES[kind],
            amount_transferred=transferred,
            iht_saved=self._saving(transferred, state.liability),
            risk_level=STRATEGY_RISK[kind],
            schedule=tuple(schedule),
            notes=f"{len(schedule)} of {cycles} complete {window} year cycle(s) funded, {transferred} in total",
        ))

    def clt_trust(self, state: _Waterfall) -> None:
        kind = StrategyKind.CLT_TRUST
        gift = min_decimal(divide(state.liability, self.params.standard_rate), state.estate)
        charge = gift * self.params.clt_lifetime_rate
        net_saving = non_negative(gift * self.params.standard_rate - charge)
        state.apply(MitigationStrategy(
            kind=kind,
            name=STRATEGY_NAMES[kind],
            amount_transferred=gift,
            iht_saved=min_decimal(net_saving, state.liability),
            risk_level=STRATEGY_RISK[kind],
            schedule=(ScheduledGift(0, gift, self.params.pet_survival_years),),
            immediate_charge=charge,
            notes="Immediate lifetime charge payable; further tax if death follows within 7 years",
        ))

    # Waterfall

    def optimize(
        self,
        liability: Numeric,
        estate_value: Numeric,
        years_until_death: int,
        total_nrb: Numeric,
        finances: Optional[FinancialProfile] = None,
        giftable_value: Optional[Numeric] = None,
        lives: Sequence[InsuredLife] = (),
        existing_cover: Optional[Numeric] = None,
    ) -> MitigationPlan:
        """
        Run the waterfall and price life cover for the residual liability.

        Args:
            liability: Projected liability with no mitigation
            estate_value: Projected net estate the gifts come out of
            years_until_death: Time available (second death for a couple)
            total_nrb: Nil-rate band available, caps each PET
            finances: Income and expenditure for the income gifting test
            giftable_value: Assets that can actually be given away, caps the gifts
            lives: Insured lives; empty skips the life cover analysis
            existing_cover: Cover already held, defaults to ``finances``
        """
        original = require_money(liability, "liability")
        estate = require_money(estate_value, "estate_value")
        nrb = require_money(total_nrb, "total_nrb")
        giftable = None if giftable_value is None else require_money(giftable_value, "giftable_value")
        years = max(int(years_until_death), 0)

        state = _Waterfall(liability=original, estate=estate, giftable=giftable)

        self.annual_exemption(years, state)
        self.income_gifting(years, finances, state)
        if state.liability > 0:
            self.pet_cycles(years, nrb, state)
        if state.liability > 0:
            self.clt_trust(state)

        total_saved = sum((s.iht_saved for s in state.strategies), ZERO)
        total_transferred = sum((s.amount_transferred for s in state.strategies), ZERO)

        cover = None
        if lives:
            held = existing_cover if existing_cover is not None else (
                finances.existing_life_cover if finances is not None else ZERO
            )
            cover = self.life_cover.analyze(original, state.liability, years, lives, held)

        logger.info(
            f"Mitigation plan: liability {original} reduced by {total_saved} "
            f"with {total_transferred} transferred over {years} years"
        )
        return MitigationPlan(
            original_liability=original,
            estate_value=estate,
            years_until_death=years,
            strategies=tuple(state.strategies),
            total_transferred=total_transferred,
            total_iht_saved=total_saved,
            remaining_liability=state.liability,
            estate_after_gifting=state.estate,
            reduction_percent=percent_of(total_saved, original),
            life_cover=cover,
            data_quality=tuple(state.flags),
        )

    # Projection adapters

    @staticmethod
    def _insured(person: Person, horizon: LifeHorizon) -> Optional[InsuredLife]:
        if horizon.current_age is None:
            return None
        return InsuredLife(age=horizon.current_age, gender=person.gender)

    def plan_single(self, projection: SingleProjection, snapshot: EstateSnapshot) -> MitigationPlan:
        projected = projection.projected
        giftable = self.liquidity.analyze(snapshot.assets, snapshot.profile).total_giftable
        life = self._insured(snapshot.person, projection.horizon)
        plan = self.optimize(
            liability=projected.total_liability,
            estate_value=projected.valuation.net_estate,
            years_until_death=projection.horizon.years_until_death,
            total_nrb=projected.allowances.total_nrb,
            finances=snapshot.finances,
            giftable_value=giftable,
            lives=(life,) if life is not None else (),
        )
        return self._flag_missing_cover(plan, life is None)

    def plan_joint(
        self,
        projection: JointProjection,
        primary: EstateSnapshot,
        spouse: EstateSnapshot,
    ) -> MitigationPlan:
        """Plan against the second death, pooling both partners' cash flow and assets."""
        projected = projection.projected
        assets = list(primary.assets) + list(spouse.assets)
        household = primary.profile.model_copy(update={
            "own_home": primary.profile.own_home or spouse.profile.own_home,
        })
        giftable = self.liquidity.analyze(assets, household).total_giftable
        finances = FinancialProfile(
            annual_income=primary.finances.annual_income + spouse.finances.annual_income,
            annual_expenditure=primary.finances.annual_expenditure + spouse.finances.annual_expenditure,
            existing_life_cover=primary.finances.existing_life_cover + spouse.finances.existing_life_cover,
        )
        by_id = {primary.person.person_id: primary.person, spouse.person.person_id: spouse.person}
        lives = [
            self._insured(by_id.get(death.person_id, primary.person), death.horizon)
            for death in (projection.first_death, projection.second_death)
        ]
        insured = tuple(life for life in lives if life is not None)
        plan = self.optimize(
            liability=projected.total_liability,
            estate_value=projected.valuation.net_estate,
            years_until_death=projection.second_death.horizon.years_until_death,
            total_nrb=projected.allowances.total_nrb,
            finances=finances,
            giftable_value=giftable,
            lives=insured if len(insured) == 2 else (),
        )
        return self._flag_missing_cover(plan, len(insured) != 2)

    @staticmethod
    def _flag_missing_cover(plan: MitigationPlan, missing: bool) -> MitigationPlan:
        if not missing or DataQualityFlag.LIFE_COVER_NOT_PRICED in plan.data_quality:
            return plan
        logger.warning("No current age available; life cover analysis skipped")
        return replace(plan, data_quality=plan.data_quality + (DataQualityFlag.LIFE_COVER_NOT_PRICED,))
