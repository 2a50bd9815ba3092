"""
Life Cover Analysis.

Compares three ways of funding an IHT bill:
- Full cover: whole of life policy for the whole projected liability
- Cover after gifting: a smaller policy for what remains once gifting is done
- Self-insurance: invest the premium instead and let it compound

Premiums come from a monthly rate per £1,000 of cover by age and gender.
A joint life second death policy is priced at a discount to the average
of the two single-life rates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from calculator.decimal_math import (
    THOUSAND,
    ZERO,
    Numeric,
    annuity_future_value,
    divide,
    format_money,
    linear_interpolate,
    non_negative,
    percent_of,
    to_decimal,
)
from calculator.exceptions import require_money
from calculator.iht_parameters import IHTParameters, PremiumTable
from models.estate import Gender

logger = logging.getLogger(__name__)


# Minimum coverage percentage for each self-insurance confidence rating
CONFIDENCE_LEVELS: Tuple[Tuple[Decimal, str], ...] = (
    (Decimal("120"), "Very High"),
    (Decimal("110"), "High"),
    (Decimal("100"), "Medium-High"),
    (Decimal("90"), "Medium"),
    (Decimal("75"), "Medium-Low"),
)
LOWEST_CONFIDENCE = "Low"

SIGNIFICANT_COVER_GAP = Decimal("50000")
SELF_INSURANCE_VIABLE_PERCENT = Decimal("90")
GIFTING_FIRST_RATIO = Decimal("0.5")


def confidence_level(coverage_percent: Numeric) -> str:
    coverage = to_decimal(coverage_percent)
    for minimum, label in CONFIDENCE_LEVELS:
        if coverage >= minimum:
            return label
    return LOWEST_CONFIDENCE


class PremiumRateTable:
    """
    Monthly premium per £1,000 of whole of life cover.

    Ages between table rows are linearly interpolated; ages outside the
    table use the nearest end row.
    """

    def __init__(self, rows: PremiumTable):
        if not rows:
            raise ValueError("Premium table must have at least one row")
        self._rows = tuple(sorted(rows, key=lambda row: row[0]))

    @staticmethod
    def _column(gender: Optional[Gender]) -> int:
        return 2 if gender == Gender.FEMALE else 1

    def monthly_rate(self, age: int, gender: Optional[Gender]) -> Decimal:
        column = self._column(gender)
        first, last = self._rows[0], self._rows[-1]
        if age <= first[0]:
            return first[column]
        if age >= last[0]:
            return last[column]

        lower = first
        for row in self._rows:
            if row[0] == age:
                return row[column]
            if row[0] > age:
                return linear_interpolate(age, lower[0], lower[column], row[0], row[column])
            lower = row
        return last[column]

    def joint_rate(
        self,
        first: Tuple[int, Optional[Gender]],
        second: Tuple[int, Optional[Gender]],
        discount: Numeric,
    ) -> Decimal:
        """Joint life second death: ``discount`` times the mean single-life rate."""
        average = (self.monthly_rate(*first) + self.monthly_rate(*second)) / 2
        return average * to_decimal(discount)


@dataclass(frozen=True)
class InsuredLife:
    age: int
    gender: Optional[Gender] = None


@dataclass(frozen=True)
class CoverScenario:
    name: str
    description: str
    cover_amount: Decimal
    monthly_rate: Decimal
    annual_premium: Decimal
    monthly_premium: Decimal
    term_years: int
    total_premiums: Decimal
    cost_benefit_ratio: Decimal
    implementation: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SelfInsuranceScenario:
    annual_investment: Decimal
    monthly_investment: Decimal
    term_years: int
    assumed_return_rate: Decimal
    total_invested: Decimal
    investment_growth: Decimal
    projected_value: Decimal
    target_amount: Decimal
    shortfall: Decimal
    surplus: Decimal
    coverage_percent: Decimal
    is_sufficient: bool
    confidence: str


@dataclass(frozen=True)
class CoverRecommendation:
    priority: int
    title: str
    rationale: str
    action: str


@dataclass(frozen=True)
class LifeCoverAnalysis:
    is_joint_policy: bool
    lives: Tuple[InsuredLife, ...]
    years_until_death: int
    iht_liability: Decimal
    iht_after_gifting: Decimal
    existing_cover: Decimal
    cover_gap: Decimal
    full_cover: CoverScenario
    cover_after_gifting: CoverScenario
    self_insurance: SelfInsuranceScenario
    recommendations: Tuple[CoverRecommendation, ...] = field(default_factory=tuple)

    @property
    def recommended_approach(self) -> str:
        return self.recommendations[0].title if self.recommendations else ""


class LifeCoverCalculator:
    """Prices cover scenarios and ranks them against the projected liability."""

    def __init__(self, params: Optional[IHTParameters] = None):
        self.params = params or IHTParameters.for_2025_26()
        self.rates = PremiumRateTable(self.params.premium_table)

    def monthly_rate(self, lives: Sequence[InsuredLife]) -> Decimal:
        if not lives:
            raise ValueError("At least one insured life is required")
        if len(lives) == 1:
            return self.rates.monthly_rate(lives[0].age, lives[0].gender)
        first, second = lives[0], lives[1]
        return self.rates.joint_rate(
            (first.age, first.gender), (second.age, second.gender), self.params.joint_life_discount
        )

    def annual_premium(self, cover_amount: Numeric, lives: Sequence[InsuredLife]) -> Decimal:
        """Annual premium = cover / 1,000 x monthly rate x 12."""
        cover = non_negative(cover_amount)
        return cover / THOUSAND * self.monthly_rate(lives) * 12

    def cover_scenario(
        self,
        name: str,
        description: str,
        cover_amount: Numeric,
        years: int,
        lives: Sequence[InsuredLife],
        implementation: Sequence[str] = (),
    ) -> CoverScenario:
        cover = non_negative(cover_amount)
        monthly_rate = self.monthly_rate(lives)
        annual = self.annual_premium(cover, lives)
        total_paid = annual * max(int(years), 0)
        return CoverScenario(
            name=name,
            description=description,
            cover_amount=cover,
            monthly_rate=monthly_rate,
            annual_premium=annual,
            monthly_premium=annual / 12,
            term_years=max(int(years), 0),
            total_premiums=total_paid,
            cost_benefit_ratio=divide(cover, total_paid, default=ZERO),
            implementation=tuple(implementation),
        )

    def self_insurance(self, annual_investment: Numeric, years: int, target_amount: Numeric) -> SelfInsuranceScenario:
        """Invest the premium each year at the assumed return instead of buying cover."""
        payment = non_negative(annual_investment)
        target = non_negative(target_amount)
        term = max(int(years), 0)
        return_rate = self.params.self_insurance_return

        projected = annuity_future_value(payment, return_rate, term)
        invested = payment * term
        coverage = percent_of(projected, target)

        return SelfInsuranceScenario(
            annual_investment=payment,
            monthly_investment=payment / 12,
            term_years=term,
            assumed_return_rate=return_rate,
            total_invested=invested,
            investment_growth=projected - invested,
            projected_value=projected,
            target_amount=target,
            shortfall=non_negative(target - projected),
            surplus=non_negative(projected - target),
            coverage_percent=coverage,
            is_sufficient=projected >= target,
            confidence=confidence_level(coverage),
        )

    def analyze(
        self,
        iht_liability: Numeric,
        iht_after_gifting: Numeric,
        years_until_death: int,
        lives: Sequence[InsuredLife],
        existing_cover: Numeric = ZERO,
    ) -> LifeCoverAnalysis:
        """
        Build all three scenarios and the ranked recommendations.

        Args:
            iht_liability: Projected liability with no mitigation
            iht_after_gifting: Projected liability after the gifting strategies
            years_until_death: Premium term (second death for a couple)
            lives: One life, or two for a joint life second death policy
            existing_cover: Cover already held in trust
        """
        liability = require_money(iht_liability, "iht_liability")
        after_gifting = require_money(iht_after_gifting, "iht_after_gifting")
        existing = require_money(existing_cover, "existing_cover")
        lives = tuple(lives[:2])
        is_joint = len(lives) == 2

        full = self.cover_scenario(
            "Full Life Cover",
            "Joint life second death policy, pays out on the second death only" if is_joint
            else "Whole of life policy with a guaranteed payout",
            liability,
            years_until_death,
            lives,
            ("Write the policy in trust to keep it outside the estate",
             "Review the cover annually against estate growth"),
        )
        if after_gifting > 0:
            reduced = self.cover_scenario(
                "Life Cover After Gifting",
                "Reduced cover once the gifting strategy is in place",
                after_gifting,
                years_until_death,
                lives,
                ("Implement the gifting strategy first",
                 "Write the policy in trust",
                 "Reduce cover as gifts fall out of the 7 year window"),
            )
        else:
            reduced = self.cover_scenario(
                "Life Cover After Gifting",
                "No cover needed once the gifting strategy removes the liability",
                ZERO,
                years_until_death,
                lives,
                ("Focus on the gifting strategy", "Review the position annually"),
            )
        saved_up = self.self_insurance(reduced.annual_premium, years_until_death, after_gifting)

        analysis = LifeCoverAnalysis(
            is_joint_policy=is_joint,
            lives=lives,
            years_until_death=max(int(years_until_death), 0),
            iht_liability=liability,
            iht_after_gifting=after_gifting,
            existing_cover=existing,
            cover_gap=non_negative(liability - existing),
            full_cover=full,
            cover_after_gifting=reduced,
            self_insurance=saved_up,
            recommendations=tuple(self.recommend(full, reduced, saved_up, liability, after_gifting, existing)),
        )
        logger.debug(
            f"Life cover: joint={is_joint}, full premium {full.annual_premium:.2f}/yr, "
            f"self-insurance coverage {saved_up.coverage_percent:.1f}%"
        )
        return analysis

    def recommend(
        self,
        full: CoverScenario,
        reduced: CoverScenario,
        saved_up: SelfInsuranceScenario,
        liability: Decimal,
        after_gifting: Decimal,
        existing: Decimal,
    ) -> List[CoverRecommendation]:
        if existing >= liability:
            return [CoverRecommendation(
                1,
                "Existing Cover is Sufficient",
                f"Existing cover of {format_money(existing)} meets the liability of {format_money(liability)}",
                "Make sure the policies are written in trust",
            )]

        recommendations: List[CoverRecommendation] = []
        if after_gifting < liability * GIFTING_FIRST_RATIO:
            reduction = percent_of(liability - after_gifting, liability)
            recommendations.append(CoverRecommendation(
                1,
                "Implement Gifting Strategy First",
                f"Gifting reduces the liability by {reduction:.0f}%",
                "Use annual exemptions and PETs to reduce the estate",
            ))

        gap = non_negative(after_gifting - existing)
        if gap > SIGNIFICANT_COVER_GAP:
            recommendations.append(CoverRecommendation(
                2,
                "Life Cover After Gifting",
                f"Additional cover of {format_money(gap)} is needed after gifting",
                f"Arrange {format_money(gap)} of whole of life cover written in trust",
            ))
        elif existing > 0 and gap > 0:
            recommendations.append(CoverRecommendation(
                2,
                "Small Additional Cover Needed",
                f"Existing cover of {format_money(existing)} leaves a gap of {format_money(gap)}",
                f"Add {format_money(gap)} of cover or self-insure the difference",
            ))

        if saved_up.coverage_percent >= SELF_INSURANCE_VIABLE_PERCENT:
            recommendations.append(CoverRecommendation(
                3,
                "Self-Insurance Option",
                f"Investing the premium covers {saved_up.coverage_percent:.0f}% of the liability",
                f"Invest {format_money(saved_up.annual_investment)} a year in a tax-efficient wrapper",
            ))

        if not recommendations:
            recommendations.append(CoverRecommendation(
                1,
                "Full Life Cover",
                "Guaranteed protection against the whole liability",
                f"Arrange {format_money(full.cover_amount)} of whole of life cover written in trust",
            ))
        return recommendations
