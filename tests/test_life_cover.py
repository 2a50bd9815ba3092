"""
Tests for life cover pricing and recommendations.
"""

import pytest
from dataclasses import replace
from decimal import Decimal
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))


@pytest.fixture
def calculator():
    from recommendation.life_cover import LifeCoverCalculator
    return LifeCoverCalculator()


def _male(age):
    from models.estate import Gender
    from recommendation.life_cover import InsuredLife
    return InsuredLife(age=age, gender=Gender.MALE)


def _female(age):
    from models.estate import Gender
    from recommendation.life_cover import InsuredLife
    return InsuredLife(age=age, gender=Gender.FEMALE)


class TestPremiumRates:
    """Tests for the monthly rate table."""

    def test_exact_row(self, calculator):
        """Test a tabulated age reads straight from the table."""
        assert calculator.monthly_rate([_male(60)]) == Decimal("5.20")
        assert calculator.monthly_rate([_female(60)]) == Decimal("4.15")

    def test_interpolated_age(self, calculator):
        """Test male aged 62 sits 40% of the way from 5.20 to 7.80."""
        assert calculator.monthly_rate([_male(62)]) == Decimal("6.24")

    def test_clamped_at_ends(self, calculator):
        """Test ages outside the table use the end rows."""
        assert calculator.monthly_rate([_male(16)]) == Decimal("0.80")
        assert calculator.monthly_rate([_female(99)]) == Decimal("58.00")

    def test_unknown_gender_uses_male_rates(self, calculator):
        """Test no gender prices at the male rate."""
        from recommendation.life_cover import InsuredLife
        assert calculator.monthly_rate([InsuredLife(age=60)]) == Decimal("5.20")

    def test_joint_rate_discounted_average(self, calculator):
        """Test joint life second death is 75% of the mean single rate."""
        rate = calculator.monthly_rate([_male(60), _female(60)])
        assert rate == (Decimal("5.20") + Decimal("4.15")) / 2 * Decimal("0.75")

    def test_annual_premium(self, calculator):
        """Test £100k of cover at 5.20 per £1,000 a month."""
        assert calculator.annual_premium(Decimal("100000"), [_male(60)]) == Decimal("6240")

    def test_no_lives_rejected(self, calculator):
        """Test pricing needs at least one life."""
        with pytest.raises(ValueError):
            calculator.monthly_rate([])

    def test_empty_table_rejected(self):
        """Test a premium table must have rows."""
        from recommendation.life_cover import PremiumRateTable
        with pytest.raises(ValueError):
            PremiumRateTable(())


class TestSelfInsurance:
    """Tests for investing the premium instead."""

    def test_zero_return_is_sum_of_payments(self, params):
        """Test with no growth the fund is just the payments."""
        from recommendation.life_cover import LifeCoverCalculator
        calculator = LifeCoverCalculator(replace(params, self_insurance_return=Decimal("0")))
        scenario = calculator.self_insurance(Decimal("1000"), 10, Decimal("10000"))
        assert scenario.projected_value == Decimal("10000")
        assert scenario.investment_growth == Decimal("0")
        assert scenario.coverage_percent == Decimal("100")
        assert scenario.is_sufficient
        assert scenario.confidence == "Medium-High"

    def test_shortfall_reported(self, calculator):
        """Test a fund below target reports the shortfall."""
        scenario = calculator.self_insurance(Decimal("1000"), 1, Decimal("10000"))
        assert scenario.projected_value == Decimal("1000")
        assert scenario.shortfall == Decimal("9000")
        assert scenario.surplus == Decimal("0")
        assert not scenario.is_sufficient
        assert scenario.confidence == "Low"

    @pytest.mark.parametrize("coverage,label", [
        (Decimal("120"), "Very High"),
        (Decimal("119.99"), "High"),
        (Decimal("100"), "Medium-High"),
        (Decimal("90"), "Medium"),
        (Decimal("75"), "Medium-Low"),
        (Decimal("74.99"), "Low"),
    ])
    def test_confidence_levels(self, coverage, label):
        """Test coverage thresholds for the confidence rating."""
        from recommendation.life_cover import confidence_level
        assert confidence_level(coverage) == label


class TestRecommendations:
    """Tests for recommendation ranking."""

    def test_existing_cover_sufficient(self, calculator):
        """Test enough existing cover short-circuits everything else."""
        analysis = calculator.analyze(
            Decimal("200000"), Decimal("100000"), 20, [_male(60)], existing_cover=Decimal("250000"),
        )
        assert [r.title for r in analysis.recommendations] == ["Existing Cover is Sufficient"]
        assert analysis.cover_gap == Decimal("0")

    def test_gifting_first_then_cover(self, calculator):
        """Test a large gifting reduction is recommended before cover."""
        analysis = calculator.analyze(Decimal("500000"), Decimal("100000"), 20, [_male(60)])
        titles = [r.title for r in analysis.recommendations]
        assert titles[:2] == ["Implement Gifting Strategy First", "Life Cover After Gifting"]
        assert analysis.recommended_approach == "Implement Gifting Strategy First"

    def test_small_additional_cover(self, calculator):
        """Test a small gap over existing cover."""
        analysis = calculator.analyze(
            Decimal("100000"), Decimal("60000"), 1, [_male(60)], existing_cover=Decimal("30000"),
        )
        assert [r.title for r in analysis.recommendations] == ["Small Additional Cover Needed"]

    def test_full_cover_when_nothing_else_applies(self, calculator):
        """Test full cover is the default recommendation."""
        analysis = calculator.analyze(Decimal("60000"), Decimal("40000"), 1, [_male(60)])
        assert [r.title for r in analysis.recommendations] == ["Full Life Cover"]

    def test_self_insurance_recommended_over_long_term(self, calculator):
        """Test investing the premium for 20 years beats the target."""
        analysis = calculator.analyze(Decimal("500000"), Decimal("100000"), 20, [_male(60)])
        assert analysis.self_insurance.coverage_percent >= Decimal("90")
        assert "Self-Insurance Option" in [r.title for r in analysis.recommendations]

    def test_no_liability_after_gifting(self, calculator):
        """Test gifting that clears the liability needs no further cover."""
        analysis = calculator.analyze(Decimal("100000"), Decimal("0"), 20, [_male(60)])
        assert analysis.cover_after_gifting.cover_amount == Decimal("0")
        assert analysis.cover_after_gifting.annual_premium == Decimal("0")
        assert [r.title for r in analysis.recommendations] == ["Implement Gifting Strategy First"]


class TestScenarios:
    """Tests for the priced scenarios."""

    def test_full_cover_scenario(self, calculator):
        """Test total premiums and cost-benefit ratio."""
        analysis = calculator.analyze(Decimal("100000"), Decimal("50000"), 10, [_male(60)])
        full = analysis.full_cover
        assert full.annual_premium == Decimal("6240")
        assert full.monthly_premium == Decimal("520")
        assert full.total_premiums == Decimal("62400")
        assert full.term_years == 10

    def test_joint_policy(self, calculator):
        """Test two lives give a joint life policy."""
        analysis = calculator.analyze(Decimal("300000"), Decimal("100000"), 25, [_male(70), _female(68)])
        assert analysis.is_joint_policy
        assert "second death" in analysis.full_cover.description
        assert len(analysis.lives) == 2
