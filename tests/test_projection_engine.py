"""
Tests for the IHT projection engine.

Single-person and second-death projections, end to end through the
allowance, gift and actuarial components.
"""

import pytest
from dataclasses import replace
from datetime import date
from decimal import Decimal
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))


@pytest.fixture
def couple_engine(params):
    """Engine with a test table: he has months left, she has 25 years."""
    from calculator.iht_parameters import DEFAULT_GROWTH_RATES
    from models.estate import Gender, LifeTableRow
    from projection.actuarial_table import ActuarialTable
    from projection.projection_engine import IHTProjectionEngine

    couple_params = replace(params, growth_rates={**DEFAULT_GROWTH_RATES, "default": Decimal("0.05")})
    rows = [
        LifeTableRow(age=70, gender=Gender.MALE, table_version="TEST", life_expectancy_years=Decimal("0.4")),
        LifeTableRow(age=68, gender=Gender.FEMALE, table_version="TEST", life_expectancy_years=Decimal("25")),
    ]
    table = ActuarialTable(rows, default_version="TEST", params=couple_params)
    return IHTProjectionEngine(couple_params, table)


@pytest.fixture
def couple():
    from models.estate import (
        Asset, AssetType, EstateSnapshot, Gender, IHTProfile, MaritalStatus, Person,
    )
    married = IHTProfile(marital_status=MaritalStatus.MARRIED)
    husband = EstateSnapshot(
        person=Person(person_id="h-1", name="Arthur", date_of_birth=date(1955, 1, 1), gender=Gender.MALE),
        profile=married,
        assets=[Asset(type=AssetType.CASH, name="Savings", value=Decimal("600000"))],
    )
    wife = EstateSnapshot(
        person=Person(person_id="w-1", name="Joan", date_of_birth=date(1957, 1, 1), gender=Gender.FEMALE),
        profile=married,
        assets=[Asset(
            type=AssetType.PROPERTY, name="House", value=Decimal("600000"), is_main_residence=True,
        )],
    )
    return husband, wife


class TestSingleProjection:
    """Tests for a single person's projection."""

    def test_current_liability_900k(self, engine, single_snapshot, today):
        """Test today's liability on a £900k estate is £230,000."""
        result = engine.project_single(single_snapshot, today)
        assert result.current.total_liability == Decimal("230000")
        assert result.current.valuation.net_estate == Decimal("900000")

    def test_projected_to_life_expectancy(self, engine, single_snapshot, today):
        """Test assets grow by type over the 17 year horizon."""
        result = engine.project_single(single_snapshot, today)
        assert result.horizon.years_until_death == 17
        assert result.horizon.current_age == 70

        expected_estate = (
            Decimal("400000") * Decimal("1.04") ** 17
            + Decimal("500000") * Decimal("1.05") ** 17
        )
        assert result.projected_estate_value == expected_estate
        assert result.projected_liability == (expected_estate - Decimal("325000")) * Decimal("0.40")
        assert result.projected_liability > result.current.total_liability

    def test_no_residence_flagged(self, engine, single_snapshot, today):
        """Test the missing RNRB is reported as a data quality flag."""
        from models.estate import DataQualityFlag
        result = engine.project_single(single_snapshot, today)
        assert DataQualityFlag.INELIGIBLE_ALLOWANCE in result.data_quality

    def test_missing_date_of_birth_uses_default_horizon(self, engine, today):
        """Test no date of birth assumes 25 years and says so."""
        from models.estate import Asset, AssetType, DataQualityFlag, EstateSnapshot, Person
        snapshot = EstateSnapshot(
            person=Person(person_id="p-2"),
            assets=[Asset(type=AssetType.CASH, value=Decimal("500000"))],
        )
        result = engine.project_single(snapshot, today)
        assert result.horizon.years_until_death == 25
        assert result.horizon.current_age is None
        assert DataQualityFlag.ASSUMED_LIFE_EXPECTANCY in result.data_quality

    def test_missing_gender_uses_shorter_expectancy(self, engine, today):
        """Test unknown gender takes the more conservative male table."""
        from models.estate import DataQualityFlag, EstateSnapshot, Person
        snapshot = EstateSnapshot(person=Person(person_id="p-3", date_of_birth=date(1955, 1, 15)))
        result = engine.project_single(snapshot, today)
        assert result.horizon.years_until_death == 15  # male 70: 14.6 years
        assert DataQualityFlag.ASSUMED_LIFE_EXPECTANCY in result.data_quality

    def test_liabilities_and_exempt_assets_deducted(self, engine, today):
        """Test the net estate excludes exempt assets and debts."""
        from models.estate import Asset, AssetType, EstateSnapshot, Person
        snapshot = EstateSnapshot(
            person=Person(person_id="p-4", date_of_birth=date(1955, 1, 15), gender="female"),
            assets=[
                Asset(type=AssetType.CASH, value=Decimal("800000")),
                Asset(type=AssetType.PENSION, value=Decimal("300000"), iht_exempt=True),
            ],
            liabilities=[Decimal("100000")],
        )
        result = engine.project_single(snapshot, today)
        valuation = result.current.valuation
        assert valuation.gross_estate == Decimal("1100000")
        assert valuation.net_estate == Decimal("700000")
        assert result.current.total_liability == Decimal("150000")

    def test_trust_values_in_estate(self, engine, today):
        """Test an interest in possession trust counts; a bare trust does not."""
        from models.estate import EstateSnapshot, Person, Trust, TrustType
        snapshot = EstateSnapshot(
            person=Person(person_id="p-5"),
            trusts=[
                Trust(type=TrustType.INTEREST_IN_POSSESSION, current_value=Decimal("400000")),
                Trust(type=TrustType.BARE, current_value=Decimal("900000")),
            ],
        )
        result = engine.project_single(snapshot, today)
        assert result.current.valuation.trust_value == Decimal("400000")
        assert result.current.total_liability == Decimal("30000")

    def test_failed_pet_adds_gift_tax(self, engine, single_snapshot, today):
        """Test a large recent PET is taxed and uses up the band."""
        from models.estate import Gift
        snapshot = single_snapshot.model_copy(update={
            "gifts": [Gift(date=date(2024, 6, 1), value=Decimal("425000"))],
        })
        result = engine.project_single(snapshot, today)
        assert result.current.gift_liability == Decimal("40000")
        assert result.current.allowances.remaining_nrb == Decimal("0")
        assert result.current.estate_liability == Decimal("360000")
        # Seventeen years on the PET has fallen out of the window
        assert result.projected.gift_liability == Decimal("0")

    def test_relevant_property_trust_charges_reported(self, engine, today):
        """Test periodic charge status is reported for discretionary trusts."""
        from models.estate import EstateSnapshot, Person, Trust, TrustType
        snapshot = EstateSnapshot(
            person=Person(person_id="p-6"),
            trusts=[Trust(
                type=TrustType.DISCRETIONARY,
                current_value=Decimal("525000"),
                creation_date=date(2015, 6, 1),
            )],
        )
        result = engine.project_single(snapshot, today)
        charge = result.trust_charges[0]
        assert charge.applicable
        assert charge.charge_amount == Decimal("12000")


class TestJointProjection:
    """Tests for the second-death projection."""

    def test_second_death_estate_growth(self, couple_engine):
        """Test £1.2m at 5% for 25 years."""
        value = couple_engine.project_second_death_estate(Decimal("1200000"), 25)
        assert value == Decimal("1200000") * Decimal("1.05") ** 25
        assert Decimal("4063000") < value < Decimal("4064000")

    def test_second_death_liability(self, couple_engine, couple, today):
        """Test the survivor gets £650k of NRB and the RNRB tapers to nothing."""
        from calculator.allowance_calculator import RNRBStatus
        husband, wife = couple
        result = couple_engine.project_joint(husband, wife, today)

        assert result.first_death.person_id == "h-1"
        assert result.first_death.iht_liability == Decimal("0")
        assert result.second_death.person_id == "w-1"
        assert result.second_death.years_between_deaths == 25
        assert result.second_death.combined_estate_at_first_death == Decimal("1200000")

        projected_estate = Decimal("1200000") * Decimal("1.05") ** 25
        assert result.projected_estate_value == projected_estate

        allowances = result.projected.allowances
        assert allowances.total_nrb == Decimal("650000")
        assert allowances.rnrb == Decimal("0")
        assert allowances.rnrb_status == RNRBStatus.NONE
        assert result.total_iht_payable == (projected_estate - Decimal("650000")) * Decimal("0.40")

    def test_spousal_transfer_reported(self, couple_engine, couple, today):
        """Test the transferred bands from the first death."""
        husband, wife = couple
        result = couple_engine.project_joint(husband, wife, today)
        assert result.spousal_transfer.transferable_nrb == Decimal("325000")
        assert result.spousal_transfer.transferable_rnrb == Decimal("175000")

    def test_current_joint_liability(self, couple_engine, couple, today):
        """Test today's comparison taxes the combined estate with both bands."""
        husband, wife = couple
        result = couple_engine.project_joint(husband, wife, today)
        # 1.2m less 650k NRB and 350k RNRB
        assert result.current.total_liability == Decimal("80000")

    def test_order_of_parties_does_not_matter(self, couple_engine, couple, today):
        """Test the shorter-lived partner always dies first."""
        husband, wife = couple
        forward = couple_engine.project_joint(husband, wife, today)
        backward = couple_engine.project_joint(wife, husband, today)
        assert forward.total_iht_payable == backward.total_iht_payable
        assert backward.first_death.person_id == "h-1"

    def test_missing_inputs_raise_per_party(self, couple_engine, couple, today):
        """Test both parties' missing fields are reported together."""
        from calculator.exceptions import MissingActuarialInput
        from models.estate import Person
        husband, wife = couple
        husband = husband.model_copy(update={"person": Person(person_id="h-1", gender="male")})
        wife = wife.model_copy(update={"person": Person(person_id="w-1")})

        with pytest.raises(MissingActuarialInput) as exc_info:
            couple_engine.project_joint(husband, wife, today)

        assert exc_info.value.missing_fields == {
            "h-1": ["date_of_birth"],
            "w-1": ["date_of_birth", "gender"],
        }
        assert exc_info.value.to_dict()["error"] == "missing_actuarial_input"
