"""
Estate input records for inheritance tax calculations.

These are normalized, immutable snapshots of what a person owns, what they
have given away, and the facts about them that the allowance and
projection layers need. Aggregating heterogeneous source records into this
shape happens upstream.
"""

import datetime
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AssetType(str, Enum):
    """Asset classes with distinct growth and liquidity assumptions."""
    CASH = "cash"
    INVESTMENT = "investment"
    PROPERTY = "property"
    BUSINESS = "business"
    PENSION = "pension"
    CHATTEL = "chattel"
    OTHER = "other"


class Ownership(str, Enum):
    """How an asset is held."""
    INDIVIDUAL = "individual"
    JOINT = "joint"
    TRUST = "trust"


class GiftKind(str, Enum):
    """Lifetime transfer categories."""
    PET = "pet"                          # Potentially exempt transfer
    CLT = "clt"                          # Chargeable lifetime transfer
    EXEMPT_TRANSFER = "exempt_transfer"  # Annual exemption, spouse, charity
    SMALL_GIFT = "small_gift"            # Up to the small-gift limit per recipient


class TrustType(str, Enum):
    """Trust structures recognised for IHT valuation."""
    BARE = "bare"
    INTEREST_IN_POSSESSION = "interest_in_possession"
    DISCRETIONARY = "discretionary"
    ACCUMULATION_MAINTENANCE = "accumulation_maintenance"
    LIFE_INSURANCE = "life_insurance"
    DISCOUNTED_GIFT = "discounted_gift"
    LOAN = "loan"
    MIXED = "mixed"
    SETTLOR_INTERESTED = "settlor_interested"


class MaritalStatus(str, Enum):
    SINGLE = "single"
    MARRIED = "married"
    CIVIL_PARTNERSHIP = "civil_partnership"
    WIDOWED = "widowed"
    DIVORCED = "divorced"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class DataQualityFlag(str, Enum):
    """Non-fatal conditions embedded in results rather than raised."""
    NO_LIFE_TABLE_DATA = "no_life_table_data"
    ASSUMED_LIFE_EXPECTANCY = "assumed_life_expectancy"
    AFFORDABILITY_NOT_MET = "affordability_not_met"
    INELIGIBLE_ALLOWANCE = "ineligible_allowance"
    INSUFFICIENT_TIME_FOR_PET = "insufficient_time_for_pet"
    CLT_DEATH_RECHARGE_NOT_COMPUTED = "clt_death_recharge_not_computed"
    MAIN_RESIDENCE_INFERRED = "main_residence_inferred"
    LIFE_COVER_NOT_PRICED = "life_cover_not_priced"


# Trusts taxed under the relevant property regime regardless of flag
RELEVANT_PROPERTY_TRUST_TYPES = frozenset({
    TrustType.DISCRETIONARY,
    TrustType.ACCUMULATION_MAINTENANCE,
})

MARRIED_STATUSES = frozenset({MaritalStatus.MARRIED, MaritalStatus.CIVIL_PARTNERSHIP})


class Asset(BaseModel):
    """A single normalized asset holding (already netted for joint ownership)."""
    model_config = ConfigDict(frozen=True)

    type: AssetType
    name: str = ""
    value: Decimal = Field(description="Current market value attributable to the person")
    ownership: Ownership = Ownership.INDIVIDUAL
    iht_exempt: bool = Field(default=False, description="Outside the estate (e.g. most pensions)")
    is_main_residence: bool = Field(default=False, description="Qualifying residence for RNRB")


class Gift(BaseModel):
    """A lifetime transfer out of the estate."""
    model_config = ConfigDict(frozen=True)

    date: datetime.date
    recipient: str = ""
    value: Decimal
    kind: GiftKind = GiftKind.PET


class Trust(BaseModel):
    """
    A trust the person settled.

    Only the portion that still counts towards the settlor's estate is
    included in the gross estate; see ``iht_value``.
    """
    model_config = ConfigDict(frozen=True)

    type: TrustType
    name: str = ""
    current_value: Decimal = Decimal("0")
    relevant_property: bool = False
    discount_amount: Optional[Decimal] = Field(default=None, description="Retained value of a discounted gift trust")
    loan_amount: Optional[Decimal] = Field(default=None, description="Outstanding loan owed back to the settlor")
    creation_date: Optional[date] = None
    last_periodic_charge_date: Optional[date] = None

    @property
    def is_relevant_property(self) -> bool:
        return self.type in RELEVANT_PROPERTY_TRUST_TYPES or self.relevant_property

    @property
    def iht_value(self) -> Decimal:
        return _TRUST_IHT_VALUE[self.type](self)


_TRUST_IHT_VALUE = {
    # Gift completed on creation, outside the estate after 7 years
    TrustType.BARE: lambda t: Decimal("0"),
    # Only the retained discount stays in the estate
    TrustType.DISCOUNTED_GIFT: lambda t: t.discount_amount or Decimal("0"),
    # The outstanding loan is still owed to the settlor
    TrustType.LOAN: lambda t: t.loan_amount or Decimal("0"),
    # Policy written in trust pays outside the estate
    TrustType.LIFE_INSURANCE: lambda t: Decimal("0"),
    # Life tenant is treated as owning the capital
    TrustType.INTEREST_IN_POSSESSION: lambda t: t.current_value,
    # Relevant property trusts carry their own periodic regime
    TrustType.DISCRETIONARY: lambda t: Decimal("0"),
    TrustType.ACCUMULATION_MAINTENANCE: lambda t: Decimal("0"),
    TrustType.MIXED: lambda t: Decimal("0"),
    # Gift with reservation: the settlor still benefits
    TrustType.SETTLOR_INTERESTED: lambda t: t.current_value,
}


class IHTProfile(BaseModel):
    """Allowance-relevant facts about a person."""
    model_config = ConfigDict(frozen=True)

    marital_status: MaritalStatus = MaritalStatus.SINGLE
    own_home: bool = False
    home_value: Decimal = Decimal("0")
    nrb_transferred_from_spouse: Decimal = Field(default=Decimal("0"), description="Unused NRB inherited from a deceased spouse")
    rnrb_transferred_from_spouse: Decimal = Field(default=Decimal("0"), description="Unused RNRB inherited from a deceased spouse")
    charitable_giving_percent: Decimal = Field(default=Decimal("0"), description="Share of the estate left to charity (0-100)")
    residence_bequeathed_to_descendants: bool = Field(default=False, description="Will leaves the home to direct descendants")


class Person(BaseModel):
    """Actuarial inputs. Both optional here; enforced where a calculation needs them."""
    model_config = ConfigDict(frozen=True)

    person_id: str = ""
    name: str = ""
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None


class LifeTableRow(BaseModel):
    """One row of a national life table."""
    model_config = ConfigDict(frozen=True)

    age: int = Field(ge=0)
    gender: Gender
    table_version: str
    life_expectancy_years: Decimal


class FinancialProfile(BaseModel):
    """Annual cash flow used to test gifting affordability."""
    model_config = ConfigDict(frozen=True)

    annual_income: Decimal = Decimal("0")
    annual_expenditure: Decimal = Decimal("0")
    existing_life_cover: Decimal = Decimal("0")


class EstateSnapshot(BaseModel):
    """Everything known about one person's estate at a point in time."""
    model_config = ConfigDict(frozen=True)

    person: Person
    profile: IHTProfile = Field(default_factory=IHTProfile)
    assets: List[Asset] = Field(default_factory=list)
    liabilities: List[Decimal] = Field(default_factory=list, description="Liability totals, already netted")
    gifts: List[Gift] = Field(default_factory=list)
    trusts: List[Trust] = Field(default_factory=list)
    finances: FinancialProfile = Field(default_factory=FinancialProfile)
