from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple

from calculator.decimal_math import Numeric, to_decimal


# (minimum whole years since gift, effective death rate on the taxable slice)
TaperSchedule = Tuple[Tuple[int, Decimal], ...]

# (age, male rate, female rate) per £1,000 of cover per month
PremiumTable = Tuple[Tuple[int, Decimal, Decimal], ...]


def _d(value: Numeric) -> Decimal:
    return to_decimal(value)


DEFAULT_TAPER_SCHEDULE: TaperSchedule = (
    (0, _d("0.40")),
    (3, _d("0.32")),
    (4, _d("0.24")),
    (5, _d("0.16")),
    (6, _d("0.08")),
    (7, _d("0")),
)

DEFAULT_GROWTH_RATES: Dict[str, Decimal] = {
    "property": _d("0.03"),
    "investment": _d("0.05"),
    "cash": _d("0.04"),
    "pension": _d("0.05"),
    "business": _d("0.04"),
    "chattel": _d("0.03"),
    "other": _d("0.03"),
    "default": _d("0.03"),
}

DEFAULT_PREMIUM_TABLE: PremiumTable = tuple(
    (age, _d(male), _d(female))
    for age, male, female in (
        (18, "0.80", "0.65"),
        (20, "0.80", "0.65"),
        (25, "0.85", "0.70"),
        (30, "0.95", "0.80"),
        (35, "1.10", "0.95"),
        (40, "1.40", "1.20"),
        (45, "1.85", "1.55"),
        (50, "2.55", "2.10"),
        (55, "3.60", "2.95"),
        (60, "5.20", "4.15"),
        (65, "7.80", "6.20"),
        (70, "12.50", "9.80"),
        (75, "19.50", "15.20"),
        (80, "31.00", "24.00"),
        (85, "48.00", "37.00"),
        (90, "75.00", "58.00"),
    )
)


@dataclass(frozen=True)
class IHTParameters:
    """
    Versioned tax-parameter bundle for one UK tax year.

    Every threshold and rate the engine uses comes from here so that a new
    tax year is a data change, not a code change. Load from YAML with
    ``config.tax_config_loader.TaxConfigLoader`` or use ``for_2025_26()``.
    """

    tax_year: str
    version: str = "1"

    # Nil rate bands
    nil_rate_band: Decimal = _d("325000")
    residence_nil_rate_band: Decimal = _d("175000")
    rnrb_taper_threshold: Decimal = _d("2000000")
    rnrb_taper_rate: Decimal = _d("0.5")  # £1 lost per £2 over threshold

    # Death rates
    standard_rate: Decimal = _d("0.40")
    reduced_charity_rate: Decimal = _d("0.36")
    charity_rate_threshold_percent: Decimal = _d("10")

    # Lifetime gifts
    annual_exemption: Decimal = _d("3000")
    annual_exemption_carry_forward_years: int = 1
    small_gift_limit: Decimal = _d("250")
    pet_survival_years: int = 7
    clt_lifetime_rate: Decimal = _d("0.20")
    clt_lookback_years: int = 14
    taper_schedule: TaperSchedule = DEFAULT_TAPER_SCHEDULE

    # Relevant property trusts
    periodic_charge_rate: Decimal = _d("0.06")
    periodic_charge_interval_years: int = 10
    exit_charge_max_rate: Decimal = _d("0.06")

    # Projection assumptions
    growth_rates: Mapping[str, Decimal] = field(default_factory=lambda: dict(DEFAULT_GROWTH_RATES))
    inflation_rate: Decimal = _d("0.025")
    life_expectancy_fallback_age: int = 90
    minimum_life_expectancy: Decimal = _d("1")
    default_years_until_death: int = 25

    # Strategy optimizer
    income_gifting_share: Decimal = _d("0.5")
    income_gifting_minimum: Decimal = _d("1000")
    self_insurance_return: Decimal = _d("0.047")
    joint_life_discount: Decimal = _d("0.75")
    premium_table: PremiumTable = DEFAULT_PREMIUM_TABLE

    def taper_rate(self, years_since_gift: Numeric) -> Decimal:
        """
        Effective death rate for a PET made ``years_since_gift`` years ago.

        Falls through the schedule to the highest band whose lower bound has
        been reached. Negative years (gift in the future) use the first band.
        """
        years = to_decimal(years_since_gift)
        applicable = self.taper_schedule[0][1]
        for lower_bound, band_rate in self.taper_schedule:
            if years >= lower_bound:
                applicable = band_rate
        return applicable

    def growth_rate(self, asset_type: Any) -> Decimal:
        key = getattr(asset_type, "value", asset_type)
        rates = self.growth_rates
        return rates.get(key, rates.get("default", DEFAULT_GROWTH_RATES["default"]))

    def death_rate(self, charitable_giving_percent: Numeric) -> Decimal:
        """Reduced rate applies at exactly the threshold percentage and above."""
        if to_decimal(charitable_giving_percent) >= self.charity_rate_threshold_percent:
            return self.reduced_charity_rate
        return self.standard_rate

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @staticmethod
    def for_2025_26() -> "IHTParameters":
        # Thresholds frozen until April 2030 (Autumn Budget 2024).
        return IHTParameters(tax_year="2025-26", version="2025.1")

    @staticmethod
    def from_mapping(data: Mapping[str, Any], tax_year: Optional[str] = None) -> "IHTParameters":
        """
        Build parameters from a loaded YAML mapping.

        Unknown keys are ignored; missing keys keep the 2025-26 defaults.
        """
        known = {f.name: f for f in fields(IHTParameters)}
        defaults = IHTParameters.for_2025_26()
        kwargs: Dict[str, Any] = {}

        for key, value in data.items():
            if key not in known or value is None:
                continue
            if key == "taper_schedule":
                kwargs[key] = tuple(
                    (int(band["min_years"]), _d(band["rate"])) for band in value
                )
            elif key == "premium_table":
                kwargs[key] = tuple(
                    (int(row["age"]), _d(row["male"]), _d(row["female"])) for row in value
                )
            elif key == "growth_rates":
                merged = dict(DEFAULT_GROWTH_RATES)
                merged.update({str(k): _d(v) for k, v in value.items()})
                kwargs[key] = merged
            elif key in ("tax_year", "version"):
                kwargs[key] = str(value)
            elif isinstance(getattr(defaults, key), int):
                kwargs[key] = int(value)
            else:
                kwargs[key] = _d(value)

        kwargs["tax_year"] = str(tax_year or kwargs.get("tax_year") or "2025-26")
        return IHTParameters(**kwargs)
