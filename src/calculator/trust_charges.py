"""
Trust IHT charges.

Relevant property trusts (discretionary, accumulation & maintenance, or
flagged) sit outside the settlor's estate but carry their own charges:
- Entry charge on the transfer in (lifetime rate above the NRB)
- Periodic charge every 10th anniversary (simplified to 6% above the NRB)
- Exit charge pro-rated by complete quarters since the last periodic charge

Reference: IHTA 1984 Part III Chapter III
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from calculator.date_utils import add_years, whole_years_between
from calculator.decimal_math import ZERO, Numeric, divide, min_decimal, non_negative, total
from calculator.exceptions import require_money
from calculator.iht_parameters import IHTParameters
from models.estate import Trust

logger = logging.getLogger(__name__)

QUARTERS_PER_CYCLE = 40


@dataclass(frozen=True)
class PeriodicChargeResult:
    applicable: bool
    reason: str
    trust_value: Decimal = ZERO
    chargeable_value: Decimal = ZERO
    charge_rate: Decimal = ZERO
    charge_amount: Decimal = ZERO
    years_since_creation: Optional[int] = None
    next_charge_date: Optional[date] = None


@dataclass(frozen=True)
class EntryChargeResult:
    applicable: bool
    transfer_value: Decimal
    nrb_available: Decimal
    chargeable_value: Decimal
    charge_rate: Decimal
    charge_amount: Decimal


@dataclass(frozen=True)
class ExitChargeResult:
    applicable: bool
    reason: str
    asset_value: Decimal = ZERO
    chargeable_value: Decimal = ZERO
    quarters_since_last_charge: int = 0
    effective_rate: Decimal = ZERO
    charge_amount: Decimal = ZERO


def _complete_months(start: date, end: date) -> int:
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return max(months, 0)


class TrustChargeCalculator:
    """Charges under the relevant property regime, plus trust IHT values."""

    def __init__(self, params: Optional[IHTParameters] = None):
        self.params = params or IHTParameters.for_2025_26()

    def estate_value(self, trusts: Iterable[Trust]) -> Decimal:
        """Sum of the values each trust contributes to the settlor's estate."""
        values = []
        for index, trust in enumerate(trusts):
            require_money(trust.current_value, f"trusts[{index}].current_value")
            values.append(require_money(trust.iht_value, f"trusts[{index}].iht_value"))
        return total(values)

    def entry_charge(self, transfer_value: Numeric, prior_cumulative: Numeric = 0) -> EntryChargeResult:
        value = require_money(transfer_value, "transfer_value")
        prior = require_money(prior_cumulative, "prior_cumulative")
        available = non_negative(self.params.nil_rate_band - prior)
        chargeable = non_negative(value - available)
        return EntryChargeResult(
            applicable=chargeable > 0,
            transfer_value=value,
            nrb_available=available,
            chargeable_value=chargeable,
            charge_rate=self.params.clt_lifetime_rate,
            charge_amount=chargeable * self.params.clt_lifetime_rate,
        )

    def periodic_charge(self, trust: Trust, on: date) -> PeriodicChargeResult:
        if not trust.is_relevant_property:
            return PeriodicChargeResult(False, "Not a relevant property trust")
        if trust.creation_date is None:
            return PeriodicChargeResult(False, "Trust creation date unknown")

        interval = self.params.periodic_charge_interval_years
        years = whole_years_between(trust.creation_date, on)
        if years < interval or years % interval != 0:
            next_due = add_years(trust.creation_date, (max(years, 0) // interval + 1) * interval)
            return PeriodicChargeResult(
                False,
                f"Next periodic charge due on {next_due.isoformat()}",
                years_since_creation=years,
                next_charge_date=next_due,
            )

        value = require_money(trust.current_value, "current_value")
        chargeable = non_negative(value - self.params.nil_rate_band)
        charge = chargeable * self.params.periodic_charge_rate
        logger.info(f"Periodic charge of {charge} due on trust '{trust.name}' at year {years}")
        return PeriodicChargeResult(
            applicable=True,
            reason=f"{years}-year anniversary",
            trust_value=value,
            chargeable_value=chargeable,
            charge_rate=self.params.periodic_charge_rate,
            charge_amount=charge,
            years_since_creation=years,
            next_charge_date=add_years(on, interval),
        )

    def exit_charge(self, trust: Trust, asset_value: Numeric, exit_date: date) -> ExitChargeResult:
        if not trust.is_relevant_property:
            return ExitChargeResult(False, "Not a relevant property trust")

        leaving = require_money(asset_value, "asset_value")
        value = require_money(trust.current_value, "current_value")
        last_charge = trust.last_periodic_charge_date or trust.creation_date
        if last_charge is None or value == 0:
            return ExitChargeResult(False, "Trust creation date or value unknown", asset_value=leaving)

        quarters = min(_complete_months(last_charge, exit_date) // 3, QUARTERS_PER_CYCLE)
        chargeable = non_negative(value - self.params.nil_rate_band)
        effective = self.params.periodic_charge_rate * Decimal(quarters) / QUARTERS_PER_CYCLE
        charge = divide(leaving, value) * chargeable * effective
        charge = min_decimal(charge, leaving * self.params.exit_charge_max_rate)

        return ExitChargeResult(
            applicable=True,
            reason=f"{quarters} complete quarters since last charge",
            asset_value=leaving,
            chargeable_value=chargeable,
            quarters_since_last_charge=quarters,
            effective_rate=effective,
            charge_amount=charge,
        )
