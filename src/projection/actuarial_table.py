"""
Actuarial life table lookup.

Life expectancy by exact age and gender from national life tables (ONS
2020-2022 by default). Ages between table rows are linearly interpolated;
ages outside the table use the nearest available row. With no rows at all
for the gender and version, a conservative ``max(1, 90 - age)`` is used and
the result is flagged as degraded.
"""

from __future__ import annotations

import bisect
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

from calculator.date_utils import add_years, age_on
from calculator.decimal_math import linear_interpolate, max_decimal, round_half_up, to_decimal
from calculator.iht_parameters import IHTParameters
from models.estate import DataQualityFlag, Gender, LifeTableRow

logger = logging.getLogger(__name__)

DEFAULT_TABLE_VERSION = "ONS_2020_2022"


class LookupMethod(str, Enum):
    EXACT = "exact"
    INTERPOLATED = "interpolated"
    NEAREST_BOUND = "nearest_bound"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class LifeExpectancyEstimate:
    age: int
    gender: Gender
    table_version: str
    life_expectancy_years: Decimal
    method: LookupMethod
    data_quality: Tuple[DataQualityFlag, ...] = ()


@dataclass(frozen=True)
class DeathProjection:
    """Expected death for one person measured from ``as_of``."""
    current_age: int
    life_expectancy: LifeExpectancyEstimate
    years_until_death: int
    estimated_age_at_death: int
    estimated_death_date: date


class ActuarialTable:
    """
    In-memory life table indexed by (table version, gender).

    Usage:
        table = ActuarialTable(rows)
        estimate = table.life_expectancy(65, Gender.FEMALE)
    """

    def __init__(
        self,
        rows: Iterable[LifeTableRow],
        default_version: str = DEFAULT_TABLE_VERSION,
        params: Optional[IHTParameters] = None,
    ):
        self.default_version = default_version
        self.params = params or IHTParameters.for_2025_26()
        series: Dict[Tuple[str, Gender], Dict[int, Decimal]] = defaultdict(dict)
        for row in rows:
            series[(row.table_version, row.gender)][row.age] = to_decimal(row.life_expectancy_years)
        self._ages: Dict[Tuple[str, Gender], List[int]] = {k: sorted(v) for k, v in series.items()}
        self._values = dict(series)

    @property
    def versions(self) -> List[str]:
        return sorted({version for version, _ in self._ages})

    def life_expectancy(
        self,
        age: int,
        gender: Union[Gender, str],
        table_version: Optional[str] = None,
    ) -> LifeExpectancyEstimate:
        """
        Remaining life expectancy in years at ``age``.

        Lookup order: exact row, interpolation between the nearest lower and
        upper rows, the single available bound, then the fallback.
        """
        gender = Gender(gender)
        version = table_version or self.default_version
        key = (version, gender)
        ages = self._ages.get(key, [])
        values = self._values.get(key, {})

        def estimate(years: Decimal, method: LookupMethod, flags=()) -> LifeExpectancyEstimate:
            return LifeExpectancyEstimate(age, gender, version, years, method, tuple(flags))

        if age in values:
            return estimate(values[age], LookupMethod.EXACT)

        if not ages:
            fallback = max_decimal(
                self.params.minimum_life_expectancy,
                self.params.life_expectancy_fallback_age - age,
            )
            logger.warning(
                f"No life table data for {gender.value} in {version}; "
                f"assuming {fallback} years at age {age}"
            )
            return estimate(fallback, LookupMethod.FALLBACK, [DataQualityFlag.NO_LIFE_TABLE_DATA])

        position = bisect.bisect_left(ages, age)
        lower = ages[position - 1] if position > 0 else None
        upper = ages[position] if position < len(ages) else None

        if lower is not None and upper is not None:
            years = linear_interpolate(age, lower, values[lower], upper, values[upper])
            return estimate(years, LookupMethod.INTERPOLATED)

        bound = lower if lower is not None else upper
        logger.debug(f"Age {age} outside {version} table; using age {bound}")
        return estimate(values[bound], LookupMethod.NEAREST_BOUND)

    def project_death(
        self,
        date_of_birth: date,
        gender: Union[Gender, str],
        as_of: date,
        table_version: Optional[str] = None,
    ) -> DeathProjection:
        """Expected years until death, rounded half-up to whole years."""
        current_age = age_on(date_of_birth, as_of)
        estimate = self.life_expectancy(current_age, gender, table_version)
        years = round_half_up(estimate.life_expectancy_years)
        return DeathProjection(
            current_age=current_age,
            life_expectancy=estimate,
            years_until_death=years,
            estimated_age_at_death=current_age + years,
            estimated_death_date=add_years(as_of, years),
        )
