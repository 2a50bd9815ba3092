"""IHT Calculation Service - projections with a content-addressed cache.

Wraps the projection engine and strategy optimizer with a cache-aside
pattern:
1. Fingerprint the asset and liability values
2. Return the stored record if the fingerprint and context still match
3. Otherwise run the projection, flatten it and replace the stored record

Results are plain JSON-compatible dicts. Money is rounded only when the
result is flattened, so identical inputs give identical output.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from cache.calculation_cache import (
    CacheRecord,
    CalculationCacheStore,
    InMemoryCalculationStore,
    assets_hash,
    fingerprint,
    liabilities_hash,
)
from calculator.exceptions import IHTCalculationError
from calculator.iht_parameters import IHTParameters
from calculator.serialization import to_serializable
from config.settings import IHTSettings, get_settings
from config.tax_config_loader import TaxConfigLoader, get_config_loader
from models.estate import EstateSnapshot
from projection.actuarial_table import ActuarialTable
from projection.projection_engine import IHTProjectionEngine
from recommendation.strategy_optimizer import StrategyOptimizer

from .logging_config import (
    CalculationLogger,
    calculation_id_var,
    configure_logging,
    log_performance,
    person_id_var,
)

logger = logging.getLogger(__name__)


class IHTCalculationService:
    """
    Entry point for IHT calculations.

    Usage:
        service = IHTCalculationService.from_settings()
        result = service.calculate(snapshot, today=date(2025, 6, 1))

        # Married couple sharing data: second-death projection
        result = service.calculate(snapshot, spouse_snapshot, data_sharing_enabled=True)

        # Drop the stored result when inputs change outside the fingerprint
        service.invalidate(snapshot.person.person_id)
    """

    def __init__(
        self,
        params: Optional[IHTParameters] = None,
        life_table: Optional[ActuarialTable] = None,
        store: Optional[CalculationCacheStore] = None,
        enable_caching: bool = True,
    ):
        self.params = params or IHTParameters.for_2025_26()
        self.engine = IHTProjectionEngine(self.params, life_table)
        self.optimizer = StrategyOptimizer(self.params)
        self.store = store if store is not None else InMemoryCalculationStore()
        self.caching_enabled = enable_caching

    @classmethod
    def from_settings(
        cls,
        settings: Optional[IHTSettings] = None,
        loader: Optional[TaxConfigLoader] = None,
        store: Optional[CalculationCacheStore] = None,
    ) -> "IHTCalculationService":
        """Build a service from environment settings and the YAML bundles."""
        settings = settings or get_settings()
        configure_logging(settings.log_level, json_output=settings.json_logs, log_file=settings.log_file)
        if loader is None:
            loader = TaxConfigLoader(settings.config_dir) if settings.config_dir else get_config_loader()

        params = loader.load_parameters(settings.tax_year)
        if params.default_years_until_death != settings.default_years_until_death:
            params = replace(params, default_years_until_death=settings.default_years_until_death)

        rows = loader.load_life_table(settings.life_table_version)
        table = ActuarialTable(rows, default_version=settings.life_table_version, params=params)
        return cls(params=params, life_table=table, store=store, enable_caching=settings.enable_caching)

    # Fingerprints

    @staticmethod
    def fingerprints(
        primary: EstateSnapshot,
        spouse: Optional[EstateSnapshot] = None,
    ) -> Tuple[str, str, str]:
        """(assets_hash, liabilities_hash, fingerprint) for the values a calculation uses."""
        spouse_assets = [a.value for a in spouse.assets] if spouse is not None else []
        spouse_debts = list(spouse.liabilities) if spouse is not None else []
        a_hash = assets_hash([a.value for a in primary.assets], spouse_assets)
        l_hash = liabilities_hash(primary.liabilities, spouse_debts)
        return a_hash, l_hash, fingerprint(a_hash, l_hash)

    # Calculation

    @log_performance("iht_calculation")
    def calculate(
        self,
        primary: EstateSnapshot,
        spouse: Optional[EstateSnapshot] = None,
        data_sharing_enabled: bool = False,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Calculate current and projected liability plus a mitigation plan.

        The spouse's estate is only used when ``data_sharing_enabled`` is set;
        a married couple sharing data gets the second-death projection.

        Raises:
            InvalidEstateValue: if any monetary input is invalid
            MissingActuarialInput: if a joint projection lacks date of birth or gender
        """
        today = today or date.today()
        person_id = primary.person.person_id
        calc_log = CalculationLogger(person_id)

        calculation_token = calculation_id_var.set(uuid4().hex)
        person_token = person_id_var.set(person_id or None)
        try:
            return self._calculate(primary, spouse, data_sharing_enabled, today, calc_log)
        except IHTCalculationError as exc:
            calc_log.log_error(f"Calculation failed: {exc}", details=exc.to_dict())
            raise
        finally:
            person_id_var.reset(person_token)
            calculation_id_var.reset(calculation_token)

    def _calculate(
        self,
        primary: EstateSnapshot,
        spouse: Optional[EstateSnapshot],
        data_sharing_enabled: bool,
        today: date,
        calc_log: CalculationLogger,
    ) -> Dict[str, Any]:
        person_id = primary.person.person_id
        is_married = spouse is not None
        joint = is_married and data_sharing_enabled
        used_spouse = spouse if joint else None

        a_hash, l_hash, key = self.fingerprints(primary, used_spouse)

        if self.caching_enabled:
            record = self.store.get(key)
            if record is not None and record.person_id == person_id and record.matches(
                key, is_married, data_sharing_enabled, self.params.version, today
            ):
                calc_log.log_result(
                    record.result.get("current_liability"),
                    record.result.get("projected_liability"),
                    from_cache=True,
                )
                return {**record.result, "from_cache": True}

        scenario = "second_death" if joint else "single"
        calc_log.start_calculation(self.params.tax_year, scenario, self.params.version)

        step = calc_log.log_step("projection", scenario=scenario)
        if joint:
            projection = self.engine.project_joint(primary, spouse, today)
            plan = self.optimizer.plan_joint(projection, primary, spouse)
            years = projection.second_death.horizon.years_until_death
        else:
            projection = self.engine.project_single(primary, today)
            plan = self.optimizer.plan_single(projection, primary)
            years = projection.horizon.years_until_death
        calc_log.complete_step("projection", step)

        allowances = projection.projected.allowances
        calc_log.log_allowances(allowances.total_nrb, allowances.rnrb, allowances.rnrb_status.value, allowances.rate)
        calc_log.log_projection(years, projection.projected_estate_value, projection.projected_liability)

        data_quality = []
        for flag in list(projection.data_quality) + list(plan.data_quality):
            if flag not in data_quality:
                data_quality.append(flag)
        calc_log.log_data_quality(data_quality)

        result = to_serializable({
            "person_id": person_id,
            "scenario": scenario,
            "tax_year": self.params.tax_year,
            "parameters_version": self.params.version,
            "calculation_date": today,
            "is_married": is_married,
            "data_sharing_enabled": data_sharing_enabled,
            "assets_hash": a_hash,
            "liabilities_hash": l_hash,
            "fingerprint": key,
            "current_liability": projection.current.total_liability,
            "projected_liability": projection.projected_liability,
            "projected_estate_value": projection.projected_estate_value,
            "years_until_death": years,
            "projection": projection,
            "mitigation": plan,
            "data_quality": data_quality,
        })

        if self.caching_enabled:
            self.store.put(key, CacheRecord(
                person_id=person_id,
                fingerprint=key,
                assets_hash=a_hash,
                liabilities_hash=l_hash,
                calculation_date=today,
                is_married=is_married,
                data_sharing_enabled=data_sharing_enabled,
                parameters_version=self.params.version,
                result=result,
            ))

        calc_log.log_result(result["current_liability"], result["projected_liability"])
        return {**result, "from_cache": False}

    def invalidate(self, person_id: str) -> bool:
        """Drop the stored result for a person."""
        return self.store.invalidate(person_id)
