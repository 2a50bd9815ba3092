"""
Tests for the IHT calculation service.

Covers cache-aside behaviour, determinism of flattened results and the
single versus second-death scenario selection.
"""

import json
import pytest
from datetime import date
from decimal import Decimal
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))


@pytest.fixture
def root_logging():
    """Restore root handlers after a test configures logging."""
    import logging
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


@pytest.fixture
def service(params, life_table):
    from services.iht_calculation_service import IHTCalculationService
    return IHTCalculationService(params=params, life_table=life_table)


@pytest.fixture
def spouse_snapshot():
    from models.estate import Asset, AssetType, EstateSnapshot, Gender, IHTProfile, MaritalStatus, Person
    return EstateSnapshot(
        person=Person(person_id="s-1", name="Harold", date_of_birth=date(1953, 3, 1), gender=Gender.MALE),
        profile=IHTProfile(marital_status=MaritalStatus.MARRIED),
        assets=[Asset(type=AssetType.INVESTMENT, value=Decimal("700000"))],
    )


@pytest.fixture
def married_snapshot(single_snapshot):
    from models.estate import IHTProfile, MaritalStatus
    return single_snapshot.model_copy(update={"profile": IHTProfile(marital_status=MaritalStatus.MARRIED)})


class TestCalculate:
    """Tests for a single calculation."""

    def test_single_result(self, service, single_snapshot, today):
        """Test the flattened result for a single person."""
        result = service.calculate(single_snapshot, today=today)
        assert result["scenario"] == "single"
        assert result["current_liability"] == 230000.0
        assert result["years_until_death"] == 17
        assert result["from_cache"] is False
        assert result["tax_year"] == "2025-26"
        assert result["calculation_date"] == "2025-06-01"
        assert "ineligible_allowance" in result["data_quality"]

    def test_result_is_json(self, service, single_snapshot, today):
        """Test the result is plain JSON data."""
        result = service.calculate(single_snapshot, today=today)
        decoded = json.loads(json.dumps(result))
        assert decoded["mitigation"]["strategies"][0]["kind"] == "annual_exemption"

    def test_rates_rounded_to_four_places(self, service, single_snapshot, today):
        """Test rates keep four decimals and money two."""
        result = service.calculate(single_snapshot, today=today)
        allowances = result["projection"]["projected"]["allowances"]
        assert allowances["rate"] == 0.4
        assert allowances["liability"] == round(allowances["liability"], 2)

    def test_invalid_input_raises(self, service, today):
        """Test negative asset values surface as InvalidEstateValue."""
        from calculator.exceptions import InvalidEstateValue
        from models.estate import Asset, AssetType, EstateSnapshot, Person
        snapshot = EstateSnapshot(
            person=Person(person_id="bad"),
            assets=[Asset(type=AssetType.CASH, value=Decimal("-10"))],
        )
        with pytest.raises(InvalidEstateValue):
            service.calculate(snapshot, today=today)


class TestCaching:
    """Tests for cache-aside reuse."""

    def test_second_call_from_cache(self, service, single_snapshot, today):
        """Test identical inputs are served from the cache unchanged."""
        first = service.calculate(single_snapshot, today=today)
        second = service.calculate(single_snapshot, today=today)
        assert second["from_cache"] is True
        assert {k: v for k, v in first.items() if k != "from_cache"} == \
            {k: v for k, v in second.items() if k != "from_cache"}

    def test_value_change_recomputes(self, service, single_snapshot, today):
        """Test a changed asset value misses the cache and supersedes it."""
        from models.estate import Asset, AssetType
        first = service.calculate(single_snapshot, today=today)
        changed = single_snapshot.model_copy(update={
            "assets": [Asset(type=AssetType.CASH, value=Decimal("1000000"))],
        })
        second = service.calculate(changed, today=today)
        assert second["from_cache"] is False
        assert second["fingerprint"] != first["fingerprint"]
        assert second["current_liability"] == 270000.0
        assert service.store.get(first["fingerprint"]) is None

    def test_new_date_recomputes(self, service, single_snapshot, today):
        """Test a different calculation date is not served from cache."""
        service.calculate(single_snapshot, today=today)
        result = service.calculate(single_snapshot, today=date(2025, 6, 2))
        assert result["from_cache"] is False

    def test_invalidate(self, service, single_snapshot, today):
        """Test invalidation forces a recompute."""
        service.calculate(single_snapshot, today=today)
        assert service.invalidate("p-1")
        assert service.calculate(single_snapshot, today=today)["from_cache"] is False

    def test_caching_disabled(self, params, life_table, single_snapshot, today):
        """Test nothing is stored when caching is off."""
        from services.iht_calculation_service import IHTCalculationService
        service = IHTCalculationService(params=params, life_table=life_table, enable_caching=False)
        service.calculate(single_snapshot, today=today)
        assert service.calculate(single_snapshot, today=today)["from_cache"] is False
        assert service.store.get_stats()["size"] == 0


class TestDeterminism:
    """Tests for byte-identical output."""

    def test_same_inputs_same_json(self, params, life_table, single_snapshot, today):
        """Test two independent services produce identical JSON."""
        from calculator.serialization import to_json
        from services.iht_calculation_service import IHTCalculationService
        one = IHTCalculationService(params=params, life_table=life_table).calculate(single_snapshot, today=today)
        two = IHTCalculationService(params=params, life_table=life_table).calculate(single_snapshot, today=today)
        assert to_json(one) == to_json(two)


class TestScenarioSelection:
    """Tests for choosing single or second-death projections."""

    def test_married_with_data_sharing_is_joint(self, service, married_snapshot, spouse_snapshot, today):
        """Test data sharing gives the second-death projection."""
        result = service.calculate(married_snapshot, spouse_snapshot, data_sharing_enabled=True, today=today)
        assert result["scenario"] == "second_death"
        assert result["is_married"] is True
        assert result["projection"]["first_death"]["iht_liability"] == 0.0
        assert result["mitigation"]["life_cover"]["is_joint_policy"] is True

    def test_married_without_data_sharing_is_single(self, service, married_snapshot, spouse_snapshot, today):
        """Test the spouse's estate is not used without consent."""
        result = service.calculate(married_snapshot, spouse_snapshot, data_sharing_enabled=False, today=today)
        alone = service.fingerprints(married_snapshot)
        assert result["scenario"] == "single"
        assert result["is_married"] is True
        assert result["fingerprint"] == alone[2]

    def test_joint_missing_inputs_raise(self, service, married_snapshot, spouse_snapshot, today):
        """Test a joint projection needs both dates of birth."""
        from calculator.exceptions import MissingActuarialInput
        from models.estate import Person
        spouse = spouse_snapshot.model_copy(update={"person": Person(person_id="s-1", gender="male")})
        with pytest.raises(MissingActuarialInput):
            service.calculate(married_snapshot, spouse, data_sharing_enabled=True, today=today)


class TestFromSettings:
    """Tests for building the service from settings."""

    def test_from_settings_loads_yaml(self, monkeypatch, root_logging, single_snapshot, today):
        """Test the service loads parameters and life table from YAML."""
        from config.settings import IHTSettings
        from services.iht_calculation_service import IHTCalculationService
        monkeypatch.setenv("IHT_DEFAULT_YEARS_UNTIL_DEATH", "30")
        service = IHTCalculationService.from_settings(IHTSettings())
        assert service.params.version == "2025.1"
        assert service.params.default_years_until_death == 30
        assert service.calculate(single_snapshot, today=today)["years_until_death"] == 17

    def test_from_settings_configures_logging(self, monkeypatch, root_logging, tmp_path):
        """Test log level and file from settings reach the root logger."""
        import logging
        from config.settings import IHTSettings
        from services.iht_calculation_service import IHTCalculationService
        monkeypatch.setenv("IHT_LOG_LEVEL", "warning")
        monkeypatch.setenv("IHT_JSON_LOGS", "true")
        monkeypatch.setenv("IHT_LOG_FILE", str(tmp_path / "iht.log"))
        IHTCalculationService.from_settings(IHTSettings())
        assert root_logging.level == logging.WARNING
        assert any(isinstance(h, logging.FileHandler) for h in root_logging.handlers)


class TestLoggingContext:
    """Tests for per-calculation log context."""

    def test_calculation_id_set_per_call(self, service, single_snapshot, today, caplog):
        """Test each calculation's log lines share one id and the context is cleared after."""
        import logging
        from services.logging_config import calculation_id_var, person_id_var
        with caplog.at_level(logging.INFO, logger="calculation"):
            service.calculate(single_snapshot, today=today)
        ids = {getattr(r, "calculation_id", None) for r in caplog.records if r.name == "calculation"}
        assert len(ids) == 1
        assert None not in ids
        assert {getattr(r, "person_id", None) for r in caplog.records if r.name == "calculation"} == {"p-1"}
        assert calculation_id_var.get() is None
        assert person_id_var.get() is None

    def test_new_id_for_each_calculation(self, service, single_snapshot, today, caplog):
        """Test a cached call still gets its own calculation id."""
        import logging
        with caplog.at_level(logging.INFO, logger="calculation"):
            service.calculate(single_snapshot, today=today)
            service.calculate(single_snapshot, today=today)
        ids = {getattr(r, "calculation_id", None) for r in caplog.records if r.name == "calculation"}
        assert len(ids) == 2

    def test_failure_logged_and_raised(self, service, today, caplog):
        """Test invalid input is logged as an error before propagating."""
        import logging
        from calculator.exceptions import InvalidEstateValue
        from models.estate import Asset, AssetType, EstateSnapshot, Person
        snapshot = EstateSnapshot(
            person=Person(person_id="bad"),
            assets=[Asset(type=AssetType.CASH, value=Decimal("-10"))],
        )
        with caplog.at_level(logging.ERROR, logger="calculation"):
            with pytest.raises(InvalidEstateValue):
                service.calculate(snapshot, today=today)
        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert errors[0].extra_data["details"]["error"] == "invalid_estate_value"
