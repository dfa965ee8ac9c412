"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from site_dispatch.config.manager import ConfigManager
from site_dispatch.config.defaults import DEFAULT_CONFIG
from site_dispatch.config.schema import AppConfig, OptimisationStrategy
from site_dispatch.settings import get_config_manager, load_settings


class TestAppConfig:
    def test_default_config_is_valid(self) -> None:
        config = AppConfig()
        assert config.battery.capacity_kwh == 200
        assert config.battery.max_charge_rate_kw == 50
        assert config.grid.import_limit_kw == 150
        assert config.strategy == OptimisationStrategy.COST_OPTIMISATION
        assert config.planning.slot_hours == 0.25

    def test_default_inverters(self) -> None:
        pv = AppConfig().pv
        assert pv.total_capacity_kw == 75
        assert pv.controllable_capacity_kw == 50
        assert pv.non_controllable_capacity_kw == 25

    def test_custom_values(self) -> None:
        config = AppConfig(
            battery={"capacity_kwh": 100, "min_soc": 10},
            strategy="peak_shaving",
        )
        assert config.battery.capacity_kwh == 100
        assert config.battery.min_soc == 10
        assert config.strategy == OptimisationStrategy.PEAK_SHAVING

    def test_energy_helpers(self) -> None:
        battery = AppConfig().battery
        assert battery.energy_above_min_kwh(50) == pytest.approx(90.0)
        assert battery.headroom_kwh(50) == pytest.approx(90.0)
        assert battery.headroom_kwh(95) == pytest.approx(0.0)

    def test_min_soc_above_max_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AppConfig(battery={"min_soc": 80, "max_soc": 20})

    def test_equal_soc_bounds_allowed(self) -> None:
        config = AppConfig(battery={"min_soc": 50, "max_soc": 50})
        assert config.battery.headroom_kwh(50) == 0

    def test_negative_rate_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AppConfig(battery={"max_charge_rate_kw": -1})

    def test_efficiency_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            AppConfig(battery={"round_trip_efficiency": 0})

    def test_duplicate_inverter_ids_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AppConfig(pv={"inverters": [
                {"id": "a", "capacity_kw": 10},
                {"id": "a", "capacity_kw": 20},
            ]})

    def test_peak_shaving_threshold_order(self) -> None:
        with pytest.raises(ValidationError):
            AppConfig(peak_shaving={"discharge_start_kw": 50, "discharge_stop_kw": 60})


class TestConfigManager:
    def test_load_defaults(self, config_manager: ConfigManager) -> None:
        config = config_manager.config
        assert config.db.path == ":memory:"

    def test_config_before_load_raises(self, tmp_path: Path) -> None:
        mgr = ConfigManager(defaults_path=tmp_path / "none.yaml", user_path=tmp_path / "none2.yaml")
        with pytest.raises(RuntimeError):
            _ = mgr.config

    def test_user_file_overrides_defaults(self, tmp_path: Path) -> None:
        defaults = tmp_path / "defaults.yaml"
        defaults.write_text("battery:\n  capacity_kwh: 300\n  min_soc: 10\n")
        user = tmp_path / "user.yaml"
        user.write_text("battery:\n  capacity_kwh: 150\n")
        config = ConfigManager(defaults_path=defaults, user_path=user).load()
        assert config.battery.capacity_kwh == 150
        assert config.battery.min_soc == 10

    def test_in_memory_overrides_win(self, config_manager: ConfigManager) -> None:
        config = config_manager.load({"grid": {"import_limit_kw": 90}})
        assert config.grid.import_limit_kw == 90

    def test_save_user_config(self, config_manager: ConfigManager) -> None:
        config = config_manager.save_user_config({"load": {"enabled": False}})
        assert config.load.enabled is False
        # Reload from disk
        assert config_manager.load().load.enabled is False

    def test_invalid_yaml_values_raise(self, tmp_path: Path) -> None:
        defaults = tmp_path / "defaults.yaml"
        defaults.write_text("grid:\n  import_limit_kw: -5\n")
        with pytest.raises(ValidationError):
            ConfigManager(defaults_path=defaults, user_path=tmp_path / "u.yaml").load()

    def test_parse_override(self) -> None:
        assert ConfigManager.parse_override("battery.capacity_kwh=100") == {"battery": {"capacity_kwh": 100}}
        assert ConfigManager.parse_override("trading.enabled=true") == {"trading": {"enabled": True}}
        assert ConfigManager.parse_override("strategy=peak_shaving") == {"strategy": "peak_shaving"}

    def test_parse_override_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            ConfigManager.parse_override("no-equals-sign")
        with pytest.raises(ValueError):
            ConfigManager.parse_override("=5")

    def test_merge_overrides_combines_sections(self) -> None:
        merged = ConfigManager.merge_overrides(["battery.capacity_kwh=100", "battery.min_soc=10", "strategy=peak_shaving"])
        assert merged == {"battery": {"capacity_kwh": 100, "min_soc": 10}, "strategy": "peak_shaving"}

    def test_later_override_wins(self) -> None:
        assert ConfigManager.merge_overrides(["grid.import_limit_kw=90", "grid.import_limit_kw=80"]) == {
            "grid": {"import_limit_kw": 80},
        }

    def test_to_json_round_trips(self, config_manager: ConfigManager) -> None:
        restored = AppConfig.model_validate_json(config_manager.to_json())
        assert restored == config_manager.config


class TestDefaults:
    def test_shipped_yaml_matches_model_defaults(self, tmp_path: Path) -> None:
        shipped = Path(__file__).resolve().parent.parent / "config.defaults.yaml"
        config = ConfigManager(defaults_path=shipped, user_path=tmp_path / "none.yaml").load()
        assert config == DEFAULT_CONFIG


class TestSettings:
    def test_load_settings_sets_manager(self, tmp_path: Path) -> None:
        defaults = tmp_path / "defaults.yaml"
        defaults.write_text("strategy: peak_shaving\n")
        config = load_settings(defaults, tmp_path / "user.yaml", {"trading": {"enabled": True}})
        assert config.strategy == OptimisationStrategy.PEAK_SHAVING
        assert config.trading.enabled is True
        assert get_config_manager().config is config
