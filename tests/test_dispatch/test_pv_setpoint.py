"""Tests for the PV setpoint rule and per-inverter distribution."""

from __future__ import annotations

from datetime import datetime

import pytest

from site_dispatch.config.schema import AppConfig
from site_dispatch.dispatch.pv_setpoint import (
    affordable_pv,
    allocate_setpoint,
    distribute_setpoint,
    inverter_generation,
    pv_output,
    setpoint_for_output,
)
from site_dispatch.dispatch.slot import ControlDecision, Slot


def _slot(**kwargs) -> Slot:
    values = dict(
        timestamp=datetime(2026, 6, 1, 13, 0),
        consumption=10.0,
        pv_generation=60.0,
        consumption_price=100.0,
        injection_price=40.0,
    )
    values.update(kwargs)
    return Slot(**values)


@pytest.fixture
def three_inverters() -> AppConfig:
    return AppConfig(pv={"inverters": [
        {"id": "a", "capacity_kw": 30, "controllable": True},
        {"id": "b", "capacity_kw": 10, "controllable": True},
        {"id": "c", "capacity_kw": 20, "controllable": False},
    ]})


class TestAllocateSetpoint:
    def test_negative_consumption_price_curtails_controllable(self, config: AppConfig) -> None:
        result = allocate_setpoint(_slot(consumption_price=-5.0), ControlDecision(), config)
        assert result.power == pytest.approx(25.0)
        assert "negative consumption price" in result.reason

    def test_negative_injection_price_limits_excess(self, config: AppConfig) -> None:
        result = allocate_setpoint(_slot(injection_price=-5.0), ControlDecision(), config)
        # 60 kW PV - 10 kW consumption = 50 kW excess, all controllable capacity
        assert result.power == pytest.approx(75.0)

        decision = ControlDecision(battery_power=20.0, load_on=True)
        result = allocate_setpoint(_slot(injection_price=-5.0), decision, config)
        # Effective consumption 10 + 20 + 10 = 40, excess 20
        assert result.power == pytest.approx(45.0)

    def test_negative_injection_price_without_excess(self, config: AppConfig) -> None:
        result = allocate_setpoint(_slot(consumption=80.0, injection_price=-5.0), ControlDecision(), config)
        assert result.power == pytest.approx(25.0)

    def test_positive_prices_no_limitation(self, config: AppConfig) -> None:
        result = allocate_setpoint(_slot(), ControlDecision(), config)
        assert result.power == pytest.approx(config.pv.total_capacity_kw)
        assert result.reason == "no setpoint limitation needed"


class TestDistribution:
    def test_distribute_proportional_to_capacity(self, three_inverters: AppConfig) -> None:
        setpoints = distribute_setpoint(40.0, three_inverters)
        assert setpoints == pytest.approx({"a": 15.0, "b": 5.0, "c": 20.0})

    def test_distribute_below_non_controllable(self, three_inverters: AppConfig) -> None:
        assert distribute_setpoint(5.0, three_inverters) == pytest.approx({"a": 0.0, "b": 0.0, "c": 20.0})

    def test_output_is_min_of_setpoint_and_generation(self, three_inverters: AppConfig) -> None:
        generation = {"a": 10.0, "b": 10.0, "c": 5.0}
        assert pv_output(generation, three_inverters, 40.0) == pytest.approx(20.0)
        assert pv_output(generation, three_inverters, 60.0) == pytest.approx(25.0)

    def test_setpoint_for_output_inverts_output(self, three_inverters: AppConfig) -> None:
        generation = {"a": 10.0, "b": 10.0, "c": 5.0}
        setpoint = setpoint_for_output(generation, three_inverters, 20.0)
        assert setpoint == pytest.approx(40.0)
        assert pv_output(generation, three_inverters, setpoint) == pytest.approx(20.0)

    def test_setpoint_for_output_below_fixed_output(self, three_inverters: AppConfig) -> None:
        generation = {"a": 10.0, "b": 10.0, "c": 5.0}
        assert setpoint_for_output(generation, three_inverters, 2.0) == 0.0


class TestGeneration:
    def test_split_by_capacity_without_breakdown(self, config: AppConfig) -> None:
        generation = inverter_generation(_slot(pv_generation=60.0), config)
        assert generation == pytest.approx({"pv1": 40.0, "pv2": 20.0})

    def test_breakdown_used_and_scaled_for_forecast(self, config: AppConfig) -> None:
        slot = _slot(pv_generation=30.0, pv_forecast=60.0, inverter_generation={"pv1": 20.0, "pv2": 10.0})
        assert inverter_generation(slot, config) == pytest.approx({"pv1": 20.0, "pv2": 10.0})
        assert inverter_generation(slot, config, use_forecast=True) == pytest.approx({"pv1": 40.0, "pv2": 20.0})

    def test_affordable_split(self) -> None:
        config = AppConfig(pv={"inverters": [
            {"id": "cheap", "capacity_kw": 30, "price_per_mwh": 50},
            {"id": "pricey", "capacity_kw": 30, "price_per_mwh": 200},
        ]})
        affordable, expensive = affordable_pv(_slot(pv_generation=60.0), config)
        assert affordable == pytest.approx(30.0)
        assert expensive == pytest.approx(30.0)

    def test_inverter_priced_at_consumption_price_is_expensive(self) -> None:
        config = AppConfig(pv={"inverters": [{"id": "a", "capacity_kw": 30, "price_per_mwh": 100}]})
        assert affordable_pv(_slot(pv_generation=20.0), config) == (0.0, pytest.approx(20.0))

    def test_no_inverters_configured(self) -> None:
        config = AppConfig(pv={"inverters": []})
        assert affordable_pv(_slot(pv_generation=20.0), config) == (20.0, 0.0)
