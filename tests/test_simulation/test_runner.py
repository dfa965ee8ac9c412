"""Tests for the slot-by-slot simulation harness and sample data."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from site_dispatch.config.schema import AppConfig
from site_dispatch.dispatch.load_state import LoadStateStore
from site_dispatch.dispatch.slot import Slot
from site_dispatch.simulation.runner import next_soc, run_simulation, slot_cost
from site_dispatch.simulation.sample_data import generate_day, series_to_records

START = datetime(2026, 3, 10, 8, 0)


def _series(n: int, **kwargs) -> list[Slot]:
    values = dict(consumption=20.0, pv_generation=0.0, consumption_price=100.0, injection_price=50.0)
    values.update(kwargs)
    return [Slot(timestamp=START + timedelta(minutes=15 * i), **values) for i in range(n)]


class TestHelpers:
    def test_slot_cost_import(self) -> None:
        slot = _series(1, consumption_price=200.0)[0]
        # 40 kW for a quarter hour at 200 per MWh
        assert slot_cost(40.0, slot, 0.25) == pytest.approx(2.0)

    def test_slot_cost_export(self) -> None:
        slot = _series(1, injection_price=80.0)[0]
        assert slot_cost(-20.0, slot, 0.25) == pytest.approx(-0.4)

    def test_next_soc_clamped(self, config: AppConfig) -> None:
        assert next_soc(50.0, 40.0, config) == pytest.approx(55.0)
        assert next_soc(94.0, 50.0, config) == pytest.approx(95.0)
        assert next_soc(6.0, -50.0, config) == pytest.approx(5.0)

    def test_next_soc_zero_capacity(self) -> None:
        config = AppConfig(battery={"capacity_kwh": 0})
        assert next_soc(50.0, 10.0, config) == 50.0


class TestRunSimulation:
    def test_empty_series_rejected(self, config: AppConfig) -> None:
        with pytest.raises(ValueError):
            run_simulation([], config)

    def test_soc_carried_forward(self, config: AppConfig) -> None:
        result = run_simulation(_series(6, consumption_price=-20.0), config)
        rows = result.slot_rows
        assert rows[0]["soc_start"] == config.battery.initial_soc
        for prev, nxt in zip(rows, rows[1:]):
            assert nxt["soc_start"] == pytest.approx(prev["soc_end"])
        assert rows[1]["soc_start"] > rows[0]["soc_start"]
        assert result.summary.final_soc == pytest.approx(rows[-1]["soc_end"])
        assert result.series[3].soc == pytest.approx(rows[3]["soc_start"])

    def test_initial_soc_override(self, config: AppConfig) -> None:
        result = run_simulation(_series(2), config, initial_soc=30.0)
        assert result.slot_rows[0]["soc_start"] == 30.0

    def test_load_state_written(self, config: AppConfig) -> None:
        store = LoadStateStore.for_config(config)
        result = run_simulation(_series(8), config, store)
        assert result.store is store
        assert len(store) == 8
        assert store.snapshot() == {r["slot_index"]: r["load_on"] for r in result.slot_rows}

    def test_row_accounting(self, config: AppConfig) -> None:
        result = run_simulation(_series(4, consumption=30.0, pv_generation=10.0), config)
        for row in result.slot_rows:
            load = config.load.nominal_power_kw if row["load_on"] else 0.0
            expected = row["consumption_kw"] + load + row["battery_power"] - row["delivered_pv_kw"]
            assert row["net_grid_kw"] == pytest.approx(expected)
        summary = result.summary
        assert summary.slots == 4
        assert summary.total_cost == pytest.approx(sum(r["cost"] for r in result.slot_rows))
        assert summary.grid_limit_breaches == 0

    def test_curtailment_counted_at_negative_price(self, config: AppConfig) -> None:
        result = run_simulation(_series(1, consumption_price=-10.0, pv_generation=60.0), config)
        row = result.slot_rows[0]
        # Only the 25 kW non-controllable inverter may run; it generates 20 kW of the 60.
        assert row["pv_setpoint"] == pytest.approx(25.0)
        assert row["delivered_pv_kw"] == pytest.approx(20.0)
        assert row["curtailed_kw"] == pytest.approx(40.0)
        assert result.summary.curtailed_kwh == pytest.approx(10.0)

    def test_peak_shaving_hysteresis_across_slots(self) -> None:
        config = AppConfig(strategy="peak_shaving", load={"enabled": False})
        series = [
            Slot(timestamp=START + timedelta(minutes=15 * i), consumption=c, pv_generation=0.0,
                 consumption_price=100.0, injection_price=50.0)
            for i, c in enumerate([120.0, 70.0, 70.0, 50.0, 70.0])
        ]
        result = run_simulation(series, config)
        powers = [row["battery_power"] for row in result.slot_rows]
        assert powers == pytest.approx([-50.0, -10.0, -10.0, 0.0, 0.0])
        assert result.series[0].battery_power == pytest.approx(-50.0)

    def test_breaches_counted(self) -> None:
        config = AppConfig(grid={"import_limit_kw": 10}, load={"enabled": False}, battery={"initial_soc": 5})
        result = run_simulation(_series(3, consumption=30.0), config)
        assert result.summary.grid_limit_breaches == 3


class TestSampleData:
    def test_deterministic(self) -> None:
        assert generate_day(START, seed=7) == generate_day(START, seed=7)

    def test_shape(self) -> None:
        series = generate_day(START, slots=48)
        assert len(series) == 48
        assert series[-1].timestamp == START + timedelta(minutes=15 * 47)
        assert all(s.pv_generation == 0 for s in series if not 10 <= s.timestamp.hour <= 16)
        assert all(s.injection_price == pytest.approx(s.consumption_price * 0.5) for s in series)

    def test_records_round_trip(self) -> None:
        series = generate_day(START, slots=4)
        restored = [Slot.from_dict(r) for r in series_to_records(series)]
        assert [s.timestamp for s in restored] == [s.timestamp for s in series]
        assert restored[0].consumption == pytest.approx(series[0].consumption, abs=1e-3)

    def test_sample_day_simulates(self, config: AppConfig) -> None:
        result = run_simulation(generate_day(START), config)
        assert result.summary.slots == 48
        assert config.battery.min_soc <= result.summary.final_soc <= config.battery.max_soc
