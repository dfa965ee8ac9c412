"""Base-decision strategies: cost optimisation and peak shaving.

Both produce a ControlDecision for the current slot; grid-limit
enforcement runs afterwards, identically for either strategy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from site_dispatch.config.schema import AppConfig, OptimisationStrategy
from site_dispatch.dispatch.battery import decide_battery
from site_dispatch.dispatch.load_scheduler import decide_load, peak_shaving_load
from site_dispatch.dispatch.load_state import LoadStateStore
from site_dispatch.dispatch.pv_setpoint import allocate_setpoint
from site_dispatch.dispatch.slot import ControlDecision, PolicyResult, Slot
from site_dispatch.dispatch.trading import signed_override

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotContext:
    """Everything a strategy may read for one evaluation."""

    slot_index: int
    forecast: list[Slot]
    store: LoadStateStore
    previous: Slot | None = None

    @property
    def current(self) -> Slot:
        return self.forecast[0]


class DispatchStrategy(Protocol):
    name: str

    def base_decision(self, context: SlotContext, config: AppConfig) -> ControlDecision: ...


def _with_setpoint(current: Slot, decision: ControlDecision, config: AppConfig) -> ControlDecision:
    setpoint = allocate_setpoint(current, decision, config)
    value = min(max(0.0, setpoint.power), config.pv.total_capacity_kw)
    return decision.with_setpoint(value, setpoint.reason)


class CostOptimisationStrategy:
    """Battery by price reservation, load by daily runtime, PV by price regime."""

    name = OptimisationStrategy.COST_OPTIMISATION.value

    def base_decision(self, context: SlotContext, config: AppConfig) -> ControlDecision:
        current = context.current
        battery = decide_battery(current, context.forecast, config)
        load = decide_load(context.slot_index, context.forecast, context.store, config)
        decision = ControlDecision().with_battery(battery.power, battery.reason).with_load(load.on, load.reason)
        return _with_setpoint(current, decision, config)


class PeakShavingStrategy:
    """Four-threshold hysteresis on raw grid power.

    Raw grid power is consumption plus load minus PV, before the battery.
    Discharging starts above ``discharge_start_kw`` and shaves down to
    ``discharge_stop_kw``; once started it keeps going while the grid stays
    above ``discharge_stop_kw``. Charging mirrors this on the export side.
    Between thresholds the battery holds.
    """

    name = OptimisationStrategy.PEAK_SHAVING.value

    def base_decision(self, context: SlotContext, config: AppConfig) -> ControlDecision:
        current = context.current
        load = peak_shaving_load(current, config)
        load_kw = config.load.nominal_power_kw if load.on else 0.0
        grid_kw = current.consumption + load_kw - current.pv_generation

        previous_power = 0.0
        if context.previous is not None and context.previous.battery_power is not None:
            previous_power = context.previous.battery_power

        battery = peak_shaving_battery(current, grid_kw, previous_power, config)
        decision = ControlDecision().with_battery(battery.power, battery.reason).with_load(load.on, load.reason)
        return _with_setpoint(current, decision, config)


def peak_shaving_battery(
    current: Slot,
    grid_kw: float,
    previous_power: float,
    config: AppConfig,
) -> PolicyResult:
    """Signed battery power from the hysteresis band (positive = charge)."""
    override = signed_override(current, config)
    if override is not None:
        return PolicyResult(override.power, f"{override.reason} (peak shaving)")

    thresholds = config.peak_shaving
    battery = config.battery
    slot_hours = config.planning.slot_hours

    was_discharging = previous_power < 0
    was_charging = previous_power > 0

    if grid_kw > thresholds.discharge_start_kw or (was_discharging and grid_kw > thresholds.discharge_stop_kw):
        if current.consumption_price < 0:
            return PolicyResult(0.0, "discharging not allowed at negative price (peak shaving)")
        available = battery.energy_above_min_kwh(current.soc)
        if current.soc <= battery.min_soc or available <= 0:
            return PolicyResult(0.0, "battery empty (peak shaving)")
        power = min(grid_kw - thresholds.discharge_stop_kw, battery.max_discharge_rate_kw, available / slot_hours)
        logger.debug("Peak shaving discharge: grid=%.2f power=%.2f", grid_kw, power)
        return PolicyResult(
            -power,
            f"peak shaving: grid import {grid_kw:.2f} kW, discharging {power:.2f} kW "
            f"towards {thresholds.discharge_stop_kw:.2f} kW",
        )

    if grid_kw < thresholds.charge_start_kw or (was_charging and grid_kw < thresholds.charge_stop_kw):
        headroom = battery.headroom_kwh(current.soc)
        if current.soc >= battery.max_soc or headroom <= 0:
            return PolicyResult(0.0, "battery full (peak shaving)")
        power = min(thresholds.charge_stop_kw - grid_kw, battery.max_charge_rate_kw, headroom / slot_hours)
        logger.debug("Peak shaving charge: grid=%.2f power=%.2f", grid_kw, power)
        return PolicyResult(
            power,
            f"peak shaving: grid export {-grid_kw:.2f} kW, charging {power:.2f} kW "
            f"towards {thresholds.charge_stop_kw:.2f} kW",
        )

    return PolicyResult(0.0, f"peak shaving: grid power {grid_kw:.2f} kW within thresholds, hold")


STRATEGIES: dict[OptimisationStrategy, DispatchStrategy] = {
    OptimisationStrategy.COST_OPTIMISATION: CostOptimisationStrategy(),
    OptimisationStrategy.PEAK_SHAVING: PeakShavingStrategy(),
}


def get_strategy(strategy: OptimisationStrategy) -> DispatchStrategy:
    return STRATEGIES[OptimisationStrategy(strategy)]
