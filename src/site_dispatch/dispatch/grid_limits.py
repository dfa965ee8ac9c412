"""Grid import/export limit enforcement.

Runs after the strategy has produced a base decision. Net grid flow is

    consumption + load (if on) + battery power - delivered PV

where delivered PV already accounts for the setpoint. When the flow breaks
a limit, a fixed cascade of at most three adjustments is tried in order:

    import: reduce battery charge -> switch load off -> release curtailment
    export: increase battery charge -> switch load on -> curtail more

Every step returns a new decision with a fragment appended to the matching
reason. If the limit still cannot be met, the residual is recorded on the
decision and logged; it is never hidden.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from site_dispatch.config.schema import AppConfig
from site_dispatch.dispatch.pv_setpoint import inverter_generation, pv_output, setpoint_for_output
from site_dispatch.dispatch.slot import ControlDecision, Slot

logger = logging.getLogger(__name__)

_EPS = 1e-6

Step = Callable[[Slot, ControlDecision, AppConfig, float], ControlDecision]


def delivered_pv(current: Slot, decision: ControlDecision, config: AppConfig) -> float:
    if not config.pv.inverters:
        return current.pv_generation
    return pv_output(inverter_generation(current, config), config, decision.pv_setpoint)


def net_grid_flow(current: Slot, decision: ControlDecision, config: AppConfig) -> float:
    """Net grid power in kW (positive = import, negative = export)."""
    load = config.load.nominal_power_kw if decision.load_on else 0.0
    return current.consumption + load + decision.battery_power - delivered_pv(current, decision, config)


def import_excess(current: Slot, decision: ControlDecision, config: AppConfig) -> float:
    return net_grid_flow(current, decision, config) - config.grid.import_limit_kw


def export_excess(current: Slot, decision: ControlDecision, config: AppConfig) -> float:
    return -net_grid_flow(current, decision, config) - config.grid.export_limit_kw


# ── Import side ──────────────────────────────────────────────


def reduce_battery_charge(current: Slot, decision: ControlDecision, config: AppConfig, excess: float) -> ControlDecision:
    if not decision.is_charging:
        return decision
    old = decision.battery_power
    new = max(0.0, old - excess)
    return decision.with_battery(new, f"grid import limit: charge reduced from {old:.2f} to {new:.2f} kW")


def switch_load_off(current: Slot, decision: ControlDecision, config: AppConfig, excess: float) -> ControlDecision:
    if not decision.load_on:
        return decision
    return decision.with_load(False, "grid import limit: load switched off")


def release_curtailment(current: Slot, decision: ControlDecision, config: AppConfig, excess: float) -> ControlDecision:
    if not config.pv.inverters:
        return decision
    generation = inverter_generation(current, config)
    total_capacity = config.pv.total_capacity_kw
    delivered = pv_output(generation, config, decision.pv_setpoint)
    available = pv_output(generation, config, total_capacity) - delivered
    increase = min(excess, available)
    if increase <= _EPS:
        return decision

    old = decision.pv_setpoint
    new = setpoint_for_output(generation, config, delivered + increase)
    new = min(max(new, old), total_capacity)
    return decision.with_setpoint(new, f"grid import limit: setpoint raised from {old:.2f} to {new:.2f} kW")


# ── Export side ──────────────────────────────────────────────


def increase_battery_charge(current: Slot, decision: ControlDecision, config: AppConfig, excess: float) -> ControlDecision:
    battery = config.battery
    headroom_kw = max(0.0, battery.headroom_kwh(current.soc)) / config.planning.slot_hours
    ceiling = min(battery.max_charge_rate_kw, headroom_kw)
    old = decision.battery_power
    if old >= ceiling:
        return decision
    new = min(old + excess, ceiling)
    return decision.with_battery(new, f"grid export limit: charge increased from {old:.2f} to {new:.2f} kW")


def switch_load_on(current: Slot, decision: ControlDecision, config: AppConfig, excess: float) -> ControlDecision:
    if decision.load_on or not config.load.enabled:
        return decision
    candidate = decision.with_load(True, "grid export limit: load switched on")
    # Soaking up export must not push the site over its import limit instead.
    if import_excess(current, candidate, config) > _EPS:
        return decision
    return candidate


def increase_curtailment(current: Slot, decision: ControlDecision, config: AppConfig, excess: float) -> ControlDecision:
    if not config.pv.inverters or decision.pv_setpoint <= 0:
        return decision
    generation = inverter_generation(current, config)
    delivered = pv_output(generation, config, decision.pv_setpoint)
    target = max(0.0, delivered - excess)

    old = decision.pv_setpoint
    new = min(setpoint_for_output(generation, config, target), old)
    if new >= old:
        return decision
    return decision.with_setpoint(new, f"grid export limit: setpoint lowered from {old:.2f} to {new:.2f} kW")


IMPORT_STEPS: tuple[Step, ...] = (reduce_battery_charge, switch_load_off, release_curtailment)
EXPORT_STEPS: tuple[Step, ...] = (increase_battery_charge, switch_load_on, increase_curtailment)


def enforce_grid_limits(current: Slot, decision: ControlDecision, config: AppConfig) -> ControlDecision:
    """Bring net grid flow within the configured limits where physically possible."""
    if import_excess(current, decision, config) > _EPS:
        direction, steps, excess_of = "import", IMPORT_STEPS, import_excess
    elif export_excess(current, decision, config) > _EPS:
        direction, steps, excess_of = "export", EXPORT_STEPS, export_excess
    else:
        return decision

    for step in steps:
        excess = excess_of(current, decision, config)
        if excess <= _EPS:
            break
        decision = step(current, decision, config, excess)

    residual = excess_of(current, decision, config)
    if residual > _EPS:
        logger.warning(
            "Grid %s limit infeasible: %.2f kW above limit after all adjustments",
            direction, residual,
        )
        signed = residual if direction == "import" else -residual
        return decision.with_breach(
            signed, f"grid {direction} limit still exceeded by {residual:.2f} kW after all adjustments",
        )
    return decision
