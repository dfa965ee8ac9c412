"""PV active-power setpoint: aggregate rule and per-inverter distribution.

Non-controllable inverters always run at full capacity and their capacity
always counts toward the setpoint. Whatever the setpoint leaves above that
is shared by the controllable inverters in proportion to nameplate capacity,
and each inverter delivers ``min(setpoint_i, generation_i)``.
"""

from __future__ import annotations

import logging

from site_dispatch.config.schema import AppConfig
from site_dispatch.dispatch.slot import ControlDecision, PolicyResult, Slot

logger = logging.getLogger(__name__)

_EPS = 1e-9


def inverter_generation(slot: Slot, config: AppConfig, use_forecast: bool = False) -> dict[str, float]:
    """Per-inverter generation (kW) for a slot.

    Uses the slot's own breakdown when it has one, scaled to the forecast
    total for lookahead. Otherwise the aggregate is split by capacity.
    """
    inverters = config.pv.inverters
    total = slot.forecast_pv if use_forecast else slot.pv_generation
    if not inverters:
        return {}

    breakdown = {inv.id: max(0.0, slot.inverter_generation.get(inv.id, 0.0)) for inv in inverters}
    breakdown_total = sum(breakdown.values())
    if breakdown_total > 0:
        scale = total / breakdown_total if use_forecast else 1.0
        return {inv_id: gen * scale for inv_id, gen in breakdown.items()}

    capacity = config.pv.total_capacity_kw
    if capacity <= 0:
        return {inv.id: 0.0 for inv in inverters}
    return {inv.id: max(0.0, total) * inv.capacity_kw / capacity for inv in inverters}


def affordable_pv(slot: Slot, config: AppConfig, use_forecast: bool = False) -> tuple[float, float]:
    """Split a slot's PV into (affordable, expensive) kW.

    PV is affordable when its inverter has no price or is priced strictly
    below the slot's consumption price.
    """
    if not config.pv.inverters:
        return max(0.0, slot.forecast_pv if use_forecast else slot.pv_generation), 0.0

    generation = inverter_generation(slot, config, use_forecast)
    affordable = expensive = 0.0
    for inv in config.pv.inverters:
        gen = generation.get(inv.id, 0.0)
        if inv.price_per_mwh is None or inv.price_per_mwh < slot.consumption_price:
            affordable += gen
        else:
            expensive += gen
    return affordable, expensive


def distribute_setpoint(setpoint: float, config: AppConfig) -> dict[str, float]:
    """Per-inverter setpoints for an aggregate setpoint."""
    pv = config.pv
    non_controllable = pv.non_controllable_capacity_kw
    controllable = pv.controllable_capacity_kw
    remaining = min(max(0.0, setpoint - non_controllable), controllable)

    result: dict[str, float] = {}
    for inv in pv.inverters:
        if not inv.controllable:
            result[inv.id] = inv.capacity_kw
        elif controllable > 0:
            result[inv.id] = remaining * inv.capacity_kw / controllable
        else:
            result[inv.id] = 0.0
    return result


def pv_output(generation: dict[str, float], config: AppConfig, setpoint: float) -> float:
    """PV actually delivered (kW) under an aggregate setpoint."""
    if not config.pv.inverters:
        return sum(generation.values())
    setpoints = distribute_setpoint(setpoint, config)
    return sum(min(setpoints[inv.id], generation.get(inv.id, 0.0)) for inv in config.pv.inverters)


def setpoint_for_output(generation: dict[str, float], config: AppConfig, target_kw: float) -> float:
    """Smallest aggregate setpoint whose delivered PV reaches ``target_kw``.

    Targets below what the non-controllable inverters deliver on their own
    return 0 (every controllable inverter fully curtailed); targets above the
    available generation return the setpoint that just lets all of it through.
    """
    pv = config.pv
    non_controllable_cap = pv.non_controllable_capacity_kw
    controllable_cap = pv.controllable_capacity_kw

    fixed_output = sum(
        min(inv.capacity_kw, generation.get(inv.id, 0.0)) for inv in pv.inverters if not inv.controllable
    )
    if target_kw < fixed_output - _EPS:
        return 0.0
    if controllable_cap <= 0:
        return non_controllable_cap

    # Controllable output as a function of the shared ratio r = remaining / controllable_cap
    # is piecewise linear with a breakpoint where each inverter hits its own generation.
    controllable = [
        (min(1.0, generation.get(inv.id, 0.0) / inv.capacity_kw), inv.capacity_kw)
        for inv in pv.inverters
        if inv.controllable and inv.capacity_kw > 0
    ]
    controllable.sort()
    needed = target_kw - fixed_output
    ratio = 0.0
    output = 0.0
    slope = sum(cap for _, cap in controllable)
    for breakpoint, cap in controllable:
        if slope <= _EPS:
            break
        reachable = output + (breakpoint - ratio) * slope
        if reachable >= needed - _EPS:
            ratio += max(0.0, needed - output) / slope
            return non_controllable_cap + ratio * controllable_cap
        output = reachable
        ratio = breakpoint
        slope -= cap
    return non_controllable_cap + ratio * controllable_cap


def allocate_setpoint(current: Slot, decision: ControlDecision, config: AppConfig) -> PolicyResult:
    """Aggregate PV setpoint for the current slot, by price regime."""
    pv = config.pv
    non_controllable = pv.non_controllable_capacity_kw
    controllable = pv.controllable_capacity_kw

    if current.consumption_price < 0:
        return PolicyResult(
            non_controllable,
            "negative consumption price - PV setpoint limited to non-controllable capacity",
        )

    if current.injection_price < 0:
        effective_consumption = current.consumption + decision.battery_power
        if decision.load_on:
            effective_consumption += config.load.nominal_power_kw
        generation = sum(inverter_generation(current, config).values()) if pv.inverters else current.pv_generation
        excess = max(0.0, generation - effective_consumption)
        setpoint = non_controllable + min(excess, controllable)
        logger.debug(
            "Negative injection price: generation=%.2f effective_consumption=%.2f setpoint=%.2f",
            generation, effective_consumption, setpoint,
        )
        return PolicyResult(setpoint, "negative injection price - PV setpoint limited to avoid excess")

    return PolicyResult(non_controllable + controllable, "no setpoint limitation needed")
