"""Battery charge/discharge policy for the cost-optimisation strategy.

The charge evaluator runs first and walks a fixed priority ladder:

1. Trading override
2. SoC at maximum
3. Negative consumption price (spread charging over the negative run)
4. Negative price coming within the discharge horizon (hold off)
5. Pre-charge for more expensive slots ahead (reservation)
6. Affordable PV surplus

The discharge evaluator only runs when charging came out at zero. It covers
the current deficit while reserving energy for pricier slots ahead, or
empties the battery ahead of a negative-price window.

All powers here are kW magnitudes; ``decide_battery`` applies the sign.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from site_dispatch.config.schema import AppConfig
from site_dispatch.dispatch.horizon import (
    first_negative_price_slot,
    max_export_discharge_kw,
    negative_price_lookahead,
)
from site_dispatch.dispatch.pv_setpoint import affordable_pv
from site_dispatch.dispatch.slot import PolicyResult, Slot
from site_dispatch.dispatch.trading import charge_override, discharge_override

logger = logging.getLogger(__name__)


def decide_battery(current: Slot, forecast: list[Slot], config: AppConfig) -> PolicyResult:
    """Signed battery power for the current slot (positive = charge)."""
    charge = evaluate_charge(current, forecast, config)
    if charge.power > 0:
        return charge

    discharge = evaluate_discharge(current, forecast, config)
    reason = f"charge decision: {charge.reason}; discharge decision: {discharge.reason}"
    if discharge.power > 0:
        return PolicyResult(-discharge.power, reason)
    return PolicyResult(0.0, reason)


# ── Charging ─────────────────────────────────────────────────


def evaluate_charge(current: Slot, forecast: list[Slot], config: AppConfig) -> PolicyResult:
    override = charge_override(current, config)
    if override is not None:
        return override

    battery = config.battery
    if current.soc >= battery.max_soc or battery.headroom_kwh(current.soc) <= 0:
        return PolicyResult(0.0, "battery full")

    if current.consumption_price < 0:
        return _negative_price_charging(current, forecast, config)

    lookahead = negative_price_lookahead(current, config, forecast)
    neg_offset = first_negative_price_slot(forecast, lookahead)
    if neg_offset is not None:
        return PolicyResult(0.0, f"do not charge: negative consumption price coming in slot +{neg_offset}")

    notes: list[str] = []
    reserve = _future_deficit_charge(current, forecast, config, notes)
    if reserve is not None:
        return reserve

    return _pv_surplus_charge(current, config, notes)


def _grid_headroom_at_negative_price(slot: Slot, config: AppConfig) -> float:
    # PV is fully curtailed at negative prices, so it is not subtracted.
    demand = slot.consumption
    if config.load.enabled:
        demand += config.load.nominal_power_kw
    return max(0.0, config.grid.import_limit_kw - demand)


def _negative_price_charging(current: Slot, forecast: list[Slot], config: AppConfig) -> PolicyResult:
    """Apportion battery headroom over the run of negative-price slots, cheapest first."""
    planning = config.planning
    slot_hours = planning.slot_hours
    max_charge = config.battery.max_charge_rate_kw

    run: list[tuple[int, Slot]] = [(0, current)]
    for offset in range(1, min(planning.reservation_lookahead_slots, len(forecast) - 1) + 1):
        if forecast[offset].consumption_price >= 0:
            break
        run.append((offset, forecast[offset]))
    run.sort(key=lambda item: item[1].consumption_price)

    groups: list[list[tuple[int, Slot]]] = []
    group_price = run[0][1].consumption_price
    for item in run:
        if groups and abs(item[1].consumption_price - group_price) < planning.negative_price_group_tolerance:
            groups[-1].append(item)
        else:
            groups.append([item])
            group_price = item[1].consumption_price

    remaining_kwh = config.battery.headroom_kwh(current.soc)
    current_power = 0.0
    used_slots = 0
    for group in groups:
        if remaining_kwh <= 0:
            break
        capacities = [_grid_headroom_at_negative_price(slot, config) for _, slot in group]
        group_capacity = sum(capacities)
        if group_capacity <= 0:
            continue
        group_energy = min(remaining_kwh, group_capacity * slot_hours)
        for (offset, _), capacity in zip(group, capacities):
            share = capacity / group_capacity * group_energy
            slot_energy = min(share, capacity * slot_hours)
            slot_power = min(slot_energy / slot_hours, max_charge)
            if offset == 0:
                current_power = slot_power
            if slot_power > 0:
                used_slots += 1
            remaining_kwh -= slot_power * slot_hours

    cheapest = groups[0][0][1].consumption_price
    if current_power <= 0:
        return PolicyResult(
            0.0,
            f"negative price: defer charging to {len(groups[0])} slots with price "
            f"{cheapest:.2f} €/MWh (optimizing compensation)",
        )
    logger.debug("Negative price charging: %.2f kW now, %d slots used", current_power, used_slots)
    return PolicyResult(
        current_power,
        f"negative price: optimized charging over {used_slots} slots (cheapest: {cheapest:.2f} €/MWh)",
    )


def _future_deficit_charge(
    current: Slot,
    forecast: list[Slot],
    config: AppConfig,
    notes: list[str],
) -> PolicyResult | None:
    """Pre-charge now for pricier slots ahead that no cheaper slot precedes.

    Returns None when no charge is warranted, leaving a note behind.
    """
    battery = config.battery
    planning = config.planning
    slot_hours = planning.slot_hours
    lookahead = forecast[1:1 + planning.reservation_lookahead_slots]
    headroom = battery.headroom_kwh(current.soc)
    price = current.consumption_price

    # Slots up to (excluding) the first cheaper one
    until_cheaper: list[Slot] = []
    for slot in lookahead:
        if slot.consumption_price < price:
            break
        until_cheaper.append(slot)

    effective_charge_price = price / battery.round_trip_efficiency
    worth_it = [
        slot for slot in until_cheaper
        if slot.consumption_price - effective_charge_price >= battery.min_price_difference
    ]
    if not worth_it:
        notes.append("no future deficit")
        return None

    total_deficit = 0.0
    pv_buffer = 0.0
    for slot in worth_it:
        net = slot.consumption - slot.forecast_pv
        if net <= 0:
            pv_buffer = min(pv_buffer - net * slot_hours, headroom)
        else:
            needed = max(0.0, net * slot_hours - pv_buffer)
            pv_buffer = max(0.0, pv_buffer - net * slot_hours)
            total_deficit += needed

    if total_deficit <= 0:
        notes.append("no future deficit")
        return None

    stored = battery.energy_above_min_kwh(current.soc)
    extra_needed = max(0.0, min(total_deficit - stored, headroom))
    if extra_needed <= 0:
        notes.append(f"future deficit of {total_deficit:.2f} kWh covered by stored energy")
        return None

    power = _spread_charge_power(extra_needed, current, forecast, config)
    if power <= 0:
        notes.append(f"future deficit of {extra_needed:.2f} kWh but no grid headroom now")
        return None

    covered_until = worth_it[-1].timestamp + timedelta(minutes=planning.slot_duration_minutes)
    return PolicyResult(
        power,
        f"charge for future deficit of {extra_needed:.2f} kWh (covering until {covered_until:%H:%M})",
    )


def _spread_charge_power(energy_kwh: float, current: Slot, forecast: list[Slot], config: AppConfig) -> float:
    """Share of ``energy_kwh`` to charge in the current slot.

    Energy is spread over the current slot and the following slots at (nearly)
    the same price, in proportion to each slot's spare grid-import capacity.
    """
    planning = config.planning
    slot_hours = planning.slot_hours
    max_charge = config.battery.max_charge_rate_kw
    import_limit = config.grid.import_limit_kw
    price = current.consumption_price

    same_price: list[Slot] = []
    for offset in range(1, min(planning.reservation_lookahead_slots, len(forecast) - 1) + 1):
        if abs(forecast[offset].consumption_price - price) >= planning.spread_price_tolerance:
            break
        same_price.append(forecast[offset])

    if not same_price:
        return min(energy_kwh / slot_hours, max_charge)

    current_capacity = max(0.0, import_limit - (current.consumption - current.pv_generation))
    total_capacity = current_capacity + sum(
        max(0.0, import_limit - (slot.consumption - slot.forecast_pv)) for slot in same_price
    )
    if total_capacity <= 0:
        return min(energy_kwh / slot_hours, max_charge)

    share = current_capacity / total_capacity * energy_kwh
    slot_energy = min(share, energy_kwh, current_capacity * slot_hours)
    return min(slot_energy / slot_hours, current_capacity, max_charge)


def _pv_surplus_charge(current: Slot, config: AppConfig, notes: list[str]) -> PolicyResult:
    affordable, expensive = affordable_pv(current, config)
    surplus = affordable - current.consumption

    if surplus > 0:
        headroom_kw = config.battery.headroom_kwh(current.soc) / config.planning.slot_hours
        power = min(surplus, config.battery.max_charge_rate_kw, headroom_kw)
        reason = f"pv surplus (affordable PV: {affordable:.1f}kW)"
        if expensive > 0:
            reason += f", expensive PV not used: {expensive:.1f}kW"
        return PolicyResult(power, reason)

    reason = "no negative prices, " + ", ".join(notes or ["no future deficit"])
    if current.pv_generation > 0 and affordable == 0 and expensive > 0:
        reason += f", no affordable PV available (expensive PV: {expensive:.1f}kW)"
    else:
        reason += ", no pv surplus"
    return PolicyResult(0.0, reason)


# ── Discharging ──────────────────────────────────────────────


def evaluate_discharge(current: Slot, forecast: list[Slot], config: AppConfig) -> PolicyResult:
    """Discharge magnitude (kW) for the current slot."""
    override = discharge_override(current, config)
    if override is not None:
        return override

    battery = config.battery
    slot_hours = config.planning.slot_hours
    available = battery.energy_above_min_kwh(current.soc)
    if current.soc <= battery.min_soc or available <= 0:
        return PolicyResult(0.0, "battery empty")

    if current.consumption_price < 0:
        return PolicyResult(0.0, "discharging not allowed at negative price")

    lookahead = negative_price_lookahead(current, config, forecast)
    neg_offset = first_negative_price_slot(forecast, lookahead)
    if neg_offset is not None and current.injection_price > 0:
        power = min(max_export_discharge_kw(config), available / slot_hours)
        if power > 0:
            return PolicyResult(
                power,
                f"discharge fully before negative consumption price (slot +{neg_offset}), "
                "injection price now positive",
            )
        return PolicyResult(
            0.0, f"no energy available to discharge before negative consumption price (slot +{neg_offset})",
        )

    deficit = max(0.0, current.consumption - current.pv_generation)
    if deficit <= 0:
        return PolicyResult(0.0, "no deficit to cover")

    future_deficit = 0.0
    expected_charge = 0.0
    for slot in forecast[1:1 + config.planning.discharge_reserve_lookahead_slots]:
        if slot.consumption_price > current.consumption_price:
            future_deficit += max(0.0, slot.consumption - slot.forecast_pv) * slot_hours
        if slot.forecast_pv > slot.consumption:
            surplus = min(slot.forecast_pv - slot.consumption, battery.max_charge_rate_kw)
            expected_charge += surplus * slot_hours

    headroom = max(0.0, battery.headroom_kwh(current.soc))
    future_need = max(0.0, future_deficit - min(expected_charge, headroom))
    allowed = available - future_need
    power = min(deficit, battery.max_discharge_rate_kw, allowed / slot_hours)

    if power <= 0:
        return PolicyResult(0.0, "reserve for future expensive consumption")
    return PolicyResult(
        power,
        f"cover consumption (deficit: {deficit:.2f} kW, allowed: {allowed:.2f} kWh, "
        f"future need: {future_need:.2f} kWh)",
    )
