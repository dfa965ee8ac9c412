"""Slot-by-slot simulation harness around the control cycle."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Any

from site_dispatch.config.schema import AppConfig
from site_dispatch.dispatch.engine import decide
from site_dispatch.dispatch.grid_limits import delivered_pv, net_grid_flow
from site_dispatch.dispatch.load_state import LoadStateStore
from site_dispatch.dispatch.pv_setpoint import inverter_generation, pv_output
from site_dispatch.dispatch.slot import ControlDecision, Slot
from site_dispatch.logging.context import run_context

logger = logging.getLogger(__name__)


@dataclass
class SimulationSummary:
    slots: int
    total_cost: float
    import_kwh: float
    export_kwh: float
    battery_throughput_kwh: float
    curtailed_kwh: float
    load_runtime_hours: float
    grid_limit_breaches: int
    final_soc: float


@dataclass
class SimulationResult:
    summary: SimulationSummary
    slot_rows: list[dict[str, Any]]
    series: list[Slot]
    store: LoadStateStore


def slot_cost(net_kw: float, current: Slot, slot_hours: float) -> float:
    """Energy cost of one slot; prices are per MWh, energy in kWh."""
    import_kwh = max(0.0, net_kw) * slot_hours
    export_kwh = max(0.0, -net_kw) * slot_hours
    return (import_kwh * current.consumption_price - export_kwh * current.injection_price) / 1000.0


def next_soc(soc: float, battery_power: float, config: AppConfig) -> float:
    battery = config.battery
    if battery.capacity_kwh <= 0:
        return min(battery.max_soc, max(battery.min_soc, soc))
    soc += battery_power * config.planning.slot_hours / battery.capacity_kwh * 100.0
    return min(battery.max_soc, max(battery.min_soc, soc))


def _available_pv(current: Slot, config: AppConfig) -> float:
    if not config.pv.inverters:
        return current.pv_generation
    return pv_output(inverter_generation(current, config), config, config.pv.total_capacity_kw)


def _slot_row(
    index: int,
    current: Slot,
    decision: ControlDecision,
    config: AppConfig,
    soc_end: float,
) -> dict[str, Any]:
    slot_hours = config.planning.slot_hours
    delivered = delivered_pv(current, decision, config)
    net = net_grid_flow(current, decision, config)
    return {
        "slot_index": index,
        "timestamp": current.timestamp.isoformat(),
        "consumption_kw": current.consumption,
        "pv_generation_kw": current.pv_generation,
        "delivered_pv_kw": delivered,
        "curtailed_kw": max(0.0, _available_pv(current, config) - delivered),
        "net_grid_kw": net,
        "cost": slot_cost(net, current, slot_hours),
        "soc_start": current.soc,
        "soc_end": soc_end,
        **decision.to_dict(),
    }


def run_simulation(
    series: Sequence[Slot],
    config: AppConfig,
    store: LoadStateStore | None = None,
    initial_soc: float | None = None,
) -> SimulationResult:
    """Run ``decide`` over every slot in order, carrying SoC and load state forward.

    The series is copied; each slot's ``soc`` and ``battery_power`` are
    overwritten with the simulated values as the run progresses.
    """
    if not series:
        raise ValueError("cannot simulate an empty series")

    store = store if store is not None else LoadStateStore.for_config(config)
    slot_hours = config.planning.slot_hours
    soc = config.battery.initial_soc if initial_soc is None else initial_soc
    working = list(series)
    rows: list[dict[str, Any]] = []

    with run_context(run_strategy=config.strategy.value):
        for index in range(len(working)):
            working[index] = replace(working[index], soc=soc)
            decision = decide(index, working, config, store)
            store.set(index, decision.load_on)

            soc_end = next_soc(soc, decision.battery_power, config)
            rows.append(_slot_row(index, working[index], decision, config, soc_end))
            working[index] = replace(working[index], battery_power=decision.battery_power)
            soc = soc_end

    summary = SimulationSummary(
        slots=len(rows),
        total_cost=sum(r["cost"] for r in rows),
        import_kwh=sum(max(0.0, r["net_grid_kw"]) for r in rows) * slot_hours,
        export_kwh=sum(max(0.0, -r["net_grid_kw"]) for r in rows) * slot_hours,
        battery_throughput_kwh=sum(abs(r["battery_power"]) for r in rows) * slot_hours,
        curtailed_kwh=sum(r["curtailed_kw"] for r in rows) * slot_hours,
        load_runtime_hours=sum(1 for r in rows if r["load_on"]) * slot_hours,
        grid_limit_breaches=sum(1 for r in rows if r["grid_limit_breach_kw"] != 0),
        final_soc=soc,
    )
    logger.info(
        "Simulation complete: %d slots, cost=%.2f, import=%.1f kWh, export=%.1f kWh, final SoC=%.1f%%",
        summary.slots, summary.total_cost, summary.import_kwh, summary.export_kwh, summary.final_soc,
    )
    return SimulationResult(summary=summary, slot_rows=rows, series=working, store=store)
