"""Controllable-load on/off decision for the current slot.

Priority:
1. Negative consumption price - run the load.
2. Minimum runtime per activation not yet reached - keep it running.
3. Daily minimum runtime - pick today's slots before the deadline,
   affordable-PV surplus slots first, then the cheapest remaining ones.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import timedelta

from site_dispatch.config.schema import AppConfig
from site_dispatch.dispatch.load_state import LoadStateStore
from site_dispatch.dispatch.pv_setpoint import affordable_pv
from site_dispatch.dispatch.slot import Slot
from site_dispatch.timezone_utils import resolve_timezone, start_of_local_day, to_local

logger = logging.getLogger(__name__)


@dataclass
class LoadDecision:
    on: bool
    reason: str
    selected_slots: list[int] = field(default_factory=list)
    slots_needed: int = 0


@dataclass
class _Candidate:
    index: int
    price: float
    pv_surplus: bool


def decide_load(
    slot_index: int,
    forecast: list[Slot],
    store: LoadStateStore,
    config: AppConfig,
) -> LoadDecision:
    """Decide whether the controllable load runs in slot ``slot_index``.

    ``forecast[0]`` must be the slot at ``slot_index``.
    """
    load = config.load
    current = forecast[0]
    if not load.enabled:
        return LoadDecision(False, "load disabled")

    prev_on = store.previous(slot_index)
    activation_runtime = store.activation_runtime(slot_index)
    runtime_today = store.today_runtime(slot_index, current.timestamp)

    candidates = _candidates_until_deadline(slot_index, forecast, config)
    slot_hours = config.planning.slot_hours
    needed = max(0, math.ceil((load.min_runtime_daily_hours - runtime_today) / slot_hours - 1e-9))
    selected, pv_slots = _select_slots(candidates, needed)

    logger.debug(
        "Load slot %d: prev=%s activation=%.2fh today=%.2fh needed=%d selected=%s",
        slot_index, prev_on, activation_runtime, runtime_today, needed, selected,
    )

    if current.consumption_price < 0:
        return LoadDecision(True, "negative consumption price", selected, needed)

    if prev_on and activation_runtime < load.min_runtime_activation_hours:
        return LoadDecision(
            True,
            f"minimum activation runtime ({activation_runtime:.2f}h of {load.min_runtime_activation_hours:.2f}h)",
            selected, needed,
        )

    if needed > 0 and slot_index in selected:
        if slot_index in pv_slots:
            reason = "pv oversupply (selected for min daily runtime)"
        else:
            reason = "selected for min daily runtime (cheapest slot)"
        return LoadDecision(True, reason, selected, needed)

    if needed == 0:
        return LoadDecision(False, "min daily runtime reached", selected, needed)
    return LoadDecision(False, "not selected for min daily runtime", selected, needed)


def _candidates_until_deadline(slot_index: int, forecast: list[Slot], config: AppConfig) -> list[_Candidate]:
    """Today's remaining slots that start before the runtime deadline."""
    tz = resolve_timezone(config.planning.timezone)
    midnight = start_of_local_day(forecast[0].timestamp, tz)
    deadline = midnight + timedelta(hours=config.load.runtime_deadline_hour)
    activation_power = config.load.activation_power_kw

    candidates: list[_Candidate] = []
    for offset, slot in enumerate(forecast):
        local = to_local(slot.timestamp, tz)
        if local.date() != midnight.date() or local >= deadline:
            continue
        affordable, _ = affordable_pv(slot, config, use_forecast=offset > 0)
        consumption = slot.consumption
        candidates.append(_Candidate(
            index=slot_index + offset,
            price=slot.consumption_price,
            pv_surplus=affordable - consumption >= activation_power,
        ))
    return candidates


def _select_slots(candidates: list[_Candidate], needed: int) -> tuple[list[int], set[int]]:
    """PV-surplus slots first (earliest first), then the cheapest of the rest."""
    pv_slots = [c.index for c in candidates if c.pv_surplus]
    if needed <= 0:
        return [], set(pv_slots)
    if len(pv_slots) >= needed:
        return pv_slots[:needed], set(pv_slots)

    selected = list(pv_slots)
    chosen = set(selected)
    for candidate in sorted(candidates, key=lambda c: (c.price, c.index)):
        if len(selected) >= needed:
            break
        if candidate.index not in chosen:
            selected.append(candidate.index)
            chosen.add(candidate.index)
    return selected, set(pv_slots)


def peak_shaving_load(current: Slot, config: AppConfig) -> LoadDecision:
    """Load logic used alongside peak shaving: run only at a negative price."""
    if not config.load.enabled:
        return LoadDecision(False, "load disabled")
    if current.consumption_price < 0:
        return LoadDecision(True, "negative consumption price (peak shaving)")
    return LoadDecision(False, "no negative prices (peak shaving)")
