"""Per-slot control cycle: forecast window, strategy, grid-limit enforcement."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from site_dispatch.config.schema import AppConfig
from site_dispatch.dispatch.forecast import forecast_window
from site_dispatch.dispatch.grid_limits import enforce_grid_limits
from site_dispatch.dispatch.load_state import LoadStateStore
from site_dispatch.dispatch.slot import ControlDecision, Slot
from site_dispatch.dispatch.strategies import SlotContext, get_strategy
from site_dispatch.logging.context import slot_context

logger = logging.getLogger(__name__)


def decide(
    slot_index: int,
    series: Sequence[Slot],
    config: AppConfig,
    store: LoadStateStore,
) -> ControlDecision:
    """Control decision for ``series[slot_index]``.

    ``series`` holds history up to and including the current slot plus any
    forecast slots after it. The load-state store is only read; the caller
    records the outcome before moving on to the next slot.

    Peak shaving keeps discharging between its stop and start thresholds
    only when ``series[slot_index - 1].battery_power`` holds the previous
    decision, so callers driving slots themselves must write each decided
    ``battery_power`` back into the series (``run_simulation`` does this).
    A missing value counts as not discharging.
    """
    forecast = forecast_window(series, slot_index, config.planning.horizon_slots)
    strategy = get_strategy(config.strategy)
    previous = series[slot_index - 1] if slot_index > 0 else None

    with slot_context(slot_index, strategy.name):
        decision = strategy.base_decision(SlotContext(slot_index, forecast, store, previous), config)
        decision = enforce_grid_limits(forecast[0], decision, config)
        logger.debug(
            "Slot %d decision: battery=%.2f kW setpoint=%.2f kW load=%s breach=%.2f kW",
            slot_index, decision.battery_power, decision.pv_setpoint,
            decision.load_on, decision.grid_limit_breach_kw,
        )
    return decision


class ControlCycle:
    """Binds a config and a load-state store to repeated ``decide`` calls."""

    def __init__(self, config: AppConfig, store: LoadStateStore | None = None) -> None:
        self._config = config
        self._store = store if store is not None else LoadStateStore.for_config(config)

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def store(self) -> LoadStateStore:
        return self._store

    def decide(self, slot_index: int, series: Sequence[Slot]) -> ControlDecision:
        return decide(slot_index, series, self._config, self._store)

    def record(self, slot_index: int, decision: ControlDecision) -> None:
        """Write the load outcome of ``slot_index`` back to the store."""
        self._store.set(slot_index, decision.load_on)
