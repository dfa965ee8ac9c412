"""Lookahead horizon for negative-price avoidance."""

from __future__ import annotations

import math

from site_dispatch.config.schema import AppConfig
from site_dispatch.dispatch.slot import Slot


def max_export_discharge_kw(config: AppConfig) -> float:
    """Highest discharge power that can actually leave the site."""
    return min(config.battery.max_discharge_rate_kw, config.grid.export_limit_kw)


def negative_price_lookahead(current: Slot, config: AppConfig, forecast: list[Slot]) -> int:
    """Number of slots it would take to empty the battery at the export-limited rate.

    Capped at the forecast slots available after the current one. Returns 0
    when there is nothing to discharge or no way to discharge it.
    """
    allowed_kwh = config.battery.energy_above_min_kwh(current.soc)
    max_kw = max_export_discharge_kw(config)
    if allowed_kwh <= 0 or max_kw <= 0:
        return 0
    slots_to_empty = math.ceil(allowed_kwh / (max_kw * config.planning.slot_hours))
    return min(slots_to_empty, len(forecast) - 1)


def first_negative_price_slot(forecast: list[Slot], lookahead: int) -> int | None:
    """Offset of the first future slot (1..lookahead) with a negative consumption price."""
    for offset in range(1, min(lookahead, len(forecast) - 1) + 1):
        if forecast[offset].consumption_price < 0:
            return offset
    return None
