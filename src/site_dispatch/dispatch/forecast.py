"""Bounded lookahead slice of the slot series."""

from __future__ import annotations

from collections.abc import Sequence

from site_dispatch.dispatch.slot import Slot


def forecast_window(series: Sequence[Slot], slot_index: int, horizon_slots: int) -> list[Slot]:
    """Return the slots from ``slot_index`` forward, at most ``horizon_slots`` long.

    Index 0 of the result is always the current slot. A short series simply
    yields a shorter window.
    """
    if not 0 <= slot_index < len(series):
        raise IndexError(f"slot_index {slot_index} outside series of length {len(series)}")
    length = max(1, min(horizon_slots, len(series) - slot_index))
    return list(series[slot_index:slot_index + length])
