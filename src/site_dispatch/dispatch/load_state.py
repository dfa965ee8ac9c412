"""Load on/off history keyed by slot index.

This is the only state carried from one slot to the next besides SoC. The
engine only reads it; whoever drives the slots writes each outcome back
with ``set`` before deciding the next slot.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo

from site_dispatch.config.schema import AppConfig
from site_dispatch.timezone_utils import resolve_timezone, start_of_local_day, to_local


class LoadStateStore:
    """In-memory load-state history with runtime accumulators (hours)."""

    def __init__(self, slot_duration_minutes: int = 15, tz: tzinfo | str = "UTC") -> None:
        self._slot = timedelta(minutes=slot_duration_minutes)
        self._tz = resolve_timezone(tz) if isinstance(tz, str) else tz
        self._states: dict[int, bool] = {}

    @classmethod
    def for_config(cls, config: AppConfig) -> LoadStateStore:
        return cls(config.planning.slot_duration_minutes, config.planning.timezone)

    @classmethod
    def from_snapshot(
        cls,
        states: dict[int, bool],
        slot_duration_minutes: int = 15,
        tz: tzinfo | str = "UTC",
    ) -> LoadStateStore:
        store = cls(slot_duration_minutes, tz)
        for index, on in states.items():
            store.set(int(index), bool(on))
        return store

    @property
    def slot_hours(self) -> float:
        return self._slot.total_seconds() / 3600.0

    def __len__(self) -> int:
        return len(self._states)

    def get(self, slot_index: int) -> bool | None:
        return self._states.get(slot_index)

    def set(self, slot_index: int, on: bool) -> None:
        self._states[slot_index] = on

    def previous(self, slot_index: int) -> bool:
        """Load state in the slot before ``slot_index`` (off when unknown)."""
        if slot_index <= 0:
            return False
        return bool(self._states.get(slot_index - 1, False))

    def activation_runtime(self, slot_index: int) -> float:
        """Hours the load has been on without interruption up to ``slot_index``."""
        count = 0
        i = slot_index - 1
        while i >= 0 and self._states.get(i, False):
            count += 1
            i -= 1
        return count * self.slot_hours

    def today_runtime(self, slot_index: int, timestamp: datetime) -> float:
        """Hours the load was on since local midnight, before ``slot_index``.

        ``timestamp`` is the start of slot ``slot_index``; slot indices are
        assumed contiguous, so midnight falls a whole number of slots back.
        Elapsed time is measured in UTC so DST transitions count real hours.
        """
        local = to_local(timestamp, self._tz)
        midnight = start_of_local_day(local, self._tz)
        since_midnight = local.astimezone(timezone.utc) - midnight.astimezone(timezone.utc)
        slots_today = int(since_midnight / self._slot)
        first = max(0, slot_index - slots_today)
        on_slots = sum(1 for i in range(first, slot_index) if self._states.get(i, False))
        return on_slots * self.slot_hours

    def snapshot(self) -> dict[int, bool]:
        return dict(sorted(self._states.items()))

    def clear(self) -> None:
        self._states.clear()
