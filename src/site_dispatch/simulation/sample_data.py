"""Synthetic day profile for trying out the dispatch engine."""

from __future__ import annotations

import random
from datetime import datetime, timedelta
from typing import Any

from site_dispatch.dispatch.slot import Slot


def _price(hour: int, rng: random.Random) -> float:
    if 17 <= hour <= 21:
        return 450.0 + rng.random() * 150.0
    if 6 <= hour <= 10:
        return 250.0 + rng.random() * 50.0
    if hour >= 22 or hour <= 6:
        return 100.0 + rng.random() * 50.0
    return 200.0 + rng.random() * 100.0


def _consumption(hour: int, rng: random.Random) -> float:
    if 16 <= hour <= 20:
        return 35.0 + rng.random() * 10.0
    if 7 <= hour <= 9:
        return 25.0 + rng.random() * 5.0
    if hour >= 22 or hour <= 6:
        return 10.0 + rng.random() * 5.0
    return 20.0 + rng.random() * 10.0


def _pv(hour: int, rng: random.Random) -> float:
    if not 10 <= hour <= 16:
        return 0.0
    distance = abs(hour - 13)
    return max(0.0, 40.0 * (1 - distance / 3) + rng.random() * 5.0)


def generate_day(
    start: datetime,
    slots: int = 48,
    slot_duration_minutes: int = 15,
    seed: int | None = 0,
    injection_ratio: float = 0.5,
) -> list[Slot]:
    """Price peak in the evening, consumption peak in the late afternoon, PV around 13:00.

    Prices are per MWh. Injection is paid ``injection_ratio`` of the
    consumption price. The same seed always yields the same series.
    """
    rng = random.Random(seed)
    series: list[Slot] = []
    for i in range(slots):
        ts = start + timedelta(minutes=i * slot_duration_minutes)
        price = _price(ts.hour, rng)
        pv = _pv(ts.hour, rng)
        series.append(Slot(
            timestamp=ts,
            consumption=_consumption(ts.hour, rng),
            pv_generation=pv,
            consumption_price=price,
            injection_price=price * injection_ratio,
            pv_forecast=pv,
        ))
    return series


def series_to_records(series: list[Slot]) -> list[dict[str, Any]]:
    """Plain mappings suitable for YAML; the inverse of ``Slot.from_dict``."""
    records = []
    for slot in series:
        record: dict[str, Any] = {
            "timestamp": slot.timestamp.isoformat(),
            "consumption": round(slot.consumption, 3),
            "pv_generation": round(slot.pv_generation, 3),
            "consumption_price": round(slot.consumption_price, 3),
            "injection_price": round(slot.injection_price, 3),
        }
        if slot.pv_forecast is not None:
            record["pv_forecast"] = round(slot.pv_forecast, 3)
        if slot.inverter_generation:
            record["inverter_generation"] = dict(slot.inverter_generation)
        if slot.trading_signal is not None:
            record["trading_signal"] = slot.trading_signal.value
            record["requested_power"] = slot.requested_power
        records.append(record)
    return records
