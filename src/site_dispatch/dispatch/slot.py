"""Slot and control decision models shared by every dispatch policy."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

REASON_SEPARATOR = "; "


class TradingSignal(str, Enum):
    """External override channel for the battery."""

    STANDBY = "standby"
    LOCAL = "local"
    OVERRULE = "overrule"


@dataclass(frozen=True)
class Slot:
    """One fixed-duration time step of the simulation horizon.

    Power values are in kW (averaged over the slot), prices per MWh and
    ``soc`` in percent. ``pv_generation`` is the realised generation and is
    used for the current slot; ``pv_forecast`` is what lookahead logic sees
    for future slots (falls back to the realised value when absent).
    ``battery_power`` is only filled in for history slots, by the caller.
    """

    timestamp: datetime
    consumption: float
    pv_generation: float
    consumption_price: float
    injection_price: float
    pv_forecast: float | None = None
    soc: float = 50.0
    inverter_generation: dict[str, float] = field(default_factory=dict)
    trading_signal: TradingSignal | None = None
    requested_power: float = 0.0
    battery_power: float | None = None

    @property
    def forecast_pv(self) -> float:
        return self.pv_generation if self.pv_forecast is None else self.pv_forecast

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Slot:
        """Build a slot from a plain mapping (YAML/JSON rows, database rows)."""
        ts = data["timestamp"]
        if isinstance(ts, str):
            ts = datetime.fromisoformat(ts)
        signal = data.get("trading_signal")
        pv_forecast = data.get("pv_forecast")
        battery_power = data.get("battery_power")
        return cls(
            timestamp=ts,
            consumption=float(data.get("consumption", 0.0)),
            pv_generation=float(data.get("pv_generation", 0.0)),
            consumption_price=float(data.get("consumption_price", 0.0)),
            injection_price=float(data.get("injection_price", 0.0)),
            pv_forecast=None if pv_forecast is None else float(pv_forecast),
            soc=float(data.get("soc", 50.0)),
            inverter_generation={
                str(k): float(v) for k, v in (data.get("inverter_generation") or {}).items()
            },
            trading_signal=TradingSignal(signal) if signal else None,
            requested_power=float(data.get("requested_power", 0.0)),
            battery_power=None if battery_power is None else float(battery_power),
        )


@dataclass(frozen=True)
class PolicyResult:
    """Outcome of one policy evaluation: a power (kW) and why."""

    power: float
    reason: str


def append_reason(existing: str, fragment: str) -> str:
    if not fragment:
        return existing
    if not existing:
        return fragment
    return f"{existing}{REASON_SEPARATOR}{fragment}"


@dataclass(frozen=True)
class ControlDecision:
    """Control outcome for a single slot.

    ``battery_power`` is signed (positive = charge, negative = discharge).
    ``pv_setpoint`` caps total PV active power. Reasons are only ever
    extended, never replaced, as later stages adjust the decision.
    ``grid_limit_breach_kw`` is non-zero when grid limits could not be met:
    positive for import above the limit, negative for export beyond it.
    """

    battery_power: float = 0.0
    pv_setpoint: float = 0.0
    load_on: bool = False
    battery_reason: str = ""
    load_reason: str = ""
    curtailment_reason: str = ""
    grid_limit_breach_kw: float = 0.0

    @property
    def is_charging(self) -> bool:
        return self.battery_power > 0

    @property
    def is_discharging(self) -> bool:
        return self.battery_power < 0

    def with_battery(self, power: float, note: str = "") -> ControlDecision:
        return replace(
            self,
            battery_power=power,
            battery_reason=append_reason(self.battery_reason, note),
        )

    def with_load(self, on: bool, note: str = "") -> ControlDecision:
        return replace(self, load_on=on, load_reason=append_reason(self.load_reason, note))

    def with_setpoint(self, setpoint: float, note: str = "") -> ControlDecision:
        return replace(
            self,
            pv_setpoint=setpoint,
            curtailment_reason=append_reason(self.curtailment_reason, note),
        )

    def with_breach(self, breach_kw: float, note: str = "") -> ControlDecision:
        return replace(
            self,
            grid_limit_breach_kw=breach_kw,
            curtailment_reason=append_reason(self.curtailment_reason, note),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "battery_power": self.battery_power,
            "pv_setpoint": self.pv_setpoint,
            "load_on": self.load_on,
            "battery_reason": self.battery_reason,
            "load_reason": self.load_reason,
            "curtailment_reason": self.curtailment_reason,
            "grid_limit_breach_kw": self.grid_limit_breach_kw,
        }
