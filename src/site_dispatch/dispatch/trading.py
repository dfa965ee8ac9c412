"""External trading-signal override for the battery.

When trading signals are enabled, the slot's signal can idle the battery
(``standby``), hand it back to local logic (``local``) or dictate its power
(``overrule``). Each evaluator only honours requests in its own direction:
the charge side returns positive power only, the discharge side only
discharge magnitudes.
"""

from __future__ import annotations

import logging

from site_dispatch.config.schema import AppConfig
from site_dispatch.dispatch.slot import PolicyResult, Slot, TradingSignal

logger = logging.getLogger(__name__)


def _active_signal(current: Slot, config: AppConfig) -> TradingSignal | None:
    if not config.trading.enabled or current.trading_signal in (None, TradingSignal.LOCAL):
        return None
    return current.trading_signal


def charge_override(current: Slot, config: AppConfig) -> PolicyResult | None:
    """Charge-side override, or None when local logic should decide."""
    signal = _active_signal(current, config)
    if signal is None:
        return None
    if signal == TradingSignal.STANDBY:
        return PolicyResult(0.0, "trading signal: standby - battery idle")

    requested = current.requested_power
    if requested < 0:
        return PolicyResult(0.0, "trading signal: overrule - discharging requested (handled in discharge logic)")
    if requested == 0:
        return PolicyResult(0.0, "trading signal: overrule - no power requested")

    battery = config.battery
    if current.soc >= battery.max_soc:
        return PolicyResult(0.0, "trading signal: overrule - cannot charge, battery full")
    headroom_kw = battery.headroom_kwh(current.soc) / config.planning.slot_hours
    power = max(0.0, min(requested, battery.max_charge_rate_kw, headroom_kw))
    logger.debug("Trading overrule charge: requested=%.2f granted=%.2f", requested, power)
    return PolicyResult(
        power,
        f"trading signal: overrule - charging {power:.2f} kW (requested: {requested:.2f} kW)",
    )


def discharge_override(current: Slot, config: AppConfig) -> PolicyResult | None:
    """Discharge-side override; the returned power is a positive magnitude."""
    signal = _active_signal(current, config)
    if signal is None:
        return None
    if signal == TradingSignal.STANDBY:
        return PolicyResult(0.0, "trading signal: standby - battery idle")

    requested = current.requested_power
    if requested > 0:
        return PolicyResult(0.0, "trading signal: overrule - charging requested (handled in charge logic)")
    if requested == 0:
        return PolicyResult(0.0, "trading signal: overrule - no power requested")

    battery = config.battery
    magnitude = -requested
    if current.consumption_price < 0:
        return PolicyResult(0.0, "trading signal: overrule - discharging not allowed at negative price")
    if current.soc <= battery.min_soc:
        return PolicyResult(0.0, "trading signal: overrule - cannot discharge, battery empty")
    available_kw = battery.energy_above_min_kwh(current.soc) / config.planning.slot_hours
    power = max(0.0, min(magnitude, battery.max_discharge_rate_kw, available_kw))
    logger.debug("Trading overrule discharge: requested=%.2f granted=%.2f", magnitude, power)
    return PolicyResult(
        power,
        f"trading signal: overrule - discharging {power:.2f} kW (requested: {magnitude:.2f} kW)",
    )


def signed_override(current: Slot, config: AppConfig) -> PolicyResult | None:
    """Both directions at once, signed (positive = charge). Used by peak shaving."""
    charge = charge_override(current, config)
    if charge is None:
        return None
    if charge.power > 0:
        return charge
    discharge = discharge_override(current, config)
    if discharge is not None and discharge.power > 0:
        return PolicyResult(-discharge.power, discharge.reason)
    if current.requested_power < 0 and discharge is not None:
        return discharge
    return charge
