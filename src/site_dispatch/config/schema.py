"""Pydantic configuration models for all site settings."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator


class OptimisationStrategy(str, Enum):
    COST_OPTIMISATION = "cost_optimisation"
    PEAK_SHAVING = "peak_shaving"


class BatteryConfig(BaseModel):
    capacity_kwh: float = Field(200.0, ge=0.0)
    max_charge_rate_kw: float = Field(50.0, ge=0.0)
    max_discharge_rate_kw: float = Field(50.0, ge=0.0)
    initial_soc: float = Field(50.0, ge=0.0, le=100.0)  # percent
    min_soc: float = Field(5.0, ge=0.0, le=100.0)
    max_soc: float = Field(95.0, ge=0.0, le=100.0)
    round_trip_efficiency: float = Field(0.90, gt=0.0, le=1.0)
    min_price_difference: float = Field(10.0, ge=0.0)  # per MWh, after round-trip losses

    @model_validator(mode="after")
    def _check_soc_window(self) -> BatteryConfig:
        if self.min_soc > self.max_soc:
            raise ValueError("min_soc must not exceed max_soc")
        return self

    def energy_above_min_kwh(self, soc: float) -> float:
        """Energy stored above the minimum SoC (kWh). May be negative below min."""
        return (soc - self.min_soc) / 100.0 * self.capacity_kwh

    def headroom_kwh(self, soc: float) -> float:
        """Energy that still fits before the maximum SoC (kWh). May be negative above max."""
        return (self.max_soc - soc) / 100.0 * self.capacity_kwh


class LoadConfig(BaseModel):
    """Controllable load (relay-switched appliance).

    Runtimes are in hours; the deadline is the local hour of day by which
    the daily minimum runtime should be reached.
    """
    enabled: bool = True
    activation_power_kw: float = Field(10.0, ge=0.0)
    nominal_power_kw: float = Field(10.0, ge=0.0)
    min_runtime_activation_hours: float = Field(1.0, ge=0.0)
    min_runtime_daily_hours: float = Field(2.0, ge=0.0)
    runtime_deadline_hour: int = Field(20, ge=0, le=24)


class GridConfig(BaseModel):
    import_limit_kw: float = Field(150.0, ge=0.0)
    export_limit_kw: float = Field(150.0, ge=0.0)


class InverterConfig(BaseModel):
    id: str
    capacity_kw: float = Field(ge=0.0)
    price_per_mwh: float | None = None  # None = PV from this inverter is free
    controllable: bool = True


class PvConfig(BaseModel):
    inverters: list[InverterConfig] = Field(
        default_factory=lambda: [
            InverterConfig(id="pv1", capacity_kw=50.0, controllable=True),
            InverterConfig(id="pv2", capacity_kw=25.0, controllable=False),
        ]
    )

    @model_validator(mode="after")
    def _check_unique_ids(self) -> PvConfig:
        ids = [inv.id for inv in self.inverters]
        if len(ids) != len(set(ids)):
            raise ValueError("inverter ids must be unique")
        return self

    @property
    def total_capacity_kw(self) -> float:
        return sum(inv.capacity_kw for inv in self.inverters)

    @property
    def controllable_capacity_kw(self) -> float:
        return sum(inv.capacity_kw for inv in self.inverters if inv.controllable)

    @property
    def non_controllable_capacity_kw(self) -> float:
        return sum(inv.capacity_kw for inv in self.inverters if not inv.controllable)


class PeakShavingConfig(BaseModel):
    """Grid power thresholds (kW, positive = import) for the hysteresis controller."""
    discharge_start_kw: float = 80.0
    discharge_stop_kw: float = 60.0
    charge_stop_kw: float = -10.0
    charge_start_kw: float = -30.0

    @model_validator(mode="after")
    def _check_ordering(self) -> PeakShavingConfig:
        if not (
            self.charge_start_kw <= self.charge_stop_kw
            <= self.discharge_stop_kw <= self.discharge_start_kw
        ):
            raise ValueError(
                "peak shaving thresholds must satisfy "
                "charge_start <= charge_stop <= discharge_stop <= discharge_start"
            )
        return self


class TradingConfig(BaseModel):
    enabled: bool = False


class PlanningConfig(BaseModel):
    slot_duration_minutes: int = Field(15, gt=0)
    horizon_slots: int = Field(96, ge=1)
    reservation_lookahead_slots: int = Field(32, ge=0)  # 8 h at 15 min
    discharge_reserve_lookahead_slots: int = Field(12, ge=0)  # 3 h at 15 min
    negative_price_group_tolerance: float = Field(1.0, ge=0.0)
    spread_price_tolerance: float = Field(5.0, ge=0.0)
    timezone: str = "Europe/Brussels"  # IANA tz for calendar-day boundaries

    @property
    def slot_hours(self) -> float:
        return self.slot_duration_minutes / 60.0


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file: str = ""


class DBConfig(BaseModel):
    path: str = "site_dispatch.db"


class AppConfig(BaseModel):
    """Root configuration model containing all site settings."""

    battery: BatteryConfig = BatteryConfig()
    load: LoadConfig = LoadConfig()
    grid: GridConfig = GridConfig()
    pv: PvConfig = PvConfig()
    strategy: OptimisationStrategy = OptimisationStrategy.COST_OPTIMISATION
    peak_shaving: PeakShavingConfig = PeakShavingConfig()
    trading: TradingConfig = TradingConfig()
    planning: PlanningConfig = PlanningConfig()
    logging: LoggingConfig = LoggingConfig()
    db: DBConfig = DBConfig()
