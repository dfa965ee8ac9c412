"""Run the dispatch engine over a slot series and print the outcome."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

import yaml

from site_dispatch.config.manager import ConfigManager
from site_dispatch.config.schema import AppConfig
from site_dispatch.db.engine import open_db
from site_dispatch.db.repository import Repository
from site_dispatch.dispatch.slot import Slot
from site_dispatch.logging.structured import setup_logging_from_config
from site_dispatch.settings import get_config_manager, load_settings
from site_dispatch.simulation.runner import SimulationResult, run_simulation
from site_dispatch.simulation.sample_data import generate_day


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", default="config.yaml")
    parser.add_argument("--defaults", default="config.defaults.yaml")
    parser.add_argument("--series", default="", help="YAML file with a list of slots (sample day if omitted)")
    parser.add_argument("--set", dest="overrides", action="append", default=[], metavar="KEY=VALUE",
                        help="Config override, e.g. battery.capacity_kwh=100 (repeatable)")
    parser.add_argument("--db-path", default="", help="Persist the run to this SQLite file")
    parser.add_argument("--label", default=None)
    parser.add_argument("--show-slots", action="store_true", help="Print one line per slot")
    return parser.parse_args()


def load_series(path: Path) -> list[Slot]:
    with open(path) as f:
        data = yaml.safe_load(f)
    if isinstance(data, dict):
        data = data.get("slots", [])
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of slots")
    return [Slot.from_dict(row) for row in data]


async def persist(result: SimulationResult, config: AppConfig, manager: ConfigManager,
                  db_path: str, label: str | None) -> int:
    async with open_db(db_path) as db:
        run_id = await Repository(db).save_simulation(result, config, label)
        await manager.save_version(db, run_id)
    return run_id


def print_result(result: SimulationResult, show_slots: bool) -> None:
    if show_slots:
        for row in result.slot_rows:
            print(
                f"{row['timestamp'][11:16]}  batt={row['battery_power']:7.2f}  "
                f"pv_sp={row['pv_setpoint']:6.2f}  load={'on ' if row['load_on'] else 'off'}  "
                f"grid={row['net_grid_kw']:7.2f}  soc={row['soc_end']:5.1f}  {row['battery_reason']}"
            )
    for key, value in asdict(result.summary).items():
        print(f"{key:>24}: {value:.2f}" if isinstance(value, float) else f"{key:>24}: {value}")


def main() -> None:
    args = parse_args()
    config = load_settings(Path(args.defaults), Path(args.config), ConfigManager.merge_overrides(args.overrides))
    setup_logging_from_config(config.logging)
    manager = get_config_manager()

    if args.series:
        series = load_series(Path(args.series))
    else:
        start = datetime.now().replace(hour=8, minute=0, second=0, microsecond=0)
        series = generate_day(start, slot_duration_minutes=config.planning.slot_duration_minutes)

    result = run_simulation(series, config)
    print_result(result, args.show_slots)

    if args.db_path:
        run_id = asyncio.run(persist(result, config, manager, args.db_path, args.label))
        print(f"Saved as run {run_id} in {args.db_path}")


if __name__ == "__main__":
    main()
