"""Write a synthetic one-day slot series to YAML for run_simulation.py."""

from __future__ import annotations

import argparse
from datetime import datetime
from pathlib import Path

import yaml

from site_dispatch.simulation.sample_data import generate_day, series_to_records


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--out", default="series.yaml")
    parser.add_argument("--start", default="", help="ISO start time (default: today 08:00)")
    parser.add_argument("--slots", type=int, default=48)
    parser.add_argument("--slot-minutes", type=int, default=15)
    parser.add_argument("--seed", type=int, default=0)
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    if args.start:
        start = datetime.fromisoformat(args.start)
    else:
        start = datetime.now().replace(hour=8, minute=0, second=0, microsecond=0)
    series = generate_day(start, args.slots, args.slot_minutes, args.seed)
    out = Path(args.out)
    with open(out, "w") as f:
        yaml.safe_dump({"slots": series_to_records(series)}, f, sort_keys=False)
    print(f"Wrote {len(series)} slots to {out}")


if __name__ == "__main__":
    main()
