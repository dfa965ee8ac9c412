"""Data access layer for simulation runs, slot results and load-state history."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

import aiosqlite

from site_dispatch.config.schema import AppConfig
from site_dispatch.dispatch.load_state import LoadStateStore
from site_dispatch.simulation.runner import SimulationResult

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Repository:
    """Centralised data access for all tables."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    # ── Runs ────────────────────────────────────────────────

    async def create_run(self, strategy: str, label: str | None = None) -> int:
        async with self.db.execute(
            "INSERT INTO simulation_runs (created_at, strategy, label) VALUES (?, ?, ?)",
            (_now(), strategy, label),
        ) as cursor:
            run_id = cursor.lastrowid
        await self.db.commit()
        return run_id  # type: ignore[return-value]

    async def finish_run(self, run_id: int, slots: int, summary: dict[str, Any]) -> None:
        await self.db.execute(
            "UPDATE simulation_runs SET slots = ?, summary_json = ? WHERE id = ?",
            (slots, json.dumps(summary), run_id),
        )
        await self.db.commit()

    async def get_run(self, run_id: int) -> dict[str, Any] | None:
        async with self.db.execute(
            "SELECT * FROM simulation_runs WHERE id = ?", (run_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        run = dict(row)
        run["summary"] = json.loads(run.pop("summary_json") or "{}")
        return run

    async def get_runs(self, limit: int = 50) -> list[dict[str, Any]]:
        async with self.db.execute(
            "SELECT id, created_at, strategy, label, slots FROM simulation_runs ORDER BY id DESC LIMIT ?",
            (limit,),
        ) as cursor:
            rows = await cursor.fetchall()
            return [dict(r) for r in rows]

    # ── Slot results ────────────────────────────────────────

    async def store_slot_results(self, run_id: int, rows: list[dict[str, Any]]) -> None:
        await self.db.executemany(
            """INSERT OR REPLACE INTO slot_results
               (run_id, slot_index, slot_start, battery_power_kw, pv_setpoint_kw,
                load_on, net_grid_kw, cost, soc_start, soc_end, grid_limit_breach_kw,
                battery_reason, load_reason, curtailment_reason)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    run_id, r["slot_index"], r["timestamp"], r["battery_power"],
                    r["pv_setpoint"], 1 if r["load_on"] else 0, r["net_grid_kw"],
                    r["cost"], r["soc_start"], r["soc_end"], r["grid_limit_breach_kw"],
                    r["battery_reason"], r["load_reason"], r["curtailment_reason"],
                )
                for r in rows
            ],
        )
        await self.db.commit()

    async def get_slot_results(self, run_id: int) -> list[dict[str, Any]]:
        async with self.db.execute(
            "SELECT * FROM slot_results WHERE run_id = ? ORDER BY slot_index",
            (run_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        results = []
        for r in rows:
            row = dict(r)
            row["load_on"] = bool(row["load_on"])
            results.append(row)
        return results

    async def save_simulation(
        self,
        result: SimulationResult,
        config: AppConfig,
        label: str | None = None,
    ) -> int:
        """Persist a whole simulation run: run row, slot results and load states."""
        run_id = await self.create_run(config.strategy.value, label)
        await self.store_slot_results(run_id, result.slot_rows)
        await self.upsert_load_states(run_id, result.store.snapshot())
        await self.finish_run(run_id, result.summary.slots, asdict(result.summary))
        logger.info("Simulation run %d saved (%d slots)", run_id, result.summary.slots)
        return run_id

    # ── Load-state history ──────────────────────────────────

    async def upsert_load_state(self, run_id: int, slot_index: int, on: bool) -> None:
        await self.db.execute(
            """INSERT INTO load_states (run_id, slot_index, load_on, updated_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(run_id, slot_index)
               DO UPDATE SET load_on = excluded.load_on, updated_at = excluded.updated_at""",
            (run_id, slot_index, 1 if on else 0, _now()),
        )
        await self.db.commit()

    async def upsert_load_states(self, run_id: int, states: dict[int, bool]) -> None:
        now = _now()
        await self.db.executemany(
            """INSERT INTO load_states (run_id, slot_index, load_on, updated_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(run_id, slot_index)
               DO UPDATE SET load_on = excluded.load_on, updated_at = excluded.updated_at""",
            [(run_id, index, 1 if on else 0, now) for index, on in states.items()],
        )
        await self.db.commit()

    async def get_load_state(self, run_id: int, slot_index: int) -> bool | None:
        async with self.db.execute(
            "SELECT load_on FROM load_states WHERE run_id = ? AND slot_index = ?",
            (run_id, slot_index),
        ) as cursor:
            row = await cursor.fetchone()
        return None if row is None else bool(row[0])

    async def get_load_states(self, run_id: int) -> dict[int, bool]:
        async with self.db.execute(
            "SELECT slot_index, load_on FROM load_states WHERE run_id = ? ORDER BY slot_index",
            (run_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return {int(r[0]): bool(r[1]) for r in rows}

    async def load_state_store(self, run_id: int, config: AppConfig) -> LoadStateStore:
        """Rebuild an in-memory store from the persisted history of a run."""
        states = await self.get_load_states(run_id)
        return LoadStateStore.from_snapshot(
            states, config.planning.slot_duration_minutes, config.planning.timezone,
        )

    # ── Config versions ─────────────────────────────────────

    async def get_config_versions(self, run_id: int) -> list[dict[str, Any]]:
        async with self.db.execute(
            "SELECT * FROM config_versions WHERE run_id = ? ORDER BY id",
            (run_id,),
        ) as cursor:
            rows = await cursor.fetchall()
            return [dict(r) for r in rows]
