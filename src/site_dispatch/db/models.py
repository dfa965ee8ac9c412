"""SQL table definitions for simulation runs and load-state history."""

SCHEMA_VERSION = 2

_INITIAL = [
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        id      INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL
    )
    """,

    # ── Runs ────────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS simulation_runs (
        id                  INTEGER PRIMARY KEY AUTOINCREMENT,
        created_at          TEXT NOT NULL,
        strategy            TEXT NOT NULL,
        label               TEXT,
        slots               INTEGER NOT NULL DEFAULT 0,
        summary_json        TEXT
    )
    """,

    # ── Config ──────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS config_versions (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        config_json     TEXT NOT NULL,
        run_id          INTEGER REFERENCES simulation_runs(id) ON DELETE CASCADE,
        created_at      TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_config_versions_run ON config_versions(run_id)",

    # ── Slot results ────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS slot_results (
        run_id              INTEGER NOT NULL REFERENCES simulation_runs(id) ON DELETE CASCADE,
        slot_index          INTEGER NOT NULL,
        slot_start          TEXT NOT NULL,
        battery_power_kw    REAL NOT NULL,
        pv_setpoint_kw      REAL NOT NULL,
        load_on             INTEGER NOT NULL,
        net_grid_kw         REAL NOT NULL,
        cost                REAL NOT NULL,
        soc_start           REAL NOT NULL,
        soc_end             REAL NOT NULL,
        grid_limit_breach_kw REAL NOT NULL DEFAULT 0,
        battery_reason      TEXT,
        load_reason         TEXT,
        curtailment_reason  TEXT,
        PRIMARY KEY (run_id, slot_index)
    )
    """,

    # ── Load-state history ──────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS load_states (
        run_id          INTEGER NOT NULL REFERENCES simulation_runs(id) ON DELETE CASCADE,
        slot_index      INTEGER NOT NULL,
        load_on         INTEGER NOT NULL,
        updated_at      TEXT NOT NULL,
        PRIMARY KEY (run_id, slot_index)
    )
    """,
]

_RUN_LOOKUP = [
    "CREATE INDEX IF NOT EXISTS idx_simulation_runs_strategy ON simulation_runs(strategy, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_slot_results_breach ON slot_results(run_id) WHERE grid_limit_breach_kw != 0",
]

# Schema version -> statements that take the previous version to it.
MIGRATIONS: dict[int, list[str]] = {
    1: _INITIAL,
    2: _RUN_LOOKUP,
}
