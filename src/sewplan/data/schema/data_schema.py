from __future__ import annotations

import sqlite3


def ensure_schema(con: sqlite3.Connection) -> None:
    con.executescript(
        """
        CREATE TABLE IF NOT EXISTS audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp TEXT NOT NULL DEFAULT(datetime('now', 'localtime')),
            category TEXT NOT NULL,
            message TEXT NOT NULL,
            details TEXT
        );

        CREATE TABLE IF NOT EXISTS app_config (
            config_key TEXT PRIMARY KEY,
            config_value TEXT NOT NULL,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS production_line (
            line_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            capacity REAL NOT NULL,
            group_id TEXT,
            basis TEXT NOT NULL DEFAULT 'pieces',
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS holiday (
            holiday_date TEXT PRIMARY KEY,
            name TEXT NOT NULL DEFAULT ''
        );

        CREATE TABLE IF NOT EXISTS ramp_up_plan (
            plan_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            final_efficiency REAL NOT NULL
        );

        CREATE TABLE IF NOT EXISTS ramp_up_step (
            plan_id TEXT NOT NULL,
            day INTEGER NOT NULL,
            efficiency REAL NOT NULL,
            PRIMARY KEY(plan_id, day),
            FOREIGN KEY(plan_id) REFERENCES ramp_up_plan(plan_id) ON DELETE CASCADE
        );
        """
    )
