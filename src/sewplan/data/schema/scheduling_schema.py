from __future__ import annotations

import sqlite3


def ensure_schema(con: sqlite3.Connection) -> None:
    con.executescript(
        """
        CREATE TABLE IF NOT EXISTS garment_order (
            order_id TEXT PRIMARY KEY,
            po_number TEXT NOT NULL,
            base_po_number TEXT,
            style_id TEXT NOT NULL DEFAULT '',
            order_quantity INTEGER NOT NULL,
            smv REAL NOT NULL,
            mo_count INTEGER NOT NULL DEFAULT 0,
            cut_quantity INTEGER NOT NULL DEFAULT 0,
            issue_quantity INTEGER NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'pending',
            assigned_line_id TEXT,
            -- denormalised copies; allocation rows are authoritative
            plan_start_date TEXT,
            plan_end_date TEXT,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE INDEX IF NOT EXISTS ix_garment_order_base ON garment_order(base_po_number);

        CREATE TABLE IF NOT EXISTS line_assignment (
            order_id TEXT PRIMARY KEY,
            line_id TEXT NOT NULL,
            start_date TEXT NOT NULL,
            ramp_up_plan_id TEXT,
            sequence INTEGER NOT NULL,
            FOREIGN KEY(order_id) REFERENCES garment_order(order_id) ON DELETE CASCADE,
            FOREIGN KEY(line_id) REFERENCES production_line(line_id)
        );

        CREATE TABLE IF NOT EXISTS allocation (
            order_id TEXT NOT NULL,
            line_id TEXT NOT NULL,
            alloc_date TEXT NOT NULL,
            quantity INTEGER NOT NULL,
            PRIMARY KEY(order_id, alloc_date),
            FOREIGN KEY(order_id) REFERENCES garment_order(order_id) ON DELETE CASCADE,
            FOREIGN KEY(line_id) REFERENCES production_line(line_id)
        );

        CREATE INDEX IF NOT EXISTS ix_allocation_line_date ON allocation(line_id, alloc_date);
        """
    )
