"""SQLite-backed persistence for the scheduling board.

Implements the board's `OrderStore` collaborator plus master data (lines,
holidays, ramp-up plans), app config and the audit log.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import date

from sewplan.core.models import (
    AllocationRecord,
    AuditEntry,
    CapacityBasis,
    EfficiencyStep,
    Holiday,
    LineAssignment,
    Order,
    OrderStatus,
    ProductionLine,
    RampUpPlan,
    default_ramp_up_plans,
)
from sewplan.data.db import Db
from sewplan.data.order_feed import OrderFeed, load_order_feed
from sewplan.scheduling.allocation import DEFAULT_HORIZON_DAYS
from sewplan.scheduling.context import SchedulingContext

logger = logging.getLogger(__name__)

HORIZON_CONFIG_KEY = "scheduling_horizon_days"


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _date(value) -> date | None:
    return date.fromisoformat(str(value)) if value else None


class Repository:
    def __init__(self, db: Db, *, default_horizon_days: int = DEFAULT_HORIZON_DAYS) -> None:
        self.db = db
        self.default_horizon_days = int(default_horizon_days)

    # ---------- Audit / config ----------

    def log_audit(self, category: str, message: str, details: str | None = None) -> None:
        """Record a business event in the audit log."""
        try:
            with self.db.connect() as con:
                con.execute(
                    "INSERT INTO audit_log (category, message, details) VALUES (?, ?, ?)",
                    (category, message, details),
                )
        except sqlite3.Error:
            # audit failures must not abort the scheduling action itself
            logger.exception("Failed to write audit log")

    def get_recent_audit_entries(self, limit: int = 100) -> list[AuditEntry]:
        with self.db.connect() as con:
            rows = con.execute("SELECT * FROM audit_log ORDER BY id DESC LIMIT ?", (int(limit),)).fetchall()
        return [
            AuditEntry(
                id=row["id"],
                timestamp=row["timestamp"],
                category=row["category"],
                message=row["message"],
                details=row["details"],
            )
            for row in rows
        ]

    def get_config(self, *, key: str, default: str | None = None) -> str | None:
        key = str(key).strip()
        if not key:
            raise ValueError("empty config key")
        with self.db.connect() as con:
            row = con.execute("SELECT config_value FROM app_config WHERE config_key = ?", (key,)).fetchone()
        if row is None:
            return default
        return str(row[0])

    def set_config(self, *, key: str, value: str) -> None:
        key = str(key).strip()
        if not key:
            raise ValueError("empty config key")

        old_val = self.get_config(key=key, default="(none)")
        with self.db.connect() as con:
            con.execute(
                """
                INSERT INTO app_config(config_key, config_value, updated_at)
                VALUES(?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(config_key) DO UPDATE SET
                    config_value = excluded.config_value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, str(value)),
            )
        self.log_audit("CONFIG", f"Updated '{key}'", f"From '{old_val}' to '{value}'")

    def get_horizon_days(self) -> int:
        raw = self.get_config(key=HORIZON_CONFIG_KEY)
        if raw is None:
            return self.default_horizon_days
        try:
            days = int(raw)
        except ValueError:
            logger.warning("Ignoring invalid %s=%r", HORIZON_CONFIG_KEY, raw)
            return self.default_horizon_days
        return days if days > 0 else self.default_horizon_days

    # ---------- Lines ----------

    def list_lines(self) -> list[ProductionLine]:
        with self.db.connect() as con:
            rows = con.execute(
                """
                SELECT line_id, name, capacity, group_id, basis
                FROM production_line
                WHERE is_active = 1
                ORDER BY sort_order, line_id
                """
            ).fetchall()
        return [
            ProductionLine(
                line_id=str(r["line_id"]),
                name=str(r["name"]),
                capacity=float(r["capacity"]),
                group_id=r["group_id"],
                basis=CapacityBasis(r["basis"] or CapacityBasis.PIECES.value),
            )
            for r in rows
        ]

    def upsert_line(self, line: ProductionLine, *, sort_order: int | None = None) -> ProductionLine:
        if float(line.capacity) < 0:
            raise ValueError(f"line capacity cannot be negative: {line.capacity!r}")
        with self.db.connect() as con:
            if sort_order is None:
                existing = con.execute(
                    "SELECT sort_order FROM production_line WHERE line_id = ?", (line.line_id,)
                ).fetchone()
                if existing is not None:
                    sort_order = int(existing[0])
                else:
                    row = con.execute("SELECT COALESCE(MAX(sort_order), 0) + 1 FROM production_line").fetchone()
                    sort_order = int(row[0])
            con.execute(
                """
                INSERT INTO production_line(line_id, name, capacity, group_id, basis, sort_order, is_active)
                VALUES(?, ?, ?, ?, ?, ?, 1)
                ON CONFLICT(line_id) DO UPDATE SET
                    name = excluded.name,
                    capacity = excluded.capacity,
                    group_id = excluded.group_id,
                    basis = excluded.basis,
                    sort_order = excluded.sort_order,
                    is_active = 1
                """,
                (line.line_id, line.name, float(line.capacity), line.group_id, line.basis.value, int(sort_order)),
            )
        self.log_audit("LINE", f"Saved line {line.line_id}", f"{line.name} capacity={line.capacity} {line.basis.value}")
        return line

    def reorder_lines(self, line_ids: Sequence[str]) -> None:
        """Persist display order; allocations are untouched."""
        with self.db.connect() as con:
            for pos, line_id in enumerate(line_ids, start=1):
                con.execute("UPDATE production_line SET sort_order = ? WHERE line_id = ?", (pos, str(line_id)))

    def deactivate_line(self, line_id: str) -> None:
        with self.db.connect() as con:
            busy = con.execute("SELECT COUNT(*) FROM allocation WHERE line_id = ?", (line_id,)).fetchone()[0]
            if busy:
                raise ValueError(f"Line {line_id} still has {busy} allocation rows")
            con.execute("UPDATE production_line SET is_active = 0 WHERE line_id = ?", (line_id,))
        self.log_audit("LINE", f"Deactivated line {line_id}")

    # ---------- Holidays ----------

    def list_holidays(self) -> list[Holiday]:
        with self.db.connect() as con:
            rows = con.execute("SELECT holiday_date, name FROM holiday ORDER BY holiday_date").fetchall()
        return [Holiday(holiday_date=date.fromisoformat(r["holiday_date"]), name=r["name"] or "") for r in rows]

    def add_holiday(self, holiday: Holiday) -> None:
        with self.db.connect() as con:
            con.execute(
                "INSERT OR REPLACE INTO holiday(holiday_date, name) VALUES(?, ?)",
                (holiday.holiday_date.isoformat(), holiday.name),
            )
        self.log_audit("CALENDAR", f"Holiday {holiday.holiday_date.isoformat()}", holiday.name or None)

    def delete_holiday(self, holiday_date: date) -> None:
        with self.db.connect() as con:
            con.execute("DELETE FROM holiday WHERE holiday_date = ?", (holiday_date.isoformat(),))

    # ---------- Ramp-up plans ----------

    def list_ramp_up_plans(self) -> list[RampUpPlan]:
        with self.db.connect() as con:
            plans = con.execute("SELECT plan_id, name, final_efficiency FROM ramp_up_plan ORDER BY plan_id").fetchall()
            steps = con.execute("SELECT plan_id, day, efficiency FROM ramp_up_step ORDER BY plan_id, day").fetchall()

        steps_by_plan: dict[str, list[EfficiencyStep]] = {}
        for s in steps:
            steps_by_plan.setdefault(str(s["plan_id"]), []).append(
                EfficiencyStep(day=int(s["day"]), efficiency=float(s["efficiency"]))
            )

        out: list[RampUpPlan] = []
        for p in plans:
            plan_steps = steps_by_plan.get(str(p["plan_id"]))
            if not plan_steps:
                logger.warning("Ramp-up plan %s has no steps, skipped", p["plan_id"])
                continue
            out.append(
                RampUpPlan(
                    plan_id=str(p["plan_id"]),
                    name=str(p["name"]),
                    efficiencies=tuple(plan_steps),
                    final_efficiency=float(p["final_efficiency"]),
                )
            )
        return out

    def save_ramp_up_plan(self, plan: RampUpPlan) -> None:
        with self.db.connect() as con:
            con.execute(
                """
                INSERT INTO ramp_up_plan(plan_id, name, final_efficiency) VALUES(?, ?, ?)
                ON CONFLICT(plan_id) DO UPDATE SET name = excluded.name, final_efficiency = excluded.final_efficiency
                """,
                (plan.plan_id, plan.name, float(plan.final_efficiency)),
            )
            con.execute("DELETE FROM ramp_up_step WHERE plan_id = ?", (plan.plan_id,))
            con.executemany(
                "INSERT INTO ramp_up_step(plan_id, day, efficiency) VALUES(?, ?, ?)",
                [(plan.plan_id, int(s.day), float(s.efficiency)) for s in plan.efficiencies],
            )

    def ensure_default_ramp_up_plans(self) -> None:
        existing = {p.plan_id for p in self.list_ramp_up_plans()}
        for plan in default_ramp_up_plans():
            if plan.plan_id not in existing:
                self.save_ramp_up_plan(plan)

    # ---------- Orders ----------

    @staticmethod
    def _order_from_row(r: sqlite3.Row) -> Order:
        return Order(
            order_id=str(r["order_id"]),
            po_number=str(r["po_number"]),
            style_id=str(r["style_id"] or ""),
            order_quantity=int(r["order_quantity"]),
            smv=float(r["smv"]),
            mo_count=int(r["mo_count"] or 0),
            cut_quantity=int(r["cut_quantity"] or 0),
            issue_quantity=int(r["issue_quantity"] or 0),
            status=OrderStatus(r["status"]),
            base_po_number=r["base_po_number"],
            assigned_line_id=r["assigned_line_id"],
            plan_start_date=_date(r["plan_start_date"]),
            plan_end_date=_date(r["plan_end_date"]),
        )

    def get_order(self, order_id: str) -> Order | None:
        with self.db.connect() as con:
            row = con.execute("SELECT * FROM garment_order WHERE order_id = ?", (order_id,)).fetchone()
            if row is None:
                return None
            alloc = con.execute(
                "SELECT alloc_date, quantity FROM allocation WHERE order_id = ? ORDER BY alloc_date",
                (order_id,),
            ).fetchall()
        order = self._order_from_row(row)
        production = {str(a["alloc_date"]): int(a["quantity"]) for a in alloc}
        return replace(order, actual_production=production)

    def list_orders(self, *, status: OrderStatus | None = None) -> list[Order]:
        sql = "SELECT * FROM garment_order"
        params: tuple = ()
        if status is not None:
            sql += " WHERE status = ?"
            params = (status.value,)
        sql += " ORDER BY created_at, rowid"
        with self.db.connect() as con:
            rows = con.execute(sql, params).fetchall()
        return [self._order_from_row(r) for r in rows]

    def find_orders_by_po(self, po_numbers: Iterable[str]) -> set[str]:
        wanted = {str(p) for p in po_numbers}
        if not wanted:
            return set()
        with self.db.connect() as con:
            rows = con.execute("SELECT po_number FROM garment_order").fetchall()
        return {str(r[0]) for r in rows if str(r[0]) in wanted}

    def _upsert_order(self, con: sqlite3.Connection, order: Order) -> None:
        con.execute(
            """
            INSERT INTO garment_order(
                order_id, po_number, base_po_number, style_id, order_quantity, smv, mo_count,
                cut_quantity, issue_quantity, status, assigned_line_id, plan_start_date, plan_end_date
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(order_id) DO UPDATE SET
                po_number = excluded.po_number,
                base_po_number = excluded.base_po_number,
                style_id = excluded.style_id,
                order_quantity = excluded.order_quantity,
                smv = excluded.smv,
                mo_count = excluded.mo_count,
                cut_quantity = excluded.cut_quantity,
                issue_quantity = excluded.issue_quantity,
                status = excluded.status,
                assigned_line_id = excluded.assigned_line_id,
                plan_start_date = excluded.plan_start_date,
                plan_end_date = excluded.plan_end_date,
                updated_at = CURRENT_TIMESTAMP
            """,
            (
                order.order_id,
                order.po_number,
                order.base_po_number,
                order.style_id,
                int(order.order_quantity),
                float(order.smv),
                int(order.mo_count),
                int(order.cut_quantity),
                int(order.issue_quantity),
                order.status.value,
                order.assigned_line_id,
                _iso(order.plan_start_date),
                _iso(order.plan_end_date),
            ),
        )

    def save_order(self, order: Order) -> Order:
        with self.db.connect() as con:
            self._upsert_order(con, order)
        return order

    def delete_order(self, order_id: str) -> None:
        self.commit_changes(removed=[order_id])

    def save_schedule(
        self,
        order: Order,
        records: Sequence[AllocationRecord],
        assignment: LineAssignment | None,
    ) -> None:
        """Store an order together with its full allocation set."""
        self.commit_changes(changed=[(order, records, assignment)])

    def _write_schedule(
        self,
        con: sqlite3.Connection,
        order: Order,
        records: Sequence[AllocationRecord],
        assignment: LineAssignment | None,
    ) -> None:
        self._upsert_order(con, order)
        con.execute("DELETE FROM allocation WHERE order_id = ?", (order.order_id,))
        con.execute("DELETE FROM line_assignment WHERE order_id = ?", (order.order_id,))
        con.executemany(
            "INSERT INTO allocation(order_id, line_id, alloc_date, quantity) VALUES(?, ?, ?, ?)",
            [(r.order_id, r.line_id, r.alloc_date.isoformat(), int(r.quantity)) for r in records],
        )
        if assignment is not None:
            con.execute(
                """
                INSERT INTO line_assignment(order_id, line_id, start_date, ramp_up_plan_id, sequence)
                VALUES(?, ?, ?, ?, ?)
                """,
                (
                    assignment.order_id,
                    assignment.line_id,
                    assignment.start_date.isoformat(),
                    assignment.ramp_up_plan_id,
                    int(assignment.sequence),
                ),
            )

    @staticmethod
    def _delete_order_rows(con: sqlite3.Connection, order_id: str) -> None:
        con.execute("DELETE FROM allocation WHERE order_id = ?", (order_id,))
        con.execute("DELETE FROM line_assignment WHERE order_id = ?", (order_id,))
        con.execute("DELETE FROM garment_order WHERE order_id = ?", (order_id,))

    def commit_changes(
        self,
        *,
        created: Sequence[Order] = (),
        changed: Sequence[tuple[Order, Sequence[AllocationRecord], LineAssignment | None]] = (),
        removed: Sequence[str] = (),
    ) -> None:
        """Persist one board action in a single transaction.

        New orders are inserted, changed orders get their allocation rows and
        assignment replaced, removed orders are deleted. Either everything is
        stored or nothing is.
        """
        with self.db.connect() as con:
            for order in created:
                self._upsert_order(con, order)
            for order, records, assignment in changed:
                self._write_schedule(con, order, records, assignment)
            for order_id in removed:
                self._delete_order_rows(con, order_id)

        for order, records, _ in changed:
            if records:
                self.log_audit(
                    "SCHEDULE",
                    f"Order {order.po_number} on line {order.assigned_line_id}",
                    f"{_iso(order.plan_start_date)} -> {_iso(order.plan_end_date)}, "
                    f"{sum(r.quantity for r in records)} pcs",
                )
            else:
                self.log_audit("SCHEDULE", f"Order {order.po_number} pending")
        for order_id in removed:
            self.log_audit("ORDER", f"Deleted order {order_id}")

    def list_allocations(self) -> list[AllocationRecord]:
        with self.db.connect() as con:
            rows = con.execute("SELECT order_id, line_id, alloc_date, quantity FROM allocation").fetchall()
        return [
            AllocationRecord(
                order_id=str(r["order_id"]),
                line_id=str(r["line_id"]),
                alloc_date=date.fromisoformat(r["alloc_date"]),
                quantity=int(r["quantity"]),
            )
            for r in rows
        ]

    def list_assignments(self) -> list[LineAssignment]:
        with self.db.connect() as con:
            rows = con.execute(
                "SELECT order_id, line_id, start_date, ramp_up_plan_id, sequence FROM line_assignment ORDER BY sequence"
            ).fetchall()
        return [
            LineAssignment(
                order_id=str(r["order_id"]),
                line_id=str(r["line_id"]),
                start_date=date.fromisoformat(r["start_date"]),
                ramp_up_plan_id=r["ramp_up_plan_id"],
                sequence=int(r["sequence"]),
            )
            for r in rows
        ]

    # ---------- Session ----------

    def load_context(self) -> SchedulingContext:
        """Load everything the board needs for one session."""
        return SchedulingContext.build(
            lines=self.list_lines(),
            orders=self.list_orders(),
            holidays=self.list_holidays(),
            ramp_up_plans=self.list_ramp_up_plans(),
            allocations=self.list_allocations(),
            assignments=self.list_assignments(),
            horizon_days=self.get_horizon_days(),
        )

    def import_order_feed_bytes(self, *, content: bytes) -> OrderFeed:
        """Import an .xlsx feed; known PO numbers are skipped.

        Pre-scheduled rows are stored as external orders, outside the pending
        pool.
        """
        feed = load_order_feed(content)
        known = self.find_orders_by_po(o.po_number for o in feed.pending + feed.pre_scheduled)
        feed.pending = [o for o in feed.pending if o.po_number not in known]
        feed.pre_scheduled = [o for o in feed.pre_scheduled if o.po_number not in known]
        with self.db.connect() as con:
            for o in feed.pending + feed.pre_scheduled:
                self._upsert_order(con, o)
        self.log_audit(
            "IMPORT",
            "Order feed imported",
            f"{len(feed.pending)} new, {len(feed.pre_scheduled)} external, {len(known)} already known, "
            f"{len(feed.errors)} rejected",
        )
        return feed
