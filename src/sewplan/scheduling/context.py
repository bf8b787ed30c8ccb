"""Explicit scheduling state passed to every core operation.

A `SchedulingContext` is never mutated in place: operations take one and
return a new one, so a failed operation leaves the caller's context intact.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date

from sewplan.core.errors import InvalidOrderData, UnknownLine, UnknownOrder
from sewplan.core.models import (
    AllocationRecord,
    Holiday,
    LineAssignment,
    Order,
    OrderStatus,
    ProductionLine,
    RampUpPlan,
)
from sewplan.scheduling.allocation import DEFAULT_HORIZON_DAYS, CapacityLedger, CellState


def derive_order(order: Order, records: Iterable[AllocationRecord]) -> Order:
    """Recompute the denormalised schedule fields of `order` from its records."""
    recs = [r for r in records if r.quantity > 0]
    if not recs:
        return dataclasses.replace(
            order,
            status=OrderStatus.PENDING,
            assigned_line_id=None,
            plan_start_date=None,
            plan_end_date=None,
            actual_production={},
        )

    production: dict[str, int] = {}
    for r in sorted(recs, key=lambda r: r.alloc_date):
        key = r.alloc_date.isoformat()
        production[key] = production.get(key, 0) + int(r.quantity)

    return dataclasses.replace(
        order,
        status=OrderStatus.SCHEDULED,
        assigned_line_id=recs[0].line_id,
        plan_start_date=min(r.alloc_date for r in recs),
        plan_end_date=max(r.alloc_date for r in recs),
        actual_production=production,
    )


@dataclass(frozen=True)
class SchedulingContext:
    lines: tuple[ProductionLine, ...] = ()
    orders: Mapping[str, Order] = field(default_factory=dict)
    holidays: frozenset[date] = frozenset()
    ramp_up_plans: Mapping[str, RampUpPlan] = field(default_factory=dict)
    allocations: tuple[AllocationRecord, ...] = ()
    assignments: Mapping[str, LineAssignment] = field(default_factory=dict)
    next_sequence: int = 1
    horizon_days: int = DEFAULT_HORIZON_DAYS

    @classmethod
    def build(
        cls,
        *,
        lines: Iterable[ProductionLine] = (),
        orders: Iterable[Order] = (),
        holidays: Iterable[Holiday | date] = (),
        ramp_up_plans: Iterable[RampUpPlan] = (),
        allocations: Iterable[AllocationRecord] = (),
        assignments: Iterable[LineAssignment] = (),
        horizon_days: int = DEFAULT_HORIZON_DAYS,
    ) -> SchedulingContext:
        """Assemble a context from loose collections (repository rows, tests)."""
        holiday_dates = frozenset(h.holiday_date if isinstance(h, Holiday) else h for h in holidays)
        assignment_map = {a.order_id: a for a in assignments}
        records = tuple(allocations)

        ctx = cls(
            lines=tuple(lines),
            orders={o.order_id: o for o in orders},
            holidays=holiday_dates,
            ramp_up_plans={p.plan_id: p for p in ramp_up_plans},
            allocations=records,
            assignments=assignment_map,
            next_sequence=max((a.sequence for a in assignment_map.values()), default=0) + 1,
            horizon_days=int(horizon_days),
        )

        # Stored plan dates / actual production are not trusted: rebuild them.
        # External orders have no records here and keep their feed dates.
        by_order: dict[str, list[AllocationRecord]] = {}
        for r in records:
            by_order.setdefault(r.order_id, []).append(r)
        orders_out = {
            oid: o if o.status == OrderStatus.EXTERNAL and oid not in by_order else derive_order(o, by_order.get(oid, ()))
            for oid, o in ctx.orders.items()
        }
        return dataclasses.replace(ctx, orders=orders_out)

    # ---------- Lookups ----------

    def has_line(self, line_id: str | None) -> bool:
        return any(ln.line_id == line_id for ln in self.lines)

    def line(self, line_id: str) -> ProductionLine:
        for ln in self.lines:
            if ln.line_id == line_id:
                return ln
        raise UnknownLine(line_id)

    def order(self, order_id: str) -> Order:
        try:
            return self.orders[order_id]
        except KeyError:
            raise UnknownOrder(order_id) from None

    def plan(self, plan_id: str | None) -> RampUpPlan | None:
        if plan_id is None or plan_id == "":
            return None
        try:
            return self.ramp_up_plans[plan_id]
        except KeyError:
            raise InvalidOrderData(f"Unknown ramp-up plan: {plan_id!r}") from None

    def is_holiday(self, day: date) -> bool:
        return day in self.holidays

    def records_for(self, order_id: str) -> list[AllocationRecord]:
        return sorted((r for r in self.allocations if r.order_id == order_id), key=lambda r: r.alloc_date)

    def records_for_line(self, line_id: str) -> list[AllocationRecord]:
        return [r for r in self.allocations if r.line_id == line_id]

    def ledger(self, *, exclude_order_ids: Iterable[str] = ()) -> CapacityLedger:
        excluded = set(exclude_order_ids)
        return CapacityLedger.from_records(
            (r for r in self.allocations if r.order_id not in excluded and r.order_id in self.orders),
            lines=self.lines,
            smv_by_order={oid: o.smv for oid, o in self.orders.items()},
        )

    def _sequence_of(self, order_id: str) -> int:
        a = self.assignments.get(order_id)
        return a.sequence if a is not None else 0

    def pending_orders(self) -> list[Order]:
        return [o for o in self.orders.values() if o.status == OrderStatus.PENDING]

    def external_orders(self) -> list[Order]:
        return [o for o in self.orders.values() if o.status == OrderStatus.EXTERNAL]

    def scheduled_orders(self, line_id: str | None = None) -> list[Order]:
        out = [
            o
            for o in self.orders.values()
            if o.status == OrderStatus.SCHEDULED and (line_id is None or o.assigned_line_id == line_id)
        ]
        return sorted(out, key=lambda o: self._sequence_of(o.order_id))

    def orders_in_cell(self, line_id: str, day: date) -> list[Order]:
        """Orders producing on (line, day), earliest placed first."""
        ids = {r.order_id for r in self.allocations if r.line_id == line_id and r.alloc_date == day and r.quantity > 0}
        return sorted((self.orders[i] for i in ids if i in self.orders), key=lambda o: self._sequence_of(o.order_id))

    def used_capacity(self, line_id: str, day: date) -> int:
        return sum(int(r.quantity) for r in self.allocations if r.line_id == line_id and r.alloc_date == day)

    def cell_state(self, line_id: str, day: date, smv: float | None = None) -> CellState:
        return self.ledger().cell_state(self.line(line_id), day, smv)

    def line_utilization(self, line_id: str, day: date) -> float:
        """Percentage of the line's capacity consumed on `day` (0-100)."""
        line = self.line(line_id)
        if float(line.capacity) <= 0:
            return 0.0
        used = self.ledger().used(line_id, day)
        return min(100.0, used / float(line.capacity) * 100.0)

    def last_day_on_line(self, order_id: str, line_id: str) -> date | None:
        days = [r.alloc_date for r in self.allocations if r.order_id == order_id and r.line_id == line_id]
        return max(days) if days else None

    def siblings(self, order: Order) -> list[Order]:
        """Every order (including `order`) descending from the same original PO."""
        base = order.lineage_po
        return [o for o in self.orders.values() if o.lineage_po == base]

    # ---------- Functional updates ----------

    def with_order(self, order: Order, *, after: str | None = None) -> SchedulingContext:
        """Insert or replace an order. New orders go right after `after` when given."""
        if order.order_id in self.orders or after is None or after not in self.orders:
            orders = dict(self.orders)
            orders[order.order_id] = order
            return dataclasses.replace(self, orders=orders)

        orders = {}
        for oid, o in self.orders.items():
            orders[oid] = o
            if oid == after:
                orders[order.order_id] = order
        return dataclasses.replace(self, orders=orders)

    def without_order(self, order_id: str) -> SchedulingContext:
        self.order(order_id)
        orders = {oid: o for oid, o in self.orders.items() if oid != order_id}
        assignments = {oid: a for oid, a in self.assignments.items() if oid != order_id}
        allocations = tuple(r for r in self.allocations if r.order_id != order_id)
        return dataclasses.replace(self, orders=orders, assignments=assignments, allocations=allocations)

    def with_order_allocations(
        self,
        order_id: str,
        records: Iterable[AllocationRecord],
        assignment: LineAssignment | None,
    ) -> SchedulingContext:
        """Replace an order's records/assignment and refresh its derived fields."""
        order = self.order(order_id)
        recs = tuple(records)
        allocations = tuple(r for r in self.allocations if r.order_id != order_id) + recs
        assignments = {oid: a for oid, a in self.assignments.items() if oid != order_id}
        next_sequence = self.next_sequence
        if assignment is not None:
            assignments[order_id] = assignment
            next_sequence = max(next_sequence, assignment.sequence + 1)
        orders = dict(self.orders)
        orders[order_id] = derive_order(order, recs)
        return dataclasses.replace(
            self,
            orders=orders,
            allocations=allocations,
            assignments=assignments,
            next_sequence=next_sequence,
        )

    def clear_order_schedule(self, order_id: str) -> SchedulingContext:
        return self.with_order_allocations(order_id, (), None)

    def with_line(self, line: ProductionLine) -> SchedulingContext:
        lines = [ln for ln in self.lines if ln.line_id != line.line_id]
        if len(lines) == len(self.lines):
            lines.append(line)
        else:
            lines = [line if ln.line_id == line.line_id else ln for ln in self.lines]
        return dataclasses.replace(self, lines=tuple(lines))

    def with_holidays(self, holidays: Iterable[Holiday | date]) -> SchedulingContext:
        days = frozenset(h.holiday_date if isinstance(h, Holiday) else h for h in holidays)
        return dataclasses.replace(self, holidays=days)

    # ---------- Invariants ----------

    def check_invariants(self) -> list[str]:
        """Return a human readable list of violated scheduling invariants."""
        problems: list[str] = []

        ledger = self.ledger()
        cells = {(r.line_id, r.alloc_date) for r in self.allocations}
        for line_id, day in sorted(cells, key=lambda c: (c[0], c[1])):
            if not self.has_line(line_id):
                problems.append(f"records on unknown line {line_id}")
                continue
            line = self.line(line_id)
            if ledger.used(line_id, day) > float(line.capacity) + 1e-6:
                problems.append(f"line {line_id} over capacity on {day.isoformat()}")

        for o in self.orders.values():
            allocated = o.allocated_quantity
            if allocated > o.order_quantity:
                problems.append(f"order {o.order_id} over-allocated ({allocated} > {o.order_quantity})")
            if o.status == OrderStatus.SCHEDULED:
                if not o.assigned_line_id or not o.actual_production:
                    problems.append(f"order {o.order_id} scheduled without line or production")
                elif allocated != o.order_quantity:
                    problems.append(f"order {o.order_id} allocated {allocated} of {o.order_quantity}")
                line_ids = {r.line_id for r in self.allocations if r.order_id == o.order_id}
                if len(line_ids) > 1:
                    problems.append(f"order {o.order_id} spread over lines {sorted(line_ids)}")

        return problems
