"""Day-by-day allocation engine.

Walks a line's calendar from a start date and hands out pieces to an order
until its quantity is exhausted. Capacity on a (line, date) cell is shared:
whatever earlier-placed orders already consumed is unavailable, so a newly
placed order only ever fills what is left.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date, timedelta
from enum import Enum
from typing import TYPE_CHECKING

from sewplan.core.errors import InvalidOrderData, SchedulingHorizonExceeded
from sewplan.core.models import AllocationRecord, CapacityBasis, LineAssignment, Order, ProductionLine, RampUpPlan
from sewplan.scheduling.capacity import daily_output, load_units, pieces_for_units
from sewplan.scheduling.efficiency import resolve_efficiency

if TYPE_CHECKING:
    from sewplan.scheduling.context import SchedulingContext

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 3650

_EPS = 1e-9


class CellState(str, Enum):
    EMPTY = "empty"
    PARTIALLY_FILLED = "partially_filled"
    FULL = "full"


class CapacityLedger:
    """Capacity already consumed per (line, date), in each line's own unit."""

    def __init__(self, lines: Iterable[ProductionLine]) -> None:
        self._lines: dict[str, ProductionLine] = {ln.line_id: ln for ln in lines}
        self._used: dict[tuple[str, date], float] = {}

    @classmethod
    def from_records(
        cls,
        records: Iterable[AllocationRecord],
        *,
        lines: Iterable[ProductionLine],
        smv_by_order: Mapping[str, float],
    ) -> CapacityLedger:
        ledger = cls(lines)
        for r in records:
            line = ledger._lines.get(r.line_id)
            if line is None:
                # Records for a line that no longer exists cannot block anything.
                continue
            ledger.add(line, r.alloc_date, load_units(line, smv_by_order[r.order_id], r.quantity))
        return ledger

    def copy(self) -> CapacityLedger:
        out = CapacityLedger(self._lines.values())
        out._used = dict(self._used)
        return out

    def used(self, line_id: str, day: date) -> float:
        return self._used.get((line_id, day), 0.0)

    def free(self, line: ProductionLine, day: date) -> float:
        return max(0.0, float(line.capacity) - self.used(line.line_id, day))

    def add(self, line: ProductionLine, day: date, units: float) -> None:
        key = (line.line_id, day)
        self._used[key] = self._used.get(key, 0.0) + float(units)

    def cell_state(self, line: ProductionLine, day: date, smv: float | None = None) -> CellState:
        if self.used(line.line_id, day) <= _EPS:
            return CellState.EMPTY
        free = self.free(line, day)
        if smv is not None:
            room = pieces_for_units(line, smv, free) > 0
        elif line.basis == CapacityBasis.PIECES:
            # free capacity is counted in pieces; less than one piece is no room
            room = free >= 1.0 - _EPS
        else:
            room = free > _EPS
        return CellState.PARTIALLY_FILLED if room else CellState.FULL


def allocate_order(
    order: Order,
    line: ProductionLine,
    start_date: date,
    *,
    plan: RampUpPlan | None = None,
    holidays: Iterable[date] = (),
    ledger: CapacityLedger | None = None,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
) -> list[AllocationRecord]:
    """Allocate the whole of `order` on `line` starting at `start_date`.

    Holidays consume calendar days but are not production days. The ramp-up
    day index only advances on days the order actually had room to run on the
    line, so an order queued behind a full cell starts its curve at day 1 when
    it first gets capacity.

    The ledger is read, never mutated. Returns records in date order or raises;
    there is no partial result.
    """
    qty = int(order.order_quantity)
    if qty <= 0:
        raise InvalidOrderData(f"Order {order.order_id}: quantity must be positive, got {order.order_quantity!r}")
    if not float(order.smv or 0) > 0:
        raise InvalidOrderData(f"Order {order.order_id}: SMV must be positive, got {order.smv!r}")

    holiday_set = frozenset(holidays)
    work = ledger.copy() if ledger is not None else CapacityLedger([line])

    records: list[AllocationRecord] = []
    remaining = qty
    production_day = 1
    current = start_date

    for _ in range(int(horizon_days)):
        if current not in holiday_set:
            fits = pieces_for_units(line, order.smv, work.free(line, current))
            if fits > 0:
                efficiency = resolve_efficiency(plan, production_day)
                own = daily_output(line, order.smv, efficiency)
                planned = min(remaining, own, fits)
                production_day += 1
                if planned > 0:
                    records.append(
                        AllocationRecord(
                            order_id=order.order_id,
                            line_id=line.line_id,
                            alloc_date=current,
                            quantity=planned,
                        )
                    )
                    work.add(line, current, load_units(line, order.smv, planned))
                    remaining -= planned
                    if remaining == 0:
                        return records
        current += timedelta(days=1)

    logger.warning(
        "Allocation horizon exceeded: order=%s line=%s start=%s remaining=%s",
        order.order_id,
        line.line_id,
        start_date.isoformat(),
        remaining,
    )
    raise SchedulingHorizonExceeded(
        order_id=order.order_id,
        line_id=line.line_id,
        start_date=start_date,
        horizon_days=int(horizon_days),
        remaining=remaining,
    )


def allocate_queue(
    entries: Iterable[tuple[Order, date, RampUpPlan | None]],
    line: ProductionLine,
    *,
    holidays: Iterable[date] = (),
    ledger: CapacityLedger | None = None,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
) -> dict[str, list[AllocationRecord]]:
    """Allocate several orders on one line; earlier entries consume capacity first."""
    holiday_set = frozenset(holidays)
    work = ledger.copy() if ledger is not None else CapacityLedger([line])
    out: dict[str, list[AllocationRecord]] = {}
    for order, start, plan in entries:
        recs = allocate_order(
            order,
            line,
            start,
            plan=plan,
            holidays=holiday_set,
            ledger=work,
            horizon_days=horizon_days,
        )
        for r in recs:
            work.add(line, r.alloc_date, load_units(line, order.smv, r.quantity))
        out[order.order_id] = recs
    return out


def reflow_line(context: SchedulingContext, line_id: str) -> SchedulingContext:
    """Recompute every order on a line from its requested start, in placement order.

    Used after a line or calendar change (capacity edit, new holiday, an order
    leaving the line) to compact the line's schedule.
    """
    line = context.line(line_id)
    assignments: list[LineAssignment] = sorted(
        (a for a in context.assignments.values() if a.line_id == line_id),
        key=lambda a: a.sequence,
    )
    if not assignments:
        return context

    on_line = {a.order_id for a in assignments}
    ledger = context.ledger(exclude_order_ids=on_line)
    entries = [
        (context.order(a.order_id), a.start_date, context.plan(a.ramp_up_plan_id))
        for a in assignments
    ]
    allocated = allocate_queue(
        entries,
        line,
        holidays=context.holidays,
        ledger=ledger,
        horizon_days=context.horizon_days,
    )

    out = context
    for a in assignments:
        out = out.with_order_allocations(a.order_id, allocated[a.order_id], a)
    logger.info("Reflowed line %s (%s orders)", line_id, len(assignments))
    return out
