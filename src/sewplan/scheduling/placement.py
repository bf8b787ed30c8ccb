"""Drag-and-drop placement resolver.

Two-phase API:

    outcome = propose_drop(ctx, DropRequest(...))
    if isinstance(outcome, AmbiguousPlacement):
        outcome = resolve_drop(ctx, outcome, DropChoice.AFTER_ORDER)
    ctx = apply_placement(ctx, outcome)

A drop on a cell where another order already produces is ambiguous: the
caller must pick between starting exactly where dropped (sharing the day's
leftover capacity) or queueing after that order. There is no default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum

from sewplan.core.errors import PlacementAmbiguous, ScheduleConflict
from sewplan.core.models import AllocationRecord, LineAssignment, Order, OrderStatus
from sewplan.scheduling.allocation import allocate_order
from sewplan.scheduling.context import SchedulingContext

logger = logging.getLogger(__name__)


class DropChoice(str, Enum):
    WHERE_DROPPED = "where-dropped"
    AFTER_ORDER = "after-order"


class DragState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    AMBIGUOUS = "ambiguous"
    RESOLVED = "resolved"


@dataclass(frozen=True)
class DropRequest:
    order_id: str
    line_id: str
    drop_date: date
    ramp_up_plan_id: str | None = None
    # order the user dropped onto; defaults to the occupant that finishes last
    target_order_id: str | None = None


@dataclass(frozen=True)
class Placement:
    order_id: str
    line_id: str
    start_date: date
    records: tuple[AllocationRecord, ...]
    ramp_up_plan_id: str | None = None
    choice: DropChoice | None = None
    target_order_id: str | None = None

    @property
    def end_date(self) -> date:
        return max(r.alloc_date for r in self.records)

    @property
    def daily_plan(self) -> dict[str, int]:
        return {r.alloc_date.isoformat(): r.quantity for r in self.records}


@dataclass(frozen=True)
class AmbiguousPlacement:
    request: DropRequest
    target_order_id: str
    options: tuple[DropChoice, ...] = (DropChoice.WHERE_DROPPED, DropChoice.AFTER_ORDER)


def _place(
    context: SchedulingContext,
    order: Order,
    line_id: str,
    start_date: date,
    *,
    ramp_up_plan_id: str | None,
    choice: DropChoice | None = None,
    target_order_id: str | None = None,
) -> Placement:
    # A scheduled order being moved must not compete with its own old records.
    base = context.clear_order_schedule(order.order_id) if order.status == OrderStatus.SCHEDULED else context
    records = allocate_order(
        base.order(order.order_id),
        base.line(line_id),
        start_date,
        plan=base.plan(ramp_up_plan_id),
        holidays=base.holidays,
        ledger=base.ledger(),
        horizon_days=base.horizon_days,
    )
    return Placement(
        order_id=order.order_id,
        line_id=line_id,
        start_date=start_date,
        records=tuple(records),
        ramp_up_plan_id=ramp_up_plan_id,
        choice=choice,
        target_order_id=target_order_id,
    )


def propose_drop(context: SchedulingContext, request: DropRequest) -> Placement | AmbiguousPlacement | None:
    """First phase of a drop. Returns None when the drop is a no-op."""
    order = context.order(request.order_id)

    if not context.has_line(request.line_id):
        logger.debug("Drop of %s ignored: unknown line %r", order.order_id, request.line_id)
        return None
    if request.target_order_id == order.order_id:
        logger.debug("Drop of %s ignored: dropped onto itself", order.order_id)
        return None

    occupants = context.orders_in_cell(request.line_id, request.drop_date)
    occupant_ids = [o.order_id for o in occupants]
    if request.target_order_id is None and order.order_id in occupant_ids:
        logger.debug("Drop of %s ignored: cell already holds the order", order.order_id)
        return None

    others = [o for o in occupants if o.order_id != order.order_id]
    if not others:
        return _place(
            context,
            order,
            request.line_id,
            request.drop_date,
            ramp_up_plan_id=request.ramp_up_plan_id,
        )

    target_id = request.target_order_id
    if target_id not in {o.order_id for o in others}:
        if target_id is not None:
            logger.debug("Target %s not on cell, using last-finishing occupant", target_id)
        target = max(
            others,
            key=lambda o: (context.last_day_on_line(o.order_id, request.line_id) or date.min, occupants.index(o)),
        )
        target_id = target.order_id

    return AmbiguousPlacement(request=request, target_order_id=target_id)


def resolve_drop(
    context: SchedulingContext,
    pending: AmbiguousPlacement,
    choice: DropChoice | str,
) -> Placement:
    """Second phase: apply the caller's where-dropped / after-order decision."""
    decided = DropChoice(choice)
    request = pending.request
    order = context.order(request.order_id)

    if decided == DropChoice.WHERE_DROPPED:
        start = request.drop_date
    else:
        target = context.order(pending.target_order_id)
        last_day = context.last_day_on_line(target.order_id, request.line_id)
        if last_day is None:
            raise ScheduleConflict(
                target.order_id,
                expected=f"scheduled on line {request.line_id}",
                found=target.status.value,
            )
        # Start on the target's final day so its leftover capacity is used first.
        start = last_day

    logger.info(
        "Drop %s on line %s: %s %s (start %s)",
        order.po_number,
        request.line_id,
        decided.value,
        pending.target_order_id,
        start.isoformat(),
    )
    return _place(
        context,
        order,
        request.line_id,
        start,
        ramp_up_plan_id=request.ramp_up_plan_id,
        choice=decided,
        target_order_id=pending.target_order_id,
    )


def apply_placement(context: SchedulingContext, placement: Placement) -> SchedulingContext:
    """Commit a placement into a new context; the order becomes the latest placed."""
    base = context.clear_order_schedule(placement.order_id)
    assignment = LineAssignment(
        order_id=placement.order_id,
        line_id=placement.line_id,
        start_date=placement.start_date,
        ramp_up_plan_id=placement.ramp_up_plan_id,
        sequence=base.next_sequence,
    )
    return base.with_order_allocations(placement.order_id, placement.records, assignment)


def place_order(
    context: SchedulingContext,
    request: DropRequest,
    choice: DropChoice | str | None = None,
) -> tuple[SchedulingContext, Placement | None]:
    """One-shot helper: propose, resolve with `choice` if needed, and apply.

    Raises `PlacementAmbiguous` when the drop is ambiguous and no choice was
    given.
    """
    outcome = propose_drop(context, request)
    if outcome is None:
        return context, None
    if isinstance(outcome, AmbiguousPlacement):
        if choice is None:
            raise PlacementAmbiguous(outcome)
        outcome = resolve_drop(context, outcome, choice)
    return apply_placement(context, outcome), outcome
