from __future__ import annotations

from datetime import date, timedelta

import pytest

from fixtures_sewing import MON, make_context, make_line, make_order, quantities
from sewplan.core.errors import PlacementAmbiguous, ScheduleConflict, UnknownOrder
from sewplan.core.models import OrderStatus
from sewplan.scheduling.allocation import CellState
from sewplan.scheduling.placement import (
    AmbiguousPlacement,
    DropChoice,
    DropRequest,
    Placement,
    apply_placement,
    place_order,
    propose_drop,
    resolve_drop,
)

TUE = MON + timedelta(days=1)


def _with_a_scheduled(qty_a: int = 150, capacity: int = 100):
    ctx = make_context([make_order("A", qty_a), make_order("B", 100)], lines=[make_line(capacity=capacity), make_line("L2")])
    ctx, _ = place_order(ctx, DropRequest("A", "L1", MON))
    return ctx


def test_drop_on_empty_cell_places_directly():
    ctx = make_context([make_order("A", 250)])
    outcome = propose_drop(ctx, DropRequest("A", "L1", MON, ramp_up_plan_id="1"))
    assert isinstance(outcome, Placement)
    assert outcome.choice is None
    assert outcome.daily_plan == {"2024-01-01": 50, "2024-01-02": 70, "2024-01-03": 85, "2024-01-04": 45}

    ctx = apply_placement(ctx, outcome)
    order = ctx.order("A")
    assert order.status == OrderStatus.SCHEDULED
    assert order.assigned_line_id == "L1"
    assert order.plan_start_date == MON
    assert order.plan_end_date == date(2024, 1, 4)
    assert ctx.assignments["A"].ramp_up_plan_id == "1"


def test_drop_on_occupied_cell_needs_a_decision():
    ctx = _with_a_scheduled()
    outcome = propose_drop(ctx, DropRequest("B", "L1", TUE))
    assert isinstance(outcome, AmbiguousPlacement)
    assert outcome.target_order_id == "A"
    assert set(outcome.options) == {DropChoice.WHERE_DROPPED, DropChoice.AFTER_ORDER}

    with pytest.raises(PlacementAmbiguous) as ei:
        place_order(ctx, DropRequest("B", "L1", TUE))
    assert ei.value.pending.target_order_id == "A"


def test_where_dropped_fills_leftover_from_the_drop_date():
    ctx = _with_a_scheduled(qty_a=250)
    # A: Jan 1-2 full, Jan 3 half
    ctx, placement = place_order(ctx, DropRequest("B", "L1", TUE), DropChoice.WHERE_DROPPED)
    assert placement.choice == DropChoice.WHERE_DROPPED
    assert quantities(ctx.records_for("B")) == {"2024-01-03": 50, "2024-01-04": 50}
    assert ctx.check_invariants() == []


def test_after_order_starts_on_targets_last_day():
    ctx = _with_a_scheduled(qty_a=250)
    ambiguous = propose_drop(ctx, DropRequest("B", "L1", MON))
    placement = resolve_drop(ctx, ambiguous, "after-order")

    assert placement.start_date == date(2024, 1, 3)
    assert placement.daily_plan == {"2024-01-03": 50, "2024-01-04": 50}
    assert placement.target_order_id == "A"


def test_earlier_order_keeps_its_allocation_after_a_later_drop():
    ctx = _with_a_scheduled(qty_a=150)
    before = quantities(ctx.records_for("A"))
    ctx, _ = place_order(ctx, DropRequest("B", "L1", MON), DropChoice.WHERE_DROPPED)
    assert quantities(ctx.records_for("A")) == before
    assert ctx.used_capacity("L1", TUE) == 100


def test_default_target_is_the_occupant_finishing_last():
    ctx = make_context([make_order("A", 100), make_order("B", 300), make_order("C", 10)], lines=[make_line(capacity=200)])
    ctx, _ = place_order(ctx, DropRequest("A", "L1", MON))
    ctx, _ = place_order(ctx, DropRequest("B", "L1", MON), DropChoice.WHERE_DROPPED)
    assert ctx.order("B").plan_end_date == TUE

    outcome = propose_drop(ctx, DropRequest("C", "L1", MON))
    assert outcome.target_order_id == "B"

    explicit = propose_drop(ctx, DropRequest("C", "L1", MON, target_order_id="A"))
    assert explicit.target_order_id == "A"


def test_noop_drops_return_none():
    ctx = _with_a_scheduled()
    assert propose_drop(ctx, DropRequest("A", "L1", MON, target_order_id="A")) is None
    assert propose_drop(ctx, DropRequest("A", "L1", MON)) is None
    assert propose_drop(ctx, DropRequest("B", "NOPE", MON)) is None

    same, placement = place_order(ctx, DropRequest("B", "NOPE", MON))
    assert same is ctx
    assert placement is None


def test_unknown_order_raises():
    ctx = make_context([])
    with pytest.raises(UnknownOrder):
        propose_drop(ctx, DropRequest("missing", "L1", MON))


def test_moving_scheduled_order_releases_its_old_cells():
    ctx = _with_a_scheduled()
    ctx, _ = place_order(ctx, DropRequest("A", "L2", date(2024, 2, 1)))

    assert ctx.order("A").assigned_line_id == "L2"
    assert ctx.used_capacity("L1", MON) == 0
    assert {r.line_id for r in ctx.records_for("A")} == {"L2"}
    assert ctx.check_invariants() == []


def test_after_order_with_stale_target_is_a_conflict():
    ctx = _with_a_scheduled()
    ambiguous = propose_drop(ctx, DropRequest("B", "L1", MON))
    moved = ctx.clear_order_schedule("A")
    with pytest.raises(ScheduleConflict):
        resolve_drop(moved, ambiguous, DropChoice.AFTER_ORDER)


def test_each_placement_gets_a_later_sequence():
    ctx = _with_a_scheduled()
    ctx, _ = place_order(ctx, DropRequest("B", "L1", MON), DropChoice.AFTER_ORDER)
    assert ctx.assignments["B"].sequence > ctx.assignments["A"].sequence
    assert [o.order_id for o in ctx.orders_in_cell("L1", TUE)] == ["A", "B"]


def test_cell_queries_after_placement():
    ctx = _with_a_scheduled()
    assert ctx.cell_state("L1", MON) == CellState.FULL
    assert ctx.cell_state("L1", TUE) == CellState.PARTIALLY_FILLED
    assert ctx.cell_state("L1", TUE + timedelta(days=1)) == CellState.EMPTY
    assert ctx.line_utilization("L1", TUE) == pytest.approx(50.0)
    assert ctx.used_capacity("L2", MON) == 0
