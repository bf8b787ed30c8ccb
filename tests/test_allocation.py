from __future__ import annotations

from datetime import date, timedelta

import pytest

from fixtures_sewing import MON, make_context, make_line, make_order, quantities
from sewplan.core.errors import InvalidOrderData, SchedulingHorizonExceeded
from sewplan.core.models import CapacityBasis, LineAssignment, default_ramp_up_plans
from sewplan.scheduling.allocation import CapacityLedger, CellState, allocate_order, allocate_queue, reflow_line

STANDARD = default_ramp_up_plans()[0]


def test_simple_allocation_without_ramp_up():
    recs = allocate_order(make_order("A", 250), make_line(capacity=100), MON)
    assert quantities(recs) == {"2024-01-01": 100, "2024-01-02": 100, "2024-01-03": 50}


def test_allocation_follows_ramp_up_curve():
    recs = allocate_order(make_order("A", 300), make_line(capacity=100), MON, plan=STANDARD)
    assert [r.quantity for r in recs] == [50, 70, 85, 90, 5]
    assert recs[-1].alloc_date == MON + timedelta(days=4)


def test_holiday_is_skipped_without_advancing_ramp_up():
    recs = allocate_order(
        make_order("A", 250),
        make_line(capacity=100),
        MON,
        plan=STANDARD,
        holidays={date(2024, 1, 2)},
    )
    assert quantities(recs) == {
        "2024-01-01": 50,
        "2024-01-03": 70,
        "2024-01-04": 85,
        "2024-01-05": 45,
    }


def test_drop_on_holiday_starts_next_working_day():
    recs = allocate_order(make_order("A", 50), make_line(capacity=100), MON, holidays={MON})
    assert quantities(recs) == {"2024-01-02": 50}


def test_allocation_conserves_quantity_and_stays_on_one_line():
    recs = allocate_order(make_order("A", 1234), make_line(capacity=77), MON, plan=STANDARD)
    assert sum(r.quantity for r in recs) == 1234
    assert {r.line_id for r in recs} == {"L1"}
    assert all(r.quantity > 0 for r in recs)


def test_leftover_capacity_is_shared_with_earlier_order():
    line = make_line(capacity=100)
    first = allocate_order(make_order("A", 150), line, MON)
    ledger = CapacityLedger([line])
    for r in first:
        ledger.add(line, r.alloc_date, r.quantity)

    second = allocate_order(make_order("B", 100), line, MON + timedelta(days=1), ledger=ledger)
    assert quantities(second) == {"2024-01-02": 50, "2024-01-03": 50}
    # the ledger passed in is not modified
    assert ledger.used("L1", date(2024, 1, 3)) == 0


def test_ramp_up_starts_when_line_first_has_room():
    line = make_line(capacity=100)
    ledger = CapacityLedger([line])
    ledger.add(line, MON, 100)
    ledger.add(line, MON + timedelta(days=1), 100)

    recs = allocate_order(make_order("B", 100), line, MON, plan=STANDARD, ledger=ledger)
    # day 1 of the curve is Jan 3, the first day with free capacity
    assert quantities(recs) == {"2024-01-03": 50, "2024-01-04": 50}


def test_minutes_line_shares_minutes_between_orders():
    line = make_line(capacity=540, basis=CapacityBasis.MINUTES)
    ledger = CapacityLedger([line])
    ledger.add(line, MON, 300)  # 300 of 540 minutes already taken

    recs = allocate_order(make_order("A", 200, smv=2.5), line, MON, ledger=ledger)
    assert quantities(recs) == {"2024-01-01": 96, "2024-01-02": 104}


def test_horizon_exceeded_raises_with_remaining_quantity():
    with pytest.raises(SchedulingHorizonExceeded) as ei:
        allocate_order(make_order("A", 10), make_line(capacity=0), MON, horizon_days=30)
    assert ei.value.remaining == 10
    assert ei.value.horizon_days == 30


@pytest.mark.parametrize("qty,smv", [(0, 10.0), (-5, 10.0), (10, 0), (10, -1)])
def test_invalid_order_data_is_rejected(qty, smv):
    with pytest.raises(InvalidOrderData):
        allocate_order(make_order("A", qty, smv=smv), make_line(), MON)


def test_queue_gives_priority_to_earlier_entries():
    line = make_line(capacity=100)
    out = allocate_queue(
        [
            (make_order("A", 120), MON, None),
            (make_order("B", 120), MON, None),
        ],
        line,
    )
    assert quantities(out["A"]) == {"2024-01-01": 100, "2024-01-02": 20}
    assert quantities(out["B"]) == {"2024-01-02": 80, "2024-01-03": 40}


def test_cell_state_reflects_ledger_usage():
    line = make_line(capacity=100)
    ledger = CapacityLedger([line])
    assert ledger.cell_state(line, MON) == CellState.EMPTY
    ledger.add(line, MON, 40)
    assert ledger.cell_state(line, MON) == CellState.PARTIALLY_FILLED
    ledger.add(line, MON, 60)
    assert ledger.cell_state(line, MON) == CellState.FULL


def test_reflow_compacts_line_after_an_order_leaves():
    ctx = make_context([make_order("A", 150), make_order("B", 100), make_order("C", 100)])
    line = ctx.line("L1")
    seq = 1
    for oid in ("A", "B", "C"):
        recs = allocate_order(ctx.order(oid), line, MON, ledger=ctx.ledger())
        ctx = ctx.with_order_allocations(oid, recs, LineAssignment(oid, "L1", MON, None, seq))
        seq += 1
    assert ctx.order("C").plan_end_date == date(2024, 1, 4)

    ctx = ctx.clear_order_schedule("B")
    # C still holds its old days until the line is reflowed
    assert ctx.order("C").plan_start_date == date(2024, 1, 3)

    ctx = reflow_line(ctx, "L1")
    assert quantities(ctx.records_for("C")) == {"2024-01-02": 50, "2024-01-03": 50}
    assert ctx.check_invariants() == []


def test_cell_without_room_for_one_more_piece_is_full():
    line = make_line(capacity=100.5)
    ledger = CapacityLedger([line])
    ledger.add(line, MON, 100)
    assert ledger.cell_state(line, MON) == CellState.FULL
    assert ledger.cell_state(line, MON, smv=10.0) == CellState.FULL

    ledger = CapacityLedger([line])
    ledger.add(line, MON, 99)
    assert ledger.cell_state(line, MON) == CellState.PARTIALLY_FILLED
