from __future__ import annotations

from datetime import timedelta

import pytest

from fixtures_sewing import MON, make_context, make_order, quantities
from sewplan.core.errors import InvalidSplitQuantity
from sewplan.core.models import OrderStatus
from sewplan.scheduling.placement import DropChoice, DropRequest, place_order
from sewplan.scheduling.splitting import (
    merge_fragments,
    move_to_pending,
    next_split_label,
    split_number,
    split_order,
)


def test_split_conserves_quantities_and_floors_new_fragment_share():
    ctx = make_context([make_order("A", 1000, po="PO1", cut_quantity=333, issue_quantity=101)])
    ctx, a, b = split_order(ctx, "A", 400)

    assert (a.order_quantity, b.order_quantity) == (400, 600)
    assert (a.cut_quantity, b.cut_quantity) == (134, 199)
    assert (a.issue_quantity, b.issue_quantity) == (41, 60)
    assert a.order_id == "A"
    assert b.order_id != "A"
    assert a.po_number == "PO1"
    assert b.po_number == "PO1 Split 1"
    assert a.base_po_number == b.base_po_number == "PO1"
    # the new fragment sits right after the original in the pool
    assert list(ctx.orders) == ["A", b.order_id]


def test_repeated_splits_use_unique_labels():
    ctx = make_context([make_order("A", 1000, po="PO1")])
    ctx, _, b1 = split_order(ctx, "A", 600)
    ctx, _, b2 = split_order(ctx, "A", 300)
    ctx, _, b3 = split_order(ctx, b1.order_id, 100)

    assert [b1.po_number, b2.po_number, b3.po_number] == ["PO1 Split 1", "PO1 Split 2", "PO1 Split 3"]
    assert sum(o.order_quantity for o in ctx.orders.values()) == 1000


@pytest.mark.parametrize("qty", [0, -3, 50, 80, "x"])
def test_invalid_split_quantity(qty):
    ctx = make_context([make_order("A", 50)])
    with pytest.raises(InvalidSplitQuantity):
        split_order(ctx, "A", qty)


def test_splitting_a_scheduled_order_returns_both_fragments_to_pending():
    ctx = make_context([make_order("A", 250)])
    ctx, _ = place_order(ctx, DropRequest("A", "L1", MON))
    assert ctx.order("A").status == OrderStatus.SCHEDULED

    ctx, a, b = split_order(ctx, "A", 100)
    assert a.status == OrderStatus.PENDING
    assert b.status == OrderStatus.PENDING
    assert ctx.records_for("A") == []
    assert "A" not in ctx.assignments


def test_split_fragment_can_be_scheduled():
    ctx = make_context([make_order("A", 250)])
    ctx, _, b = split_order(ctx, "A", 100)
    ctx, placement = place_order(ctx, DropRequest(b.order_id, "L1", MON))

    assert placement is not None
    assert ctx.order(b.order_id).allocated_quantity == 150
    assert ctx.order("A").status == OrderStatus.PENDING
    assert ctx.check_invariants() == []


def test_move_to_pending_is_idempotent():
    ctx = make_context([make_order("A", 250)])
    assert move_to_pending(ctx, "A") is ctx

    scheduled, _ = place_order(ctx, DropRequest("A", "L1", MON))
    once = move_to_pending(scheduled, "A")
    twice = move_to_pending(once, "A")
    assert twice is once
    assert once.order("A").plan_start_date is None
    assert once.order("A").actual_production == {}


def test_merge_reunites_all_fragments():
    ctx = make_context([make_order("A", 1000, po="PO1", cut_quantity=333)])
    ctx, _, b = split_order(ctx, "A", 400)
    ctx, _ = place_order(ctx, DropRequest(b.order_id, "L1", MON))

    ctx, merged = merge_fragments(ctx, [b.order_id, "A"])
    assert merged.order_id == "A"
    assert merged.order_quantity == 1000
    assert merged.cut_quantity == 333
    assert merged.base_po_number is None
    assert merged.status == OrderStatus.PENDING
    assert list(ctx.orders) == ["A"]
    assert ctx.allocations == ()


def test_partial_merge_keeps_lineage():
    ctx = make_context([make_order("A", 900, po="PO1")])
    ctx, _, b1 = split_order(ctx, "A", 600)
    ctx, _, b2 = split_order(ctx, "A", 300)

    ctx, merged = merge_fragments(ctx, [b1.order_id, b2.order_id])
    assert merged.order_id == b1.order_id
    assert merged.order_quantity == 600
    assert merged.base_po_number == "PO1"
    assert len(ctx.orders) == 2


def test_merge_rejects_unrelated_or_single_orders():
    ctx = make_context([make_order("A", 10, po="PO1"), make_order("B", 10, po="PO2")])
    with pytest.raises(InvalidSplitQuantity):
        merge_fragments(ctx, ["A", "B"])
    with pytest.raises(InvalidSplitQuantity):
        merge_fragments(ctx, ["A"])


def test_split_label_helpers():
    assert split_number("PO9 Split 12") == 12
    assert split_number("PO9") == 0
    assert next_split_label("PO9", [make_order("x", 1, po="PO9"), make_order("y", 1, po="PO9 Split 4")]) == "PO9 Split 5"


def test_pending_then_same_drop_gives_the_same_records():
    ctx = make_context([make_order("A", 150), make_order("B", 100)])
    ctx, _ = place_order(ctx, DropRequest("A", "L1", MON))
    ctx, _ = place_order(
        ctx,
        DropRequest("B", "L1", MON + timedelta(days=1), target_order_id="A"),
        DropChoice.AFTER_ORDER,
    )
    first = quantities(ctx.records_for("A"))
    b_records = quantities(ctx.records_for("B"))
    assert first == {"2024-01-01": 100, "2024-01-02": 50}
    assert b_records == {"2024-01-02": 50, "2024-01-03": 50}

    ctx = move_to_pending(ctx, "A")
    assert ctx.records_for("A") == []
    ctx, _ = place_order(ctx, DropRequest("A", "L1", MON), DropChoice.WHERE_DROPPED)

    assert quantities(ctx.records_for("A")) == first
    assert quantities(ctx.records_for("B")) == b_records
    assert ctx.check_invariants() == []


def test_scheduling_one_fragment_leaves_the_other_pending():
    ctx = make_context([make_order("A", 300, po="PO1")])
    ctx, a, b = split_order(ctx, "A", 120)
    ctx, _ = place_order(ctx, DropRequest(b.order_id, "L1", MON))

    assert quantities(ctx.records_for(b.order_id)) == {"2024-01-01": 100, "2024-01-02": 80}
    assert ctx.order(b.order_id).plan_end_date == MON + timedelta(days=1)
    assert ctx.order("A") == a
    assert ctx.records_for("A") == []
    assert [o.order_id for o in ctx.pending_orders()] == ["A"]


def test_externally_planned_order_can_be_brought_into_the_pool():
    ctx = make_context(
        [make_order("X", 200, status=OrderStatus.EXTERNAL, plan_start_date=MON, plan_end_date=MON + timedelta(days=3))]
    )
    assert ctx.order("X").status == OrderStatus.EXTERNAL
    assert ctx.pending_orders() == []

    ctx = move_to_pending(ctx, "X")
    x = ctx.order("X")
    assert x.status == OrderStatus.PENDING
    assert (x.plan_start_date, x.plan_end_date) == (None, None)
