"""Order split / merge / move-to-pending operations.

Fragments of one purchase order are linked through `base_po_number`; the
first fragment keeps the original id and PO number, later ones are labelled
"<base> Split N" with N unique among the siblings.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Iterable
from uuid import uuid4

from sewplan.core.errors import InvalidSplitQuantity
from sewplan.core.models import Order, OrderStatus
from sewplan.scheduling.context import SchedulingContext

logger = logging.getLogger(__name__)

_SPLIT_SUFFIX_RE = re.compile(r"\s+Split\s+(\d+)$")


def split_number(po_number: str) -> int:
    """Split index encoded in a PO number ("PO123 Split 2" -> 2, "PO123" -> 0)."""
    m = _SPLIT_SUFFIX_RE.search(str(po_number or ""))
    return int(m.group(1)) if m else 0


def next_split_label(base_po: str, siblings: Iterable[Order]) -> str:
    n = max((split_number(o.po_number) for o in siblings), default=0) + 1
    return f"{base_po} Split {n}"


def new_order_id() -> str:
    return f"ord_{uuid4().hex}"


def _share(total: int, part: int, whole: int) -> int:
    # floor share for the new fragment; the remainder stays with the original
    if whole <= 0 or total <= 0:
        return 0
    return (int(total) * int(part)) // int(whole)


def move_to_pending(context: SchedulingContext, order_id: str) -> SchedulingContext:
    """Drop an order's line assignment and allocation records."""
    order = context.order(order_id)
    if order.status == OrderStatus.PENDING and not context.records_for(order_id):
        return context
    logger.info("Order %s (%s) moved back to pending", order.order_id, order.po_number)
    return context.clear_order_schedule(order_id)


def split_order(
    context: SchedulingContext,
    order_id: str,
    split_quantity: int,
) -> tuple[SchedulingContext, Order, Order]:
    """Split an order into (A, B) where A keeps `split_quantity` pieces.

    A scheduled order loses its allocation: both fragments come back pending
    and must be placed again.
    """
    order = context.order(order_id)
    try:
        qty_a = int(split_quantity)
    except (TypeError, ValueError):
        raise InvalidSplitQuantity(
            f"Split quantity must be an integer, got {split_quantity!r}", order_id=order_id
        ) from None
    total = int(order.order_quantity)
    if qty_a <= 0 or qty_a >= total:
        raise InvalidSplitQuantity(
            f"Split quantity must be between 1 and {total - 1} for order {order.po_number}, got {qty_a}",
            order_id=order_id,
            quantity=qty_a,
        )

    base = order.lineage_po
    qty_b = total - qty_a
    cut_b = _share(order.cut_quantity, qty_b, total)
    issue_b = _share(order.issue_quantity, qty_b, total)

    work = move_to_pending(context, order_id) if order.status == OrderStatus.SCHEDULED else context
    current = work.order(order_id)

    order_a = dataclasses.replace(
        current,
        order_quantity=qty_a,
        cut_quantity=int(order.cut_quantity) - cut_b,
        issue_quantity=int(order.issue_quantity) - issue_b,
        base_po_number=base,
    )
    order_b = dataclasses.replace(
        current,
        order_id=new_order_id(),
        po_number=next_split_label(base, work.siblings(order)),
        order_quantity=qty_b,
        cut_quantity=cut_b,
        issue_quantity=issue_b,
        base_po_number=base,
        status=OrderStatus.PENDING,
        assigned_line_id=None,
        plan_start_date=None,
        plan_end_date=None,
        actual_production={},
    )

    work = work.with_order(order_a).with_order(order_b, after=order_a.order_id)
    logger.info(
        "Split %s: %s keeps %s, %s gets %s",
        order.po_number,
        order_a.po_number,
        qty_a,
        order_b.po_number,
        qty_b,
    )
    return work, order_a, order_b


def merge_fragments(context: SchedulingContext, order_ids: Iterable[str]) -> tuple[SchedulingContext, Order]:
    """Merge split fragments of the same PO back into one pending order.

    The survivor is the fragment carrying the base PO number, or the lowest
    split index when the origin is not among them. Scheduled fragments are
    moved to pending first.
    """
    ids = list(dict.fromkeys(order_ids))
    orders = [context.order(oid) for oid in ids]
    if len(orders) < 2:
        raise InvalidSplitQuantity("At least two fragments are needed to merge")
    bases = {o.lineage_po for o in orders}
    if len(bases) != 1:
        raise InvalidSplitQuantity(f"Fragments belong to different purchase orders: {sorted(bases)}")

    survivor = min(orders, key=lambda o: split_number(o.po_number))
    work = context
    for o in orders:
        work = move_to_pending(work, o.order_id)

    merged = dataclasses.replace(
        work.order(survivor.order_id),
        order_quantity=sum(int(o.order_quantity) for o in orders),
        cut_quantity=sum(int(o.cut_quantity) for o in orders),
        issue_quantity=sum(int(o.issue_quantity) for o in orders),
    )
    for o in orders:
        if o.order_id != survivor.order_id:
            work = work.without_order(o.order_id)

    remaining = [o for o in work.siblings(merged) if o.order_id != merged.order_id]
    if not remaining and merged.base_po_number == merged.po_number:
        # every fragment is back together: the order is unsplit again
        merged = dataclasses.replace(merged, base_po_number=None)
    work = work.with_order(merged)
    logger.info("Merged %s fragments into %s (qty %s)", len(orders), merged.po_number, merged.order_quantity)
    return work, merged
