"""Small builders shared by the scheduling tests."""

from __future__ import annotations

from datetime import date

from sewplan.core.models import CapacityBasis, Order, ProductionLine, default_ramp_up_plans
from sewplan.scheduling.context import SchedulingContext

MON = date(2024, 1, 1)


def make_line(line_id: str = "L1", capacity: float = 100, basis: CapacityBasis = CapacityBasis.PIECES) -> ProductionLine:
    return ProductionLine(line_id=line_id, name=f"Line {line_id}", capacity=capacity, basis=basis)


def make_order(order_id: str, qty: int, *, smv: float = 10.0, po: str | None = None, **kw) -> Order:
    return Order(
        order_id=order_id,
        po_number=po or f"PO-{order_id}",
        style_id="STY",
        order_quantity=qty,
        smv=smv,
        **kw,
    )


def make_context(orders=(), *, lines=None, holidays=(), horizon_days: int = 3650) -> SchedulingContext:
    return SchedulingContext.build(
        lines=lines if lines is not None else [make_line()],
        orders=orders,
        holidays=holidays,
        ramp_up_plans=default_ramp_up_plans(),
        horizon_days=horizon_days,
    )


def quantities(records) -> dict[str, int]:
    return {r.alloc_date.isoformat(): r.quantity for r in records}
