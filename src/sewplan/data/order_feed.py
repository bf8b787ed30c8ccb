"""Pending-order feed from a spreadsheet export.

Each row is one purchase order line. Rows already carrying both plan dates
were scheduled elsewhere; they become `external` orders that keep their plan
dates and never enter the pending pool.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from uuid import uuid4

import pandas as pd

from sewplan.core.models import Order, OrderStatus
from sewplan.data.excel_io import (
    coerce_float,
    coerce_optional_date,
    is_blank,
    normalize_columns,
    parse_int_strict,
    read_excel_bytes,
)

logger = logging.getLogger(__name__)

# canonical field -> accepted normalized column names
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "po_number": ("po_number", "po_no", "po", "purchase_order"),
    "style": ("style", "style_name", "style_id", "product", "product_id"),
    "smv": ("smv", "standard_minute_value"),
    "quantity": ("quantity", "qty", "order_quantity", "order_qty"),
    "mo_count": ("mo_count", "mo", "mos"),
    "cut_quantity": ("cut_quantity", "cut_qty", "cut"),
    "issue_quantity": ("issue_quantity", "issue_qty", "issued"),
    "plan_start_date": ("plan_start_date", "plan_start", "start_date"),
    "plan_end_date": ("plan_end_date", "plan_end", "end_date"),
}

REQUIRED_FIELDS = ("po_number", "smv", "quantity")


@dataclass(frozen=True)
class OrderFeedRow:
    po_number: str
    style: str
    smv: float
    quantity: int
    mo_count: int = 0
    cut_quantity: int = 0
    issue_quantity: int = 0
    plan_start_date: date | None = None
    plan_end_date: date | None = None

    @property
    def is_pre_scheduled(self) -> bool:
        return self.plan_start_date is not None and self.plan_end_date is not None


@dataclass
class OrderFeed:
    pending: list[Order] = field(default_factory=list)
    pre_scheduled: list[Order] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)


def _resolve_columns(df: pd.DataFrame) -> dict[str, str]:
    cols = set(df.columns)
    out: dict[str, str] = {}
    for canonical, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in cols:
                out[canonical] = alias
                break
    missing = [f for f in REQUIRED_FIELDS if f not in out]
    if missing:
        raise ValueError(f"Order feed is missing columns: {', '.join(missing)}")
    return out


def _optional_int(value, *, field: str) -> int:
    if is_blank(value):
        return 0
    return parse_int_strict(value, field=field)


def parse_feed_frame(df: pd.DataFrame) -> tuple[list[OrderFeedRow], list[dict]]:
    """Turn a raw feed DataFrame into rows; bad rows are collected, not raised."""
    df = normalize_columns(df)
    colmap = _resolve_columns(df)

    rows: list[OrderFeedRow] = []
    errors: list[dict] = []
    for idx, raw in df.iterrows():
        def cell(name: str):
            col = colmap.get(name)
            return raw[col] if col is not None else None

        po = cell("po_number")
        if is_blank(po):
            # trailing empty lines are common in exports
            continue
        po_s = str(po).strip()
        try:
            smv = coerce_float(cell("smv"))
            if smv is None or smv <= 0:
                raise ValueError(f"smv invalid: {cell('smv')!r}")
            qty = parse_int_strict(cell("quantity"), field="quantity")
            if qty <= 0:
                raise ValueError(f"quantity must be positive: {qty}")
            rows.append(
                OrderFeedRow(
                    po_number=po_s,
                    style="" if is_blank(cell("style")) else str(cell("style")).strip(),
                    smv=float(smv),
                    quantity=qty,
                    mo_count=_optional_int(cell("mo_count"), field="mo_count"),
                    cut_quantity=_optional_int(cell("cut_quantity"), field="cut_quantity"),
                    issue_quantity=_optional_int(cell("issue_quantity"), field="issue_quantity"),
                    plan_start_date=coerce_optional_date(cell("plan_start_date"), field="plan_start_date"),
                    plan_end_date=coerce_optional_date(cell("plan_end_date"), field="plan_end_date"),
                )
            )
        except ValueError as e:
            errors.append({"row": int(idx) + 2, "po_number": po_s, "error": str(e)})

    return rows, errors


def row_to_order(row: OrderFeedRow, *, order_id: str | None = None) -> Order:
    return Order(
        order_id=order_id or f"ord_{uuid4().hex}",
        po_number=row.po_number,
        style_id=row.style,
        order_quantity=row.quantity,
        smv=row.smv,
        mo_count=row.mo_count,
        cut_quantity=row.cut_quantity,
        issue_quantity=row.issue_quantity,
        status=OrderStatus.EXTERNAL if row.is_pre_scheduled else OrderStatus.PENDING,
        plan_start_date=row.plan_start_date if row.is_pre_scheduled else None,
        plan_end_date=row.plan_end_date if row.is_pre_scheduled else None,
    )


def load_order_feed(content: bytes) -> OrderFeed:
    """Read an .xlsx order feed into pending orders."""
    rows, errors = parse_feed_frame(read_excel_bytes(content))
    feed = OrderFeed(errors=errors)
    for row in rows:
        order = row_to_order(row)
        if order.status == OrderStatus.EXTERNAL:
            feed.pre_scheduled.append(order)
        else:
            feed.pending.append(order)

    logger.info(
        "Order feed: %s pending, %s pre-scheduled, %s rejected",
        len(feed.pending),
        len(feed.pre_scheduled),
        len(feed.errors),
    )
    return feed
