from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

from sewplan.core.errors import PlacementAmbiguous, SchedulingError, UnknownOrder
from sewplan.core.models import CapacityBasis, Holiday, Order, ProductionLine
from sewplan.data.db import Db
from sewplan.data.repository import HORIZON_CONFIG_KEY, Repository
from sewplan.logging_conf import configure_logging
from sewplan.scheduling.board import SchedulingBoard
from sewplan.scheduling.capacity import operator_minutes
from sewplan.scheduling.context import SchedulingContext
from sewplan.scheduling.placement import DropChoice
from sewplan.settings import Settings, default_db_path

logger = logging.getLogger(__name__)


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from None


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sewplan", description="Sewing line production scheduler")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database path")
    parser.add_argument("--log-level", type=str, default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="create the database and default ramp-up plans")
    p.add_argument("--horizon-days", type=int, default=None)

    p = sub.add_parser("add-line", help="add or update a production line")
    p.add_argument("line_id")
    p.add_argument("name")
    p.add_argument("capacity", type=float, nargs="?", default=None)
    p.add_argument("--group", default=None)
    p.add_argument("--operators", type=int, default=None, help="staffing; sets a minutes capacity of 540 per operator")
    p.add_argument("--basis", choices=[b.value for b in CapacityBasis], default=CapacityBasis.PIECES.value)

    p = sub.add_parser("add-holiday", help="mark a calendar day as non-working")
    p.add_argument("date", type=_iso_date)
    p.add_argument("--name", default="")

    p = sub.add_parser("import-orders", help="import pending orders from an .xlsx feed")
    p.add_argument("file", type=Path)

    sub.add_parser("list", help="show lines, pending and scheduled orders")

    p = sub.add_parser("schedule", help="place an order on a line starting at a date")
    p.add_argument("order")
    p.add_argument("line")
    p.add_argument("date", type=_iso_date)
    p.add_argument("--plan", default=None, help="ramp-up plan id")
    p.add_argument("--target", default=None, help="order dropped onto")
    p.add_argument("--choice", choices=[c.value for c in DropChoice], default=None)

    p = sub.add_parser("split", help="split an order into two fragments")
    p.add_argument("order")
    p.add_argument("quantity", type=int)

    p = sub.add_parser("pending", help="return an order to the pending pool")
    p.add_argument("order")

    p = sub.add_parser("merge", help="merge split fragments back together")
    p.add_argument("orders", nargs="+")

    p = sub.add_parser("reflow", help="re-allocate every order on a line in sequence")
    p.add_argument("line")
    return parser


def resolve_order_ref(context: SchedulingContext, ref: str) -> str:
    """Accept either an order id or a PO number."""
    if ref in context.orders:
        return ref
    matches = [o.order_id for o in context.orders.values() if o.po_number == ref]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise SchedulingError(f"PO number {ref!r} is ambiguous, use the order id")
    raise UnknownOrder(ref)


def _describe(order: Order) -> str:
    if order.is_scheduled:
        return (
            f"{order.po_number:<24} {order.order_quantity:>7}  {order.assigned_line_id} "
            f"{order.plan_start_date.isoformat()} -> {order.plan_end_date.isoformat()}"
        )
    return f"{order.po_number:<24} {order.order_quantity:>7}  smv={order.smv:g}  [{order.order_id}]"


def _print_board(context: SchedulingContext) -> None:
    print("Lines:")
    for line in context.lines:
        print(f"  {line.line_id:<8} {line.name:<20} {line.capacity:g} {line.basis.value}/day")
    print("Pending:")
    for o in context.pending_orders():
        print(f"  {_describe(o)}")
    print("Scheduled:")
    for line in context.lines:
        for o in context.scheduled_orders(line.line_id):
            print(f"  {_describe(o)}")
    external = context.external_orders()
    if external:
        print("Scheduled elsewhere:")
        for o in external:
            print(f"  {o.po_number:<24} {o.order_quantity:>7}  {o.plan_start_date} -> {o.plan_end_date}")


def run(args: argparse.Namespace, settings: Settings) -> int:
    db = Db(settings.db_path)
    db.ensure_schema()
    repo = Repository(db, default_horizon_days=settings.horizon_days)

    if args.command == "init":
        repo.ensure_default_ramp_up_plans()
        if args.horizon_days is not None:
            repo.set_config(key=HORIZON_CONFIG_KEY, value=str(int(args.horizon_days)))
        print(f"Database ready at {settings.db_path}")
        return 0

    if args.command == "add-line":
        capacity, basis = args.capacity, CapacityBasis(args.basis)
        if args.operators is not None:
            capacity, basis = operator_minutes(args.operators), CapacityBasis.MINUTES
        if capacity is None:
            raise SchedulingError("add-line needs a capacity or --operators")
        repo.upsert_line(
            ProductionLine(
                line_id=args.line_id,
                name=args.name,
                capacity=capacity,
                group_id=args.group,
                basis=basis,
            )
        )
        return 0

    if args.command == "add-holiday":
        repo.add_holiday(Holiday(holiday_date=args.date, name=args.name))
        return 0

    if args.command == "import-orders":
        feed = repo.import_order_feed_bytes(content=args.file.read_bytes())
        print(f"Imported {len(feed.pending)} pending and {len(feed.pre_scheduled)} externally scheduled orders")
        for err in feed.errors:
            print(f"  row {err['row']} ({err['po_number']}): {err['error']}")
        return 0

    board = SchedulingBoard(repo.load_context(), store=repo)

    if args.command == "list":
        _print_board(board.context)
        return 0

    if args.command == "schedule":
        order_id = resolve_order_ref(board.context, args.order)
        target = resolve_order_ref(board.context, args.target) if args.target else None
        choose = (lambda _pending: args.choice) if args.choice else None
        try:
            placements = board.drop(
                args.line,
                args.date,
                order_id=order_id,
                ramp_up_plan_id=args.plan,
                target_order_id=target,
                choose=choose,
            )
        except PlacementAmbiguous as e:
            print(f"{e}; re-run with --choice", file=sys.stderr)
            return 2
        if not placements:
            print("Nothing to do")
        for p in placements:
            print(f"{board.context.order(p.order_id).po_number}: {p.line_id} {p.start_date} -> {p.end_date}")
        return 0

    if args.command == "split":
        a, b = board.split(resolve_order_ref(board.context, args.order), args.quantity)
        print(f"{a.po_number}: {a.order_quantity}")
        print(f"{b.po_number}: {b.order_quantity} [{b.order_id}]")
        return 0

    if args.command == "pending":
        order = board.move_to_pending(resolve_order_ref(board.context, args.order))
        print(f"{order.po_number} is pending")
        return 0

    if args.command == "merge":
        merged = board.merge([resolve_order_ref(board.context, ref) for ref in args.orders])
        print(f"{merged.po_number}: {merged.order_quantity}")
        return 0

    if args.command == "reflow":
        for o in board.reflow_line(args.line):
            print(f"  {_describe(o)}")
        return 0

    raise SchedulingError(f"Unknown command {args.command!r}")


def main(argv: list[str] | None = None) -> None:
    args = build_arg_parser().parse_args(argv)
    settings = Settings(db_path=args.db or default_db_path(), log_level=args.log_level)
    configure_logging(settings.log_level)

    try:
        code = run(args, settings)
    except (SchedulingError, ValueError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ in {"__main__", "__mp_main__"}:
    main()
