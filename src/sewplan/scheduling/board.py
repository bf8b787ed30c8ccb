"""Scheduling board: session state and the composition root of the core.

The board owns the current `SchedulingContext`, the selection and the drag
state. Every user action builds a new context from the current one and
swaps it in only after the whole action succeeded (and, when a store is
attached, after it was persisted).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Protocol

from sewplan.core.errors import PlacementAmbiguous, ScheduleConflict, SchedulingError
from sewplan.core.models import AllocationRecord, LineAssignment, Order, OrderStatus
from sewplan.scheduling.allocation import reflow_line
from sewplan.scheduling.context import SchedulingContext
from sewplan.scheduling.placement import (
    AmbiguousPlacement,
    DragState,
    DropChoice,
    DropRequest,
    Placement,
    apply_placement,
    propose_drop,
    resolve_drop,
)
from sewplan.scheduling.splitting import merge_fragments, move_to_pending, split_order

logger = logging.getLogger(__name__)

Chooser = Callable[[AmbiguousPlacement], DropChoice | str]


class OrderStore(Protocol):
    """Persistence collaborator used by the board."""

    def get_order(self, order_id: str) -> Order | None: ...

    def commit_changes(
        self,
        *,
        created: Sequence[Order] = (),
        changed: Sequence[tuple[Order, Sequence[AllocationRecord], LineAssignment | None]] = (),
        removed: Sequence[str] = (),
    ) -> None:
        """Store every change of one board action atomically."""


@dataclass(frozen=True)
class _PendingDrop:
    ambiguous: AmbiguousPlacement
    order_ids: tuple[str, ...]


class SchedulingBoard:
    def __init__(self, context: SchedulingContext, store: OrderStore | None = None) -> None:
        self._context = context
        self._store = store
        self._selection: list[str] = []
        self._dragging: tuple[str, ...] = ()
        self._drag_state = DragState.IDLE
        self._pending: _PendingDrop | None = None

    @property
    def context(self) -> SchedulingContext:
        return self._context

    @property
    def drag_state(self) -> DragState:
        return self._drag_state

    @property
    def pending_decision(self) -> AmbiguousPlacement | None:
        return self._pending.ambiguous if self._pending else None

    # ---------- Selection ----------

    @property
    def selected_order_ids(self) -> list[str]:
        return list(self._selection)

    @property
    def selected_orders(self) -> list[Order]:
        return [self._context.order(oid) for oid in self._selection]

    def select(self, order_id: str, *, additive: bool = False) -> list[str]:
        """Click (replace selection) or modifier-click (toggle membership)."""
        self._context.order(order_id)
        if not additive:
            self._selection = [order_id]
        elif order_id in self._selection:
            self._selection.remove(order_id)
        else:
            self._selection.append(order_id)
        return self.selected_order_ids

    def clear_selection(self) -> None:
        self._selection = []

    # ---------- Drag & drop ----------

    def begin_drag(self, order_id: str | None = None) -> tuple[str, ...]:
        """Start dragging `order_id` (with the rest of the selection if it is selected)."""
        if order_id is not None:
            self._context.order(order_id)
            if order_id not in self._selection:
                self._selection = [order_id]
            # the grabbed order leads, the rest of the selection follows
            ids = [order_id] + [oid for oid in self._selection if oid != order_id]
        else:
            ids = list(self._selection)
        if not ids:
            raise SchedulingError("Nothing selected to drag")

        self._dragging = tuple(ids)
        self._pending = None
        self._drag_state = DragState.DRAGGING
        return self._dragging

    def cancel_drag(self) -> None:
        self._dragging = ()
        self._pending = None
        self._drag_state = DragState.IDLE

    def drop(
        self,
        line_id: str,
        drop_date: date,
        *,
        order_id: str | None = None,
        ramp_up_plan_id: str | None = None,
        target_order_id: str | None = None,
        choose: Chooser | None = None,
    ) -> list[Placement]:
        """Drop the dragged order(s) on a (line, date) cell.

        Ambiguous drops call `choose` synchronously; without a chooser the
        board keeps the pending decision and raises `PlacementAmbiguous`,
        to be continued with `resolve_pending`.
        """
        if order_id is not None:
            self.begin_drag(order_id)
        if self._drag_state != DragState.DRAGGING or not self._dragging:
            raise SchedulingError("No drag in progress")

        lead, *followers = self._dragging
        request = DropRequest(
            order_id=lead,
            line_id=line_id,
            drop_date=drop_date,
            ramp_up_plan_id=ramp_up_plan_id,
            target_order_id=target_order_id,
        )
        outcome = propose_drop(self._context, request)
        if outcome is None:
            self.cancel_drag()
            return []

        if isinstance(outcome, AmbiguousPlacement):
            if choose is None:
                self._pending = _PendingDrop(ambiguous=outcome, order_ids=self._dragging)
                self._drag_state = DragState.AMBIGUOUS
                raise PlacementAmbiguous(outcome)
            outcome = resolve_drop(self._context, outcome, choose(outcome))

        return self._finish_drop(outcome, followers)

    def resolve_pending(self, choice: DropChoice | str) -> list[Placement]:
        if self._pending is None:
            raise SchedulingError("No placement decision pending")
        pending = self._pending
        placement = resolve_drop(self._context, pending.ambiguous, choice)
        return self._finish_drop(placement, list(pending.order_ids[1:]))

    def _finish_drop(self, first: Placement, followers: list[str]) -> list[Placement]:
        work = apply_placement(self._context, first)
        placements = [first]
        previous = first
        for oid in followers:
            # each further dragged order queues after the one placed before it
            chained = AmbiguousPlacement(
                request=DropRequest(
                    order_id=oid,
                    line_id=previous.line_id,
                    drop_date=previous.end_date,
                    ramp_up_plan_id=previous.ramp_up_plan_id,
                ),
                target_order_id=previous.order_id,
            )
            placement = resolve_drop(work, chained, DropChoice.AFTER_ORDER)
            work = apply_placement(work, placement)
            placements.append(placement)
            previous = placement

        self._commit(work, [p.order_id for p in placements])
        self._dragging = ()
        self._pending = None
        self._drag_state = DragState.RESOLVED
        return placements

    # ---------- Order operations ----------

    def split(self, order_id: str, split_quantity: int) -> tuple[Order, Order]:
        work, order_a, order_b = split_order(self._context, order_id, split_quantity)
        self._commit(work, [order_a.order_id], created=[order_b.order_id])
        return order_a, order_b

    def move_to_pending(self, order_id: str) -> Order:
        work = move_to_pending(self._context, order_id)
        self._commit(work, [order_id])
        self._selection = [oid for oid in self._selection if oid != order_id]
        return work.order(order_id)

    def merge(self, order_ids: Iterable[str]) -> Order:
        ids = list(order_ids)
        work, merged = merge_fragments(self._context, ids)
        removed = [oid for oid in ids if oid != merged.order_id]
        self._commit(work, [merged.order_id], removed=removed)
        self._selection = [oid for oid in self._selection if oid not in removed]
        return merged

    def reflow_line(self, line_id: str) -> list[Order]:
        work = reflow_line(self._context, line_id)
        changed = [o.order_id for o in work.scheduled_orders(line_id)]
        self._commit(work, changed)
        return work.scheduled_orders(line_id)

    def import_orders(self, orders: Iterable[Order]) -> int:
        """Add new pending orders to the pool; ids already on the board are skipped."""
        work = self._context
        created: list[str] = []
        for o in orders:
            if o.order_id in work.orders:
                logger.debug("Order %s already on board, skipped", o.order_id)
                continue
            if o.status != OrderStatus.PENDING:
                logger.debug("Order %s is not pending, skipped", o.order_id)
                continue
            work = work.with_order(o)
            created.append(o.order_id)
        self._commit(work, [], created=created)
        return len(created)

    # ---------- Persistence ----------

    def _check_unchanged(self, order_id: str) -> None:
        """Re-read the stored order and refuse to overwrite a concurrent change."""
        if self._store is None or order_id not in self._context.orders:
            return
        before = self._context.order(order_id)
        stored = self._store.get_order(order_id)
        found = stored.status.value if stored is not None else None
        if stored is None or stored.status != before.status or stored.assigned_line_id != before.assigned_line_id:
            raise ScheduleConflict(order_id, expected=before.status.value, found=found)

    def _commit(
        self,
        work: SchedulingContext,
        changed: Sequence[str],
        *,
        created: Sequence[str] = (),
        removed: Sequence[str] = (),
    ) -> None:
        if self._store is not None:
            for oid in list(changed) + list(removed):
                self._check_unchanged(oid)
            self._store.commit_changes(
                created=[work.order(oid) for oid in created],
                changed=[(work.order(oid), work.records_for(oid), work.assignments.get(oid)) for oid in changed],
                removed=list(removed),
            )
        self._context = work
