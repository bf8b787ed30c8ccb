"""Error taxonomy for the scheduling core.

None of these are retried internally; they propagate to whoever invoked the
operation (board, CLI) unchanged.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sewplan.scheduling.placement import AmbiguousPlacement


class SchedulingError(Exception):
    """Base class for every error raised by sewplan."""


class InvalidOrderData(SchedulingError, ValueError):
    """Non-positive SMV or quantity handed to capacity/allocation functions."""


class InvalidSplitQuantity(SchedulingError, ValueError):
    def __init__(self, message: str, *, order_id: str | None = None, quantity: int | None = None) -> None:
        super().__init__(message)
        self.order_id = order_id
        self.quantity = quantity


class SchedulingHorizonExceeded(SchedulingError):
    def __init__(self, *, order_id: str, line_id: str, start_date: date, horizon_days: int, remaining: int) -> None:
        super().__init__(
            f"Order {order_id} could not be allocated on line {line_id} within {horizon_days} days "
            f"from {start_date.isoformat()} ({remaining} pcs left)"
        )
        self.order_id = order_id
        self.line_id = line_id
        self.start_date = start_date
        self.horizon_days = horizon_days
        self.remaining = remaining


class UnknownLine(SchedulingError, KeyError):
    def __init__(self, line_id: str) -> None:
        super().__init__(line_id)
        self.line_id = line_id

    def __str__(self) -> str:
        return f"Unknown production line: {self.line_id!r}"


class UnknownOrder(SchedulingError, KeyError):
    def __init__(self, order_id: str) -> None:
        super().__init__(order_id)
        self.order_id = order_id

    def __str__(self) -> str:
        return f"Unknown order: {self.order_id!r}"


class PlacementAmbiguous(SchedulingError):
    """Raised when a drop needs a where-dropped/after-order decision.

    Not a failure: `pending` holds everything needed to resume via
    `resolve_drop`.
    """

    def __init__(self, pending: AmbiguousPlacement) -> None:
        super().__init__(
            f"Order {pending.request.order_id} dropped onto order {pending.target_order_id}: "
            "choose 'where-dropped' or 'after-order'"
        )
        self.pending = pending


class ScheduleConflict(SchedulingError):
    """The stored order changed since it was loaded into this session."""

    def __init__(self, order_id: str, *, expected: str, found: str | None) -> None:
        super().__init__(
            f"Order {order_id} changed in another session (expected {expected}, found {found or 'missing'})"
        )
        self.order_id = order_id
        self.expected = expected
        self.found = found
