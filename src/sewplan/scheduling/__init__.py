"""Production line scheduling core.

Pure functions over an explicit `SchedulingContext`, plus the
`SchedulingBoard` that ties them to a session and a persistence store.
"""

from sewplan.scheduling.allocation import (
    DEFAULT_HORIZON_DAYS,
    CapacityLedger,
    CellState,
    allocate_order,
    allocate_queue,
    reflow_line,
)
from sewplan.scheduling.board import OrderStore, SchedulingBoard
from sewplan.scheduling.capacity import daily_output, full_capacity
from sewplan.scheduling.context import SchedulingContext, derive_order
from sewplan.scheduling.efficiency import resolve_efficiency
from sewplan.scheduling.placement import (
    AmbiguousPlacement,
    DragState,
    DropChoice,
    DropRequest,
    Placement,
    apply_placement,
    place_order,
    propose_drop,
    resolve_drop,
)
from sewplan.scheduling.splitting import merge_fragments, move_to_pending, split_order

__all__ = [
    "DEFAULT_HORIZON_DAYS",
    "AmbiguousPlacement",
    "CapacityLedger",
    "CellState",
    "DragState",
    "DropChoice",
    "DropRequest",
    "OrderStore",
    "Placement",
    "SchedulingBoard",
    "SchedulingContext",
    "allocate_order",
    "allocate_queue",
    "apply_placement",
    "daily_output",
    "derive_order",
    "full_capacity",
    "merge_fragments",
    "move_to_pending",
    "place_order",
    "propose_drop",
    "reflow_line",
    "resolve_drop",
    "resolve_efficiency",
    "split_order",
]
