"""Domain models and error types shared by the scheduling core and data layer."""

from sewplan.core.errors import (
    InvalidOrderData,
    InvalidSplitQuantity,
    PlacementAmbiguous,
    ScheduleConflict,
    SchedulingError,
    SchedulingHorizonExceeded,
    UnknownLine,
    UnknownOrder,
)
from sewplan.core.models import (
    AllocationRecord,
    AuditEntry,
    CapacityBasis,
    EfficiencyStep,
    Holiday,
    LineAssignment,
    Order,
    OrderStatus,
    ProductionLine,
    RampUpPlan,
    default_ramp_up_plans,
)

__all__ = [
    "AllocationRecord",
    "AuditEntry",
    "CapacityBasis",
    "EfficiencyStep",
    "Holiday",
    "InvalidOrderData",
    "InvalidSplitQuantity",
    "LineAssignment",
    "Order",
    "OrderStatus",
    "PlacementAmbiguous",
    "ProductionLine",
    "RampUpPlan",
    "ScheduleConflict",
    "SchedulingError",
    "SchedulingHorizonExceeded",
    "UnknownLine",
    "UnknownOrder",
    "default_ramp_up_plans",
]
