from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    # planned outside the board (feed rows carrying plan dates); not in the pending pool
    EXTERNAL = "external"


class CapacityBasis(str, Enum):
    # pieces: capacity is pieces/day at 100% efficiency
    # minutes: capacity is available production minutes/day, divided by SMV
    PIECES = "pieces"
    MINUTES = "minutes"


@dataclass(frozen=True)
class Order:
    order_id: str
    po_number: str
    style_id: str
    order_quantity: int
    smv: float
    mo_count: int = 0
    cut_quantity: int = 0
    issue_quantity: int = 0
    status: OrderStatus = OrderStatus.PENDING
    base_po_number: str | None = None

    # Scheduling info (derived from allocation records)
    assigned_line_id: str | None = None
    plan_start_date: date | None = None
    plan_end_date: date | None = None
    actual_production: dict[str, int] = field(default_factory=dict)

    @property
    def is_scheduled(self) -> bool:
        return self.status == OrderStatus.SCHEDULED

    @property
    def allocated_quantity(self) -> int:
        return sum(int(q) for q in self.actual_production.values())

    @property
    def lineage_po(self) -> str:
        """PO number shared by every fragment split from the same origin."""
        return self.base_po_number or self.po_number


@dataclass(frozen=True)
class ProductionLine:
    line_id: str
    name: str
    capacity: float
    group_id: str | None = None
    basis: CapacityBasis = CapacityBasis.PIECES


@dataclass(frozen=True)
class Holiday:
    holiday_date: date
    name: str = ""


@dataclass(frozen=True)
class EfficiencyStep:
    day: int
    efficiency: float


@dataclass(frozen=True)
class RampUpPlan:
    plan_id: str
    name: str
    efficiencies: tuple[EfficiencyStep, ...]
    final_efficiency: float

    def __post_init__(self) -> None:
        steps = tuple(sorted(self.efficiencies, key=lambda s: s.day))
        if not steps:
            raise ValueError(f"ramp-up plan {self.plan_id!r} has no efficiency steps")
        for s in steps:
            if int(s.day) < 1:
                raise ValueError(f"ramp-up day must be >= 1, got {s.day!r}")
            if not 0 <= float(s.efficiency) <= 100:
                raise ValueError(f"efficiency out of range 0-100: {s.efficiency!r}")
        if not 0 <= float(self.final_efficiency) <= 100:
            raise ValueError(f"final efficiency out of range 0-100: {self.final_efficiency!r}")
        object.__setattr__(self, "efficiencies", steps)


@dataclass(frozen=True)
class AllocationRecord:
    order_id: str
    line_id: str
    alloc_date: date
    quantity: int


@dataclass(frozen=True)
class LineAssignment:
    """Where an order was placed: the requested start, not the first produced day."""

    order_id: str
    line_id: str
    start_date: date
    ramp_up_plan_id: str | None = None
    sequence: int = 0


def default_ramp_up_plans() -> list[RampUpPlan]:
    return [
        RampUpPlan(
            plan_id="1",
            name="Standard Plan",
            efficiencies=(
                EfficiencyStep(day=1, efficiency=50),
                EfficiencyStep(day=2, efficiency=70),
                EfficiencyStep(day=3, efficiency=85),
                EfficiencyStep(day=4, efficiency=90),
            ),
            final_efficiency=90,
        ),
        RampUpPlan(
            plan_id="2",
            name="Fast Track Plan",
            efficiencies=(
                EfficiencyStep(day=1, efficiency=70),
                EfficiencyStep(day=2, efficiency=85),
                EfficiencyStep(day=3, efficiency=95),
            ),
            final_efficiency=95,
        ),
    ]


@dataclass
class AuditEntry:
    id: int
    timestamp: str
    category: str
    message: str
    details: str | None = None
