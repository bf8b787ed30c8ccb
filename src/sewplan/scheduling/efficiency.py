from __future__ import annotations

from bisect import bisect_right

from sewplan.core.errors import InvalidOrderData
from sewplan.core.models import RampUpPlan

FULL_EFFICIENCY = 100.0


def resolve_efficiency(plan: RampUpPlan | None, day_offset: int) -> float:
    """Efficiency (%) to apply on the `day_offset`-th production day of an order.

    Rules:
    - greatest listed `day <= day_offset` wins;
    - below the first listed day, the first entry applies;
    - beyond the last listed day, `final_efficiency` applies;
    - no plan means constant full capacity.
    """
    if int(day_offset) < 1:
        raise InvalidOrderData(f"day offset must be >= 1, got {day_offset!r}")
    if plan is None:
        return FULL_EFFICIENCY

    steps = plan.efficiencies
    if day_offset > steps[-1].day:
        return float(plan.final_efficiency)

    days = [s.day for s in steps]
    idx = bisect_right(days, int(day_offset)) - 1
    if idx < 0:
        return float(steps[0].efficiency)
    return float(steps[idx].efficiency)
