from __future__ import annotations

import math

from sewplan.core.errors import InvalidOrderData
from sewplan.core.models import CapacityBasis, ProductionLine
from sewplan.scheduling.efficiency import FULL_EFFICIENCY

# one shift of sewing time per machine operator
MINUTES_PER_OPERATOR = 540


def _check_smv(smv: float) -> float:
    try:
        smv_f = float(smv)
    except (TypeError, ValueError):
        raise InvalidOrderData(f"invalid SMV: {smv!r}") from None
    if not smv_f > 0:
        raise InvalidOrderData(f"SMV must be positive, got {smv!r}")
    return smv_f


def _floor(value: float) -> int:
    # round first so 0.7 * 100 style float noise does not lose a piece
    return max(0, math.floor(round(value, 6)))


def daily_output(line: ProductionLine, smv: float, efficiency_pct: float) -> int:
    """Whole pieces `line` can sew in one day for an order of the given SMV."""
    smv_f = _check_smv(smv)
    raw = float(line.capacity) * float(efficiency_pct) / 100.0
    if line.basis == CapacityBasis.MINUTES:
        raw = raw / smv_f
    return _floor(raw)


def full_capacity(line: ProductionLine, smv: float) -> int:
    """Line ceiling for one day: nothing scheduled on a cell may exceed this."""
    return daily_output(line, smv, FULL_EFFICIENCY)


def load_units(line: ProductionLine, smv: float, quantity: int) -> float:
    """Capacity consumed by `quantity` pieces, in the line's own unit."""
    if line.basis == CapacityBasis.MINUTES:
        return float(quantity) * _check_smv(smv)
    return float(quantity)


def pieces_for_units(line: ProductionLine, smv: float, units: float) -> int:
    """How many whole pieces fit into `units` of free line capacity."""
    if units <= 0:
        return 0
    if line.basis == CapacityBasis.MINUTES:
        return _floor(units / _check_smv(smv))
    return _floor(units)


def operator_minutes(operators: int, minutes_per_operator: float = MINUTES_PER_OPERATOR) -> float:
    """Daily production minutes of a minutes-basis line staffed by `operators`.

    A line with `operator_minutes(20)` sews `540 * 20 / smv` pieces a day at
    full efficiency.
    """
    if int(operators) <= 0:
        raise InvalidOrderData(f"operator count must be positive, got {operators!r}")
    return float(minutes_per_operator) * int(operators)
