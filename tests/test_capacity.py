from __future__ import annotations

import pytest

from sewplan.core.errors import InvalidOrderData
from sewplan.core.models import CapacityBasis, ProductionLine
from sewplan.scheduling.capacity import daily_output, full_capacity, load_units, operator_minutes, pieces_for_units


def _line(capacity, basis=CapacityBasis.PIECES):
    return ProductionLine(line_id="L1", name="L1", capacity=capacity, basis=basis)


def test_pieces_line_output_is_floored():
    assert daily_output(_line(100), 10.0, 85) == 85
    assert daily_output(_line(33), 10.0, 50) == 16
    assert full_capacity(_line(120), 4.0) == 120


def test_minutes_line_output_divides_by_smv():
    line = _line(540, CapacityBasis.MINUTES)
    assert full_capacity(line, 2.5) == 216
    assert daily_output(line, 2.5, 50) == 108
    assert load_units(line, 2.5, 10) == pytest.approx(25.0)
    assert pieces_for_units(line, 2.5, 26.0) == 10


def test_pieces_line_load_is_the_quantity():
    line = _line(100)
    assert load_units(line, 12.0, 7) == 7
    assert pieces_for_units(line, 12.0, 7.5) == 7
    assert pieces_for_units(line, 12.0, 0) == 0


def test_zero_efficiency_yields_nothing():
    assert daily_output(_line(100), 10.0, 0) == 0


@pytest.mark.parametrize("smv", [0, -1.5, None, "abc"])
def test_invalid_smv_raises(smv):
    with pytest.raises(InvalidOrderData):
        daily_output(_line(540, CapacityBasis.MINUTES), smv, 100)


def test_staffed_line_sews_540_minutes_per_operator():
    assert operator_minutes(20) == 10800
    line = _line(operator_minutes(20), CapacityBasis.MINUTES)
    assert full_capacity(line, 10.0) == 1080
    assert daily_output(line, 10.0, 50) == 540


@pytest.mark.parametrize("operators", [0, -3])
def test_operator_count_must_be_positive(operators):
    with pytest.raises(InvalidOrderData):
        operator_minutes(operators)
