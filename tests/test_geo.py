import math

from civic_pulse.utils.geo import (
    cell_key,
    covering_cells,
    distance_between,
    haversine_meters,
    is_valid_coordinates,
)


def test_haversine_zero_distance():
    assert haversine_meters(12.97, 77.59, 12.97, 77.59) == 0


def test_haversine_one_degree_latitude():
    distance = haversine_meters(0, 0, 1, 0)
    assert abs(distance - 111195) < 1


def test_distance_between_uses_lng_lat_order():
    a = [77.5946, 12.9716]
    b = [77.5946, 12.9726]
    assert abs(distance_between(a, b) - haversine_meters(12.9716, 77.5946, 12.9726, 77.5946)) < 1e-9
    assert 100 < distance_between(a, b) < 120


def test_valid_coordinates():
    assert is_valid_coordinates([77.5946, 12.9716])
    assert is_valid_coordinates((-180, 90))
    assert is_valid_coordinates([0, 0])


def test_invalid_coordinates():
    assert not is_valid_coordinates([200, 10])
    assert not is_valid_coordinates([10, -91])
    assert not is_valid_coordinates([1])
    assert not is_valid_coordinates([1, 2, 3])
    assert not is_valid_coordinates(["77.5", "12.9"])
    assert not is_valid_coordinates([math.nan, 0])
    assert not is_valid_coordinates([math.inf, 0])
    assert not is_valid_coordinates([True, 1])
    assert not is_valid_coordinates(None)


def test_cell_key_floors_negative_coordinates():
    assert cell_key(0.01, 0.01, 0.05) == "0:0"
    assert cell_key(-0.01, -0.01, 0.05) == "-1:-1"


def test_covering_cells_includes_center_cell():
    cells = covering_cells(77.5946, 12.9716, 100, 0.05)
    assert cell_key(77.5946, 12.9716, 0.05) in cells
    assert len(cells) <= 4


def test_covering_cells_spans_cell_boundary():
    # 50m either side of a cell edge on the latitude axis
    cells = covering_cells(77.52, 12.95, 100, 0.05)
    assert "258:1550" in cells
    assert "259:1550" in cells


def test_covering_cells_gives_up_on_wide_radius():
    assert covering_cells(77.5946, 12.9716, 1_000_000, 0.05) is None


def test_covering_cells_gives_up_near_pole_and_antimeridian():
    assert covering_cells(0, 89.99, 5000, 0.05) is None
    assert covering_cells(179.999, 0, 5000, 0.05) is None
