"""Unit tests for the planar grid index."""

from __future__ import annotations

import math

import pytest

from models.errors import InvalidCellKey
from models.records import Coordinate, GridCell
from services.grid import (
    SpatialGrid,
    format_cell_key,
    haversine_meters,
    parse_cell_key,
    polyline_length_meters,
)


@pytest.fixture()
def grid() -> SpatialGrid:
    return SpatialGrid(cell_size_meters=15.0)


def test_cell_key_is_deterministic(grid: SpatialGrid) -> None:
    point = Coordinate(37.5665, 126.9780)

    assert grid.cell_key(point) == grid.cell_key(Coordinate(37.5665, 126.9780))
    assert grid.cell_key(point) == SpatialGrid(15.0).cell_key(point)


def test_cell_key_matches_floor_of_scaled_coordinates(grid: SpatialGrid) -> None:
    point = Coordinate(37.5665, 126.9780)

    cell = grid.cell_key(point)

    assert cell.x == math.floor(126.9780 * 111_320 / 15)
    assert cell.y == math.floor(37.5665 * 111_320 / 15)


def test_points_in_same_cell_share_key(grid: SpatialGrid) -> None:
    cell = GridCell(8000, -120)
    southwest, northeast = grid.cell_bounds(cell)
    inside = Coordinate(
        lat=southwest.lat + (northeast.lat - southwest.lat) * 0.2,
        lng=southwest.lng + (northeast.lng - southwest.lng) * 0.9,
    )

    assert grid.cell_key(inside) == cell
    assert grid.cell_key(grid.cell_center(cell)) == cell


@pytest.mark.parametrize(
    "point",
    [
        Coordinate(37.5665, 126.9780),
        Coordinate(-33.8688, 151.2093),
        Coordinate(40.7128, -74.0060),
        Coordinate(0.0, 0.0),
    ],
)
def test_center_round_trip_is_idempotent(grid: SpatialGrid, point: Coordinate) -> None:
    cell = grid.cell_key(point)

    assert grid.cell_key(grid.cell_center(cell)) == cell


def test_cell_bounds_contain_center(grid: SpatialGrid) -> None:
    cell = GridCell(3, 4)
    southwest, northeast = grid.cell_bounds(cell)
    center = grid.cell_center(cell)

    assert southwest.lat < center.lat < northeast.lat
    assert southwest.lng < center.lng < northeast.lng
    assert northeast.lat - southwest.lat == pytest.approx(15 / 111_320)


def test_neighbors8_returns_moore_neighborhood(grid: SpatialGrid) -> None:
    neighbors = grid.neighbors8(GridCell(0, 0))

    assert len(neighbors) == 8
    assert GridCell(0, 0) not in neighbors
    assert set(neighbors) == {
        GridCell(dx, dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1) if (dx, dy) != (0, 0)
    }


def test_grid_distance_scales_by_cell_size(grid: SpatialGrid) -> None:
    assert grid.grid_distance(GridCell(0, 0), GridCell(3, 4)) == pytest.approx(75.0)
    assert grid.grid_distance(GridCell(0, 0), GridCell(1, 1)) == pytest.approx(15 * math.sqrt(2))
    assert grid.grid_distance(GridCell(2, 2), GridCell(2, 2)) == 0.0


def test_cell_key_text_round_trip() -> None:
    assert format_cell_key(GridCell(-5, 12)) == "-5,12"
    assert parse_cell_key("-5,12") == GridCell(-5, 12)
    assert parse_cell_key(" 7 , 8 ") == GridCell(7, 8)


@pytest.mark.parametrize("raw", ["", "1", "1,2,3", "a,b", "1.5,2", None])
def test_parse_cell_key_rejects_malformed_keys(raw) -> None:
    with pytest.raises(InvalidCellKey):
        parse_cell_key(raw)


def test_invalid_cell_size_is_rejected() -> None:
    with pytest.raises(ValueError):
        SpatialGrid(0)


def test_haversine_and_polyline_length() -> None:
    a = Coordinate(0.0, 0.0)
    b = Coordinate(0.0, 1.0)

    assert haversine_meters(a, a) == 0.0
    assert haversine_meters(a, b) == pytest.approx(111_195, rel=1e-3)
    assert polyline_length_meters([a, b, a]) == pytest.approx(2 * haversine_meters(a, b))
    assert polyline_length_meters([a]) == 0
