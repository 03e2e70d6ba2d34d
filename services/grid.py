"""Planar grid index mapping coordinates to fixed-size square cells."""

from __future__ import annotations

import math
from typing import List, Tuple

from models.errors import InvalidCellKey
from models.records import Coordinate, GridCell

METERS_PER_DEGREE = 111_320.0
EARTH_RADIUS_METERS = 6_371_000.0

_NEIGHBOR_OFFSETS: Tuple[Tuple[int, int], ...] = (
    (-1, -1), (0, -1), (1, -1),
    (-1, 0),           (1, 0),
    (-1, 1),  (0, 1),  (1, 1),
)


class SpatialGrid:
    """Deterministic coordinate <-> cell mapping for a given cell size.

    Longitude and latitude are both scaled by the same meters-per-degree
    constant, so cells are square in degree space rather than on the ground.
    """

    def __init__(self, cell_size_meters: float = 15.0) -> None:
        if cell_size_meters <= 0:
            raise ValueError("Cell size must be positive.")
        self.cell_size = float(cell_size_meters)
        self._degrees_per_cell = self.cell_size / METERS_PER_DEGREE

    def cell_key(self, coord: Coordinate) -> GridCell:
        x = math.floor(coord.lng * METERS_PER_DEGREE / self.cell_size)
        y = math.floor(coord.lat * METERS_PER_DEGREE / self.cell_size)
        return GridCell(x, y)

    def cell_bounds(self, cell: GridCell) -> Tuple[Coordinate, Coordinate]:
        """Return the (southwest, northeast) corners of ``cell``."""
        southwest = Coordinate(
            lat=cell.y * self._degrees_per_cell,
            lng=cell.x * self._degrees_per_cell,
        )
        northeast = Coordinate(
            lat=(cell.y + 1) * self._degrees_per_cell,
            lng=(cell.x + 1) * self._degrees_per_cell,
        )
        return southwest, northeast

    def cell_center(self, cell: GridCell) -> Coordinate:
        return Coordinate(
            lat=(cell.y + 0.5) * self._degrees_per_cell,
            lng=(cell.x + 0.5) * self._degrees_per_cell,
        )

    def neighbors8(self, cell: GridCell) -> List[GridCell]:
        return [GridCell(cell.x + dx, cell.y + dy) for dx, dy in _NEIGHBOR_OFFSETS]

    def grid_distance(self, a: GridCell, b: GridCell) -> float:
        """Euclidean distance between cell centres, in meters."""
        return math.hypot(b.x - a.x, b.y - a.y) * self.cell_size


def format_cell_key(cell: GridCell) -> str:
    return f"{cell.x},{cell.y}"


def parse_cell_key(raw: str) -> GridCell:
    """Parse an ``"x,y"`` key, raising :class:`InvalidCellKey` when malformed."""
    if not isinstance(raw, str):
        raise InvalidCellKey(f"Cell key must be a string, got {type(raw).__name__}.")
    parts = raw.split(",")
    if len(parts) != 2:
        raise InvalidCellKey(f"Malformed cell key {raw!r}.")
    try:
        return GridCell(int(parts[0].strip()), int(parts[1].strip()))
    except ValueError as exc:
        raise InvalidCellKey(f"Malformed cell key {raw!r}.") from exc


def haversine_meters(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance between two coordinates."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.lng - a.lng)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))


def polyline_length_meters(points: List[Coordinate]) -> float:
    return sum(haversine_meters(points[i - 1], points[i]) for i in range(1, len(points)))
