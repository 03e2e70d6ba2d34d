from __future__ import annotations

import asyncio
import math
from datetime import datetime, timezone
from typing import Dict

import pytest

from datastore.report_store import ReportStore
from models.errors import PathfindingExhausted
from models.records import GridCell, ReportCategory, SensitivityProfile, SensoryReport
from services.grid import SpatialGrid
from services.pathfinder import (
    PROVIDER,
    GridPathfinder,
    PathfinderPolicy,
    SearchState,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
GRID = SpatialGrid(15.0)
PROFILE = SensitivityProfile()


def _center(x: int, y: int):
    return GRID.cell_center(GridCell(x, y))


def _store(noise_by_cell: Dict[GridCell, int]) -> ReportStore:
    store = ReportStore()
    for index, (cell, noise) in enumerate(noise_by_cell.items()):
        store.add(
            cell,
            SensoryReport(
                report_id=f"r{index}",
                location=GRID.cell_center(cell),
                category=ReportCategory.persistent,
                created_at=NOW,
                noise=noise,
            ),
        )
    return store


def _path_length(cells) -> float:
    return sum(GRID.grid_distance(a, b) for a, b in zip(cells, cells[1:]))


@pytest.fixture()
def pathfinder() -> GridPathfinder:
    return GridPathfinder(GRID)


def test_straight_path_without_data(pathfinder: GridPathfinder) -> None:
    planned = pathfinder.find_path(_center(0, 0), _center(5, 0), ReportStore(), PROFILE, NOW)

    assert planned.state == SearchState.found
    assert not planned.degraded
    assert planned.cells == [GridCell(x, 0) for x in range(6)]
    assert planned.route.provider == PROVIDER
    assert planned.route.points[0] == _center(0, 0)
    assert planned.route.points[-1] == _center(5, 0)
    assert planned.route.distance_meters == pytest.approx(75, rel=5e-3)
    assert planned.route.duration_seconds == pytest.approx(
        planned.route.distance_meters / 1.4
    )


def test_diagonal_path_without_data(pathfinder: GridPathfinder) -> None:
    planned = pathfinder.find_path(_center(0, 0), _center(3, 3), ReportStore(), PROFILE, NOW)

    assert planned.cells == [GridCell(i, i) for i in range(4)]


def test_path_cost_equals_octile_distance_without_data(pathfinder: GridPathfinder) -> None:
    planned = pathfinder.find_path(_center(0, 0), _center(4, 2), ReportStore(), PROFILE, NOW)

    assert planned.cells[0] == GridCell(0, 0)
    assert planned.cells[-1] == GridCell(4, 2)
    assert _path_length(planned.cells) == pytest.approx(2 * 15 * math.sqrt(2) + 2 * 15)


def test_path_detours_around_uncomfortable_cell(pathfinder: GridPathfinder) -> None:
    store = _store({GridCell(2, 0): 10})

    planned = pathfinder.find_path(_center(0, 0), _center(4, 0), store, PROFILE, NOW)

    assert planned.state == SearchState.found
    assert GridCell(2, 0) not in planned.cells
    assert len(planned.cells) == 5


def test_mild_discomfort_is_crossed_rather_than_detoured(pathfinder: GridPathfinder) -> None:
    store = _store({GridCell(2, 0): 1})

    planned = pathfinder.find_path(_center(0, 0), _center(4, 0), store, PROFILE, NOW)

    assert planned.cells == [GridCell(x, 0) for x in range(5)]


def test_sensory_multiplier(pathfinder: GridPathfinder) -> None:
    store = _store({GridCell(1, 1): 10, GridCell(2, 2): 5})
    quiet = SensitivityProfile(noise=0, light=0, odor=0, crowd=0)

    assert pathfinder.sensory_multiplier(GridCell(0, 0), store, PROFILE, NOW) == 0.0
    assert pathfinder.sensory_multiplier(GridCell(1, 1), store, PROFILE, NOW) == pytest.approx(4.0)
    assert pathfinder.sensory_multiplier(GridCell(2, 2), store, PROFILE, NOW) == pytest.approx(2.0)
    assert pathfinder.sensory_multiplier(GridCell(1, 1), store, quiet, NOW) == 0.0


def test_start_equals_goal(pathfinder: GridPathfinder) -> None:
    planned = pathfinder.find_path(_center(7, 7), _center(7, 7), ReportStore(), PROFILE, NOW)

    assert planned.state == SearchState.found
    assert planned.cells == [GridCell(7, 7)]
    assert planned.iterations == 1
    assert planned.route.distance_meters == 0


def test_unreachable_goal_exhausts_and_degrades(pathfinder: GridPathfinder) -> None:
    start, end = _center(0, 0), _center(10, 0)

    planned = pathfinder.find_path(
        start,
        end,
        ReportStore(),
        PROFILE,
        NOW,
        is_passable=lambda cell: abs(cell.x) <= 3 and abs(cell.y) <= 3,
    )

    assert planned.state == SearchState.exhausted
    assert planned.degraded
    assert planned.iterations == 49
    assert planned.route.points == (start, end)
    assert planned.route.provider == PROVIDER
    assert planned.cells == []


def test_iteration_cap_aborts_with_straight_line() -> None:
    pathfinder = GridPathfinder(GRID, policy=PathfinderPolicy(max_iterations=50, yield_every=10))
    start, end = _center(0, 0), _center(1000, 1000)

    planned = pathfinder.find_path(start, end, ReportStore(), PROFILE, NOW)

    assert planned.state == SearchState.aborted
    assert planned.degraded
    assert planned.iterations == 50
    assert planned.route.points == (start, end)
    assert planned.route.duration_seconds == pytest.approx(planned.route.distance_meters / 1.4)


def test_search_yields_every_configured_interval() -> None:
    pathfinder = GridPathfinder(GRID, policy=PathfinderPolicy(yield_every=2))
    search = pathfinder.new_search(_center(0, 0), _center(5, 0), ReportStore(), PROFILE, NOW)
    assert search.state == SearchState.ready

    steps = search.steps()
    yielded = []
    with pytest.raises(StopIteration) as stop:
        while True:
            yielded.append(next(steps))

    assert yielded == [2, 4]
    assert search.iterations == 6
    assert search.state == SearchState.found
    assert stop.value.value == [GridCell(x, 0) for x in range(6)]


def test_search_generator_raises_when_exhausted() -> None:
    pathfinder = GridPathfinder(GRID)
    search = pathfinder.new_search(
        _center(0, 0),
        _center(5, 0),
        ReportStore(),
        PROFILE,
        NOW,
        is_passable=lambda cell: cell == GridCell(0, 0),
    )

    with pytest.raises(PathfindingExhausted) as excinfo:
        list(search.steps())

    assert excinfo.value.state == "exhausted"
    assert excinfo.value.iterations == 1
    assert search.state == SearchState.exhausted


def test_async_driver_matches_sync_driver() -> None:
    pathfinder = GridPathfinder(GRID, policy=PathfinderPolicy(yield_every=1))
    store = _store({GridCell(2, 0): 10})
    start, end = _center(0, 0), _center(4, 0)

    sync_plan = pathfinder.find_path(start, end, store, PROFILE, NOW)
    async_plan = asyncio.run(pathfinder.find_path_async(start, end, store, PROFILE, NOW))

    assert async_plan.state == SearchState.found
    assert async_plan.cells == sync_plan.cells
    assert async_plan.iterations == sync_plan.iterations


def test_async_driver_degrades_like_sync_driver() -> None:
    pathfinder = GridPathfinder(GRID, policy=PathfinderPolicy(max_iterations=20, yield_every=5))
    start, end = _center(0, 0), _center(500, 0)

    planned = asyncio.run(pathfinder.find_path_async(start, end, ReportStore(), PROFILE, NOW))

    assert planned.state == SearchState.aborted
    assert planned.route.points == (start, end)
