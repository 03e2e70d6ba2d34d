"""A* over the 8-connected grid, used when no external router answered.

A search always produces a usable route: if the goal is not reached within
the expansion cap, or the open set runs dry, the caller gets a straight line
between the two endpoints flagged as degraded.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Generator, List, Optional

from models.errors import PathfindingExhausted
from models.records import CandidateRoute, Coordinate, GridCell, SensitivityProfile
from services.decay import DecayModel, ReportSource
from services.grid import SpatialGrid, haversine_meters, polyline_length_meters
from services.personalization import MARKER_UNKNOWN_SCORE, PersonalizationModel
from services.priority_queue import PriorityQueue

logger = logging.getLogger(__name__)

PROVIDER = "grid-fallback"

Passable = Callable[[GridCell], bool]


class SearchState(str, Enum):
    ready = "ready"
    searching = "searching"
    found = "found"
    exhausted = "exhausted"
    aborted = "aborted"


@dataclass(frozen=True)
class PathfinderPolicy:
    max_iterations: int = 10_000
    yield_every: int = 1_000
    sensory_cost_scale: float = 2.5
    max_sensory_multiplier: float = 4.0
    walking_speed_mps: float = 1.4

    @classmethod
    def from_settings(cls, settings) -> "PathfinderPolicy":
        return cls(
            max_iterations=settings.pathfinder_max_iterations,
            yield_every=settings.pathfinder_yield_every,
            max_sensory_multiplier=settings.max_sensory_multiplier,
            walking_speed_mps=settings.walking_speed_mps,
        )


@dataclass
class PlannedRoute:
    route: CandidateRoute
    state: SearchState
    iterations: int
    cells: List[GridCell] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.state != SearchState.found


class GridSearch:
    """One A* invocation: Ready -> Searching -> Found | Exhausted | Aborted."""

    def __init__(
        self,
        pathfinder: "GridPathfinder",
        start: GridCell,
        goal: GridCell,
        source: ReportSource,
        profile: SensitivityProfile,
        now: datetime,
        is_passable: Optional[Passable] = None,
    ) -> None:
        self.pathfinder = pathfinder
        self.start = start
        self.goal = goal
        self.source = source
        self.profile = profile
        self.now = now
        self.is_passable = is_passable
        self.state = SearchState.ready
        self.iterations = 0
        self._multipliers: Dict[GridCell, float] = {}

    def steps(self) -> Generator[int, None, List[GridCell]]:
        """Run the search, yielding the expansion count at each yield point.

        Returns the cell path on success; raises :class:`PathfindingExhausted`
        otherwise.
        """
        grid = self.pathfinder.grid
        policy = self.pathfinder.policy
        self.state = SearchState.searching

        open_set: PriorityQueue[GridCell] = PriorityQueue()
        g_score: Dict[GridCell, float] = {self.start: 0.0}
        came_from: Dict[GridCell, GridCell] = {}
        closed: set[GridCell] = set()
        open_set.enqueue(self.start, grid.grid_distance(self.start, self.goal))

        while not open_set.is_empty():
            if self.iterations >= policy.max_iterations:
                self.state = SearchState.aborted
                raise PathfindingExhausted(self.state.value, self.iterations)

            current, _ = open_set.dequeue()
            if current in closed:
                continue
            self.iterations += 1

            if current == self.goal:
                self.state = SearchState.found
                return self._reconstruct(came_from, current)

            closed.add(current)
            for neighbor in grid.neighbors8(current):
                if neighbor in closed:
                    continue
                if self.is_passable is not None and not self.is_passable(neighbor):
                    continue
                tentative = g_score[current] + self.movement_cost(current, neighbor)
                if tentative < g_score.get(neighbor, math.inf):
                    came_from[neighbor] = current
                    g_score[neighbor] = tentative
                    open_set.enqueue(neighbor, tentative + grid.grid_distance(neighbor, self.goal))

            if self.iterations % policy.yield_every == 0:
                yield self.iterations

        self.state = SearchState.exhausted
        raise PathfindingExhausted(self.state.value, self.iterations)

    def movement_cost(self, current: GridCell, neighbor: GridCell) -> float:
        base = self.pathfinder.grid.grid_distance(current, neighbor)
        multiplier = self._multipliers.get(neighbor)
        if multiplier is None:
            multiplier = self.pathfinder.sensory_multiplier(
                neighbor, self.source, self.profile, self.now
            )
            self._multipliers[neighbor] = multiplier
        return base * (1 + multiplier)

    @staticmethod
    def _reconstruct(came_from: Dict[GridCell, GridCell], goal: GridCell) -> List[GridCell]:
        path = [goal]
        node = goal
        while node in came_from:
            node = came_from[node]
            path.append(node)
        path.reverse()
        return path


class GridPathfinder:
    def __init__(
        self,
        grid: SpatialGrid,
        decay_model: Optional[DecayModel] = None,
        personalization: Optional[PersonalizationModel] = None,
        policy: Optional[PathfinderPolicy] = None,
    ) -> None:
        self.grid = grid
        self.decay_model = decay_model or DecayModel()
        self.personalization = personalization or PersonalizationModel()
        self.policy = policy or PathfinderPolicy()

    def sensory_multiplier(
        self,
        cell: GridCell,
        source: ReportSource,
        profile: SensitivityProfile,
        now: datetime,
    ) -> float:
        """Extra cost factor for entering ``cell``; 0 where nothing is known."""
        levels = self.decay_model.aggregate_cell(source, cell, now)
        if levels.is_empty:
            return 0.0
        score = self.personalization.personalized_score(
            levels, profile, unknown=MARKER_UNKNOWN_SCORE
        )
        scaled = score / self.policy.sensory_cost_scale
        return min(self.policy.max_sensory_multiplier, max(0.0, scaled))

    def new_search(
        self,
        start: Coordinate,
        end: Coordinate,
        source: ReportSource,
        profile: SensitivityProfile,
        now: datetime,
        is_passable: Optional[Passable] = None,
    ) -> GridSearch:
        return GridSearch(
            self,
            start=self.grid.cell_key(start),
            goal=self.grid.cell_key(end),
            source=source,
            profile=profile,
            now=now,
            is_passable=is_passable,
        )

    def find_path(
        self,
        start: Coordinate,
        end: Coordinate,
        source: ReportSource,
        profile: SensitivityProfile,
        now: datetime,
        is_passable: Optional[Passable] = None,
    ) -> PlannedRoute:
        search = self.new_search(start, end, source, profile, now, is_passable)
        steps = search.steps()
        while True:
            try:
                next(steps)
            except StopIteration as stop:
                return self._route_from_cells(stop.value, search)
            except PathfindingExhausted as exc:
                return self._degraded(start, end, search, exc)

    async def find_path_async(
        self,
        start: Coordinate,
        end: Coordinate,
        source: ReportSource,
        profile: SensitivityProfile,
        now: datetime,
        is_passable: Optional[Passable] = None,
    ) -> PlannedRoute:
        """Same as :meth:`find_path` but hands control back to the event loop
        every ``yield_every`` expansions."""
        search = self.new_search(start, end, source, profile, now, is_passable)
        steps = search.steps()
        while True:
            try:
                next(steps)
            except StopIteration as stop:
                return self._route_from_cells(stop.value, search)
            except PathfindingExhausted as exc:
                return self._degraded(start, end, search, exc)
            await asyncio.sleep(0)

    def _route_from_cells(self, cells: List[GridCell], search: GridSearch) -> PlannedRoute:
        points = [self.grid.cell_center(cell) for cell in cells]
        distance = polyline_length_meters(points)
        logger.debug(
            "Grid path found",
            extra={"iterations": search.iterations, "search_state": search.state.value},
        )
        return PlannedRoute(
            route=CandidateRoute(
                points=tuple(points),
                distance_meters=distance,
                duration_seconds=distance / self.policy.walking_speed_mps,
                provider=PROVIDER,
            ),
            state=search.state,
            iterations=search.iterations,
            cells=cells,
        )

    def _degraded(
        self,
        start: Coordinate,
        end: Coordinate,
        search: GridSearch,
        exc: PathfindingExhausted,
    ) -> PlannedRoute:
        logger.warning(
            "Grid search failed, falling back to a straight line",
            extra={
                "iterations": exc.iterations,
                "search_state": exc.state,
                "provider": PROVIDER,
            },
        )
        distance = haversine_meters(start, end)
        return PlannedRoute(
            route=CandidateRoute(
                points=(start, end),
                distance_meters=distance,
                duration_seconds=distance / self.policy.walking_speed_mps,
                provider=PROVIDER,
            ),
            state=search.state,
            iterations=search.iterations,
        )

