"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple

DIMENSIONS: Tuple[str, ...] = ("noise", "light", "odor", "crowd")


class ReportCategory(str, Enum):
    """How long a reported condition is expected to last."""

    transient = "transient"
    persistent = "persistent"


class RouteMode(str, Enum):
    sensory = "sensory"
    time = "time"


class DiscomfortLevel(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class Coordinate(NamedTuple):
    lat: float
    lng: float


class GridCell(NamedTuple):
    """Integer bucket of the planar grid; see ``services.grid``."""

    x: int
    y: int


@dataclass(frozen=True, slots=True)
class Feedback:
    """Community agree/disagree counters attached to a report."""

    agree: int = 0
    disagree: int = 0

    @property
    def net(self) -> int:
        return self.agree - self.disagree


@dataclass(frozen=True, slots=True)
class SensoryReport:
    """A single crowd-sourced observation.

    Each dimension is ``None`` when the reporter skipped it, which is distinct
    from an observed ``0``.
    """

    report_id: str
    location: Coordinate
    category: ReportCategory
    created_at: datetime
    noise: Optional[int] = None
    light: Optional[int] = None
    odor: Optional[int] = None
    crowd: Optional[int] = None
    duration_minutes: Optional[int] = None
    wheelchair: bool = False
    feedback: Feedback = field(default_factory=Feedback)

    def dimension_values(self) -> Dict[str, int]:
        values = {}
        for name in DIMENSIONS:
            value = getattr(self, name)
            if value is not None:
                values[name] = value
        return values

    @property
    def has_dimensions(self) -> bool:
        return any(getattr(self, name) is not None for name in DIMENSIONS)


@dataclass(frozen=True, slots=True)
class ReportDraft:
    """Reporter-supplied fields of a report before it is stored."""

    location: Coordinate
    category: ReportCategory
    noise: Optional[int] = None
    light: Optional[int] = None
    odor: Optional[int] = None
    crowd: Optional[int] = None
    duration_minutes: Optional[int] = None
    wheelchair: bool = False


@dataclass(frozen=True, slots=True)
class SensitivityProfile:
    """Per-dimension sensitivity, 0-10; higher means more easily bothered."""

    noise: int = 5
    light: int = 5
    odor: int = 5
    crowd: int = 5

    def threshold(self, dimension: str) -> int:
        return getattr(self, dimension)


@dataclass(frozen=True, slots=True)
class DimensionLevels:
    """Decay-weighted averages per dimension; ``None`` means no data."""

    noise: Optional[float] = None
    light: Optional[float] = None
    odor: Optional[float] = None
    crowd: Optional[float] = None

    def present(self) -> Dict[str, float]:
        return {
            name: getattr(self, name)
            for name in DIMENSIONS
            if getattr(self, name) is not None
        }

    @property
    def is_empty(self) -> bool:
        return not self.present()


@dataclass(frozen=True, slots=True)
class CandidateRoute:
    """A polyline supplied by an external router."""

    points: Tuple[Coordinate, ...]
    distance_meters: float
    duration_seconds: float
    provider: Optional[str] = None


@dataclass(frozen=True, slots=True)
class RouteSegment:
    """Discomfort detail at one sampled point of a route."""

    point: Coordinate
    cell: GridCell
    score: float
    level: DiscomfortLevel
    dimensions: DimensionLevels


@dataclass(slots=True)
class ScoredRoute:
    candidate: CandidateRoute
    sensory_score: float
    combined_cost: float = 0.0
    segments: List[RouteSegment] = field(default_factory=list)

    @property
    def points(self) -> Tuple[Coordinate, ...]:
        return self.candidate.points

    @property
    def distance_meters(self) -> float:
        return self.candidate.distance_meters

    @property
    def duration_seconds(self) -> float:
        return self.candidate.duration_seconds
