"""Scores externally supplied candidate routes and picks the most comfortable one."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from models.errors import NoCandidates, NoRouteWithinBudget
from models.records import (
    CandidateRoute,
    RouteMode,
    RouteSegment,
    ScoredRoute,
    SensitivityProfile,
)
from services.decay import DecayModel, ReportSource
from services.grid import SpatialGrid
from services.personalization import (
    ROUTE_UNKNOWN_SCORE,
    PersonalizationModel,
    classify_level,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlendPolicy:
    """Tunable weights for turning a route's metrics into one cost."""

    sample_count: int = 20
    time_budget_ratio: float = 1.5
    sensory_mode_weight: float = 0.7
    time_mode_sensory_weight: float = 0.2
    time_mode_sensory_cap: float = 0.1

    @classmethod
    def from_settings(cls, settings) -> "BlendPolicy":
        return cls(
            sample_count=settings.route_samples,
            time_budget_ratio=settings.time_budget_ratio,
            sensory_mode_weight=settings.sensory_mode_weight,
            time_mode_sensory_weight=settings.time_mode_sensory_weight,
            time_mode_sensory_cap=settings.time_mode_sensory_cap,
        )


@dataclass
class RouteEvaluation:
    """Outcome of choosing among candidates."""

    chosen: ScoredRoute
    ranked: List[ScoredRoute] = field(default_factory=list)
    rejected: List[ScoredRoute] = field(default_factory=list)
    budget_seconds: float = 0.0


class RouteEvaluator:
    def __init__(
        self,
        grid: SpatialGrid,
        decay_model: Optional[DecayModel] = None,
        personalization: Optional[PersonalizationModel] = None,
        policy: Optional[BlendPolicy] = None,
    ) -> None:
        self.grid = grid
        self.decay_model = decay_model or DecayModel()
        self.personalization = personalization or PersonalizationModel()
        self.policy = policy or BlendPolicy()

    def score_route(
        self,
        candidate: CandidateRoute,
        source: ReportSource,
        profile: SensitivityProfile,
        now: datetime,
    ) -> ScoredRoute:
        """Average personalized discomfort over evenly spaced samples."""
        points = candidate.points
        stride = max(1, len(points) // self.policy.sample_count)
        segments: List[RouteSegment] = []

        for index in range(0, len(points), stride):
            point = points[index]
            cell = self.grid.cell_key(point)
            levels = self.decay_model.aggregate_cell(source, cell, now)
            score = self.personalization.personalized_score(
                levels, profile, unknown=ROUTE_UNKNOWN_SCORE
            )
            segments.append(
                RouteSegment(
                    point=point,
                    cell=cell,
                    score=score,
                    level=classify_level(score),
                    dimensions=levels,
                )
            )

        if segments:
            sensory_score = sum(segment.score for segment in segments) / len(segments)
        else:
            sensory_score = ROUTE_UNKNOWN_SCORE
        return ScoredRoute(candidate=candidate, sensory_score=sensory_score, segments=segments)

    def evaluate(
        self,
        candidates: Sequence[CandidateRoute],
        source: ReportSource,
        profile: SensitivityProfile,
        mode: RouteMode,
        now: datetime,
    ) -> RouteEvaluation:
        if not candidates:
            raise NoCandidates()

        scored = [self.score_route(candidate, source, profile, now) for candidate in candidates]

        finite = [route.duration_seconds for route in scored if math.isfinite(route.duration_seconds)]
        budget = min(finite) * self.policy.time_budget_ratio if finite else 0.0
        survivors: List[ScoredRoute] = []
        rejected: List[ScoredRoute] = []
        for route in scored:
            within = math.isfinite(route.duration_seconds) and route.duration_seconds <= budget
            (survivors if within else rejected).append(route)
        if not survivors:
            logger.warning(
                "No candidate within time budget",
                extra={"mode": mode.value, "candidate_count": len(scored)},
            )
            raise NoRouteWithinBudget(budget)

        self._apply_costs(survivors, mode)
        ranked = sorted(survivors, key=lambda route: (route.combined_cost, route.distance_meters))
        chosen = ranked[0]

        logger.debug(
            "Candidate costs: %s",
            ", ".join(f"{route.combined_cost:.3f}" for route in ranked),
            extra={"mode": mode.value},
        )
        logger.info(
            "Route chosen",
            extra={
                "mode": mode.value,
                "candidate_count": len(scored),
                "survivor_count": len(survivors),
                "provider": chosen.candidate.provider,
            },
        )
        return RouteEvaluation(
            chosen=chosen, ranked=ranked, rejected=rejected, budget_seconds=budget
        )

    def _apply_costs(self, routes: List[ScoredRoute], mode: RouteMode) -> None:
        policy = self.policy
        max_distance = max(route.distance_meters for route in routes) or 1.0
        max_duration = max(route.duration_seconds for route in routes) or 1.0

        for route in routes:
            sensory = route.sensory_score / 10
            if mode == RouteMode.sensory:
                weight = policy.sensory_mode_weight
                route.combined_cost = (
                    weight * sensory + (1 - weight) * (route.distance_meters / max_distance)
                )
            else:
                weight = policy.time_mode_sensory_weight
                penalty = min(policy.time_mode_sensory_cap, weight * sensory)
                route.combined_cost = (
                    (1 - weight) * (route.duration_seconds / max_duration) + penalty
                )
