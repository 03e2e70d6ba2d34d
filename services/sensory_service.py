"""Facade tying the report store to the scoring and routing engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from datastore.report_store import ReportStore, build_default_store
from models.errors import InvalidReport
from models.records import (
    DIMENSIONS,
    CandidateRoute,
    Coordinate,
    DimensionLevels,
    DiscomfortLevel,
    GridCell,
    ReportCategory,
    ReportDraft,
    RouteMode,
    SensitivityProfile,
    SensoryReport,
)
from services.decay import DecayModel
from services.grid import SpatialGrid, format_cell_key
from services.pathfinder import GridPathfinder, PathfinderPolicy, PlannedRoute
from services.personalization import (
    MARKER_UNKNOWN_SCORE,
    PersonalizationModel,
    classify_level,
)
from services.route_evaluator import BlendPolicy, RouteEvaluation, RouteEvaluator
from settings import get_settings

logger = logging.getLogger(__name__)

DEFAULT_RECENT_HOURS = 168
DEFAULT_LIST_LIMIT = 2000
DEFAULT_STATS_WINDOW_DAYS = 7


@dataclass
class CellSummary:
    cell: GridCell
    center: Coordinate
    southwest: Coordinate
    northeast: Coordinate
    dimensions: DimensionLevels
    score: float
    level: DiscomfortLevel
    report_count: int


@dataclass
class ReportStats:
    total_reports: int = 0
    persistent_count: int = 0
    transient_count: int = 0
    wheelchair_issues: int = 0
    averages: Dict[str, Optional[float]] = field(default_factory=dict)


@dataclass
class RoutePlan:
    """Chosen route plus how it was obtained."""

    evaluation: RouteEvaluation
    planned: Optional[PlannedRoute] = None

    @property
    def degraded(self) -> bool:
        return self.planned is not None and self.planned.degraded


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SensoryMapService:
    """Coordinates report storage, decay, personalization and routing."""

    def __init__(
        self,
        store: ReportStore,
        grid: SpatialGrid,
        decay_model: Optional[DecayModel] = None,
        personalization: Optional[PersonalizationModel] = None,
        blend_policy: Optional[BlendPolicy] = None,
        pathfinder_policy: Optional[PathfinderPolicy] = None,
    ) -> None:
        self.store = store
        self.grid = grid
        self.decay_model = decay_model or store.decay_model
        self.personalization = personalization or PersonalizationModel()
        self.evaluator = RouteEvaluator(
            grid, self.decay_model, self.personalization, blend_policy
        )
        self.pathfinder = GridPathfinder(
            grid, self.decay_model, self.personalization, pathfinder_policy
        )

    def submit_report(
        self, draft: ReportDraft, now: Optional[datetime] = None
    ) -> SensoryReport:
        """Validate and store a new report."""
        validate_draft(draft)
        report = SensoryReport(
            report_id=uuid4().hex,
            location=draft.location,
            category=draft.category,
            created_at=now or _utcnow(),
            noise=draft.noise,
            light=draft.light,
            odor=draft.odor,
            crowd=draft.crowd,
            duration_minutes=draft.duration_minutes,
            wheelchair=draft.wheelchair,
        )
        cell = self.grid.cell_key(report.location)
        self.store.add(cell, report)
        logger.info(
            "Report accepted",
            extra={
                "report_id": report.report_id,
                "cell": format_cell_key(cell),
                "category": report.category.value,
            },
        )
        return report

    def update_report(self, report_id: str, draft: ReportDraft) -> SensoryReport:
        """Replace a report's content; id, creation time and feedback survive."""
        validate_draft(draft)
        return self.store.revise(
            report_id,
            self.grid.cell_key(draft.location),
            location=draft.location,
            category=draft.category,
            noise=draft.noise,
            light=draft.light,
            odor=draft.odor,
            crowd=draft.crowd,
            duration_minutes=draft.duration_minutes,
            wheelchair=draft.wheelchair,
        )

    def remove_report(self, report_id: str) -> SensoryReport:
        cell = self.store.cell_of(report_id)
        if cell is None:
            raise KeyError(f"Report {report_id!r} not found.")
        removed = self.store.remove(cell, report_id)
        logger.info(
            "Report removed",
            extra={"report_id": report_id, "cell": format_cell_key(cell)},
        )
        return removed

    def record_feedback(self, report_id: str, agree: bool) -> SensoryReport:
        return self.store.record_vote(report_id, agree)

    def get_report(self, report_id: str) -> SensoryReport:
        _, report = self.store.get(report_id)
        return report

    def list_reports(
        self,
        recent_hours: float = DEFAULT_RECENT_HOURS,
        limit: int = DEFAULT_LIST_LIMIT,
        now: Optional[datetime] = None,
    ) -> List[SensoryReport]:
        cutoff = (now or _utcnow()) - timedelta(hours=recent_hours)
        snapshot = self.store.snapshot()
        reports = [
            report
            for cell in snapshot.cells()
            for report in snapshot.reports_for(cell)
            if report.created_at > cutoff
        ]
        reports.sort(key=lambda report: report.created_at, reverse=True)
        return reports[:limit]

    def decay_weight(self, report: SensoryReport, now: Optional[datetime] = None) -> float:
        return self.decay_model.decay_weight(report, now or _utcnow())

    def cell_summary(
        self,
        location: Coordinate,
        profile: SensitivityProfile,
        now: Optional[datetime] = None,
    ) -> CellSummary:
        """Marker view of the cell containing ``location``; unknown scores 0."""
        cell = self.grid.cell_key(location)
        reports = self.store.reports_for(cell)
        levels = self.decay_model.aggregate_reports(reports, now or _utcnow())
        score = self.personalization.personalized_score(
            levels, profile, unknown=MARKER_UNKNOWN_SCORE
        )
        southwest, northeast = self.grid.cell_bounds(cell)
        return CellSummary(
            cell=cell,
            center=self.grid.cell_center(cell),
            southwest=southwest,
            northeast=northeast,
            dimensions=levels,
            score=score,
            level=classify_level(score),
            report_count=len(reports),
        )

    def stats(
        self,
        window_days: float = DEFAULT_STATS_WINDOW_DAYS,
        now: Optional[datetime] = None,
    ) -> ReportStats:
        reports = self.list_reports(
            recent_hours=window_days * 24, limit=len(self.store), now=now
        )
        stats = ReportStats(total_reports=len(reports))
        sums: Dict[str, Tuple[float, int]] = {name: (0.0, 0) for name in DIMENSIONS}
        for report in reports:
            if report.category == ReportCategory.persistent:
                stats.persistent_count += 1
            else:
                stats.transient_count += 1
            if report.wheelchair:
                stats.wheelchair_issues += 1
            for name, value in report.dimension_values().items():
                total, count = sums[name]
                sums[name] = (total + value, count + 1)

        stats.averages = {
            name: round(total / count, 2) if count else None
            for name, (total, count) in sums.items()
        }
        return stats

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        removed = self.store.sweep_expired(now or _utcnow())
        if removed:
            logger.info("Expired reports swept", extra={"removed_count": removed})
        return removed

    def evaluate_routes(
        self,
        candidates: Sequence[CandidateRoute],
        profile: SensitivityProfile,
        mode: RouteMode = RouteMode.sensory,
        now: Optional[datetime] = None,
    ) -> RouteEvaluation:
        snapshot = self.store.snapshot()
        return self.evaluator.evaluate(candidates, snapshot, profile, mode, now or _utcnow())

    def plan_route(
        self,
        start: Coordinate,
        end: Coordinate,
        profile: SensitivityProfile,
        mode: RouteMode = RouteMode.sensory,
        candidates: Optional[Sequence[CandidateRoute]] = None,
        now: Optional[datetime] = None,
    ) -> RoutePlan:
        """Pick among ``candidates`` or fall back to the grid pathfinder."""
        now = now or _utcnow()
        if candidates:
            return RoutePlan(evaluation=self.evaluate_routes(candidates, profile, mode, now))

        snapshot = self.store.snapshot()
        planned = self.pathfinder.find_path(start, end, snapshot, profile, now)
        evaluation = self.evaluator.evaluate([planned.route], snapshot, profile, mode, now)
        return RoutePlan(evaluation=evaluation, planned=planned)

    async def plan_route_async(
        self,
        start: Coordinate,
        end: Coordinate,
        profile: SensitivityProfile,
        mode: RouteMode = RouteMode.sensory,
        candidates: Optional[Sequence[CandidateRoute]] = None,
        now: Optional[datetime] = None,
    ) -> RoutePlan:
        now = now or _utcnow()
        if candidates:
            return RoutePlan(evaluation=self.evaluate_routes(candidates, profile, mode, now))

        snapshot = self.store.snapshot()
        planned = await self.pathfinder.find_path_async(start, end, snapshot, profile, now)
        evaluation = self.evaluator.evaluate([planned.route], snapshot, profile, mode, now)
        return RoutePlan(evaluation=evaluation, planned=planned)


def validate_draft(draft: ReportDraft) -> None:
    """Raise :class:`InvalidReport` for drafts that may not enter the store."""
    lat, lng = draft.location
    if not (-90 <= lat <= 90) or not (-180 <= lng <= 180):
        raise InvalidReport("Latitude or longitude out of range.")

    provided = 0
    for name in DIMENSIONS:
        value = getattr(draft, name)
        if value is None:
            continue
        if not 0 <= value <= 10:
            raise InvalidReport(f"{name} must be between 0 and 10.")
        provided += 1
    if provided == 0:
        raise InvalidReport("At least one sensory dimension is required.")

    if draft.duration_minutes is not None and draft.duration_minutes <= 0:
        raise InvalidReport("Duration must be a positive number of minutes.")


@lru_cache
def build_default_service() -> SensoryMapService:
    """Factory that wires the service from settings."""
    settings = get_settings()
    store = build_default_store()
    return SensoryMapService(
        store=store,
        grid=SpatialGrid(settings.cell_size_meters),
        blend_policy=BlendPolicy.from_settings(settings),
        pathfinder_policy=PathfinderPolicy.from_settings(settings),
    )
