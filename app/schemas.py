"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from models.records import (
    CandidateRoute,
    Coordinate,
    DimensionLevels,
    DiscomfortLevel,
    ReportCategory,
    ReportDraft,
    RouteMode,
    ScoredRoute,
    SensitivityProfile,
    SensoryReport,
)
from services.grid import format_cell_key


class CoordinateModel(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def to_domain(self) -> Coordinate:
        return Coordinate(self.lat, self.lng)

    @classmethod
    def from_domain(cls, coord: Coordinate) -> "CoordinateModel":
        return cls(lat=coord.lat, lng=coord.lng)


class ReportCreate(BaseModel):
    """Incoming sensory report; omitted dimensions mean "skipped"."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    noise: Optional[int] = Field(default=None, ge=0, le=10)
    light: Optional[int] = Field(default=None, ge=0, le=10)
    odor: Optional[int] = Field(default=None, ge=0, le=10)
    crowd: Optional[int] = Field(default=None, ge=0, le=10)
    category: ReportCategory
    duration_minutes: Optional[int] = Field(
        default=None, gt=0, description="Expected lifetime asserted by the reporter."
    )
    wheelchair: bool = False

    def to_draft(self) -> ReportDraft:
        return ReportDraft(
            location=Coordinate(self.lat, self.lng),
            category=self.category,
            noise=self.noise,
            light=self.light,
            odor=self.odor,
            crowd=self.crowd,
            duration_minutes=self.duration_minutes,
            wheelchair=self.wheelchair,
        )


class ReportResponse(BaseModel):
    id: str
    lat: float
    lng: float
    cell: str
    noise: Optional[int] = None
    light: Optional[int] = None
    odor: Optional[int] = None
    crowd: Optional[int] = None
    category: ReportCategory
    created_at: datetime
    duration_minutes: Optional[int] = None
    wheelchair: bool = False
    agree_count: int = 0
    disagree_count: int = 0
    decay_weight: float = Field(..., ge=0, le=1)

    @classmethod
    def from_domain(cls, report: SensoryReport, cell: str, weight: float) -> "ReportResponse":
        return cls(
            id=report.report_id,
            lat=report.location.lat,
            lng=report.location.lng,
            cell=cell,
            noise=report.noise,
            light=report.light,
            odor=report.odor,
            crowd=report.crowd,
            category=report.category,
            created_at=report.created_at,
            duration_minutes=report.duration_minutes,
            wheelchair=report.wheelchair,
            agree_count=report.feedback.agree,
            disagree_count=report.feedback.disagree,
            decay_weight=weight,
        )


class FeedbackCreate(BaseModel):
    vote: Literal["agree", "disagree"]


class SweepResponse(BaseModel):
    removed: int = Field(..., ge=0)


class ProfileModel(BaseModel):
    """User sensitivity; higher thresholds weigh a dimension more."""

    noise_threshold: int = Field(default=5, ge=0, le=10)
    light_threshold: int = Field(default=5, ge=0, le=10)
    odor_threshold: int = Field(default=5, ge=0, le=10)
    crowd_threshold: int = Field(default=5, ge=0, le=10)

    def to_domain(self) -> SensitivityProfile:
        return SensitivityProfile(
            noise=self.noise_threshold,
            light=self.light_threshold,
            odor=self.odor_threshold,
            crowd=self.crowd_threshold,
        )


class DimensionAverages(BaseModel):
    noise: Optional[float] = None
    light: Optional[float] = None
    odor: Optional[float] = None
    crowd: Optional[float] = None

    @classmethod
    def from_domain(cls, levels: DimensionLevels) -> "DimensionAverages":
        return cls(**levels.present())


class CellSummaryResponse(BaseModel):
    cell: str
    center: CoordinateModel
    southwest: CoordinateModel
    northeast: CoordinateModel
    dimensions: DimensionAverages
    score: float
    level: DiscomfortLevel
    report_count: int


class StatsResponse(BaseModel):
    total_reports: int
    persistent_count: int
    transient_count: int
    wheelchair_issues: int
    averages: Dict[str, Optional[float]]


class CandidateRouteModel(BaseModel):
    points: List[CoordinateModel]
    distance_meters: float = Field(..., ge=0)
    duration_seconds: float = Field(..., ge=0)
    provider: Optional[str] = None

    def to_domain(self) -> CandidateRoute:
        return CandidateRoute(
            points=tuple(point.to_domain() for point in self.points),
            distance_meters=self.distance_meters,
            duration_seconds=self.duration_seconds,
            provider=self.provider,
        )


class RouteEvaluationRequest(BaseModel):
    candidates: List[CandidateRouteModel]
    profile: ProfileModel = Field(default_factory=ProfileModel)
    mode: RouteMode = RouteMode.sensory


class RoutePlanRequest(BaseModel):
    start: CoordinateModel
    end: CoordinateModel
    profile: ProfileModel = Field(default_factory=ProfileModel)
    mode: RouteMode = RouteMode.sensory
    candidates: List[CandidateRouteModel] = Field(default_factory=list)


class SegmentResponse(BaseModel):
    point: CoordinateModel
    cell: str
    score: float
    level: DiscomfortLevel
    dimension_averages: DimensionAverages


class RouteResponse(BaseModel):
    points: List[CoordinateModel]
    distance_meters: float
    duration_seconds: float
    sensory_score: float
    combined_cost: float
    provider: Optional[str] = None
    degraded: bool = False
    search_state: Optional[str] = None
    candidates_considered: int = 1
    candidates_rejected: int = 0
    segments: List[SegmentResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, route: ScoredRoute, **extra) -> "RouteResponse":
        return cls(
            points=[CoordinateModel.from_domain(point) for point in route.points],
            distance_meters=route.distance_meters,
            duration_seconds=route.duration_seconds,
            sensory_score=route.sensory_score,
            combined_cost=route.combined_cost,
            provider=route.candidate.provider,
            segments=[
                SegmentResponse(
                    point=CoordinateModel.from_domain(segment.point),
                    cell=format_cell_key(segment.cell),
                    score=segment.score,
                    level=segment.level,
                    dimension_averages=DimensionAverages.from_domain(segment.dimensions),
                )
                for segment in route.segments
            ],
            **extra,
        )
