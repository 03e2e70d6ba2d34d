"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    CellSummaryResponse,
    CoordinateModel,
    DimensionAverages,
    FeedbackCreate,
    ReportCreate,
    ReportResponse,
    RouteEvaluationRequest,
    RoutePlanRequest,
    RouteResponse,
    StatsResponse,
    SweepResponse,
)
from models.errors import InvalidReport, NoCandidates, NoRouteWithinBudget
from models.records import Coordinate, SensitivityProfile, SensoryReport
from services.grid import format_cell_key
from services.route_evaluator import RouteEvaluation
from services.sensory_service import SensoryMapService, build_default_service

router = APIRouter()


def get_service() -> SensoryMapService:
    return build_default_service()


def profile_query(
    noise_threshold: int = Query(5, ge=0, le=10),
    light_threshold: int = Query(5, ge=0, le=10),
    odor_threshold: int = Query(5, ge=0, le=10),
    crowd_threshold: int = Query(5, ge=0, le=10),
) -> SensitivityProfile:
    return SensitivityProfile(
        noise=noise_threshold,
        light=light_threshold,
        odor=odor_threshold,
        crowd=crowd_threshold,
    )


def _report_response(service: SensoryMapService, report: SensoryReport) -> ReportResponse:
    cell = service.grid.cell_key(report.location)
    return ReportResponse.from_domain(
        report, cell=format_cell_key(cell), weight=service.decay_weight(report)
    )


def _evaluation_response(evaluation: RouteEvaluation, **extra) -> RouteResponse:
    return RouteResponse.from_domain(
        evaluation.chosen,
        candidates_considered=len(evaluation.ranked) + len(evaluation.rejected),
        candidates_rejected=len(evaluation.rejected),
        **extra,
    )


def _raise_route_error(exc: Exception) -> NoReturn:
    if isinstance(exc, NoCandidates):
        code = status.HTTP_400_BAD_REQUEST
    else:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    raise HTTPException(status_code=code, detail=str(exc)) from exc


@router.post(
    "/reports",
    status_code=status.HTTP_201_CREATED,
    response_model=ReportResponse,
    summary="Submit a sensory report for a location.",
)
async def create_report(
    payload: ReportCreate,
    service: SensoryMapService = Depends(get_service),
) -> ReportResponse:
    try:
        report = service.submit_report(payload.to_draft())
    except InvalidReport as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return _report_response(service, report)


@router.get(
    "/reports",
    response_model=List[ReportResponse],
    summary="List recent reports, newest first.",
)
async def list_reports(
    recent_hours: float = Query(168, gt=0),
    service: SensoryMapService = Depends(get_service),
) -> List[ReportResponse]:
    reports = service.list_reports(recent_hours=recent_hours)
    return [_report_response(service, report) for report in reports]


@router.post(
    "/reports/sweep",
    response_model=SweepResponse,
    summary="Remove reports whose relevance has decayed away.",
)
async def sweep_reports(
    service: SensoryMapService = Depends(get_service),
) -> SweepResponse:
    return SweepResponse(removed=service.sweep_expired())


@router.put(
    "/reports/{report_id}",
    response_model=ReportResponse,
    summary="Replace the content of an existing report.",
)
async def update_report(
    report_id: str,
    payload: ReportCreate,
    service: SensoryMapService = Depends(get_service),
) -> ReportResponse:
    try:
        report = service.update_report(report_id, payload.to_draft())
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except InvalidReport as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return _report_response(service, report)


@router.delete(
    "/reports/{report_id}",
    response_model=ReportResponse,
    summary="Delete a report.",
)
async def delete_report(
    report_id: str,
    service: SensoryMapService = Depends(get_service),
) -> ReportResponse:
    try:
        report = service.remove_report(report_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return _report_response(service, report)


@router.post(
    "/reports/{report_id}/feedback",
    response_model=ReportResponse,
    summary="Agree or disagree with a report.",
)
async def report_feedback(
    report_id: str,
    payload: FeedbackCreate,
    service: SensoryMapService = Depends(get_service),
) -> ReportResponse:
    try:
        report = service.record_feedback(report_id, agree=payload.vote == "agree")
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return _report_response(service, report)


@router.get(
    "/cells",
    response_model=CellSummaryResponse,
    summary="Personalized discomfort for the cell containing a point.",
)
async def cell_summary(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    profile: SensitivityProfile = Depends(profile_query),
    service: SensoryMapService = Depends(get_service),
) -> CellSummaryResponse:
    summary = service.cell_summary(Coordinate(lat, lng), profile)
    return CellSummaryResponse(
        cell=format_cell_key(summary.cell),
        center=CoordinateModel.from_domain(summary.center),
        southwest=CoordinateModel.from_domain(summary.southwest),
        northeast=CoordinateModel.from_domain(summary.northeast),
        dimensions=DimensionAverages.from_domain(summary.dimensions),
        score=summary.score,
        level=summary.level,
        report_count=summary.report_count,
    )


@router.get(
    "/stats",
    response_model=StatsResponse,
    summary="Aggregate statistics over the last seven days.",
)
async def stats(
    service: SensoryMapService = Depends(get_service),
) -> StatsResponse:
    result = service.stats()
    return StatsResponse(
        total_reports=result.total_reports,
        persistent_count=result.persistent_count,
        transient_count=result.transient_count,
        wheelchair_issues=result.wheelchair_issues,
        averages=result.averages,
    )


@router.post(
    "/routes/evaluate",
    response_model=RouteResponse,
    summary="Choose the most comfortable route among externally computed candidates.",
)
async def evaluate_routes(
    payload: RouteEvaluationRequest,
    service: SensoryMapService = Depends(get_service),
) -> RouteResponse:
    candidates = [candidate.to_domain() for candidate in payload.candidates]
    try:
        evaluation = service.evaluate_routes(
            candidates, payload.profile.to_domain(), payload.mode
        )
    except (NoCandidates, NoRouteWithinBudget) as exc:
        _raise_route_error(exc)
    return _evaluation_response(evaluation)


@router.post(
    "/routes/plan",
    response_model=RouteResponse,
    summary="Plan a route, using the grid pathfinder when no candidates are given.",
)
async def plan_route(
    payload: RoutePlanRequest,
    service: SensoryMapService = Depends(get_service),
) -> RouteResponse:
    candidates = [candidate.to_domain() for candidate in payload.candidates]
    try:
        plan = await service.plan_route_async(
            payload.start.to_domain(),
            payload.end.to_domain(),
            payload.profile.to_domain(),
            payload.mode,
            candidates=candidates,
        )
    except (NoCandidates, NoRouteWithinBudget) as exc:
        _raise_route_error(exc)

    extra = {}
    if plan.planned is not None:
        extra = {"degraded": plan.degraded, "search_state": plan.planned.state.value}
    return _evaluation_response(plan.evaluation, **extra)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
