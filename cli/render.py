from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_LEVEL_COLORS = {
    "low": typer.colors.GREEN,
    "medium": typer.colors.YELLOW,
    "high": typer.colors.RED,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _dimensions(payload: Dict[str, Any]) -> str:
    parts = [
        f"{name}={payload[name]}"
        for name in ("noise", "light", "odor", "crowd")
        if payload.get(name) is not None
    ]
    return " ".join(parts) or "-"


def render_report(payload: Dict[str, Any]) -> None:
    echo_heading("Report")
    echo_key_values(
        [
            ("id", payload.get("id")),
            ("location", f"{payload.get('lat')}, {payload.get('lng')}"),
            ("cell", payload.get("cell")),
            ("category", payload.get("category")),
            ("dimensions", _dimensions(payload)),
            ("created_at", payload.get("created_at")),
            ("decay_weight", payload.get("decay_weight")),
        ]
    )


def render_reports(reports: List[Dict[str, Any]]) -> None:
    echo_heading(f"Reports ({len(reports)})")
    if not reports:
        typer.echo("No reports recorded.")
        return
    for report in reports:
        typer.echo(
            f"  - {report.get('id')} [{report.get('category')}] "
            f"cell={report.get('cell')} {_dimensions(report)} "
            f"weight={report.get('decay_weight', 0.0):.2f}"
        )


def render_stats(payload: Dict[str, Any]) -> None:
    echo_heading("Statistics (last 7 days)")
    echo_key_values(
        [
            ("total_reports", payload.get("total_reports")),
            ("persistent_count", payload.get("persistent_count")),
            ("transient_count", payload.get("transient_count")),
            ("wheelchair_issues", payload.get("wheelchair_issues")),
        ]
    )
    averages = payload.get("averages") or {}
    typer.echo("averages:")
    for name, value in averages.items():
        typer.echo(f"  - {name}: {value if value is not None else 'n/a'}")


def render_route(payload: Dict[str, Any]) -> None:
    echo_heading("Route")
    echo_key_values(
        [
            ("provider", payload.get("provider") or "external"),
            ("distance_meters", round(payload.get("distance_meters") or 0.0, 1)),
            ("duration_seconds", round(payload.get("duration_seconds") or 0.0, 1)),
            ("sensory_score", round(payload.get("sensory_score") or 0.0, 2)),
            ("combined_cost", round(payload.get("combined_cost") or 0.0, 3)),
            ("candidates", f"{payload.get('candidates_considered')} considered, "
                           f"{payload.get('candidates_rejected')} over budget"),
        ]
    )
    if payload.get("degraded"):
        typer.secho(
            "Grid search did not reach the destination; showing a straight line.",
            fg=typer.colors.YELLOW,
        )

    segments = payload.get("segments") or []
    typer.echo()
    echo_heading("Segments")
    if not segments:
        typer.echo("No sampled segments.")
        return
    for segment in segments:
        point = segment.get("point") or {}
        level = segment.get("level")
        typer.secho(
            f"  - ({point.get('lat'):.5f}, {point.get('lng'):.5f}) "
            f"{level} score={segment.get('score'):.2f}",
            fg=_LEVEL_COLORS.get(level),
        )
