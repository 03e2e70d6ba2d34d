from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_report, render_reports, render_route, render_stats


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Report sensory conditions and plan comfortable walking routes.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def _profile(noise: int, light: int, odor: int, crowd: int) -> Dict[str, int]:
    return {
        "noise_threshold": noise,
        "light_threshold": light,
        "odor_threshold": odor,
        "crowd_threshold": crowd,
    }


_THRESHOLD = dict(min=0, max=10)


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to SENSMAP_API_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("report")
def report_command(
    ctx: typer.Context,
    lat: float = typer.Argument(..., min=-90, max=90, help="Latitude of the observation."),
    lng: float = typer.Argument(..., min=-180, max=180, help="Longitude of the observation."),
    noise: Optional[int] = typer.Option(None, **_THRESHOLD),
    light: Optional[int] = typer.Option(None, **_THRESHOLD),
    odor: Optional[int] = typer.Option(None, **_THRESHOLD),
    crowd: Optional[int] = typer.Option(None, **_THRESHOLD),
    persistent: bool = typer.Option(
        False,
        "--persistent/--transient",
        help="Structural condition (busy road) rather than a passing disturbance.",
    ),
    duration: Optional[int] = typer.Option(
        None, "--duration", min=1, help="Expected lifetime in minutes."
    ),
    wheelchair: bool = typer.Option(False, "--wheelchair", help="Flag a wheelchair obstruction."),
) -> None:
    """Submit a sensory report."""
    if all(value is None for value in (noise, light, odor, crowd)):
        raise typer.BadParameter("Provide at least one of --noise/--light/--odor/--crowd.")

    state = _get_state(ctx)
    payload: Dict[str, Any] = {
        "lat": lat,
        "lng": lng,
        "noise": noise,
        "light": light,
        "odor": odor,
        "crowd": crowd,
        "category": "persistent" if persistent else "transient",
        "duration_minutes": duration,
        "wheelchair": wheelchair,
    }
    result = state.client.submit_report(payload)
    typer.secho(f"Report accepted. id={result.get('id')}", fg=typer.colors.GREEN)
    render_report(result)


@app.command("reports")
def reports_command(
    ctx: typer.Context,
    recent_hours: float = typer.Option(168.0, "--recent-hours", min=0.1),
) -> None:
    """List recent reports."""
    state = _get_state(ctx)
    render_reports(state.client.list_reports(recent_hours))


@app.command("remove")
def remove_command(
    ctx: typer.Context,
    report_id: str = typer.Argument(..., help="Identifier returned by the report command."),
) -> None:
    """Delete a report."""
    state = _get_state(ctx)
    state.client.remove_report(report_id)
    typer.secho(f"Report {report_id} removed.", fg=typer.colors.GREEN)


@app.command("stats")
def stats_command(ctx: typer.Context) -> None:
    """Show report statistics for the last week."""
    state = _get_state(ctx)
    render_stats(state.client.get_stats())


@app.command("evaluate")
def evaluate_command(
    ctx: typer.Context,
    candidates_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON list of candidate routes."
    ),
    time_mode: bool = typer.Option(False, "--time/--sensory", help="Prefer speed over comfort."),
    noise: int = typer.Option(5, "--noise-threshold", **_THRESHOLD),
    light: int = typer.Option(5, "--light-threshold", **_THRESHOLD),
    odor: int = typer.Option(5, "--odor-threshold", **_THRESHOLD),
    crowd: int = typer.Option(5, "--crowd-threshold", **_THRESHOLD),
) -> None:
    """Pick the most comfortable route among externally computed candidates."""
    state = _get_state(ctx)
    payload = {
        "candidates": state.client.load_candidates(candidates_file),
        "profile": _profile(noise, light, odor, crowd),
        "mode": "time" if time_mode else "sensory",
    }
    render_route(state.client.evaluate_routes(payload))


@app.command("plan")
def plan_command(
    ctx: typer.Context,
    start_lat: float = typer.Argument(..., min=-90, max=90),
    start_lng: float = typer.Argument(..., min=-180, max=180),
    end_lat: float = typer.Argument(..., min=-90, max=90),
    end_lng: float = typer.Argument(..., min=-180, max=180),
    time_mode: bool = typer.Option(False, "--time/--sensory", help="Prefer speed over comfort."),
    noise: int = typer.Option(5, "--noise-threshold", **_THRESHOLD),
    light: int = typer.Option(5, "--light-threshold", **_THRESHOLD),
    odor: int = typer.Option(5, "--odor-threshold", **_THRESHOLD),
    crowd: int = typer.Option(5, "--crowd-threshold", **_THRESHOLD),
) -> None:
    """Plan a route over the sensory grid between two points."""
    state = _get_state(ctx)
    payload = {
        "start": {"lat": start_lat, "lng": start_lng},
        "end": {"lat": end_lat, "lng": end_lng},
        "profile": _profile(noise, light, odor, crowd),
        "mode": "time" if time_mode else "sensory",
    }
    render_route(state.client.plan_route(payload))
