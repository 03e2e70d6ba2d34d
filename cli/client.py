from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, NoReturn

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the sensory routing service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def submit_report(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/reports", json=payload)

    def list_reports(self, recent_hours: float) -> List[Dict[str, Any]]:
        return self._request("GET", "/reports", params={"recent_hours": recent_hours})

    def remove_report(self, report_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/reports/{report_id}")

    def get_stats(self) -> Dict[str, Any]:
        return self._request("GET", "/stats")

    def evaluate_routes(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/routes/evaluate", json=payload)

    def plan_route(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/routes/plan", json=payload)

    @staticmethod
    def load_candidates(path: Path) -> List[Dict[str, Any]]:
        if not path.is_file():
            raise typer.BadParameter(f"Path {path} is not a file.")
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"{path} is not valid JSON: {exc}") from exc
        if isinstance(data, dict):
            data = data.get("candidates")
        if not isinstance(data, list):
            raise typer.BadParameter(f"{path} must contain a list of candidate routes.")
        return data

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
            if response.status_code == 404:
                raise typer.BadParameter(f"Resource {url} was not found.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> NoReturn:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
