from __future__ import annotations

from typing import Dict, Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.report_store import ReportStore
from models.records import GridCell
from services.grid import SpatialGrid
from services.sensory_service import SensoryMapService, build_default_service

GRID = SpatialGrid(15.0)
NOISY = GRID.cell_center(GridCell(600_000, 250_000))
CALM = GRID.cell_center(GridCell(600_040, 250_000))


@pytest.fixture
def api_client(tmp_path, monkeypatch) -> Iterator[TestClient]:
    services: Dict[str, SensoryMapService] = {}

    def build_test_service() -> SensoryMapService:
        service = services.get("default")
        if service is None:
            store = ReportStore(persistence_path=tmp_path / "reports.json")
            service = SensoryMapService(store=store, grid=GRID)
            services["default"] = service
        return service

    build_test_service.cache_clear = services.clear  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_service", build_test_service)
    monkeypatch.setattr("app.api.build_default_service", build_test_service)
    monkeypatch.setattr("services.sensory_service.build_default_service", build_test_service)

    app = create_app()
    with TestClient(app) as client:
        yield client


def _submit(client: TestClient, lat: float, lng: float, **fields) -> dict:
    payload = {"lat": lat, "lng": lng, "category": "persistent"}
    payload.update(fields)
    response = client.post("/reports", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _candidate(point, distance: float, duration: float) -> dict:
    return {
        "points": [{"lat": point.lat, "lng": point.lng}] * 3,
        "distance_meters": distance,
        "duration_seconds": duration,
        "provider": "external",
    }


def test_lifespan_clears_service_cache() -> None:
    app = create_app()

    with TestClient(app):
        service_during = build_default_service()

    service_after = build_default_service()
    try:
        assert service_after is not service_during
    finally:
        build_default_service.cache_clear()


def test_health_endpoints(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
    root = api_client.get("/")
    assert root.status_code == 200
    assert root.json()["status"] == "ok"


def test_create_and_list_reports(api_client: TestClient) -> None:
    created = _submit(api_client, NOISY.lat, NOISY.lng, noise=8, wheelchair=True)

    assert created["cell"] == "600000,250000"
    assert created["noise"] == 8
    assert created["light"] is None
    assert created["agree_count"] == 0
    assert created["decay_weight"] == pytest.approx(1.0, abs=1e-3)

    listed = api_client.get("/reports").json()
    assert [report["id"] for report in listed] == [created["id"]]


def test_report_without_dimensions_is_rejected(api_client: TestClient) -> None:
    response = api_client.post("/reports", json={"lat": 1.0, "lng": 1.0, "category": "transient"})

    assert response.status_code == 400
    assert "dimension" in response.json()["detail"]
    assert api_client.get("/reports").json() == []


def test_out_of_range_values_fail_validation(api_client: TestClient) -> None:
    too_loud = api_client.post(
        "/reports", json={"lat": 1.0, "lng": 1.0, "category": "transient", "noise": 11}
    )
    off_map = api_client.post(
        "/reports", json={"lat": 91.0, "lng": 1.0, "category": "transient", "noise": 1}
    )

    assert too_loud.status_code == 422
    assert off_map.status_code == 422


def test_update_report(api_client: TestClient) -> None:
    created = _submit(api_client, NOISY.lat, NOISY.lng, noise=8)

    response = api_client.put(
        f"/reports/{created['id']}",
        json={"lat": CALM.lat, "lng": CALM.lng, "category": "transient", "light": 4},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == created["id"]
    assert body["cell"] == "600040,250000"
    assert body["noise"] is None
    assert body["light"] == 4

    missing = api_client.put(
        "/reports/unknown", json={"lat": 1.0, "lng": 1.0, "category": "transient", "light": 4}
    )
    assert missing.status_code == 404


def test_delete_report(api_client: TestClient) -> None:
    created = _submit(api_client, NOISY.lat, NOISY.lng, noise=8)

    assert api_client.delete(f"/reports/{created['id']}").status_code == 200
    assert api_client.delete(f"/reports/{created['id']}").status_code == 404
    assert api_client.get("/reports").json() == []


def test_feedback(api_client: TestClient) -> None:
    created = _submit(api_client, NOISY.lat, NOISY.lng, noise=8)

    api_client.post(f"/reports/{created['id']}/feedback", json={"vote": "agree"})
    response = api_client.post(f"/reports/{created['id']}/feedback", json={"vote": "disagree"})

    assert response.status_code == 200
    assert (response.json()["agree_count"], response.json()["disagree_count"]) == (1, 1)
    assert api_client.post("/reports/unknown/feedback", json={"vote": "agree"}).status_code == 404
    assert (
        api_client.post(f"/reports/{created['id']}/feedback", json={"vote": "maybe"}).status_code
        == 422
    )


def test_sweep_endpoint(api_client: TestClient) -> None:
    _submit(api_client, NOISY.lat, NOISY.lng, noise=8)

    response = api_client.post("/reports/sweep")

    assert response.status_code == 200
    assert response.json() == {"removed": 0}


def test_cell_summary(api_client: TestClient) -> None:
    _submit(api_client, NOISY.lat, NOISY.lng, noise=8, light=2)

    response = api_client.get(
        "/cells",
        params={"lat": NOISY.lat, "lng": NOISY.lng, "noise_threshold": 10, "light_threshold": 5},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["cell"] == "600000,250000"
    assert body["score"] == pytest.approx(6.0, abs=1e-3)
    assert body["level"] == "medium"
    assert body["report_count"] == 1
    assert body["dimensions"]["odor"] is None

    invalid = api_client.get("/cells", params={"lat": 1.0, "lng": 1.0, "noise_threshold": 11})
    assert invalid.status_code == 422


def test_stats(api_client: TestClient) -> None:
    _submit(api_client, NOISY.lat, NOISY.lng, noise=8, wheelchair=True)
    _submit(api_client, CALM.lat, CALM.lng, noise=2, category="transient")

    body = api_client.get("/stats").json()

    assert body["total_reports"] == 2
    assert body["persistent_count"] == 1
    assert body["transient_count"] == 1
    assert body["wheelchair_issues"] == 1
    assert body["averages"]["noise"] == 5.0
    assert body["averages"]["odor"] is None


def test_evaluate_routes_prefers_comfort(api_client: TestClient) -> None:
    _submit(api_client, NOISY.lat, NOISY.lng, noise=8)
    _submit(api_client, CALM.lat, CALM.lng, noise=2)

    response = api_client.post(
        "/routes/evaluate",
        json={
            "candidates": [_candidate(NOISY, 1000, 600), _candidate(CALM, 1200, 700)],
            "mode": "sensory",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["distance_meters"] == 1200
    assert body["sensory_score"] == pytest.approx(2.0, abs=1e-3)
    assert body["candidates_considered"] == 2
    assert body["candidates_rejected"] == 0
    assert body["degraded"] is False
    assert [segment["level"] for segment in body["segments"]] == ["low"] * 3


def test_evaluate_routes_errors(api_client: TestClient) -> None:
    empty = api_client.post("/routes/evaluate", json={"candidates": []})
    assert empty.status_code == 400

    stationary = {"points": [], "distance_meters": 0, "duration_seconds": 0}
    invalid_mode = api_client.post(
        "/routes/evaluate", json={"candidates": [stationary], "mode": "scenic"}
    )
    assert invalid_mode.status_code == 422


def test_plan_route_uses_grid_search_without_candidates(api_client: TestClient) -> None:
    start = GRID.cell_center(GridCell(0, 0))
    end = GRID.cell_center(GridCell(5, 3))

    response = api_client.post(
        "/routes/plan",
        json={
            "start": {"lat": start.lat, "lng": start.lng},
            "end": {"lat": end.lat, "lng": end.lng},
            "mode": "time",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["provider"] == "grid-fallback"
    assert body["degraded"] is False
    assert body["search_state"] == "found"
    assert body["points"][0] == pytest.approx({"lat": start.lat, "lng": start.lng})
    assert body["points"][-1] == pytest.approx({"lat": end.lat, "lng": end.lng})


def test_plan_route_with_candidates(api_client: TestClient) -> None:
    response = api_client.post(
        "/routes/plan",
        json={
            "start": {"lat": NOISY.lat, "lng": NOISY.lng},
            "end": {"lat": CALM.lat, "lng": CALM.lng},
            "candidates": [_candidate(NOISY, 800, 500)],
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["provider"] == "external"
    assert body["search_state"] is None
