from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from models.errors import InvalidCellKey
from models.records import (
    DIMENSIONS,
    Coordinate,
    Feedback,
    GridCell,
    ReportCategory,
    SensoryReport,
)
from services.decay import DecayModel
from services.grid import format_cell_key, parse_cell_key
from settings import get_settings

logger = logging.getLogger(__name__)


class ReportSnapshot:
    """Immutable view of the store taken at one instant."""

    def __init__(self, cells: Mapping[GridCell, Tuple[SensoryReport, ...]]) -> None:
        self._cells = MappingProxyType(dict(cells))

    def reports_for(self, cell: GridCell) -> Tuple[SensoryReport, ...]:
        return self._cells.get(cell, ())

    def cells(self) -> List[GridCell]:
        return list(self._cells.keys())

    def __len__(self) -> int:
        return sum(len(reports) for reports in self._cells.values())


class ReportStore:
    """Reports bucketed by grid cell.

    Reports are immutable, so snapshots share them with the live store.
    Empty cells are deleted eagerly.
    """

    def __init__(
        self,
        decay_model: Optional[DecayModel] = None,
        persistence_path: Optional[Path] = None,
    ) -> None:
        self.decay_model = decay_model or DecayModel()
        self.persistence_path = persistence_path
        self._cells: Dict[GridCell, List[SensoryReport]] = {}
        self._index: Dict[str, GridCell] = {}
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def add(self, cell: GridCell, report: SensoryReport) -> None:
        with self._lock:
            if report.report_id in self._index:
                raise ValueError(f"Report {report.report_id!r} already stored.")
            self._cells.setdefault(cell, []).append(report)
            self._index[report.report_id] = cell
            self._persist()

    def remove(self, cell: GridCell, report_id: str) -> SensoryReport:
        with self._lock:
            removed = self._remove_locked(cell, report_id)
            self._persist()
            return removed

    def revise(self, report_id: str, cell: GridCell, **changes: Any) -> SensoryReport:
        """Apply ``changes`` to the stored report, possibly moving it to ``cell``.

        Fields not named in ``changes`` (creation time, feedback) are taken
        from the stored copy while the lock is held.
        """
        with self._lock:
            old_cell, current = self._find_locked(report_id)
            updated = replace(current, **changes)
            self._remove_locked(old_cell, report_id)
            self._cells.setdefault(cell, []).append(updated)
            self._index[report_id] = cell
            self._persist()
            return updated

    def record_vote(self, report_id: str, agree: bool) -> SensoryReport:
        """Increment the report's agree or disagree counter."""
        with self._lock:
            cell, current = self._find_locked(report_id)
            feedback = current.feedback
            if agree:
                feedback = Feedback(agree=feedback.agree + 1, disagree=feedback.disagree)
            else:
                feedback = Feedback(agree=feedback.agree, disagree=feedback.disagree + 1)
            updated = replace(current, feedback=feedback)
            reports = self._cells[cell]
            reports[reports.index(current)] = updated
            self._persist()
            return updated

    def get(self, report_id: str) -> Tuple[GridCell, SensoryReport]:
        with self._lock:
            return self._find_locked(report_id)

    def cell_of(self, report_id: str) -> Optional[GridCell]:
        with self._lock:
            return self._index.get(report_id)

    def reports_for(self, cell: GridCell) -> List[SensoryReport]:
        with self._lock:
            return list(self._cells.get(cell, ()))

    def cells(self) -> List[GridCell]:
        with self._lock:
            return list(self._cells.keys())

    def snapshot(self) -> ReportSnapshot:
        with self._lock:
            return ReportSnapshot(
                {cell: tuple(reports) for cell, reports in self._cells.items()}
            )

    def sweep_expired(self, now: datetime) -> int:
        """Drop reports whose decay weight is negligible; return how many went."""
        removed = 0
        with self._lock:
            for cell in list(self._cells.keys()):
                kept: List[SensoryReport] = []
                for report in self._cells[cell]:
                    if self.decay_model.is_expired(report, now):
                        self._index.pop(report.report_id, None)
                        removed += 1
                    else:
                        kept.append(report)
                if kept:
                    self._cells[cell] = kept
                else:
                    del self._cells[cell]
            if removed:
                self._persist()
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._index)

    def _find_locked(self, report_id: str) -> Tuple[GridCell, SensoryReport]:
        cell = self._index.get(report_id)
        if cell is not None:
            for report in self._cells[cell]:
                if report.report_id == report_id:
                    return cell, report
        raise KeyError(f"Report {report_id!r} not found.")

    def _remove_locked(self, cell: GridCell, report_id: str) -> SensoryReport:
        reports = self._cells.get(cell)
        if not reports:
            raise KeyError(f"Report {report_id!r} not found in cell {format_cell_key(cell)!r}.")
        for position, report in enumerate(reports):
            if report.report_id == report_id:
                del reports[position]
                break
        else:
            raise KeyError(f"Report {report_id!r} not found in cell {format_cell_key(cell)!r}.")
        if not reports:
            del self._cells[cell]
        self._index.pop(report_id, None)
        return report

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            format_cell_key(cell): [report_to_payload(report) for report in reports]
            for cell, reports in self._cells.items()
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}
        if not isinstance(data, dict):
            logger.warning(
                "Ignoring persisted store with unexpected layout",
                extra={"reason": f"expected an object, got {type(data).__name__}"},
            )
            return

        for raw_key, payloads in data.items():
            try:
                cell = parse_cell_key(raw_key)
            except InvalidCellKey as exc:
                logger.warning(
                    "Dropping cell with corrupt key",
                    extra={"cell": raw_key, "reason": str(exc)},
                )
                continue
            if not isinstance(payloads, list):
                logger.warning(
                    "Dropping cell with unreadable reports",
                    extra={"cell": raw_key, "reason": "expected a list of reports"},
                )
                continue
            for payload in payloads:
                try:
                    report = report_from_payload(payload)
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning(
                        "Dropping unreadable report",
                        extra={"cell": raw_key, "reason": str(exc)},
                    )
                    continue
                if report.report_id in self._index:
                    continue
                self._cells.setdefault(cell, []).append(report)
                self._index[report.report_id] = cell


def report_to_payload(report: SensoryReport) -> Dict[str, Any]:
    return {
        "id": report.report_id,
        "lat": report.location.lat,
        "lng": report.location.lng,
        "category": report.category.value,
        "created_at": report.created_at.isoformat(),
        "noise": report.noise,
        "light": report.light,
        "odor": report.odor,
        "crowd": report.crowd,
        "duration_minutes": report.duration_minutes,
        "wheelchair": report.wheelchair,
        "agree": report.feedback.agree,
        "disagree": report.feedback.disagree,
    }


def _optional_int(
    payload: Mapping[str, Any], name: str, low: int, high: Optional[int]
) -> Optional[int]:
    value = payload.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {value!r}.")
    if value < low or (high is not None and value > high):
        raise ValueError(f"{name} out of range: {value}.")
    return value


def report_from_payload(payload: Mapping[str, Any]) -> SensoryReport:
    """Rebuild a stored report, rejecting anything the service would not accept."""
    if not isinstance(payload, Mapping):
        raise TypeError(f"Report payload must be an object, got {type(payload).__name__}.")

    location = Coordinate(float(payload["lat"]), float(payload["lng"]))
    if not (-90 <= location.lat <= 90) or not (-180 <= location.lng <= 180):
        raise ValueError(f"Coordinates out of range: {location.lat}, {location.lng}.")
    created_at = datetime.fromisoformat(payload["created_at"])
    if created_at.tzinfo is None:
        raise ValueError("created_at carries no timezone.")

    report = SensoryReport(
        report_id=str(payload["id"]),
        location=location,
        category=ReportCategory(payload["category"]),
        created_at=created_at,
        duration_minutes=_optional_int(payload, "duration_minutes", 1, None),
        wheelchair=bool(payload.get("wheelchair", False)),
        feedback=Feedback(
            agree=_optional_int(payload, "agree", 0, None) or 0,
            disagree=_optional_int(payload, "disagree", 0, None) or 0,
        ),
        **{name: _optional_int(payload, name, 0, 10) for name in DIMENSIONS},
    )
    if not report.has_dimensions:
        raise ValueError("Report has no sensory dimension.")
    return report


@lru_cache
def build_default_store(path: Optional[str] = None) -> ReportStore:
    settings = get_settings()
    store_path = settings.store_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return ReportStore(persistence_path=persistence)
