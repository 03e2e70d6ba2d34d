"""Time decay of crowd-sourced reports and per-cell aggregation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Optional, Protocol

from models.records import (
    DIMENSIONS,
    DimensionLevels,
    Feedback,
    GridCell,
    ReportCategory,
    SensoryReport,
)

AGGREGATION_MIN_WEIGHT = 0.1
EXPIRY_WEIGHT = 0.01


class ReportSource(Protocol):
    def reports_for(self, cell: GridCell) -> Iterable[SensoryReport]:
        ...


@dataclass(frozen=True)
class DecayPolicy:
    """Lifetimes (minutes) and decay rates per report category."""

    transient_max_age: float = 60.0
    persistent_max_age: float = 240.0
    transient_rate: float = 1.2
    persistent_rate: float = 0.4
    explicit_min_age: float = 30.0
    explicit_transient_rate: float = 1.5
    explicit_persistent_rate: float = 0.6
    agree_step: float = 0.1
    agree_floor: float = 0.5
    disagree_step: float = 0.15
    disagree_ceiling: float = 2.0


class DecayModel:
    """Exponential relevance decay gated by a hard lifetime cutoff.

    Community feedback scales the decay *rate*; it never extends a report's
    lifetime past the cutoff.
    """

    def __init__(self, policy: Optional[DecayPolicy] = None) -> None:
        self.policy = policy or DecayPolicy()

    def lifetime(self, report: SensoryReport) -> tuple[float, float]:
        """Return ``(max_age_minutes, base_decay_rate)`` for ``report``."""
        policy = self.policy
        transient = report.category == ReportCategory.transient
        if report.duration_minutes:
            max_age = max(float(report.duration_minutes), policy.explicit_min_age)
            rate = policy.explicit_transient_rate if transient else policy.explicit_persistent_rate
        else:
            max_age = policy.transient_max_age if transient else policy.persistent_max_age
            rate = policy.transient_rate if transient else policy.persistent_rate
        return max_age, rate

    def feedback_factor(self, feedback: Feedback) -> float:
        policy = self.policy
        net = feedback.net
        if net > 0:
            return max(policy.agree_floor, 1 - net * policy.agree_step)
        return min(policy.disagree_ceiling, 1 + abs(net) * policy.disagree_step)

    def decay_weight(
        self,
        report: SensoryReport,
        now: datetime,
        feedback: Optional[Feedback] = None,
    ) -> float:
        age_minutes = max(0.0, (now - report.created_at).total_seconds() / 60.0)
        max_age, base_rate = self.lifetime(report)
        if age_minutes >= max_age:
            return 0.0

        factor = self.feedback_factor(feedback if feedback is not None else report.feedback)
        adjusted_rate = base_rate * factor
        return math.exp(-adjusted_rate * (age_minutes / max_age))

    def is_expired(self, report: SensoryReport, now: datetime) -> bool:
        return self.decay_weight(report, now) <= EXPIRY_WEIGHT

    def aggregate_reports(
        self, reports: Iterable[SensoryReport], now: datetime
    ) -> DimensionLevels:
        weighted: Dict[str, float] = {name: 0.0 for name in DIMENSIONS}
        totals: Dict[str, float] = {name: 0.0 for name in DIMENSIONS}

        for report in reports:
            weight = self.decay_weight(report, now)
            if weight <= AGGREGATION_MIN_WEIGHT:
                continue
            for name, value in report.dimension_values().items():
                weighted[name] += value * weight
                totals[name] += weight

        levels = {
            name: weighted[name] / totals[name]
            for name in DIMENSIONS
            if totals[name] > 0
        }
        return DimensionLevels(**levels)

    def aggregate_cell(
        self, source: ReportSource, cell: GridCell, now: datetime
    ) -> DimensionLevels:
        """Weighted average per dimension over the cell's live reports.

        Dimensions nobody reported stay ``None`` rather than ``0``.
        """
        return self.aggregate_reports(source.reports_for(cell), now)
