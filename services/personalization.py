"""Turns aggregated stimulus levels into one personal discomfort score."""

from __future__ import annotations

from models.records import DimensionLevels, DiscomfortLevel, SensitivityProfile

ROUTE_UNKNOWN_SCORE = 2.5
MARKER_UNKNOWN_SCORE = 0.0

LOW_LEVEL_THRESHOLD = 0.3
HIGH_LEVEL_THRESHOLD = 0.7


class PersonalizationModel:
    def personalized_score(
        self,
        levels: DimensionLevels,
        profile: SensitivityProfile,
        *,
        unknown: float,
    ) -> float:
        """Sensitivity-weighted mean of the present dimensions.

        ``unknown`` is returned when no dimension has data at all. Route
        sampling passes :data:`ROUTE_UNKNOWN_SCORE`, cell markers pass
        :data:`MARKER_UNKNOWN_SCORE`. When data exists but every matching
        threshold is zero the score is 0.
        """
        present = levels.present()
        if not present:
            return unknown

        total_score = 0.0
        total_weight = 0.0
        for name, value in present.items():
            weight = profile.threshold(name) / 10
            if weight <= 0:
                continue
            total_score += value * weight
            total_weight += weight

        return total_score / total_weight if total_weight > 0 else 0.0


def classify_level(score: float) -> DiscomfortLevel:
    """Bucket a 0-10 score by its normalized 0-1 value."""
    normalized = min(1.0, max(0.0, score / 10))
    if normalized < LOW_LEVEL_THRESHOLD:
        return DiscomfortLevel.low
    if normalized < HIGH_LEVEL_THRESHOLD:
        return DiscomfortLevel.medium
    return DiscomfortLevel.high
