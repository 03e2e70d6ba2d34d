"""Error taxonomy for the sensory routing engine."""

from __future__ import annotations


class SensmapError(Exception):
    """Base class for engine errors."""


class InvalidReport(SensmapError, ValueError):
    """A report cannot enter the store (no usable dimension, bad ranges)."""


class InvalidCellKey(SensmapError, ValueError):
    """A stored grid key could not be parsed back into a cell."""


class NoCandidates(SensmapError):
    """Route evaluation was asked to choose among zero candidates."""

    def __init__(self) -> None:
        super().__init__("No candidate routes were supplied.")


class NoRouteWithinBudget(SensmapError):
    """Every candidate exceeded the duration budget."""

    def __init__(self, budget_seconds: float) -> None:
        super().__init__(
            f"No candidate route finishes within the {budget_seconds:.0f}s time budget."
        )
        self.budget_seconds = budget_seconds


class PathfindingExhausted(SensmapError):
    """The grid search ended without reaching the goal.

    Always recovered inside the pathfinder; callers receive a degraded route.
    """

    def __init__(self, state: str, iterations: int) -> None:
        super().__init__(f"Grid search ended in state {state!r} after {iterations} expansions.")
        self.state = state
        self.iterations = iterations
