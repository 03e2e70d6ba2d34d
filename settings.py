from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional, TypeVar


_CELL_SIZE_ENV = "SENSMAP_CELL_SIZE_METERS"
_ROUTE_SAMPLES_ENV = "SENSMAP_ROUTE_SAMPLES"
_TIME_BUDGET_ENV = "SENSMAP_TIME_BUDGET_RATIO"
_SENSORY_WEIGHT_ENV = "SENSMAP_SENSORY_MODE_WEIGHT"
_TIME_SENSORY_WEIGHT_ENV = "SENSMAP_TIME_MODE_SENSORY_WEIGHT"
_TIME_SENSORY_CAP_ENV = "SENSMAP_TIME_MODE_SENSORY_CAP"
_MAX_ITERATIONS_ENV = "SENSMAP_PATHFINDER_MAX_ITERATIONS"
_YIELD_EVERY_ENV = "SENSMAP_PATHFINDER_YIELD_EVERY"
_MAX_MULTIPLIER_ENV = "SENSMAP_MAX_SENSORY_MULTIPLIER"
_WALKING_SPEED_ENV = "SENSMAP_WALKING_SPEED_MPS"
_SWEEP_INTERVAL_ENV = "SENSMAP_SWEEP_INTERVAL_SECONDS"
_STORE_PATH_ENV = "SENSMAP_STORE_PATH"
_LOG_LEVEL_ENV = "LOG_LEVEL"

N = TypeVar("N", int, float)


@dataclass(frozen=True)
class Settings:
    cell_size_meters: float
    route_samples: int
    time_budget_ratio: float
    sensory_mode_weight: float
    time_mode_sensory_weight: float
    time_mode_sensory_cap: float
    pathfinder_max_iterations: int
    pathfinder_yield_every: int
    max_sensory_multiplier: float
    walking_speed_mps: float
    sweep_interval_seconds: float
    store_path: Optional[str]
    log_level: str


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip() or None


def _read_number(
    name: str,
    default: N,
    parse: Callable[[str], N],
    accept: Callable[[N], bool],
) -> N:
    """Parse ``name`` from the environment; blank, malformed or rejected values
    fall back to ``default``."""
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        parsed = parse(raw)
    except ValueError:
        return default
    return parsed if accept(parsed) else default


def _positive(value: float) -> bool:
    return value > 0


def _fraction(value: float) -> bool:
    return 0.0 <= value <= 1.0


def _read_log_level(default: str) -> str:
    raw = (os.getenv(_LOG_LEVEL_ENV) or "").strip()
    return raw.upper() if raw else default


@lru_cache
def get_settings() -> Settings:
    return Settings(
        cell_size_meters=_read_number(_CELL_SIZE_ENV, 15.0, float, _positive),
        route_samples=_read_number(_ROUTE_SAMPLES_ENV, 20, int, _positive),
        time_budget_ratio=_read_number(_TIME_BUDGET_ENV, 1.5, float, _positive),
        sensory_mode_weight=_read_number(_SENSORY_WEIGHT_ENV, 0.7, float, _fraction),
        time_mode_sensory_weight=_read_number(_TIME_SENSORY_WEIGHT_ENV, 0.2, float, _fraction),
        time_mode_sensory_cap=_read_number(_TIME_SENSORY_CAP_ENV, 0.1, float, _fraction),
        pathfinder_max_iterations=_read_number(_MAX_ITERATIONS_ENV, 10_000, int, _positive),
        pathfinder_yield_every=_read_number(_YIELD_EVERY_ENV, 1_000, int, _positive),
        max_sensory_multiplier=_read_number(_MAX_MULTIPLIER_ENV, 4.0, float, _positive),
        walking_speed_mps=_read_number(_WALKING_SPEED_ENV, 1.4, float, _positive),
        sweep_interval_seconds=_read_number(_SWEEP_INTERVAL_ENV, 60.0, float, _positive),
        store_path=_read_optional_env(_STORE_PATH_ENV, None),
        log_level=_read_log_level("INFO"),
    )
