"""Analysis thresholds and configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace

from .payload import DEFAULT_PREVIEW_LENGTH


@dataclass(frozen=True, slots=True)
class AnomalyThresholds:
    """Per-pattern detection thresholds.

    Counts are inclusive lower bounds; windows are in milliseconds.
    """

    disconnect_count: int = 3
    disconnect_window_ms: int = 60_000
    disconnect_critical_count: int = 5

    timeout_count: int = 2
    timeout_window_ms: int = 30_000
    timeout_high_count: int = 4

    error_burst_count: int = 5
    error_burst_window_ms: int = 10_000
    error_burst_critical_count: int = 10

    slow_connection_ms: int = 10_000
    slow_connection_high_sessions: int = 3

    command_failure_rate: float = 0.3
    command_failure_high_rate: float = 0.5
    command_failure_critical_chains: int = 5

    sample_limit: int = 5


@dataclass(frozen=True, slots=True)
class AnalysisConfig:
    thresholds: AnomalyThresholds = field(default_factory=AnomalyThresholds)
    preview_length: int = DEFAULT_PREVIEW_LENGTH
    diff_tolerance_ms: int = 500
    slowest_limit: int = 10
    max_events: int = 50_000


_ENV_OVERRIDES = {
    "BLE_INSIGHTS_PREVIEW_LENGTH": ("preview_length", 0),
    "BLE_INSIGHTS_DIFF_TOLERANCE_MS": ("diff_tolerance_ms", 0),
    "BLE_INSIGHTS_MAX_EVENTS": ("max_events", 1),
}


def _env_int(name: str, minimum: int) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def resolve_analysis_config(cfg: AnalysisConfig | None = None) -> AnalysisConfig:
    """Return config with optional env overrides applied."""
    if cfg is None:
        cfg = AnalysisConfig()

    changes: dict[str, int] = {}
    for env_name, (attr, minimum) in _ENV_OVERRIDES.items():
        value = _env_int(env_name, minimum)
        if value is not None and value != getattr(cfg, attr):
            changes[attr] = value

    return replace(cfg, **changes) if changes else cfg
