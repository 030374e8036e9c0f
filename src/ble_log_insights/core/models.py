"""Core data models for BLE log analysis."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class MalformedInputError(ValueError):
    """Input batch violates a documented invariant; the whole report is rejected."""


LEVEL_LABELS: dict[int, str] = {
    1: "INFO",
    2: "DEBUG",
    3: "WARN",
    4: "ERROR",
}

WARN_LEVEL = 3
ERROR_LEVEL = 4
MIN_LEVEL = 1
MAX_LEVEL = 4


def level_label(level: int) -> str:
    """Display label for a numeric level (unknown levels render as L<n>)."""
    return LEVEL_LABELS.get(level, f"L{level}")


class AnomalyType(str, Enum):
    """Recurring failure patterns reported by the anomaly detector."""

    FREQUENT_DISCONNECT = "frequent_disconnect"
    TIMEOUT_RETRY = "timeout_retry"
    ERROR_BURST = "error_burst"
    SLOW_CONNECTION = "slow_connection"
    COMMAND_FAILURE = "command_failure"


class ChainStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    TIMEOUT = "timeout"
    ERROR = "error"


class QualityStatus(str, Enum):
    OK = "ok"
    MISSING = "missing"
    LEVEL_MISMATCH = "level_mismatch"
    NAME_MISMATCH = "name_mismatch"


class SlotStatus(str, Enum):
    MATCH = "match"
    DIFF = "diff"
    ONLY_A = "only_a"
    ONLY_B = "only_b"


@dataclass(frozen=True, slots=True)
class LogEvent:
    """Decoded device/SDK log event (read-only to the analysis core)."""

    event_name: str
    level: int
    timestamp_ms: int
    stage: str | None = None
    op: str | None = None
    result: str | None = None
    session_id: str | None = None
    link_code: str | None = None
    device_mac: str | None = None
    request_id: str | None = None
    payload: Any = None  # arbitrary JSON; only exposed through preview_payload
    id: str | None = None
    error_code: str | None = None

    @property
    def session_key(self) -> str | None:
        """Session correlation key (session id wins over link code)."""
        return self.session_id or self.link_code


@dataclass(frozen=True, slots=True)
class EventCountBucket:
    """Pre-aggregated (event name, level) occurrence count."""

    event_name: str
    level: int
    count: int


@dataclass(frozen=True, slots=True)
class RequiredEventSpec:
    """Catalog entry: an event that must occur at the expected level."""

    event_name: str
    expected_level: int
    category: str = ""
    description: str = ""


@dataclass(frozen=True, slots=True)
class PairCheckSpec:
    """Start event paired against the events that terminate it."""

    name: str
    start_event_name: str
    end_event_names: tuple[str, ...]
