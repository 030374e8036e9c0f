"""Event classification against named BLE operations.

Two strategies, never mixed for a single event:

- structured: when any of ``stage``/``op``/``result`` is set, the event matches
  operation ``X`` only if ``stage == "ble"`` and ``op == X`` (and the requested
  result, if any);
- fuzzy: untagged events are matched by keyword containment on the upper-cased
  event name, using per-phase keyword lists.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

from .models import ERROR_LEVEL, ChainStatus, LogEvent

BLE_STAGE = "ble"

BLE_PHASE_PATTERNS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "scan": ("SCAN_START", "SCAN_DEVICE", "DEVICE_FOUND", "BLE scan"),
        "pair": ("PAIR_START", "PAIRING", "BOND", "BLE pair"),
        "connect": ("CONNECT_START", "CONNECTING", "GATT_CONNECT", "BLE connect", "BLE start connection"),
        "connected": (
            "CONNECTED",
            "CONNECTION_SUCCESS",
            "GATT_CONNECTED",
            "BLE connected",
            "BLE connection success",
        ),
        "disconnect": ("DISCONNECT", "DISCONNECTED", "CONNECTION_LOST", "BLE disconnect"),
        "error": ("ERROR", "FAILED", "TIMEOUT", "Exception"),
    }
)

START_PATTERNS: tuple[str, ...] = ("START",)
TIMEOUT_PATTERNS: tuple[str, ...] = ("TIMEOUT",)
SUCCESS_PATTERNS: tuple[str, ...] = ("SUCCESS", "RESPONSE", "COMPLETE")

_SUCCESS_RESULTS = frozenset({"ok", "success"})
_TIMEOUT_RESULTS = frozenset({"timeout"})
_RETRY_RESULTS = frozenset({"timeout", "retry"})
_ERROR_RESULTS = frozenset({"error", "fail", "failed", "failure"})


def normalize_lower(value: str | None) -> str | None:
    """Trim and lower-case a tag; empty text counts as absent."""
    text = (value or "").strip()
    return text.lower() if text else None


def matches_pattern(event_name: str, patterns: Sequence[str]) -> bool:
    """True if any pattern is contained in the name (case-insensitive)."""
    upper = event_name.upper()
    return any(p.upper() in upper for p in patterns)


def has_structured_tags(event: LogEvent) -> bool:
    return any(normalize_lower(v) is not None for v in (event.stage, event.op, event.result))


def is_stage_op(
    event: LogEvent,
    op: str | None,
    result: str | None = None,
    *,
    stage: str = BLE_STAGE,
) -> bool:
    """Structured check: stage and op must match; result too when requested.

    ``op=None`` accepts any op within the stage.
    """
    if normalize_lower(event.stage) != stage:
        return False
    if op is not None and normalize_lower(event.op) != op.lower():
        return False
    if result is None:
        return True
    return normalize_lower(event.result) == result.lower()


def parse_operation(name: str) -> tuple[str, str, str | None]:
    """Split ``"[stage ]op[:result]"`` into its parts.

    >>> parse_operation("ble connect:start")
    ('ble', 'connect', 'start')
    """
    text = " ".join(name.strip().lower().split())
    if not text:
        raise ValueError("operation name must not be empty")
    stage = BLE_STAGE
    if " " in text:
        stage, text = text.split(" ", 1)
    op, _, result = text.partition(":")
    if not op:
        raise ValueError(f"operation name has no op: {name!r}")
    return stage, op, (result or None)


@dataclass(frozen=True, slots=True)
class StageMatcher:
    """Classifies events against operations; phase keyword tables are injected."""

    phase_patterns: Mapping[str, Sequence[str]] = field(default_factory=lambda: BLE_PHASE_PATTERNS)
    stage: str = BLE_STAGE

    def matches(
        self,
        event: LogEvent,
        op: str,
        result: str | None = None,
        *,
        phase: str | None = None,
    ) -> bool:
        if has_structured_tags(event):
            # Tagged events never fall back to name guessing.
            return is_stage_op(event, op, result, stage=self.stage)
        patterns = self.phase_patterns.get(phase or op)
        if not patterns:
            return False
        return matches_pattern(event.event_name, patterns)

    def matches_operation(self, event: LogEvent, name: str) -> bool:
        """Match a named operation such as ``"ble disconnect"`` or ``"ble connect:ok"``."""
        stage, op, result = parse_operation(name)
        if has_structured_tags(event):
            return is_stage_op(event, op, result, stage=stage)
        phase = "connected" if (op == "connect" and result == "ok") else op
        patterns = self.phase_patterns.get(phase)
        return bool(patterns) and matches_pattern(event.event_name, patterns)

    def is_disconnect(self, event: LogEvent) -> bool:
        return self.matches(event, "disconnect")

    def is_connect_start(self, event: LogEvent) -> bool:
        return self.matches(event, "connect", "start", phase="connect")

    def is_connect_success(self, event: LogEvent) -> bool:
        return self.matches(event, "connect", "ok", phase="connected")

    def is_start(self, event: LogEvent) -> bool:
        """Any operation start (command or connection attempt)."""
        if has_structured_tags(event):
            return is_stage_op(event, None, "start", stage=self.stage)
        return matches_pattern(event.event_name, START_PATTERNS) or matches_pattern(
            event.event_name, self.phase_patterns.get("connect", ())
        )

    def is_timeout(self, event: LogEvent) -> bool:
        """Timeout or retry signal for any operation."""
        if has_structured_tags(event):
            if normalize_lower(event.stage) != self.stage:
                return False
            return normalize_lower(event.result) in _RETRY_RESULTS
        return matches_pattern(event.event_name, TIMEOUT_PATTERNS)

    def command_outcome(self, event: LogEvent) -> ChainStatus | None:
        """Terminal outcome carried by an event, or None for non-terminal events."""
        if has_structured_tags(event):
            result = normalize_lower(event.result)
            if result in _SUCCESS_RESULTS:
                return ChainStatus.SUCCESS
            if result in _TIMEOUT_RESULTS:
                return ChainStatus.TIMEOUT
            if result in _ERROR_RESULTS:
                return ChainStatus.ERROR
            return None

        if event.level >= ERROR_LEVEL or event.error_code:
            if matches_pattern(event.event_name, TIMEOUT_PATTERNS):
                return ChainStatus.TIMEOUT
            return ChainStatus.ERROR
        if matches_pattern(event.event_name, SUCCESS_PATTERNS):
            return ChainStatus.SUCCESS
        return None


DEFAULT_MATCHER = StageMatcher()
