"""Reconnect summary: how long each device takes to come back after a disconnect.

Events are grouped per device (MAC, else link code). Every disconnect opens a
case that is resolved by the next connect success within the reconnect window;
a second disconnect or the end of the window leaves it unresolved. Connect
starts seen in between are counted as attempts; the success itself is not.
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from .command_chains import mean_rounded, percentile
from .matching import DEFAULT_MATCHER, StageMatcher
from .models import LogEvent
from .schemas import ReportModel

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_WINDOW_MS = 5 * 60_000
MIN_RECONNECT_WINDOW_MS = 1_000
MAX_RECONNECT_WINDOW_MS = 30 * 60_000
DEFAULT_DEVICE_LIMIT = 50
MAX_DEVICE_LIMIT = 200

REASON_LENGTH = 120
TOP_REASONS = 5
SAMPLE_LIMIT = 5

_REASON_KEYS = ("reason", "error", "errorCode", "desc", "message", "msg")


class ReconnectCase(ReportModel):
    disconnect_event_id: str | None
    disconnect_at_ms: int
    reason: str | None
    reconnect_event_id: str | None
    reconnect_at_ms: int | None
    reconnect_delay_ms: int | None
    attempts: int


class ReasonCount(ReportModel):
    reason: str
    count: int


class DeviceReconnects(ReportModel):
    device_key: str
    device_mac: str | None
    link_codes: list[str]
    disconnects: int
    reconnect_ok: int
    reconnect_unresolved: int
    reconnect_delay_avg_ms: int | None
    reconnect_delay_p95_ms: int | None
    reconnect_delay_max_ms: int | None
    attempts_avg: int | None
    attempts_max: int | None
    top_reasons: list[ReasonCount]
    samples: list[ReconnectCase]


class ReconnectTotals(ReportModel):
    total_devices: int
    total_disconnects: int
    reconnect_window_ms: int


class ReconnectReport(ReportModel):
    items: list[DeviceReconnects]
    summary: ReconnectTotals


def disconnect_reason(event: LogEvent) -> str | None:
    """Best-effort reason text from the payload, else the error code."""
    payload: Any = event.payload
    reason = None
    if isinstance(payload, str):
        reason = payload.strip()[:REASON_LENGTH] or None
    elif isinstance(payload, dict):
        for key in _REASON_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                reason = value.strip()[:REASON_LENGTH]
                break
        else:
            text = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)
            reason = text[:REASON_LENGTH] if text != "{}" else None
    elif isinstance(payload, list):
        reason = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)[:REASON_LENGTH]
    return reason or event.error_code or None


def device_key(event: LogEvent) -> str | None:
    return event.device_mac or event.link_code or None


def _clamp(value: int | None, default: int, lo: int, hi: int) -> int:
    return min(max(default if value is None else value, lo), hi)


@dataclass(frozen=True, slots=True)
class ReconnectAnalyzer:
    matcher: StageMatcher = DEFAULT_MATCHER
    reconnect_window_ms: int = DEFAULT_RECONNECT_WINDOW_MS

    def cases(self, ordered: Sequence[LogEvent]) -> list[ReconnectCase]:
        """Disconnect cases of one device's time-sorted events."""
        out: list[ReconnectCase] = []
        for i, ev in enumerate(ordered):
            if not self.matcher.is_disconnect(ev):
                continue
            reconnect: LogEvent | None = None
            attempts = 0
            for nxt in ordered[i + 1 :]:
                if nxt.timestamp_ms - ev.timestamp_ms > self.reconnect_window_ms:
                    break
                if self.matcher.is_disconnect(nxt):
                    break
                if self.matcher.is_connect_success(nxt):
                    reconnect = nxt
                    break
                if self.matcher.is_connect_start(nxt):
                    attempts += 1
            at_ms = reconnect.timestamp_ms if reconnect is not None else None
            out.append(
                ReconnectCase(
                    disconnect_event_id=ev.id,
                    disconnect_at_ms=ev.timestamp_ms,
                    reason=disconnect_reason(ev),
                    reconnect_event_id=reconnect.id if reconnect is not None else None,
                    reconnect_at_ms=at_ms,
                    reconnect_delay_ms=at_ms - ev.timestamp_ms if at_ms is not None else None,
                    attempts=attempts,
                )
            )
        return out

    def device(self, key: str, events: Sequence[LogEvent]) -> DeviceReconnects | None:
        ordered = sorted(events, key=lambda e: e.timestamp_ms)
        cases = self.cases(ordered)
        if not cases:
            return None

        delays = sorted(c.reconnect_delay_ms for c in cases if c.reconnect_delay_ms is not None)
        attempts = sorted(c.attempts for c in cases)
        reasons = Counter(c.reason for c in cases if c.reason)
        ok = sum(1 for c in cases if c.reconnect_at_ms is not None)
        # unresolved first, then slowest
        samples = sorted(
            cases, key=lambda c: (c.reconnect_delay_ms is not None, -(c.reconnect_delay_ms or 0))
        )

        return DeviceReconnects(
            device_key=key,
            device_mac=next((ev.device_mac for ev in ordered if ev.device_mac), None),
            link_codes=list(dict.fromkeys(ev.link_code for ev in ordered if ev.link_code)),
            disconnects=len(cases),
            reconnect_ok=ok,
            reconnect_unresolved=len(cases) - ok,
            reconnect_delay_avg_ms=mean_rounded(delays),
            reconnect_delay_p95_ms=percentile(delays, 95),
            reconnect_delay_max_ms=delays[-1] if delays else None,
            attempts_avg=mean_rounded(attempts),
            attempts_max=attempts[-1] if attempts else None,
            top_reasons=[ReasonCount(reason=r, count=n) for r, n in reasons.most_common(TOP_REASONS)],
            samples=samples[:SAMPLE_LIMIT],
        )

    def analyze(self, events: Iterable[LogEvent], *, limit: int = DEFAULT_DEVICE_LIMIT) -> ReconnectReport:
        groups: dict[str, list[LogEvent]] = {}
        for ev in events:
            key = device_key(ev)
            if key is None:
                continue
            groups.setdefault(key, []).append(ev)

        items: list[DeviceReconnects] = []
        for key, group in groups.items():
            item = self.device(key, group)
            if item is not None:
                items.append(item)
        items.sort(
            key=lambda d: (
                -d.reconnect_unresolved,
                -(d.reconnect_delay_max_ms if d.reconnect_delay_max_ms is not None else -1),
                -d.disconnects,
            )
        )
        items = items[: _clamp(limit, DEFAULT_DEVICE_LIMIT, 1, MAX_DEVICE_LIMIT)]
        logger.debug("Reconnect summary: %d devices", len(items))
        return ReconnectReport(
            items=items,
            summary=ReconnectTotals(
                total_devices=len(items),
                total_disconnects=sum(d.disconnects for d in items),
                reconnect_window_ms=self.reconnect_window_ms,
            ),
        )


def reconnect_summary(
    events: Iterable[LogEvent],
    *,
    reconnect_window_ms: int | None = None,
    limit: int | None = None,
) -> ReconnectReport:
    """Per-device reconnect delays; the window is clamped to 1 s..30 min."""
    window = _clamp(
        reconnect_window_ms, DEFAULT_RECONNECT_WINDOW_MS, MIN_RECONNECT_WINDOW_MS, MAX_RECONNECT_WINDOW_MS
    )
    analyzer = ReconnectAnalyzer(reconnect_window_ms=window)
    return analyzer.analyze(events, limit=_clamp(limit, DEFAULT_DEVICE_LIMIT, 1, MAX_DEVICE_LIMIT))
