"""Anomaly detection over a time-ordered BLE event stream.

Each pattern is an independent pass over the sorted events:

- frequent_disconnect: disconnects per session inside a sliding window;
- timeout_retry: start -> timeout sequences per correlation key inside a sliding window;
- error_burst: anchor-based clusters of ERROR-level events;
- slow_connection: connect-start -> connect-success latency per session;
- command_failure: command chains ending in ``error``, grouped by command name.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

from .command_chains import CommandChainAnalyzer
from .config import AnomalyThresholds
from .matching import DEFAULT_MATCHER, StageMatcher
from .models import ERROR_LEVEL, AnomalyType, ChainStatus, LogEvent
from .payload import DEFAULT_PREVIEW_LENGTH, preview_payload
from .schemas import ReportModel

logger = logging.getLogger(__name__)

CRITICAL_SEVERITY = 5
HIGH_SEVERITY = 4
MEDIUM_SEVERITY = 3
LOW_SEVERITY = 2


@dataclass(frozen=True, slots=True)
class ErrorCategory:
    category: str
    severity: int
    suggestion: str
    matched: bool = False


_KNOWN_ERRORS: tuple[tuple[re.Pattern[str], ErrorCategory], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), ErrorCategory(category, severity, suggestion, matched=True))
    for pattern, category, severity, suggestion in (
        (
            r"GATT_ERROR|GATT_FAILURE",
            "gatt_error",
            4,
            "GATT operation failed. Check Bluetooth connection stability and retry.",
        ),
        (
            r"CONNECTION_TIMEOUT|CONNECT_TIMEOUT",
            "connection_timeout",
            3,
            "Connection timeout. Ensure device is in range and not paired with other devices.",
        ),
        (
            r"BOND_FAILED|PAIRING_FAILED",
            "pairing_failure",
            4,
            "Pairing failed. Remove device bond and try again.",
        ),
        (
            r"SERVICE_NOT_FOUND|CHARACTERISTIC_NOT_FOUND",
            "service_missing",
            5,
            "BLE service/characteristic not found. Check device firmware version.",
        ),
        (
            r"WRITE_FAILED|READ_FAILED",
            "io_error",
            3,
            "BLE read/write operation failed. Verify connection is still active.",
        ),
        (
            r"DISCONNECTED_UNEXPECTEDLY|CONNECTION_LOST",
            "unexpected_disconnect",
            4,
            "Unexpected disconnection. Check for interference or low battery.",
        ),
        (
            r"CRC_ERROR|CHECKSUM",
            "data_corruption",
            5,
            "Data corruption detected. Check for signal interference.",
        ),
        (
            r"BLUETOOTH_OFF|ADAPTER_DISABLED",
            "bluetooth_disabled",
            2,
            "Bluetooth is disabled. Enable Bluetooth in system settings.",
        ),
        (
            r"PERMISSION_DENIED|LOCATION_REQUIRED",
            "permission_error",
            2,
            "Missing permissions. Grant Bluetooth and location permissions.",
        ),
    )
)


def classify_error(event_name: str, error_code: str | None = None) -> ErrorCategory:
    """Map an error event to a known category, falling back to name keywords."""
    combined = f"{event_name} {error_code or ''}"
    for pattern, known in _KNOWN_ERRORS:
        if pattern.search(combined):
            return known

    name = event_name.upper()
    if "TIMEOUT" in name:
        return ErrorCategory(
            "timeout", 3, "Operation timed out. Check device responsiveness and connection quality."
        )
    if "ERROR" in name or "FAILED" in name:
        return ErrorCategory(
            "general_error", 4, "An error occurred. Review the message details for more information."
        )
    if "DISCONNECT" in name:
        return ErrorCategory(
            "disconnect", 3, "Device disconnected. Check if this was expected or triggered by an error."
        )
    return ErrorCategory("unknown", 3, "Check device connection and retry the operation.")


class SampleEvent(ReportModel):
    id: str | None
    event_name: str
    timestamp_ms: int
    level: int
    payload_preview: str | None


class AnomalyFinding(ReportModel):
    type: AnomalyType
    severity: int
    description: str
    suggestion: str
    occurrences: int
    affected_sessions: list[str]
    time_window_ms: int
    sample_events: list[SampleEvent]


class AnomalySummary(ReportModel):
    total_anomalies: int
    critical_count: int
    high_count: int
    medium_count: int
    low_count: int
    info_count: int
    affected_sessions_count: int
    total_events: int
    error_events: int
    disconnect_events: int
    timeout_events: int


class AnomalyReport(ReportModel):
    anomalies: list[AnomalyFinding]
    summary: AnomalySummary
    recommendations: list[str]


_TYPE_ADVICE: dict[AnomalyType, tuple[str, tuple[str, ...]]] = {
    AnomalyType.FREQUENT_DISCONNECT: (
        "Frequent disconnects point to connection stability issues. Consider checking:",
        ("Device battery level", "Signal interference sources", "Distance between device and phone"),
    ),
    AnomalyType.TIMEOUT_RETRY: (
        "Repeated timeouts suggest the device stops responding:",
        ("Device status and firmware state", "Connection quality while commands are in flight"),
    ),
    AnomalyType.ERROR_BURST: (
        "Bursts of errors need a root-cause review:",
        ("Start from the first error of each burst", "Correlate with nearby disconnects and timeouts"),
    ),
    AnomalyType.SLOW_CONNECTION: (
        "Slow connection times may indicate:",
        ("Bluetooth adapter issues", "Too many paired devices", "Device discovery delays"),
    ),
    AnomalyType.COMMAND_FAILURE: (
        "High command failure rate suggests communication issues:",
        ("Verify command format and parameters", "Check device firmware version compatibility"),
    ),
}

NO_ISSUES = "No significant issues detected. System is operating normally."


def _seconds(ms: int) -> int:
    return (ms + 500) // 1000


def _session_keys(events: Iterable[LogEvent]) -> list[str]:
    return sorted({ev.session_key for ev in events if ev.session_key})


def densest_window(events: Sequence[LogEvent], window_ms: int) -> list[LogEvent]:
    """Largest run of time-sorted events spanning at most ``window_ms``.

    Earliest run wins on ties.
    """
    best_lo = best_hi = 0
    lo = 0
    for hi in range(len(events)):
        while events[hi].timestamp_ms - events[lo].timestamp_ms > window_ms:
            lo += 1
        if hi + 1 - lo > best_hi - best_lo:
            best_lo, best_hi = lo, hi + 1
    return list(events[best_lo:best_hi])


def anchor_clusters(events: Sequence[LogEvent], window_ms: int) -> list[list[LogEvent]]:
    """Split time-sorted events into clusters anchored at their first event."""
    clusters: list[list[LogEvent]] = []
    current: list[LogEvent] = []
    for ev in events:
        if current and ev.timestamp_ms - current[0].timestamp_ms > window_ms:
            clusters.append(current)
            current = []
        current.append(ev)
    if current:
        clusters.append(current)
    return clusters


def _group_by(
    events: Iterable[LogEvent], key: Callable[[LogEvent], str | None]
) -> dict[str | None, list[LogEvent]]:
    groups: dict[str | None, list[LogEvent]] = {}
    for ev in events:
        groups.setdefault(key(ev), []).append(ev)
    return groups


def severity_bucket(severity: int) -> str:
    if severity >= CRITICAL_SEVERITY:
        return "critical"
    if severity >= HIGH_SEVERITY:
        return "high"
    if severity >= MEDIUM_SEVERITY:
        return "medium"
    if severity >= LOW_SEVERITY:
        return "low"
    return "info"


def build_recommendations(findings: Sequence[AnomalyFinding]) -> list[str]:
    """CRITICAL lines first, then one headline per anomaly type with checklist items."""
    if not findings:
        return [NO_ISSUES]

    lines = [
        f"CRITICAL: {f.description}. {f.suggestion}" for f in findings if f.severity >= CRITICAL_SEVERITY
    ]

    per_type = Counter(f.type for f in findings)
    for kind in dict.fromkeys(f.type for f in findings):
        headline, items = _TYPE_ADVICE[kind]
        n = per_type[kind]
        lines.append(f"[{kind.value}] {n} finding{'s' if n != 1 else ''}. {headline}")
        lines.extend(f"  - {item}" for item in items)
    return lines


@dataclass(frozen=True, slots=True)
class AnomalyDetector:
    thresholds: AnomalyThresholds = field(default_factory=AnomalyThresholds)
    matcher: StageMatcher = DEFAULT_MATCHER
    preview_length: int = DEFAULT_PREVIEW_LENGTH

    def _samples(self, events: Iterable[LogEvent]) -> list[SampleEvent]:
        out: list[SampleEvent] = []
        for ev in events:
            if len(out) >= self.thresholds.sample_limit:
                break
            out.append(
                SampleEvent(
                    id=ev.id,
                    event_name=ev.event_name,
                    timestamp_ms=ev.timestamp_ms,
                    level=ev.level,
                    payload_preview=preview_payload(ev.payload, self.preview_length),
                )
            )
        return out

    def _frequent_disconnects(self, events: Sequence[LogEvent]) -> list[AnomalyFinding]:
        t = self.thresholds
        disconnects = [ev for ev in events if self.matcher.is_disconnect(ev)]
        findings = []
        for key, group in _group_by(disconnects, lambda e: e.session_key).items():
            window = densest_window(group, t.disconnect_window_ms)
            n = len(window)
            if n < t.disconnect_count:
                continue
            where = f" (session {key})" if key else ""
            findings.append(
                AnomalyFinding(
                    type=AnomalyType.FREQUENT_DISCONNECT,
                    severity=CRITICAL_SEVERITY if n >= t.disconnect_critical_count else HIGH_SEVERITY,
                    description=f"{n} disconnects in {_seconds(t.disconnect_window_ms)}s{where}",
                    suggestion="Check for connection stability issues, signal interference, or device battery.",
                    occurrences=n,
                    affected_sessions=[key] if key else [],
                    time_window_ms=t.disconnect_window_ms,
                    sample_events=self._samples(window),
                )
            )
        return findings

    def _timeout_retries(self, events: Sequence[LogEvent]) -> list[AnomalyFinding]:
        t = self.thresholds
        findings = []
        groups = _group_by(events, lambda e: e.session_key or e.request_id)
        for key, group in groups.items():
            # Timeout events that close a start -> timeout sequence.
            closing: list[LogEvent] = []
            started = False
            for ev in group:
                if self.matcher.is_timeout(ev):
                    if started:
                        closing.append(ev)
                    started = False
                elif self.matcher.is_start(ev):
                    started = True

            window = densest_window(closing, t.timeout_window_ms)
            n = len(window)
            if n < t.timeout_count:
                continue
            where = f" ({key})" if key else ""
            findings.append(
                AnomalyFinding(
                    type=AnomalyType.TIMEOUT_RETRY,
                    severity=HIGH_SEVERITY if n >= t.timeout_high_count else MEDIUM_SEVERITY,
                    description=f"{n} start/timeout retries in {_seconds(t.timeout_window_ms)}s{where}",
                    suggestion="Device may be unresponsive. Check device status and connection quality.",
                    occurrences=n,
                    affected_sessions=_session_keys(window),
                    time_window_ms=t.timeout_window_ms,
                    sample_events=self._samples(window),
                )
            )
        return findings

    def _error_bursts(self, events: Sequence[LogEvent]) -> list[AnomalyFinding]:
        t = self.thresholds
        errors = [ev for ev in events if ev.level >= ERROR_LEVEL]
        findings = []
        for cluster in anchor_clusters(errors, t.error_burst_window_ms):
            n = len(cluster)
            if n < t.error_burst_count:
                continue
            categories = Counter(classify_error(ev.event_name, ev.error_code).category for ev in cluster)
            top = categories.most_common(1)[0][0]
            span = cluster[-1].timestamp_ms - cluster[0].timestamp_ms
            findings.append(
                AnomalyFinding(
                    type=AnomalyType.ERROR_BURST,
                    severity=CRITICAL_SEVERITY if n >= t.error_burst_critical_count else HIGH_SEVERITY,
                    description=f"{n} errors in {_seconds(span)}s (mostly {top})",
                    suggestion=(
                        "Multiple errors occurred rapidly. "
                        "Review the error sequence to identify root cause."
                    ),
                    occurrences=n,
                    affected_sessions=_session_keys(cluster),
                    time_window_ms=span,
                    sample_events=self._samples(cluster),
                )
            )
        return findings

    def _slow_connections(self, events: Sequence[LogEvent]) -> list[AnomalyFinding]:
        t = self.thresholds
        # (session key, start event, success event) per slow attempt
        slow: list[tuple[str | None, LogEvent, LogEvent]] = []
        for key, group in _group_by(events, lambda e: e.session_key).items():
            start: LogEvent | None = None
            for ev in group:
                # DISCONNECTED contains CONNECTED; GATT_CONNECTED contains GATT_CONNECT.
                if self.matcher.is_disconnect(ev):
                    start = None
                elif self.matcher.is_connect_success(ev):
                    if start is not None and ev.timestamp_ms - start.timestamp_ms > t.slow_connection_ms:
                        slow.append((key, start, ev))
                    start = None
                elif start is None and self.matcher.is_connect_start(ev):
                    start = ev

        if not slow:
            return []

        sessions = list(dict.fromkeys(key for key, _, _ in slow))
        n = len(sessions)
        worst = max(done.timestamp_ms - begin.timestamp_ms for _, begin, done in slow)
        span = max(done.timestamp_ms for _, _, done in slow) - min(begin.timestamp_ms for _, begin, _ in slow)
        return [
            AnomalyFinding(
                type=AnomalyType.SLOW_CONNECTION,
                severity=HIGH_SEVERITY if n >= t.slow_connection_high_sessions else MEDIUM_SEVERITY,
                description=(
                    f"{n} session{'s' if n != 1 else ''} took >{_seconds(t.slow_connection_ms)}s "
                    f"to connect (slowest {worst} ms)"
                ),
                suggestion="Connection is slow. Check for interference, device distance, or pairing issues.",
                occurrences=n,
                affected_sessions=sorted(key for key in sessions if key),
                time_window_ms=span,
                sample_events=self._samples(done for _, _, done in slow),
            )
        ]

    def _command_failures(self, events: Sequence[LogEvent]) -> list[AnomalyFinding]:
        t = self.thresholds
        analyzer = CommandChainAnalyzer(matcher=self.matcher, preview_length=self.preview_length)
        chains = analyzer.build_chains(events)
        if not chains:
            return []

        by_request = _group_by((ev for ev in events if ev.request_id), lambda e: e.request_id)
        by_command: dict[str, list] = {}
        for chain in chains:
            by_command.setdefault(chain.command_name, []).append(chain)

        findings = []
        for name, group in by_command.items():
            failed = [c for c in group if c.status is ChainStatus.ERROR]
            if not failed:
                continue
            rate = len(failed) / len(group)
            if rate < t.command_failure_rate:
                continue
            if rate > t.command_failure_high_rate:
                severity = CRITICAL_SEVERITY if len(group) >= t.command_failure_critical_chains else HIGH_SEVERITY
            else:
                severity = MEDIUM_SEVERITY

            failed_events = [ev for c in failed for ev in by_request[c.request_id]]
            start = min(c.start_ms for c in failed)
            end = max(c.end_ms if c.end_ms is not None else c.start_ms for c in failed)
            findings.append(
                AnomalyFinding(
                    type=AnomalyType.COMMAND_FAILURE,
                    severity=severity,
                    description=f"{round(rate * 100)}% of {name!r} commands failed ({len(failed)}/{len(group)})",
                    suggestion="High command failure rate. Check device responsiveness and data format.",
                    occurrences=len(failed),
                    affected_sessions=_session_keys(failed_events),
                    time_window_ms=end - start,
                    sample_events=self._samples(
                        ev for ev in failed_events if self.matcher.command_outcome(ev) is ChainStatus.ERROR
                    ),
                )
            )
        return findings

    def detect(self, events: Iterable[LogEvent]) -> AnomalyReport:
        ordered = sorted(events, key=lambda e: e.timestamp_ms)

        findings: list[AnomalyFinding] = []
        for detect_pass in (
            self._frequent_disconnects,
            self._timeout_retries,
            self._error_bursts,
            self._slow_connections,
            self._command_failures,
        ):
            findings.extend(detect_pass(ordered))
        findings.sort(key=lambda f: (-f.severity, -f.occurrences))

        buckets = Counter(severity_bucket(f.severity) for f in findings)
        affected = {key for f in findings for key in f.affected_sessions}
        summary = AnomalySummary(
            total_anomalies=len(findings),
            critical_count=buckets["critical"],
            high_count=buckets["high"],
            medium_count=buckets["medium"],
            low_count=buckets["low"],
            info_count=buckets["info"],
            affected_sessions_count=len(affected),
            total_events=len(ordered),
            error_events=sum(1 for ev in ordered if ev.level >= ERROR_LEVEL),
            disconnect_events=sum(1 for ev in ordered if self.matcher.is_disconnect(ev)),
            timeout_events=sum(1 for ev in ordered if self.matcher.is_timeout(ev)),
        )
        logger.debug("Anomaly detection: %d events, %d findings", len(ordered), len(findings))
        return AnomalyReport(anomalies=findings, summary=summary, recommendations=build_recommendations(findings))


def detect_anomalies(
    events: Iterable[LogEvent],
    thresholds: AnomalyThresholds | None = None,
    preview_length: int = DEFAULT_PREVIEW_LENGTH,
) -> AnomalyReport:
    detector = AnomalyDetector(thresholds=thresholds or AnomalyThresholds(), preview_length=preview_length)
    return detector.detect(events)
