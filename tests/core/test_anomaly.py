from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import pytest

from ble_log_insights.core.anomaly import (
    NO_ISSUES,
    AnomalyDetector,
    anchor_clusters,
    classify_error,
    densest_window,
    detect_anomalies,
    severity_bucket,
)
from ble_log_insights.core.config import AnomalyThresholds
from ble_log_insights.core.models import LogEvent
from ble_log_insights.core.schemas import parse_events


def _ble(make_event: Callable[..., LogEvent], ts: int, op: str, result: str, **fields: Any) -> LogEvent:
    return make_event(f"ble {op} {result}", ts, stage="ble", op=op, result=result, **fields)


def _types(report) -> list[str]:
    return [f.type.value for f in report.anomalies]


def test_quiet_session_has_no_findings(make_event: Callable[..., LogEvent]) -> None:
    report = detect_anomalies([make_event("BLE sdk info", 0, level=1)])
    assert report.anomalies == []
    assert report.recommendations == [NO_ISSUES]
    assert report.summary.total_events == 1


def test_empty_input() -> None:
    summary = detect_anomalies([]).to_json_dict()["summary"]
    assert summary["totalAnomalies"] == 0
    assert summary["affectedSessionsCount"] == 0


def test_frequent_disconnect_per_session(session_records: list[dict[str, Any]]) -> None:
    report = detect_anomalies(parse_events(session_records)).to_json_dict()
    (finding,) = report["anomalies"]
    assert finding["type"] == "frequent_disconnect"
    assert finding["severity"] == 4
    assert finding["occurrences"] == 4
    assert finding["affectedSessions"] == ["L-2"]
    assert finding["timeWindowMs"] == 60_000
    assert finding["description"] == "4 disconnects in 60s (session L-2)"
    assert len(finding["sampleEvents"]) == 4

    summary = report["summary"]
    assert (summary["highCount"], summary["affectedSessionsCount"]) == (1, 1)
    assert summary["disconnectEvents"] == 4
    assert summary["totalEvents"] == len(session_records)


def test_disconnects_spread_over_sessions_do_not_add_up(make_event: Callable[..., LogEvent]) -> None:
    events = [make_event("BLE disconnect", i * 1_000, level=3, link_code=f"L-{i}") for i in range(5)]
    assert detect_anomalies(events).anomalies == []


def test_disconnect_storm_is_critical_and_samples_are_capped(make_event: Callable[..., LogEvent]) -> None:
    events = [make_event("GATT_DISCONNECTED", i * 2_000, level=3, session_id="s1") for i in range(7)]
    report = detect_anomalies(events)
    (finding,) = report.anomalies
    assert finding.severity == 5
    assert finding.occurrences == 7
    assert len(finding.sample_events) == 5
    assert report.summary.critical_count == 1
    assert report.recommendations[0].startswith("CRITICAL: 7 disconnects")


def test_disconnects_outside_window_are_not_clustered(make_event: Callable[..., LogEvent]) -> None:
    events = [make_event("BLE disconnect", i * 40_000, level=3, link_code="L-1") for i in range(3)]
    assert detect_anomalies(events).anomalies == []


def test_timeout_retry_sequences(make_event: Callable[..., LogEvent]) -> None:
    events = []
    for i in range(3):
        events.append(_ble(make_event, i * 2_000, "connect", "start", link_code="L-9"))
        events.append(_ble(make_event, i * 2_000 + 1_000, "connect", "timeout", link_code="L-9"))
    report = detect_anomalies(events)
    (finding,) = report.anomalies
    assert finding.type.value == "timeout_retry"
    assert finding.severity == 3
    assert finding.occurrences == 3
    assert finding.affected_sessions == ["L-9"]
    assert finding.time_window_ms == 30_000
    assert report.summary.timeout_events == 3


def test_timeouts_without_a_start_are_not_retries(make_event: Callable[..., LogEvent]) -> None:
    events = [make_event("CMD_TIMEOUT", i * 1_000, level=3, link_code="L-1") for i in range(4)]
    assert "timeout_retry" not in _types(detect_anomalies(events))


def test_timeout_retry_falls_back_to_request_id(make_event: Callable[..., LogEvent]) -> None:
    events = []
    for i in range(4):
        events.append(make_event("SYNC_START", i * 3_000, request_id="r-7"))
        events.append(make_event("SYNC_TIMEOUT", i * 3_000 + 500, level=3, request_id="r-7"))
    report = detect_anomalies(events)
    finding = next(f for f in report.anomalies if f.type.value == "timeout_retry")
    assert finding.severity == 4
    assert finding.affected_sessions == []
    assert "(r-7)" in finding.description


def test_error_burst_names_dominant_category(make_event: Callable[..., LogEvent]) -> None:
    events = [make_event("GATT_ERROR", i * 1_000, level=4, link_code="L-3") for i in range(5)]
    events.append(make_event("BLE error", 5_500, level=4, link_code="L-4"))
    (finding,) = detect_anomalies(events).anomalies
    assert finding.type.value == "error_burst"
    assert finding.severity == 4
    assert finding.occurrences == 6
    assert finding.time_window_ms == 5_500
    assert finding.description == "6 errors in 6s (mostly gatt_error)"
    assert finding.affected_sessions == ["L-3", "L-4"]


def test_error_bursts_are_anchored(make_event: Callable[..., LogEvent]) -> None:
    events = [make_event("BLE error", i * 1_000, level=4) for i in range(5)]
    events += [make_event("BLE error", 60_000 + i * 1_000, level=4) for i in range(10)]
    report = detect_anomalies(events)
    assert [(f.severity, f.occurrences) for f in report.anomalies] == [(5, 10), (4, 5)]


def test_slow_connection(make_event: Callable[..., LogEvent]) -> None:
    events = [
        _ble(make_event, 0, "connect", "start", session_id="s1"),
        _ble(make_event, 12_000, "connect", "ok", session_id="s1"),
        _ble(make_event, 0, "connect", "start", session_id="s2"),
        _ble(make_event, 2_000, "connect", "ok", session_id="s2"),
    ]
    (finding,) = detect_anomalies(events).anomalies
    assert finding.type.value == "slow_connection"
    assert finding.severity == 3
    assert finding.occurrences == 1
    assert finding.affected_sessions == ["s1"]
    assert "slowest 12000 ms" in finding.description


def test_slow_connection_untagged_names(make_event: Callable[..., LogEvent]) -> None:
    events = []
    for n in range(3):
        events.append(make_event("BLE start connection", 0, link_code=f"L-{n}"))
        events.append(make_event("BLE connection success", 11_000 + n, link_code=f"L-{n}"))
    (finding,) = detect_anomalies(events).anomalies
    assert finding.severity == 4
    assert finding.affected_sessions == ["L-0", "L-1", "L-2"]
    assert finding.time_window_ms == 11_002


def test_disconnect_resets_connection_attempt(make_event: Callable[..., LogEvent]) -> None:
    events = [
        make_event("GATT_CONNECT", 0, session_id="s1"),
        make_event("DEVICE_DISCONNECTED", 5_000, level=3, session_id="s1"),
        make_event("GATT_CONNECT", 20_000, session_id="s1"),
        make_event("GATT_CONNECTED", 21_000, session_id="s1"),
    ]
    assert "slow_connection" not in _types(detect_anomalies(events))


def _chains(make_event: Callable[..., LogEvent], failed: int, ok: int) -> list[LogEvent]:
    events = []
    for i in range(failed + ok):
        rid = f"r{i}"
        events.append(make_event("WRITE_REQUEST", i * 100_000, request_id=rid, link_code="L-5"))
        if i < failed:
            events.append(make_event("WRITE_FAILED", i * 100_000 + 50, level=4, request_id=rid, link_code="L-5"))
        else:
            events.append(make_event("WRITE_RESPONSE", i * 100_000 + 50, request_id=rid, link_code="L-5"))
    return events


@pytest.mark.parametrize(
    ("failed", "ok", "severity"),
    [
        (3, 1, 4),
        (3, 2, 5),
        (2, 3, 3),
    ],
)
def test_command_failure_severity(make_event: Callable[..., LogEvent], failed: int, ok: int, severity: int) -> None:
    (finding,) = detect_anomalies(_chains(make_event, failed, ok)).anomalies
    assert finding.type.value == "command_failure"
    assert finding.severity == severity
    assert finding.occurrences == failed
    assert finding.affected_sessions == ["L-5"]
    assert {s.event_name for s in finding.sample_events} == {"WRITE_FAILED"}
    assert f"({failed}/{failed + ok})" in finding.description


def test_low_command_failure_rate_is_ignored(make_event: Callable[..., LogEvent]) -> None:
    assert detect_anomalies(_chains(make_event, 1, 4)).anomalies == []


def test_findings_ranked_by_severity_then_occurrences(make_event: Callable[..., LogEvent]) -> None:
    events = [make_event("BLE disconnect", i * 1_000, level=3, link_code="L-1") for i in range(3)]
    events += [make_event("BLE disconnect", i * 1_000, level=3, link_code="L-2") for i in range(4)]
    for i in range(2):
        events.append(_ble(make_event, 100_000 + i * 2_000, "write", "start", link_code="L-3"))
        events.append(_ble(make_event, 101_000 + i * 2_000, "write", "timeout", link_code="L-3"))
    report = detect_anomalies(events)
    assert [(f.type.value, f.occurrences) for f in report.anomalies] == [
        ("frequent_disconnect", 4),
        ("frequent_disconnect", 3),
        ("timeout_retry", 2),
    ]
    assert report.summary.affected_sessions_count == 3


def test_recommendations_group_by_type(make_event: Callable[..., LogEvent]) -> None:
    events = [make_event("BLE disconnect", i * 1_000, level=3, link_code="L-1") for i in range(3)]
    events += [make_event("BLE disconnect", i * 1_000, level=3, link_code="L-2") for i in range(3)]
    lines = detect_anomalies(events).recommendations
    assert lines[0].startswith("[frequent_disconnect] 2 findings.")
    assert lines[1:] == [
        "  - Device battery level",
        "  - Signal interference sources",
        "  - Distance between device and phone",
    ]


def test_custom_thresholds(make_event: Callable[..., LogEvent]) -> None:
    events = [make_event("BLE disconnect", i * 1_000, level=3, link_code="L-1") for i in range(2)]
    detector = AnomalyDetector(thresholds=AnomalyThresholds(disconnect_count=2))
    assert _types(detector.detect(events)) == ["frequent_disconnect"]


def test_detection_is_deterministic(session_records: list[dict[str, Any]]) -> None:
    events = parse_events(session_records)
    first = json.dumps(detect_anomalies(events).to_json_dict())
    second = json.dumps(detect_anomalies(list(reversed(events))).to_json_dict())
    assert first == second


@pytest.mark.parametrize(
    ("name", "code", "category"),
    [
        ("BLE error", "GATT_ERROR 133", "gatt_error"),
        ("connect_timeout", None, "connection_timeout"),
        ("CRC_ERROR on packet", None, "data_corruption"),
        ("READ TIMEOUT", None, "timeout"),
        ("SOMETHING FAILED", None, "general_error"),
        ("DISCONNECT", None, "disconnect"),
        ("weird", None, "unknown"),
    ],
)
def test_classify_error(name: str, code: str | None, category: str) -> None:
    assert classify_error(name, code).category == category


def test_classify_error_marks_known_patterns() -> None:
    assert classify_error("BOND_FAILED").matched
    assert not classify_error("weird").matched


def test_severity_buckets() -> None:
    assert [severity_bucket(s) for s in (5, 4, 3, 2, 1)] == ["critical", "high", "medium", "low", "info"]


def test_window_helpers(make_event: Callable[..., LogEvent]) -> None:
    events = [make_event("x", ts) for ts in (0, 10, 100, 105, 110, 500)]
    assert [e.timestamp_ms for e in densest_window(events, 20)] == [100, 105, 110]
    assert [len(c) for c in anchor_clusters(events, 100)] == [3, 2, 1]
    assert densest_window([], 10) == []
