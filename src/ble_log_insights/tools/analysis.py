"""MCP tool implementations.

Keep this layer thin: validate inputs, load and filter events, call the
analysis core and return JSON-serializable data structures.
"""

from __future__ import annotations

from typing import Any

from ble_log_insights.core.anomaly import AnomalyDetector
from ble_log_insights.core.ble_quality import build_ble_quality_report
from ble_log_insights.core.command_chains import DEFAULT_CHAIN_LIMIT, CommandChainAnalyzer
from ble_log_insights.core.config import AnalysisConfig, resolve_analysis_config
from ble_log_insights.core.error_distribution import error_distribution
from ble_log_insights.core.event_source import count_buckets, filter_events, load_buckets, load_events
from ble_log_insights.core.models import LogEvent, MalformedInputError
from ble_log_insights.core.reconnect import reconnect_summary
from ble_log_insights.core.session_diff import SessionDiffEngine
from ble_log_insights.core.time_window import resolve_window_ms


def _enforce_cap(n: int, cfg: AnalysisConfig) -> None:
    if n > cfg.max_events:
        raise MalformedInputError(
            f"Batch of {n} events exceeds the maximum of {cfg.max_events} "
            "(narrow the window or raise BLE_INSIGHTS_MAX_EVENTS)"
        )


async def _load_selected(
    events_path: str,
    cfg: AnalysisConfig,
    *,
    session_id: str | None = None,
    link_code: str | None = None,
    device_mac: str | None = None,
    since_ms: int | None = None,
    until_ms: int | None = None,
) -> list[LogEvent]:
    events = await load_events(events_path)
    selected = filter_events(
        events,
        session_id=session_id,
        link_code=link_code,
        device_mac=device_mac,
        since_ms=since_ms,
        until_ms=until_ms,
    )
    _enforce_cap(len(selected), cfg)
    return selected


async def ble_quality_impl(
    *,
    events_path: str | None = None,
    buckets_path: str | None = None,
    parser_error_count: int = 0,
    link_code: str | None = None,
    device_mac: str | None = None,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    hour: str | None = None,
) -> dict[str, Any]:
    """Implementation for the `ble_quality_report` MCP tool.

    Exactly one of ``events_path`` (raw events, aggregated here) or
    ``buckets_path`` (pre-aggregated counts) must be given. Filters only
    apply to raw events.
    """
    if (events_path is None) == (buckets_path is None):
        raise ValueError("Provide exactly one of events_path or buckets_path.")

    cfg = resolve_analysis_config()
    if buckets_path is not None:
        buckets = await load_buckets(buckets_path)
    else:
        since_ms, until_ms = resolve_window_ms(since=since, until=until, date_=date, hour=hour)
        events = await _load_selected(
            events_path,
            cfg,
            link_code=link_code,
            device_mac=device_mac,
            since_ms=since_ms,
            until_ms=until_ms,
        )
        buckets = count_buckets(events)

    return build_ble_quality_report(buckets, parser_error_count).to_json_dict()


async def detect_anomalies_impl(
    *,
    events_path: str,
    link_code: str | None = None,
    device_mac: str | None = None,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    hour: str | None = None,
) -> dict[str, Any]:
    """Implementation for the `detect_anomalies` MCP tool."""
    cfg = resolve_analysis_config()
    since_ms, until_ms = resolve_window_ms(since=since, until=until, date_=date, hour=hour)
    events = await _load_selected(
        events_path,
        cfg,
        link_code=link_code,
        device_mac=device_mac,
        since_ms=since_ms,
        until_ms=until_ms,
    )
    detector = AnomalyDetector(thresholds=cfg.thresholds, preview_length=cfg.preview_length)
    return detector.detect(events).to_json_dict()


async def command_chains_impl(
    *,
    events_path: str,
    link_code: str | None = None,
    device_mac: str | None = None,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    hour: str | None = None,
    pending_timeout_ms: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Implementation for the `command_chains` MCP tool.

    ``pending_timeout_ms`` only takes effect when the window has an end
    (``until``, ``date`` or ``hour``); pending chains started at least that
    long before the end are reported as timeouts.
    """
    if pending_timeout_ms is not None and pending_timeout_ms < 0:
        raise ValueError("pending_timeout_ms must be >= 0")
    if limit is None:
        limit = DEFAULT_CHAIN_LIMIT
    if limit <= 0:
        raise ValueError("limit must be > 0")

    cfg = resolve_analysis_config()
    since_ms, until_ms = resolve_window_ms(since=since, until=until, date_=date, hour=hour)
    events = await _load_selected(
        events_path,
        cfg,
        link_code=link_code,
        device_mac=device_mac,
        since_ms=since_ms,
        until_ms=until_ms,
    )
    analyzer = CommandChainAnalyzer(slowest_limit=cfg.slowest_limit, preview_length=cfg.preview_length)
    report = analyzer.analyze(
        events,
        window_end_ms=until_ms,
        pending_timeout_ms=pending_timeout_ms,
        limit=limit,
    )
    return report.to_json_dict()


async def error_distribution_impl(
    *,
    events_path: str,
    link_code: str | None = None,
    device_mac: str | None = None,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    hour: str | None = None,
) -> dict[str, Any]:
    """Implementation for the `error_distribution` MCP tool."""
    cfg = resolve_analysis_config()
    since_ms, until_ms = resolve_window_ms(since=since, until=until, date_=date, hour=hour)
    events = await _load_selected(
        events_path,
        cfg,
        link_code=link_code,
        device_mac=device_mac,
        since_ms=since_ms,
        until_ms=until_ms,
    )
    return error_distribution(events).to_json_dict()


async def reconnect_summary_impl(
    *,
    events_path: str,
    link_code: str | None = None,
    device_mac: str | None = None,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    hour: str | None = None,
    reconnect_window_ms: int | None = None,
    limit: int | None = None,
) -> dict[str, Any]:
    """Implementation for the `reconnect_summary` MCP tool.

    ``reconnect_window_ms`` is clamped to 1 s..30 min (default 5 min) and
    ``limit`` to 1..200 devices (default 50).
    """
    cfg = resolve_analysis_config()
    since_ms, until_ms = resolve_window_ms(since=since, until=until, date_=date, hour=hour)
    events = await _load_selected(
        events_path,
        cfg,
        link_code=link_code,
        device_mac=device_mac,
        since_ms=since_ms,
        until_ms=until_ms,
    )
    report = reconnect_summary(events, reconnect_window_ms=reconnect_window_ms, limit=limit)
    return report.to_json_dict()


async def compare_sessions_impl(
    *,
    events_path_a: str,
    events_path_b: str | None = None,
    session_id_a: str | None = None,
    session_id_b: str | None = None,
    link_code_a: str | None = None,
    link_code_b: str | None = None,
    device_mac_a: str | None = None,
    device_mac_b: str | None = None,
    since_a: str | None = None,
    until_a: str | None = None,
    since_b: str | None = None,
    until_b: str | None = None,
    tolerance_ms: int | None = None,
) -> dict[str, Any]:
    """Implementation for the `compare_sessions` MCP tool.

    Side B defaults to the same file as side A; the two sides are then told
    apart by their own filters (session id, link code, device MAC, time range).
    """
    cfg = resolve_analysis_config()
    if tolerance_ms is None:
        tolerance_ms = cfg.diff_tolerance_ms
    if tolerance_ms < 0:
        raise ValueError("tolerance_ms must be >= 0")

    since_a_ms, until_a_ms = resolve_window_ms(since=since_a, until=until_a)
    since_b_ms, until_b_ms = resolve_window_ms(since=since_b, until=until_b)
    a = await _load_selected(
        events_path_a,
        cfg,
        session_id=session_id_a,
        link_code=link_code_a,
        device_mac=device_mac_a,
        since_ms=since_a_ms,
        until_ms=until_a_ms,
    )
    b = await _load_selected(
        events_path_b or events_path_a,
        cfg,
        session_id=session_id_b,
        link_code=link_code_b,
        device_mac=device_mac_b,
        since_ms=since_b_ms,
        until_ms=until_b_ms,
    )

    engine = SessionDiffEngine(tolerance_ms=tolerance_ms, preview_length=cfg.preview_length)
    return engine.compare(a, b).to_json_dict()
