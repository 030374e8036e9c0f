"""MCP server entrypoint (stdio transport).

This module wires together:
- Tools: the BLE log analyses over an event file inside BLE_INSIGHTS_BASE_DIR
- Resources: the required-event catalog, pair checks and detection settings
- Prompts: session triage and session comparison workflows

Run locally (stdio):
    python -m ble_log_insights.server.log_server
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence
from typing import Any

from mcp.server.fastmcp import FastMCP

from ble_log_insights.core.event_source import resolve_event_file
from ble_log_insights.prompts.registry import register_prompts
from ble_log_insights.resources.registry import register_resources
from ble_log_insights.tools.analysis import (
    ble_quality_impl,
    command_chains_impl,
    compare_sessions_impl,
    detect_anomalies_impl,
    error_distribution_impl,
    reconnect_summary_impl,
)

LOGGER = logging.getLogger(__name__)
LOG_LEVEL_ENV = "BLE_INSIGHTS_LOG_LEVEL"


def _configure_logging() -> None:
    """Log to stderr; stdout carries the stdio transport."""
    level_name = os.getenv(LOG_LEVEL_ENV, "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _event_path(path: str | None) -> str | None:
    """Confine client-supplied paths to the base directory."""
    return str(resolve_event_file(path)) if path is not None else None


mcp = FastMCP("ble-log-insights", json_response=True)

register_resources(mcp)
register_prompts(mcp)


@mcp.tool()
async def ble_quality_report(
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
    """Check BLE logging compliance against the required-event catalog.

    Parameters
    ----------
    events_path:
        JSON/JSONL event file (optionally .gz). Events are counted per
        (eventName, level) after filtering.
    buckets_path:
        Alternative input: pre-aggregated [{eventName, level, count}] records.
    parser_error_count:
        Lines the upstream parser could not decode; echoed in the report.
    link_code/device_mac:
        Restrict raw events to one link or device.
    since/until:
        ISO-8601 datetimes or epoch milliseconds. UTC is assumed without an offset.
    date/hour:
        Convenience selectors (e.g., 2025-12-31 or 2025-12-31T20); they win over since/until.

    Returns
    -------
    dict:
        {"summary", "byCategory", "requiredEvents", "pairChecks", "parser"}
    """
    return await ble_quality_impl(
        events_path=_event_path(events_path),
        buckets_path=_event_path(buckets_path),
        parser_error_count=parser_error_count,
        link_code=link_code,
        device_mac=device_mac,
        since=since,
        until=until,
        date=date,
        hour=hour,
    )


@mcp.tool()
async def detect_anomalies(
    events_path: str,
    link_code: str | None = None,
    device_mac: str | None = None,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    hour: str | None = None,
) -> dict[str, Any]:
    """Find disconnect storms, timeout loops, error bursts, slow connections and failing commands.

    Returns
    -------
    dict:
        {"anomalies": [...], "summary": {...}, "recommendations": [str]}
    """
    return await detect_anomalies_impl(
        events_path=_event_path(events_path),
        link_code=link_code,
        device_mac=device_mac,
        since=since,
        until=until,
        date=date,
        hour=hour,
    )


@mcp.tool()
async def command_chains(
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
    """Group events by requestId into command chains with latency percentiles.

    Parameters
    ----------
    pending_timeout_ms:
        With a window end, chains still pending this long before the end count as timeouts.
    limit:
        Maximum number of chains listed (clamped to 1..1000). Stats always cover every chain.
    """
    return await command_chains_impl(
        events_path=_event_path(events_path),
        link_code=link_code,
        device_mac=device_mac,
        since=since,
        until=until,
        date=date,
        hour=hour,
        pending_timeout_ms=pending_timeout_ms,
        limit=limit,
    )


@mcp.tool()
async def compare_sessions(
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
    """Align two sessions on a timeline and classify each slot.

    Slots are "match", "diff", "only_a" or "only_b". Side B reads
    events_path_a when events_path_b is omitted; each side has its own
    session id, link code, device MAC and since/until filters.
    """
    return await compare_sessions_impl(
        events_path_a=_event_path(events_path_a),
        events_path_b=_event_path(events_path_b),
        session_id_a=session_id_a,
        session_id_b=session_id_b,
        link_code_a=link_code_a,
        link_code_b=link_code_b,
        device_mac_a=device_mac_a,
        device_mac_b=device_mac_b,
        since_a=since_a,
        until_a=until_a,
        since_b=since_b,
        until_b=until_b,
        tolerance_ms=tolerance_ms,
    )


@mcp.tool()
async def error_distribution(
    events_path: str,
    link_code: str | None = None,
    device_mac: str | None = None,
    since: str | None = None,
    until: str | None = None,
    date: str | None = None,
    hour: str | None = None,
) -> dict[str, Any]:
    """Tally WARN/ERROR and error-coded events by category, error code, event name and level.

    Returns
    -------
    dict:
        {"total", "byCategory", "byErrorCode", "byEventName", "byLevel"}
    """
    return await error_distribution_impl(
        events_path=_event_path(events_path),
        link_code=link_code,
        device_mac=device_mac,
        since=since,
        until=until,
        date=date,
        hour=hour,
    )


@mcp.tool()
async def reconnect_summary(
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
    """Per-device disconnect -> reconnect delays, attempts and top disconnect reasons.

    Parameters
    ----------
    reconnect_window_ms:
        How long after a disconnect a connect success still counts (1 s..30 min, default 5 min).
    limit:
        Maximum number of devices listed (1..200, default 50); devices with unresolved
        disconnects come first.
    """
    return await reconnect_summary_impl(
        events_path=_event_path(events_path),
        link_code=link_code,
        device_mac=device_mac,
        since=since,
        until=until,
        date=date,
        hour=hour,
        reconnect_window_ms=reconnect_window_ms,
        limit=limit,
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Start the MCP server over stdio."""
    _configure_logging()
    LOGGER.debug("Starting MCP server (transport=stdio)")
    _ = argv or sys.argv[1:]
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
