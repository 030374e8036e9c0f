"""MCP resource registry.

Resources are addressable by URI and can be fetched by the MCP client on demand.
"""

from __future__ import annotations

import asyncio
import gzip
from dataclasses import asdict
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from ble_log_insights.core.anomaly import AnomalyReport
from ble_log_insights.core.catalog import PAIR_CHECKS, REQUIRED_EVENTS
from ble_log_insights.core.config import resolve_analysis_config
from ble_log_insights.core.event_source import ALLOWED_FILE_SUFFIXES, BASE_DIR_ENV, base_dir, resolve_event_file
from ble_log_insights.core.matching import BLE_PHASE_PATTERNS
from ble_log_insights.core.models import level_label

TEXT_ENCODING = "utf-8"

SAMPLE_EVENTS = (
    '{"eventName": "BLE start connection", "level": 2, "timestampMs": 1767081121000, "linkCode": "L-1"}\n'
    '{"eventName": "BLE connection success", "level": 2, "timestampMs": 1767081123400, "linkCode": "L-1"}\n'
    '{"eventName": "BLE query sn", "level": 1, "timestampMs": 1767081124000, "linkCode": "L-1", "requestId": "r-1"}\n'
    '{"eventName": "BLE query sn success", "level": 2, "timestampMs": 1767081124180, "linkCode": "L-1", '
    '"requestId": "r-1", "payload": {"sn": "A1B2C3"}}\n'
    '{"eventName": "BLE disconnect", "level": 3, "timestampMs": 1767081130000, "linkCode": "L-1"}\n'
)


def _read_text(path: Path) -> str:
    if path.suffix.lower() == ".gz":
        with gzip.open(path, mode="rt", encoding=TEXT_ENCODING) as f:
            return f.read()
    return path.read_text(encoding=TEXT_ENCODING)


def required_events_table() -> list[dict[str, Any]]:
    return [
        {
            "category": spec.category,
            "eventName": spec.event_name,
            "expectedLevel": spec.expected_level,
            "expectedLevelLabel": level_label(spec.expected_level),
            "description": spec.description,
        }
        for spec in REQUIRED_EVENTS
    ]


def pair_checks_table() -> list[dict[str, Any]]:
    return [
        {"name": rule.name, "startEventName": rule.start_event_name, "endEventNames": list(rule.end_event_names)}
        for rule in PAIR_CHECKS
    ]


def register_resources(mcp: FastMCP) -> None:
    """Register resource handlers on the MCP server."""

    @mcp.resource("app://ble-log-insights/help")
    def help_resource() -> str:
        """Return a short list of available resource URIs."""
        allowed = ", ".join(sorted(ALLOWED_FILE_SUFFIXES))
        return (
            "Resources:\n"
            "- app://ble-log-insights/help\n"
            "- app://ble-log-insights/catalog/required-events\n"
            "- app://ble-log-insights/catalog/pair-checks\n"
            "- app://ble-log-insights/config/thresholds\n"
            "- app://ble-log-insights/config/phase-patterns\n"
            "- app://ble-log-insights/schemas/anomaly-report\n"
            "- app://ble-log-insights/examples/sample-events\n"
            f"- events://{{path}} (restricted to {BASE_DIR_ENV}; allowed: {allowed}, .gz)\n"
            f"\nBase directory: {base_dir()}\n"
        )

    @mcp.resource("app://ble-log-insights/catalog/required-events")
    def required_events() -> list[dict[str, Any]]:
        """Return the required-event catalog with expected levels."""
        return required_events_table()

    @mcp.resource("app://ble-log-insights/catalog/pair-checks")
    def pair_checks() -> list[dict[str, Any]]:
        """Return the start/terminal pair checks."""
        return pair_checks_table()

    @mcp.resource("app://ble-log-insights/config/thresholds")
    def thresholds() -> dict[str, Any]:
        """Return the effective analysis configuration (env overrides applied)."""
        return asdict(resolve_analysis_config())

    @mcp.resource("app://ble-log-insights/config/phase-patterns")
    def phase_patterns() -> dict[str, list[str]]:
        """Return the keyword lists used for untagged events."""
        return {phase: list(words) for phase, words in BLE_PHASE_PATTERNS.items()}

    @mcp.resource("app://ble-log-insights/schemas/anomaly-report")
    def anomaly_report_schema() -> dict[str, Any]:
        """Return the JSON schema of anomaly reports."""
        return AnomalyReport.model_json_schema(by_alias=True)

    @mcp.resource("app://ble-log-insights/examples/sample-events")
    def sample_events() -> str:
        """Return a tiny JSONL session for demos and tests."""
        return SAMPLE_EVENTS

    @mcp.resource("events://{path}")
    async def read_events(path: str) -> str:
        """Read an event file from within BLE_INSIGHTS_BASE_DIR."""
        p = resolve_event_file(path)
        return await asyncio.to_thread(_read_text, p)
