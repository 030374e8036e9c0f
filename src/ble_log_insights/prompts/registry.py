"""MCP prompt registry.

Prompts are predefined conversation/workflow templates that the client can invoke explicitly.
"""

from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP


def _call_block(params: dict[str, Any]) -> str:
    """Render non-empty tool parameters as a bullet list."""
    return "\n".join(f"- {key}: {value}" for key, value in params.items() if value is not None)


def register_prompts(mcp: FastMCP) -> None:
    """Register prompt templates on the MCP server."""

    @mcp.prompt()
    def triage_ble_session(
        events_path: str,
        link_code: str | None = None,
        device_mac: str | None = None,
        since: str | None = None,
        until: str | None = None,
        date: str | None = None,
    ) -> list[dict[str, Any]]:
        """Build a prompt for triaging one BLE session."""
        call_block = _call_block(
            {
                "events_path": events_path,
                "link_code": link_code,
                "device_mac": device_mac,
                "since": since,
                "until": until,
                "date": date,
            }
        )
        return [
            {
                "role": "system",
                "content": (
                    "You are a BLE connectivity triage assistant for a device SDK team. "
                    "Provide concise, evidence-based summaries from analysis tool output. "
                    "Do not invent events; if the evidence is insufficient, say so."
                ),
            },
            {
                "role": "user",
                "content": (
                    "Triage this session. Follow this workflow:\n"
                    "- Call detect_anomalies first, then command_chains, then ble_quality_report, "
                    "all with the parameters below.\n"
                    "- If disconnects show up, call reconnect_summary; if errors do, call error_distribution.\n"
                    "- Quote sampleEvents (eventName + timestampMs) as evidence.\n"
                    "- Treat missing or name_mismatch required events as logging gaps, not device faults.\n"
                    "- If no anomalies are returned, state that clearly and suggest widening the window.\n\n"
                    "Call the tools with:\n"
                    f"{call_block}\n\n"
                    "Return this structure:\n"
                    "1) What happened (1-3 bullets)\n"
                    "2) Evidence (2-5 events with timestamps)\n"
                    "3) Suspected root cause (1-2 sentences; say 'Unknown' if unclear)\n"
                    "4) Logging gaps (missing/mismatched required events)\n"
                    "5) Next actions (2-4 bullets)\n"
                ),
            },
        ]

    @mcp.prompt()
    def compare_ble_sessions(
        events_path_a: str,
        link_code_a: str,
        link_code_b: str,
        events_path_b: str | None = None,
    ) -> list[dict[str, Any]]:
        """Build a prompt that explains how a failing session diverges from a good one."""
        call_block = _call_block(
            {
                "events_path_a": events_path_a,
                "events_path_b": events_path_b,
                "link_code_a": link_code_a,
                "link_code_b": link_code_b,
            }
        )
        return [
            {
                "role": "system",
                "content": (
                    "You compare two BLE sessions: A is the reference, B is under investigation. "
                    "Only describe differences present in the tool output."
                ),
            },
            {
                "role": "user",
                "content": (
                    "Call compare_sessions with:\n"
                    f"{call_block}\n\n"
                    "Then report:\n"
                    "- The first slot where the timelines stop matching\n"
                    "- Event types only seen in B, and error counts on each side\n"
                    "- Whether B's divergence looks like a device, link or app-side problem\n"
                ),
            },
        ]
