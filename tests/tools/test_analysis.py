from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from ble_log_insights.core.models import MalformedInputError
from ble_log_insights.tools.analysis import (
    ble_quality_impl,
    command_chains_impl,
    compare_sessions_impl,
    detect_anomalies_impl,
    error_distribution_impl,
    reconnect_summary_impl,
)

Writer = Callable[[Path, list[dict[str, Any]]], None]


@pytest.fixture
def events_file(tmp_path: Path, write_events: Writer, session_records: list[dict[str, Any]]) -> Path:
    path = tmp_path / "session.jsonl"
    write_events(path, session_records)
    return path


@pytest.mark.asyncio
async def test_ble_quality_from_events(events_file: Path) -> None:
    out = await ble_quality_impl(events_path=str(events_file), link_code="L-1")

    rows = {r["eventName"]: r for r in out["requiredEvents"]}
    assert rows["BLE start connection"]["status"] == "ok"
    assert rows["BLE query sn"]["status"] == "ok"
    assert rows["BLE disconnect"]["status"] == "missing"
    conn = next(p for p in out["pairChecks"] if p["name"] == "BLE connection")
    assert (conn["startCount"], conn["endCount"], conn["pendingCount"]) == (1, 1, 0)


@pytest.mark.asyncio
async def test_ble_quality_from_buckets(tmp_path: Path, write_events: Writer) -> None:
    path = tmp_path / "buckets.json"
    write_events(path, [{"eventName": "BLE sdk info", "level": 2, "count": 1}])

    out = await ble_quality_impl(buckets_path=str(path), parser_error_count=3)

    row = next(r for r in out["requiredEvents"] if r["eventName"] == "BLE sdk info")
    assert row["status"] == "level_mismatch"
    assert out["parser"]["parserErrorCount"] == 3


@pytest.mark.asyncio
async def test_ble_quality_needs_exactly_one_source(events_file: Path) -> None:
    with pytest.raises(ValueError, match="exactly one"):
        await ble_quality_impl()
    with pytest.raises(ValueError, match="exactly one"):
        await ble_quality_impl(events_path=str(events_file), buckets_path=str(events_file))


@pytest.mark.asyncio
async def test_detect_anomalies_with_window(events_file: Path) -> None:
    out = await detect_anomalies_impl(events_path=str(events_file), date="2025-12-30")
    assert [a["type"] for a in out["anomalies"]] == ["frequent_disconnect"]

    quiet = await detect_anomalies_impl(events_path=str(events_file), date="2025-12-31")
    assert quiet["anomalies"] == []
    assert quiet["summary"]["totalEvents"] == 0


@pytest.mark.asyncio
async def test_command_chains(events_file: Path) -> None:
    out = await command_chains_impl(events_path=str(events_file))
    (chain,) = out["chains"]
    assert chain["requestId"] == "r-1"
    assert chain["status"] == "success"
    assert chain["durationMs"] == 200
    assert out["stats"]["p50"] == 200


@pytest.mark.asyncio
async def test_command_chains_pending_timeout_uses_window_end(tmp_path: Path, write_events: Writer) -> None:
    path = tmp_path / "pending.json"
    write_events(
        path,
        [
            {"eventName": "BLE query sn", "level": 1, "timestampMs": 1_000, "requestId": "r-1"},
            {"eventName": "BLE query sn sent", "level": 2, "timestampMs": 1_200, "requestId": "r-1"},
        ],
    )
    out = await command_chains_impl(events_path=str(path), until="60000", pending_timeout_ms=30_000)
    assert out["chains"][0]["status"] == "timeout"


@pytest.mark.asyncio
async def test_command_chains_rejects_bad_limit(events_file: Path) -> None:
    with pytest.raises(ValueError, match="limit must be > 0"):
        await command_chains_impl(events_path=str(events_file), limit=0)


@pytest.mark.asyncio
async def test_compare_sessions_in_one_file(events_file: Path) -> None:
    out = await compare_sessions_impl(events_path_a=str(events_file), link_code_a="L-1", link_code_b="L-2")
    assert out["summary"]["aEventCount"] == 4
    assert out["summary"]["bEventCount"] == 4
    assert out["eventTypes"]["onlyInB"] == ["BLE disconnect"]
    assert {slot["status"] for slot in out["timeline"]} == {"only_a", "only_b"}


@pytest.mark.asyncio
async def test_batch_cap_from_env(events_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BLE_INSIGHTS_MAX_EVENTS", "3")
    with pytest.raises(MalformedInputError, match="exceeds the maximum of 3"):
        await detect_anomalies_impl(events_path=str(events_file))


@pytest.mark.asyncio
async def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        await detect_anomalies_impl(events_path=str(tmp_path / "missing.json"))


@pytest.mark.asyncio
async def test_compare_sessions_by_device_and_time_range(tmp_path: Path, write_events: Writer) -> None:
    path = tmp_path / "devices.jsonl"
    write_events(
        path,
        [
            {"eventName": "BLE disconnect", "level": 3, "timestampMs": 1_000, "deviceMac": "AA:01"},
            {"eventName": "BLE start connection", "level": 2, "timestampMs": 2_000, "deviceMac": "aa:01"},
            {"eventName": "BLE start connection", "level": 2, "timestampMs": 2_100, "deviceMac": "BB:02"},
            {"eventName": "BLE disconnect", "level": 3, "timestampMs": 9_000, "deviceMac": "BB:02"},
        ],
    )
    out = await compare_sessions_impl(
        events_path_a=str(path),
        device_mac_a="AA:01",
        device_mac_b="BB:02",
        since_a="1500",
        until_b="5000",
    )
    assert (out["summary"]["aEventCount"], out["summary"]["bEventCount"]) == (1, 1)
    assert [slot["status"] for slot in out["timeline"]] == ["match"]


@pytest.mark.asyncio
async def test_error_distribution(events_file: Path) -> None:
    out = await error_distribution_impl(events_path=str(events_file))
    assert out["total"] == 4
    assert out["byCategory"][0]["category"] == "disconnect"
    assert out["byLevel"] == [{"level": 3, "label": "WARN", "count": 4}]


@pytest.mark.asyncio
async def test_reconnect_summary(events_file: Path) -> None:
    out = await reconnect_summary_impl(events_path=str(events_file), reconnect_window_ms=60_000)
    (item,) = out["items"]
    assert item["deviceKey"] == "L-2"
    assert (item["disconnects"], item["reconnectUnresolved"]) == (4, 4)
    assert out["summary"]["reconnectWindowMs"] == 60_000
