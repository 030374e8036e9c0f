from __future__ import annotations

import gzip
import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from ble_log_insights.core.models import LogEvent


@pytest.fixture
def make_event() -> Callable[..., LogEvent]:
    counter = iter(range(1_000_000))

    def _make(event_name: str, timestamp_ms: int, level: int = 2, **fields: Any) -> LogEvent:
        fields.setdefault("id", f"e{next(counter)}")
        return LogEvent(event_name=event_name, level=level, timestamp_ms=timestamp_ms, **fields)

    return _make


@pytest.fixture
def write_events() -> Callable[[Path, list[dict[str, Any]]], None]:
    """Write records as .json array, .jsonl lines or gzip, chosen by suffix."""

    def _write(path: Path, records: list[dict[str, Any]]) -> None:
        suffixes = path.suffixes
        line_mode = ".jsonl" in suffixes or ".ndjson" in suffixes
        if line_mode:
            text = "".join(json.dumps(r) + "\n" for r in records)
        else:
            text = json.dumps(records)
        if suffixes and suffixes[-1] == ".gz":
            with gzip.open(path, mode="wt", encoding="utf-8") as f:
                f.write(text)
        else:
            path.write_text(text, encoding="utf-8")

    return _write


@pytest.fixture
def session_records() -> list[dict[str, Any]]:
    """One healthy link (L-1) and one flaky link (L-2) in camelCase export shape."""
    base = 1_767_081_600_000  # 2025-12-30T08:00:00Z
    good = [
        {"eventName": "BLE start connection", "level": 2, "timestampMs": base, "linkCode": "L-1"},
        {"eventName": "BLE connection success", "level": 2, "timestampMs": base + 1_500, "linkCode": "L-1"},
        {"eventName": "BLE query sn", "level": 1, "timestampMs": base + 2_000, "linkCode": "L-1", "requestId": "r-1"},
        {
            "eventName": "BLE query sn success",
            "level": 2,
            "timestampMs": base + 2_200,
            "linkCode": "L-1",
            "requestId": "r-1",
            "msgJson": {"sn": "A1B2C3"},
        },
    ]
    flaky = [
        {"eventName": "BLE disconnect", "level": 3, "timestampMs": base + 10_000 + i * 5_000, "linkCode": "L-2"}
        for i in range(4)
    ]
    return good + flaky
