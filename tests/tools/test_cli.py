from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from ble_log_insights import cli


def test_cli_anomalies_prints_json(
    tmp_path: Path,
    write_events: Callable[[Path, list[dict[str, Any]]], None],
    session_records: list[dict[str, Any]],
    capsys: pytest.CaptureFixture[str],
) -> None:
    path = tmp_path / "session.json"
    write_events(path, session_records)

    cli.main(["anomalies", str(path)])

    out = json.loads(capsys.readouterr().out)
    assert out["summary"]["totalAnomalies"] == 1


def test_cli_compare_defaults_side_b_to_same_file(
    tmp_path: Path,
    write_events: Callable[[Path, list[dict[str, Any]]], None],
    session_records: list[dict[str, Any]],
    capsys: pytest.CaptureFixture[str],
) -> None:
    path = tmp_path / "session.jsonl"
    write_events(path, session_records)

    cli.main(["compare", str(path), "--link-a", "L-1", "--link-b", "L-1"])

    out = json.loads(capsys.readouterr().out)
    assert {slot["status"] for slot in out["timeline"]} == {"match"}


def test_cli_missing_file_exits_2(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["commands", str(tmp_path / "missing.jsonl")])
    assert exc.value.code == 2
    assert "not found" in capsys.readouterr().err


def test_cli_malformed_input_exits_2(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "bad.json"
    path.write_text('[{"eventName": "x"}]', encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        cli.main(["quality", "--events", str(path)])
    assert exc.value.code == 2
    assert "Malformed input" in capsys.readouterr().err


def test_cli_quality_requires_a_source() -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["quality"])
    assert exc.value.code == 2


def test_cli_reconnects_and_errors(
    tmp_path: Path,
    write_events: Callable[[Path, list[dict[str, Any]]], None],
    session_records: list[dict[str, Any]],
    capsys: pytest.CaptureFixture[str],
) -> None:
    path = tmp_path / "session.jsonl"
    write_events(path, session_records)

    cli.main(["reconnects", str(path), "--link-code", "L-2", "--limit", "5"])
    reconnects = json.loads(capsys.readouterr().out)
    assert reconnects["summary"]["totalDisconnects"] == 4

    cli.main(["errors", str(path), "--date", "2025-12-30"])
    errors = json.loads(capsys.readouterr().out)
    assert errors["byErrorCode"] == [{"code": "UNKNOWN", "count": 4, "lastSeenMs": 1_767_081_625_000}]
