from __future__ import annotations

import pytest

from ble_log_insights.core.config import AnalysisConfig, AnomalyThresholds, resolve_analysis_config


def test_defaults_without_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("BLE_INSIGHTS_PREVIEW_LENGTH", "BLE_INSIGHTS_DIFF_TOLERANCE_MS", "BLE_INSIGHTS_MAX_EVENTS"):
        monkeypatch.delenv(name, raising=False)
    cfg = resolve_analysis_config()
    assert cfg == AnalysisConfig()
    assert cfg.thresholds.disconnect_window_ms == 60_000
    assert cfg.diff_tolerance_ms == 500


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BLE_INSIGHTS_PREVIEW_LENGTH", "40")
    monkeypatch.setenv("BLE_INSIGHTS_MAX_EVENTS", "10")
    base = AnalysisConfig(thresholds=AnomalyThresholds(error_burst_count=3))
    cfg = resolve_analysis_config(base)
    assert cfg.preview_length == 40
    assert cfg.max_events == 10
    assert cfg.thresholds.error_burst_count == 3


def test_empty_env_value_is_ignored(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BLE_INSIGHTS_DIFF_TOLERANCE_MS", "")
    assert resolve_analysis_config().diff_tolerance_ms == 500


def test_invalid_env_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BLE_INSIGHTS_DIFF_TOLERANCE_MS", "soon")
    with pytest.raises(ValueError, match="BLE_INSIGHTS_DIFF_TOLERANCE_MS must be an integer"):
        resolve_analysis_config()

    monkeypatch.setenv("BLE_INSIGHTS_DIFF_TOLERANCE_MS", "100")
    monkeypatch.setenv("BLE_INSIGHTS_MAX_EVENTS", "0")
    with pytest.raises(ValueError, match="BLE_INSIGHTS_MAX_EVENTS must be >= 1"):
        resolve_analysis_config()
