"""Required BLE lifecycle events and start/terminal pair checks.

Both tables are process-wide constants; pass alternates to the reporter
instead of mutating them.
"""

from __future__ import annotations

from .models import PairCheckSpec, RequiredEventSpec

INFO, DEBUG, WARN, ERROR = 1, 2, 3, 4


def _group(category: str, *entries: tuple[str, int, str]) -> tuple[RequiredEventSpec, ...]:
    return tuple(
        RequiredEventSpec(event_name=name, expected_level=level, category=category, description=desc)
        for name, level, desc in entries
    )


REQUIRED_EVENTS: tuple[RequiredEventSpec, ...] = (
    *_group(
        "SDK init",
        ("SDK init start", DEBUG, "SDK initialization started"),
        ("SDK init failure", ERROR, "SDK initialization failed"),
        ("SDK init success", DEBUG, "SDK initialization succeeded"),
    ),
    *_group(
        "BLE library info",
        ("BLE sdk info", INFO, "BLE library info (on device connection)"),
    ),
    *_group(
        "BLE scan",
        ("BLE start searching", DEBUG, "Scan started"),
        ("BLE search failure", ERROR, "Scan failed"),
        ("BLE search success", DEBUG, "Scan succeeded"),
    ),
    *_group(
        "BLE auth and ID check",
        ("BLE auth sendKey", INFO, "Auth key sent"),
        ("BLE auth success", DEBUG, "Auth succeeded"),
        ("BLE auth failure", ERROR, "Auth failed"),
    ),
    *_group(
        "Device status query",
        ("BLE query device status", INFO, "Device status query started"),
        ("BLE query device status success", DEBUG, "Device status query succeeded"),
        ("BLE query device status failure", ERROR, "Device status query failed"),
    ),
    *_group(
        "Device SN query",
        ("BLE query sn", INFO, "SN query started"),
        ("BLE query sn success", DEBUG, "SN query succeeded"),
        ("BLE query sn failure", ERROR, "SN query failed"),
    ),
    *_group(
        "Device sensitivity query",
        ("BLE query sensitivity", INFO, "Sensitivity query started"),
        ("BLE query sensitivity success", DEBUG, "Sensitivity query succeeded"),
        ("BLE query sensitivity failure", ERROR, "Sensitivity query failed"),
    ),
    *_group(
        "Device activation time query",
        ("BLE query active time", INFO, "Activation time query started"),
        ("BLE query active time success", DEBUG, "Activation time query succeeded"),
        ("BLE query active time failure", ERROR, "Activation time query failed"),
    ),
    *_group(
        "Device init duration query",
        ("BLE query init time", INFO, "Init duration query started"),
        ("BLE query init time success", DEBUG, "Init duration query succeeded"),
        ("BLE query init time failure", ERROR, "Init duration query failed"),
    ),
    *_group(
        "Activation and ID binding",
        ("BLE activation sendData", DEBUG, "Activation data sent"),
        ("BLE activation success", DEBUG, "Activation succeeded"),
        ("BLE activation failure", ERROR, "Activation failed"),
    ),
    *_group(
        "Device deactivation",
        ("BLE deactivation start", INFO, "Deactivation started"),
        ("BLE deactivation success", DEBUG, "Deactivation succeeded"),
        ("BLE deactivation failure", ERROR, "Deactivation failed"),
    ),
    *_group(
        "BLE connection",
        ("BLE start connection", DEBUG, "Connection started"),
        ("BLE connection failure", ERROR, "Connection failed"),
        ("BLE connection success", DEBUG, "Connection succeeded"),
        ("BLE disconnect", WARN, "Disconnected"),
    ),
    *_group(
        "History data query",
        ("BLE start getData", INFO, "History request started"),
        ("BLE start getData error", ERROR, "History request failed"),
    ),
    *_group(
        "History data callback",
        ("BLE data receive error", ERROR, "History transfer failed"),
        ("BLE data receive start", INFO, "History transfer started"),
        ("BLE data receive done", DEBUG, "History transfer completed"),
    ),
    *_group(
        "Real-time data callback",
        ("BLE real time data callback start", DEBUG, "Real-time callback started"),
        ("BLE real time data callback done", DEBUG, "Real-time callback completed"),
    ),
    *_group(
        "Latest valid data callback",
        ("BLE latest valid data callback Start", DEBUG, "Latest valid data callback started"),
        ("BLE latest valid data callback done", DEBUG, "Latest valid data callback completed"),
    ),
    *_group(
        "BLE status",
        ("BLE current Status Value", INFO, "Current BLE status"),
    ),
    *_group(
        "APP status",
        ("APP foreground", DEBUG, "App moved to foreground"),
        ("APP background", DEBUG, "App moved to background"),
        ("APP starts to launch", DEBUG, "App launch started"),
        ("APP startup completed", DEBUG, "App launch completed"),
    ),
    *_group(
        "Bluetooth switch",
        ("Bluetooth switch is on", DEBUG, "Bluetooth switched on"),
        ("Bluetooth switch is off", DEBUG, "Bluetooth switched off"),
    ),
    *_group(
        "Common/errors",
        ("COMMON", DEBUG, "Common"),
        ("GENERIC Error", ERROR, "Generic error"),
        ("Network error", ERROR, "Network error"),
        ("SDK auth error", ERROR, "SDK permission error"),
        ("BLE error", ERROR, "BLE error"),
        ("Device error", ERROR, "Device error"),
        ("Data error", ERROR, "Data error"),
    ),
)


PAIR_CHECKS: tuple[PairCheckSpec, ...] = (
    PairCheckSpec("SDK init", "SDK init start", ("SDK init success", "SDK init failure")),
    PairCheckSpec("BLE scan", "BLE start searching", ("BLE search success", "BLE search failure")),
    PairCheckSpec("BLE auth and ID check", "BLE auth sendKey", ("BLE auth success", "BLE auth failure")),
    PairCheckSpec(
        "Device status query",
        "BLE query device status",
        ("BLE query device status success", "BLE query device status failure"),
    ),
    PairCheckSpec("Device SN query", "BLE query sn", ("BLE query sn success", "BLE query sn failure")),
    PairCheckSpec(
        "Device sensitivity query",
        "BLE query sensitivity",
        ("BLE query sensitivity success", "BLE query sensitivity failure"),
    ),
    PairCheckSpec(
        "Device activation time query",
        "BLE query active time",
        ("BLE query active time success", "BLE query active time failure"),
    ),
    PairCheckSpec(
        "Device init duration query",
        "BLE query init time",
        ("BLE query init time success", "BLE query init time failure"),
    ),
    PairCheckSpec(
        "Activation and ID binding",
        "BLE activation sendData",
        ("BLE activation success", "BLE activation failure"),
    ),
    PairCheckSpec(
        "Device deactivation",
        "BLE deactivation start",
        ("BLE deactivation success", "BLE deactivation failure"),
    ),
    PairCheckSpec("BLE connection", "BLE start connection", ("BLE connection success", "BLE connection failure")),
    PairCheckSpec(
        "History data callback",
        "BLE data receive start",
        ("BLE data receive done", "BLE data receive error"),
    ),
    PairCheckSpec(
        "Real-time data callback",
        "BLE real time data callback start",
        ("BLE real time data callback done",),
    ),
    PairCheckSpec(
        "Latest valid data callback",
        "BLE latest valid data callback Start",
        ("BLE latest valid data callback done",),
    ),
)
