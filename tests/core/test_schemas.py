from __future__ import annotations

import pytest

from ble_log_insights.core.models import MalformedInputError
from ble_log_insights.core.schemas import parse_buckets, parse_events


def test_parse_events_accepts_camel_and_snake_case() -> None:
    events = parse_events(
        [
            {"eventName": "BLE query sn", "level": 1, "timestampMs": 10, "requestId": 7, "msgJson": {"k": 1}},
            {"event_name": "BLE disconnect", "level": 3, "timestamp_ms": 20, "link_code": "L-1"},
        ]
    )
    assert events[0].request_id == "7"
    assert events[0].payload == {"k": 1}
    assert events[0].id == "0"
    assert events[1].session_key == "L-1"
    assert events[1].id == "1"


def test_parse_events_keeps_explicit_ids() -> None:
    (event,) = parse_events([{"id": 99, "eventName": "x", "level": 2, "timestampMs": 1}])
    assert event.id == "99"


def test_parse_events_reports_position_and_field() -> None:
    with pytest.raises(MalformedInputError, match=r"Malformed event #1: timestampMs"):
        parse_events(
            [
                {"eventName": "ok", "level": 2, "timestampMs": 1},
                {"eventName": "broken", "level": 2},
            ]
        )


def test_parse_buckets_rejects_negative_count() -> None:
    with pytest.raises(MalformedInputError, match=r"Malformed bucket #0: count"):
        parse_buckets([{"eventName": "x", "level": 2, "count": -1}])


def test_parse_buckets() -> None:
    (bucket,) = parse_buckets([{"eventName": "SDK init start", "level": 2, "count": 3}])
    assert (bucket.event_name, bucket.level, bucket.count) == ("SDK init start", 2, 3)


@pytest.mark.parametrize("level", [0, 5])
def test_parse_events_rejects_unknown_level(level: int) -> None:
    with pytest.raises(MalformedInputError, match=r"Malformed event #0: level"):
        parse_events([{"eventName": "x", "level": level, "timestampMs": 1}])


def test_parse_buckets_rejects_unknown_level() -> None:
    with pytest.raises(MalformedInputError, match=r"Malformed bucket #0: level"):
        parse_buckets([{"eventName": "SDK init start", "level": 9, "count": 3}])
