"""Analysis window selectors.

Turns ISO-8601 bounds or a calendar selector into a half-open
``[since_ms, until_ms)`` window of epoch milliseconds, the unit event
timestamps use.
"""

from __future__ import annotations

import re
from datetime import UTC, date, datetime, timedelta

_HOUR_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}$")


def to_epoch_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return int(dt.timestamp() * 1000)


def parse_iso_ms(s: str) -> int:
    """Parse an ISO-8601 datetime (UTC when no offset) or a bare epoch-ms integer."""
    text = s.strip()
    if text.lstrip("-").isdigit():
        return int(text)
    return to_epoch_ms(datetime.fromisoformat(text.replace("Z", "+00:00")))


def day_window_ms(s: str) -> tuple[int, int]:
    """UTC day for a YYYY-MM-DD selector."""
    d = date.fromisoformat(s)
    start = datetime(d.year, d.month, d.day, tzinfo=UTC)
    return to_epoch_ms(start), to_epoch_ms(start + timedelta(days=1))


def hour_window_ms(s: str) -> tuple[int, int]:
    """UTC hour for a YYYY-MM-DDTHH selector."""
    if not _HOUR_RE.match(s):
        raise ValueError("hour must look like YYYY-MM-DDTHH (e.g., 2025-12-01T09)")
    start = datetime.fromisoformat(s + ":00").replace(tzinfo=UTC)
    return to_epoch_ms(start), to_epoch_ms(start + timedelta(hours=1))


def resolve_window_ms(
    *,
    since: str | None = None,
    until: str | None = None,
    date_: str | None = None,
    hour: str | None = None,
) -> tuple[int | None, int | None]:
    """Resolve a window; a calendar selector wins over explicit bounds."""
    if date_:
        return day_window_ms(date_)
    if hour:
        return hour_window_ms(hour)

    since_ms = parse_iso_ms(since) if since else None
    until_ms = parse_iso_ms(until) if until else None
    if since_ms is not None and until_ms is not None and since_ms >= until_ms:
        raise ValueError("since must be < until")
    return since_ms, until_ms
