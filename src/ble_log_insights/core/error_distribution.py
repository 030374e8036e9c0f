"""Error distribution: WARN/ERROR and error-coded events tallied by category, code, name and level."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence

from .anomaly import ErrorCategory, classify_error
from .models import WARN_LEVEL, LogEvent, level_label
from .schemas import ReportModel

logger = logging.getLogger(__name__)

UNKNOWN_CODE = "UNKNOWN"


class CategoryCount(ReportModel):
    category: str
    severity: int
    count: int
    last_seen_ms: int
    suggestion: str


class CodeCount(ReportModel):
    code: str
    count: int
    last_seen_ms: int


class NameCount(ReportModel):
    event_name: str
    count: int
    last_seen_ms: int


class LevelCount(ReportModel):
    level: int
    label: str
    count: int


class ErrorDistributionReport(ReportModel):
    total: int
    by_category: list[CategoryCount]
    by_error_code: list[CodeCount]
    by_event_name: list[NameCount]
    by_level: list[LevelCount]


def is_error_candidate(event: LogEvent) -> bool:
    return event.level >= WARN_LEVEL or bool(event.error_code)


def _tally(events: Sequence[LogEvent], key: Callable[[LogEvent], str]) -> list[tuple[str, int, int]]:
    """(key, count, last seen) ordered by count desc, then first appearance."""
    seen: dict[str, list[int]] = {}
    for ev in events:
        entry = seen.setdefault(key(ev), [0, ev.timestamp_ms])
        entry[0] += 1
        entry[1] = max(entry[1], ev.timestamp_ms)
    rows = [(k, count, last) for k, (count, last) in seen.items()]
    rows.sort(key=lambda row: -row[1])
    return rows


def error_distribution(events: Iterable[LogEvent]) -> ErrorDistributionReport:
    errors = [ev for ev in events if is_error_candidate(ev)]

    categories: dict[str, ErrorCategory] = {}
    for ev in errors:
        cat = classify_error(ev.event_name, ev.error_code)
        categories.setdefault(cat.category, cat)
    by_category = [
        CategoryCount(
            category=name,
            severity=categories[name].severity,
            count=count,
            last_seen_ms=last,
            suggestion=categories[name].suggestion,
        )
        for name, count, last in _tally(errors, lambda e: classify_error(e.event_name, e.error_code).category)
    ]

    levels: dict[int, int] = {}
    for ev in errors:
        levels[ev.level] = levels.get(ev.level, 0) + 1

    report = ErrorDistributionReport(
        total=len(errors),
        by_category=by_category,
        by_error_code=[
            CodeCount(code=code, count=count, last_seen_ms=last)
            for code, count, last in _tally(errors, lambda e: e.error_code or UNKNOWN_CODE)
        ],
        by_event_name=[
            NameCount(event_name=name, count=count, last_seen_ms=last)
            for name, count, last in _tally(errors, lambda e: e.event_name)
        ],
        by_level=[
            LevelCount(level=level, label=level_label(level), count=levels[level])
            for level in sorted(levels, reverse=True)
        ],
    )
    logger.debug("Error distribution: %d error events, %d categories", len(errors), len(by_category))
    return report
