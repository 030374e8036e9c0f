"""BLE quality report: required-event compliance and start/terminal pairing."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .catalog import PAIR_CHECKS, REQUIRED_EVENTS
from .models import (
    MAX_LEVEL,
    MIN_LEVEL,
    EventCountBucket,
    MalformedInputError,
    PairCheckSpec,
    QualityStatus,
    RequiredEventSpec,
    level_label,
)
from .schemas import ReportModel

logger = logging.getLogger(__name__)

LEVEL_KEYS = ("1", "2", "3", "4")
MATCHED_NAMES_LIMIT = 10

_WS_RE = re.compile(r"\s+")


class RequiredEventRow(ReportModel):
    category: str
    description: str
    event_name: str
    expected_level: int
    expected_level_label: str
    status: QualityStatus
    total_count: int
    expected_level_count: int
    counts_by_level: dict[str, int]
    matched_event_names: list[str]


class PairCheckRow(ReportModel):
    name: str
    start_event_name: str
    end_event_names: list[str]
    start_count: int
    end_count: int
    pending_count: int


class StatusTotals(ReportModel):
    required_total: int = 0
    ok_total: int = 0
    missing_total: int = 0
    level_mismatch_total: int = 0
    name_mismatch_total: int = 0


class QualitySummary(StatusTotals):
    coverage_ratio: float = 0.0


class CategoryRow(StatusTotals):
    category: str


class ParserStats(ReportModel):
    parser_error_count: int
    decrypt_stats: dict[str, Any] | None = None


class BleQualityReport(ReportModel):
    summary: QualitySummary
    by_category: list[CategoryRow]
    required_events: list[RequiredEventRow]
    pair_checks: list[PairCheckRow]
    parser: ParserStats


def normalize_event_name(name: str) -> str:
    """Case- and whitespace-insensitive comparison key."""
    return _WS_RE.sub(" ", name.strip()).lower()


def empty_counts() -> dict[str, int]:
    return {k: 0 for k in LEVEL_KEYS}


def validate_buckets(buckets: Iterable[EventCountBucket]) -> list[EventCountBucket]:
    """Reject negative counts, unknown levels and repeated (event name, level) keys."""
    out: list[EventCountBucket] = []
    seen: set[tuple[str, int]] = set()
    for i, b in enumerate(buckets):
        if b.count < 0:
            raise MalformedInputError(f"Malformed bucket #{i}: count must be >= 0 (got {b.count})")
        if not MIN_LEVEL <= b.level <= MAX_LEVEL:
            raise MalformedInputError(
                f"Malformed bucket #{i}: level must be in {MIN_LEVEL}..{MAX_LEVEL} (got {b.level})"
            )
        key = (b.event_name, b.level)
        if key in seen:
            raise MalformedInputError(
                f"Malformed bucket #{i}: duplicate key (eventName={b.event_name!r}, level={b.level})"
            )
        seen.add(key)
        out.append(b)
    return out


@dataclass(slots=True)
class _NameIndex:
    """Buckets grouped under their normalized name, built once per report."""

    groups: dict[str, list[EventCountBucket]] = field(default_factory=dict)

    @classmethod
    def build(cls, buckets: Sequence[EventCountBucket]) -> _NameIndex:
        idx = cls()
        for b in buckets:
            if not b.event_name:
                continue
            idx.groups.setdefault(normalize_event_name(b.event_name), []).append(b)
        return idx

    def matched(self, name: str) -> list[EventCountBucket]:
        return self.groups.get(normalize_event_name(name), [])

    def total(self, name: str) -> int:
        return sum(b.count for b in self.matched(name))


def _distinct_names(buckets: Sequence[EventCountBucket]) -> list[str]:
    names: list[str] = []
    for b in buckets:
        if b.event_name not in names:
            names.append(b.event_name)
    return names[:MATCHED_NAMES_LIMIT]


def _evaluate(spec: RequiredEventSpec, matched: Sequence[EventCountBucket]) -> RequiredEventRow:
    counts = empty_counts()
    total = 0
    for b in matched:
        total += b.count
        counts[str(b.level)] += b.count

    expected_count = counts.get(str(spec.expected_level), 0)
    exact = any(b.event_name == spec.event_name for b in matched)

    if total == 0:
        status = QualityStatus.MISSING
    elif not exact:
        status = QualityStatus.NAME_MISMATCH
    elif expected_count == 0:
        status = QualityStatus.LEVEL_MISMATCH
    else:
        status = QualityStatus.OK

    return RequiredEventRow(
        category=spec.category,
        description=spec.description,
        event_name=spec.event_name,
        expected_level=spec.expected_level,
        expected_level_label=level_label(spec.expected_level),
        status=status,
        total_count=total,
        expected_level_count=expected_count,
        counts_by_level=counts,
        matched_event_names=_distinct_names(matched),
    )


def _tally(rows: Iterable[RequiredEventRow]) -> dict[str, int]:
    acc = {
        "required_total": 0,
        "ok_total": 0,
        "missing_total": 0,
        "level_mismatch_total": 0,
        "name_mismatch_total": 0,
    }
    for row in rows:
        acc["required_total"] += 1
        acc[f"{row.status.value}_total"] += 1
    return acc


@dataclass(frozen=True, slots=True)
class BleQualityReporter:
    """Builds compliance reports against an injected catalog."""

    catalog: Sequence[RequiredEventSpec] = REQUIRED_EVENTS
    pair_checks: Sequence[PairCheckSpec] = PAIR_CHECKS

    def build(
        self,
        buckets: Iterable[EventCountBucket],
        parser_error_count: int = 0,
        decrypt_stats: Mapping[str, Any] | None = None,
    ) -> BleQualityReport:
        if parser_error_count < 0:
            raise MalformedInputError("parser_error_count must be >= 0")

        rows_in = validate_buckets(buckets)
        index = _NameIndex.build(rows_in)

        required = [_evaluate(spec, index.matched(spec.event_name)) for spec in self.catalog]

        categories: dict[str, list[RequiredEventRow]] = {}
        for row in required:
            categories.setdefault(row.category, []).append(row)

        totals = _tally(required)
        coverage = totals["ok_total"] / totals["required_total"] if totals["required_total"] else 0.0

        pairs = []
        for rule in self.pair_checks:
            start = index.total(rule.start_event_name)
            end = sum(index.total(name) for name in rule.end_event_names)
            pairs.append(
                PairCheckRow(
                    name=rule.name,
                    start_event_name=rule.start_event_name,
                    end_event_names=list(rule.end_event_names),
                    start_count=start,
                    end_count=end,
                    # Saturating: surplus terminals report zero pending.
                    pending_count=max(start - end, 0),
                )
            )

        logger.debug(
            "BLE quality: %d buckets, %d required, ok=%d missing=%d",
            len(rows_in),
            totals["required_total"],
            totals["ok_total"],
            totals["missing_total"],
        )

        return BleQualityReport(
            summary=QualitySummary(**totals, coverage_ratio=coverage),
            by_category=[CategoryRow(category=cat, **_tally(rows)) for cat, rows in categories.items()],
            required_events=required,
            pair_checks=pairs,
            parser=ParserStats(
                parser_error_count=parser_error_count,
                decrypt_stats=dict(decrypt_stats) if decrypt_stats is not None else None,
            ),
        )


def build_ble_quality_report(
    buckets: Iterable[EventCountBucket],
    parser_error_count: int = 0,
    decrypt_stats: Mapping[str, Any] | None = None,
) -> BleQualityReport:
    """Build a report against the default required-event catalog."""
    return BleQualityReporter().build(buckets, parser_error_count, decrypt_stats)
