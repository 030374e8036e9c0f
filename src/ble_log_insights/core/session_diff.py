"""Side-by-side comparison of two log sessions on a shared timeline."""

from __future__ import annotations

import bisect
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .models import ERROR_LEVEL, LogEvent, SlotStatus
from .payload import DEFAULT_PREVIEW_LENGTH, preview_payload
from .schemas import ReportModel

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_MS = 500

_SIDE_RANK = {SlotStatus.MATCH: 0, SlotStatus.DIFF: 0, SlotStatus.ONLY_A: 1, SlotStatus.ONLY_B: 2}


class DiffEvent(ReportModel):
    id: str | None
    event_name: str
    level: int
    timestamp_ms: int
    payload_preview: str | None


class DiffSlot(ReportModel):
    timestamp_ms: int
    event_a: DiffEvent | None
    event_b: DiffEvent | None
    status: SlotStatus


class EventTypes(ReportModel):
    common: list[str]
    only_in_a: list[str]
    only_in_b: list[str]


class DiffSummary(ReportModel):
    a_event_count: int
    b_event_count: int
    a_error_count: int
    b_error_count: int
    common_event_types: int
    diff_event_types: int


class SessionDiffReport(ReportModel):
    summary: DiffSummary
    event_types: EventTypes
    timeline: list[DiffSlot]


def pair_events(a: Sequence[LogEvent], b: Sequence[LogEvent], tolerance_ms: int) -> list[tuple[int, int]]:
    """Greedy nearest-timestamp pairing of time-sorted sides.

    Candidates within tolerance are accepted by (|dt|, same name first, A index,
    B index); each event is used at most once.
    """
    b_times = [ev.timestamp_ms for ev in b]
    candidates: list[tuple[int, int, int, int]] = []
    for i, ev in enumerate(a):
        lo = bisect.bisect_left(b_times, ev.timestamp_ms - tolerance_ms)
        hi = bisect.bisect_right(b_times, ev.timestamp_ms + tolerance_ms)
        for j in range(lo, hi):
            other = b[j]
            candidates.append(
                (abs(ev.timestamp_ms - other.timestamp_ms), 0 if ev.event_name == other.event_name else 1, i, j)
            )
    candidates.sort()

    used_a: set[int] = set()
    used_b: set[int] = set()
    pairs: list[tuple[int, int]] = []
    for _, _, i, j in candidates:
        if i in used_a or j in used_b:
            continue
        used_a.add(i)
        used_b.add(j)
        pairs.append((i, j))
    return pairs


@dataclass(frozen=True, slots=True)
class SessionDiffEngine:
    tolerance_ms: int = DEFAULT_TOLERANCE_MS
    preview_length: int = DEFAULT_PREVIEW_LENGTH

    def __post_init__(self) -> None:
        if self.tolerance_ms < 0:
            raise ValueError("tolerance_ms must be >= 0")

    def _view(self, ev: LogEvent) -> DiffEvent:
        return DiffEvent(
            id=ev.id,
            event_name=ev.event_name,
            level=ev.level,
            timestamp_ms=ev.timestamp_ms,
            payload_preview=preview_payload(ev.payload, self.preview_length),
        )

    def compare(self, events_a: Iterable[LogEvent], events_b: Iterable[LogEvent]) -> SessionDiffReport:
        a = sorted(events_a, key=lambda e: e.timestamp_ms)
        b = sorted(events_b, key=lambda e: e.timestamp_ms)

        names_a = {ev.event_name for ev in a}
        names_b = {ev.event_name for ev in b}
        event_types = EventTypes(
            common=sorted(names_a & names_b),
            only_in_a=sorted(names_a - names_b),
            only_in_b=sorted(names_b - names_a),
        )

        # (timestamp, side rank, index, slot); sorted on the first three
        keyed: list[tuple[int, int, int, DiffSlot]] = []

        def add(ts: int, idx: int, ea: LogEvent | None, eb: LogEvent | None, status: SlotStatus) -> None:
            slot = DiffSlot(
                timestamp_ms=ts,
                event_a=self._view(ea) if ea is not None else None,
                event_b=self._view(eb) if eb is not None else None,
                status=status,
            )
            keyed.append((ts, _SIDE_RANK[status], idx, slot))

        paired_a: set[int] = set()
        paired_b: set[int] = set()
        for i, j in pair_events(a, b, self.tolerance_ms):
            paired_a.add(i)
            paired_b.add(j)
            ea, eb = a[i], b[j]
            status = SlotStatus.MATCH if ea.event_name == eb.event_name else SlotStatus.DIFF
            add(min(ea.timestamp_ms, eb.timestamp_ms), i, ea, eb, status)
        for i, ev in enumerate(a):
            if i not in paired_a:
                add(ev.timestamp_ms, i, ev, None, SlotStatus.ONLY_A)
        for j, ev in enumerate(b):
            if j not in paired_b:
                add(ev.timestamp_ms, j, None, ev, SlotStatus.ONLY_B)
        keyed.sort(key=lambda item: item[:3])

        summary = DiffSummary(
            a_event_count=len(a),
            b_event_count=len(b),
            a_error_count=sum(1 for ev in a if ev.level >= ERROR_LEVEL),
            b_error_count=sum(1 for ev in b if ev.level >= ERROR_LEVEL),
            common_event_types=len(event_types.common),
            diff_event_types=len(event_types.only_in_a) + len(event_types.only_in_b),
        )
        logger.debug("Session diff: %d vs %d events, %d slots", len(a), len(b), len(keyed))
        return SessionDiffReport(summary=summary, event_types=event_types, timeline=[item[3] for item in keyed])


def diff_sessions(
    events_a: Iterable[LogEvent],
    events_b: Iterable[LogEvent],
    tolerance_ms: int = DEFAULT_TOLERANCE_MS,
) -> SessionDiffReport:
    return SessionDiffEngine(tolerance_ms=tolerance_ms).compare(events_a, events_b)
