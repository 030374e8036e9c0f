"""Command chains: events grouped by request id, with outcome and latency stats."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .matching import DEFAULT_MATCHER, StageMatcher
from .models import ChainStatus, LogEvent
from .payload import DEFAULT_PREVIEW_LENGTH, preview_payload
from .schemas import ReportModel

logger = logging.getLogger(__name__)

DEFAULT_CHAIN_LIMIT = 100
MAX_CHAIN_LIMIT = 1000


class ChainEvent(ReportModel):
    id: str | None
    event_name: str
    timestamp_ms: int
    level: int
    payload_preview: str | None


class CommandChain(ReportModel):
    request_id: str
    start_ms: int
    end_ms: int | None
    duration_ms: int | None
    status: ChainStatus
    event_count: int
    events: list[ChainEvent]

    @property
    def command_name(self) -> str:
        return self.events[0].event_name


class SlowChain(ReportModel):
    request_id: str
    duration_ms: int | None
    status: ChainStatus


class CommandStats(ReportModel):
    total: int
    success: int
    timeout: int
    error: int
    pending: int
    avg_duration_ms: int | None
    p50: int | None
    p90: int | None
    p99: int | None
    slowest: list[SlowChain]


class CommandChainReport(ReportModel):
    chains: list[CommandChain]
    stats: CommandStats


def percentile(sorted_values: Sequence[int], p: int) -> int | None:
    """Nearest-rank percentile: rank = ceil(p * n / 100), clamped to [1, n]."""
    n = len(sorted_values)
    if n == 0:
        return None
    rank = -(-p * n // 100)
    rank = min(max(rank, 1), n)
    return sorted_values[rank - 1]


def mean_rounded(values: Sequence[int]) -> int | None:
    if not values:
        return None
    n = len(values)
    return (2 * sum(values) + n) // (2 * n)  # round half up


@dataclass(frozen=True, slots=True)
class CommandChainAnalyzer:
    matcher: StageMatcher = DEFAULT_MATCHER
    slowest_limit: int = 10
    preview_length: int = DEFAULT_PREVIEW_LENGTH

    def build_chains(
        self,
        events: Iterable[LogEvent],
        *,
        window_end_ms: int | None = None,
        pending_timeout_ms: int | None = None,
    ) -> list[CommandChain]:
        """Group events by request id and run each chain's state machine.

        A chain still pending when the window closes becomes ``timeout`` only
        when both ``window_end_ms`` and ``pending_timeout_ms`` are given.
        """
        groups: dict[str, list[LogEvent]] = {}
        for ev in events:
            if not ev.request_id:
                continue
            groups.setdefault(ev.request_id, []).append(ev)

        chains = [
            self._chain(request_id, sorted(group, key=lambda e: e.timestamp_ms), window_end_ms, pending_timeout_ms)
            for request_id, group in groups.items()
        ]
        chains.sort(key=lambda c: (c.start_ms, c.request_id))
        return chains

    def _chain(
        self,
        request_id: str,
        ordered: list[LogEvent],
        window_end_ms: int | None,
        pending_timeout_ms: int | None,
    ) -> CommandChain:
        status = ChainStatus.PENDING
        for ev in ordered:
            outcome = self.matcher.command_outcome(ev)
            if outcome is not None:
                status = outcome
                break  # terminal

        start_ms = ordered[0].timestamp_ms
        if status is ChainStatus.PENDING and len(ordered) == 1:
            end_ms = duration_ms = None
        else:
            end_ms = ordered[-1].timestamp_ms
            duration_ms = end_ms - start_ms

        if (
            status is ChainStatus.PENDING
            and window_end_ms is not None
            and pending_timeout_ms is not None
            and window_end_ms - start_ms >= pending_timeout_ms
        ):
            status = ChainStatus.TIMEOUT

        return CommandChain(
            request_id=request_id,
            start_ms=start_ms,
            end_ms=end_ms,
            duration_ms=duration_ms,
            status=status,
            event_count=len(ordered),
            events=[
                ChainEvent(
                    id=ev.id,
                    event_name=ev.event_name,
                    timestamp_ms=ev.timestamp_ms,
                    level=ev.level,
                    payload_preview=preview_payload(ev.payload, self.preview_length),
                )
                for ev in ordered
            ],
        )

    def stats(self, chains: Sequence[CommandChain]) -> CommandStats:
        durations = sorted(c.duration_ms for c in chains if c.duration_ms is not None)
        by_status = {s: 0 for s in ChainStatus}
        for c in chains:
            by_status[c.status] += 1

        timed = [c for c in chains if c.duration_ms is not None]
        timed.sort(key=lambda c: (-c.duration_ms, c.request_id))

        return CommandStats(
            total=len(chains),
            success=by_status[ChainStatus.SUCCESS],
            timeout=by_status[ChainStatus.TIMEOUT],
            error=by_status[ChainStatus.ERROR],
            pending=by_status[ChainStatus.PENDING],
            avg_duration_ms=mean_rounded(durations),
            p50=percentile(durations, 50),
            p90=percentile(durations, 90),
            p99=percentile(durations, 99),
            slowest=[
                SlowChain(request_id=c.request_id, duration_ms=c.duration_ms, status=c.status)
                for c in timed[: self.slowest_limit]
            ],
        )

    def analyze(
        self,
        events: Iterable[LogEvent],
        *,
        window_end_ms: int | None = None,
        pending_timeout_ms: int | None = None,
        limit: int = DEFAULT_CHAIN_LIMIT,
    ) -> CommandChainReport:
        limit = min(max(limit, 1), MAX_CHAIN_LIMIT)
        chains = self.build_chains(
            events,
            window_end_ms=window_end_ms,
            pending_timeout_ms=pending_timeout_ms,
        )
        stats = self.stats(chains)
        logger.debug("Command chains: %d total, %d error, %d timeout", stats.total, stats.error, stats.timeout)
        return CommandChainReport(chains=chains[:limit], stats=stats)


def analyze_command_chains(
    events: Iterable[LogEvent],
    *,
    window_end_ms: int | None = None,
    pending_timeout_ms: int | None = None,
    limit: int = DEFAULT_CHAIN_LIMIT,
) -> CommandChainReport:
    return CommandChainAnalyzer().analyze(
        events,
        window_end_ms=window_end_ms,
        pending_timeout_ms=pending_timeout_ms,
        limit=limit,
    )
