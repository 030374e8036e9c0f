"""Event file loading, filtering and bucket aggregation.

Supported inputs are a JSON array of records (``.json``) or one record per
line (``.jsonl``/``.ndjson``), optionally gzip-compressed (``.gz``).
"""

from __future__ import annotations

import gzip
import json
import logging
import os
from collections.abc import Iterable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import aiofiles
from aiofiles.threadpool import wrap

from .models import EventCountBucket, LogEvent, MalformedInputError
from .schemas import parse_buckets, parse_events

logger = logging.getLogger(__name__)

_LINE_SUFFIXES = {".jsonl", ".ndjson"}

ALLOWED_FILE_SUFFIXES = {".json", *_LINE_SUFFIXES}
BASE_DIR_ENV = "BLE_INSIGHTS_BASE_DIR"


def base_dir() -> Path:
    """Return the resolved base directory that MCP clients may read from."""
    raw = os.getenv(BASE_DIR_ENV, os.getcwd())
    return Path(raw).resolve()


def safe_resolve(path: str) -> Path:
    """Resolve a path under the configured base directory."""
    base = base_dir()
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = base / p
    p = p.resolve()
    if base not in p.parents and p != base:
        raise ValueError("Path escapes base dir")
    return p


def effective_suffix(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix == ".gz":
        suffix = path.with_suffix("").suffix.lower()
    return suffix


def resolve_event_file(path: str) -> Path:
    """Resolve and validate an event file path inside the base directory."""
    resolved = safe_resolve(path)
    if not resolved.is_file():
        raise FileNotFoundError(f"File not found: {resolved}")
    if effective_suffix(resolved) not in ALLOWED_FILE_SUFFIXES:
        allowed = ", ".join(sorted(ALLOWED_FILE_SUFFIXES))
        raise ValueError(f"File type not allowed. Allowed: {allowed}.")
    return resolved


@asynccontextmanager
async def _open_text(path: Path, *, encoding: str):
    """Open an event file for async text reading (plain or gzip)."""
    if path.suffix.lower() == ".gz":
        f = gzip.open(path, mode="rt", encoding=encoding)
        af = wrap(f)
        try:
            yield af
        finally:
            await af.close()
    else:
        async with aiofiles.open(path, encoding=encoding) as f:
            yield f


def _is_line_delimited(path: Path) -> bool:
    return effective_suffix(path) in _LINE_SUFFIXES


async def load_records(path: str | Path, *, encoding: str = "utf-8") -> list[dict[str, Any]]:
    """Read raw JSON records from a file."""
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Event file not found: {p}")

    records: list[Any] = []
    async with _open_text(p, encoding=encoding) as f:
        if _is_line_delimited(p):
            line_no = 0
            async for line in f:
                line_no += 1
                text = line.strip()
                if not text:
                    continue
                try:
                    records.append(json.loads(text))
                except json.JSONDecodeError as exc:
                    raise MalformedInputError(f"Malformed JSON on line {line_no}: {exc.msg}") from exc
        else:
            try:
                data = json.loads(await f.read())
            except json.JSONDecodeError as exc:
                raise MalformedInputError(f"Malformed JSON at line {exc.lineno}: {exc.msg}") from exc
            # Exports wrap the array as {"events": [...]}.
            if isinstance(data, dict) and isinstance(data.get("events"), list):
                data = data["events"]
            if not isinstance(data, list):
                raise MalformedInputError("Expected a JSON array of records")
            records = data

    for i, rec in enumerate(records):
        if not isinstance(rec, dict):
            raise MalformedInputError(f"Malformed record #{i}: expected an object")
    logger.debug("Loaded %d records from %s", len(records), p)
    return records


async def load_events(path: str | Path, *, encoding: str = "utf-8") -> list[LogEvent]:
    return parse_events(await load_records(path, encoding=encoding))


async def load_buckets(path: str | Path, *, encoding: str = "utf-8") -> list[EventCountBucket]:
    return parse_buckets(await load_records(path, encoding=encoding))


def filter_events(
    events: Iterable[LogEvent],
    *,
    session_id: str | None = None,
    link_code: str | None = None,
    device_mac: str | None = None,
    since_ms: int | None = None,
    until_ms: int | None = None,
) -> list[LogEvent]:
    """Select events for one session/device inside ``[since_ms, until_ms)``."""
    if since_ms is not None and until_ms is not None and since_ms >= until_ms:
        raise ValueError("since_ms must be < until_ms")

    mac = device_mac.lower() if device_mac else None
    out: list[LogEvent] = []
    for ev in events:
        if session_id is not None and ev.session_id != session_id:
            continue
        if link_code is not None and ev.link_code != link_code:
            continue
        if mac is not None and (ev.device_mac or "").lower() != mac:
            continue
        if since_ms is not None and ev.timestamp_ms < since_ms:
            continue
        if until_ms is not None and ev.timestamp_ms >= until_ms:
            continue
        out.append(ev)
    return out


def count_buckets(events: Iterable[LogEvent]) -> list[EventCountBucket]:
    """Aggregate events into (event name, level) buckets, in first-seen order."""
    counts: dict[tuple[str, int], int] = {}
    for ev in events:
        key = (ev.event_name, ev.level)
        counts[key] = counts.get(key, 0) + 1
    return [EventCountBucket(event_name=name, level=level, count=n) for (name, level), n in counts.items()]
