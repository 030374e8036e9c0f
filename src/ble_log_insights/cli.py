from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from ble_log_insights.core.models import MalformedInputError
from ble_log_insights.tools.analysis import (
    ble_quality_impl,
    command_chains_impl,
    compare_sessions_impl,
    detect_anomalies_impl,
    error_distribution_impl,
    reconnect_summary_impl,
)


def _non_negative(s: str) -> int:
    try:
        value = int(s)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected an integer, got {s!r}") from e
    if value < 0:
        raise argparse.ArgumentTypeError("must be >= 0")
    return value


def _add_filters(p: argparse.ArgumentParser) -> None:
    p.add_argument("--link-code", default=None, help="Only events of this link")
    p.add_argument("--device-mac", default=None, help="Only events of this device (case-insensitive)")
    p.add_argument("--since", default=None, help="ISO8601 start or epoch ms (assumes UTC if tz missing)")
    p.add_argument("--until", default=None, help="ISO8601 end or epoch ms (exclusive)")
    p.add_argument("--date", default=None, help="YYYY-MM-DD (UTC day)")
    p.add_argument("--hour", default=None, help="YYYY-MM-DDTHH (UTC hour)")


def _window_kwargs(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "link_code": args.link_code,
        "device_mac": args.device_mac,
        "since": args.since,
        "until": args.until,
        "date": args.date,
        "hour": args.hour,
    }


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ble-log-insights-cli",
        description="BLE log analysis: quality, anomalies, commands, errors, reconnects and session diff.",
    )
    sub = p.add_subparsers(dest="command", required=True)

    q = sub.add_parser("quality", help="Required-event compliance report")
    src = q.add_mutually_exclusive_group(required=True)
    src.add_argument("--events", dest="events_path", help="JSON/JSONL event file (optionally .gz)")
    src.add_argument("--buckets", dest="buckets_path", help="Pre-aggregated [{eventName, level, count}] file")
    q.add_argument("--parser-errors", type=_non_negative, default=0, help="Upstream parser error count")
    _add_filters(q)

    a = sub.add_parser("anomalies", help="Ranked anomaly findings")
    a.add_argument("events_path")
    _add_filters(a)

    c = sub.add_parser("commands", help="Command chains and latency percentiles")
    c.add_argument("events_path")
    c.add_argument("--pending-timeout-ms", type=_non_negative, default=None)
    c.add_argument("--limit", type=int, default=None, help="Max chains listed (1..1000, default 100)")
    _add_filters(c)

    e = sub.add_parser("errors", help="Error distribution by category, code, name and level")
    e.add_argument("events_path")
    _add_filters(e)

    r = sub.add_parser("reconnects", help="Per-device disconnect -> reconnect delays")
    r.add_argument("events_path")
    r.add_argument("--reconnect-window-ms", type=_non_negative, default=None, help="1 s..30 min (default 5 min)")
    r.add_argument("--limit", type=int, default=None, help="Max devices listed (1..200, default 50)")
    _add_filters(r)

    d = sub.add_parser("compare", help="Timeline diff of two sessions")
    d.add_argument("events_path_a")
    d.add_argument("events_path_b", nargs="?", default=None, help="Defaults to events_path_a")
    d.add_argument("--session-a", dest="session_id_a", default=None)
    d.add_argument("--session-b", dest="session_id_b", default=None)
    d.add_argument("--link-a", dest="link_code_a", default=None)
    d.add_argument("--link-b", dest="link_code_b", default=None)
    d.add_argument("--device-a", dest="device_mac_a", default=None)
    d.add_argument("--device-b", dest="device_mac_b", default=None)
    d.add_argument("--since-a", default=None)
    d.add_argument("--until-a", default=None)
    d.add_argument("--since-b", default=None)
    d.add_argument("--until-b", default=None)
    d.add_argument("--tolerance-ms", type=_non_negative, default=None)
    return p


async def _run(args: argparse.Namespace) -> dict[str, Any]:
    if args.command == "quality":
        window = _window_kwargs(args)
        return await ble_quality_impl(
            events_path=args.events_path,
            buckets_path=args.buckets_path,
            parser_error_count=args.parser_errors,
            **window,
        )
    if args.command == "anomalies":
        return await detect_anomalies_impl(events_path=args.events_path, **_window_kwargs(args))
    if args.command == "commands":
        return await command_chains_impl(
            events_path=args.events_path,
            pending_timeout_ms=args.pending_timeout_ms,
            limit=args.limit,
            **_window_kwargs(args),
        )
    if args.command == "errors":
        return await error_distribution_impl(events_path=args.events_path, **_window_kwargs(args))
    if args.command == "reconnects":
        return await reconnect_summary_impl(
            events_path=args.events_path,
            reconnect_window_ms=args.reconnect_window_ms,
            limit=args.limit,
            **_window_kwargs(args),
        )
    return await compare_sessions_impl(
        events_path_a=args.events_path_a,
        events_path_b=args.events_path_b,
        session_id_a=args.session_id_a,
        session_id_b=args.session_id_b,
        link_code_a=args.link_code_a,
        link_code_b=args.link_code_b,
        device_mac_a=args.device_mac_a,
        device_mac_b=args.device_mac_b,
        since_a=args.since_a,
        until_a=args.until_a,
        since_b=args.since_b,
        until_b=args.until_b,
        tolerance_ms=args.tolerance_ms,
    )


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    try:
        report = asyncio.run(_run(args))
    except FileNotFoundError as e:
        print(str(e), file=sys.stderr)
        raise SystemExit(2)
    except MalformedInputError as e:
        print(f"Malformed input: {e}", file=sys.stderr)
        raise SystemExit(2)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        raise SystemExit(2)

    print(json.dumps(report, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
