"""vivestream CLI entry point.

Usage:
    python -m vivestream serve [--config CONFIG] [--port 12345] [--simulate]
    python -m vivestream serve --reject-threshold 0.05 --active-poll-ms 5 --idle-poll-ms 50
    python -m vivestream client [--host 127.0.0.1] [--port 12345] [--quiet]
"""

import argparse
import json
import sys
from dataclasses import replace
from typing import List, Optional

from vivestream import load_config
from vivestream.device import TrackingInitError
from vivestream.events import EventEmitter
from vivestream.service import run_client, run_server


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="vivestream - 6DoF tracker pose streaming")
    parser.add_argument(
        "--config",
        type=str,
        default="",
        help="Path to config JSON file (port, thresholds, poll rates)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="TCP port of the broadcast server (default: 12345)",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        default=None,
        help="Suppress high-frequency output (samples, transforms, telemetry)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Also print debug events (per-sample velocity, displacement)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Poll the tracker and broadcast samples")
    serve.add_argument("--host", type=str, default=None, help="Bind address (default: 0.0.0.0)")
    serve.add_argument(
        "--simulate",
        action="store_true",
        help="Use a simulated tracker instead of the OpenVR runtime",
    )
    serve.add_argument(
        "--reject-threshold",
        type=float,
        default=None,
        help="Discard samples that jump more than this many meters (default: 0.05)",
    )
    serve.add_argument(
        "--active-poll-ms",
        type=float,
        default=None,
        help="Poll interval while a tracker is detected (default: 5)",
    )
    serve.add_argument(
        "--idle-poll-ms",
        type=float,
        default=None,
        help="Poll interval while no tracker is detected (default: 50)",
    )
    serve.add_argument(
        "--capture-time",
        action="store_true",
        help="Keep each sample's capture timestamp instead of re-stamping at send time",
    )

    client = sub.add_parser("client", help="Receive samples and print transforms")
    client.add_argument("--host", type=str, default=None, help="Server address (default: 127.0.0.1)")
    client.add_argument(
        "--backoff",
        type=float,
        default=None,
        help="Seconds between reconnect attempts (default: 1.0)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        config = load_config(args.config if args.config else None)
    except (OSError, ValueError) as e:
        print(json.dumps({"type": "error", "level": "error", "message": f"Invalid config: {e}"}), flush=True)
        return 2

    # CLI flags override config file values
    overrides = {}
    if args.port is not None:
        overrides["port"] = args.port
    if args.quiet is not None:
        overrides["quiet"] = args.quiet

    if args.command == "serve":
        if args.host is not None:
            overrides["host"] = args.host
        if args.reject_threshold is not None:
            overrides["reject_threshold"] = args.reject_threshold
        if args.active_poll_ms is not None:
            overrides["active_poll_ms"] = args.active_poll_ms
        if args.idle_poll_ms is not None:
            overrides["idle_poll_ms"] = args.idle_poll_ms
        if args.capture_time:
            overrides["restamp_on_send"] = False
    else:
        if args.host is not None:
            overrides["client_host"] = args.host
        if args.backoff is not None:
            overrides["reconnect_backoff_s"] = args.backoff

    try:
        config = replace(config, **overrides)
    except ValueError as e:
        print(json.dumps({"type": "error", "level": "error", "message": str(e)}), flush=True)
        return 2

    events = EventEmitter(quiet=config.quiet, verbose=args.verbose)

    if args.command == "client":
        run_client(config, events=events)
        return 0

    try:
        run_server(config, backend="simulated" if args.simulate else "openvr", events=events)
    except TrackingInitError as e:
        events.error("fatal", message=str(e))
        return 1
    except OSError as e:
        events.error("fatal", message=f"Cannot bind {config.host}:{config.port}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
