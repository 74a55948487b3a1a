"""Structured event output for vivestream.

Every component reports what it is doing as a small JSON event, e.g.
``{"type": "peer_connected", "level": "info", "peer": "10.0.0.5:51234"}``.
Events are printed one per line and optionally forwarded to a callback, so
callers can route them into their own logging without parsing stdout.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Optional

EventCallback = Callable[[Dict[str, Any]], None]

# Event types emitted once per sample; silenced when quiet
HIGH_FREQUENCY_EVENTS = frozenset({"sample", "pose", "transform", "telemetry"})


class EventEmitter:
    """Print-and-forward event reporter shared by the pipeline components."""

    def __init__(
        self,
        callback: Optional[EventCallback] = None,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self.callback = callback
        self.quiet = quiet
        self.verbose = verbose

    def _should_print(self, event_type: str, level: str) -> bool:
        if level == "debug" and not self.verbose:
            return False
        if self.quiet and event_type in HIGH_FREQUENCY_EVENTS:
            return False
        return True

    def emit(self, event_type: str, level: str = "info", **fields: Any) -> Dict[str, Any]:
        event: Dict[str, Any] = {"type": event_type, "level": level}
        event.update(fields)

        if self._should_print(event_type, level):
            print(json.dumps(event, default=str), flush=True)

        if self.callback:
            try:
                self.callback(event)
            except Exception:
                pass
        return event

    def debug(self, event_type: str, **fields: Any) -> Dict[str, Any]:
        return self.emit(event_type, "debug", **fields)

    def info(self, event_type: str, **fields: Any) -> Dict[str, Any]:
        return self.emit(event_type, "info", **fields)

    def warning(self, event_type: str, **fields: Any) -> Dict[str, Any]:
        return self.emit(event_type, "warning", **fields)

    def error(self, event_type: str, **fields: Any) -> Dict[str, Any]:
        return self.emit(event_type, "error", **fields)
