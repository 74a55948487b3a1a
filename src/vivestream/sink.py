"""Output side of the client: where transforms and telemetry go.

The real consumer is robotics middleware (a TF broadcaster plus a telemetry
topic). The pipeline only talks to the TransformSink interface, so any bus can
be plugged in; JsonLinesSink writes everything as JSON events.
"""

from __future__ import annotations

from typing import List, Optional

from .events import EventEmitter
from .relative import ControllerTelemetry, Transform


class TransformSink:
    """Interface for the downstream consumer."""

    def send_transform(self, transform: Transform) -> None:
        raise NotImplementedError

    def send_telemetry(self, message: ControllerTelemetry) -> None:
        raise NotImplementedError


class JsonLinesSink(TransformSink):
    """Emit transforms and telemetry as JSON events (stdout and/or callback)."""

    def __init__(self, events: Optional[EventEmitter] = None) -> None:
        self.events = events or EventEmitter()

    def send_transform(self, transform: Transform) -> None:
        self.events.info("transform", **transform.to_dict())

    def send_telemetry(self, message: ControllerTelemetry) -> None:
        self.events.info("telemetry", **message.to_dict())


class MemorySink(TransformSink):
    """Collect everything in lists; handy for tests and offline inspection."""

    def __init__(self) -> None:
        self.transforms: List[Transform] = []
        self.telemetry: List[ControllerTelemetry] = []

    def send_transform(self, transform: Transform) -> None:
        self.transforms.append(transform)

    def send_telemetry(self, message: ControllerTelemetry) -> None:
        self.telemetry.append(message)
