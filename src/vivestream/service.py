"""Wiring of the vivestream components into runnable services.

Server side: tracking system -> ProducerLoop -> PoseMailbox -> BroadcastServer.
Client side: StreamClient -> RelativePoseEngine -> TransformSink.
"""

from __future__ import annotations

import signal
import threading
from typing import Callable, Optional

from .client import StreamClient
from .config import StreamConfig
from .device import BackendType, TrackingSystem, open_tracking_system
from .events import EventEmitter
from .filter import SampleFilter
from .mailbox import PoseMailbox
from .producer import ProducerLoop
from .relative import RelativePoseEngine, to_sink_axes
from .sample import PoseSample
from .server import BroadcastServer
from .sink import JsonLinesSink, TransformSink


class StreamingService:
    """Producer thread + broadcast server sharing one mailbox.

    The tracking system is owned by the caller (see run_server, which opens it
    with open_tracking_system so it is released on every exit path).
    """

    def __init__(
        self,
        tracking: TrackingSystem,
        config: Optional[StreamConfig] = None,
        events: Optional[EventEmitter] = None,
    ) -> None:
        self.config = config or StreamConfig()
        self.events = events or EventEmitter(quiet=self.config.quiet)
        self.mailbox = PoseMailbox()
        self.producer = ProducerLoop(
            tracking,
            self.mailbox,
            SampleFilter(self.config.reject_threshold),
            active_poll_ms=self.config.active_poll_ms,
            idle_poll_ms=self.config.idle_poll_ms,
            device_classes=self.config.device_class_ids,
            events=self.events,
        )
        self.server = BroadcastServer(
            self.mailbox,
            host=self.config.host,
            port=self.config.port,
            restamp=self.config.restamp_on_send,
            events=self.events,
        )
        self._stop = threading.Event()
        self._producer_thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Bind the server, then start polling.

        Raises:
            OSError: If the server port cannot be bound.
        """
        self._stop.clear()
        self.server.start()
        self._producer_thread = threading.Thread(
            target=self.producer.run, args=(self._stop,), daemon=True, name="ProducerLoop"
        )
        self._producer_thread.start()

    def request_stop(self) -> None:
        """Ask wait() to return; the actual teardown happens in stop()."""
        self._stop.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until stop() is called; returns True if stopped."""
        return self._stop.wait(timeout)

    def stop(self) -> None:
        """Stop polling, then close the server and every peer."""
        self._stop.set()
        if self._producer_thread is not None and self._producer_thread is not threading.current_thread():
            self._producer_thread.join(timeout=2.0)
        self._producer_thread = None
        self.server.stop()
        self.mailbox.close()


def run_server(
    config: Optional[StreamConfig] = None,
    backend: BackendType = "openvr",
    events: Optional[EventEmitter] = None,
) -> None:
    """Run the streaming service until SIGINT/SIGTERM.

    Raises:
        TrackingInitError: If the tracking runtime cannot be initialized.
        OSError: If the server port cannot be bound.
    """
    config = config or StreamConfig()
    events = events or EventEmitter(quiet=config.quiet)

    with open_tracking_system(backend) as tracking:
        events.info("tracking_initialized", backend=backend)
        service = StreamingService(tracking, config, events)

        def handle_signal(signum, frame):
            service.request_stop()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)

        service.start()
        try:
            while not service.wait(0.5):
                pass
        finally:
            service.stop()


class RelativePosePipeline:
    """Feed decoded samples through the engine and publish to a sink.

    Both transforms are published in the sink's axis convention; telemetry
    carries the values as computed.
    """

    def __init__(
        self,
        sink: TransformSink,
        engine: Optional[RelativePoseEngine] = None,
    ) -> None:
        self.sink = sink
        self.engine = engine or RelativePoseEngine()

    def __call__(self, sample: PoseSample) -> None:
        absolute, relative = self.engine.process(sample)
        if relative is not None:
            self.sink.send_transform(to_sink_axes(relative))
        self.sink.send_transform(to_sink_axes(absolute))
        self.sink.send_telemetry(self.engine.telemetry(sample, absolute, relative))

    def reset(self) -> None:
        self.engine.reset()


def create_client(
    config: Optional[StreamConfig] = None,
    sink: Optional[TransformSink] = None,
    events: Optional[EventEmitter] = None,
    on_sample: Optional[Callable[[PoseSample], None]] = None,
) -> StreamClient:
    """Build a StreamClient whose samples flow into a RelativePosePipeline.

    The engine is reset on every (re)connect so no latch survives a session.
    """
    config = config or StreamConfig()
    events = events or EventEmitter(quiet=config.quiet)
    pipeline = RelativePosePipeline(sink or JsonLinesSink(events))

    def handle(sample: PoseSample) -> None:
        pipeline(sample)
        if on_sample:
            on_sample(sample)

    return StreamClient(
        host=config.client_host,
        port=config.port,
        on_sample=handle,
        backoff=config.reconnect_backoff_s,
        on_connect=pipeline.reset,
        events=events,
    )


def run_client(
    config: Optional[StreamConfig] = None,
    sink: Optional[TransformSink] = None,
    events: Optional[EventEmitter] = None,
) -> None:
    """Run the client until SIGINT/SIGTERM."""
    client = create_client(config, sink, events)

    def handle_signal(signum, frame):
        client.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    client.run()
