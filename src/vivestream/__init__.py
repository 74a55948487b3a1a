"""vivestream - Real-time 6DoF tracker pose streaming over TCP.

Main exports:
- StreamingService / run_server: Poll a tracker and broadcast samples
- StreamClient / create_client / run_client: Receive samples with auto-reconnect
- RelativePoseEngine: Absolute + trigger-latched relative transforms
- PoseSample: Pose + button sample data structure
- PoseMailbox: Latest-wins handoff between producer and server
- SampleFilter: Outlier rejection for raw tracker samples
- load_config: Load configuration from JSON file
- protocol: Newline-delimited JSON wire protocol
"""

from .sample import PoseSample
from .config import StreamConfig, load_config
from .filter import SampleFilter, FilterResult, Verdict
from .mailbox import PoseMailbox
from .device import (
    TrackingSystem,
    OpenVRTrackingSystem,
    SimulatedTrackingSystem,
    TrackingInitError,
    open_tracking_system,
)
from .producer import ProducerLoop, ProducerState
from .server import BroadcastServer
from .client import StreamClient, ConnectionState
from .relative import RelativePoseEngine, Transform, ControllerTelemetry, to_sink_axes
from .sink import TransformSink, JsonLinesSink, MemorySink
from .service import StreamingService, run_server, create_client, run_client
from .protocol import ProtocolError
from . import math
from . import protocol

__all__ = [
    # Main API
    "StreamingService",
    "run_server",
    "StreamClient",
    "ConnectionState",
    "create_client",
    "run_client",
    "RelativePoseEngine",
    "Transform",
    "ControllerTelemetry",
    "to_sink_axes",
    "PoseSample",
    "StreamConfig",
    "load_config",
    # Components
    "SampleFilter",
    "FilterResult",
    "Verdict",
    "PoseMailbox",
    "ProducerLoop",
    "ProducerState",
    "BroadcastServer",
    # Tracking backends
    "TrackingSystem",
    "OpenVRTrackingSystem",
    "SimulatedTrackingSystem",
    "TrackingInitError",
    "open_tracking_system",
    # Sinks
    "TransformSink",
    "JsonLinesSink",
    "MemorySink",
    # Math utilities
    "math",
    # Protocol
    "protocol",
    "ProtocolError",
]
