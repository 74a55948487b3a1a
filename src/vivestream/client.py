"""Reconnecting TCP client for the vivestream broadcast server."""

from __future__ import annotations

import socket
import threading
import time
from enum import Enum
from typing import Callable, Optional

from . import protocol
from .events import EventEmitter
from .sample import PoseSample

DEFAULT_BACKOFF = 1.0
DEFAULT_CONNECT_TIMEOUT = 2.0

# Read timeout so run() can notice a stop request while the server is silent
READ_TIMEOUT = 0.5
RECV_SIZE = 4096


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


ConnectFn = Callable[[str, int, float], socket.socket]


def _default_connect(host: str, port: int, timeout: float) -> socket.socket:
    sock = socket.create_connection((host, port), timeout=timeout)
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    return sock


class StreamClient:
    """Connect to a BroadcastServer, decode samples, and hand them on in order.

    State machine:
        DISCONNECTED --attempt--> CONNECTING --ok--> CONNECTED
        CONNECTING --fail--> DISCONNECTED (sleep `backoff`, retry forever)
        CONNECTED --EOF / read error--> DISCONNECTED (reconnect)

    Decoded samples are passed to on_sample synchronously, one at a time, in
    arrival order, before the next read. A message that fails to decode is
    reported and skipped; the connection stays up.

    Example:
        >>> engine = RelativePoseEngine()
        >>> client = StreamClient("127.0.0.1", 12345, on_sample=engine.process)
        >>> client.run()  # blocks until stop()
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = protocol.TCP_DATA_PORT,
        on_sample: Optional[Callable[[PoseSample], object]] = None,
        backoff: float = DEFAULT_BACKOFF,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        on_state_change: Optional[Callable[[ConnectionState], None]] = None,
        on_connect: Optional[Callable[[], None]] = None,
        connect: Optional[ConnectFn] = None,
        sleep: Callable[[float], None] = time.sleep,
        events: Optional[EventEmitter] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.on_sample = on_sample
        self.backoff = backoff
        self.connect_timeout = connect_timeout
        self.on_state_change = on_state_change
        self.on_connect = on_connect
        self.events = events or EventEmitter()
        self._connect = connect or _default_connect
        self._sleep = sleep

        self.state = ConnectionState.DISCONNECTED
        self.connect_attempts = 0
        self.samples_received = 0
        self.parse_errors = 0

        self._sock: Optional[socket.socket] = None
        self._decoder = protocol.FrameDecoder()
        self._stop = threading.Event()

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        self.state = state
        if self.on_state_change:
            self.on_state_change(state)

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def connect_once(self) -> bool:
        """Make a single connection attempt; return True when CONNECTED."""
        self._set_state(ConnectionState.CONNECTING)
        self.connect_attempts += 1
        try:
            sock = self._connect(self.host, self.port, self.connect_timeout)
        except OSError as e:
            self.events.warning(
                "connect_failed",
                server=f"{self.host}:{self.port}",
                attempt=self.connect_attempts,
                message=str(e),
            )
            self._set_state(ConnectionState.DISCONNECTED)
            return False

        sock.settimeout(READ_TIMEOUT)
        self._sock = sock
        self._decoder.reset()
        self._set_state(ConnectionState.CONNECTED)
        self.events.info("connected", server=f"{self.host}:{self.port}", attempt=self.connect_attempts)
        if self.on_connect:
            self.on_connect()
        return True

    def ensure_connected(self) -> bool:
        """Retry with backoff until connected or stopped."""
        while not self.stopped:
            if self.connect_once():
                return True
            self._sleep(self.backoff)
        return False

    def _disconnect(self, reason: str) -> None:
        sock, self._sock = self._sock, None
        if sock is not None:
            try:
                sock.close()
            except OSError:
                pass
        if self.state is not ConnectionState.DISCONNECTED:
            self._set_state(ConnectionState.DISCONNECTED)
            if not self.stopped:
                self.events.warning("disconnected", server=f"{self.host}:{self.port}", reason=reason)

    def handle_data(self, chunk: bytes) -> int:
        """Split received bytes into messages and deliver each decoded sample.

        Returns the number of samples delivered.
        """
        delivered = 0
        dropped_before = self._decoder.dropped_bytes
        for line in self._decoder.feed(chunk):
            try:
                sample = protocol.decode_sample(line)
            except protocol.ProtocolError as e:
                self.parse_errors += 1
                self.events.error("parse_error", message=str(e))
                continue
            self.samples_received += 1
            delivered += 1
            if self.on_sample:
                self.on_sample(sample)
        if self._decoder.dropped_bytes != dropped_before:
            self.parse_errors += 1
            self.events.error(
                "parse_error",
                message=f"discarded {self._decoder.dropped_bytes - dropped_before} bytes without delimiter",
            )
        return delivered

    def read_once(self) -> bool:
        """Read one chunk from the socket. Returns False if the connection ended."""
        sock = self._sock
        if sock is None:
            return False
        try:
            chunk = sock.recv(RECV_SIZE)
        except socket.timeout:
            return True
        except OSError as e:
            self._disconnect(f"read_error: {e}")
            return False
        if not chunk:
            self._disconnect("closed_by_server")
            return False
        self.handle_data(chunk)
        return True

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """Connect, read and decode until stop() is called (or stop_event is set)."""
        if stop_event is not None:
            self._stop = stop_event
        try:
            while not self.stopped:
                if self.state is not ConnectionState.CONNECTED:
                    if not self.ensure_connected():
                        break
                self.read_once()
        finally:
            self._disconnect("client_stopped")

    def stop(self) -> None:
        """Request run() to return; safe to call from another thread."""
        self._stop.set()
