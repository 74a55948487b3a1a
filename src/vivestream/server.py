"""TCP broadcast server for vivestream pose streaming.

Key features:
- TCP server with low-latency tuning (TCP_NODELAY, keepalive)
- Newline-delimited JSON framing (see protocol.py)
- Any number of simultaneous peers, each with its own sender thread
- Latest-wins delivery end to end: a slow peer skips stale samples instead of
  queueing them, and never delays the other peers
- Binds to 0.0.0.0 (all interfaces) by default
"""

from __future__ import annotations

import platform
import socket
import threading
from typing import Dict, List, Optional, Tuple

from . import protocol
from .events import EventEmitter
from .mailbox import PoseMailbox
from .sample import timestamp_now

DEFAULT_TCP_PORT = protocol.TCP_DATA_PORT  # 12345

# Accept timeout so the accept loop can notice shutdown
ACCEPT_TIMEOUT = 1.0

# How long the broadcast loop waits on the mailbox before re-checking shutdown
MAILBOX_WAIT = 0.25

# A peer that cannot absorb one message within this time is dropped
SEND_TIMEOUT = 2.0


def _get_local_ip() -> str:
    """Get the local IP address."""
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.settimeout(0.1)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except Exception:
        return "127.0.0.1"


def _get_interface_addresses() -> Dict[str, List[str]]:
    """IPv4 addresses of every network interface, keyed by interface name.

    Reported at startup so clients on another machine know which address to
    dial (WiFi, Ethernet, USB tethering, ...).
    """
    import netifaces

    result: Dict[str, List[str]] = {}
    for iface in netifaces.interfaces():
        try:
            addrs = netifaces.ifaddresses(iface)
        except ValueError:
            continue
        for addr_info in addrs.get(netifaces.AF_INET, []):
            ip = addr_info.get("addr")
            if ip:
                result.setdefault(iface, []).append(ip)
    return result


def _configure_socket_low_latency(sock: socket.socket) -> None:
    """Configure a peer socket for low-latency streaming.

    Applies TCP_NODELAY and keepalive tuning so small pose messages leave
    immediately and dead peers are detected within a few seconds.
    """
    # Disable Nagle so each small frame is sent immediately
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)

    system = platform.system().lower()
    if system == "linux":
        try:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, 5)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, 1)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPCNT, 3)
        except (AttributeError, OSError):
            pass
    elif system == "darwin":
        try:
            TCP_KEEPALIVE = 0x10  # macOS-specific
            sock.setsockopt(socket.IPPROTO_TCP, TCP_KEEPALIVE, 5)
        except (AttributeError, OSError):
            pass


class _Peer:
    """One connected client with a single-slot outbox and its own sender thread."""

    def __init__(
        self,
        server: "BroadcastServer",
        conn: socket.socket,
        addr: Tuple[str, int],
        send_timeout: float,
    ) -> None:
        self.server = server
        self.conn = conn
        self.addr = addr
        self.name = f"{addr[0]}:{addr[1]}"
        self.send_timeout = send_timeout
        self.sent_count = 0
        self.skipped_count = 0

        self._cond = threading.Condition()
        self._pending: Optional[bytes] = None
        self._closed = False
        self._thread = threading.Thread(
            target=self._send_loop, daemon=True, name=f"BroadcastServer-Peer-{self.name}"
        )

    def start(self) -> None:
        self._thread.start()

    def offer(self, frame: bytes) -> None:
        """Queue frame for sending, replacing any frame not yet sent."""
        with self._cond:
            if self._closed:
                return
            if self._pending is not None:
                self.skipped_count += 1
            self._pending = frame
            self._cond.notify()

    def _send_loop(self) -> None:
        reason = "closed"
        try:
            self.conn.settimeout(self.send_timeout)
            while True:
                with self._cond:
                    self._cond.wait_for(lambda: self._pending is not None or self._closed)
                    if self._closed:
                        return
                    frame, self._pending = self._pending, None
                self.conn.sendall(frame)
                self.sent_count += 1
        except socket.timeout:
            reason = "send_timeout"
        except OSError as e:
            reason = f"write_failed: {e}"
        finally:
            self.server._drop_peer(self, reason)

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify()
        try:
            self.conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            self.conn.close()
        except OSError:
            pass

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)


class BroadcastServer:
    """Fan the latest pose sample out to every connected TCP peer.

    The server owns the reader side of a PoseMailbox. Whenever a new sample is
    taken it is (optionally) re-stamped with the send time, encoded once, and
    offered to every peer. Peers whose writes fail or time out are removed;
    the server keeps running.

    Example:
        >>> mailbox = PoseMailbox()
        >>> server = BroadcastServer(mailbox, port=12345)
        >>> server.start()
        >>> ...
        >>> server.stop()
    """

    def __init__(
        self,
        mailbox: PoseMailbox,
        host: str = "0.0.0.0",
        port: int = DEFAULT_TCP_PORT,
        restamp: bool = True,
        send_timeout: float = SEND_TIMEOUT,
        events: Optional[EventEmitter] = None,
    ) -> None:
        self.mailbox = mailbox
        self.host = host
        self.port = port
        self.restamp = restamp
        self.send_timeout = send_timeout
        self.events = events or EventEmitter()

        self.server_sock: Optional[socket.socket] = None
        self.running = False
        self.broadcast_count = 0

        self._peers: List[_Peer] = []
        self._peers_lock = threading.Lock()
        self._accept_thread: Optional[threading.Thread] = None
        self._broadcast_thread: Optional[threading.Thread] = None
        self._stopped = threading.Event()

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); the port is resolved when 0 was requested."""
        if self.server_sock is None:
            return (self.host, self.port)
        host, port = self.server_sock.getsockname()[:2]
        return (host, port)

    @property
    def peer_count(self) -> int:
        with self._peers_lock:
            return len(self._peers)

    def _report_listening(self) -> None:
        host, port = self.address
        try:
            interfaces = _get_interface_addresses()
        except Exception as e:
            interfaces = {}
            self.events.warning("interface_lookup_failed", message=str(e))
        self.events.info(
            "server_listening",
            host=host,
            port=port,
            ip=_get_local_ip(),
            interfaces=interfaces,
            restamp=self.restamp,
        )

    def start(self) -> None:
        """Bind the listening socket and start the accept and broadcast threads.

        Raises:
            OSError: If the port cannot be bound.
        """
        if self.running:
            return

        self.server_sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server_sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            self.server_sock.bind((self.host, self.port))
            self.server_sock.listen()
        except OSError:
            self.server_sock.close()
            self.server_sock = None
            raise
        self.server_sock.settimeout(ACCEPT_TIMEOUT)

        self.running = True
        self._stopped.clear()
        self._report_listening()

        self._accept_thread = threading.Thread(
            target=self._accept_loop, daemon=True, name="BroadcastServer-Accept"
        )
        self._broadcast_thread = threading.Thread(
            target=self._broadcast_loop, daemon=True, name="BroadcastServer-Broadcast"
        )
        self._accept_thread.start()
        self._broadcast_thread.start()

    def serve_forever(self) -> None:
        """Start (if needed) and block until stop() is called."""
        self.start()
        self._stopped.wait()

    def _accept_loop(self) -> None:
        while self.running:
            sock = self.server_sock
            if sock is None:
                break
            try:
                conn, addr = sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self.running:
                    self.events.error("accept_failed", message=str(e))
                break

            try:
                _configure_socket_low_latency(conn)
            except OSError as e:
                self.events.warning("socket_tuning_failed", message=str(e))

            peer = _Peer(self, conn, addr, self.send_timeout)
            with self._peers_lock:
                if not self.running:
                    peer.close()
                    break
                self._peers.append(peer)
                count = len(self._peers)
                # Started under the lock so stop() never sees an unstarted peer
                peer.start()
            self.events.info("peer_connected", peer=peer.name, peers=count)

    def _broadcast_loop(self) -> None:
        while self.running:
            sample = self.mailbox.wait_latest(timeout=MAILBOX_WAIT)
            if sample is None:
                if self.mailbox.closed:
                    break
                continue
            if not self.running:
                break
            if self.restamp:
                sample = sample.with_time(timestamp_now())
            frame = protocol.encode_sample(sample)
            self.broadcast(frame)

    def broadcast(self, frame: bytes) -> int:
        """Offer an encoded frame to every peer; return how many were offered it."""
        with self._peers_lock:
            peers = list(self._peers)
        for peer in peers:
            peer.offer(frame)
        self.broadcast_count += 1
        return len(peers)

    def _drop_peer(self, peer: _Peer, reason: str) -> None:
        with self._peers_lock:
            if peer not in self._peers:
                return
            self._peers.remove(peer)
            count = len(self._peers)
        peer.close()
        if self.running:
            self.events.warning(
                "peer_dropped",
                peer=peer.name,
                reason=reason,
                sent=peer.sent_count,
                peers=count,
            )

    def stop(self) -> None:
        """Close the listening socket and every peer connection."""
        if not self.running and self.server_sock is None:
            return
        self.running = False

        if self.server_sock is not None:
            try:
                self.server_sock.close()
            except OSError:
                pass
            self.server_sock = None

        with self._peers_lock:
            peers, self._peers = self._peers, []
        for peer in peers:
            peer.close()
        for peer in peers:
            peer.join(timeout=1.0)

        for thread in (self._accept_thread, self._broadcast_thread):
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=2.0)
        self._accept_thread = None
        self._broadcast_thread = None

        self.events.info("server_stopped", broadcasts=self.broadcast_count)
        self._stopped.set()
