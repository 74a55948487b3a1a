"""Configuration loading and data structures for vivestream."""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional
from pathlib import Path
import json

from .device import DEVICE_CLASS_NAMES
from .filter import DEFAULT_REJECT_THRESHOLD
from .producer import DEFAULT_ACTIVE_POLL_MS, DEFAULT_IDLE_POLL_MS
from .protocol import TCP_DATA_PORT


@dataclass
class StreamConfig:
    """Configuration shared by the server and client sides.

    Attributes:
        host: Address the server binds to.
        client_host: Address the client connects to.
        port: TCP port of the broadcast server.
        reject_threshold: Position jump (meters) above which a sample is discarded.
        active_poll_ms: Producer poll interval while a tracker is detected.
        idle_poll_ms: Producer poll interval while no tracker is detected.
        reconnect_backoff_s: Client delay between failed connection attempts.
        restamp_on_send: If True the server replaces each sample's time with the
            send time; if False the capture time is preserved.
        device_classes: Device classes sampled by the producer
            ("tracker", "controller", "hmd", "reference").
        quiet: Suppress high-frequency event output.
    """
    host: str = "0.0.0.0"
    client_host: str = "127.0.0.1"
    port: int = TCP_DATA_PORT
    reject_threshold: float = DEFAULT_REJECT_THRESHOLD
    active_poll_ms: float = DEFAULT_ACTIVE_POLL_MS
    idle_poll_ms: float = DEFAULT_IDLE_POLL_MS
    reconnect_backoff_s: float = 1.0
    restamp_on_send: bool = True
    device_classes: List[str] = field(default_factory=lambda: ["tracker"])
    quiet: bool = False

    def __post_init__(self) -> None:
        if not 0 <= int(self.port) <= 65535:
            raise ValueError(f"port out of range: {self.port}")
        if self.reject_threshold <= 0:
            raise ValueError("reject_threshold must be positive")
        if self.active_poll_ms < 0 or self.idle_poll_ms < 0:
            raise ValueError("poll intervals must not be negative")
        for name in ("restamp_on_send", "quiet"):
            if not isinstance(getattr(self, name), bool):
                raise ValueError(f"{name} must be true or false, got {getattr(self, name)!r}")
        unknown = [c for c in self.device_classes if c not in DEVICE_CLASS_NAMES]
        if unknown:
            raise ValueError(f"unknown device classes: {unknown}")

    @property
    def device_class_ids(self) -> List[int]:
        return [DEVICE_CLASS_NAMES[c] for c in self.device_classes]


def _resolve_path(path: str) -> Path:
    p = Path(path)
    if not p.is_absolute() and not p.exists():
        # Try relative to the importing script if available (runtime dependent)
        import __main__  # type: ignore
        main_file = getattr(__main__, "__file__", None)
        if isinstance(main_file, str):
            alt = Path(main_file).parent.joinpath(path)
            if alt.exists():
                p = alt
    if not p.is_absolute() and not p.exists():
        # Try relative to this module file
        alt2 = Path(__file__).parent.joinpath(path)
        if alt2.exists():
            p = alt2
    return p


def load_config(path: Optional[str] = None) -> StreamConfig:
    """Load a StreamConfig from a JSON file.

    If path is None or empty, returns a default config.

    Relative paths are resolved by trying (in order):
    1. Current working directory
    2. Next to the calling script (__main__.__file__)
    3. Next to this module file

    Args:
        path: Path to a JSON config file, or None for defaults.

    Returns:
        StreamConfig with the loaded (or default) settings.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not valid JSON or holds invalid values.
    """
    if not path:
        return StreamConfig()

    data: Dict[str, Any] = json.loads(_resolve_path(path).read_text())
    if not isinstance(data, dict):
        raise ValueError("config file must contain a JSON object")

    defaults = StreamConfig()

    def get(key: str) -> Any:
        return data.get(key, getattr(defaults, key))

    return StreamConfig(
        host=str(get("host")),
        client_host=str(get("client_host")),
        port=int(get("port")),
        reject_threshold=float(get("reject_threshold")),
        active_poll_ms=float(get("active_poll_ms")),
        idle_poll_ms=float(get("idle_poll_ms")),
        reconnect_backoff_s=float(get("reconnect_backoff_s")),
        restamp_on_send=get("restamp_on_send"),
        device_classes=list(get("device_classes")),
        quiet=get("quiet"),
    )
