"""vivestream wire protocol - newline-delimited JSON over TCP.

Each pose sample is one JSON object on its own line:

    {"pose": {"x", "y", "z", "qx", "qy", "qz", "qw"},
     "buttons": {"menu", "trigger", "trackpad_touch", "trackpad_button", "grip"},
     "trackpad": {"x", "y"}, "trigger": float, "role": int, "time": str}

TCP has no message boundaries, so readers must buffer bytes and split on the
newline delimiter (see FrameDecoder) instead of assuming one recv() per message.
"""

from __future__ import annotations

import json
import math
from typing import Any, Dict, List

from .sample import PoseSample

# Default port
TCP_DATA_PORT = 12345

DELIMITER = b"\n"

# A line longer than this without a delimiter is treated as garbage
MAX_LINE_BYTES = 64 * 1024

POSE_FIELDS = ("x", "y", "z", "qx", "qy", "qz", "qw")
BUTTON_FIELDS = ("menu", "trigger", "trackpad_touch", "trackpad_button", "grip")
TRACKPAD_FIELDS = ("x", "y")


class ProtocolError(ValueError):
    """A wire message could not be decoded into a PoseSample."""


# =============================================================================
# Encoding
# =============================================================================


def encode_sample(sample: PoseSample) -> bytes:
    """Encode a sample as a single delimited wire message."""
    payload = json.dumps(sample.to_dict(), separators=(",", ":"), allow_nan=False)
    return payload.encode("utf-8") + DELIMITER


# =============================================================================
# Decoding
# =============================================================================


def _require_object(container: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = container.get(key)
    if not isinstance(value, dict):
        raise ProtocolError(f"'{key}' must be an object")
    return value


def _require_number(container: Dict[str, Any], key: str, path: str) -> float:
    value = container.get(key)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProtocolError(f"'{path}' must be a number, got {value!r}")
    value = float(value)
    if not math.isfinite(value):
        raise ProtocolError(f"'{path}' must be finite")
    return value


def _require_bool(container: Dict[str, Any], key: str, path: str) -> bool:
    value = container.get(key)
    if not isinstance(value, bool):
        raise ProtocolError(f"'{path}' must be a boolean, got {value!r}")
    return value


def parse_message(data: Dict[str, Any]) -> PoseSample:
    """Validate a decoded JSON object and convert it to a PoseSample."""
    if not isinstance(data, dict):
        raise ProtocolError("message must be a JSON object")

    pose = _require_object(data, "pose")
    buttons = _require_object(data, "buttons")
    trackpad = _require_object(data, "trackpad")

    values = {f: _require_number(pose, f, f"pose.{f}") for f in POSE_FIELDS}
    pressed = {f: _require_bool(buttons, f, f"buttons.{f}") for f in BUTTON_FIELDS}
    pad = {f: _require_number(trackpad, f, f"trackpad.{f}") for f in TRACKPAD_FIELDS}
    trigger = _require_number(data, "trigger", "trigger")

    role = data.get("role")
    if isinstance(role, bool) or not isinstance(role, int):
        raise ProtocolError(f"'role' must be an integer, got {role!r}")
    time_str = data.get("time")
    if not isinstance(time_str, str):
        raise ProtocolError(f"'time' must be a string, got {time_str!r}")

    return PoseSample(
        time=time_str,
        role=role,
        x=values["x"],
        y=values["y"],
        z=values["z"],
        qx=values["qx"],
        qy=values["qy"],
        qz=values["qz"],
        qw=values["qw"],
        grip_button=pressed["grip"],
        trigger_button=pressed["trigger"],
        trackpad_button=pressed["trackpad_button"],
        trackpad_touch=pressed["trackpad_touch"],
        menu_button=pressed["menu"],
        trackpad_x=pad["x"],
        trackpad_y=pad["y"],
        trigger=trigger,
    )


def decode_sample(line: bytes) -> PoseSample:
    """Decode one wire message (with or without the trailing delimiter)."""
    try:
        data = json.loads(line.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ProtocolError(f"invalid JSON: {e}") from e
    return parse_message(data)


# =============================================================================
# TCP framing
# =============================================================================


class FrameDecoder:
    """Accumulate stream bytes and split them into complete wire messages.

    Example:
        >>> decoder = FrameDecoder()
        >>> decoder.feed(b'{"a":')
        []
        >>> decoder.feed(b'1}\\n{"b"')
        [b'{"a":1}']
    """

    def __init__(self, max_line_bytes: int = MAX_LINE_BYTES) -> None:
        self.max_line_bytes = max_line_bytes
        self._buffer = bytearray()
        self.dropped_bytes = 0

    def feed(self, chunk: bytes) -> List[bytes]:
        """Add received bytes; return every complete (non-empty) line."""
        self._buffer.extend(chunk)
        lines: List[bytes] = []
        while True:
            idx = self._buffer.find(DELIMITER)
            if idx < 0:
                break
            line = bytes(self._buffer[:idx]).strip()
            del self._buffer[: idx + 1]
            if line:
                lines.append(line)

        if len(self._buffer) > self.max_line_bytes:
            self.dropped_bytes += len(self._buffer)
            self._buffer.clear()
        return lines

    def reset(self) -> None:
        """Discard any partial message (e.g. after a reconnect)."""
        self._buffer.clear()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet forming a complete message."""
        return len(self._buffer)

