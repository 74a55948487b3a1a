"""Pose sample data structure for vivestream."""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from . import math as vsm

UNIT_TOLERANCE = 1e-9


def timestamp_now(now: Optional[datetime] = None) -> str:
    """Wall-clock time with millisecond resolution, e.g. '2024-05-01 12:00:00.123'."""
    now = now or datetime.now()
    return now.strftime("%Y-%m-%d %H:%M:%S.") + f"{now.microsecond // 1000:03d}"


@dataclass(frozen=True)
class PoseSample:
    """One timestamped pose + button reading from a tracked device.

    Attributes:
        time: Millisecond-resolution wall-clock timestamp string.
        role: Controller role of the source device (0 = invalid/unassigned,
              1 = left hand, 2 = right hand).
        x, y, z: Position in meters.
        qx, qy, qz, qw: Orientation quaternion (scalar-last), normalized on
              construction.
        grip_button, trigger_button, trackpad_button, trackpad_touch,
        menu_button: Digital button states.
        trackpad_x, trackpad_y: Trackpad axes in [-1, 1].
        trigger: Analog trigger value in [0, 1].
    """

    time: str = ""
    role: int = 0
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    qx: float = 0.0
    qy: float = 0.0
    qz: float = 0.0
    qw: float = 1.0
    grip_button: bool = False
    trigger_button: bool = False
    trackpad_button: bool = False
    trackpad_touch: bool = False
    menu_button: bool = False
    trackpad_x: float = 0.0
    trackpad_y: float = 0.0
    trigger: float = 0.0

    def __post_init__(self) -> None:
        q = (self.qx, self.qy, self.qz, self.qw)
        norm_sq = sum(c * c for c in q)
        # Near-unit input is kept bit-for-bit
        if abs(norm_sq - 1.0) > UNIT_TOLERANCE:
            qn = vsm.quat_normalize(q)
            object.__setattr__(self, "qx", qn[0])
            object.__setattr__(self, "qy", qn[1])
            object.__setattr__(self, "qz", qn[2])
            object.__setattr__(self, "qw", qn[3])

    @classmethod
    def no_tracker(cls) -> "PoseSample":
        """Sentinel sample used while no tracker is detected."""
        return cls(time=timestamp_now())

    @classmethod
    def from_pose(
        cls,
        position: Tuple[float, float, float],
        quaternion: Tuple[float, float, float, float],
        **fields: Any,
    ) -> "PoseSample":
        """Build a sample from position and quaternion tuples plus extra fields."""
        x, y, z = position
        qx, qy, qz, qw = quaternion
        fields.setdefault("time", timestamp_now())
        return cls(x=x, y=y, z=z, qx=qx, qy=qy, qz=qz, qw=qw, **fields)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PoseSample":
        """Create a PoseSample from the nested wire layout.

        Missing fields take the sentinel defaults. Type validation is the
        protocol module's job; this only converts.
        """
        pose = d.get("pose", {})
        buttons = d.get("buttons", {})
        trackpad = d.get("trackpad", {})
        return cls(
            time=str(d.get("time", "")),
            role=int(d.get("role", 0)),
            x=float(pose.get("x", 0.0)),
            y=float(pose.get("y", 0.0)),
            z=float(pose.get("z", 0.0)),
            qx=float(pose.get("qx", 0.0)),
            qy=float(pose.get("qy", 0.0)),
            qz=float(pose.get("qz", 0.0)),
            qw=float(pose.get("qw", 1.0)),
            grip_button=bool(buttons.get("grip", False)),
            trigger_button=bool(buttons.get("trigger", False)),
            trackpad_button=bool(buttons.get("trackpad_button", False)),
            trackpad_touch=bool(buttons.get("trackpad_touch", False)),
            menu_button=bool(buttons.get("menu", False)),
            trackpad_x=float(trackpad.get("x", 0.0)),
            trackpad_y=float(trackpad.get("y", 0.0)),
            trigger=float(d.get("trigger", 0.0)),
        )

    @property
    def position(self) -> Tuple[float, float, float]:
        """Position as (x, y, z) tuple."""
        return (self.x, self.y, self.z)

    @property
    def quaternion(self) -> Tuple[float, float, float, float]:
        """Orientation as (qx, qy, qz, qw) quaternion tuple (scalar-last)."""
        return (self.qx, self.qy, self.qz, self.qw)

    def with_time(self, time: str) -> "PoseSample":
        """Copy of this sample carrying a different timestamp."""
        return replace(self, time=time)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the nested wire layout."""
        return {
            "pose": {
                "x": self.x,
                "y": self.y,
                "z": self.z,
                "qx": self.qx,
                "qy": self.qy,
                "qz": self.qz,
                "qw": self.qw,
            },
            "buttons": {
                "menu": self.menu_button,
                "trigger": self.trigger_button,
                "trackpad_touch": self.trackpad_touch,
                "trackpad_button": self.trackpad_button,
                "grip": self.grip_button,
            },
            "trackpad": {"x": self.trackpad_x, "y": self.trackpad_y},
            "trigger": self.trigger,
            "role": self.role,
            "time": self.time,
        }
