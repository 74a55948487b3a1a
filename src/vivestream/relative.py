"""Relative pose engine for vivestream.

Turns the stream of absolute samples into absolute + trigger-latched relative
transforms, the way an operator drives a robot end effector: press the trigger
to grab a reference frame, move, and every sample while the trigger is held is
expressed relative to where the device was at the press.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from . import math as vsm
from .sample import PoseSample

WORLD_FRAME = "world"
ABSOLUTE_FRAME = "vive_pose_abs"
RELATIVE_FRAME = "vive_pose_rel"


@dataclass(frozen=True)
class ReferenceFrame:
    """Latched position + orientation snapshot."""

    position: vsm.Vec3
    orientation: vsm.Quat

    @classmethod
    def from_sample(cls, sample: PoseSample) -> "ReferenceFrame":
        return cls(position=sample.position, orientation=sample.quaternion)


@dataclass(frozen=True)
class Transform:
    """A named rigid transform from parent_frame to child_frame."""

    child_frame: str
    translation: vsm.Vec3 = (0.0, 0.0, 0.0)
    rotation: vsm.Quat = vsm.IDENTITY
    parent_frame: str = WORLD_FRAME
    stamp: str = ""

    def to_dict(self) -> Dict[str, Any]:
        x, y, z = self.translation
        qx, qy, qz, qw = self.rotation
        return {
            "parent_frame": self.parent_frame,
            "child_frame": self.child_frame,
            "stamp": self.stamp,
            "translation": {"x": x, "y": y, "z": z},
            "rotation": {"x": qx, "y": qy, "z": qz, "w": qw},
        }


@dataclass(frozen=True)
class ControllerTelemetry:
    """Per-sample telemetry message: all sample fields plus both transforms.

    rel_pose is an identity transform when no reference is latched.
    """

    time: str
    role: int
    grip_button: bool
    trigger_button: bool
    trackpad_button: bool
    trackpad_touch: bool
    menu_button: bool
    trackpad_x: float
    trackpad_y: float
    trigger: float
    abs_pose: Transform
    rel_pose: Transform = field(default_factory=lambda: Transform(RELATIVE_FRAME))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "role": self.role,
            "grip_button": self.grip_button,
            "trigger_button": self.trigger_button,
            "trackpad_button": self.trackpad_button,
            "trackpad_touch": self.trackpad_touch,
            "menu_button": self.menu_button,
            "trackpad_x": self.trackpad_x,
            "trackpad_y": self.trackpad_y,
            "trigger": self.trigger,
            "abs_pose": self.abs_pose.to_dict(),
            "rel_pose": self.rel_pose.to_dict(),
        }


def relative_pose(reference: ReferenceFrame, current: PoseSample) -> Tuple[vsm.Vec3, vsm.Quat]:
    """Express current in the reference frame.

    q_rel = inv(q_ref) * q_cur
    p_rel = inv(q_ref) * (p_cur - p_ref) * q_ref
    """
    q_ref_inv = vsm.quat_conjugate(reference.orientation)
    q_rel = vsm.quat_multiply(q_ref_inv, current.quaternion)

    px, py, pz = current.position
    rx, ry, rz = reference.position
    p_rel = vsm.quat_sandwich(q_ref_inv, (px - rx, py - ry, pz - rz))
    return p_rel, q_rel


# Output axis convention of the downstream sink (ROS REP-103: x forward, y left,
# z up) from OpenVR's (x right, y up, z backward).
SINK_AXES = {
    "x": ("z", -1.0),
    "y": ("x", -1.0),
    "z": ("y", 1.0),
}


def to_sink_axes(transform: Transform) -> Transform:
    """Apply the fixed axis remap to a transform's translation and rotation.

    out.x = -in.z, out.y = -in.x, out.z = in.y (same for qx/qy/qz; qw unchanged)
    """
    tx, ty, tz = transform.translation
    qx, qy, qz, qw = transform.rotation
    t = {"x": tx, "y": ty, "z": tz}
    q = {"x": qx, "y": qy, "z": qz}

    def remap(src: Dict[str, float], axis: str) -> float:
        name, sign = SINK_AXES[axis]
        return sign * src[name]

    return Transform(
        child_frame=transform.child_frame,
        parent_frame=transform.parent_frame,
        stamp=transform.stamp,
        translation=(remap(t, "x"), remap(t, "y"), remap(t, "z")),
        rotation=(remap(q, "x"), remap(q, "y"), remap(q, "z"), qw),
    )


class RelativePoseEngine:
    """Track a trigger-latched reference frame and compute relative transforms.

    Rules:
    - trigger_button false -> true (rising edge): latch the current pose.
    - While trigger_button is held: emit a relative transform every sample.
    - trigger_button false: no relative transform.
    - menu_button true: re-latch on the current sample after its relative
      transform is computed, so the new reference applies from the next sample.

    Example:
        >>> engine = RelativePoseEngine()
        >>> absolute, relative = engine.process(sample)
        >>> if relative is not None:
        ...     robot.move_to(relative.translation, relative.rotation)
    """

    def __init__(self) -> None:
        self._reference: Optional[ReferenceFrame] = None
        self._trigger_held = False
        self.latch_count = 0

    def reset(self) -> None:
        """Forget the reference frame and trigger history (new session)."""
        self._reference = None
        self._trigger_held = False

    @property
    def reference(self) -> Optional[ReferenceFrame]:
        return self._reference

    @property
    def latched(self) -> bool:
        """True while the trigger is held and relative transforms are emitted."""
        return self._trigger_held and self._reference is not None

    def _latch(self, sample: PoseSample) -> None:
        self._reference = ReferenceFrame.from_sample(sample)
        self.latch_count += 1

    def process(self, sample: PoseSample) -> Tuple[Transform, Optional[Transform]]:
        """Update latch state with sample; return (absolute, relative or None)."""
        absolute = Transform(
            child_frame=ABSOLUTE_FRAME,
            translation=sample.position,
            rotation=sample.quaternion,
            stamp=sample.time,
        )

        if sample.trigger_button and not self._trigger_held:
            self._latch(sample)
        self._trigger_held = sample.trigger_button

        relative: Optional[Transform] = None
        if self.latched:
            p_rel, q_rel = relative_pose(self._reference, sample)
            relative = Transform(
                child_frame=RELATIVE_FRAME,
                translation=p_rel,
                rotation=q_rel,
                stamp=sample.time,
            )

        if sample.menu_button:
            self._latch(sample)
        return absolute, relative

    @staticmethod
    def telemetry(
        sample: PoseSample,
        absolute: Transform,
        relative: Optional[Transform] = None,
    ) -> ControllerTelemetry:
        """Build the telemetry message for one processed sample."""
        return ControllerTelemetry(
            time=sample.time,
            role=sample.role,
            grip_button=sample.grip_button,
            trigger_button=sample.trigger_button,
            trackpad_button=sample.trackpad_button,
            trackpad_touch=sample.trackpad_touch,
            menu_button=sample.menu_button,
            trackpad_x=sample.trackpad_x,
            trackpad_y=sample.trackpad_y,
            trigger=sample.trigger,
            abs_pose=absolute,
            rel_pose=relative or Transform(RELATIVE_FRAME, stamp=sample.time),
        )
