"""Device-tracking backends for vivestream.

The producer only needs one call from the tracking runtime: poll every tracked
device and report its pose matrix plus connected/valid/tracking flags. This
module defines that seam (TrackingSystem) and ships two backends:

- OpenVRTrackingSystem: SteamVR through the `openvr` Python bindings
  (imported lazily, install with the `openvr` extra).
- SimulatedTrackingSystem: a synthetic tracker moving on a slow circle,
  for demos and tests without hardware.
"""

from __future__ import annotations

import math
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List, Literal, Optional, Sequence

Matrix34 = Sequence[Sequence[float]]

BackendType = Literal["openvr", "simulated"]

# Device classes (values match openvr.TrackedDeviceClass_*)
DEVICE_CLASS_INVALID = 0
DEVICE_CLASS_HMD = 1
DEVICE_CLASS_CONTROLLER = 2
DEVICE_CLASS_GENERIC_TRACKER = 3
DEVICE_CLASS_TRACKING_REFERENCE = 4

DEVICE_CLASS_NAMES = {
    "hmd": DEVICE_CLASS_HMD,
    "controller": DEVICE_CLASS_CONTROLLER,
    "tracker": DEVICE_CLASS_GENERIC_TRACKER,
    "reference": DEVICE_CLASS_TRACKING_REFERENCE,
}

# OpenVR button bit indices (EVRButtonId)
BUTTON_APPLICATION_MENU = 1
BUTTON_GRIP = 2
BUTTON_TOUCHPAD = 32
BUTTON_TRIGGER = 33

IDENTITY_MATRIX: Matrix34 = (
    (1.0, 0.0, 0.0, 0.0),
    (0.0, 1.0, 0.0, 0.0),
    (0.0, 0.0, 1.0, 0.0),
)


class TrackingInitError(RuntimeError):
    """The tracking runtime could not be initialized."""


@dataclass(frozen=True)
class ButtonState:
    """Digital and analog inputs of a device at poll time."""

    grip_button: bool = False
    trigger_button: bool = False
    trackpad_button: bool = False
    trackpad_touch: bool = False
    menu_button: bool = False
    trackpad_x: float = 0.0
    trackpad_y: float = 0.0
    trigger: float = 0.0

    @classmethod
    def from_bitmasks(
        cls,
        pressed: int,
        touched: int,
        trackpad: tuple = (0.0, 0.0),
        trigger: float = 0.0,
    ) -> "ButtonState":
        """Decode OpenVR ulButtonPressed / ulButtonTouched bitmasks."""
        return cls(
            grip_button=bool(pressed >> BUTTON_GRIP & 1),
            trigger_button=bool(pressed >> BUTTON_TRIGGER & 1),
            trackpad_button=bool(pressed >> BUTTON_TOUCHPAD & 1),
            trackpad_touch=bool(touched >> BUTTON_TOUCHPAD & 1),
            menu_button=bool(pressed >> BUTTON_APPLICATION_MENU & 1),
            trackpad_x=float(trackpad[0]),
            trackpad_y=float(trackpad[1]),
            trigger=float(trigger),
        )


@dataclass(frozen=True)
class DevicePose:
    """Per-device result of one poll."""

    index: int
    device_class: int
    connected: bool
    pose_valid: bool
    tracking_ok: bool
    matrix: Matrix34 = IDENTITY_MATRIX
    role: int = 0
    buttons: ButtonState = field(default_factory=ButtonState)

    @property
    def usable(self) -> bool:
        """Connected, valid and tracking normally."""
        return self.connected and self.pose_valid and self.tracking_ok


class TrackingSystem:
    """Interface to a device-tracking runtime."""

    def poll(self) -> List[DevicePose]:
        raise NotImplementedError

    def close(self) -> None:
        pass


class OpenVRTrackingSystem(TrackingSystem):
    """SteamVR tracking via pyopenvr, opened as a background application."""

    def __init__(self) -> None:
        try:
            import openvr  # type: ignore
        except ImportError as e:
            raise TrackingInitError(
                "The 'openvr' package is required for the OpenVR backend "
                "(pip install 'vivestream[openvr]')"
            ) from e

        self._openvr = openvr
        try:
            self._system = openvr.init(openvr.VRApplication_Background)
        except openvr.OpenVRError as e:
            raise TrackingInitError(f"Unable to init VR runtime: {e}") from e

    def _read_buttons(self, index: int) -> ButtonState:
        result, state = self._system.getControllerState(index)
        if not result:
            return ButtonState()
        return ButtonState.from_bitmasks(
            pressed=state.ulButtonPressed,
            touched=state.ulButtonTouched,
            trackpad=(state.rAxis[0].x, state.rAxis[0].y),
            trigger=state.rAxis[1].x,
        )

    def poll(self) -> List[DevicePose]:
        openvr = self._openvr
        poses = self._system.getDeviceToAbsoluteTrackingPose(
            openvr.TrackingUniverseStanding, 0, openvr.k_unMaxTrackedDeviceCount
        )
        result: List[DevicePose] = []
        for index in range(openvr.k_unMaxTrackedDeviceCount):
            pose = poses[index]
            if not pose.bDeviceIsConnected:
                continue
            m = pose.mDeviceToAbsoluteTracking
            matrix = tuple(tuple(float(m[r][c]) for c in range(4)) for r in range(3))
            result.append(DevicePose(
                index=index,
                device_class=int(self._system.getTrackedDeviceClass(index)),
                connected=True,
                pose_valid=bool(pose.bPoseIsValid),
                tracking_ok=pose.eTrackingResult == openvr.TrackingResult_Running_OK,
                matrix=matrix,
                role=int(self._system.getControllerRoleForTrackedDeviceIndex(index)),
                buttons=self._read_buttons(index),
            ))
        return result

    def close(self) -> None:
        if self._system is not None:
            self._openvr.shutdown()
            self._system = None


class SimulatedTrackingSystem(TrackingSystem):
    """Synthetic generic tracker moving on a slow horizontal circle.

    The trigger is held for the second half of every period so the relative
    pose engine downstream has something to latch onto.
    """

    def __init__(
        self,
        radius: float = 0.2,
        period_s: float = 8.0,
        height: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.radius = radius
        self.period_s = period_s
        self.height = height
        self._clock = clock
        self._t0 = clock()

    def poll(self) -> List[DevicePose]:
        t = self._clock() - self._t0
        phase = (t % self.period_s) / self.period_s
        angle = 2.0 * math.pi * phase
        c, s = math.cos(angle), math.sin(angle)
        # Yaw about +Y (OpenVR up axis) following the circle
        matrix = (
            (c, 0.0, s, self.radius * c),
            (0.0, 1.0, 0.0, self.height),
            (-s, 0.0, c, self.radius * s),
        )
        held = phase >= 0.5
        buttons = ButtonState(trigger_button=held, trigger=1.0 if held else 0.0)
        return [DevicePose(
            index=1,
            device_class=DEVICE_CLASS_GENERIC_TRACKER,
            connected=True,
            pose_valid=True,
            tracking_ok=True,
            matrix=matrix,
            role=0,
            buttons=buttons,
        )]


def create_tracking_system(backend: BackendType = "openvr", **kwargs: Any) -> TrackingSystem:
    """Instantiate a tracking backend by name.

    Raises:
        TrackingInitError: If the runtime cannot be initialized.
        ValueError: If the backend name is unknown.
    """
    if backend == "openvr":
        return OpenVRTrackingSystem()
    if backend == "simulated":
        return SimulatedTrackingSystem(**kwargs)
    raise ValueError(f"Unknown tracking backend: {backend!r}")


@contextmanager
def open_tracking_system(
    backend: BackendType = "openvr",
    factory: Optional[Callable[..., TrackingSystem]] = None,
    **kwargs: Any,
) -> Iterator[TrackingSystem]:
    """Acquire exactly one tracking session and release it on every exit path."""
    system = (factory or create_tracking_system)(backend, **kwargs)
    try:
        yield system
    finally:
        system.close()
