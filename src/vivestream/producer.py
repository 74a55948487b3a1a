"""Producer loop: poll the tracker, filter outliers, publish the latest sample."""

from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Callable, Collection, List, Optional

from . import math as vsm
from .device import DEVICE_CLASS_GENERIC_TRACKER, DevicePose, TrackingSystem
from .events import EventEmitter
from .filter import SampleFilter
from .mailbox import PoseMailbox
from .sample import PoseSample, timestamp_now

DEFAULT_ACTIVE_POLL_MS = 5.0  # ~200 Hz
DEFAULT_IDLE_POLL_MS = 50.0  # ~20 Hz
NO_TRACKER_LOG_INTERVAL = 1.0


class ProducerState(Enum):
    NO_TRACKER_DETECTED = "no_tracker_detected"
    TRACKER_ACTIVE = "tracker_active"


def sample_from_device(device: DevicePose, time_str: Optional[str] = None) -> PoseSample:
    """Decode a device's pose matrix and button block into a PoseSample."""
    b = device.buttons
    return PoseSample.from_pose(
        vsm.matrix_to_position(device.matrix),
        vsm.matrix_to_quat(device.matrix),
        time=time_str or timestamp_now(),
        role=device.role,
        grip_button=b.grip_button,
        trigger_button=b.trigger_button,
        trackpad_button=b.trackpad_button,
        trackpad_touch=b.trackpad_touch,
        menu_button=b.menu_button,
        trackpad_x=b.trackpad_x,
        trackpad_y=b.trackpad_y,
        trigger=b.trigger,
    )


class ProducerLoop:
    """Drives device polling and writes accepted samples into the mailbox.

    Each tick polls all devices. Every qualifying device (usable and of an
    accepted class) is decoded and run through the SampleFilter; accepted
    samples are put into the mailbox. A tick without any qualifying device
    moves the loop to NO_TRACKER_DETECTED, which resets the filter so the
    first reacquired sample is always accepted.

    Example:
        >>> loop = ProducerLoop(tracking, mailbox)
        >>> stop = threading.Event()
        >>> threading.Thread(target=loop.run, args=(stop,), daemon=True).start()
    """

    def __init__(
        self,
        tracking: TrackingSystem,
        mailbox: PoseMailbox,
        sample_filter: Optional[SampleFilter] = None,
        active_poll_ms: float = DEFAULT_ACTIVE_POLL_MS,
        idle_poll_ms: float = DEFAULT_IDLE_POLL_MS,
        device_classes: Collection[int] = (DEVICE_CLASS_GENERIC_TRACKER,),
        events: Optional[EventEmitter] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.tracking = tracking
        self.mailbox = mailbox
        self.sample_filter = sample_filter or SampleFilter()
        self.active_poll_ms = active_poll_ms
        self.idle_poll_ms = idle_poll_ms
        self.device_classes = frozenset(device_classes)
        self.events = events or EventEmitter()
        self._clock = clock

        self.state = ProducerState.NO_TRACKER_DETECTED
        self.accepted_count = 0
        self.rejected_count = 0
        self._last_idle_log: Optional[float] = None
        self._stop = threading.Event()

    def _qualifying(self, devices: List[DevicePose]) -> List[DevicePose]:
        return [d for d in devices if d.usable and d.device_class in self.device_classes]

    def _enter_no_tracker(self, now: float) -> None:
        if self.state is not ProducerState.NO_TRACKER_DETECTED:
            self.sample_filter.reset()
            self.state = ProducerState.NO_TRACKER_DETECTED
            self._last_idle_log = None
        if self._last_idle_log is None or now - self._last_idle_log >= NO_TRACKER_LOG_INTERVAL:
            self.events.info("no_tracker_detected")
            self._last_idle_log = now

    def tick(self) -> ProducerState:
        """Run one poll/filter/publish cycle and return the resulting state."""
        now = self._clock()
        try:
            devices = self._qualifying(self.tracking.poll())
        except Exception as e:
            self.events.warning("poll_failed", message=str(e))
            devices = []

        if not devices:
            self._enter_no_tracker(now)
            return self.state

        for device in devices:
            sample = sample_from_device(device)
            result = self.sample_filter.evaluate(sample, now)
            if not result.accepted:
                self.rejected_count += 1
                self.events.warning(
                    "sample_rejected",
                    device=device.index,
                    displacement=result.displacement,
                    threshold=self.sample_filter.reject_threshold,
                )
                continue

            self.events.debug(
                "sample",
                device=device.index,
                position=sample.position,
                euler=vsm.quat_to_euler_xyz(sample.quaternion),
                displacement=result.displacement,
                velocity=result.velocity,
            )
            self.mailbox.put(sample)
            self.accepted_count += 1

        # A tracker that is present but only produced rejected samples is still active
        self.state = ProducerState.TRACKER_ACTIVE
        return self.state

    def poll_interval(self) -> float:
        """Seconds to sleep before the next tick, based on the current state."""
        if self.state is ProducerState.TRACKER_ACTIVE:
            return self.active_poll_ms / 1000.0
        return self.idle_poll_ms / 1000.0

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """Tick until stop() is called or stop_event is set."""
        stop_event = stop_event or self._stop
        self.events.info(
            "producer_started",
            active_poll_ms=self.active_poll_ms,
            idle_poll_ms=self.idle_poll_ms,
        )
        while not stop_event.is_set() and not self._stop.is_set():
            self.tick()
            stop_event.wait(self.poll_interval())
        self.events.info(
            "producer_stopped",
            accepted=self.accepted_count,
            rejected=self.rejected_count,
        )

    def stop(self) -> None:
        self._stop.set()
