from __future__ import annotations

import threading
from typing import List

from vivestream.device import (
    DEVICE_CLASS_CONTROLLER,
    DEVICE_CLASS_GENERIC_TRACKER,
    ButtonState,
    DevicePose,
    TrackingSystem,
)
from vivestream.filter import SampleFilter
from vivestream.mailbox import PoseMailbox
from vivestream.producer import ProducerLoop, ProducerState, sample_from_device


def _device(x: float = 0.0, device_class: int = DEVICE_CLASS_GENERIC_TRACKER, **flags) -> DevicePose:
    kwargs = dict(connected=True, pose_valid=True, tracking_ok=True)
    kwargs.update(flags)
    return DevicePose(
        index=1,
        device_class=device_class,
        matrix=((1.0, 0.0, 0.0, x), (0.0, 1.0, 0.0, 0.0), (0.0, 0.0, 1.0, 0.0)),
        **kwargs,
    )


class ScriptedTracking(TrackingSystem):
    """Returns one scripted device list per poll; repeats the last one."""

    def __init__(self, script: List) -> None:
        self.script = list(script)
        self.polls = 0

    def poll(self) -> List[DevicePose]:
        self.polls += 1
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, Exception):
            raise step
        return step


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        self.now += 0.005
        return self.now


def _loop(script, events, **kwargs) -> ProducerLoop:
    return ProducerLoop(
        ScriptedTracking(script),
        PoseMailbox(),
        SampleFilter(),
        events=events,
        clock=FakeClock(),
        **kwargs,
    )


def test_sample_from_device_decodes_matrix_and_buttons() -> None:
    device = DevicePose(
        index=3,
        device_class=DEVICE_CLASS_GENERIC_TRACKER,
        connected=True,
        pose_valid=True,
        tracking_ok=True,
        matrix=((0.0, -1.0, 0.0, 1.0), (1.0, 0.0, 0.0, 2.0), (0.0, 0.0, 1.0, 3.0)),
        role=2,
        buttons=ButtonState(grip_button=True, trigger=0.4),
    )
    sample = sample_from_device(device, time_str="t")
    assert sample.position == (1.0, 2.0, 3.0)
    assert abs(sample.qz - 0.7071067811865476) < 1e-9
    assert abs(sample.qw - 0.7071067811865476) < 1e-9
    assert sample.role == 2
    assert sample.grip_button and sample.trigger == 0.4
    assert sample.time == "t"


def test_button_bitmasks() -> None:
    pressed = (1 << 1) | (1 << 33)
    touched = 1 << 32
    b = ButtonState.from_bitmasks(pressed, touched, trackpad=(0.5, -0.5), trigger=1.0)
    assert b.menu_button and b.trigger_button and b.trackpad_touch
    assert not b.grip_button and not b.trackpad_button
    assert (b.trackpad_x, b.trackpad_y, b.trigger) == (0.5, -0.5, 1.0)


def test_tick_publishes_accepted_sample(events) -> None:
    loop = _loop([[_device(0.5)]], events)
    assert loop.tick() is ProducerState.TRACKER_ACTIVE
    assert loop.mailbox.take_latest().x == 0.5
    assert loop.accepted_count == 1


def test_no_qualifying_device_enters_no_tracker(events) -> None:
    script = [
        [],
        [_device(pose_valid=False)],
        [_device(tracking_ok=False)],
        [_device(device_class=DEVICE_CLASS_CONTROLLER)],
    ]
    loop = _loop(script, events)
    for _ in script:
        assert loop.tick() is ProducerState.NO_TRACKER_DETECTED
    assert loop.mailbox.take_latest() is None
    assert "no_tracker_detected" in events.types()


def test_device_class_filter_is_configurable(events) -> None:
    loop = _loop([[_device(device_class=DEVICE_CLASS_CONTROLLER)]], events,
                 device_classes=(DEVICE_CLASS_CONTROLLER,))
    assert loop.tick() is ProducerState.TRACKER_ACTIVE


def test_jump_is_rejected_and_mailbox_keeps_previous(events) -> None:
    loop = _loop([[_device(0.0)], [_device(0.5)]], events)
    loop.tick()
    assert loop.mailbox.take_latest().x == 0.0

    assert loop.tick() is ProducerState.TRACKER_ACTIVE
    assert loop.rejected_count == 1
    assert loop.mailbox.take_latest() is None
    assert loop.mailbox.peek().x == 0.0
    assert "sample_rejected" in events.types()


def test_reacquired_tracker_is_auto_accepted(events) -> None:
    loop = _loop([[_device(0.0)], [], [_device(3.0)]], events)
    loop.tick()
    assert loop.tick() is ProducerState.NO_TRACKER_DETECTED
    assert loop.tick() is ProducerState.TRACKER_ACTIVE
    assert loop.mailbox.take_latest().x == 3.0
    assert loop.rejected_count == 0


def test_poll_failure_counts_as_no_tracker(events) -> None:
    loop = _loop([RuntimeError("runtime went away"), [_device(0.0)]], events)
    assert loop.tick() is ProducerState.NO_TRACKER_DETECTED
    assert "poll_failed" in events.types()
    assert loop.tick() is ProducerState.TRACKER_ACTIVE


def test_no_tracker_log_is_rate_limited(events) -> None:
    loop = _loop([[]], events)
    for _ in range(10):
        loop.tick()
    # 10 ticks at 5 ms each fit inside one log interval
    assert events.types().count("no_tracker_detected") == 1


def test_poll_interval_follows_state(events) -> None:
    loop = _loop([[], [_device()]], events, active_poll_ms=5.0, idle_poll_ms=50.0)
    loop.tick()
    assert loop.poll_interval() == 0.05
    loop.tick()
    assert loop.poll_interval() == 0.005


def test_run_stops_on_event(events) -> None:
    loop = ProducerLoop(
        ScriptedTracking([[_device()]]),
        PoseMailbox(),
        active_poll_ms=1.0,
        events=events,
    )
    stop = threading.Event()
    t = threading.Thread(target=loop.run, args=(stop,))
    t.start()
    assert loop.mailbox.wait_latest(timeout=5.0) is not None
    stop.set()
    t.join(timeout=5.0)

    assert not t.is_alive()
    assert events.types()[0] == "producer_started"
    assert events.types()[-1] == "producer_stopped"
