from __future__ import annotations

from typing import Any, Dict, List

import pytest

from vivestream.events import EventEmitter
from vivestream.sample import PoseSample


class RecordingEvents(EventEmitter):
    """EventEmitter that keeps every event and prints nothing."""

    def __init__(self) -> None:
        super().__init__(quiet=True)
        self.records: List[Dict[str, Any]] = []
        self.callback = self.records.append

    def _should_print(self, event_type: str, level: str) -> bool:
        return False

    def types(self) -> List[str]:
        return [e["type"] for e in self.records]


@pytest.fixture()
def events() -> RecordingEvents:
    return RecordingEvents()


def make_sample(
    position=(0.0, 0.0, 0.0),
    quaternion=(0.0, 0.0, 0.0, 1.0),
    **fields: Any,
) -> PoseSample:
    fields.setdefault("time", "2024-05-01 12:00:00.000")
    return PoseSample.from_pose(position, quaternion, **fields)


def rotate_vector(v, q):
    """Rotate v by unit quaternion q with the cross-product form of the sandwich."""
    vx, vy, vz = v
    x, y, z, w = q
    tx = 2 * (y * vz - z * vy)
    ty = 2 * (z * vx - x * vz)
    tz = 2 * (x * vy - y * vx)
    return (
        vx + w * tx + (y * tz - z * ty),
        vy + w * ty + (z * tx - x * tz),
        vz + w * tz + (x * ty - y * tx),
    )
