"""Single-slot, latest-wins handoff between the producer and the server.

This is a conflation channel, not a queue: every put() overwrites the slot, so
a slow reader only ever sees the freshest sample and the producer never blocks
on it.
"""

from __future__ import annotations

import threading
from typing import Optional

from .sample import PoseSample


class PoseMailbox:
    """Latest-wins mailbox holding at most one unread PoseSample.

    The slot and its "has new data" flag are guarded by one Condition; waiters
    check the flag under that same lock.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._sample: Optional[PoseSample] = None
        self._has_new = False
        self._closed = False

    def put(self, sample: PoseSample) -> None:
        """Replace the slot with sample and wake any waiting reader."""
        with self._cond:
            self._sample = sample
            self._has_new = True
            self._cond.notify_all()

    def take_latest(self) -> Optional[PoseSample]:
        """Return the newest unread sample, or None if nothing new since the last take."""
        with self._cond:
            return self._take_locked()

    def wait_latest(self, timeout: Optional[float] = None) -> Optional[PoseSample]:
        """Block until a new sample is available, then take it.

        Returns None on timeout or once the mailbox is closed.
        """
        with self._cond:
            self._cond.wait_for(lambda: self._has_new or self._closed, timeout)
            return self._take_locked()

    def _take_locked(self) -> Optional[PoseSample]:
        if not self._has_new:
            return None
        self._has_new = False
        return self._sample

    def peek(self) -> Optional[PoseSample]:
        """Most recent sample regardless of whether it was already taken."""
        with self._cond:
            return self._sample

    def close(self) -> None:
        """Wake every waiter; subsequent waits return without blocking."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def has_new(self) -> bool:
        with self._cond:
            return self._has_new

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed
