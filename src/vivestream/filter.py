"""Outlier rejection for raw tracker samples.

A tracked device cannot move several centimeters between two 5 ms polls, so a
position jump larger than the rejection threshold is treated as a sensor glitch
and the sample is dropped. The last accepted position remains the baseline for
the next comparison.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from . import math as vsm
from .sample import PoseSample

DEFAULT_REJECT_THRESHOLD = 0.05  # meters


class Verdict(Enum):
    ACCEPT = "accept"
    REJECT = "reject"


@dataclass(frozen=True)
class FilterResult:
    """Outcome of evaluating one candidate sample.

    Attributes:
        verdict: ACCEPT or REJECT.
        displacement: Distance from the previous accepted position (meters),
            None when there was no previous sample.
        velocity: displacement / dt (m/s), diagnostics only. None when there
            was no previous sample or dt was not positive.
        dt: Seconds since the previous accepted sample, None on first sample.
    """

    verdict: Verdict
    displacement: Optional[float] = None
    velocity: Optional[float] = None
    dt: Optional[float] = None

    @property
    def accepted(self) -> bool:
        return self.verdict is Verdict.ACCEPT

    def __bool__(self) -> bool:
        return self.accepted


def evaluate_candidate(
    previous_accepted: Optional[PoseSample],
    candidate: PoseSample,
    dt: Optional[float],
    threshold: float = DEFAULT_REJECT_THRESHOLD,
) -> FilterResult:
    """Stateless accept/reject decision for one candidate sample."""
    if previous_accepted is None:
        return FilterResult(Verdict.ACCEPT)

    displacement = vsm.distance(candidate.position, previous_accepted.position)
    # Non-positive dt is always accepted
    if dt is not None and dt <= 0.0:
        return FilterResult(Verdict.ACCEPT, displacement=displacement, dt=dt)
    velocity = displacement / dt if dt is not None else None

    verdict = Verdict.REJECT if displacement > threshold else Verdict.ACCEPT
    return FilterResult(verdict, displacement=displacement, velocity=velocity, dt=dt)


class SampleFilter:
    """Stateful wrapper around evaluate_candidate that owns the history.

    Example:
        >>> f = SampleFilter(reject_threshold=0.05)
        >>> f.evaluate(sample, now=time.monotonic()).accepted
        True
    """

    def __init__(self, reject_threshold: float = DEFAULT_REJECT_THRESHOLD) -> None:
        self.reject_threshold = reject_threshold
        self._previous: Optional[Tuple[PoseSample, float]] = None

    def reset(self) -> None:
        """Forget history; the next sample is accepted unconditionally."""
        self._previous = None

    @property
    def baseline(self) -> Optional[PoseSample]:
        """The last accepted sample, or None after a reset."""
        return self._previous[0] if self._previous else None

    def evaluate(self, candidate: PoseSample, now: float) -> FilterResult:
        """Accept or reject candidate; accepted samples become the new baseline.

        Args:
            candidate: The new sample.
            now: Monotonic capture time in seconds.
        """
        if self._previous is None:
            self._previous = (candidate, now)
            return FilterResult(Verdict.ACCEPT)

        prev_sample, prev_time = self._previous
        result = evaluate_candidate(prev_sample, candidate, now - prev_time, self.reject_threshold)
        if result.accepted:
            self._previous = (candidate, now)
        return result
