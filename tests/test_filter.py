from __future__ import annotations

import math

import pytest

from vivestream.filter import (
    DEFAULT_REJECT_THRESHOLD,
    SampleFilter,
    Verdict,
    evaluate_candidate,
)

from conftest import make_sample


def test_first_sample_is_accepted() -> None:
    f = SampleFilter()
    result = f.evaluate(make_sample((10.0, 10.0, 10.0)), now=0.0)
    assert result.accepted
    assert result.displacement is None
    assert f.baseline.position == (10.0, 10.0, 10.0)


def test_small_move_is_accepted() -> None:
    f = SampleFilter()
    f.evaluate(make_sample((0.0, 0.0, 0.0)), now=0.0)
    result = f.evaluate(make_sample((0.03, 0.0, 0.0)), now=0.005)
    assert result.verdict is Verdict.ACCEPT
    assert math.isclose(result.displacement, 0.03)
    assert math.isclose(result.velocity, 6.0)


def test_jump_over_threshold_is_rejected_and_baseline_kept() -> None:
    f = SampleFilter()
    f.evaluate(make_sample((0.0, 0.0, 0.0)), now=0.0)

    result = f.evaluate(make_sample((0.06, 0.0, 0.0)), now=0.005)
    assert not result
    assert result.verdict is Verdict.REJECT
    assert f.baseline.position == (0.0, 0.0, 0.0)

    # Compared against the last accepted sample, not the rejected one
    assert f.evaluate(make_sample((0.04, 0.0, 0.0)), now=0.010).accepted
    assert f.baseline.position == (0.04, 0.0, 0.0)


def test_displacement_equal_to_threshold_is_accepted() -> None:
    prev = make_sample((0.0, 0.0, 0.0))
    cand = make_sample((0.0, 0.0, DEFAULT_REJECT_THRESHOLD))
    assert evaluate_candidate(prev, cand, dt=0.005).accepted


def test_custom_threshold() -> None:
    f = SampleFilter(reject_threshold=0.01)
    f.evaluate(make_sample((0.0, 0.0, 0.0)), now=0.0)
    assert not f.evaluate(make_sample((0.02, 0.0, 0.0)), now=0.005).accepted


@pytest.mark.parametrize("dt", [0.0, -0.001, None])
def test_non_positive_dt_has_no_velocity(dt) -> None:
    prev = make_sample((0.0, 0.0, 0.0))
    result = evaluate_candidate(prev, make_sample((0.01, 0.0, 0.0)), dt=dt)
    assert result.accepted
    assert result.velocity is None


@pytest.mark.parametrize("dt", [0.0, -0.001])
def test_non_positive_dt_accepts_large_jump(dt) -> None:
    prev = make_sample((0.0, 0.0, 0.0))
    result = evaluate_candidate(prev, make_sample((1.0, 0.0, 0.0)), dt=dt)
    assert result.verdict is Verdict.ACCEPT
    assert result.displacement == 1.0
    assert result.velocity is None


def test_same_timestamp_twice_is_accepted() -> None:
    f = SampleFilter()
    f.evaluate(make_sample((0.0, 0.0, 0.0)), now=1.0)
    assert f.evaluate(make_sample((1.0, 0.0, 0.0)), now=1.0).accepted
    assert f.baseline.position == (1.0, 0.0, 0.0)


def test_reset_accepts_any_next_sample() -> None:
    f = SampleFilter()
    f.evaluate(make_sample((0.0, 0.0, 0.0)), now=0.0)
    f.reset()
    assert f.baseline is None
    assert f.evaluate(make_sample((5.0, 5.0, 5.0)), now=1.0).accepted
