from __future__ import annotations

import math

import pytest
import sympy as sp
from hypothesis import given
from hypothesis import strategies as st
from scipy import integrate

from spacetime_errors import KinematicsError
from spacetime_geometry import Coordinate
from spacetime_kinematics import LimitType, MotionCurve, Observer, SegmentSpec, WorldlineSegment

ORIGIN = Coordinate(0.0, 0.0)
ROCKET = Observer(segments=[SegmentSpec(v=0.0, a=1.0)])


def test_inertial_proper_time_is_dilated():
    mover = Observer(segments=[SegmentSpec(v=0.6)])
    assert mover.t_to_tau(10.0) == pytest.approx(8.0)
    assert mover.t_to_x(10.0) == pytest.approx(6.0)
    assert mover.t_to_d(10.0) == pytest.approx(6.0)
    assert mover.t_to_d(-10.0) == pytest.approx(-6.0)


def test_bounded_segment_values():
    segment = WorldlineSegment(LimitType.TAU, 2.0, 1.0, 0.0, ORIGIN, 0.0, 0.0)
    assert segment.max.t == pytest.approx(math.sinh(2.0))
    assert segment.max.v == pytest.approx(math.tanh(2.0))
    assert segment.max.x == pytest.approx(math.cosh(2.0) - 1.0)
    assert segment.tau_to_t(1.0) == pytest.approx(math.sinh(1.0))


def test_values_outside_a_segment_give_none():
    segment = WorldlineSegment(LimitType.TAU, 2.0, 1.0, 0.0, ORIGIN, 0.0, 0.0)
    assert segment.t_to_tau(-1.0) is None
    assert segment.tau_to_t(3.0) is None
    assert segment.v_to_t(-0.5) is None


def test_shared_boundary_belongs_to_the_next_segment():
    segment = WorldlineSegment(LimitType.T, 5.0, 0.0, 0.5, ORIGIN, 0.0, 0.0)
    assert segment.t_to_x(5.0) is None
    segment.set_infinite_future()
    assert segment.t_to_x(5.0) == pytest.approx(2.5)


def test_infinite_past_and_future():
    segment = WorldlineSegment(LimitType.NONE, 0.0, 1.0, 0.0, ORIGIN, 0.0, 0.0)
    segment.set_infinite_past()
    segment.set_infinite_future()
    assert segment.min.v == -1.0 and segment.max.v == 1.0
    assert math.isinf(segment.min.t) and segment.min.t < 0
    assert segment.is_last


@pytest.mark.parametrize(
    "limit_type, limit, a, v",
    [
        (LimitType.TAU, -1.0, 0.0, 0.5),
        (LimitType.D, 1.0, 0.0, 0.0),
        (LimitType.V, 0.5, 0.0, 0.2),
        (LimitType.V, 0.2, 1.0, 0.5),
        (LimitType.V, 1.0, 1.0, 0.0),
    ],
)
def test_unreachable_limits_raise(limit_type, limit, a, v):
    with pytest.raises(KinematicsError):
        WorldlineSegment(limit_type, limit, a, v, ORIGIN, 0.0, 0.0)


def test_velocity_limit_sets_segment_end():
    segment = WorldlineSegment(LimitType.V, 0.6, 1.0, 0.0, ORIGIN, 0.0, 0.0)
    assert segment.max.v == pytest.approx(0.6)
    assert segment.max.t == pytest.approx(0.75)


def test_light_speed_start_is_rejected():
    with pytest.raises(KinematicsError):
        MotionCurve(0.0, 1.0, ORIGIN, 0.0, 0.0)


def test_deceleration_curve_moves_left():
    segment = WorldlineSegment(LimitType.NONE, 0.0, -1.0, 0.0, ORIGIN, 0.0, 0.0)
    segment.set_infinite_future()
    assert segment.t_to_x(1.0) == pytest.approx(1.0 - math.sqrt(2.0))
    assert segment.t_to_v(1.0) == pytest.approx(-1.0 / math.sqrt(2.0))
    assert segment.t_to_d(1.0) == pytest.approx(math.sqrt(2.0) - 1.0)


@given(st.floats(min_value=-3.0, max_value=3.0))
def test_tau_round_trip(tau):
    assert ROCKET.t_to_tau(ROCKET.tau_to_t(tau)) == pytest.approx(tau, abs=1e-9)


@given(st.floats(min_value=-0.95, max_value=0.95))
def test_velocity_round_trip(v):
    assert ROCKET.t_to_v(ROCKET.v_to_t(v)) == pytest.approx(v, abs=1e-9)
    assert ROCKET.d_to_v(ROCKET.v_to_d(v)) == pytest.approx(v, abs=1e-7)


@given(st.floats(min_value=-20.0, max_value=20.0))
def test_distance_grows_with_time(t):
    assert ROCKET.t_to_d(t + 0.5) > ROCKET.t_to_d(t)


@pytest.mark.parametrize("a, t", [(0.5, 3.0), (1.0, 2.0), (2.0, 0.7)])
def test_proper_time_matches_numerical_integral(a, t):
    rocket = Observer(segments=[SegmentSpec(v=0.0, a=a)])
    speed = lambda s: rocket.t_to_v(s)
    tau, _ = integrate.quad(lambda s: math.sqrt(1.0 - speed(s) ** 2), 0.0, t)
    x, _ = integrate.quad(speed, 0.0, t)
    assert rocket.t_to_tau(t) == pytest.approx(tau, rel=1e-8)
    assert rocket.t_to_x(t) == pytest.approx(x, rel=1e-8)


@pytest.mark.parametrize("a", [0.5, 1.0, -2.0])
def test_hyperbolic_motion_has_constant_proper_acceleration(a):
    t = sp.symbols("t", real=True)
    x = (sp.sqrt(1 + a ** 2 * t ** 2) - 1) / a
    v = sp.diff(x, t)
    proper_acceleration = sp.diff(v, t) / (1 - v ** 2) ** sp.Rational(3, 2)
    rocket = Observer(segments=[SegmentSpec(v=0.0, a=a)])
    for value in (-1.5, 0.0, 0.8, 2.5):
        assert rocket.t_to_v(value) == pytest.approx(float(v.subs(t, value)))
        assert rocket.t_to_x(value) == pytest.approx(float(x.subs(t, value)), abs=1e-12)
        assert float(proper_acceleration.subs(t, value)) == pytest.approx(a)


def test_curve_through_moving_point():
    curve = MotionCurve(1.0, 0.6, Coordinate(2.0, 3.0), 1.0, 0.0)
    assert curve.t_to_v(3.0) == pytest.approx(0.6)
    assert curve.t_to_x(3.0) == pytest.approx(2.0)
    assert curve.t_to_tau(3.0) == pytest.approx(1.0)
    assert curve.t_to_d(3.0) == pytest.approx(0.0, abs=1e-12)
    center = curve.center
    assert (2.0 - center.x) ** 2 - (3.0 - center.t) ** 2 == pytest.approx(1.0)
