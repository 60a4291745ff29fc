from __future__ import annotations

import math

import pytest
import sympy as sp
from hypothesis import given
from hypothesis import strategies as st

from spacetime_errors import KinematicsError
from spacetime_geometry import Coordinate, normalize_angle_180, normalize_angle_90, sign
from spacetime_kinematics import Relativity

velocities = st.floats(min_value=-0.99, max_value=0.99, allow_nan=False)


def test_gamma_of_three_fifths():
    assert Relativity.gamma(0.6) == pytest.approx(1.25)
    assert Relativity.gamma(0.0) == 1.0


def test_gamma_at_light_speed_is_infinite():
    assert math.isinf(Relativity.gamma(1.0))


def test_gamma_to_v_inverts_gamma():
    assert Relativity.gamma_to_v(1.25) == pytest.approx(0.6)
    assert Relativity.gamma_to_v(1.0) == 0.0


def test_to_prime_of_unit_event():
    c = Relativity.to_prime(Coordinate(1.0, 1.0), 0.6)
    assert c.x == pytest.approx(0.5)
    assert c.t == pytest.approx(0.5)


@given(velocities, st.floats(-50, 50), st.floats(-50, 50))
def test_to_rest_inverts_to_prime(v, x, t):
    back = Relativity.to_rest(Relativity.to_prime(Coordinate(x, t), v), v)
    assert back.x == pytest.approx(x, abs=1e-6)
    assert back.t == pytest.approx(t, abs=1e-6)


@given(velocities, st.floats(-50, 50), st.floats(-50, 50))
def test_interval_is_invariant(v, x, t):
    p = Relativity.to_prime(Coordinate(x, t), v)
    assert p.t ** 2 - p.x ** 2 == pytest.approx(t * t - x * x, abs=1e-6)


def test_tau_and_t_scale_by_gamma():
    assert Relativity.tau_to_t(8.0, 0.6) == pytest.approx(10.0)
    assert Relativity.t_to_tau(10.0, 0.6) == pytest.approx(8.0)


def test_velocity_composition():
    assert Relativity.v_prime(0.5, 0.5) == pytest.approx(0.8)
    assert Relativity.v_prime(0.5, 1.0) == pytest.approx(1.0)


def test_relative_velocity():
    assert Relativity.relative_velocity(0.8, 0.5) == pytest.approx(0.5)
    assert Relativity.relative_velocity(0.5, 0.5) == 0.0


@given(velocities, velocities)
def test_composition_stays_below_light_speed(v1, v2):
    assert abs(Relativity.v_prime(v1, v2)) < 1.0


@given(velocities, velocities)
def test_composition_is_commutative(v1, v2):
    assert Relativity.v_prime(v1, v2) == pytest.approx(Relativity.v_prime(v2, v1))


@given(velocities, velocities)
def test_composition_identity_and_negation(v1, v2):
    assert Relativity.v_prime(v1, 0.0) == pytest.approx(v1)
    assert Relativity.v_prime(0.0, v1) == pytest.approx(v1)
    assert Relativity.v_prime(-v1, -v2) == pytest.approx(-Relativity.v_prime(v1, v2))


@given(velocities, velocities)
def test_relative_velocity_undoes_composition(v1, v2):
    assert Relativity.relative_velocity(Relativity.v_prime(v1, v2), v2) == pytest.approx(v1, abs=1e-9)


@given(velocities, velocities)
def test_composition_adds_rapidities(v1, v2):
    rapidity = sp.atanh(v1) + sp.atanh(v2)
    assert Relativity.v_prime(v1, v2) == pytest.approx(float(sp.tanh(rapidity)), abs=1e-9)


@given(velocities)
def test_angle_round_trips(v):
    assert Relativity.angle_x_to_v(Relativity.v_to_x_angle(v)) == pytest.approx(v, abs=1e-9)
    assert Relativity.angle_t_to_v(Relativity.v_to_t_angle(v)) == pytest.approx(v, abs=1e-9)


def test_axis_angles():
    assert Relativity.v_to_x_angle(0.0) == 0.0
    assert Relativity.v_to_t_angle(0.0) == 90.0
    assert Relativity.v_to_x_angle(1.0) == pytest.approx(45.0)
    assert Relativity.v_to_t_angle(1.0) == pytest.approx(45.0)
    assert Relativity.v_to_t_angle(-0.5) == pytest.approx(-90.0 - math.degrees(math.atan(-0.5)))


def test_to_prime_angle_of_moving_worldline():
    angle = math.degrees(math.atan(2.0))
    assert Relativity.to_prime_angle(angle, 0.5) == pytest.approx(90.0)


def test_light_lines_keep_their_angle():
    for angle in (45.0, -45.0, 135.0):
        assert Relativity.to_prime_angle(angle, 0.7) == angle


@pytest.mark.parametrize("v, frame_v", [(0.3, 0.5), (-0.4, 0.2), (0.8, -0.3), (0.2, 0.7)])
def test_to_prime_angle_matches_relative_velocity(v, frame_v):
    # A worldline through the origin at velocity v, seen from frame_v
    angle = Relativity.v_to_t_angle(v)
    expected = Relativity.v_to_t_angle(Relativity.relative_velocity(v, frame_v))
    assert normalize_angle_90(Relativity.to_prime_angle(angle, frame_v)) == pytest.approx(
        normalize_angle_90(expected), abs=1e-6)


def test_doppler_shift():
    assert Relativity.doppler_v_to_wavelength(500.0, 0.6) == pytest.approx(1000.0)
    assert Relativity.doppler_v_to_frequency(100.0, 0.6) == pytest.approx(50.0)
    assert Relativity.doppler_wavelength_to_v(500.0, 1000.0) == pytest.approx(0.6)
    assert Relativity.doppler_frequency_to_v(100.0, 50.0) == pytest.approx(0.6)


def test_doppler_rejects_bad_input():
    with pytest.raises(KinematicsError):
        Relativity.doppler_v_to_wavelength(500.0, 1.0)
    with pytest.raises(KinematicsError):
        Relativity.doppler_wavelength_to_v(0.0, 10.0)


@pytest.mark.parametrize(
    "angle, expected",
    [(0.0, 0.0), (180.0, 180.0), (-180.0, -180.0), (270.0, -90.0), (540.0, 180.0)],
)
def test_normalize_angle_180(angle, expected):
    assert normalize_angle_180(angle) == pytest.approx(expected)


@pytest.mark.parametrize(
    "angle, expected",
    [(90.0, 90.0), (-90.0, 90.0), (135.0, -45.0), (180.0, 0.0)],
)
def test_normalize_angle_90(angle, expected):
    assert normalize_angle_90(angle) == pytest.approx(expected)


def test_sign_treats_zero_as_positive():
    assert sign(0.0) == 1.0
    assert sign(-3.0) == -1.0
