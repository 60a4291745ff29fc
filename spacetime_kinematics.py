"""
Kinematics engine for spacetime diagrams.

Observers move along worldlines built from segments of constant proper
acceleration. All queries are closed form: given t, tau, d or v anywhere
on a worldline, the remaining quantities are computed analytically, and
intersections with lines and other worldlines are solved exactly.

Units: c = 1, so velocities lie in (-1, 1) and light travels at 45 degrees.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Union

import numpy as np

from spacetime_errors import ExecutionError, KinematicsError
from spacetime_geometry import (
    Bounds, Coordinate, Interval, IntervalType, PropertyContainer, WorldlineEndpoint,
    fuzzy_eq, fuzzy_ge, fuzzy_gt, fuzzy_le, fuzzy_lt, fuzzy_zero,
    normalize_angle_180, normalize_angle_90, sign,
)


def _sqrt(value: float) -> float:
    """Square root that yields NaN for negative input instead of raising"""
    return math.sqrt(value) if value >= 0 else math.nan


def _div(num: float, den: float) -> float:
    """IEEE division: x/0 is +-inf and 0/0 is NaN"""
    if den == 0:
        if num == 0 or math.isnan(num):
            return math.nan
        return math.copysign(math.inf, num) * math.copysign(1.0, den)
    return num / den


# ============================================================================
# RELATIVITY MATH
# ============================================================================

class Relativity:
    """Stateless Lorentz transform and velocity/angle conversions"""

    @staticmethod
    def gamma(v: float) -> float:
        return _div(1.0, _sqrt(1.0 - v * v))

    @staticmethod
    def gamma_to_v(gamma: float) -> float:
        if gamma == 0:
            return math.inf
        return _sqrt(gamma * gamma - 1.0) / gamma

    @staticmethod
    def x_prime(x: float, t: float, v: float) -> float:
        return (x - v * t) * Relativity.gamma(v)

    @staticmethod
    def t_prime(x: float, t: float, v: float) -> float:
        return (t - v * x) * Relativity.gamma(v)

    @staticmethod
    def to_prime(c: Coordinate, v: float) -> Coordinate:
        """Rest-frame coordinate to the frame moving at v (shared origin)"""
        return Coordinate(Relativity.x_prime(c.x, c.t, v), Relativity.t_prime(c.x, c.t, v))

    @staticmethod
    def x_rest(x_prime: float, t_prime: float, v: float) -> float:
        return (x_prime + v * t_prime) * Relativity.gamma(v)

    @staticmethod
    def t_rest(x_prime: float, t_prime: float, v: float) -> float:
        return (t_prime + v * x_prime) * Relativity.gamma(v)

    @staticmethod
    def to_rest(c: Coordinate, v: float) -> Coordinate:
        """Coordinate in the frame moving at v back to the rest frame"""
        return Coordinate(Relativity.x_rest(c.x, c.t, v), Relativity.t_rest(c.x, c.t, v))

    @staticmethod
    def tau_to_t(tau: float, v: float) -> float:
        return tau * Relativity.gamma(v)

    @staticmethod
    def t_to_tau(t: float, v: float) -> float:
        return _div(t, Relativity.gamma(v))

    @staticmethod
    def v_prime(v1: float, v2: float) -> float:
        """Relativistic velocity composition"""
        return _div(v1 + v2, 1.0 + v1 * v2)

    @staticmethod
    def relative_velocity(v: float, frame_v: float) -> float:
        """Velocity v as measured in a frame moving at frame_v"""
        return _div(v - frame_v, 1.0 - v * frame_v)

    @staticmethod
    def v_to_x_angle(v: float) -> float:
        return math.degrees(math.atan(v))

    @staticmethod
    def angle_x_to_v(angle: float) -> float:
        return math.tan(math.radians(angle))

    @staticmethod
    def v_to_t_angle(v: float) -> float:
        angle = math.degrees(math.atan(v))
        return 90.0 - angle if angle >= 0 else -90.0 - angle

    @staticmethod
    def angle_t_to_v(angle: float) -> float:
        rad = math.radians(angle)
        rad = (math.pi / 2) - rad if rad >= 0 else (-math.pi / 2) - rad
        return math.tan(rad)

    @staticmethod
    def to_prime_angle(angle: float, v: float) -> float:
        """Angle of a line as drawn in a frame moving at v"""
        angle180 = normalize_angle_180(angle)
        if abs(angle180) in (45.0, 135.0):
            return angle

        # Work in (-90, 90] and restore the lost half-turn afterwards
        angle90 = normalize_angle_90(angle)
        invert = abs(angle180) > 90
        use_x_axis = abs(angle90) < 45
        v1 = Relativity.angle_x_to_v(angle90) if use_x_axis else Relativity.angle_t_to_v(angle90)
        v2 = Relativity.relative_velocity(v1, v)
        new_angle = Relativity.v_to_x_angle(v2) if use_x_axis else Relativity.v_to_t_angle(v2)

        if abs(angle90) > 45 and sign(v1) != sign(v2):
            invert = not invert
        if invert:
            new_angle = normalize_angle_180(new_angle + 180.0)
        return new_angle

    @staticmethod
    def doppler_v_to_wavelength(source_wavelength: float, v: float) -> float:
        if abs(v) >= 1.0:
            raise KinematicsError("The velocity must be between -1 and 1, exclusive")
        return source_wavelength * math.sqrt((1 + v) / (1 - v))

    @staticmethod
    def doppler_v_to_frequency(source_frequency: float, v: float) -> float:
        if abs(v) >= 1.0:
            raise KinematicsError("The velocity must be between -1 and 1, exclusive")
        return source_frequency / math.sqrt((1 + v) / (1 - v))

    @staticmethod
    def doppler_wavelength_to_v(source_wavelength: float, received_wavelength: float) -> float:
        if source_wavelength <= 0 or received_wavelength <= 0:
            raise KinematicsError("Wavelengths must be > 0")
        s2 = source_wavelength * source_wavelength
        r2 = received_wavelength * received_wavelength
        return (r2 - s2) / (s2 + r2)

    @staticmethod
    def doppler_frequency_to_v(source_frequency: float, received_frequency: float) -> float:
        if source_frequency <= 0 or received_frequency <= 0:
            raise KinematicsError("Frequencies must be > 0")
        s2 = source_frequency * source_frequency
        r2 = received_frequency * received_frequency
        return (s2 - r2) / (s2 + r2)


# ============================================================================
# LINES
# ============================================================================

class AxisType(Enum):
    X = "x"
    T = "t"


class Line(PropertyContainer):
    """
    An infinite straight line, optionally restricted to a bounding box.

    Stored as an angle in (-90, 90] plus a point it passes through. For
    non-vertical lines t = slope * x + offset.
    """

    PROPERTY_NAMES = ("angle", "point", "slope")
    READ_ONLY_PROPERTIES = ("angle", "point", "slope")

    def __init__(self, angle: float, point: Coordinate, bounds: Optional[Bounds] = None):
        self.angle = normalize_angle_90(angle)
        self.point = point.copy()
        self.slope = math.inf if self.angle == 90.0 else math.tan(math.radians(self.angle))
        self.offset = math.nan if math.isinf(self.slope) else self.point.t - self.slope * self.point.x
        self.bounds = bounds.copy() if bounds is not None else None

    @classmethod
    def from_points(cls, c1: Coordinate, c2: Coordinate) -> "Line":
        if c1.fuzzy_eq(c2):
            raise KinematicsError("A line needs two distinct points")
        return cls(math.degrees(math.atan2(c2.t - c1.t, c2.x - c1.x)), c1)

    @classmethod
    def from_axis(cls, axis: AxisType, frame: "Frame", offset: float = 0.0) -> "Line":
        """The x or t axis of a frame, shifted by offset along the other axis"""
        if axis == AxisType.X:
            return cls(Relativity.v_to_x_angle(frame.v), frame.to_rest(Coordinate(0.0, offset)))
        return cls(Relativity.v_to_t_angle(frame.v), frame.to_rest(Coordinate(offset, 0.0)))

    @classmethod
    def from_equation(cls, alpha: float, beta: float, gamma: float) -> "Line":
        """Line alpha*x + beta*t = gamma"""
        if fuzzy_zero(beta):
            return cls(90.0, Coordinate(gamma / alpha, 0.0))
        return cls(math.degrees(math.atan(-alpha / beta)), Coordinate(0.0, gamma / beta))

    @property
    def is_vertical(self) -> bool:
        return math.isinf(self.slope)

    @property
    def direction(self) -> Tuple[float, float]:
        if self.is_vertical:
            return 0.0, 1.0
        rad = math.radians(self.angle)
        return math.cos(rad), math.sin(rad)

    def with_bounds(self, bounds: Bounds) -> "Line":
        return Line(self.angle, self.point, bounds)

    def clear_bounds(self) -> "Line":
        return Line(self.angle, self.point)

    def accepts(self, c: Coordinate) -> bool:
        return self.bounds is None or self.bounds.inside(c)

    def _get_property(self, name: str):
        if name == "point":
            return self.point.copy()
        return getattr(self, name)

    def relative_to(self, frame: "Frame") -> "Line":
        bounds = None
        if self.bounds is not None:
            if self.bounds.min.is_finite() and self.bounds.max.is_finite():
                corners = [frame.to_frame(Coordinate(x, t))
                           for x in (self.bounds.min.x, self.bounds.max.x)
                           for t in (self.bounds.min.t, self.bounds.max.t)]
                bounds = Bounds(Coordinate(min(c.x for c in corners), min(c.t for c in corners)),
                                Coordinate(max(c.x for c in corners), max(c.t for c in corners)))
            else:
                bounds = self.bounds.copy()
        return Line(Relativity.to_prime_angle(self.angle, frame.v), frame.to_frame(self.point), bounds)

    def intersect(self, other: "Line") -> Optional[Coordinate]:
        """
        Closed-form intersection of two lines

        Returns:
            The crossing point, or None for parallel lines or when the point
            falls outside either line's bounds

        Raises:
            KinematicsError: The lines are identical
        """
        point = _line_line(self, other)
        if point is None:
            return None
        if not (self.accepts(point) and other.accepts(point)):
            return None
        return point

    def __eq__(self, other):
        return (isinstance(other, Line) and self.angle == other.angle and
                self.point == other.point and self.bounds == other.bounds)

    def __repr__(self):
        return f"[line angle {self.angle} through {self.point}]"


def _line_line(l1: Line, l2: Line) -> Optional[Coordinate]:
    if fuzzy_eq(l1.slope, l2.slope):
        identical = (fuzzy_eq(l1.point.x, l2.point.x) if l1.is_vertical
                     else fuzzy_eq(l1.offset, l2.offset))
        if identical:
            raise KinematicsError("The lines are identical and have no single intersection point")
        return None

    if l1.is_vertical:
        x = l1.point.x
        return Coordinate(x, l2.slope * x + l2.offset)
    if l2.is_vertical:
        x = l2.point.x
        return Coordinate(x, l1.slope * x + l1.offset)
    x = (l2.offset - l1.offset) / (l1.slope - l2.slope)
    return Coordinate(x, l1.slope * x + l1.offset)


# ============================================================================
# MOTION CURVES
# ============================================================================

class MotionCurve:
    """
    Motion with constant proper acceleration a passing through `point`
    with velocity v, proper time tau and distance d.

    For a != 0 the curve is the standard hyperbola (v = 0 at the origin)
    translated so that velocity v falls on `point`. For a == 0 it is a
    straight worldline.

    d is the distance travelled, signed so that it always grows with t.
    """

    def __init__(self, a: float, v: float, point: Coordinate, tau: float, d: float):
        if not -1.0 < v < 1.0:
            raise KinematicsError("The velocity must be between -1 and 1, exclusive")
        self.a = a
        self.v = v
        self.point = point.copy()
        self.tau = tau
        self.d = d

        if a != 0:
            t_v = self.std_v_to_t(a, v)
            self.offset = Coordinate(point.x - self.std_t_to_x(a, t_v), point.t - t_v)
            self.std_tau = self.std_t_to_tau(a, t_v)
            self.std_d = self.std_t_to_d(a, t_v)
        else:
            self.gamma = Relativity.gamma(v)

    # Standard curve: x = (sqrt(1 + a^2 t^2) - 1) / a

    @staticmethod
    def std_t_to_v(a: float, t: float) -> float:
        if math.isinf(t):
            return math.copysign(1.0, a * t)
        return a * t / math.sqrt(1.0 + a * a * t * t)

    @staticmethod
    def std_t_to_x(a: float, t: float) -> float:
        return (math.hypot(1.0, a * t) - 1.0) / a

    @staticmethod
    def std_t_to_tau(a: float, t: float) -> float:
        return math.asinh(a * t) / a

    @staticmethod
    def std_t_to_d(a: float, t: float) -> float:
        return math.copysign(abs(MotionCurve.std_t_to_x(a, t)), t)

    @staticmethod
    def std_tau_to_t(a: float, tau: float) -> float:
        return math.sinh(a * tau) / a

    @staticmethod
    def std_v_to_t(a: float, v: float) -> float:
        if abs(v) >= 1.0:
            if abs(v) == 1.0:
                return math.copysign(math.inf, v * a)
            raise KinematicsError("The velocity must be between -1 and 1, exclusive")
        return v / (a * math.sqrt(1.0 - v * v))

    @staticmethod
    def std_x_to_t(a: float, x: float, later: bool) -> float:
        if a * x < 0:
            raise KinematicsError("The curve never reaches this position")
        t = math.sqrt(x * x + 2.0 * x / a)
        return t if later else -t

    @staticmethod
    def std_d_to_t(a: float, d: float) -> float:
        return MotionCurve.std_x_to_t(a, sign(a) * abs(d), d >= 0)

    # Queries, all answered through rest time t

    def t_to_v(self, t: float) -> float:
        if self.a == 0:
            return self.v
        return self.std_t_to_v(self.a, t - self.offset.t)

    def t_to_x(self, t: float) -> float:
        if self.a == 0:
            if self.v == 0:
                return self.point.x
            return self.point.x + self.v * (t - self.point.t)
        return self.std_t_to_x(self.a, t - self.offset.t) + self.offset.x

    def t_to_tau(self, t: float) -> float:
        if self.a == 0:
            return self.tau + (t - self.point.t) / self.gamma
        return self.tau + self.std_t_to_tau(self.a, t - self.offset.t) - self.std_tau

    def t_to_d(self, t: float) -> float:
        if self.a == 0:
            if self.v == 0:
                return self.d
            return self.d + abs(self.v) * (t - self.point.t)
        return self.d + self.std_t_to_d(self.a, t - self.offset.t) - self.std_d

    def tau_to_t(self, tau: float) -> float:
        if self.a == 0:
            return self.point.t + (tau - self.tau) * self.gamma
        return self.std_tau_to_t(self.a, tau - self.tau + self.std_tau) + self.offset.t

    def d_to_t(self, d: float) -> float:
        if self.a == 0:
            if self.v == 0:
                raise KinematicsError("An observer at rest never covers any distance")
            return self.point.t + (d - self.d) / abs(self.v)
        return self.std_d_to_t(self.a, d - self.d + self.std_d) + self.offset.t

    def v_to_t(self, v: float) -> float:
        if self.a == 0:
            raise KinematicsError("The velocity is constant")
        return self.std_v_to_t(self.a, v) + self.offset.t

    def endpoint(self, t: float) -> WorldlineEndpoint:
        return WorldlineEndpoint(self.t_to_v(t), self.t_to_x(t), t, self.t_to_tau(t), self.t_to_d(t))

    # Geometry

    @property
    def center(self) -> Coordinate:
        """Center of the hyperbola (x - cx)^2 - (t - ct)^2 = 1/a^2"""
        return Coordinate(self.offset.x - 1.0 / self.a, self.offset.t)

    def as_line(self) -> Line:
        return Line(Relativity.v_to_t_angle(self.v), self.point)

    def on_branch(self, c: Coordinate) -> bool:
        return self.a * (c.x - self.center.x) > 0

    def intersect_line(self, line: Line) -> List[Coordinate]:
        """
        All points where the line crosses this curve, sorted by t

        Raises:
            KinematicsError: The curve is straight and lies on the line
        """
        if self.a == 0:
            point = _line_line(self.as_line(), line)
            return [] if point is None else [point]

        a = self.a
        dx, dt = line.direction
        x0 = a * (line.point.x - self.offset.x) + 1.0
        t0 = a * (line.point.t - self.offset.t)
        ca, cb = a * dx, a * dt

        # (x0 + s*ca)^2 - (t0 + s*cb)^2 = 1
        qa = ca * ca - cb * cb
        qb = 2.0 * (x0 * ca - t0 * cb)
        qc = x0 * x0 - t0 * t0 - 1.0

        if fuzzy_zero(dx * dx - dt * dt):
            if fuzzy_zero(qb):
                return []
            roots = [-qc / qb]
        else:
            disc = qb * qb - 4.0 * qa * qc
            if disc < 0:
                if not fuzzy_zero(disc):
                    return []
                disc = 0.0
            root = math.sqrt(disc)
            roots = [(-qb - root) / (2.0 * qa)]
            if root > 0:
                roots.append((-qb + root) / (2.0 * qa))

        points = [Coordinate(line.point.x + s * dx, line.point.t + s * dt)
                  for s in roots if x0 + s * ca > 0]
        return sorted(points, key=lambda c: c.t)


# ============================================================================
# WORLDLINE SEGMENTS
# ============================================================================

class LimitType(Enum):
    NONE = "none"
    T = "time"
    TAU = "tau"
    D = "distance"
    V = "velocity"


class WorldlineSegment:
    """
    One constant-acceleration piece of a worldline.

    `start` is the state the segment was built from; `min` and `max` are
    its bounds, which become infinite for the first and last segments.
    Queries return None when the requested value is outside the segment.
    """

    def __init__(self, limit_type: LimitType, limit: float, a: float, v: float,
                 origin: Coordinate, tau: float, d: float):
        if limit_type != LimitType.V and limit < 0:
            raise KinematicsError("A segment limit must be >= 0")

        self.limit_type = limit_type
        self.limit = limit
        self.a = a
        self.curve = MotionCurve(a, v, origin, tau, d)
        self.start = WorldlineEndpoint(v, origin.x, origin.t, tau, d)
        self.min = self.start
        self.is_last = False

        if limit_type == LimitType.NONE:
            max_t = origin.t
        elif limit_type == LimitType.T:
            max_t = origin.t + limit
        elif limit_type == LimitType.TAU:
            max_t = self.curve.tau_to_t(tau + limit)
        elif limit_type == LimitType.D:
            if a == 0 and v == 0:
                if limit > 0:
                    raise KinematicsError("An observer at rest can never travel the requested distance")
                max_t = origin.t
            else:
                max_t = self.curve.d_to_t(d + limit)
        else:
            if a == 0 or not -1.0 < limit < 1.0:
                raise KinematicsError(f"The velocity limit {limit} can never be reached")
            max_t = self.curve.v_to_t(limit)
            if fuzzy_lt(max_t, origin.t):
                raise KinematicsError(f"The velocity limit {limit} can never be reached")
            max_t = max(max_t, origin.t)

        self.max = self.curve.endpoint(max_t)

    @property
    def constant_velocity(self) -> bool:
        return self.a == 0

    @property
    def increasing_velocity(self) -> bool:
        return self.a > 0

    @property
    def decreasing_velocity(self) -> bool:
        return self.a < 0

    def set_infinite_past(self):
        a, v = self.a, self.start.v
        if a > 0:
            vel, x = -1.0, math.inf
        elif a < 0:
            vel, x = 1.0, -math.inf
        else:
            vel = v
            x = self.start.x if v == 0 else math.copysign(math.inf, -v)
        d = self.start.d if (a == 0 and v == 0) else -math.inf
        self.min = WorldlineEndpoint(vel, x, -math.inf, -math.inf, d)

    def set_infinite_future(self):
        a, v = self.a, self.start.v
        if a > 0:
            vel, x = 1.0, math.inf
        elif a < 0:
            vel, x = -1.0, -math.inf
        else:
            vel = v
            x = self.start.x if v == 0 else math.copysign(math.inf, v)
        d = self.start.d if (a == 0 and v == 0) else math.inf
        self.max = WorldlineEndpoint(vel, x, math.inf, math.inf, d)
        self.is_last = True

    def locate(self, source: str, value: float) -> Optional[float]:
        """Rest time t at which `source` (t, tau, d or v) equals value, or None"""
        lo = getattr(self.min, source)
        hi = getattr(self.max, source)
        first, last = lo, hi
        if lo > hi:
            lo, hi = hi, lo
        if math.isnan(value) or fuzzy_lt(value, lo) or fuzzy_gt(value, hi):
            return None
        if fuzzy_eq(lo, hi):
            return self.min.t
        # The next segment answers for values on a shared boundary
        if not self.is_last and fuzzy_eq(value, last):
            return None
        if fuzzy_eq(value, first) and math.isfinite(self.min.t):
            return self.min.t

        if source == "t":
            return value
        if source == "tau":
            return self.curve.tau_to_t(value)
        if source == "d":
            return self.curve.d_to_t(value)
        return self.curve.v_to_t(value)

    def endpoint(self, source: str, value: float) -> Optional[WorldlineEndpoint]:
        t = self.locate(source, value)
        if t is None:
            return None
        if math.isinf(t):
            return self.min if t < 0 else self.max
        return self.curve.endpoint(t)

    def query(self, source: str, value: float, target: str) -> Optional[float]:
        point = self.endpoint(source, value)
        if point is None:
            return None
        return getattr(point, target)

    # Named queries

    def t_to_v(self, t: float) -> Optional[float]: return self.query("t", t, "v")
    def t_to_x(self, t: float) -> Optional[float]: return self.query("t", t, "x")
    def t_to_tau(self, t: float) -> Optional[float]: return self.query("t", t, "tau")
    def t_to_d(self, t: float) -> Optional[float]: return self.query("t", t, "d")
    def tau_to_v(self, tau: float) -> Optional[float]: return self.query("tau", tau, "v")
    def tau_to_x(self, tau: float) -> Optional[float]: return self.query("tau", tau, "x")
    def tau_to_t(self, tau: float) -> Optional[float]: return self.query("tau", tau, "t")
    def tau_to_d(self, tau: float) -> Optional[float]: return self.query("tau", tau, "d")
    def d_to_v(self, d: float) -> Optional[float]: return self.query("d", d, "v")
    def d_to_x(self, d: float) -> Optional[float]: return self.query("d", d, "x")
    def d_to_t(self, d: float) -> Optional[float]: return self.query("d", d, "t")
    def d_to_tau(self, d: float) -> Optional[float]: return self.query("d", d, "tau")
    def v_to_x(self, v: float) -> Optional[float]: return self.query("v", v, "x")
    def v_to_t(self, v: float) -> Optional[float]: return self.query("v", v, "t")
    def v_to_tau(self, v: float) -> Optional[float]: return self.query("v", v, "tau")
    def v_to_d(self, v: float) -> Optional[float]: return self.query("v", v, "d")

    def contains_t(self, t: float) -> bool:
        return fuzzy_ge(t, self.min.t) and fuzzy_le(t, self.max.t)

    def intersect_line(self, line: Line) -> Optional[Coordinate]:
        """Earliest crossing with the line inside this segment"""
        for point in self.curve.intersect_line(line):
            if self.contains_t(point.t) and line.accepts(point):
                return point
        return None

    def intersect_segment(self, other: "WorldlineSegment") -> Optional[Coordinate]:
        """Earliest crossing of two segments"""
        c1, c2 = self.curve, other.curve
        if c1.a == 0:
            candidates = c2.intersect_line(c1.as_line())
        elif c2.a == 0:
            candidates = c1.intersect_line(c2.as_line())
        else:
            # Subtracting the two hyperbola equations leaves a line
            p, q = c1.center, c2.center
            alpha = 2.0 * (q.x - p.x)
            beta = -2.0 * (q.t - p.t)
            rhs = (1.0 / (c1.a * c1.a) - 1.0 / (c2.a * c2.a)) - p.x * p.x + q.x * q.x + p.t * p.t - q.t * q.t
            if fuzzy_zero(alpha) and fuzzy_zero(beta):
                if fuzzy_zero(rhs) and c1.on_branch(q + Coordinate(1.0 / c2.a, 0.0)):
                    raise KinematicsError("The worldlines overlap and have no single intersection point")
                return None
            chord = Line.from_equation(alpha, beta, rhs)
            candidates = [c for c in c1.intersect_line(chord) if c2.on_branch(c)]

        for point in sorted(candidates, key=lambda c: c.t):
            if self.contains_t(point.t) and other.contains_t(point.t):
                return point
        return None

    def __repr__(self):
        return (f"WorldlineSegment(a={self.a}, v={self.start.v}, "
                f"{self.limit_type.value} {self.limit}, min={self.min}, max={self.max})")


# ============================================================================
# OBSERVERS (WORLDLINES)
# ============================================================================

@dataclass
class SegmentSpec:
    """Declared segment: velocity (None continues the previous one), acceleration, limit"""
    v: Optional[float] = None
    a: float = 0.0
    limit_type: LimitType = LimitType.NONE
    limit: float = 0.0


SOURCES = ("t", "tau", "d", "v")
TARGETS = ("v", "x", "t", "tau", "d")


class Observer(PropertyContainer):
    """
    A worldline: segments ordered by proper time, each starting where the
    previous one ends. The first extends into the infinite past and the
    last into the infinite future.
    """

    PROPERTY_NAMES = ("origin", "tau", "d")
    READ_ONLY_PROPERTIES = ("origin", "tau", "d")

    def __init__(self, origin: Optional[Coordinate] = None, tau: float = 0.0, d: float = 0.0,
                 segments: Optional[List[SegmentSpec]] = None):
        self.origin = origin.copy() if origin is not None else Coordinate(0.0, 0.0)
        self.tau = tau
        self.d = d
        self.specs = list(segments) if segments else [SegmentSpec(v=0.0, a=0.0)]
        self.segments: List[WorldlineSegment] = []

        point, seg_tau, seg_d, prev_v = self.origin, tau, d, 0.0
        for i, spec in enumerate(self.specs):
            last = i == len(self.specs) - 1
            v = prev_v if spec.v is None else spec.v
            if last:
                segment = WorldlineSegment(LimitType.NONE, 0.0, spec.a, v, point, seg_tau, seg_d)
            else:
                segment = WorldlineSegment(spec.limit_type, spec.limit, spec.a, v, point, seg_tau, seg_d)
            if i == 0:
                segment.set_infinite_past()
            if last:
                segment.set_infinite_future()
            self.segments.append(segment)

            end = segment.max
            point, seg_tau, seg_d, prev_v = Coordinate(end.x, end.t), end.tau, end.d, end.v

    def _get_property(self, name: str):
        if name == "origin":
            return self.origin.copy()
        return getattr(self, name)

    def endpoint(self, source: str, value: float) -> WorldlineEndpoint:
        """
        State where `source` equals value, from the first segment that answers

        Raises:
            KinematicsError: No segment reaches the value
        """
        for segment in self.segments:
            point = segment.endpoint(source, value)
            if point is not None:
                return point
        raise KinematicsError(f"The observer never reaches {source} = {value}")

    def query(self, source: str, value: float, target: str) -> float:
        return getattr(self.endpoint(source, value), target)

    def d_to_v(self, d: float) -> float: return self.query("d", d, "v")
    def d_to_x(self, d: float) -> float: return self.query("d", d, "x")
    def d_to_t(self, d: float) -> float: return self.query("d", d, "t")
    def d_to_tau(self, d: float) -> float: return self.query("d", d, "tau")
    def t_to_v(self, t: float) -> float: return self.query("t", t, "v")
    def t_to_x(self, t: float) -> float: return self.query("t", t, "x")
    def t_to_tau(self, t: float) -> float: return self.query("t", t, "tau")
    def t_to_d(self, t: float) -> float: return self.query("t", t, "d")
    def tau_to_v(self, tau: float) -> float: return self.query("tau", tau, "v")
    def tau_to_x(self, tau: float) -> float: return self.query("tau", tau, "x")
    def tau_to_t(self, tau: float) -> float: return self.query("tau", tau, "t")
    def tau_to_d(self, tau: float) -> float: return self.query("tau", tau, "d")
    def v_to_x(self, v: float) -> float: return self.query("v", v, "x")
    def v_to_t(self, v: float) -> float: return self.query("v", v, "t")
    def v_to_tau(self, v: float) -> float: return self.query("v", v, "tau")
    def v_to_d(self, v: float) -> float: return self.query("v", v, "d")

    def relative_to(self, frame: "Frame") -> "Observer":
        """The same motion described in another frame; tau limits are invariant"""
        first = self.segments[0].start
        specs = []
        for segment in self.segments:
            delta = 0.0 if segment.is_last else segment.max.tau - segment.start.tau
            specs.append(SegmentSpec(v=Relativity.relative_velocity(segment.start.v, frame.v),
                                     a=segment.a, limit_type=LimitType.TAU, limit=delta))
        return Observer(frame.to_frame(Coordinate(first.x, first.t)), first.tau, first.d, specs)

    def intersect(self, line: Line) -> Optional[Coordinate]:
        for segment in self.segments:
            point = segment.intersect_line(line)
            if point is not None:
                return point
        return None

    def intersect_observer(self, other: "Observer") -> Optional[Coordinate]:
        """First crossing found scanning our segments, then the other's"""
        for mine in self.segments:
            for theirs in other.segments:
                point = mine.intersect_segment(theirs)
                if point is not None and other.accepts(point):
                    return point
        return None

    def accepts(self, c: Coordinate) -> bool:
        return True

    def t_range(self, default_span: float = 10.0) -> Tuple[float, float]:
        """Finite t range covering every segment boundary"""
        times = [s.start.t for s in self.segments] + [s.max.t for s in self.segments]
        finite = [t for t in times if math.isfinite(t)]
        lo, hi = min(finite), max(finite)
        return lo - default_span, hi + default_span

    def sample(self, n: int = 200, t_range: Optional[Tuple[float, float]] = None) -> Tuple[np.ndarray, np.ndarray]:
        """Points along the worldline as (x, t) arrays"""
        lo, hi = t_range if t_range is not None else self.t_range()
        ts = np.linspace(lo, hi, n)
        xs = np.array([self.t_to_x(float(t)) for t in ts])
        return xs, ts

    def __eq__(self, other):
        return (isinstance(other, Observer) and self.origin == other.origin and
                self.tau == other.tau and self.d == other.d and self.specs == other.specs)

    def __repr__(self):
        return f"[observer origin {self.origin} tau {self.tau} distance {self.d} segments {len(self.segments)}]"


class IntervalObserver(Observer):
    """An observer restricted to an interval of t, tau or d"""

    def __init__(self, observer: Observer, interval: Interval):
        self.observer = observer.observer if isinstance(observer, IntervalObserver) else observer
        self.interval = interval
        self.origin = self.observer.origin
        self.tau = self.observer.tau
        self.d = self.observer.d
        self.specs = self.observer.specs
        self.segments = self.observer.segments

    def _quantity(self, point: WorldlineEndpoint) -> float:
        return {IntervalType.T: point.t, IntervalType.TAU: point.tau, IntervalType.D: point.d}[self.interval.type]

    def endpoint(self, source: str, value: float) -> WorldlineEndpoint:
        point = self.observer.endpoint(source, value)
        if not self.interval.contains(self._quantity(point)):
            raise KinematicsError(f"{source} = {value} is outside the observer's interval")
        return point

    def accepts(self, c: Coordinate) -> bool:
        if self.interval.type == IntervalType.T:
            return self.interval.contains(c.t)
        return self.interval.contains(self._quantity(self.observer.endpoint("t", c.t)))

    def intersect(self, line: Line) -> Optional[Coordinate]:
        for segment in self.segments:
            for point in segment.curve.intersect_line(line):
                if segment.contains_t(point.t) and line.accepts(point) and self.accepts(point):
                    return point
        return None

    def intersect_observer(self, other: Observer) -> Optional[Coordinate]:
        for mine in self.segments:
            for theirs in other.segments:
                point = mine.intersect_segment(theirs)
                if point is not None and self.accepts(point) and other.accepts(point):
                    return point
        return None

    def proper_time_interval(self) -> Interval:
        """The same stretch of worldline as a tau interval"""
        if self.interval.type == IntervalType.TAU:
            return self.interval
        source = "t" if self.interval.type == IntervalType.T else "d"
        bounds = [value if math.isinf(value) else self.observer.query(source, value, "tau")
                  for value in (self.interval.min, self.interval.max)]
        return Interval(IntervalType.TAU, bounds[0], bounds[1])

    def relative_to(self, frame: "Frame") -> Observer:
        # Only proper time is frame independent
        return IntervalObserver(self.observer.relative_to(frame), self.proper_time_interval())

    def t_range(self, default_span: float = 10.0) -> Tuple[float, float]:
        lo, hi = self.observer.t_range(default_span)
        if self.interval.type == IntervalType.T:
            return max(lo, self.interval.min), min(hi, self.interval.max)
        source = "tau" if self.interval.type == IntervalType.TAU else "d"
        t_lo = self.observer.query(source, self.interval.min, "t")
        t_hi = self.observer.query(source, self.interval.max, "t")
        return max(lo, t_lo), min(hi, t_hi)

    def __eq__(self, other):
        return (isinstance(other, IntervalObserver) and self.observer == other.observer and
                self.interval == other.interval)

    def __repr__(self):
        return f"[observer {self.observer!r} restricted to {self.interval!r}]"


# ============================================================================
# FRAMES
# ============================================================================

class FrameAt(Enum):
    T = "time"
    TAU = "tau"
    D = "distance"
    V = "velocity"


_AT_SOURCE = {FrameAt.T: "t", FrameAt.TAU: "tau", FrameAt.D: "d", FrameAt.V: "v"}


class Frame(PropertyContainer):
    """An inertial frame: origin event plus velocity"""

    PROPERTY_NAMES = ("v", "origin")

    def __init__(self, origin: Optional[Coordinate] = None, v: float = 0.0):
        self.origin = origin.copy() if origin is not None else Coordinate(0.0, 0.0)
        self.v = v

    @classmethod
    def from_observer(cls, observer: Observer, at: FrameAt = FrameAt.TAU, value: float = 0.0) -> "Frame":
        """
        Instantaneous moving frame of an observer

        The origin is placed where the frame's own clock reads zero: walk back
        along the frame's t axis from the selected event by tau * scaling.
        """
        point = observer.endpoint(_AT_SOURCE[at], value)
        v = point.v
        scaling = math.sqrt(1.0 + v * v) / math.sqrt(1.0 - v * v)
        distance = point.tau * scaling
        theta = math.radians(Relativity.v_to_t_angle(v))
        s = sign(theta)
        origin = Coordinate(point.x - s * math.cos(theta) * distance,
                            point.t - s * math.sin(theta) * distance)
        return cls(origin, v)

    def _set_property(self, name: str, value):
        if name == "v":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ExecutionError("Frame property 'v' must be a floating point number")
            if not -1.0 < value < 1.0:
                raise ExecutionError("The velocity must be between -1 and 1, exclusive")
            self.v = float(value)
        else:
            if not isinstance(value, Coordinate):
                raise ExecutionError("Frame property 'origin' must be a coordinate")
            self.origin = value.copy()

    def to_rest(self, c: Coordinate) -> Coordinate:
        return Relativity.to_rest(c, self.v) + self.origin

    def to_frame(self, c: Coordinate) -> Coordinate:
        return Relativity.to_prime(c - self.origin, self.v)

    def relative_to(self, prime: "Frame") -> "Frame":
        return Frame(prime.to_frame(self.origin), Relativity.relative_velocity(self.v, prime.v))

    def copy(self) -> "Frame":
        return Frame(self.origin, self.v)

    def __eq__(self, other):
        return isinstance(other, Frame) and self.origin == other.origin and self.v == other.v

    def __repr__(self):
        return f"[frame origin {self.origin} velocity {self.v}]"


# ============================================================================
# PATHS
# ============================================================================

class Path(PropertyContainer):
    """An ordered polyline of events"""

    PROPERTY_NAMES = ("count",)
    READ_ONLY_PROPERTIES = ("count",)

    def __init__(self, points: List[Coordinate]):
        if len(points) < 2:
            raise ExecutionError("A path needs at least two points")
        self.points = [p.copy() for p in points]

    @property
    def count(self) -> float:
        return float(len(self.points))

    @property
    def bounds(self) -> Bounds:
        xs = [p.x for p in self.points]
        ts = [p.t for p in self.points]
        return Bounds(Coordinate(min(xs), min(ts)), Coordinate(max(xs), max(ts)))

    def relative_to(self, frame: Frame) -> "Path":
        return Path([frame.to_frame(p) for p in self.points])

    def to_array(self) -> np.ndarray:
        return np.array([[p.x, p.t] for p in self.points], dtype=float)

    def __eq__(self, other):
        return isinstance(other, Path) and self.points == other.points

    def __repr__(self):
        return f"[path {', '.join(repr(p) for p in self.points)}]"


# ============================================================================
# INTERSECTIONS
# ============================================================================

def intersect(a: Union[Line, Observer], b: Union[Line, Observer]) -> Optional[Coordinate]:
    """
    Intersection of lines and observers in any combination

    Line/line is a closed-form solve. Line/observer returns the crossing in
    the first segment that has one. Observer/observer scans the first
    observer's segments in order against each of the second's and returns
    the first crossing found, which is the earliest one only for simple
    worldlines.
    """
    if isinstance(a, Line) and isinstance(b, Line):
        return a.intersect(b)
    if isinstance(a, Line):
        return b.intersect(a)
    if isinstance(b, Line):
        return a.intersect(b)
    return a.intersect_observer(b)


__all__ = [
    'Relativity',
    'AxisType',
    'Line',
    'MotionCurve',
    'LimitType',
    'WorldlineSegment',
    'SegmentSpec',
    'Observer',
    'IntervalObserver',
    'FrameAt',
    'Frame',
    'Path',
    'intersect',
    'SOURCES',
    'TARGETS',
]
