"""
Spacetime geometry primitives: coordinates, bounding boxes, intervals and
worldline endpoints, plus the fuzzy float comparisons used by the
kinematics code.

Diagram convention: x is horizontal, t is vertical, and light travels
along 45 degree lines (c = 1).
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

from spacetime_errors import ExecutionError

EPSILON = 5.0e-12

# ============================================================================
# FLOAT HELPERS
# ============================================================================

def fuzzy_zero(d: float) -> bool:
    return abs(d) < EPSILON


def fuzzy_eq(d1: float, d2: float) -> bool:
    if d1 == d2:
        return True
    return abs(d1 - d2) < EPSILON


def fuzzy_lt(d1: float, d2: float) -> bool:
    if fuzzy_eq(d1, d2):
        return False
    return d1 + EPSILON < d2


def fuzzy_le(d1: float, d2: float) -> bool:
    return d1 <= d2 + EPSILON


def fuzzy_gt(d1: float, d2: float) -> bool:
    if fuzzy_eq(d1, d2):
        return False
    return d1 - EPSILON > d2


def fuzzy_ge(d1: float, d2: float) -> bool:
    return d1 >= d2 - EPSILON


def sign(d: float) -> float:
    """Sign of d, treating 0 as positive"""
    return -1.0 if d < 0 else 1.0


def normalize_angle_180(angle: float) -> float:
    """Normalize to [-180, 180]; -180 maps to 180 only for non-negative input"""
    new_angle = angle + 180.0
    new_angle = new_angle - math.floor(new_angle / 360.0) * 360.0 - 180.0
    if new_angle == -180.0 and angle >= 0:
        new_angle = 180.0
    return new_angle


def normalize_angle_90(angle: float) -> float:
    """Normalize to (-90, 90]"""
    angle = angle + 90.0
    angle = angle - math.floor(angle / 180.0) * 180.0 - 90.0
    return 90.0 if angle == -90.0 else angle


def to_int(d: float) -> int:
    """Truncate toward zero"""
    return int(math.floor(d) if d >= 0 else math.ceil(d))


# ============================================================================
# PROPERTY CONTAINERS
# ============================================================================

class PropertyContainer:
    """
    Mixin for values that expose named properties to scripts.

    Subclasses list their property names in PROPERTY_NAMES; names listed
    in READ_ONLY_PROPERTIES can be fetched but not assigned.
    """

    PROPERTY_NAMES: Tuple[str, ...] = ()
    READ_ONLY_PROPERTIES: Tuple[str, ...] = ()

    def has_property(self, name: str) -> bool:
        return name in self.PROPERTY_NAMES

    def get_property(self, name: str) -> Any:
        if not self.has_property(name):
            raise ExecutionError(f"'{name}' is not a valid property")
        return self._get_property(name)

    def set_property(self, name: str, value: Any):
        if not self.has_property(name):
            raise ExecutionError(f"'{name}' is not a valid property")
        if name in self.READ_ONLY_PROPERTIES:
            raise ExecutionError(f"Property '{name}' is read-only")
        self._set_property(name, value)

    def _get_property(self, name: str) -> Any:
        return getattr(self, name)

    def _set_property(self, name: str, value: Any):
        setattr(self, name, value)


# ============================================================================
# COORDINATES AND BOUNDS
# ============================================================================

@dataclass
class Coordinate(PropertyContainer):
    """A spacetime event (x, t)"""
    x: float
    t: float

    PROPERTY_NAMES = ("x", "t")

    def _set_property(self, name: str, value: Any):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ExecutionError("Coordinate properties 'x' and 't' must be floating point numbers")
        setattr(self, name, float(value))

    def copy(self) -> "Coordinate":
        return Coordinate(self.x, self.t)

    def __add__(self, other: "Coordinate") -> "Coordinate":
        return Coordinate(self.x + other.x, self.t + other.t)

    def __sub__(self, other: "Coordinate") -> "Coordinate":
        return Coordinate(self.x - other.x, self.t - other.t)

    def __neg__(self) -> "Coordinate":
        return Coordinate(-self.x, -self.t)

    def scale(self, factor: float) -> "Coordinate":
        return Coordinate(self.x * factor, self.t * factor)

    def fuzzy_eq(self, other: "Coordinate") -> bool:
        return fuzzy_eq(self.x, other.x) and fuzzy_eq(self.t, other.t)

    def is_finite(self) -> bool:
        return math.isfinite(self.x) and math.isfinite(self.t)

    def __repr__(self):
        return f"({self.x}, {self.t})"


class Bounds:
    """Axis-aligned box in (x, t); corners are sorted on construction"""

    def __init__(self, a: Coordinate, b: Coordinate):
        self.min = Coordinate(min(a.x, b.x), min(a.t, b.t))
        self.max = Coordinate(max(a.x, b.x), max(a.t, b.t))

    @classmethod
    def everything(cls) -> "Bounds":
        return cls(Coordinate(-math.inf, -math.inf), Coordinate(math.inf, math.inf))

    @property
    def width(self) -> float:
        return self.max.x - self.min.x

    @property
    def height(self) -> float:
        return self.max.t - self.min.t

    def copy(self) -> "Bounds":
        return Bounds(self.min, self.max)

    def inside(self, c: Coordinate) -> bool:
        return (fuzzy_ge(c.x, self.min.x) and fuzzy_le(c.x, self.max.x) and
                fuzzy_ge(c.t, self.min.t) and fuzzy_le(c.t, self.max.t))

    def intersects(self, other: "Bounds") -> bool:
        return not (self.max.x < other.min.x or self.min.x > other.max.x or
                    self.max.t < other.min.t or self.min.t > other.max.t)

    def intersect(self, other: "Bounds") -> Optional["Bounds"]:
        """Overlap of two boxes, or None"""
        # A degenerate box sitting at infinity bounds nothing
        for box in (self, other):
            if box.min.x == box.max.x and math.isinf(box.min.x):
                return None
            if box.min.t == box.max.t and math.isinf(box.min.t):
                return None
        if not self.intersects(other):
            return None
        return Bounds(
            Coordinate(max(self.min.x, other.min.x), max(self.min.t, other.min.t)),
            Coordinate(min(self.max.x, other.max.x), min(self.max.t, other.max.t)))

    def __eq__(self, other):
        return isinstance(other, Bounds) and self.min == other.min and self.max == other.max

    def __repr__(self):
        return f"Bounds({self.min} to {self.max})"


# ============================================================================
# INTERVALS AND ENDPOINTS
# ============================================================================

class IntervalType(Enum):
    T = "time"
    TAU = "tau"
    D = "distance"


@dataclass
class Interval:
    """A closed range of t, tau or d; min and max are sorted"""
    type: IntervalType
    min: float
    max: float

    def __post_init__(self):
        if self.min > self.max:
            self.min, self.max = self.max, self.min

    def contains(self, value: float) -> bool:
        return fuzzy_ge(value, self.min) and fuzzy_le(value, self.max)

    def __repr__(self):
        return f"[interval {self.type.value} {self.min} to {self.max}]"


@dataclass
class WorldlineEndpoint:
    """State of an observer at one event"""
    v: float
    x: float
    t: float
    tau: float
    d: float

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.x, self.t)


__all__ = [
    'EPSILON',
    'fuzzy_zero',
    'fuzzy_eq',
    'fuzzy_lt',
    'fuzzy_le',
    'fuzzy_gt',
    'fuzzy_ge',
    'sign',
    'normalize_angle_180',
    'normalize_angle_90',
    'to_int',
    'PropertyContainer',
    'Coordinate',
    'Bounds',
    'IntervalType',
    'Interval',
    'WorldlineEndpoint',
]
