"""
Runtime value system: the closed set of value tags a script can hold,
plus coercion, equality, ordering and display formatting.
"""

import math
from enum import Enum
from typing import Any, Optional

from spacetime_errors import ExecutionError
from spacetime_geometry import Bounds, Coordinate, Interval
from spacetime_kinematics import Frame, FrameAt, Line, Observer, Path


class ValueType(Enum):
    NUMBER = "float"
    BOOLEAN = "boolean"
    STRING = "string"
    NULL = "null"
    COORDINATE = "coordinate"
    INTERVAL = "interval"
    BOUNDS = "bounds"
    LINE = "line"
    PATH = "path"
    FRAME = "frame"
    OBSERVER = "observer"


def type_of(value: Any) -> ValueType:
    """Tag of a runtime value"""
    if value is None:
        return ValueType.NULL
    if isinstance(value, bool):
        return ValueType.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueType.NUMBER
    if isinstance(value, str):
        return ValueType.STRING
    if isinstance(value, Coordinate):
        return ValueType.COORDINATE
    if isinstance(value, Interval):
        return ValueType.INTERVAL
    if isinstance(value, Bounds):
        return ValueType.BOUNDS
    if isinstance(value, Line):
        return ValueType.LINE
    if isinstance(value, Path):
        return ValueType.PATH
    if isinstance(value, Frame):
        return ValueType.FRAME
    if isinstance(value, Observer):
        return ValueType.OBSERVER
    raise ExecutionError(f"Unsupported value of type {type(value).__name__}")


def type_name(value: Any) -> str:
    return type_of(value).value


def from_host(value: Any) -> Any:
    """Normalize a host-supplied binding (ints become floats)"""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        return float(value)
    type_of(value)
    return value


def copy_value(value: Any) -> Any:
    """Copy mutable values so assignments never alias"""
    if isinstance(value, (Coordinate, Frame)):
        return value.copy()
    return value


# ============================================================================
# COERCION
# ============================================================================

def as_number(value: Any, what: str = "value") -> float:
    if type_of(value) != ValueType.NUMBER:
        raise ExecutionError(f"The {what} must be a float, not {type_name(value)}")
    return float(value)


def as_string(value: Any, what: str = "value") -> str:
    if not isinstance(value, str):
        raise ExecutionError(f"The {what} must be a string, not {type_name(value)}")
    return value


def as_coordinate(value: Any, what: str = "value") -> Coordinate:
    if not isinstance(value, Coordinate):
        raise ExecutionError(f"The {what} must be a coordinate, not {type_name(value)}")
    return value


def as_observer(value: Any, what: str = "value") -> Observer:
    if not isinstance(value, Observer):
        raise ExecutionError(f"The {what} must be an observer, not {type_name(value)}")
    return value


def as_frame(value: Any, what: str = "value") -> Frame:
    """Frames pass through; an observer stands for its frame at tau = 0"""
    if isinstance(value, Frame):
        return value
    if isinstance(value, Observer):
        return Frame.from_observer(value, FrameAt.TAU, 0.0)
    raise ExecutionError(f"The {what} must be a frame or observer, not {type_name(value)}")


def is_truthy(value: Any) -> bool:
    """Condition value: booleans, or floats where non-zero is true"""
    if isinstance(value, bool):
        return value
    if type_of(value) == ValueType.NUMBER:
        return value != 0
    raise ExecutionError(f"A condition must be a boolean, not {type_name(value)}")


# ============================================================================
# EQUALITY AND ORDERING
# ============================================================================

def values_equal(a: Any, b: Any, op: str = "==") -> bool:
    """Equality for '==' and '!='; null compares with anything, other mixed types fail"""
    ta, tb = type_of(a), type_of(b)
    if ValueType.NULL in (ta, tb):
        return ta == tb
    if ta != tb:
        raise ExecutionError(f"Can't compare {ta.value} and {tb.value} with '{op}'")
    if ta == ValueType.NUMBER:
        return float(a) == float(b)
    return a == b


def compare(a: Any, b: Any, op: str) -> bool:
    ta, tb = type_of(a), type_of(b)
    if not (ta == tb and ta in (ValueType.NUMBER, ValueType.STRING)):
        raise ExecutionError(f"Can't compare {ta.value} and {tb.value} with '{op}'")
    if op == "<":
        return a < b
    if op == ">":
        return a > b
    if op == "<=":
        return a <= b
    return a >= b


# ============================================================================
# DISPLAY
# ============================================================================

def format_number(value: float, precision: int = 4) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    text = f"{value:.{precision}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        text = "0"
    return text


def to_display_string(value: Any, precision: int = 4, digits: Optional[int] = None) -> str:
    """Text form used by print, string concatenation and toString()"""
    p = precision if digits is None else digits
    vt = type_of(value)
    if vt == ValueType.NULL:
        return "null"
    if vt == ValueType.BOOLEAN:
        return "true" if value else "false"
    if vt == ValueType.NUMBER:
        return format_number(float(value), p)
    if vt == ValueType.STRING:
        return value
    if vt == ValueType.COORDINATE:
        return f"({format_number(value.x, p)}, {format_number(value.t, p)})"
    if vt == ValueType.FRAME:
        return f"[frame origin {to_display_string(value.origin, p)} velocity {format_number(value.v, p)}]"
    if vt == ValueType.LINE:
        return f"[line angle {format_number(value.angle, p)} through {to_display_string(value.point, p)}]"
    if vt == ValueType.PATH:
        return "[path " + ", ".join(to_display_string(c, p) for c in value.points) + "]"
    if vt == ValueType.INTERVAL:
        return (f"[interval {value.type.value} {format_number(value.min, p)} "
                f"to {format_number(value.max, p)}]")
    if vt == ValueType.BOUNDS:
        return f"[bounds {to_display_string(value.min, p)} {to_display_string(value.max, p)}]"
    segments = len(value.segments)
    return (f"[observer origin {to_display_string(value.origin, p)} tau {format_number(value.tau, p)} "
            f"distance {format_number(value.d, p)} ({segments} segment{'s' if segments != 1 else ''})]")


__all__ = [
    'ValueType',
    'type_of',
    'type_name',
    'from_host',
    'copy_value',
    'as_number',
    'as_string',
    'as_coordinate',
    'as_observer',
    'as_frame',
    'is_truthy',
    'values_equal',
    'compare',
    'format_number',
    'to_display_string',
]
