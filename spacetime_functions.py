"""
Built-in function registry.

Every function declares the accepted value types for each argument
position; the registry validates a call against that declaration before
the function body runs, so argument problems surface as one uniform
ExecutionError. A registry is an ordinary object owned by one engine.
"""

import math
import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from spacetime_errors import ExecutionError
from spacetime_geometry import Bounds, Interval, sign
from spacetime_kinematics import (
    IntervalObserver, Line, Observer, Relativity, intersect,
)
from spacetime_values import ValueType, as_frame, to_display_string, type_of

NUM = (ValueType.NUMBER,)
OBS = (ValueType.OBSERVER,)
LINE = (ValueType.LINE,)
VELOCITY = (ValueType.NUMBER, ValueType.FRAME, ValueType.OBSERVER)
LINE_OR_OBSERVER = (ValueType.LINE, ValueType.OBSERVER)
ANY = None


@dataclass
class BuiltinFunction:
    """A registered function and its argument declaration"""
    name: str
    func: Callable
    arg_types: Tuple[Optional[Tuple[ValueType, ...]], ...]
    min_args: int
    variadic: bool = False
    needs_context: bool = False

    @property
    def max_args(self) -> Optional[int]:
        return None if self.variadic else len(self.arg_types)

    def accepted(self, index: int) -> Optional[Tuple[ValueType, ...]]:
        if index < len(self.arg_types):
            return self.arg_types[index]
        return self.arg_types[-1]


@dataclass
class CallContext:
    """Per-pass state a function may read"""
    print_precision: int = 4


def _arity_text(fn: BuiltinFunction) -> str:
    if fn.variadic:
        return f"at least {fn.min_args}"
    if fn.min_args != fn.max_args:
        return f"{fn.min_args} to {fn.max_args}"
    return str(fn.min_args)


def _types_text(types: Tuple[ValueType, ...]) -> str:
    names = [t.value for t in types]
    if len(names) == 1:
        return names[0]
    return ", ".join(names[:-1]) + " or " + names[-1]


class FunctionRegistry:
    """Name to built-in function table with pre-call validation"""

    def __init__(self, seed: Optional[int] = None):
        self._functions: Dict[str, BuiltinFunction] = {}
        self.random = random.Random(seed)
        register_builtins(self)

    def register(self, name: str, func: Callable, arg_types: Sequence = (),
                 min_args: Optional[int] = None, variadic: bool = False,
                 needs_context: bool = False):
        arg_types = tuple(arg_types)
        self._functions[name] = BuiltinFunction(
            name, func, arg_types,
            len(arg_types) if min_args is None else min_args,
            variadic, needs_context)

    def has(self, name: str) -> bool:
        return name in self._functions

    def get(self, name: str) -> BuiltinFunction:
        try:
            return self._functions[name]
        except KeyError:
            raise ExecutionError(f"Unknown function '{name}'") from None

    def names(self) -> List[str]:
        return sorted(self._functions)

    def validate(self, name: str, args: Sequence[Any]) -> BuiltinFunction:
        """
        Check a call against the function's declaration

        Raises:
            ExecutionError: Unknown function, wrong argument count or type
        """
        fn = self.get(name)
        count = len(args)
        if count < fn.min_args or (fn.max_args is not None and count > fn.max_args):
            raise ExecutionError(
                f"Incorrect number of arguments for function '{name}'. "
                f"Expected {_arity_text(fn)}, received {count}")
        for i, arg in enumerate(args):
            accepted = fn.accepted(i)
            if accepted is ANY:
                continue
            actual = type_of(arg)
            if actual not in accepted:
                raise ExecutionError(
                    f"Argument {i + 1} of function '{name}' must be {_types_text(accepted)}, "
                    f"not {actual.value}")
        return fn

    def call(self, name: str, args: Sequence[Any], context: Optional[CallContext] = None) -> Any:
        fn = self.validate(name, args)
        if fn.needs_context:
            return fn.func(context or CallContext(), *args)
        return fn.func(*args)


# ============================================================================
# BUILT-INS
# ============================================================================

def _velocity(value) -> float:
    """A velocity given directly or through a frame or observer"""
    if type_of(value) == ValueType.NUMBER:
        return float(value)
    return as_frame(value).v


def _nan_to_null(value: float) -> Optional[float]:
    return None if math.isnan(value) else value


def _round(x: float) -> float:
    # Halves round up, also for negative numbers
    return float(math.floor(x + 0.5))


def _ieee(func: Callable, overflow: Callable[[float], float] = lambda x: math.inf) -> Callable:
    """Wrap a math function so domain errors give NaN and overflow gives inf, as '^' does"""
    def call(x: float) -> float:
        try:
            return func(x)
        except ValueError:
            return math.nan
        except OverflowError:
            return overflow(x)
    return call


def _log(func: Callable) -> Callable:
    return _ieee(lambda x: -math.inf if x == 0 else func(x))


def _atanh(x: float) -> float:
    if abs(x) == 1:
        return math.copysign(math.inf, x)
    return math.atanh(x)


def _to_string(context: CallContext, value, digits: Optional[float] = None) -> str:
    if digits is None:
        return to_display_string(value, context.print_precision)
    if digits < 0:
        raise ExecutionError("The number of digits must be >= 0")
    return to_display_string(value, context.print_precision, int(digits))


def _rgb(r: float, g: float, b: float) -> float:
    def channel(c: float) -> int:
        return max(0, min(255, int(round(c))))
    return float((channel(r) << 16) | (channel(g) << 8) | channel(b))


def _set_bounds(line: Line, bounds: Bounds) -> Line:
    return line.with_bounds(bounds)


def _set_interval(observer: Observer, interval: Interval) -> Observer:
    return IntervalObserver(observer, interval)


def _clear_interval(observer: Observer) -> Observer:
    if isinstance(observer, IntervalObserver):
        return observer.observer
    return observer


def _to_relative_v(v: float, to, source=None) -> float:
    if source is not None:
        v = Relativity.v_prime(v, _velocity(source))
    return Relativity.relative_velocity(v, _velocity(to))


def _converter(source: str, target: str) -> Callable:
    def convert(value: float, observer: Observer) -> Optional[float]:
        return _nan_to_null(observer.query(source, value, target))
    return convert


CONVERTER_SOURCES = ("d", "t", "tau", "v")
CONVERTER_TARGETS = {"D": "d", "T": "t", "Tau": "tau", "V": "v", "X": "x"}


def register_builtins(registry: FunctionRegistry):
    """Install the standard function table"""
    reg = registry.register

    # Math, angles in degrees
    reg("abs", abs, [NUM])
    reg("ceil", lambda x: float(math.ceil(x)) if math.isfinite(x) else x, [NUM])
    reg("floor", lambda x: float(math.floor(x)) if math.isfinite(x) else x, [NUM])
    reg("round", lambda x: _round(x) if math.isfinite(x) else x, [NUM])
    reg("sign", sign, [NUM])
    reg("sqrt", _ieee(math.sqrt), [NUM])
    reg("exp", _ieee(math.exp), [NUM])
    reg("log", _log(math.log), [NUM])
    reg("log10", _log(math.log10), [NUM])
    reg("max", lambda *xs: max(xs), [NUM], min_args=1, variadic=True)
    reg("min", lambda *xs: min(xs), [NUM], min_args=1, variadic=True)
    reg("random", registry.random.random)
    reg("pi", lambda: math.pi)
    reg("e", lambda: math.e)

    reg("sin", _ieee(lambda x: math.sin(math.radians(x))), [NUM])
    reg("cos", _ieee(lambda x: math.cos(math.radians(x))), [NUM])
    reg("tan", _ieee(lambda x: math.tan(math.radians(x))), [NUM])
    reg("asin", _ieee(lambda x: math.degrees(math.asin(x))), [NUM])
    reg("acos", _ieee(lambda x: math.degrees(math.acos(x))), [NUM])
    reg("atan", lambda x: math.degrees(math.atan(x)), [NUM])
    reg("atan2", lambda y, x: math.degrees(math.atan2(y, x)), [NUM, NUM])
    reg("sinh", _ieee(math.sinh, lambda x: math.copysign(math.inf, x)), [NUM])
    reg("cosh", _ieee(math.cosh), [NUM])
    reg("tanh", math.tanh, [NUM])
    reg("asinh", math.asinh, [NUM])
    reg("acosh", _ieee(math.acosh), [NUM])
    reg("atanh", _ieee(_atanh), [NUM])

    # Relativity
    reg("gamma", lambda v: Relativity.gamma(_velocity(v)), [VELOCITY])
    reg("gammaToV", Relativity.gamma_to_v, [NUM])
    reg("toXAngle", lambda v: Relativity.v_to_x_angle(_velocity(v)), [VELOCITY])
    reg("toTAngle", lambda v: Relativity.v_to_t_angle(_velocity(v)), [VELOCITY])
    reg("toRelativeV", _to_relative_v, [NUM, VELOCITY, VELOCITY], min_args=2)
    reg("toRelativeAngle", lambda angle, v: Relativity.to_prime_angle(angle, _velocity(v)),
        [NUM, VELOCITY])
    reg("dopplerWavelength", Relativity.doppler_v_to_wavelength, [NUM, NUM])
    reg("dopplerFrequency", Relativity.doppler_v_to_frequency, [NUM, NUM])
    reg("dopplerWavelengthToV", Relativity.doppler_wavelength_to_v, [NUM, NUM])
    reg("dopplerFrequencyToV", Relativity.doppler_frequency_to_v, [NUM, NUM])

    # Observer queries: dToT, tauToX, vToD, ...
    for source in CONVERTER_SOURCES:
        for tgt_name, target in CONVERTER_TARGETS.items():
            if target == source:
                continue
            reg(f"{source}To{tgt_name}", _converter(source, target), [NUM, OBS])

    # Geometry
    reg("intersect", intersect, [LINE_OR_OBSERVER, LINE_OR_OBSERVER])
    reg("setBounds", _set_bounds, [LINE, (ValueType.BOUNDS,)])
    reg("clearBounds", lambda line: line.clear_bounds(), [LINE])
    reg("setInterval", _set_interval, [OBS, (ValueType.INTERVAL,)])
    reg("clearInterval", _clear_interval, [OBS])

    # Formatting
    reg("toString", _to_string, [ANY, NUM], min_args=1, needs_context=True)
    reg("rgb", _rgb, [NUM, NUM, NUM])


__all__ = [
    'BuiltinFunction',
    'CallContext',
    'FunctionRegistry',
    'register_builtins',
]
