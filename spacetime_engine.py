"""
Execution engine: runs compiled HCode against a scoped variable
environment and produces resolved drawing commands.

One call to ExecutionEngine.execute is one complete pass. Every pass
starts from an empty environment; only values declared `static` survive
between passes, held by the engine and keyed by declaration.
"""

import math
import warnings
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from spacetime_errors import ExecutionError, SpacetimeError
from spacetime_functions import CallContext, FunctionRegistry
from spacetime_geometry import Bounds, Coordinate, Interval, PropertyContainer, WorldlineEndpoint
from spacetime_kinematics import (
    Frame, IntervalObserver, LimitType, Line, Observer, Path, SegmentSpec,
)
from spacetime_parser import HCodeProgram, Instruction, ObserverShape, Op
from spacetime_values import (
    ValueType, as_coordinate, as_frame, as_number, as_observer, as_string,
    compare, copy_value, format_number, from_host, is_truthy, to_display_string,
    type_name, type_of, values_equal,
)

# ============================================================================
# CONFIGURATION AND RESULTS
# ============================================================================

@dataclass
class EngineOptions:
    """Engine-level configuration"""
    max_instructions: int = 5_000_000
    print_precision: int = 4
    print_sink: Optional[Callable[[str], None]] = None


DEFAULT_SETTINGS = {"units": 1.0, "displayPrecision": 4, "printPrecision": 4}

ANY_FRAME = (ValueType.FRAME, ValueType.OBSERVER)
BOOL = (ValueType.BOOLEAN,)
NUM = (ValueType.NUMBER,)
STR = (ValueType.STRING,)
COORD = (ValueType.COORDINATE,)
BOUNDS = (ValueType.BOUNDS,)

# kind -> property -> (accepted types, default)
COMMAND_PROPERTIES: Dict[str, Dict[str, Tuple[Tuple[ValueType, ...], Any]]] = {
    "display": {"origin": (COORD, Coordinate(0.0, 0.0)), "scale": (NUM, 1.0), "units": (NUM, 1.0)},
    "frame": {"frame": (ANY_FRAME, None)},
    "animation": {"control": (STR, "loop"), "reps": (NUM, 500.0), "speed": (NUM, 1.0)},
    "axes": {"frame": (ANY_FRAME, None), "x": (BOOL, True), "t": (BOOL, True),
             "xLabel": (STR, "x"), "tLabel": (STR, "t"),
             "ticks": (BOOL, True), "tickLabels": (BOOL, True)},
    "grid": {"frame": (ANY_FRAME, None)},
    "hypergrid": {"x": (BOOL, True), "t": (BOOL, True)},
    "event": {"location": (COORD, None), "text": (STR, ""), "boost": (ANY_FRAME, None)},
    "line": {"line": ((ValueType.LINE,), None), "bounds": (BOUNDS, None)},
    "worldline": {"observer": ((ValueType.OBSERVER,), None), "bounds": (BOUNDS, None)},
    "path": {"path": ((ValueType.PATH,), None), "closed": (BOOL, False)},
    "label": {"location": (COORD, None), "text": (STR, ""), "rotation": (NUM, 0.0)},
}

# Commands that carry no spacetime geometry
SCREEN_COMMANDS = ("display", "animation", "hypergrid")


@dataclass
class DrawingCommand:
    """One resolved drawing operation handed to the renderer"""
    kind: str
    properties: Dict[str, Any]
    style: List[str] = field(default_factory=list)
    line: int = 0
    column: int = 0

    def relative_to(self, frame: Frame) -> "DrawingCommand":
        props = {name: _to_drawing_frame(value, frame) for name, value in self.properties.items()}
        return DrawingCommand(self.kind, props, list(self.style), self.line, self.column)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'properties': {name: encode_value(value) for name, value in self.properties.items()},
            'style': list(self.style),
            'line': self.line,
            'column': self.column,
        }


@dataclass
class ControlVariable:
    """A host-adjustable variable declared by animate/range/toggle/choice"""
    name: str
    kind: str
    value: Any
    label: str = ""
    params: Dict[str, Any] = field(default_factory=dict)
    restart: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'kind': self.kind,
            'value': encode_value(self.value),
            'label': self.label,
            'params': {k: encode_value(v) for k, v in self.params.items()},
            'restart': self.restart,
        }


@dataclass
class ExecutionResult:
    """Everything one pass produced"""
    commands: List[DrawingCommand] = field(default_factory=list)
    output: List[str] = field(default_factory=list)
    controls: List[ControlVariable] = field(default_factory=list)
    settings: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_SETTINGS))
    frame: Frame = field(default_factory=Frame)
    instructions_executed: int = 0

    def commands_of(self, kind: str) -> List[DrawingCommand]:
        return [c for c in self.commands if c.kind == kind]

    def control(self, name: str) -> Optional[ControlVariable]:
        for control in self.controls:
            if control.name == name:
                return control
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'commands': [c.to_dict() for c in self.commands],
            'output': list(self.output),
            'controls': [c.to_dict() for c in self.controls],
            'settings': dict(self.settings),
            'frame': encode_value(self.frame),
            'instructions_executed': self.instructions_executed,
        }


def _endpoint_dict(point: WorldlineEndpoint) -> Dict[str, float]:
    return asdict(point)


def encode_value(value: Any) -> Any:
    """JSON-friendly form of a runtime value"""
    vt = type_of(value)
    if vt in (ValueType.NULL, ValueType.BOOLEAN, ValueType.NUMBER, ValueType.STRING):
        return value
    if vt == ValueType.COORDINATE:
        return {'x': value.x, 't': value.t}
    if vt == ValueType.FRAME:
        return {'origin': encode_value(value.origin), 'v': value.v}
    if vt == ValueType.LINE:
        return {'angle': value.angle, 'point': encode_value(value.point),
                'bounds': encode_value(value.bounds) if value.bounds is not None else None}
    if vt == ValueType.PATH:
        return {'points': [encode_value(p) for p in value.points]}
    if vt == ValueType.BOUNDS:
        return {'min': encode_value(value.min), 'max': encode_value(value.max)}
    if vt == ValueType.INTERVAL:
        return {'type': value.type.value, 'min': value.min, 'max': value.max}
    data = {
        'origin': encode_value(value.origin),
        'tau': value.tau,
        'd': value.d,
        'segments': [{'a': s.a, 'limit': s.limit_type.value,
                      'min': _endpoint_dict(s.min), 'max': _endpoint_dict(s.max)}
                     for s in value.segments],
    }
    if isinstance(value, IntervalObserver):
        data['interval'] = encode_value(value.interval)
    return data


def _to_drawing_frame(value: Any, frame: Frame) -> Any:
    if isinstance(value, Coordinate):
        return frame.to_frame(value)
    if isinstance(value, (Frame, Observer, Line, Path)):
        return value.relative_to(frame)
    return value


# ============================================================================
# ENVIRONMENT
# ============================================================================

class Environment:
    """Lexically scoped variables; inner scopes see outer ones"""

    def __init__(self):
        self.scopes: List[Dict[str, Any]] = [{}]

    def push(self):
        self.scopes.append({})

    def pop(self):
        if len(self.scopes) == 1:
            raise ExecutionError("Scope stack underflow")
        self.scopes.pop()

    def _find(self, name: str) -> Optional[Dict[str, Any]]:
        for scope in reversed(self.scopes):
            if name in scope:
                return scope
        return None

    def is_defined(self, name: str) -> bool:
        return self._find(name) is not None

    def lookup(self, name: str) -> Any:
        scope = self._find(name)
        if scope is None:
            raise ExecutionError(f"Variable '{name}' is not defined")
        return scope[name]

    def assign(self, name: str, value: Any):
        """Update the innermost existing binding, or create one in the current scope"""
        scope = self._find(name)
        if scope is None:
            scope = self.scopes[-1]
        scope[name] = value

    def declare(self, name: str, value: Any) -> Dict[str, Any]:
        scope = self.scopes[-1]
        scope[name] = value
        return scope


# ============================================================================
# OPERATORS
# ============================================================================

def _divide(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _modulo(a: float, b: float) -> float:
    if b == 0 or math.isinf(a) or math.isnan(a) or math.isnan(b):
        return math.nan
    return math.fmod(a, b)


def _power(a: float, b: float) -> float:
    try:
        return math.pow(a, b)
    except ValueError:
        return math.nan
    except OverflowError:
        return math.inf


def _type_error(op: str, a: Any, b: Any) -> ExecutionError:
    return ExecutionError(f"Operator '{op}' can't be applied to {type_name(a)} and {type_name(b)}")


def binary_operation(op: str, a: Any, b: Any, precision: int = 4) -> Any:
    """Apply a binary operator to two runtime values"""
    ta, tb = type_of(a), type_of(b)
    numbers = ta == tb == ValueType.NUMBER

    if op == "+":
        if numbers:
            return a + b
        if ta == ValueType.STRING or tb == ValueType.STRING:
            return to_display_string(a, precision) + to_display_string(b, precision)
        if ta == tb == ValueType.COORDINATE:
            return a + b
        raise _type_error(op, a, b)

    if op == "-":
        if numbers:
            return a - b
        if ta == tb == ValueType.COORDINATE:
            return a - b
        raise _type_error(op, a, b)

    if op == "*":
        if numbers:
            return a * b
        if ta == ValueType.COORDINATE and tb == ValueType.NUMBER:
            return a.scale(b)
        if ta == ValueType.NUMBER and tb == ValueType.COORDINATE:
            return b.scale(a)
        raise _type_error(op, a, b)

    if op in ("/", "%", "^"):
        if not numbers:
            raise _type_error(op, a, b)
        if op == "/":
            return _divide(a, b)
        if op == "%":
            return _modulo(a, b)
        return _power(a, b)

    if op == "==":
        return values_equal(a, b)
    if op == "!=":
        return not values_equal(a, b, op)
    if op in ("<", ">", "<=", ">="):
        return compare(a, b, op)

    if op in ("->", "<-"):
        if ta != ValueType.COORDINATE or tb not in ANY_FRAME:
            raise _type_error(op, a, b)
        frame = as_frame(b)
        return frame.to_frame(a) if op == "->" else frame.to_rest(a)

    raise ExecutionError(f"Unknown operator '{op}'")


def unary_operation(op: str, a: Any) -> Any:
    ta = type_of(a)
    if op == "!":
        return not is_truthy(a)
    if ta == ValueType.NUMBER:
        return -a if op == "-" else a
    if ta == ValueType.COORDINATE:
        return -a if op == "-" else a.copy()
    raise ExecutionError(f"Operator '{op}' can't be applied to {ta.value}")


# ============================================================================
# ENGINE
# ============================================================================

class ExecutionEngine:
    """
    Runs compiled programs.

    The engine owns its function registry and the store of static
    variables; nothing is shared between engine instances.
    """

    def __init__(self, options: Optional[EngineOptions] = None,
                 registry: Optional[FunctionRegistry] = None):
        self.options = options or EngineOptions()
        self.registry = registry or FunctionRegistry()
        self.statics: Dict[int, Any] = {}

    def reset_statics(self):
        self.statics.clear()

    def execute(self, program: HCodeProgram, bindings: Optional[Dict[str, Any]] = None,
                frame_number: Optional[int] = None) -> ExecutionResult:
        """
        Run one complete pass

        Args:
            program: Compiled HCode
            bindings: Host values for control variables, by name
            frame_number: Animation frame (1-based) used for unbound animate variables

        Returns:
            ExecutionResult with the drawing commands in script order

        Raises:
            SpacetimeError: Any failure; no partial result is returned
        """
        run = _ExecutionPass(self, program, bindings or {}, frame_number)
        return run.run()


class _ExecutionPass:
    """State of a single pass"""

    def __init__(self, engine: ExecutionEngine, program: HCodeProgram,
                 bindings: Dict[str, Any], frame_number: Optional[int]):
        self.engine = engine
        self.program = program
        self.bindings = bindings
        self.frame_number = frame_number
        self.env = Environment()
        self.stack: List[Any] = []
        self.result = ExecutionResult()
        self.precision = engine.options.print_precision
        self.result.settings["printPrecision"] = self.precision
        self.static_scopes: Dict[int, Tuple[Dict[str, Any], str]] = {}
        # Statics reach the engine only when the pass completes
        self.statics: Dict[int, Any] = dict(engine.statics)
        self.warned_print = False
        self.pc = 0

        self.handlers = {
            Op.PUSH: self.op_push,
            Op.LOAD: self.op_load,
            Op.LOAD_DYNAMIC: self.op_load_dynamic,
            Op.DEFINED: self.op_defined,
            Op.STORE: self.op_store,
            Op.STORE_DYNAMIC: self.op_store_dynamic,
            Op.DECLARE: self.op_declare,
            Op.LOAD_PROP: self.op_load_prop,
            Op.STORE_PROP: self.op_store_prop,
            Op.UNARY: self.op_unary,
            Op.BINARY: self.op_binary,
            Op.JUMP: self.op_jump,
            Op.JUMP_IF_FALSE: self.op_jump_if_false,
            Op.JUMP_AND: self.op_jump_and,
            Op.JUMP_OR: self.op_jump_or,
            Op.TO_BOOLEAN: self.op_to_boolean,
            Op.CALL: self.op_call,
            Op.COORDINATE: self.op_coordinate,
            Op.OBSERVER: self.op_observer,
            Op.FRAME_AT: self.op_frame_at,
            Op.FRAME: self.op_frame,
            Op.LINE_AXIS: self.op_line_axis,
            Op.LINE_ANGLE: self.op_line_angle,
            Op.LINE_POINTS: self.op_line_points,
            Op.PATH: self.op_path,
            Op.BOUNDS: self.op_bounds,
            Op.INTERVAL: self.op_interval,
            Op.ENTER_SCOPE: lambda arg: self.env.push(),
            Op.EXIT_SCOPE: lambda arg: self.env.pop(),
            Op.FOR_TEST: self.op_for_test,
            Op.FOR_STEP: self.op_for_step,
            Op.PRINT: self.op_print,
            Op.STATIC_CHECK: self.op_static_check,
            Op.STATIC_STORE: self.op_static_store,
            Op.ANIMATE: self.op_animate,
            Op.RANGE: self.op_range,
            Op.TOGGLE: self.op_toggle,
            Op.CHOICE: self.op_choice,
            Op.SET: self.op_set,
            Op.COMMAND: self.op_command,
        }

    def run(self) -> ExecutionResult:
        code = self.program.instructions
        limit = self.engine.options.max_instructions
        count = 0
        instr: Optional[Instruction] = None

        try:
            while self.pc < len(code):
                instr = code[self.pc]
                self.pc += 1
                count += 1
                if count > limit:
                    raise ExecutionError(f"Instruction limit of {limit} exceeded")
                self.handlers[instr.op](instr.arg)
        except SpacetimeError as e:
            if instr is not None:
                e.with_position(instr.line, instr.column)
            raise
        except (ValueError, ZeroDivisionError, OverflowError) as e:
            raise ExecutionError(str(e), instr.line, instr.column) from e

        for static_id in self.static_scopes:
            self._flush_static(static_id)
        self.engine.statics.update(self.statics)

        self.result.instructions_executed = count
        frame = self.result.frame
        if frame != Frame():
            self.result.commands = [c if c.kind in SCREEN_COMMANDS else c.relative_to(frame)
                                    for c in self.result.commands]
        return self.result

    # Stack helpers

    def pop(self) -> Any:
        return self.stack.pop()

    def pop_many(self, count: int) -> List[Any]:
        if count == 0:
            return []
        values = self.stack[-count:]
        del self.stack[-count:]
        return values

    def push(self, value: Any):
        self.stack.append(value)

    # Variables

    def _dynamic_name(self, name: str) -> str:
        index = as_number(self.pop(), "index")
        return f"{name}[{format_number(index)}]"

    def op_push(self, value):
        self.push(value)

    def op_load(self, name):
        self.push(self.env.lookup(name))

    def op_load_dynamic(self, name):
        self.push(self.env.lookup(self._dynamic_name(name)))

    def op_defined(self, name):
        self.push(self.env.is_defined(name))

    def op_store(self, name):
        self.env.assign(name, copy_value(self.pop()))

    def op_store_dynamic(self, name):
        value = self.pop()
        self.env.assign(self._dynamic_name(name), copy_value(value))

    def op_declare(self, name):
        self.env.declare(name, copy_value(self.pop()))

    def op_load_prop(self, name):
        target = self.pop()
        if not isinstance(target, PropertyContainer):
            raise ExecutionError(f"Values of type {type_name(target)} have no properties")
        self.push(target.get_property(name))

    def op_store_prop(self, name):
        value = self.pop()
        target = self.pop()
        if not isinstance(target, PropertyContainer):
            raise ExecutionError(f"Values of type {type_name(target)} have no properties")
        target.set_property(name, copy_value(value))

    # Operators and control flow

    def op_unary(self, op):
        self.push(unary_operation(op, self.pop()))

    def op_binary(self, op):
        b = self.pop()
        a = self.pop()
        self.push(binary_operation(op, a, b, self.precision))

    def op_jump(self, target):
        self.pc = target

    def op_jump_if_false(self, target):
        if not is_truthy(self.pop()):
            self.pc = target

    def op_jump_and(self, target):
        if not is_truthy(self.stack[-1]):
            self.stack[-1] = False
            self.pc = target
        else:
            self.pop()

    def op_jump_or(self, target):
        if is_truthy(self.stack[-1]):
            self.stack[-1] = True
            self.pc = target
        else:
            self.pop()

    def op_to_boolean(self, arg):
        self.push(is_truthy(self.pop()))

    def op_for_test(self, arg):
        var, end_name, step_name = arg
        value = as_number(self.env.lookup(var), "loop variable")
        end = as_number(self.env.lookup(end_name), "loop limit")
        step = as_number(self.env.lookup(step_name), "loop step")
        if step == 0:
            raise ExecutionError("The step of a for loop can't be 0")
        self.push(value <= end if step > 0 else value >= end)

    def op_for_step(self, arg):
        var, step_name = arg
        value = as_number(self.env.lookup(var), "loop variable")
        self.env.assign(var, value + self.env.lookup(step_name))

    def op_call(self, arg):
        name, argc = arg
        args = self.pop_many(argc)
        context = CallContext(self.precision)
        self.push(from_host(self.engine.registry.call(name, args, context)))

    # Object construction

    def op_coordinate(self, arg):
        t = as_number(self.pop(), "t coordinate")
        x = as_number(self.pop(), "x coordinate")
        self.push(Coordinate(x, t))

    def op_observer(self, shape: ObserverShape):
        count = len(shape.header) + sum(
            int(s.has_velocity) + int(s.has_acceleration) + int(s.limit_type != LimitType.NONE)
            for s in shape.segments)
        values = iter(self.pop_many(count))

        header = {name: next(values) for name in shape.header}
        origin = as_coordinate(header["origin"], "origin") if "origin" in header else None
        distance = as_number(header["distance"], "distance") if "distance" in header else 0.0
        tau = as_number(header["tau"], "tau") if "tau" in header else 0.0

        specs = []
        for seg in shape.segments:
            spec = SegmentSpec(limit_type=seg.limit_type)
            if seg.has_velocity:
                spec.v = as_number(next(values), "velocity")
                if not -1.0 < spec.v < 1.0:
                    raise ExecutionError("The velocity must be between -1 and 1, exclusive")
            if seg.has_acceleration:
                spec.a = as_number(next(values), "acceleration")
            if seg.limit_type != LimitType.NONE:
                spec.limit = as_number(next(values), f"{seg.limit_type.value} limit")
            specs.append(spec)
        self.push(Observer(origin, tau, distance, specs or None))

    def op_frame_at(self, arg):
        at, has_value = arg
        value = as_number(self.pop(), at.value) if has_value else 0.0
        observer = as_observer(self.pop(), "frame's observer")
        self.push(Frame.from_observer(observer, at, value))

    def op_frame(self, keys):
        values = dict(zip(keys, self.pop_many(len(keys))))
        frame = Frame()
        if "origin" in values:
            frame.set_property("origin", as_coordinate(values["origin"], "origin"))
        if "velocity" in values:
            frame.set_property("v", as_number(values["velocity"], "velocity"))
        self.push(frame)

    def op_line_axis(self, arg):
        axis, has_offset = arg
        offset = as_number(self.pop(), "offset") if has_offset else 0.0
        frame = as_frame(self.pop(), "axis frame")
        self.push(Line.from_axis(axis, frame, offset))

    def op_line_angle(self, arg):
        point = as_coordinate(self.pop(), "point")
        angle = as_number(self.pop(), "angle")
        self.push(Line(angle, point))

    def op_line_points(self, arg):
        c2 = as_coordinate(self.pop(), "end point")
        c1 = as_coordinate(self.pop(), "start point")
        self.push(Line.from_points(c1, c2))

    def op_path(self, count):
        points = [as_coordinate(p, "path point") for p in self.pop_many(count)]
        self.push(Path(points))

    def op_bounds(self, arg):
        b = as_coordinate(self.pop(), "corner")
        a = as_coordinate(self.pop(), "corner")
        self.push(Bounds(a, b))

    def op_interval(self, kind):
        hi = as_number(self.pop(), "interval end")
        lo = as_number(self.pop(), "interval start")
        self.push(Interval(kind, lo, hi))

    # Statements

    def op_print(self, has_value):
        text = to_display_string(self.pop(), self.precision) if has_value else ""
        self.result.output.append(text)
        sink = self.engine.options.print_sink
        if sink is not None:
            sink(text)
        elif not self.warned_print:
            warnings.warn("print executed with no print sink attached; output is only kept on the result")
            self.warned_print = True

    def _flush_static(self, static_id: int):
        """Copy the live value of a static back into the pass store"""
        if static_id in self.static_scopes:
            scope, name = self.static_scopes[static_id]
            if name in scope:
                self.statics[static_id] = copy_value(scope[name])

    def op_static_check(self, arg):
        name, static_id, target = arg
        self._flush_static(static_id)
        if static_id in self.statics:
            scope = self.env.declare(name, copy_value(self.statics[static_id]))
            self.static_scopes[static_id] = (scope, name)
            self.pc = target

    def op_static_store(self, arg):
        name, static_id = arg
        value = self.pop()
        self.statics[static_id] = copy_value(value)
        scope = self.env.declare(name, copy_value(value))
        self.static_scopes[static_id] = (scope, name)

    def _declare_control(self, control: ControlVariable):
        if self.env.is_defined(control.name) or self.result.control(control.name):
            raise ExecutionError(f"Variable '{control.name}' is already defined")
        self.env.declare(control.name, control.value)
        self.result.controls.append(control)

    def _binding(self, name: str) -> Any:
        if name not in self.bindings:
            return None
        return from_host(self.bindings[name])

    def op_animate(self, name):
        step = as_number(self.pop(), "step")
        final = as_number(self.pop(), "final value")
        init = as_number(self.pop(), "initial value")
        bound = self._binding(name)
        if bound is not None:
            value = as_number(bound, f"binding for '{name}'")
        elif self.frame_number is not None:
            value = animation_value(init, final, step, self.frame_number)
        else:
            value = init
        params = {"init": init, "final": None if math.isnan(final) else final, "step": step}
        self._declare_control(ControlVariable(name, "animate", value, "", params))

    def op_range(self, name):
        label = as_string(self.pop(), "label")
        hi = as_number(self.pop(), "maximum")
        lo = as_number(self.pop(), "minimum")
        init = as_number(self.pop(), "initial value")
        if lo > hi:
            lo, hi = hi, lo
        bound = self._binding(name)
        value = init if bound is None else as_number(bound, f"binding for '{name}'")
        value = min(max(value, lo), hi)
        self._declare_control(ControlVariable(name, "range", value, label, {"min": lo, "max": hi}))

    def op_toggle(self, arg):
        name, restart = arg
        label = as_string(self.pop(), "label")
        init = is_truthy(self.pop())
        bound = self._binding(name)
        value = init if bound is None else is_truthy(bound)
        self._declare_control(ControlVariable(name, "toggle", value, label, {}, restart))

    def op_choice(self, arg):
        name, count, restart = arg
        label = to_display_string(self.pop(), self.precision)
        choices = [as_string(c, "choice") for c in self.pop_many(count)]
        init = as_number(self.pop(), "initial choice")
        bound = self._binding(name)
        value = init if bound is None else as_number(bound, f"binding for '{name}'")
        if value != math.floor(value) or not 0 <= value < count:
            raise ExecutionError(f"Choice index {format_number(value)} is out of range 0 to {count - 1}")
        self._declare_control(ControlVariable(name, "choice", value, label, {"choices": choices}, restart))

    def op_set(self, name):
        value = as_number(self.pop(), name)
        if name == "units":
            if value <= 0:
                raise ExecutionError("units must be > 0")
            self.result.settings[name] = value
            return
        if value < 0 or value != math.floor(value):
            raise ExecutionError(f"{name} must be a whole number >= 0")
        self.result.settings[name] = int(value)
        if name == "printPrecision":
            self.precision = int(value)

    def op_command(self, arg):
        kind, names = arg
        values = self.pop_many(len(names))
        spec = COMMAND_PROPERTIES[kind]
        props: Dict[str, Any] = {}
        style: List[str] = []

        for name, value in zip(names, values):
            if name is None:
                if not isinstance(value, str):
                    raise ExecutionError(f"Unexpected {type_name(value)} in '{kind}'; "
                                         f"style names must be strings")
                style.append(value)
                continue
            if name not in spec:
                raise ExecutionError(f"'{name}' is not a valid property for '{kind}'")
            if name in props:
                raise ExecutionError(f"Property '{name}' is given twice")
            accepted = spec[name][0]
            if type_of(value) not in accepted:
                wanted = " or ".join(t.value for t in accepted)
                raise ExecutionError(f"Property '{name}' of '{kind}' must be {wanted}, not {type_name(value)}")
            props[name] = copy_value(value)

        for name, (accepted, default) in spec.items():
            if name not in props:
                props[name] = copy_value(default)

        # Frames given as observers mean the observer's frame at tau = 0
        for name in ("frame", "boost"):
            if props.get(name) is not None:
                props[name] = as_frame(props[name])

        if kind == "frame":
            self.result.frame = props["frame"] or Frame()
            return
        if kind in ("axes", "grid") and props["frame"] is None:
            props["frame"] = Frame()
        if kind == "event" and props["boost"] is not None:
            props["location"] = props["boost"].to_rest(props["location"])

        instr = self.program.instructions[self.pc - 1]
        self.result.commands.append(DrawingCommand(kind, props, style, instr.line, instr.column))


def animation_value(init: float, final: float, step: float, frame_number: int) -> float:
    """Value of an animate variable on a 1-based frame, held at final once reached"""
    value = init + (frame_number - 1) * step
    if not math.isnan(final):
        if (step > 0 and value > final) or (step < 0 and value < final):
            value = final
    return value


__all__ = [
    'EngineOptions',
    'DrawingCommand',
    'ControlVariable',
    'ExecutionResult',
    'Environment',
    'ExecutionEngine',
    'binary_operation',
    'unary_operation',
    'animation_value',
    'encode_value',
    'COMMAND_PROPERTIES',
]
