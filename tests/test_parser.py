from __future__ import annotations

import math

import pytest

from spacetime_errors import ParseError, SpacetimeError
from spacetime_kinematics import AxisType, FrameAt, LimitType
from spacetime_parser import HCodeProgram, ObserverShape, Op, compile_source


def ops(source: str) -> list:
    return [(i.op, i.arg) for i in compile_source(source).instructions]


def parse_error(source: str) -> ParseError:
    with pytest.raises(ParseError) as info:
        compile_source(source)
    return info.value


def test_assignment_emits_push_and_store():
    assert ops("x = 2;") == [(Op.PUSH, 2.0), (Op.STORE, "x")]


def test_multiplication_binds_tighter_than_addition():
    assert ops("x = 1 + 2 * 3;") == [
        (Op.PUSH, 1.0),
        (Op.PUSH, 2.0),
        (Op.PUSH, 3.0),
        (Op.BINARY, "*"),
        (Op.BINARY, "+"),
        (Op.STORE, "x"),
    ]


def test_power_is_right_associative():
    assert ops("x = 2 ^ 3 ^ 2;")[:5] == [
        (Op.PUSH, 2.0),
        (Op.PUSH, 3.0),
        (Op.PUSH, 2.0),
        (Op.BINARY, "^"),
        (Op.BINARY, "^"),
    ]


def test_unary_minus_applies_before_power_operand():
    assert ops("x = -2 ^ 2;")[:4] == [
        (Op.PUSH, 2.0),
        (Op.UNARY, "-"),
        (Op.PUSH, 2.0),
        (Op.BINARY, "^"),
    ]


def test_constant_expressions_are_not_folded():
    assert (Op.BINARY, "+") in ops("x = 1 + 1;")


def test_constants_become_literals():
    found = ops("x = PI; y = null; z = inf;")
    assert found[0] == (Op.PUSH, math.pi)
    assert found[2] == (Op.PUSH, None)
    assert found[4] == (Op.PUSH, math.inf)


def test_boost_binds_loosest():
    found = ops("x = (1, 1) + (0, 1) -> f;")
    assert found[-2] == (Op.BINARY, "->")
    assert (Op.COORDINATE, None) in found


def test_parenthesised_expression_is_not_a_coordinate():
    assert (Op.COORDINATE, None) not in ops("x = (1 + 2);")


def test_call_records_argument_count():
    assert ops("x = atan2(1, 2);")[2] == (Op.CALL, ("atan2", 2))
    assert ops("x = pi();")[0] == (Op.CALL, ("pi", 0))


def test_dynamic_and_property_access():
    assert ops("p[i] = 1;") == [(Op.LOAD, "i"), (Op.PUSH, 1.0), (Op.STORE_DYNAMIC, "p")]
    assert ops("f.origin.x = 1;") == [
        (Op.LOAD, "f"),
        (Op.LOAD_PROP, "origin"),
        (Op.PUSH, 1.0),
        (Op.STORE_PROP, "x"),
    ]


def test_defined_takes_a_bare_name():
    assert ops("x = defined(y);")[0] == (Op.DEFINED, "y")


def test_keyword_followed_by_equals_is_a_variable():
    assert ops("line = 1; print = 2;") == [
        (Op.PUSH, 1.0),
        (Op.STORE, "line"),
        (Op.PUSH, 2.0),
        (Op.STORE, "print"),
    ]


def test_jump_targets_are_resolved():
    program = compile_source("if x print 1; else print 2;")
    for instr in program.instructions:
        if instr.op in (Op.JUMP, Op.JUMP_IF_FALSE):
            assert 0 <= instr.arg <= len(program)


def test_for_loop_declares_hidden_bounds_in_its_own_scope():
    found = ops("for i = 1 to 3 print i;")
    assert found[0] == (Op.ENTER_SCOPE, None)
    assert found[-1] == (Op.EXIT_SCOPE, None)
    declared = [arg for op, arg in found if op == Op.DECLARE]
    assert len(declared) == 2
    assert all(name.startswith("$") for name in declared)
    assert any(op == Op.FOR_TEST for op, _ in found)
    assert any(op == Op.FOR_STEP for op, _ in found)


def test_break_exits_nested_scopes_before_jumping():
    found = ops("while true { { break; } }")
    index = [op for op, _ in found].index(Op.JUMP)
    assert found[index - 2:index] == [(Op.EXIT_SCOPE, None), (Op.EXIT_SCOPE, None)]


def test_static_counts_slots():
    program = compile_source("static a = 1; static b = 2;")
    assert program.static_count == 2
    checks = [i.arg for i in program.instructions if i.op == Op.STATIC_CHECK]
    assert [c[:2] for c in checks] == [("a", 1), ("b", 2)]


def test_command_with_default_and_named_properties():
    found = ops('event (1, 2), text: "A", "red";')
    assert found[-1] == (Op.COMMAND, ("event", ("location", "text", None)))


@pytest.mark.parametrize(
    "source, names",
    [
        ('worldline o "red";', ("observer", None)),
        ('worldline o bounds: b, "red";', ("observer", "bounds", None)),
        ('event (1, 2) text: "A";', ("location", "text")),
        ('axes f "gray";', ("frame", None)),
    ],
)
def test_comma_after_default_property_is_optional(source, names):
    assert ops(source)[-1] == (Op.COMMAND, (source.split()[0], names))


def test_optional_default_property():
    assert ops("axes;")[-1] == (Op.COMMAND, ("axes", ()))
    assert ops("axes f;")[-1] == (Op.COMMAND, ("axes", ("frame",)))
    assert ops("axes frame: f, extent: 4;")[-1] == (Op.COMMAND, ("axes", ("frame", "extent")))


def test_observer_literal_shape():
    program = compile_source("o = [observer origin (1, 0) velocity 0.5 tau 2, acceleration 1];")
    shape = [i.arg for i in program.instructions if i.op == Op.OBSERVER][0]
    assert isinstance(shape, ObserverShape)
    assert shape.header == ("origin",)
    assert [(s.has_velocity, s.has_acceleration, s.limit_type) for s in shape.segments] == [
        (True, False, LimitType.TAU),
        (False, True, LimitType.NONE),
    ]


def test_frame_and_line_literals():
    assert (Op.FRAME_AT, (FrameAt.T, True)) in ops("f = [frame observer o at time 3];")
    assert (Op.FRAME_AT, (FrameAt.TAU, False)) in ops("f = [frame observer o];")
    assert (Op.FRAME, ("velocity", "origin")) in ops("f = [frame velocity 0.5 origin (1, 1)];")
    assert (Op.LINE_AXIS, (AxisType.X, True)) in ops("l = [line axis x f offset 2];")


def test_program_flags():
    assert isinstance(compile_source("x = 1;"), HCodeProgram)
    assert compile_source("animation 100;").has_animation
    assert compile_source('toggle g = true label "grid";').has_controls
    assert not compile_source("axes;").has_controls


@pytest.mark.parametrize(
    "source, message, position",
    [
        ("x = ;", "Expected an expression but found ';'", (1, 5)),
        ("x = 1", "Expected ';' but found end of input", (1, 6)),
        ("{ x = 1;", "Unmatched '{'", (1, 1)),
        ("break;", "'break' is only allowed inside a loop", (1, 1)),
        ("PI = 3;", "Can't assign a value to the constant 'PI'", (1, 1)),
        ("foo 1;", "Unknown command 'foo'", (1, 1)),
        ("set speed: 1;", "Unknown setting 'speed'", (1, 5)),
        ("x = [widget 1];", "Unknown object type 'widget'", (1, 6)),
    ],
)
def test_parse_errors(source, message, position):
    error = parse_error(source)
    assert error.message == message
    assert (error.line, error.column) == position
    assert isinstance(error, SpacetimeError)


def test_setting_can_only_be_set_once():
    error = parse_error("set units: 1;\nset units: 2;")
    assert "already set" in error.message
    assert error.line == 2


def test_unclosed_call_names_the_opening_position():
    error = parse_error("x = sqrt(4;")
    assert error.message == "Expected ')' to match the one at 1:5 but found ';'"
