"""
Front end for the spacetime diagram language: tokenizer and a one-pass
recursive-descent compiler that emits HCode, a flat list of stack-machine
instructions executed by the engine.

Nothing is evaluated here; even constant expressions are left for the
engine.
"""

import math
import re
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from spacetime_errors import ParseError, ScriptSyntaxError
from spacetime_geometry import IntervalType
from spacetime_kinematics import AxisType, FrameAt, LimitType

# ============================================================================
# TOKEN SYSTEM
# ============================================================================

TOKEN_TYPES = [
    # Comments first so '/' is not taken as an operator
    ("BLOCK_COMMENT", r"/\*[\s\S]*?(?:\*/|\Z)"),
    ("LINE_COMMENT", r"//[^\n]*"),

    # Strings: an unterminated string runs to the end of the input
    ("STRING", r'"(?:\\[\s\S]|[^"\\])*(?:"|\\?\Z)|\'(?:\\[\s\S]|[^\'\\])*(?:\'|\\?\Z)'),

    # Numbers may start with '.', malformed ones are rejected after matching
    ("NUMBER", r"\d[\d.]*|\.\d[\d.]*"),
    ("NAME", r"[A-Za-z_][A-Za-z0-9_]*"),

    # Two-character operators before their one-character prefixes
    ("OPERATOR", r"&&|\|\||==|!=|<=|>=|<-|->|[-+*/%^.<>!]"),
    ("DELIMITER", r"[;,:=\[\](){}]"),

    ("NEWLINE", r"\n"),
    ("WHITESPACE", r"[ \t\r\f\v]+"),
    ("MISMATCH", r"[\s\S]"),
]

token_regex = "|".join(f"(?P<{name}>{pattern})" for name, pattern in TOKEN_TYPES)
token_pattern = re.compile(token_regex)

ESCAPE_PATTERN = re.compile(r"\\([\s\S])")


@dataclass
class Token:
    """Token with source position for error messages"""
    type: str
    value: str
    position: int = 0
    line: int = 1
    column: int = 1

    def __repr__(self):
        return f"{self.type}:{self.value}@{self.line}:{self.column}"


def _unescape(body: str) -> str:
    return ESCAPE_PATTERN.sub(lambda m: "\n" if m.group(1) == "n" else m.group(1), body)


def tokenize(source: str) -> List[Token]:
    """
    Tokenizer with line/column tracking

    Args:
        source: Script text

    Returns:
        List of tokens (whitespace and comments removed) ending with EOF

    Raises:
        ScriptSyntaxError: Invalid character or malformed number
    """
    tokens = []
    line = 1
    line_start = 0

    for match in token_pattern.finditer(source):
        kind = match.lastgroup
        value = match.group()
        position = match.start()
        column = position - line_start + 1

        if kind == "MISMATCH":
            raise ScriptSyntaxError(f"Invalid character '{value}'", line, column)

        if kind == "NUMBER" and value.count(".") > 1:
            raise ScriptSyntaxError(f"Invalid number '{value}'", line, column)

        if kind == "STRING":
            quote = value[0]
            if len(value) > 1 and value.endswith(quote) and not _ends_with_escape(value[1:-1]):
                body = value[1:-1]
            else:
                warnings.warn(f"Unterminated string at {line}:{column} truncated at end of input")
                body = value[1:]
                if _ends_with_escape(body):
                    body = body[:-1]
            tokens.append(Token("STRING", _unescape(body), position, line, column))

        elif kind in ("NUMBER", "NAME", "OPERATOR", "DELIMITER"):
            tokens.append(Token(kind, value, position, line, column))

        # Keep line tracking exact across multi-line tokens
        newlines = value.count("\n")
        if newlines:
            line += newlines
            line_start = position + value.rfind("\n") + 1

    column = len(source) - line_start + 1
    tokens.append(Token("EOF", "", len(source), line, column))
    return tokens


def _ends_with_escape(body: str) -> bool:
    """True when body ends in an odd run of backslashes"""
    count = len(body) - len(body.rstrip("\\"))
    return count % 2 == 1


# ============================================================================
# HCODE
# ============================================================================

class Op(Enum):
    PUSH = "push"                   # arg: literal value
    LOAD = "load"                   # arg: name
    LOAD_DYNAMIC = "load[]"         # arg: name; pops index
    DEFINED = "defined"             # arg: name
    STORE = "store"                 # arg: name; pops value
    STORE_DYNAMIC = "store[]"       # arg: name; pops index, value
    DECLARE = "declare"             # arg: name; pops value into the innermost scope
    LOAD_PROP = "getprop"           # arg: property; pops object
    STORE_PROP = "setprop"          # arg: property; pops object, value
    UNARY = "unary"                 # arg: operator
    BINARY = "binary"               # arg: operator
    JUMP = "jump"                   # arg: target
    JUMP_IF_FALSE = "jumpf"         # arg: target; pops condition
    JUMP_AND = "jumpand"            # arg: target; keeps false and jumps
    JUMP_OR = "jumpor"              # arg: target; keeps true and jumps
    TO_BOOLEAN = "bool"
    CALL = "call"                   # arg: (name, argc)
    COORDINATE = "coord"
    OBSERVER = "observer"           # arg: ObserverShape
    FRAME_AT = "frameat"            # arg: (FrameAt, has_value)
    FRAME = "frame"                 # arg: tuple of keys in push order
    LINE_AXIS = "lineaxis"          # arg: (AxisType, has_offset)
    LINE_ANGLE = "lineangle"
    LINE_POINTS = "linepoints"
    PATH = "path"                   # arg: point count
    BOUNDS = "bounds"
    INTERVAL = "interval"           # arg: IntervalType
    ENTER_SCOPE = "enter"
    EXIT_SCOPE = "exit"
    FOR_TEST = "fortest"            # arg: (var, end name, step name)
    FOR_STEP = "forstep"            # arg: (var, step name)
    PRINT = "print"                 # arg: has value
    STATIC_CHECK = "static?"        # arg: (name, static id, target)
    STATIC_STORE = "static="        # arg: (name, static id)
    ANIMATE = "animate"             # arg: name
    RANGE = "range"                 # arg: name
    TOGGLE = "toggle"               # arg: (name, restart)
    CHOICE = "choice"               # arg: (name, count, restart)
    SET = "set"                     # arg: setting name
    COMMAND = "command"             # arg: (kind, property names)


@dataclass
class Instruction:
    """One HCode instruction with the source position it came from"""
    op: Op
    arg: Any = None
    line: int = 0
    column: int = 0

    def __repr__(self):
        if self.arg is None:
            return f"{self.op.value}@{self.line}:{self.column}"
        return f"{self.op.value} {self.arg!r}@{self.line}:{self.column}"


@dataclass
class SegmentShape:
    has_velocity: bool
    has_acceleration: bool
    limit_type: LimitType


@dataclass
class ObserverShape:
    """Which optional parts of an observer literal were pushed, in push order"""
    header: Tuple[str, ...] = ()
    segments: List[SegmentShape] = field(default_factory=list)


@dataclass
class HCodeProgram:
    """Compiled script: instructions plus what the host needs to know about it"""
    instructions: List[Instruction]
    static_count: int = 0
    has_animation: bool = False
    has_controls: bool = False

    def __len__(self):
        return len(self.instructions)

    def dump(self) -> str:
        return "\n".join(f"{i:4d}  {instr!r}" for i, instr in enumerate(self.instructions))


# ============================================================================
# COMPILER
# ============================================================================

CONSTANTS: Dict[str, Any] = {
    "true": True, "TRUE": True,
    "false": False, "FALSE": False,
    "null": None, "NULL": None,
    "inf": math.inf, "INF": math.inf,
    "PI": math.pi,
    "E": math.e,
}

COMMANDS = ("display", "frame", "animation", "axes", "grid", "hypergrid",
            "event", "line", "worldline", "path", "label")

OPTIONAL_DEFAULT_PROPERTY = {"frame": "frame", "axes": "frame", "grid": "frame"}
REQUIRED_DEFAULT_PROPERTY = {"event": "location", "label": "location", "line": "line",
                             "worldline": "observer", "path": "path"}

SETTINGS = ("units", "displayPrecision", "printPrecision")

LIMIT_KEYWORDS = {"time": LimitType.T, "tau": LimitType.TAU,
                  "distance": LimitType.D, "velocity": LimitType.V}
FRAME_AT_KEYWORDS = {"time": FrameAt.T, "tau": FrameAt.TAU,
                     "distance": FrameAt.D, "velocity": FrameAt.V}
INTERVAL_KEYWORDS = {"time": IntervalType.T, "tau": IntervalType.TAU, "distance": IntervalType.D}

BINARY_LEVELS = [
    ("||",),
    ("&&",),
    ("==", "!="),
    ("<", ">", "<=", ">="),
    ("+", "-"),
    ("*", "/", "%"),
]


@dataclass
class _LoopContext:
    break_label: int
    continue_label: int
    scope_depth: int


class SpacetimeParser:
    """Recursive-descent compiler from tokens to HCode"""

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0
        self.code: List[Instruction] = []
        self.labels: Dict[int, int] = {}
        self.label_count = 0
        self.static_count = 0
        self.hidden_count = 0
        self.scope_depth = 0
        self.loops: List[_LoopContext] = []
        self.settings_seen = set()
        self.has_animation = False
        self.has_controls = False

    # Token helpers

    def peek(self, offset: int = 0) -> Token:
        pos = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[pos]

    def check(self, kind: str, value: Optional[str] = None, offset: int = 0) -> bool:
        token = self.peek(offset)
        return token.type == kind and (value is None or token.value == value)

    def match(self, kind: str, value: Optional[str] = None) -> Optional[Token]:
        if self.check(kind, value):
            token = self.peek()
            self.pos += 1
            return token
        return None

    def expect(self, kind: str, value: Optional[str] = None) -> Token:
        token = self.match(kind, value)
        if not token:
            wanted = f"'{value}'" if value is not None else kind.lower()
            self.error(f"Expected {wanted}")
        return token

    def error(self, message: str, token: Optional[Token] = None):
        token = token or self.peek()
        found = "end of input" if token.type == "EOF" else f"'{token.value}'"
        raise ParseError(f"{message} but found {found}", token.line, token.column)

    def emit(self, op: Op, arg: Any = None, token: Optional[Token] = None) -> Instruction:
        token = token or self.peek()
        instr = Instruction(op, arg, token.line, token.column)
        self.code.append(instr)
        return instr

    def new_label(self) -> int:
        self.label_count += 1
        return self.label_count

    def place_label(self, label: int):
        self.labels[label] = len(self.code)

    def hidden_name(self, role: str) -> str:
        self.hidden_count += 1
        return f"${role}{self.hidden_count}"

    # Program

    def parse(self) -> HCodeProgram:
        """Compile the complete token stream"""
        while not self.check("EOF"):
            self.parse_statement()
        self._resolve_labels()
        return HCodeProgram(self.code, self.static_count, self.has_animation, self.has_controls)

    def _resolve_labels(self):
        for instr in self.code:
            if instr.op in (Op.JUMP, Op.JUMP_IF_FALSE, Op.JUMP_AND, Op.JUMP_OR):
                instr.arg = self.labels[instr.arg]
            elif instr.op == Op.STATIC_CHECK:
                name, static_id, label = instr.arg
                instr.arg = (name, static_id, self.labels[label])

    # Statements

    def parse_statement(self):
        """Parse one statement"""
        token = self.peek()

        if self.match("DELIMITER", ";"):
            return
        if self.check("DELIMITER", "{"):
            self.parse_block()
            return
        if token.type != "NAME":
            self.error("Expected a statement")

        # A keyword followed by '=' or '.' is an ordinary variable
        if self.check("DELIMITER", "=", 1) or self.check("OPERATOR", ".", 1):
            self.parse_assignment()
            return

        handlers = {
            "if": self.parse_if,
            "while": self.parse_while,
            "for": self.parse_for,
            "break": self.parse_break,
            "continue": self.parse_continue,
            "print": self.parse_print,
            "static": self.parse_static,
            "animate": self.parse_animate,
            "range": self.parse_range,
            "toggle": self.parse_toggle,
            "choice": self.parse_choice,
            "set": self.parse_set,
        }
        handler = handlers.get(token.value)
        if handler:
            handler()
        elif token.value in COMMANDS:
            self.parse_command()
        elif self.check("DELIMITER", "[", 1):
            self.parse_assignment()
        else:
            raise ParseError(f"Unknown command '{token.value}'", token.line, token.column)

    def parse_block(self):
        """{ statements } in a new scope"""
        open_token = self.expect("DELIMITER", "{")
        self.emit(Op.ENTER_SCOPE, token=open_token)
        self.scope_depth += 1
        while not self.check("DELIMITER", "}"):
            if self.check("EOF"):
                raise ParseError("Unmatched '{'", open_token.line, open_token.column)
            self.parse_statement()
        close_token = self.expect("DELIMITER", "}")
        self.scope_depth -= 1
        self.emit(Op.EXIT_SCOPE, token=close_token)

    def parse_assignment(self):
        """name = expr; name[i] = expr; a.b.c = expr;"""
        name_token = self.expect("NAME")
        name = name_token.value
        if name in CONSTANTS:
            raise ParseError(f"Can't assign a value to the constant '{name}'", name_token.line, name_token.column)

        dynamic = False
        if self.match("DELIMITER", "["):
            self.parse_expression()
            self.expect("DELIMITER", "]")
            dynamic = True

        props = []
        while self.match("OPERATOR", "."):
            props.append(self.expect("NAME"))

        if props:
            self.emit(Op.LOAD_DYNAMIC if dynamic else Op.LOAD, name, name_token)
            for prop in props[:-1]:
                self.emit(Op.LOAD_PROP, prop.value, prop)

        self.expect("DELIMITER", "=")
        self.parse_expression()
        self.expect("DELIMITER", ";")

        if props:
            self.emit(Op.STORE_PROP, props[-1].value, props[-1])
        else:
            self.emit(Op.STORE_DYNAMIC if dynamic else Op.STORE, name, name_token)

    def parse_if(self):
        """if expr stmt [else stmt]"""
        if_token = self.expect("NAME", "if")
        self.parse_expression()
        else_label = self.new_label()
        self.emit(Op.JUMP_IF_FALSE, else_label, if_token)
        self.parse_statement()
        if self.match("NAME", "else"):
            end_label = self.new_label()
            self.emit(Op.JUMP, end_label, if_token)
            self.place_label(else_label)
            self.parse_statement()
            self.place_label(end_label)
        else:
            self.place_label(else_label)

    def parse_while(self):
        """while expr stmt"""
        while_token = self.expect("NAME", "while")
        top = self.new_label()
        end = self.new_label()
        self.place_label(top)
        self.parse_expression()
        self.emit(Op.JUMP_IF_FALSE, end, while_token)
        self.loops.append(_LoopContext(end, top, self.scope_depth))
        self.parse_statement()
        self.loops.pop()
        self.emit(Op.JUMP, top, while_token)
        self.place_label(end)

    def parse_for(self):
        """for name = a to b [step s] stmt"""
        for_token = self.expect("NAME", "for")
        var_token = self.expect("NAME")
        if var_token.value in CONSTANTS:
            raise ParseError(f"Can't assign a value to the constant '{var_token.value}'",
                             var_token.line, var_token.column)
        var = var_token.value
        end_name = self.hidden_name("end")
        step_name = self.hidden_name("step")

        self.emit(Op.ENTER_SCOPE, token=for_token)
        self.scope_depth += 1

        self.expect("DELIMITER", "=")
        self.parse_expression()
        self.emit(Op.STORE, var, var_token)
        self.expect("NAME", "to")
        self.parse_expression()
        self.emit(Op.DECLARE, end_name, for_token)
        if self.match("NAME", "step"):
            self.parse_expression()
        else:
            self.emit(Op.PUSH, 1.0, for_token)
        self.emit(Op.DECLARE, step_name, for_token)

        top = self.new_label()
        cont = self.new_label()
        end = self.new_label()
        self.place_label(top)
        self.emit(Op.FOR_TEST, (var, end_name, step_name), for_token)
        self.emit(Op.JUMP_IF_FALSE, end, for_token)
        self.loops.append(_LoopContext(end, cont, self.scope_depth))
        self.parse_statement()
        self.loops.pop()
        self.place_label(cont)
        self.emit(Op.FOR_STEP, (var, step_name), for_token)
        self.emit(Op.JUMP, top, for_token)
        self.place_label(end)

        self.scope_depth -= 1
        self.emit(Op.EXIT_SCOPE, token=for_token)

    def _jump_out_of_loop(self, keyword: str, pick_label):
        token = self.expect("NAME", keyword)
        if not self.loops:
            raise ParseError(f"'{keyword}' is only allowed inside a loop", token.line, token.column)
        self.expect("DELIMITER", ";")
        loop = self.loops[-1]
        for _ in range(self.scope_depth - loop.scope_depth):
            self.emit(Op.EXIT_SCOPE, token=token)
        self.emit(Op.JUMP, pick_label(loop), token)

    def parse_break(self):
        self._jump_out_of_loop("break", lambda loop: loop.break_label)

    def parse_continue(self):
        self._jump_out_of_loop("continue", lambda loop: loop.continue_label)

    def parse_print(self):
        """print [expr];"""
        token = self.expect("NAME", "print")
        if self.match("DELIMITER", ";"):
            self.emit(Op.PRINT, False, token)
            return
        self.parse_expression()
        self.expect("DELIMITER", ";")
        self.emit(Op.PRINT, True, token)

    def _declared_name(self) -> Token:
        name_token = self.expect("NAME")
        if name_token.value in CONSTANTS:
            raise ParseError(f"Can't assign a value to the constant '{name_token.value}'",
                             name_token.line, name_token.column)
        self.expect("DELIMITER", "=")
        return name_token

    def parse_static(self):
        """static name = expr;"""
        token = self.expect("NAME", "static")
        name_token = self._declared_name()
        self.static_count += 1
        static_id = self.static_count
        skip = self.new_label()
        self.emit(Op.STATIC_CHECK, (name_token.value, static_id, skip), token)
        self.parse_expression()
        self.expect("DELIMITER", ";")
        self.emit(Op.STATIC_STORE, (name_token.value, static_id), token)
        self.place_label(skip)

    def parse_animate(self):
        """animate name = init [to final] step s;"""
        token = self.expect("NAME", "animate")
        name_token = self._declared_name()
        self.parse_expression()
        if self.match("NAME", "to"):
            self.parse_expression()
        else:
            self.emit(Op.PUSH, math.nan, token)
        self.expect("NAME", "step")
        self.parse_expression()
        self.expect("DELIMITER", ";")
        self.emit(Op.ANIMATE, name_token.value, token)
        self.has_controls = True

    def parse_range(self):
        """range name = init from min to max label "L";"""
        token = self.expect("NAME", "range")
        name_token = self._declared_name()
        self.parse_expression()
        self.expect("NAME", "from")
        self.parse_expression()
        self.expect("NAME", "to")
        self.parse_expression()
        self.expect("NAME", "label")
        self.parse_expression()
        self.expect("DELIMITER", ";")
        self.emit(Op.RANGE, name_token.value, token)
        self.has_controls = True

    def parse_toggle(self):
        """toggle name = bool label "L" [restart];"""
        token = self.expect("NAME", "toggle")
        name_token = self._declared_name()
        self.parse_expression()
        self.expect("NAME", "label")
        self.parse_expression()
        restart = self.match("NAME", "restart") is not None
        self.expect("DELIMITER", ";")
        self.emit(Op.TOGGLE, (name_token.value, restart), token)
        self.has_controls = True

    def parse_choice(self):
        """choice name = idx choices c1, c2, ... label "L" [restart];"""
        token = self.expect("NAME", "choice")
        name_token = self._declared_name()
        self.parse_expression()
        self.expect("NAME", "choices")
        count = 1
        self.parse_expression()
        while self.match("DELIMITER", ","):
            self.parse_expression()
            count += 1
        self.expect("NAME", "label")
        self.parse_expression()
        restart = self.match("NAME", "restart") is not None
        self.expect("DELIMITER", ";")
        self.emit(Op.CHOICE, (name_token.value, count, restart), token)
        self.has_controls = True

    def parse_set(self):
        """set units: n, displayPrecision: n, printPrecision: n;"""
        self.expect("NAME", "set")
        while True:
            name_token = self.expect("NAME")
            if name_token.value not in SETTINGS:
                raise ParseError(f"Unknown setting '{name_token.value}'", name_token.line, name_token.column)
            if name_token.value in self.settings_seen:
                raise ParseError(f"Setting '{name_token.value}' is already set",
                                 name_token.line, name_token.column)
            self.settings_seen.add(name_token.value)
            self.expect("DELIMITER", ":")
            self.parse_expression()
            self.emit(Op.SET, name_token.value, name_token)
            if not self.match("DELIMITER", ","):
                break
        self.expect("DELIMITER", ";")

    def _at_property_start(self) -> bool:
        return self.check("NAME") and self.check("DELIMITER", ":", 1)

    def parse_command(self):
        """command [default-expr [,]] [name: expr | expr] [, ...] ;"""
        token = self.expect("NAME")
        kind = token.value
        if kind == "animation":
            self.has_animation = True
        names: List[Optional[str]] = []

        default = REQUIRED_DEFAULT_PROPERTY.get(kind)
        if default is None and kind in OPTIONAL_DEFAULT_PROPERTY:
            if not (self._at_property_start() or self.check("DELIMITER", ";")):
                default = OPTIONAL_DEFAULT_PROPERTY[kind]
        if default is not None:
            self.parse_expression()
            names.append(default)
            # The comma after the default property is optional
            self.match("DELIMITER", ",")

        if not self.check("DELIMITER", ";"):
            while True:
                if self._at_property_start():
                    names.append(self.expect("NAME").value)
                    self.expect("DELIMITER", ":")
                else:
                    names.append(None)
                self.parse_expression()
                if not self.match("DELIMITER", ","):
                    break
        self.expect("DELIMITER", ";")
        self.emit(Op.COMMAND, (kind, tuple(names)), token)

    # Expressions

    def parse_expression(self):
        """Parse expressions with full operator precedence"""
        self.parse_boost()

    def parse_boost(self):
        """coord -> frame, coord <- frame"""
        self.parse_binary(0)
        while self.check("OPERATOR", "->") or self.check("OPERATOR", "<-"):
            op = self.match("OPERATOR")
            self.parse_binary(0)
            self.emit(Op.BINARY, op.value, op)

    def parse_binary(self, level: int):
        """Left-associative binary levels from || down to * / %"""
        if level == len(BINARY_LEVELS):
            self.parse_power()
            return
        operators = BINARY_LEVELS[level]
        self.parse_binary(level + 1)
        while self.peek().type == "OPERATOR" and self.peek().value in operators:
            op = self.match("OPERATOR")
            if op.value in ("&&", "||"):
                # Short circuit: leave the deciding value and skip the right side
                end = self.new_label()
                self.emit(Op.JUMP_AND if op.value == "&&" else Op.JUMP_OR, end, op)
                self.parse_binary(level + 1)
                self.emit(Op.TO_BOOLEAN, token=op)
                self.place_label(end)
            else:
                self.parse_binary(level + 1)
                self.emit(Op.BINARY, op.value, op)

    def parse_power(self):
        """Exponentiation (right associative)"""
        self.parse_unary()
        op = self.match("OPERATOR", "^")
        if op:
            self.parse_power()
            self.emit(Op.BINARY, "^", op)

    def parse_unary(self):
        """Unary operators"""
        token = self.peek()
        if token.type == "OPERATOR" and token.value in ("-", "+", "!"):
            self.pos += 1
            self.parse_unary()
            self.emit(Op.UNARY, token.value, token)
            return
        self.parse_postfix()

    def parse_postfix(self):
        """Property access"""
        self.parse_primary()
        while self.check("OPERATOR", "."):
            self.pos += 1
            prop = self.expect("NAME")
            self.emit(Op.LOAD_PROP, prop.value, prop)

    def parse_primary(self):
        """Literals, variables, calls, coordinates and object literals"""
        token = self.peek()

        if self.match("NUMBER"):
            self.emit(Op.PUSH, float(token.value), token)
            return

        if self.match("STRING"):
            self.emit(Op.PUSH, token.value, token)
            return

        if self.match("NAME"):
            name = token.value
            if name in CONSTANTS:
                self.emit(Op.PUSH, CONSTANTS[name], token)
            elif name == "defined" and self.check("DELIMITER", "("):
                self.pos += 1
                target = self.expect("NAME")
                self.expect("DELIMITER", ")")
                self.emit(Op.DEFINED, target.value, token)
            elif self.match("DELIMITER", "("):
                argc = 0
                if not self.check("DELIMITER", ")"):
                    self.parse_expression()
                    argc = 1
                    while self.match("DELIMITER", ","):
                        self.parse_expression()
                        argc += 1
                self._expect_closing(")", token)
                self.emit(Op.CALL, (name, argc), token)
            elif self.match("DELIMITER", "["):
                self.parse_expression()
                self._expect_closing("]", token)
                self.emit(Op.LOAD_DYNAMIC, name, token)
            else:
                self.emit(Op.LOAD, name, token)
            return

        if self.match("DELIMITER", "("):
            self.parse_expression()
            if self.match("DELIMITER", ","):
                self.parse_expression()
                self._expect_closing(")", token)
                self.emit(Op.COORDINATE, token=token)
            else:
                self._expect_closing(")", token)
            return

        if self.match("DELIMITER", "["):
            self.parse_object(token)
            return

        self.error("Expected an expression")

    def _expect_closing(self, closing: str, opener: Token):
        if not self.match("DELIMITER", closing):
            current = self.peek()
            found = "end of input" if current.type == "EOF" else f"'{current.value}'"
            raise ParseError(f"Expected '{closing}' to match the one at {opener.line}:{opener.column} "
                             f"but found {found}", current.line, current.column)

    # Object literals

    def parse_object(self, open_token: Token):
        kind = self.expect("NAME")
        handlers = {
            "observer": self.parse_observer_object,
            "frame": self.parse_frame_object,
            "line": self.parse_line_object,
            "path": self.parse_path_object,
            "bounds": self.parse_bounds_object,
            "interval": self.parse_interval_object,
        }
        handler = handlers.get(kind.value)
        if handler is None:
            raise ParseError(f"Unknown object type '{kind.value}'", kind.line, kind.column)
        handler(kind)
        self._expect_closing("]", open_token)

    def parse_observer_object(self, token: Token):
        """[observer origin C distance D tau T segment, segment, ...]"""
        shape = ObserverShape()
        header = []
        while self.peek().type == "NAME" and self.peek().value in ("origin", "distance", "tau"):
            word = self.match("NAME")
            if word.value in header:
                raise ParseError(f"'{word.value}' is given twice", word.line, word.column)
            header.append(word.value)
            self.parse_expression()
        shape.header = tuple(header)

        if self.check("NAME", "velocity") or self.check("NAME", "acceleration"):
            while True:
                shape.segments.append(self.parse_segment())
                if not self.match("DELIMITER", ","):
                    break
        self.emit(Op.OBSERVER, shape, token)

    def parse_segment(self) -> SegmentShape:
        """velocity v acceleration a [time|tau|distance|velocity limit]"""
        start = self.peek()
        has_v = has_a = False
        if self.match("NAME", "velocity"):
            self.parse_expression()
            has_v = True
        if self.match("NAME", "acceleration"):
            self.parse_expression()
            has_a = True
        if not has_v and not has_a:
            self.error("Expected 'velocity' or 'acceleration'", start)

        limit = LimitType.NONE
        token = self.peek()
        if token.type == "NAME" and token.value in LIMIT_KEYWORDS:
            self.pos += 1
            limit = LIMIT_KEYWORDS[token.value]
            self.parse_expression()
        return SegmentShape(has_v, has_a, limit)

    def parse_frame_object(self, token: Token):
        """[frame observer O at kind value] or [frame origin C velocity v]"""
        if self.match("NAME", "observer"):
            self.parse_expression()
            at = FrameAt.TAU
            has_value = False
            if self.match("NAME", "at"):
                kind = self.expect("NAME")
                if kind.value not in FRAME_AT_KEYWORDS:
                    raise ParseError("Expected 'time', 'tau', 'distance' or 'velocity'", kind.line, kind.column)
                at = FRAME_AT_KEYWORDS[kind.value]
                self.parse_expression()
                has_value = True
            self.emit(Op.FRAME_AT, (at, has_value), token)
            return

        keys = []
        while self.peek().type == "NAME" and self.peek().value in ("origin", "velocity"):
            word = self.match("NAME")
            if word.value in keys:
                raise ParseError(f"'{word.value}' is given twice", word.line, word.column)
            keys.append(word.value)
            self.parse_expression()
        self.emit(Op.FRAME, tuple(keys), token)

    def parse_line_object(self, token: Token):
        """[line axis x|t F offset n], [line angle A through C], [line from C1 to C2]"""
        if self.match("NAME", "axis"):
            axis = self.expect("NAME")
            if axis.value not in ("x", "t"):
                raise ParseError("Expected 'x' or 't'", axis.line, axis.column)
            self.parse_expression()
            has_offset = False
            if self.match("NAME", "offset"):
                self.parse_expression()
                has_offset = True
            self.emit(Op.LINE_AXIS, (AxisType(axis.value), has_offset), token)
        elif self.match("NAME", "angle"):
            self.parse_expression()
            self.expect("NAME", "through")
            self.parse_expression()
            self.emit(Op.LINE_ANGLE, token=token)
        elif self.match("NAME", "from"):
            self.parse_expression()
            self.expect("NAME", "to")
            self.parse_expression()
            self.emit(Op.LINE_POINTS, token=token)
        else:
            self.error("Expected 'axis', 'angle' or 'from'")

    def parse_path_object(self, token: Token):
        """[path C1, C2, ...]"""
        count = 1
        self.parse_expression()
        while self.match("DELIMITER", ","):
            self.parse_expression()
            count += 1
        self.emit(Op.PATH, count, token)

    def parse_bounds_object(self, token: Token):
        """[bounds C1 C2]"""
        self.parse_expression()
        self.match("DELIMITER", ",")
        self.parse_expression()
        self.emit(Op.BOUNDS, token=token)

    def parse_interval_object(self, token: Token):
        """[interval time|tau|distance a to b]"""
        kind = self.expect("NAME")
        if kind.value not in INTERVAL_KEYWORDS:
            raise ParseError("Expected 'time', 'tau' or 'distance'", kind.line, kind.column)
        self.parse_expression()
        self.expect("NAME", "to")
        self.parse_expression()
        self.emit(Op.INTERVAL, INTERVAL_KEYWORDS[kind.value], token)


def compile_tokens(tokens: List[Token]) -> HCodeProgram:
    return SpacetimeParser(tokens).parse()


def compile_source(source: str) -> HCodeProgram:
    """Tokenize and compile script text"""
    return compile_tokens(tokenize(source))


__all__ = [
    'Token',
    'tokenize',
    'Op',
    'Instruction',
    'SegmentShape',
    'ObserverShape',
    'HCodeProgram',
    'SpacetimeParser',
    'compile_tokens',
    'compile_source',
    'CONSTANTS',
    'COMMANDS',
]
