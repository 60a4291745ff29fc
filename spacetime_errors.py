"""
Error taxonomy for the spacetime diagram language.

Every failure surfaced to a host is one of the classes below and carries
the script position (line/column) where it was detected.
"""

from typing import Dict, Any


class SpacetimeError(Exception):
    """Base class for all script errors, with source position"""

    kind = "Error"

    def __init__(self, message: str, line: int = 0, column: int = 0):
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column

    def with_position(self, line: int, column: int) -> "SpacetimeError":
        """Attach a position if the error does not already have one"""
        if not self.line:
            self.line = line
            self.column = column
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'message': self.message,
            'line': self.line,
            'column': self.column,
        }

    def __str__(self):
        if self.line:
            return f"{self.kind} at {self.line}:{self.column}: {self.message}"
        return f"{self.kind}: {self.message}"


class ScriptSyntaxError(SpacetimeError):
    """Lexer error: invalid character or malformed literal"""
    kind = "SyntaxError"


class ParseError(SpacetimeError):
    """Compiler error: malformed grammar"""
    kind = "ParseError"


class ExecutionError(SpacetimeError):
    """Interpreter error: undefined variable, bad types, bad arguments"""
    kind = "ExecutionError"


class KinematicsError(SpacetimeError, ArithmeticError):
    """A kinematics query has no solution"""
    kind = "ArithmeticError"


__all__ = [
    'SpacetimeError',
    'ScriptSyntaxError',
    'ParseError',
    'ExecutionError',
    'KinematicsError',
]
