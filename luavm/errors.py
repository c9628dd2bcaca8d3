from __future__ import annotations

from typing import Any

# Status codes returned by load/pcall, numbered like Lua 5.1.
OK = 0
YIELD = 1
ERRRUN = 2
ERRSYNTAX = 3
ERRMEM = 4
ERRERR = 5
ERRFILE = 6


class LuaParseError(SyntaxError):
    """Raised by the lexer and parser; carries the source position."""

    def __init__(self, message: str, line: int = 0, column: int = 0):
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column

    def __str__(self) -> str:
        return self.message


class ScriptError(Exception):
    """Unwinds the interpreter up to the nearest protected call.

    This is the runtime's equivalent of ``lua_error``: ``value`` is the error
    object itself (usually a string, but any Lua value may be raised).
    """

    def __init__(self, value: Any):
        super().__init__(value)
        self.value = value

    def __str__(self) -> str:
        if isinstance(self.value, str):
            return self.value
        if isinstance(self.value, float):
            return format_number(self.value)
        from .objects import value_type_name

        return f"(error object is a {value_type_name(self.value)} value)"


def format_number(value: float) -> str:
    return "%.14g" % value


__all__ = [
    "OK",
    "YIELD",
    "ERRRUN",
    "ERRSYNTAX",
    "ERRMEM",
    "ERRERR",
    "ERRFILE",
    "LuaParseError",
    "ScriptError",
    "format_number",
]
