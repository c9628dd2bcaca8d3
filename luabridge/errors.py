from __future__ import annotations

from typing import Any


class LuaError(Exception):
    """Base class of every error raised by luabridge."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class LuaTypeError(LuaError):
    """A runtime value of a type that cannot become a ``LuaValue``."""


class LuaValueError(LuaError):
    pass


class TypeMismatchError(LuaValueError):
    def __init__(self, expected_type: str, found_type: str):
        super().__init__(f"Type mismatch: '{expected_type}' was expected but '{found_type}' was found.")
        self.expected_type = expected_type
        self.found_type = found_type


class NoSuchKeyError(LuaValueError):
    def __init__(self, key: Any):
        super().__init__("Trying to access a table with an invalid key.")
        self.key = key


# Failures reported by the runtime, one per status code.
class LuaRunTimeError(LuaError):
    pass


class LuaFileError(LuaError):
    pass


class LuaSyntaxError(LuaError):
    pass


class LuaMemoryError(LuaError):
    pass


class LuaErrorInErrorHandler(LuaError):
    pass


__all__ = [
    "LuaError",
    "LuaTypeError",
    "LuaValueError",
    "TypeMismatchError",
    "NoSuchKeyError",
    "LuaRunTimeError",
    "LuaFileError",
    "LuaSyntaxError",
    "LuaMemoryError",
    "LuaErrorInErrorHandler",
]
