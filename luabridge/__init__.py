"""Marshal values and host objects between Python and an embedded Lua runtime."""

from .errors import (
    LuaError,
    LuaErrorInErrorHandler,
    LuaFileError,
    LuaMemoryError,
    LuaRunTimeError,
    LuaSyntaxError,
    LuaTypeError,
    LuaValueError,
    NoSuchKeyError,
    TypeMismatchError,
)
from .handles import ObjectArena, ObjectHandle, Ownership
from .logging import configure_logging, get_logger
from .marshal import push_lua_value, read_arguments, to_lua_value, to_lua_value_list
from .state import LuaState
from .value import LuaType, LuaValue, LuaValueList, LuaValueMap, Nil
from .wrappers import LuaClass, register_class, register_object, report_error, wrap_function

__all__ = [
    "LuaState",
    "LuaValue",
    "LuaValueMap",
    "LuaValueList",
    "LuaType",
    "Nil",
    "LuaClass",
    "Ownership",
    "ObjectHandle",
    "ObjectArena",
    "to_lua_value",
    "push_lua_value",
    "to_lua_value_list",
    "read_arguments",
    "wrap_function",
    "report_error",
    "register_class",
    "register_object",
    "configure_logging",
    "get_logger",
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
