from .errors import ERRERR, ERRFILE, ERRMEM, ERRRUN, ERRSYNTAX, OK, LuaParseError, ScriptError
from .objects import (
    TBOOLEAN,
    TFUNCTION,
    TLIGHTUSERDATA,
    TNIL,
    TNONE,
    TNUMBER,
    TSTRING,
    TTABLE,
    TUSERDATA,
    LuaFunction,
    NativeFunction,
    UserData,
)
from .stdlib import open_libs
from .table import LuaTable
from .vm import GLOBALSINDEX, MULTRET, REGISTRYINDEX, LuaVM

__all__ = [
    "LuaVM",
    "LuaTable",
    "LuaFunction",
    "NativeFunction",
    "UserData",
    "LuaParseError",
    "ScriptError",
    "open_libs",
    "MULTRET",
    "REGISTRYINDEX",
    "GLOBALSINDEX",
    "OK",
    "ERRRUN",
    "ERRSYNTAX",
    "ERRMEM",
    "ERRERR",
    "ERRFILE",
    "TNONE",
    "TNIL",
    "TBOOLEAN",
    "TLIGHTUSERDATA",
    "TNUMBER",
    "TSTRING",
    "TTABLE",
    "TFUNCTION",
    "TUSERDATA",
]
