from __future__ import annotations

from typing import Any, Callable, List, Optional, Sequence, TYPE_CHECKING

from .table import LuaTable

if TYPE_CHECKING:  # pragma: no cover
    from .ast import Block
    from .interpreter import Scope
    from .vm import LuaVM

TNONE = -1
TNIL = 0
TBOOLEAN = 1
TLIGHTUSERDATA = 2
TNUMBER = 3
TSTRING = 4
TTABLE = 5
TFUNCTION = 6
TUSERDATA = 7

_TYPE_NAMES = {
    TNONE: "no value",
    TNIL: "nil",
    TBOOLEAN: "boolean",
    TLIGHTUSERDATA: "userdata",
    TNUMBER: "number",
    TSTRING: "string",
    TTABLE: "table",
    TFUNCTION: "function",
    TUSERDATA: "userdata",
}


class NativeFunction:
    """Host callable following the stack calling convention: ``func(vm) -> int``."""

    __slots__ = ("name", "func")

    def __init__(self, func: Callable[["LuaVM"], int], name: str | None = None) -> None:
        self.func = func
        self.name = name or getattr(func, "__name__", "?")

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<NativeFunction {self.name}>"


class LuaFunction:
    """Script closure: parameters, body and the scope it was created in."""

    __slots__ = ("name", "params", "vararg", "body", "scope", "chunkname", "line")

    def __init__(
        self,
        params: Sequence[str],
        vararg: bool,
        body: "Block",
        scope: Optional["Scope"],
        chunkname: str,
        *,
        name: str = "?",
        line: int = 0,
    ) -> None:
        self.params = list(params)
        self.vararg = vararg
        self.body = body
        self.scope = scope
        self.chunkname = chunkname
        self.name = name
        self.line = line

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<LuaFunction {self.name} {self.chunkname}:{self.line}>"


class UserData:
    """Full userdata: an opaque payload the runtime never looks into."""

    __slots__ = ("payload", "metatable")

    def __init__(self, payload: Any, metatable: Optional[LuaTable] = None) -> None:
        self.payload = payload
        self.metatable = metatable

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<UserData {self.payload!r}>"


def type_of(value: Any) -> int:
    if value is None:
        return TNIL
    if isinstance(value, bool):
        return TBOOLEAN
    if isinstance(value, (int, float)):
        return TNUMBER
    if isinstance(value, str):
        return TSTRING
    if isinstance(value, LuaTable):
        return TTABLE
    if isinstance(value, (LuaFunction, NativeFunction)):
        return TFUNCTION
    if isinstance(value, UserData):
        return TUSERDATA
    raise TypeError(f"not a Lua value: {value!r}")


def type_name(tag: int) -> str:
    return _TYPE_NAMES.get(tag, "?")


def value_type_name(value: Any) -> str:
    return type_name(type_of(value))


def metatable_of(value: Any) -> Optional[LuaTable]:
    if isinstance(value, (LuaTable, UserData)):
        return value.metatable
    return None


def raw_equal(a: Any, b: Any) -> bool:
    if a is b:
        return True
    ta, tb = type_of(a), type_of(b)
    if ta != tb:
        return False
    if ta in (TNUMBER, TSTRING, TBOOLEAN):
        return a == b
    return False


def is_truthy(value: Any) -> bool:
    return value is not None and value is not False


def to_number(value: Any) -> Optional[float]:
    """Lua's number coercion: numbers, and strings that read as numbers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text or "_" in text or text.lower().lstrip("+-") in ("inf", "infinity", "nan"):
            return None
        try:
            if text.lower().lstrip("+-").startswith("0x"):
                return float(int(text, 16))
            return float(text)
        except ValueError:
            return None
    return None


def first(values: Sequence[Any]) -> Any:
    return values[0] if values else None


def adjust(values: Sequence[Any], count: int) -> List[Any]:
    if len(values) >= count:
        return list(values[:count])
    return list(values) + [None] * (count - len(values))


__all__ = [
    "TNONE",
    "TNIL",
    "TBOOLEAN",
    "TLIGHTUSERDATA",
    "TNUMBER",
    "TSTRING",
    "TTABLE",
    "TFUNCTION",
    "TUSERDATA",
    "NativeFunction",
    "LuaFunction",
    "UserData",
    "type_of",
    "type_name",
    "value_type_name",
    "metatable_of",
    "raw_equal",
    "is_truthy",
    "to_number",
    "first",
    "adjust",
]
