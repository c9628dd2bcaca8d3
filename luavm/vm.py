from __future__ import annotations

import logging
import pathlib
import sys
from typing import Any, Callable, List, Optional, Union

from .errors import ERRERR, ERRFILE, ERRMEM, ERRRUN, ERRSYNTAX, OK, LuaParseError, ScriptError, format_number
from .interpreter import Frame, Interpreter, Scope
from .objects import (
    TNONE,
    LuaFunction,
    NativeFunction,
    UserData,
    adjust,
    first,
    is_truthy,
    metatable_of,
    raw_equal,
    to_number,
    type_name,
    type_of,
    value_type_name,
)
from .parser import LuaParser
from .table import LuaTable

logger = logging.getLogger(__name__)

MULTRET = -1
REGISTRYINDEX = -10000
GLOBALSINDEX = -10002
DEFAULT_MAX_CALL_DEPTH = 120
MAX_TAG_LOOP = 100

# Returned by _value() for an acceptable index past the top.
_NONE = object()

NativeCallable = Callable[["LuaVM"], int]


class LuaVM:
    """A Lua state: one value stack, the global table and the registry.

    The stack API mirrors the C API of Lua 5.1. Positive indices address
    slots of the current frame (1 is the first argument of a native call),
    negative indices count down from the top, and ``REGISTRYINDEX`` /
    ``GLOBALSINDEX`` are pseudo-indices.
    """

    def __init__(
        self,
        *,
        max_call_depth: int = DEFAULT_MAX_CALL_DEPTH,
        output: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self.stack: List[Any] = []
        self.globals = LuaTable()
        self.registry = LuaTable()
        self.globals.raw_set("_G", self.globals)
        self.string_metatable: Optional[LuaTable] = None
        self.max_call_depth = max_call_depth
        self.output = output or sys.stdout.write
        # Active calls, innermost last: a Frame for script functions, the
        # NativeFunction itself for host ones.
        self.call_stack: List[Union[Frame, NativeFunction]] = []
        self.interpreter = Interpreter(self)
        self.closed = False
        self._base = 0
        self._saved_bases: List[int] = []
        self._depth = 0
        self._userdata: List[UserData] = []

    # ------------------------------------------------------------ stack basics
    def gettop(self) -> int:
        return len(self.stack) - self._base

    def settop(self, index: int) -> None:
        if index >= 0:
            target = self._base + index
            if target > len(self.stack):
                self.stack.extend([None] * (target - len(self.stack)))
            else:
                del self.stack[target:]
        else:
            target = len(self.stack) + index + 1
            if target < self._base:
                raise IndexError(f"invalid stack index {index}")
            del self.stack[target:]

    def pop(self, count: int = 1) -> None:
        self.settop(-count - 1)

    def absindex(self, index: int) -> int:
        if index > 0 or index <= REGISTRYINDEX:
            return index
        return self.gettop() + index + 1

    def pushvalue(self, index: int) -> None:
        self.stack.append(self.get(index))

    def remove(self, index: int) -> None:
        del self.stack[self._position(index)]

    def insert(self, index: int) -> None:
        value = self.stack.pop()
        self.stack.insert(self._position(index), value)

    def get(self, index: int) -> Any:
        """Raw runtime value at ``index`` (``None`` for nil or none)."""
        value = self._value(index)
        return None if value is _NONE else value

    def push(self, value: Any) -> None:
        """Push a raw runtime value."""
        type_of(value)
        self.stack.append(float(value) if type(value) is int else value)

    # ------------------------------------------------------------ type queries
    def type(self, index: int) -> int:
        value = self._value(index)
        if value is _NONE:
            return TNONE
        return type_of(value)

    def typename(self, tag: int) -> str:
        return type_name(tag)

    def isnone(self, index: int) -> bool:
        return self._value(index) is _NONE

    def isnil(self, index: int) -> bool:
        return self.get(index) is None

    def isstring(self, index: int) -> bool:
        value = self.get(index)
        return isinstance(value, (str, float)) and not isinstance(value, bool)

    def istable(self, index: int) -> bool:
        return isinstance(self.get(index), LuaTable)

    def isfunction(self, index: int) -> bool:
        return isinstance(self.get(index), (LuaFunction, NativeFunction))

    # --------------------------------------------------------- access values
    def toboolean(self, index: int) -> bool:
        return is_truthy(self.get(index))

    def tonumber(self, index: int) -> Optional[float]:
        return to_number(self.get(index))

    def tostring(self, index: int) -> Optional[str]:
        value = self.get(index)
        if isinstance(value, str):
            return value
        if isinstance(value, float):
            return format_number(value)
        return None

    def touserdata(self, index: int) -> Any:
        value = self.get(index)
        if isinstance(value, UserData):
            return value.payload
        return None

    def rawequal(self, index1: int, index2: int) -> bool:
        if self.isnone(index1) or self.isnone(index2):
            return False
        return raw_equal(self.get(index1), self.get(index2))

    def objlen(self, index: int) -> int:
        value = self.get(index)
        if isinstance(value, str):
            return len(value)
        if isinstance(value, LuaTable):
            return value.length()
        return 0

    # ----------------------------------------------------------- push values
    def pushnil(self) -> None:
        self.stack.append(None)

    def pushboolean(self, value: bool) -> None:
        self.stack.append(bool(value))

    def pushnumber(self, value: float) -> None:
        self.stack.append(float(value))

    def pushstring(self, value: Union[str, bytes]) -> None:
        if isinstance(value, bytes):
            value = value.decode("utf-8", "surrogateescape")
        self.stack.append(value)

    def pushcfunction(self, func: Union[NativeCallable, NativeFunction], name: Optional[str] = None) -> None:
        if not isinstance(func, NativeFunction):
            func = NativeFunction(func, name)
        self.stack.append(func)

    def newtable(self) -> None:
        self.stack.append(LuaTable())

    def newuserdata(self, payload: Any) -> UserData:
        userdata = UserData(payload)
        self._userdata.append(userdata)
        self.stack.append(userdata)
        return userdata

    # ------------------------------------------------------------ get/set
    def gettable(self, index: int) -> None:
        obj = self.get(index)
        key = self.stack.pop()
        self.stack.append(self.get_index(obj, key))

    def getfield(self, index: int, name: str) -> None:
        self.stack.append(self.get_index(self.get(index), name))

    def settable(self, index: int) -> None:
        obj = self.get(index)
        value = self.stack.pop()
        key = self.stack.pop()
        self.set_index(obj, key, value)

    def setfield(self, index: int, name: str) -> None:
        obj = self.get(index)
        value = self.stack.pop()
        self.set_index(obj, name, value)

    def rawget(self, index: int) -> None:
        table = self._table_at(index)
        key = self.stack.pop()
        self.stack.append(table.raw_get(key))

    def rawgeti(self, index: int, n: int) -> None:
        self.stack.append(self._table_at(index).raw_get(float(n)))

    def rawset(self, index: int) -> None:
        table = self._table_at(index)
        value = self.stack.pop()
        key = self.stack.pop()
        self._raw_set(table, key, value)

    def rawseti(self, index: int, n: int) -> None:
        table = self._table_at(index)
        self._raw_set(table, float(n), self.stack.pop())

    def getglobal(self, name: str) -> None:
        self.getfield(GLOBALSINDEX, name)

    def setglobal(self, name: str) -> None:
        self.setfield(GLOBALSINDEX, name)

    def getmetatable(self, index: int) -> bool:
        metatable = self._metatable(self.get(index))
        if metatable is None:
            return False
        self.stack.append(metatable)
        return True

    def setmetatable(self, index: int) -> None:
        obj = self.get(index)
        metatable = self.stack.pop()
        if metatable is not None and not isinstance(metatable, LuaTable):
            raise ScriptError("metatable must be a table or nil")
        if isinstance(obj, (LuaTable, UserData)):
            obj.metatable = metatable
        elif isinstance(obj, str):
            self.string_metatable = metatable
        else:
            raise ScriptError(f"cannot set the metatable of a {value_type_name(obj)} value")

    def next(self, index: int) -> bool:
        table = self._table_at(index)
        key = self.stack.pop()
        try:
            entry = table.next(key)
        except KeyError:
            raise ScriptError("invalid key to 'next'") from None
        if entry is None:
            return False
        self.stack.extend(entry)
        return True

    # ------------------------------------------------------------------ calls
    def call(self, nargs: int, nresults: int) -> None:
        func_pos = len(self.stack) - nargs - 1
        if func_pos < self._base:
            raise IndexError("not enough values on the stack for call")
        func = self.stack[func_pos]
        args = self.stack[func_pos + 1:]
        del self.stack[func_pos:]
        results = self.call_value(func, args)
        if nresults != MULTRET:
            results = adjust(results, nresults)
        self.stack.extend(results)

    def pcall(self, nargs: int, nresults: int, errfunc: int = 0) -> int:
        func_pos = len(self.stack) - nargs - 1
        handler = self.get(errfunc) if errfunc else None
        depth = len(self.call_stack)
        try:
            self.call(nargs, nresults)
            return OK
        except ScriptError as exc:
            status, error = ERRRUN, exc.value
        except RecursionError:
            status, error = ERRRUN, "stack overflow"
        except MemoryError:
            status, error = ERRMEM, "not enough memory"
        del self.stack[func_pos:]
        del self.call_stack[depth:]
        if handler is not None and status == ERRRUN:
            try:
                error = first(self.call_value(handler, [error]))
            except (ScriptError, RecursionError):
                status, error = ERRERR, "error in error handling"
        self.stack.append(error)
        return status

    def error(self) -> None:
        """Raise the value on top of the stack as a script error."""
        value = self.stack.pop() if self.gettop() > 0 else None
        raise ScriptError(value)

    def call_value(self, func: Any, args: List[Any]) -> List[Any]:
        if self.closed:
            raise RuntimeError("Lua state is closed")
        if self._depth >= self.max_call_depth:
            raise ScriptError(self.where() + "stack overflow")
        self._depth += 1
        try:
            if isinstance(func, NativeFunction):
                return self._call_native(func, args)
            if isinstance(func, LuaFunction):
                return self.interpreter.call(func, args)
            handler = self.metamethod(func, "__call")
            if handler is None:
                raise ScriptError(self.where() + f"attempt to call a {value_type_name(func)} value")
            return self.call_value(handler, [func, *args])
        finally:
            self._depth -= 1

    def _call_native(self, func: NativeFunction, args: List[Any]) -> List[Any]:
        base = len(self.stack)
        self.stack.extend(args)
        self._saved_bases.append(self._base)
        self._base = base
        self.call_stack.append(func)
        try:
            count = func.func(self) or 0
            top = len(self.stack)
            if count > top - base:
                raise ScriptError(f"native function '{func.name}' returned more results than it pushed")
            return self.stack[top - count:] if count else []
        finally:
            del self.stack[base:]
            self._base = self._saved_bases.pop()
            self.call_stack.pop()

    # --------------------------------------------------------------- loading
    def load(self, source: Union[str, bytes], chunkname: str = "?") -> int:
        if isinstance(source, bytes):
            source = source.decode("utf-8", "surrogateescape")
        try:
            chunk = LuaParser.parse(source, chunkname)
        except LuaParseError as exc:
            self.stack.append(str(exc))
            return ERRSYNTAX
        except RecursionError:
            self.stack.append(f"{chunkname}: chunk has too many syntax levels")
            return ERRSYNTAX
        logger.debug("loaded chunk %s", chunkname)
        self.stack.append(LuaFunction([], True, chunk.body, None, chunkname, name="main chunk"))
        return OK

    def loadfile(self, path: Union[str, pathlib.Path]) -> int:
        try:
            source = pathlib.Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            self.stack.append(f"cannot open {path}: {exc}")
            return ERRFILE
        return self.load(source, str(path))

    # ----------------------------------------------------- metatable semantics
    def metamethod(self, obj: Any, event: str) -> Any:
        metatable = self._metatable(obj)
        if metatable is None:
            return None
        return metatable.raw_get(event)

    def get_index(self, obj: Any, key: Any) -> Any:
        for _ in range(MAX_TAG_LOOP):
            if isinstance(obj, LuaTable):
                value = obj.raw_get(key)
                if value is not None:
                    return value
                handler = self.metamethod(obj, "__index")
                if handler is None:
                    return None
            else:
                handler = self.metamethod(obj, "__index")
                if handler is None:
                    raise ScriptError(self.where() + f"attempt to index a {value_type_name(obj)} value")
            if isinstance(handler, (LuaFunction, NativeFunction)):
                return first(self.call_value(handler, [obj, key]))
            obj = handler
        raise ScriptError(self.where() + "loop in gettable")

    def set_index(self, obj: Any, key: Any, value: Any) -> None:
        for _ in range(MAX_TAG_LOOP):
            if isinstance(obj, LuaTable):
                if obj.raw_get(key) is not None:
                    self._raw_set(obj, key, value)
                    return
                handler = self.metamethod(obj, "__newindex")
                if handler is None:
                    self._raw_set(obj, key, value)
                    return
            else:
                handler = self.metamethod(obj, "__newindex")
                if handler is None:
                    raise ScriptError(self.where() + f"attempt to index a {value_type_name(obj)} value")
            if isinstance(handler, (LuaFunction, NativeFunction)):
                self.call_value(handler, [obj, key, value])
                return
            obj = handler
        raise ScriptError(self.where() + "loop in settable")

    def tostring_value(self, value: Any) -> str:
        handler = self.metamethod(value, "__tostring")
        if handler is not None:
            result = first(self.call_value(handler, [value]))
            if not isinstance(result, str):
                raise ScriptError("'__tostring' must return a string")
            return result
        if value is None:
            return "nil"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, float):
            return format_number(value)
        if isinstance(value, str):
            return value
        return f"{value_type_name(value)}: 0x{id(value):08x}"

    def where(self, level: int = 0) -> str:
        """Position prefix ``chunk:line: `` of the function ``level`` calls up."""
        idx = len(self.call_stack) - 1 - level
        if idx < 0:
            return ""
        entry = self.call_stack[idx]
        if isinstance(entry, Frame):
            return f"{entry.func.chunkname}:{entry.line}: "
        return ""

    # ------------------------------------------------------- garbage collector
    def collect_garbage(self) -> int:
        """Full mark & sweep; finalizes unreachable userdata. Returns how many."""
        seen: set[int] = set()
        gray: List[Any] = []

        def mark(value: Any) -> None:
            if isinstance(value, (LuaTable, UserData, LuaFunction)) and id(value) not in seen:
                seen.add(id(value))
                gray.append(value)

        def mark_scope(scope: Optional[Scope]) -> None:
            while scope is not None and id(scope) not in seen:
                seen.add(id(scope))
                for value in scope.vars.values():
                    mark(value)
                scope = scope.parent

        mark(self.globals)
        mark(self.registry)
        mark(self.string_metatable)
        for value in self.stack:
            mark(value)
        for entry in self.call_stack:
            if isinstance(entry, Frame):
                mark(entry.func)
                mark_scope(entry.scope)
                for value in entry.varargs:
                    mark(value)
                for pending in entry.pending:
                    for value in pending:
                        mark(value)

        while gray:
            obj = gray.pop()
            if isinstance(obj, LuaTable):
                mark(obj.metatable)
                for key, value in obj.iter_items():
                    mark(key)
                    mark(value)
            elif isinstance(obj, UserData):
                mark(obj.metatable)
            else:
                mark_scope(obj.scope)

        dead = [ud for ud in self._userdata if id(ud) not in seen]
        self._userdata = [ud for ud in self._userdata if id(ud) in seen]
        for userdata in reversed(dead):
            self._finalize(userdata)
        if dead:
            logger.debug("collected %d userdata", len(dead))
        return len(dead)

    def close(self) -> None:
        """Finalize every userdata (newest first) and invalidate the state."""
        if self.closed:
            return
        pending, self._userdata = self._userdata, []
        for userdata in reversed(pending):
            self._finalize(userdata)
        self.stack.clear()
        self.call_stack.clear()
        self.globals = LuaTable()
        self.registry = LuaTable()
        self.closed = True

    def _finalize(self, userdata: UserData) -> None:
        handler = self.metamethod(userdata, "__gc")
        if handler is None:
            return
        try:
            self.call_value(handler, [userdata])
        except ScriptError as exc:
            logger.warning("error in __gc metamethod: %s", exc)

    # -------------------------------------------------------------- internals
    def _position(self, index: int) -> int:
        if index > 0:
            pos = self._base + index - 1
        elif index < 0 and index > REGISTRYINDEX:
            pos = len(self.stack) + index
        else:
            raise IndexError(f"invalid stack index {index}")
        if pos < self._base or pos >= len(self.stack):
            raise IndexError(f"invalid stack index {index}")
        return pos

    def _value(self, index: int) -> Any:
        if index == REGISTRYINDEX:
            return self.registry
        if index == GLOBALSINDEX:
            return self.globals
        if index > 0:
            pos = self._base + index - 1
            if pos >= len(self.stack):
                return _NONE
            return self.stack[pos]
        return self.stack[self._position(index)]

    def _table_at(self, index: int) -> LuaTable:
        value = self.get(index)
        if not isinstance(value, LuaTable):
            raise ScriptError(f"table expected, got {value_type_name(value)}")
        return value

    def _metatable(self, obj: Any) -> Optional[LuaTable]:
        if isinstance(obj, str):
            return self.string_metatable
        return metatable_of(obj)

    def _raw_set(self, table: LuaTable, key: Any, value: Any) -> None:
        try:
            table.raw_set(key, value)
        except ValueError as exc:
            raise ScriptError(self.where() + str(exc)) from None


__all__ = [
    "LuaVM",
    "MULTRET",
    "REGISTRYINDEX",
    "GLOBALSINDEX",
    "DEFAULT_MAX_CALL_DEPTH",
]
