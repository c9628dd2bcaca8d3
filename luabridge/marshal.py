from __future__ import annotations

import math
from typing import Any, Set

from luavm import TBOOLEAN, TNIL, TNUMBER, TSTRING, TTABLE, LuaVM

from .errors import LuaTypeError
from .value import LuaType, LuaValue, LuaValueList, LuaValueMap


def to_lua_value(vm: LuaVM, index: int) -> LuaValue:
    """Read the stack slot at ``index``; the stack is left as it was."""
    top = vm.gettop()
    try:
        return _read(vm, vm.absindex(index), set())
    except LuaTypeError:
        vm.settop(top)
        raise


def _read(vm: LuaVM, index: int, visiting: Set[int]) -> LuaValue:
    tag = vm.type(index)
    if tag == TNIL:
        return LuaValue()
    if tag == TBOOLEAN:
        return LuaValue(vm.toboolean(index))
    if tag == TNUMBER:
        return LuaValue(vm.tonumber(index))
    if tag == TSTRING:
        return LuaValue(vm.tostring(index))
    if tag == TTABLE:
        table_id = id(vm.get(index))
        if table_id in visiting:
            raise LuaTypeError("Cyclic table found in call to 'to_lua_value()'")
        visiting.add(table_id)
        entries = LuaValueMap()
        # next() pushes above the table, so index must stay absolute here
        vm.pushnil()
        while vm.next(index):
            top = vm.gettop()
            entries[_read(vm, top - 1, visiting)] = _read(vm, top, visiting)
            vm.pop()
        visiting.discard(table_id)
        return LuaValue._wrap(LuaType.TABLE, entries)
    raise LuaTypeError("Unsupported type found in call to 'to_lua_value()'")


def push_lua_value(vm: LuaVM, value: Any) -> None:
    """Push ``value`` (a LuaValue or anything LuaValue accepts) as one slot."""
    if not isinstance(value, LuaValue):
        value = LuaValue(value)
    top = vm.gettop()
    try:
        _push(vm, value)
    except LuaTypeError:
        vm.settop(top)
        raise


def _push(vm: LuaVM, value: LuaValue) -> None:
    kind = value.type()
    if kind is LuaType.NIL:
        vm.pushnil()
    elif kind is LuaType.BOOLEAN:
        vm.pushboolean(value.as_boolean())
    elif kind is LuaType.NUMBER:
        vm.pushnumber(value.as_number())
    elif kind is LuaType.STRING:
        vm.pushstring(value.as_string())
    else:
        vm.newtable()
        for key, item in value.entries():
            if key.is_nil() or (key.is_number() and math.isnan(key.as_number())):
                raise LuaTypeError(f"Invalid table key {key} in call to 'push_lua_value()'")
            _push(vm, key)
            _push(vm, item)
            vm.rawset(-3)


def to_lua_value_list(vm: LuaVM, base: int) -> LuaValueList:
    """Pop every slot above ``base`` and return them bottom first."""
    values: LuaValueList = []
    try:
        while vm.gettop() > base:
            values.append(to_lua_value(vm, -1))
            vm.pop()
    except LuaTypeError:
        vm.settop(base)
        raise
    values.reverse()
    return values


def read_arguments(vm: LuaVM, first: int = 1) -> LuaValueList:
    """Read positions ``first``..top, then drop them from the stack."""
    args = [to_lua_value(vm, index) for index in range(first, vm.gettop() + 1)]
    vm.settop(first - 1)
    return args


__all__ = ["to_lua_value", "push_lua_value", "to_lua_value_list", "read_arguments"]
