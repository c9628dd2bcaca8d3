from __future__ import annotations

import math
from typing import Callable, Dict, Optional

from .errors import OK, ScriptError
from .objects import (
    TNIL,
    TNONE,
    TNUMBER,
    TSTRING,
    TTABLE,
    NativeFunction,
    to_number,
)
from .vm import MULTRET, LuaVM

Native = Callable[[LuaVM], int]


# ------------------------------------------------------------ argument checks
def arg_error(vm: LuaVM, narg: int, message: str) -> ScriptError:
    """Error for a bad argument of the native function currently running."""
    current = vm.call_stack[-1] if vm.call_stack else None
    name = current.name if isinstance(current, NativeFunction) else "?"
    return ScriptError(f"{vm.where(1)}bad argument #{narg} to '{name}' ({message})")


def type_error(vm: LuaVM, narg: int, expected: str) -> ScriptError:
    found = vm.typename(vm.type(narg))
    return arg_error(vm, narg, f"{expected} expected, got {found}")


def check_any(vm: LuaVM, narg: int) -> None:
    if vm.type(narg) == TNONE:
        raise arg_error(vm, narg, "value expected")


def check_table(vm: LuaVM, narg: int) -> None:
    if vm.type(narg) != TTABLE:
        raise type_error(vm, narg, "table")


def check_number(vm: LuaVM, narg: int) -> float:
    value = vm.tonumber(narg)
    if value is None:
        raise type_error(vm, narg, "number")
    return value


def check_int(vm: LuaVM, narg: int) -> int:
    value = check_number(vm, narg)
    if math.isnan(value) or math.isinf(value):
        return 0
    return int(value)


def opt_int(vm: LuaVM, narg: int, default: int) -> int:
    if vm.type(narg) in (TNONE, TNIL):
        return default
    return check_int(vm, narg)


def check_string(vm: LuaVM, narg: int) -> str:
    value = vm.tostring(narg)
    if value is None:
        raise type_error(vm, narg, "string")
    return value


def opt_string(vm: LuaVM, narg: int, default: str) -> str:
    if vm.type(narg) in (TNONE, TNIL):
        return default
    return check_string(vm, narg)


def _error(vm: LuaVM, message: str) -> ScriptError:
    return ScriptError(vm.where(1) + message)


# ------------------------------------------------------------ base functions
def _print(vm: LuaVM) -> int:
    parts = [vm.tostring_value(vm.get(idx)) for idx in range(1, vm.gettop() + 1)]
    vm.output("\t".join(parts) + "\n")
    return 0


def _type(vm: LuaVM) -> int:
    check_any(vm, 1)
    vm.pushstring(vm.typename(vm.type(1)))
    return 1


def _tostring(vm: LuaVM) -> int:
    check_any(vm, 1)
    vm.pushstring(vm.tostring_value(vm.get(1)))
    return 1


def _tonumber(vm: LuaVM) -> int:
    base = opt_int(vm, 2, 10)
    if base == 10:
        check_any(vm, 1)
        number = to_number(vm.get(1))
    else:
        text = check_string(vm, 1).strip()
        if not 2 <= base <= 36:
            raise arg_error(vm, 2, "base out of range")
        try:
            number = float(int(text, base)) if text and "_" not in text else None
        except ValueError:
            number = None
    if number is None:
        vm.pushnil()
    else:
        vm.pushnumber(number)
    return 1


def _next(vm: LuaVM) -> int:
    check_table(vm, 1)
    vm.settop(2)
    if vm.next(1):
        return 2
    vm.pushnil()
    return 1


_NEXT = NativeFunction(_next, "next")


def _pairs(vm: LuaVM) -> int:
    check_table(vm, 1)
    vm.pushcfunction(_NEXT)
    vm.pushvalue(1)
    vm.pushnil()
    return 3


def _ipairs_aux(vm: LuaVM) -> int:
    check_table(vm, 1)
    index = check_int(vm, 2) + 1
    vm.pushnumber(index)
    vm.rawgeti(1, index)
    if vm.isnil(-1):
        return 0
    return 2


_IPAIRS_AUX = NativeFunction(_ipairs_aux, "ipairs_aux")


def _ipairs(vm: LuaVM) -> int:
    check_table(vm, 1)
    vm.pushcfunction(_IPAIRS_AUX)
    vm.pushvalue(1)
    vm.pushnumber(0)
    return 3


def _select(vm: LuaVM) -> int:
    count = vm.gettop()
    if vm.type(1) == TSTRING and vm.tostring(1) == "#":
        vm.pushnumber(count - 1)
        return 1
    index = check_int(vm, 1)
    if index < 0:
        index = count + index
    elif index > count:
        index = count
    if index < 1:
        raise arg_error(vm, 1, "index out of range")
    return count - index


def _error_builtin(vm: LuaVM) -> int:
    level = opt_int(vm, 2, 1)
    vm.settop(1)
    if level > 0 and vm.type(1) == TSTRING:
        vm.pushstring(vm.where(level) + vm.tostring(1))
        vm.remove(1)
    vm.error()
    return 0


def _assert(vm: LuaVM) -> int:
    check_any(vm, 1)
    if not vm.toboolean(1):
        raise _error(vm, opt_string(vm, 2, "assertion failed!"))
    return vm.gettop()


def _pcall(vm: LuaVM) -> int:
    check_any(vm, 1)
    status = vm.pcall(vm.gettop() - 1, MULTRET)
    vm.pushboolean(status == OK)
    vm.insert(1)
    return vm.gettop()


def _xpcall(vm: LuaVM) -> int:
    check_any(vm, 2)
    vm.settop(2)
    vm.insert(1)  # handler below the function
    status = vm.pcall(0, MULTRET, 1)
    vm.remove(1)
    vm.pushboolean(status == OK)
    vm.insert(1)
    return vm.gettop()


def _setmetatable(vm: LuaVM) -> int:
    check_table(vm, 1)
    if vm.type(2) not in (TNIL, TTABLE):
        raise type_error(vm, 2, "nil or table")
    if vm.getmetatable(1):
        vm.getfield(-1, "__metatable")
        protected = not vm.isnil(-1)
        vm.pop(2)
        if protected:
            raise _error(vm, "cannot change a protected metatable")
    vm.settop(2)
    vm.setmetatable(1)
    return 1


def _getmetatable(vm: LuaVM) -> int:
    check_any(vm, 1)
    if not vm.getmetatable(1):
        vm.pushnil()
        return 1
    vm.getfield(-1, "__metatable")
    if vm.isnil(-1):
        vm.pop()
    return 1


def _rawget(vm: LuaVM) -> int:
    check_table(vm, 1)
    check_any(vm, 2)
    vm.settop(2)
    vm.rawget(1)
    return 1


def _rawset(vm: LuaVM) -> int:
    check_table(vm, 1)
    check_any(vm, 2)
    check_any(vm, 3)
    vm.settop(3)
    vm.rawset(1)
    return 1


def _rawequal(vm: LuaVM) -> int:
    check_any(vm, 1)
    check_any(vm, 2)
    vm.pushboolean(vm.rawequal(1, 2))
    return 1


def _unpack(vm: LuaVM) -> int:
    check_table(vm, 1)
    start = opt_int(vm, 2, 1)
    end = opt_int(vm, 3, vm.objlen(1))
    if start > end:
        return 0
    for index in range(start, end + 1):
        vm.rawgeti(1, index)
    return end - start + 1


def _collectgarbage(vm: LuaVM) -> int:
    option = opt_string(vm, 1, "collect")
    if option not in ("collect", "step"):
        raise arg_error(vm, 1, f"invalid option '{option}'")
    vm.pushnumber(vm.collect_garbage())
    return 1


# ------------------------------------------------------------ string library
def _string_len(vm: LuaVM) -> int:
    vm.pushnumber(len(check_string(vm, 1)))
    return 1


def _relative(position: int, length: int) -> int:
    if position < 0:
        position += length + 1
    return max(position, 0)


def _string_sub(vm: LuaVM) -> int:
    text = check_string(vm, 1)
    start = _relative(check_int(vm, 2), len(text))
    end = _relative(opt_int(vm, 3, -1), len(text))
    start = max(start, 1)
    end = min(end, len(text))
    vm.pushstring(text[start - 1:end] if start <= end else "")
    return 1


def _string_upper(vm: LuaVM) -> int:
    vm.pushstring(check_string(vm, 1).upper())
    return 1


def _string_lower(vm: LuaVM) -> int:
    vm.pushstring(check_string(vm, 1).lower())
    return 1


def _string_rep(vm: LuaVM) -> int:
    text = check_string(vm, 1)
    count = check_int(vm, 2)
    vm.pushstring(text * max(count, 0))
    return 1


def _string_byte(vm: LuaVM) -> int:
    text = check_string(vm, 1)
    start = _relative(opt_int(vm, 2, 1), len(text))
    end = _relative(opt_int(vm, 3, start), len(text))
    start = max(start, 1)
    end = min(end, len(text))
    if start > end:
        return 0
    for char in text[start - 1:end]:
        vm.pushnumber(ord(char))
    return end - start + 1


def _string_char(vm: LuaVM) -> int:
    chars = []
    for narg in range(1, vm.gettop() + 1):
        code = check_int(vm, narg)
        if not 0 <= code <= 255:
            raise arg_error(vm, narg, "invalid value")
        chars.append(chr(code))
    vm.pushstring("".join(chars))
    return 1


def _quote(text: str) -> str:
    out = ['"']
    for char in text:
        if char in '"\\\n':
            out.append("\\" + char)
        elif char == "\r":
            out.append("\\r")
        elif char == "\0":
            out.append("\\000")
        else:
            out.append(char)
    out.append('"')
    return "".join(out)


def _string_format(vm: LuaVM) -> int:
    template = check_string(vm, 1)
    narg = 1
    output = []
    length = len(template)
    index = 0
    while index < length:
        char = template[index]
        if char != "%":
            output.append(char)
            index += 1
            continue
        index += 1
        if index < length and template[index] == "%":
            output.append("%")
            index += 1
            continue
        start = index
        while index < length and template[index] in "-+ #0":
            index += 1
        while index < length and template[index].isdigit():
            index += 1
        if index < length and template[index] == ".":
            index += 1
            while index < length and template[index].isdigit():
                index += 1
        if index >= length:
            raise _error(vm, "invalid option '%' to 'format'")
        spec = template[start:index]
        conversion = template[index]
        index += 1
        narg += 1
        if conversion == "c":
            output.append(chr(check_int(vm, narg)))
        elif conversion in "di":
            output.append(("%" + spec + "d") % check_int(vm, narg))
        elif conversion in "ouxX":
            output.append(("%" + spec + ("d" if conversion == "u" else conversion)) % check_int(vm, narg))
        elif conversion in "eEfgG":
            output.append(("%" + spec + conversion) % check_number(vm, narg))
        elif conversion == "q":
            output.append(_quote(check_string(vm, narg)))
        elif conversion == "s":
            output.append(("%" + spec + "s") % check_string(vm, narg))
        else:
            raise _error(vm, f"invalid option '%{conversion}' to 'format'")
    vm.pushstring("".join(output))
    return 1


# ------------------------------------------------------------- table library
def _table_insert(vm: LuaVM) -> int:
    check_table(vm, 1)
    size = vm.objlen(1) + 1
    count = vm.gettop()
    if count == 2:
        position = size
    elif count == 3:
        position = check_int(vm, 2)
        if position > size:
            size = position
        for index in range(size, position, -1):
            vm.rawgeti(1, index - 1)
            vm.rawseti(1, index)
    else:
        raise _error(vm, "wrong number of arguments to 'insert'")
    vm.rawseti(1, position)
    return 0


def _table_remove(vm: LuaVM) -> int:
    check_table(vm, 1)
    size = vm.objlen(1)
    position = opt_int(vm, 2, size)
    if size == 0:
        return 0
    vm.rawgeti(1, position)
    for index in range(position, size):
        vm.rawgeti(1, index + 1)
        vm.rawseti(1, index)
    vm.pushnil()
    vm.rawseti(1, size)
    return 1


def _table_concat(vm: LuaVM) -> int:
    check_table(vm, 1)
    separator = opt_string(vm, 2, "")
    start = opt_int(vm, 3, 1)
    end = opt_int(vm, 4, vm.objlen(1))
    parts = []
    for index in range(start, end + 1):
        vm.rawgeti(1, index)
        if vm.type(-1) not in (TSTRING, TNUMBER):
            raise _error(vm, f"invalid value (at index {index}) in table for 'concat'")
        parts.append(vm.tostring(-1))
        vm.pop()
    vm.pushstring(separator.join(parts))
    return 1


# -------------------------------------------------------------- math library
def _math_floor(vm: LuaVM) -> int:
    vm.pushnumber(math.floor(check_number(vm, 1)))
    return 1


def _math_ceil(vm: LuaVM) -> int:
    vm.pushnumber(math.ceil(check_number(vm, 1)))
    return 1


def _math_abs(vm: LuaVM) -> int:
    vm.pushnumber(abs(check_number(vm, 1)))
    return 1


def _math_sqrt(vm: LuaVM) -> int:
    value = check_number(vm, 1)
    vm.pushnumber(math.sqrt(value) if value >= 0 else math.nan)
    return 1


def _math_extreme(pick: Callable[[float, float], bool]) -> Native:
    def extreme(vm: LuaVM) -> int:
        best = check_number(vm, 1)
        for narg in range(2, vm.gettop() + 1):
            value = check_number(vm, narg)
            if pick(value, best):
                best = value
        vm.pushnumber(best)
        return 1

    return extreme


BASE_FUNCTIONS: Dict[str, Native] = {
    "print": _print,
    "type": _type,
    "tostring": _tostring,
    "tonumber": _tonumber,
    "next": _next,
    "pairs": _pairs,
    "ipairs": _ipairs,
    "select": _select,
    "error": _error_builtin,
    "assert": _assert,
    "pcall": _pcall,
    "xpcall": _xpcall,
    "setmetatable": _setmetatable,
    "getmetatable": _getmetatable,
    "rawget": _rawget,
    "rawset": _rawset,
    "rawequal": _rawequal,
    "unpack": _unpack,
    "collectgarbage": _collectgarbage,
}

STRING_FUNCTIONS: Dict[str, Native] = {
    "len": _string_len,
    "sub": _string_sub,
    "upper": _string_upper,
    "lower": _string_lower,
    "rep": _string_rep,
    "byte": _string_byte,
    "char": _string_char,
    "format": _string_format,
}

TABLE_FUNCTIONS: Dict[str, Native] = {
    "insert": _table_insert,
    "remove": _table_remove,
    "concat": _table_concat,
}

MATH_FUNCTIONS: Dict[str, Native] = {
    "floor": _math_floor,
    "ceil": _math_ceil,
    "abs": _math_abs,
    "sqrt": _math_sqrt,
    "max": _math_extreme(lambda value, best: value > best),
    "min": _math_extreme(lambda value, best: value < best),
}


def _register_library(vm: LuaVM, name: Optional[str], functions: Dict[str, Native]) -> None:
    if name is None:
        for fname, func in functions.items():
            vm.pushcfunction(func, fname)
            vm.setglobal(fname)
        return
    vm.newtable()
    for fname, func in functions.items():
        vm.pushcfunction(func, fname)
        vm.setfield(-2, fname)
    vm.setglobal(name)


def open_libs(vm: LuaVM) -> None:
    """Install the base functions and the string, table and math libraries."""
    _register_library(vm, None, BASE_FUNCTIONS)
    _register_library(vm, "string", STRING_FUNCTIONS)
    _register_library(vm, "table", TABLE_FUNCTIONS)
    _register_library(vm, "math", MATH_FUNCTIONS)

    vm.getglobal("math")
    vm.pushnumber(math.inf)
    vm.setfield(-2, "huge")
    vm.pushnumber(math.pi)
    vm.setfield(-2, "pi")
    vm.pop()

    # strings index into the string library: ("x"):upper()
    vm.pushstring("")
    vm.newtable()
    vm.getglobal("string")
    vm.setfield(-2, "__index")
    vm.setmetatable(-2)
    vm.pop()


__all__ = [
    "open_libs",
    "arg_error",
    "type_error",
    "check_any",
    "check_table",
    "check_number",
    "check_int",
    "opt_int",
    "check_string",
    "opt_string",
]
