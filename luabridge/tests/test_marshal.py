import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from luabridge import LuaTypeError, LuaValue, push_lua_value, read_arguments, to_lua_value, to_lua_value_list
from luavm import TBOOLEAN, TNIL, TNUMBER, TSTRING, TTABLE, LuaVM


def nested_value():
    return LuaValue(
        {
            1: "first",
            2: {"name": "level two", 10: True, "deeper": {1: 1.5, "flag": False, "x": "y"}},
            "key": 3,
            False: {1: {}},
            -7.25: "negative key",
        }
    )


def test_scalars_land_with_matching_tags():
    vm = LuaVM()
    for value in (None, True, 4, "s", {}):
        push_lua_value(vm, value)
    assert [vm.type(i) for i in range(1, 6)] == [TNIL, TBOOLEAN, TNUMBER, TSTRING, TTABLE]
    assert vm.tonumber(3) == 4.0
    assert vm.tostring(4) == "s"


def test_push_creates_one_slot_per_value():
    vm = LuaVM()
    push_lua_value(vm, nested_value())
    assert vm.gettop() == 1
    vm.getfield(-1, "key")
    assert vm.tonumber(-1) == 3
    vm.pop()
    vm.rawgeti(-1, 2)
    vm.getfield(-1, "deeper")
    vm.getfield(-1, "x")
    assert vm.tostring(-1) == "y"


def test_round_trip_of_nested_tables():
    vm = LuaVM()
    value = nested_value()
    push_lua_value(vm, value)
    assert to_lua_value(vm, -1) == value
    assert vm.gettop() == 1


def test_read_leaves_stack_untouched_with_values_above():
    vm = LuaVM()
    push_lua_value(vm, {"a": {"b": 1}})
    vm.pushstring("above")
    vm.pushnumber(9)
    result = to_lua_value(vm, -3)
    assert result == {"a": {"b": 1}}
    assert vm.gettop() == 3
    assert vm.tonumber(-1) == 9
    assert vm.tostring(-2) == "above"


def test_table_built_by_the_runtime_is_read_fully():
    vm = LuaVM()
    vm.newtable()
    for n in range(1, 6):
        vm.pushnumber(n * n)
        vm.rawseti(-2, n)
    vm.pushboolean(True)
    vm.setfield(-2, "done")
    result = to_lua_value(vm, 1)
    assert len(result) == 6
    assert [result[n].as_number() for n in range(1, 6)] == [1, 4, 9, 16, 25]
    assert result["done"].as_boolean() is True


def test_shared_subtable_is_not_a_cycle():
    vm = LuaVM()
    vm.newtable()
    vm.newtable()
    vm.pushvalue(-1)
    vm.setfield(-3, "left")
    vm.setfield(-2, "right")
    assert to_lua_value(vm, -1) == {"left": {}, "right": {}}


def test_cyclic_table_is_rejected():
    vm = LuaVM()
    vm.newtable()
    vm.pushvalue(-1)
    vm.setfield(-2, "self")
    with pytest.raises(LuaTypeError) as excinfo:
        to_lua_value(vm, -1)
    assert "Cyclic table" in str(excinfo.value)
    assert vm.gettop() == 1


def test_functions_are_unsupported():
    vm = LuaVM()
    vm.pushcfunction(lambda state: 0, "noop")
    with pytest.raises(LuaTypeError) as excinfo:
        to_lua_value(vm, 1)
    assert str(excinfo.value) == "Unsupported type found in call to 'to_lua_value()'"


def test_unsupported_value_inside_table_restores_stack():
    vm = LuaVM()
    vm.newtable()
    vm.pushstring("ok")
    vm.setfield(-2, "a")
    vm.newuserdata(object())
    vm.setfield(-2, "b")
    with pytest.raises(LuaTypeError):
        to_lua_value(vm, 1)
    assert vm.gettop() == 1
    assert vm.istable(1)


def test_nil_key_cannot_be_pushed():
    vm = LuaVM()
    vm.pushstring("bottom")
    with pytest.raises(LuaTypeError):
        push_lua_value(vm, {None: 1})
    assert vm.gettop() == 1


def test_nan_key_cannot_be_pushed():
    vm = LuaVM()
    with pytest.raises(LuaTypeError):
        push_lua_value(vm, {"outer": {float("nan"): 1}})
    assert vm.gettop() == 0


def test_nil_values_vanish_in_the_runtime():
    vm = LuaVM()
    value = LuaValue({})
    value.slot("empty")
    value["kept"] = 1
    push_lua_value(vm, value)
    assert to_lua_value(vm, -1) == {"kept": 1}


def test_value_list_keeps_stack_order_and_pops():
    vm = LuaVM()
    vm.pushstring("below")
    vm.pushnumber(1)
    vm.pushstring("two")
    vm.pushboolean(True)
    values = to_lua_value_list(vm, 1)
    assert values == [LuaValue(1), LuaValue("two"), LuaValue(True)]
    assert vm.gettop() == 1
    assert vm.tostring(1) == "below"


def test_value_list_failure_drops_everything_above_base():
    vm = LuaVM()
    vm.pushnumber(1)
    vm.pushcfunction(lambda state: 0, "f")
    vm.pushnumber(3)
    with pytest.raises(LuaTypeError):
        to_lua_value_list(vm, 0)
    assert vm.gettop() == 0


def test_read_arguments_clears_from_first():
    vm = LuaVM()
    for item in ("self", 1, "x"):
        push_lua_value(vm, item)
    assert read_arguments(vm, 2) == [LuaValue(1), LuaValue("x")]
    assert vm.gettop() == 1
    assert read_arguments(vm) == [LuaValue("self")]
    assert vm.gettop() == 0
