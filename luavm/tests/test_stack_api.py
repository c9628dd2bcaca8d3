import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from luavm import (
    ERRERR,
    ERRFILE,
    ERRRUN,
    ERRSYNTAX,
    GLOBALSINDEX,
    MULTRET,
    OK,
    REGISTRYINDEX,
    TBOOLEAN,
    TNIL,
    TNONE,
    TNUMBER,
    TSTRING,
    TTABLE,
    LuaVM,
    ScriptError,
    open_libs,
)


@pytest.fixture
def vm():
    state = LuaVM()
    open_libs(state)
    return state


def test_push_and_query(vm):
    vm.pushnil()
    vm.pushboolean(True)
    vm.pushnumber(3)
    vm.pushstring(b"bytes")
    vm.newtable()
    assert vm.gettop() == 5
    assert [vm.type(i) for i in range(1, 6)] == [TNIL, TBOOLEAN, TNUMBER, TSTRING, TTABLE]
    assert vm.type(6) == TNONE
    assert vm.typename(vm.type(-1)) == "table"
    assert vm.tostring(3) == "3"
    assert vm.tonumber(3) == 3.0
    assert vm.tostring(4) == "bytes"
    assert vm.toboolean(1) is False
    assert vm.toboolean(2) is True


def test_index_manipulation(vm):
    for value in ("a", "b", "c"):
        vm.pushstring(value)
    vm.insert(1)
    assert [vm.tostring(i) for i in range(1, 4)] == ["c", "a", "b"]
    vm.remove(2)
    assert [vm.tostring(i) for i in range(1, 3)] == ["c", "b"]
    vm.pushvalue(1)
    assert vm.tostring(-1) == "c"
    assert vm.absindex(-1) == 3
    assert vm.absindex(REGISTRYINDEX) == REGISTRYINDEX
    vm.settop(1)
    assert vm.gettop() == 1
    vm.settop(3)
    assert vm.isnil(3)
    vm.pop(3)
    assert vm.gettop() == 0


def test_tables_and_traversal(vm):
    vm.newtable()
    vm.pushstring("value")
    vm.setfield(-2, "key")
    vm.pushnumber(10)
    vm.rawseti(-2, 1)
    vm.getfield(-1, "key")
    assert vm.tostring(-1) == "value"
    vm.pop()
    seen = {}
    vm.pushnil()
    while vm.next(-2):
        seen[vm.get(-2)] = vm.get(-1)
        vm.pop()
    assert seen == {"key": "value", 1.0: 10.0}
    assert vm.gettop() == 1


def test_globals_and_registry(vm):
    vm.pushnumber(42)
    vm.setglobal("answer")
    vm.getfield(GLOBALSINDEX, "answer")
    assert vm.tonumber(-1) == 42
    vm.pushstring("stored")
    vm.setfield(REGISTRYINDEX, "slot")
    vm.getfield(REGISTRYINDEX, "slot")
    assert vm.tostring(-1) == "stored"


def test_native_function_call(vm):
    def add(state):
        state.pushnumber(state.tonumber(1) + state.tonumber(2))
        return 1

    vm.pushcfunction(add, "add")
    vm.pushnumber(2)
    vm.pushnumber(5)
    vm.call(2, 1)
    assert vm.gettop() == 1
    assert vm.tonumber(-1) == 7


def test_call_adjusts_results(vm):
    assert vm.load("return 1, 2, 3") == OK
    vm.call(0, 2)
    assert vm.gettop() == 2
    assert vm.load("return 1, 2, 3") == OK
    vm.call(0, MULTRET)
    assert vm.gettop() == 5


def test_nil_table_key_raises(vm):
    vm.newtable()
    vm.pushnil()
    vm.pushnumber(1)
    with pytest.raises(ScriptError):
        vm.settable(-3)


def test_pcall_statuses(vm):
    assert vm.load("error('boom', 0)") == OK
    assert vm.pcall(0, 0) == ERRRUN
    assert vm.tostring(-1) == "boom"
    vm.pop()

    def failing_handler(state):
        raise ScriptError("again")

    vm.pushcfunction(failing_handler, "handler")
    assert vm.load("error('x')") == OK
    assert vm.pcall(0, 0, 1) == ERRERR
    assert vm.tostring(-1) == "error in error handling"


def test_load_reports_syntax_errors(vm):
    assert vm.load("x = = 1", "chunk") == ERRSYNTAX
    assert vm.tostring(-1).startswith("chunk:1:")


def test_loadfile(vm, tmp_path):
    script = tmp_path / "script.lua"
    script.write_text("return 'from file'", encoding="utf-8")
    assert vm.loadfile(script) == OK
    vm.call(0, 1)
    assert vm.tostring(-1) == "from file"
    assert vm.loadfile(tmp_path / "missing.lua") == ERRFILE
    assert vm.tostring(-1).startswith("cannot open")


def test_native_error_surfaces_through_pcall(vm):
    def fail(state):
        state.pushstring("native failure")
        state.error()
        return 0

    vm.pushcfunction(fail, "fail")
    vm.setglobal("fail")
    assert vm.load("local ok, msg = pcall(fail) return ok, msg") == OK
    vm.call(0, MULTRET)
    assert vm.toboolean(1) is False
    assert vm.tostring(2) == "native failure"


def test_closed_state_rejects_calls(vm):
    vm.close()
    assert vm.closed
    vm.pushcfunction(lambda state: 0, "noop")
    with pytest.raises(RuntimeError):
        vm.call(0, 0)
