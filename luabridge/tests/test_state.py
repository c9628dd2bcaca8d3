import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from luabridge import (
    LuaError,
    LuaErrorInErrorHandler,
    LuaFileError,
    LuaMemoryError,
    LuaRunTimeError,
    LuaState,
    LuaSyntaxError,
    LuaValue,
)
from luabridge.state import NO_ERROR_INFO
from luavm import ERRERR, ERRFILE, ERRMEM, ERRRUN, ERRSYNTAX, OK


def test_do_string_returns_first_result():
    state = LuaState()
    assert state.do_string("return 1, 2") == 1
    assert state.do_string("x = 1").is_nil()
    assert state.vm.gettop() == 0


def test_do_string_mult_ret_keeps_order():
    state = LuaState()
    results = state.do_string_mult_ret('return 1, "a", {x = {y = true}}, nil')
    assert results == [1, "a", {"x": {"y": True}}, None]


def test_state_persists_between_chunks():
    state = LuaState()
    state.do_string("function add(a, b) return a + b end")
    assert state.do_string("return add(2, 3)") == 5


def test_do_file(tmp_path):
    script = tmp_path / "script.lua"
    script.write_text("local t = {}\nfor i = 1, 3 do t[i] = i * i end\nreturn t, #t\n", encoding="utf-8")
    state = LuaState()
    table, size = state.do_file_mult_ret(script)
    assert table == {1: 1, 2: 4, 3: 9}
    assert size == 3
    assert state.do_file(str(script))[3] == 9


def test_missing_file_is_a_file_error(tmp_path):
    state = LuaState()
    with pytest.raises(LuaFileError) as excinfo:
        state.do_file(tmp_path / "missing.lua")
    assert "missing.lua" in str(excinfo.value)
    assert state.vm.gettop() == 0


def test_syntax_error_carries_position():
    state = LuaState()
    with pytest.raises(LuaSyntaxError) as excinfo:
        state.do_string("x = = 1")
    assert str(excinfo.value).startswith("line:1:")


def test_chunk_name_is_used_in_messages():
    state = LuaState()
    with pytest.raises(LuaRunTimeError) as excinfo:
        state.do_string("\nerror('boom')", chunk_name="config")
    assert str(excinfo.value) == "config:2: boom"


def test_non_string_error_value_falls_back_to_default_message():
    state = LuaState()
    with pytest.raises(LuaRunTimeError) as excinfo:
        state.do_string("error({code = 1})")
    assert str(excinfo.value) == NO_ERROR_INFO
    assert state.vm.gettop() == 0


class TestThrowOnLuaError:
    @pytest.mark.parametrize(
        "code, kind",
        [
            (ERRRUN, LuaRunTimeError),
            (ERRFILE, LuaFileError),
            (ERRSYNTAX, LuaSyntaxError),
            (ERRMEM, LuaMemoryError),
            (ERRERR, LuaErrorInErrorHandler),
        ],
    )
    def test_codes_map_to_error_kinds(self, code, kind):
        state = LuaState()
        state.vm.pushstring("details")
        with pytest.raises(kind) as excinfo:
            state.throw_on_lua_error(code)
        assert str(excinfo.value) == "details"
        assert state.vm.gettop() == 0

    def test_ok_is_silent(self):
        state = LuaState()
        state.vm.pushstring("untouched")
        state.throw_on_lua_error(OK)
        assert state.vm.gettop() == 1

    def test_number_messages_are_converted(self):
        state = LuaState()
        state.vm.pushnumber(12)
        with pytest.raises(LuaRunTimeError) as excinfo:
            state.throw_on_lua_error(ERRRUN)
        assert str(excinfo.value) == "12"

    def test_unknown_code(self):
        state = LuaState()
        with pytest.raises(LuaError) as excinfo:
            state.throw_on_lua_error(99)
        assert type(excinfo.value) is LuaError
        assert str(excinfo.value) == "Unknown Lua return code passed to 'LuaState.throw_on_lua_error'."


def test_error_in_error_handler_is_classified():
    state = LuaState()
    vm = state.vm
    vm.pushcfunction(lambda lua: lua.error() or 0, "handler")
    vm.pushcfunction(lambda lua: lua.error() or 0, "failing")
    with pytest.raises(LuaErrorInErrorHandler):
        state.throw_on_lua_error(vm.pcall(0, 0, 1))


def test_globals_access():
    state = LuaState()
    state["config"] = {"name": "demo", "sizes": {1: 10, 2: 20}}
    assert state.do_string("return config.sizes[2] + #config.sizes") == 22
    state.do_string("answer = 42")
    assert state["answer"] == 42
    assert state["undefined"].is_nil()
    assert state.vm.gettop() == 0


def test_call_function_returns_every_result():
    state = LuaState()
    state.do_string("function swap(a, b) return b, a end")
    assert state.call_function("swap", 1, "x") == ["x", 1]
    with pytest.raises(LuaRunTimeError) as excinfo:
        state.call_function("nope")
    assert "attempt to call a nil value" in str(excinfo.value)
    assert state.vm.gettop() == 0


def test_push_and_read_through_the_state():
    state = LuaState()
    state.push_lua_value({"k": {1: 1, 2: 2}})
    assert state.to_lua_value(-1) == LuaValue({"k": {1: 1, 2: 2}})
    assert state.vm.gettop() == 1


def test_print_uses_configured_output():
    written = []
    state = LuaState(output=written.append)
    state.do_string("print('a', 1, nil, true)")
    assert written == ["a\t1\tnil\ttrue\n"]


def test_without_stdlib():
    state = LuaState(load_stdlib=False)
    assert state["print"].is_nil()
    with pytest.raises(LuaRunTimeError):
        state.do_string("print('x')")


def test_call_depth_is_configurable():
    state = LuaState(max_call_depth=20)
    state.do_string("function down(n) if n == 0 then return 0 end return down(n - 1) end")
    assert state.do_string("return down(10)") == 0
    with pytest.raises(LuaRunTimeError) as excinfo:
        state.do_string("return down(50)")
    assert "stack overflow" in str(excinfo.value)


def test_closed_state_rejects_work():
    with LuaState() as state:
        state.do_string("x = 1")
    assert state.closed
    state.close()
    with pytest.raises(LuaError):
        state.do_string("return 1")
    with pytest.raises(LuaError):
        state["x"]
