import logging
import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from luabridge import (
    LuaClass,
    LuaError,
    LuaRunTimeError,
    LuaState,
    ObjectArena,
    ObjectHandle,
    Ownership,
    TypeMismatchError,
)


class Counter:
    def __init__(self, args):
        self.value = args[0].as_number() if args else 0

    def inc(self, args):
        self.value += args[0].as_number() if args else 1

    def get(self, args):
        return self.value


@pytest.fixture
def destroyed():
    return []


@pytest.fixture
def counter_class(destroyed):
    return LuaClass("Counter", Counter, ["inc", "get"], destructor=destroyed.append)


@pytest.fixture
def state(counter_class):
    lua = LuaState()
    lua.register_class(counter_class)
    yield lua
    lua.close()


class TestRuntimeOwned:
    def test_construct_and_call_methods(self, state):
        results = state.do_string_mult_ret(
            """
            c = Counter.new()
            c:inc()
            local first = c:get()
            c:inc()
            return first, c:get()
            """
        )
        assert results == [1, 2]

    def test_constructor_receives_arguments(self, state):
        assert state.do_string("local c = Counter.new(10); c:inc(5); return c:get()") == 15

    def test_class_table_exposes_name_and_hooks(self, state):
        assert state.do_string("return Counter.classname") == "Counter"
        assert state.do_string_mult_ret("return type(Counter.new), type(Counter.delete), type(Counter.__gc)") == [
            "function",
            "function",
            "function",
        ]
        assert state.do_string("return type(Counter.new())") == "userdata"

    def test_explicit_delete_destroys_once(self, state, destroyed):
        state.do_string("c = Counter.new(); c:inc(); c:delete()")
        assert [obj.value for obj in destroyed] == [1]
        state.do_string("c:delete()")
        state.do_string("c = nil")
        state.collect_garbage()
        state.close()
        assert len(destroyed) == 1

    def test_use_after_delete_is_a_script_error(self, state):
        state.do_string("c = Counter.new(); c:delete()")
        with pytest.raises(LuaRunTimeError) as excinfo:
            state.do_string("return c:get()")
        assert str(excinfo.value) == "Attempt to use a destroyed 'Counter' object."

    def test_collector_destroys_unreachable_objects(self, state, destroyed):
        state.do_string("local c = Counter.new(3)")
        state.do_string("kept = Counter.new(4)")
        assert state.collect_garbage() == 1
        assert [obj.value for obj in destroyed] == [3]
        assert len(state.arena) == 1

    def test_collectgarbage_from_script(self, state, destroyed):
        state.do_string("do local c = Counter.new(8) end collectgarbage()")
        assert [obj.value for obj in destroyed] == [8]

    def test_arguments_being_evaluated_survive_a_collection(self, state, destroyed):
        result = state.do_string(
            """
            local function bump(c, _) c:inc(); return c:get() end
            return bump(Counter.new(), collectgarbage())
            """
        )
        assert result == 1
        assert destroyed == []

    def test_fields_being_evaluated_survive_a_collection(self, state, destroyed):
        assert state.do_string("local t = {Counter.new(5), collectgarbage()}; return t[1]:get()") == 5
        assert state.do_string("return Counter.new(6):get() + (collectgarbage() or 0)") == 6
        assert destroyed == []

    def test_close_destroys_survivors_newest_first(self, state, destroyed):
        state.do_string("a = Counter.new(1); b = Counter.new(2)")
        state.close()
        assert [obj.value for obj in destroyed] == [2, 1]
        assert len(state.arena) == 0

    def test_wrong_receiver_names_the_class(self, state):
        ok, message = state.do_string_mult_ret("return pcall(Counter.get, 5)")
        assert ok == False  # noqa: E712
        assert message == "bad argument #1 to 'get' (Counter expected, got number)"

    def test_receiver_of_another_class_is_rejected(self, state):
        state.register_class(LuaClass("Other", lambda args: object()))
        ok, message = state.do_string_mult_ret("return pcall(Counter.get, Other.new())")
        assert ok == False  # noqa: E712
        assert message == "bad argument #1 to 'get' (Counter expected, got userdata)"

    def test_delete_rejects_an_object_of_another_class(self, state, destroyed):
        state.register_class(LuaClass("Other", lambda args: object()))
        ok, message = state.do_string_mult_ret("o = Other.new(); return pcall(Counter.delete, o)")
        assert ok == False  # noqa: E712
        assert message == "bad argument #1 to 'delete' (Counter expected, got userdata)"
        assert destroyed == []
        assert len(state.arena) == 1

    def test_destructor_is_optional(self, state):
        state.register_class(LuaClass("Plain", lambda args: object()))
        state.do_string("p = Plain.new(); p:delete()")
        assert len(state.arena) == 0


class TestHostOwned:
    def test_registered_object_is_callable_from_script(self, state, counter_class):
        counter = Counter([])
        state["app"] = {}
        handle = state.register_object("app.counter", counter_class, counter)
        state.do_string("app.counter:inc(); app.counter:inc()")
        assert counter.value == 2
        assert state.arena.ownership(handle) is Ownership.HOST_OWNED
        assert state.arena.lookup(handle) is counter

    def test_survives_close_without_destructor(self, state, counter_class, destroyed):
        counter = Counter([])
        state.register_object("counter", counter_class, counter)
        state.do_string("counter:inc()")
        state.close()
        assert destroyed == []
        counter.inc([])
        assert counter.value == 2

    def test_collector_leaves_host_objects_alone(self, state, counter_class, destroyed):
        state.register_object(["counter"], counter_class, Counter([]))
        state.do_string("counter = nil")
        state.collect_garbage()
        assert destroyed == []

    def test_explicit_delete_only_detaches(self, state, counter_class, destroyed):
        counter = Counter([])
        state.register_object("counter", counter_class, counter)
        state.do_string("counter:delete()")
        assert destroyed == []
        with pytest.raises(LuaRunTimeError):
            state.do_string("counter:get()")

    def test_intermediate_level_must_be_a_table(self, state, counter_class):
        state["app"] = 5
        with pytest.raises(TypeMismatchError) as excinfo:
            state.register_object("app.counter", counter_class, Counter([]))
        assert excinfo.value.expected_type == "table"
        assert excinfo.value.found_type == "number"
        assert state.vm.gettop() == 0

    def test_missing_intermediate_level(self, state, counter_class):
        with pytest.raises(TypeMismatchError) as excinfo:
            state.register_object("nowhere.counter", counter_class, Counter([]))
        assert excinfo.value.found_type == "nil"

    def test_class_must_be_registered_first(self, state):
        stray = LuaClass("Stray", lambda args: object())
        with pytest.raises(LuaError):
            state.register_object("stray", stray, object())


class TestClassDescriptor:
    def test_method_mapping(self):
        points = LuaClass(
            "Point",
            lambda args: [args[0].as_number(), args[1].as_number()],
            {"sum": lambda obj, args: obj[0] + obj[1], "scaled": lambda obj, args: [v * args[0].as_number() for v in obj]},
        )
        with LuaState() as state:
            state.register_class(points)
            assert state.do_string_mult_ret("local p = Point.new(2, 3); return p:sum(), p:scaled(10)") == [5, 20, 30]

    def test_unknown_method_name_is_rejected(self):
        with pytest.raises(LuaError):
            LuaClass("Counter", Counter, ["missing"])

    def test_reserved_names_are_rejected(self):
        with pytest.raises(LuaError):
            LuaClass("Thing", lambda args: object(), {"new": lambda obj, args: None})

    def test_registration_is_logged(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="luabridge.wrappers"):
            with LuaState() as state:
                state.register_class(LuaClass("Logged", lambda args: object()))
        assert any("registered class Logged" in record.getMessage() for record in caplog.records)


def test_arena_releases_each_slot_once():
    arena = ObjectArena()
    handle = arena.add("payload", "Thing", Ownership.RUNTIME_OWNED)
    assert isinstance(handle, ObjectHandle)
    assert handle in arena
    assert arena.release(handle) == ("payload", Ownership.RUNTIME_OWNED)
    assert arena.release(handle) is None
    assert handle not in arena
    with pytest.raises(LuaError):
        arena.lookup(handle)


def test_handles_are_unique():
    arena = ObjectArena()
    first = arena.add(object(), "A", Ownership.RUNTIME_OWNED)
    second = arena.add(object(), "A", Ownership.HOST_OWNED)
    assert first != second
    assert arena.ownership(second) is Ownership.HOST_OWNED
    assert len(arena) == 2
