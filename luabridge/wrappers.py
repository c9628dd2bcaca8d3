"""Expose host callables and classes to scripts.

Every entry point built here follows the runtime's native calling
convention: it receives the VM, reads its arguments off the stack as
``LuaValue`` objects, calls into host code, pushes the results and returns
their count. Host exceptions never escape into the runtime; they are turned
into script errors carrying the original message.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Optional, Sequence, Union

from luavm import GLOBALSINDEX, REGISTRYINDEX, LuaVM, NativeFunction, ScriptError

from .errors import LuaError, TypeMismatchError
from .handles import ObjectArena, ObjectHandle, Ownership
from .marshal import push_lua_value, read_arguments
from .value import LuaValue, LuaValueList

if TYPE_CHECKING:  # pragma: no cover
    from .state import LuaState

logger = logging.getLogger(__name__)

UNKNOWN_EXCEPTION_MESSAGE = "Unknown exception caught by wrapper."

HostFunction = Callable[[LuaValueList], Any]
HostMethod = Callable[[Any, LuaValueList], Any]

_SCALARS = (LuaValue, str, bytes, bytearray, bool, int, float, Mapping)


def report_error(vm: LuaVM, message: str) -> None:
    """Abort the running native call with ``message`` as the script error."""
    vm.pushstring(message)
    vm.error()


def push_results(vm: LuaVM, results: Any) -> int:
    """Push what a host callable returned; answers how many values were pushed."""
    if results is None:
        return 0
    if isinstance(results, _SCALARS):
        push_lua_value(vm, results)
        return 1
    count = 0
    for value in results:
        push_lua_value(vm, value)
        count += 1
    return count


def _guarded(vm: LuaVM, name: str, body: Callable[[], int]) -> int:
    try:
        return body()
    except (ScriptError, RecursionError, MemoryError):
        # runtime-level failures, reported by the enclosing pcall
        raise
    except LuaError as exc:
        logger.debug("%s failed: %s", name, exc)
        report_error(vm, str(exc))
    except Exception:
        logger.warning("unknown exception in %s", name, exc_info=True)
        report_error(vm, UNKNOWN_EXCEPTION_MESSAGE)
    return 0


def wrap_function(func: HostFunction, name: Optional[str] = None) -> NativeFunction:
    """Adapt ``func(args: LuaValueList)`` to the native calling convention."""
    name = name or getattr(func, "__name__", "?")

    def adapter(vm: LuaVM) -> int:
        def body() -> int:
            args = read_arguments(vm)
            return push_results(vm, func(args))

        return _guarded(vm, name, body)

    return NativeFunction(adapter, name)


class LuaClass:
    """Describes a host class to ``register_class``.

    ``factory(args)`` builds an instance from the constructor arguments.
    ``methods`` is either an iterable of attribute names, each called as
    ``obj.<name>(args)``, or a mapping from script name to
    ``callable(obj, args)``. ``destructor(obj)`` runs when a runtime-owned
    instance is destroyed.
    """

    def __init__(
        self,
        name: str,
        factory: Callable[[LuaValueList], Any],
        methods: Union[Iterable[str], Mapping] = (),
        destructor: Optional[Callable[[Any], None]] = None,
    ):
        self.name = name
        self.factory = factory
        self.destructor = destructor
        self.methods: Dict[str, HostMethod] = {}
        if isinstance(methods, Mapping):
            self.methods.update(methods)
        else:
            for method_name in methods:
                if isinstance(factory, type) and not callable(getattr(factory, method_name, None)):
                    raise LuaError(f"Class '{name}' has no method '{method_name}'.")
                self.methods[method_name] = _call_attribute(method_name)
        for reserved in ("new", "delete", "classname", "__gc", "__index"):
            if reserved in self.methods:
                raise LuaError(f"Method name '{reserved}' is reserved in class '{name}'.")

    @property
    def registry_key(self) -> str:
        return metatable_key(self.name)

    def __repr__(self) -> str:
        return f"LuaClass({self.name!r}, methods={sorted(self.methods)!r})"


def _call_attribute(method_name: str) -> HostMethod:
    def call(obj: Any, args: LuaValueList) -> Any:
        return getattr(obj, method_name)(args)

    call.__name__ = method_name
    return call


def metatable_key(class_name: str) -> str:
    return f"luabridge.class.{class_name}"


def _push_handle(vm: LuaVM, handle: ObjectHandle) -> None:
    vm.newuserdata(handle)
    vm.getfield(REGISTRYINDEX, metatable_key(handle.class_name))
    vm.setmetatable(-2)


def _receiver(vm: LuaVM, arena: ObjectArena, descriptor: LuaClass, method_name: str) -> Any:
    handle = vm.touserdata(1)
    if not isinstance(handle, ObjectHandle) or handle.class_name != descriptor.name:
        found = vm.typename(vm.type(1))
        raise LuaError(f"bad argument #1 to '{method_name}' ({descriptor.name} expected, got {found})")
    return arena.lookup(handle)


def _constructor(arena: ObjectArena, descriptor: LuaClass) -> NativeFunction:
    name = f"{descriptor.name}.new"

    def construct(vm: LuaVM) -> int:
        def body() -> int:
            args = read_arguments(vm)
            obj = descriptor.factory(args)
            handle = arena.add(obj, descriptor.name, Ownership.RUNTIME_OWNED)
            _push_handle(vm, handle)
            return 1

        return _guarded(vm, name, body)

    return NativeFunction(construct, "new")


def _method(arena: ObjectArena, descriptor: LuaClass, method_name: str, method: HostMethod) -> NativeFunction:
    name = f"{descriptor.name}:{method_name}"

    def dispatch(vm: LuaVM) -> int:
        def body() -> int:
            obj = _receiver(vm, arena, descriptor, method_name)
            args = read_arguments(vm, 2)
            vm.settop(0)
            return push_results(vm, method(obj, args))

        return _guarded(vm, name, body)

    return NativeFunction(dispatch, method_name)


def _destructor(arena: ObjectArena, descriptor: LuaClass) -> NativeFunction:
    name = f"{descriptor.name}.delete"

    def destroy(vm: LuaVM) -> int:
        def body() -> int:
            handle = vm.touserdata(1)
            found = vm.typename(vm.type(1))
            vm.settop(0)
            if not isinstance(handle, ObjectHandle):
                return 0
            if handle.class_name != descriptor.name:
                raise LuaError(f"bad argument #1 to 'delete' ({descriptor.name} expected, got {found})")
            released = arena.release(handle)
            if released is None:
                logger.debug("%s #%d already destroyed", handle.class_name, handle.handle_id)
                return 0
            obj, ownership = released
            if ownership is Ownership.HOST_OWNED:
                logger.debug("released host-owned %s #%d", handle.class_name, handle.handle_id)
                return 0
            if descriptor.destructor is not None:
                descriptor.destructor(obj)
            logger.debug("destroyed %s #%d", handle.class_name, handle.handle_id)
            return 0

        return _guarded(vm, name, body)

    return NativeFunction(destroy, "delete")


def register_class(state: "LuaState", descriptor: LuaClass) -> None:
    """Bind the class table of ``descriptor`` to the global of the same name.

    The table holds every method plus ``classname``, ``new``, ``delete``,
    ``__gc`` and ``__index`` (itself); it doubles as the metatable of every
    instance and is kept in the registry for that purpose.
    """
    vm, arena = state.vm, state.arena
    vm.newtable()
    for method_name, method in descriptor.methods.items():
        vm.pushcfunction(_method(arena, descriptor, method_name, method))
        vm.setfield(-2, method_name)
    vm.pushstring(descriptor.name)
    vm.setfield(-2, "classname")
    vm.pushcfunction(_constructor(arena, descriptor))
    vm.setfield(-2, "new")
    destroy = _destructor(arena, descriptor)
    vm.pushcfunction(destroy)
    vm.setfield(-2, "delete")
    vm.pushcfunction(destroy)
    vm.setfield(-2, "__gc")
    vm.pushvalue(-1)
    vm.setfield(-2, "__index")
    vm.pushvalue(-1)
    vm.setfield(REGISTRYINDEX, descriptor.registry_key)
    vm.setglobal(descriptor.name)
    logger.debug("registered class %s with %d methods", descriptor.name, len(descriptor.methods))


def register_object(
    state: "LuaState", path: Union[str, Sequence[Any]], descriptor: LuaClass, obj: Any
) -> ObjectHandle:
    """Store a host-owned ``obj`` at the global ``path`` (``"a.b.c"`` or keys).

    Every level but the last must already hold a table. The runtime never
    destroys ``obj``; it stays the caller's.
    """
    keys = path.split(".") if isinstance(path, str) else list(path)
    if not keys or keys == [""]:
        raise LuaError("register_object() needs a non-empty path.")
    vm = state.vm
    vm.getfield(REGISTRYINDEX, descriptor.registry_key)
    registered = vm.istable(-1)
    vm.pop()
    if not registered:
        raise LuaError(f"Class '{descriptor.name}' must be registered before its objects.")

    top = vm.gettop()
    try:
        vm.pushvalue(GLOBALSINDEX)
        for key in keys[:-1]:
            push_lua_value(vm, key)
            vm.gettable(-2)
            if not vm.istable(-1):
                raise TypeMismatchError("table", vm.typename(vm.type(-1)))
            vm.remove(-2)
        push_lua_value(vm, keys[-1])
        handle = state.arena.add(obj, descriptor.name, Ownership.HOST_OWNED)
        _push_handle(vm, handle)
        vm.settable(-3)
    finally:
        vm.settop(top)
    logger.debug("registered host-owned %s at %s", descriptor.name, ".".join(map(str, keys)))
    return handle

__all__ = [
    "UNKNOWN_EXCEPTION_MESSAGE",
    "HostFunction",
    "HostMethod",
    "LuaClass",
    "report_error",
    "push_results",
    "wrap_function",
    "register_class",
    "register_object",
    "metatable_key",
]
