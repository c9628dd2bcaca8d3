from __future__ import annotations

import logging
import pathlib
from typing import Any, Callable, Optional, Sequence, Union

from luavm import (
    ERRERR,
    ERRFILE,
    ERRMEM,
    ERRRUN,
    ERRSYNTAX,
    MULTRET,
    OK,
    LuaVM,
    open_libs,
)
from luavm.vm import DEFAULT_MAX_CALL_DEPTH

from .errors import (
    LuaError,
    LuaErrorInErrorHandler,
    LuaFileError,
    LuaMemoryError,
    LuaRunTimeError,
    LuaSyntaxError,
)
from .handles import ObjectArena, ObjectHandle
from .marshal import push_lua_value, to_lua_value, to_lua_value_list
from .value import LuaValue, LuaValueList
from .wrappers import HostFunction, LuaClass, register_class, register_object, wrap_function

logger = logging.getLogger(__name__)

NO_ERROR_INFO = "Sorry, there is no additional information about this error."

_ERROR_KINDS = {
    ERRRUN: LuaRunTimeError,
    ERRFILE: LuaFileError,
    ERRSYNTAX: LuaSyntaxError,
    ERRMEM: LuaMemoryError,
    ERRERR: LuaErrorInErrorHandler,
}


class LuaState:
    """Owns one runtime plus the host objects handed to it.

    Closing the state finalizes every runtime-owned object still alive and
    invalidates all handles and adapters registered against it; host-owned
    objects are left to their owner.
    """

    def __init__(
        self,
        load_stdlib: bool = True,
        *,
        output: Optional[Callable[[str], Any]] = None,
        max_call_depth: int = DEFAULT_MAX_CALL_DEPTH,
    ) -> None:
        self.vm = LuaVM(max_call_depth=max_call_depth, output=output)
        self.arena = ObjectArena()
        if load_stdlib:
            open_libs(self.vm)

    # ------------------------------------------------------------- execution
    def do_string(self, source: Union[str, bytes], chunk_name: str = "line") -> LuaValue:
        results = self.do_string_mult_ret(source, chunk_name)
        return results[0] if results else LuaValue()

    def do_string_mult_ret(self, source: Union[str, bytes], chunk_name: str = "line") -> LuaValueList:
        self._check_open()
        base = self.vm.gettop()
        self.throw_on_lua_error(self.vm.load(source, chunk_name))
        return self._run_loaded(base)

    def do_file(self, path: Union[str, pathlib.Path]) -> LuaValue:
        results = self.do_file_mult_ret(path)
        return results[0] if results else LuaValue()

    def do_file_mult_ret(self, path: Union[str, pathlib.Path]) -> LuaValueList:
        self._check_open()
        base = self.vm.gettop()
        self.throw_on_lua_error(self.vm.loadfile(path))
        return self._run_loaded(base)

    def _run_loaded(self, base: int) -> LuaValueList:
        self.throw_on_lua_error(self.vm.pcall(0, MULTRET))
        return to_lua_value_list(self.vm, base)

    def throw_on_lua_error(self, code: int) -> None:
        """Raise the error kind matching a runtime status code, if any.

        The message comes from the top of the stack, which is popped.
        """
        if code == OK:
            return
        message = NO_ERROR_INFO
        if self.vm.gettop() > 0:
            if self.vm.isstring(-1):
                message = self.vm.tostring(-1)
            self.vm.pop()
        kind = _ERROR_KINDS.get(code)
        if kind is None:
            raise LuaError("Unknown Lua return code passed to 'LuaState.throw_on_lua_error'.")
        logger.debug("runtime status %d: %s", code, message)
        raise kind(message)

    def call_function(self, name: str, *args: Any) -> LuaValueList:
        """Call the global function ``name`` with ``args``; returns every result."""
        self._check_open()
        vm = self.vm
        base = vm.gettop()
        vm.getglobal(name)
        try:
            for arg in args:
                push_lua_value(vm, arg)
        except LuaError:
            vm.settop(base)
            raise
        self.throw_on_lua_error(vm.pcall(len(args), MULTRET))
        return to_lua_value_list(vm, base)

    # ----------------------------------------------------------- marshaling
    def to_lua_value(self, index: int) -> LuaValue:
        return to_lua_value(self.vm, index)

    def push_lua_value(self, value: Any) -> None:
        push_lua_value(self.vm, value)

    def __getitem__(self, name: str) -> LuaValue:
        self._check_open()
        self.vm.getglobal(name)
        try:
            return to_lua_value(self.vm, -1)
        finally:
            self.vm.pop()

    def __setitem__(self, name: str, value: Any) -> None:
        self._check_open()
        push_lua_value(self.vm, value)
        self.vm.setglobal(name)

    # ------------------------------------------------------------- bindings
    def register_function(self, name: str, func: HostFunction) -> None:
        self._check_open()
        self.vm.pushcfunction(wrap_function(func, name))
        self.vm.setglobal(name)
        logger.debug("registered function %s", name)

    def register_class(self, descriptor: LuaClass) -> None:
        self._check_open()
        register_class(self, descriptor)

    def register_object(self, path: Union[str, Sequence[Any]], descriptor: LuaClass, obj: Any) -> ObjectHandle:
        self._check_open()
        return register_object(self, path, descriptor, obj)

    # ------------------------------------------------------------- lifetime
    def collect_garbage(self) -> int:
        self._check_open()
        return self.vm.collect_garbage()

    def close(self) -> None:
        if self.vm.closed:
            return
        self.vm.close()
        self.arena.clear()
        logger.debug("state closed")

    @property
    def closed(self) -> bool:
        return self.vm.closed

    def __enter__(self) -> "LuaState":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _check_open(self) -> None:
        if self.vm.closed:
            raise LuaError("Attempt to use a closed LuaState.")


__all__ = ["LuaState", "NO_ERROR_INFO"]
