from __future__ import annotations

import enum
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .errors import LuaError

logger = logging.getLogger(__name__)


class Ownership(enum.Enum):
    """Who destroys the object behind a handle."""

    RUNTIME_OWNED = "runtime"
    HOST_OWNED = "host"


@dataclass(frozen=True)
class ObjectHandle:
    """Userdata payload standing in for a host object inside the runtime."""

    handle_id: int
    class_name: str


@dataclass
class _Slot:
    obj: Any
    ownership: Ownership
    class_name: str


class ObjectArena:
    """Host objects reachable from scripts, keyed by handle id.

    A slot is removed by ``release`` exactly once; a second release of the
    same handle finds nothing, so an object can never be destroyed twice.
    """

    def __init__(self) -> None:
        self._slots: Dict[int, _Slot] = {}
        self._ids = itertools.count(1)

    def add(self, obj: Any, class_name: str, ownership: Ownership) -> ObjectHandle:
        handle = ObjectHandle(next(self._ids), class_name)
        self._slots[handle.handle_id] = _Slot(obj, ownership, class_name)
        logger.debug("added %s #%d (%s)", class_name, handle.handle_id, ownership.value)
        return handle

    def lookup(self, handle: ObjectHandle) -> Any:
        slot = self._slots.get(handle.handle_id)
        if slot is None:
            raise LuaError(f"Attempt to use a destroyed '{handle.class_name}' object.")
        return slot.obj

    def ownership(self, handle: ObjectHandle) -> Optional[Ownership]:
        slot = self._slots.get(handle.handle_id)
        return None if slot is None else slot.ownership

    def release(self, handle: ObjectHandle) -> Optional[Tuple[Any, Ownership]]:
        slot = self._slots.pop(handle.handle_id, None)
        if slot is None:
            return None
        return slot.obj, slot.ownership

    def clear(self) -> None:
        self._slots.clear()

    def __contains__(self, handle: object) -> bool:
        return isinstance(handle, ObjectHandle) and handle.handle_id in self._slots

    def __len__(self) -> int:
        return len(self._slots)


__all__ = ["Ownership", "ObjectHandle", "ObjectArena"]
