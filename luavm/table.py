from __future__ import annotations

import math
from typing import Any, Dict, Iterator, List, Optional, Tuple

# Marks a hash slot whose value was set to nil. The key stays in place so a
# traversal positioned on it can still advance; new insertions purge them.
_DEAD = object()


class LuaTable:
    """Hybrid table supporting Lua-style array and dictionary access."""

    __slots__ = ("array", "map", "metatable", "_order", "_positions", "_dead")

    def __init__(self) -> None:
        self.array: List[Any] = []
        self.map: Dict[Any, Any] = {}
        self.metatable: Optional[LuaTable] = None
        self._order: Optional[List[Any]] = None
        self._positions: Optional[Dict[Any, int]] = None
        self._dead = 0

    # ---------------------------- array helpers ---------------------------- #
    def append(self, value: Any) -> None:
        self.raw_set(float(self.length() + 1), value)

    def insert(self, index: int, value: Any) -> None:
        size = self.length()
        if index < 1 or index > size + 1:
            raise IndexError("position out of bounds")
        for pos in range(size, index - 1, -1):
            self.raw_set(float(pos + 1), self.raw_get(float(pos)))
        self.raw_set(float(index), value)

    def length(self) -> int:
        count = len(self.array)
        while count > 0 and self.array[count - 1] is None:
            count -= 1
        if count == len(self.array):
            # border continues into the hash part
            while self.raw_get(float(count + 1)) is not None:
                count += 1
        return count

    # --------------------------- raw table access -------------------------- #
    def raw_get(self, key: Any) -> Any:
        index = _array_index(key)
        if index is not None and index <= len(self.array):
            return self.array[index - 1]
        value = self.map.get(_hash_key(key), None)
        return None if value is _DEAD else value

    def raw_set(self, key: Any, value: Any) -> None:
        if key is None:
            raise ValueError("table index is nil")
        if isinstance(key, float) and math.isnan(key):
            raise ValueError("table index is NaN")
        index = _array_index(key)
        if index is not None:
            if index <= len(self.array):
                self.array[index - 1] = value
                if value is None:
                    self._trim_array()
                return
            if index == len(self.array) + 1 and value is not None:
                self.array.append(value)
                self._migrate_from_map()
                return
        slot = _hash_key(key)
        if value is None:
            if slot in self.map and self.map[slot] is not _DEAD:
                self.map[slot] = _DEAD
                self._dead += 1
            return
        if slot not in self.map:
            self._purge_dead()
            self._order = None
            self._positions = None
        elif self.map[slot] is _DEAD:
            self._dead -= 1
        self.map[slot] = value

    # ---------------------------- iteration helpers --------------------------- #
    def next(self, key: Any) -> Optional[Tuple[Any, Any]]:
        """Return the entry after ``key`` (``None`` starts), or ``None`` at the end."""
        if key is None:
            start = 0
        else:
            index = _array_index(key)
            if index is not None and (index <= len(self.array) or _hash_key(key) not in self.map):
                start = index
            else:
                return self._next_in_map(key)
        for pos in range(start, len(self.array)):
            value = self.array[pos]
            if value is not None:
                return float(pos + 1), value
        return self._next_in_map(None)

    def iter_items(self) -> Iterator[Tuple[Any, Any]]:
        for idx, value in enumerate(self.array, start=1):
            if value is not None:
                yield float(idx), value
        for slot, value in list(self.map.items()):
            if value is not _DEAD:
                yield _unhash_key(slot), value

    # ------------------------------- internals ----------------------------- #
    def _next_in_map(self, key: Any) -> Optional[Tuple[Any, Any]]:
        if self._order is None or self._positions is None:
            self._order = list(self.map)
            self._positions = {slot: pos for pos, slot in enumerate(self._order)}
        if key is None:
            pos = 0
        else:
            slot = _hash_key(key)
            if slot not in self._positions:
                raise KeyError("invalid key to 'next'")
            pos = self._positions[slot] + 1
        while pos < len(self._order):
            slot = self._order[pos]
            value = self.map.get(slot, _DEAD)
            if value is not _DEAD:
                return _unhash_key(slot), value
            pos += 1
        return None

    def _purge_dead(self) -> None:
        if not self._dead:
            return
        self.map = {slot: value for slot, value in self.map.items() if value is not _DEAD}
        self._dead = 0

    def _migrate_from_map(self) -> None:
        while True:
            slot = float(len(self.array) + 1)
            value = self.map.get(slot, _DEAD)
            if value is _DEAD:
                return
            self.map[slot] = _DEAD
            self._dead += 1
            self.array.append(value)

    def _trim_array(self) -> None:
        while self.array and self.array[-1] is None:
            self.array.pop()

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"LuaTable(array={self.array!r}, map={self.map!r})"


def _array_index(key: Any) -> Optional[int]:
    if isinstance(key, bool):
        return None
    if isinstance(key, (int, float)) and not (isinstance(key, float) and not key.is_integer()):
        index = int(key)
        if index >= 1:
            return index
    return None


def _hash_key(key: Any) -> Any:
    # True/False would collide with 1/0 in a dict
    if isinstance(key, bool):
        return (bool, key)
    if isinstance(key, int):
        return float(key)
    return key


def _unhash_key(slot: Any) -> Any:
    if isinstance(slot, tuple):
        return slot[1]
    return slot


__all__ = ["LuaTable"]
