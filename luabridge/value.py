from __future__ import annotations

import bisect
import enum
import math
from collections.abc import Mapping, MutableMapping
from typing import Any, Iterator, List, Optional, Tuple

from luavm.errors import format_number

from .errors import LuaTypeError, NoSuchKeyError, TypeMismatchError


class LuaType(enum.IntEnum):
    """The kinds of value a ``LuaValue`` holds, in their sort order."""

    NIL = 0
    BOOLEAN = 1
    NUMBER = 2
    STRING = 3
    TABLE = 4

    @property
    def type_name(self) -> str:
        return self.name.lower()


class LuaValue:
    """A nil, boolean, number, string or table crossing the bridge.

    Tables have value semantics: assigning a ``LuaValue`` into a table or
    building one from another copies it. ``value[key]`` returns the slot
    stored in the table itself, so nested writes such as
    ``t["a"]["b"] = 1`` reach the inner table.

    Values are totally ordered: first by kind (nil < boolean < number <
    string < table), then by boolean ordinal, numeric value, the bytes of the
    UTF-8 encoded string, or, for tables, by size and then by walking both
    tables' (key, value) pairs in key order.
    """

    __slots__ = ("_type", "_data")
    __hash__ = None  # type: ignore[assignment]

    def __init__(self, obj: Any = None):
        self._type, self._data = _convert(obj)

    @classmethod
    def _wrap(cls, kind: LuaType, data: Any) -> "LuaValue":
        value = cls.__new__(cls)
        value._type = kind
        value._data = data
        return value

    # ----------------------------------------------------------------- kind
    def type(self) -> LuaType:
        return self._type

    def type_name(self) -> str:
        return self._type.type_name

    def is_nil(self) -> bool:
        return self._type is LuaType.NIL

    def is_boolean(self) -> bool:
        return self._type is LuaType.BOOLEAN

    def is_number(self) -> bool:
        return self._type is LuaType.NUMBER

    def is_string(self) -> bool:
        return self._type is LuaType.STRING

    def is_table(self) -> bool:
        return self._type is LuaType.TABLE

    # ------------------------------------------------------------ accessors
    def as_number(self) -> float:
        self._expect(LuaType.NUMBER)
        return self._data

    def as_string(self) -> str:
        self._expect(LuaType.STRING)
        return self._data

    def as_boolean(self) -> bool:
        self._expect(LuaType.BOOLEAN)
        return self._data

    def as_table(self) -> "LuaValueMap":
        """A copy of the table; changing it leaves this value untouched."""
        self._expect(LuaType.TABLE)
        return self._data.copy()

    def _expect(self, kind: LuaType) -> None:
        if self._type is not kind:
            raise TypeMismatchError(kind.type_name, self.type_name())

    def _table(self) -> "LuaValueMap":
        self._expect(LuaType.TABLE)
        return self._data

    # --------------------------------------------------------- table access
    def __getitem__(self, key: Any) -> "LuaValue":
        table = self._table()
        try:
            return table[key]
        except KeyError:
            raise NoSuchKeyError(LuaValue(key)) from None

    def __setitem__(self, key: Any, value: Any) -> None:
        self._table()[key] = value

    def __delitem__(self, key: Any) -> None:
        table = self._table()
        try:
            del table[key]
        except KeyError:
            raise NoSuchKeyError(LuaValue(key)) from None

    def __contains__(self, key: Any) -> bool:
        return key in self._table()

    def __len__(self) -> int:
        return len(self._table())

    def __bool__(self) -> bool:
        # Lua truthiness; __len__ would otherwise decide it for tables
        return self._type is not LuaType.NIL and self._data is not False

    def slot(self, key: Any) -> "LuaValue":
        """The live slot for ``key``, inserted as nil when absent."""
        return self._table().slot(key)

    def get(self, key: Any, default: Any = None) -> Any:
        return self._table().get(key, default)

    def keys(self) -> List["LuaValue"]:
        return [LuaValue(key) for key in self._table().keys()]

    def values(self) -> List["LuaValue"]:
        return [LuaValue(value) for value in self._table().values()]

    def items(self) -> List[Tuple["LuaValue", "LuaValue"]]:
        return [(LuaValue(key), LuaValue(value)) for key, value in self._table().entries()]

    def entries(self) -> Iterator[Tuple["LuaValue", "LuaValue"]]:
        """(key, value) pairs in key order; keys are copies, values are live slots."""
        return ((LuaValue(key), value) for key, value in self._table().entries())

    def assign(self, other: Any) -> None:
        """Replace this value in place, e.g. a slot returned by ``slot()``."""
        self._type, self._data = _convert(other)

    def copy(self) -> "LuaValue":
        return LuaValue(self)

    __copy__ = copy

    def __deepcopy__(self, memo: dict) -> "LuaValue":
        return LuaValue(self)

    # ----------------------------------------------------------- comparison
    def __eq__(self, other: Any) -> bool:
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return _compare(self, other) == 0

    def __lt__(self, other: Any) -> bool:
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return _compare(self, other) < 0

    def __le__(self, other: Any) -> bool:
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return _compare(self, other) <= 0

    def __gt__(self, other: Any) -> bool:
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return _compare(self, other) > 0

    def __ge__(self, other: Any) -> bool:
        other = _coerce(other)
        if other is None:
            return NotImplemented
        return _compare(self, other) >= 0

    # --------------------------------------------------------------- output
    def __str__(self) -> str:
        kind = self._type
        if kind is LuaType.NIL:
            return "nil"
        if kind is LuaType.BOOLEAN:
            return "true" if self._data else "false"
        if kind is LuaType.NUMBER:
            return format_number(self._data)
        if kind is LuaType.STRING:
            return '"' + self._data.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n") + '"'
        inner = ", ".join(f"[{key}] = {value}" for key, value in self._data.entries())
        return "{" + inner + "}"

    def __repr__(self) -> str:
        return f"LuaValue({self})"


class LuaValueMap(MutableMapping):
    """Table storage: unique ``LuaValue`` keys kept sorted by the total order."""

    __slots__ = ("_keys", "_values")
    __hash__ = None  # type: ignore[assignment]

    def __init__(self, items: Optional[Any] = None):
        self._keys: List[LuaValue] = []
        self._values: List[LuaValue] = []
        if items is not None:
            pairs = items.items() if isinstance(items, Mapping) else items
            for key, value in pairs:
                self[key] = value

    def _find(self, key: LuaValue) -> Tuple[int, bool]:
        index = bisect.bisect_left(self._keys, key)
        found = index < len(self._keys) and _compare(self._keys[index], key) == 0
        return index, found

    def __getitem__(self, key: Any) -> LuaValue:
        index, found = self._find(_as_value(key))
        if not found:
            raise KeyError(key)
        return self._values[index]

    def __setitem__(self, key: Any, value: Any) -> None:
        key = LuaValue(key)
        value = LuaValue(value)
        index, found = self._find(key)
        if found:
            self._values[index] = value
        else:
            self._keys.insert(index, key)
            self._values.insert(index, value)

    def __delitem__(self, key: Any) -> None:
        index, found = self._find(_as_value(key))
        if not found:
            raise KeyError(key)
        del self._keys[index]
        del self._values[index]

    def __contains__(self, key: Any) -> bool:
        value = _coerce(key)
        return value is not None and self._find(value)[1]

    def __iter__(self) -> Iterator[LuaValue]:
        return iter(list(self._keys))

    def __len__(self) -> int:
        return len(self._keys)

    def slot(self, key: Any) -> LuaValue:
        key = LuaValue(key)
        index, found = self._find(key)
        if not found:
            self._keys.insert(index, key)
            self._values.insert(index, LuaValue())
        return self._values[index]

    def entries(self) -> Iterator[Tuple[LuaValue, LuaValue]]:
        """Stored pairs in key order; the keys must not be mutated."""
        return zip(list(self._keys), list(self._values))

    def copy(self) -> "LuaValueMap":
        duplicate = LuaValueMap()
        duplicate._keys = [LuaValue(key) for key in self._keys]
        duplicate._values = [LuaValue(value) for value in self._values]
        return duplicate

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, LuaValueMap):
            return _compare_tables(self, other) == 0
        if isinstance(other, Mapping):
            try:
                return _compare_tables(self, LuaValueMap(other)) == 0
            except LuaTypeError:
                return False
        return NotImplemented

    def __repr__(self) -> str:
        inner = ", ".join(f"{key!r}: {value!r}" for key, value in self.entries())
        return f"LuaValueMap({{{inner}}})"


LuaValueList = List[LuaValue]

def _convert(obj: Any) -> Tuple[LuaType, Any]:
    if obj is None:
        return LuaType.NIL, None
    if isinstance(obj, LuaValue):
        if obj._type is LuaType.TABLE:
            return LuaType.TABLE, obj._data.copy()
        return obj._type, obj._data
    if isinstance(obj, bool):
        return LuaType.BOOLEAN, obj
    if isinstance(obj, (int, float)):
        try:
            return LuaType.NUMBER, float(obj)
        except OverflowError:
            raise LuaTypeError("Cannot convert an 'int' too large for a Lua number.") from None
    if isinstance(obj, str):
        return LuaType.STRING, obj
    if isinstance(obj, (bytes, bytearray)):
        return LuaType.STRING, bytes(obj).decode("utf-8", "surrogateescape")
    if isinstance(obj, LuaValueMap):
        return LuaType.TABLE, obj.copy()
    if isinstance(obj, Mapping):
        return LuaType.TABLE, LuaValueMap(obj)
    raise LuaTypeError(f"Cannot convert a '{type(obj).__name__}' to a LuaValue.")


def _as_value(obj: Any) -> LuaValue:
    return obj if isinstance(obj, LuaValue) else LuaValue(obj)


def _coerce(obj: Any) -> Optional[LuaValue]:
    try:
        return _as_value(obj)
    except LuaTypeError:
        return None


def _scalar_key(value: LuaValue) -> Any:
    if value._type is LuaType.NUMBER:
        number = value._data
        # NaN sorts after every other number and equal to itself
        return (1, 0.0) if math.isnan(number) else (0, number)
    if value._type is LuaType.STRING:
        return value._data.encode("utf-8", "surrogateescape")
    return value._data


def _compare(lhs: LuaValue, rhs: LuaValue) -> int:
    if lhs._type is not rhs._type:
        # fixed kind rank rather than type-name order, see "Type rank" in DESIGN.md
        return -1 if lhs._type < rhs._type else 1
    if lhs._type is LuaType.NIL:
        return 0
    if lhs._type is LuaType.TABLE:
        return _compare_tables(lhs._data, rhs._data)
    a, b = _scalar_key(lhs), _scalar_key(rhs)
    return (a > b) - (a < b)


def _compare_tables(lhs: LuaValueMap, rhs: LuaValueMap) -> int:
    if len(lhs) != len(rhs):
        return -1 if len(lhs) < len(rhs) else 1
    for (lkey, lvalue), (rkey, rvalue) in zip(lhs.entries(), rhs.entries()):
        result = _compare(lkey, rkey) or _compare(lvalue, rvalue)
        if result:
            return result
    return 0


Nil = LuaValue()


__all__ = [
    "LuaType",
    "LuaValue",
    "LuaValueMap",
    "LuaValueList",
    "Nil",
]
