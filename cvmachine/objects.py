"""Typed value objects and their packed form."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

_POINTER_SIZE = 8

_UNSIGNED = frozenset()
_SIGNED = frozenset()


class ObjType(IntEnum):
    """Type tag of a value object."""

    U8 = 0
    U16 = 1
    U32 = 2
    INT8 = 3
    INT16 = 4
    INT32 = 5
    FLOAT = 6
    DOUBLE = 7
    BOOL = 8
    NULL = 9
    UNDEFINED = 10
    CHAR = 11
    STRING = 12
    OBJ = 13


_SIZES = {
    ObjType.U8: 1,
    ObjType.U16: 2,
    ObjType.U32: 4,
    ObjType.INT8: 1,
    ObjType.INT16: 2,
    ObjType.INT32: 4,
    ObjType.FLOAT: 4,
    ObjType.BOOL: 1,
    ObjType.CHAR: 1,
    ObjType.STRING: _POINTER_SIZE,
    ObjType.NULL: 0,
    ObjType.UNDEFINED: -1,
    ObjType.OBJ: _POINTER_SIZE,
}

_UNSIGNED_TYPES = frozenset({ObjType.U8, ObjType.U16, ObjType.U32})
_SIGNED_TYPES = frozenset({ObjType.INT8, ObjType.INT16, ObjType.INT32})


def _to_int32(value: int) -> int:
    return ((int(value) + 0x80000000) & 0xFFFFFFFF) - 0x80000000


def _to_float32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", float(value)))[0]


@dataclass
class CvmObject:
    """A tagged value with its storage size."""

    type: ObjType
    value: Any = None
    size: int = 0
    is_none: bool = False

    def compile(self) -> None:
        """Set the size and emptiness of the object from its type."""
        self.is_none = False
        if self.type in _SIZES:
            self.size = _SIZES[self.type]
        if self.type is ObjType.NULL:
            self.is_none = True

    def is_empty(self) -> bool:
        """Return True if the object holds no value."""
        return self.is_none or self.type is ObjType.NULL


@dataclass(frozen=True)
class PackedObject:
    """Compact form of an object: a type tag and a 32-bit or reference value."""

    type: ObjType
    value: Any = None


def _convert(type_: ObjType, value: Any) -> Any:
    if type_ in _UNSIGNED_TYPES:
        return int(value) & 0xFFFFFFFF
    if type_ in _SIGNED_TYPES:
        return _to_int32(value)
    if type_ is ObjType.FLOAT:
        return _to_float32(value)
    if type_ is ObjType.STRING:
        return value
    return None


def pack(obj: CvmObject) -> PackedObject:
    """Pack an object into its compact form."""
    return PackedObject(obj.type, _convert(obj.type, obj.value))


def unpack(packed: PackedObject) -> CvmObject:
    """Rebuild a compiled object from its packed form."""
    obj = CvmObject(packed.type, _convert(packed.type, packed.value))
    obj.compile()
    return obj