"""Value types, scalar coercion and dynamic values."""

import struct
from enum import Enum
from typing import Any, ClassVar, Self

from .objects import ObjectBase
from .registry import class_db

# Scalar name -> (struct format, Python type)
SCALAR_FORMATS: dict[str, tuple[str, type]] = {
    "bool": ("?", bool),
    "int8": ("b", int),
    "uint8": ("B", int),
    "int16": ("h", int),
    "uint16": ("H", int),
    "int32": ("i", int),
    "uint32": ("I", int),
    "int64": ("q", int),
    "uint64": ("Q", int),
    "float32": ("f", float),
    "float64": ("d", float),
}


def coerce_scalar(meta: str, value: Any) -> Any:
    """Convert an argument to the exact scalar the host expects.

    Integers are range checked and single precision floats are rounded, so a
    value that round-trips through the host compares equal on the Python side.
    """
    fmt, py_type = SCALAR_FORMATS[meta]
    if py_type is bool:
        return bool(value)
    if isinstance(value, Enum):
        value = value.value
    converted = py_type(value)
    try:
        packed = struct.pack(f"<{fmt}", converted)
    except (struct.error, OverflowError) as e:
        raise OverflowError(f"{value!r} does not fit in {meta}") from e
    return struct.unpack(f"<{fmt}", packed)[0]


class ValueBase:
    """Base class for generated builtin value types.

    A value owns a fixed-size byte buffer laid out as in the host's build
    configuration; the buffer is what crosses the ABI.
    """

    __slots__ = ("_opaque",)

    _type_name: ClassVar[str] = ""
    _size: ClassVar[int] = 0

    def __init__(self) -> None:
        self._opaque = bytearray(self._size)

    @classmethod
    def _from_opaque(cls, data: bytes | bytearray | memoryview) -> Self:
        if len(data) != cls._size:
            raise ValueError(f"{cls.__name__} expects {cls._size} bytes, got {len(data)}")
        value = cls.__new__(cls)
        value._opaque = bytearray(data)
        return value

    def copy(self) -> Self:
        return type(self)._from_opaque(self._opaque)

    def __bytes__(self) -> bytes:
        return bytes(self._opaque)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({bytes(self._opaque).hex()})"


def scalar_member(name: str, offset: int, fmt: str) -> property:
    """Property reading and writing a packed scalar member of a value."""
    layout = struct.Struct(f"<{fmt}")

    def getter(self: ValueBase) -> Any:
        return layout.unpack_from(self._opaque, offset)[0]

    def setter(self: ValueBase, value: Any) -> None:
        layout.pack_into(self._opaque, offset, value)

    return property(getter, setter, doc=f"{name} at byte offset {offset}")


def nested_member(name: str, offset: int, type_name: str) -> property:
    """Property exposing a value type stored inline inside another value."""

    def getter(self: ValueBase) -> ValueBase:
        cls = class_db.get(type_name)
        return cls._from_opaque(self._opaque[offset : offset + cls._size])

    def setter(self: ValueBase, value: ValueBase) -> None:
        cls = class_db.get(type_name)
        if not isinstance(value, cls):
            raise TypeError(f"{name} expects {cls.__name__}, got {type(value).__name__}")
        self._opaque[offset : offset + cls._size] = value._opaque

    return property(getter, setter, doc=f"{name} at byte offset {offset}")


def wrap_value(type_name: str, data: Any) -> ValueBase:
    """Wrap value type bytes returned by the host."""
    cls = class_db.get(type_name)
    return cls._from_opaque(data)


def value_ptr(value: ValueBase) -> bytearray:
    """Return the buffer of a value type argument."""
    if not isinstance(value, ValueBase):
        raise TypeError(f"Expected a value type, got {type(value).__name__}")
    return value._opaque


def decode_enum(name: str, value: Any) -> Enum:
    return class_db.get_enum(name)(value)


def to_variant(value: Any) -> Any:
    """Encode a dynamically typed argument."""
    if isinstance(value, ObjectBase):
        return value._ptr
    if isinstance(value, ValueBase):
        return bytes(value._opaque)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [to_variant(item) for item in value]
    if isinstance(value, dict):
        return {to_variant(k): to_variant(v) for k, v in value.items()}
    return value
