"""Typed firmware values and their little-endian binary codec.

Every log variable and parameter exposed by the firmware carries one of a
fixed set of numeric type tags. :class:`Value` is a closed tagged union over
those tags; :func:`encode_value` and :func:`decode_value` convert between a
``Value`` and its firmware byte representation (little-endian, including
IEEE-754 binary16 for ``float16``).

The module is pure: no I/O and no shared state.
"""

from __future__ import annotations

import math
from enum import StrEnum
from typing import Any, Final

import msgspec
from construct import (  # type: ignore
    Construct,
    ConstructError,
    Float16l,
    Float32l,
    Float64l,
    Int8sl,
    Int8ul,
    Int16sl,
    Int16ul,
    Int32sl,
    Int32ul,
    Int64sl,
    Int64ul,
)

from ..errors import DecodeError, TypeMismatch


class ValueType(StrEnum):
    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    UINT64 = "uint64"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT16 = "float16"
    FLOAT32 = "float32"
    FLOAT64 = "float64"

    @property
    def codec(self) -> Construct:
        return _CODECS[self]

    @property
    def size(self) -> int:
        return int(self.codec.sizeof())

    @property
    def is_float(self) -> bool:
        return self in _FLOAT_TYPES

    @property
    def is_signed(self) -> bool:
        return self in _SIGNED_TYPES

    @property
    def bounds(self) -> tuple[int, int]:
        """Inclusive integer range of the type (integer types only)."""
        if self.is_float:
            raise TypeError(f"{self.value} has no integer bounds")
        bits = self.size * 8
        if self.is_signed:
            return -(1 << (bits - 1)), (1 << (bits - 1)) - 1
        return 0, (1 << bits) - 1


_CODECS: Final[dict[ValueType, Construct]] = {
    ValueType.UINT8: Int8ul,
    ValueType.UINT16: Int16ul,
    ValueType.UINT32: Int32ul,
    ValueType.UINT64: Int64ul,
    ValueType.INT8: Int8sl,
    ValueType.INT16: Int16sl,
    ValueType.INT32: Int32sl,
    ValueType.INT64: Int64sl,
    ValueType.FLOAT16: Float16l,
    ValueType.FLOAT32: Float32l,
    ValueType.FLOAT64: Float64l,
}

_FLOAT_TYPES: Final = frozenset({ValueType.FLOAT16, ValueType.FLOAT32, ValueType.FLOAT64})
_SIGNED_TYPES: Final = frozenset(
    {ValueType.INT8, ValueType.INT16, ValueType.INT32, ValueType.INT64}
) | _FLOAT_TYPES

# Log TOC type codes (the whole byte, masked with LOG_TYPE_MASK).
LOG_TYPE_CODES: Final[dict[int, ValueType]] = {
    0x01: ValueType.UINT8,
    0x02: ValueType.UINT16,
    0x03: ValueType.UINT32,
    0x04: ValueType.INT8,
    0x05: ValueType.INT16,
    0x06: ValueType.INT32,
    0x07: ValueType.FLOAT32,
    0x08: ValueType.FLOAT16,
}

# Param TOC type codes (low nibble of the type byte).
PARAM_TYPE_CODES: Final[dict[int, ValueType]] = {
    0x08: ValueType.UINT8,
    0x09: ValueType.UINT16,
    0x0A: ValueType.UINT32,
    0x0B: ValueType.UINT64,
    0x00: ValueType.INT8,
    0x01: ValueType.INT16,
    0x02: ValueType.INT32,
    0x03: ValueType.INT64,
    0x05: ValueType.FLOAT16,
    0x06: ValueType.FLOAT32,
    0x07: ValueType.FLOAT64,
}

_LOG_CODES_BY_TYPE: Final[dict[ValueType, int]] = {t: c for c, t in LOG_TYPE_CODES.items()}
_PARAM_CODES_BY_TYPE: Final[dict[ValueType, int]] = {t: c for c, t in PARAM_TYPE_CODES.items()}


def log_type_from_code(code: int) -> ValueType:
    try:
        return LOG_TYPE_CODES[code]
    except KeyError:
        raise DecodeError(f"Invalid log item type: {code}") from None


def log_type_code(value_type: ValueType) -> int:
    try:
        return _LOG_CODES_BY_TYPE[value_type]
    except KeyError:
        raise TypeMismatch(f"Value type {value_type.value} not handled by log") from None


def param_type_from_code(code: int) -> ValueType:
    try:
        return PARAM_TYPE_CODES[code]
    except KeyError:
        raise DecodeError(f"Type error in TOC: type {code} is unknown") from None


def param_type_code(value_type: ValueType) -> int:
    return _PARAM_CODES_BY_TYPE[value_type]


class Value(msgspec.Struct, frozen=True):
    """A numeric value tagged with its firmware type.

    Prefer :meth:`Value.of` which also rounds floats to the precision of the
    tag; the plain constructor only validates.
    """

    type: ValueType
    value: int | float

    def __post_init__(self) -> None:
        _validate(self.type, self.value)

    @classmethod
    def of(cls, value_type: ValueType | str, number: Any) -> Value:
        """Build a value, rounding floats to the precision of *value_type*."""
        kind = ValueType(value_type)
        _validate(kind, number)
        if kind.is_float:
            return cls(kind, _round_trip(kind, float(number)))
        return cls(kind, number)

    @classmethod
    def from_float_lossy(cls, value_type: ValueType | str, number: float) -> Value:
        """Convert any float to *value_type*, truncating and wrapping integers."""
        kind = ValueType(value_type)
        if kind.is_float:
            return cls.of(kind, number)
        bits = kind.size * 8
        integral = int(number) if math.isfinite(number) else 0
        wrapped = integral & ((1 << bits) - 1)
        if kind.is_signed and wrapped >= 1 << (bits - 1):
            wrapped -= 1 << bits
        return cls(kind, wrapped)

    def to_float(self) -> float:
        return float(self.value)

    def encode(self) -> bytes:
        return encode_value(self)

    @classmethod
    def decode(cls, data: bytes | bytearray | memoryview, value_type: ValueType) -> Value:
        return decode_value(data, value_type)


def _validate(kind: ValueType, number: Any) -> None:
    if isinstance(number, bool) or not isinstance(number, (int, float)):
        raise TypeMismatch(f"{number!r} is not a number")
    if kind.is_float:
        return
    if not isinstance(number, int):
        raise TypeMismatch(f"Cannot store float {number!r} in {kind.value}")
    low, high = kind.bounds
    if not low <= number <= high:
        raise TypeMismatch(f"{number} out of range for {kind.value} [{low}, {high}]")


def _round_trip(kind: ValueType, number: float) -> float:
    if math.isnan(number) or math.isinf(number):
        return number
    try:
        return float(kind.codec.parse(kind.codec.build(number)))
    except (ConstructError, OverflowError) as exc:
        raise TypeMismatch(f"{number!r} cannot be represented as {kind.value}") from exc


def encode_value(value: Value) -> bytes:
    """Encode *value* in firmware byte order."""
    try:
        return bytes(value.type.codec.build(value.value))
    except (ConstructError, OverflowError) as exc:
        raise TypeMismatch(f"{value.value!r} cannot be encoded as {value.type.value}") from exc


def decode_value(data: bytes | bytearray | memoryview, value_type: ValueType) -> Value:
    """Decode exactly ``value_type.size`` bytes into a :class:`Value`."""
    raw = bytes(data)
    if len(raw) != value_type.size:
        raise DecodeError(
            f"{value_type.value} needs {value_type.size} bytes, got {len(raw)}"
        )
    try:
        number = value_type.codec.parse(raw)
    except ConstructError as exc:
        raise DecodeError(f"Cannot decode {value_type.value}: {exc}") from exc
    return Value(value_type, float(number) if value_type.is_float else int(number))


__all__ = [
    "LOG_TYPE_CODES",
    "PARAM_TYPE_CODES",
    "Value",
    "ValueType",
    "decode_value",
    "encode_value",
    "log_type_code",
    "log_type_from_code",
    "param_type_code",
    "param_type_from_code",
]
