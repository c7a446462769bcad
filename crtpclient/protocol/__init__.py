"""CRTP wire format: packets, payload layouts and typed values."""

from .packet import Packet
from .values import Value, ValueType, decode_value, encode_value
from . import protocol, structures, values

__all__ = [
    "Packet",
    "Value",
    "ValueType",
    "decode_value",
    "encode_value",
    "protocol",
    "structures",
    "values",
]
