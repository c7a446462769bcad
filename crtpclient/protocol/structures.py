"""CRTP payload structures.

Each payload exchanged with the firmware is declared once as a msgspec
``Struct`` paired with a ``construct`` schema. ``decode`` parses and
validates the binary layout; ``encode`` builds it back.
"""

from __future__ import annotations

from typing import Any, ClassVar, Type, TypeVar

import msgspec
from construct import (  # type: ignore
    Construct,
    ConstructError,
    CString,
    Float32l,
    GreedyBytes,
    Int8ul,
    Int16ul,
    Int24ul,
    Int32ul,
    Struct as BinStruct,
)

from ..errors import DecodeError

T = TypeVar("T", bound="BaseStruct")


class BaseStruct(msgspec.Struct, frozen=True):
    """Base class for hybrid msgspec/construct payloads."""

    _SCHEMA: ClassVar[Construct]

    @classmethod
    def decode(cls: Type[T], data: bytes | bytearray | memoryview) -> T:
        """Decode binary data into a typed struct, raising :class:`DecodeError`."""
        if not data:
            raise DecodeError(f"Empty {cls.__name__} payload")
        try:
            container: Any = cls._SCHEMA.parse(bytes(data))
        except (ConstructError, UnicodeDecodeError) as exc:
            raise DecodeError(f"Malformed {cls.__name__}: {exc}") from exc
        return cls(**{k: v for k, v in container.items() if not k.startswith("_")})

    def encode(self) -> bytes:
        return bytes(self._SCHEMA.build(msgspec.structs.asdict(self)))


# --- TOC (channel 0 of log and param) ---


class TocInfoRequest(BaseStruct, frozen=True):
    command: int

    _SCHEMA = BinStruct("command" / Int8ul)


class TocInfoResponse(BaseStruct, frozen=True):
    command: int
    count: int
    checksum: int

    _SCHEMA = BinStruct("command" / Int8ul, "count" / Int16ul, "checksum" / Int32ul)


class TocItemRequest(BaseStruct, frozen=True):
    command: int
    index: int

    _SCHEMA = BinStruct("command" / Int8ul, "index" / Int16ul)


class TocItemResponse(BaseStruct, frozen=True):
    command: int
    ident: int
    type_byte: int
    group: str
    name: str

    _SCHEMA = BinStruct(
        "command" / Int8ul,
        "ident" / Int16ul,
        "type_byte" / Int8ul,
        "group" / CString("utf-8"),
        "name" / CString("utf-8"),
    )


# --- Log ---


class LogCommand(BaseStruct, frozen=True):
    """Control request addressing one block (create, stop, delete)."""

    command: int
    block_id: int

    _SCHEMA = BinStruct("command" / Int8ul, "block_id" / Int8ul)


class LogResetCommand(BaseStruct, frozen=True):
    command: int

    _SCHEMA = BinStruct("command" / Int8ul)


class LogAppendCommand(BaseStruct, frozen=True):
    command: int
    block_id: int
    type_code: int
    variable_id: int

    _SCHEMA = BinStruct(
        "command" / Int8ul,
        "block_id" / Int8ul,
        "type_code" / Int8ul,
        "variable_id" / Int16ul,
    )


class LogStartCommand(BaseStruct, frozen=True):
    command: int
    block_id: int
    period: int

    _SCHEMA = BinStruct("command" / Int8ul, "block_id" / Int8ul, "period" / Int8ul)


class LogControlResponse(BaseStruct, frozen=True):
    command: int
    block_id: int
    error: int

    _SCHEMA = BinStruct("command" / Int8ul, "block_id" / Int8ul, "error" / Int8ul)


class LogDataPacket(BaseStruct, frozen=True):
    block_id: int
    timestamp: int
    data: bytes

    _SCHEMA = BinStruct("block_id" / Int8ul, "timestamp" / Int24ul, "data" / GreedyBytes)


# --- Param ---


class ParamReadRequest(BaseStruct, frozen=True):
    param_id: int

    _SCHEMA = BinStruct("param_id" / Int16ul)


class ParamReadResponse(BaseStruct, frozen=True):
    param_id: int
    status: int
    data: bytes

    _SCHEMA = BinStruct("param_id" / Int16ul, "status" / Int8ul, "data" / GreedyBytes)


class ParamWritePacket(BaseStruct, frozen=True):
    """Write request; the firmware echoes the same layout back."""

    param_id: int
    data: bytes

    _SCHEMA = BinStruct("param_id" / Int16ul, "data" / GreedyBytes)


class ParamMiscPacket(BaseStruct, frozen=True):
    command: int
    param_id: int
    data: bytes

    _SCHEMA = BinStruct("command" / Int8ul, "param_id" / Int16ul, "data" / GreedyBytes)


# --- Commander ---


class RpytSetpoint(BaseStruct, frozen=True):
    roll: float
    pitch: float
    yawrate: float
    thrust: int

    _SCHEMA = BinStruct(
        "roll" / Float32l,
        "pitch" / Float32l,
        "yawrate" / Float32l,
        "thrust" / Int16ul,
    )


class PositionSetpoint(BaseStruct, frozen=True):
    x: float
    y: float
    z: float
    yaw: float

    _SCHEMA = BinStruct("x" / Float32l, "y" / Float32l, "z" / Float32l, "yaw" / Float32l)


class VelocityWorldSetpoint(BaseStruct, frozen=True):
    vx: float
    vy: float
    vz: float
    yawrate: float

    _SCHEMA = BinStruct("vx" / Float32l, "vy" / Float32l, "vz" / Float32l, "yawrate" / Float32l)


class ZDistanceSetpoint(BaseStruct, frozen=True):
    roll: float
    pitch: float
    yawrate: float
    zdistance: float

    _SCHEMA = BinStruct(
        "roll" / Float32l,
        "pitch" / Float32l,
        "yawrate" / Float32l,
        "zdistance" / Float32l,
    )


class HoverSetpoint(BaseStruct, frozen=True):
    vx: float
    vy: float
    yawrate: float
    zdistance: float

    _SCHEMA = BinStruct(
        "vx" / Float32l,
        "vy" / Float32l,
        "yawrate" / Float32l,
        "zdistance" / Float32l,
    )


class ManualSetpoint(BaseStruct, frozen=True):
    roll: float
    pitch: float
    yawrate: float
    thrust: int
    rate: int

    _SCHEMA = BinStruct(
        "roll" / Float32l,
        "pitch" / Float32l,
        "yawrate" / Float32l,
        "thrust" / Int16ul,
        "rate" / Int8ul,
    )


class NotifySetpointStop(BaseStruct, frozen=True):
    command: int
    remain_valid_ms: int

    _SCHEMA = BinStruct("command" / Int8ul, "remain_valid_ms" / Int32ul)


# --- Platform ---


class VersionRequest(BaseStruct, frozen=True):
    command: int

    _SCHEMA = BinStruct("command" / Int8ul)


class VersionResponse(BaseStruct, frozen=True):
    command: int
    data: bytes

    _SCHEMA = BinStruct("command" / Int8ul, "data" / GreedyBytes)


# --- Localization ---


class ExternalPosition(BaseStruct, frozen=True):
    x: float
    y: float
    z: float

    _SCHEMA = BinStruct("x" / Float32l, "y" / Float32l, "z" / Float32l)


class ExternalPose(BaseStruct, frozen=True):
    packet_type: int
    x: float
    y: float
    z: float
    qx: float
    qy: float
    qz: float
    qw: float

    _SCHEMA = BinStruct(
        "packet_type" / Int8ul,
        "x" / Float32l,
        "y" / Float32l,
        "z" / Float32l,
        "qx" / Float32l,
        "qy" / Float32l,
        "qz" / Float32l,
        "qw" / Float32l,
    )


# --- Supervisor ---


class SupervisorRequest(BaseStruct, frozen=True):
    command: int

    _SCHEMA = BinStruct("command" / Int8ul)


class SupervisorArmRequest(BaseStruct, frozen=True):
    command: int
    arm: int

    _SCHEMA = BinStruct("command" / Int8ul, "arm" / Int8ul)


class SupervisorStateResponse(BaseStruct, frozen=True):
    command: int
    bitfield: int

    _SCHEMA = BinStruct("command" / Int8ul, "bitfield" / Int16ul)


__all__ = [
    "BaseStruct",
    "ExternalPose",
    "ExternalPosition",
    "HoverSetpoint",
    "LogAppendCommand",
    "LogCommand",
    "LogControlResponse",
    "LogDataPacket",
    "LogResetCommand",
    "LogStartCommand",
    "ManualSetpoint",
    "NotifySetpointStop",
    "ParamMiscPacket",
    "ParamReadRequest",
    "ParamReadResponse",
    "ParamWritePacket",
    "PositionSetpoint",
    "RpytSetpoint",
    "SupervisorArmRequest",
    "SupervisorRequest",
    "SupervisorStateResponse",
    "TocInfoRequest",
    "TocInfoResponse",
    "TocItemRequest",
    "TocItemResponse",
    "VelocityWorldSetpoint",
    "VersionRequest",
    "VersionResponse",
    "ZDistanceSetpoint",
]
