"""CRTP protocol constants and wire layouts shared by every subsystem."""

from __future__ import annotations

from enum import IntEnum
from typing import Final

from construct import (  # type: ignore
    BitsInteger,
    BitStruct,
    Default,
)

MAX_PAYLOAD_SIZE: Final[int] = 30
HEADER_SIZE: Final[int] = 1
MAX_PACKET_SIZE: Final[int] = HEADER_SIZE + MAX_PAYLOAD_SIZE
PORT_MAX: Final[int] = 15
CHANNEL_MAX: Final[int] = 3
HEADER_LINK_BITS: Final[int] = 0b11
UINT8_MAX: Final[int] = 255
UINT16_MAX: Final[int] = 65535


class Port(IntEnum):
    CONSOLE = 0
    PARAM = 2
    COMMANDER = 3
    MEMORY = 4
    LOG = 5
    LOCALIZATION = 6
    GENERIC_SETPOINT = 7
    HIGH_LEVEL_COMMANDER = 8
    SUPERVISOR = 9
    PLATFORM = 13
    LINK = 15


# --- Table of contents (shared by log and param) ---

TOC_CHANNEL: Final[int] = 0
TOC_CACHE_VERSION: Final[int] = 1


class TocCommand(IntEnum):
    GET_ITEM_V2 = 2
    GET_INFO_V2 = 3


# --- Log ---


class LogChannel(IntEnum):
    TOC = 0
    CONTROL = 1
    DATA = 2


class LogControl(IntEnum):
    DELETE_BLOCK = 2
    START_BLOCK = 3
    STOP_BLOCK = 4
    RESET = 5
    CREATE_BLOCK_V2 = 6
    APPEND_BLOCK_V2 = 7


LOG_TYPE_MASK: Final[int] = 0x0F
LOG_PERIOD_TICK_MS: Final[int] = 10
LOG_PERIOD_TICKS_MIN: Final[int] = 1
LOG_PERIOD_TICKS_MAX: Final[int] = 255
LOG_TIMESTAMP_SIZE: Final[int] = 3
LOG_DATA_HEADER_SIZE: Final[int] = 1 + LOG_TIMESTAMP_SIZE
LOG_SAMPLE_BUDGET: Final[int] = MAX_PAYLOAD_SIZE - LOG_DATA_HEADER_SIZE
LOG_BLOCK_ID_MAX: Final[int] = UINT8_MAX


# --- Param ---


class ParamChannel(IntEnum):
    TOC = 0
    READ = 1
    WRITE = 2
    MISC = 3


class ParamMisc(IntEnum):
    VALUE_UPDATED = 1


PARAM_TYPE_MASK: Final[int] = 0x0F
PARAM_FLAG_READ_ONLY: Final[int] = 0x40


# --- Commander ---

COMMANDER_RPYT_CHANNEL: Final[int] = 0


class GenericSetpointChannel(IntEnum):
    SETPOINT = 0
    META_COMMAND = 1


class SetpointType(IntEnum):
    STOP = 0
    POSITION = 7
    VELOCITY_WORLD = 8
    ZDISTANCE = 9
    HOVER = 10
    MANUAL = 11


class MetaCommand(IntEnum):
    NOTIFY_SETPOINT_STOP = 0


MANUAL_THRUST_MIN: Final[int] = 10001
MANUAL_THRUST_MAX: Final[int] = 60000


# --- Platform ---


class PlatformChannel(IntEnum):
    VERSION = 1


class VersionCommand(IntEnum):
    GET_PROTOCOL = 0
    GET_FIRMWARE = 1
    GET_DEVICE_TYPE = 2


# --- Localization ---


class LocalizationChannel(IntEnum):
    POSITION = 0
    GENERIC = 1


class LocalizationPacket(IntEnum):
    EMERGENCY_STOP = 3
    EMERGENCY_STOP_WATCHDOG = 4
    EXT_POSE = 8


# --- Supervisor ---


class SupervisorChannel(IntEnum):
    INFO = 0
    COMMAND = 1


class SupervisorCommand(IntEnum):
    ARM_SYSTEM = 0x01
    RECOVER_SYSTEM = 0x02
    GET_STATE_BITFIELD = 0x0C


# Set on supervisor info responses.
SUPERVISOR_RESPONSE_FLAG: Final[int] = 0x80


class SupervisorFlag(IntEnum):
    """Bit positions of the supervisor state bitfield."""

    CAN_BE_ARMED = 0
    IS_ARMED = 1
    IS_AUTO_ARMED = 2
    CAN_FLY = 3
    IS_FLYING = 4
    IS_TUMBLED = 5
    IS_LOCKED = 6
    IS_CRASHED = 7
    HL_CONTROL_ACTIVE = 8
    HL_TRAJ_FINISHED = 9
    HL_CONTROL_DISABLED = 10


# --- Link service ---


class LinkChannel(IntEnum):
    ECHO = 0


LINK_PING_PAYLOAD: Final[bytes] = b"\x01"


# --- Wire layouts ---

HEADER_STRUCT: Final = BitStruct(
    "port" / BitsInteger(4),
    "link" / Default(BitsInteger(2), HEADER_LINK_BITS),
    "channel" / BitsInteger(2),
)
