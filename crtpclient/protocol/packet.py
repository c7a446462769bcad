"""CRTP packet framing.

A CRTP packet is a single header byte followed by up to 30 payload bytes.
The link adapter below this layer delivers whole packets, so there is no
length prefix or checksum here: the header alone carries the routing.

Header layout (one byte)::

    bits 7..4  port     (0..15)
    bits 3..2  link     reserved, always sent as 0b11 and ignored on receive
    bits 1..0  channel  (0..3)
"""

from __future__ import annotations

import msgspec
from construct import ConstructError  # type: ignore

from ..errors import FramingError
from . import protocol


class Packet(msgspec.Struct, frozen=True):
    """A routed CRTP packet.

    Attributes:
        port: Destination subsystem (4 bits).
        channel: Sub-channel inside the port (2 bits).
        payload: Up to ``MAX_PAYLOAD_SIZE`` bytes.
    """

    port: int
    channel: int
    payload: bytes = b""

    def __post_init__(self) -> None:
        _check_routing(self.port, self.channel, self.payload)

    @staticmethod
    def build(port: int, channel: int, payload: bytes = b"") -> bytes:
        """Encode header and payload into wire bytes."""
        _check_routing(port, channel, payload)
        header = protocol.HEADER_STRUCT.build({"port": int(port), "channel": int(channel)})
        return bytes(header) + bytes(payload)

    @staticmethod
    def parse(raw: bytes | bytearray | memoryview) -> tuple[int, int, bytes]:
        """Split wire bytes into ``(port, channel, payload)``."""
        data = bytes(raw)
        if not data:
            raise FramingError("Empty packet")
        if len(data) > protocol.MAX_PACKET_SIZE:
            raise FramingError(
                f"Packet too large ({len(data)} bytes); max is {protocol.MAX_PACKET_SIZE}"
            )
        try:
            header = protocol.HEADER_STRUCT.parse(data[: protocol.HEADER_SIZE])
        except ConstructError as exc:
            raise FramingError(f"Header parsing failed: {exc}") from exc
        return header.port, header.channel, data[protocol.HEADER_SIZE :]

    def to_bytes(self) -> bytes:
        return self.build(self.port, self.channel, self.payload)

    @classmethod
    def from_bytes(cls, raw: bytes | bytearray | memoryview) -> Packet:
        port, channel, payload = cls.parse(raw)
        return cls(port, channel, payload)


def _check_routing(port: int, channel: int, payload: bytes) -> None:
    if not 0 <= port <= protocol.PORT_MAX:
        raise FramingError(f"Port {port} outside 0..{protocol.PORT_MAX}")
    if not 0 <= channel <= protocol.CHANNEL_MAX:
        raise FramingError(f"Channel {channel} outside 0..{protocol.CHANNEL_MAX}")
    if len(payload) > protocol.MAX_PAYLOAD_SIZE:
        raise FramingError(
            f"Payload too large ({len(payload)} bytes); max is {protocol.MAX_PAYLOAD_SIZE}"
        )
