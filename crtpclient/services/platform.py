"""Platform service: protocol version, firmware and device identification."""

from __future__ import annotations

import logging

from ..config.model import ClientConfig
from ..const import MIN_PROTOCOL_VERSION
from ..errors import DecodeError, Disconnected
from ..protocol.packet import Packet
from ..protocol.protocol import PlatformChannel, Port, VersionCommand
from ..protocol.structures import VersionRequest, VersionResponse
from .base import PortService
from .dispatcher import Dispatcher

logger = logging.getLogger("crtpclient.platform")


class Platform(PortService):
    """Version queries on port 13, correlated by command byte."""

    PORT = Port.PLATFORM
    NAME = "platform"

    def __init__(self, dispatcher: Dispatcher, config: ClientConfig) -> None:
        super().__init__(dispatcher, config)
        self._flow = self._new_flow("platform.version")
        self._protocol_version: int | None = None

    @property
    def cached_protocol_version(self) -> int | None:
        return self._protocol_version

    async def handshake(self) -> int:
        """Query the protocol version; an old firmware only logs a warning."""
        self._start_router()
        version = await self.protocol_version()
        if version < MIN_PROTOCOL_VERSION:
            logger.warning(
                "Firmware speaks protocol version %d, at least %d is expected; "
                "some features may not work",
                version,
                MIN_PROTOCOL_VERSION,
            )
        else:
            logger.info("Firmware protocol version %d", version)
        return version

    async def protocol_version(self) -> int:
        data = await self._query(VersionCommand.GET_PROTOCOL)
        if not data:
            raise DecodeError("Empty protocol version response")
        self._protocol_version = data[0]
        return self._protocol_version

    async def firmware_version(self) -> str:
        return _decode_text(await self._query(VersionCommand.GET_FIRMWARE))

    async def device_type_name(self) -> str:
        return _decode_text(await self._query(VersionCommand.GET_DEVICE_TYPE))

    async def _query(self, command: VersionCommand) -> bytes:
        self._start_router()
        packet = Packet(self.PORT, PlatformChannel.VERSION, VersionRequest(command=command).encode())
        response: VersionResponse = await self._flow.request(packet, int(command))
        return response.data

    def _handle_packet(self, packet: Packet) -> None:
        if packet.channel != PlatformChannel.VERSION:
            logger.debug("Ignoring platform packet on channel %d", packet.channel)
            return
        response = VersionResponse.decode(packet.payload)
        if not self._flow.pending.resolve(response.command, response):
            logger.debug("Ignoring unexpected version response 0x%02X", response.command)

    def _on_disconnected(self, exc: Disconnected) -> None:
        self._flow.pending.fail_all(exc)


def _decode_text(data: bytes) -> str:
    return data.split(b"\x00", 1)[0].decode("utf-8", errors="replace")


__all__ = ["Platform"]
