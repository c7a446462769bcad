"""Link service on port 15: round-trip latency through the firmware echo."""

from __future__ import annotations

import asyncio
import logging

from ..config.model import ClientConfig
from ..errors import Disconnected, ProtocolError
from ..protocol.packet import Packet
from ..protocol.protocol import LINK_PING_PAYLOAD, LinkChannel, Port
from .base import PortService
from .dispatcher import Dispatcher

logger = logging.getLogger("crtpclient.link")

_ECHO_KEY = "echo"


class LinkService(PortService):
    """Echo requests on the link port.

    The echo channel carries no identifier, so pings are serialised and a
    late echo from a timed out ping is only logged.
    """

    PORT = Port.LINK
    NAME = "link"

    def __init__(self, dispatcher: Dispatcher, config: ClientConfig) -> None:
        super().__init__(dispatcher, config)
        self._flow = self._new_flow("link.echo")
        self._lock = asyncio.Lock()

    async def ping(self) -> float:
        """Round-trip time of one echo packet, in milliseconds."""
        self._dispatcher.ensure_connected()
        self._start_router()
        loop = asyncio.get_running_loop()
        packet = Packet(self.PORT, LinkChannel.ECHO, LINK_PING_PAYLOAD)
        async with self._lock:
            started = loop.time()
            answer: bytes = await self._flow.request(packet, _ECHO_KEY, retry=False)
            elapsed_ms = (loop.time() - started) * 1000.0
        if answer != LINK_PING_PAYLOAD:
            raise ProtocolError(f"Ping got wrong echo back: {answer.hex()}")
        return elapsed_ms

    def _handle_packet(self, packet: Packet) -> None:
        if packet.channel != LinkChannel.ECHO:
            return
        if not self._flow.pending.resolve(_ECHO_KEY, packet.payload):
            logger.debug("Ignoring unsolicited echo of %d bytes", len(packet.payload))

    def _on_disconnected(self, exc: Disconnected) -> None:
        self._flow.pending.fail_all(exc)


__all__ = ["LinkService"]
