"""Base class for subsystems bound to one CRTP port."""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from ..config.model import ClientConfig
from ..errors import DecodeError, Disconnected
from ..protocol.packet import Packet
from .dispatcher import Dispatcher
from .flow import PendingRequests, RequestFlow


class PortService:
    """Own the inbound queue of :attr:`PORT` and route its packets.

    Subclasses implement :meth:`_handle_packet`; malformed packets raise
    :class:`DecodeError` there and are logged and dropped by the router.
    """

    PORT: ClassVar[int]
    NAME: ClassVar[str]

    def __init__(self, dispatcher: Dispatcher, config: ClientConfig, *, maxsize: int | None = None) -> None:
        self._dispatcher = dispatcher
        self._config = config
        self._queue = dispatcher.subscribe(self.PORT, maxsize=maxsize)
        self._logger = logging.getLogger(f"crtpclient.{self.NAME}")
        self._router_started = False

    def _start_router(self) -> None:
        if self._router_started:
            return
        self._router_started = True
        self._dispatcher.spawn(self._route(), name=f"crtpclient-{self.NAME}-router")

    def _new_flow(self, name: str) -> RequestFlow[Any]:
        pending: PendingRequests[Any] = PendingRequests()
        return RequestFlow(
            self._dispatcher,
            pending,
            timeout=self._config.request_timeout,
            attempts=self._config.request_attempts,
            name=name,
        )

    async def _route(self) -> None:
        try:
            async for packet in self._queue:
                try:
                    self._handle_packet(packet)
                except DecodeError as exc:
                    self._logger.warning(
                        "Dropping malformed packet on channel %d: %s", packet.channel, exc
                    )
        except Disconnected as exc:
            self._on_disconnected(exc)

    def _handle_packet(self, packet: Packet) -> None:
        raise NotImplementedError

    def _on_disconnected(self, exc: Disconnected) -> None:
        """Hook run once when the connection drops."""


__all__ = ["PortService"]
