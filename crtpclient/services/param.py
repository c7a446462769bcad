"""Param subsystem: typed firmware configuration variables.

Parameters are listed in the param TOC and read or written by id. The
firmware acknowledges a write by echoing the id and the stored value, and
may push unsolicited ``VALUE_UPDATED`` notifications on the misc channel
(for example when persisted defaults are reloaded). Every acknowledged
value lands in a local cache that is never authoritative: a fresh read
always goes to the firmware.
"""

from __future__ import annotations

import asyncio
import logging
import time

from ..config.model import ClientConfig
from ..errors import AccessDenied, Disconnected, ParamError, TypeMismatch
from ..protocol import protocol
from ..protocol.packet import Packet
from ..protocol.protocol import ParamChannel, ParamMisc, Port
from ..protocol.structures import ParamMiscPacket, ParamReadRequest, ParamReadResponse, ParamWritePacket
from ..protocol.values import Value, ValueType, decode_value, encode_value
from ..state.queues import DropOldestQueue, Subscription
from .base import PortService
from .dispatcher import Dispatcher
from .toc import Toc, TocCache, TocEntry, TocFetcher, TocKind

logger = logging.getLogger("crtpclient.param")

ParamChange = tuple[str, Value]


class Param(PortService):
    """Param subsystem bound to port 2."""

    PORT = Port.PARAM
    NAME = "param"

    def __init__(self, dispatcher: Dispatcher, config: ClientConfig, toc_cache: TocCache) -> None:
        super().__init__(dispatcher, config)
        self._toc_cache = toc_cache
        self._toc_flow = self._new_flow("param.toc")
        self._read_flow = self._new_flow("param.read")
        self._write_flow = self._new_flow("param.write")
        self._toc_fetcher = TocFetcher(TocKind.PARAM, self.PORT, self._toc_flow)
        self._toc: Toc | None = None
        self._values: dict[int, tuple[Value, float]] = {}
        self._watchers: set[DropOldestQueue[ParamChange]] = set()
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Fetch the TOC and, if configured, every current value."""
        self._start_router()
        self._toc = await self._toc_fetcher.fetch(self._toc_cache)
        if self._config.param_prefetch_values:
            for entry in self._toc:
                await self._fetch_value(entry)
        logger.info("Param ready: %d parameters", len(self._toc))

    # --- TOC accessors ---

    @property
    def toc(self) -> Toc:
        if self._toc is None:
            raise RuntimeError("Param TOC not fetched yet")
        return self._toc

    def names(self) -> list[str]:
        return self.toc.names()

    def get_type(self, name: str) -> ValueType:
        return self.toc.by_name(name).type

    def is_writable(self, name: str) -> bool:
        return self.toc.by_name(name).writable

    def cached(self, name_or_id: str | int) -> Value | None:
        """Last known value without any freshness check, or None."""
        cached = self._values.get(self.toc.resolve(name_or_id).id)
        return cached[0] if cached is not None else None

    # --- Read / write ---

    async def read(self, name_or_id: str | int, *, refresh: bool = False) -> Value:
        """Return the parameter value, from the cache when still fresh."""
        self._dispatcher.ensure_connected()
        entry = self.toc.resolve(name_or_id)
        if not refresh:
            cached = self._fresh_value(entry.id)
            if cached is not None:
                return cached
        return await self._fetch_value(entry)

    async def write(self, name_or_id: str | int, value: Value | int | float) -> None:
        """Write *value* and wait for the firmware acknowledgement.

        Plain numbers are converted to the declared type when they fit;
        a :class:`Value` must carry exactly the declared type.
        """
        self._dispatcher.ensure_connected()
        entry = self.toc.resolve(name_or_id)
        if not entry.writable:
            raise AccessDenied(f"Parameter {entry.full_name} is read-only")
        typed = self._coerce(entry, value)
        data = encode_value(typed)
        packet = Packet(self.PORT, ParamChannel.WRITE, ParamWritePacket(param_id=entry.id, data=data).encode())

        async with self._write_lock:
            echo: ParamWritePacket = await self._write_flow.request(packet, entry.id)
        if echo.data != data:
            raise ParamError(
                f"Error setting {entry.full_name}: firmware acknowledged "
                f"{echo.data.hex()} instead of {data.hex()}"
            )
        self._store(entry, typed, notify=True)

    async def read_lossy(self, name_or_id: str | int) -> float:
        """Read any parameter as a float, whatever its type."""
        return (await self.read(name_or_id)).to_float()

    async def write_lossy(self, name_or_id: str | int, number: float) -> None:
        """Write a float into any parameter, truncating or wrapping as needed."""
        entry = self.toc.resolve(name_or_id)
        await self.write(entry.id, Value.from_float_lossy(entry.type, number))

    def watch_changes(self) -> Subscription[ParamChange]:
        """Subscribe to ``(full_name, value)`` for every acknowledged or pushed change.

        Changes are recorded from the moment of the call, before the first
        iteration.
        """
        self._dispatcher.ensure_connected()
        queue: DropOldestQueue[ParamChange] = DropOldestQueue()
        self._watchers.add(queue)
        return Subscription(queue, lambda: self._watchers.discard(queue))

    # --- Internals ---

    @staticmethod
    def _coerce(entry: TocEntry, value: Value | int | float) -> Value:
        if isinstance(value, Value):
            if value.type != entry.type:
                raise TypeMismatch(
                    f"Parameter {entry.full_name} is type {entry.type.value}, "
                    f"cannot set with {value.type.value}"
                )
            return value
        return Value.of(entry.type, value)

    def _fresh_value(self, param_id: int) -> Value | None:
        cached = self._values.get(param_id)
        if cached is None:
            return None
        value, stamp = cached
        ttl = self._config.param_cache_ttl
        if ttl is not None and time.monotonic() - stamp > ttl:
            return None
        return value

    async def _fetch_value(self, entry: TocEntry) -> Value:
        packet = Packet(self.PORT, ParamChannel.READ, ParamReadRequest(param_id=entry.id).encode())
        response: ParamReadResponse = await self._read_flow.request(packet, entry.id)
        if response.status != 0:
            raise ParamError(
                f"Error reading {entry.full_name}: code {response.status}", code=response.status
            )
        value = decode_value(response.data, entry.type)
        self._store(entry, value, notify=False)
        return value

    def _store(self, entry: TocEntry, value: Value, *, notify: bool) -> None:
        self._values[entry.id] = (value, time.monotonic())
        if notify:
            for queue in self._watchers:
                queue.put_nowait((entry.full_name, value))

    # --- Routing ---

    def _handle_packet(self, packet: Packet) -> None:
        if packet.channel == ParamChannel.READ:
            response = ParamReadResponse.decode(packet.payload)
            if not self._read_flow.pending.resolve(response.param_id, response):
                logger.debug("Ignoring unexpected read response for param %d", response.param_id)
        elif packet.channel == ParamChannel.WRITE:
            echo = ParamWritePacket.decode(packet.payload)
            if not self._write_flow.pending.resolve(echo.param_id, echo):
                logger.debug("Ignoring unexpected write acknowledgement for param %d", echo.param_id)
        elif packet.channel == ParamChannel.MISC:
            self._handle_misc(packet)
        elif packet.channel == protocol.TOC_CHANNEL:
            self._toc_fetcher.handle_packet(packet)

    def _handle_misc(self, packet: Packet) -> None:
        misc = ParamMiscPacket.decode(packet.payload)
        if misc.command != ParamMisc.VALUE_UPDATED:
            logger.debug("Ignoring param misc command 0x%02X", misc.command)
            return
        if self._toc is None:
            return
        try:
            entry = self._toc.by_id(misc.param_id)
        except LookupError:
            logger.warning("Malformed param update: unknown id %d", misc.param_id)
            return
        value = decode_value(misc.data, entry.type)
        logger.debug("Param %s updated by firmware to %s", entry.full_name, value.value)
        self._store(entry, value, notify=True)

    def _on_disconnected(self, exc: Disconnected) -> None:
        for flow in (self._toc_flow, self._read_flow, self._write_flow):
            flow.pending.fail_all(exc)
        for queue in self._watchers:
            queue.close(exc)


__all__ = ["Param", "ParamChange"]
