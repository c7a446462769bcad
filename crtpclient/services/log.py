"""Log subsystem: firmware-sampled telemetry blocks.

A log block groups TOC variables that the firmware samples together at a
fixed period and pushes as one data packet on channel 2. Blocks are
configured on channel 1 with one command per step (create, then one append
per variable) because a control packet cannot carry a whole schema.

Example::

    block = await cf.log.create_block(["stateEstimate.x", "stateEstimate.y"])
    async with block:
        await block.start(100)
        async for sample in block.samples():
            print(sample.timestamp, sample.as_dict())
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import AsyncIterator, Iterable, Sequence
from enum import StrEnum
from types import TracebackType

import msgspec

from ..config.model import ClientConfig
from ..errors import CrtpError, DecodeError, Disconnected, LogError, TooManyVariables
from ..protocol import protocol
from ..protocol.packet import Packet
from ..protocol.protocol import LogChannel, LogControl, Port
from ..protocol.structures import (
    LogAppendCommand,
    LogCommand,
    LogControlResponse,
    LogDataPacket,
    LogResetCommand,
    LogStartCommand,
)
from ..protocol.values import Value, ValueType, decode_value, log_type_code
from ..state.queues import DropOldestQueue
from .base import PortService
from .dispatcher import Dispatcher
from .toc import Toc, TocCache, TocEntry, TocFetcher, TocKind

logger = logging.getLogger("crtpclient.log")

# errno values reported in control responses
_LOG_ERRORS = {
    2: "block or variable not found (ENOENT)",
    7: "block too large (E2BIG)",
    8: "malformed request (ENOEXEC)",
    12: "firmware out of memory (ENOMEM)",
    17: "block already exists (EEXIST)",
}


class LogSample(msgspec.Struct, frozen=True):
    """One decoded data packet of a started block."""

    block_id: int
    timestamp: int
    names: tuple[str, ...]
    values: tuple[Value, ...]

    def as_dict(self) -> dict[str, Value]:
        return dict(zip(self.names, self.values))

    def __getitem__(self, name: str) -> Value:
        try:
            return self.values[self.names.index(name)]
        except ValueError:
            raise KeyError(name) from None


class LogDecodeFailure(msgspec.Struct, frozen=True):
    """Stream item for a data packet that does not match the block schema."""

    block_id: int
    reason: str
    payload: bytes


LogStreamItem = LogSample | LogDecodeFailure


class BlockState(StrEnum):
    CREATED = "created"
    STARTED = "started"
    STOPPED = "stopped"
    DELETED = "deleted"


def period_to_ticks(period_ms: float) -> int:
    """Convert a period in milliseconds to firmware ticks of 10 ms."""
    ticks = int(period_ms) // protocol.LOG_PERIOD_TICK_MS
    if not protocol.LOG_PERIOD_TICKS_MIN <= ticks <= protocol.LOG_PERIOD_TICKS_MAX:
        raise ValueError(
            f"Invalid log period {period_ms} ms, should be between "
            f"{protocol.LOG_PERIOD_TICKS_MIN * protocol.LOG_PERIOD_TICK_MS} and "
            f"{protocol.LOG_PERIOD_TICKS_MAX * protocol.LOG_PERIOD_TICK_MS + protocol.LOG_PERIOD_TICK_MS - 1} ms"
        )
    return ticks


def _describe_error(code: int) -> str:
    return _LOG_ERRORS.get(code, f"error {code}")


class _BlockRecord:
    """Log-side state of one firmware block, independent of its handle."""

    def __init__(self, block_id: int, entries: tuple[TocEntry, ...], queue_size: int) -> None:
        self.block_id = block_id
        self.entries = entries
        self.names = tuple(entry.full_name for entry in entries)
        self.types: tuple[ValueType, ...] = tuple(entry.type for entry in entries)
        self.width = sum(value_type.size for value_type in self.types)
        self.queue_size = queue_size
        self.queue: DropOldestQueue[LogStreamItem] = DropOldestQueue(queue_size)
        self.state = BlockState.CREATED
        self.period_ticks: int | None = None

    def decode(self, packet: LogDataPacket) -> LogStreamItem:
        if len(packet.data) != self.width:
            return LogDecodeFailure(
                block_id=self.block_id,
                reason=f"expected {self.width} bytes of samples, got {len(packet.data)}",
                payload=packet.data,
            )
        values: list[Value] = []
        offset = 0
        try:
            for value_type in self.types:
                values.append(decode_value(packet.data[offset : offset + value_type.size], value_type))
                offset += value_type.size
        except DecodeError as exc:
            return LogDecodeFailure(block_id=self.block_id, reason=str(exc), payload=packet.data)
        return LogSample(
            block_id=self.block_id,
            timestamp=packet.timestamp,
            names=self.names,
            values=tuple(values),
        )

    def end_stream(self) -> None:
        """Finish the current sample stream and prepare a fresh one."""
        self.queue.close()
        self.queue = DropOldestQueue(self.queue_size)


class LogBlock:
    """Handle on a firmware log block.

    Dropping the last reference to the handle schedules the firmware block
    for deletion on the next :meth:`Log.create_block`.
    """

    def __init__(self, log: Log, record: _BlockRecord) -> None:
        self._log = log
        self._record = record
        self._finalizer = weakref.finalize(self, log._orphan, record.block_id)

    def __repr__(self) -> str:
        return f"LogBlock(id={self.block_id}, state={self.state.value}, variables={list(self.names)})"

    @property
    def block_id(self) -> int:
        return self._record.block_id

    @property
    def names(self) -> tuple[str, ...]:
        return self._record.names

    @property
    def types(self) -> tuple[ValueType, ...]:
        return self._record.types

    @property
    def state(self) -> BlockState:
        return self._record.state

    @property
    def period_ticks(self) -> int | None:
        return self._record.period_ticks

    @property
    def dropped_samples(self) -> int:
        return self._record.queue.dropped

    async def start(self, period_ms: float) -> None:
        await self._log.start(self, period_ms)

    async def stop(self) -> None:
        await self._log.stop(self)

    async def delete(self) -> None:
        await self._log.delete_block(self)

    async def samples(self) -> AsyncIterator[LogStreamItem]:
        """Yield samples until the block is stopped or deleted.

        Raises :class:`Disconnected` if the connection drops.
        """
        queue = self._record.queue
        async for item in queue:
            yield item

    async def __aenter__(self) -> LogBlock:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.delete()

    def _detach(self) -> None:
        self._finalizer.detach()


class Log(PortService):
    """Log subsystem bound to port 5."""

    PORT = Port.LOG
    NAME = "log"

    def __init__(self, dispatcher: Dispatcher, config: ClientConfig, toc_cache: TocCache) -> None:
        super().__init__(dispatcher, config)
        self._toc_cache = toc_cache
        self._toc_flow = self._new_flow("log.toc")
        self._control_flow = self._new_flow("log.control")
        self._toc_fetcher = TocFetcher(TocKind.LOG, self.PORT, self._toc_flow)
        self._toc: Toc | None = None
        self._blocks: dict[int, _BlockRecord] = {}
        self._orphans: set[int] = set()
        self._control_lock = asyncio.Lock()

    # --- Initialisation ---

    async def initialize(self) -> None:
        """Fetch the TOC and reset any block left over in the firmware."""
        self._start_router()
        self._toc = await self._toc_fetcher.fetch(self._toc_cache)
        await self._control(LogResetCommand(command=LogControl.RESET).encode(), (LogControl.RESET,))
        logger.info("Log ready: %d variables", len(self._toc))

    # --- TOC accessors ---

    @property
    def toc(self) -> Toc:
        if self._toc is None:
            raise RuntimeError("Log TOC not fetched yet")
        return self._toc

    def names(self) -> list[str]:
        return self.toc.names()

    def get_type(self, name: str) -> ValueType:
        return self.toc.by_name(name).type

    # --- Blocks ---

    async def create_block(self, variables: Iterable[str | int]) -> LogBlock:
        """Create a firmware block sampling *variables* (names or ids).

        The schema width is checked against the sample budget before any
        packet is sent.
        """
        self._dispatcher.ensure_connected()
        entries = tuple(self.toc.resolve(variable) for variable in variables)
        if not entries:
            raise ValueError("A log block needs at least one variable")
        width = sum(entry.type.size for entry in entries)
        if width > self._config.log_sample_budget:
            raise TooManyVariables(
                f"Block needs {width} bytes per sample, budget is {self._config.log_sample_budget}"
            )

        await self._purge_orphans()
        block_id = self._allocate_block_id()
        record = _BlockRecord(block_id, entries, self._config.log_block_queue_size)
        # Reserve the id before awaiting so concurrent creations cannot collide.
        self._blocks[block_id] = record

        try:
            await self._control(
                LogCommand(command=LogControl.CREATE_BLOCK_V2, block_id=block_id).encode(),
                (LogControl.CREATE_BLOCK_V2, block_id),
                action="creating block",
            )
            for entry in entries:
                await self._control(
                    LogAppendCommand(
                        command=LogControl.APPEND_BLOCK_V2,
                        block_id=block_id,
                        type_code=log_type_code(entry.type),
                        variable_id=entry.id,
                    ).encode(),
                    (LogControl.APPEND_BLOCK_V2, block_id),
                    action=f"adding {entry.full_name}",
                )
        except CrtpError:
            await self._delete_quietly(block_id)
            raise
        except asyncio.CancelledError:
            self._orphans.add(block_id)
            raise

        logger.debug("Created log block %d with %s", block_id, list(record.names))
        return LogBlock(self, record)

    async def start(self, block: LogBlock, period_ms: float) -> None:
        """Arm periodic sampling of *block* every *period_ms* milliseconds."""
        ticks = period_to_ticks(period_ms)
        record = self._live_record(block)
        self._dispatcher.ensure_connected()
        await self._control(
            LogStartCommand(command=LogControl.START_BLOCK, block_id=record.block_id, period=ticks).encode(),
            (LogControl.START_BLOCK, record.block_id),
            action="starting block",
        )
        record.period_ticks = ticks
        record.state = BlockState.STARTED

    async def stop(self, block: LogBlock) -> None:
        """Stop sampling; best-effort when the connection is gone."""
        if not self._dispatcher.is_connected and block._record.block_id not in self._blocks:
            # Blocks were already released when the connection dropped.
            return
        record = self._live_record(block)
        if record.state is BlockState.STARTED:
            record.end_stream()
        record.state = BlockState.STOPPED
        if not self._dispatcher.is_connected:
            return
        await self._control(
            LogCommand(command=LogControl.STOP_BLOCK, block_id=record.block_id).encode(),
            (LogControl.STOP_BLOCK, record.block_id),
            action="stopping block",
        )

    async def delete_block(self, block: LogBlock) -> None:
        """Delete *block* in the firmware; local state is cleared regardless."""
        block._detach()
        record = self._blocks.get(block.block_id)
        if record is None or record is not block._record:
            return
        await self._delete_quietly(record.block_id)

    @property
    def active_blocks(self) -> list[int]:
        return sorted(self._blocks)

    # --- Internals ---

    def _live_record(self, block: LogBlock) -> _BlockRecord:
        record = self._blocks.get(block.block_id)
        if record is None or record is not block._record:
            raise LogError(f"Log block {block.block_id} was deleted")
        return record

    def _allocate_block_id(self) -> int:
        for block_id in range(protocol.LOG_BLOCK_ID_MAX + 1):
            if block_id not in self._blocks:
                return block_id
        raise LogError("No more block ID available")

    def _orphan(self, block_id: int) -> None:
        if block_id in self._blocks:
            logger.debug("Log block %d handle dropped; scheduled for deletion", block_id)
            self._orphans.add(block_id)

    async def _purge_orphans(self) -> None:
        while self._orphans:
            await self._delete_quietly(self._orphans.pop())

    async def _delete_quietly(self, block_id: int) -> None:
        record = self._blocks.pop(block_id, None)
        self._orphans.discard(block_id)
        if record is not None:
            record.state = BlockState.DELETED
            record.queue.close()
        if not self._dispatcher.is_connected:
            return
        try:
            await self._control(
                LogCommand(command=LogControl.DELETE_BLOCK, block_id=block_id).encode(),
                (LogControl.DELETE_BLOCK, block_id),
                action="deleting block",
            )
        except CrtpError as exc:
            logger.debug("Best-effort delete of log block %d failed: %s", block_id, exc)

    async def _control(self, payload: bytes, key: tuple[int, ...], *, action: str = "resetting") -> None:
        packet = Packet(self.PORT, LogChannel.CONTROL, payload)
        async with self._control_lock:
            error: int = await self._control_flow.request(packet, key, retry=False)
        if error != 0:
            raise LogError(f"Protocol error when {action}: {_describe_error(error)}", code=error)

    # --- Routing ---

    def _handle_packet(self, packet: Packet) -> None:
        if packet.channel == LogChannel.DATA:
            self._handle_data(packet)
        elif packet.channel == LogChannel.CONTROL:
            response = LogControlResponse.decode(packet.payload)
            if response.command == LogControl.RESET:
                key: tuple[int, ...] = (LogControl.RESET,)
            else:
                key = (response.command, response.block_id)
            if not self._control_flow.pending.resolve(key, response.error):
                logger.debug("Ignoring unexpected log control response %s", response)
        elif packet.channel == protocol.TOC_CHANNEL:
            self._toc_fetcher.handle_packet(packet)

    def _handle_data(self, packet: Packet) -> None:
        data = LogDataPacket.decode(packet.payload)
        record = self._blocks.get(data.block_id)
        if record is None or record.state is not BlockState.STARTED:
            logger.debug("Dropping sample for inactive log block %d", data.block_id)
            return
        item = record.decode(data)
        if isinstance(item, LogDecodeFailure):
            logger.warning("Log block %d: %s", data.block_id, item.reason)
        record.queue.put_nowait(item)

    def _on_disconnected(self, exc: Disconnected) -> None:
        self._toc_flow.pending.fail_all(exc)
        self._control_flow.pending.fail_all(exc)
        for record in self._blocks.values():
            record.state = BlockState.DELETED
            record.queue.close(exc)
        self._blocks.clear()
        self._orphans.clear()


__all__ = [
    "BlockState",
    "Log",
    "LogBlock",
    "LogDecodeFailure",
    "LogSample",
    "LogStreamItem",
    "period_to_ticks",
]
