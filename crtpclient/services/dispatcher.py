"""Packet dispatcher owning one link.

The dispatcher runs two duties for the lifetime of a connection: a receive
loop that demultiplexes inbound packets into per-port queues, and a send
loop that drains a bounded outbound queue into the link in submission
order. Any link failure tears the connection down exactly once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any

import msgspec
from transitions import Machine

from ..errors import DecodeError, Disconnected, LinkError, NotConnected
from ..protocol.packet import Packet
from ..state.queues import DropOldestQueue
from ..transport.base import Link
from ..util import log_hexdump, log_packet

logger = logging.getLogger("crtpclient.dispatcher")

USER_DISCONNECT_REASON = "Disconnect requested"


class DispatcherStats(msgspec.Struct):
    """Running packet counters for one connection."""

    packets_sent: int = 0
    packets_received: int = 0
    packets_dropped: int = 0
    decode_errors: int = 0
    overflow_drops: int = 0


class Dispatcher:
    """Route CRTP packets between one link and the subsystems."""

    if TYPE_CHECKING:
        # FSM generated methods and attributes for static analysis
        fsm_state: str
        begin_connect: Callable[[], bool]
        complete_connect: Callable[[], bool]
        begin_disconnect: Callable[[], bool]
        complete_disconnect: Callable[[], bool]

    # FSM States
    STATE_DISCONNECTED = "disconnected"
    STATE_CONNECTING = "connecting"
    STATE_CONNECTED = "connected"
    STATE_DISCONNECTING = "disconnecting"

    _SENDABLE_STATES = frozenset({STATE_CONNECTING, STATE_CONNECTED})

    def __init__(
        self,
        link: Link,
        *,
        send_queue_size: int = 64,
        port_queue_limits: dict[int, int] | None = None,
    ) -> None:
        self._link = link
        self._outbound: asyncio.Queue[Packet] = asyncio.Queue(maxsize=max(1, send_queue_size))
        self._port_queue_limits = dict(port_queue_limits or {})
        self._subscribers: dict[int, DropOldestQueue[Packet]] = {}
        self._duties: list[asyncio.Task[None]] = []
        self._background: set[asyncio.Task[Any]] = set()
        self._closed = asyncio.Event()
        self._close_task: asyncio.Task[None] | None = None
        self._reason: str | None = None
        self._error: BaseException | None = None
        self.stats = DispatcherStats()

        self.state_machine = Machine(
            model=self,
            states=[
                self.STATE_DISCONNECTED,
                self.STATE_CONNECTING,
                self.STATE_CONNECTED,
                self.STATE_DISCONNECTING,
            ],
            initial=self.STATE_DISCONNECTED,
            ignore_invalid_triggers=True,
            auto_transitions=False,
            model_attribute="fsm_state",
        )
        self.state_machine.add_transition(
            trigger="begin_connect", source=self.STATE_DISCONNECTED, dest=self.STATE_CONNECTING
        )
        self.state_machine.add_transition(
            trigger="complete_connect", source=self.STATE_CONNECTING, dest=self.STATE_CONNECTED
        )
        self.state_machine.add_transition(
            trigger="begin_disconnect",
            source=[self.STATE_CONNECTING, self.STATE_CONNECTED],
            dest=self.STATE_DISCONNECTING,
        )
        self.state_machine.add_transition(
            trigger="complete_disconnect", source=self.STATE_DISCONNECTING, dest=self.STATE_DISCONNECTED
        )

    # --- Lifecycle ---

    @property
    def state(self) -> str:
        return self.fsm_state

    @property
    def is_connected(self) -> bool:
        return self.fsm_state == self.STATE_CONNECTED

    @property
    def reason(self) -> str | None:
        """Why the connection ended, or None while it is still up."""
        return self._reason

    def start(self) -> None:
        """Spawn the receive and send duties and enter ``connecting``."""
        if self._close_task is not None or not self.begin_connect():
            raise RuntimeError(f"Dispatcher cannot start from state {self.fsm_state}")
        self._duties = [
            asyncio.create_task(self._receive_loop(), name="crtpclient-receive"),
            asyncio.create_task(self._send_loop(), name="crtpclient-send"),
        ]
        for task in self._duties:
            task.add_done_callback(self._on_task_done)
        logger.debug("Dispatcher started")

    def mark_connected(self) -> None:
        """Enter ``connected`` once the handshake and initialisation finished."""
        if not self.complete_connect():
            raise self._not_connected()
        logger.info("Connected")

    def ensure_connected(self) -> None:
        if self.fsm_state != self.STATE_CONNECTED:
            raise self._not_connected()

    async def close(self) -> str:
        """Tear the connection down (idempotent) and return the reason."""
        self._fail(USER_DISCONNECT_REASON)
        return await self.wait_closed()

    async def wait_closed(self) -> str:
        await self._closed.wait()
        return self._reason or USER_DISCONNECT_REASON

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task[Any]:
        """Run a subsystem task whose unexpected failure ends the connection."""
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        task.add_done_callback(self._on_task_done)
        return task

    # --- Ports ---

    def subscribe(self, port: int, *, maxsize: int | None = None) -> DropOldestQueue[Packet]:
        """Claim the inbound queue of *port*.

        ``maxsize`` overrides the configured limit for the port; ``0`` means
        unbounded, otherwise the oldest unread packet is dropped on overflow.
        """
        port = int(port)
        if port in self._subscribers:
            raise ValueError(f"Port {port} already has a subscriber")
        limit = self._port_queue_limits.get(port, 0) if maxsize is None else maxsize
        queue: DropOldestQueue[Packet] = DropOldestQueue(limit)
        if self._close_task is not None:
            queue.close(self._disconnected())
            return queue
        self._subscribers[port] = queue
        return queue

    def unsubscribe(self, port: int) -> None:
        queue = self._subscribers.pop(int(port), None)
        if queue is not None:
            queue.close()

    async def send(self, packet: Packet) -> None:
        """Queue *packet* for transmission, waiting while the queue is full."""
        if self.fsm_state not in self._SENDABLE_STATES:
            raise self._not_connected()
        await self._outbound.put(packet)
        if self.fsm_state not in self._SENDABLE_STATES:
            raise self._disconnected()

    # --- Duties ---

    async def _receive_loop(self) -> None:
        while True:
            try:
                raw = await self._link.receive()
            except LinkError as exc:
                logger.warning("Link receive failed: %s", exc)
                self._fail(f"Link error: {exc}", exc)
                return

            try:
                packet = Packet.from_bytes(raw)
            except DecodeError as exc:
                self.stats.decode_errors += 1
                logger.warning("Dropping undecodable packet: %s", exc)
                log_hexdump(logger, logging.DEBUG, "Corrupt packet", bytes(raw))
                continue

            self.stats.packets_received += 1
            log_packet(logger, "IN", packet.port, packet.channel, packet.payload)
            queue = self._subscribers.get(packet.port)
            if queue is None:
                self.stats.packets_dropped += 1
                continue
            if not queue.put_nowait(packet):
                self.stats.overflow_drops += 1
                logger.debug("Port %d queue full; dropped oldest packet", packet.port)

    async def _send_loop(self) -> None:
        while True:
            packet = await self._outbound.get()
            raw = packet.to_bytes()
            try:
                await self._link.send(raw)
            except LinkError as exc:
                logger.warning("Link send failed: %s", exc)
                self._fail(f"Link error: {exc}", exc)
                return
            self.stats.packets_sent += 1
            log_packet(logger, "OUT", packet.port, packet.channel, packet.payload)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.error("Task %s failed", task.get_name(), exc_info=exc)
        self._fail(f"Internal error in {task.get_name()}: {exc}", exc)

    # --- Teardown ---

    def _fail(self, reason: str, error: BaseException | None = None) -> None:
        if self._close_task is not None:
            return
        self._reason = reason
        self._error = error
        self.begin_disconnect()
        if reason != USER_DISCONNECT_REASON:
            logger.warning("Disconnecting: %s", reason)

        for queue in self._subscribers.values():
            queue.close(self._disconnected())
        self._subscribers.clear()
        while not self._outbound.empty():
            self._outbound.get_nowait()

        self._close_task = asyncio.get_running_loop().create_task(
            self._finish_close(), name="crtpclient-close"
        )

    async def _finish_close(self) -> None:
        for task in self._duties:
            task.cancel()
        await asyncio.gather(*self._duties, return_exceptions=True)
        # Putters blocked on a full queue may have slipped in after the drain.
        while not self._outbound.empty():
            self._outbound.get_nowait()
        try:
            await self._link.close()
        except LinkError as exc:
            logger.warning("Error while closing link: %s", exc)
        self.complete_disconnect()
        self._closed.set()
        logger.info("Disconnected: %s", self._reason)

    def _disconnected(self) -> Disconnected:
        exc = Disconnected(self._reason or USER_DISCONNECT_REASON)
        exc.__cause__ = self._error
        return exc

    def _not_connected(self) -> NotConnected:
        if self._reason is not None:
            return self._disconnected()
        return NotConnected(f"Not connected (state: {self.fsm_state})")


__all__ = ["Dispatcher", "DispatcherStats", "USER_DISCONNECT_REASON"]
