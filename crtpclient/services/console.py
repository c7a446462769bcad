"""Console component: text printed by the firmware.

Console packets carry up to 30 bytes of text each, so one firmware print
may span several packets and one packet may hold several lines. Text is
decoded as UTF-8 with replacement characters for invalid bytes.
"""

from __future__ import annotations

import logging

from ..config.model import ClientConfig
from ..errors import Disconnected
from ..protocol.packet import Packet
from ..protocol.protocol import Port
from ..state.queues import BoundedTextHistory, DropOldestQueue, QueueEvent, Subscription
from .base import PortService
from .dispatcher import Dispatcher

logger = logging.getLogger("crtpclient.console")


class Console(PortService):
    """Console bound to port 0, with history since connection.

    Streams are unbounded unless ``console_queue_size`` caps them, in which
    case a slow consumer loses the oldest text first.
    """

    PORT = Port.CONSOLE
    NAME = "console"

    def __init__(self, dispatcher: Dispatcher, config: ClientConfig) -> None:
        super().__init__(dispatcher, config)
        self._history = BoundedTextHistory(max_bytes=config.console_history_limit_bytes)
        self._line_history = BoundedTextHistory(max_bytes=config.console_history_limit_bytes)
        self._history_dropped_bytes = 0
        self._partial_line = ""
        self._stream_queues: set[DropOldestQueue[str]] = set()
        self._line_queues: set[DropOldestQueue[str]] = set()
        self._closed_by: Disconnected | None = None

    def start(self) -> None:
        self._start_router()

    def history(self) -> str:
        """Console text received since connection, within the history limit."""
        return self._history.text()

    def history_lines(self) -> list[str]:
        return list(self._line_history)

    @property
    def history_dropped_bytes(self) -> int:
        """Bytes of old text evicted from the history so far."""
        return self._history_dropped_bytes

    def stream(self, *, history: bool = True) -> Subscription[str]:
        """Text chunks from now on, after the history if requested."""
        initial = [self._history.text()] if history and len(self._history) else []
        return self._subscribe(self._stream_queues, initial)

    def lines(self, *, history: bool = True) -> Subscription[str]:
        """Complete lines (without the newline), after the history if requested."""
        initial = list(self._line_history) if history else []
        return self._subscribe(self._line_queues, initial)

    def _subscribe(self, registry: set[DropOldestQueue[str]], initial: list[str]) -> Subscription[str]:
        size = self._config.console_queue_size
        queue: DropOldestQueue[str] = DropOldestQueue(max(size, len(initial)) if size else 0)
        for item in initial:
            queue.put_nowait(item)
        if self._closed_by is not None:
            queue.close(self._closed_by, keep_pending=True)
        else:
            registry.add(queue)
        return Subscription(queue, lambda: registry.discard(queue))

    def _handle_packet(self, packet: Packet) -> None:
        text = packet.payload.decode("utf-8", errors="replace")
        if not text:
            return
        self._account(self._history.append(text))
        for queue in self._stream_queues:
            queue.put_nowait(text)

        self._partial_line += text
        while "\n" in self._partial_line:
            line, self._partial_line = self._partial_line.split("\n", 1)
            self._line_history.append(line)
            logger.debug("Vehicle: %s", line)
            for queue in self._line_queues:
                queue.put_nowait(line)

    def _account(self, event: QueueEvent) -> None:
        evicted = event.dropped_bytes + event.truncated_bytes
        if evicted:
            self._history_dropped_bytes += evicted
            logger.debug("Console history full; evicted %d bytes", evicted)

    def _on_disconnected(self, exc: Disconnected) -> None:
        self._closed_by = exc
        for queue in self._stream_queues | self._line_queues:
            queue.close(exc)


__all__ = ["Console"]
