"""Bounded queue helpers for crtpclient runtime state."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable, Iterator
from types import TracebackType
from typing import Annotated, Generic, TypeVar

import msgspec

from ..errors import CrtpError

T = TypeVar("T")


class QueueClosed(CrtpError):
    """Raised by :meth:`DropOldestQueue.get` once a closed queue is drained."""


class QueueEvent(msgspec.Struct):
    """Outcome of a bounded queue mutation."""

    truncated_bytes: int = 0
    dropped_chunks: int = 0
    dropped_bytes: int = 0
    accepted: bool = False


class DropOldestQueue(Generic[T]):
    """Single-consumer asyncio queue that never blocks the producer.

    When ``maxsize`` is reached the oldest unread item is discarded to make
    room. ``maxsize=0`` means unbounded. After :meth:`close` the consumer
    drains what is left and then gets :class:`QueueClosed`, or the close
    error if one was given (in which case pending items are discarded
    unless ``keep_pending`` is set).
    """

    def __init__(self, maxsize: int = 0) -> None:
        if maxsize < 0:
            raise ValueError("maxsize must be >= 0")
        self._maxsize = maxsize
        self._items: deque[T] = deque()
        self._ready = asyncio.Event()
        self._closed = False
        self._error: BaseException | None = None
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._items)

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def closed(self) -> bool:
        return self._closed

    def empty(self) -> bool:
        return not self._items

    def put_nowait(self, item: T) -> bool:
        """Queue *item*; return False if an older item had to be dropped."""
        if self._closed:
            return False
        accepted = True
        if self._maxsize and len(self._items) >= self._maxsize:
            self._items.popleft()
            self.dropped += 1
            accepted = False
        self._items.append(item)
        self._ready.set()
        return accepted

    def get_nowait(self) -> T:
        if self._items:
            return self._items.popleft()
        if self._error is not None:
            raise self._error
        if self._closed:
            raise QueueClosed("queue closed")
        raise asyncio.QueueEmpty

    async def get(self) -> T:
        while True:
            if self._items or self._closed:
                return self.get_nowait()
            self._ready.clear()
            await self._ready.wait()

    def close(self, exc: BaseException | None = None, *, keep_pending: bool = False) -> None:
        if self._closed:
            return
        self._closed = True
        if exc is not None:
            self._error = exc
            if not keep_pending:
                self._items.clear()
        self._ready.set()

    def __aiter__(self) -> DropOldestQueue[T]:
        return self

    async def __anext__(self) -> T:
        try:
            return await self.get()
        except QueueClosed:
            raise StopAsyncIteration from None


class Subscription(Generic[T]):
    """Consumer side of a queue that a producer already delivers into.

    The owner registers the queue before handing the subscription out, so
    nothing published after the call is missed. ``release`` unregisters it
    and runs once, when the subscription is closed or its queue ends.
    """

    def __init__(self, queue: DropOldestQueue[T], release: Callable[[], None]) -> None:
        self._queue = queue
        self._release: Callable[[], None] | None = release

    @property
    def dropped(self) -> int:
        return self._queue.dropped

    @property
    def closed(self) -> bool:
        return self._release is None

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        try:
            return await self._queue.__anext__()
        except (StopAsyncIteration, CrtpError):
            self.close()
            raise

    def close(self) -> None:
        release, self._release = self._release, None
        if release is not None:
            release()
            self._queue.close()

    async def aclose(self) -> None:
        self.close()

    async def __aenter__(self) -> Subscription[T]:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def _make_deque() -> deque[str]:
    return deque()


class BoundedTextHistory(msgspec.Struct):
    """Text chunk history bounded by its UTF-8 size; drops oldest chunks."""

    max_bytes: Annotated[int, msgspec.Meta(gt=0)]
    _chunks: deque[str] = msgspec.field(default_factory=_make_deque)
    _bytes: int = 0

    def __len__(self) -> int:
        return len(self._chunks)

    def __iter__(self) -> Iterator[str]:
        return iter(self._chunks)

    @property
    def bytes_used(self) -> int:
        return self._bytes

    def text(self) -> str:
        return "".join(self._chunks)

    def clear(self) -> None:
        self._chunks.clear()
        self._bytes = 0

    def append(self, chunk: str) -> QueueEvent:
        event = QueueEvent()
        size = len(chunk.encode("utf-8"))
        if size > self.max_bytes:
            kept = chunk.encode("utf-8")[-self.max_bytes :].decode("utf-8", errors="ignore")
            event.truncated_bytes = size - len(kept.encode("utf-8"))
            chunk = kept
            size = len(kept.encode("utf-8"))

        while self._chunks and self._bytes + size > self.max_bytes:
            removed = self._chunks.popleft()
            removed_size = len(removed.encode("utf-8"))
            self._bytes -= removed_size
            event.dropped_chunks += 1
            event.dropped_bytes += removed_size

        self._chunks.append(chunk)
        self._bytes += size
        event.accepted = True
        return event


__all__ = ["BoundedTextHistory", "DropOldestQueue", "QueueClosed", "QueueEvent", "Subscription"]
