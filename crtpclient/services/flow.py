"""Request/response correlation and retry for idempotent CRTP exchanges.

CRTP has no request ids: a response is matched to its request by fields it
echoes back (a TOC index, a parameter id, a log block id, a command byte).
:class:`PendingRequests` keeps the futures waiting on those keys and
:class:`RequestFlow` sends a request and waits for its correlated response,
resending on timeout with tenacity.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Hashable, Iterator
from contextlib import contextmanager
from typing import Generic, TypeVar

import tenacity

from ..errors import ProtocolTimeout
from ..protocol.packet import Packet
from .dispatcher import Dispatcher

V = TypeVar("V")

logger = logging.getLogger("crtpclient.flow")


class PendingRequests(Generic[V]):
    """Futures waiting for correlated responses, keyed by echoed fields.

    Several callers may wait on the same key; one response resolves all of
    them. Once :meth:`fail_all` ran the table stays closed and new
    registrations fail immediately with the same error.
    """

    def __init__(self) -> None:
        self._pending: dict[Hashable, list[asyncio.Future[V]]] = {}
        self._error: BaseException | None = None

    def __len__(self) -> int:
        return sum(len(waiters) for waiters in self._pending.values())

    def __contains__(self, key: Hashable) -> bool:
        return key in self._pending

    @property
    def closed(self) -> bool:
        return self._error is not None

    @contextmanager
    def expect(self, key: Hashable) -> Iterator[asyncio.Future[V]]:
        """Register interest in *key*; always unregisters on exit."""
        if self._error is not None:
            raise self._error
        future: asyncio.Future[V] = asyncio.get_running_loop().create_future()
        self._pending.setdefault(key, []).append(future)
        try:
            yield future
        finally:
            waiters = self._pending.get(key)
            if waiters is not None:
                if future in waiters:
                    waiters.remove(future)
                if not waiters:
                    del self._pending[key]
            if not future.done():
                future.cancel()

    def resolve(self, key: Hashable, value: V) -> bool:
        """Complete every waiter on *key*; False if nobody was waiting."""
        waiters = self._pending.pop(key, None)
        if not waiters:
            return False
        for future in waiters:
            if not future.done():
                future.set_result(value)
        return True

    def fail(self, key: Hashable, exc: BaseException) -> bool:
        waiters = self._pending.pop(key, None)
        if not waiters:
            return False
        for future in waiters:
            if not future.done():
                future.set_exception(exc)
        return True

    def fail_all(self, exc: BaseException) -> None:
        self._error = exc
        pending = self._pending
        self._pending = {}
        for waiters in pending.values():
            for future in waiters:
                if not future.done():
                    future.set_exception(exc)


class RequestFlow(Generic[V]):
    """Send a request and wait for its correlated response, with retries."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        pending: PendingRequests[V],
        *,
        timeout: float,
        attempts: int,
        name: str,
    ) -> None:
        self._dispatcher = dispatcher
        self._pending = pending
        self._timeout = timeout
        self._max_attempts = max(1, attempts)
        self._name = name
        self._logger = logging.getLogger(f"crtpclient.flow.{name}")

    @property
    def pending(self) -> PendingRequests[V]:
        return self._pending

    def _build_retryer(self, attempts: int) -> tenacity.AsyncRetrying:
        return tenacity.AsyncRetrying(
            stop=tenacity.stop_after_attempt(attempts),
            retry=tenacity.retry_if_exception_type(TimeoutError),
            before_sleep=self._on_retry_sleep,
            reraise=True,
        )

    def _on_retry_sleep(self, retry_state: tenacity.RetryCallState) -> None:
        self._logger.warning(
            "Timeout waiting for %s response (attempt %d/%d)",
            self._name,
            retry_state.attempt_number,
            self._max_attempts,
        )

    async def _single_attempt(self, packet: Packet, key: Hashable) -> V:
        with self._pending.expect(key) as future:
            await self._dispatcher.send(packet)
            async with asyncio.timeout(self._timeout):
                return await future

    async def request(
        self,
        packet: Packet,
        key: Hashable,
        *,
        retry: bool = True,
        timeout_error: type[ProtocolTimeout] = ProtocolTimeout,
    ) -> V:
        """Send *packet* and return the response registered under *key*.

        Only timeouts are retried. Exhausting the attempts raises
        *timeout_error*; any other failure propagates unchanged.
        """
        attempts = self._max_attempts if retry else 1
        retryer = self._build_retryer(attempts)
        try:
            return await retryer(self._single_attempt, packet, key)
        except TimeoutError as exc:
            raise timeout_error(
                f"No {self._name} response for {key!r} after {attempts} attempt(s)"
            ) from exc


__all__ = ["PendingRequests", "RequestFlow"]
