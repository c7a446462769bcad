"""Tests for request correlation and retries."""

from __future__ import annotations

import asyncio

import pytest

from crtpclient.errors import DecodeError, Disconnected, ProtocolTimeout, TocFetchTimeout
from crtpclient.protocol.packet import Packet
from crtpclient.services.dispatcher import Dispatcher
from crtpclient.services.flow import PendingRequests, RequestFlow

from mocks import FakeLink


def _flow(link: FakeLink, *, attempts: int = 3) -> tuple[Dispatcher, RequestFlow[str]]:
    dispatcher = Dispatcher(link)
    dispatcher.start()
    pending: PendingRequests[str] = PendingRequests()
    flow = RequestFlow(dispatcher, pending, timeout=0.02, attempts=attempts, name="test")
    return dispatcher, flow


@pytest.mark.asyncio
async def test_one_response_resolves_every_waiter() -> None:
    pending: PendingRequests[int] = PendingRequests()
    with pending.expect("k") as first, pending.expect("k") as second:
        assert len(pending) == 2
        assert pending.resolve("k", 7)
        assert await first == 7
        assert await second == 7
    assert "k" not in pending
    assert not pending.resolve("k", 8)


@pytest.mark.asyncio
async def test_expect_unregisters_on_error() -> None:
    pending: PendingRequests[int] = PendingRequests()
    with pytest.raises(RuntimeError):
        with pending.expect(("item", 3)):
            raise RuntimeError("boom")
    assert len(pending) == 0


@pytest.mark.asyncio
async def test_fail_all_closes_the_table() -> None:
    pending: PendingRequests[int] = PendingRequests()
    with pending.expect(1) as future:
        pending.fail_all(Disconnected("gone"))
        with pytest.raises(Disconnected):
            await future
    assert pending.closed
    with pytest.raises(Disconnected):
        with pending.expect(2):
            pass


@pytest.mark.asyncio
async def test_request_retries_on_timeout() -> None:
    attempts = 0

    def responder(_raw: bytes) -> list[bytes]:
        nonlocal attempts
        attempts += 1
        if attempts == 3:
            flow.pending.resolve("key", "answer")
        return []

    link = FakeLink(responder)
    dispatcher, flow = _flow(link)
    assert await flow.request(Packet(2, 1, b"\x00\x00"), "key") == "answer"
    assert len(link.sent) == 3
    assert len(flow.pending) == 0
    await dispatcher.close()


@pytest.mark.asyncio
async def test_request_exhaustion_raises_timeout_error() -> None:
    link = FakeLink()
    dispatcher, flow = _flow(link)
    with pytest.raises(TocFetchTimeout):
        await flow.request(Packet(2, 0, b"\x03"), "info", timeout_error=TocFetchTimeout)
    assert len(link.sent) == 3
    await dispatcher.close()


@pytest.mark.asyncio
async def test_request_without_retry_sends_once() -> None:
    link = FakeLink()
    dispatcher, flow = _flow(link)
    with pytest.raises(ProtocolTimeout):
        await flow.request(Packet(5, 1, b"\x05"), (5,), retry=False)
    assert len(link.sent) == 1
    await dispatcher.close()


@pytest.mark.asyncio
async def test_non_timeout_errors_are_not_retried() -> None:
    def responder(_raw: bytes) -> list[bytes]:
        flow.pending.fail("key", DecodeError("garbage"))
        return []

    link = FakeLink(responder)
    dispatcher, flow = _flow(link)
    with pytest.raises(DecodeError):
        await flow.request(Packet(2, 1), "key")
    assert len(link.sent) == 1
    await dispatcher.close()


@pytest.mark.asyncio
async def test_cancelled_request_unregisters() -> None:
    link = FakeLink()
    dispatcher, flow = _flow(link, attempts=100)
    task = asyncio.create_task(flow.request(Packet(2, 1), "key"))
    await asyncio.sleep(0.01)
    assert "key" in flow.pending
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert "key" not in flow.pending
    await dispatcher.close()
