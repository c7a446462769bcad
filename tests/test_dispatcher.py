"""Tests for the packet dispatcher."""

from __future__ import annotations

import asyncio

import pytest

from crtpclient.errors import Disconnected, LinkError, NotConnected
from crtpclient.protocol.packet import Packet
from crtpclient.services.dispatcher import USER_DISCONNECT_REASON, Dispatcher

from mocks import FakeLink, eventually


class GatedLink(FakeLink):
    """Link whose transmissions wait for the test to open the gate."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()

    async def send(self, data: bytes) -> None:
        await self.gate.wait()
        await super().send(data)


def _started(link: FakeLink, **kwargs: object) -> Dispatcher:
    dispatcher = Dispatcher(link, **kwargs)  # type: ignore[arg-type]
    dispatcher.start()
    dispatcher.mark_connected()
    return dispatcher


@pytest.mark.asyncio
async def test_send_preserves_submission_order() -> None:
    link = FakeLink()
    dispatcher = _started(link)
    for index in range(5):
        await dispatcher.send(Packet(3, 0, bytes([index])))
    await eventually(lambda: len(link.sent) == 5)
    assert [raw[1] for raw in link.sent] == [0, 1, 2, 3, 4]
    assert dispatcher.stats.packets_sent == 5
    await dispatcher.close()


@pytest.mark.asyncio
async def test_send_requires_started_dispatcher() -> None:
    dispatcher = Dispatcher(FakeLink())
    with pytest.raises(NotConnected):
        await dispatcher.send(Packet(3, 0))
    with pytest.raises(NotConnected):
        dispatcher.ensure_connected()


@pytest.mark.asyncio
async def test_send_allowed_while_connecting() -> None:
    link = FakeLink()
    dispatcher = Dispatcher(link)
    dispatcher.start()
    assert dispatcher.state == Dispatcher.STATE_CONNECTING
    await dispatcher.send(Packet(13, 1, b"\x00"))
    await eventually(lambda: len(link.sent) == 1)
    await dispatcher.close()


@pytest.mark.asyncio
async def test_second_subscription_is_rejected() -> None:
    dispatcher = Dispatcher(FakeLink())
    dispatcher.subscribe(5)
    with pytest.raises(ValueError):
        dispatcher.subscribe(5)
    dispatcher.unsubscribe(5)
    dispatcher.subscribe(5)


@pytest.mark.asyncio
async def test_receive_routes_and_counts_drops() -> None:
    link = FakeLink()
    dispatcher = Dispatcher(link)
    console = dispatcher.subscribe(0)
    dispatcher.start()
    link.inject_packet(9, 1, b"nobody listens")
    link.inject(b"")
    link.inject_packet(0, 0, b"hi")
    packet = await console.get()
    assert packet == Packet(0, 0, b"hi")
    assert dispatcher.stats.packets_dropped == 1
    assert dispatcher.stats.decode_errors == 1
    assert dispatcher.stats.packets_received == 2
    await dispatcher.close()


@pytest.mark.asyncio
async def test_port_queue_limit_drops_oldest() -> None:
    link = FakeLink()
    dispatcher = Dispatcher(link, port_queue_limits={0: 2})
    console = dispatcher.subscribe(0)
    dispatcher.start()
    for index in range(3):
        link.inject_packet(0, 0, bytes([index]))
    await eventually(lambda: dispatcher.stats.packets_received == 3)
    assert dispatcher.stats.overflow_drops == 1
    assert [console.get_nowait().payload, console.get_nowait().payload] == [b"\x01", b"\x02"]
    await dispatcher.close()


@pytest.mark.asyncio
async def test_outbound_queue_applies_backpressure() -> None:
    link = GatedLink()
    dispatcher = _started(link, send_queue_size=1)
    await dispatcher.send(Packet(3, 0, b"\x01"))
    await dispatcher.send(Packet(3, 0, b"\x02"))
    blocked = asyncio.create_task(dispatcher.send(Packet(3, 0, b"\x03")))
    await asyncio.sleep(0.01)
    assert not blocked.done()
    link.gate.set()
    await blocked
    await eventually(lambda: len(link.sent) == 3)
    await dispatcher.close()


@pytest.mark.asyncio
async def test_link_failure_disconnects_once() -> None:
    link = FakeLink()
    dispatcher = Dispatcher(link)
    queue = dispatcher.subscribe(5)
    dispatcher.start()
    dispatcher.mark_connected()

    link.fail("radio unplugged")
    with pytest.raises(Disconnected) as excinfo:
        await queue.get()
    assert isinstance(excinfo.value.__cause__, LinkError)

    reason = await dispatcher.wait_closed()
    assert "radio unplugged" in reason
    assert dispatcher.state == Dispatcher.STATE_DISCONNECTED
    assert link.close_calls == 1
    with pytest.raises(Disconnected):
        await dispatcher.send(Packet(3, 0))

    assert await dispatcher.close() == reason
    assert link.close_calls == 1

    # The failed port is released, so it can be claimed again.
    again = dispatcher.subscribe(5)
    with pytest.raises(Disconnected):
        await again.get()


@pytest.mark.asyncio
async def test_send_failure_disconnects() -> None:
    link = FakeLink()
    link.send_error = LinkError("tx failed")
    dispatcher = _started(link)
    await dispatcher.send(Packet(3, 0))
    reason = await dispatcher.wait_closed()
    assert "tx failed" in reason


@pytest.mark.asyncio
async def test_user_close_reason_and_late_subscription() -> None:
    link = FakeLink()
    dispatcher = _started(link)
    assert await dispatcher.close() == USER_DISCONNECT_REASON
    assert not dispatcher.is_connected
    late = dispatcher.subscribe(2)
    with pytest.raises(Disconnected):
        await late.get()
    with pytest.raises(RuntimeError):
        dispatcher.start()
