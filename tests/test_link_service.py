"""Tests for the link echo service."""

from __future__ import annotations

import pytest

from crtpclient.errors import ProtocolError, ProtocolTimeout
from crtpclient.protocol.protocol import Port

from mocks import FakeFirmware, connect_firmware

ECHO = 0


@pytest.mark.asyncio
async def test_ping_measures_round_trip() -> None:
    firmware = FakeFirmware()
    cf = await connect_firmware(firmware)
    elapsed = await cf.link_service.ping()
    assert elapsed >= 0.0
    assert [packet.payload for packet in firmware.link.sent_packets(Port.LINK, ECHO)] == [b"\x01"]
    await cf.disconnect()


@pytest.mark.asyncio
async def test_wrong_echo_is_a_protocol_error() -> None:
    firmware = FakeFirmware(echo_override=b"\x02")
    cf = await connect_firmware(firmware)
    with pytest.raises(ProtocolError):
        await cf.link_service.ping()
    await cf.disconnect()


@pytest.mark.asyncio
async def test_ping_is_not_retried() -> None:
    firmware = FakeFirmware(muted={(Port.LINK, ECHO)})
    cf = await connect_firmware(firmware)
    with pytest.raises(ProtocolTimeout):
        await cf.link_service.ping()
    assert firmware.request_count(Port.LINK, ECHO) == 1
    await cf.disconnect()
