"""Tests for the platform service and connection handshake."""

from __future__ import annotations

import logging

import pytest

from crtpclient.errors import ProtocolTimeout, TocFetchTimeout
from crtpclient.protocol.protocol import Port

from mocks import FakeFirmware, connect_firmware

VERSION = 1


@pytest.mark.asyncio
async def test_version_queries() -> None:
    firmware = FakeFirmware(protocol_version=7, firmware="2025.02 +12", device_type="CF21BL")
    cf = await connect_firmware(firmware)
    assert cf.platform.cached_protocol_version == 7
    assert await cf.platform.protocol_version() == 7
    assert await cf.platform.firmware_version() == "2025.02 +12"
    assert await cf.platform.device_type_name() == "CF21BL"
    await cf.disconnect()


@pytest.mark.asyncio
async def test_trailing_nul_is_stripped() -> None:
    firmware = FakeFirmware(device_type="CF2\x00\x00")
    cf = await connect_firmware(firmware)
    assert await cf.platform.device_type_name() == "CF2"
    await cf.disconnect()


@pytest.mark.asyncio
async def test_old_protocol_only_warns(caplog: pytest.LogCaptureFixture) -> None:
    firmware = FakeFirmware(protocol_version=2)
    with caplog.at_level(logging.WARNING, logger="crtpclient.platform"):
        cf = await connect_firmware(firmware)
    assert cf.is_connected
    assert any("protocol version 2" in message for message in caplog.messages)
    await cf.disconnect()


@pytest.mark.asyncio
async def test_handshake_retries_lost_response() -> None:
    firmware = FakeFirmware()
    firmware.drop_responses(Port.PLATFORM, VERSION)
    cf = await connect_firmware(firmware)
    assert firmware.request_count(Port.PLATFORM, VERSION, 0) == 2
    await cf.disconnect()


@pytest.mark.asyncio
async def test_silent_vehicle_aborts_connect() -> None:
    firmware = FakeFirmware()
    firmware.muted.add((Port.PLATFORM, VERSION))
    with pytest.raises(ProtocolTimeout) as excinfo:
        await connect_firmware(firmware)
    assert not isinstance(excinfo.value, TocFetchTimeout)
    assert firmware.link.closed
    assert firmware.request_count(Port.LOG, 0) == 0
